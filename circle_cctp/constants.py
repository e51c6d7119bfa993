"""Circle CCTP and developer-controlled wallets constants.

Cross-Chain Transfer Protocol (V1) deployment addresses, domain mappings
and the blockchain codes used by Circle's custody API.

CCTP moves USDC with burn-and-mint:

1. Source chain: ``approve()`` USDC to ``TokenMessenger``, then call ``depositForBurn()``
2. Circle's Iris attestation service signs the burn event
3. Destination chain: call ``receiveMessage()`` on ``MessageTransmitter`` to mint USDC

Circle's custody API identifies chains with its own blockchain codes
(``ETH``, ``MATIC-AMOY``, ...), not EVM chain ids. CCTP in turn uses its
own domain ids. Testnets share the domain id of their mainnet.

- `CCTP documentation <https://developers.circle.com/stablecoins/cctp-getting-started>`_
- `EVM contract addresses <https://developers.circle.com/stablecoins/evm-smart-contracts>`_
- `Developer-controlled wallets <https://developers.circle.com/w3s/developer-controlled-wallets>`_
"""

from dataclasses import dataclass

from eth_typing import HexAddress


#: Circle API base URL for the developer-controlled wallets (W3S) endpoints
CIRCLE_API_BASE_URL = "https://api.circle.com"

#: Circle Iris attestation API base URL (mainnet).
IRIS_API_BASE_URL = "https://iris-api.circle.com"

#: Circle Iris attestation API base URL (testnets).
IRIS_API_SANDBOX_URL = "https://iris-api-sandbox.circle.com"

#: How many times we check transaction or attestation status before giving up.
#:
#: With the default interval this gives 20 minutes.
DEFAULT_POLL_ATTEMPTS = 40

#: Seconds between status checks
DEFAULT_POLL_INTERVAL = 30.0

#: USDC has 6 decimals on all EVM chains
USDC_DECIMALS = 6

#: Fee level passed to the custody API for contract execution transactions
DEFAULT_FEE_LEVEL = "MEDIUM"

#: Custody API wallet state for usable wallets
WALLET_STATE_LIVE = "LIVE"

#: CCTP domain ID for Ethereum
CCTP_DOMAIN_ETHEREUM = 0

#: CCTP domain ID for Avalanche C-Chain
CCTP_DOMAIN_AVALANCHE = 1

#: CCTP domain ID for Arbitrum One
CCTP_DOMAIN_ARBITRUM = 3

#: CCTP domain ID for Base
CCTP_DOMAIN_BASE = 6

#: CCTP domain ID for Polygon PoS
CCTP_DOMAIN_POLYGON = 7

#: TokenMessenger shared by all CCTP V1 testnet deployments
TESTNET_TOKEN_MESSENGER: HexAddress = HexAddress("0x9f3B8679c73C2Fef8b59B4f3444d4e156fb70AA5")

#: MessageTransmitter shared by all CCTP V1 testnet deployments
TESTNET_MESSAGE_TRANSMITTER: HexAddress = HexAddress("0x7865fAfC2db2093669d92c0F33AeEF291086BEFD")


@dataclass(slots=True, frozen=True)
class CCTPNetwork:
    """A blockchain we can move USDC from or to."""

    #: Custody API blockchain code, e.g. ``ETH-SEPOLIA``
    code: str

    #: Human readable name
    name: str

    #: CCTP domain id
    domain: int

    #: Native USDC token contract
    usdc: HexAddress

    #: CCTP TokenMessenger, the contract that burns USDC
    token_messenger: HexAddress

    #: CCTP MessageTransmitter, the contract that mints USDC
    message_transmitter: HexAddress

    #: Block explorer transaction URL with ``{tx_hash}`` placeholder
    explorer_tx_url: str

    #: Testnets use Iris sandbox for attestations
    testnet: bool = False


#: Networks supported for cross-chain USDC transfers, keyed by custody API blockchain code
SUPPORTED_NETWORKS: dict[str, CCTPNetwork] = {
    network.code: network
    for network in [
        CCTPNetwork(
            code="ETH",
            name="Ethereum Mainnet",
            domain=CCTP_DOMAIN_ETHEREUM,
            usdc=HexAddress("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
            token_messenger=HexAddress("0xBd3fa81B58Ba92a82136038B25aDec7066af3155"),
            message_transmitter=HexAddress("0x0a992d191DEeC32aFe36203Ad87D7d289a738F81"),
            explorer_tx_url="https://etherscan.io/tx/{tx_hash}",
        ),
        CCTPNetwork(
            code="AVAX",
            name="Avalanche C-Chain",
            domain=CCTP_DOMAIN_AVALANCHE,
            usdc=HexAddress("0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E"),
            token_messenger=HexAddress("0x6B25532e1060CE10cc3B0A99e5683b91BFDe6982"),
            message_transmitter=HexAddress("0x8186359aF5F57FbB40c6b14A588d2A59C0C29880"),
            explorer_tx_url="https://snowtrace.io/tx/{tx_hash}",
        ),
        CCTPNetwork(
            code="ARB",
            name="Arbitrum One",
            domain=CCTP_DOMAIN_ARBITRUM,
            usdc=HexAddress("0xaf88d065e77c8cC2239327C5EDb3A432268e5831"),
            token_messenger=HexAddress("0x19330d10D9Cc8751218eaf51E8885D058642E08A"),
            message_transmitter=HexAddress("0xC30362313FBBA5cf9163F0bb16a0e01f01A896ca"),
            explorer_tx_url="https://arbiscan.io/tx/{tx_hash}",
        ),
        CCTPNetwork(
            code="BASE",
            name="Base",
            domain=CCTP_DOMAIN_BASE,
            usdc=HexAddress("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
            token_messenger=HexAddress("0x1682Ae6375C4E4A97e4B583BC394c861A46D8962"),
            message_transmitter=HexAddress("0xAD09780d193884d503182aD4588450C416D6F9D4"),
            explorer_tx_url="https://basescan.org/tx/{tx_hash}",
        ),
        CCTPNetwork(
            code="MATIC",
            name="Polygon Mainnet",
            domain=CCTP_DOMAIN_POLYGON,
            usdc=HexAddress("0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"),
            token_messenger=HexAddress("0x9daF8c91AEFAE50b9c0E69629D3F6Ca40cA3B3FE"),
            message_transmitter=HexAddress("0xF3be9355363857F3e001be68856A2f96b4C39Ba9"),
            explorer_tx_url="https://polygonscan.com/tx/{tx_hash}",
        ),
        CCTPNetwork(
            code="ETH-SEPOLIA",
            name="Ethereum Sepolia (Testnet)",
            domain=CCTP_DOMAIN_ETHEREUM,
            usdc=HexAddress("0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"),
            token_messenger=TESTNET_TOKEN_MESSENGER,
            message_transmitter=TESTNET_MESSAGE_TRANSMITTER,
            explorer_tx_url="https://sepolia.etherscan.io/tx/{tx_hash}",
            testnet=True,
        ),
        CCTPNetwork(
            code="AVAX-FUJI",
            name="Avalanche Fuji (Testnet)",
            domain=CCTP_DOMAIN_AVALANCHE,
            usdc=HexAddress("0x5425890298aed601595a70AB815c96711a31Bc65"),
            token_messenger=TESTNET_TOKEN_MESSENGER,
            message_transmitter=TESTNET_MESSAGE_TRANSMITTER,
            explorer_tx_url="https://testnet.snowtrace.io/tx/{tx_hash}",
            testnet=True,
        ),
        CCTPNetwork(
            code="ARB-SEPOLIA",
            name="Arbitrum Sepolia (Testnet)",
            domain=CCTP_DOMAIN_ARBITRUM,
            usdc=HexAddress("0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d"),
            token_messenger=TESTNET_TOKEN_MESSENGER,
            message_transmitter=TESTNET_MESSAGE_TRANSMITTER,
            explorer_tx_url="https://sepolia.arbiscan.io/tx/{tx_hash}",
            testnet=True,
        ),
        CCTPNetwork(
            code="BASE-SEPOLIA",
            name="Base Sepolia (Testnet)",
            domain=CCTP_DOMAIN_BASE,
            usdc=HexAddress("0x036CbD53842c5426634e7929541eC2318f3dCF7e"),
            token_messenger=TESTNET_TOKEN_MESSENGER,
            message_transmitter=TESTNET_MESSAGE_TRANSMITTER,
            explorer_tx_url="https://sepolia.basescan.org/tx/{tx_hash}",
            testnet=True,
        ),
        CCTPNetwork(
            code="MATIC-AMOY",
            name="Polygon Amoy (Testnet)",
            domain=CCTP_DOMAIN_POLYGON,
            usdc=HexAddress("0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582"),
            token_messenger=TESTNET_TOKEN_MESSENGER,
            message_transmitter=TESTNET_MESSAGE_TRANSMITTER,
            explorer_tx_url="https://amoy.polygonscan.com/tx/{tx_hash}",
            testnet=True,
        ),
    ]
}

#: Networks offered when creating new wallets.
#:
#: Solana wallets can be created and listed, but not used for CCTP transfers here.
WALLET_CREATION_NETWORKS: dict[str, str] = {
    "MATIC-AMOY": "Polygon Amoy (Testnet)",
    "ETH-SEPOLIA": "Ethereum Sepolia (Testnet)",
    "AVAX-FUJI": "Avalanche Fuji (Testnet)",
    "BASE-SEPOLIA": "Base Sepolia (Testnet)",
    "ARB-SEPOLIA": "Arbitrum Sepolia (Testnet)",
    "ETH": "Ethereum Mainnet",
    "MATIC": "Polygon Mainnet",
    "SOL-DEVNET": "Solana Devnet (Testnet)",
    "SOL": "Solana Mainnet",
}

#: Most wallets the custody API lets us create in one call from the wallet manager
MAX_WALLETS_PER_CREATE = 10
