"""Map custody API blockchain codes to CCTP parameters and encode addresses.

CCTP uses ``bytes32`` for recipient addresses to support non-EVM chains.
For EVM chains, the 20-byte address is left-padded with zeros to 32 bytes.

The custody API takes ABI parameters as strings, so the encoded values
here are hex strings, not ``bytes``.
"""

from decimal import Decimal

from eth_typing import HexAddress
from eth_utils import is_hex_address
from web3 import Web3

from circle_cctp.constants import SUPPORTED_NETWORKS, USDC_DECIMALS, CCTPNetwork
from circle_cctp.exceptions import InvalidAddress, UnsupportedChain

#: Zero padding in front of an EVM address inside a bytes32, as hex characters
_PADDING_HEX_LENGTH = 24


def get_network(blockchain: str) -> CCTPNetwork:
    """Resolve a custody API blockchain code to CCTP network data.

    :param blockchain:
        Custody API blockchain code, e.g. ``ETH-SEPOLIA``

    :raise UnsupportedChain:
        If CCTP transfers are not supported on this blockchain
    """
    try:
        return SUPPORTED_NETWORKS[blockchain]
    except (KeyError, TypeError):
        raise UnsupportedChain(f"Unsupported blockchain: {blockchain}. Supported blockchains: {list(SUPPORTED_NETWORKS.keys())}")


def is_supported_blockchain(blockchain: str) -> bool:
    return blockchain in SUPPORTED_NETWORKS


def domain_id_for(blockchain: str) -> int:
    """Get the CCTP domain id for a blockchain.

    Testnets return the domain id of their mainnet.

    :param blockchain:
        Custody API blockchain code

    :return:
        CCTP domain id, e.g. ``0`` for Ethereum

    :raise UnsupportedChain:
        For unknown blockchains
    """
    return get_network(blockchain).domain


def message_transmitter_for(blockchain: str) -> HexAddress:
    """Get the MessageTransmitter contract that mints USDC on this blockchain."""
    return get_network(blockchain).message_transmitter


def token_messenger_for(blockchain: str) -> HexAddress:
    """Get the TokenMessenger contract that burns USDC on this blockchain."""
    return get_network(blockchain).token_messenger


def usdc_contract_for(blockchain: str) -> HexAddress:
    return get_network(blockchain).usdc


def explorer_url_for(blockchain: str, tx_hash: str) -> str:
    """Link to a transaction on a block explorer.

    Unknown blockchains do not raise, as this is only used for display.
    """
    network = SUPPORTED_NETWORKS.get(blockchain)
    if network is None:
        return f"Unknown blockchain: {blockchain}"
    return network.explorer_tx_url.format(tx_hash=tx_hash)


def encode_address(address: str) -> str:
    """Convert an EVM address to the bytes32 format used as ``mintRecipient``.

    - Accepts addresses with or without ``0x`` prefix, in any case
    - Already encoded values are returned unchanged, so encoding is idempotent

    :param address:
        20-byte hex address, or an address already left-padded to 32 bytes

    :return:
        ``0x`` followed by 64 lowercase hex characters

    :raise InvalidAddress:
        If the input is not a well-formed hex address
    """
    if not isinstance(address, str):
        raise InvalidAddress(f"Address must be a hex string, got {type(address)}")

    hex_part = address[2:] if address[:2].lower() == "0x" else address

    if len(hex_part) == 64:
        padding, hex_part = hex_part[:_PADDING_HEX_LENGTH], hex_part[_PADDING_HEX_LENGTH:]
        if padding != "0" * _PADDING_HEX_LENGTH:
            raise InvalidAddress(f"Not a left-padded EVM address: {address}")

    if not is_hex_address(f"0x{hex_part}"):
        raise InvalidAddress(f"Not a valid hex address: {address}")

    return "0x" + hex_part.lower().zfill(64)


def decode_address(encoded: str) -> HexAddress:
    """Reverse :py:func:`encode_address`.

    :return:
        Checksummed address
    """
    encoded = encode_address(encoded)
    return Web3.to_checksum_address("0x" + encoded[-40:])


def to_raw_amount(amount: Decimal | int | str) -> int:
    """Convert a human USDC amount to raw token units.

    Example: ``Decimal("50")`` becomes ``50_000_000``.

    :raise ValueError:
        If the amount has more precision than USDC supports
    """
    raw = Decimal(amount) * (10**USDC_DECIMALS)
    if raw != raw.to_integral_value():
        raise ValueError(f"USDC supports only {USDC_DECIMALS} decimals, got {amount}")
    return int(raw)


def from_raw_amount(raw: int) -> Decimal:
    """Convert raw USDC token units to a human amount."""
    return Decimal(raw) / Decimal(10**USDC_DECIMALS)
