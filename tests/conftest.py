"""Shared fixtures.

Nothing here talks to the network and polling never sleeps.
"""

from unittest.mock import Mock

import pytest

from circle_cctp.constants import CCTP_DOMAIN_BASE, CCTP_DOMAIN_ETHEREUM, SUPPORTED_NETWORKS
from circle_cctp.retry import RetryPolicy
from circle_cctp.testing import FakeCustodyClient, craft_cctp_message, make_mock_response
from circle_cctp.wallets import Wallet

SOURCE_ADDRESS = "0x1111111111111111111111111111111111111111"
DESTINATION_ADDRESS = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Poll a few times without sleeping."""
    return RetryPolicy(max_attempts=3, interval=0)


@pytest.fixture
def source_wallet() -> Wallet:
    return Wallet(
        id="w-src",
        address=SOURCE_ADDRESS,
        blockchain="ETH-SEPOLIA",
        state="LIVE",
        wallet_set_id="set-1",
        wallet_set_name="Set set-1",
    )


@pytest.fixture
def destination_wallet() -> Wallet:
    return Wallet(
        id="w-dst",
        address=DESTINATION_ADDRESS,
        blockchain="BASE-SEPOLIA",
        state="LIVE",
        wallet_set_id="set-1",
        wallet_set_name="Set set-1",
    )


@pytest.fixture
def custody(source_wallet, destination_wallet) -> FakeCustodyClient:
    """Source wallet holding 100 USDC on Sepolia, empty destination wallet on Base Sepolia."""
    wallets = [
        {"id": w.id, "address": w.address, "blockchain": w.blockchain, "state": w.state, "walletSetId": "set-1"}
        for w in (source_wallet, destination_wallet)
    ]
    balances = {
        "w-src": [
            {"token": {"symbol": "ETH-SEPOLIA", "name": "Ethereum-Sepolia", "blockchain": "ETH-SEPOLIA"}, "amount": "0.5"},
            {
                "token": {
                    "symbol": "USDC",
                    "name": "USDC",
                    "blockchain": "ETH-SEPOLIA",
                    "tokenAddress": SUPPORTED_NETWORKS["ETH-SEPOLIA"].usdc,
                },
                "amount": "100",
            },
        ]
    }
    return FakeCustodyClient(wallet_sets={"set-1": wallets}, balances=balances)


@pytest.fixture
def burn_message() -> str:
    """50 USDC burnt on Sepolia for the destination wallet."""
    return craft_cctp_message(
        source_domain=CCTP_DOMAIN_ETHEREUM,
        destination_domain=CCTP_DOMAIN_BASE,
        nonce=1,
        mint_recipient=DESTINATION_ADDRESS,
        amount=50_000_000,
        burn_token=SUPPORTED_NETWORKS["ETH-SEPOLIA"].usdc,
    )


@pytest.fixture
def attestation_signature() -> str:
    return "0x" + "ab" * 65


@pytest.fixture
def iris_session(burn_message, attestation_signature) -> Mock:
    """Iris answers 404, then pending, then the signed attestation."""
    session = Mock()
    session.get.side_effect = [
        make_mock_response(404, text="Not found"),
        make_mock_response(200, {"messages": [{"message": burn_message, "attestation": "PENDING"}]}),
        make_mock_response(200, {"messages": [{"message": burn_message, "attestation": attestation_signature}]}),
    ]
    return session
