"""Blockchain code lookups, address encoding and amount conversion."""

from decimal import Decimal

import pytest

from circle_cctp.constants import TESTNET_MESSAGE_TRANSMITTER, TESTNET_TOKEN_MESSENGER
from circle_cctp.encoding import (
    decode_address,
    domain_id_for,
    encode_address,
    explorer_url_for,
    from_raw_amount,
    get_network,
    message_transmitter_for,
    to_raw_amount,
    token_messenger_for,
    usdc_contract_for,
)
from circle_cctp.exceptions import InvalidAddress, UnsupportedChain


@pytest.mark.parametrize(
    "blockchain, domain",
    [
        ("ETH", 0),
        ("ETH-SEPOLIA", 0),
        ("AVAX-FUJI", 1),
        ("ARB-SEPOLIA", 3),
        ("BASE", 6),
        ("MATIC-AMOY", 7),
    ],
)
def test_domain_id_for(blockchain, domain):
    assert domain_id_for(blockchain) == domain


def test_unsupported_blockchain():
    with pytest.raises(UnsupportedChain, match="SOL-DEVNET"):
        domain_id_for("SOL-DEVNET")

    # Also a ValueError for callers that do not know our exceptions
    with pytest.raises(ValueError):
        get_network("DOGE")


def test_testnet_contracts():
    """All testnets share the V1 testnet deployment."""
    for code in ("ETH-SEPOLIA", "AVAX-FUJI", "BASE-SEPOLIA", "ARB-SEPOLIA", "MATIC-AMOY"):
        assert token_messenger_for(code) == TESTNET_TOKEN_MESSENGER
        assert message_transmitter_for(code) == TESTNET_MESSAGE_TRANSMITTER

    assert usdc_contract_for("ETH-SEPOLIA") == "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
    assert message_transmitter_for("ETH") != TESTNET_MESSAGE_TRANSMITTER


def test_explorer_url_for():
    tx_hash = "0x" + "12" * 32
    assert explorer_url_for("ETH-SEPOLIA", tx_hash) == f"https://sepolia.etherscan.io/tx/{tx_hash}"
    assert explorer_url_for("BASE", tx_hash) == f"https://basescan.org/tx/{tx_hash}"
    assert explorer_url_for("SOL", tx_hash) == "Unknown blockchain: SOL"


def test_encode_address():
    address = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
    encoded = encode_address(address)
    assert encoded == "0x000000000000000000000000abcdef0123456789abcdef0123456789abcdef01"
    assert len(encoded) == 66

    # Prefix is optional
    assert encode_address(address[2:]) == encoded

    # Already encoded values pass through
    assert encode_address(encoded) == encoded
    assert encode_address(encoded.upper().replace("0X", "0x")) == encoded


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "0x",
        "0x1234",
        "0xZZcdef0123456789abcdef0123456789abcdef01",
        "0x" + "11" * 32,
        None,
    ],
)
def test_encode_bad_address(bad):
    with pytest.raises(InvalidAddress):
        encode_address(bad)


def test_decode_address():
    encoded = encode_address("0xabcdef0123456789abcdef0123456789abcdef01")
    decoded = decode_address(encoded)
    assert decoded.lower() == "0xabcdef0123456789abcdef0123456789abcdef01"
    # Checksummed
    assert decoded != decoded.lower()


def test_raw_amount():
    assert to_raw_amount(Decimal("50")) == 50_000_000
    assert to_raw_amount("0.000001") == 1
    assert to_raw_amount(3) == 3_000_000
    assert from_raw_amount(50_000_000) == Decimal(50)
    assert from_raw_amount(1) == Decimal("0.000001")

    with pytest.raises(ValueError):
        to_raw_amount(Decimal("0.0000001"))
