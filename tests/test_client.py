"""Custody API client against a mocked HTTP session."""

import base64
from unittest.mock import Mock

import pytest
import requests
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from circle_cctp.client import CircleWalletsClient
from circle_cctp.exceptions import AuthError, RemoteError
from circle_cctp.session import LoggingRetry, create_circle_session
from circle_cctp.testing import make_mock_response

ENTITY_SECRET = "11" * 32


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def public_key_pem(rsa_key) -> str:
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def session() -> Mock:
    return Mock()


@pytest.fixture
def client(session) -> CircleWalletsClient:
    return CircleWalletsClient(api_key="TEST_API_KEY:abc:def", entity_secret=ENTITY_SECRET, base_url="https://api.example.com/", session=session)


def test_list_wallet_sets(client, session):
    session.request.return_value = make_mock_response(200, {"data": {"walletSets": [{"id": "set-1", "name": "Main"}]}})

    wallet_sets = client.list_wallet_sets()
    assert wallet_sets == [{"id": "set-1", "name": "Main"}]

    args, kwargs = session.request.call_args
    assert args == ("GET", "https://api.example.com/v1/w3s/walletSets")
    assert kwargs["headers"]["Authorization"] == "Bearer TEST_API_KEY:abc:def"
    assert kwargs["timeout"] == 30.0


def test_list_wallets_params(client, session):
    session.request.return_value = make_mock_response(200, {"data": {"wallets": []}})
    assert client.list_wallets(wallet_set_id="set-1") == []
    assert session.request.call_args.kwargs["params"] == {"pageSize": 50, "walletSetId": "set-1"}


def test_auth_error(client, session):
    session.request.return_value = make_mock_response(401, {"code": 401, "message": "Malformed authorization."})

    with pytest.raises(AuthError) as exc_info:
        client.list_wallet_sets()

    assert exc_info.value.status_code == 401
    assert "Malformed authorization" in str(exc_info.value)


def test_remote_error_carries_code(client, session):
    session.request.return_value = make_mock_response(400, {"code": 156013, "message": "Entity secret has not been set yet."})

    with pytest.raises(RemoteError) as exc_info:
        client.get_transaction("tx-1")

    assert not isinstance(exc_info.value, AuthError)
    assert exc_info.value.code == 156013
    assert exc_info.value.details["message"] == "Entity secret has not been set yet."


def test_network_error(client, session):
    session.request.side_effect = requests.ConnectionError("Connection refused")

    with pytest.raises(RemoteError, match="Connection refused"):
        client.get_wallet_token_balances("w-1")


def test_write_request_encrypts_entity_secret(client, session, rsa_key, public_key_pem):
    session.request.side_effect = [
        make_mock_response(200, {"data": {"publicKey": public_key_pem}}),
        make_mock_response(200, {"data": {"id": "tx-1", "state": "INITIATED"}}),
        make_mock_response(200, {"data": {"id": "tx-2", "state": "INITIATED"}}),
    ]

    params = ["0x9f3B8679c73C2Fef8b59B4f3444d4e156fb70AA5", "50000000"]
    first = client.create_contract_execution_transaction("w-1", "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238", "approve(address,uint256)", params)
    second = client.create_contract_execution_transaction("w-1", "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238", "approve(address,uint256)", params)
    assert first["id"] == "tx-1"
    assert second["id"] == "tx-2"

    # Public key is fetched once
    assert session.request.call_count == 3

    first_body = session.request.call_args_list[1].kwargs["json"]
    second_body = session.request.call_args_list[2].kwargs["json"]
    assert first_body["walletId"] == "w-1"
    assert first_body["abiFunctionSignature"] == "approve(address,uint256)"
    assert first_body["abiParameters"] == params
    assert first_body["feeLevel"] == "MEDIUM"

    # Fresh idempotency key and ciphertext for every request
    assert first_body["idempotencyKey"] != second_body["idempotencyKey"]
    assert first_body["entitySecretCiphertext"] != second_body["entitySecretCiphertext"]

    plain = rsa_key.decrypt(
        base64.b64decode(first_body["entitySecretCiphertext"]),
        padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None),
    )
    assert plain == bytes.fromhex(ENTITY_SECRET)


def test_write_without_entity_secret(session):
    client = CircleWalletsClient(api_key="key", session=session)
    session.request.return_value = make_mock_response(200, {"data": {"walletSet": {"id": "set-9", "name": "New"}}})

    assert client.create_wallet_set("New") == {"id": "set-9", "name": "New"}
    body = session.request.call_args.kwargs["json"]
    assert "entitySecretCiphertext" not in body
    assert body["name"] == "New"


def test_create_circle_session():
    session = create_circle_session(retries=2)
    adapter = session.get_adapter("https://iris-api-sandbox.circle.com")
    assert isinstance(adapter.max_retries, LoggingRetry)
    assert adapter.max_retries.total == 2
    assert 429 in adapter.max_retries.status_forcelist

    # urllib3 clones retry policies, the clone must keep logging
    clone = adapter.max_retries.new(total=1)
    assert isinstance(clone, LoggingRetry)
    assert clone.logger is adapter.max_retries.logger


def test_list_wallets_follows_pages(client, session):
    first_page = [{"id": f"w-{i}"} for i in range(3)]
    session.request.side_effect = [
        make_mock_response(200, {"data": {"wallets": first_page}}),
        make_mock_response(200, {"data": {"wallets": [{"id": "w-3"}]}}),
    ]

    wallets = client.list_wallets(wallet_set_id="set-1", page_size=3)

    assert [w["id"] for w in wallets] == ["w-0", "w-1", "w-2", "w-3"]
    first, second = session.request.call_args_list
    assert first.kwargs["params"] == {"pageSize": 3, "walletSetId": "set-1"}
    assert second.kwargs["params"] == {"pageSize": 3, "walletSetId": "set-1", "pageAfter": "w-2"}


def test_list_wallet_sets_follows_pages(client, session):
    session.request.side_effect = [
        make_mock_response(200, {"data": {"walletSets": [{"id": "set-1"}, {"id": "set-2"}]}}),
        make_mock_response(200, {"data": {"walletSets": []}}),
    ]

    assert [s["id"] for s in client.list_wallet_sets(page_size=2)] == ["set-1", "set-2"]
    assert session.request.call_args.kwargs["params"] == {"pageSize": 2, "pageAfter": "set-2"}
