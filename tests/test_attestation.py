"""Iris attestation polling against a mocked session."""

from unittest.mock import Mock

import pytest
import requests

from circle_cctp.attestation import (
    decode_burn_amount,
    fetch_attestation,
    get_attestation_url,
    is_attestation_complete,
    parse_attestation_response,
)
from circle_cctp.constants import IRIS_API_SANDBOX_URL
from circle_cctp.exceptions import AttestationTimeout, PollCancelled, RemoteError
from circle_cctp.retry import CancelToken, RetryPolicy
from circle_cctp.testing import make_mock_response

BURN_TX_HASH = "0x" + "ef" * 32


def test_get_attestation_url():
    url = get_attestation_url(IRIS_API_SANDBOX_URL + "/", 0, BURN_TX_HASH)
    assert url == f"https://iris-api-sandbox.circle.com/v1/messages/0/{BURN_TX_HASH}"


def test_parse_attestation_response(burn_message, attestation_signature):
    assert parse_attestation_response({}) is None
    assert parse_attestation_response({"messages": []}) is None
    assert parse_attestation_response({"messages": [{"message": burn_message, "attestation": "PENDING"}]}) is None
    assert parse_attestation_response({"messages": [{"message": burn_message}]}) is None

    attestation = parse_attestation_response({"messages": [{"message": burn_message, "attestation": attestation_signature}]}, BURN_TX_HASH)
    assert attestation.message == burn_message
    assert attestation.attestation == attestation_signature
    assert attestation.burn_tx_hash == BURN_TX_HASH


def test_decode_burn_amount(burn_message):
    assert decode_burn_amount(burn_message) == 50_000_000
    assert decode_burn_amount("0x1234") is None
    assert decode_burn_amount("not hex") is None


def test_fetch_attestation(iris_session, fast_policy, burn_message, attestation_signature):
    observations = []

    attestation = fetch_attestation(
        source_domain=0,
        burn_tx_hash=BURN_TX_HASH[2:],
        policy=fast_policy,
        session=iris_session,
        progress=observations.append,
    )

    assert attestation.message == burn_message
    assert attestation.attestation == attestation_signature
    assert attestation.burn_tx_hash == BURN_TX_HASH
    assert [o.status for o in observations] == ["not found", "pending", "complete"]

    url = iris_session.get.call_args.args[0]
    assert url == f"{IRIS_API_SANDBOX_URL}/v1/messages/0/{BURN_TX_HASH}"


def test_fetch_attestation_retries_server_errors(fast_policy, burn_message, attestation_signature):
    session = Mock()
    session.get.side_effect = [
        make_mock_response(429, text="Slow down"),
        requests.ConnectionError("Connection reset"),
        make_mock_response(200, {"messages": [{"message": burn_message, "attestation": attestation_signature}]}),
    ]
    observations = []

    attestation = fetch_attestation(0, BURN_TX_HASH, fast_policy, session=session, progress=observations.append)
    assert attestation.attestation == attestation_signature
    assert "429" in observations[0].error
    assert "Connection reset" in observations[1].error


def test_fetch_attestation_client_error_is_fatal(fast_policy):
    session = Mock()
    session.get.return_value = make_mock_response(400, text="Bad request")

    with pytest.raises(RemoteError) as exc_info:
        fetch_attestation(0, BURN_TX_HASH, fast_policy, session=session)

    assert exc_info.value.status_code == 400
    assert session.get.call_count == 1


def test_fetch_attestation_timeout(fast_policy):
    session = Mock()
    session.get.return_value = make_mock_response(404, text="Not found")

    with pytest.raises(AttestationTimeout, match="after 3 attempts"):
        fetch_attestation(0, BURN_TX_HASH, fast_policy, session=session)

    assert session.get.call_count == 3


def test_fetch_attestation_keeps_cancel_token():
    token = CancelToken()
    token.cancel()
    session = Mock()

    with pytest.raises(PollCancelled):
        fetch_attestation(0, BURN_TX_HASH, RetryPolicy(max_attempts=3, interval=0, cancel_token=token), session=session)

    session.get.assert_not_called()


def test_is_attestation_complete(burn_message, attestation_signature):
    session = Mock()
    session.get.return_value = make_mock_response(200, {"messages": [{"message": burn_message, "attestation": attestation_signature}]})
    assert is_attestation_complete(0, BURN_TX_HASH, session=session)

    session.get.return_value = make_mock_response(404)
    assert not is_attestation_complete(0, BURN_TX_HASH, session=session)

    session.get.return_value = make_mock_response(503)
    assert not is_attestation_complete(0, BURN_TX_HASH, session=session)


@pytest.mark.parametrize("data", [["garbage"], {"messages": ["garbage"]}, {"messages": [None]}])
def test_parse_malformed_attestation_response(data):
    with pytest.raises(RemoteError, match="Unexpected Iris"):
        parse_attestation_response(data)
