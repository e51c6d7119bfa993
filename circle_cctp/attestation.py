"""Circle CCTP attestation service client.

Poll Circle's Iris API for burn attestations needed to complete
cross-chain USDC transfers.

After ``depositForBurn()`` is confirmed on the source chain, Circle's
attestation service observes the burn event and, after block finality,
signs it. This module polls for that signature.

Example::

    from circle_cctp.attestation import fetch_attestation
    from circle_cctp.constants import CCTP_DOMAIN_ETHEREUM, IRIS_API_SANDBOX_URL
    from circle_cctp.retry import RetryPolicy

    attestation = fetch_attestation(
        source_domain=CCTP_DOMAIN_ETHEREUM,
        burn_tx_hash="0x...",
        policy=RetryPolicy(),
        api_base_url=IRIS_API_SANDBOX_URL,
    )

    # Pass attestation.message and attestation.attestation
    # to receiveMessage() on the destination chain

Which HTTP responses are worth another attempt:

- 404: Iris has not indexed the burn yet
- 429 and 5xx: throttling or an outage on Circle's side
- Network errors

Any other 4xx means our request is wrong and polling will not fix it,
so we stop with :py:class:`~circle_cctp.exceptions.RemoteError`.
"""

import logging
from dataclasses import dataclass

import requests
from requests import Session

from circle_cctp.constants import IRIS_API_SANDBOX_URL
from circle_cctp.exceptions import AttestationTimeout, RemoteError
from circle_cctp.retry import PollProgress, ProgressCallback, RetryPolicy, poll_until
from circle_cctp.session import create_circle_session

logger = logging.getLogger(__name__)

#: HTTP 404 status code indicating the burn is not yet indexed
HTTP_NOT_FOUND = 404

#: HTTP 429 status code for throttling
HTTP_TOO_MANY_REQUESTS = 429

#: Iris puts this placeholder in the attestation field until it is signed
ATTESTATION_PENDING = "PENDING"

#: CCTP V1 message header length in bytes
_MESSAGE_HEADER_LENGTH = 116


class RetryableAttestationError(RemoteError):
    """Iris answered with an error that may go away if we wait."""


@dataclass(slots=True, frozen=True)
class Attestation:
    """Attestation data for a CCTP burn event.

    Contains the message and signature needed to call
    ``receiveMessage()`` on the destination chain's MessageTransmitter.
    The values are hex strings as the custody API takes ABI parameters as strings.
    """

    #: The CCTP message bytes emitted by the burn, 0x-prefixed hex
    message: str

    #: The signed attestation from Circle's Iris service, 0x-prefixed hex
    attestation: str

    #: Burn transaction this attestation belongs to
    burn_tx_hash: str | None = None


def decode_burn_amount(message: str) -> int | None:
    """Read the burnt amount from a CCTP V1 message.

    Used to show the operator how much a recovered transfer mints.
    The message is not validated.

    Message layout: 116 bytes header, then burn message body of
    ``uint32 version``, ``bytes32 burnToken``, ``bytes32 mintRecipient``, ``uint256 amount``, ...

    :return:
        Raw USDC amount, or ``None`` if the message is too short or not hex
    """
    try:
        data = bytes.fromhex(message.removeprefix("0x"))
    except ValueError:
        return None

    start = _MESSAGE_HEADER_LENGTH + 4 + 32 + 32
    if len(data) < start + 32:
        return None
    return int.from_bytes(data[start : start + 32], byteorder="big")


def get_attestation_url(api_base_url: str, source_domain: int, burn_tx_hash: str) -> str:
    return f"{api_base_url.rstrip('/')}/v1/messages/{source_domain}/{burn_tx_hash}"


def parse_attestation_response(data: dict, burn_tx_hash: str | None = None) -> Attestation | None:
    """Pick a finished attestation from an Iris response.

    :return:
        The attestation, or ``None`` if the message is not signed yet

    :raise RemoteError:
        If the response is not shaped like an Iris messages response
    """
    if not isinstance(data, dict):
        raise RemoteError("Unexpected Iris response", details=data)

    messages = data.get("messages") or []
    if not messages:
        return None

    msg = messages[0]
    if not isinstance(msg, dict):
        raise RemoteError("Unexpected Iris message entry", details=data)

    message = msg.get("message")
    attestation = msg.get("attestation")
    if not message or not attestation or attestation == ATTESTATION_PENDING:
        return None

    return Attestation(message=message, attestation=attestation, burn_tx_hash=burn_tx_hash)


def _query_attestation(session: Session, url: str, timeout: float) -> dict | None:
    """Do one Iris request.

    :return:
        Parsed JSON, or ``None`` if the message is not indexed yet

    :raise RetryableAttestationError:
        On throttling or server side errors

    :raise RemoteError:
        On errors we cannot recover from by waiting
    """
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RetryableAttestationError(f"Iris request failed: {e}") from e

    if response.status_code == HTTP_NOT_FOUND:
        logger.info("Message not found yet (404), waiting...")
        return None

    if response.status_code == HTTP_TOO_MANY_REQUESTS or response.status_code >= 500:
        raise RetryableAttestationError(
            f"Iris returned HTTP {response.status_code}: {response.reason}",
            status_code=response.status_code,
            details=response.text,
        )

    if not response.ok:
        raise RemoteError(
            f"Iris returned HTTP {response.status_code}: {response.reason}",
            status_code=response.status_code,
            details=response.text,
        )

    try:
        return response.json()
    except ValueError as e:
        raise RemoteError("Iris returned a non-JSON response", status_code=response.status_code, details=response.text) from e


def fetch_attestation(
    source_domain: int,
    burn_tx_hash: str,
    policy: RetryPolicy,
    api_base_url: str = IRIS_API_SANDBOX_URL,
    session: Session | None = None,
    progress: ProgressCallback | None = None,
    request_timeout: float = 30.0,
) -> Attestation:
    """Poll the Iris API until the burn attestation is ready.

    :param source_domain:
        CCTP domain id of the chain where USDC was burnt

    :param burn_tx_hash:
        Transaction hash of the ``depositForBurn()`` call

    :param policy:
        Attempt budget and interval. Only retryable Iris errors consume attempts,
        other errors abort immediately.

    :param api_base_url:
        Iris API base URL, sandbox for testnets

    :param session:
        HTTP session to use

    :param progress:
        Receives one observation per attempt

    :return:
        The first complete message and attestation pair

    :raise AttestationTimeout:
        If the attestation is not ready within the attempt budget

    :raise RemoteError:
        If Iris returns a non-retryable error
    """
    # Iris expects a 0x-prefixed transaction hash
    if not burn_tx_hash.startswith("0x"):
        burn_tx_hash = f"0x{burn_tx_hash}"

    session = session or create_circle_session()
    url = get_attestation_url(api_base_url, source_domain, burn_tx_hash)

    logger.info("Polling attestation: domain=%s, tx=%s, url=%s", source_domain, burn_tx_hash, url)

    attestation_policy = RetryPolicy(
        max_attempts=policy.max_attempts,
        interval=policy.interval,
        wait_before_first_attempt=policy.wait_before_first_attempt,
        retryable_exceptions=(RetryableAttestationError,),
        fatal_exceptions=(),
        cancel_token=policy.cancel_token,
    )

    def check(observation: PollProgress) -> Attestation | None:
        data = _query_attestation(session, url, request_timeout)
        if data is None:
            observation.status = "not found"
            return None

        attestation = parse_attestation_response(data, burn_tx_hash)
        if attestation is None:
            observation.status = "pending"
            logger.info("Message found but attestation not ready yet")
            return None

        observation.status = "complete"
        return attestation

    attestation = poll_until(
        check,
        attestation_policy,
        label="Attestation",
        timeout_error=AttestationTimeout,
        progress=progress,
    )
    logger.info("Attestation received for burn %s", burn_tx_hash)
    return attestation


def is_attestation_complete(
    source_domain: int,
    burn_tx_hash: str,
    api_base_url: str = IRIS_API_SANDBOX_URL,
    session: Session | None = None,
) -> bool:
    """One-shot check if the attestation is ready.

    Errors are logged and reported as not ready.
    """
    if not burn_tx_hash.startswith("0x"):
        burn_tx_hash = f"0x{burn_tx_hash}"

    session = session or create_circle_session()
    url = get_attestation_url(api_base_url, source_domain, burn_tx_hash)

    try:
        data = _query_attestation(session, url, timeout=30.0)
    except RemoteError:
        logger.warning("Failed to check attestation status for tx %s", burn_tx_hash, exc_info=True)
        return False

    return data is not None and parse_attestation_response(data) is not None
