"""Submit contract calls through the custody API and wait for them to confirm.

Circle signs and broadcasts the transaction asynchronously. We get back a
transaction id right away and then poll it until Circle reports the
transaction as mined, failed, or we run out of patience.
"""

import enum
import logging
from dataclasses import dataclass

from circle_cctp.client import CircleWalletsClient
from circle_cctp.constants import DEFAULT_FEE_LEVEL
from circle_cctp.exceptions import TransactionCreationFailed, TransactionFailed
from circle_cctp.retry import PollProgress, ProgressCallback, RetryPolicy, poll_until

logger = logging.getLogger(__name__)


class TransactionState(str, enum.Enum):
    """Custody API transaction states."""

    initiated = "INITIATED"
    queued = "QUEUED"
    sent = "SENT"
    stuck = "STUCK"
    confirmed = "CONFIRMED"
    complete = "COMPLETE"
    cleared = "CLEARED"
    failed = "FAILED"
    cancelled = "CANCELLED"
    denied = "DENIED"


#: The transaction is on-chain
SUCCESS_STATES = {TransactionState.confirmed.value, TransactionState.complete.value}

#: The transaction will never make it on-chain
FAILURE_STATES = {
    TransactionState.failed.value,
    TransactionState.cancelled.value,
    TransactionState.denied.value,
}


@dataclass(slots=True)
class TransactionRecord:
    """One on-chain operation submitted through the custody API."""

    id: str

    state: str | None = None

    #: On-chain transaction hash, known once broadcast
    tx_hash: str | None = None

    #: Why Circle failed the transaction, if it did
    error_reason: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "TransactionRecord":
        return cls(
            id=data["id"],
            state=data.get("state"),
            tx_hash=data.get("txHash"),
            error_reason=data.get("errorReason"),
        )

    def is_success(self) -> bool:
        return self.state in SUCCESS_STATES

    def is_failure(self) -> bool:
        return self.state in FAILURE_STATES


def submit_contract_execution(
    client: CircleWalletsClient,
    wallet_id: str,
    contract_address: str,
    abi_function_signature: str,
    abi_parameters: list[str],
    fee_level: str = DEFAULT_FEE_LEVEL,
) -> TransactionRecord:
    """Create a contract execution transaction.

    :raise TransactionCreationFailed:
        If Circle accepted the request but gave no transaction id
    """
    logger.info(
        "Submitting %s on %s from wallet %s, params %s",
        abi_function_signature,
        contract_address,
        wallet_id,
        abi_parameters,
    )

    data = client.create_contract_execution_transaction(
        wallet_id=wallet_id,
        contract_address=contract_address,
        abi_function_signature=abi_function_signature,
        abi_parameters=abi_parameters,
        fee_level=fee_level,
    )

    if not data.get("id"):
        raise TransactionCreationFailed(f"Failed to create {abi_function_signature} transaction, response: {data}")

    record = TransactionRecord.from_api(data)
    logger.info("Transaction created: %s, state %s", record.id, record.state)
    return record


def fetch_transaction(client: CircleWalletsClient, transaction_id: str) -> TransactionRecord:
    data = client.get_transaction(transaction_id)
    return TransactionRecord.from_api({"id": transaction_id, **data})


def wait_for_transaction(
    client: CircleWalletsClient,
    transaction_id: str,
    policy: RetryPolicy,
    label: str = "transaction",
    progress: ProgressCallback | None = None,
) -> str:
    """Poll a custody API transaction until it is confirmed.

    :param transaction_id:
        Custody API transaction id, not the on-chain hash

    :param policy:
        Attempt budget and interval

    :param label:
        Human readable step name, e.g. ``Approval``

    :return:
        On-chain transaction hash

    :raise TransactionFailed:
        Circle reports a failure state

    :raise PollTimeout:
        Not confirmed within the attempt budget
    """

    def check(observation: PollProgress) -> str | None:
        record = fetch_transaction(client, transaction_id)
        observation.status = record.state

        if record.is_failure():
            raise TransactionFailed(
                f"{label} transaction {transaction_id} ended in state {record.state}: {record.error_reason}",
                transaction_id=transaction_id,
                state=record.state,
                error_reason=record.error_reason,
            )

        if record.is_success():
            if not record.tx_hash:
                logger.warning("%s transaction %s is %s but has no tx hash yet", label, transaction_id, record.state)
                return None
            return record.tx_hash

        return None

    tx_hash = poll_until(check, policy, label=label, progress=progress)
    logger.info("%s transaction %s confirmed, tx hash %s", label, transaction_id, tx_hash)
    return tx_hash
