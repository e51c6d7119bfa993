"""Errors raised when talking to Circle's custody and attestation APIs."""


class CircleCCTPError(Exception):
    """Base class for all errors raised by this package."""


class RemoteError(CircleCCTPError):
    """Circle API request failed.

    Carries whatever Circle told us, so the operator can see the details.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: int | None = None,
        details: dict | str | None = None,
    ):
        super().__init__(message)
        #: HTTP status, ``None`` for network level failures
        self.status_code = status_code
        #: Circle's numeric error code from the response body, if any
        self.code = code
        #: Raw response payload
        self.details = details


class AuthError(RemoteError):
    """Circle rejected our API key or entity secret."""


class UnsupportedChain(CircleCCTPError, ValueError):
    """Blockchain code not known to CCTP."""


class InvalidAddress(CircleCCTPError, ValueError):
    """Not a well-formed hex address."""


class PollTimeout(CircleCCTPError):
    """Status polling ran out of attempts."""


class AttestationTimeout(PollTimeout):
    """Iris did not produce an attestation within the attempt budget."""


class PollCancelled(CircleCCTPError):
    """Polling was cancelled through its cancel token."""


class TransactionCreationFailed(CircleCCTPError):
    """Custody API did not return a transaction id."""


class TransactionFailed(CircleCCTPError):
    """Custody API reports the transaction ended in a failure state."""

    def __init__(self, message: str, transaction_id: str, state: str, error_reason: str | None = None):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.state = state
        self.error_reason = error_reason


class InvalidTransferIntent(CircleCCTPError, ValueError):
    """Transfer parameters do not make sense."""


class MissingAttestation(CircleCCTPError):
    """Mint attempted without an attestation for the same burn."""


class TransferFailed(CircleCCTPError):
    """A cross-chain transfer step failed.

    The transfer halts. Anything already on-chain stays there:
    if :py:attr:`burn_tx_hash` is set, the transfer can be finished later
    with :py:meth:`circle_cctp.saga.CrossChainTransfer.resume_from_burn`.
    """

    def __init__(self, message: str, step: str, last_state: str, burn_tx_hash: str | None = None, receipt=None):
        super().__init__(message)
        #: Which step failed: approve, burn, attest or mint
        self.step = step
        #: Last state reached before the failure
        self.last_state = last_state
        #: Burn transaction hash, if the burn already went through
        self.burn_tx_hash = burn_tx_hash
        #: :py:class:`circle_cctp.saga.TransferReceipt` with everything done so far
        self.receipt = receipt
