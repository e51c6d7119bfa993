"""Cross-chain USDC transfer: approve, burn, attest, mint.

A transfer moves through these states, strictly in order::

    IDLE -> APPROVED -> BURNED -> ATTESTED -> MINTED

Any failure moves it to ``FAILED`` and stops. Nothing is rolled back:
approvals and burns already on-chain stay there. Once the burn is confirmed,
the transfer can be finished later with :py:meth:`CrossChainTransfer.resume_from_burn`,
given the burn transaction hash. Transfer state is not stored anywhere,
so the operator needs to keep the burn hash, which is logged and carried in
:py:class:`~circle_cctp.exceptions.TransferFailed`.

Example::

    from circle_cctp.saga import CrossChainTransfer, TransferIntent

    transfer = CrossChainTransfer(client)
    receipt = transfer.run(TransferIntent(source_wallet, destination_wallet, Decimal("50")))
    print(receipt.get_mint_explorer_url())
"""

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from requests import Session

from circle_cctp.attestation import Attestation, decode_burn_amount, fetch_attestation
from circle_cctp.client import CircleWalletsClient
from circle_cctp.constants import DEFAULT_FEE_LEVEL, IRIS_API_BASE_URL, IRIS_API_SANDBOX_URL
from circle_cctp.encoding import (
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
from circle_cctp.exceptions import InvalidTransferIntent, MissingAttestation, TransferFailed
from circle_cctp.retry import ProgressCallback, RetryPolicy
from circle_cctp.transactions import TransactionRecord, submit_contract_execution, wait_for_transaction
from circle_cctp.wallets import Wallet

logger = logging.getLogger(__name__)

#: ERC-20 approval of the TokenMessenger
APPROVE_SIGNATURE = "approve(address,uint256)"

#: CCTP V1 TokenMessenger burn
DEPOSIT_FOR_BURN_SIGNATURE = "depositForBurn(uint256,uint32,bytes32,address)"

#: CCTP V1 MessageTransmitter mint
RECEIVE_MESSAGE_SIGNATURE = "receiveMessage(bytes,bytes)"


class TransferState(enum.Enum):
    idle = "IDLE"
    approved = "APPROVED"
    burned = "BURNED"
    attested = "ATTESTED"
    minted = "MINTED"
    failed = "FAILED"


def normalise_tx_hash(tx_hash: str) -> str:
    tx_hash = tx_hash.strip()
    if not tx_hash.startswith("0x"):
        tx_hash = f"0x{tx_hash}"
    return tx_hash.lower()


@dataclass(slots=True, frozen=True)
class TransferIntent:
    """What the operator asked for.

    Does not change once the transfer starts.
    """

    source_wallet: Wallet
    destination_wallet: Wallet

    #: Human USDC amount, e.g. ``Decimal("50")``
    amount: Decimal

    @property
    def raw_amount(self) -> int:
        return to_raw_amount(self.amount)

    def validate(self):
        """Check the transfer is possible before touching the chain.

        :raise InvalidTransferIntent:
            With a human readable reason
        """
        if not self.amount.is_finite() or self.amount <= 0:
            raise InvalidTransferIntent(f"Amount must be positive, got {self.amount}")

        try:
            to_raw_amount(self.amount)
        except ValueError as e:
            raise InvalidTransferIntent(str(e)) from e

        source = get_network(self.source_wallet.blockchain)
        destination = get_network(self.destination_wallet.blockchain)

        if source.domain == destination.domain:
            raise InvalidTransferIntent(f"Source {source.name} and destination {destination.name} are on the same CCTP domain")

        if source.testnet != destination.testnet:
            raise InvalidTransferIntent(f"Cannot transfer between testnet and mainnet: {source.name} -> {destination.name}")


@dataclass(slots=True)
class TransferReceipt:
    """Everything that happened during one transfer run."""

    source_blockchain: str
    destination_blockchain: str

    state: TransferState = TransferState.idle

    #: Human USDC amount. For recovered transfers, read from the attested message.
    amount: Decimal | None = None

    approval: TransactionRecord | None = None
    burn: TransactionRecord | None = None
    burn_tx_hash: str | None = None
    attestation: Attestation | None = None
    mint: TransactionRecord | None = None
    mint_tx_hash: str | None = None

    #: This run started from an existing burn
    recovered: bool = False

    failure: Exception | None = field(default=None, repr=False)

    def get_burn_explorer_url(self) -> str | None:
        if self.burn_tx_hash:
            return explorer_url_for(self.source_blockchain, self.burn_tx_hash)
        return None

    def get_mint_explorer_url(self) -> str | None:
        if self.mint_tx_hash:
            return explorer_url_for(self.destination_blockchain, self.mint_tx_hash)
        return None


#: Called after every state transition
TransitionCallback = Callable[[TransferState, TransferReceipt], None]


class CrossChainTransfer:
    """Run CCTP transfers through the custody API.

    The client and polling policies are given explicitly,
    so tests can run the whole flow against fakes without sleeping.
    """

    def __init__(
        self,
        client: CircleWalletsClient,
        transaction_policy: RetryPolicy | None = None,
        attestation_policy: RetryPolicy | None = None,
        attestation_api_url: str | None = None,
        session: Session | None = None,
        progress: ProgressCallback | None = None,
        on_transition: TransitionCallback | None = None,
        fee_level: str = DEFAULT_FEE_LEVEL,
    ):
        """
        :param client:
            Custody API client

        :param transaction_policy:
            How to poll custody API transactions

        :param attestation_policy:
            How to poll Iris

        :param attestation_api_url:
            Iris base URL. If not given, sandbox is used for testnets and production for mainnets.

        :param session:
            HTTP session for Iris requests

        :param progress:
            Receives polling observations

        :param on_transition:
            Receives every state change

        :param fee_level:
            Custody API fee level for all transactions
        """
        self.client = client
        self.transaction_policy = transaction_policy or RetryPolicy()
        self.attestation_policy = attestation_policy or RetryPolicy()
        self.attestation_api_url = attestation_api_url
        self.session = session
        self.progress = progress
        self.on_transition = on_transition
        self.fee_level = fee_level

    def run(self, intent: TransferIntent) -> TransferReceipt:
        """Perform the whole transfer.

        :return:
            Receipt in ``MINTED`` state

        :raise InvalidTransferIntent:
            Nothing was submitted

        :raise TransferFailed:
            A step failed, see its ``receipt`` and ``burn_tx_hash``
        """
        intent.validate()

        receipt = TransferReceipt(
            source_blockchain=intent.source_wallet.blockchain,
            destination_blockchain=intent.destination_wallet.blockchain,
            amount=intent.amount,
        )

        logger.info(
            "Starting transfer of %s USDC from %s (%s) to %s (%s)",
            intent.amount,
            intent.source_wallet.address,
            intent.source_wallet.blockchain,
            intent.destination_wallet.address,
            intent.destination_wallet.blockchain,
        )

        self._run_step(receipt, "approve", lambda: self._approve(intent, receipt))
        self._run_step(receipt, "burn", lambda: self._burn(intent, receipt))
        self._run_step(receipt, "attest", lambda: self._attest(receipt))
        self._run_step(receipt, "mint", lambda: self._mint(intent.destination_wallet, receipt))
        return receipt

    def resume_from_burn(
        self,
        burn_tx_hash: str,
        source_blockchain: str,
        destination_wallet: Wallet,
    ) -> TransferReceipt:
        """Finish a transfer whose burn is already on-chain.

        Skips approval and burn, starts from fetching the attestation.

        :param burn_tx_hash:
            Hash of the confirmed ``depositForBurn()`` transaction

        :param source_blockchain:
            Custody API blockchain code where the burn happened

        :param destination_wallet:
            Wallet that submits the mint. Must be the burn's mint recipient.
        """
        if not burn_tx_hash or not burn_tx_hash.strip():
            raise InvalidTransferIntent("Burn transaction hash is required for recovery")

        source = get_network(source_blockchain)
        destination = get_network(destination_wallet.blockchain)
        if source.domain == destination.domain:
            raise InvalidTransferIntent(f"Destination wallet is on the source domain {source.name}")
        if source.testnet != destination.testnet:
            raise InvalidTransferIntent(f"Cannot recover between testnet and mainnet: {source.name} -> {destination.name}")

        receipt = TransferReceipt(
            source_blockchain=source_blockchain,
            destination_blockchain=destination_wallet.blockchain,
            burn_tx_hash=normalise_tx_hash(burn_tx_hash),
            recovered=True,
        )

        logger.info("Recovering transfer from burn %s on %s to %s", receipt.burn_tx_hash, source_blockchain, destination_wallet.address)

        self._transition(receipt, TransferState.burned)
        self._run_step(receipt, "attest", lambda: self._attest(receipt))

        raw_amount = decode_burn_amount(receipt.attestation.message)
        if raw_amount is not None:
            receipt.amount = from_raw_amount(raw_amount)

        self._run_step(receipt, "mint", lambda: self._mint(destination_wallet, receipt))
        return receipt

    def _transition(self, receipt: TransferReceipt, state: TransferState):
        logger.info("Transfer state %s -> %s", receipt.state.value, state.value)
        receipt.state = state
        if self.on_transition is not None:
            self.on_transition(state, receipt)

    def _run_step(self, receipt: TransferReceipt, step: str, func: Callable[[], None]):
        """Run a step, moving the transfer to ``FAILED`` if it raises.

        Whatever the step raises is wrapped, so the caller always gets the burn hash.
        """
        last_state = receipt.state
        try:
            func()
        except Exception as e:
            receipt.failure = e
            self._transition(receipt, TransferState.failed)
            if receipt.burn_tx_hash:
                logger.error("Transfer failed at %s: %s. Burn %s can be recovered.", step, e, receipt.burn_tx_hash)
            else:
                logger.error("Transfer failed at %s: %s", step, e)
            raise TransferFailed(
                f"Transfer failed at {step} step: {e}",
                step=step,
                last_state=last_state.value,
                burn_tx_hash=receipt.burn_tx_hash,
                receipt=receipt,
            ) from e

    def _submit(self, wallet_id: str, contract: str, signature: str, params: list[str]) -> TransactionRecord:
        return submit_contract_execution(
            self.client,
            wallet_id=wallet_id,
            contract_address=contract,
            abi_function_signature=signature,
            abi_parameters=params,
            fee_level=self.fee_level,
        )

    def _wait(self, record: TransactionRecord, label: str) -> str:
        record.tx_hash = wait_for_transaction(self.client, record.id, self.transaction_policy, label=label, progress=self.progress)
        return record.tx_hash

    def _approve(self, intent: TransferIntent, receipt: TransferReceipt):
        assert receipt.state == TransferState.idle
        source = intent.source_wallet.blockchain
        receipt.approval = self._submit(
            intent.source_wallet.id,
            usdc_contract_for(source),
            APPROVE_SIGNATURE,
            [token_messenger_for(source), str(intent.raw_amount)],
        )
        self._wait(receipt.approval, "Approval")
        self._transition(receipt, TransferState.approved)

    def _burn(self, intent: TransferIntent, receipt: TransferReceipt):
        assert receipt.state == TransferState.approved
        source = intent.source_wallet.blockchain
        destination = intent.destination_wallet.blockchain
        receipt.burn = self._submit(
            intent.source_wallet.id,
            token_messenger_for(source),
            DEPOSIT_FOR_BURN_SIGNATURE,
            [
                str(intent.raw_amount),
                str(domain_id_for(destination)),
                encode_address(intent.destination_wallet.address),
                usdc_contract_for(source),
            ],
        )
        tx_hash = self._wait(receipt.burn, "Burn")
        receipt.burn_tx_hash = normalise_tx_hash(tx_hash)
        logger.info("Burn confirmed: %s. Keep this hash to recover the transfer if it fails later.", receipt.burn_tx_hash)
        self._transition(receipt, TransferState.burned)

    def _get_attestation_api_url(self, source_blockchain: str) -> str:
        if self.attestation_api_url:
            return self.attestation_api_url
        return IRIS_API_SANDBOX_URL if get_network(source_blockchain).testnet else IRIS_API_BASE_URL

    def _attest(self, receipt: TransferReceipt):
        assert receipt.state == TransferState.burned
        assert receipt.burn_tx_hash, "Cannot fetch attestation without a burn"
        receipt.attestation = fetch_attestation(
            source_domain=domain_id_for(receipt.source_blockchain),
            burn_tx_hash=receipt.burn_tx_hash,
            policy=self.attestation_policy,
            api_base_url=self._get_attestation_api_url(receipt.source_blockchain),
            session=self.session,
            progress=self.progress,
        )
        self._transition(receipt, TransferState.attested)

    def _mint(self, destination_wallet: Wallet, receipt: TransferReceipt):
        attestation = receipt.attestation
        if receipt.state != TransferState.attested or attestation is None:
            raise MissingAttestation(f"Refusing to mint without an attestation, transfer is in state {receipt.state.value}")
        if normalise_tx_hash(attestation.burn_tx_hash or "") != receipt.burn_tx_hash:
            raise MissingAttestation(f"Attestation is for burn {attestation.burn_tx_hash}, not {receipt.burn_tx_hash}")

        receipt.mint = self._submit(
            destination_wallet.id,
            message_transmitter_for(destination_wallet.blockchain),
            RECEIVE_MESSAGE_SIGNATURE,
            [attestation.message, attestation.attestation],
        )
        receipt.mint_tx_hash = self._wait(receipt.mint, "Mint")
        self._transition(receipt, TransferState.minted)
        logger.info("Transfer complete, %s USDC minted on %s, tx %s", receipt.amount, destination_wallet.blockchain, receipt.mint_tx_hash)
