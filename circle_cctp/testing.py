"""Test helpers for running transfers without Circle.

- :py:class:`FakeCustodyClient` stands in for :py:class:`~circle_cctp.client.CircleWalletsClient`
  with in-memory wallets and transactions that confirm on demand
- :py:func:`craft_cctp_message` builds a CCTP V1 burn message like Iris returns
- :py:func:`make_mock_response` fakes a ``requests`` response for Iris polling

Example::

    from circle_cctp.saga import CrossChainTransfer
    from circle_cctp.retry import RetryPolicy
    from circle_cctp.testing import FakeCustodyClient

    client = FakeCustodyClient()
    client.states["tx-2"] = ["SENT", "FAILED"]
    transfer = CrossChainTransfer(client, transaction_policy=RetryPolicy(max_attempts=3, interval=0))
"""

import struct
from unittest.mock import Mock

from eth_typing import HexAddress

from circle_cctp.constants import TESTNET_TOKEN_MESSENGER
from circle_cctp.encoding import encode_address

#: CCTP V1 message version
CCTP_MESSAGE_VERSION = 0

#: CCTP V1 burn message body version
BURN_MESSAGE_VERSION = 0


def make_tx_hash(n: int) -> str:
    """Deterministic fake transaction hash."""
    return f"0x{n:064x}"


def craft_cctp_message(
    source_domain: int,
    destination_domain: int,
    nonce: int,
    mint_recipient: HexAddress | str,
    amount: int,
    burn_token: HexAddress | str,
) -> str:
    """Craft a CCTP V1 message.

    Message header (116 bytes):

    - ``uint32 version``
    - ``uint32 sourceDomain``
    - ``uint32 destinationDomain``
    - ``uint64 nonce``
    - ``bytes32 sender``, TokenMessenger on source
    - ``bytes32 recipient``, TokenMessenger on destination
    - ``bytes32 destinationCaller``, zero for anyone

    Burn message body (132 bytes):

    - ``uint32 version``
    - ``bytes32 burnToken``
    - ``bytes32 mintRecipient``
    - ``uint256 amount``
    - ``bytes32 messageSender``

    :param amount:
        Raw USDC amount

    :return:
        0x-prefixed hex, as Iris returns it
    """
    token_messenger_bytes32 = bytes.fromhex(encode_address(TESTNET_TOKEN_MESSENGER)[2:])

    body = struct.pack(">I", BURN_MESSAGE_VERSION)
    body += bytes.fromhex(encode_address(burn_token)[2:])
    body += bytes.fromhex(encode_address(mint_recipient)[2:])
    body += amount.to_bytes(32, byteorder="big")
    body += token_messenger_bytes32

    header = struct.pack(">III", CCTP_MESSAGE_VERSION, source_domain, destination_domain)
    header += struct.pack(">Q", nonce)
    header += token_messenger_bytes32
    header += token_messenger_bytes32
    header += b"\x00" * 32

    message = header + body
    assert len(message) == 248, f"Expected 248 bytes, got {len(message)}"
    return "0x" + message.hex()


def make_mock_response(status_code: int = 200, json_data: dict | None = None, text: str = "") -> Mock:
    """Fake :py:class:`requests.Response` with the attributes we read."""
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "OK" if response.ok else f"HTTP {status_code}"
    response.text = text
    response.content = text.encode() if json_data is None else b"{}"
    if json_data is None:
        response.json.side_effect = ValueError("Not JSON")
    else:
        response.json.return_value = json_data
    return response


class FakeCustodyClient:
    """In-memory custody API.

    Transactions are numbered ``tx-1``, ``tx-2``, ... in submission order and
    are ``CONFIRMED`` on the first check, unless :py:attr:`states` says otherwise.
    """

    def __init__(self, wallet_sets: dict[str, list[dict]] | None = None, balances: dict[str, list[dict]] | None = None):
        #: wallet set id -> wallets as the API returns them
        self.wallet_sets = wallet_sets or {}

        #: wallet id -> token balances as the API returns them
        self.balances = balances or {}

        #: Every contract execution we were asked to do
        self.submitted: list[dict] = []

        #: transaction id -> states returned by successive checks, the last one repeats
        self.states: dict[str, list[str]] = {}

        self.session = Mock()

    def list_wallet_sets(self) -> list[dict]:
        return [{"id": set_id, "name": f"Set {set_id}", "createDate": "2025-01-01T00:00:00Z"} for set_id in self.wallet_sets]

    def list_wallets(self, wallet_set_id=None, blockchain=None, page_size=50) -> list[dict]:
        return list(self.wallet_sets.get(wallet_set_id, []))

    def get_wallet_token_balances(self, wallet_id: str) -> list[dict]:
        return self.balances.get(wallet_id, [])

    def create_wallet_set(self, name: str) -> dict:
        set_id = f"set-{len(self.wallet_sets) + 1}"
        self.wallet_sets[set_id] = []
        return {"id": set_id, "name": name, "createDate": "2025-01-01T00:00:00Z"}

    def create_wallets(self, wallet_set_id: str, blockchains: list[str], count: int = 1) -> list[dict]:
        existing = self.wallet_sets.setdefault(wallet_set_id, [])
        created = [
            {
                "id": f"{wallet_set_id}-w{len(existing) + i}",
                "address": f"0x{len(existing) + i:040x}",
                "blockchain": blockchains[0],
                "state": "LIVE",
                "walletSetId": wallet_set_id,
            }
            for i in range(1, count + 1)
        ]
        existing.extend(created)
        return created

    def create_contract_execution_transaction(self, wallet_id, contract_address, abi_function_signature, abi_parameters, fee_level="MEDIUM") -> dict:
        tx_id = f"tx-{len(self.submitted) + 1}"
        self.submitted.append(
            {
                "id": tx_id,
                "wallet_id": wallet_id,
                "contract_address": contract_address,
                "abi_function_signature": abi_function_signature,
                "abi_parameters": abi_parameters,
                "fee_level": fee_level,
            }
        )
        return {"id": tx_id, "state": "INITIATED"}

    def get_transaction(self, transaction_id: str) -> dict:
        states = self.states.get(transaction_id) or ["CONFIRMED"]
        state = states.pop(0) if len(states) > 1 else states[0]
        data = {"id": transaction_id, "state": state}
        if state in ("CONFIRMED", "COMPLETE"):
            data["txHash"] = make_tx_hash(int(transaction_id.split("-")[1]))
        elif state == "FAILED":
            data["errorReason"] = "INSUFFICIENT_NATIVE_TOKEN"
        return data
