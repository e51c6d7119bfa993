"""Circle developer-controlled wallets API client.

A thin wrapper over the W3S REST endpoints we need for CCTP transfers.
Responses are returned as the JSON ``data`` payload without further
interpretation; :py:mod:`circle_cctp.wallets` and
:py:mod:`circle_cctp.transactions` pick the fields they care about.

Circle holds the keys and signs the transactions. Every write request
must carry:

- An ``idempotencyKey`` (UUID) so Circle can drop duplicates
- A fresh ``entitySecretCiphertext``, the entity secret encrypted with
  the entity's RSA public key. Circle rejects reused ciphertexts.

Example::

    from circle_cctp.client import CircleWalletsClient

    client = CircleWalletsClient(api_key="TEST_API_KEY:...", entity_secret="...")
    for wallet_set in client.list_wallet_sets():
        print(wallet_set["id"], wallet_set.get("name"))

- `API reference <https://developers.circle.com/api-reference/w3s/developer-controlled-wallets>`__
"""

import logging
import uuid
from typing import Any

import requests
from requests import Session

from circle_cctp.constants import CIRCLE_API_BASE_URL, DEFAULT_FEE_LEVEL
from circle_cctp.entity_secret import encrypt_entity_secret
from circle_cctp.exceptions import AuthError, RemoteError
from circle_cctp.session import create_circle_session

logger = logging.getLogger(__name__)

#: HTTP statuses Circle uses for bad API keys or entity secrets
AUTH_ERROR_STATUSES = {401, 403}


class CircleWalletsClient:
    """Circle developer-controlled wallets API client.

    Construct one per run and pass it to everything that needs the custody API.
    Credentials are not checked up front; a bad API key surfaces as
    :py:class:`~circle_cctp.exceptions.AuthError` on the first call.
    """

    def __init__(
        self,
        api_key: str,
        entity_secret: str | None = None,
        base_url: str = CIRCLE_API_BASE_URL,
        session: Session | None = None,
        timeout: float = 30.0,
    ):
        """
        :param api_key:
            Circle API key, e.g. ``TEST_API_KEY:...``

        :param entity_secret:
            32-byte entity secret as hex. Needed for write operations only.

        :param base_url:
            Circle API base URL

        :param session:
            Use a custom HTTP session. Defaults to :py:func:`~circle_cctp.session.create_circle_session`.

        :param timeout:
            HTTP request timeout in seconds
        """
        self.api_key = api_key
        self.entity_secret = entity_secret
        self.base_url = base_url.rstrip("/")
        self.session = session or create_circle_session()
        self.timeout = timeout
        self._entity_public_key: str | None = None

    def __repr__(self):
        return f"<CircleWalletsClient {self.base_url}>"

    def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict[str, Any]:
        """Perform a request and unwrap the ``data`` payload.

        :raise AuthError:
            Circle rejected the credentials

        :raise RemoteError:
            Any other failure
        """
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

        logger.debug("%s %s params=%s", method, path, params)

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            try:
                details = response.json()
            except ValueError:
                details = response.text

            if isinstance(details, dict):
                code = details.get("code")
                message = details.get("message") or response.reason
            else:
                code = None
                message = response.reason

            error_class = AuthError if response.status_code in AUTH_ERROR_STATUSES else RemoteError
            raise error_class(
                f"{method} {path} failed with HTTP {response.status_code}: {message}",
                status_code=response.status_code,
                code=code,
                details=details,
            )

        if not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteError(f"{method} {path} returned non-JSON response", status_code=response.status_code, details=response.text) from e

        return payload.get("data") or {}

    def get_entity_public_key(self) -> str:
        """Fetch the RSA public key used to encrypt the entity secret.

        Cached for the lifetime of the client.

        :return:
            PEM encoded public key
        """
        if self._entity_public_key is None:
            data = self._request("GET", "/v1/w3s/config/entity/publicKey")
            self._entity_public_key = data.get("publicKey")
            if not self._entity_public_key:
                raise RemoteError("Circle did not return an entity public key", details=data)
        return self._entity_public_key

    def create_entity_secret_ciphertext(self, entity_secret: str | None = None) -> str | None:
        """Encrypt the entity secret for one write request.

        :return:
            Base64 ciphertext, or ``None`` if we have no entity secret
            and let Circle reject the request
        """
        entity_secret = entity_secret or self.entity_secret
        if not entity_secret:
            return None
        return encrypt_entity_secret(entity_secret, self.get_entity_public_key())

    def _write_payload(self, **fields) -> dict[str, Any]:
        payload = {"idempotencyKey": str(uuid.uuid4())}
        ciphertext = self.create_entity_secret_ciphertext()
        if ciphertext:
            payload["entitySecretCiphertext"] = ciphertext
        payload.update(fields)
        return payload

    def register_entity_secret_ciphertext(self, entity_secret: str) -> dict[str, Any]:
        """Register an entity secret with Circle.

        This can be done only once per entity.

        :return:
            Response data, containing ``recoveryFile`` when Circle gives one
        """
        ciphertext = self.create_entity_secret_ciphertext(entity_secret)
        return self._request("POST", "/v1/w3s/config/entity/entitySecret", json={"entitySecretCiphertext": ciphertext})

    def _paginate(self, path: str, key: str, params: dict, page_size: int) -> list[dict]:
        """Read all pages of a list endpoint.

        Circle pages with a ``pageAfter`` cursor, the id of the last item seen.
        A page shorter than ``page_size`` is the last one.
        """
        params = {"pageSize": page_size, **params}
        items = []
        while True:
            page = self._request("GET", path, params=params).get(key) or []
            items += page
            if len(page) < page_size:
                return items
            logger.debug("%s: full page of %d, fetching more", path, len(page))
            params = {**params, "pageAfter": page[-1]["id"]}

    def list_wallet_sets(self, page_size: int = 50) -> list[dict]:
        return self._paginate("/v1/w3s/walletSets", "walletSets", {}, page_size)

    def create_wallet_set(self, name: str) -> dict:
        data = self._request("POST", "/v1/w3s/developer/walletSets", json=self._write_payload(name=name))
        return data.get("walletSet") or {}

    def list_wallets(self, wallet_set_id: str | None = None, blockchain: str | None = None, page_size: int = 50) -> list[dict]:
        """List all wallets, optionally within one wallet set."""
        params = {}
        if wallet_set_id:
            params["walletSetId"] = wallet_set_id
        if blockchain:
            params["blockchain"] = blockchain
        return self._paginate("/v1/w3s/wallets", "wallets", params, page_size)

    def create_wallets(self, wallet_set_id: str, blockchains: list[str], count: int = 1) -> list[dict]:
        data = self._request(
            "POST",
            "/v1/w3s/developer/wallets",
            json=self._write_payload(
                walletSetId=wallet_set_id,
                blockchains=blockchains,
                count=count,
            ),
        )
        return data.get("wallets") or []

    def get_wallet_token_balances(self, wallet_id: str) -> list[dict]:
        data = self._request("GET", f"/v1/w3s/wallets/{wallet_id}/balances")
        return data.get("tokenBalances") or []

    def create_contract_execution_transaction(
        self,
        wallet_id: str,
        contract_address: str,
        abi_function_signature: str,
        abi_parameters: list[str],
        fee_level: str = DEFAULT_FEE_LEVEL,
    ) -> dict[str, Any]:
        """Ask Circle to sign and broadcast a smart contract call.

        :param wallet_id:
            Custody API wallet id of the sender

        :param contract_address:
            Contract to call

        :param abi_function_signature:
            E.g. ``approve(address,uint256)``

        :param abi_parameters:
            Function arguments as strings

        :param fee_level:
            ``LOW``, ``MEDIUM`` or ``HIGH``

        :return:
            Response data with transaction ``id`` and ``state``
        """
        return self._request(
            "POST",
            "/v1/w3s/developer/transactions/contractExecution",
            json=self._write_payload(
                walletId=wallet_id,
                contractAddress=contract_address,
                abiFunctionSignature=abi_function_signature,
                abiParameters=abi_parameters,
                feeLevel=fee_level,
            ),
        )

    def get_transaction(self, transaction_id: str) -> dict[str, Any]:
        data = self._request("GET", f"/v1/w3s/transactions/{transaction_id}")
        return data.get("transaction") or {}
