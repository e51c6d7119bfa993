"""Wallet and balance lookups on the custody API.

Circle groups wallets into wallet sets. To offer the operator a list of
wallets to transfer between, we walk all sets and flatten their wallets
into one list, remembering which set each wallet came from.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from circle_cctp.client import CircleWalletsClient
from circle_cctp.constants import MAX_WALLETS_PER_CREATE, WALLET_STATE_LIVE
from circle_cctp.encoding import get_network, is_supported_blockchain
from circle_cctp.exceptions import RemoteError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class WalletSet:
    id: str
    name: str | None = None
    create_date: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "WalletSet":
        return cls(
            id=data["id"],
            name=data.get("name"),
            create_date=data.get("createDate"),
        )


@dataclass(slots=True, frozen=True)
class Wallet:
    """A custodial wallet.

    Owned by Circle, we only read it.
    """

    id: str
    address: str
    blockchain: str
    state: str
    wallet_set_id: str | None = None

    #: Name of the wallet set we found this wallet in
    wallet_set_name: str | None = None

    @classmethod
    def from_api(cls, data: dict, wallet_set: WalletSet | None = None) -> "Wallet":
        return cls(
            id=data["id"],
            address=data["address"],
            blockchain=data["blockchain"],
            state=data.get("state", ""),
            wallet_set_id=data.get("walletSetId") or (wallet_set.id if wallet_set else None),
            wallet_set_name=wallet_set.name if wallet_set else None,
        )

    @property
    def live(self) -> bool:
        return self.state == WALLET_STATE_LIVE


@dataclass(slots=True, frozen=True)
class TokenBalance:
    """One token balance row of a wallet."""

    symbol: str | None
    name: str | None
    amount: Decimal
    token_address: str | None = None
    blockchain: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "TokenBalance":
        token = data.get("token") or {}
        try:
            amount = Decimal(data.get("amount") or 0)
        except InvalidOperation:
            logger.warning("Bad balance amount %s for token %s", data.get("amount"), token.get("symbol"))
            amount = Decimal(0)
        return cls(
            symbol=token.get("symbol"),
            name=token.get("name"),
            amount=amount,
            token_address=token.get("tokenAddress"),
            blockchain=token.get("blockchain"),
        )

    def is_usdc(self) -> bool:
        return self.symbol == "USDC" or "USD Coin" in (self.name or "")


def fetch_wallet_sets(client: CircleWalletsClient) -> list[WalletSet]:
    return [WalletSet.from_api(w) for w in client.list_wallet_sets()]


def fetch_all_wallets(client: CircleWalletsClient) -> list[Wallet]:
    """Get wallets from all wallet sets.

    If we cannot read one wallet set, we skip it with a warning
    and still return wallets from the others.

    :return:
        Wallets annotated with their wallet set name
    """
    wallet_sets = fetch_wallet_sets(client)
    all_wallets = []
    for wallet_set in wallet_sets:
        try:
            wallets = client.list_wallets(wallet_set_id=wallet_set.id)
        except RemoteError as e:
            logger.warning("Could not fetch wallets from set %s: %s", wallet_set.name, e)
            continue
        all_wallets += [Wallet.from_api(w, wallet_set) for w in wallets]

    logger.info("Found %d wallets in %d wallet sets", len(all_wallets), len(wallet_sets))
    return all_wallets


def fetch_token_balances(client: CircleWalletsClient, wallet_id: str) -> list[TokenBalance]:
    return [TokenBalance.from_api(b) for b in client.get_wallet_token_balances(wallet_id)]


def find_usdc_balance(balances: list[TokenBalance]) -> Decimal:
    """Pick the USDC amount from token balances.

    :return:
        USDC amount, or zero if the wallet has no USDC row
    """
    for balance in balances:
        if balance.is_usdc():
            return balance.amount
    return Decimal(0)


def fetch_usdc_balance(client: CircleWalletsClient, wallet_id: str) -> Decimal:
    return find_usdc_balance(fetch_token_balances(client, wallet_id))


def filter_transfer_wallets(wallets: list[Wallet]) -> list[Wallet]:
    """Wallets that can send or receive CCTP transfers."""
    return [w for w in wallets if w.live and is_supported_blockchain(w.blockchain)]


def filter_destination_wallets(wallets: list[Wallet], source_blockchain: str) -> list[Wallet]:
    """Wallets that can receive a transfer from the source blockchain.

    The destination must be on a different CCTP domain,
    and on a testnet if and only if the source is.
    """
    source = get_network(source_blockchain)
    destinations = []
    for wallet in wallets:
        if not is_supported_blockchain(wallet.blockchain):
            continue
        network = get_network(wallet.blockchain)
        if network.domain != source.domain and network.testnet == source.testnet:
            destinations.append(wallet)
    return destinations


def create_wallet_set(client: CircleWalletsClient, name: str) -> WalletSet:
    if not name or not name.strip():
        raise ValueError("Wallet set name cannot be empty")
    wallet_set = WalletSet.from_api(client.create_wallet_set(name.strip()))
    logger.info("Created wallet set %s (%s)", wallet_set.name, wallet_set.id)
    return wallet_set


def create_wallets(client: CircleWalletsClient, wallet_set: WalletSet, blockchain: str, count: int = 1) -> list[Wallet]:
    """Create new wallets in a wallet set.

    :param count:
        How many wallets, 1 - 10
    """
    if not 1 <= count <= MAX_WALLETS_PER_CREATE:
        raise ValueError(f"Wallet count must be between 1 and {MAX_WALLETS_PER_CREATE}, got {count}")
    created = client.create_wallets(wallet_set.id, [blockchain], count)
    wallets = [Wallet.from_api(w, wallet_set) for w in created]
    logger.info("Created %d wallets on %s in set %s", len(wallets), blockchain, wallet_set.id)
    return wallets
