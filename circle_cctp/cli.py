"""Interactive command line for cross-chain USDC transfers.

Run without a subcommand to get the main menu:

.. code-block:: shell

    export CIRCLE_API_KEY=...
    export CIRCLE_ENTITY_SECRET=...
    circle-cctp

Or go straight to one flow:

.. code-block:: shell

    circle-cctp transfer
    circle-cctp recover
    circle-cctp wallets
    circle-cctp setup-entity-secret

Ctrl+C exits with code 0. Anything in flight is lost: if the burn went
through, note its hash from the output and use ``recover`` later.

SIGTERM cancels polling instead: the running transfer fails with its burn hash
reported and the tool exits with code 1. A second SIGTERM exits at once.
"""

import logging
import signal
import sys
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Sequence, TypeVar

import click
import typer
from tabulate import tabulate

from circle_cctp.client import CircleWalletsClient
from circle_cctp.config import CircleConfig
from circle_cctp.constants import MAX_WALLETS_PER_CREATE, SUPPORTED_NETWORKS, WALLET_CREATION_NETWORKS, CCTPNetwork
from circle_cctp.entity_secret import setup_entity_secret
from circle_cctp.exceptions import CircleCCTPError, RemoteError, TransferFailed
from circle_cctp.retry import CancelToken, PollProgress
from circle_cctp.saga import CrossChainTransfer, TransferIntent, TransferReceipt, TransferState
from circle_cctp.utils import mask_secret, setup_console_logging
from circle_cctp.wallets import (
    Wallet,
    WalletSet,
    create_wallet_set,
    create_wallets,
    fetch_all_wallets,
    fetch_usdc_balance,
    fetch_wallet_sets,
    filter_destination_wallets,
    filter_transfer_wallets,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    help="Cross-chain USDC transfers with Circle developer-controlled wallets and CCTP",
    add_completion=False,
)

TROUBLESHOOTING_TIPS = [
    "Ensure both wallets have sufficient native tokens for gas fees",
    "Verify USDC balance in source wallet",
    "Check that both networks are supported by Circle's CCTP",
    "Wait a few minutes and try again if network is congested",
    "Make sure your API key has the necessary permissions",
]

SEPARATOR = "=" * 60


@dataclass(slots=True)
class CliEnvironment:
    """Everything the menus need, built once per run."""

    config: CircleConfig
    client: CircleWalletsClient
    cancel_token: CancelToken

    def create_transfer(self) -> CrossChainTransfer:
        policy = self.config.create_retry_policy(self.cancel_token)
        return CrossChainTransfer(
            self.client,
            transaction_policy=policy,
            attestation_policy=policy,
            attestation_api_url=self.config.attestation_api_url,
            session=self.client.session,
            progress=echo_progress,
            on_transition=echo_transition,
        )


def echo_progress(progress: PollProgress):
    if progress.error:
        typer.echo(f"Could not check {progress.label} status (attempt {progress.attempt}/{progress.max_attempts}): {progress.error}")
    else:
        typer.echo(f"Checking {progress.label} status (attempt {progress.attempt}/{progress.max_attempts}), current state: {progress.status}")


def echo_transition(state: TransferState, receipt: TransferReceipt):
    match state:
        case TransferState.approved:
            typer.echo(f"Approval confirmed, tx hash: {receipt.approval.tx_hash}")
            typer.echo("\nStep 2/4: Burning USDC on source chain...")
        case TransferState.burned:
            if receipt.recovered:
                typer.echo(f"Resuming from burn {receipt.burn_tx_hash}")
            else:
                typer.echo(f"Burn confirmed, tx hash: {receipt.burn_tx_hash}")
                typer.echo("Write this hash down: you need it to recover the transfer if a later step fails")
            typer.echo("\nStep 3/4: Obtaining attestation from Circle...")
            typer.echo("This may take 10-20 minutes as Circle validates the burn...")
        case TransferState.attested:
            typer.echo("Attestation received from Circle")
            typer.echo("\nStep 4/4: Minting USDC on destination chain...")
        case TransferState.minted:
            typer.echo(f"Mint confirmed, tx hash: {receipt.mint_tx_hash}")
        case TransferState.failed:
            typer.echo(f"Transfer failed: {receipt.failure}")


def echo_troubleshooting():
    typer.echo("\nTroubleshooting tips:")
    for tip in TROUBLESHOOTING_TIPS:
        typer.echo(f"- {tip}")


def echo_failure(e: TransferFailed):
    typer.echo(f"\nCross-chain transfer failed at {e.step} step: {e.__cause__ or e}", err=True)
    cause = e.__cause__
    if isinstance(cause, RemoteError) and cause.details:
        typer.echo(f"Details: {cause.details}", err=True)
    if e.burn_tx_hash:
        typer.echo(f"\nYour USDC was burnt in {e.burn_tx_hash}.")
        typer.echo("Run recovery with this hash to finish the transfer.")
    echo_troubleshooting()


def get_network_name(blockchain: str) -> str:
    network = SUPPORTED_NETWORKS.get(blockchain)
    return network.name if network else blockchain


def display_wallets(wallets: Sequence[Wallet], title: str):
    typer.echo(f"\n{title}:")
    rows = [
        [
            idx,
            w.address,
            f"{get_network_name(w.blockchain)} ({w.blockchain})",
            w.wallet_set_name or "Unnamed",
            w.state,
        ]
        for idx, w in enumerate(wallets, start=1)
    ]
    typer.echo(tabulate(rows, headers=["#", "Address", "Network", "Wallet set", "State"], tablefmt="simple"))


def choose_item(items: Sequence[T], prompt: str) -> T | None:
    """Ask the operator to pick one of numbered items.

    :return:
        The chosen item, or ``None`` on invalid input
    """
    answer = typer.prompt(f"{prompt} (1-{len(items)})", default="", show_default=False)
    try:
        index = int(answer) - 1
    except ValueError:
        index = -1

    if not 0 <= index < len(items):
        typer.echo("Invalid selection.")
        return None
    return items[index]


def prompt_amount(balance: Decimal) -> Decimal | None:
    answer = typer.prompt(f"\nEnter USDC amount to transfer (max: {balance})", default="", show_default=False)
    try:
        amount = Decimal(answer)
    except InvalidOperation:
        amount = None

    if amount is None or not amount.is_finite() or amount <= 0:
        typer.echo("Invalid amount. Please enter a positive number.")
        return None

    if amount > balance:
        typer.echo(f"Insufficient balance. You have {balance} USDC, but tried to transfer {amount} USDC.")
        return None

    return amount


def echo_success(receipt: TransferReceipt, source: str, destination: str, title: str):
    typer.echo(f"\n{SEPARATOR}\n{title}\n{SEPARATOR}")
    if receipt.amount is not None:
        typer.echo(f"{receipt.amount} USDC transferred")
    typer.echo(f"From: {source} ({get_network_name(receipt.source_blockchain)})")
    typer.echo(f"To: {destination} ({get_network_name(receipt.destination_blockchain)})")
    typer.echo("\nView on explorers:")
    typer.echo(f"  Source (burn): {receipt.get_burn_explorer_url()}")
    typer.echo(f"  Destination (mint): {receipt.get_mint_explorer_url()}")


def run_transfer(env: CliEnvironment) -> TransferReceipt | None:
    """Interactive cross-chain transfer.

    :return:
        Receipt of the transfer, ``None`` if nothing was submitted
    """
    typer.echo("\nCross-Chain USDC Transfer\n")
    typer.echo("Fetching all your wallets...")

    all_wallets = fetch_all_wallets(env.client)
    if not all_wallets:
        typer.echo("No wallets found. Please create some wallets first.")
        return None

    wallets = filter_transfer_wallets(all_wallets)
    if len(wallets) < 2:
        typer.echo("You need at least 2 wallets on supported networks for cross-chain transfers.")
        typer.echo(f"Supported networks: {', '.join(n.name for n in SUPPORTED_NETWORKS.values())}")
        return None

    typer.echo(f"Found {len(wallets)} wallets on supported networks")

    display_wallets(wallets, "Select SOURCE wallet (where USDC will be sent FROM)")
    source = choose_item(wallets, "Select source wallet")
    if source is None:
        return None

    typer.echo(f"\nSelected source: {source.address} on {get_network_name(source.blockchain)}")
    typer.echo("Checking source wallet USDC balance...")
    balance = fetch_usdc_balance(env.client, source.id)
    typer.echo(f"Source wallet USDC balance: {balance} USDC")

    if balance <= 0:
        typer.echo("Source wallet has no USDC balance. Please add USDC to this wallet first.")
        typer.echo("Tip: You can get testnet USDC from faucets or transfer from exchanges for mainnet.")
        return None

    destinations = filter_destination_wallets(wallets, source.blockchain)
    if not destinations:
        typer.echo("No wallets found on different networks for cross-chain transfer.")
        typer.echo("Create a wallet on a different blockchain to enable cross-chain transfers.")
        return None

    display_wallets(destinations, "Select DESTINATION wallet (where USDC will be sent TO)")
    destination = choose_item(destinations, "Select destination wallet")
    if destination is None:
        return None

    typer.echo(f"\nSelected destination: {destination.address} on {get_network_name(destination.blockchain)}")

    amount = prompt_amount(balance)
    if amount is None:
        return None

    typer.echo(f"\n{SEPARATOR}\nTRANSFER CONFIRMATION\n{SEPARATOR}")
    typer.echo(f"FROM: {source.address}\n   Network: {get_network_name(source.blockchain)}")
    typer.echo(f"TO: {destination.address}\n   Network: {get_network_name(destination.blockchain)}")
    typer.echo(f"Amount: {amount} USDC")
    typer.echo(f"Source balance: {balance} USDC")
    typer.echo(SEPARATOR)

    if not typer.confirm("\nConfirm this cross-chain transfer?", default=False):
        typer.echo("Transfer cancelled.")
        return None

    typer.echo("\nInitiating cross-chain USDC transfer: Approval -> Burn -> Attestation -> Mint")
    typer.echo("\nStep 1/4: Approving USDC spending...")

    try:
        receipt = env.create_transfer().run(TransferIntent(source, destination, amount))
    except TransferFailed as e:
        echo_failure(e)
        return e.receipt

    echo_success(receipt, source.address, destination.address, "CROSS-CHAIN TRANSFER COMPLETED SUCCESSFULLY")
    return receipt


def run_recovery(env: CliEnvironment) -> TransferReceipt | None:
    """Finish a transfer from its burn transaction hash."""
    typer.echo("\nRECOVERY MODE: Continue from Attestation Step")
    typer.echo("Use this when your burn transaction succeeded but attestation or mint failed\n")

    burn_tx_hash = typer.prompt("Enter the burn transaction hash", default="", show_default=False).strip()
    if not burn_tx_hash:
        typer.echo("Burn transaction hash is required for recovery")
        return None

    networks: list[CCTPNetwork] = list(SUPPORTED_NETWORKS.values())
    typer.echo("\nSelect source blockchain where burn occurred:")
    for idx, network in enumerate(networks, start=1):
        typer.echo(f"{idx}. {network.code} ({network.name})")

    source = choose_item(networks, "Select source blockchain")
    if source is None:
        return None

    destinations = filter_destination_wallets(fetch_all_wallets(env.client), source.code)
    if not destinations:
        typer.echo("No destination wallets found")
        return None

    display_wallets(destinations, "Select DESTINATION wallet for minting")
    destination = choose_item(destinations, "Select destination wallet")
    if destination is None:
        return None

    typer.echo("\nRecovering transfer:")
    typer.echo(f"Burn TX: {burn_tx_hash}")
    typer.echo(f"Destination: {destination.address} on {get_network_name(destination.blockchain)}")

    try:
        receipt = env.create_transfer().resume_from_burn(burn_tx_hash, source.code, destination)
    except TransferFailed as e:
        echo_failure(e)
        typer.echo("\nYou can try running recovery again with the same burn transaction hash")
        return e.receipt

    echo_success(receipt, burn_tx_hash, destination.address, "RECOVERY COMPLETED SUCCESSFULLY")
    return receipt


def list_wallets_and_sets(env: CliEnvironment):
    typer.echo("\nListing all your wallet sets and wallets...\n")

    wallet_sets = fetch_wallet_sets(env.client)
    if not wallet_sets:
        typer.echo("No wallet sets found.")
        return

    typer.echo(f"Found {len(wallet_sets)} wallet set(s)\n")

    for idx, wallet_set in enumerate(wallet_sets, start=1):
        typer.echo(f"Wallet Set {idx}:")
        typer.echo(f"   Name: {wallet_set.name or 'Unnamed'}")
        typer.echo(f"   ID: {wallet_set.id}")
        typer.echo(f"   Created: {wallet_set.create_date}")

        try:
            wallets = [Wallet.from_api(w, wallet_set) for w in env.client.list_wallets(wallet_set_id=wallet_set.id)]
        except RemoteError as e:
            typer.echo(f"   Error fetching wallets: {e}\n")
            continue

        if wallets:
            rows = [[w.address, w.blockchain, w.state] for w in wallets]
            typer.echo(tabulate(rows, headers=["Address", "Network", "State"], tablefmt="simple"))
        else:
            typer.echo("   No wallets in this set")
        typer.echo("-" * 60)


def run_create_wallet_set(env: CliEnvironment) -> WalletSet | None:
    typer.echo("\nCreating a new wallet set...\n")
    name = typer.prompt("Enter a name for the new wallet set", default="", show_default=False)
    if not name.strip():
        typer.echo("Wallet set name cannot be empty.")
        return None

    wallet_set = create_wallet_set(env.client, name)
    typer.echo("\nWallet set created successfully!")
    typer.echo(f"   Name: {wallet_set.name}")
    typer.echo(f"   ID: {wallet_set.id}")
    typer.echo(f"   Created: {wallet_set.create_date}")
    return wallet_set


def run_create_wallets(env: CliEnvironment) -> list[Wallet]:
    typer.echo("\nCreating a new wallet...\n")

    wallet_sets = fetch_wallet_sets(env.client)
    if not wallet_sets:
        typer.echo("No wallet sets found. Please create a wallet set first.")
        return []

    typer.echo("Available wallet sets:")
    for idx, wallet_set in enumerate(wallet_sets, start=1):
        typer.echo(f"   {idx}. {wallet_set.name or 'Unnamed'} (ID: {wallet_set.id})")

    wallet_set = choose_item(wallet_sets, "\nSelect a wallet set")
    if wallet_set is None:
        return []

    codes = list(WALLET_CREATION_NETWORKS.keys())
    typer.echo("\nAvailable networks:")
    for idx, code in enumerate(codes, start=1):
        typer.echo(f"   {idx}. {WALLET_CREATION_NETWORKS[code]} ({code})")

    blockchain = choose_item(codes, "\nSelect a network")
    if blockchain is None:
        return []

    count_answer = typer.prompt("\nHow many wallets to create? (default: 1)", default="1", show_default=False)
    try:
        count = int(count_answer) if count_answer.strip() else 1
    except ValueError:
        count = 0

    if not 1 <= count <= MAX_WALLETS_PER_CREATE:
        typer.echo(f"Please enter a number between 1 and {MAX_WALLETS_PER_CREATE}.")
        return []

    typer.echo(f"\nCreating {count} wallet(s) on {WALLET_CREATION_NETWORKS[blockchain]}...")
    wallets = create_wallets(env.client, wallet_set, blockchain, count)

    typer.echo(f"\nSuccessfully created {len(wallets)} wallet(s)!")
    for idx, wallet in enumerate(wallets, start=1):
        typer.echo(f"\n   Wallet {idx}:")
        typer.echo(f"      Address: {wallet.address}")
        typer.echo(f"      ID: {wallet.id}")
        typer.echo(f"      Network: {wallet.blockchain}")
        typer.echo(f"      State: {wallet.state}")
    return wallets


def install_cancel_handler(cancel_token: CancelToken):
    """Cancel polling on SIGTERM, exit on the second one."""

    def handle(signum, frame):
        if cancel_token.cancelled:
            raise KeyboardInterrupt
        logger.warning("Received signal %d, cancelling", signum)
        cancel_token.cancel()

    signal.signal(signal.SIGTERM, handle)


def run_guarded(func, env: CliEnvironment):
    """Run one menu operation, report its errors and return to the menu.

    :raise typer.Exit:
        If the run was cancelled while the operation was running
    """
    result = None
    try:
        result = func(env)
    except CircleCCTPError as e:
        logger.error("%s failed: %s", func.__name__, e)
        typer.echo(f"\nError: {e}", err=True)
        if isinstance(e, RemoteError) and e.details:
            typer.echo(f"Details: {e.details}", err=True)
    except ValueError as e:
        typer.echo(f"\nError: {e}", err=True)

    if env.cancel_token.cancelled:
        typer.echo("\nCancelled, exiting.", err=True)
        raise typer.Exit(code=1)

    return result


def wallet_manager_menu(env: CliEnvironment):
    operations = {
        "1": list_wallets_and_sets,
        "2": run_create_wallet_set,
        "3": run_create_wallets,
    }

    while True:
        typer.echo(f"\n{SEPARATOR}\nCircle Wallet Manager\n{SEPARATOR}")
        typer.echo("1. List wallet sets and wallets")
        typer.echo("2. Create a new wallet set")
        typer.echo("3. Create a new wallet")
        typer.echo("4. Back")
        typer.echo(SEPARATOR)

        choice = typer.prompt("Select an option (1-4)", default="", show_default=False).strip()
        if choice == "4":
            return
        operation = operations.get(choice)
        if operation is None:
            typer.echo("\nInvalid option. Please select 1-4.")
            continue
        run_guarded(operation, env)


def main_menu(env: CliEnvironment):
    typer.echo("Circle Cross-Chain USDC Transfer Tool")
    typer.echo("=" * 50)

    operations = {
        "1": run_transfer,
        "2": run_recovery,
    }

    while True:
        typer.echo("\nSelect an option:")
        typer.echo("1. Perform cross-chain transfer")
        typer.echo("2. Recover from burn (continue from attestation step)")
        typer.echo("3. Manage wallets")
        typer.echo("4. Exit")

        choice = typer.prompt("Enter your choice (1-4)", default="", show_default=False).strip()
        if choice == "4":
            typer.echo("\nGoodbye!")
            return
        if choice == "3":
            wallet_manager_menu(env)
            continue
        operation = operations.get(choice)
        if operation is None:
            typer.echo("Invalid choice. Please try again.")
            continue
        run_guarded(operation, env)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    api_key: str = typer.Option(None, envvar="CIRCLE_API_KEY", help="Circle API key"),
    entity_secret: str = typer.Option(None, envvar="CIRCLE_ENTITY_SECRET", help="Circle entity secret, 64 hex characters"),
):
    """Show the main menu if no command is given."""
    if ctx.obj is None:
        setup_console_logging(default_log_level="warning")
        config = CircleConfig.from_env()
        if api_key:
            config.api_key = api_key
        if entity_secret:
            config.entity_secret = entity_secret
        ctx.obj = CliEnvironment(config=config, client=config.create_client(), cancel_token=CancelToken())
        install_cancel_handler(ctx.obj.cancel_token)
        logger.info("Using Circle API %s, API key %s", config.api_base_url, mask_secret(config.api_key))

    if ctx.invoked_subcommand is None:
        main_menu(ctx.obj)


@app.command()
def transfer(ctx: typer.Context):
    """Transfer USDC between wallets on different blockchains."""
    run_guarded(run_transfer, ctx.obj)


@app.command()
def recover(ctx: typer.Context):
    """Finish a transfer from its burn transaction hash."""
    run_guarded(run_recovery, ctx.obj)


@app.command()
def wallets(ctx: typer.Context):
    """List and create wallet sets and wallets."""
    wallet_manager_menu(ctx.obj)


@app.command("setup-entity-secret")
def setup_entity_secret_command(
    ctx: typer.Context,
    env_file: Path = typer.Option(Path(".env"), help="Where to save a newly generated entity secret"),
):
    """Check, register or generate the entity secret."""
    env: CliEnvironment = ctx.obj
    config = env.config

    def client_factory(secret: str) -> CircleWalletsClient:
        return CircleWalletsClient(
            api_key=config.api_key or "",
            entity_secret=secret,
            base_url=config.api_base_url,
            session=env.client.session,
        )

    try:
        result = setup_entity_secret(client_factory, entity_secret=config.entity_secret, env_file=env_file)
    except CircleCCTPError as e:
        typer.echo(f"Error setting up entity secret: {e}", err=True)
        raise typer.Exit(code=1)

    if result.generated:
        typer.echo(f"New entity secret generated: {mask_secret(result.entity_secret)}")
        typer.echo(f"Saved to {result.saved_to}")
        typer.echo("Store the entity secret securely and never commit it to version control.")
    elif result.registered:
        typer.echo("Existing entity secret registered with Circle")
    else:
        typer.echo("Existing entity secret is valid and working")

    if result.registered:
        typer.echo(f"Recovery file: {'generated' if result.recovery_file else 'not available'}")

    typer.echo(f"Created test wallet set: {result.test_wallet_set_id}")
    typer.echo("Your setup is complete!")


def run():
    """Console script entry point."""
    try:
        # Without standalone mode, typer.Exit comes back as a return value
        exit_code = app(standalone_mode=False)
    except (KeyboardInterrupt, click.exceptions.Abort):
        typer.echo("\n\nGoodbye!")
        sys.exit(0)
    except click.exceptions.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except Exception as e:
        logger.exception("Unexpected error")
        typer.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)

    sys.exit(exit_code or 0)
