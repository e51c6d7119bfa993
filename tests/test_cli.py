"""Interactive menus driven through typer's test runner."""

import signal
import sys
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from circle_cctp.cli import CliEnvironment, app, install_cancel_handler, run
from circle_cctp.config import CircleConfig
from circle_cctp.entity_secret import EntitySecretSetup
from circle_cctp.exceptions import AuthError
from circle_cctp.retry import CancelToken
from circle_cctp.testing import make_mock_response

runner = CliRunner()


@pytest.fixture
def env(custody, burn_message, attestation_signature) -> CliEnvironment:
    """Environment whose Iris answers immediately and whose polling never sleeps."""
    custody.session.get.return_value = make_mock_response(200, {"messages": [{"message": burn_message, "attestation": attestation_signature}]})
    config = CircleConfig(api_key="TEST_API_KEY:a:b", entity_secret="55" * 32, poll_attempts=3, poll_interval=0)
    return CliEnvironment(config=config, client=custody, cancel_token=CancelToken())


def test_transfer(env, custody):
    # Source 1, destination 1, amount, confirm
    result = runner.invoke(app, ["transfer"], input="1\n1\n50\ny\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "Source wallet USDC balance: 100 USDC" in result.output
    assert "CROSS-CHAIN TRANSFER COMPLETED SUCCESSFULLY" in result.output
    assert "50 USDC transferred" in result.output
    assert "https://sepolia.basescan.org/tx/" in result.output
    assert len(custody.submitted) == 3


def test_transfer_insufficient_balance(env, custody):
    result = runner.invoke(app, ["transfer"], input="1\n1\n150\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "Insufficient balance" in result.output
    assert custody.submitted == []


def test_transfer_declined(env, custody):
    result = runner.invoke(app, ["transfer"], input="1\n1\n50\nn\n", obj=env)

    assert "Transfer cancelled." in result.output
    assert custody.submitted == []


def test_transfer_bad_selection(env, custody):
    result = runner.invoke(app, ["transfer"], input="7\n", obj=env)

    assert "Invalid selection." in result.output
    assert custody.submitted == []


def test_transfer_empty_source(env, custody):
    # Destination wallet has no USDC
    result = runner.invoke(app, ["transfer"], input="2\n", obj=env)

    assert "Source wallet has no USDC balance" in result.output
    assert custody.submitted == []


def test_transfer_mint_fails(env, custody):
    custody.states["tx-3"] = ["FAILED"]

    result = runner.invoke(app, ["transfer"], input="1\n1\n50\ny\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "failed at mint step" in result.output
    assert "Your USDC was burnt in 0x" in result.output
    assert "Troubleshooting tips" in result.output


def test_recover(env, custody):
    # Hash, ETH-SEPOLIA is the sixth supported network, destination 1
    burn_tx_hash = "0x" + "ab" * 32
    result = runner.invoke(app, ["recover"], input=f"{burn_tx_hash}\n6\n1\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "RECOVERY COMPLETED SUCCESSFULLY" in result.output
    assert "50 USDC transferred" in result.output
    (mint,) = custody.submitted
    assert mint["wallet_id"] == "w-dst"


def test_recover_without_hash(env, custody):
    result = runner.invoke(app, ["recover"], input="\n", obj=env)

    assert "Burn transaction hash is required for recovery" in result.output
    assert custody.submitted == []


def test_wallet_manager(env, custody):
    # List, create a set, create two wallets on ARB-SEPOLIA in set 1, back
    result = runner.invoke(app, ["wallets"], input="1\n2\nTreasury\n3\n1\n5\n2\n4\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "Wallet Set 1:" in result.output
    assert "Wallet set created successfully!" in result.output
    assert "Successfully created 2 wallet(s)!" in result.output
    assert "set-2" in custody.wallet_sets
    assert [w["blockchain"] for w in custody.wallet_sets["set-1"][-2:]] == ["ARB-SEPOLIA", "ARB-SEPOLIA"]


def test_wallet_manager_bad_count(env, custody):
    result = runner.invoke(app, ["wallets"], input="3\n1\n1\n11\n4\n", obj=env)

    assert "Please enter a number between 1 and 10." in result.output
    assert len(custody.wallet_sets["set-1"]) == 2


def test_main_menu(env):
    result = runner.invoke(app, [], input="9\n4\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "Invalid choice. Please try again." in result.output
    assert "Goodbye!" in result.output


def test_api_error_returns_to_menu(env):
    client = Mock()
    client.list_wallet_sets.side_effect = AuthError("Malformed authorization", status_code=401)
    env.client = client

    result = runner.invoke(app, [], input="1\n4\n", obj=env)

    assert result.exit_code == 0, result.output
    assert "Error: Malformed authorization" in result.output
    assert "Goodbye!" in result.output


def test_run_keyboard_interrupt():
    with patch("circle_cctp.cli.app", side_effect=KeyboardInterrupt):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 0


def test_run_unexpected_error():
    with patch("circle_cctp.cli.app", side_effect=RuntimeError("boom")):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 1


def test_setup_entity_secret_command(env, tmp_path):
    result_value = EntitySecretSetup(entity_secret="66" * 32, generated=True, registered=True, recovery_file="file", test_wallet_set_id="set-9", saved_to=tmp_path / ".env")

    with patch("circle_cctp.cli.setup_entity_secret", return_value=result_value) as setup:
        result = runner.invoke(app, ["setup-entity-secret", "--env-file", str(tmp_path / ".env")], obj=env)

    assert result.exit_code == 0, result.output
    assert "New entity secret generated: 66666666..." in result.output
    assert "Created test wallet set: set-9" in result.output
    assert setup.call_args.kwargs["entity_secret"] == "55" * 32
    assert setup.call_args.kwargs["env_file"] == tmp_path / ".env"

    # Factory builds clients sharing our HTTP session
    client_factory = setup.call_args.args[0]
    client = client_factory("77" * 32)
    assert client.entity_secret == "77" * 32
    assert client.api_key == "TEST_API_KEY:a:b"
    assert client.session is env.client.session


def test_setup_entity_secret_bad_api_key(env):
    with patch("circle_cctp.cli.setup_entity_secret", side_effect=AuthError("Malformed authorization", status_code=401)):
        result = runner.invoke(app, ["setup-entity-secret"], obj=env)

    assert result.exit_code == 1
    assert "Error setting up entity secret: Malformed authorization" in result.output


def test_run_exits_with_command_exit_code(monkeypatch, tmp_path):
    """A failing command ends the process with its exit code, not only under the test runner."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", ["circle-cctp", "setup-entity-secret"])

    with (
        patch("circle_cctp.cli.setup_console_logging"),
        patch("circle_cctp.cli.install_cancel_handler"),
        patch("circle_cctp.cli.setup_entity_secret", side_effect=AuthError("Malformed authorization", status_code=401)),
    ):
        with pytest.raises(SystemExit) as exc_info:
            run()

    assert exc_info.value.code == 1


def test_cancelled_transfer_exits(env, custody):
    """A cancelled run reports the failed transfer and leaves the menu."""
    env.cancel_token.cancel()

    result = runner.invoke(app, [], input="1\n1\n1\n50\ny\n", obj=env)

    assert result.exit_code == 1, result.output
    assert "failed at approve step" in result.output
    assert "Cancelled, exiting." in result.output
    assert "Goodbye!" not in result.output
    assert len(custody.submitted) == 1


def test_cancel_handler():
    token = CancelToken()
    previous = signal.getsignal(signal.SIGTERM)
    try:
        install_cancel_handler(token)
        handler = signal.getsignal(signal.SIGTERM)

        handler(signal.SIGTERM, None)
        assert token.cancelled

        # Second signal gives up waiting for the poll
        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGTERM, None)
    finally:
        signal.signal(signal.SIGTERM, previous)
