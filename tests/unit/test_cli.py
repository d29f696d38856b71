# tests/unit/test_cli.py
import pytest
from click.testing import CliRunner

from watchsync.cli import run_sync
from watchsync.core.enums import ActionKind, CycleOutcome
from watchsync.services.reconciliation.types import CycleSummary, FailedAction


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_orchestrator(mocker):
    orchestrator = mocker.Mock()
    mocker.patch.object(run_sync, "build_orchestrator", return_value=orchestrator)
    mocker.patch.object(run_sync, "close_orchestrator", mocker.AsyncMock())
    mocker.patch.object(run_sync, "dispose_engine", mocker.AsyncMock())
    mocker.patch.object(run_sync, "configure_logging")
    return orchestrator


def summary(outcome=CycleOutcome.COMPLETED, failed=(), reason=None):
    result = CycleSummary(channel="EBAY", inserted=["C"], failed=list(failed))
    return result.finish(outcome, reason)


def test_cycle_success_exits_zero(runner, fake_orchestrator, mocker):
    fake_orchestrator.run_cycle = mocker.AsyncMock(return_value=summary())

    result = runner.invoke(run_sync.cli, ["cycle", "EBAY"])

    assert result.exit_code == 0
    assert "completed" in result.output
    assert "inserted=1" in result.output
    run_sync.build_orchestrator.assert_called_once_with(channels=["EBAY"])
    fake_orchestrator.run_cycle.assert_awaited_once_with("EBAY")


def test_cycle_with_failed_actions_exits_one(runner, fake_orchestrator, mocker):
    failure = FailedAction(sku="D", kind=ActionKind.INSERT, error="Invalid price")
    fake_orchestrator.run_cycle = mocker.AsyncMock(return_value=summary(failed=[failure]))

    result = runner.invoke(run_sync.cli, ["cycle", "EBAY"])

    assert result.exit_code == 1
    assert "FAILED insert D: Invalid price" in result.output


@pytest.mark.parametrize("outcome", [CycleOutcome.ABORTED, CycleOutcome.FEED_DOWN])
def test_aborted_cycle_exits_two(runner, fake_orchestrator, mocker, outcome):
    fake_orchestrator.run_cycle = mocker.AsyncMock(return_value=summary(outcome, reason="Feed is not ready"))

    result = runner.invoke(run_sync.cli, ["cycle", "EBAY"])

    assert result.exit_code == 2
    assert "Reason: Feed is not ready" in result.output


def test_single_sku_command(runner, fake_orchestrator, mocker):
    fake_orchestrator.run_single_sku = mocker.AsyncMock(return_value=summary())

    result = runner.invoke(run_sync.cli, ["sku", "EBAY", "100200"])

    assert result.exit_code == 0
    fake_orchestrator.run_single_sku.assert_awaited_once_with("EBAY", "100200")
    run_sync.close_orchestrator.assert_awaited_once()
    run_sync.dispose_engine.assert_awaited_once()


def test_channels_command(runner, mocker, settings):
    settings.WHATSAPP_API_TOKEN = ""
    mocker.patch.object(run_sync, "get_settings", return_value=settings)
    mocker.patch.object(run_sync, "configure_logging")

    result = runner.invoke(run_sync.cli, ["channels"])

    assert result.exit_code == 0
    assert result.output.split() == ["EBAY", "CATALOG"]
