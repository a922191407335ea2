import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from mailpilot.cli import main
from mailpilot.compose.service import ComposeAutomation
from mailpilot.exceptions import DiscoveryError

from conftest import FakeMailClient


@pytest.fixture
def runner():
    with patch("mailpilot.cli.setup_logging"):
        yield CliRunner()


class TestOptions:
    def test_reply_requires_body(self, runner):
        result = runner.invoke(main, ["reply", "thread-1"])
        assert result.exit_code == 2

    def test_reply_rejects_unknown_mode(self, runner):
        result = runner.invoke(main, ["reply", "thread-1", "--body", "x", "--mode", "bounce"])
        assert result.exit_code == 2

    def test_port_selects_endpoint(self, runner):
        listing = AsyncMock(return_value=[])
        with patch("mailpilot.cli.list_targets", listing):
            runner.invoke(main, ["--port", "9222", "status"])
        listing.assert_awaited_once_with("http://127.0.0.1:9222")


class TestStatus:
    def test_without_target_exits_1(self, runner):
        with patch("mailpilot.cli.list_targets", AsyncMock(return_value=[])):
            result = runner.invoke(main, ["status"])
        assert result.exit_code == 1
        assert json.loads(result.output) == {"attached": False, "target": None}

    def test_discovery_failure_is_reported(self, runner):
        with patch("mailpilot.cli.list_targets", AsyncMock(side_effect=DiscoveryError("connection refused"))):
            result = runner.invoke(main, ["status"])
        assert result.exit_code == 1
        assert "connection refused" in result.output


class TestDraft:
    def test_draft_prints_saved_state(self, runner, make_automation):
        client = FakeMailClient()
        automation = make_automation(client)
        with (
            patch("mailpilot.cli.connect", AsyncMock(return_value=MagicMock())),
            patch("mailpilot.cli.disconnect", AsyncMock()) as disconnect,
            patch.object(ComposeAutomation, "for_session", return_value=automation),
        ):
            result = runner.invoke(
                main, ["draft", "--to", "a@example.com", "--to", "b@example.com", "--subject", "Test A", "--body", "Hello"]
            )

        assert result.exit_code == 0, result.output
        state = json.loads(result.output)
        assert state["subject"] == "Test A"
        assert state["body"] == "<p>Hello</p>"
        assert [r["email"] for r in state["to"]] == ["a@example.com", "b@example.com"]
        assert state["dirty"] is False
        disconnect.assert_awaited_once()

    def test_compose_leaves_draft_unsaved(self, runner, make_automation):
        client = FakeMailClient()
        with (
            patch("mailpilot.cli.connect", AsyncMock(return_value=MagicMock())),
            patch("mailpilot.cli.disconnect", AsyncMock()),
            patch.object(ComposeAutomation, "for_session", return_value=make_automation(client)),
        ):
            result = runner.invoke(main, ["compose", "--subject", "later"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["dirty"] is True
        assert all(name != "_saveDraftAsync" for _, name in client.invocations)

    def test_not_attached(self, runner):
        with patch("mailpilot.cli.connect", AsyncMock(return_value=None)):
            result = runner.invoke(main, ["compose", "--subject", "x"])
        assert result.exit_code == 1
        assert "not attached" in result.output


class TestReply:
    def test_reply_saves_draft(self, runner, make_automation):
        client = FakeMailClient()
        with (
            patch("mailpilot.cli.connect", AsyncMock(return_value=MagicMock())),
            patch("mailpilot.cli.disconnect", AsyncMock()),
            patch.object(ComposeAutomation, "for_session", return_value=make_automation(client)),
        ):
            result = runner.invoke(main, ["reply", "thread-9", "--body", "Sounds good", "--mode", "forward", "--to", "c@example.com"])

        assert result.exit_code == 0, result.output
        state = json.loads(result.output)
        assert state["thread_id"] == "thread-9"
        assert state["body"] == "<p>Sounds good</p>"
        assert [r["email"] for r in state["to"]] == ["c@example.com"]
        assert client.triggered == ["FORWARD_POP_OUT"]
