"""Tests for the terminal interface, command approval and event rendering."""

from unittest.mock import Mock

import pytest
from prompt_toolkit.application import create_app_session
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput
from rich.console import Console

from contui.core.agent import ChatEvent, EventKind
from contui.interface.approval import ApprovalResult, CommandApproval
from contui.interface.display import DisplayManager
from contui.interface.terminal import TerminalInterface


@pytest.fixture
def recording_display():
    return DisplayManager(Console(record=True, width=100, color_system=None))


@pytest.fixture
def terminal(mock_llm, make_controller):
    """Terminal interface on a dummy prompt_toolkit session and a mocked UI."""
    def _create(*replies, auto_approve=False):
        controller = make_controller(mock_llm(*replies))
        ui = Mock(spec=DisplayManager)
        with create_pipe_input() as pipe_input:
            with create_app_session(input=pipe_input, output=DummyOutput()):
                interface = TerminalInterface(controller, CommandApproval(auto_approve=auto_approve, ui=ui), ui=ui)
        interface.history.ensure_active_session()
        return interface

    return _create


class TestCommandApproval:

    @pytest.mark.parametrize("answer,expected", [
        ("y", ApprovalResult.APPROVED),
        (" YES ", ApprovalResult.APPROVED),
        ("n", ApprovalResult.DENIED),
        ("always", ApprovalResult.ALWAYS_ALLOW),
        ("maybe", None),
    ])
    def test_parse_answer(self, answer, expected):
        assert CommandApproval.parse_answer(answer) == expected

    def test_always_allow_is_remembered_per_command(self):
        approval = CommandApproval(ui=Mock())

        assert approval.record("make test", ApprovalResult.ALWAYS_ALLOW)
        assert approval.decide("make test") is True
        assert approval.decide("make clean") is None

    def test_denied(self):
        approval = CommandApproval(ui=Mock())

        assert not approval.record("rm -rf build", ApprovalResult.DENIED)
        assert approval.decide("rm -rf build") is None

    def test_auto_approve(self):
        assert CommandApproval(auto_approve=True, ui=Mock()).decide("anything") is True

    @pytest.mark.parametrize("command,risk", [
        ("ls -la", "low"),
        ("pip install requests", "medium"),
        ("sudo rm -rf /", "high"),
    ])
    def test_assess_risk(self, command, risk):
        assert CommandApproval.assess_risk(command) == risk


class TestPrintEvent:

    def test_exhaustion_shows_last_response_and_notice(self, recording_display):
        recording_display.print_event(ChatEvent(
            kind=EventKind.WARNING,
            text="partial answer",
            data={"notice": "No completion signal after 10 steps; stopping."}
        ))

        output = recording_display.console.export_text()
        assert "Last response" in output
        assert "partial answer" in output
        assert "No completion signal after 10 steps" in output

    def test_progress_is_printed_verbatim(self, recording_display):
        recording_display.print_event(ChatEvent(kind=EventKind.PROGRESS, text="[bold]not markup[/bold]"))

        assert "[bold]not markup[/bold]" in recording_display.console.export_text()

    def test_final_response(self, recording_display):
        recording_display.print_event(ChatEvent(kind=EventKind.FINAL_RESPONSE, text="**Done**"))

        output = recording_display.console.export_text()
        assert "Response" in output
        assert "Done" in output


class TestTerminalInterface:

    async def test_confirmation_request_waits_for_answer(self, terminal):
        interface = terminal()
        interface.controller.confirm_command = Mock(return_value=True)

        interface.handle_event(ChatEvent(
            kind=EventKind.REQUEST_COMMAND_CONFIRMATION,
            text="make",
            data={"command": "make", "silent": False}
        ))

        assert interface.awaiting_command == "make"
        assert interface._prompt_message().startswith("🔐")
        interface.controller.confirm_command.assert_not_called()

        await interface.handle_input("maybe")
        assert interface.awaiting_command == "make"

        await interface.handle_input("a")
        interface.controller.confirm_command.assert_called_once_with(True)
        assert interface.awaiting_command is None
        assert interface.approval.decide("make") is True

    async def test_auto_approved_confirmation(self, terminal):
        interface = terminal(auto_approve=True)
        interface.controller.confirm_command = Mock(return_value=True)

        interface.handle_event(ChatEvent(
            kind=EventKind.REQUEST_COMMAND_CONFIRMATION,
            data={"command": "make"}
        ))

        interface.controller.confirm_command.assert_called_once_with(True)
        assert interface.awaiting_command is None

    async def test_chat_message_is_submitted(self, terminal):
        interface = terminal("STATUS: COMPLETE")

        await interface.handle_input("hello there")
        await interface.controller.wait_until_idle()

        assert interface.controller.agent_loop.llm.chat.await_count == 1

    async def test_now_command_sends_immediately(self, terminal):
        interface = terminal()
        interface.controller.send_now = Mock(return_value=True)

        await interface.handle_input("/now stop and do this")

        interface.controller.send_now.assert_called_once_with("stop and do this")

    async def test_clearlog(self, terminal):
        interface = terminal()
        interface.history.add_message("hi", is_user=True)

        await interface.handle_input("/clearlog")

        assert interface.history.current_session.messages == []
        interface.ui.print_success.assert_called_once()

    async def test_switch_by_id_prefix(self, terminal):
        interface = terminal()
        first = interface.history.current_session_id
        interface.history.new_session("second")

        await interface.handle_input(f"/switch {first[:6]}")

        assert interface.history.current_session_id == first

    async def test_delete_keeps_an_active_session(self, terminal):
        interface = terminal()
        current = interface.history.current_session_id

        await interface.handle_input(f"/delete {current}")

        assert current not in interface.history.sessions
        assert interface.history.current_session is not None

    async def test_quit(self, terminal):
        interface = terminal()
        interface.running = True

        await interface.handle_input("quit")

        assert not interface.running
