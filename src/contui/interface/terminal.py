"""Main terminal interface for ConTUI."""

import asyncio
import logging
from typing import Optional
from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout
from .approval import CommandApproval
from .display import DisplayManager, display
from ..core.agent import AgentController, ChatEvent, EventKind
from ..tools.git import GitTool
from ..utils.config import config_manager
from ..utils.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


class TerminalInterface:
    """
    Interactive chat front-end.

    Input is read with prompt_toolkit while a separate task renders events
    from the agent loop. A line typed while a session runs is queued; ``/now``
    preempts the running session instead.
    """

    def __init__(
        self,
        controller: AgentController,
        approval: Optional[CommandApproval] = None,
        ui: Optional[DisplayManager] = None
    ):
        self.controller = controller
        self.history = controller.agent_loop.history
        self.ui = ui or display
        self.approval = approval or CommandApproval(ui=self.ui)
        self.session = PromptSession(
            history=InMemoryHistory(),
            auto_suggest=AutoSuggestFromHistory(),
            complete_style="column"
        )
        self.running = False
        self.awaiting_command: Optional[str] = None
        self.commands = {
            "help": "Show available commands",
            "quit": "Exit ConTUI",
            "clear": "Clear the screen",
            "status": "Show session and provider status",
            "config": "Show configuration",
            "/now <message>": "Cancel the running session and send immediately",
            "/cancel": "Cancel the running session",
            "/clearlog": "Delete all messages of the current chat session",
            "/new": "Start a new chat session",
            "/sessions": "List chat sessions",
            "/switch <id>": "Switch to a chat session (id prefix)",
            "/delete <id>": "Delete a chat session (id prefix)",
            "/diff": "Show git diff of the working tree",
            "@file:<path>": "Attach a file to your message",
        }

    async def start(self) -> None:
        """Run the chat until the user quits."""
        self.running = True
        self.history.ensure_active_session()
        self._show_welcome()

        consumer = asyncio.create_task(self.consume_events())
        try:
            with patch_stdout():
                while self.running:
                    await self._interaction_loop()
        finally:
            self.controller.cancel_active_session()
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
            self.ui.print("👋 Goodbye!", style="cyan")

    def _show_welcome(self) -> None:
        config = config_manager.config
        welcome_text = (
            f"🤖 {config.name} v{config.version}\n\n"
            "Ask for changes to your files or commands to run; the model works\n"
            "through them step by step and asks before running any command.\n\n"
            "Type 'help' for available commands or just start chatting!"
        )
        self.ui.print_panel(welcome_text, title="Welcome", style="bold cyan", border_style="cyan")

        info = self.controller.agent_loop.llm.get_provider_info()
        self.ui.print(f"🤖 LLM provider: {info['provider']} ({info['model']})")
        roots = self.controller.agent_loop.executor.guard.roots
        self.ui.print(f"📂 Allowed directories: {', '.join(str(root) for root in roots) or 'none'}")
        self.ui.print_separator()

    async def consume_events(self) -> None:
        """Render agent loop events as they arrive."""
        while True:
            event = await self.controller.events.get()
            try:
                self.handle_event(event)
            except Exception:
                logger.exception("Failed to render event %s", event.kind)

    def handle_event(self, event: ChatEvent) -> None:
        if event.kind == EventKind.REQUEST_COMMAND_CONFIRMATION:
            command = event.data.get("command", event.text)
            decided = self.approval.decide(command)
            if decided is not None:
                self.ui.print(f"✅ Auto-approved: {command}", style="green")
                self.controller.confirm_command(decided)
                return

            self.approval.show_request(command, silent=event.data.get("silent", False))
            self.awaiting_command = command
            self._refresh_prompt()
            return

        if event.kind == EventKind.SESSION_FINISHED and self.awaiting_command is not None:
            self.awaiting_command = None
            self._refresh_prompt()

        self.ui.print_event(event)

    def _refresh_prompt(self) -> None:
        app = self.session.app
        if app.is_running:
            app.invalidate()

    def _prompt_message(self) -> str:
        if self.awaiting_command is not None:
            return "🔐 Run command? [y/n/a]: "
        return "💬 You: "

    async def _interaction_loop(self) -> None:
        completer = WordCompleter(
            [command.split()[0] for command in self.commands],
            ignore_case=True
        )
        try:
            user_input = await self.session.prompt_async(self._prompt_message, completer=completer)
        except EOFError:
            self.running = False
            return
        except KeyboardInterrupt:
            if self.controller.cancel_active_session():
                self.ui.print("Session cancelled", style="yellow")
            else:
                self.ui.print("\nUse 'quit' to exit gracefully", style="yellow")
            return

        await self.handle_input(user_input)

    async def handle_input(self, user_input: str) -> None:
        """Route one line: confirmation answer, command, or chat message."""
        text = user_input.strip()
        if not text:
            return

        if self.awaiting_command is not None:
            result = self.approval.parse_answer(text)
            if result is None:
                self.ui.print("Invalid choice. Please enter y, n or a", style="red")
                return
            approved = self.approval.record(self.awaiting_command, result)
            self.awaiting_command = None
            self.controller.confirm_command(approved)
            return

        if await self._handle_special_commands(text):
            return

        if self.controller.is_busy:
            self.ui.print("⏳ The model is still working; your message will be sent afterwards.", style="dim")
        self.controller.submit(text)

    async def _handle_special_commands(self, text: str) -> bool:
        """Handle special commands. Returns True if the input was a command."""
        command, _, argument = text.partition(" ")
        command = command.lower()
        argument = argument.strip()

        if command == "help":
            self.ui.print_help(self.commands)
        elif command in ("quit", "exit", "bye"):
            self.running = False
        elif command == "clear":
            self.ui.clear_screen()
            self._show_welcome()
        elif command == "status":
            self._show_status()
        elif command == "config":
            self.ui.print_tree(config_manager.config.model_dump(exclude={"llm": {"api_key", "system_prompt"}}), "⚙️  Configuration")
        elif command == "/now":
            if not argument:
                self.ui.print("Usage: /now <message>", style="yellow")
            else:
                self.controller.send_now(argument)
        elif command == "/cancel":
            if not self.controller.cancel_active_session():
                self.ui.print("No session is running", style="dim")
        elif command == "/clearlog":
            count = self.history.clear_messages()
            self.ui.print_success(f"Deleted {count} message(s) from the current session")
        elif command == "/new":
            self.history.new_session(argument or None)
            self.ui.print_success("Started a new chat session")
        elif command == "/sessions":
            self.ui.print_sessions(self.history.get_session_list(), self.history.current_session_id)
        elif command in ("/switch", "/delete"):
            self._session_command(command, argument)
        elif command == "/diff":
            result = await GitTool().show_diff()
            self.ui.print_diff(result.detail)
        else:
            return False
        return True

    def _session_command(self, command: str, prefix: str) -> None:
        matches = [s.id for s in self.history.get_session_list() if prefix and s.id.startswith(prefix)]
        if len(matches) != 1:
            self.ui.print_warning(f"No unique session matches '{prefix}'")
            return

        try:
            if command == "/switch":
                self.history.switch_session(matches[0])
                self.ui.print_success(f"Switched to session {matches[0][:8]}")
            else:
                self.history.delete_session(matches[0])
                self.history.ensure_active_session()
                self.ui.print_success(f"Deleted session {matches[0][:8]}")
        except SessionNotFoundError as e:
            self.ui.print_error(str(e))

    def _show_status(self) -> None:
        controller = self.controller
        session = controller.session
        status = {
            "state": controller.state.value,
            "step": session.step if session else 0,
            "pending messages": len(controller.pending_sends),
            "awaiting confirmation": controller.pending_confirmation.command if controller.pending_confirmation else "-",
            "provider": controller.agent_loop.llm.get_provider_info(),
            "allowed directories": [str(root) for root in controller.agent_loop.executor.guard.roots],
        }
        self.ui.print_tree(status, "ℹ️  Status")
