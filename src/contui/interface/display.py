"""Display manager for rich terminal output."""

from typing import Any, Dict, List, Optional, Union
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree
from ..core.agent import ChatEvent, EventKind
from ..memory.session import ChatSession
from ..utils.config import config_manager


class DisplayManager:
    """Manages rich terminal display and formatting."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(
            color_system="auto" if config_manager.config.color_output else None
        )

    def print(self, *args, **kwargs) -> None:
        """Print with rich formatting."""
        self.console.print(*args, **kwargs)

    def print_panel(
        self,
        content: Union[str, Text, Markdown],
        title: Optional[str] = None,
        style: str = "blue",
        border_style: str = "blue"
    ) -> None:
        """Print content in a panel."""
        self.console.print(Panel(content, title=title, style=style, border_style=border_style, padding=(1, 2)))

    def print_header(self, text: str, style: str = "bold blue") -> None:
        self.console.print(f"\n{text}", style=style)
        self.console.print("─" * len(text), style=style)

    def print_error(self, message: str, details: Optional[str] = None) -> None:
        """Print an error message."""
        self._print_status("ERROR", message, details, "red", "Error")

    def print_warning(self, message: str, details: Optional[str] = None) -> None:
        """Print a warning message."""
        self._print_status("WARNING", message, details, "yellow", "Warning")

    def print_success(self, message: str, details: Optional[str] = None) -> None:
        self._print_status("SUCCESS", message, details, "green", "Success")

    def _print_status(self, label: str, message: str, details: Optional[str], color: str, title: str) -> None:
        text = Text(f"{label}: ", style=f"bold {color}")
        text.append(message, style=color)
        if details:
            text = Text.assemble(text, "\n\n", details)
        self.print_panel(text, title=title, style=color, border_style=color)

    def print_help(self, commands: Dict[str, str]) -> None:
        """Print help information."""
        self.print_header("🆘 Available Commands")

        table = Table()
        table.add_column("Command", style="cyan")
        table.add_column("Description", style="white")
        for command, description in commands.items():
            table.add_row(command, description)

        self.console.print(table)

    def print_tree(self, root_data: Dict[str, Any], title: Optional[str] = None) -> None:
        """Print nested data (configuration, provider info) as a tree."""
        tree = Tree(title or "Data Structure")
        self._add_tree_nodes(tree, root_data)
        self.console.print(tree)

    def _add_tree_nodes(self, parent, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                if isinstance(value, (dict, list)) and value:
                    branch = parent.add(f"[bold]{key}[/bold]")
                    self._add_tree_nodes(branch, value)
                else:
                    parent.add(f"{key}: {value}")
        elif isinstance(data, list):
            for i, item in enumerate(data):
                parent.add(f"[{i}]: {item}")
        else:
            parent.add(str(data))

    def print_sessions(self, sessions: List[ChatSession], current_id: Optional[str] = None) -> None:
        """Print the chat sessions, most recent first."""
        if not sessions:
            self.print("No sessions", style="dim")
            return

        table = Table(title="Chat Sessions")
        table.add_column("", width=1)
        table.add_column("Id", style="cyan")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Updated", style="dim")
        for session in sessions:
            table.add_row(
                "*" if session.id == current_id else "",
                session.id[:8],
                session.title,
                str(len(session.messages)),
                session.updated_at.strftime("%Y-%m-%d %H:%M")
            )
        self.console.print(table)

    def print_diff(self, diff_text: str) -> None:
        """Print unified diff text with colored lines."""
        text = Text()
        for line in diff_text.splitlines():
            if line.startswith('+++') or line.startswith('---'):
                text.append(line, style="bold")
            elif line.startswith('@@'):
                text.append(line, style="cyan")
            elif line.startswith('+'):
                text.append(line, style="green")
            elif line.startswith('-'):
                text.append(line, style="red")
            else:
                text.append(line)
            text.append("\n")
        self.print_panel(text, title="Diff", style="white", border_style="white")

    def print_event(self, event: ChatEvent) -> None:
        """Render one agent loop event."""
        if event.kind == EventKind.PROGRESS:
            self.console.print(event.text, style="dim", highlight=False, markup=False)
        elif event.kind == EventKind.FINAL_RESPONSE:
            self.print_panel(Markdown(event.text), title="🤖 Response", style="green", border_style="green")
        elif event.kind == EventKind.WARNING:
            notice = event.data.get("notice")
            if notice:
                # Step cap reached: the text is the last model response.
                self.print_panel(Markdown(event.text), title="🤖 Last response", style="yellow", border_style="yellow")
                self.print_warning(notice)
            else:
                self.print_warning(event.text)
        elif event.kind == EventKind.ERROR:
            self.print_error(event.text)
        elif event.kind == EventKind.REQUEST_COMMAND_CONFIRMATION:
            pass  # rendered by the command approval prompt
        elif event.kind == EventKind.DIRECTORY_CHANGED:
            self.console.print("📁 Working directory contents changed", style="cyan")
        elif event.kind == EventKind.SESSION_FINISHED:
            self.print_separator()

    def print_separator(self, char: str = "─", style: str = "dim") -> None:
        width = self.console.size.width
        self.console.print(char * width, style=style)

    def clear_screen(self) -> None:
        self.console.clear()


# Global display manager instance
display = DisplayManager()
