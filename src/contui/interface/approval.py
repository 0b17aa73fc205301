"""Approval of shell commands requested by the model."""

from enum import Enum
from typing import List, Optional, Set
from .display import DisplayManager, display


class ApprovalResult(str, Enum):
    """Answers to a command confirmation."""
    APPROVED = "approved"
    DENIED = "denied"
    ALWAYS_ALLOW = "always_allow"


HIGH_RISK_PATTERNS = [
    "rm ", "rmdir", "mkfs", "dd ", "format", "truncate", "shutdown", "reboot",
    "sudo", "su ", "chmod 777", "chown", "git push", "git reset --hard", "> /dev/",
]

MEDIUM_RISK_PATTERNS = [
    "mv ", "cp ", "install", "curl", "wget", "git commit", "git checkout", ">",
]


class CommandApproval:
    """
    Decides and renders command confirmations.

    Commands answered with "always" are approved without asking again for the
    rest of the process; ``auto_approve`` approves everything.
    """

    def __init__(self, auto_approve: bool = False, ui: Optional[DisplayManager] = None):
        self.auto_approve = auto_approve
        self.always_allowed: Set[str] = set()
        self.ui = ui or display

    def decide(self, command: str) -> Optional[bool]:
        """An answer that needs no prompt, or None when the user must be asked."""
        if self.auto_approve or command in self.always_allowed:
            return True
        return None

    @staticmethod
    def parse_answer(answer: str) -> Optional[ApprovalResult]:
        """Map a typed answer to a result; None when it is not a valid answer."""
        answer = answer.strip().lower()
        if answer in ("y", "yes", "approve"):
            return ApprovalResult.APPROVED
        if answer in ("n", "no", "deny"):
            return ApprovalResult.DENIED
        if answer in ("a", "always"):
            return ApprovalResult.ALWAYS_ALLOW
        return None

    def record(self, command: str, result: ApprovalResult) -> bool:
        """Remember ``always`` answers; returns whether the command is approved."""
        if result == ApprovalResult.ALWAYS_ALLOW:
            self.always_allowed.add(command)
        return result in (ApprovalResult.APPROVED, ApprovalResult.ALWAYS_ALLOW)

    @staticmethod
    def assess_risk(command: str) -> str:
        """Rough risk level of a shell command: low, medium or high."""
        text = f" {command.lower()} "
        if any(pattern in text for pattern in HIGH_RISK_PATTERNS):
            return "high"
        if any(pattern in text for pattern in MEDIUM_RISK_PATTERNS):
            return "medium"
        return "low"

    def show_request(self, command: str, silent: bool = False) -> None:
        """Render the confirmation panel and the accepted answers."""
        risk = self.assess_risk(command)
        risk_color = {"low": "green", "medium": "yellow", "high": "red"}[risk]

        self.ui.print_panel(
            command,
            title="🔐 Approval Required: Command Execution",
            style="yellow",
            border_style="yellow"
        )
        self.ui.print(f"Risk Level: [{risk_color}]{risk.upper()}[/{risk_color}]")
        if silent:
            self.ui.print("Output will be sent to the model without being shown here.", style="dim")

        for line in self.option_lines():
            self.ui.print(line)

    @staticmethod
    def option_lines() -> List[str]:
        return [
            "  [bold green]y[/bold green] - Run this command",
            "  [bold red]n[/bold red] - Reject this command",
            "  [bold cyan]a[/bold cyan] - Always run this exact command",
        ]
