"""Command-line interface for ConTUI."""

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional
import click
from . import __version__
from .core.agent import AgentController, AgentLoop, EventKind
from .interface.approval import CommandApproval
from .interface.display import display
from .interface.terminal import TerminalInterface
from .llm.manager import LLMManager
from .memory.session import ChatHistory
from .tools.executor import ActionExecutor
from .tools.sandbox import FileAccessGuard
from .utils.config import AgentConfig, config_manager
from .utils.errors import ConfigError, SandboxError
from .utils.log import setup_logging


def build_guard(config: AgentConfig) -> FileAccessGuard:
    """Sandbox with the working directory, home directory and configured extras."""
    guard = FileAccessGuard()
    directories = []
    if config.grant_current_directory:
        directories.append(os.getcwd())
    if config.grant_home_directory:
        directories.append(str(Path.home()))
    directories.extend(config.allowed_directories)

    for directory in directories:
        try:
            guard.grant(directory)
        except SandboxError as e:
            display.print_warning(str(e))
    return guard


def build_controller(config: AgentConfig) -> AgentController:
    """Wire the transport, executor, history and agent loop together."""
    executor = ActionExecutor(build_guard(config), config)
    agent_loop = AgentLoop(
        llm=LLMManager(config.llm),
        executor=executor,
        history=ChatHistory(),
        config=config
    )
    return AgentController(agent_loop)


def _apply_options(verbose: bool, provider: Optional[str], model: Optional[str]) -> AgentConfig:
    config = config_manager.config
    if verbose:
        config.verbose = True
    if provider:
        config.llm.provider = provider
    if model:
        config.llm.model = model
    setup_logging(config.log_file, config.verbose)
    return config


def _check_api_key(config: AgentConfig) -> bool:
    if config.llm.api_key:
        return True
    display.print_error(
        "No LLM API key found. Please set GEMINI_API_KEY, OPENAI_API_KEY or ANTHROPIC_API_KEY.",
        "Keys can also be placed in a .env file in the working directory."
    )
    return False


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Configuration file path")
def cli(config_path):
    """ConTUI - a terminal chat client that lets the model act on your files."""
    if config_path:
        config_manager.use_config_file(config_path)


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--provider", "-p", help="LLM provider (gemini, openai, anthropic)")
@click.option("--model", "-m", help="Model name")
@click.option("--yes", "-y", "auto_approve", is_flag=True, help="Run model commands without asking")
def start(verbose, provider, model, auto_approve):
    """Start the interactive chat."""
    config = _apply_options(verbose, provider, model)
    if not _check_api_key(config):
        sys.exit(1)

    async def run():
        controller = build_controller(config)
        interface = TerminalInterface(controller, CommandApproval(auto_approve=auto_approve))
        await interface.start()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        display.print("\n👋 ConTUI stopped", style="yellow")


@cli.command()
@click.argument("message")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--provider", "-p", help="LLM provider (gemini, openai, anthropic)")
@click.option("--model", "-m", help="Model name")
@click.option("--yes", "-y", "auto_approve", is_flag=True, help="Run model commands without asking")
def chat(message, verbose, provider, model, auto_approve):
    """Send a single message and print the events until the session ends."""
    config = _apply_options(verbose, provider, model)
    if not _check_api_key(config):
        sys.exit(1)

    async def single_chat() -> bool:
        controller = build_controller(config)
        approval = CommandApproval(auto_approve=auto_approve)
        controller.submit(message)

        succeeded = True
        while True:
            event = await controller.events.get()
            if event.kind == EventKind.REQUEST_COMMAND_CONFIRMATION:
                command = event.data.get("command", event.text)
                approved = approval.decide(command)
                if approved is None:
                    approval.show_request(command, silent=event.data.get("silent", False))
                    loop = asyncio.get_running_loop()
                    approved = await loop.run_in_executor(
                        None, lambda: click.confirm("Run this command?", default=False)
                    )
                controller.confirm_command(approved)
                continue

            display.print_event(event)
            if event.kind == EventKind.ERROR:
                succeeded = False
            if event.kind == EventKind.SESSION_FINISHED and not controller.is_busy:
                return succeeded

    try:
        if not asyncio.run(single_chat()):
            sys.exit(1)
    except KeyboardInterrupt:
        display.print("\nChat interrupted", style="yellow")


@cli.command()
def config():
    """Show current configuration."""
    data = config_manager.config.model_dump(exclude={"llm": {"api_key", "system_prompt"}})
    data["config_file"] = str(config_manager.config_path)
    display.print_tree(data, "⚙️  Current Configuration")


@cli.command()
@click.option("--key", "-k", required=True, help="Configuration key, e.g. llm.model")
@click.option("--value", "-v", required=True, help="Configuration value")
def set_config(key, value):
    """Set a configuration value and save it."""
    try:
        config_manager.set_value(key, value)
    except ConfigError as e:
        display.print_error(f"Failed to set configuration: {e}")
        sys.exit(1)
    display.print_success(f"Set {key} = {value}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
