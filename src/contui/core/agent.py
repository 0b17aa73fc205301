"""Agent loop: drives the model through multi-step action/result round-trips."""

import asyncio
import logging
import uuid
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field
from ..llm.base import Message
from ..llm.manager import LLMManager
from ..memory.session import ChatHistory
from ..tools.base import ActionResult, CommandConfirmation, ExecuteCommand
from ..tools.executor import ActionExecutor
from ..tools.filesystem import FileSystemTool
from ..tools.parser import ActionParser
from ..utils.config import AgentConfig, config_manager
from ..utils.errors import LLMTimeoutError, TransportError

logger = logging.getLogger(__name__)

COMPLETION_INSTRUCTION = (
    "---\n"
    "State explicitly what should happen next and whether any tasks remain.\n"
    "If the task is finished or nothing more needs to be done, say so clearly "
    "and end with the line STATUS: COMPLETE; otherwise end with STATUS: CONTINUE."
)

FILE_REFERENCE_PREFIX = "@file:"


class EventKind(str, Enum):
    """Events sent from the agent loop to the interface."""
    PROGRESS = "progress"
    FINAL_RESPONSE = "final_response"
    WARNING = "warning"
    ERROR = "error"
    REQUEST_COMMAND_CONFIRMATION = "request_command_confirmation"
    DIRECTORY_CHANGED = "directory_changed"
    SESSION_FINISHED = "session_finished"


class ChatEvent(BaseModel):
    kind: EventKind
    text: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {
    SessionState.FINISHED,
    SessionState.EXHAUSTED,
    SessionState.FAILED,
    SessionState.CANCELLED,
}


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    EMPTY_RESPONSE = "empty_response"
    INTERNAL = "internal"


class SessionFailed(Exception):
    """Raised inside a session to end it in the FAILED state."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class AgentSession:
    """State of one user request while the loop works on it."""

    def __init__(self, message: str):
        self.id = str(uuid.uuid4())
        self.message = message
        self.current_message = message
        self.step = 0
        self.state = SessionState.IDLE
        self.last_response = ""
        self.failure: Optional[FailureKind] = None
        self.preempted = False
        self.cancel_event = asyncio.Event()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def __repr__(self) -> str:
        return f"AgentSession(id={self.id[:8]}, step={self.step}, state={self.state.value})"


def parse_file_references(message: str) -> Tuple[str, List[str]]:
    """
    Split ``@file:<path>`` references out of a user message.

    Returns the message with the references removed and the referenced paths,
    sorted and de-duplicated.
    """
    paths = []
    words = []
    for word in message.split(" "):
        if word.startswith(FILE_REFERENCE_PREFIX):
            path = word[len(FILE_REFERENCE_PREFIX):].strip()
            if path:
                paths.append(path)
        else:
            words.append(word)
    return " ".join(words).strip(), sorted(set(paths))


MUTATING_ACTIONS = ("create_file", "edit_file", "append_file")


def fold_results(request: str, results: List[ActionResult]) -> str:
    """Build the follow-up prompt that reports action results back to the model."""
    lines = ["Results of the actions in your previous reply:", ""]
    for result in results:
        lines.append(result.summary())
        if result.success and result.action in MUTATING_ACTIONS:
            lines.append(result.detail)
        elif result.success:
            lines.append("```")
            lines.append(result.detail)
            lines.append("```")
        lines.append("")
    lines.append(f"Original request: {request}")
    lines.append("Continue the task using these results. Fix anything that failed.")
    return "\n".join(lines)


class AgentLoop:
    """
    Runs one session at a time through the step cycle.

    Each step sends the current message with the completion instruction,
    executes any actions in the reply, reports their results back to the
    model and checks the final reply for a finish signal. Sessions end
    FINISHED, EXHAUSTED after ``max_steps``, or FAILED on timeout, transport
    error or an empty reply.
    """

    def __init__(
        self,
        llm: LLMManager,
        executor: ActionExecutor,
        history: Optional[ChatHistory] = None,
        config: Optional[AgentConfig] = None,
        events: Optional["asyncio.Queue[ChatEvent]"] = None,
        parser: Optional[ActionParser] = None
    ):
        self.llm = llm
        self.executor = executor
        self.history = history or ChatHistory()
        self._config = config
        self.events: "asyncio.Queue[ChatEvent]" = events or asyncio.Queue()
        self.parser = parser or ActionParser()
        self.confirm_callback = None

    @property
    def config(self) -> AgentConfig:
        return self._config or config_manager.config

    def emit(self, kind: EventKind, text: str = "", **data: Any) -> None:
        self.events.put_nowait(ChatEvent(kind=kind, text=text, data=data))

    async def prepare_message(self, message: str) -> str:
        """Attach referenced files to the message and record it in the history."""
        clean, paths = parse_file_references(message)
        self.history.ensure_active_session()

        if not paths:
            self.history.add_message(clean, is_user=True)
            return clean

        prompt = clean or "Please analyze these files:"
        self.history.add_message(f"{prompt}\nFiles: {', '.join(paths)}", is_user=True)

        filesystem: FileSystemTool = self.executor.filesystem
        for path in paths:
            content = await filesystem.read_reference(path)
            if content is None:
                self.emit(EventKind.WARNING, f"Could not read referenced file: {path}")
                continue
            prompt += f"\n\n--- File: {path} ---\n{content}"
        return prompt

    async def run_session(self, session: AgentSession) -> SessionState:
        """Drive ``session`` to a terminal state and return it."""
        session.state = SessionState.RUNNING
        session.current_message = await self.prepare_message(session.message)
        max_steps = self.config.max_steps
        logger.info("Session %s started: %r", session.id[:8], session.message[:80])

        try:
            for step in range(1, max_steps + 1):
                if session.cancel_event.is_set():
                    session.state = SessionState.CANCELLED
                    return session.state

                session.step = step
                response = await self._run_step(session)
                session.last_response = response

                if self.llm.is_finished(response):
                    logger.info("Session %s finished at step %d", session.id[:8], step)
                    self.emit(EventKind.FINAL_RESPONSE, response, step=step)
                    session.state = SessionState.FINISHED
                    return session.state

                session.current_message = response
        except SessionFailed as e:
            logger.error("Session %s failed (%s): %s", session.id[:8], e.kind.value, e.message)
            self.emit(EventKind.ERROR, e.message, failure=e.kind.value)
            session.failure = e.kind
            session.state = SessionState.FAILED
            return session.state

        logger.info("Session %s stopped after %d steps without a finish signal", session.id[:8], max_steps)
        self.emit(
            EventKind.WARNING,
            session.last_response,
            steps=max_steps,
            notice=f"⚠️ No completion signal after {max_steps} steps; stopping."
        )
        session.state = SessionState.EXHAUSTED
        return session.state

    async def _run_step(self, session: AgentSession) -> str:
        step = session.step
        self.emit(EventKind.PROGRESS, f"🤖 Step {step}: querying the model...", step=step)

        prompt = f"{session.current_message}\n\n{COMPLETION_INSTRUCTION}"
        response = await self._ask(prompt, repeats_latest=True)
        self.emit(EventKind.PROGRESS, f"🤖 Step {step}: model response\n{response}", step=step)

        outcome = self.parser.parse(response)
        if outcome.is_empty:
            return response

        results = await self._perform(outcome.entries)
        followup = fold_results(session.message, results)
        response = await self._ask(followup, repeats_latest=False)
        self.emit(EventKind.PROGRESS, f"🤖 Step {step}: model response after actions\n{response}", step=step)
        return response

    async def _ask(self, prompt: str, repeats_latest: bool) -> str:
        """
        One model call under the request deadline.

        A step prompt repeats the latest history message (the user's message or
        the previous reply), so that message is left out of the context. Any
        other prompt is recorded as a user turn ahead of the reply.
        """
        context = self.history.get_conversation_context(
            self.config.history_context_messages, skip_latest=repeats_latest
        )
        timeout = self.llm.config.request_timeout

        try:
            response = await self._call_model(prompt, context, timeout)
        except LLMTimeoutError as e:
            raise SessionFailed(FailureKind.TIMEOUT, f"❌ {e}")
        except TransportError as e:
            raise SessionFailed(FailureKind.TRANSPORT, f"❌ Failed to communicate with the model: {e}")

        if not response or not response.strip():
            raise SessionFailed(FailureKind.EMPTY_RESPONSE, "❌ The model returned an empty response. Please try again.")

        if not repeats_latest:
            self.history.add_message(prompt, is_user=True)
        self.history.add_message(response, is_user=False)
        return response

    async def _call_model(self, prompt: str, context: List[Message], timeout: float) -> str:
        try:
            return await asyncio.wait_for(self.llm.chat(prompt, context), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"Model request timed out after {timeout:g}s") from e

    async def _perform(self, entries: list) -> List[ActionResult]:
        results: List[ActionResult] = await self.executor.execute_all(entries, confirm=self._confirm)

        for entry, result in zip(entries, results):
            if isinstance(entry, ExecuteCommand) and entry.silent:
                mark = "✅" if result.success else "❌"
                self.emit(EventKind.PROGRESS, f"{mark} silent command: {entry.command}")
            elif isinstance(entry, ExecuteCommand) and result.success:
                self.emit(EventKind.PROGRESS, f"{result.summary()}\n{result.detail}")
            else:
                self.emit(EventKind.PROGRESS, result.summary())

        if any(result.directory_changed for result in results):
            self.emit(EventKind.DIRECTORY_CHANGED)
        return results

    async def _confirm(self, confirmation: CommandConfirmation) -> bool:
        if self.confirm_callback is None:
            logger.warning("No confirmation handler; rejecting command %r", confirmation.command)
            return False
        return await self.confirm_callback(confirmation)


class AgentController:
    """
    Owns the single active session task.

    ``submit`` queues a message while a session runs; ``send_now`` cancels the
    running session and starts over. When a session ends, one queued message
    is dispatched.
    """

    def __init__(self, agent_loop: AgentLoop):
        self.agent_loop = agent_loop
        self.agent_loop.confirm_callback = self._request_confirmation
        self.pending_sends: Deque[str] = deque()
        self.session: Optional[AgentSession] = None
        self.pending_confirmation: Optional[CommandConfirmation] = None
        self._task: Optional[asyncio.Task] = None
        self._confirmation: Optional[asyncio.Future] = None

    @property
    def events(self) -> "asyncio.Queue[ChatEvent]":
        return self.agent_loop.events

    @property
    def is_busy(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> SessionState:
        if self.session is None:
            return SessionState.IDLE
        return self.session.state

    def submit(self, message: str) -> bool:
        """
        Send ``message``, or queue it while a session is running.

        Returns False for an empty message.
        """
        message = message.strip()
        if not message:
            return False

        if self.is_busy:
            self.pending_sends.append(message)
            logger.info("Queued message (%d pending)", len(self.pending_sends))
            self.agent_loop.emit(
                EventKind.PROGRESS,
                f"⏳ Message queued ({len(self.pending_sends)} pending)",
                pending=len(self.pending_sends)
            )
            return True

        self._start(message)
        return True

    def send_now(self, message: str) -> bool:
        """Cancel the running session, if any, and start one for ``message``."""
        message = message.strip()
        if not message:
            return False

        if self.is_busy:
            logger.info("Preempting session %s", self.session.id[:8])
            self.session.preempted = True
            self._abort()
        self._start(message)
        return True

    def confirm_command(self, approve: bool) -> bool:
        """Answer the pending command confirmation; False when none is pending."""
        future = self._confirmation
        if future is None or future.done():
            return False
        future.set_result(approve)
        return True

    def cancel_active_session(self) -> bool:
        """Cancel the running session; pending confirmations resolve as rejected."""
        if not self.is_busy:
            return False
        logger.info("Cancelling session %s", self.session.id[:8])
        self._abort()
        return True

    async def wait_until_idle(self) -> None:
        """Wait for the running session and every queued message to finish."""
        while self._task is not None:
            task = self._task
            await asyncio.gather(task, return_exceptions=True)
            if self._task is task:
                break

    def _abort(self) -> None:
        self.session.cancel_event.set()
        self.confirm_command(False)
        self._task.cancel()

    def _start(self, message: str) -> None:
        session = AgentSession(message)
        self.session = session
        task = asyncio.create_task(self._run(session))
        task.add_done_callback(lambda _: self._on_terminal(session))
        self._task = task

    async def _run(self, session: AgentSession) -> None:
        try:
            await self.agent_loop.run_session(session)
        except asyncio.CancelledError:
            session.state = SessionState.CANCELLED
            raise
        except Exception as e:
            logger.exception("Session %s crashed", session.id[:8])
            session.failure = FailureKind.INTERNAL
            session.state = SessionState.FAILED
            self.agent_loop.emit(EventKind.ERROR, f"❌ Unexpected error: {e}", failure=FailureKind.INTERNAL.value)

    def _on_terminal(self, session: AgentSession) -> None:
        if not session.is_terminal:
            # Cancelled before it got to run.
            session.state = SessionState.CANCELLED
        if session.state == SessionState.CANCELLED and not session.preempted:
            self.agent_loop.emit(EventKind.WARNING, "Session cancelled", cancelled=True)
        self.agent_loop.emit(
            EventKind.SESSION_FINISHED,
            session.state.value,
            session_id=session.id,
            state=session.state.value,
            steps=session.step
        )

        # A preempted session has already been replaced.
        if self.session is not session:
            return

        self._task = None
        if self.pending_sends:
            self._start(self.pending_sends.popleft())

    async def _request_confirmation(self, confirmation: CommandConfirmation) -> bool:
        future = asyncio.get_running_loop().create_future()
        self._confirmation = future
        self.pending_confirmation = confirmation
        self.agent_loop.emit(
            EventKind.REQUEST_COMMAND_CONFIRMATION,
            confirmation.command,
            command=confirmation.command,
            silent=confirmation.silent
        )
        try:
            return await future
        finally:
            if self._confirmation is future:
                self._confirmation = None
                self.pending_confirmation = None
