"""Exception hierarchy shared across ConTUI."""


class ContuiError(Exception):
    """Base class for ConTUI errors."""


class ConfigError(ContuiError):
    """Configuration could not be loaded or validated."""


class ParseError(ContuiError):
    """An action block could not be parsed."""


class ActionNotFoundError(ParseError):
    """No block of the requested action type is present in the text."""

    def __init__(self, tag: str):
        super().__init__(f"No '{tag}' block found")
        self.tag = tag


class SandboxError(ContuiError):
    """A directory could not be granted to the sandbox."""


class SandboxDeniedError(SandboxError):
    """A path lies outside every granted root."""

    def __init__(self, path):
        super().__init__(f"Access denied to path: {path}")
        self.path = path


class TransportError(ContuiError):
    """The generation endpoint failed in a way that is not retried."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(TransportError):
    """The generation endpoint answered with HTTP 429."""


class LLMTimeoutError(ContuiError):
    """A single model call exceeded its deadline."""


class SessionNotFoundError(ContuiError):
    """No chat session with the given id exists."""

    def __init__(self, session_id):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
