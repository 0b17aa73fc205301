"""Configuration management for ConTUI."""

import os
import yaml
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, ValidationError
from dotenv import load_dotenv
from .errors import ConfigError

# Load environment variables
load_dotenv()


DEFAULT_SYSTEM_PROMPT = """You are ConTUI, a coding and operations assistant running inside the user's terminal.
You can act on the user's machine by writing action blocks in your reply. Available actions:

```create_file:<path>
<file content>
```

```read_file:<path>```

```edit_file:<path>
---OLD---
<exact text to replace>
---NEW---
<replacement text>
```

```append_file:<path>
<text to append>
```

```list_directory:<path>```

```show_diff```

```execute_command
<shell command>
```

```execute_command_silent
<shell command whose output does not need to be shown to the user>
```

Rules:
- Shell commands run only after the user approves them.
- File access is limited to the directories the user has allowed.
- The results of your actions are sent back to you; use them to correct mistakes.
- When the task is complete, end your reply with the line STATUS: COMPLETE.
  When more work is needed, end it with STATUS: CONTINUE."""


class LLMConfig(BaseModel):
    """Configuration for the generation endpoint."""
    provider: str = Field(default="gemini", description="LLM provider (gemini, openai, anthropic)")
    model: str = Field(default="gemini-1.5-flash", description="Model name")
    api_key: Optional[str] = Field(default=None, description="API key")
    base_url: Optional[str] = Field(default=None, description="Custom base URL")
    max_tokens: int = Field(default=1000, gt=0, description="Maximum output tokens per request")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Temperature for responses")
    request_timeout: float = Field(default=30.0, gt=0, description="Deadline for a single model call (seconds)")
    max_retries: int = Field(default=3, ge=1, description="Attempts made when the endpoint rate-limits")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt sent with every request")


class AgentConfig(BaseModel):
    """Main client configuration."""

    # Core settings
    name: str = Field(default="ConTUI", description="Client name")
    version: str = Field(default="1.0.0", description="Client version")

    # LLM settings
    llm: LLMConfig = Field(default_factory=LLMConfig)

    # Agent loop settings
    max_steps: int = Field(default=10, ge=1, le=10, description="Maximum agent loop steps per message")
    history_context_messages: int = Field(default=10, ge=0, description="History messages sent as context")

    # Sandbox settings
    allowed_directories: List[str] = Field(default_factory=list, description="Extra directories the agent may touch")
    grant_current_directory: bool = Field(default=True, description="Allow access to the working directory")
    grant_home_directory: bool = Field(default=True, description="Allow access to the home directory")
    max_file_size: int = Field(default=1_000_000, description="Max file size to read (bytes)")

    # Command settings
    command_timeout: float = Field(default=300.0, gt=0, description="Shell command timeout (seconds)")
    max_output_chars: int = Field(default=10_000, gt=0, description="Command output fed back to the model")

    # Interface settings
    log_file: Optional[str] = Field(default="debug.log", description="Debug log file (empty to disable)")
    verbose: bool = Field(default=False, description="Verbose output")
    color_output: bool = Field(default=True, description="Colored terminal output")


class ConfigManager:
    """Manages configuration loading and saving."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".contui" / "config.yaml"
        self._config: Optional[AgentConfig] = None

    def load_config(self) -> AgentConfig:
        """Load configuration from file or create default."""
        if self._config is not None:
            return self._config

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = yaml.safe_load(f) or {}
                self._config = AgentConfig(**data)
            except (OSError, yaml.YAMLError, ValidationError) as e:
                print(f"Warning: Could not load config from {self.config_path}: {e}")
                self._config = AgentConfig()
        else:
            self._config = AgentConfig()

        # Override with environment variables
        self._apply_env_overrides()
        return self._config

    def load_from_dict(self, data: dict) -> AgentConfig:
        """Validate a configuration mapping and make it current."""
        try:
            self._config = AgentConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        return self._config

    def save_config(self) -> None:
        """Save current configuration to file."""
        if self._config is None:
            return

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self._config.model_dump(exclude={"llm": {"api_key"}})
        with open(self.config_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False)

    def use_config_file(self, path) -> None:
        """Switch to another configuration file; it is loaded on next access."""
        self.config_path = Path(path)
        self._config = None

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if not self._config:
            return

        llm = self._config.llm

        # Provider keys
        if os.getenv("GEMINI_API_KEY"):
            llm.api_key = os.getenv("GEMINI_API_KEY")
            llm.provider = "gemini"
        elif os.getenv("OPENAI_API_KEY"):
            llm.api_key = os.getenv("OPENAI_API_KEY")
            llm.provider = "openai"
        elif os.getenv("ANTHROPIC_API_KEY"):
            llm.api_key = os.getenv("ANTHROPIC_API_KEY")
            llm.provider = "anthropic"

        model = os.getenv("MODEL") or os.getenv("LLM_MODEL")
        if model:
            llm.model = model

        if os.getenv("LLM_BASE_URL"):
            llm.base_url = os.getenv("LLM_BASE_URL")

        max_tokens = os.getenv("MAX_TOKENS")
        if max_tokens:
            try:
                llm.max_tokens = int(max_tokens)
            except ValueError:
                print(f"Warning: ignoring MAX_TOKENS={max_tokens!r}")

        temperature = os.getenv("TEMPERATURE")
        if temperature:
            try:
                llm.temperature = float(temperature)
            except ValueError:
                print(f"Warning: ignoring TEMPERATURE={temperature!r}")

    @property
    def config(self) -> AgentConfig:
        """Get current configuration."""
        if self._config is None:
            self.load_config()
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration values."""
        if self._config is None:
            self.load_config()

        for key, value in kwargs.items():
            if hasattr(self._config, key):
                setattr(self._config, key, value)

        self.save_config()

    def set_value(self, dotted_key: str, value: str) -> None:
        """Set a (possibly nested) value such as ``llm.model`` and save."""
        keys = dotted_key.split(".")
        current = self.config

        # Navigate to the parent object
        for k in keys[:-1]:
            if not hasattr(current, k):
                raise ConfigError(f"Unknown configuration key: {dotted_key}")
            current = getattr(current, k)

        field = keys[-1]
        if field not in type(current).model_fields:
            raise ConfigError(f"Unknown configuration key: {dotted_key}")

        try:
            updated = current.model_validate({**current.model_dump(), field: value})
        except ValidationError as e:
            raise ConfigError(f"Invalid value for {dotted_key}: {e}") from e
        setattr(current, field, getattr(updated, field))

        self.save_config()


# Global config manager instance
config_manager = ConfigManager()
