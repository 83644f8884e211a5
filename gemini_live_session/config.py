"""Configuration for live sessions.

Configuration is passed programmatically by the enclosing application,
either as a ``LiveSessionConfig`` or as a plain dict validated by
``CONFIG_SCHEMA``. ``from_env`` is a convenience for local experiments.
"""
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any

import voluptuous as vol

from .const import (
    DEFAULT_ACTIVE_TOOLS,
    DEFAULT_CREDENTIAL_MINUTES,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_MODEL,
    DEFAULT_THINKING_BUDGET,
    DEFAULT_VOICE,
)

CONF_API_KEY = "api_key"
CONF_MODEL = "model"
CONF_VOICE = "voice"
CONF_SYSTEM_INSTRUCTION = "system_instruction"
CONF_TRANSCRIPTION = "transcription"
CONF_THINKING = "thinking"
CONF_THINKING_BUDGET = "thinking_budget"
CONF_INCLUDE_THOUGHTS = "include_thoughts"
CONF_USE_GOOGLE_SEARCH = "use_google_search"
CONF_ACTIVE_TOOLS = "active_tools"
CONF_USE_EPHEMERAL = "use_ephemeral"
CONF_CREDENTIAL_MINUTES = "credential_minutes"
CONF_ENABLE_SESSION_RESUMPTION = "enable_session_resumption"
CONF_MICROPHONE_DEVICE = "microphone_device"
CONF_CAMERA_INDEX = "camera_index"

_DEVICE = vol.Any(None, vol.Coerce(int), str)

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_API_KEY): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_MODEL, default=DEFAULT_MODEL): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_VOICE, default=DEFAULT_VOICE): str,
        vol.Optional(CONF_SYSTEM_INSTRUCTION, default=DEFAULT_INSTRUCTIONS): str,
        vol.Optional(CONF_TRANSCRIPTION, default=True): bool,
        vol.Optional(CONF_THINKING, default=True): bool,
        vol.Optional(CONF_THINKING_BUDGET, default=DEFAULT_THINKING_BUDGET): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional(CONF_INCLUDE_THOUGHTS, default=True): bool,
        vol.Optional(CONF_USE_GOOGLE_SEARCH, default=False): bool,
        vol.Optional(CONF_ACTIVE_TOOLS, default=list(DEFAULT_ACTIVE_TOOLS)): [str],
        vol.Optional(CONF_USE_EPHEMERAL, default=True): bool,
        vol.Optional(CONF_CREDENTIAL_MINUTES, default=DEFAULT_CREDENTIAL_MINUTES): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional(CONF_ENABLE_SESSION_RESUMPTION, default=True): bool,
        vol.Optional(CONF_MICROPHONE_DEVICE, default=None): _DEVICE,
        vol.Optional(CONF_CAMERA_INDEX, default=0): vol.All(vol.Coerce(int), vol.Range(min=0)),
    }
)


@dataclass
class LiveSessionConfig:
    """Configuration for a Gemini Live session.

    Attributes:
        api_key: Gemini API key (used directly, or to mint ephemeral tokens).
        model: Live model id.
        voice: Prebuilt voice name.
        system_instruction: System instruction text.
        transcription: Enable input and output audio transcription.
        thinking: Enable thinking; the budget is 0 when disabled.
        thinking_budget: Thinking token budget when thinking is enabled.
        include_thoughts: Ask the model to stream thought summaries.
        use_google_search: Add the Google Search tool.
        active_tools: Names of registered function tools to declare.
        use_ephemeral: Provision a single-use token before each connect.
        credential_minutes: Lifetime of each ephemeral token.
        enable_session_resumption: Request resumption handles from the server.
        microphone_device: sounddevice input device (None for default).
        camera_index: OpenCV camera index.
    """

    api_key: str
    model: str = DEFAULT_MODEL
    voice: str = DEFAULT_VOICE
    system_instruction: str = DEFAULT_INSTRUCTIONS
    transcription: bool = True
    thinking: bool = True
    thinking_budget: int = DEFAULT_THINKING_BUDGET
    include_thoughts: bool = True
    use_google_search: bool = False
    active_tools: list[str] = field(default_factory=lambda: list(DEFAULT_ACTIVE_TOOLS))
    use_ephemeral: bool = True
    credential_minutes: float = DEFAULT_CREDENTIAL_MINUTES
    enable_session_resumption: bool = True
    microphone_device: int | str | None = None
    camera_index: int = 0

    @property
    def effective_thinking_budget(self) -> int:
        return self.thinking_budget if self.thinking else 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LiveSessionConfig:
        """Validate ``data`` against CONFIG_SCHEMA and build a config.

        Raises:
            vol.Invalid: when the dict does not match the schema.
        """
        return cls(**CONFIG_SCHEMA(dict(data)))

    @classmethod
    def from_env(cls) -> LiveSessionConfig:
        """Build a config from environment variables.

        Supported variables:
            - GEMINI_API_KEY: API key (required).
            - GEMINI_LIVE_MODEL: Live model id.
            - GEMINI_LIVE_VOICE: Prebuilt voice name.
            - GEMINI_LIVE_SYSTEM_INSTRUCTION: System instruction text.
            - GEMINI_LIVE_EPHEMERAL: "true"/"false" for ephemeral tokens.
            - GEMINI_LIVE_THINKING: "true"/"false".
            - GEMINI_LIVE_SEARCH: "true"/"false" for the Google Search tool.
            - GEMINI_LIVE_TOOLS: Comma separated tool names.
            - GEMINI_LIVE_CREDENTIAL_MINUTES: Ephemeral token lifetime.
            - GEMINI_LIVE_MIC_DEVICE: Input device index or name.
            - GEMINI_LIVE_CAMERA_INDEX: Camera index.
        """
        data: dict[str, Any] = {CONF_API_KEY: os.environ.get("GEMINI_API_KEY", "")}
        optional = {
            "GEMINI_LIVE_MODEL": CONF_MODEL,
            "GEMINI_LIVE_VOICE": CONF_VOICE,
            "GEMINI_LIVE_SYSTEM_INSTRUCTION": CONF_SYSTEM_INSTRUCTION,
            "GEMINI_LIVE_CREDENTIAL_MINUTES": CONF_CREDENTIAL_MINUTES,
            "GEMINI_LIVE_MIC_DEVICE": CONF_MICROPHONE_DEVICE,
            "GEMINI_LIVE_CAMERA_INDEX": CONF_CAMERA_INDEX,
        }
        for env_name, key in optional.items():
            value = os.environ.get(env_name)
            if value:
                data[key] = value
        flags = {
            "GEMINI_LIVE_EPHEMERAL": CONF_USE_EPHEMERAL,
            "GEMINI_LIVE_THINKING": CONF_THINKING,
            "GEMINI_LIVE_SEARCH": CONF_USE_GOOGLE_SEARCH,
        }
        for env_name, key in flags.items():
            value = os.environ.get(env_name)
            if value:
                data[key] = value.strip().lower() in {"1", "true", "yes", "on"}
        tools = os.environ.get("GEMINI_LIVE_TOOLS")
        if tools is not None:
            data[CONF_ACTIVE_TOOLS] = [t.strip() for t in tools.split(",") if t.strip()]
        return cls.from_dict(data)

    def update(self, **kwargs: Any) -> None:
        """Update known fields in place; unknown keys are ignored."""
        names = {f.name for f in dataclasses.fields(self)}
        for key, value in kwargs.items():
            if key in names:
                setattr(self, key, value)
