"""Local function tools invoked by the remote model.

The registry is small and fixed. Dispatch is synchronous and total: any
name without a handler is acknowledged with a generic ``ok`` so the model's
turn is never blocked, and handler faults become error payloads.
"""
from __future__ import annotations

import base64
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from google.genai import types

_LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], dict[str, Any]]

STATUS_OK = "ok"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

# Declarations available to live sessions
TOOL_LIBRARY: dict[str, dict[str, Any]] = {
    "get_weather": {
        "name": "get_weather",
        "description": "Get the current weather for a specific location.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "location": {
                    "type": "STRING",
                    "description": "City and state, e.g. San Francisco, CA",
                },
                "unit": {"type": "STRING", "enum": ["celsius", "fahrenheit"]},
            },
            "required": ["location"],
        },
    },
    "control_light": {
        "name": "control_light",
        "description": "Sets the brightness and color temperature of a light.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "brightness": {"type": "NUMBER", "description": "0-100 brightness level"},
                "color_temp": {"type": "STRING", "enum": ["warm", "cool", "daylight"]},
            },
            "required": ["brightness", "color_temp"],
        },
    },
    "get_stock_price": {
        "name": "get_stock_price",
        "description": "Retrieve real-time or historical stock performance for a given symbol.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "symbol": {"type": "STRING", "description": "The stock ticker symbol, e.g. GOOGL"},
                "timeframe": {"type": "STRING", "enum": ["1d", "1w", "1m", "1y", "max"]},
            },
            "required": ["symbol"],
        },
    },
    "generate_image_description": {
        "name": "generate_image_description",
        "description": (
            "Generate a highly detailed, prompt-engineered description for an "
            "image gen model based on user intent."
        ),
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "concept": {"type": "STRING", "description": "The core concept or object to describe"},
                "style": {"type": "STRING", "description": "The artistic style requested"},
            },
            "required": ["concept"],
        },
    },
}


@dataclass
class ToolCall:
    """A function invocation requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_function_call(cls, function_call: Any) -> ToolCall:
        """Build from a ``types.FunctionCall`` (or any object shaped like one)."""
        raw_args = getattr(function_call, "args", None)
        try:
            args = dict(raw_args) if raw_args else {}
        except (TypeError, ValueError):
            args = {"value": raw_args}
        return cls(
            id=getattr(function_call, "id", None) or "",
            name=getattr(function_call, "name", None) or "",
            args=args,
        )


@dataclass
class ToolResult:
    """The result returned to the model for one ToolCall."""

    id: str
    name: str
    response: dict[str, Any]

    def to_function_response(self) -> types.FunctionResponse:
        # Results interrupt the current model utterance
        return types.FunctionResponse(
            id=self.id,
            name=self.name,
            response=self.response,
            scheduling=types.FunctionResponseScheduling.INTERRUPT,
        )


def sanitize_for_json(obj: Any, _depth: int = 0) -> Any:
    """Recursively convert an object to a JSON-serializable form.

    - bytes/bytearray -> base64 string
    - dict/list/tuple -> recurse
    - other non-serializable -> str(value)
    """
    if _depth > 10:
        return str(obj)

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("utf-8")

    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj

    if isinstance(obj, dict):
        return {
            (k if isinstance(k, str) else str(k)): sanitize_for_json(v, _depth + 1)
            for k, v in obj.items()
        }

    if isinstance(obj, (list, tuple, set)):
        return [sanitize_for_json(v, _depth + 1) for v in obj]

    # Pydantic models (SDK types)
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return sanitize_for_json(model_dump(), _depth + 1)

    return str(obj)


def _schema_from_dict(d: dict[str, Any]) -> types.Schema:
    ptype = str(d.get("type", "object")).upper()
    description = d.get("description") or None

    if ptype == "ARRAY":
        items = d.get("items")
        return types.Schema(
            type=types.Type.ARRAY,
            items=_schema_from_dict(items) if isinstance(items, dict) else None,
            description=description,
        )

    if ptype == "OBJECT":
        props = {k: _schema_from_dict(v) for k, v in (d.get("properties") or {}).items()}
        return types.Schema(
            type=types.Type.OBJECT,
            properties=props or None,
            required=list(d.get("required") or []) or None,
            description=description,
        )

    return types.Schema(
        type=getattr(types.Type, ptype, types.Type.STRING),
        description=description,
        enum=list(d["enum"]) if d.get("enum") else None,
    )


def convert_parameters(params: dict[str, Any] | None) -> types.Schema | None:
    """Convert a parameter schema dict to a google-genai Schema."""
    if not params:
        return None
    try:
        return _schema_from_dict(params)
    except (TypeError, ValueError) as err:
        _LOGGER.debug("Failed to convert parameters schema: %s", err)
        return None


def _get_weather(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "status": STATUS_SUCCESS,
        "location": args.get("location", ""),
        "temperature": "22C",
        "condition": "Partly Cloudy",
    }


def _control_light(args: dict[str, Any]) -> dict[str, Any]:
    brightness = args["brightness"]
    result = {
        "status": STATUS_SUCCESS,
        "action": f"Light set to {brightness}% brightness",
    }
    if args.get("color_temp"):
        result["color_temp"] = args["color_temp"]
    return result


class ToolRegistry:
    """Registry of locally known function tools."""

    def __init__(self) -> None:
        self._declarations: dict[str, dict[str, Any]] = {}
        self._handlers: dict[str, ToolHandler] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._declarations

    @property
    def names(self) -> list[str]:
        return list(self._declarations)

    def register(
        self,
        declaration: dict[str, Any],
        handler: ToolHandler | None = None,
    ) -> None:
        """Register a declaration and, optionally, the handler executing it."""
        name = declaration.get("name")
        if not name:
            raise ValueError("Tool declaration requires a name")
        self._declarations[name] = declaration
        if handler is not None:
            self._handlers[name] = handler

    def function_declarations(
        self, names: Iterable[str] | None = None
    ) -> list[types.FunctionDeclaration]:
        """Return SDK declarations for ``names`` (all registered when None)."""
        selected = list(self._declarations) if names is None else list(names)
        declarations = []
        for name in selected:
            decl = self._declarations.get(name)
            if decl is None:
                _LOGGER.warning("Ignoring unknown tool '%s' in active tools", name)
                continue
            declarations.append(
                types.FunctionDeclaration(
                    name=name,
                    description=decl.get("description", ""),
                    parameters=convert_parameters(decl.get("parameters")),
                )
            )
        return declarations

    def dispatch(self, call: ToolCall) -> ToolResult:
        """Execute a tool call. Never raises."""
        handler = self._handlers.get(call.name)
        if handler is None:
            _LOGGER.debug("No handler for tool '%s'; acknowledging", call.name)
            return ToolResult(id=call.id, name=call.name, response={"status": STATUS_OK})
        try:
            response = handler(dict(call.args))
            response = sanitize_for_json(response)
            if not isinstance(response, dict):
                response = {"status": STATUS_SUCCESS, "result": response}
        except Exception as err:
            _LOGGER.warning("Tool '%s' (id=%s) failed: %s", call.name, call.id, err)
            response = {"status": STATUS_ERROR, "error": f"{type(err).__name__}: {err}"}
        _LOGGER.debug("Tool '%s' (id=%s) -> %s", call.name, call.id, response)
        return ToolResult(id=call.id, name=call.name, response=response)


def build_default_registry() -> ToolRegistry:
    """Registry with the library declarations and the built-in handlers."""
    registry = ToolRegistry()
    handlers: dict[str, ToolHandler] = {
        "get_weather": _get_weather,
        "control_light": _control_light,
    }
    for name, declaration in TOOL_LIBRARY.items():
        registry.register(declaration, handlers.get(name))
    return registry
