"""Push-channel event types and Server-Sent Events decoding."""

import json
import logging
from enum import Enum
from typing import Dict, List, Optional, Type, Union
from pydantic import AliasChoices, BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    GENERATE_SUCCEEDED = "generate_succeeded"
    GENERATE_FAILED = "generate_failed"
    COMPILE_SUCCEEDED = "compile_succeeded"
    COMPILE_FAILED = "compile_failed"


class GenerateSucceeded(BaseModel):
    script: str = Field(..., description="Generated script")


class GenerateFailed(BaseModel):
    message: str = Field(..., description="User-friendly error message")
    details: Optional[str] = Field(None, description="Additional context")
    model: str = Field("", description="Model that failed")


class CompileSucceeded(BaseModel):
    video_url: str = Field(..., description="Where the rendered video lives")


class CompileFailed(BaseModel):
    message: str = Field(..., description="User-friendly error message")
    stdout: str = Field("", description="Compiler standard output")
    stderr: str = Field("", description="Compiler standard error")
    line: Optional[int] = Field(None, description="Line the error occurred on")


EventData = Union[GenerateSucceeded, GenerateFailed, CompileSucceeded, CompileFailed]

DATA_MODELS: Dict[EventKind, Type[BaseModel]] = {
    EventKind.GENERATE_SUCCEEDED: GenerateSucceeded,
    EventKind.GENERATE_FAILED: GenerateFailed,
    EventKind.COMPILE_SUCCEEDED: CompileSucceeded,
    EventKind.COMPILE_FAILED: CompileFailed,
}


class Event(BaseModel):
    """A decoded push-channel message."""
    kind: EventKind
    session_id: str = Field(
        "",
        validation_alias=AliasChoices("sessionId", "session_id"),
        description="Backend session the event belongs to",
    )
    data: EventData

    @property
    def is_generate(self) -> bool:
        return self.kind in (EventKind.GENERATE_SUCCEEDED, EventKind.GENERATE_FAILED)

    @property
    def is_compile(self) -> bool:
        return self.kind in (EventKind.COMPILE_SUCCEEDED, EventKind.COMPILE_FAILED)


class EventDecodeError(ValueError):
    """A payload that is not a well-formed event of a known kind."""


def decode_event(payload: str) -> Optional[Event]:
    """
    Decode one event payload.

    Args:
        payload: JSON text of the form {kind, sessionId, data}

    Returns:
        The event, or None when the kind is not one this client handles

    Raises:
        EventDecodeError: If the payload is not JSON or its data does not
            match the schema for its kind
    """
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise EventDecodeError(f"event is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise EventDecodeError(f"event must be a JSON object, got {type(raw).__name__}")

    kind_name = raw.get("kind")
    try:
        kind = EventKind(kind_name)
    except ValueError:
        logger.debug("Ignoring event of unknown kind %r", kind_name)
        return None

    session_id = raw.get("sessionId", raw.get("session_id", ""))
    try:
        data = DATA_MODELS[kind].model_validate(raw.get("data") or {})
        return Event(kind=kind, sessionId=session_id or "", data=data)
    except ValidationError as e:
        raise EventDecodeError(f"{kind.value} event has invalid data: {e}") from e


class SSEDecoder:
    """
    Incremental decoder for a text/event-stream body.

    Fed one line at a time (without its terminator); returns the data of
    each event completed by a blank line.
    """

    def __init__(self):
        self._data: List[str] = []

    def feed(self, line: str) -> List[str]:
        if line == "":
            if not self._data:
                return []
            payload = "\n".join(self._data)
            self._data = []
            return [payload]

        if line.startswith(":"):
            return []

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        # event/id/retry carry nothing this client uses
        return []
