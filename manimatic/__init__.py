"""Async client for the Manimatic prompt-to-animation service."""

from .config import Config, get_config, load_config
from .errors import ChannelClosedError, InvalidActionError, ManimaticError, TransportError
from .events import Event, EventKind
from .models import ErrorKind, ErrorRecord, Phase, SessionState, StageState
from .session import Session

__all__ = [
    "ChannelClosedError",
    "Config",
    "ErrorKind",
    "ErrorRecord",
    "Event",
    "EventKind",
    "InvalidActionError",
    "ManimaticError",
    "Phase",
    "Session",
    "SessionState",
    "StageState",
    "TransportError",
    "get_config",
    "load_config",
]
