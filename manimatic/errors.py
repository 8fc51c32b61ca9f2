"""Exceptions raised below the session boundary."""

from typing import Optional


class ManimaticError(Exception):
    """Base class for client errors."""


class TransportError(ManimaticError):
    """The backend could not be reached or refused a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChannelClosedError(TransportError):
    """The push channel failed; it is never reopened."""


class InvalidActionError(ManimaticError):
    """An action was rejected locally before reaching the network."""


# User-facing messages
PROBE_FAILED = "Health check failed. Unable to connect to the server."
CHANNEL_FAILED = "Connection error. Please refresh and try again."
GENERATE_REQUEST_FAILED = "Failed to generate animation. Please try again."
COMPILE_REQUEST_FAILED = "Failed to compile script. Please try again."
TIMED_OUT = "Generation timed out. Please try again."
COMPILE_DISABLED = "Compilation feature is currently unavailable"
EMPTY_PROMPT = "Please enter a prompt"
NO_MODEL = "Please select a model"
NO_SCRIPT = "There is no script to compile"
STAGE_BUSY = "Please wait for the current run to finish"
