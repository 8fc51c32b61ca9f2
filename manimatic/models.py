"""Data models and state definitions for the animation session."""

from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Where a failure was detected."""
    VALIDATION = "validation"      # Locally detected, never sent to the backend
    TRANSPORT = "transport"        # Probe failure, channel error, non-2xx on a triggering call
    GENERATION = "generation"      # Backend could not produce a script
    COMPILATION = "compilation"    # Backend could not render the script
    TIMEOUT = "timeout"            # No event before the deadline


class StageState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


class Phase(str, Enum):
    """Combined phase of the session, as shown to the user."""
    IDLE = "idle"
    AWAITING_SCRIPT = "awaiting_script"
    SCRIPT_READY = "script_ready"
    AWAITING_VIDEO = "awaiting_video"
    VIDEO_READY = "video_ready"
    ERRORED = "errored"


class ErrorRecord(BaseModel):
    """A failure surfaced to the user."""
    kind: ErrorKind = Field(..., description="Failure source")
    message: str = Field(..., description="Human-readable message")
    stdout: Optional[str] = Field(None, description="Compiler standard output")
    stderr: Optional[str] = Field(None, description="Compiler standard error")
    line: Optional[int] = Field(None, description="Source line of a compilation failure")

    @property
    def is_recoverable_in_place(self) -> bool:
        """Compilation failures keep the script around for editing."""
        return self.kind == ErrorKind.COMPILATION

    @property
    def is_transient(self) -> bool:
        return not self.is_recoverable_in_place

    def diagnostic_tabs(self) -> List[Tuple[str, str]]:
        """
        Labelled sections for displaying this error.

        The message is always present; stdout and stderr are only included
        when they contain something other than whitespace.

        Returns:
            List of (label, content) pairs
        """
        tabs = [("Error Message", self.message)]
        if self.stdout and self.stdout.strip():
            tabs.append(("Standard Output", self.stdout))
        if self.stderr and self.stderr.strip():
            tabs.append(("Standard Error", self.stderr))
        return tabs


class Feature(BaseModel):
    key: str = Field(..., description="Feature key, e.g. user-compile")
    description: str = Field("", description="What the feature enables")
    enabled: bool = Field(False, description="Whether the backend has it on")


class FeaturesResponse(BaseModel):
    """Body of GET /features."""
    version: str = Field("", description="Feature set version")
    features: List[Feature] = Field(default_factory=list)


class ModelsResponse(BaseModel):
    """Body of GET /models."""
    models: List[str] = Field(default_factory=list, description="Model identifiers")
    default_model: Optional[str] = Field(None, description="Backend default model")


class SessionState(BaseModel):
    """
    Snapshot of the active pipeline run.

    Only the session orchestrator mutates this; everything else reads it.
    """
    # Inputs
    prompt: str = Field("", description="Prompt of the current run")
    selected_model: Optional[str] = Field(None, description="Model used for generation")
    available_models: List[str] = Field(default_factory=list, description="Backend model catalogue")

    # Artifacts
    script: str = Field("", description="Script as authored by the backend")
    edited_script: Optional[str] = Field(None, description="Script as edited by the user")
    video_url: str = Field("", description="URL of the latest rendered video")

    # Stages
    script_stage: StageState = StageState.IDLE
    video_stage: StageState = StageState.IDLE
    compiling: bool = Field(False, description="A user-requested compile is in flight")
    pending_renders: int = Field(0, ge=0, description="Video results still owed by the backend")
    phase: Phase = Phase.IDLE
    phase_error: Optional[ErrorKind] = Field(None, description="Kind of failure that put the session in Errored")

    # Errors
    last_error: Optional[ErrorRecord] = Field(None, description="Most recent error, shown as a notice")
    compile_error: Optional[ErrorRecord] = Field(None, description="Diagnostics of the last failed compile")

    # Session id adopted from the first event on the channel
    session_id: Optional[str] = None

    @property
    def current_script(self) -> str:
        """The script a compile would send: the user's edit when present."""
        if self.edited_script is not None:
            return self.edited_script
        return self.script

    @property
    def is_script_loading(self) -> bool:
        return self.script_stage == StageState.LOADING

    @property
    def is_video_loading(self) -> bool:
        return self.video_stage == StageState.LOADING

    @property
    def is_busy(self) -> bool:
        return self.is_script_loading or self.is_video_loading

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        if self.phase != Phase.ERRORED:
            return None
        return self.phase_error


def create_initial_state() -> SessionState:
    """
    Create the empty state a session starts with.

    Returns:
        SessionState: Idle state with no artifacts
    """
    return SessionState()
