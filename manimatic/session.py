"""Session orchestrator: the state machine for prompt -> script -> video runs."""

import asyncio
import contextlib
import logging
from typing import Callable, List, Optional, Tuple

from . import errors
from .channel import ChannelFailed, EventChannel, TimeoutExpired
from .config import Config
from .errors import InvalidActionError, TransportError
from .events import (
    CompileFailed,
    CompileSucceeded,
    Event,
    EventKind,
    GenerateFailed,
    GenerateSucceeded,
)
from .features import FeatureGate
from .models import ErrorKind, ErrorRecord, Phase, SessionState, StageState, create_initial_state
from .timeout_guard import TimeoutGuard
from .utils.api_client import ApiClient

logger = logging.getLogger(__name__)

Subscriber = Callable[["Session"], None]
Predicate = Callable[[SessionState], bool]


class Session:
    """
    Orchestrates one client's generation pipeline.

    Triggering calls (generate, compile) only get an acknowledgement back;
    their results arrive later on the event channel. The session owns the
    channel, the timeout guard and the state, and is the only thing that
    mutates the state. Every asynchronous input (events, timeout expiry,
    channel failure) goes through one queue and is applied by a single
    consumer task, in arrival order.

    Usage:
        async with Session(load_config()) as session:
            await session.generate("draw a bouncing ball")
            await session.wait_for(lambda s: not s.is_script_loading)
    """

    def __init__(self, config: Config, client: Optional[ApiClient] = None):
        """
        Args:
            config: Client configuration
            client: API client to use; one is built from config when omitted
        """
        self.config = config
        self._owns_client = client is None
        self.client = client or ApiClient(
            config.api_base_url,
            request_timeout=config.request_timeout_seconds,
            probe_timeout=config.probe_timeout_seconds,
            max_concurrent=config.max_concurrent_requests,
            max_per_minute=config.max_requests_per_minute,
        )
        self.state = create_initial_state()
        self.features = FeatureGate(self.client)

        self._queue: asyncio.Queue = asyncio.Queue()
        self.guard = TimeoutGuard(self._on_deadline)
        self.channel = EventChannel(self.client, self._queue, guard=self.guard)

        self._consumer: Optional[asyncio.Task] = None
        self._subscribers: List[Subscriber] = []
        self._waiters: List[Tuple[Predicate, asyncio.Future]] = []
        self._run = 0
        self._started = False
        self._closed = False

    async def __aenter__(self) -> "Session":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Open the event channel and load features and models.

        Returns:
            True if the channel is open. A failed probe is recorded as a
            transport error and is not retried.
        """
        if self._started:
            return self.channel.is_open
        self._started = True
        self._consumer = asyncio.create_task(self._consume(), name="manimatic-session")

        try:
            await self.channel.connect()
        except TransportError as e:
            logger.error("Health probe failed: %s", e)
            self._fail(ErrorKind.TRANSPORT, errors.PROBE_FAILED)

        await self.features.load()
        await self._load_models()
        return self.channel.is_open

    async def close(self) -> None:
        """Dispose the channel and stop processing. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        await self.channel.dispose()
        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None
        for _, future in self._waiters:
            if not future.done():
                future.cancel()
        self._waiters.clear()
        if self._owns_client:
            await self.client.aclose()
        logger.info("Session closed")

    async def _load_models(self) -> None:
        try:
            catalogue = await self.client.fetch_models()
        except TransportError as e:
            logger.warning("Model catalogue unavailable: %s", e)
            catalogue = None

        models = catalogue.models if catalogue else []
        self.state.available_models = list(models)
        if self.state.selected_model is None:
            backend_default = catalogue.default_model if catalogue else None
            self.state.selected_model = (
                backend_default or self.config.default_model or (models[0] if models else None)
            )
        logger.info("Models: %s (selected=%s)", models, self.state.selected_model)
        self._notify()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def set_prompt(self, prompt: str) -> None:
        self.state.prompt = prompt
        self._notify()

    def select_model(self, model: str) -> bool:
        """Choose the model for the next generation."""
        model = model.strip()
        if not model:
            return self._reject(errors.NO_MODEL)
        if self.state.available_models and model not in self.state.available_models:
            return self._reject(f"Unknown model '{model}'")
        self.state.selected_model = model
        self._notify()
        return True

    def edit_script(self, script: str) -> bool:
        """Replace the user-edited script. Only possible once a script has arrived."""
        if self.state.compiling:
            return self._reject(errors.STAGE_BUSY)
        if self.state.is_script_loading or not self.state.script:
            return self._reject("There is no script to edit yet")
        self.state.edited_script = script
        self._notify()
        return True

    def load_script(self, script: str) -> bool:
        """
        Start from an existing script instead of generating one.

        Rejected while anything is in flight. Clears the previous run's
        video and diagnostics and leaves the session in ScriptReady.
        """
        if self.state.is_busy:
            return self._reject(errors.STAGE_BUSY)
        if not script.strip():
            return self._reject(errors.NO_SCRIPT)
        self.state.script = script
        self.state.edited_script = None
        self.state.script_stage = StageState.READY
        self.state.video_url = ""
        self.state.video_stage = StageState.IDLE
        self.state.compile_error = None
        self.state.last_error = None
        self.state.phase = Phase.SCRIPT_READY
        self.state.phase_error = None
        logger.info("Script loaded (%d chars)", len(script))
        self._notify()
        return True

    def dismiss_error(self) -> None:
        """Clear the current notice. Compilation diagnostics stay."""
        if self.state.last_error is not None:
            self.state.last_error = None
            self._notify()

    async def generate(self, prompt: Optional[str] = None, model: Optional[str] = None) -> bool:
        """
        Start a new run: clear the previous one and ask for a script.

        A run already in flight is abandoned, not queued.

        Args:
            prompt: Prompt text; defaults to the current prompt
            model: Model identifier; defaults to the selected model

        Returns:
            True if the backend accepted the request. Otherwise the reason
            is in state.last_error.
        """
        prompt = self.state.prompt if prompt is None else prompt
        model = model or self.state.selected_model
        try:
            self._check_generate(prompt, model)
        except InvalidActionError as e:
            return self._reject(str(e))
        if not self.channel.is_open:
            self._fail(ErrorKind.TRANSPORT, errors.CHANNEL_FAILED)
            return False

        run = self._begin_run()
        self._reset(prompt, model)
        self.state.script_stage = StageState.LOADING
        # The backend renders the generated script on its own.
        self.state.video_stage = StageState.LOADING
        self.state.pending_renders = 1
        self.state.phase = Phase.AWAITING_SCRIPT
        self.guard.arm(self.config.generation_timeout_seconds)
        logger.info("Generate requested (model=%s, prompt_chars=%d)", model, len(prompt))
        self._notify()

        try:
            await self.client.post_generate(prompt, model)
        except TransportError as e:
            logger.error("Generate request failed: %s", e)
            if run == self._run and self.state.is_busy:
                self.guard.disarm()
                self._fail(ErrorKind.TRANSPORT, errors.GENERATE_REQUEST_FAILED)
            return False
        return True

    async def compile(self) -> bool:
        """
        Ask the backend to render the current script.

        Returns:
            True if the backend accepted the request. Otherwise the reason
            is in state.last_error.
        """
        try:
            script = self._script_to_compile()
        except InvalidActionError as e:
            return self._reject(str(e))
        if not self.channel.is_open:
            self._fail(ErrorKind.TRANSPORT, errors.CHANNEL_FAILED)
            return False

        run = self._begin_run()
        self.state.video_stage = StageState.LOADING
        self.state.compiling = True
        self.state.pending_renders += 1
        self.state.phase = Phase.AWAITING_VIDEO
        self.state.phase_error = None
        self.guard.arm(self.config.generation_timeout_seconds)
        logger.info("Compile requested (script_chars=%d)", len(script))
        self._notify()

        try:
            await self.client.post_compile(script)
        except TransportError as e:
            logger.error("Compile request failed: %s", e)
            if run == self._run and self.state.is_video_loading:
                self.guard.disarm()
                self._fail(ErrorKind.TRANSPORT, errors.COMPILE_REQUEST_FAILED)
            return False
        return True

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call callback with the session after every state change.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def wait_for(self, predicate: Predicate, timeout: Optional[float] = None) -> SessionState:
        """
        Wait until the state satisfies predicate.

        Raises:
            asyncio.TimeoutError: If timeout passes first
        """
        if predicate(self.state):
            return self.state
        future = asyncio.get_running_loop().create_future()
        entry = (predicate, future)
        self._waiters.append(entry)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            if entry in self._waiters:
                self._waiters.remove(entry)

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:
                logger.exception("Session subscriber %r failed", callback)
        for predicate, future in list(self._waiters):
            if not future.done() and predicate(self.state):
                future.set_result(self.state)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _begin_run(self) -> int:
        self._run += 1
        return self._run

    def _check_generate(self, prompt: str, model: Optional[str]) -> None:
        if not prompt.strip():
            raise InvalidActionError(errors.EMPTY_PROMPT)
        if not model:
            raise InvalidActionError(errors.NO_MODEL)

    def _script_to_compile(self) -> str:
        if not self.features.is_enabled(self.config.compile_feature_key):
            raise InvalidActionError(errors.COMPILE_DISABLED)
        if self.state.is_script_loading or self.state.compiling:
            raise InvalidActionError(errors.STAGE_BUSY)
        script = self.state.current_script
        if not script.strip():
            raise InvalidActionError(errors.NO_SCRIPT)
        return script

    def _reset(self, prompt: str, model: str) -> None:
        previous = self.state
        self.state = create_initial_state()
        self.state.session_id = previous.session_id
        self.state.available_models = list(previous.available_models)
        self.state.prompt = prompt
        self.state.selected_model = model

    def _reject(self, message: str) -> bool:
        logger.info("Rejected: %s", message)
        self.state.last_error = ErrorRecord(kind=ErrorKind.VALIDATION, message=message)
        self._notify()
        return False

    def _stop_loading(self, to: StageState) -> None:
        self.state.compiling = False
        self.state.pending_renders = 0
        if self.state.script_stage == StageState.LOADING:
            self.state.script_stage = to
        if self.state.video_stage == StageState.LOADING:
            self.state.video_stage = to

    def _fail(self, kind: ErrorKind, message: str, stage_state: StageState = StageState.IDLE) -> None:
        self._stop_loading(stage_state)
        self.state.phase = Phase.ERRORED
        self.state.phase_error = kind
        self.state.last_error = ErrorRecord(kind=kind, message=message)
        logger.info("Session errored (%s): %s", kind.value, message)
        self._notify()

    def _on_deadline(self, token: int) -> None:
        self._queue.put_nowait(TimeoutExpired(token))

    async def _consume(self) -> None:
        while True:
            message = await self._queue.get()
            self._apply(message)

    def _apply(self, message) -> None:
        if isinstance(message, Event):
            self._on_event(message)
        elif isinstance(message, TimeoutExpired):
            self._on_timeout(message.token)
        elif isinstance(message, ChannelFailed):
            self._on_channel_failed(message.error)
        else:
            logger.warning("Dropping unexpected message %r", message)

    def _on_timeout(self, token: int) -> None:
        if not self.guard.claim(token):
            logger.debug("Stale timeout ignored (token=%d)", token)
            return
        logger.warning("No result within %.1fs", self.config.generation_timeout_seconds)
        self._fail(ErrorKind.TIMEOUT, errors.TIMED_OUT, StageState.ERRORED)

    def _on_channel_failed(self, error: TransportError) -> None:
        self.guard.disarm()
        self._fail(ErrorKind.TRANSPORT, errors.CHANNEL_FAILED, StageState.ERRORED)

    def _on_event(self, event: Event) -> None:
        if self.config.filter_events_by_session and event.session_id:
            if self.state.session_id is None:
                self.state.session_id = event.session_id
                logger.info("Adopted session id %s", event.session_id)
            elif event.session_id != self.state.session_id:
                logger.warning(
                    "Dropping %s event for foreign session %s", event.kind.value, event.session_id
                )
                return

        if event.is_compile and self.state.is_video_loading and self.state.pending_renders > 1:
            # An earlier render finished; the latest compile is still owed.
            self.state.pending_renders -= 1
            logger.info("Superseded render finished (%s), still waiting", event.kind.value)
            return

        # One deadline per triggering call, cleared by whichever event comes first.
        self.guard.disarm()

        if event.is_generate and not self.state.is_script_loading:
            logger.debug("Ignoring %s: no script in flight", event.kind.value)
            return
        if event.is_compile and not self.state.is_video_loading:
            logger.debug("Ignoring %s: no video in flight", event.kind.value)
            return

        if event.kind == EventKind.GENERATE_SUCCEEDED:
            self._on_script(event.data)
        elif event.kind == EventKind.GENERATE_FAILED:
            self._on_generate_failed(event.data)
        elif event.kind == EventKind.COMPILE_SUCCEEDED:
            self._on_video(event.data)
        elif event.kind == EventKind.COMPILE_FAILED:
            self._on_compile_failed(event.data)

    def _on_script(self, data: GenerateSucceeded) -> None:
        self.state.script = data.script
        self.state.edited_script = None
        self.state.script_stage = StageState.READY
        self.state.prompt = ""
        self.state.phase = Phase.SCRIPT_READY
        logger.info("Script ready (%d chars)", len(data.script))
        self._notify()

    def _on_generate_failed(self, data: GenerateFailed) -> None:
        message = f"Generation failed: {data.message}"
        if data.details:
            message = f"{message}\n{data.details}"
        self.state.script_stage = StageState.ERRORED
        logger.warning("Generation failed (model=%s): %s", data.model or "?", data.message)
        self._fail(ErrorKind.GENERATION, message)

    def _on_video(self, data: CompileSucceeded) -> None:
        self.state.video_url = data.video_url
        self.state.video_stage = StageState.READY
        self.state.compiling = False
        self.state.pending_renders = 0
        if self.state.script_stage == StageState.LOADING:
            self.state.script_stage = StageState.IDLE
        self.state.compile_error = None
        if self.state.last_error is not None and self.state.last_error.kind == ErrorKind.COMPILATION:
            self.state.last_error = None
        self.state.phase = Phase.VIDEO_READY
        self.state.phase_error = None
        logger.info("Video ready: %s", data.video_url)
        self._notify()

    def _on_compile_failed(self, data: CompileFailed) -> None:
        record = ErrorRecord(
            kind=ErrorKind.COMPILATION,
            message=data.message,
            stdout=data.stdout,
            stderr=data.stderr,
            line=data.line,
        )
        self.state.compiling = False
        self.state.pending_renders = 0
        self.state.video_stage = StageState.ERRORED
        if self.state.script_stage == StageState.LOADING:
            self.state.script_stage = StageState.IDLE
        self.state.compile_error = record
        self.state.last_error = record
        self.state.phase = Phase.ERRORED
        self.state.phase_error = ErrorKind.COMPILATION
        logger.warning("Compilation failed: %s (line=%s)", data.message, data.line)
        self._notify()
