"""HTTP client for the animation API: probe, metadata, triggering calls and event stream."""

import logging
import httpx
from typing import AsyncIterator, Optional
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception
)

from ..errors import ChannelClosedError, TransportError
from ..events import SSEDecoder
from ..models import FeaturesResponse, ModelsResponse
from .rate_limiter import RateLimitedClient

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    """Timeouts and 5xx answers are worth another try; nothing else is."""
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class ApiClient(RateLimitedClient):
    """
    Client for the animation backend.

    All calls go through one httpx.AsyncClient so the session cookie the
    backend sets is sent with every request, the event stream included.
    Triggering calls only report whether the backend accepted the job; the
    outcome arrives later on the event stream.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 15.0,
        probe_timeout: float = 5.0,
        max_concurrent: int = 4,
        max_per_minute: int = 60
    ):
        """
        Initialize the API client.

        Args:
            base_url: Backend base URL, without trailing slash
            http_client: Pre-built client to share (tests, embedding apps)
            request_timeout: Deadline for ordinary requests in seconds
            probe_timeout: Deadline for the health probe in seconds
            max_concurrent: Maximum concurrent requests
            max_per_minute: Maximum requests per minute
        """
        super().__init__(max_concurrent, max_per_minute)
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.probe_timeout = probe_timeout
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=request_timeout,
        )
        logger.info(
            "ApiClient initialized (base_url=%s, max_concurrent=%d, max_per_minute=%d)",
            self.base_url,
            max_concurrent,
            max_per_minute
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http and not self.http.is_closed:
            await self.http.aclose()

    async def _send(self, method: str, path: str, timeout: float, **kwargs) -> httpx.Response:
        try:
            response = await self._execute_with_limits(
                self.http.request(method, self._url(path), timeout=timeout, **kwargs),
                label=f"{method} {path}",
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        if not response.is_success:
            raise TransportError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def probe(self) -> None:
        """
        One-shot liveness check against /healthz.

        Raises:
            TransportError: If the backend is unreachable or answers non-2xx
        """
        await self._send("GET", "/healthz", timeout=self.probe_timeout)
        logger.debug("Health probe OK")

    async def fetch_features(self) -> FeaturesResponse:
        """
        Fetch the feature set. Not retried.

        Raises:
            TransportError: On any transport failure or non-2xx answer
        """
        response = await self._send("GET", "/features", timeout=self.request_timeout)
        try:
            return FeaturesResponse.model_validate(response.json())
        except ValueError as e:
            raise TransportError(f"GET /features returned an unreadable body: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception(_is_retryable),
        reraise=True
    )
    async def _fetch_models_impl(self) -> ModelsResponse:
        """
        Internal implementation of the model catalogue fetch with retry.

        Raises:
            httpx.HTTPStatusError: If the backend answers non-2xx
            httpx.TimeoutException: If the request times out
        """
        response = await self._execute_with_limits(
            self.http.get(self._url("/models"), timeout=self.request_timeout),
            label="GET /models",
        )
        response.raise_for_status()
        return ModelsResponse.model_validate(response.json())

    async def fetch_models(self) -> ModelsResponse:
        """
        Fetch the model catalogue, retrying timeouts and 5xx answers.

        Raises:
            TransportError: Once retries are exhausted or on a non-retryable failure
        """
        try:
            models = await self._fetch_models_impl()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"GET /models returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"GET /models failed: {e}") from e
        logger.debug("Model catalogue: %s (default=%s)", models.models, models.default_model)
        return models

    async def post_generate(self, prompt: str, model: str) -> None:
        """
        Ask the backend to generate a script. Returns once the job is accepted.

        Raises:
            TransportError: If the request fails or is not accepted
        """
        await self._send(
            "POST",
            "/generate",
            timeout=self.request_timeout,
            json={"prompt": prompt, "model": model},
        )

    async def post_compile(self, script: str) -> None:
        """
        Ask the backend to render a script. Returns once the job is accepted.

        Raises:
            TransportError: If the request fails or is not accepted
        """
        await self._send(
            "POST",
            "/compile",
            timeout=self.request_timeout,
            json={"script": script},
        )

    async def stream_events(self) -> AsyncIterator[str]:
        """
        Open the push channel and yield each event payload as it arrives.

        Yields:
            The data of each server-sent event, as a string

        Raises:
            TransportError: If the stream cannot be opened
            ChannelClosedError: If the connection fails or the server ends it
        """
        decoder = SSEDecoder()
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        try:
            async with self.http.stream(
                "GET",
                self._url("/events"),
                headers=headers,
                timeout=httpx.Timeout(self.request_timeout, read=None),
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        f"GET /events returned {response.status_code}",
                        status_code=response.status_code,
                    )
                logger.info("Event stream open")
                async for line in response.aiter_lines():
                    for payload in decoder.feed(line):
                        yield payload
        except httpx.HTTPError as e:
            raise ChannelClosedError(f"event stream failed: {e}") from e
        raise ChannelClosedError("event stream ended by the server")
