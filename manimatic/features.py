"""Feature gate: fetched once, read many, fail-closed."""

import logging
from enum import Enum
from typing import Dict, Optional

from .errors import TransportError
from .utils.api_client import ApiClient

logger = logging.getLogger(__name__)


class GateStatus(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADED = "loaded"
    FAILED = "failed"


class FeatureGate:
    """
    Cached mapping of feature keys to booleans.

    Every key reads as disabled until the fetch succeeds, and forever if
    it fails; unknown keys are always disabled.
    """

    def __init__(self, client: ApiClient):
        self._client = client
        self._features: Dict[str, bool] = {}
        self.status = GateStatus.NOT_LOADED
        self.version: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.status == GateStatus.LOADED

    async def load(self) -> None:
        """
        Fetch the feature set. Only the first call does anything; a failure
        is logged and leaves the gate closed.
        """
        if self.status != GateStatus.NOT_LOADED:
            return
        try:
            response = await self._client.fetch_features()
        except TransportError as e:
            self.status = GateStatus.FAILED
            logger.warning("Failed to load features, all features disabled: %s", e)
            return

        self._features = {feature.key: feature.enabled for feature in response.features}
        self.version = response.version
        self.status = GateStatus.LOADED
        enabled = sorted(key for key, on in self._features.items() if on)
        logger.info("Features loaded (version=%s, enabled=%s)", self.version, enabled)

    def is_enabled(self, key: str) -> bool:
        return self._features.get(key, False)

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._features)
