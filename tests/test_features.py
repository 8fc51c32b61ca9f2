"""Tests for the fail-closed feature gate."""

import httpx
import pytest

from manimatic.features import FeatureGate, GateStatus


@pytest.mark.asyncio
async def test_everything_disabled_before_load(mock_client):
    gate = FeatureGate(mock_client)
    assert gate.status == GateStatus.NOT_LOADED
    assert not gate.is_enabled("user-compile")


@pytest.mark.asyncio
async def test_loaded_features_and_unknown_keys(mock_client, recorder):
    recorder.routes["GET /features"] = httpx.Response(200, json={
        "version": "0.1.0",
        "features": [
            {"key": "user-compile", "description": "compile", "enabled": True},
            {"key": "high-quality", "description": "4K", "enabled": False},
        ],
    })
    gate = FeatureGate(mock_client)

    await gate.load()

    assert gate.loaded
    assert gate.version == "0.1.0"
    assert gate.is_enabled("user-compile")
    assert not gate.is_enabled("high-quality")
    assert not gate.is_enabled("not-a-feature")
    assert gate.snapshot() == {"user-compile": True, "high-quality": False}


@pytest.mark.asyncio
async def test_fetch_failure_leaves_gate_closed_for_good(mock_client, recorder):
    recorder.routes["GET /features"] = httpx.Response(500)
    gate = FeatureGate(mock_client)

    await gate.load()
    recorder.routes["GET /features"] = httpx.Response(200, json={
        "version": "0.1.0",
        "features": [{"key": "user-compile", "description": "", "enabled": True}],
    })
    await gate.load()

    assert gate.status == GateStatus.FAILED
    assert not gate.is_enabled("user-compile")
    assert recorder.paths() == ["GET /features"]


@pytest.mark.asyncio
async def test_load_fetches_once(mock_client, recorder):
    recorder.routes["GET /features"] = lambda request: httpx.Response(200, json={"version": "1", "features": []})
    gate = FeatureGate(mock_client)

    await gate.load()
    await gate.load()

    assert recorder.paths() == ["GET /features"]
