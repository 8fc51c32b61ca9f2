"""Tests for the single-shot timeout guard."""

import asyncio

import pytest

from manimatic.timeout_guard import TimeoutGuard


def test_disarm_before_arm_is_noop():
    fired = []
    guard = TimeoutGuard(fired.append)
    guard.disarm()
    guard.disarm()
    assert not guard.armed
    assert fired == []


@pytest.mark.asyncio
async def test_disarm_twice_is_noop():
    fired = []
    guard = TimeoutGuard(fired.append)
    guard.arm(0.05)
    guard.disarm()
    guard.disarm()
    await asyncio.sleep(0.1)
    assert fired == []
    assert not guard.armed


@pytest.mark.asyncio
async def test_expiry_invokes_callback_with_token():
    fired = []
    guard = TimeoutGuard(fired.append)
    token = guard.arm(0.01)
    await asyncio.sleep(0.05)
    assert fired == [token]
    assert not guard.armed
    assert guard.claim(token)
    # A claimed expiry cannot be claimed again.
    assert not guard.claim(token)


@pytest.mark.asyncio
async def test_rearm_replaces_pending_deadline():
    fired = []
    guard = TimeoutGuard(fired.append)
    first = guard.arm(0.02)
    second = guard.arm(0.2)
    assert second != first
    await asyncio.sleep(0.05)
    assert fired == []
    assert guard.armed
    guard.disarm()


@pytest.mark.asyncio
async def test_disarm_after_expiry_makes_it_stale():
    fired = []
    guard = TimeoutGuard(fired.append)
    token = guard.arm(0.01)
    await asyncio.sleep(0.05)
    assert fired == [token]
    guard.disarm()
    assert not guard.claim(token)


@pytest.mark.asyncio
async def test_claim_is_false_while_still_counting_down():
    guard = TimeoutGuard(lambda token: None)
    token = guard.arm(1.0)
    assert not guard.claim(token)
    guard.disarm()
