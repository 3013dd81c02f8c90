from __future__ import annotations

import asyncio

import pytest

from chat_client.application.dto.credential import Credential
from chat_client.application.exceptions import RefreshFailed, SessionClosedError
from chat_client.infrastructure.credentials.memory_store import InMemoryCredentialStore
from chat_client.services.refresh_coordinator import RefreshCoordinator
from tests.conftest import FakeIssuer, settle


class SlowLoadStore(InMemoryCredentialStore):
    """Reads a snapshot at call time and hands it back late."""

    async def load(self) -> Credential | None:
        snapshot = await super().load()
        await asyncio.sleep(0.05)
        return snapshot


class BrokenStore(InMemoryCredentialStore):
    def __init__(self, credential: Credential, *, fail_clear: bool = False) -> None:
        super().__init__(credential)
        self.fail_clear = fail_clear

    async def save(self, credential: Credential) -> None:
        raise ConnectionError("redis down")

    async def clear(self) -> None:
        if self.fail_clear:
            raise ConnectionError("redis down")
        await super().clear()


def _coordinator(store, signals, issuer, timeout: float = 1.0) -> RefreshCoordinator:
    return RefreshCoordinator(store, issuer, signals, timeout=timeout)


@pytest.mark.asyncio
async def test_concurrent_callers_share_a_single_refresh(store, signals):
    issuer = FakeIssuer(hold=True)
    coordinator = _coordinator(store, signals, issuer)

    callers = [asyncio.create_task(coordinator.ensure_fresh("access-0")) for _ in range(5)]
    await settle(lambda: coordinator.pending_count == 5)
    assert coordinator.in_flight is True

    issuer.release()
    results = await asyncio.gather(*callers)

    assert issuer.refresh_calls == 1
    assert {c.access_token for c in results} == {"access-1"}
    assert (await store.load()) == Credential("access-1", "refresh-0")
    assert coordinator.in_flight is False


@pytest.mark.asyncio
async def test_superseded_token_does_not_trigger_refresh(store, signals):
    await store.save(Credential("access-7", "refresh-7"))
    issuer = FakeIssuer()
    coordinator = _coordinator(store, signals, issuer)

    result = await coordinator.ensure_fresh("access-6")

    assert result.access_token == "access-7"
    assert issuer.refresh_calls == 0


@pytest.mark.asyncio
async def test_rotation_signal_follows_store_write(store, signals):
    issuer = FakeIssuer()
    coordinator = _coordinator(store, signals, issuer)
    observed: list[str | None] = []

    async def _on_rotated(credential: Credential) -> None:
        stored = await store.load()
        observed.append(stored.access_token if stored else None)

    signals.on_rotated(_on_rotated)
    await coordinator.ensure_fresh("access-0")

    assert observed == ["access-1"]


@pytest.mark.asyncio
async def test_refresh_failure_rejects_everyone_and_terminates(store, signals):
    issuer = FakeIssuer(hold=True, fail=True)
    coordinator = _coordinator(store, signals, issuer)
    reasons: list[str] = []

    async def _on_terminated(reason: str) -> None:
        reasons.append(reason)

    signals.on_terminated(_on_terminated)

    callers = [asyncio.create_task(coordinator.ensure_fresh("access-0")) for _ in range(3)]
    await settle(lambda: coordinator.pending_count == 3)
    issuer.release()
    results = await asyncio.gather(*callers, return_exceptions=True)

    assert all(isinstance(r, RefreshFailed) for r in results)
    assert issuer.refresh_calls == 1
    assert await store.load() is None
    assert signals.terminated is True
    assert reasons == ["refresh_failed"]
    assert coordinator.in_flight is False


@pytest.mark.asyncio
async def test_refresh_timeout_is_a_failure(store, signals):
    issuer = FakeIssuer(hold=True)
    coordinator = _coordinator(store, signals, issuer, timeout=0.01)

    with pytest.raises(RefreshFailed, match="timed out"):
        await coordinator.ensure_fresh("access-0")

    assert await store.load() is None
    assert coordinator.in_flight is False


@pytest.mark.asyncio
async def test_missing_credential_fails_without_exchange(signals):
    issuer = FakeIssuer()
    coordinator = _coordinator(InMemoryCredentialStore(), signals, issuer)

    with pytest.raises(RefreshFailed):
        await coordinator.ensure_fresh("access-0")

    assert issuer.refresh_calls == 0
    assert signals.terminated is True


@pytest.mark.asyncio
async def test_abort_rejects_queue_and_discards_late_result(store, signals):
    issuer = FakeIssuer(hold=True)
    coordinator = _coordinator(store, signals, issuer)
    rotated: list[Credential] = []

    async def _on_rotated(credential: Credential) -> None:
        rotated.append(credential)

    signals.on_rotated(_on_rotated)

    callers = [asyncio.create_task(coordinator.ensure_fresh("access-0")) for _ in range(2)]
    await settle(lambda: coordinator.pending_count == 2)
    await store.clear()
    await signals.terminate("logout")

    results = await asyncio.gather(*callers, return_exceptions=True)
    assert all(isinstance(r, SessionClosedError) for r in results)

    issuer.release()
    await asyncio.sleep(0.01)
    assert await store.load() is None
    assert rotated == []
    assert coordinator.in_flight is False


@pytest.mark.asyncio
async def test_sequential_expiries_refresh_each_time(store, signals):
    issuer = FakeIssuer()
    coordinator = _coordinator(store, signals, issuer)

    first = await coordinator.ensure_fresh("access-0")
    second = await coordinator.ensure_fresh(first.access_token)

    assert issuer.refresh_calls == 2
    assert second.access_token == "access-2"


@pytest.mark.asyncio
async def test_slow_store_read_does_not_start_a_second_exchange(signals, credential):
    store = SlowLoadStore(credential)
    issuer = FakeIssuer()
    coordinator = _coordinator(store, signals, issuer)

    first = asyncio.create_task(coordinator.ensure_fresh("access-0"))
    await asyncio.sleep(0.03)
    second = asyncio.create_task(coordinator.ensure_fresh("access-0"))
    results = await asyncio.gather(first, second)

    assert issuer.refresh_calls == 1
    assert {c.access_token for c in results} == {"access-1"}


@pytest.mark.asyncio
async def test_caller_with_current_token_still_waits_for_exchange(store, signals):
    await store.save(Credential("access-7", "refresh-7"))
    issuer = FakeIssuer(hold=True)
    coordinator = _coordinator(store, signals, issuer)

    stale = asyncio.create_task(coordinator.ensure_fresh("access-6"))
    expired = asyncio.create_task(coordinator.ensure_fresh("access-7"))

    assert (await stale).access_token == "access-7"
    assert not expired.done()
    issuer.release()
    assert (await expired).access_token == "access-1"
    assert issuer.refresh_calls == 1


@pytest.mark.asyncio
async def test_store_write_failure_settles_queue_as_refresh_failure(signals, credential):
    store = BrokenStore(credential)
    coordinator = _coordinator(store, signals, FakeIssuer())

    with pytest.raises(RefreshFailed, match="redis down"):
        await asyncio.wait_for(coordinator.ensure_fresh("access-0"), timeout=1.0)

    assert coordinator.in_flight is False
    assert signals.terminated is True
    assert await store.load() is None


@pytest.mark.asyncio
async def test_store_clear_failure_still_settles_queue(signals, credential):
    store = BrokenStore(credential, fail_clear=True)
    coordinator = _coordinator(store, signals, FakeIssuer(fail=True))

    callers = [asyncio.create_task(coordinator.ensure_fresh("access-0")) for _ in range(2)]
    results = await asyncio.wait_for(
        asyncio.gather(*callers, return_exceptions=True), timeout=1.0,
    )

    assert all(isinstance(r, RefreshFailed) for r in results)
    assert coordinator.in_flight is False
    assert signals.terminated is True
