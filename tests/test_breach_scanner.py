"""BreachScanner and BreachScanScheduler tests."""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from deskflow.config import SYSTEM_ACTOR, EventType, SlaEventType, SlaStatus
from deskflow.core import RepositoryException
from deskflow.shared.domain.events import DomainEvent, SlaBreached
from deskflow.sla.application import BreachScanner, SlaPolicyCreateDTO
from deskflow.sla.infrastructure import BreachScanScheduler

pytestmark = pytest.mark.repository

BASE = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def policy(policy_service):
    return await policy_service.create_policy(SlaPolicyCreateDTO(
        name="Standard",
        first_response_time="1h",
        resolution_time="1d",
        next_response_time="30m",
    ))


@pytest.fixture
def published(event_bus) -> List[DomainEvent]:
    received: List[DomainEvent] = []

    async def record(event: DomainEvent) -> None:
        received.append(event)

    event_bus.subscribe(record, [EventType.SLA_BREACHED], name="recorder")
    return received


class TestScanOnce:

    async def test_nothing_due(self, breach_scanner, lifecycle_manager, policy, published) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)

        assert await breach_scanner.scan_once(now=BASE + timedelta(minutes=30)) == 0
        assert published == []

    async def test_overdue_event_is_breached(self, breach_scanner, lifecycle_manager, policy) -> None:
        applied = await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        now = BASE + timedelta(hours=2)

        assert await breach_scanner.scan_once(now=now) == 1

        events = {e.event_type: e for e in await lifecycle_manager.get_events(applied.id)}
        first_response = events[SlaEventType.FIRST_RESPONSE]
        assert first_response.status == SlaStatus.BREACHED
        assert first_response.breached_at == now
        assert first_response.met_at is None
        assert events[SlaEventType.RESOLUTION].is_pending
        assert (await lifecycle_manager.get_by_conversation("conv-1")).status == SlaStatus.BREACHED

    async def test_deadline_equal_to_now_is_due(self, breach_scanner, lifecycle_manager, policy) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)

        assert await breach_scanner.scan_once(now=BASE + timedelta(hours=1)) == 1

    async def test_breach_happens_once(self, breach_scanner, lifecycle_manager, policy, published) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        now = BASE + timedelta(hours=2)

        assert await breach_scanner.scan_once(now=now) == 1
        assert await breach_scanner.scan_once(now=now + timedelta(minutes=1)) == 0
        assert len(published) == 1

    async def test_met_event_is_never_breached(self, breach_scanner, lifecycle_manager, policy) -> None:
        applied = await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        await lifecycle_manager.mark_met(applied.id, SlaEventType.FIRST_RESPONSE, BASE + timedelta(minutes=10))

        assert await breach_scanner.scan_once(now=BASE + timedelta(hours=2)) == 0

    async def test_breached_event_cannot_be_met(self, breach_scanner, lifecycle_manager, policy) -> None:
        applied = await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        await breach_scanner.scan_once(now=BASE + timedelta(hours=2))

        assert not await lifecycle_manager.mark_met(
            applied.id, SlaEventType.FIRST_RESPONSE, BASE + timedelta(hours=3)
        )

    async def test_publishes_sla_breached(self, breach_scanner, lifecycle_manager, policy, published) -> None:
        applied = await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        now = BASE + timedelta(hours=2)

        await breach_scanner.scan_once(now=now)

        assert len(published) == 1
        event = published[0]
        assert isinstance(event, SlaBreached)
        assert event.conversation_id == "conv-1"
        assert event.actor_id == SYSTEM_ACTOR
        assert event.cascade_depth == 0
        assert event.applied_sla_id == applied.id
        assert event.sla_event_type == SlaEventType.FIRST_RESPONSE.value
        assert event.deadline_at == applied.first_response_deadline_at
        assert event.breached_at == now

    async def test_batch_size_limits_one_tick(self, sla_repository, event_bus, lifecycle_manager, policy) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        await lifecycle_manager.apply_sla("conv-2", policy.id, BASE + timedelta(minutes=5))
        scanner = BreachScanner(sla_repository, event_bus, batch_size=1)
        now = BASE + timedelta(hours=2)

        assert await scanner.scan_once(now=now) == 1
        assert await scanner.scan_once(now=now) == 1
        assert await scanner.scan_once(now=now) == 0


class TestRepositoryFailures:

    async def test_listing_failure_breaches_nothing_until_next_tick(
        self, breach_scanner, sla_repository, lifecycle_manager, policy, monkeypatch
    ) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        original = sla_repository.list_pending_events_due_by
        calls = {"count": 0}

        async def flaky(instant, limit=None):
            calls["count"] += 1
            if calls["count"] == 1:
                raise RepositoryException("connection lost")
            return await original(instant, limit)

        monkeypatch.setattr(sla_repository, "list_pending_events_due_by", flaky)
        now = BASE + timedelta(hours=2)

        assert await breach_scanner.scan_once(now=now) == 0
        assert await breach_scanner.scan_once(now=now) == 1

    async def test_failure_mid_tick_returns_count_so_far(
        self, breach_scanner, sla_repository, lifecycle_manager, policy, monkeypatch
    ) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        await lifecycle_manager.apply_sla("conv-2", policy.id, BASE + timedelta(minutes=5))
        original = sla_repository.mark_event_breached_if_pending
        calls = {"count": 0}

        async def flaky(event_id, breached_at):
            calls["count"] += 1
            if calls["count"] == 2:
                raise RepositoryException("connection lost")
            return await original(event_id, breached_at)

        monkeypatch.setattr(sla_repository, "mark_event_breached_if_pending", flaky)
        now = BASE + timedelta(hours=2)

        assert await breach_scanner.scan_once(now=now) == 1
        assert await breach_scanner.scan_once(now=now) == 1
        assert (await lifecycle_manager.get_by_conversation("conv-2")).status == SlaStatus.BREACHED

    async def test_status_update_failure_does_not_lose_the_breach(
        self, breach_scanner, sla_repository, lifecycle_manager, policy, published, monkeypatch
    ) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        original = sla_repository.update_applied_sla_status
        calls = {"count": 0}

        async def flaky(applied_sla_id, status):
            calls["count"] += 1
            if calls["count"] == 1:
                raise RepositoryException("connection lost")
            return await original(applied_sla_id, status)

        monkeypatch.setattr(sla_repository, "update_applied_sla_status", flaky)
        now = BASE + timedelta(hours=2)

        assert await breach_scanner.scan_once(now=now) == 1
        assert await breach_scanner.scan_once(now=now) == 0
        assert len(published) == 1
        assert published[0].conversation_id == "conv-1"
        assert (await lifecycle_manager.get_by_conversation("conv-1")).status == SlaStatus.BREACHED

    async def test_applied_sla_read_failure_keeps_event_pending(
        self, breach_scanner, sla_repository, lifecycle_manager, policy, published, monkeypatch
    ) -> None:
        await lifecycle_manager.apply_sla("conv-1", policy.id, BASE)
        original = sla_repository.get_applied_sla
        calls = {"count": 0}

        async def flaky(applied_sla_id):
            calls["count"] += 1
            if calls["count"] == 1:
                raise RepositoryException("connection lost")
            return await original(applied_sla_id)

        monkeypatch.setattr(sla_repository, "get_applied_sla", flaky)
        now = BASE + timedelta(hours=2)

        assert await breach_scanner.scan_once(now=now) == 0
        assert published == []
        assert await breach_scanner.scan_once(now=now) == 1
        assert len(published) == 1


class ExplodingScanner:
    async def scan_once(self, now=None) -> int:
        raise RuntimeError("boom")


class CountingScanner:
    def __init__(self):
        self.calls = 0

    async def scan_once(self, now=None) -> int:
        self.calls += 1
        return 3


@pytest.mark.unit
class TestBreachScanScheduler:

    async def test_tick_returns_scanner_count(self) -> None:
        scanner = CountingScanner()
        scheduler = BreachScanScheduler(scanner, interval_seconds=60)

        assert await scheduler.tick() == 3
        assert scanner.calls == 1

    async def test_tick_survives_scanner_errors(self) -> None:
        scheduler = BreachScanScheduler(ExplodingScanner(), interval_seconds=60)

        assert await scheduler.tick() == 0

    async def test_start_and_stop(self) -> None:
        scheduler = BreachScanScheduler(CountingScanner(), interval_seconds=3600)

        await scheduler.start()
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running

    async def test_stop_without_start_is_a_no_op(self) -> None:
        scheduler = BreachScanScheduler(CountingScanner(), interval_seconds=60)

        await scheduler.stop()

        assert not scheduler.is_running
