"""End-to-end wiring tests for the composition root."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from deskflow.automation.application import RuleCreateDTO
from deskflow.config import EventType, Settings, SlaStatus
from deskflow.main import Application
from deskflow.shared.domain.events import ConversationCreated, MessageSent
from deskflow.sla.application import SlaPolicyCreateDTO

BASE = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def app(tmp_path: Path, conversation_services):
    settings = Settings(
        environment="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'deskflow.db'}",
        sla_config_path=tmp_path / "sla_config.yaml",
        breach_scan_interval_seconds=3600,
    )
    application = Application(settings, **conversation_services)
    await application.start(create_schema=True)
    yield application
    await application.stop()


async def test_conversation_flow(app: Application, conversation_store, tmp_path: Path) -> None:
    policy = await app.policy_service.create_policy(SlaPolicyCreateDTO(
        name="Standard", first_response_time="1h", resolution_time="1d", next_response_time="30m"
    ))
    (tmp_path / "sla_config.yaml").write_text(
        f"teams:\n  billing:\n    default_policy_id: {policy.id}\n"
    )
    assert app.team_directory.reload()
    await app.rule_service.create_rule(RuleCreateDTO(
        name="Tag VIP",
        rule_type="conversation_update",
        event_subscription=[EventType.CONVERSATION_CREATED],
        condition={"operator": "simple", "attribute": "priority", "comparison": "equals", "value": "high"},
        actions=[{"action_type": "add_tag", "parameters": {"tag": "vip"}}],
    ))

    await app.publish(ConversationCreated(
        conversation_id="conv-1",
        inbox_id="inbox-1",
        contact_id="contact-1",
        team_id="billing",
        occurred_at=BASE,
        attributes={"priority": "high"},
    ))

    applied = await app.lifecycle_manager.get_by_conversation("conv-1")
    assert applied is not None
    assert applied.first_response_deadline_at == BASE + timedelta(hours=1)
    assert conversation_store.get("conv-1")["tags"] == ["vip"]

    await app.publish(MessageSent(
        conversation_id="conv-1", message_id="m-1", agent_id="agent-1", occurred_at=BASE + timedelta(minutes=5)
    ))
    assert await app.breach_scanner.scan_once(now=BASE + timedelta(days=2)) == 1

    response = await app.lifecycle_manager.describe("conv-1")
    assert response.status == SlaStatus.BREACHED
    assert sorted(e.status.value for e in response.events) == ["breached", "met"]


async def test_start_twice_is_a_no_op(app: Application) -> None:
    subscribers = app.event_bus.subscriber_count

    await app.start()

    assert app.event_bus.subscriber_count == subscribers
    assert app.scheduler.is_running
