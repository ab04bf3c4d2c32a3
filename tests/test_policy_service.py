"""SlaPolicyService and BusinessCalendarService tests."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from deskflow.core import (
    DuplicateEntryException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from deskflow.sla.application import (
    BusinessHoursDTO,
    HolidayCreateDTO,
    SlaPolicyCreateDTO,
    SlaPolicyUpdateDTO,
)
from deskflow.sla.domain import AppliedSla

pytestmark = pytest.mark.repository

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def policy_dto(name: str = "Standard", **overrides) -> SlaPolicyCreateDTO:
    data = {
        "name": name,
        "description": "Default support targets",
        "first_response_time": "2h",
        "resolution_time": "1d",
        "next_response_time": "4h",
    }
    data.update(overrides)
    return SlaPolicyCreateDTO(**data)


class TestSlaPolicyService:

    async def test_create_and_get(self, policy_service) -> None:
        created = await policy_service.create_policy(policy_dto())

        loaded = await policy_service.get_policy(created.id)

        assert loaded.name == "Standard"
        assert loaded.first_response_time == "2h"
        assert loaded.resolution_time == "1d"
        assert loaded.next_response_time == "4h"
        assert loaded.created_at.tzinfo is not None

    async def test_duplicate_name(self, policy_service) -> None:
        await policy_service.create_policy(policy_dto())

        with pytest.raises(ValidationException):
            await policy_service.create_policy(policy_dto(first_response_time="1h"))

    async def test_list_is_ordered_by_name(self, policy_service) -> None:
        await policy_service.create_policy(policy_dto("Premium"))
        await policy_service.create_policy(policy_dto("Basic"))

        assert [p.name for p in await policy_service.list_policies()] == ["Basic", "Premium"]

    async def test_partial_update(self, policy_service) -> None:
        created = await policy_service.create_policy(policy_dto())

        await policy_service.update_policy(created.id, SlaPolicyUpdateDTO(first_response_time="30m"))

        loaded = await policy_service.get_policy(created.id)
        assert loaded.first_response_time == "30m"
        assert loaded.resolution_time == "1d"
        assert loaded.description == "Default support targets"

    async def test_update_to_taken_name(self, policy_service) -> None:
        await policy_service.create_policy(policy_dto("Basic"))
        premium = await policy_service.create_policy(policy_dto("Premium"))

        with pytest.raises(ValidationException):
            await policy_service.update_policy(premium.id, SlaPolicyUpdateDTO(name="Basic"))

    async def test_update_rejects_bad_duration(self) -> None:
        with pytest.raises(ValidationError):
            SlaPolicyUpdateDTO(resolution_time="forever")

    async def test_missing_policy(self, policy_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await policy_service.get_policy("nope")
        with pytest.raises(ResourceNotFoundException):
            await policy_service.update_policy("nope", SlaPolicyUpdateDTO(name="x"))
        with pytest.raises(ResourceNotFoundException):
            await policy_service.delete_policy("nope")

    async def test_delete(self, policy_service) -> None:
        created = await policy_service.create_policy(policy_dto())

        await policy_service.delete_policy(created.id)

        assert await policy_service.list_policies() == []

    async def test_delete_policy_in_use_removes_its_applied_slas(
        self, policy_service, lifecycle_manager
    ) -> None:
        created = await policy_service.create_policy(policy_dto())
        await lifecycle_manager.apply_sla("conv-1", created.id, utc(2024, 3, 1, 9, 0))

        await policy_service.delete_policy(created.id)

        assert await lifecycle_manager.get_by_conversation("conv-1") is None

    async def test_applied_sla_with_unknown_policy_is_not_a_duplicate(self, sla_repository) -> None:
        applied = AppliedSla(
            conversation_id="conv-1",
            sla_policy_id="missing-policy",
            first_response_deadline_at=utc(2024, 3, 1, 10, 0),
            resolution_deadline_at=utc(2024, 3, 2, 9, 0),
        )

        with pytest.raises(RepositoryException) as exc_info:
            await sla_repository.create_applied_sla(applied, [])

        assert not isinstance(exc_info.value, DuplicateEntryException)


class TestBusinessCalendarService:

    async def _save_office_hours(self, calendar_service, name: str = "office", timezone_name: str = "UTC"):
        return await calendar_service.save_business_hours(BusinessHoursDTO(
            name=name,
            timezone=timezone_name,
            schedule=[{"day": d, "start": "09:00", "end": "17:00"} for d in WEEKDAYS],
        ))

    async def test_save_and_get_business_hours(self, calendar_service) -> None:
        await self._save_office_hours(calendar_service, timezone_name="Europe/Berlin")

        hours = await calendar_service.get_business_hours("office")

        assert hours.timezone == "Europe/Berlin"
        assert [entry.day for entry in hours.schedule] == list(WEEKDAYS)

    async def test_save_replaces_existing_schedule(self, calendar_service) -> None:
        await self._save_office_hours(calendar_service)
        await calendar_service.save_business_hours(BusinessHoursDTO(
            name="office",
            timezone="UTC",
            schedule=[{"day": "Saturday", "start": "10:00", "end": "14:00"}],
        ))

        hours = await calendar_service.get_business_hours("office")

        assert [entry.day for entry in hours.schedule] == ["Saturday"]

    async def test_missing_business_hours(self, calendar_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await calendar_service.get_business_hours("nope")

    async def test_empty_schedule_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BusinessHoursDTO(name="closed", schedule=[])

    async def test_holidays(self, calendar_service) -> None:
        christmas = await calendar_service.add_holiday(
            HolidayCreateDTO(name="Christmas", date=date(2024, 12, 25), recurring=True)
        )
        await calendar_service.add_holiday(HolidayCreateDTO(name="Closure", date=date(2024, 3, 4)))

        holidays = await calendar_service.list_holidays()
        assert [h.name for h in holidays] == ["Closure", "Christmas"]
        assert holidays[1].recurring

        await calendar_service.remove_holiday(christmas.id)
        assert [h.name for h in await calendar_service.list_holidays()] == ["Closure"]

        with pytest.raises(ResourceNotFoundException):
            await calendar_service.remove_holiday(christmas.id)

    async def test_team_calendar_uses_team_schedule_and_holidays(
        self, calendar_service, team_directory
    ) -> None:
        await self._save_office_hours(calendar_service)
        await calendar_service.add_holiday(HolidayCreateDTO(name="Closure", date=date(2024, 3, 4)))
        team_directory.business_hours["billing"] = "office"

        calendar = await calendar_service.calendar_for_team("billing")

        assert calendar.is_business_time(utc(2024, 3, 1, 10, 0))
        assert not calendar.is_business_time(utc(2024, 3, 2, 10, 0))
        assert not calendar.is_business_time(utc(2024, 3, 4, 10, 0))

    async def test_team_without_schedule_uses_default(self, calendar_service) -> None:
        await self._save_office_hours(calendar_service, name="default")

        calendar = await calendar_service.calendar_for_team("sales")

        assert not calendar.is_business_time(utc(2024, 3, 2, 10, 0))

    async def test_no_stored_schedule_is_around_the_clock(self, calendar_service) -> None:
        calendar = await calendar_service.calendar_for_team(None)

        assert calendar.is_business_time(utc(2024, 3, 2, 3, 0))
