import asyncio
from datetime import datetime, timedelta

import pytest

from justdad.calendar_store import CalendarVisitRepository
from justdad.device_calendar import LocalDeviceCalendar
from justdad.durable_store import DurableVisitRepository
from justdad.errors import PermissionDeniedError, StoreError, SyncFailedError, VisitNotFoundError
from justdad.models import DateRange, PermissionStatus, Visit, VisitType
from justdad.notifications import LocalNotificationCenter
from justdad.repository import FallbackVisitRepository, build_repository

MARCH = DateRange(datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59, 59))


def make_visit(title, start, hours=1, **kw):
    return Visit(title=title, start=start, end=start + timedelta(hours=hours), **kw)


def future(days=3, hour=10):
    base = datetime.now().replace(minute=0, second=0, microsecond=0)
    return base.replace(hour=hour) + timedelta(days=days)


class SpyCalendar(LocalDeviceCalendar):
    """Protokolliert jeden Aufruf außer der Statusabfrage."""

    def __init__(self, **kw):
        super().__init__(**kw)
        self.calls = []

    async def events_matching(self, date_range):
        self.calls.append('events_matching')
        return await super().events_matching(date_range)

    async def event_with_identifier(self, identifier):
        self.calls.append('event_with_identifier')
        return await super().event_with_identifier(identifier)

    async def save(self, event):
        self.calls.append('save')
        await super().save(event)

    async def remove(self, event):
        self.calls.append('remove')
        await super().remove(event)


class FailingCalendar(LocalDeviceCalendar):
    async def save(self, event):
        raise RuntimeError("device error")

    async def events_matching(self, date_range):
        raise RuntimeError("device error")


class BrokenDatabase:
    def load_visits(self):
        return []

    def save_visit(self, visit):
        raise StoreError("disk full")

    def delete_visit(self, visit):
        raise StoreError("disk full")


def test_denied_calendar_serves_everything_locally():
    spy = SpyCalendar(status=PermissionStatus.DENIED)
    repo = build_repository(calendar=spy)
    dentist = make_visit("Dentist", datetime(2024, 3, 1, 10), visit_type=VisitType.MEDICAL)

    saved = asyncio.run(repo.create(dentist))
    assert saved.external_calendar_id is None
    assert asyncio.run(repo.list(MARCH)) == [dentist]
    asyncio.run(repo.update(dentist.edited(title="Dentist (moved)")))
    asyncio.run(repo.delete(dentist.id))
    assert asyncio.run(repo.list(MARCH)) == []
    assert spy.calls == []


def test_authorized_calendar_is_preferred():
    spy = SpyCalendar(status=PermissionStatus.AUTHORIZED)
    repo = build_repository(calendar=spy)
    saved = asyncio.run(repo.create(make_visit("Kino", datetime(2024, 3, 8, 17))))
    assert saved.external_calendar_id is not None
    assert repo.durable_repo.all_visits() == []
    assert 'save' in spy.calls


def test_calendar_failure_falls_back_to_durable():
    repo = build_repository(calendar=FailingCalendar(status=PermissionStatus.AUTHORIZED))
    v = make_visit("Kino", datetime(2024, 3, 8, 17))
    saved = asyncio.run(repo.create(v))
    assert saved.external_calendar_id is None
    assert repo.durable_repo.all_visits() == [v]
    # Lesen fällt ebenfalls zurück
    assert asyncio.run(repo.list(MARCH)) == [v]


def test_update_of_locally_owned_visit_while_authorized():
    cal = LocalDeviceCalendar(status=PermissionStatus.DENIED)
    repo = build_repository(calendar=cal)
    v = make_visit("Schule", datetime(2024, 3, 4, 8))
    asyncio.run(repo.create(v))
    cal.status = PermissionStatus.AUTHORIZED
    # Kalender kennt den Termin nicht, lokaler Speicher übernimmt
    updated = asyncio.run(repo.update(v.edited(notes="Elternsprechtag")))
    assert repo.durable_repo.all_visits() == [updated]


def test_not_found_everywhere_propagates():
    repo = build_repository(calendar=LocalDeviceCalendar(status=PermissionStatus.AUTHORIZED))
    with pytest.raises(VisitNotFoundError):
        asyncio.run(repo.update(make_visit("Geist", datetime(2024, 3, 4, 8))))


def test_broken_store_without_calendar_access_is_permission_denied():
    repo = FallbackVisitRepository(
        CalendarVisitRepository(LocalDeviceCalendar(status=PermissionStatus.DENIED)),
        DurableVisitRepository(BrokenDatabase()),
    )
    with pytest.raises(PermissionDeniedError):
        asyncio.run(repo.create(make_visit("x", datetime(2024, 3, 4, 8))))


def test_broken_store_after_calendar_failure_is_sync_failed():
    repo = FallbackVisitRepository(
        CalendarVisitRepository(FailingCalendar(status=PermissionStatus.AUTHORIZED)),
        DurableVisitRepository(BrokenDatabase()),
    )
    with pytest.raises(SyncFailedError):
        asyncio.run(repo.create(make_visit("x", datetime(2024, 3, 4, 8))))


def test_calendar_create_and_update_schedule_reminders():
    center = LocalNotificationCenter()
    repo = build_repository(calendar=LocalDeviceCalendar(status=PermissionStatus.AUTHORIZED), notifier=center)
    v = make_visit("Fußball", future(), reminder_minutes=60)
    saved = asyncio.run(repo.create(v))
    assert center.get(v.id).fire_date == v.start - timedelta(minutes=60)

    asyncio.run(repo.update(saved.edited(reminder_minutes=15)))
    assert len(center.pending()) == 1
    assert center.get(v.id).fire_date == v.start - timedelta(minutes=15)


def test_local_create_does_not_schedule_but_delete_cancels():
    center = LocalNotificationCenter()
    repo = build_repository(calendar=LocalDeviceCalendar(status=PermissionStatus.DENIED), notifier=center)
    v = make_visit("Fußball", future(), reminder_minutes=60)
    asyncio.run(repo.create(v))
    assert center.pending() == []

    asyncio.run(center.schedule(v.id, v.start, "t", "b"))
    asyncio.run(repo.delete(v.id))
    assert center.get(v.id) is None


def test_request_authorization_without_calendar():
    repo = build_repository()
    assert repo.permission_status == PermissionStatus.DENIED
    assert asyncio.run(repo.request_authorization()) is False


def test_sync_moves_local_visits_into_calendar():
    cal = LocalDeviceCalendar(grant_access=True)
    center = LocalNotificationCenter()
    repo = build_repository(calendar=cal, notifier=center)
    a = make_visit("A", future(days=2), reminder_minutes=30)
    b = make_visit("B", future(days=4))
    asyncio.run(repo.create(a))
    asyncio.run(repo.create(b))
    assert asyncio.run(repo.sync()) == 0

    assert asyncio.run(repo.request_authorization()) is True
    assert asyncio.run(repo.sync()) == 2
    assert repo.durable_repo.all_visits() == []
    window = DateRange(future(days=0), future(days=10))
    assert {v.id for v in asyncio.run(repo.list(window))} == {a.id, b.id}
    assert center.get(a.id) is not None
