"""Erinnerungen an Termine. Fehler werden nur protokolliert, nie weitergereicht."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from .models import Visit


class NotificationScheduler(ABC):
    @abstractmethod
    async def schedule(self, visit_id: UUID, fire_date: datetime, title: str, body: str) -> None:
        ...

    @abstractmethod
    async def cancel(self, visit_id: UUID) -> None:
        ...


@dataclass
class PendingNotification:
    visit_id: UUID
    fire_date: datetime
    title: str
    body: str


class LocalNotificationCenter(NotificationScheduler):
    """Hält anstehende Erinnerungen im Speicher, eine pro Termin."""

    def __init__(self):
        self._pending: Dict[UUID, PendingNotification] = {}

    async def schedule(self, visit_id, fire_date, title, body):
        self._pending[visit_id] = PendingNotification(visit_id, fire_date, title, body)

    async def cancel(self, visit_id):
        self._pending.pop(visit_id, None)

    def pending(self) -> List[PendingNotification]:
        return sorted(self._pending.values(), key=lambda p: p.fire_date)

    def get(self, visit_id: UUID) -> Optional[PendingNotification]:
        return self._pending.get(visit_id)


async def schedule_visit_reminder(scheduler: Optional[NotificationScheduler], visit: Visit,
                                  now: Optional[datetime] = None) -> bool:
    """Plant die Erinnerung `reminder_minutes` vor Beginn. True, wenn geplant."""
    if scheduler is None or visit.reminder_minutes is None:
        return False
    fire_date = visit.start - timedelta(minutes=visit.reminder_minutes)
    now = now or datetime.now(tz=fire_date.tzinfo)
    if fire_date < now:
        logging.info(f"Reminder for visit {visit.id} lies in the past, not scheduled")
        return False
    body = f"Dein Termin '{visit.title}' beginnt in {visit.reminder_minutes} Minuten"
    try:
        await scheduler.schedule(visit.id, fire_date, "Terminerinnerung", body)
    except Exception as e:
        logging.error(f"Scheduling reminder for visit {visit.id} failed: {e}")
        return False
    return True


async def cancel_visit_reminder(scheduler: Optional[NotificationScheduler], visit_id: UUID) -> None:
    if scheduler is None:
        return
    try:
        await scheduler.cancel(visit_id)
    except Exception as e:
        logging.error(f"Cancelling reminder for visit {visit_id} failed: {e}")
