import logging
from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .calendar_store import CalendarVisitRepository
from .data import Database
from .device_calendar import DeviceCalendar
from .durable_store import DurableVisitRepository
from .errors import AgendaError, PermissionDeniedError, StoreError, SyncFailedError
from .models import DateRange, PermissionStatus, Visit
from .notifications import NotificationScheduler, cancel_visit_reminder, schedule_visit_reminder


class VisitRepository(ABC):
    @abstractmethod
    async def list(self, date_range: DateRange) -> List[Visit]:
        ...

    @abstractmethod
    async def create(self, visit: Visit) -> Visit:
        ...

    @abstractmethod
    async def update(self, visit: Visit) -> Visit:
        ...

    @abstractmethod
    async def delete(self, visit_id: UUID) -> None:
        ...

    @abstractmethod
    async def request_authorization(self) -> bool:
        ...

    async def sync(self) -> int:
        return 0


class FallbackVisitRepository(VisitRepository):
    """
    Einziger Zugang zu den Terminen. Bei jedem Aufruf neu entschieden:
    ist der Kalender freigegeben, wird er benutzt; verweigert er oder
    schlägt fehl, erledigt der lokale Speicher den ganzen Aufruf.
    Eine weitere Stufe gibt es nicht.
    """

    def __init__(self, calendar_repo: Optional[CalendarVisitRepository],
                 durable_repo: DurableVisitRepository,
                 notifier: Optional[NotificationScheduler] = None):
        self.calendar_repo = calendar_repo
        self.durable_repo = durable_repo
        self.notifier = notifier

    @property
    def permission_status(self) -> PermissionStatus:
        if self.calendar_repo is None:
            return PermissionStatus.DENIED
        return self.calendar_repo.authorization_status()

    def _calendar_authorized(self) -> bool:
        return self.permission_status == PermissionStatus.AUTHORIZED

    async def _run(self, name, calendar_call, durable_call):
        """Gibt (Ergebnis, vom_Kalender_bedient) zurück."""
        authorized = self._calendar_authorized()
        if authorized:
            try:
                return await calendar_call(), True
            except AgendaError as e:
                logging.warning(f"Calendar {name} failed, falling back to local store: {e.message}")
        try:
            return await durable_call(), False
        except StoreError as e:
            if not authorized:
                raise PermissionDeniedError(
                    f"Kein Kalenderzugriff und lokaler Speicher fehlgeschlagen: {e.message}") from e
            raise SyncFailedError(f"{name} fehlgeschlagen: {e.message}") from e

    async def list(self, date_range: DateRange) -> List[Visit]:
        visits, _ = await self._run(
            "list",
            lambda: self.calendar_repo.list(date_range),
            lambda: self.durable_repo.list(date_range),
        )
        return visits

    async def create(self, visit: Visit) -> Visit:
        saved, on_calendar = await self._run(
            "create",
            lambda: self.calendar_repo.create(visit),
            lambda: self.durable_repo.create(visit),
        )
        if on_calendar:
            await schedule_visit_reminder(self.notifier, saved)
        return saved

    async def update(self, visit: Visit) -> Visit:
        saved, on_calendar = await self._run(
            "update",
            lambda: self.calendar_repo.update(visit),
            lambda: self.durable_repo.update(visit),
        )
        if on_calendar:
            await cancel_visit_reminder(self.notifier, saved.id)
            await schedule_visit_reminder(self.notifier, saved)
        return saved

    async def delete(self, visit_id: UUID) -> None:
        await self._run(
            "delete",
            lambda: self.calendar_repo.delete(visit_id),
            lambda: self.durable_repo.delete(visit_id),
        )
        await cancel_visit_reminder(self.notifier, visit_id)

    async def request_authorization(self) -> bool:
        if self.calendar_repo is None:
            return False
        try:
            granted = await self.calendar_repo.request_authorization()
        except AgendaError as e:
            logging.error(f"Calendar authorization request failed: {e.message}")
            return False
        logging.info(f"Calendar authorization granted: {granted}")
        return granted

    async def sync(self) -> int:
        """
        Verschiebt lokal gespeicherte Termine in den freigegebenen Kalender.
        Jeder Termin wird erst im Kalender angelegt und danach lokal gelöscht,
        damit es immer genau einen Eigentümer gibt.
        """
        if not self._calendar_authorized():
            logging.info("Sync skipped: calendar not authorized")
            return 0
        moved = 0
        for visit in self.durable_repo.all_visits():
            try:
                saved = await self.calendar_repo.create(visit)
            except AgendaError as e:
                raise SyncFailedError(
                    f"Termin '{visit.title}' konnte nicht übertragen werden: {e.message}") from e
            try:
                await self.durable_repo.delete(visit.id)
            except AgendaError as e:
                # Kalenderkopie zurücknehmen, der lokale Eintrag bleibt Eigentümer
                try:
                    await self.calendar_repo.delete(saved.id)
                except AgendaError as rollback_error:
                    logging.error(f"Rollback of calendar copy {saved.id} failed: {rollback_error.message}")
                raise SyncFailedError(
                    f"Termin '{visit.title}' konnte lokal nicht entfernt werden: {e.message}") from e
            await schedule_visit_reminder(self.notifier, saved)
            moved += 1
        logging.info(f"Sync moved {moved} visits into the device calendar")
        return moved


def build_repository(database: Optional[Database] = None,
                     calendar: Optional[DeviceCalendar] = None,
                     notifier: Optional[NotificationScheduler] = None) -> FallbackVisitRepository:
    calendar_repo = CalendarVisitRepository(calendar) if calendar is not None else None
    return FallbackVisitRepository(calendar_repo, DurableVisitRepository(database), notifier)
