"""Schnittstelle zum Geräte-Kalender und eine lokale Implementierung."""
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional
from uuid import uuid4

from .data import Database
from .errors import CalendarError, PermissionDeniedError
from .models import DateRange, NativeEvent, PermissionStatus

ACCESS_SETTING = "calendar_access"


class DeviceCalendar(ABC):
    @abstractmethod
    def authorization_status(self) -> PermissionStatus:
        ...

    @abstractmethod
    async def request_access(self) -> bool:
        ...

    @abstractmethod
    async def events_matching(self, date_range: DateRange) -> List[NativeEvent]:
        ...

    @abstractmethod
    async def event_with_identifier(self, identifier: str) -> Optional[NativeEvent]:
        ...

    @abstractmethod
    async def save(self, event: NativeEvent) -> None:
        """Speichert das Ereignis; vergibt beim ersten Speichern `event.identifier`."""

    @abstractmethod
    async def remove(self, event: NativeEvent) -> None:
        ...


class LocalDeviceCalendar(DeviceCalendar):
    """
    Kalender im Prozess. `grant_access` entscheidet, wie `request_access`
    antwortet; `status` setzt den Ausgangszustand.

    Mit `database` werden Ereignisse und die erteilte Freigabe dort
    gespeichert und überstehen einen Neustart; ohne bleibt alles im Speicher.
    """

    def __init__(self, grant_access: bool = True,
                 status: Optional[PermissionStatus] = None,
                 database: Optional[Database] = None):
        self.grant_access = grant_access
        self.database = database
        if status is None:
            stored = database.load_setting(ACCESS_SETTING) if database is not None else None
            status = PermissionStatus(stored) if stored else PermissionStatus.NOT_DETERMINED
        self.status = status
        self._events: Dict[str, NativeEvent] = {}
        self.reload()

    def reload(self) -> int:
        """Liest die Ereignisse neu aus der Datenbank (z.B. nach einem Restore)."""
        if self.database is not None:
            self._events = {e.identifier: e for e in self.database.load_events()}
        return len(self._events)

    def authorization_status(self) -> PermissionStatus:
        return self.status

    def _check_access(self):
        if self.status != PermissionStatus.AUTHORIZED:
            raise PermissionDeniedError()

    async def request_access(self) -> bool:
        if self.status == PermissionStatus.NOT_DETERMINED:
            self.status = PermissionStatus.AUTHORIZED if self.grant_access else PermissionStatus.DENIED
            if self.database is not None:
                self.database.save_setting(ACCESS_SETTING, self.status.value)
        logging.info(f"LocalDeviceCalendar: access {self.status.value}")
        return self.status == PermissionStatus.AUTHORIZED

    async def events_matching(self, date_range: DateRange) -> List[NativeEvent]:
        self._check_access()
        # Ereignisse, die den Zeitraum berühren
        found = [
            replace(e, alarm_offsets=list(e.alarm_offsets))
            for e in self._events.values()
            if e.start <= date_range.end and e.end >= date_range.start
        ]
        return sorted(found, key=lambda e: e.start)

    async def event_with_identifier(self, identifier: str) -> Optional[NativeEvent]:
        self._check_access()
        event = self._events.get(identifier)
        return replace(event, alarm_offsets=list(event.alarm_offsets)) if event else None

    async def save(self, event: NativeEvent) -> None:
        self._check_access()
        if event.end < event.start:
            raise CalendarError("Ereignis endet vor seinem Beginn")
        if event.identifier is None:
            event.identifier = uuid4().hex
        if self.database is not None:
            self.database.save_event(event)
        self._events[event.identifier] = replace(event, alarm_offsets=list(event.alarm_offsets))

    async def remove(self, event: NativeEvent) -> None:
        self._check_access()
        if event.identifier not in self._events:
            raise CalendarError(f"Ereignis '{event.identifier}' existiert nicht")
        if self.database is not None:
            self.database.delete_event(event.identifier)
        del self._events[event.identifier]
