import logging
from typing import Dict, List, Optional
from uuid import UUID, uuid4, uuid5, NAMESPACE_URL

from .device_calendar import DeviceCalendar
from .errors import AgendaError, CalendarError, ConversionFailedError, PermissionDeniedError, VisitNotFoundError
from .models import DateRange, Frequency, NativeEvent, PermissionStatus, Visit, VisitType

UNTITLED = "Ohne Titel"

# Der Kalender kennt keine Terminart. Beim Zurücklesen wird sie aus den
# Notizen geraten; erster Treffer gewinnt.
TYPE_KEYWORDS = (
    (VisitType.WEEKEND, ("weekend", "fin de semana", "wochenende")),
    (VisitType.DINNER, ("dinner", "cena", "abendessen")),
    (VisitType.ACTIVITY, ("event", "evento", "veranstaltung")),
    (VisitType.EMERGENCY, ("emergency", "emergencia", "notfall")),
)


def infer_visit_type(notes: Optional[str]) -> VisitType:
    """Terminart per Stichwortsuche in den Notizen, sonst GENERAL (verlustbehaftet)."""
    text = (notes or "").casefold()
    for visit_type, keywords in TYPE_KEYWORDS:
        if any(k in text for k in keywords):
            return visit_type
    return VisitType.GENERAL


def event_visit_id(identifier: Optional[str]) -> UUID:
    """Stabile Termin-id für ein Kalenderereignis ohne bekannte Herkunft."""
    if identifier is None:
        return uuid4()
    return uuid5(NAMESPACE_URL, f"justdad-event:{identifier}")


def visit_to_event(visit: Visit, identifier: Optional[str] = None) -> NativeEvent:
    alarms = [-visit.reminder_minutes * 60] if visit.reminder_minutes is not None else []
    recurrence = None
    rule = visit.recurrence_rule
    if visit.is_recurring and rule is not None and rule.frequency != Frequency.NONE:
        # nur Frequenz + Intervall, Wochentage gehen verloren
        recurrence = (rule.frequency, max(1, rule.interval))
    return NativeEvent(
        title=visit.title,
        start=visit.start,
        end=visit.end,
        location=visit.location,
        notes=visit.notes,
        alarm_offsets=alarms,
        recurrence=recurrence,
        identifier=identifier or visit.external_calendar_id,
    )


def event_to_visit(event: NativeEvent, visit_id: Optional[UUID] = None) -> Visit:
    if event.end <= event.start:
        raise ConversionFailedError(
            f"Ereignis '{event.identifier}' endet nicht nach seinem Beginn")

    reminder = None
    if event.alarm_offsets:
        minutes = int(-event.alarm_offsets[0] / 60)
        reminder = minutes if minutes >= 0 else None

    return Visit(
        id=visit_id or event_visit_id(event.identifier),
        title=event.title if event.title and event.title.strip() else UNTITLED,
        start=event.start,
        end=event.end,
        location=event.location,
        notes=event.notes,
        reminder_minutes=reminder,
        is_recurring=event.recurrence is not None,
        recurrence_rule=None,
        visit_type=infer_visit_type(event.notes),
        external_calendar_id=event.identifier,
    )


class CalendarVisitRepository:
    """Terminspeicher auf dem Geräte-Kalender. Wiederholt nichts selbst."""

    def __init__(self, calendar: DeviceCalendar):
        self.calendar = calendar
        self._event_ids: Dict[UUID, str] = {}

    def authorization_status(self) -> PermissionStatus:
        return self.calendar.authorization_status()

    def _require_authorized(self):
        if self.authorization_status() != PermissionStatus.AUTHORIZED:
            raise PermissionDeniedError()

    def _remember(self, visit_id: UUID, identifier: Optional[str]):
        if identifier is not None:
            self._event_ids[visit_id] = identifier

    def _visit_id_for(self, identifier: Optional[str]) -> Optional[UUID]:
        for vid, eid in self._event_ids.items():
            if eid == identifier:
                return vid
        return None

    async def _device(self, coro):
        try:
            return await coro
        except AgendaError:
            raise
        except Exception as e:
            logging.error(f"Device calendar error: {e}")
            raise CalendarError(f"Fehler im Gerätekalender: {e}") from e

    async def request_authorization(self) -> bool:
        return bool(await self._device(self.calendar.request_access()))

    async def list(self, date_range: DateRange) -> List[Visit]:
        self._require_authorized()
        events = await self._device(self.calendar.events_matching(date_range))
        visits = []
        for e in events:
            try:
                v = event_to_visit(e, self._visit_id_for(e.identifier))
            except ConversionFailedError as ex:
                logging.warning(f"Skipping calendar event: {ex.message}")
                continue
            self._remember(v.id, e.identifier)
            visits.append(v)
        return visits

    async def create(self, visit: Visit) -> Visit:
        self._require_authorized()
        event = visit_to_event(visit)
        event.identifier = None
        await self._device(self.calendar.save(event))
        if event.identifier is None:
            raise CalendarError("Gerätekalender hat keine Ereignis-id vergeben")
        self._remember(visit.id, event.identifier)
        return visit.edited(external_calendar_id=event.identifier)

    async def update(self, visit: Visit) -> Visit:
        self._require_authorized()
        identifier = visit.external_calendar_id or self._event_ids.get(visit.id)
        if identifier is None:
            raise VisitNotFoundError(visit.id)
        existing = await self._device(self.calendar.event_with_identifier(identifier))
        if existing is None:
            raise VisitNotFoundError(visit.id)
        # Alarme werden ersetzt, nicht angehängt
        await self._device(self.calendar.save(visit_to_event(visit, identifier)))
        self._remember(visit.id, identifier)
        return visit.edited(external_calendar_id=identifier)

    async def delete(self, visit_id: UUID) -> None:
        self._require_authorized()
        identifier = self._event_ids.get(visit_id)
        if identifier is None:
            raise VisitNotFoundError(visit_id)
        existing = await self._device(self.calendar.event_with_identifier(identifier))
        if existing is None:
            self._event_ids.pop(visit_id, None)
            raise VisitNotFoundError(visit_id)
        await self._device(self.calendar.remove(existing))
        self._event_ids.pop(visit_id, None)
