from typing import Optional
from uuid import UUID


class AgendaError(Exception):
    """Basisklasse aller Agenda-Fehler mit einer Meldung für die Oberfläche."""
    default_message = "Unbekannter Fehler in der Agenda"
    can_retry = True

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PermissionDeniedError(AgendaError):
    default_message = "Zugriff auf den Kalender verweigert"
    can_retry = False


class VisitNotFoundError(AgendaError):
    def __init__(self, visit_id: Optional[UUID] = None, message: Optional[str] = None):
        self.visit_id = visit_id
        super().__init__(message or f"Termin '{visit_id}' nicht gefunden")


class SyncFailedError(AgendaError):
    default_message = "Synchronisierung fehlgeschlagen"


class ConversionFailedError(AgendaError):
    default_message = "Kalenderereignis konnte nicht umgewandelt werden"
    can_retry = False


class StoreError(AgendaError):
    default_message = "Fehler im lokalen Datenspeicher"


class CalendarError(AgendaError):
    default_message = "Fehler im Gerätekalender"
