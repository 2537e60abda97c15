import logging
from typing import List, Optional
from uuid import UUID

from .calendar_logic import overlaps
from .data import Database
from .errors import VisitNotFoundError
from .models import DateRange, PermissionStatus, Visit


class DurableVisitRepository:
    """
    Lokaler Terminspeicher: geordnete Liste im Speicher, jede Änderung wird
    sofort in die Datenbank geschrieben. Ohne Datenbank rein im Speicher.
    """

    def __init__(self, database: Optional[Database] = None):
        self.database = database
        self._visits: List[Visit] = database.load_visits() if database is not None else []
        logging.info(f"DurableVisitRepository: {len(self._visits)} Termine geladen")

    def authorization_status(self) -> PermissionStatus:
        return PermissionStatus.AUTHORIZED

    async def request_authorization(self) -> bool:
        return True

    def all_visits(self) -> List[Visit]:
        return list(self._visits)

    def _index_of(self, visit_id: UUID) -> int:
        for i, v in enumerate(self._visits):
            if v.id == visit_id:
                return i
        raise VisitNotFoundError(visit_id)

    async def list(self, date_range: DateRange) -> List[Visit]:
        ordered = sorted(self._visits, key=lambda v: v.start)
        return [v for v in ordered if overlaps(v, date_range)]

    async def create(self, visit: Visit) -> Visit:
        # keine Deduplizierung: gleiche id zweimal anlegen ergibt zwei Einträge
        if self.database is not None:
            self.database.save_visit(visit)
        self._visits.append(visit)
        return visit

    async def update(self, visit: Visit) -> Visit:
        idx = self._index_of(visit.id)
        if self.database is not None:
            self.database.save_visit(visit)
        self._visits[idx] = visit
        return visit

    async def delete(self, visit_id: UUID) -> None:
        idx = self._index_of(visit_id)
        visit = self._visits[idx]
        if self.database is not None:
            self.database.delete_visit(visit)
        del self._visits[idx]

    def reload(self) -> int:
        """Liest die Termine neu aus der Datenbank (z.B. nach einem Restore)."""
        if self.database is not None:
            self._visits = self.database.load_visits()
        return len(self._visits)
