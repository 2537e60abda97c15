from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from .calendar_logic import start_of_day
from .models import Visit, VisitType


class VisitFilter(str, Enum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    UPCOMING = "upcoming"
    PAST = "past"


def _matches_text(visit: Visit, needle: str) -> bool:
    for value in (visit.title, visit.location, visit.notes):
        if value and needle in value.casefold():
            return True
    return False


def _matches_date(visit: Visit, selected: VisitFilter, now: datetime) -> bool:
    if selected == VisitFilter.TODAY:
        return start_of_day(visit.start) == start_of_day(now)
    if selected == VisitFilter.WEEK:
        return visit.start.isocalendar()[:2] == now.isocalendar()[:2]
    if selected == VisitFilter.MONTH:
        return (visit.start.year, visit.start.month) == (now.year, now.month)
    if selected == VisitFilter.UPCOMING:
        return visit.start > now
    if selected == VisitFilter.PAST:
        return visit.end < now
    return True


def filter_visits(
    visits: Iterable[Visit],
    search_text: str = "",
    selected_filter: VisitFilter = VisitFilter.ALL,
    visit_types: Optional[Iterable[VisitType]] = None,
    now: Optional[datetime] = None,
) -> List[Visit]:
    """
    Filtert Termine nach Suchtext (Titel, Ort, Notizen; ohne Groß-/Kleinschreibung),
    Zeitfilter und optional Terminarten. Ergebnis aufsteigend nach Start sortiert.
    """
    now = now or datetime.now()
    needle = search_text.strip().casefold()
    types = set(visit_types) if visit_types else None

    results = []
    for v in visits:
        if needle and not _matches_text(v, needle):
            continue
        if not _matches_date(v, selected_filter, now):
            continue
        if types is not None and v.visit_type not in types:
            continue
        results.append(v)
    return sorted(results, key=lambda v: v.start)
