from typing import Dict, Iterable

from justdad.models import Visit, VisitType


def count_by_type(visits: Iterable[Visit]) -> Dict[VisitType, int]:
    """Anzahl Termine je Terminart, alle Arten mit 0 vorbelegt."""
    counts = {vt: 0 for vt in VisitType}
    for v in visits:
        counts[v.visit_type] += 1
    return counts


def summarize_visits(visits: Iterable[Visit]) -> Dict[str, object]:
    """
    Gesamt-Zusammenfassung für eine Liste von Terminen:
      total       : Anzahl Termine
      by_type     : Anzahl je Terminart
      total_hours : Summe der Dauer in Stunden (1 Nachkommastelle)
      recurring   : Anzahl wiederkehrender Termine
    """
    visits = list(visits)
    hours = sum(v.duration.total_seconds() for v in visits) / 3600
    return {
        'total': len(visits),
        'by_type': count_by_type(visits),
        'total_hours': round(hours, 1),
        'recurring': sum(1 for v in visits if v.is_recurring),
    }
