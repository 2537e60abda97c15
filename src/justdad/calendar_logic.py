from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Tuple

from dateutil.relativedelta import relativedelta

from .models import DateRange, Frequency, Visit


def start_of_day(ts: datetime) -> datetime:
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(ts: datetime) -> datetime:
    """Letzter Moment des Tages (Tagesbeginn + 1 Tag - 1 Mikrosekunde)."""
    return start_of_day(ts) + timedelta(days=1, microseconds=-1)


def month_start(ts: datetime) -> datetime:
    return start_of_day(ts).replace(day=1)


def shift_month(ts: datetime, months: int) -> datetime:
    return month_start(ts) + relativedelta(months=months)


def month_range(ts: datetime) -> DateRange:
    """Zeitraum vom ersten bis zum letzten Moment des Monats von `ts`."""
    first = month_start(ts)
    last_day = first + relativedelta(months=1, days=-1)
    return DateRange(first, end_of_day(last_day))


def default_window(now: datetime, years: int = 1) -> DateRange:
    return DateRange(now - relativedelta(years=years), now + relativedelta(years=years))


def overlaps(visit: Visit, rng: DateRange) -> bool:
    """Termin liegt im Zeitraum, wenn Start oder Ende drin liegt oder er ihn komplett überspannt."""
    return (
        rng.contains(visit.start)
        or rng.contains(visit.end)
        or (visit.start <= rng.start and visit.end >= rng.end)
    )


def group_by_day(visits: Iterable[Visit]) -> Dict[datetime, List[Visit]]:
    """Baue den Tagesindex komplett neu auf: Tagesbeginn -> nach Start sortierte Termine."""
    index: Dict[datetime, List[Visit]] = {}
    for v in visits:
        index.setdefault(start_of_day(v.start), []).append(v)
    for day in index:
        index[day].sort(key=lambda v: v.start)
    return index


def flatten_index(index: Dict[datetime, List[Visit]]) -> List[Visit]:
    return [v for bucket in index.values() for v in bucket]


def expand_occurrences(visit: Visit, rng: DateRange) -> List[Tuple[datetime, datetime]]:
    """
    Liefert alle (Start, Ende)-Paare eines Termins, die den Zeitraum berühren.
    Nicht wiederkehrende Termine liefern höchstens sich selbst.
    Wöchentliche Regeln mit Wochentagsliste laufen je Wochentag in
    Intervall-Schritten, sonst wird vom ursprünglichen Start aus gezählt.
    """
    rule = visit.recurrence_rule
    duration = visit.duration
    if not visit.is_recurring or rule is None or rule.frequency == Frequency.NONE:
        return [(visit.start, visit.end)] if overlaps(visit, rng) else []

    starts: List[datetime] = []
    if rule.frequency == Frequency.WEEKLY and rule.weekdays:
        for wd in sorted(rule.weekdays):
            # ersten Termin dieses Wochentags ab dem ursprünglichen Start
            delta_days = (wd - visit.start.isoweekday()) % 7
            current = visit.start + timedelta(days=delta_days)
            while current <= rng.end:
                starts.append(current)
                current += timedelta(weeks=rule.interval)
    else:
        count = 0
        current = visit.start
        while current <= rng.end:
            starts.append(current)
            count += 1
            # immer vom ursprünglichen Start aus zählen
            current = rule.next_occurrence(visit.start, count)

    out = []
    for s in sorted(set(starts)):
        e = s + duration
        if rng.contains(s) or rng.contains(e) or (s <= rng.start and e >= rng.end):
            out.append((s, e))
    return out


def occurrences_by_day(visits: Iterable[Visit], rng: DateRange) -> Dict[datetime, List[Visit]]:
    """Tagesindex mit aufgelösten Wiederholungen; jedes Vorkommen als Kopie mit eigenem Zeitraum."""
    occurrences = []
    for v in visits:
        for s, e in expand_occurrences(v, rng):
            occurrences.append(v if (s, e) == (v.start, v.end) else v.edited(start=s, end=e))
    return group_by_day(occurrences)
