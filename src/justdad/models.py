from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple
from uuid import UUID, uuid4

from dateutil.relativedelta import relativedelta


class VisitType(str, Enum):
    """Kategorie eines Umgangstermins."""
    WEEKEND = "weekend"
    DINNER = "dinner"
    ACTIVITY = "activity"
    SCHOOL = "school"
    MEDICAL = "medical"
    EMERGENCY = "emergency"
    GENERAL = "general"


class Frequency(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PermissionStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"


class OperationKind(str, Enum):
    LOAD = "load"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SYNC = "sync"


class OperationState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class RecurrenceRule:
    """Wiederholungsregel eines Termins (z. B. alle 2 Wochen Sa+So).

    Wochentage nach ISO: 1=Montag … 7=Sonntag.
    """
    frequency: Frequency = Frequency.WEEKLY
    interval: int = 1
    weekdays: Optional[FrozenSet[int]] = None

    def __post_init__(self):
        object.__setattr__(self, 'frequency', Frequency(self.frequency))
        if not isinstance(self.interval, int) or self.interval < 1:
            raise ValueError(f"interval must be a positive integer, got {self.interval!r}")
        if self.weekdays is not None:
            wd = frozenset(int(d) for d in self.weekdays)
            if any(d < 1 or d > 7 for d in wd):
                raise ValueError(f"weekdays must be within 1..7, got {sorted(wd)}")
            object.__setattr__(self, 'weekdays', wd or None)

    def next_occurrence(self, ts: datetime, count: int = 1) -> Optional[datetime]:
        """`count`-te Wiederholung nach `ts`; Monate ohne Tagesdrift (31.1. -> 29.2. -> 31.3.)."""
        steps = self.interval * count
        if self.frequency == Frequency.DAILY:
            return ts + timedelta(days=steps)
        if self.frequency == Frequency.WEEKLY:
            return ts + timedelta(weeks=steps)
        if self.frequency == Frequency.MONTHLY:
            return ts + relativedelta(months=steps)
        return None

    def to_dict(self) -> dict:
        return {
            'frequency': self.frequency.value,
            'interval': self.interval,
            'weekdays': sorted(self.weekdays) if self.weekdays else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RecurrenceRule':
        wd = data.get('weekdays')
        return cls(
            frequency=Frequency(data.get('frequency', Frequency.WEEKLY.value)),
            interval=int(data.get('interval', 1)),
            weekdays=frozenset(wd) if wd else None,
        )


@dataclass
class Visit:
    """Ein geplanter Umgangstermin mit Zeitraum, Ort, Notizen und Typ.

    `external_calendar_id` ist nur ein Rückverweis auf das gespiegelte
    Geräte-Kalenderereignis, kein zweiter Eigentümer.
    """
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    reminder_minutes: Optional[int] = None
    is_recurring: bool = False
    recurrence_rule: Optional[RecurrenceRule] = None
    visit_type: VisitType = VisitType.GENERAL
    external_calendar_id: Optional[str] = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("title must not be empty")
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be after start ({self.start})")
        if self.reminder_minutes is not None and self.reminder_minutes < 0:
            raise ValueError("reminder_minutes must not be negative")
        self.visit_type = VisitType(self.visit_type)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def edited(self, **changes) -> 'Visit':
        """Kopie mit geänderten Feldern; die id bleibt unverändert."""
        if 'id' in changes and changes['id'] != self.id:
            raise ValueError("visit id is immutable")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            'id': str(self.id),
            'title': self.title,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'location': self.location,
            'notes': self.notes,
            'reminder_minutes': self.reminder_minutes,
            'is_recurring': self.is_recurring,
            'recurrence_rule': self.recurrence_rule.to_dict() if self.recurrence_rule else None,
            'visit_type': self.visit_type.value,
            'external_calendar_id': self.external_calendar_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Visit':
        rule = data.get('recurrence_rule')
        return cls(
            id=UUID(data['id']),
            title=data['title'],
            start=datetime.fromisoformat(data['start']),
            end=datetime.fromisoformat(data['end']),
            location=data.get('location'),
            notes=data.get('notes'),
            reminder_minutes=data.get('reminder_minutes'),
            is_recurring=bool(data.get('is_recurring', False)),
            recurrence_rule=RecurrenceRule.from_dict(rule) if rule else None,
            visit_type=VisitType(data.get('visit_type', VisitType.GENERAL.value)),
            external_calendar_id=data.get('external_calendar_id'),
        )


@dataclass(frozen=True)
class DateRange:
    """Geschlossenes Zeitintervall [start, end]."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"range end ({self.end}) lies before start ({self.start})")

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


@dataclass
class NativeEvent:
    """Ereignis im Format des Geräte-Kalenders."""
    title: Optional[str]
    start: datetime
    end: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    alarm_offsets: List[int] = field(default_factory=list)   # Sekunden relativ zum Start, negativ = vorher
    recurrence: Optional[Tuple[Frequency, int]] = None
    identifier: Optional[str] = None
