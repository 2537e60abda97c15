import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID

from PySide6.QtCore import QObject, Signal

from .calendar_logic import (
    default_window, flatten_index, group_by_day, month_range, month_start, shift_month, start_of_day,
)
from .config import DEFAULTS
from .errors import AgendaError
from .models import DateRange, OperationKind, OperationState, Visit
from .repository import VisitRepository

# Nur Lesevorgänge lassen sich ohne Nutzdaten erneut ausführen
REPEATABLE = (OperationKind.LOAD, OperationKind.SYNC)


class AgendaViewModel(QObject):
    """
    Hält den Tagesindex für die Oberfläche und führt alle Änderungen über
    das Repository aus. Jede Operation läuft durch `perform_operation`:
    Fehler werden bis zu `max_retries` mal mit exponentiellem Warten
    wiederholt und danach nur noch als `error_message` veröffentlicht.
    Operationen laufen nacheinander, nie überlappend.
    """
    visits_changed = Signal()
    loading_changed = Signal(bool)
    error_changed = Signal(str)
    state_changed = Signal(str)

    def __init__(self, repo: VisitRepository, config: Optional[dict] = None,
                 now: Callable[[], datetime] = None,
                 sleep: Callable[[float], Awaitable[None]] = None):
        super().__init__()
        cfg = dict(DEFAULTS)
        cfg.update(config or {})
        self.repo = repo
        self.max_retries = int(cfg['max_retries'])
        self.backoff_base = float(cfg['backoff_base'])
        self.load_window_years = int(cfg['load_window_years'])
        self._now = now or datetime.now
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()

        today = self._now()
        self.current_month: datetime = month_start(today)
        self.selected_date: datetime = start_of_day(today)
        self.visits_by_day: Dict[datetime, List[Visit]] = {}
        self.is_loading = False
        self.error_message: Optional[str] = None
        self.state = OperationState.IDLE
        self.current_operation: Optional[OperationKind] = None
        self.retry_count = 0
        self._loaded_range: Optional[DateRange] = None
        self._last_operation = None

    # --- veröffentlichter Zustand ---
    def _set_loading(self, value: bool):
        if self.is_loading != value:
            self.is_loading = value
            self.loading_changed.emit(value)

    def _set_error(self, message: Optional[str]):
        self.error_message = message
        self.error_changed.emit(message or "")

    def _set_state(self, state: OperationState):
        self.state = state
        self.state_changed.emit(state.value)

    def _rebuild(self, visits: List[Visit]):
        self.visits_by_day = group_by_day(visits)
        self.visits_changed.emit()

    # --- Operationsablauf ---
    async def perform_operation(self, kind: OperationKind, body: Callable[[], Awaitable]) -> bool:
        """Führt `body` mit Zustandsverfolgung und Wiederholung aus. True bei Erfolg."""
        async with self._lock:
            self.current_operation = kind
            self._last_operation = (kind, body)
            self.retry_count = 0
            while True:
                self._set_loading(True)
                self._set_error(None)
                self._set_state(OperationState.LOADING)
                try:
                    await body()
                except Exception as e:
                    message = e.message if isinstance(e, AgendaError) else str(e)
                    logging.error(f"Agenda {kind.value} failed (attempt {self.retry_count + 1}): {message}")
                    self._set_error(message)
                    self._set_state(OperationState.ERROR)
                    self._set_loading(False)
                    if self.retry_count >= self.max_retries:
                        logging.error(f"Agenda {kind.value}: giving up after {self.retry_count} retries")
                        return False
                    self.retry_count += 1
                    await self._sleep(self.backoff_base ** self.retry_count)
                    continue
                self._set_state(OperationState.SUCCESS)
                self.retry_count = 0
                self._set_loading(False)
                self._set_state(OperationState.IDLE)
                return True

    async def retry_last_operation(self) -> bool:
        if self._last_operation is None:
            return False
        kind, body = self._last_operation
        if kind not in REPEATABLE:
            logging.info(f"Agenda {kind.value} cannot be repeated without its payload")
            return False
        return await self.perform_operation(kind, body)

    # --- Laden ---
    async def _load_range(self, rng: DateRange):
        self._loaded_range = rng
        visits = await self.repo.list(rng)
        self._rebuild(visits)

    async def load(self) -> bool:
        """Lädt ± `load_window_years` Jahre um jetzt."""
        rng = default_window(self._now(), self.load_window_years)
        return await self.perform_operation(OperationKind.LOAD, lambda: self._load_range(rng))

    async def load_month(self) -> bool:
        rng = month_range(self.current_month)
        return await self.perform_operation(OperationKind.LOAD, lambda: self._load_range(rng))

    async def go_to_previous_month(self) -> bool:
        self.current_month = shift_month(self.current_month, -1)
        return await self.load_month()

    async def go_to_next_month(self) -> bool:
        self.current_month = shift_month(self.current_month, 1)
        return await self.load_month()

    def select_date(self, day: datetime):
        self.selected_date = start_of_day(day)

    # --- Änderungen (Index erst nach Erfolg anpassen) ---
    @staticmethod
    def _without(visits: List[Visit], visit_id: UUID) -> List[Visit]:
        for i, v in enumerate(visits):
            if v.id == visit_id:
                return visits[:i] + visits[i + 1:]
        return visits

    async def add_visit(self, visit: Visit) -> bool:
        async def body():
            saved = await self.repo.create(visit)
            self._rebuild(self.all_visits + [saved])
        return await self.perform_operation(OperationKind.CREATE, body)

    async def update_visit(self, visit: Visit) -> bool:
        async def body():
            saved = await self.repo.update(visit)
            self._rebuild(self._without(self.all_visits, visit.id) + [saved])
        return await self.perform_operation(OperationKind.UPDATE, body)

    async def delete_visit(self, visit: Union[Visit, UUID]) -> bool:
        visit_id = visit.id if isinstance(visit, Visit) else visit

        async def body():
            await self.repo.delete(visit_id)
            self._rebuild(self._without(self.all_visits, visit_id))
        return await self.perform_operation(OperationKind.DELETE, body)

    async def sync(self) -> bool:
        async def body():
            moved = await self.repo.sync()
            logging.info(f"Agenda sync: {moved} visits moved")
            rng = self._loaded_range or default_window(self._now(), self.load_window_years)
            await self._load_range(rng)
        return await self.perform_operation(OperationKind.SYNC, body)

    async def request_calendar_access(self) -> bool:
        granted = await self.repo.request_authorization()
        if granted:
            await self.sync()
        return granted

    # --- Datenzugriff ---
    def visits_for(self, day: datetime) -> List[Visit]:
        return list(self.visits_by_day.get(start_of_day(day), []))

    @property
    def all_visits(self) -> List[Visit]:
        return flatten_index(self.visits_by_day)
