# src/justdad/main.py

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Optional, Tuple

from PySide6.QtCore import QCoreApplication

from .agenda import AgendaViewModel
from .calendar_logic import month_range, occurrences_by_day
from .config import load_config
from .data import Database
from .device_calendar import LocalDeviceCalendar
from .export_utils import format_visit_line
from .models import Frequency, PermissionStatus, RecurrenceRule, Visit, VisitType
from .notifications import LocalNotificationCenter
from .repository import FallbackVisitRepository, build_repository
from .visit_filter import VisitFilter, filter_visits
from .workers import EXPORT_FORMATS, BackupWorker, ExportWorker, RestoreWorker

MENU = ("[<] voriger Monat, [>] nächster Monat, [n] neuer Termin, [s] Suche, "
        "[b] Backup, [r] Restore, [e] Export, Enter = Ende: ")


def _ask(prompt: str, default: Optional[str] = None) -> str:
    value = input(prompt).strip()
    return value or (default or "")


def input_visit(default_reminder: int) -> Visit:
    print("\n✏️  Neuer Termin:")
    title = _ask("  Titel: ")
    start = datetime.fromisoformat(_ask("  Beginn (YYYY-MM-DD HH:MM): "))
    minutes = int(_ask("  Dauer in Minuten [60]: ", "60"))
    types = ", ".join(vt.value for vt in VisitType)
    vtype = VisitType(_ask(f"  Art ({types}) [general]: ", "general"))
    reminder = _ask(f"  Erinnerung in Minuten vorher [{default_reminder}, '-' = keine]: ", str(default_reminder))
    location = _ask("  Ort [leer]: ") or None
    rule = None
    if _ask("  Wöchentlich wiederholen? (j/n) ", "n").lower() == "j":
        interval = int(_ask("  Alle X Wochen [1]: ", "1"))
        rule = RecurrenceRule(Frequency.WEEKLY, interval)
    return Visit(
        title=title,
        start=start,
        end=start + timedelta(minutes=minutes),
        location=location,
        reminder_minutes=None if reminder == '-' else int(reminder),
        is_recurring=rule is not None,
        recurrence_rule=rule,
        visit_type=vtype,
    )


def print_month(vm: AgendaViewModel):
    """Monatsansicht; wiederkehrende Termine erscheinen an jedem Vorkommen im Monat."""
    print(f"\n📅 {vm.current_month:%m/%Y}:")
    index = occurrences_by_day(vm.all_visits, month_range(vm.current_month))
    if not index:
        print("  (keine Termine)")
    for day in sorted(index):
        for v in index[day]:
            print(" ", format_visit_line(v))


def search(vm: AgendaViewModel):
    text = _ask("  Suchtext [alle]: ")
    choices = ", ".join(f.value for f in VisitFilter)
    try:
        selected = VisitFilter(_ask(f"  Zeitfilter ({choices}) [all]: ", "all"))
    except ValueError as e:
        print(f"Ungültige Eingabe: {e}")
        return
    hits = filter_visits(vm.all_visits, text, selected)
    print(f"\n🔎 {len(hits)} Treffer:")
    for v in hits:
        print(" ", format_visit_line(v))


def _run_worker(worker) -> bool:
    """Führt einen Worker im aktuellen Thread aus und meldet das Ergebnis."""
    outcome = []

    def failed(message):
        outcome.append(False)
        print(f"Fehler: {message}")

    worker.finished.connect(lambda _fn: outcome.append(True))
    worker.error.connect(failed)
    worker.run()
    return bool(outcome) and outcome[-1]


def open_agenda(cfg: dict) -> Tuple[Database, LocalDeviceCalendar, FallbackVisitRepository, AgendaViewModel]:
    """
    Verdrahtet Datenbank, lokalen Kalender und Agenda. Der Kalender speichert
    seine Ereignisse und die erteilte Freigabe in derselben Datenbank, damit
    nach `sync()` nichts verloren geht.
    """
    db = Database(cfg['db_path'])
    calendar = LocalDeviceCalendar(database=db)
    repo = build_repository(db, calendar, LocalNotificationCenter())
    vm = AgendaViewModel(repo, cfg)
    return db, calendar, repo, vm


async def _wizard(db: Database, calendar: LocalDeviceCalendar, repo: FallbackVisitRepository,
                  vm: AgendaViewModel, default_reminder: int):
    if repo.permission_status == PermissionStatus.NOT_DETERMINED:
        if _ask("Kalenderzugriff erlauben? (j/n) ", "n").lower() == "j":
            granted = await vm.request_calendar_access()
            print("Kalender verbunden." if granted else "Kein Kalenderzugriff, Termine bleiben lokal.")
    elif repo.permission_status == PermissionStatus.AUTHORIZED:
        # lokal liegengebliebene Termine in den Kalender übernehmen
        await vm.sync()

    await vm.load_month()
    while True:
        print_month(vm)
        choice = _ask(MENU)
        if choice == "<":
            await vm.go_to_previous_month()
        elif choice == ">":
            await vm.go_to_next_month()
        elif choice == "n":
            try:
                visit = input_visit(default_reminder)
            except ValueError as e:
                print(f"Ungültige Eingabe: {e}")
                continue
            if not await vm.add_visit(visit):
                print(f"Fehler: {vm.error_message}")
        elif choice == "s":
            search(vm)
        elif choice == "b":
            fn = _ask("  Backup-Datei [justdad_backup.sql]: ", "justdad_backup.sql")
            if _run_worker(BackupWorker(db, fn)):
                print(f"Backup gespeichert: {os.path.abspath(fn)}")
        elif choice == "r":
            fn = _ask("  Backup-Datei: ")
            if _run_worker(RestoreWorker(db, fn, stores=[repo.durable_repo, calendar])):
                print("Backup eingespielt.")
                await vm.load_month()
        elif choice == "e":
            fmt = _ask(f"  Format ({', '.join(EXPORT_FORMATS)}) [pdf]: ", "pdf")
            fn = _ask(f"  Datei [justdad_{vm.current_month:%Y_%m}.{fmt}]: ",
                      f"justdad_{vm.current_month:%Y_%m}.{fmt}")
            worker = ExportWorker(vm.all_visits, month_range(vm.current_month), fn, fmt)
            if _run_worker(worker):
                print(f"Export gespeichert: {os.path.abspath(fn)}")
        else:
            break


def run_wizard():
    cfg = load_config()
    logging.basicConfig(level=getattr(logging, str(cfg['log_level']).upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(message)s")
    # Signale der Worker brauchen eine Qt-Anwendung
    app = QCoreApplication.instance() or QCoreApplication([])  # noqa: F841
    print("🎯 Willkommen bei JustDad 🎯")
    db, calendar, repo, vm = open_agenda(cfg)
    try:
        asyncio.run(_wizard(db, calendar, repo, vm, int(cfg['default_reminder_minutes'])))
    finally:
        db.close()


if __name__ == "__main__":
    run_wizard()
