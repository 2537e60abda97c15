"""
Hintergrund-Worker für Backup, Restore und Export (für QThread gedacht).

Die Worker fassen den AgendaViewModel nicht an. Wer ihn besitzt, lädt ihn
nach `finished` selbst neu (z.B. `await vm.load_month()`).
"""
import logging

from PySide6.QtCore import QObject, Signal

from justdad.calendar_logic import overlaps
from justdad.errors import StoreError
from justdad.export_utils import export_visits_csv, export_visits_json, export_visits_pdf

EXPORT_FORMATS = ('pdf', 'csv', 'json')


class _Worker(QObject):
    """Gemeinsamer Stop-Schalter und Fehlerweitergabe; `run()` wirft nie."""
    error = Signal(str)

    def __init__(self):
        super().__init__()
        self._stopped = False

    def stop(self):
        self._stopped = True

    def _report(self, e: Exception):
        if isinstance(e, StoreError):
            message = e.message
        elif isinstance(e, OSError):
            message = f"Dateifehler: {e}"
        else:
            message = str(e)
        logging.error(f"{type(self).__name__} failed: {e}")
        if not self._stopped:
            self.error.emit(message)


class BackupWorker(_Worker):
    """Schreibt den SQL-Dump der Datenbank; `finished` liefert den Dateinamen."""
    finished = Signal(str)

    def __init__(self, db, fn):
        super().__init__()
        self.db = db
        self.fn = fn

    def run(self):
        if self._stopped:
            return
        try:
            self.db.export_to_sql(self.fn)
        except Exception as e:
            self._report(e)
            return
        logging.info(f"Backup written to {self.fn}")
        if not self._stopped:
            self.finished.emit(self.fn)


class RestoreWorker(_Worker):
    """
    Spielt ein SQL-Backup ein und lädt danach die übergebenen Speicher neu
    (alles mit einer `reload()`-Methode, z.B. lokaler Terminspeicher und
    lokaler Kalender). `finished` liefert den Pfad der automatischen
    Sicherung des vorherigen Stands ("" ohne Datei).
    """
    finished = Signal(str)

    def __init__(self, db, fn, stores=()):
        super().__init__()
        self.db = db
        self.fn = fn
        self.stores = list(stores)

    def run(self):
        if self._stopped:
            return
        try:
            safety_copy = self.db.import_from_sql(self.fn)
            for store in self.stores:
                store.reload()
        except Exception as e:
            self._report(e)
            return
        if not self._stopped:
            self.finished.emit(safety_copy or "")


class ExportWorker(_Worker):
    finished = Signal(str)

    def __init__(self, visits, date_range, fn, fmt='pdf'):
        super().__init__()
        self.visits = list(visits)
        self.date_range = date_range
        self.fn = fn
        self.fmt = fmt

    def run(self):
        logging.info(f"[JustDad] ExportWorker.run gestartet ({self.fmt}).")
        if self.date_range is None:
            logging.error("[JustDad] Fehler: Zeitraum fehlt im ExportWorker.")
            self.error.emit("Fehler: Zeitraum muss gesetzt sein.")
            return
        if self.fmt not in EXPORT_FORMATS:
            self.error.emit(f"Unbekanntes Exportformat: {self.fmt}")
            return
        # gleiche Auswahlregel wie beim Laden eines Zeitraums
        selected = [v for v in self.visits if overlaps(v, self.date_range)]
        try:
            if self.fmt == 'csv':
                export_visits_csv(selected, self.fn)
            elif self.fmt == 'json':
                export_visits_json(selected, self.date_range, self.fn)
            else:
                export_visits_pdf(selected, self.date_range, self.fn)
        except Exception as e:
            self._report(e)
            return
        if not self._stopped:
            self.finished.emit(self.fn)
