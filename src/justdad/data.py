import json
import os
import sqlite3
from datetime import datetime
from typing import List, Optional
import logging

from justdad.errors import StoreError
from justdad.models import Frequency, NativeEvent, Visit


class Database:
    def __init__(self, db_path: str = None):
        try:
            self.db_path = db_path or os.path.join(os.path.expanduser("~"), ".justdad", "justdad.db")
            if self.db_path != ':memory:':
                os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
            self.conn = sqlite3.connect(self.db_path)
            self.conn.row_factory = sqlite3.Row
            self._ensure_tables()
        except (OSError, sqlite3.Error) as e:
            logging.error(f"Database connection error: {e}")
            raise StoreError(f"Datenbank konnte nicht geöffnet werden: {e}") from e

    def _ensure_tables(self):
        cur = self.conn.cursor()
        # Termine, Schlüssel ist die Termin-UUID
        cur.execute("""
        CREATE TABLE IF NOT EXISTS visits (
          id TEXT PRIMARY KEY,
          title TEXT NOT NULL,
          starts_at TEXT NOT NULL,
          ends_at TEXT NOT NULL,
          location TEXT,
          notes TEXT,
          reminder_minutes INTEGER,
          is_recurring INTEGER NOT NULL DEFAULT 0,
          recurrence_rule TEXT,
          visit_type TEXT NOT NULL,
          external_calendar_id TEXT
        )""")
        # Position hält die Einfüge-Reihenfolge stabil
        cur.execute("PRAGMA table_info(visits)")
        cols = [row['name'] for row in cur.fetchall()]
        if 'position' not in cols:
            cur.execute("ALTER TABLE visits ADD COLUMN position INTEGER")
        # Ereignisse des lokalen Gerätekalenders
        cur.execute("""
        CREATE TABLE IF NOT EXISTS calendar_events (
          identifier TEXT PRIMARY KEY,
          title TEXT,
          starts_at TEXT NOT NULL,
          ends_at TEXT NOT NULL,
          location TEXT,
          notes TEXT,
          alarm_offsets TEXT,
          recurrence TEXT
        )""")
        cur.execute("""
        CREATE TABLE IF NOT EXISTS settings (
          key TEXT PRIMARY KEY,
          value TEXT
        )""")
        self.conn.commit()

    def _require_conn(self):
        if self.conn is None:
            raise StoreError("Datenbankverbindung ist geschlossen")

    # Export/Import
    def export_to_sql(self, filename: str):
        """Dump aller Tabellen als SQL-Statements"""
        self._require_conn()
        with open(filename, 'w', encoding='utf-8') as f:
            for line in self.conn.iterdump():
                f.write(f"{line}\n")

    def import_from_sql(self, filename: str) -> Optional[str]:
        """
        Spielt einen Dump atomar ein: das Skript läuft zuerst in einer leeren
        Datenbank im Speicher, erst danach wird der Inhalt übernommen. Schlägt
        das Skript fehl, bleibt der alte Bestand unverändert. Vorher wird der
        aktuelle Stand als `<db>.bak_before_restore_<Zeitstempel>.sql`
        gesichert. Gibt den Pfad dieser Sicherung zurück (None bei ':memory:').
        """
        self._require_conn()
        with open(filename, 'r', encoding='utf-8') as f:
            script = f.read()

        staging = sqlite3.connect(':memory:')
        try:
            staging.executescript(script)
            tables = {row[0] for row in staging.execute("SELECT name FROM sqlite_master WHERE type='table'")}
            if 'visits' not in tables:
                raise StoreError("Backup enthält keine Termintabelle")
        except sqlite3.Error as e:
            staging.close()
            logging.error(f"Restore error, database left unchanged: {e}")
            raise StoreError(f"Backup konnte nicht eingespielt werden: {e}") from e
        except StoreError:
            staging.close()
            logging.error(f"Restore error, {filename} has no visits table")
            raise

        backup_path = None
        if self.db_path != ':memory:':
            backup_path = f"{self.db_path}.bak_before_restore_{datetime.now():%Y%m%d_%H%M%S}.sql"
            self.export_to_sql(backup_path)
        try:
            self.conn.commit()
            staging.backup(self.conn)
        except sqlite3.Error as e:
            logging.error(f"Restore error while copying: {e}")
            raise StoreError(f"Backup konnte nicht eingespielt werden: {e}") from e
        finally:
            staging.close()
            # ältere Dumps kennen nicht alle Tabellen/Spalten
            self._ensure_tables()
        logging.info(f"Restored {filename} (previous state saved to {backup_path})")
        return backup_path

    # Visit-Methoden
    @staticmethod
    def _row_to_visit(row) -> Visit:
        return Visit.from_dict({
            'id': row['id'],
            'title': row['title'],
            'start': row['starts_at'],
            'end': row['ends_at'],
            'location': row['location'],
            'notes': row['notes'],
            'reminder_minutes': row['reminder_minutes'],
            'is_recurring': bool(row['is_recurring']),
            'recurrence_rule': json.loads(row['recurrence_rule']) if row['recurrence_rule'] else None,
            'visit_type': row['visit_type'],
            'external_calendar_id': row['external_calendar_id'],
        })

    def load_visits(self) -> List[Visit]:
        self._require_conn()
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM visits ORDER BY position, rowid")
            rows = cur.fetchall()
        except sqlite3.Error as e:
            logging.error(f"Error loading visits: {e}")
            raise StoreError(f"Termine konnten nicht geladen werden: {e}") from e
        out = []
        for row in rows:
            try:
                out.append(self._row_to_visit(row))
            except ValueError as e:
                # kaputte Zeile überspringen, Rest bleibt lesbar
                logging.warning(f"Skipping invalid visit row {row['id']}: {e}")
        return out

    def save_visit(self, visit: Visit):
        self._require_conn()
        d = visit.to_dict()
        rule = json.dumps(d['recurrence_rule']) if d['recurrence_rule'] else None
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT position FROM visits WHERE id=?", (d['id'],))
            row = cur.fetchone()
            if row is not None:
                position = row['position']
            else:
                cur.execute("SELECT COALESCE(MAX(position), 0) + 1 FROM visits")
                position = cur.fetchone()[0]
            cur.execute(
                "REPLACE INTO visits (id, title, starts_at, ends_at, location, notes, reminder_minutes, "
                "is_recurring, recurrence_rule, visit_type, external_calendar_id, position) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?,?)",
                (
                    d['id'], d['title'], d['start'], d['end'], d['location'], d['notes'],
                    d['reminder_minutes'], int(d['is_recurring']), rule, d['visit_type'],
                    d['external_calendar_id'], position,
                )
            )
            self.conn.commit()
        except sqlite3.Error as e:
            logging.error(f"Error saving visit {visit.id}: {e}")
            raise StoreError(f"Termin konnte nicht gespeichert werden: {e}") from e

    def delete_visit(self, visit: Visit):
        self._require_conn()
        try:
            cur = self.conn.cursor()
            cur.execute("DELETE FROM visits WHERE id=?", (str(visit.id),))
            self.conn.commit()
        except sqlite3.Error as e:
            logging.error(f"Error deleting visit {visit.id}: {e}")
            raise StoreError(f"Termin konnte nicht gelöscht werden: {e}") from e

    def clear_visits(self):
        self._require_conn()
        cur = self.conn.cursor()
        cur.execute("DELETE FROM visits")
        self.conn.commit()

    # Kalender-Methoden
    def load_events(self) -> List[NativeEvent]:
        self._require_conn()
        try:
            rows = self.conn.execute("SELECT * FROM calendar_events ORDER BY starts_at").fetchall()
        except sqlite3.Error as e:
            logging.error(f"Error loading calendar events: {e}")
            raise StoreError(f"Kalenderereignisse konnten nicht geladen werden: {e}") from e
        events = []
        for row in rows:
            recurrence = json.loads(row['recurrence']) if row['recurrence'] else None
            events.append(NativeEvent(
                identifier=row['identifier'],
                title=row['title'],
                start=datetime.fromisoformat(row['starts_at']),
                end=datetime.fromisoformat(row['ends_at']),
                location=row['location'],
                notes=row['notes'],
                alarm_offsets=json.loads(row['alarm_offsets'] or '[]'),
                recurrence=(Frequency(recurrence[0]), int(recurrence[1])) if recurrence else None,
            ))
        return events

    def save_event(self, event: NativeEvent):
        self._require_conn()
        recurrence = None
        if event.recurrence is not None:
            freq, interval = event.recurrence
            recurrence = json.dumps([getattr(freq, 'value', freq), interval])
        try:
            self.conn.execute(
                "REPLACE INTO calendar_events (identifier, title, starts_at, ends_at, location, notes, "
                "alarm_offsets, recurrence) VALUES (?,?,?,?,?,?,?,?)",
                (
                    event.identifier, event.title, event.start.isoformat(), event.end.isoformat(),
                    event.location, event.notes, json.dumps(list(event.alarm_offsets)), recurrence,
                )
            )
            self.conn.commit()
        except sqlite3.Error as e:
            logging.error(f"Error saving calendar event {event.identifier}: {e}")
            raise StoreError(f"Kalenderereignis konnte nicht gespeichert werden: {e}") from e

    def delete_event(self, identifier: str):
        self._require_conn()
        try:
            self.conn.execute("DELETE FROM calendar_events WHERE identifier=?", (identifier,))
            self.conn.commit()
        except sqlite3.Error as e:
            logging.error(f"Error deleting calendar event {identifier}: {e}")
            raise StoreError(f"Kalenderereignis konnte nicht gelöscht werden: {e}") from e

    # Einstellungen (z.B. Kalenderfreigabe)
    def load_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        self._require_conn()
        row = self.conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
        return row['value'] if row is not None else default

    def save_setting(self, key: str, value: str):
        self._require_conn()
        self.conn.execute("REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value))
        self.conn.commit()

    def close(self):
        """Schließe die Datenbankverbindung sauber"""
        if self.conn:
            self.conn.close()
            self.conn = None
