import asyncio
import json

import pytest
from datetime import datetime, timedelta
from PySide6.QtCore import QCoreApplication

from justdad.agenda import AgendaViewModel
from justdad.data import Database
from justdad.models import DateRange, Visit, VisitType
from justdad.repository import build_repository
from justdad.workers import BackupWorker, ExportWorker, RestoreWorker


class DummyDB:
    def export_to_sql(self, fn):
        if '/invalid/' in fn or not fn:
            raise IOError(f"Cannot write to invalid path: {fn}")
        self.exported = fn

    def import_from_sql(self, fn):
        if '/invalid/' in fn or not fn or not fn.endswith('.sql'):
            raise IOError(f"Cannot read from invalid path: {fn}")
        self.imported = fn


class ExplodingDB:
    def export_to_sql(self, fn):
        raise ValueError("kaputt")


def make_visit(title, start, **kw):
    return Visit(title=title, start=start, end=start + timedelta(hours=1), **kw)


@pytest.fixture(scope="module")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


def collect(worker):
    results, errors = [], []
    worker.finished.connect(results.append)
    worker.error.connect(errors.append)
    return results, errors


# --- BackupWorker ---
def test_backup_worker_success(qapp, tmp_path):
    db = DummyDB()
    fn = str(tmp_path / "backup.sql")
    worker = BackupWorker(db, fn)
    results, errors = collect(worker)
    worker.run()
    assert results == [fn]
    assert not errors
    assert db.exported == fn


def test_backup_worker_failure(qapp):
    worker = BackupWorker(DummyDB(), "/invalid/path/backup.sql")
    results, errors = collect(worker)
    worker.run()
    assert not results
    assert errors and errors[0].startswith("Dateifehler")


def test_backup_worker_unexpected_error(qapp, tmp_path):
    worker = BackupWorker(ExplodingDB(), str(tmp_path / "backup.sql"))
    results, errors = collect(worker)
    worker.run()
    assert errors == ["kaputt"]


def test_backup_worker_stopped_does_nothing(qapp, tmp_path):
    db = DummyDB()
    worker = BackupWorker(db, str(tmp_path / "backup.sql"))
    results, errors = collect(worker)
    worker.stop()
    worker.run()
    assert not results and not errors
    assert not hasattr(db, 'exported')


# --- RestoreWorker ---
def test_restore_worker_reloads_stores_but_not_the_agenda(qapp, tmp_path):
    db = Database(str(tmp_path / "restore.db"))
    kept = make_visit("Zahnarzt", datetime(2024, 3, 20, 10), visit_type=VisitType.MEDICAL)
    db.save_visit(kept)
    backup = str(tmp_path / "backup.sql")
    BackupWorker(db, backup).run()

    repo = build_repository(db)
    vm = AgendaViewModel(repo, now=lambda: datetime(2024, 3, 15, 12))
    later = make_visit("Nach dem Backup", datetime(2024, 3, 21, 10))
    asyncio.run(vm.add_visit(later))

    worker = RestoreWorker(db, backup, stores=[repo.durable_repo])
    results, errors = collect(worker)
    worker.run()

    assert not errors
    assert ".bak_before_restore_" in results[0]
    assert repo.durable_repo.all_visits() == [kept]
    # der Besitzer lädt die Agenda selbst neu
    assert vm.all_visits == [later]
    assert asyncio.run(vm.load()) is True
    assert vm.all_visits == [kept]
    db.close()


def test_restore_worker_inside_running_loop(qapp, tmp_path):
    db = Database(str(tmp_path / "restore.db"))
    kept = make_visit("Kino", datetime(2024, 3, 8, 17))
    db.save_visit(kept)
    backup = str(tmp_path / "backup.sql")
    db.export_to_sql(backup)
    repo = build_repository(db)
    vm = AgendaViewModel(repo, now=lambda: datetime(2024, 3, 15, 12))

    async def restore_then_reload():
        await asyncio.gather(vm.load_month(), vm.load_month())
        worker = RestoreWorker(db, backup, stores=[repo.durable_repo])
        results, errors = collect(worker)
        worker.run()
        assert not errors and results
        return await vm.load_month()

    assert asyncio.run(restore_then_reload()) is True
    assert vm.all_visits == [kept]
    db.close()


def test_restore_worker_failure(qapp):
    worker = RestoreWorker(DummyDB(), "/invalid/path/backup.sql")
    results, errors = collect(worker)
    worker.run()
    assert not results
    assert errors and errors[0].startswith("Dateifehler")


def test_restore_worker_bad_dump_reports_store_error(qapp, tmp_path):
    db = Database(str(tmp_path / "restore.db"))
    kept = make_visit("Kino", datetime(2024, 3, 8, 17))
    db.save_visit(kept)
    bad = tmp_path / "bad.sql"
    bad.write_text("THIS IS NOT SQL;", encoding="utf-8")
    worker = RestoreWorker(db, str(bad))
    results, errors = collect(worker)
    worker.run()
    assert not results
    assert errors and errors[0].startswith("Backup konnte nicht eingespielt werden")
    assert db.load_visits() == [kept]
    db.close()


# --- ExportWorker ---
MARCH = DateRange(datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59, 59))


def test_export_worker_csv_only_in_range(qapp, tmp_path):
    fn = str(tmp_path / "visits.csv")
    visits = [make_visit("März", datetime(2024, 3, 5, 9)), make_visit("April", datetime(2024, 4, 5, 9))]
    worker = ExportWorker(visits, MARCH, fn, fmt='csv')
    results, errors = collect(worker)
    worker.run()
    assert results == [fn]
    with open(fn, encoding='utf-8') as f:
        content = f.read()
    assert "März" in content and "April" not in content


def test_export_worker_pdf(qapp, tmp_path):
    fn = str(tmp_path / "report.pdf")
    worker = ExportWorker([make_visit("Kino", datetime(2024, 3, 8, 17))], MARCH, fn)
    results, errors = collect(worker)
    worker.run()
    assert results == [fn]
    assert not errors
    with open(fn, 'rb') as f:
        assert f.read(4) == b'%PDF'


def test_export_worker_without_range(qapp, tmp_path):
    worker = ExportWorker([], None, str(tmp_path / "x.pdf"))
    results, errors = collect(worker)
    worker.run()
    assert not results
    assert errors == ["Fehler: Zeitraum muss gesetzt sein."]


def test_export_worker_unknown_format(qapp, tmp_path):
    worker = ExportWorker([], MARCH, str(tmp_path / "x.xls"), fmt='xls')
    results, errors = collect(worker)
    worker.run()
    assert errors == ["Unbekanntes Exportformat: xls"]


def test_export_worker_unwritable_path(qapp):
    worker = ExportWorker([], MARCH, "/invalid/dir/visits.csv", fmt='csv')
    results, errors = collect(worker)
    worker.run()
    assert not results
    assert errors and errors[0].startswith("Dateifehler")


def test_export_worker_csv_includes_visits_spanning_into_range(qapp, tmp_path):
    fn = str(tmp_path / "visits.csv")
    overnight = Visit(title="Übernachtung", start=datetime(2024, 2, 29, 18), end=datetime(2024, 3, 1, 10))
    worker = ExportWorker([overnight], MARCH, fn, fmt='csv')
    results, errors = collect(worker)
    worker.run()
    with open(fn, encoding='utf-8') as f:
        assert "Übernachtung" in f.read()


def test_export_worker_json(qapp, tmp_path):
    fn = tmp_path / "visits.json"
    visits = [make_visit("März", datetime(2024, 3, 5, 9), visit_type=VisitType.DINNER),
              make_visit("April", datetime(2024, 4, 5, 9))]
    worker = ExportWorker(visits, MARCH, str(fn), fmt='json')
    results, errors = collect(worker)
    worker.run()
    assert results == [str(fn)]
    data = json.loads(fn.read_text(encoding='utf-8'))
    assert [Visit.from_dict(d) for d in data['visits']] == visits[:1]
    assert data['summary']['by_type']['dinner'] == 1
