import asyncio
from datetime import datetime, timedelta

from justdad.config import DEFAULTS
from justdad.main import _wizard, input_visit, open_agenda, print_month
from justdad.models import Frequency, PermissionStatus, RecurrenceRule, Visit, VisitType


def feed(monkeypatch, answers):
    it = iter(answers)
    monkeypatch.setattr('builtins.input', lambda prompt='': next(it))


def soon(days):
    return datetime.now().replace(hour=10, minute=0, second=0, microsecond=0) + timedelta(days=days)


def make_visit(title, start, **kw):
    return Visit(title=title, start=start, end=start + timedelta(hours=1), **kw)


def test_input_visit_with_defaults(monkeypatch):
    feed(monkeypatch, ["Kino", "2024-03-08 17:00", "", "", "", "", ""])
    v = input_visit(30)
    assert v.title == "Kino"
    assert v.end == datetime(2024, 3, 8, 18, 0)
    assert v.visit_type is VisitType.GENERAL
    assert v.reminder_minutes == 30
    assert v.location is None
    assert not v.is_recurring


def test_input_visit_weekly_without_reminder(monkeypatch):
    feed(monkeypatch, ["Wochenende", "2024-03-09 10:00", "1800", "weekend", "-", "Zuhause", "j", "2"])
    v = input_visit(30)
    assert v.visit_type is VisitType.WEEKEND
    assert v.reminder_minutes is None
    assert v.location == "Zuhause"
    assert v.is_recurring
    assert (v.recurrence_rule.frequency, v.recurrence_rule.interval) == (Frequency.WEEKLY, 2)


def test_visits_survive_restart_after_calendar_access(tmp_path):
    cfg = dict(DEFAULTS, db_path=str(tmp_path / "justdad.db"))
    db, calendar, repo, vm = open_agenda(cfg)
    asyncio.run(vm.add_visit(make_visit("Vor der Freigabe", soon(2))))
    assert asyncio.run(vm.request_calendar_access()) is True
    asyncio.run(vm.add_visit(make_visit("Nach der Freigabe", soon(3))))
    assert repo.durable_repo.all_visits() == []
    db.close()

    db, calendar, repo, vm = open_agenda(cfg)
    assert repo.permission_status == PermissionStatus.AUTHORIZED
    assert asyncio.run(vm.load()) is True
    assert sorted(v.title for v in vm.all_visits) == ["Nach der Freigabe", "Vor der Freigabe"]
    db.close()


def test_local_visits_survive_restart_without_calendar_access(tmp_path):
    cfg = dict(DEFAULTS, db_path=str(tmp_path / "justdad.db"))
    db, calendar, repo, vm = open_agenda(cfg)
    asyncio.run(vm.add_visit(make_visit("Lokal", soon(2))))
    db.close()

    db, calendar, repo, vm = open_agenda(cfg)
    assert repo.permission_status == PermissionStatus.NOT_DETERMINED
    asyncio.run(vm.load())
    assert [v.title for v in vm.all_visits] == ["Lokal"]
    db.close()


def test_print_month_shows_every_occurrence(tmp_path, capsys):
    cfg = dict(DEFAULTS, db_path=str(tmp_path / "justdad.db"))
    db, calendar, repo, vm = open_agenda(cfg)
    vm.current_month = datetime(2024, 3, 1)
    rule = RecurrenceRule(Frequency.WEEKLY, 1)
    asyncio.run(vm.add_visit(make_visit("Training", datetime(2024, 3, 5, 17),
                                        is_recurring=True, recurrence_rule=rule)))
    print_month(vm)
    out = capsys.readouterr().out
    assert out.count("Training") == 4
    assert "26.03.2024 17:00" in out
    db.close()


def test_wizard_session_with_search_backup_and_export(monkeypatch, tmp_path, capsys):
    cfg = dict(DEFAULTS, db_path=str(tmp_path / "justdad.db"))
    db, calendar, repo, vm = open_agenda(cfg)
    start = soon(1)
    backup = tmp_path / "backup.sql"
    export = tmp_path / "month.csv"
    feed(monkeypatch, [
        "n",                                    # kein Kalenderzugriff
        "n", "Zahnarzt", f"{start:%Y-%m-%d %H:%M}", "", "medical", "-", "Praxis", "n",
        "s", "praxis", "",
        "b", str(backup),
        "e", "csv", str(export),
        "",
    ])
    asyncio.run(_wizard(db, calendar, repo, vm, 30))
    out = capsys.readouterr().out

    assert "1 Treffer" in out
    assert backup.exists()
    assert [v.title for v in repo.durable_repo.all_visits()] == ["Zahnarzt"]
    assert calendar.authorization_status() == PermissionStatus.NOT_DETERMINED
    db.close()
