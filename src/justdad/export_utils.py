import csv
import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Iterable, List, Optional

from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from justdad.calendar_logic import group_by_day, overlaps
from justdad.charts import TYPE_COLORS, create_pie_chart
from justdad.models import DateRange, Visit, VisitType
from justdad.statistics import summarize_visits

TYPE_LABELS = {
    VisitType.WEEKEND: 'Wochenende',
    VisitType.DINNER: 'Abendessen',
    VisitType.ACTIVITY: 'Aktivität',
    VisitType.SCHOOL: 'Schule',
    VisitType.MEDICAL: 'Arzt',
    VisitType.EMERGENCY: 'Notfall',
    VisitType.GENERAL: 'Allgemein',
}

WEEKDAYS = ["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"]

CSV_HEADER = ['id', 'title', 'start', 'end', 'type', 'location', 'notes',
              'reminder_minutes', 'recurring', 'calendar_id']


def format_visit_line(v: Visit) -> str:
    """Einzeilige Darstellung, z.B. 'Fr 01.03.2024 10:00-11:00 Zahnarzt (Arzt) @ Praxis'."""
    wd = WEEKDAYS[v.start.weekday()]
    if v.start.date() == v.end.date():
        span = f"{v.start:%d.%m.%Y %H:%M}-{v.end:%H:%M}"
    else:
        span = f"{v.start:%d.%m.%Y %H:%M} - {v.end:%d.%m.%Y %H:%M}"
    line = f"{wd} {span} {v.title} ({TYPE_LABELS[v.visit_type]})"
    if v.location:
        line += f" @ {v.location}"
    if v.is_recurring:
        line += " [wiederkehrend]"
    return line


def export_visits_csv(visits: Iterable[Visit], filename: str) -> int:
    """Schreibt die Termine sortiert nach Start als CSV. Gibt die Anzahl Zeilen zurück."""
    rows = sorted(visits, key=lambda v: v.start)
    with open(filename, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for v in rows:
            writer.writerow([
                str(v.id), v.title, v.start.isoformat(), v.end.isoformat(), v.visit_type.value,
                v.location or '', v.notes or '',
                '' if v.reminder_minutes is None else v.reminder_minutes,
                int(v.is_recurring), v.external_calendar_id or '',
            ])
    return len(rows)


def export_visits_json(visits: Iterable[Visit], date_range: DateRange, filename: str) -> int:
    """Schreibt die Termine im Zeitraum samt Zusammenfassung als JSON. Gibt die Anzahl Termine zurück."""
    rows = sorted((v for v in visits if overlaps(v, date_range)), key=lambda v: v.start)
    stats = summarize_visits(rows)
    payload = {
        'exported_at': datetime.now().isoformat(timespec='seconds'),
        'range': {'start': date_range.start.isoformat(), 'end': date_range.end.isoformat()},
        'summary': {
            'total': stats['total'],
            'total_hours': stats['total_hours'],
            'recurring': stats['recurring'],
            'by_type': {vt.value: n for vt, n in stats['by_type'].items()},
        },
        'visits': [v.to_dict() for v in rows],
    }
    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    return len(rows)


def export_visits_pdf(visits: Iterable[Visit], date_range: DateRange, filename: str,
                      chart_dir: Optional[str] = None) -> str:
    """
    Erstellt einen PDF-Bericht: Zusammenfassung, Terminliste je Tag und
    ein Tortendiagramm der Terminarten auf der letzten Seite.
    """
    selected: List[Visit] = [v for v in visits if overlaps(v, date_range)]
    stats = summarize_visits(selected)

    c = canvas.Canvas(filename, pagesize=letter)
    w, h = letter
    y = h - 50
    c.setFont('Helvetica-Bold', 14)
    c.drawString(50, y, 'JustDad Terminbericht')
    y -= 30
    c.setFont('Helvetica', 10)
    c.drawString(50, y, f"Zeitraum: {date_range.start:%d.%m.%Y} bis {date_range.end:%d.%m.%Y}")
    y -= 20
    c.drawString(50, y, f"Termine: {stats['total']}")
    y -= 15
    c.drawString(50, y, f"Gesamtdauer: {stats['total_hours']} Stunden")
    y -= 15
    c.drawString(50, y, f"Wiederkehrend: {stats['recurring']}")
    y -= 25

    for day, bucket in sorted(group_by_day(selected).items()):
        if y < 100:
            c.showPage()
            c.setFont('Helvetica', 10)
            y = h - 50
        c.setFont('Helvetica-Bold', 11)
        c.drawString(50, y, f"{WEEKDAYS[day.weekday()]} {day:%d.%m.%Y}")
        y -= 15
        c.setFont('Helvetica', 10)
        for v in bucket:
            if y < 100:
                c.showPage()
                c.setFont('Helvetica', 10)
                y = h - 50
            c.drawString(60, y, format_visit_line(v))
            y -= 15
        y -= 5

    c.showPage()
    counts = [(vt, n) for vt, n in stats['by_type'].items() if n]
    tmpdir = None
    if chart_dir is None:
        tmpdir = tempfile.TemporaryDirectory()
        chart_dir = tmpdir.name
    try:
        png = os.path.join(chart_dir, 'visit_types.png')
        create_pie_chart(
            [n for _, n in counts],
            [TYPE_LABELS[vt] for vt, _ in counts],
            png,
            colors=[TYPE_COLORS[vt.value] for vt, _ in counts] or None,
            subtitle="Terminarten",
        )
        size = 250
        c.setFont('Helvetica-Bold', 12)
        c.drawCentredString(w / 2, h - 60, 'Verteilung der Terminarten')
        c.drawImage(png, w / 2 - size / 2, h - 80 - size, width=size, height=size)
        c.save()
    finally:
        if tmpdir is not None:
            tmpdir.cleanup()
    logging.info(f"PDF report written to {filename} ({stats['total']} visits)")
    return filename
