import json
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from lenswatch.config import settings
from lenswatch.domain.models import Intervention
from lenswatch.logic import aggregation

_HEADERS = [
    ("machine", "Machine"),
    ("date", "Date"),
    ("intervenant", "Intervenant"),
    ("type", "Type"),
    ("lentille", "Lentille"),
    ("compteurLaser", "Compteur Laser (h)"),
    ("laserOn", "Laser On (h)"),
    ("commentaire", "Commentaire"),
]


def export_filename(today: Optional[date] = None, suffix: str = "json") -> str:
    today = today or date.today()
    return f"sauvegarde_maintenance_{today.isoformat()}.{suffix}"


class JsonExporter:
    """
    Serializes interventions to the backup format: a JSON array of interventions without ids.
    """

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir or settings.paths.export_dir)

    @staticmethod
    def to_payload(records: Sequence[Intervention]) -> list[dict]:
        return [record.without_id().to_wire() for record in records]

    def dumps(self, records: Sequence[Intervention]) -> str:
        return json.dumps(self.to_payload(records), ensure_ascii=False, indent=2)

    def export(self, records: Sequence[Intervention], today: Optional[date] = None) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / export_filename(today)
        path.write_text(self.dumps(records), encoding="utf-8")
        return path


class ExcelExporter:
    """
    Workbook with the intervention log, the grouped statistics and the monthly evolution.
    """

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir or settings.paths.export_dir)

    def build(self, records: Sequence[Intervention]) -> BytesIO:
        wb = Workbook()

        ws_log = wb.active
        ws_log.title = "Interventions"
        ws_log.append([label for _, label in _HEADERS])
        for record in records:
            wire = record.to_wire()
            ws_log.append([wire.get(key, "") for key, _ in _HEADERS])
        _bold_header(ws_log)
        _autosize(ws_log)

        ws_stats = wb.create_sheet("Statistiques")
        counts = aggregation.totals(records)
        ws_stats.append(["Total Interventions", counts.total])
        ws_stats.append(["Nettoyages", counts.nettoyages])
        ws_stats.append(["Remplacements", counts.remplacements])
        for field, title in (
            ("machine", "Interventions par Machine"),
            ("intervenant", "Interventions par Intervenant"),
            ("lentille", "Interventions par Lentille"),
        ):
            ws_stats.append([])
            ws_stats.append([title])
            ws_stats.cell(row=ws_stats.max_row, column=1).font = Font(bold=True)
            for key, value in aggregation.ranked(aggregation.count_by(records, field)):
                ws_stats.append([key, value])
        _autosize(ws_stats)

        ws_monthly = wb.create_sheet("Mensuel")
        ws_monthly.append(["Mois", "Nettoyages", "Remplacements"])
        for bucket in aggregation.monthly_buckets(records):
            ws_monthly.append([aggregation.month_label(bucket.month), bucket.nettoyages, bucket.remplacements])
        _bold_header(ws_monthly)
        _autosize(ws_monthly)

        buffer = BytesIO()
        wb.save(buffer)
        buffer.seek(0)
        return buffer

    def export(self, records: Sequence[Intervention], today: Optional[date] = None) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / export_filename(today, suffix="xlsx")
        with open(path, "wb") as f:
            f.write(self.build(records).getvalue())
        return path


def _bold_header(ws):
    for cell in ws[1]:
        cell.font = Font(bold=True)


def _autosize(ws):
    for column_cells in ws.columns:
        length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
        ws.column_dimensions[get_column_letter(column_cells[0].column)].width = min(max(length + 2, 12), 60)
