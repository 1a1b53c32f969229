import logging
import re
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from chefdeck.schemas.inventory.global_item import GlobalInventoryItem
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle, InventorySheet
from chefdeck.services.inventory.cycle_aggregator import ProductTotal, aggregate
from chefdeck.utils.date_time_serializer import millis_to_datetime

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SUMMARY_SHEET_TITLE = "Сводная"
SUMMARY_COLUMNS = ["Код", "Товар", "Ед. изм.", "Всего факт"]
STATION_COLUMNS = ["Код", "Товар", "Ед. изм.", "Факт"]

MAX_SHEET_TITLE = 31
INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def summary_rows(totals: Iterable[ProductTotal]) -> List[Dict[str, Any]]:
    return [
        {"Код": t.code, "Товар": t.name, "Ед. изм.": t.unit, "Всего факт": t.total}
        for t in totals
    ]


def station_rows(sheet: InventorySheet) -> List[Dict[str, Any]]:
    return [
        {"Код": item.code or "", "Товар": item.name, "Ед. изм.": item.unit, "Факт": item.actual or 0}
        for item in sheet.items
    ]


def safe_sheet_title(title: str, used: set, fallback: str) -> str:
    """Excel sheet names: max 31 chars, no []:*?/\\ and unique (case-insensitive)"""
    base = INVALID_TITLE_CHARS.sub(" ", title or "").strip()[:MAX_SHEET_TITLE] or fallback
    candidate = base
    suffix = 2
    while candidate.lower() in used:
        tail = f" ({suffix})"
        candidate = base[:MAX_SHEET_TITLE - len(tail)] + tail
        suffix += 1
    used.add(candidate.lower())
    return candidate


class InventoryWorkbookExporter:
    """Spreadsheet export of a cycle: one summary sheet plus one sheet per station"""

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor="366092")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    def build_workbook(
        self,
        cycle: InventoryCycle,
        catalog: Optional[Iterable[GlobalInventoryItem]] = None,
        include_stations: bool = True,
    ) -> BytesIO:
        output = BytesIO()
        used_titles = {SUMMARY_SHEET_TITLE.lower()}
        totals = aggregate(cycle, catalog).values()

        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            self._write_sheet(writer, SUMMARY_SHEET_TITLE, summary_rows(totals), SUMMARY_COLUMNS)

            if include_stations:
                for index, sheet in enumerate(cycle.sheets, 1):
                    title = safe_sheet_title(sheet.title, used_titles, fallback=f"Станция {index}")
                    self._write_sheet(writer, title, station_rows(sheet), STATION_COLUMNS)

        logger.info(
            f"📊 Exported cycle {cycle.id}: {len(cycle.sheets) if include_stations else 0} station sheets"
        )
        output.seek(0)
        return output

    def _write_sheet(self, writer: pd.ExcelWriter, title: str, rows: List[Dict[str, Any]], columns: List[str]):
        df = pd.DataFrame(rows, columns=columns)
        df.to_excel(writer, sheet_name=title, index=False)

        worksheet = writer.sheets[title]
        for col in range(1, len(columns) + 1):
            header_cell = worksheet.cell(row=1, column=col)
            header_cell.font = self.header_font
            header_cell.fill = self.header_fill
            header_cell.border = self.thin_border

        # Auto-adjust column widths
        for col_idx, column in enumerate(worksheet.columns, 1):
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            worksheet.column_dimensions[get_column_letter(col_idx)].width = min(max(max_length + 2, 10), 50)

    @staticmethod
    def export_filename(cycle: InventoryCycle, prefix: str = "Report") -> str:
        return f"{prefix}_{millis_to_datetime(cycle.date):%d.%m.%Y}.xlsx"
