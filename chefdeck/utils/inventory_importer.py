import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, List, Optional, Sequence

from openpyxl import load_workbook

from chefdeck.schemas.inventory.global_item import GlobalInventoryItem

logger = logging.getLogger(__name__)

CATALOG_HEADER_SCAN_ROWS = 5
SHEET_HEADER_SCAN_ROWS = 15
NAME_HEADER = "наименование"


@dataclass
class ImportedRow:
    code: str
    name: str
    unit: str


@dataclass
class ImportedSheet:
    title: str
    items: List[ImportedRow] = field(default_factory=list)
    is_summary: bool = False


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _find_column(row: Sequence[Any], keyword: str) -> Optional[int]:
    for index, cell in enumerate(row):
        if keyword in _cell_text(cell).lower():
            return index
    return None


def _read_rows(content: bytes):
    workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    try:
        for worksheet in workbook.worksheets:
            yield worksheet.title, [list(row) for row in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _value_at(row: Sequence[Any], index: Optional[int]) -> str:
    if index is None or index < 0 or index >= len(row):
        return ""
    return _cell_text(row[index])


def parse_catalog_workbook(content: bytes) -> List[GlobalInventoryItem]:
    """
    Read catalog rows (code, name, unit) from every sheet of a price-list export.

    Columns default to B/C/F and are re-detected from "Код", "Наименование"
    and "Ед." headers within the first rows of each sheet.
    """
    items: List[GlobalInventoryItem] = []
    for title, rows in _read_rows(content):
        code_col, name_col, unit_col = 1, 2, 5
        for index, row in enumerate(rows):
            header_col = _find_column(row, NAME_HEADER) if index < CATALOG_HEADER_SCAN_ROWS else None
            if header_col is not None:
                name_col = header_col
                found = _find_column(row, "код")
                code_col = found if found is not None else code_col
                found = _find_column(row, "ед")
                unit_col = found if found is not None else unit_col
                continue

            code = _value_at(row, code_col)
            name = _value_at(row, name_col)
            unit = _value_at(row, unit_col)
            if code and name and unit and NAME_HEADER not in name.lower() and len(code) > 1:
                items.append(GlobalInventoryItem(code=code, name=name, unit=unit))
        logger.info(f"📥 Catalog sheet '{title}' parsed")
    return items


def parse_station_workbook(content: bytes) -> List[ImportedSheet]:
    """
    Read station count forms: one sheet per station, the first sheet is treated
    as a summary and flagged so callers can skip it.
    """
    sheets: List[ImportedSheet] = []
    for position, (title, rows) in enumerate(_read_rows(content)):
        code_col, name_col, unit_col = None, 0, 1
        for row in rows[:SHEET_HEADER_SCAN_ROWS]:
            found = _find_column(row, NAME_HEADER)
            if found is None:
                found = _find_column(row, "товар")
            if found is not None:
                name_col, unit_col = found, found + 1
                code_col = _find_column(row, "код")
                break

        imported = ImportedSheet(title=title, is_summary=position == 0)
        for row in rows:
            name = _value_at(row, name_col)
            unit = _value_at(row, unit_col)
            if name and unit and len(name) > 2 and NAME_HEADER not in name.lower():
                imported.items.append(ImportedRow(code=_value_at(row, code_col), name=name, unit=unit))
        sheets.append(imported)
    return sheets
