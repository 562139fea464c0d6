"""Read the first worksheet of an uploaded workbook as rows of text."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from insurance_ledger.core.coercion import normalise_rows
from insurance_ledger.core.errors import InsufficientRowsError, MissingWorksheetError, StructuralError

logger = logging.getLogger(__name__)

EXCEL_ENGINES = {".xlsx": "openpyxl", ".xlsm": "openpyxl", ".xls": "xlrd"}
# Government exports are often saved as GBK; gb18030 is its superset.
CSV_ENCODINGS = ("utf-8", "gb18030")


def _frame_to_rows(frame: pd.DataFrame) -> list[list[str]]:
    frame = frame.fillna("")
    rows = normalise_rows(frame.values.tolist())
    return [row for row in rows if any(row)]


def _read_csv(path: Path) -> pd.DataFrame:
    last_error: UnicodeDecodeError | None = None
    for encoding in CSV_ENCODINGS:
        try:
            return pd.read_csv(path, header=None, dtype=str, keep_default_na=False, encoding=encoding)
        except UnicodeDecodeError as exc:
            logger.debug("%s is not %s encoded: %s", path.name, encoding, exc)
            last_error = exc
        except (pd.errors.ParserError, pd.errors.EmptyDataError, OSError) as exc:
            raise StructuralError(f"read csv: {exc}") from exc
    raise StructuralError(f"read csv: {last_error}") from last_error


def _read_excel(path: Path, label: str, engine: str) -> pd.DataFrame:
    try:
        excel = pd.ExcelFile(path, engine=engine)
    except Exception as exc:
        raise StructuralError(f"open excel: {exc}") from exc
    with excel:
        if not excel.sheet_names:
            raise MissingWorksheetError(f"{label}Excel文件中没有找到工作表")
        return excel.parse(sheet_name=excel.sheet_names[0], header=None, dtype=str, keep_default_na=False)


def _read_frame(path: Path, label: str) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return _read_csv(path)
    if not suffix:
        return _read_excel(path, label, EXCEL_ENGINES[".xlsx"])
    engine = EXCEL_ENGINES.get(suffix)
    if engine is None:
        raise StructuralError(f"不支持的文件类型: {suffix}")
    return _read_excel(path, label, engine)


def load_rows(path: Path, label: str = "") -> list[list[str]]:
    """Return the header row followed by data rows, every cell trimmed.

    ``label`` prefixes the user facing messages (``"花名册"`` for rosters).
    """

    frame = _read_frame(Path(path), label)
    rows = _frame_to_rows(frame)
    if len(rows) < 2:
        raise InsufficientRowsError(f"{label}Excel文件中没有数据行，请检查文件内容是否正确")
    return rows
