"""Scheme and payment part from adjustment export file names.

The bureau names adjustment exports after the person and the scheme, e.g.
``张英俊职工基本养老保险(个人缴纳)_2025-01至2025-01_未申报信息明细.xlsx``.
"""

from __future__ import annotations

from pathlib import PurePath

from insurance_ledger.core.errors import UnrecognisedFilenameError
from insurance_ledger.core.schema import Part, Scheme

# Checked in order; 大额医疗 must precede 医疗保险 since "大额医疗保险" contains both.
SCHEME_MARKERS: tuple[tuple[str, Scheme], ...] = (
    ("养老保险", Scheme.PENSION),
    ("失业保险", Scheme.UNEMPLOYMENT),
    ("工伤保险", Scheme.INJURY),
    ("大额医疗", Scheme.SERIOUS_ILLNESS),
    ("医疗保险", Scheme.MEDICAL),
)
PART_MARKERS: tuple[tuple[str, Part], ...] = (
    ("个人缴纳", Part.PERSONAL),
    ("单位缴纳", Part.UNIT),
)


def classify_adjustment_filename(filename: str) -> tuple[Scheme, Part]:
    stem = PurePath(filename).stem

    scheme = next((value for marker, value in SCHEME_MARKERS if marker in stem), None)
    if scheme is None:
        raise UnrecognisedFilenameError(f"无法识别险种类型: {filename}")

    part = next((value for marker, value in PART_MARKERS if marker in stem), None)
    if part is None:
        # Injury is only ever paid by the unit.
        if scheme is Scheme.INJURY:
            return scheme, Part.UNIT
        raise UnrecognisedFilenameError(f"无法识别缴费部分: {filename}")
    return scheme, part
