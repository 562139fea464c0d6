import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from insurance_ledger.core.errors import StructuralError, UnrecognisedFilenameError
from insurance_ledger.core.filenames import classify_adjustment_filename
from insurance_ledger.core.schema import Part, Scheme


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("张英俊职工基本养老保险(个人缴纳)_2025-01至2025-01_未申报信息明细.xlsx", (Scheme.PENSION, Part.PERSONAL)),
        ("李四失业保险(单位缴纳)_2025-02.xlsx", (Scheme.UNEMPLOYMENT, Part.UNIT)),
        ("王五医疗保险个人缴纳.xls", (Scheme.MEDICAL, Part.PERSONAL)),
        ("赵六大额医疗保险(单位缴纳).xlsx", (Scheme.SERIOUS_ILLNESS, Part.UNIT)),
        ("工伤保险(单位缴纳).xlsx", (Scheme.INJURY, Part.UNIT)),
    ],
)
def test_classify_adjustment_filename(filename, expected):
    assert classify_adjustment_filename(filename) == expected


def test_injury_without_part_marker_is_unit():
    assert classify_adjustment_filename("工伤保险_2025-01至2025-01.xlsx") == (Scheme.INJURY, Part.UNIT)


def test_unknown_scheme_is_rejected():
    with pytest.raises(UnrecognisedFilenameError) as excinfo:
        classify_adjustment_filename("生育保险(个人缴纳).xlsx")
    assert "无法识别险种类型" in str(excinfo.value)


def test_missing_part_is_rejected():
    with pytest.raises(StructuralError) as excinfo:
        classify_adjustment_filename("职工基本养老保险_2025-01.xlsx")
    assert "无法识别缴费部分" in str(excinfo.value)


def test_markers_are_read_from_file_name_only():
    with pytest.raises(UnrecognisedFilenameError):
        classify_adjustment_filename("养老保险(个人缴纳)/明细.xlsx")
