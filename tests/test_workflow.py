import sys
from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import Workbook, load_workbook

sys.path.append(str(Path(__file__).resolve().parents[1]))

from insurance_ledger.application import PeriodService
from insurance_ledger.config import adjustment_upload_dir, period_upload_dir, reset_settings
from insurance_ledger.core.errors import (
    EmptyExportError,
    MissingSchemeError,
    NoRecordsError,
    PeriodNotFoundError,
    PersistenceError,
    RosterNotFoundError,
)
from insurance_ledger.core.schema import FileType, Part, Scheme
from insurance_ledger.infrastructure import DuckDBPeriodRepository, InMemoryPeriodRepository

HEADER = [
    "序号",
    "姓名",
    "证件类型",
    "证件号码",
    "部门",
    "缴费工资",
    "缴费基数",
    "费率",
    "应缴费额",
    "减免费额",
    "应补(退)费额",
    "人员编号",
]

PERSONAL_AMOUNTS = {
    Scheme.PENSION: 500,
    Scheme.MEDICAL: 400,
    Scheme.SERIOUS_ILLNESS: 50,
    Scheme.UNEMPLOYMENT: 30,
}
UNIT_AMOUNTS = {
    Scheme.PENSION: 1000,
    Scheme.MEDICAL: 800,
    Scheme.SERIOUS_ILLNESS: 100,
    Scheme.UNEMPLOYMENT: 60,
    Scheme.INJURY: 70,
}


@pytest.fixture(autouse=True)
def _uploads_root(tmp_path, monkeypatch):
    monkeypatch.setenv("LEDGER_UPLOADS_ROOT", str(tmp_path / "uploads"))
    monkeypatch.delenv("LEDGER_DATABASE", raising=False)
    monkeypatch.delenv("LEDGER_CONFIG", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(params=["memory", "duckdb"])
def service(request):
    if request.param == "memory":
        yield PeriodService(InMemoryPeriodRepository())
        return
    repository = DuckDBPeriodRepository()
    yield PeriodService(repository)
    repository.close()


def _write_rows(path: Path, rows: list[list[object]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


def _contribution_file(directory: Path, name: str, people: list[tuple[str, str, int, object]]) -> Path:
    rows: list[list[object]] = [HEADER]
    for seq, (id_number, person, base, amount) in enumerate(people, start=1):
        rows.append([seq, person, "居民身份证", id_number, "", base, base, "8%", amount, 0, amount, f"P{seq:03d}"])
    return _write_rows(directory / name, rows)


def _upload_period(
    service: PeriodService,
    period_id: int,
    directory: Path,
    *,
    skip: tuple[Part, Scheme] | None = None,
    id_number: str = "ID123",
) -> None:
    for part, amounts, base in ((Part.PERSONAL, PERSONAL_AMOUNTS, 5000), (Part.UNIT, UNIT_AMOUNTS, 6000)):
        for scheme, amount in amounts.items():
            if (part, scheme) == skip:
                continue
            name = f"{part.value}_{scheme.value}.xlsx"
            path = _contribution_file(directory, name, [(id_number, "张三", base, amount)])
            service.ingest_contribution_file(period_id, path, name, scheme, part)


def test_full_period_flow(service, tmp_path):
    period = service.create_period("2024-05")
    roster = _write_rows(tmp_path / "roster.xlsx", [["姓名", "证件号码", "部门"], ["张三", "ID123", "人事部"]])
    assert service.ingest_roster_file(period.id, roster, "花名册.xlsx").imported == 1

    _upload_period(service, period.id, tmp_path)
    output = service.process_period(period.id)

    assert output.period_id == period.id
    assert len(output.summaries) == 9
    assert all(summary.headcount == 1 for summary in output.summaries)

    personal = service.list_personal_charges(period.id)
    unit = service.list_unit_charges(period.id)
    assert len(personal) == len(unit) == 1
    assert personal[0].subtotal == Decimal("980")
    assert personal[0].department == "人事部"
    assert unit[0].medical_maternity == Decimal("900")
    assert unit[0].subtotal == Decimal("2030")
    assert unit[0].base == Decimal("6000")
    assert service.get_period(period.id).status == "processed"


def test_reupload_replaces_scheme_records(service, tmp_path):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path)

    path = _contribution_file(tmp_path / "again", "pension.xlsx", [("ID123", "张三", 5000, 600)])
    result = service.ingest_contribution_file(period.id, path, "pension.xlsx", Scheme.PENSION, Part.PERSONAL)

    assert result.imported == 1
    assert result.file.id is not None
    files = service.list_source_files(period.id, FileType.NORMAL)
    assert len(files) == 9
    assert sum(1 for item in files if item.part is Part.PERSONAL and item.scheme is Scheme.PENSION) == 1

    service.process_period(period.id)
    personal = service.list_personal_charges(period.id)
    assert personal[0].pension == Decimal("600")
    assert personal[0].subtotal == Decimal("1080")


def test_missing_scheme_blocks_processing(service, tmp_path):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path, skip=(Part.UNIT, Scheme.INJURY))

    with pytest.raises(MissingSchemeError) as excinfo:
        service.process_period(period.id)

    assert excinfo.value.part == "unit"
    assert excinfo.value.scheme == "injury"
    assert service.list_summaries(period.id) == []
    assert service.get_period(period.id).status == "draft"


def test_process_without_records(service):
    period = service.create_period("2024-05")
    with pytest.raises(NoRecordsError):
        service.process_period(period.id)
    with pytest.raises(NoRecordsError):
        service.process_adjustments(period.id)


def test_unknown_period(service):
    with pytest.raises(PeriodNotFoundError):
        service.process_period(999)
    with pytest.raises(PeriodNotFoundError):
        service.list_summaries(999)


def test_adjustments_accumulate_and_stay_isolated(service, tmp_path):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path)
    service.process_period(period.id)

    for index in range(2):
        name = f"adjust_{index}.xlsx"
        path = _contribution_file(tmp_path / "adjust", name, [("ID123", "张三", 5000, -20)])
        service.ingest_adjustment_file(period.id, path, name, Scheme.PENSION, Part.PERSONAL)
    assert len(service.list_source_files(period.id, FileType.ADJUSTMENT)) == 2

    output = service.process_adjustments(period.id)

    assert [row.is_adjustment for row in output.personal] == [False, True]
    normal, adjusted = output.personal
    assert normal.pension == Decimal("500")
    assert normal.subtotal == Decimal("980")
    assert adjusted.pension == Decimal("-40")
    assert adjusted.subtotal == Decimal("-40")
    assert [s.amount_total for s in service.list_summaries(period.id, is_adjustment=True)] == [Decimal("-40")]

    again = service.process_adjustments(period.id)
    assert len(again.personal) == 2
    assert len(service.list_personal_charges(period.id, is_adjustment=True)) == 1
    assert service.list_personal_charges(period.id, is_adjustment=False)[0].subtotal == Decimal("980")

    # a normal run replaces every aggregate row of the period
    service.process_period(period.id)
    assert service.list_personal_charges(period.id, is_adjustment=True) == []


def test_clear_adjustment_files(service, tmp_path):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path)
    service.process_period(period.id)
    path = _contribution_file(tmp_path / "adjust", "adjust.xlsx", [("ID999", "李四", 4000, 15)])
    service.ingest_adjustment_file(period.id, path, "adjust.xlsx", Scheme.INJURY, Part.UNIT)
    service.process_adjustments(period.id)

    upload_dir = adjustment_upload_dir(period.id)
    assert len(list(upload_dir.iterdir())) == 1

    service.clear_files(period.id, FileType.ADJUSTMENT)

    assert not upload_dir.exists()
    assert service.list_source_files(period.id, FileType.ADJUSTMENT) == []
    assert service.list_unit_charges(period.id, is_adjustment=True) == []
    assert len(service.list_unit_charges(period.id, is_adjustment=False)) == 1
    assert len(service.list_source_files(period.id, FileType.NORMAL)) == 9
    with pytest.raises(NoRecordsError):
        service.process_adjustments(period.id)


def test_reset_period(service, tmp_path):
    period = service.create_period("2024-05")
    roster = _write_rows(tmp_path / "roster.xlsx", [["证件号码", "部门"], ["ID123", "人事部"]])
    service.ingest_roster_file(period.id, roster, "roster.xlsx")
    _upload_period(service, period.id, tmp_path)
    service.process_period(period.id)
    upload_dir = period_upload_dir(period.id)
    assert len(list(upload_dir.glob("*.xlsx"))) == 9

    service.reset_period(period.id)

    assert service.get_period(period.id).status == "draft"
    assert service.list_source_files(period.id) == []
    assert service.list_roster(period.id) == []
    assert service.list_summaries(period.id) == []
    assert service.list_personal_charges(period.id) == []
    assert not upload_dir.exists()


def test_delete_period(service):
    period = service.create_period("2024-05")
    service.delete_period(period.id)
    assert service.list_periods() == []
    with pytest.raises(PeriodNotFoundError):
        service.get_period(period.id)


def test_import_latest_roster(service, tmp_path):
    first = service.create_period("2024-04")
    second = service.create_period("2024-05")
    target = service.create_period("2024-06")

    with pytest.raises(RosterNotFoundError):
        service.import_latest_roster(target.id)

    old = _write_rows(tmp_path / "old.xlsx", [["证件号码", "部门"], ["ID1", "旧部门"]])
    new = _write_rows(tmp_path / "new.xlsx", [["证件号码", "部门", "姓名"], ["ID3", "财务部", "王五"], ["ID2", "人事部", "李四"]])
    service.ingest_roster_file(first.id, old, "old.xlsx")
    service.ingest_roster_file(second.id, new, "new.xlsx")

    result = service.import_latest_roster(target.id)

    assert result.imported == 2
    entries = service.list_roster(target.id)
    assert [(e.id_number, e.department) for e in entries] == [("ID2", "人事部"), ("ID3", "财务部")]
    assert all(entry.period_id == target.id for entry in entries)


def test_scheme_charges(service, tmp_path):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path)
    service.process_period(period.id)

    personal_medical = service.scheme_charges(period.id, Scheme.MEDICAL, Part.PERSONAL)
    unit_medical = service.scheme_charges(period.id, Scheme.MEDICAL, Part.UNIT)
    unit_injury = service.scheme_charges(period.id, Scheme.INJURY, Part.UNIT)

    assert personal_medical[0].amount == Decimal("400")
    assert personal_medical[0].base == Decimal("5000")
    assert unit_medical[0].amount == Decimal("900")
    assert unit_injury[0].amount == Decimal("70")
    assert service.scheme_charges(period.id, Scheme.INJURY, Part.PERSONAL) == []


def test_export_charges(service, tmp_path):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path / "in")
    service.process_period(period.id)

    path = service.export_charges(period.id, Part.UNIT, tmp_path / "out")

    assert path.name == "2024-05-单位扣款明细.xlsx"
    ws = load_workbook(path).active
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == ["序号", "姓名", "证件号码", "部门", "基数", "养老保险", "医疗+生育保险", "工伤保险", "失业保险", "小计"]
    assert rows[1][2] == "ID123"
    assert rows[-1][0] == "合计"
    assert rows[-1][-1] == pytest.approx(2030)

    scheme_path = service.export_scheme_charges(period.id, Scheme.PENSION, Part.PERSONAL, tmp_path / "out")
    scheme_rows = list(load_workbook(scheme_path).active.iter_rows(values_only=True))
    assert scheme_path.name == "2024-05-个人养老保险明细.xlsx"
    assert list(scheme_rows[0]) == ["序号", "姓名", "证件号码", "部门", "缴费基数", "应缴金额"]
    assert scheme_rows[-1][-1] == pytest.approx(500)


def test_export_without_charges(service, tmp_path):
    period = service.create_period("2024-05")
    with pytest.raises(EmptyExportError):
        service.export_charges(period.id, Part.PERSONAL, tmp_path)


def test_failed_replace_keeps_previous_records(service, tmp_path, monkeypatch):
    period = service.create_period("2024-05")
    _upload_period(service, period.id, tmp_path)

    repository = service._repository
    target = "_attach" if isinstance(repository, InMemoryPeriodRepository) else "_insert_records"

    def _fail(*args, **kwargs):
        raise PersistenceError("insert raw records", RuntimeError("disk full"))

    path = _contribution_file(tmp_path / "again", "pension.xlsx", [("ID123", "张三", 5000, 600)])
    with monkeypatch.context() as patched:
        patched.setattr(repository, target, _fail)
        with pytest.raises(PersistenceError) as excinfo:
            service.ingest_contribution_file(period.id, path, "pension.xlsx", Scheme.PENSION, Part.PERSONAL)
    assert str(excinfo.value) == "insert raw records: disk full"
    assert len(list(period_upload_dir(period.id).glob("*.xlsx"))) == 9

    assert len(service.list_source_files(period.id)) == 9
    service.process_period(period.id)
    assert service.list_personal_charges(period.id)[0].pension == Decimal("500")


def test_batch_contribution_upload_reports_each_file(service, tmp_path):
    period = service.create_period("2024-05")
    pension = _contribution_file(tmp_path, "pension.xlsx", [("ID123", "张三", 5000, 500)])
    medical = _contribution_file(tmp_path, "medical.xlsx", [("ID123", "张三", 5000, 400)])
    broken = _write_rows(tmp_path / "broken.xlsx", [["姓名"], ["张三"]])

    items = service.ingest_contribution_files(
        period.id,
        [
            (pension, Scheme.PENSION, Part.PERSONAL),
            (pension, "pension", "personal"),
            (broken, Scheme.MEDICAL, Part.PERSONAL),
            (medical, "dental", "personal"),
        ],
    )

    assert [item.original_name for item in items] == ["pension.xlsx", "broken.xlsx", "medical.xlsx"]
    assert items[0].error == ""
    assert items[0].imported == 1
    assert items[0].file_name != "pension.xlsx"
    assert items[1].error == "missing required column: seq"
    assert items[2].error == "invalid scheme or part"
    assert len(service.list_source_files(period.id)) == 1
    assert len(list(period_upload_dir(period.id).glob("*.xlsx"))) == 1


def test_batch_adjustment_upload_reads_scheme_from_filename(service, tmp_path):
    period = service.create_period("2024-05")
    directory = tmp_path / "adjust"
    pension = _contribution_file(
        directory, "张三职工基本养老保险(个人缴纳)_2024-05至2024-05_未申报信息明细.xlsx", [("ID123", "张三", 5000, -20)]
    )
    injury = _contribution_file(directory, "李四工伤保险_2024-05.xlsx", [("ID456", "李四", 4000, 15)])
    unknown = _contribution_file(directory, "补缴明细.xlsx", [("ID789", "王五", 3000, 10)])

    items = service.ingest_adjustment_files(period.id, [pension, injury, pension, unknown])

    assert [(item.scheme, item.part) for item in items] == [
        (Scheme.PENSION, Part.PERSONAL),
        (Scheme.INJURY, Part.UNIT),
        (None, None),
    ]
    assert [item.imported for item in items] == [1, 1, 0]
    assert "无法识别险种类型" in items[2].error

    output = service.process_adjustments(period.id)
    assert [row.pension for row in output.personal] == [Decimal("-20"), Decimal("0")]
    assert [row.injury for row in output.unit] == [Decimal("0"), Decimal("15")]
    assert len(list(adjustment_upload_dir(period.id).iterdir())) == 2


def test_roster_template_round_trip(service, tmp_path):
    period = service.create_period("2024-05")

    path = service.export_roster_template(tmp_path)

    assert path.name == "花名册模板.xlsx"
    ws = load_workbook(path).active
    assert ws.title == "花名册"
    assert [cell.value for cell in ws[1]] == ["姓名", "证件号码", "部门", "岗位", "备注"]
    assert ws["A1"].font.bold
    assert ws["B2"].value == "110101199001011234"

    assert service.ingest_roster_file(period.id, path, path.name).imported == 3
    assert [entry.department for entry in service.list_roster(period.id)] == ["销售部", "技术部", "财务部"]
