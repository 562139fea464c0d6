from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, constr


class Scheme(str, Enum):
    PENSION = "pension"
    MEDICAL = "medical"
    SERIOUS_ILLNESS = "serious_illness"
    UNEMPLOYMENT = "unemployment"
    INJURY = "injury"


class Part(str, Enum):
    PERSONAL = "personal"
    UNIT = "unit"


class FileType(str, Enum):
    NORMAL = "normal"
    ADJUSTMENT = "adjustment"


class Period(BaseModel):
    id: int
    year_month: constr(pattern=r"^\d{4}-\d{2}$")
    status: str = "draft"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SourceFile(BaseModel):
    id: int | None = None
    period_id: int
    file_name: str
    stored_path: str
    original_name: str
    scheme: Scheme
    part: Part
    file_type: FileType = FileType.NORMAL
    rows: int = 0
    status: str = "parsed"
    uploaded_at: datetime | None = None


class RawRecord(BaseModel):
    model_config = {"frozen": True}

    period_id: int
    source_file_id: int | None = None
    sequence: int
    name: str
    id_type: str = ""
    id_number: str
    department: str = ""
    pay_salary: Decimal = Decimal("0")
    pay_base: Decimal = Decimal("0")
    rate_text: str = ""
    amount_due: Decimal = Decimal("0")
    deduction: Decimal = Decimal("0")
    amount_adjust: Decimal = Decimal("0")
    person_code: str = ""
    scheme: Scheme
    part: Part
    file_type: FileType = FileType.NORMAL


class RosterEntry(BaseModel):
    period_id: int
    id_number: str
    name: str = ""
    department: str = ""
    title: str = ""
    remarks: str = ""
    created_at: datetime | None = None


class PeriodSummary(BaseModel):
    period_id: int
    scheme: Scheme
    part: Part
    headcount: int = 0
    base_total: Decimal = Decimal("0")
    amount_total: Decimal = Decimal("0")
    is_adjustment: bool = False


class PersonalCharge(BaseModel):
    period_id: int
    name: str
    id_number: str
    department: str = ""
    base: Decimal = Decimal("0")
    pension: Decimal = Decimal("0")
    medical_maternity: Decimal = Decimal("0")
    serious_illness: Decimal = Decimal("0")
    unemployment: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    is_adjustment: bool = False


class UnitCharge(BaseModel):
    period_id: int
    name: str
    id_number: str
    department: str = ""
    base: Decimal = Decimal("0")
    pension: Decimal = Decimal("0")
    medical_maternity: Decimal = Decimal("0")
    serious_illness: Decimal = Decimal("0")
    injury: Decimal = Decimal("0")
    unemployment: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    is_adjustment: bool = False


class SchemeChargeDetail(BaseModel):
    name: str
    id_number: str
    department: str = ""
    base: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")


class ParseResult(BaseModel):
    file: SourceFile
    imported: int


class RosterParseResult(BaseModel):
    imported: int


class BatchUploadItem(BaseModel):
    original_name: str
    file_name: str = ""
    scheme: Scheme | None = None
    part: Part | None = None
    imported: int = 0
    error: str = ""


class ProcessOutput(BaseModel):
    period_id: int
    summaries: list[PeriodSummary] = Field(default_factory=list)
    personal: list[PersonalCharge] = Field(default_factory=list)
    unit: list[UnitCharge] = Field(default_factory=list)
