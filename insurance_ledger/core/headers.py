"""Column dictionaries and header-row resolution."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Sequence

from insurance_ledger.core.coercion import clean_text
from insurance_ledger.core.errors import MissingColumnError

CONTRIBUTION_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "序号": "seq",
        "姓名": "name",
        "证件类型": "id_type",
        "证件号码": "id_number",
        "部门": "department",
        "缴费工资": "salary",
        "缴费基数": "base",
        "费率": "rate",
        "应缴费额": "amount_due",
        "减免费额": "deduction",
        "应补(退)费额": "amount_adjust",
        "人员编号": "person_code",
    }
)

CONTRIBUTION_REQUIRED: tuple[str, ...] = (
    "seq",
    "name",
    "id_number",
    "salary",
    "base",
    "rate",
    "amount_due",
)

ROSTER_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "姓名": "name",
        "证件号码": "id_number",
        "身份证号码": "id_number",
        "身份证号": "id_number",
        "部门": "department",
        "岗位": "title",
        "职务": "title",
        "备注": "remarks",
    }
)

# English headers seen on roster templates exported from other systems.
ROSTER_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "name": "name",
        "idnumber": "id_number",
        "id_no": "id_number",
        "id": "id_number",
        "department": "department",
        "dept": "department",
        "title": "title",
        "position": "title",
        "remarks": "remarks",
        "remark": "remarks",
        "note": "remarks",
    }
)

ROSTER_REQUIRED: Mapping[str, str] = MappingProxyType(
    {
        "id_number": "花名册文件缺少必需的列：证件号码",
        "department": "花名册文件缺少必需的列：部门",
    }
)


def resolve_columns(
    header: Sequence[str],
    mapping: Mapping[str, str],
    aliases: Mapping[str, str] | None = None,
) -> dict[str, int]:
    """Map canonical keys to column indexes; unknown columns are ignored."""

    index: dict[str, int] = {}
    for position, cell in enumerate(header):
        label = clean_text(cell)
        if not label:
            continue
        key = mapping.get(label)
        if key is None and aliases:
            key = aliases.get(label.lower())
        if key is not None:
            index[key] = position
    return index


def require_columns(index: Mapping[str, int], required: Sequence[str] | Mapping[str, str]) -> None:
    if isinstance(required, Mapping):
        for key, message in required.items():
            if key not in index:
                raise MissingColumnError(key, message)
        return
    for key in required:
        if key not in index:
            raise MissingColumnError(key)


def contribution_columns(header: Sequence[str]) -> dict[str, int]:
    index = resolve_columns(header, CONTRIBUTION_HEADERS)
    require_columns(index, CONTRIBUTION_REQUIRED)
    return index


def roster_columns(header: Sequence[str]) -> dict[str, int]:
    index = resolve_columns(header, ROSTER_HEADERS, ROSTER_ALIASES)
    require_columns(index, ROSTER_REQUIRED)
    return index
