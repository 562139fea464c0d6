#!/usr/bin/env python
from __future__ import annotations

import argparse
from decimal import Decimal
from pathlib import Path

from openpyxl import Workbook

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

# Default rates per (part, scheme), as percentages of the base.
RATES = {
    ("personal", "pension"): Decimal("8"),
    ("personal", "medical"): Decimal("2"),
    ("personal", "serious_illness"): Decimal("1"),
    ("personal", "unemployment"): Decimal("0.5"),
    ("unit", "pension"): Decimal("16"),
    ("unit", "medical"): Decimal("8"),
    ("unit", "serious_illness"): Decimal("1"),
    ("unit", "unemployment"): Decimal("0.5"),
    ("unit", "injury"): Decimal("0.4"),
}


def main() -> None:
    parser = argparse.ArgumentParser(description="生成社保缴费明细示例工作簿")
    parser.add_argument("--part", required=True, choices=["personal", "unit"], help="缴费部分")
    parser.add_argument("--scheme", required=True, choices=sorted({scheme for _, scheme in RATES}), help="险种")
    parser.add_argument("--output", required=True, help="输出文件路径 (.xlsx)")
    parser.add_argument("--employee", default="张三", help="员工姓名")
    parser.add_argument("--id-number", default="110101199001011234", help="证件号码")
    parser.add_argument("--base", default="5000", help="缴费基数")
    args = parser.parse_args()

    rate = RATES.get((args.part, args.scheme))
    if rate is None:
        parser.error(f"{args.part} 部分没有 {args.scheme} 险种")

    base = Decimal(args.base)
    amount = (base * rate / Decimal("100")).quantize(Decimal("0.01"))

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "缴费明细"
    sheet.append(HEADER)
    sheet.append([
        "001",
        args.employee,
        "居民身份证",
        args.id_number,
        "示例部门",
        str(base),
        str(base),
        f"{rate}%",
        str(amount),
        "0",
        str(amount),
        "P0001",
    ])

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output)
    print(f"缴费明细示例已生成: {output}")


if __name__ == "__main__":
    main()
