#!/usr/bin/env python
from __future__ import annotations

import argparse
import csv
from pathlib import Path

from insurance_ledger.exporters.roster_template import COLUMNS, write_roster_template

HEADER = [label for label, _ in COLUMNS]
DEPARTMENTS = ["人事部", "财务部", "生产部"]


def build_rows(count: int, id_prefix: str) -> list[list[str]]:
    rows = []
    for index in range(1, count + 1):
        rows.append([
            f"员工{index:02d}",
            f"{id_prefix}{index:04d}",
            DEPARTMENTS[(index - 1) % len(DEPARTMENTS)],
            "专员",
            "",
        ])
    return rows


def main() -> None:
    parser = argparse.ArgumentParser(description="生成花名册示例 (.xlsx 或 .csv)")
    parser.add_argument("--output", required=True, help="输出文件路径 (.xlsx / .csv)")
    parser.add_argument("--count", type=int, default=3, help="员工人数")
    parser.add_argument("--id-prefix", default="11010119900101", help="证件号码前缀")
    args = parser.parse_args()

    output = Path(args.output)
    rows = build_rows(args.count, args.id_prefix)
    if output.suffix.lower() == ".csv":
        output.parent.mkdir(parents=True, exist_ok=True)
        # Excel-style export with a leading BOM.
        with output.open("w", newline="", encoding="utf-8-sig") as fp:
            writer = csv.writer(fp)
            writer.writerow(HEADER)
            writer.writerows(rows)
    else:
        write_roster_template(output, rows)

    print(f"花名册示例已生成: {output} ({args.count} 人)")


if __name__ == "__main__":
    main()
