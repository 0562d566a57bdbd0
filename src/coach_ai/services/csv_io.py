from __future__ import annotations

import csv
from pathlib import Path


def read_csv_rows(csv_path: Path) -> list[dict]:
    # utf-8-sig drops the byte-order mark spreadsheet exports prepend to the first header.
    with Path(csv_path).open("r", encoding="utf-8-sig", newline="") as file:
        reader = csv.DictReader(file)
        return [dict(row) for row in reader]


def write_csv_rows(csv_path: Path, rows: list[dict], fieldnames: list[str]) -> Path:
    csv_path = Path(csv_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with csv_path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.DictWriter(file, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
    return csv_path
