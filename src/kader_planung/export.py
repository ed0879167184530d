"""
Report writers for Kader-Planung records.

Formats:
- csv: header row of record field names, one row per record
- json: ``{"timestamp": ..., "count": N, "records": [...]}``
- excel: single ``.xlsx`` sheet via openpyxl

Statistics (per-gender percentile tables) are written as a separate JSON file.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from openpyxl import Workbook

from .core.models import KaderPlanungRecord
from .core.types import OutputFormat
from .statistics.analyzer import SomatogrammData

logger = logging.getLogger(__name__)


def build_output_filename(
    club_prefix: str,
    output_format: OutputFormat | str,
    timestamp: Optional[datetime] = None,
    kind: str = "",
) -> str:
    """
    ``kader-planung-{prefix|all}-{YYYYmmdd-HHMMSS}.{ext}``.

    ``kind`` inserts a report type, e.g. ``kader-planung-statistics-all-...``.
    """
    fmt = OutputFormat(output_format)
    stamp = (timestamp or datetime.now()).strftime("%Y%m%d-%H%M%S")
    scope = club_prefix or "all"
    name = f"kader-planung-{kind}-" if kind else "kader-planung-"
    return f"{name}{scope}-{stamp}.{fmt.extension}"


def default_checkpoint_path(output_dir: Path | str, club_prefix: str) -> Path:
    """Stable checkpoint location so a rerun finds it without extra flags."""
    return Path(output_dir) / f"kader-planung-checkpoint-{club_prefix or 'all'}.json"


class Exporter:
    """Writes records and statistics to ``output_dir``."""

    def __init__(self, output_dir: Path | str, logger: Optional[logging.Logger] = None):
        self.output_dir = Path(output_dir)
        self.logger = logger or logging.getLogger(__name__)

    def export(
        self,
        records: list[KaderPlanungRecord],
        output_format: OutputFormat | str,
        club_prefix: str = "",
        timestamp: Optional[datetime] = None,
    ) -> Path:
        """
        Write records in the requested format.

        Returns:
            Path of the written file
        """
        fmt = OutputFormat(output_format)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / build_output_filename(club_prefix, fmt, timestamp)

        if fmt is OutputFormat.csv:
            self.write_csv(records, path)
        elif fmt is OutputFormat.json:
            self.write_json(records, path)
        else:
            self.write_excel(records, path)

        self.logger.info("Exported %d records to %s", len(records), path)
        return path

    def write_csv(self, records: list[KaderPlanungRecord], path: Path) -> None:
        fieldnames = KaderPlanungRecord.field_names()
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for record in records:
                row = record.model_dump()
                if row["birthyear"] is None:
                    row["birthyear"] = ""
                writer.writerow(row)

    def write_json(self, records: list[KaderPlanungRecord], path: Path) -> None:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "count": len(records),
            "records": [record.model_dump(mode="json") for record in records],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

    def write_excel(self, records: list[KaderPlanungRecord], path: Path) -> None:
        fieldnames = KaderPlanungRecord.field_names()
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Kader-Planung"
        sheet.append(fieldnames)
        for record in records:
            row = record.model_dump()
            sheet.append([row[name] for name in fieldnames])
        workbook.save(path)

    def export_statistics(
        self,
        statistics: dict[str, SomatogrammData],
        club_prefix: str = "",
        timestamp: Optional[datetime] = None,
    ) -> Optional[Path]:
        """
        Write the per-gender statistics report as JSON.

        Returns:
            Path of the written file, or None if there was nothing to write
        """
        if not statistics:
            self.logger.info("No age/gender group met the minimum sample size; no statistics file written")
            return None

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / build_output_filename(
            club_prefix, OutputFormat.json, timestamp, kind="statistics"
        )
        payload = {gender: data.model_dump(mode="json") for gender, data in statistics.items()}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

        self.logger.info("Exported statistics for %d genders to %s", len(statistics), path)
        return path
