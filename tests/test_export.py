"""
Tests for report writers.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime

import pytest
from openpyxl import load_workbook

from kader_planung.core.models import KaderPlanungRecord, Player
from kader_planung.core.types import DATA_NOT_AVAILABLE
from kader_planung.export import Exporter, build_output_filename, default_checkpoint_path
from kader_planung.statistics import StatisticalAnalyzer

STAMP = datetime(2025, 6, 15, 12, 30, 45)


@pytest.fixture
def records():
    return [
        KaderPlanungRecord(
            club_id_prefix1="C",
            club_id_prefix2="C0",
            club_id_prefix3="C03",
            club_name="SK Musterstadt",
            club_id="C0327",
            player_id="C0327-297",
            lastname="Schmidt",
            firstname="Anna",
            birthyear=2011,
            gender="w",
            current_dwz=1534,
            list_ranking=1,
            dwz_12_months_ago="1480",
            games_last_12_months="9",
            success_rate_last_12_months="61,1",
            somatogram_percentile="37,5",
        ),
        KaderPlanungRecord(club_id="C0327", player_id="C0327-298", lastname="Müller"),
    ]


class TestFilenames:
    def test_with_prefix(self):
        assert build_output_filename("C03", "excel", STAMP) == "kader-planung-C03-20250615-123045.xlsx"

    def test_all_clubs(self):
        assert build_output_filename("", "csv", STAMP) == "kader-planung-all-20250615-123045.csv"

    def test_statistics(self):
        assert (
            build_output_filename("", "json", STAMP, kind="statistics")
            == "kader-planung-statistics-all-20250615-123045.json"
        )

    def test_default_checkpoint_path(self, tmp_path):
        assert default_checkpoint_path(tmp_path, "") == tmp_path / "kader-planung-checkpoint-all.json"
        assert default_checkpoint_path(tmp_path, "C03").name == "kader-planung-checkpoint-C03.json"


class TestExporter:
    def test_csv(self, tmp_path, records):
        path = Exporter(tmp_path).export(records, "csv", "C03", STAMP)

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))

        assert list(rows[0]) == KaderPlanungRecord.field_names()
        assert rows[0]["success_rate_last_12_months"] == "61,1"
        assert rows[1]["birthyear"] == ""
        assert rows[1]["somatogram_percentile"] == DATA_NOT_AVAILABLE
        assert rows[1]["lastname"] == "Müller"

    def test_json(self, tmp_path, records):
        path = Exporter(tmp_path).export(records, "json", "", STAMP)

        payload = json.loads(path.read_text(encoding="utf-8"))

        assert path.name == "kader-planung-all-20250615-123045.json"
        assert payload["count"] == 2
        assert payload["records"][0]["player_id"] == "C0327-297"
        assert payload["records"][1]["birthyear"] is None
        assert "timestamp" in payload

    def test_excel(self, tmp_path, records):
        path = Exporter(tmp_path).export(records, "excel", "C03", STAMP)

        sheet = load_workbook(path).active
        rows = list(sheet.iter_rows(values_only=True))

        assert path.suffix == ".xlsx"
        assert list(rows[0]) == KaderPlanungRecord.field_names()
        assert rows[1][KaderPlanungRecord.field_names().index("current_dwz")] == 1534
        assert len(rows) == 3

    def test_creates_output_dir(self, tmp_path, records):
        path = Exporter(tmp_path / "reports" / "2025").export(records, "csv")
        assert path.exists()


class TestStatisticsExport:
    def test_nothing_to_write(self, tmp_path):
        assert Exporter(tmp_path).export_statistics({}) is None
        assert list(tmp_path.iterdir()) == []

    def test_writes_per_gender_report(self, tmp_path):
        players = [
            Player(id=f"P{i}", birth_year=2012, gender="m", current_dwz=1000 + i * 10)
            for i in range(5)
        ]
        report = StatisticalAnalyzer(min_sample_size=5, reference_year=2025).process_players(players)

        path = Exporter(tmp_path).export_statistics(report, "C03", STAMP)

        payload = json.loads(path.read_text())
        assert path.name == "kader-planung-statistics-C03-20250615-123045.json"
        assert payload["m"]["metadata"]["total_players"] == 5
        assert payload["m"]["percentiles"]["13"]["percentiles"]["0"] == 1000
