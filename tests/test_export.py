"""Tests for candidate export."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import load_workbook

from catalog_engine.core.models import CandidateMetrics, JobItem, VariantCandidate
from catalog_engine.utils.export import Exporter


@pytest.fixture
def items() -> list[JobItem]:
    def variant(vid: str, key: str, retail: str | None) -> VariantCandidate:
        return VariantCandidate(
            variant_id=vid,
            sku=f"SKU-{vid}",
            variant_key=key,
            size=key.split("-")[-1].lower(),
            color=key.split("-")[0].lower(),
            cost_foreign=Decimal("10"),
            shipping_foreign=Decimal("5.00"),
            retail_local=Decimal(retail) if retail else None,
            stock=4,
            anomalies=["LOW_MARGIN", "HEAVY_PARCEL"] if vid == "v2" else [],
        )

    return [
        JobItem(
            supplier_product_id="P1",
            name="Hoodie",
            category="Apparel",
            metrics=CandidateMetrics(stock_sum=8),
            variants=[variant("v1", "Black-M", "149"), variant("v2", "Black-L", None)],
        ),
        JobItem(
            supplier_product_id="P2",
            name="Tote",
            category="Bags",
            metrics=CandidateMetrics(stock_sum=4),
            variants=[variant("v3", "Khaki-S", "99")],
        ),
    ]


class TestExporter:
    """Tests for Exporter."""

    def test_one_row_per_variant(self, items: list[JobItem]) -> None:
        rows = Exporter.items_to_rows(items)

        assert len(rows) == 3
        assert [r["Variant ID"] for r in rows] == ["v1", "v2", "v3"]
        assert rows[0]["Product ID"] == "P1"
        assert rows[0]["Retail (local)"] == 149.0
        assert rows[1]["Retail (local)"] == ""
        assert rows[1]["Flags"] == "LOW_MARGIN, HEAVY_PARCEL"
        assert rows[2]["Product Stock"] == 4

    def test_export_csv(self, items: list[JobItem], tmp_path: Path) -> None:
        output = tmp_path / "candidates.csv"

        assert Exporter.export_to_csv(items, output) == 3

        df = pd.read_csv(output)
        assert list(df["SKU"]) == ["SKU-v1", "SKU-v2", "SKU-v3"]
        assert df.loc[2, "Name"] == "Tote"

    def test_export_xlsx(self, items: list[JobItem], tmp_path: Path) -> None:
        output = tmp_path / "candidates.xlsx"

        assert Exporter.export_to_xlsx(items, output) == 3

        sheet = load_workbook(output)[Exporter.SHEET_NAME]
        assert sheet["A1"].value == "Product ID"
        assert sheet.max_row == 4
        assert sheet.column_dimensions["A"].width > 0

    def test_empty_export_writes_nothing(self, tmp_path: Path) -> None:
        output = tmp_path / "empty.csv"
        assert Exporter.export_to_csv([], output) == 0
        assert not output.exists()

    def test_generate_filename(self) -> None:
        name = Exporter.generate_filename(7, "xlsx")
        assert name.startswith("job_7_candidates_")
        assert name.endswith(".xlsx")
