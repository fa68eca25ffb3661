"""Export functionality for Supplier Catalog Engine."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from catalog_engine.core.models import JobItem


def _num(value: Any) -> float | str:
    return float(value) if value is not None else ""


class Exporter:
    """Exports job candidates, one row per variant."""

    SHEET_NAME = "Candidates"

    @staticmethod
    def items_to_rows(items: list[JobItem]) -> list[dict[str, Any]]:
        """Flatten job items into variant rows."""
        rows = []
        for item in items:
            for v in item.variants:
                rows.append({
                    "Product ID": item.supplier_product_id,
                    "Name": item.name,
                    "Category": item.category,
                    "Variant ID": v.variant_id,
                    "SKU": v.sku,
                    "Variant": v.variant_key,
                    "Size": v.size or "",
                    "Color": v.color or "",
                    "Cost (foreign)": _num(v.cost_foreign),
                    "Shipping (foreign)": _num(v.shipping_foreign),
                    "Billed Weight (kg)": _num(v.billed_weight_kg),
                    "Landed (local)": _num(v.landed_local),
                    "Retail (local)": _num(v.retail_local),
                    "Stock": v.stock,
                    "Product Stock": item.metrics.stock_sum,
                    "Flags": ", ".join(v.anomalies),
                })
        return rows

    @classmethod
    def to_dataframe(cls, items: list[JobItem]) -> pd.DataFrame:
        return pd.DataFrame(cls.items_to_rows(items))

    @classmethod
    def export_to_csv(cls, items: list[JobItem], file_path: str | Path) -> int:
        """Write a CSV. Returns the number of rows written."""
        df = cls.to_dataframe(items)
        if df.empty:
            return 0
        df.to_csv(Path(file_path), index=False, encoding="utf-8")
        return len(df)

    @classmethod
    def export_to_xlsx(cls, items: list[JobItem], file_path: str | Path) -> int:
        """Write an Excel workbook. Returns the number of rows written."""
        df = cls.to_dataframe(items)
        if df.empty:
            return 0

        with pd.ExcelWriter(Path(file_path), engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name=cls.SHEET_NAME)

            # Auto-adjust column widths
            from openpyxl.utils import get_column_letter

            worksheet = writer.sheets[cls.SHEET_NAME]
            for i, col in enumerate(df.columns, start=1):
                max_length = max(df[col].astype(str).map(len).max(), len(col))
                worksheet.column_dimensions[get_column_letter(i)].width = min(max_length + 2, 50)
        return len(df)

    @classmethod
    def generate_filename(cls, job_id: int, extension: str) -> str:
        """Timestamped export filename."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"job_{job_id}_candidates_{timestamp}.{extension}"
