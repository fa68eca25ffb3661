"""Mock catalog data for running without API credentials."""

from __future__ import annotations

import random
import zlib
from typing import Any

COLORS = ["Black", "White", "Red", "Navy Blue", "Black And Silver", "Khaki", "Pink"]
SIZES = ["S", "M", "L", "XL", "2XL"]
CATEGORIES = ["Women's Clothing", "Men's Clothing", "Accessories", "Home & Garden"]

# Each keyword/category has this many products across its pages
MOCK_ITEMS_PER_UNIT = 45


def _seed(*parts: Any) -> int:
    """Stable seed (hash() is randomized per process)."""
    return zlib.crc32("|".join(str(p) for p in parts).encode("utf-8"))


def _product_id(unit: str, index: int) -> str:
    return f"MOCK-{_seed(unit) % 100000:05d}-{index:04d}"


def get_mock_catalog_page(unit: str, page_number: int, page_size: int) -> dict[str, Any]:
    """One listing page. Units are exhausted after MOCK_ITEMS_PER_UNIT products."""
    start = (max(1, page_number) - 1) * page_size
    end = min(start + page_size, MOCK_ITEMS_PER_UNIT)
    items = []
    for index in range(start, end):
        pid = _product_id(unit, index)
        rng = random.Random(_seed(pid))
        items.append({
            "pid": pid,
            "productNameEn": f"{unit.title()} Item {index + 1}",
            "sellPrice": f"{rng.uniform(2, 40):.2f}",
            "categoryName": rng.choice(CATEGORIES),
        })
    return {"pageNum": page_number, "pageSize": page_size, "total": MOCK_ITEMS_PER_UNIT, "list": items}


def get_mock_product_detail(pid: str) -> dict[str, Any]:
    """Full product record with size/colour variants."""
    rng = random.Random(_seed(pid))
    base_price = rng.uniform(2, 40)
    category = rng.choice(CATEGORIES)
    colors = rng.sample(COLORS, k=rng.randint(1, 3))
    sizes = rng.sample(SIZES, k=rng.randint(1, 3))

    variants = []
    for color in colors:
        for size in sizes:
            vid = f"{pid}-{color[:3].upper()}-{size}"
            variants.append({
                "vid": vid,
                "variantSku": f"CJ{_seed(vid) % 10**8:08d}",
                "variantKey": f"{color}-{size}",
                "variantNameEn": f"{color} {size}",
                "variantSellPrice": round(base_price + rng.uniform(0, 3), 2),
                "variantWeight": rng.randint(120, 900),
                "variantLength": 30,
                "variantWidth": 22,
                "variantHeight": rng.choice([2, 4, 8]),
                "inventoryNum": rng.randint(0, 500),
            })

    return {
        "pid": pid,
        "productNameEn": f"Mock product {pid}",
        "categoryName": category,
        "sellPrice": f"{base_price:.2f}",
        "variants": variants,
    }
