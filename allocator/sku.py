from __future__ import annotations

import re
from typing import Dict, Optional


def extract_sku_parts(sku: str) -> Dict[str, Optional[str]]:
    """Split a SKU like ``A25123XY...`` into year hint, block and style."""
    compact = re.sub(r"\s+", "", sku)
    match = re.match(r"^([A-Za-z]\d{2})(\d{3})([A-Za-z0-9]{2})", compact)
    if match:
        return {"year_hint": match.group(1), "block": match.group(2), "style": match.group(3)}
    year_match = re.match(r"^([A-Za-z]\d{2})", compact)
    style_match = re.match(r"^[A-Za-z0-9]{2}", compact)
    return {
        "year_hint": year_match.group(1) if year_match else None,
        "block": None,
        "style": style_match.group(0) if style_match else compact,
    }


def build_style_group_key(sku: str, year: Optional[int] = None) -> str:
    parts = extract_sku_parts(sku)
    year_key = str(year) if year is not None else (parts["year_hint"] or "unknown")
    block_key = parts["block"] or "unknown"
    return f"{year_key}-{block_key}-{parts['style']}"
