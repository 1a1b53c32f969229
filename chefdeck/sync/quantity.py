import re
from typing import Optional, Union

QUANTITY_PATTERN = re.compile(r"^\d*\.?\d*$")


def normalize_quantity_text(raw: Optional[str]) -> str:
    """Trimmed input with comma decimal separators turned into dots"""
    return (raw or "").strip().replace(",", ".")


def parse_quantity(raw: Union[str, int, float, None]) -> Optional[float]:
    """
    Parse a counted quantity.

    Returns None ("not counted") for empty, negative or non-numeric input;
    "0" is a real count and parses to 0.0.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if raw >= 0 else None

    text = normalize_quantity_text(raw)
    if not text or not QUANTITY_PATTERN.match(text) or not any(ch.isdigit() for ch in text):
        return None
    return float(text)
