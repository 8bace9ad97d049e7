# utils/currency.py
from typing import Union

from retiresim.errors import ScenarioError

Number = Union[int, float, str, None]


def clean_currency(val: Number) -> float:
    """
    Cleans a currency value (e.g., "$140,000.00" or 140000) into a float (140000.0).
    Empty values are 0.0; anything else unparseable raises ScenarioError.
    """
    if val is None or val == "":
        return 0.0
    if isinstance(val, (int, float)):
        return float(val)
    cleaned_val = str(val).replace('$', '').replace(',', '').strip()
    if not cleaned_val:
        return 0.0
    try:
        return float(cleaned_val)
    except ValueError:
        raise ScenarioError(f"Not a currency amount: {val!r}") from None


def clean_percent(val: Number) -> float:
    """
    Cleans a percent value into percent units: "5%" -> 5.0, "5" -> 5.0, 5 -> 5.0.
    """
    if val is None or val == "":
        return 0.0
    if isinstance(val, (int, float)):
        return float(val)
    cleaned_val = str(val).replace('%', '').replace(',', '').strip()
    try:
        return float(cleaned_val)
    except ValueError:
        raise ScenarioError(f"Not a percentage: {val!r}") from None


def format_currency(val: float) -> str:
    return f"${val:,.0f}" if val >= 0 else f"-${-val:,.0f}"
