# config/tax_tables.py
import numpy as np
from typing import Dict, List

from retiresim.models import Bracket, TaxTables

# =============================================================================
# 1. Federal Ordinary Income Tax Brackets (2026 Estimated)
# =============================================================================
FEDERAL_BRACKETS_2026: Dict[str, List[Bracket]] = {
    "single": [
        Bracket(0, 12_400, 0.10), Bracket(12_400, 50_400, 0.12), Bracket(50_400, 110_650, 0.22),
        Bracket(110_650, 196_150, 0.24), Bracket(196_150, 250_000, 0.32), Bracket(250_000, 622_050, 0.35),
        Bracket(622_050, np.inf, 0.37),
    ],
    "married": [
        Bracket(0, 24_800, 0.10), Bracket(24_800, 100_800, 0.12), Bracket(100_800, 211_400, 0.22),
        Bracket(211_400, 403_550, 0.24), Bracket(403_550, 512_450, 0.32), Bracket(512_450, 768_700, 0.35),
        Bracket(768_700, np.inf, 0.37),
    ],
}

# =============================================================================
# 2. Federal Capital Gains Brackets
# =============================================================================
CAPITAL_GAINS_BRACKETS_2026: Dict[str, List[Bracket]] = {
    "single": [Bracket(0, 48_400, 0.0), Bracket(48_400, 535_000, 0.15), Bracket(535_000, np.inf, 0.20)],
    "married": [Bracket(0, 96_900, 0.0), Bracket(96_900, 601_300, 0.15), Bracket(601_300, np.inf, 0.20)],
}

# =============================================================================
# 3. Standard Deduction
# =============================================================================
STANDARD_DEDUCTION_2026: Dict[str, float] = {
    "single": 15_050,
    "married": 30_100,
}

# =============================================================================
# 4. State Income Tax (Virginia, not status dependent)
# =============================================================================
VA_TAX_BRACKETS: List[Bracket] = [
    Bracket(0, 3_000, 0.02), Bracket(3_000, 5_000, 0.03), Bracket(5_000, 17_000, 0.05),
    Bracket(17_000, np.inf, 0.0575),
]

# =============================================================================
# 5. IRS Uniform Lifetime Table (2022+, ages 72-120)
# =============================================================================
UNIFORM_LIFETIME_TABLE_2022: Dict[int, float] = {
    72: 27.4, 73: 26.5, 74: 25.5, 75: 24.6, 76: 23.7, 77: 22.9,
    78: 22.0, 79: 21.1, 80: 20.2, 81: 19.4, 82: 18.5, 83: 17.7,
    84: 16.9, 85: 16.0, 86: 15.2, 87: 14.4, 88: 13.7, 89: 12.9,
    90: 12.2, 91: 11.5, 92: 10.8, 93: 10.1, 94: 9.5, 95: 8.9,
    96: 8.4, 97: 7.8, 98: 7.3, 99: 6.8, 100: 6.4, 101: 6.0,
    102: 5.6, 103: 5.2, 104: 4.9, 105: 4.6, 106: 4.3, 107: 4.1,
    108: 3.9, 109: 3.7, 110: 3.5, 111: 3.4, 112: 3.3, 113: 3.1,
    114: 3.0, 115: 2.9, 116: 2.8, 117: 2.7, 118: 2.5, 119: 2.3,
    120: 2.0,
}


def default_tax_tables() -> TaxTables:
    """Baseline tables; callers that know the household's state pass their own."""
    return TaxTables(
        federal={k: list(v) for k, v in FEDERAL_BRACKETS_2026.items()},
        state={"single": list(VA_TAX_BRACKETS), "married": list(VA_TAX_BRACKETS)},
        capital_gains={k: list(v) for k, v in CAPITAL_GAINS_BRACKETS_2026.items()},
        standard_deduction=dict(STANDARD_DEDUCTION_2026),
        rmd_tables={"Uniform Lifetime": dict(UNIFORM_LIFETIME_TABLE_2022)},
    )
