from __future__ import annotations

from typing import List, Tuple


# WMO weather interpretation codes -> condition category.
# Ranges are inclusive; anything unmatched is treated as Clear.
CODE_RANGES: List[Tuple[int, int, str]] = [
    (0, 0, "Clear"),
    (1, 3, "Cloudy"),
    (51, 57, "Drizzle"),
    (61, 67, "Rainy"),
    (80, 82, "Rainy"),
    (71, 77, "Snow"),
    (85, 86, "Snow"),
]

FALLBACK_CONDITION = "Clear"


def condition_for_code(code) -> str:
    try:
        n = int(code)
    except (TypeError, ValueError):
        return FALLBACK_CONDITION
    for lo, hi, condition in CODE_RANGES:
        if lo <= n <= hi:
            return condition
    return FALLBACK_CONDITION
