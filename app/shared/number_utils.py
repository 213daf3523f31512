from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]


def round_half_away(value: Number, decimals: int = 2) -> float:
    """
    Round half away from zero (2.345 -> 2.35, -2.345 -> -2.35).

    Goes through the shortest repr of the float so that values such as 1.005
    round the way they read, not the way they are stored in binary.
    """
    quantum = Decimal(1).scaleb(-decimals)
    rounded = Decimal(repr(value) if isinstance(value, float) else value).quantize(
        quantum, rounding=ROUND_HALF_UP
    )
    return float(rounded)
