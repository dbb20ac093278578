"""
Fixed-point token amounts.

An Amount is an integer count of base units (wei for 18-decimal tokens) tagged
with its decimal scale. Arithmetic between two Amounts requires equal scales;
use ``rescale`` to convert explicitly.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from functools import total_ordering

from .errors import InvalidAmountError

DEFAULT_DECIMALS: int = 18

# Absolute margin accepted between expected and observed balance changes.
DEFAULT_TOLERANCE_WEI: int = 10_000_000_000_000

_DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")


@total_ordering
@dataclass(frozen=True, slots=True)
class Amount:
    """Immutable token quantity in base units.

    Attributes:
        wei: Signed integer number of base units
        decimals: Number of decimal places the base unit is scaled by
    """

    wei: int
    decimals: int = DEFAULT_DECIMALS

    def __post_init__(self) -> None:
        if isinstance(self.wei, bool) or not isinstance(self.wei, int):
            raise InvalidAmountError(f"Amount must wrap an int, got {type(self.wei).__name__}")
        if self.decimals < 0:
            raise InvalidAmountError(f"Decimals must be non-negative, got {self.decimals}")

    @classmethod
    def zero(cls, decimals: int = DEFAULT_DECIMALS) -> "Amount":
        return cls(0, decimals)

    def _check_scale(self, other: "Amount") -> None:
        if not isinstance(other, Amount):
            raise InvalidAmountError(f"Cannot combine Amount with {type(other).__name__}")
        if other.decimals != self.decimals:
            raise InvalidAmountError(
                f"Scale mismatch: {self.decimals} vs {other.decimals} decimals; rescale explicitly"
            )

    def __add__(self, other: "Amount") -> "Amount":
        self._check_scale(other)
        return Amount(self.wei + other.wei, self.decimals)

    def __sub__(self, other: "Amount") -> "Amount":
        self._check_scale(other)
        return Amount(self.wei - other.wei, self.decimals)

    def __neg__(self) -> "Amount":
        return Amount(-self.wei, self.decimals)

    def __abs__(self) -> "Amount":
        return Amount(abs(self.wei), self.decimals)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Amount):
            return NotImplemented
        return self.wei == other.wei and self.decimals == other.decimals

    def __hash__(self) -> int:
        return hash((self.wei, self.decimals))

    def __lt__(self, other: "Amount") -> bool:
        self._check_scale(other)
        return self.wei < other.wei

    @property
    def is_negative(self) -> bool:
        return self.wei < 0

    @property
    def is_zero(self) -> bool:
        return self.wei == 0

    def rescale(self, decimals: int) -> "Amount":
        """Convert to another scale, truncating toward zero when reducing precision."""
        if decimals == self.decimals:
            return self
        if decimals > self.decimals:
            return Amount(self.wei * 10 ** (decimals - self.decimals), decimals)
        factor = 10 ** (self.decimals - decimals)
        sign = -1 if self.wei < 0 else 1
        return Amount(sign * (abs(self.wei) // factor), decimals)

    def __str__(self) -> str:
        return format_amount(self)


def parse(value: str | int | Decimal, decimals: int = DEFAULT_DECIMALS) -> Amount:
    """
    Parse a human-readable decimal quantity into an Amount.

    Args:
        value: Decimal string such as ``"0.25"``; ints and Decimals are accepted too
        decimals: Scale of the base unit

    Returns:
        Amount holding ``value * 10**decimals`` base units

    Raises:
        InvalidAmountError: If the input is not a plain decimal number or carries
            more fractional digits than the scale allows
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    text = str(value).strip() if isinstance(value, (int, Decimal)) else value
    if not isinstance(text, str) or not _DECIMAL_PATTERN.match(text.strip()):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    text = text.strip()

    sign = -1 if text.startswith("-") else 1
    text = text.lstrip("+-")
    whole, _, fraction = text.partition(".")
    fraction = fraction.rstrip("0")
    if len(fraction) > decimals:
        raise InvalidAmountError(
            f"Invalid amount {value!r}: more than {decimals} fractional digits"
        )
    units = int(whole or "0") * 10**decimals + int(fraction.ljust(decimals, "0") or "0")
    return Amount(sign * units, decimals)


def format_amount(amount: Amount, precision: int | None = None) -> str:
    """
    Render an Amount for humans. The result is lossy when ``precision`` is set
    and must not be parsed back for further arithmetic.

    Without ``precision`` the exact value is printed with at least one fractional
    digit (``"100.0"``). With ``precision`` the value is rounded half-up to that
    many places and trailing zeros are stripped (``"0.25"``, ``"3"``).
    """
    with localcontext() as ctx:
        ctx.prec = max(len(str(abs(amount.wei))) + amount.decimals + 2, 28)
        value = Decimal(amount.wei).scaleb(-amount.decimals)

        if precision is None:
            text = format(value, "f")
            if "." not in text:
                return f"{text}.0"
            whole, fraction = text.split(".")
            return f"{whole}.{fraction.rstrip('0') or '0'}"

        rounded = value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)
        text = format(rounded, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return "0" if text in ("-0", "") else text


def within_tolerance(a: Amount, b: Amount, tolerance: Amount) -> bool:
    """Return True when ``|a - b| <= tolerance``."""
    return abs(a - b) <= tolerance


def default_tolerance(decimals: int = DEFAULT_DECIMALS) -> Amount:
    return Amount(DEFAULT_TOLERANCE_WEI, decimals)
