"""
Fixed-point monetary amounts.

A `Money` is an integer count of minor units (cents) plus an ISO currency
code. Every operation returns a new value; nothing here touches floats.
Rounding happens only in `multiply_by_percentage`, once per call.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import total_ordering
from typing import Union

from abac_pricing.core.errors import InvalidAmount

# currencies whose minor unit is not 1/100
_MINOR_UNIT_EXPONENTS = {
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
}

DecimalSource = Union[str, int, Decimal]


def minor_unit_exponent(currency: str) -> int:
    return _MINOR_UNIT_EXPONENTS.get(currency, 2)


def to_decimal(value: DecimalSource, field: str = "amount") -> Decimal:
    """Parse a decimal string / int / Decimal, refusing floats and non-finite values."""
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(
            f"{field} must be a decimal string or integer, not {type(value).__name__}",
            {"field": field},
        )
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, str)):
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount(f"{field} is not a valid decimal: {value!r}", {"field": field})
    else:
        raise InvalidAmount(
            f"{field} must be a decimal string or integer, not {type(value).__name__}",
            {"field": field},
        )

    if not parsed.is_finite():
        raise InvalidAmount(f"{field} must be finite", {"field": field})
    return parsed


@total_ordering
@dataclass(frozen=True)
class Money:
    minor_units: int
    currency: str

    def __post_init__(self):
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise InvalidAmount("minor_units must be an integer")
        if not isinstance(self.currency, str) or len(self.currency) != 3 or not self.currency.isalpha():
            raise InvalidAmount(f"Invalid currency code: {self.currency!r}")
        if self.currency != self.currency.upper():
            object.__setattr__(self, "currency", self.currency.upper())

    # ---------- construction ----------

    @classmethod
    def from_decimal(
        cls,
        value: DecimalSource,
        currency: str,
        allow_negative: bool = False,
    ) -> "Money":
        amount = to_decimal(value)
        if amount < 0 and not allow_negative:
            raise InvalidAmount(f"Amount must not be negative: {value}")

        if isinstance(currency, str):
            currency = currency.upper()
        exponent = minor_unit_exponent(currency)
        scaled = amount.scaleb(exponent)
        if scaled != scaled.to_integral_value():
            raise InvalidAmount(
                f"Amount {value} has more than {exponent} decimal places for {currency}"
            )
        return cls(int(scaled), currency)

    @classmethod
    def from_minor_units(cls, units: int, currency: str, allow_negative: bool = False) -> "Money":
        if not allow_negative and isinstance(units, int) and units < 0:
            raise InvalidAmount(f"Amount must not be negative: {units} minor units")
        return cls(units, currency)

    # ---------- accessors ----------

    @property
    def amount(self) -> Decimal:
        return Decimal(self.minor_units).scaleb(-minor_unit_exponent(self.currency))

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    @property
    def is_negative(self) -> bool:
        return self.minor_units < 0

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

    # ---------- arithmetic ----------

    def _check_currency(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise InvalidAmount(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise InvalidAmount(
                f"Currency mismatch: {self.currency} vs {other.currency}"
            )

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.minor_units + other.minor_units, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.minor_units - other.minor_units, self.currency)

    def multiply(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidAmount("Quantity multiplier must be an integer")
        return Money(self.minor_units * quantity, self.currency)

    def multiply_by_percentage(self, percent: DecimalSource, rounding: str = ROUND_HALF_UP) -> "Money":
        """
        Return `percent`% of this amount, rounded to whole minor units
        (half-up unless `rounding` says otherwise).

        Money(10000, "USD").multiply_by_percentage("20") -> 20.00 USD
        """
        pct = to_decimal(percent, field="percent")
        raw = Decimal(self.minor_units) * pct / Decimal(100)
        return Money(int(raw.quantize(Decimal(1), rounding=rounding)), self.currency)

    def clamp_nonnegative(self) -> "Money":
        if self.minor_units < 0:
            return Money(0, self.currency)
        return self

    def percentage_of(self, whole: "Money") -> Decimal:
        """Exact share of `whole` that this amount represents, in percent (0 when whole is 0)."""
        self._check_currency(whole)
        if whole.minor_units == 0:
            return Decimal(0)
        return Decimal(self.minor_units) * Decimal(100) / Decimal(whole.minor_units)

    # ---------- comparison ----------

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.minor_units < other.minor_units
