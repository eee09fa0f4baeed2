# yaqeenpay/core/money.py

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import CurrencyMismatchError, ValidationError

CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to a 2-place Decimal"""
    if value is None:
        raise ValidationError("Amount is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_currency(currency: Optional[str]) -> str:
    if not currency:
        return settings.DEFAULT_CURRENCY.upper()
    return currency.strip().upper()


def format_currency_amount(amount, currency: Optional[str] = None) -> str:
    """Format currency amount for display"""
    return f"{normalize_currency(currency)} {to_decimal(amount):,.2f}"


class Money:
    """Amount with currency; arithmetic refuses to mix currencies"""

    __slots__ = ("amount", "currency")

    def __init__(self, amount, currency: Optional[str] = None):
        self.amount = to_decimal(amount)
        self.currency = normalize_currency(currency)

    def _check(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency} with {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount == other.amount and self.currency == other.currency

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount <= other.amount

    def __hash__(self):
        return hash((self.amount, self.currency))

    def __repr__(self) -> str:
        return f"Money({self.amount}, {self.currency!r})"

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    def ensure_positive(self) -> "Money":
        if not self.is_positive:
            raise ValidationError("Amount must be greater than zero")
        return self
