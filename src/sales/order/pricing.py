"""Pricing snapshot: tax, platform fee and balance computed once at order creation.

Rates are configuration, not literals: they come from the environment
(SALES_TAX_RATE, SALES_PLATFORM_FEE_RATE, SALES_DEPOSIT_DUE_DAYS,
SALES_CURRENCY) and can be replaced wholesale with set_pricing_rates().
"""

import os
from dataclasses import dataclass

from protean.exceptions import ValidationError

DEFAULT_TAX_RATE = 0.08
DEFAULT_PLATFORM_FEE_RATE = 0.025
DEFAULT_DEPOSIT_DUE_DAYS = 7
DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class PricingRates:
    tax_rate: float = DEFAULT_TAX_RATE
    platform_fee_rate: float = DEFAULT_PLATFORM_FEE_RATE
    deposit_due_days: int = DEFAULT_DEPOSIT_DUE_DAYS
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        for name in ("tax_rate", "platform_fee_rate"):
            rate = getattr(self, name)
            if rate < 0 or rate >= 1:
                raise ValueError(f"{name} must be in [0, 1), got {rate}")
        if self.deposit_due_days < 1:
            raise ValueError(f"deposit_due_days must be positive, got {self.deposit_due_days}")

    @classmethod
    def from_env(cls) -> "PricingRates":
        return cls(
            tax_rate=float(os.environ.get("SALES_TAX_RATE", DEFAULT_TAX_RATE)),
            platform_fee_rate=float(os.environ.get("SALES_PLATFORM_FEE_RATE", DEFAULT_PLATFORM_FEE_RATE)),
            deposit_due_days=int(os.environ.get("SALES_DEPOSIT_DUE_DAYS", DEFAULT_DEPOSIT_DUE_DAYS)),
            currency=os.environ.get("SALES_CURRENCY", DEFAULT_CURRENCY),
        )


@dataclass(frozen=True)
class PriceBreakdown:
    list_price: float
    agreed_price: float
    deposit_amount: float
    tax_amount: float
    fee_amount: float
    total_amount: float
    balance_amount: float
    currency: str


_current_rates: PricingRates | None = None


def get_pricing_rates() -> PricingRates:
    global _current_rates
    if _current_rates is None:
        _current_rates = PricingRates.from_env()
    return _current_rates


def set_pricing_rates(rates: PricingRates) -> None:
    global _current_rates
    _current_rates = rates


def reset_pricing_rates() -> None:
    global _current_rates
    _current_rates = None


def _money(value: float) -> float:
    return round(value, 2)


def compute_price_breakdown(
    agreed_price: float,
    deposit_amount: float,
    list_price: float,
    rates: PricingRates | None = None,
) -> PriceBreakdown:
    """Derive tax, fee, total and balance from the agreed price.

    Amounts are rounded to cents individually and the total is the sum of
    the rounded parts, so ``total == agreed + tax + fee`` holds exactly.
    """
    rates = rates or get_pricing_rates()

    if agreed_price <= 0:
        raise ValidationError({"agreed_price": ["Agreed price must be positive"]})
    if deposit_amount < 0:
        raise ValidationError({"deposit_amount": ["Deposit cannot be negative"]})

    agreed = _money(agreed_price)
    tax_amount = _money(agreed * rates.tax_rate)
    fee_amount = _money(agreed * rates.platform_fee_rate)
    total_amount = _money(agreed + tax_amount + fee_amount)
    deposit = _money(deposit_amount)

    if deposit > total_amount:
        raise ValidationError({"deposit_amount": ["Deposit cannot exceed the order total"]})

    return PriceBreakdown(
        list_price=_money(list_price),
        agreed_price=agreed,
        deposit_amount=deposit,
        tax_amount=tax_amount,
        fee_amount=fee_amount,
        total_amount=total_amount,
        balance_amount=_money(total_amount - deposit),
        currency=rates.currency,
    )
