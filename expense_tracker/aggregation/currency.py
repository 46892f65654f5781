"""
Currency Normalization

Maps an amount in any currency to the reference currency using a static
rate table. The table is an approximation with no timestamp; unknown codes
normalize at rate 1 instead of failing.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional, Union

from expense_tracker.config import DEFAULT_CURRENCY_RATES, AppSettings, get_settings


Number = Union[Decimal, int, float, str]

FALLBACK_RATE = Decimal("1")


class CurrencyNormalizer:
    """
    Converts amounts into one reference currency.

    The rate table is injected at construction and kept read-only, so two
    normalizers with different tables can coexist (e.g. in tests).
    Rates are "reference units per one unit of the code".
    """

    def __init__(
        self,
        rates: Optional[Mapping[str, Decimal]] = None,
        reference: str = "USD",
    ):
        table = DEFAULT_CURRENCY_RATES if rates is None else rates
        self._rates = MappingProxyType(
            {code.strip().upper(): Decimal(str(rate)) for code, rate in table.items()}
        )
        self.reference = reference.strip().upper()

    @classmethod
    def from_settings(cls, settings: Optional[AppSettings] = None) -> "CurrencyNormalizer":
        app = settings or get_settings().app
        return cls(rates=app.currency_rates, reference=app.reference_currency)

    @property
    def rates(self) -> Mapping[str, Decimal]:
        return self._rates

    def knows(self, currency: str) -> bool:
        """Check whether a currency code has an explicit rate."""
        return (currency or "").strip().upper() in self._rates

    def rate_for(self, currency: str) -> Decimal:
        return self._rates.get((currency or "").strip().upper(), FALLBACK_RATE)

    def normalize(self, amount: Number, currency: str) -> Decimal:
        """
        Convert `amount` from `currency` into the reference currency.

        Pure and deterministic; unknown codes use rate 1.
        """
        return Decimal(str(amount)) * self.rate_for(currency)
