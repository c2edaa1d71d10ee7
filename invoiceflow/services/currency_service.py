"""
InvoiceFlow - Currency Conversion

Fixed exchange rates used to express report totals in QAR.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from invoiceflow.models.invoice import CurrencyType

logger = logging.getLogger(__name__)

BASE_CURRENCY = CurrencyType.QAR

# 1 unit of currency = N QAR
DEFAULT_RATES_TO_QAR: Dict[CurrencyType, Decimal] = {
    CurrencyType.QAR: Decimal("1.00"),
    CurrencyType.USD: Decimal("3.65"),
    CurrencyType.EUR: Decimal("4.00"),
    CurrencyType.GBP: Decimal("4.60"),
    CurrencyType.AED: Decimal("0.99"),
    CurrencyType.SAR: Decimal("0.97"),
    CurrencyType.KWD: Decimal("11.85"),
    CurrencyType.BHD: Decimal("9.66"),
    CurrencyType.OMR: Decimal("9.46"),
    CurrencyType.JPY: Decimal("0.024"),
}


class CurrencyService:
    """Converts amounts between supported currencies through QAR."""

    def __init__(self, rates_to_qar: Optional[Dict[CurrencyType, Decimal]] = None):
        self.rates_to_qar = dict(rates_to_qar or DEFAULT_RATES_TO_QAR)

    def get_exchange_rate(self, from_currency: CurrencyType, to_currency: CurrencyType) -> Decimal:
        if from_currency == to_currency:
            return Decimal("1")
        from_rate = self.rates_to_qar.get(from_currency)
        to_rate = self.rates_to_qar.get(to_currency)
        if from_rate is None or to_rate is None:
            logger.warning(f"Exchange rate not found for {from_currency} to {to_currency}, using 1.0")
            return Decimal("1")
        return from_rate / to_rate

    def convert_to_qar(self, amount: Decimal, from_currency: Optional[CurrencyType]) -> Decimal:
        """Convert to QAR. Amounts with no currency are taken as QAR."""
        if from_currency is None or from_currency == BASE_CURRENCY:
            return amount
        return (amount * self.get_exchange_rate(from_currency, BASE_CURRENCY)).quantize(Decimal("0.01"))

    def convert_from_qar(self, amount: Decimal, to_currency: CurrencyType) -> Decimal:
        if to_currency == BASE_CURRENCY:
            return amount
        rate = self.get_exchange_rate(BASE_CURRENCY, to_currency)
        return (amount * rate).quantize(Decimal(1).scaleb(-to_currency.decimals))
