from datetime import date, datetime, UTC
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Currency(str, Enum):
    """Currencies recognized by amount extraction"""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CHF = "CHF"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"
    SEK = "SEK"
    NOK = "NOK"
    DKK = "DKK"
    PLN = "PLN"
    INR = "INR"
    CNY = "CNY"
    NZD = "NZD"
    HKD = "HKD"
    SGD = "SGD"
    CZK = "CZK"
    HUF = "HUF"
    KRW = "KRW"
    MXN = "MXN"
    BRL = "BRL"
    ZAR = "ZAR"
    RUB = "RUB"
    ILS = "ILS"
    TRY = "TRY"
    THB = "THB"
    RON = "RON"

    @property
    def symbol(self) -> str:
        return CURRENCY_INFO[self][0]

    @property
    def display_name(self) -> str:
        return CURRENCY_INFO[self][1]

    @property
    def currency_code(self) -> str:
        return self.value


CURRENCY_INFO: dict[Currency, tuple[str, str]] = {
    Currency.USD: ("$", "US Dollar"),
    Currency.EUR: ("€", "Euro"),
    Currency.GBP: ("£", "British Pound"),
    Currency.CHF: ("CHF", "Swiss Franc"),
    Currency.JPY: ("¥", "Japanese Yen"),
    Currency.CAD: ("C$", "Canadian Dollar"),
    Currency.AUD: ("A$", "Australian Dollar"),
    Currency.SEK: ("kr", "Swedish Krona"),
    Currency.NOK: ("kr", "Norwegian Krone"),
    Currency.DKK: ("kr", "Danish Krone"),
    Currency.PLN: ("zł", "Polish Złoty"),
    Currency.INR: ("₹", "Indian Rupee"),
    Currency.CNY: ("CN¥", "Chinese Yuan"),
    Currency.NZD: ("NZ$", "New Zealand Dollar"),
    Currency.HKD: ("HK$", "Hong Kong Dollar"),
    Currency.SGD: ("S$", "Singapore Dollar"),
    Currency.CZK: ("Kč", "Czech Koruna"),
    Currency.HUF: ("Ft", "Hungarian Forint"),
    Currency.KRW: ("₩", "South Korean Won"),
    Currency.MXN: ("MX$", "Mexican Peso"),
    Currency.BRL: ("R$", "Brazilian Real"),
    Currency.ZAR: ("R", "South African Rand"),
    Currency.RUB: ("₽", "Russian Ruble"),
    Currency.ILS: ("₪", "Israeli Shekel"),
    Currency.TRY: ("₺", "Turkish Lira"),
    Currency.THB: ("฿", "Thai Baht"),
    Currency.RON: ("lei", "Romanian Leu"),
}


class InvoiceDocument(BaseModel):
    """
    The host application's document record that extraction results are applied to.

    Only the fields written by apply_to_document are modelled here.
    """
    id: UUID = Field(default_factory=uuid4)
    title: str = ""
    requesting_organization: str = ""
    amount: Decimal = Decimal("0")
    currency: Currency = Currency.USD
    due_date: date | None = None
    document_path: str | None = None
    schema_id: UUID | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
