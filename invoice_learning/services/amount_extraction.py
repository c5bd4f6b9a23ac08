"""
Currency-aware amount extraction from OCR text.

Each currency has a family of patterns (symbol/code prefixed, symbol/code/word
suffixed). Every match goes through the same cleaning pipeline: currency tokens
and whitespace are stripped, separators are normalized with the currency's
locale rule, common OCR confusions are fixed, and values outside (0, 1e12) are
rejected.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable

from loguru import logger

from ..core.config import settings
from ..models.invoice import Currency
from ..models.observation import OCRDocumentResult, TextObservation
from .date_parsing import find_dates, within_date_window
from .invoice_types import ExtractedAmount, ExtractedData, ExtractedDate

MAX_AMOUNT = Decimal("1000000000000")

# Currencies that write 1.234,56
COMMA_DECIMAL_CURRENCIES = {
    Currency.EUR, Currency.SEK, Currency.NOK, Currency.DKK, Currency.PLN,
    Currency.CZK, Currency.HUF, Currency.RON, Currency.RUB, Currency.BRL,
}
# Currencies whose documents group thousands with spaces (2 605.25, 1 234,56)
SPACE_GROUPING_CURRENCIES = COMMA_DECIMAL_CURRENCIES | {Currency.CHF}

# (prefix tokens, suffix tokens) per currency, as regex fragments
CURRENCY_TOKENS: dict[Currency, tuple[list[str], list[str]]] = {
    Currency.USD: ([r"(?<![A-Za-z])\$", r"\bUSD"], [r"USD\b", r"dollars?\b"]),
    Currency.EUR: ([r"€", r"\bEUR"], [r"€", r"EUR\b", r"euros?\b"]),
    Currency.GBP: ([r"£", r"\bGBP"], [r"£", r"GBP\b", r"pounds?\b"]),
    Currency.CHF: ([r"\bCHF", r"\bSFr\.", r"(?<![A-Za-z])Fr\."], [r"CHF\b", r"(?:francs?|Franken)\b"]),
    Currency.JPY: ([r"(?<!CN)¥", r"\bJPY"], [r"JPY\b", r"yen\b"]),
    Currency.CAD: ([r"\bC\$", r"\bCAD"], [r"CAD\b"]),
    Currency.AUD: ([r"\bA\$", r"\bAUD"], [r"AUD\b"]),
    Currency.SEK: ([r"\bSEK"], [r"SEK\b", r"kronor\b"]),
    Currency.NOK: ([r"\bNOK"], [r"NOK\b", r"kroner\b"]),
    Currency.DKK: ([r"\bDKK"], [r"DKK\b"]),
    Currency.PLN: ([r"\bPLN"], [r"PLN\b", r"zł"]),
    Currency.INR: ([r"₹", r"\bINR", r"\bRs\.?"], [r"INR\b"]),
    Currency.CNY: ([r"CN¥", r"\bCNY", r"\bRMB"], [r"CNY\b", r"RMB\b", r"元"]),
    Currency.NZD: ([r"\bNZ\$", r"\bNZD"], [r"NZD\b"]),
    Currency.HKD: ([r"\bHK\$", r"\bHKD"], [r"HKD\b"]),
    Currency.SGD: ([r"\bS\$", r"\bSGD"], [r"SGD\b"]),
    Currency.CZK: ([r"\bCZK"], [r"CZK\b", r"Kč"]),
    Currency.HUF: ([r"\bHUF"], [r"HUF\b", r"(?-i:Ft)\b"]),
    Currency.KRW: ([r"₩", r"\bKRW"], [r"KRW\b"]),
    Currency.MXN: ([r"\bMX\$", r"\bMXN"], [r"MXN\b"]),
    Currency.BRL: ([r"\bR\$", r"\bBRL"], [r"BRL\b"]),
    Currency.ZAR: ([r"\bZAR"], [r"ZAR\b"]),
    Currency.RUB: ([r"₽", r"\bRUB"], [r"₽", r"RUB\b", r"руб"]),
    Currency.ILS: ([r"₪", r"\bILS"], [r"ILS\b", r"NIS\b"]),
    Currency.TRY: ([r"₺", r"\b(?-i:TRY)"], [r"(?-i:TRY)\b", r"(?-i:TL)\b"]),
    Currency.THB: ([r"฿", r"\bTHB"], [r"THB\b"]),
    Currency.RON: ([r"\bRON"], [r"RON\b", r"lei\b"]),
}

# Literal tokens removed by the cleaning pipeline, longest first so "C$" goes before "$"
_STRIP_TOKENS = sorted(
    [
        "$", "€", "£", "¥", "₹", "C$", "A$", "SFr.", "Fr.", "Rs.", "Rs", "zł",
        "USD", "EUR", "GBP", "CHF", "JPY", "CAD", "AUD", "SEK", "NOK", "DKK", "PLN", "INR",
        "dollars", "dollar", "euros", "euro", "pounds", "pound", "francs", "franc",
        "Franken", "kronor", "kroner", "yen",
        "CN¥", "NZ$", "HK$", "S$", "MX$", "R$", "₩", "₽", "₪", "₺", "฿", "元", "Kč", "Ft", "TL", "lei", "руб", "NIS", "RMB",
        "CNY", "NZD", "HKD", "SGD", "CZK", "HUF", "KRW", "MXN", "BRL", "ZAR", "RUB", "ILS", "TRY", "THB", "RON",
    ],
    key=len,
    reverse=True,
)
_STRIP_RE = re.compile("|".join(re.escape(token) for token in _STRIP_TOKENS), re.IGNORECASE)
_CLEAN_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

# Digits as OCR sees them: O and l are common misreads of 0 and 1
_D = r"[\dOl]"


def _number_pattern(space_grouping: bool) -> str:
    group = r"[.,'’ ]" if space_grouping else r"[.,'’]"
    grouped = rf"\d{_D}{{0,2}}(?:{group}{_D}{{3}})+(?:[.,]{_D}{{1,2}})?"
    plain = rf"\d{_D}*(?:[.,]{_D}{{1,2}})?"
    return rf"(?P<amount>{grouped}|{plain})(?!\d)"


def _compile_currency_patterns() -> list[tuple[re.Pattern, Currency]]:
    patterns = []
    for currency, (prefixes, suffixes) in CURRENCY_TOKENS.items():
        number = _number_pattern(currency in SPACE_GROUPING_CURRENCIES)
        for prefix in prefixes:
            patterns.append((re.compile(rf"(?:{prefix})\s*{number}", re.IGNORECASE), currency))
        for suffix in suffixes:
            patterns.append((re.compile(rf"(?<![\d.,'’]){number}\s*(?:{suffix})", re.IGNORECASE), currency))
    return patterns


CURRENCY_PATTERNS = _compile_currency_patterns()

# Currency detection for free-standing values ("EUR", "€", "dollars"); specific tokens first
_CURRENCY_DETECTORS: list[tuple[re.Pattern, Currency]] = [
    (re.compile(r"\bC\$|\bCAD\b", re.IGNORECASE), Currency.CAD),
    (re.compile(r"\bA\$|\bAUD\b", re.IGNORECASE), Currency.AUD),
    (re.compile(r"\bNZ\$|\bNZD\b", re.IGNORECASE), Currency.NZD),
    (re.compile(r"\bHK\$|\bHKD\b", re.IGNORECASE), Currency.HKD),
    (re.compile(r"\bS\$|\bSGD\b", re.IGNORECASE), Currency.SGD),
    (re.compile(r"\bMX\$|\bMXN\b", re.IGNORECASE), Currency.MXN),
    (re.compile(r"\bR\$|\bBRL\b", re.IGNORECASE), Currency.BRL),
    (re.compile(r"\$|\bUSD\b|\bdollars?\b", re.IGNORECASE), Currency.USD),
    (re.compile(r"€|\bEUR\b|\beuros?\b", re.IGNORECASE), Currency.EUR),
    (re.compile(r"£|\bGBP\b|\bpounds?\b", re.IGNORECASE), Currency.GBP),
    (re.compile(r"\bCHF\b|\bS?Fr\.|\bfrancs?\b|\bFranken\b", re.IGNORECASE), Currency.CHF),
    (re.compile(r"CN¥|\bCNY\b|\bRMB\b|元", re.IGNORECASE), Currency.CNY),
    (re.compile(r"¥|\bJPY\b|\byen\b", re.IGNORECASE), Currency.JPY),
    (re.compile(r"\bSEK\b|\bkronor\b", re.IGNORECASE), Currency.SEK),
    (re.compile(r"\bNOK\b|\bkroner\b", re.IGNORECASE), Currency.NOK),
    (re.compile(r"\bDKK\b", re.IGNORECASE), Currency.DKK),
    (re.compile(r"\bPLN\b|zł", re.IGNORECASE), Currency.PLN),
    (re.compile(r"₹|\bINR\b|\bRs\b", re.IGNORECASE), Currency.INR),
    (re.compile(r"\bCZK\b|Kč", re.IGNORECASE), Currency.CZK),
    (re.compile(r"\bHUF\b|(?-i:\bFt\b)", re.IGNORECASE), Currency.HUF),
    (re.compile(r"₩|\bKRW\b", re.IGNORECASE), Currency.KRW),
    (re.compile(r"\bZAR\b", re.IGNORECASE), Currency.ZAR),
    (re.compile(r"₽|\bRUB\b|руб", re.IGNORECASE), Currency.RUB),
    (re.compile(r"₪|\bILS\b|\bNIS\b", re.IGNORECASE), Currency.ILS),
    (re.compile(r"₺|(?-i:\bTRY\b|\bTL\b)", re.IGNORECASE), Currency.TRY),
    (re.compile(r"฿|\bTHB\b", re.IGNORECASE), Currency.THB),
    (re.compile(r"\bRON\b|\blei\b", re.IGNORECASE), Currency.RON),
]


def detect_currency(text: str) -> Currency | None:
    """Currency named by a symbol, ISO code or word in text, if any"""
    if not text:
        return None
    for detector, currency in _CURRENCY_DETECTORS:
        if detector.search(text):
            return currency
    return None


def _normalize_separators(cleaned: str, currency: Currency) -> str:
    if currency == Currency.CHF:
        # Swiss 1'234.56
        return cleaned.replace("'", "").replace("’", "").replace(",", "")

    if currency in COMMA_DECIMAL_CURRENCIES:
        last_comma = cleaned.rfind(",")
        last_dot = cleaned.rfind(".")
        if last_comma >= 0 and last_dot >= 0:
            if last_comma > last_dot:
                # European 1.234,56
                return cleaned.replace(".", "").replace(",", ".")
            # American 1,234.56
            return cleaned.replace(",", "")
        if last_comma >= 0:
            # Only a comma: decimal separator
            return cleaned.replace(",", ".")
        if cleaned.count(".") > 1:
            # 1.234.567 has dots as thousands separators only
            return cleaned.replace(".", "")
        return cleaned

    return cleaned.replace(",", "").replace("'", "").replace("’", "")


def parse_amount(text: str, currency: Currency = Currency.USD) -> Decimal | None:
    """
    Clean a matched amount string into a Decimal.

    Returns None for unparseable values and for values outside (0, 1e12).
    """
    if not text:
        return None

    cleaned = _STRIP_RE.sub("", text)
    cleaned = "".join(cleaned.split())
    cleaned = _normalize_separators(cleaned, currency)

    # Common OCR errors
    cleaned = cleaned.replace("O", "0").replace("l", "1")

    if not _CLEAN_NUMBER_RE.fullmatch(cleaned):
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None

    if value <= 0 or value >= MAX_AMOUNT:
        return None
    return value


def deduplicate_amounts(amounts: Iterable[ExtractedAmount]) -> list[ExtractedAmount]:
    """Keep the highest-confidence entry for each (value, currency) pair"""
    best: dict[tuple[Decimal, Currency], ExtractedAmount] = {}
    for amount in amounts:
        key = (amount.value, amount.currency)
        existing = best.get(key)
        if existing is None or amount.confidence > existing.confidence:
            best[key] = amount
    return list(best.values())


class AmountExtractor:
    """
    Extract monetary amounts (and, for OCR observations, dates) from text.

    Patterns are compiled once at import; an extractor only selects which
    currencies it looks for.
    """

    def __init__(
        self,
        currencies: Iterable[Currency] | None = None,
        date_window_past_years: int | None = None,
        date_window_future_years: int | None = None,
    ):
        allowed = set(currencies) if currencies is not None else set(Currency)
        self.patterns = [(regex, currency) for regex, currency in CURRENCY_PATTERNS if currency in allowed]
        self.date_window_past_years = (
            date_window_past_years if date_window_past_years is not None else settings.date_window_past_years
        )
        self.date_window_future_years = (
            date_window_future_years if date_window_future_years is not None else settings.date_window_future_years
        )

    def find_amounts(self, text: str, confidence: float = 1.0, bounding_box=None) -> list[ExtractedAmount]:
        """All valid pattern matches in text, in pattern order, without deduplication"""
        found = []
        for regex, currency in self.patterns:
            for match in regex.finditer(text):
                value = parse_amount(match.group("amount"), currency)
                if value is None:
                    continue
                found.append(ExtractedAmount(
                    value=value,
                    currency=currency,
                    raw_text=match.group(0),
                    confidence=confidence,
                    bounding_box=bounding_box,
                ))
        return found

    def extract_amounts(self, text: str, confidence: float = 1.0) -> list[ExtractedAmount]:
        """Deduplicated amounts found in text, largest first"""
        amounts = deduplicate_amounts(self.find_amounts(text, confidence))
        amounts.sort(key=lambda a: a.value, reverse=True)
        return amounts

    def extract_from_observations(
        self,
        observations: Iterable[TextObservation],
        today: date | None = None,
    ) -> ExtractedData:
        """
        Extract amounts and dates from OCR observations, keeping their bounding boxes.

        Amounts take the observation's confidence and are deduplicated by
        (value, currency); dates outside the configured window around today are dropped.
        """
        today = today or date.today()
        amounts: list[ExtractedAmount] = []
        dates: list[ExtractedDate] = []

        for observation in observations:
            amounts.extend(self.find_amounts(observation.text, observation.confidence, observation.bounding_box))
            for match in find_dates(observation.text):
                if not within_date_window(
                    match.value, today, self.date_window_past_years, self.date_window_future_years
                ):
                    continue
                dates.append(ExtractedDate(
                    value=match.value,
                    raw_text=match.text,
                    confidence=observation.confidence,
                    bounding_box=observation.bounding_box,
                ))

        amounts = deduplicate_amounts(amounts)
        amounts.sort(key=lambda a: a.value, reverse=True)
        dates.sort(key=lambda d: d.value)

        logger.debug("Extracted amounts and dates from observations", amounts=len(amounts), dates=len(dates))
        return ExtractedData(amounts=amounts, dates=dates)

    def extract_from_document(self, document: OCRDocumentResult, today: date | None = None) -> ExtractedData:
        """Same as extract_from_observations, across every page (deduplicated across pages)"""
        observations = [o for page in document.pages for o in page.observations]
        return self.extract_from_observations(observations, today=today)
