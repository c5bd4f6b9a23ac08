"""
Free-text entity extraction: organization names, dates and amounts.

The three extractors run concurrently over one text blob. Organization names
come from an OrganizationRecognizer (a legal-form regex by default, spaCy NER
optionally), dates from a DateDetector, amounts from the AmountExtractor.
"""

import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable

from loguru import logger

from ..core.config import settings
from ..core.errors import EmptyTextError, NoEntitiesFoundError
from ..models.invoice import Currency
from .amount_extraction import AmountExtractor
from .date_parsing import find_dates, within_date_window
from .invoice_types import (
    ExtractedCurrencyAmount,
    ExtractedEntities,
    ExtractionConfidence,
)

ORGANIZATION_BASE_CONFIDENCE = 0.4
DATE_BASE_CONFIDENCE = 0.5
AMOUNT_BASE_CONFIDENCE = 0.5
CONFIDENCE_PER_RESULT = 0.3

LEGAL_FORMS = [
    "Inc", "Incorporated", "LLC", "L.L.C", "LLP", "Ltd", "Limited", "Corp", "Corporation",
    "Co", "Company", "PLC", "plc", "GmbH", "AG", "SA", "S.A", "SARL", "BV", "B.V", "NV",
    "Pty Ltd", "Pty", "Oy", "AB", "AS", "ApS", "Sp. z o.o", "KG", "SE",
]

_NAME_TOKEN = r"(?:[A-Z0-9][\w&.'’-]*|&)"
_LEGAL_FORM_RE = "|".join(re.escape(form) for form in sorted(LEGAL_FORMS, key=len, reverse=True))
ORGANIZATION_RE = re.compile(
    rf"(?P<name>{_NAME_TOKEN}(?:[ \t]+{_NAME_TOKEN}){{0,5}}?),?[ \t]+(?P<form>{_LEGAL_FORM_RE})(?![\w])\.?"
)


def deduplicate_names(names) -> list[str]:
    """Drop names shorter than 2 characters and case-insensitive repeats, keeping first occurrences"""
    seen: set[str] = set()
    result = []
    for name in names:
        normalized = name.strip().lower()
        if len(normalized) < 2 or normalized in seen:
            continue
        seen.add(normalized)
        result.append(name.strip())
    return result


class OrganizationRecognizer(ABC):
    """Finds organization names in free text"""

    @abstractmethod
    def recognize(self, text: str) -> list[str]:
        pass


class LegalSuffixOrganizationRecognizer(OrganizationRecognizer):
    """Capitalized name followed by a company legal form ("Acme Widgets GmbH", "Amazon.com LLC")"""

    def recognize(self, text: str) -> list[str]:
        names = []
        for match in ORGANIZATION_RE.finditer(text):
            names.append(match.group(0).rstrip(",").strip())
        return deduplicate_names(names)


class SpacyOrganizationRecognizer(OrganizationRecognizer):
    """
    Organization names from spaCy's named-entity recognizer (ORG spans).

    The model is loaded on first use; install the ``ner`` extra and the model
    named by SPACY_MODEL (``python -m spacy download en_core_web_sm``).
    """

    def __init__(self, model: str | None = None, nlp=None):
        self.model = model or settings.spacy_model
        self._nlp = nlp

    def _load(self):
        if self._nlp is None:
            import spacy

            logger.info("Loading spaCy model", model=self.model)
            self._nlp = spacy.load(self.model)
        return self._nlp

    def recognize(self, text: str) -> list[str]:
        doc = self._load()(text)
        return deduplicate_names(ent.text for ent in doc.ents if ent.label_ == "ORG")


class DateDetector(ABC):
    """Finds calendar dates in free text"""

    @abstractmethod
    def detect(self, text: str) -> list[date]:
        pass


class PatternDateDetector(DateDetector):
    """Dates matched by the date-detection patterns and parsed with locale disambiguation"""

    def detect(self, text: str) -> list[date]:
        return [match.value for match in find_dates(text)]


def category_confidence(count: int, base: float) -> float:
    if count == 0:
        return 0.0
    return min(1.0, CONFIDENCE_PER_RESULT * count + base)


def select_due_date(dates: list[date], today: date) -> date | None:
    """Earliest date strictly after today; otherwise the latest date found"""
    if not dates:
        return None
    future = [d for d in dates if d > today]
    if future:
        return min(future)
    return max(dates)


class EntityExtractor:
    """
    Extract organization, due date and amount candidates from document text.

    The primary amount is the largest value found; the largest figure on an
    invoice is usually the grand total, but that is a heuristic.
    """

    def __init__(
        self,
        organization_recognizer: OrganizationRecognizer | None = None,
        date_detector: DateDetector | None = None,
        amount_extractor: AmountExtractor | None = None,
        clock: Callable[[], date] = date.today,
        date_window_past_years: int | None = None,
        date_window_future_years: int | None = None,
    ):
        self.organization_recognizer = organization_recognizer or LegalSuffixOrganizationRecognizer()
        self.date_detector = date_detector or PatternDateDetector()
        self.amount_extractor = amount_extractor or AmountExtractor()
        self.clock = clock
        self.date_window_past_years = (
            date_window_past_years if date_window_past_years is not None else settings.date_window_past_years
        )
        self.date_window_future_years = (
            date_window_future_years if date_window_future_years is not None else settings.date_window_future_years
        )

    def _extract_dates(self, text: str, today: date) -> list[date]:
        dates = [
            d for d in self.date_detector.detect(text)
            if within_date_window(d, today, self.date_window_past_years, self.date_window_future_years)
        ]
        return sorted(dates)

    def _extract_amounts(self, text: str) -> list[ExtractedCurrencyAmount]:
        return [
            ExtractedCurrencyAmount(value=a.value, currency=a.currency)
            for a in self.amount_extractor.extract_amounts(text)
        ]

    def extract_entities(self, text: str) -> ExtractedEntities:
        """
        Extract entities from text.

        Raises:
            EmptyTextError: text is empty or whitespace
            NoEntitiesFoundError: no organization, date or amount was found
        """
        trimmed = text.strip() if text else ""
        if not trimmed:
            raise EmptyTextError()

        today = self.clock()
        with ThreadPoolExecutor(max_workers=3) as pool:
            organizations_future = pool.submit(self.organization_recognizer.recognize, trimmed)
            dates_future = pool.submit(self._extract_dates, trimmed, today)
            amounts_future = pool.submit(self._extract_amounts, trimmed)
            organizations = deduplicate_names(organizations_future.result())
            dates = dates_future.result()
            amounts = amounts_future.result()

        if not organizations and not dates and not amounts:
            logger.info("No entities found in text", characters=len(trimmed))
            raise NoEntitiesFoundError()

        confidence = ExtractionConfidence(
            organization_confidence=category_confidence(len(organizations), ORGANIZATION_BASE_CONFIDENCE),
            date_confidence=category_confidence(len(dates), DATE_BASE_CONFIDENCE),
            amount_confidence=category_confidence(len(amounts), AMOUNT_BASE_CONFIDENCE),
        )
        primary_amount = max(amounts, key=lambda a: a.value, default=None)

        logger.info(
            "Extracted entities",
            organizations=len(organizations),
            dates=len(dates),
            amounts=len(amounts),
            confidence=round(confidence.overall, 3),
        )

        return ExtractedEntities(
            organization_name=organizations[0] if organizations else None,
            due_date=select_due_date(dates, today),
            amount=primary_amount.value if primary_amount else None,
            currency=primary_amount.currency if primary_amount else None,
            all_organizations=organizations,
            all_dates=dates,
            all_amounts=amounts,
            confidence=confidence,
        )

    def extract_from_document(self, document) -> ExtractedEntities:
        """Extract entities from the full text of an OCRDocumentResult"""
        return self.extract_entities(document.full_text)


def format_amount(amount, currency: Currency | None) -> str:
    currency = currency or Currency.USD
    return f"{currency.symbol}{amount:,.2f}" if len(currency.symbol) == 1 else f"{amount:,.2f} {currency.symbol}"


def suggest_title(entities: ExtractedEntities) -> str:
    """Document title from the primary organization and amount, e.g. Acme Corp - $1,234.56"""
    if entities.organization_name and entities.amount is not None:
        return f"{entities.organization_name} - {format_amount(entities.amount, entities.currency)}"
    if entities.organization_name:
        return entities.organization_name
    return "Untitled"
