"""
Unit tests for amount_extraction module.

Tests currency-aware matching, locale separator rules, OCR fixes, range
filtering, deduplication and observation-level extraction.
"""

from datetime import date
from decimal import Decimal

import pytest

from conftest import obs
from invoice_learning.models.invoice import Currency
from invoice_learning.models.observation import OCRDocumentResult, OCRPageResult
from invoice_learning.services.amount_extraction import (
    AmountExtractor,
    deduplicate_amounts,
    detect_currency,
    parse_amount,
)
from invoice_learning.services.invoice_types import ExtractedAmount


@pytest.fixture
def extractor():
    return AmountExtractor(date_window_past_years=5, date_window_future_years=10)


def single(amounts):
    assert len(amounts) == 1, amounts
    return amounts[0]


class TestCurrencyPatterns:
    """Tests for symbol, code and word patterns"""

    def test_dollar_symbol_prefix(self, extractor):
        amount = single(extractor.extract_amounts("$1,234.56"))
        assert amount.value == Decimal("1234.56")
        assert amount.currency == Currency.USD

    def test_euro_symbol_suffix_european_grouping(self, extractor):
        amount = single(extractor.extract_amounts("1.234,56 €"))
        assert amount.value == Decimal("1234.56")
        assert amount.currency == Currency.EUR

    def test_swiss_apostrophe_grouping(self, extractor):
        amount = single(extractor.extract_amounts("1'234.56 CHF"))
        assert amount.value == Decimal("1234.56")
        assert amount.currency == Currency.CHF

    def test_code_prefix(self, extractor):
        amount = single(extractor.extract_amounts("USD 1,234.56"))
        assert amount.value == Decimal("1234.56")
        assert amount.currency == Currency.USD

    def test_word_suffix(self, extractor):
        amount = single(extractor.extract_amounts("1234 dollars"))
        assert amount.value == Decimal("1234")
        assert amount.currency == Currency.USD

    def test_euro_comma_decimal(self, extractor):
        amount = single(extractor.extract_amounts("€ 12,50"))
        assert amount.value == Decimal("12.50")

    def test_euro_space_grouping(self, extractor):
        amount = single(extractor.extract_amounts("Betrag: 2 605,25 EUR"))
        assert amount.value == Decimal("2605.25")
        assert amount.currency == Currency.EUR

    def test_pound_prefix(self, extractor):
        amount = single(extractor.extract_amounts("Total £99.99"))
        assert amount.value == Decimal("99.99")
        assert amount.currency == Currency.GBP

    def test_sorted_descending(self, extractor):
        amounts = extractor.extract_amounts("Subtotal $100.00 Tax $8.00 Total $108.00")
        assert [a.value for a in amounts] == [Decimal("108.00"), Decimal("100.00"), Decimal("8.00")]

    def test_restricted_currencies(self):
        extractor = AmountExtractor(currencies=[Currency.EUR])
        assert extractor.extract_amounts("$1,234.56") == []

    def test_plain_numbers_are_not_amounts(self, extractor):
        assert extractor.extract_amounts("Invoice 12345, 3 items") == []


class TestMoreCurrencies:
    """Dollar variants, Asian, Central European and other currencies"""

    @pytest.mark.parametrize(
        "text,currency,expected",
        [
            ("R$ 1.234,56", Currency.BRL, Decimal("1234.56")),
            ("1 234,56 Kč", Currency.CZK, Decimal("1234.56")),
            ("HK$ 1,234.56", Currency.HKD, Decimal("1234.56")),
            ("NZ$120.00", Currency.NZD, Decimal("120.00")),
            ("S$ 45.50", Currency.SGD, Decimal("45.50")),
            ("MX$2,000.00", Currency.MXN, Decimal("2000.00")),
            ("₩50,000", Currency.KRW, Decimal("50000")),
            ("RMB 88.00", Currency.CNY, Decimal("88.00")),
            ("CN¥1,000", Currency.CNY, Decimal("1000")),
            ("150 000 Ft", Currency.HUF, Decimal("150000")),
            ("1.234,56 lei", Currency.RON, Decimal("1234.56")),
            ("₽1 234,56", Currency.RUB, Decimal("1234.56")),
            ("₪99.90", Currency.ILS, Decimal("99.90")),
            ("1,234.56 TL", Currency.TRY, Decimal("1234.56")),
            ("฿500", Currency.THB, Decimal("500")),
            ("ZAR 1,500.00", Currency.ZAR, Decimal("1500.00")),
        ],
    )
    def test_extracted(self, extractor, text, currency, expected):
        amount = single(extractor.extract_amounts(text))
        assert amount.currency == currency
        assert amount.value == expected

    @pytest.mark.parametrize(
        "text,currency,expected",
        [
            ("1.234,56", Currency.BRL, Decimal("1234.56")),
            ("12,50", Currency.CZK, Decimal("12.50")),
            ("1.234.567", Currency.HUF, Decimal("1234567")),
            ("1 234,56", Currency.RUB, Decimal("1234.56")),
            ("99,90", Currency.RON, Decimal("99.90")),
            ("1,234.56", Currency.HKD, Decimal("1234.56")),
            ("50,000", Currency.KRW, Decimal("50000")),
        ],
    )
    def test_locale_rules(self, text, currency, expected):
        assert parse_amount(text, currency) == expected

    def test_code_words_are_case_sensitive(self, extractor):
        assert extractor.extract_amounts("Please try 3 times") == []

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("R$ 10", Currency.BRL),
            ("HK$", Currency.HKD),
            ("CN¥", Currency.CNY),
            ("¥", Currency.JPY),
            ("Kč", Currency.CZK),
            ("TL", Currency.TRY),
            ("5 ft of cable", None),
        ],
    )
    def test_detect(self, text, expected):
        assert detect_currency(text) == expected


class TestParseAmount:
    """Tests for the cleaning pipeline"""

    @pytest.mark.parametrize(
        "text,currency,expected",
        [
            ("$1,234.56", Currency.USD, Decimal("1234.56")),
            ("1.234,56 €", Currency.EUR, Decimal("1234.56")),
            ("1,234.56 EUR", Currency.EUR, Decimal("1234.56")),
            ("12,50", Currency.EUR, Decimal("12.50")),
            ("1.234.567", Currency.EUR, Decimal("1234567")),
            ("1'234.56", Currency.CHF, Decimal("1234.56")),
            ("2 605.25", Currency.USD, Decimal("2605.25")),
        ],
    )
    def test_locale_rules(self, text, currency, expected):
        assert parse_amount(text, currency) == expected

    def test_ocr_confusions_fixed(self):
        assert parse_amount("1O0.00") == Decimal("100.00")
        assert parse_amount("l5.00") == Decimal("15.00")

    @pytest.mark.parametrize("text", ["$0.00", "0", "1000000000000", "$1,000,000,000,000.00"])
    def test_out_of_range_rejected(self, text):
        assert parse_amount(text) is None

    @pytest.mark.parametrize("text", ["", "abc", "12.34.56.78x"])
    def test_unparseable_rejected(self, text):
        assert parse_amount(text) is None

    def test_out_of_range_never_emitted(self, extractor):
        assert extractor.extract_amounts("Balance $0.00, cap $1,000,000,000,000.00") == []

    def test_ocr_confusion_in_text(self, extractor):
        amount = single(extractor.extract_amounts("Total: $1O0.00"))
        assert amount.value == Decimal("100.00")


class TestDetectCurrency:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("EUR", Currency.EUR),
            ("€", Currency.EUR),
            ("$", Currency.USD),
            ("C$ 10", Currency.CAD),
            ("Swiss francs", Currency.CHF),
            ("PLN", Currency.PLN),
            ("total 42", None),
        ],
    )
    def test_detect(self, text, expected):
        assert detect_currency(text) == expected


class TestDeduplication:
    def test_keeps_highest_confidence(self):
        amounts = [
            ExtractedAmount(value=Decimal("42.10"), currency=Currency.USD, confidence=0.6),
            ExtractedAmount(value=Decimal("42.10"), currency=Currency.USD, confidence=0.9),
            ExtractedAmount(value=Decimal("42.10"), currency=Currency.EUR, confidence=0.5),
        ]
        deduplicated = deduplicate_amounts(amounts)
        assert len(deduplicated) == 2
        usd = next(a for a in deduplicated if a.currency == Currency.USD)
        assert usd.confidence == 0.9

    def test_same_amount_twice_in_text(self, extractor):
        amounts = extractor.extract_amounts("Total $42.10. Amount due: $42.10")
        assert len(amounts) == 1


class TestObservationExtraction:
    """Tests for extraction from OCR observations"""

    def test_amounts_and_dates_with_boxes(self, extractor):
        observations = [
            obs("Total: $42.10", y=0.1, confidence=0.7),
            obs("Amount due $42.10", y=0.2, confidence=0.9),
            obs("Due: 15.03.2026", y=0.8, confidence=0.8),
        ]
        data = extractor.extract_from_observations(observations, today=date(2026, 1, 1))

        amount = single(data.amounts)
        assert amount.value == Decimal("42.10")
        assert amount.confidence == 0.9
        assert amount.bounding_box.y == 0.2

        assert [d.value for d in data.dates] == [date(2026, 3, 15)]
        assert data.dates[0].bounding_box.y == 0.8
        assert data.primary_amount.value == Decimal("42.10")
        assert data.primary_date_as_of(date(2026, 1, 1)).value == date(2026, 3, 15)
        assert data.overall_confidence == pytest.approx((0.9 + 0.8) / 2)

    def test_dates_outside_window_dropped(self, extractor):
        data = extractor.extract_from_observations([obs("Issued 01.01.2001")], today=date(2026, 1, 1))
        assert data.dates == []

    def test_primary_date_falls_back_to_first(self, extractor):
        data = extractor.extract_from_observations(
            [obs("Issued 10.01.2025"), obs("Shipped 12.01.2025")], today=date(2026, 1, 1)
        )
        assert data.primary_date_as_of(date(2026, 1, 1)).value == date(2025, 1, 10)

    def test_document_deduplicates_across_pages(self, extractor):
        document = OCRDocumentResult(pages=[
            OCRPageResult(page_index=0, observations=[obs("Subtotal $100.00", confidence=0.6)]),
            OCRPageResult(page_index=1, observations=[obs("Carried over $100.00", confidence=0.8), obs("Total $108.00")]),
        ])
        data = extractor.extract_from_document(document, today=date(2026, 1, 1))
        assert [a.value for a in data.amounts] == [Decimal("108.00"), Decimal("100.00")]
        assert data.amounts[1].confidence == 0.8

    def test_empty(self, extractor):
        data = extractor.extract_from_observations([], today=date(2026, 1, 1))
        assert data.primary_amount is None
        assert data.primary_date_as_of(date(2026, 1, 1)) is None
        assert data.overall_confidence == 0.0
