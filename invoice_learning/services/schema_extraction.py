"""
Schema-based field extraction.

One extraction runs OCR on the document, classifies every page's observations
against the schema (pages fan out over a thread pool), keeps the best candidate
per field type, normalizes the values, and records the schema's usage. Failures
are raised as SchemaExtractionError subclasses; missing required fields are
reported as warnings on the result.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC
from pathlib import Path
from uuid import UUID

from loguru import logger

from ..core.config import settings
from ..core.errors import (
    NoDocumentPathError,
    NoFieldsExtractedError,
    NoSchemaAssignedError,
    OCRFailedError,
    SchemaNotFoundError,
)
from ..models.invoice import Currency, InvoiceDocument
from ..models.observation import FieldClassificationResult, OCRDocumentResult
from ..models.schema import FieldMapping, InvoiceFieldType, InvoiceSchema
from .amount_extraction import AmountExtractor, detect_currency, parse_amount
from .date_parsing import find_dates, parse_date
from .field_classifier import FieldClassifier, SchemaFieldClassifier
from .form_recognizer import OCRProvider, create_ocr_provider
from .invoice_types import ExtractedFieldValue, SchemaExtractionResultWithValues
from .storage.correction_history import CorrectionHistoryService
from .storage.schema_store import SchemaStore

AMOUNT_FIELDS = {
    InvoiceFieldType.SUBTOTAL,
    InvoiceFieldType.TAX,
    InvoiceFieldType.TOTAL,
    InvoiceFieldType.LINE_ITEM_UNIT_PRICE,
    InvoiceFieldType.LINE_ITEM_TOTAL,
}
DATE_FIELDS = {InvoiceFieldType.INVOICE_DATE, InvoiceFieldType.DUE_DATE}

_LABEL_SEPARATORS = " \t:#-–"

_amount_extractor = AmountExtractor()


def _strip_label_hint(text: str, label_hint: str) -> str:
    match = re.search(re.escape(label_hint), text, re.IGNORECASE)
    if not match:
        return text
    remainder = (text[:match.start()] + " " + text[match.end():]).strip()
    return remainder.strip(_LABEL_SEPARATORS) or text


def _parse_amount_value(value: str, raw_text: str) -> str:
    currency = detect_currency(raw_text) or Currency.USD
    amount = parse_amount(value, currency)
    if amount is None:
        candidates = _amount_extractor.extract_amounts(value)
        if not candidates:
            return value
        amount = candidates[0].value
    return format(amount, "f")


def _normalize_amount(value: str, raw_text: str, captured: bool) -> str:
    """
    Currency-aware amount from the whole observation text.

    value (the captured group or the label-stripped text) picks among the
    amounts found in raw_text, largest first; a captured value that matches
    none of them is parsed on its own.
    """
    candidates = _amount_extractor.extract_amounts(raw_text)
    if candidates:
        inside = re.compile(rf"(?<![\d.,'’]){re.escape(value)}")
        for candidate in candidates:
            if inside.search(candidate.raw_text):
                return format(candidate.value, "f")
        if not captured:
            return format(candidates[0].value, "f")
    return _parse_amount_value(value, raw_text)


def _normalize_date(value: str) -> str:
    parsed = parse_date(value)
    if parsed is None:
        parsed = next((match.value for match in find_dates(value)), None)
    return parsed.isoformat() if parsed else value


def normalize_value(field_type: InvoiceFieldType, text: str, mapping: FieldMapping | None) -> str:
    """
    Turn a classified observation's text into the field's value.

    The mapping's first capture group wins when its pattern has one; otherwise
    the label hint is stripped from the text. Amounts are read from the whole
    text with their currency's separator rules (the captured value only picks
    which one) and become plain decimal strings ("42.10"). Dates become ISO
    dates and currencies ISO codes.
    """
    value = text.strip()

    captured = None
    pattern = mapping.compiled_pattern if mapping else None
    if pattern is not None and pattern.groups:
        match = pattern.search(text)
        if match and match.group(1):
            captured = match.group(1).strip()

    if captured:
        value = captured
    elif mapping and mapping.label_hint:
        value = _strip_label_hint(value, mapping.label_hint)

    if field_type in AMOUNT_FIELDS:
        return _normalize_amount(value, text, captured is not None)
    if field_type in DATE_FIELDS:
        return _normalize_date(value)
    if field_type == InvoiceFieldType.CURRENCY:
        currency = detect_currency(value)
        return currency.value if currency else value
    return value


def best_per_field_type(results: list[FieldClassificationResult]) -> dict[InvoiceFieldType, FieldClassificationResult]:
    """Maximum-confidence result per field type; ties keep the earliest result"""
    best: dict[InvoiceFieldType, FieldClassificationResult] = {}
    for result in results:
        existing = best.get(result.field_type)
        if existing is None or result.confidence > existing.confidence:
            best[result.field_type] = result
    return best


class SchemaExtractionService:
    """
    Extract invoice fields from documents with a schema.

    Collaborators are injected: the schema store (schemas and usage
    statistics), an OCR provider, a field classifier, and optionally the
    correction history, which is told about every extracted field.
    """

    def __init__(
        self,
        schema_store: SchemaStore,
        ocr_provider: OCRProvider | None = None,
        field_classifier: FieldClassifier | None = None,
        correction_history: CorrectionHistoryService | None = None,
        max_workers: int | None = None,
    ):
        self.schema_store = schema_store
        self.ocr_provider = ocr_provider or create_ocr_provider()
        self.field_classifier = field_classifier or SchemaFieldClassifier()
        self.correction_history = correction_history
        self.max_workers = max_workers or settings.extraction_max_workers

    def extract_with_document_schema(self, document: InvoiceDocument) -> SchemaExtractionResultWithValues:
        """Extract with the schema assigned to a document, from the document's file"""
        if document.schema_id is None:
            raise NoSchemaAssignedError()
        if not document.document_path:
            raise NoDocumentPathError()
        return self.extract_with_schema_id(document.schema_id, Path(document.document_path))

    def extract_with_schema_id(self, schema_id: UUID, path: Path) -> SchemaExtractionResultWithValues:
        schema = self.schema_store.schema(schema_id)
        if schema is None:
            raise SchemaNotFoundError(schema_id)
        return self.extract_with_schema(schema, path)

    def extract_with_schema(self, schema: InvoiceSchema, path: Path) -> SchemaExtractionResultWithValues:
        """
        Extract fields from the document at path with a specific schema.

        Raises:
            OCRFailedError: the OCR provider failed
            NoFieldsExtractedError: no observation matched any of the schema's mappings
        """
        document = self._run_ocr(path)
        return self._extract(schema, document)

    def extract_with_best_match(self, path: Path) -> SchemaExtractionResultWithValues:
        """
        Run OCR once and extract with the schema that best matches the document's text.

        Raises:
            NoSchemaAssignedError: no schema scores above the match threshold
        """
        document = self._run_ocr(path)
        schema = self.schema_store.find_best_match(document.full_text)
        if schema is None:
            raise NoSchemaAssignedError()
        return self._extract(schema, document)

    def _run_ocr(self, path: Path) -> OCRDocumentResult:
        path = Path(path)
        try:
            return self.ocr_provider.process_document(path)
        except Exception as e:
            logger.error("OCR failed", path=str(path), error=str(e))
            raise OCRFailedError(e) from e

    def _classify_pages(self, schema: InvoiceSchema, document: OCRDocumentResult) -> list[FieldClassificationResult]:
        pages = [page for page in document.pages if not page.is_empty]
        if not pages:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pages))) as pool:
            per_page = pool.map(
                lambda page: self.field_classifier.classify(page.observations, schema, page_index=page.page_index),
                pages,
            )
            results = [result for page_results in per_page for result in page_results]
        return results

    def _extract(self, schema: InvoiceSchema, document: OCRDocumentResult) -> SchemaExtractionResultWithValues:
        best = best_per_field_type(self._classify_pages(schema, document))

        extracted_fields = [
            ExtractedFieldValue(
                field_type=field_type,
                value=normalize_value(field_type, result.text, schema.mapping_for(field_type)),
                confidence=result.confidence,
                page_index=result.page_index,
                raw_text=result.text,
                bounding_box=result.bounding_box,
            )
            for field_type, result in best.items()
        ]
        extracted_fields.sort(key=lambda f: f.field_type.display_name)

        warnings = [
            f"Required field '{field_type.display_name}' not found."
            for field_type in InvoiceFieldType.required_fields()
            if field_type not in best
        ]

        if not extracted_fields:
            logger.warning("No fields extracted", schema_id=str(schema.id), schema=schema.name)
            raise NoFieldsExtractedError()

        overall_confidence = sum(f.confidence for f in extracted_fields) / len(extracted_fields)

        self.schema_store.record_usage(schema.id, overall_confidence)
        if self.correction_history is not None:
            for field in extracted_fields:
                self.correction_history.record_extraction(field.field_type)

        logger.info(
            "Schema extraction complete",
            schema_id=str(schema.id),
            schema=schema.name,
            pages=len(document.pages),
            fields=len(extracted_fields),
            warnings=len(warnings),
            overall_confidence=round(overall_confidence, 4),
        )

        return SchemaExtractionResultWithValues(
            schema_id=schema.id,
            schema_name=schema.name,
            extracted_fields=extracted_fields,
            overall_confidence=overall_confidence,
            warnings=warnings,
        )

    @staticmethod
    def apply_to_document(result: SchemaExtractionResultWithValues, document: InvoiceDocument) -> InvoiceDocument:
        """
        Write extracted values onto the caller's document and return it.

        vendor sets the requesting organization, total the amount, currency the
        currency, and the due date (or, without one, the invoice date) the due date.
        """
        invoice_date = None
        due_date = None

        for field in result.extracted_fields:
            if field.field_type == InvoiceFieldType.VENDOR:
                document.requesting_organization = field.value
            elif field.field_type == InvoiceFieldType.TOTAL:
                amount = parse_amount(field.value, detect_currency(field.value) or Currency.USD)
                if amount is not None:
                    document.amount = amount
            elif field.field_type == InvoiceFieldType.INVOICE_DATE:
                invoice_date = parse_date(field.value)
            elif field.field_type == InvoiceFieldType.DUE_DATE:
                due_date = parse_date(field.value)
            elif field.field_type == InvoiceFieldType.CURRENCY:
                currency = Currency(field.value) if field.value in Currency.__members__ else detect_currency(field.value)
                if currency is not None:
                    document.currency = currency

        if due_date or invoice_date:
            document.due_date = due_date or invoice_date
        document.schema_id = result.schema_id
        document.updated_at = datetime.now(UTC)
        return document
