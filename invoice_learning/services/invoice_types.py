from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..models.invoice import Currency
from ..models.schema import InvoiceFieldType, NormalizedRegion


class ExtractedFieldValue(BaseModel):
    """A single extracted field value with confidence and source page"""
    id: UUID = Field(default_factory=uuid4)
    field_type: InvoiceFieldType
    value: str  # Normalized value (plain decimal for amounts, ISO date for dates)
    confidence: float
    page_index: int = 0
    raw_text: str | None = None  # Recognized text the value was taken from
    bounding_box: NormalizedRegion | None = None


class SchemaExtractionResultWithValues(BaseModel):
    schema_id: UUID
    schema_name: str
    extracted_fields: list[ExtractedFieldValue] = Field(default_factory=list)
    overall_confidence: float = 0.0
    warnings: list[str] = Field(default_factory=list)

    def field(self, field_type: InvoiceFieldType) -> ExtractedFieldValue | None:
        return next((f for f in self.extracted_fields if f.field_type == field_type), None)


class ExtractedAmount(BaseModel):
    """An extracted monetary amount with its source text and location"""
    value: Decimal
    currency: Currency = Currency.USD
    raw_text: str = ""
    confidence: float = 1.0
    bounding_box: NormalizedRegion | None = None


class ExtractedDate(BaseModel):
    value: date
    raw_text: str = ""
    confidence: float = 1.0
    bounding_box: NormalizedRegion | None = None


class ExtractedData(BaseModel):
    """Amounts and dates found in OCR observations, with bounding box references"""
    amounts: list[ExtractedAmount] = Field(default_factory=list)
    dates: list[ExtractedDate] = Field(default_factory=list)

    @property
    def primary_amount(self) -> ExtractedAmount | None:
        # Largest amount is assumed to be the total
        return max(self.amounts, key=lambda a: a.value, default=None)

    def primary_date_as_of(self, today: date) -> ExtractedDate | None:
        future = [d for d in self.dates if d.value > today]
        if future:
            return min(future, key=lambda d: d.value)
        return self.dates[0] if self.dates else None

    @property
    def primary_date(self) -> ExtractedDate | None:
        return self.primary_date_as_of(date.today())

    @property
    def overall_confidence(self) -> float:
        scores = [a.confidence for a in self.amounts] + [d.confidence for d in self.dates]
        return sum(scores) / len(scores) if scores else 0.0


class ExtractionConfidence(BaseModel):
    organization_confidence: float = 0.0
    date_confidence: float = 0.0
    amount_confidence: float = 0.0

    @property
    def overall(self) -> float:
        scores = [self.organization_confidence, self.date_confidence, self.amount_confidence]
        non_zero = [s for s in scores if s > 0]
        return sum(non_zero) / len(non_zero) if non_zero else 0.0


class ExtractedCurrencyAmount(BaseModel):
    value: Decimal
    currency: Currency


class ExtractedEntities(BaseModel):
    """Entities extracted from free document text"""
    organization_name: str | None = None
    due_date: date | None = None
    amount: Decimal | None = None
    currency: Currency | None = None
    all_organizations: list[str] = Field(default_factory=list)
    all_dates: list[date] = Field(default_factory=list)
    all_amounts: list[ExtractedCurrencyAmount] = Field(default_factory=list)
    confidence: ExtractionConfidence = Field(default_factory=ExtractionConfidence)
