from pathlib import Path

from pydantic import BaseModel, Field

from .schema import InvoiceFieldType, NormalizedRegion


class TextObservation(BaseModel):
    """A recognized line of text with its OCR confidence and location"""
    text: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    bounding_box: NormalizedRegion


class OCRPageResult(BaseModel):
    page_index: int
    observations: list[TextObservation] = Field(default_factory=list)

    @property
    def full_text(self) -> str:
        return "\n".join(o.text for o in self.observations)

    @property
    def is_empty(self) -> bool:
        return not self.observations


class OCRDocumentResult(BaseModel):
    pages: list[OCRPageResult] = Field(default_factory=list)
    source_path: Path | None = None

    @property
    def full_text(self) -> str:
        return "\n\n---\n\n".join(page.full_text for page in self.pages)

    @property
    def total_observations(self) -> int:
        return sum(len(page.observations) for page in self.pages)


class FieldClassificationResult(BaseModel):
    """A text observation classified as a candidate value for one field type"""
    field_type: InvoiceFieldType
    text: str
    confidence: float
    bounding_box: NormalizedRegion
    page_index: int = 0  # Reported by the classifier, not recovered from coordinates
