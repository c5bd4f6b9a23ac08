from datetime import datetime, UTC
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .schema import InvoiceFieldType, NormalizedRegion

MINOR_CORRECTION_RATIO = 0.3


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance between two strings (insertions, deletions, substitutions)"""
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            if c1 == c2:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j], current[j - 1], previous[j - 1]) + 1)
        previous = current
    return previous[-1]


class FieldCorrection(BaseModel):
    """A user correction to an extracted field. Immutable once recorded."""

    id: UUID = Field(default_factory=uuid4)
    schema_id: UUID | None = None
    field_type: InvoiceFieldType
    original_value: str
    corrected_value: str
    bounding_box: NormalizedRegion | None = None
    original_confidence: float = 0.5
    was_complete_replacement: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    document_id: UUID | None = None

    model_config = {"frozen": True}

    @property
    def edit_distance(self) -> int:
        return levenshtein_distance(self.original_value, self.corrected_value)

    @property
    def is_minor_correction(self) -> bool:
        """Typo-level fix: edit distance below 30% of the longer value"""
        max_length = max(len(self.original_value), len(self.corrected_value))
        if max_length == 0:
            return True
        return self.edit_distance / max_length < MINOR_CORRECTION_RATIO


class FieldCorrectionStats(BaseModel):
    """Summary statistics for one field type, derived from the correction log"""

    field_type: InvoiceFieldType
    total_extractions: int
    corrections_count: int
    minor_corrections_count: int
    average_original_confidence: float

    @property
    def accuracy_rate(self) -> float:
        if self.total_extractions <= 0:
            return 0.0
        return 1.0 - self.corrections_count / self.total_extractions

    @property
    def suggested_confidence_adjustment(self) -> float:
        """Positive when the field is rarely corrected, negative when often; within [-0.1, 0.1]"""
        adjustment = (self.accuracy_rate - 0.5) * 0.2
        return max(-0.1, min(0.1, adjustment))


class CorrectionPattern(BaseModel):
    original: str
    corrected: str
    count: int
