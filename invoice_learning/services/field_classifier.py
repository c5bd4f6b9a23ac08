"""
Rule-based classification of OCR observations against a schema's field mappings.

For every observation and mapping the score adds, scaled by the mapping's
effective confidence:

- 0.3 when the mapping's region contains the observation's box origin
- 0.4 when the mapping's pattern matches the text
- 0.2 when the mapping's label hint appears in the text

Candidates scoring above 0.2 are kept, and only the best candidate survives
for each distinct recognized text.
"""

from abc import ABC, abstractmethod
from typing import Iterable

from loguru import logger

from ..models.observation import FieldClassificationResult, TextObservation
from ..models.schema import FieldMapping, InvoiceSchema

REGION_WEIGHT = 0.3
PATTERN_WEIGHT = 0.4
LABEL_HINT_WEIGHT = 0.2
REGION_TOLERANCE = 0.1
MIN_SCORE = 0.2


class FieldClassifier(ABC):
    """Classifies text observations into invoice field candidates under a schema"""

    @abstractmethod
    def classify(
        self,
        observations: Iterable[TextObservation],
        schema: InvoiceSchema,
        page_index: int = 0,
    ) -> list[FieldClassificationResult]:
        pass


def score_mapping(observation: TextObservation, mapping: FieldMapping) -> float:
    effective = mapping.effective_confidence
    score = 0.0

    box = observation.bounding_box
    if mapping.region is not None and mapping.region.contains(box.x, box.y, tolerance=REGION_TOLERANCE):
        score += REGION_WEIGHT * effective

    pattern = mapping.compiled_pattern
    if pattern is not None and pattern.search(observation.text):
        score += PATTERN_WEIGHT * effective

    if mapping.label_hint and mapping.label_hint.lower() in observation.text.lower():
        score += LABEL_HINT_WEIGHT * effective

    return score


class SchemaFieldClassifier(FieldClassifier):
    def classify(
        self,
        observations: Iterable[TextObservation],
        schema: InvoiceSchema,
        page_index: int = 0,
    ) -> list[FieldClassificationResult]:
        # Best candidate per recognized text, in first-seen order
        best: dict[str, FieldClassificationResult] = {}

        for observation in observations:
            for mapping in schema.field_mappings:
                score = score_mapping(observation, mapping)
                if score <= MIN_SCORE:
                    continue

                candidate = FieldClassificationResult(
                    field_type=mapping.field_type,
                    text=observation.text,
                    confidence=min(1.0, score),
                    bounding_box=observation.bounding_box,
                    page_index=page_index,
                )
                existing = best.get(observation.text)
                if existing is None or candidate.confidence > existing.confidence:
                    best[observation.text] = candidate

        logger.debug(
            "Classified observations",
            schema=schema.name,
            page_index=page_index,
            candidates=len(best),
        )
        return list(best.values())
