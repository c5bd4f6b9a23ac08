"""
Correction history: the feedback loop between users and schema confidence.

Corrections are an append-only, rolling log (oldest evicted first) persisted as
a JSON array after every append. Recording a correction or a confirmation also
feeds the schema store's per-mapping counters, which drive effective confidence
in later extractions.
"""

import json
import threading
from collections import Counter
from pathlib import Path
from uuid import UUID

from loguru import logger
from pydantic import ValidationError

from ...core.config import settings
from ...core.errors import InvoiceLearningError, LoadFailedError, SaveFailedError
from ...models.correction import CorrectionPattern, FieldCorrection, FieldCorrectionStats
from ...models.schema import InvoiceFieldType
from .json_file import read_json, write_json_atomic
from .schema_store import SchemaStore

DEFAULT_AVERAGE_CONFIDENCE = 0.5


class CorrectionHistoryService:
    """
    Records user corrections and confirmations and derives per-field statistics.

    The service and the schema store each have their own lock; the store is only
    called after this service's lock has been released.
    """

    def __init__(
        self,
        corrections_file: Path | None = None,
        schema_store: SchemaStore | None = None,
        max_corrections: int | None = None,
    ):
        self.corrections_file = Path(corrections_file) if corrections_file else settings.resolved_corrections_file
        self.schema_store = schema_store
        self.max_corrections = max_corrections if max_corrections is not None else settings.max_corrections
        self._lock = threading.RLock()
        self._corrections: list[FieldCorrection] = []
        self._extraction_counts: Counter[InvoiceFieldType] = Counter()

    # Persistence

    def load_history(self) -> int:
        """
        Load the correction log from disk, replacing what is in memory.

        Extraction counts are rebuilt from the loaded corrections. A missing
        file means an empty history. Returns the number of corrections loaded.

        Raises:
            LoadFailedError: the file is unreadable or not a valid correction array
        """
        with self._lock:
            try:
                data = read_json(self.corrections_file)
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Failed to read correction history", path=str(self.corrections_file), error=str(e))
                raise LoadFailedError(str(e)) from e

            if data is None:
                logger.info("No correction history yet", path=str(self.corrections_file))
                return 0
            if not isinstance(data, list):
                raise LoadFailedError("expected a JSON array of corrections")

            try:
                corrections = [FieldCorrection.model_validate(item) for item in data]
            except ValidationError as e:
                logger.error("Correction history is invalid", path=str(self.corrections_file), error=str(e))
                raise LoadFailedError(str(e)) from e

            self._corrections = corrections[-self.max_corrections:] if self.max_corrections > 0 else []
            self._extraction_counts = Counter(c.field_type for c in self._corrections)

            logger.info("Loaded correction history", path=str(self.corrections_file), count=len(self._corrections))
            return len(self._corrections)

    def _save_history(self) -> None:
        payload = [c.model_dump(mode="json") for c in self._corrections]
        try:
            write_json_atomic(self.corrections_file, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save correction history", path=str(self.corrections_file), error=str(e))
            raise SaveFailedError(str(e)) from e

    # Recording

    def record_extraction(self, field_type: InvoiceFieldType) -> None:
        """Count one extraction of field_type (the denominator of its accuracy rate)"""
        with self._lock:
            self._extraction_counts[field_type] += 1

    def record_correction(self, correction: FieldCorrection) -> None:
        """
        Append a user correction, trim the log and persist it.

        The schema's mapping for the field is then told about the correction.
        That update is best-effort: failures are logged and do not fail the
        correction.

        Raises:
            SaveFailedError: the history file could not be written (the correction is not kept)
        """
        with self._lock:
            previous = list(self._corrections)
            self._corrections.append(correction)
            if len(self._corrections) > self.max_corrections:
                self._corrections = self._corrections[-self.max_corrections:] if self.max_corrections > 0 else []
            try:
                self._save_history()
            except SaveFailedError:
                self._corrections = previous
                raise

        logger.info(
            "Correction recorded",
            field_type=correction.field_type.value,
            schema_id=str(correction.schema_id) if correction.schema_id else None,
            minor=correction.is_minor_correction,
        )

        if correction.schema_id is None or self.schema_store is None:
            return
        try:
            self.schema_store.update_field_confidence(correction.schema_id, correction.field_type, confirmed=False)
        except InvoiceLearningError as e:
            logger.warning(
                "Schema confidence update failed after correction",
                schema_id=str(correction.schema_id),
                field_type=correction.field_type.value,
                error=str(e),
            )

    def record_confirmation(self, schema_id: UUID | None, field_type: InvoiceFieldType) -> None:
        """
        Tell the schema that a user accepted an extracted value unchanged.

        Raises:
            SchemaNotFoundError, CannotModifyBuiltInError, SaveFailedError: from the schema store
        """
        if schema_id is None or self.schema_store is None:
            return
        self.schema_store.update_field_confidence(schema_id, field_type, confirmed=True)
        logger.info("Confirmation recorded", schema_id=str(schema_id), field_type=field_type.value)

    # Statistics

    def _statistics(self, field_type: InvoiceFieldType) -> FieldCorrectionStats:
        field_corrections = [c for c in self._corrections if c.field_type == field_type]
        if field_corrections:
            average = sum(c.original_confidence for c in field_corrections) / len(field_corrections)
        else:
            average = DEFAULT_AVERAGE_CONFIDENCE

        return FieldCorrectionStats(
            field_type=field_type,
            total_extractions=self._extraction_counts.get(field_type, len(field_corrections)),
            corrections_count=len(field_corrections),
            minor_corrections_count=sum(1 for c in field_corrections if c.is_minor_correction),
            average_original_confidence=average,
        )

    def statistics(self, field_type: InvoiceFieldType) -> FieldCorrectionStats:
        with self._lock:
            return self._statistics(field_type)

    def all_statistics(self) -> list[FieldCorrectionStats]:
        with self._lock:
            return [self._statistics(field_type) for field_type in InvoiceFieldType]

    def suggested_confidence_adjustment(self, field_type: InvoiceFieldType) -> float:
        return self.statistics(field_type).suggested_confidence_adjustment

    def recent_corrections(self, schema_id: UUID, limit: int = 50) -> list[FieldCorrection]:
        """Newest first"""
        with self._lock:
            matching = [c for c in self._corrections if c.schema_id == schema_id]
        return list(reversed(matching[-limit:])) if limit > 0 else []

    def common_patterns(self, field_type: InvoiceFieldType, limit: int = 10) -> list[CorrectionPattern]:
        """Most frequent (lower-cased original, corrected) pairs for a field type"""
        with self._lock:
            counts = Counter(
                (c.original_value.lower(), c.corrected_value)
                for c in self._corrections
                if c.field_type == field_type
            )
        # Counter.most_common keeps first-seen order among equal counts
        return [
            CorrectionPattern(original=original, corrected=corrected, count=count)
            for (original, corrected), count in counts.most_common(limit)
        ]

    def corrections(self) -> list[FieldCorrection]:
        """Snapshot of the correction log, oldest first"""
        with self._lock:
            return list(self._corrections)

    # Export / reset

    def export_training_data(self, path: Path | None = None) -> Path:
        """
        Write corrected values as {"text", "label"} pairs for retraining an external classifier.

        Returns:
            Path of the written JSON file (default: training_data.json next to the history file)
        """
        target = Path(path) if path else self.corrections_file.parent / "training_data.json"
        with self._lock:
            payload = [{"text": c.corrected_value, "label": c.field_type.value} for c in self._corrections]

        try:
            write_json_atomic(target, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to export training data", path=str(target), error=str(e))
            raise SaveFailedError(str(e)) from e

        logger.info("Exported training data", path=str(target), examples=len(payload))
        return target

    def clear_history(self) -> None:
        """Forget every correction and extraction count and delete the history file"""
        with self._lock:
            self._corrections = []
            self._extraction_counts = Counter()
            try:
                self.corrections_file.unlink(missing_ok=True)
            except OSError as e:
                raise SaveFailedError(str(e)) from e
        logger.info("Correction history cleared", path=str(self.corrections_file))
