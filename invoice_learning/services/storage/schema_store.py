"""
Durable registry of invoice schemas.

Built-in schemas are seeded in memory with fixed ids and can never be modified
or deleted. User schemas are persisted as a JSON array and merged with the
built-ins by load_schemas(). Every read and write is serialized by one
re-entrant lock, and reads hand out deep copies so callers never share the
store's instances.
"""

import json
import threading
from datetime import datetime, UTC
from pathlib import Path
from uuid import UUID, uuid4

from loguru import logger
from pydantic import ValidationError

from ...core.config import settings
from ...core.errors import (
    CannotModifyBuiltInError,
    InvalidSchemaError,
    LoadFailedError,
    SaveFailedError,
    SchemaNotFoundError,
)
from ...models.schema import FieldMapping, InvoiceFieldType, InvoiceSchema
from .builtin_schemas import BUILT_IN_SCHEMA_IDS, build_built_in_schemas
from .json_file import read_json, write_json_atomic

VENDOR_MATCH_SCORE = 10.0
LABEL_HINT_SCORE = 1.0
USAGE_SCORE = 0.1
AVERAGE_CONFIDENCE_SCORE = 2.0


def score_schema(schema: InvoiceSchema, text: str) -> float:
    """
    How well a schema fits a document's text.

    10 for a vendor identifier found in the text, plus the effective confidence
    of every mapping whose label hint is found, plus 0.1 per recorded use, plus
    twice the schema's average extraction confidence.
    """
    lowered = text.lower()
    score = 0.0

    if schema.vendor_identifier and schema.vendor_identifier.lower() in lowered:
        score += VENDOR_MATCH_SCORE

    for mapping in schema.field_mappings:
        if mapping.label_hint and mapping.label_hint.lower() in lowered:
            score += LABEL_HINT_SCORE * mapping.effective_confidence

    score += schema.usage_count * USAGE_SCORE
    score += schema.average_confidence * AVERAGE_CONFIDENCE_SCORE
    return score


def _by_name(schemas) -> list[InvoiceSchema]:
    return sorted(schemas, key=lambda s: (s.name, str(s.id)))


def _carry_statistics(existing: InvoiceSchema, updated: InvoiceSchema) -> None:
    """Copy the store-owned statistics of existing onto an edited schema"""
    updated.created_at = existing.created_at
    updated.usage_count = existing.usage_count
    updated.average_confidence = existing.average_confidence

    by_id = {m.id: m for m in existing.field_mappings}
    by_field_type = {m.field_type: m for m in existing.field_mappings}
    for mapping in updated.field_mappings:
        previous = by_id.get(mapping.id) or by_field_type.get(mapping.field_type)
        if previous is None:
            continue
        mapping.confirmation_count = previous.confirmation_count
        mapping.correction_count = previous.correction_count


class SchemaStore:
    """
    In-memory schema registry backed by a JSON file of user schemas.

    Features:
    - Built-in schemas seeded at construction, immutable
    - CRUD, duplication, import and export of user schemas
    - Best-match selection for unseen document text
    - Rolling usage statistics and per-field feedback counters
    """

    def __init__(self, schemas_file: Path | None = None, match_threshold: float | None = None):
        """
        Args:
            schemas_file: JSON file holding user schemas (default: SCHEMAS_FILE / DATA_DIR)
            match_threshold: minimum score find_best_match requires (default: SCHEMA_MATCH_THRESHOLD)
        """
        self.schemas_file = Path(schemas_file) if schemas_file else settings.resolved_schemas_file
        self.match_threshold = match_threshold if match_threshold is not None else settings.schema_match_threshold
        self._lock = threading.RLock()
        self._schemas: dict[UUID, InvoiceSchema] = {s.id: s for s in build_built_in_schemas()}

    # Persistence

    def load_schemas(self) -> int:
        """
        Merge user schemas from the JSON file into the registry.

        A missing file means no user schemas yet. Returns the number of user
        schemas loaded.

        Raises:
            LoadFailedError: the file is unreadable or not a valid schema array
        """
        with self._lock:
            try:
                data = read_json(self.schemas_file)
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Failed to read user schemas", path=str(self.schemas_file), error=str(e))
                raise LoadFailedError(str(e)) from e

            if data is None:
                logger.info("No user schemas file yet", path=str(self.schemas_file))
                return 0
            if not isinstance(data, list):
                raise LoadFailedError("expected a JSON array of schemas")

            try:
                loaded = [InvoiceSchema.model_validate(item) for item in data]
            except ValidationError as e:
                logger.error("User schemas file is invalid", path=str(self.schemas_file), error=str(e))
                raise LoadFailedError(str(e)) from e

            self._schemas = {k: v for k, v in self._schemas.items() if v.is_built_in}
            count = 0
            for schema in loaded:
                if schema.is_built_in or schema.id in BUILT_IN_SCHEMA_IDS:
                    logger.warning("Ignoring built-in schema in user schemas file", schema_id=str(schema.id))
                    continue
                self._schemas[schema.id] = schema
                count += 1

            logger.info("Loaded user schemas", path=str(self.schemas_file), count=count)
            return count

    def _save_user_schemas(self) -> None:
        user_schemas = _by_name(s for s in self._schemas.values() if not s.is_built_in)
        payload = [s.model_dump(mode="json") for s in user_schemas]
        try:
            write_json_atomic(self.schemas_file, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save user schemas", path=str(self.schemas_file), error=str(e))
            raise SaveFailedError(str(e)) from e
        logger.debug("Saved user schemas", path=str(self.schemas_file), count=len(payload))

    def _commit(self, schema_id: UUID, schema: InvoiceSchema | None) -> None:
        """Put (or remove, when schema is None) one entry and persist; the entry is restored if saving fails"""
        previous = self._schemas.get(schema_id)
        if schema is None:
            self._schemas.pop(schema_id, None)
        else:
            self._schemas[schema_id] = schema
        try:
            self._save_user_schemas()
        except SaveFailedError:
            if previous is None:
                self._schemas.pop(schema_id, None)
            else:
                self._schemas[schema_id] = previous
            raise

    # Lookups

    def all_schemas(self) -> list[InvoiceSchema]:
        with self._lock:
            return [s.model_copy(deep=True) for s in _by_name(self._schemas.values())]

    def built_in_schemas(self) -> list[InvoiceSchema]:
        with self._lock:
            return [s.model_copy(deep=True) for s in _by_name(s for s in self._schemas.values() if s.is_built_in)]

    def user_schemas(self) -> list[InvoiceSchema]:
        with self._lock:
            return [
                s.model_copy(deep=True) for s in _by_name(s for s in self._schemas.values() if not s.is_built_in)
            ]

    def schema(self, schema_id: UUID) -> InvoiceSchema | None:
        with self._lock:
            schema = self._schemas.get(schema_id)
            return schema.model_copy(deep=True) if schema else None

    def schemas_matching(self, vendor: str) -> list[InvoiceSchema]:
        """Schemas whose vendor identifier and the vendor name contain one another, most used first"""
        normalized = vendor.strip().lower()
        if not normalized:
            return []
        with self._lock:
            matches = [
                s for s in _by_name(self._schemas.values())
                if s.vendor_identifier
                and (s.vendor_identifier.lower() in normalized or normalized in s.vendor_identifier.lower())
            ]
            matches.sort(key=lambda s: s.usage_count, reverse=True)
            return [s.model_copy(deep=True) for s in matches]

    def score_schema(self, schema: InvoiceSchema, text: str) -> float:
        return score_schema(schema, text)

    def find_best_match(self, text: str) -> InvoiceSchema | None:
        """
        Highest-scoring schema for the text, or None when no score exceeds the match threshold.

        Ties keep the schema that comes first by name.
        """
        with self._lock:
            best: InvoiceSchema | None = None
            best_score = 0.0
            for schema in _by_name(self._schemas.values()):
                score = score_schema(schema, text)
                logger.debug("Scored schema", schema=schema.name, score=round(score, 3))
                if score > best_score:
                    best, best_score = schema, score

            if best is None or best_score <= self.match_threshold:
                logger.info("No schema matched text", best_score=round(best_score, 3), threshold=self.match_threshold)
                return None

            logger.info("Best matching schema", schema_id=str(best.id), schema=best.name, score=round(best_score, 3))
            return best.model_copy(deep=True)

    # CRUD

    def create_schema(
        self,
        name: str,
        vendor_identifier: str | None = None,
        description: str | None = None,
        field_mappings: list[FieldMapping] | None = None,
    ) -> InvoiceSchema:
        """
        Create and persist a new user schema.

        Raises:
            InvalidSchemaError: empty name, invalid pattern or duplicate field type mappings
            SaveFailedError: the user schemas file could not be written
        """
        try:
            schema = InvoiceSchema(
                name=name,
                vendor_identifier=vendor_identifier,
                description=description,
                field_mappings=[m.model_copy(deep=True) for m in field_mappings or []],
                is_built_in=False,
            )
        except ValidationError as e:
            raise InvalidSchemaError(str(e)) from e

        with self._lock:
            self._commit(schema.id, schema)
            logger.info("Schema created", schema_id=str(schema.id), schema=schema.name)
            return schema.model_copy(deep=True)

    def update_schema(self, schema: InvoiceSchema) -> InvoiceSchema:
        """
        Replace a user schema's editable content.

        Usage statistics, the creation time and the mappings' feedback counters
        stay as stored (mappings are matched by id, then by field type), so an
        edit made on an older copy never rolls back recorded usage.

        Raises:
            CannotModifyBuiltInError: the schema (or the stored schema with its id) is built-in
            SchemaNotFoundError: no schema with this id
            InvalidSchemaError: the new content does not validate
        """
        if schema.is_built_in:
            raise CannotModifyBuiltInError(schema.id)

        with self._lock:
            existing = self._schemas.get(schema.id)
            if existing is None:
                raise SchemaNotFoundError(schema.id)
            if existing.is_built_in:
                raise CannotModifyBuiltInError(schema.id)

            try:
                updated = InvoiceSchema.model_validate(schema.model_dump())
            except ValidationError as e:
                raise InvalidSchemaError(str(e)) from e
            _carry_statistics(existing, updated)
            updated.updated_at = datetime.now(UTC)

            self._commit(updated.id, updated)
            logger.info("Schema updated", schema_id=str(updated.id), schema=updated.name)
            return updated.model_copy(deep=True)

    def delete_schema(self, schema_id: UUID) -> None:
        with self._lock:
            existing = self._schemas.get(schema_id)
            if existing is None:
                raise SchemaNotFoundError(schema_id)
            if existing.is_built_in:
                raise CannotModifyBuiltInError(schema_id)

            self._commit(schema_id, None)
            logger.info("Schema deleted", schema_id=str(schema_id), schema=existing.name)

    def duplicate_schema(self, schema_id: UUID, new_name: str) -> InvoiceSchema:
        """
        Copy any schema (built-in included) into a new user schema.

        The copy gets a new id and fresh usage statistics; its field mappings
        keep their rules and feedback counters.
        """
        with self._lock:
            original = self._schemas.get(schema_id)
            if original is None:
                raise SchemaNotFoundError(schema_id)

            try:
                duplicate = InvoiceSchema(
                    name=new_name,
                    vendor_identifier=original.vendor_identifier,
                    description=f"Copy of {original.name}",
                    field_mappings=[m.model_copy(deep=True, update={"id": uuid4()}) for m in original.field_mappings],
                    is_built_in=False,
                )
            except ValidationError as e:
                raise InvalidSchemaError(str(e)) from e

            self._commit(duplicate.id, duplicate)
            logger.info("Schema duplicated", source_id=str(schema_id), schema_id=str(duplicate.id), schema=new_name)
            return duplicate.model_copy(deep=True)

    # Learning

    def record_usage(self, schema_id: UUID, confidence: float) -> None:
        """
        Record one extraction with a schema: usage count and rolling mean confidence.

        Unknown ids are ignored. Only user schemas are persisted; built-in
        statistics live for the lifetime of the store.

        Raises:
            SaveFailedError: the user schemas file could not be written
        """
        with self._lock:
            schema = self._schemas.get(schema_id)
            if schema is None:
                logger.warning("Usage recorded for unknown schema", schema_id=str(schema_id))
                return

            updated = schema.model_copy(deep=True)
            updated.usage_count += 1
            n = updated.usage_count
            updated.average_confidence = (updated.average_confidence * (n - 1) + confidence) / n
            updated.updated_at = datetime.now(UTC)

            if updated.is_built_in:
                self._schemas[schema_id] = updated
            else:
                self._commit(schema_id, updated)

            logger.info(
                "Schema usage recorded",
                schema_id=str(schema_id),
                usage_count=n,
                average_confidence=round(updated.average_confidence, 4),
            )

    def update_field_confidence(self, schema_id: UUID, field_type: InvoiceFieldType, confirmed: bool) -> None:
        """
        Count a user confirmation or correction against the schema's mapping for field_type.

        Raises:
            SchemaNotFoundError: no schema with this id
            CannotModifyBuiltInError: the schema is built-in
            SaveFailedError: the user schemas file could not be written
        """
        with self._lock:
            schema = self._schemas.get(schema_id)
            if schema is None:
                raise SchemaNotFoundError(schema_id)
            if schema.is_built_in:
                raise CannotModifyBuiltInError(schema_id)

            updated = schema.model_copy(deep=True)
            mapping = updated.mapping_for(field_type)
            if mapping is not None:
                if confirmed:
                    mapping.confirmation_count += 1
                else:
                    mapping.correction_count += 1
            updated.updated_at = datetime.now(UTC)

            self._commit(schema_id, updated)
            logger.info(
                "Field confidence feedback recorded",
                schema_id=str(schema_id),
                field_type=field_type.value,
                confirmed=confirmed,
                effective_confidence=round(mapping.effective_confidence, 4) if mapping else None,
            )

    # Import / export

    def export_schema(self, schema_id: UUID) -> str:
        """Schema as a standalone pretty-printed JSON document"""
        with self._lock:
            schema = self._schemas.get(schema_id)
            if schema is None:
                raise SchemaNotFoundError(schema_id)
            return json.dumps(schema.model_dump(mode="json"), indent=2, sort_keys=True, ensure_ascii=False)

    def import_schema(self, data: str | bytes) -> InvoiceSchema:
        """
        Import a schema exported by export_schema as a new user schema.

        The imported schema always gets a fresh id, is never built-in and
        starts with no usage statistics.

        Raises:
            InvalidSchemaError: data is not JSON or not a valid schema
        """
        try:
            source = InvoiceSchema.model_validate(json.loads(data))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidSchemaError(f"not valid JSON: {e}") from e
        except ValidationError as e:
            raise InvalidSchemaError(str(e)) from e

        schema = InvoiceSchema(
            name=source.name,
            vendor_identifier=source.vendor_identifier,
            description=source.description,
            field_mappings=source.field_mappings,
            is_built_in=False,
        )

        with self._lock:
            self._commit(schema.id, schema)
            logger.info("Schema imported", schema_id=str(schema.id), schema=schema.name)
            return schema.model_copy(deep=True)
