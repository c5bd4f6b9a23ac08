"""
Typed errors raised by the extraction and learning services.

Every error carries a human-readable message so that host applications can
surface it directly. Store and extraction failures are always raised to the
caller; the only failure that is logged instead of raised is the schema
confidence update triggered while recording a correction.
"""

from uuid import UUID


class InvoiceLearningError(Exception):
    """Base class for all errors raised by this library"""


# Schema store

class SchemaStoreError(InvoiceLearningError):
    """Errors that can occur in schema operations"""


class SchemaNotFoundError(SchemaStoreError):
    def __init__(self, schema_id: UUID):
        self.schema_id = schema_id
        super().__init__(f"Schema not found: {schema_id}")


class CannotModifyBuiltInError(SchemaStoreError):
    def __init__(self, schema_id: UUID | None = None):
        self.schema_id = schema_id
        super().__init__("Cannot modify built-in schemas")


class SaveFailedError(SchemaStoreError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to save: {reason}")


class LoadFailedError(SchemaStoreError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to load: {reason}")


class InvalidSchemaError(SchemaStoreError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid schema: {reason}")


# Schema extraction

class SchemaExtractionError(InvoiceLearningError):
    """Errors during schema-based extraction"""


class NoSchemaAssignedError(SchemaExtractionError):
    def __init__(self):
        super().__init__("No schema assigned to this document")


class NoDocumentPathError(SchemaExtractionError):
    def __init__(self):
        super().__init__("Document has no associated file")


class OCRFailedError(SchemaExtractionError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"OCR processing failed: {cause}")


class NoFieldsExtractedError(SchemaExtractionError):
    def __init__(self):
        super().__init__("No fields could be extracted using the schema")


# Free-text entity extraction

class EntityExtractionError(InvoiceLearningError):
    """Errors during free-text entity extraction"""


class EmptyTextError(EntityExtractionError):
    def __init__(self):
        super().__init__("No text provided for extraction")


class NoEntitiesFoundError(EntityExtractionError):
    def __init__(self):
        super().__init__("No entities could be extracted from the text")


# OCR collaborator

class OCRError(InvoiceLearningError):
    """Raised by OCR providers (configuration, file access, service failures)"""
