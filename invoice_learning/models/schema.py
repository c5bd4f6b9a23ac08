"""
Invoice schema model: field types, field mappings and the schema aggregate.

A schema is a named, versioned set of field-extraction rules for one invoice
layout, optionally tied to a vendor. Built-in schemas ship with the library;
user schemas are created, edited and learned from at runtime.
"""

import re
from datetime import datetime, UTC
from enum import Enum
from functools import lru_cache
from typing import NamedTuple
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


class FieldInfo(NamedTuple):
    display_name: str
    is_required: bool = False
    is_line_item_field: bool = False


class InvoiceFieldType(str, Enum):
    """Field types that can be extracted from invoices"""

    INVOICE_NUMBER = "invoice_number"
    INVOICE_DATE = "invoice_date"
    DUE_DATE = "due_date"
    VENDOR = "vendor"
    VENDOR_ADDRESS = "vendor_address"
    RECIPIENT = "recipient"
    CUSTOMER_NAME = "customer_name"
    CUSTOMER_ADDRESS = "customer_address"
    SUBTOTAL = "subtotal"
    TAX = "tax"
    TOTAL = "total"
    CURRENCY = "currency"
    PAYMENT_TERMS = "payment_terms"
    PO_NUMBER = "po_number"
    LINE_ITEM_DESCRIPTION = "line_item_description"
    LINE_ITEM_QUANTITY = "line_item_quantity"
    LINE_ITEM_UNIT_PRICE = "line_item_unit_price"
    LINE_ITEM_TOTAL = "line_item_total"

    @property
    def info(self) -> FieldInfo:
        return FIELD_INFO[self]

    @property
    def display_name(self) -> str:
        return FIELD_INFO[self].display_name

    @property
    def is_required(self) -> bool:
        """Whether this field is required for a valid extraction"""
        return FIELD_INFO[self].is_required

    @property
    def is_line_item_field(self) -> bool:
        """Whether this field type is part of a (repeating) line item"""
        return FIELD_INFO[self].is_line_item_field

    @classmethod
    def required_fields(cls) -> list["InvoiceFieldType"]:
        return [field_type for field_type in cls if field_type.is_required]


FIELD_INFO: dict[InvoiceFieldType, FieldInfo] = {
    InvoiceFieldType.INVOICE_NUMBER: FieldInfo("Invoice Number"),
    InvoiceFieldType.INVOICE_DATE: FieldInfo("Invoice Date", is_required=True),
    InvoiceFieldType.DUE_DATE: FieldInfo("Due Date"),
    InvoiceFieldType.VENDOR: FieldInfo("Vendor Name", is_required=True),
    InvoiceFieldType.VENDOR_ADDRESS: FieldInfo("Vendor Address"),
    InvoiceFieldType.RECIPIENT: FieldInfo("Recipient"),
    InvoiceFieldType.CUSTOMER_NAME: FieldInfo("Customer Name"),
    InvoiceFieldType.CUSTOMER_ADDRESS: FieldInfo("Recipient Address"),
    InvoiceFieldType.SUBTOTAL: FieldInfo("Subtotal"),
    InvoiceFieldType.TAX: FieldInfo("Tax"),
    InvoiceFieldType.TOTAL: FieldInfo("Total", is_required=True),
    InvoiceFieldType.CURRENCY: FieldInfo("Currency"),
    InvoiceFieldType.PAYMENT_TERMS: FieldInfo("Payment Terms"),
    InvoiceFieldType.PO_NUMBER: FieldInfo("PO Number"),
    InvoiceFieldType.LINE_ITEM_DESCRIPTION: FieldInfo("Line Item Description", is_line_item_field=True),
    InvoiceFieldType.LINE_ITEM_QUANTITY: FieldInfo("Line Item Quantity", is_line_item_field=True),
    InvoiceFieldType.LINE_ITEM_UNIT_PRICE: FieldInfo("Line Item Unit Price", is_line_item_field=True),
    InvoiceFieldType.LINE_ITEM_TOTAL: FieldInfo("Line Item Total", is_line_item_field=True),
}


class NormalizedRegion(BaseModel):
    """Rectangle in unit page coordinates, origin at the bottom-left corner"""

    x: float
    y: float
    width: float
    height: float

    model_config = {"frozen": True}

    def contains(self, x: float, y: float, tolerance: float = 0.05) -> bool:
        """Check if a point lies within this region, expanded by tolerance on every side"""
        return (
            self.x - tolerance <= x <= self.x + self.width + tolerance
            and self.y - tolerance <= y <= self.y + self.height + tolerance
        )

    def is_close_to(self, other: "NormalizedRegion", epsilon: float = 0.001) -> bool:
        return abs(self.x - other.x) < epsilon and abs(self.y - other.y) < epsilon


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a field mapping pattern once per distinct pattern string"""
    return re.compile(pattern, re.IGNORECASE)


class FieldMapping(BaseModel):
    """Maps a field type to its extraction rules within one schema"""

    id: UUID = Field(default_factory=uuid4)
    field_type: InvoiceFieldType
    region: NormalizedRegion | None = None
    pattern: str | None = None
    label_hint: str | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    confirmation_count: int = Field(default=0, ge=0)
    correction_count: int = Field(default=0, ge=0)

    @field_validator("pattern")
    @classmethod
    def pattern_must_compile(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                compile_pattern(value)
            except re.error as e:
                raise ValueError(f"Invalid pattern {value!r}: {e}") from e
        return value

    @property
    def compiled_pattern(self) -> re.Pattern | None:
        return compile_pattern(self.pattern) if self.pattern else None

    @property
    def effective_confidence(self) -> float:
        """
        Base confidence scaled by user feedback.

        Laplace-smoothed ratio: confidence * (1 + confirmations) / (1 + confirmations + corrections).
        Without feedback this is the base confidence; each correction pulls it down
        and later confirmations pull it back towards the base.
        """
        confirmations = self.confirmation_count
        total = 1 + confirmations + self.correction_count
        return self.confidence * (1 + confirmations) / total


class InvoiceSchema(BaseModel):
    """A reusable schema for extracting data from a specific invoice format"""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(min_length=1)
    vendor_identifier: str | None = None
    description: str | None = None
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    version: int = 1
    is_built_in: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    usage_count: int = Field(default=0, ge=0)
    average_confidence: float = 0.0

    @model_validator(mode="after")
    def one_mapping_per_field_type(self) -> "InvoiceSchema":
        seen: set[InvoiceFieldType] = set()
        for mapping in self.field_mappings:
            if mapping.field_type in seen:
                raise ValueError(f"Duplicate mapping for field type '{mapping.field_type.value}'")
            seen.add(mapping.field_type)
        return self

    def mapping_for(self, field_type: InvoiceFieldType) -> FieldMapping | None:
        return next((m for m in self.field_mappings if m.field_type == field_type), None)

    @property
    def line_item_mappings(self) -> list[FieldMapping]:
        return [m for m in self.field_mappings if m.field_type.is_line_item_field]

    @property
    def header_mappings(self) -> list[FieldMapping]:
        return [m for m in self.field_mappings if not m.field_type.is_line_item_field]

    @property
    def has_required_fields(self) -> bool:
        mapped = {m.field_type for m in self.field_mappings}
        return all(field_type in mapped for field_type in InvoiceFieldType.required_fields())
