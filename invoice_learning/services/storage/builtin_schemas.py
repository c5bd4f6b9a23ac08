"""Schemas shipped with the library for common invoice layouts"""

from uuid import UUID

from ...models.schema import FieldMapping, InvoiceFieldType, InvoiceSchema, NormalizedRegion

GENERIC_INVOICE_ID = UUID("00000000-0000-0000-0000-000000000001")
AMAZON_BUSINESS_ID = UUID("00000000-0000-0000-0000-000000000002")
OFFICE_SUPPLIES_ID = UUID("00000000-0000-0000-0000-000000000003")
UTILITY_BILL_ID = UUID("00000000-0000-0000-0000-000000000004")
PROFESSIONAL_SERVICES_ID = UUID("00000000-0000-0000-0000-000000000005")

BUILT_IN_SCHEMA_IDS = frozenset({
    GENERIC_INVOICE_ID,
    AMAZON_BUSINESS_ID,
    OFFICE_SUPPLIES_ID,
    UTILITY_BILL_ID,
    PROFESSIONAL_SERVICES_ID,
})

_AMOUNT = r"\$?([\d,]+\.\d{2})"
_SLASH_DATE = r"(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})"
_IDENTIFIER = r"([A-Z0-9-]+)"


def _mapping(field_type: InvoiceFieldType, confidence: float, **kwargs) -> FieldMapping:
    return FieldMapping(field_type=field_type, confidence=confidence, **kwargs)


def build_built_in_schemas() -> list[InvoiceSchema]:
    """Fresh copies of the built-in schemas; the store owns the instances it seeds"""
    return [
        InvoiceSchema(
            id=GENERIC_INVOICE_ID,
            name="Generic Invoice",
            description="General-purpose invoice schema for common formats",
            is_built_in=True,
            field_mappings=[
                _mapping(
                    InvoiceFieldType.INVOICE_NUMBER, 0.6,
                    pattern=r"(?:Invoice|Inv|#)\s*:?\s*" + _IDENTIFIER,
                    label_hint="Invoice",
                ),
                _mapping(
                    InvoiceFieldType.INVOICE_DATE, 0.7,
                    pattern=r"(?:Date|Invoice Date)\s*:?\s*" + _SLASH_DATE,
                    label_hint="Date",
                ),
                _mapping(
                    InvoiceFieldType.DUE_DATE, 0.7,
                    pattern=r"(?:Due|Due Date|Payment Due)\s*:?\s*" + _SLASH_DATE,
                    label_hint="Due",
                ),
                _mapping(
                    InvoiceFieldType.VENDOR, 0.5,
                    region=NormalizedRegion(x=0.0, y=0.7, width=0.5, height=0.3),
                ),
                _mapping(
                    InvoiceFieldType.TOTAL, 0.8,
                    pattern=r"(?:Total|Amount Due|Grand Total)\s*:?\s*[$€£]?\s*([\d,]+\.?\d*)",
                    label_hint="Total",
                ),
                _mapping(
                    InvoiceFieldType.SUBTOTAL, 0.7,
                    pattern=r"(?:Subtotal|Sub-total)\s*:?\s*[$€£]?\s*([\d,]+\.?\d*)",
                    label_hint="Subtotal",
                ),
                _mapping(
                    InvoiceFieldType.TAX, 0.7,
                    pattern=r"(?:Tax|VAT|GST)\s*:?\s*[$€£]?\s*([\d,]+\.?\d*)",
                    label_hint="Tax",
                ),
            ],
        ),
        InvoiceSchema(
            id=AMAZON_BUSINESS_ID,
            name="Amazon Business",
            vendor_identifier="amazon",
            description="Schema for Amazon Business invoices",
            is_built_in=True,
            field_mappings=[
                _mapping(
                    InvoiceFieldType.INVOICE_NUMBER, 0.9,
                    pattern=r"Order\s*#?\s*:?\s*(\d{3}-\d{7}-\d{7})",
                    label_hint="Order #",
                ),
                _mapping(InvoiceFieldType.INVOICE_DATE, 0.8, label_hint="Order Placed"),
                _mapping(InvoiceFieldType.VENDOR, 0.9, label_hint="Sold by"),
                _mapping(
                    InvoiceFieldType.TOTAL, 0.9,
                    pattern=r"Grand Total\s*:?\s*" + _AMOUNT,
                    label_hint="Grand Total",
                ),
                _mapping(
                    InvoiceFieldType.TAX, 0.8,
                    pattern=r"Tax\s*:?\s*" + _AMOUNT,
                    label_hint="Tax",
                ),
            ],
        ),
        InvoiceSchema(
            id=OFFICE_SUPPLIES_ID,
            name="Office Supplies",
            description="Schema for common office supply vendor invoices",
            is_built_in=True,
            field_mappings=[
                _mapping(
                    InvoiceFieldType.INVOICE_NUMBER, 0.7,
                    pattern=r"(?:Invoice|Order)\s*(?:#|Number|No\.?)\s*:?\s*" + _IDENTIFIER,
                    label_hint="Invoice",
                ),
                _mapping(InvoiceFieldType.INVOICE_DATE, 0.7, label_hint="Invoice Date"),
                _mapping(
                    InvoiceFieldType.PO_NUMBER, 0.8,
                    pattern=r"(?:PO|P\.O\.|Purchase Order)\s*(?:#|Number|No\.?)?\s*:?\s*" + _IDENTIFIER,
                    label_hint="PO",
                ),
                _mapping(
                    InvoiceFieldType.TOTAL, 0.8,
                    pattern=r"(?:Total|Invoice Total)\s*:?\s*" + _AMOUNT,
                    label_hint="Total",
                ),
                _mapping(
                    InvoiceFieldType.SUBTOTAL, 0.7,
                    pattern=r"Subtotal\s*:?\s*" + _AMOUNT,
                    label_hint="Subtotal",
                ),
            ],
        ),
        InvoiceSchema(
            id=UTILITY_BILL_ID,
            name="Utility Bill",
            description="Schema for utility bills (electric, gas, water)",
            is_built_in=True,
            field_mappings=[
                _mapping(
                    InvoiceFieldType.INVOICE_NUMBER, 0.7,
                    pattern=r"(?:Account|Acct)\s*(?:#|Number|No\.?)?\s*:?\s*" + _IDENTIFIER,
                    label_hint="Account",
                ),
                _mapping(InvoiceFieldType.INVOICE_DATE, 0.7, label_hint="Bill Date"),
                _mapping(InvoiceFieldType.DUE_DATE, 0.8, label_hint="Due Date"),
                _mapping(
                    InvoiceFieldType.TOTAL, 0.9,
                    pattern=r"(?:Amount Due|Total Due|Current Charges)\s*:?\s*" + _AMOUNT,
                    label_hint="Amount Due",
                ),
                _mapping(
                    InvoiceFieldType.VENDOR, 0.6,
                    region=NormalizedRegion(x=0.0, y=0.8, width=0.4, height=0.2),
                ),
            ],
        ),
        InvoiceSchema(
            id=PROFESSIONAL_SERVICES_ID,
            name="Professional Services",
            description="Schema for consulting, legal, or professional service invoices",
            is_built_in=True,
            field_mappings=[
                _mapping(
                    InvoiceFieldType.INVOICE_NUMBER, 0.7,
                    pattern=r"(?:Invoice|Inv)\s*(?:#|Number|No\.?)?\s*:?\s*" + _IDENTIFIER,
                    label_hint="Invoice",
                ),
                _mapping(InvoiceFieldType.INVOICE_DATE, 0.7, label_hint="Date"),
                _mapping(
                    InvoiceFieldType.DUE_DATE, 0.7,
                    pattern=r"(?:Due|Payment Due|Net \d+)\s*:?\s*" + _SLASH_DATE,
                    label_hint="Payment Terms",
                ),
                _mapping(
                    InvoiceFieldType.VENDOR, 0.6,
                    region=NormalizedRegion(x=0.0, y=0.75, width=0.5, height=0.25),
                ),
                _mapping(InvoiceFieldType.CUSTOMER_NAME, 0.7, label_hint="Bill To"),
                _mapping(
                    InvoiceFieldType.TOTAL, 0.8,
                    pattern=r"(?:Total|Amount Due|Balance Due)\s*:?\s*" + _AMOUNT,
                    label_hint="Total",
                ),
                _mapping(InvoiceFieldType.LINE_ITEM_DESCRIPTION, 0.6, label_hint="Description"),
                _mapping(InvoiceFieldType.LINE_ITEM_TOTAL, 0.6, label_hint="Amount"),
            ],
        ),
    ]
