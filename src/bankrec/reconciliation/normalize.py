#!/usr/bin/env python3
"""
System Record Normalization

Receipts, invoices and expenses have different shapes in the accounting
modules. They are projected to one SystemRecord here, at the boundary, so the
scoring core never branches on the document subtype.

Input documents are plain dictionaries as returned by the accounting APIs.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from ..core.dates import coerce_date
from ..core.money import Money
from .models import RecordType, SystemRecord

logger = logging.getLogger(__name__)


def _single_project_id(data: dict[str, Any]) -> str | None:
    """Project id when every line item belongs to the same single project."""
    if data.get("project_id"):
        return str(data["project_id"])
    project_ids = {
        item.get("project_id") for item in data.get("line_items") or () if item.get("project_id")
    }
    if len(project_ids) == 1:
        return str(project_ids.pop())
    return None


def _amount(data: dict[str, Any], *keys: str) -> Money:
    for key in keys:
        if data.get(key) is not None:
            return Money.from_amount(data[key])
    return Money.zero()


def receipt_to_system_record(receipt: dict[str, Any]) -> SystemRecord:
    """Receipts are customer payments received: positive amounts."""
    reference = receipt.get("receipt_number")
    return SystemRecord(
        id=str(receipt["id"]),
        type=RecordType.RECEIPT,
        amount=_amount(receipt, "total_received", "total_amount").abs(),
        currency=str(receipt.get("currency", "")).upper(),
        date=coerce_date(receipt.get("receipt_date")),
        reference=reference,
        counterparty=receipt.get("client_name"),
        description=f"Payment for {receipt['reference']}" if receipt.get("reference") else None,
        project_id=_single_project_id(receipt),
        reconciled=bool(receipt.get("reconciled", False)),
    )


def invoice_to_system_record(invoice: dict[str, Any]) -> SystemRecord:
    """Invoices settle as incoming payments: positive amounts."""
    return SystemRecord(
        id=str(invoice["id"]),
        type=RecordType.INVOICE,
        amount=_amount(invoice, "amount_due", "total_amount").abs(),
        currency=str(invoice.get("currency", "")).upper(),
        date=coerce_date(invoice.get("due_date") or invoice.get("invoice_date")),
        reference=invoice.get("invoice_number"),
        counterparty=invoice.get("client_name"),
        description=invoice.get("notes"),
        project_id=_single_project_id(invoice),
        reconciled=bool(invoice.get("reconciled", False)),
    )


def expense_to_system_record(expense: dict[str, Any]) -> SystemRecord:
    """Expenses are outflows: negative amounts, net payable preferred over gross."""
    supplier_invoice = expense.get("supplier_invoice_number")
    return SystemRecord(
        id=str(expense["id"]),
        type=RecordType.EXPENSE,
        amount=-_amount(expense, "net_payable", "total_amount").abs(),
        currency=str(expense.get("currency", "")).upper(),
        date=coerce_date(expense.get("expense_date")),
        reference=expense.get("expense_number"),
        counterparty=expense.get("vendor_name"),
        description=f"Invoice {supplier_invoice}" if supplier_invoice else expense.get("notes"),
        project_id=_single_project_id(expense),
        reconciled=bool(expense.get("reconciled", False)),
    )


NORMALIZERS: dict[RecordType, Callable[[dict[str, Any]], SystemRecord]] = {
    RecordType.RECEIPT: receipt_to_system_record,
    RecordType.INVOICE: invoice_to_system_record,
    RecordType.EXPENSE: expense_to_system_record,
}


def to_system_record(document: dict[str, Any]) -> SystemRecord:
    """
    Normalize one tagged accounting document.

    Args:
        document: Dictionary with a ``type`` tag of receipt / invoice / expense

    Returns:
        SystemRecord projection

    Raises:
        ValueError: If the type tag is missing or unknown
    """
    tag = document.get("type")
    try:
        record_type = RecordType(tag)
    except ValueError:
        raise ValueError(f"Unknown system record type: {tag!r}") from None
    return NORMALIZERS[record_type](document)


def normalize_documents(
    documents: Iterable[dict[str, Any]],
    matched_record_ids: set[str] | None = None,
) -> list[SystemRecord]:
    """
    Normalize a batch of tagged documents, dropping any already matched.

    Documents that cannot be normalized are logged and skipped so one bad row
    does not prevent the rest of the pool from being scored.
    """
    matched_record_ids = matched_record_ids or set()
    records = []
    for document in documents:
        if str(document.get("id")) in matched_record_ids:
            continue
        try:
            records.append(to_system_record(document))
        except (KeyError, ValueError) as e:
            logger.warning("Skipping unnormalizable document %s: %s", document.get("id"), e)
    return records
