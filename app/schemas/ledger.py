"""
Read-only ledger records handed to the fraud detectors.

The accounting platform owns invoices, transactions and documents; the
repository maps its rows onto these plain records so the detectors stay
free of any persistence concern.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union


@dataclass(frozen=True)
class ClientCompanyRecord:
    id: str
    tenant_id: str
    name: str
    tax_number: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class InvoiceRecord:
    id: str
    tenant_id: str
    client_company_id: Optional[str]
    issue_date: date
    total_amount: float
    tax_amount: float = 0.0
    external_id: Optional[str] = None
    direction: str = "sale"  # sale | purchase
    counterparty_name: Optional[str] = None
    counterparty_tax_number: Optional[str] = None
    due_date: Optional[date] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    tenant_id: str
    client_company_id: Optional[str] = None
    related_invoice: Optional[InvoiceRecord] = None


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    occurred_at: Union[date, datetime]
    amount: float
    counterparty_name: Optional[str] = None


@dataclass(frozen=True)
class CounterpartyEvent:
    occurred_on: date
    amount: float
