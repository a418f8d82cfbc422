"""Core domain models."""

from core.models.line_item import LineItem, LineItemKind, BillingCycle
from core.models.order import Order, OrderStatus, OrderSummary, PaymentMethod, BillingDetails
from core.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from core.models.domain import Domain, DomainStatus, DnsRecord
from core.models.service import Service, ServiceStatus
from core.models.transaction import Transaction, TransactionType, TransactionStatus, Wallet
from core.models.cart import Cart
from core.models.job import (
    JobType, JobState, JobRecord,
    RegisterDomainPayload, RenewDomainPayload, CheckTransferPayload,
    InitiateTransferPayload, UpdateDnsPayload, UpsertDnsChange, DeleteDnsChange,
    BulkDnsChange, NotificationPayload,
)

__all__ = [
    # LineItem
    "LineItem", "LineItemKind", "BillingCycle",
    # Order
    "Order", "OrderStatus", "OrderSummary", "PaymentMethod", "BillingDetails",
    # Invoice
    "Invoice", "InvoiceItem", "InvoiceStatus",
    # Domain
    "Domain", "DomainStatus", "DnsRecord",
    # Service
    "Service", "ServiceStatus",
    # Transaction / Wallet
    "Transaction", "TransactionType", "TransactionStatus", "Wallet",
    # Cart
    "Cart",
    # Job
    "JobType", "JobState", "JobRecord",
    "RegisterDomainPayload", "RenewDomainPayload", "CheckTransferPayload",
    "InitiateTransferPayload", "UpdateDnsPayload", "UpsertDnsChange", "DeleteDnsChange",
    "BulkDnsChange", "NotificationPayload",
]
