"""Tests for core domain models - custom validators and derived properties only."""

import pytest
from pydantic import ValidationError
from uuid import uuid4


class TestLineItem:
    """Tests for LineItem per-kind validation."""

    def test_registration_requires_domain_name(self):
        from core.models import LineItem, LineItemKind

        with pytest.raises(ValidationError, match="requires domain_name"):
            LineItem(kind=LineItemKind.DOMAIN_REGISTRATION, description="Reg", unit_price_cents=1000)

    def test_renewal_requires_domain_id(self):
        from core.models import LineItem, LineItemKind

        with pytest.raises(ValidationError, match="domain_id"):
            LineItem(
                kind=LineItemKind.DOMAIN_RENEWAL, description="Renew",
                unit_price_cents=1000, domain_name="example.com",
            )

    def test_transfer_requires_auth_code(self):
        from core.models import LineItem, LineItemKind

        with pytest.raises(ValidationError, match="auth_code"):
            LineItem(
                kind=LineItemKind.DOMAIN_TRANSFER, description="Transfer",
                unit_price_cents=1000, domain_name="example.com",
            )

    def test_subscription_requires_product_and_cycle(self):
        from core.models import LineItem, LineItemKind

        with pytest.raises(ValidationError, match="product_id"):
            LineItem(kind=LineItemKind.HOSTING, description="Hosting", unit_price_cents=500)
        with pytest.raises(ValidationError, match="billing_cycle"):
            LineItem(kind=LineItemKind.VPS, description="VPS", unit_price_cents=500, product_id="vps-1")

    def test_domain_name_normalized(self):
        """Names are stored lowercase without surrounding whitespace."""
        from core.models import LineItem, LineItemKind

        item = LineItem(
            kind=LineItemKind.DOMAIN_REGISTRATION, description="Reg",
            unit_price_cents=1000, domain_name="  Example.COM ",
        )
        assert item.domain_name == "example.com"
        assert item.tld == "com"

    def test_tld_keeps_multi_label_suffix(self):
        from core.models import LineItem, LineItemKind

        item = LineItem(
            kind=LineItemKind.DOMAIN_REGISTRATION, description="Reg",
            unit_price_cents=1000, domain_name="shop.co.uk",
        )
        assert item.tld == "co.uk"

    def test_total_is_quantity_times_unit(self):
        from core.models import BillingCycle, LineItem, LineItemKind

        item = LineItem(
            kind=LineItemKind.HOSTING, description="Hosting", unit_price_cents=750, quantity=3,
            product_id="hosting-basic", billing_cycle=BillingCycle.MONTHLY,
        )
        assert item.total_cents == 2250

    def test_rejects_negative_price(self):
        from core.models import BillingCycle, LineItem, LineItemKind

        with pytest.raises(ValidationError):
            LineItem(
                kind=LineItemKind.HOSTING, description="Hosting", unit_price_cents=-1,
                product_id="hosting-basic", billing_cycle=BillingCycle.MONTHLY,
            )


class TestInvoiceStatus:

    def test_open_statuses(self):
        from core.models import InvoiceStatus

        assert InvoiceStatus.UNPAID.is_open
        assert InvoiceStatus.PARTIALLY_PAID.is_open
        assert InvoiceStatus.OVERDUE.is_open
        assert not InvoiceStatus.PAID.is_open
        assert not InvoiceStatus.CANCELLED.is_open
        assert not InvoiceStatus.REFUNDED.is_open


class TestTransaction:

    def test_amount_must_be_positive(self):
        from core.models import PaymentMethod, Transaction, TransactionStatus, TransactionType
        from utils.timezone import now_utc

        with pytest.raises(ValidationError):
            Transaction(
                id=uuid4(), transaction_number="TXN-1", client_id=uuid4(),
                type=TransactionType.PAYMENT, gateway=PaymentMethod.WALLET,
                amount_cents=0, status=TransactionStatus.SUCCESS, created_at=now_utc(),
            )

    def test_refundable_cents(self):
        from core.models import PaymentMethod, Transaction, TransactionStatus, TransactionType
        from utils.timezone import now_utc

        txn = Transaction(
            id=uuid4(), transaction_number="TXN-1", client_id=uuid4(),
            type=TransactionType.PAYMENT, gateway=PaymentMethod.WALLET,
            amount_cents=3000, refunded_cents=1000, status=TransactionStatus.SUCCESS, created_at=now_utc(),
        )
        assert txn.refundable_cents == 2000

    def test_wallet_balance_cannot_go_negative(self):
        from core.models import Wallet

        with pytest.raises(ValidationError):
            Wallet(client_id=uuid4(), balance_cents=-1)


class TestJobPayloads:

    def test_dns_change_discriminated_by_operation(self):
        from core.models import DeleteDnsChange, UpdateDnsPayload

        payload = UpdateDnsPayload.model_validate({
            "domain_id": str(uuid4()),
            "change": {"operation": "delete", "record_type": "A", "name": "www"},
        })
        assert isinstance(payload.change, DeleteDnsChange)

    def test_bulk_change_needs_records(self):
        from core.models import UpdateDnsPayload

        with pytest.raises(ValidationError):
            UpdateDnsPayload.model_validate({
                "domain_id": str(uuid4()),
                "change": {"operation": "bulk", "records": []},
            })

    def test_dns_record_type_restricted(self):
        from core.models import DnsRecord

        with pytest.raises(ValidationError):
            DnsRecord(type="PTR", name="www", data="1.2.3.4")

    def test_job_state_terminal(self):
        from core.models import JobState

        assert JobState.COMPLETED.is_terminal
        assert JobState.FAILED.is_terminal
        assert not JobState.ACTIVE.is_terminal
