"""Shared test fixtures for the provisioning test suite."""

import os
from pathlib import Path
from uuid import UUID

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from utils.actor_context import clear_current_actor


# =============================================================================
# TEST CLIENT CONSTANTS
# =============================================================================

# Primary test client - use for single-client tests
TEST_CLIENT_ID = UUID("00000000-0000-0000-0000-000000000001")

# Secondary test client - use for ownership checks
TEST_CLIENT_B_ID = UUID("00000000-0000-0000-0000-000000000002")

TEST_ADMIN_ID = "admin-1"


@pytest.fixture(autouse=True)
def reset_actor_context():
    """Ensure clean actor context before and after each test."""
    clear_current_actor()
    yield
    clear_current_actor()


@pytest.fixture
def client_id() -> UUID:
    return TEST_CLIENT_ID


@pytest.fixture
def client_b_id() -> UUID:
    return TEST_CLIENT_B_ID


@pytest.fixture
def admin_id() -> str:
    return TEST_ADMIN_ID


# =============================================================================
# LEDGER AND VALKEY FIXTURES
# =============================================================================


@pytest.fixture
def config():
    from core.config import ProvisioningConfig
    return ProvisioningConfig()


@pytest.fixture
def store():
    """Fresh in-memory ledger per test."""
    from fakes import InMemoryLedgerStore
    return InMemoryLedgerStore()


@pytest.fixture
def valkey():
    """ValkeyClient over an in-process fake server."""
    import fakeredis
    from clients.valkey_client import ValkeyClient

    client = ValkeyClient.from_redis(fakeredis.FakeRedis(decode_responses=True))
    yield client
    client.close()


@pytest.fixture
def registrar():
    from fakes import FakeRegistrar
    return FakeRegistrar()


@pytest.fixture
def notifier():
    from fakes import RecordingNotifier
    return RecordingNotifier()


@pytest.fixture
def gateway():
    from fakes import FakeGateway
    return FakeGateway("razorpay")


@pytest.fixture
def services(store, valkey, config, gateway):
    """Fully wired services dict over the in-memory ledger."""
    from core.bootstrap import build_services
    from core.models import PaymentMethod

    return build_services(store, valkey, config, gateways={PaymentMethod.RAZORPAY: gateway})


@pytest.fixture
def event_bus(services):
    return services["event_bus"]


@pytest.fixture
def queue(services):
    return services["queue"]


@pytest.fixture
def published(event_bus):
    """Every event published on the bus, in order."""
    from core.events import ProvisioningEvent

    seen = []
    event_bus.subscribe(ProvisioningEvent, seen.append)
    return seen


# =============================================================================
# ENTITY BUILDERS
# =============================================================================


@pytest.fixture
def billing_details():
    from core.models import BillingDetails
    return BillingDetails(first_name="Ada", last_name="Lovelace", email="ada@example.com")


@pytest.fixture
def make_domain(store, client_id):
    """Insert a domain directly into the ledger."""
    from uuid import uuid4
    from datetime import timedelta
    from core.models import Domain, DomainStatus
    from utils.timezone import now_utc

    def _make(name="example.com", status=DomainStatus.ACTIVE, expires_in_days=365, **fields):
        now = now_utc()
        values = {
            "id": uuid4(),
            "client_id": client_id,
            "domain_name": name,
            "tld": name.split(".", 1)[1],
            "status": status,
            "expires_at": now + timedelta(days=expires_in_days) if expires_in_days is not None else None,
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        domain = Domain(**values)
        store.put(domain)
        return domain

    return _make


@pytest.fixture
def make_invoice(store, client_id):
    """Insert an unpaid invoice directly into the ledger."""
    from datetime import timedelta
    from core.invoicing import build_invoice
    from core.models import InvoiceItem
    from utils.timezone import now_utc

    counter = {"n": 0}

    def _make(amount_cents=2000, due_in_days=7, **fields):
        counter["n"] += 1
        now = now_utc()
        invoice = build_invoice(
            invoice_number=f"INV-TEST-{counter['n']:06d}",
            client_id=fields.pop("client_id", client_id),
            items=[InvoiceItem(description="Hosting", unit_price_cents=amount_cents)],
            now=now,
            due_days=0,
        ).model_copy(update={"due_at": now + timedelta(days=due_in_days), **fields})
        store.put(invoice)
        return invoice

    return _make


@pytest.fixture
def make_service(store, client_id):
    """Insert an active monthly hosting service directly into the ledger."""
    from uuid import uuid4
    from core.models import BillingCycle, LineItemKind, Service, ServiceStatus
    from utils.timezone import now_utc

    def _make(status=ServiceStatus.ACTIVE, **fields):
        now = now_utc()
        values = {
            "id": uuid4(),
            "client_id": client_id,
            "product_id": "hosting-basic",
            "kind": LineItemKind.HOSTING,
            "billing_cycle": BillingCycle.MONTHLY,
            "price_cents": 1000,
            "status": status,
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        service = Service(**values)
        store.put(service)
        return service

    return _make


# =============================================================================
# POSTGRES FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db_url():
    """Database URL for integration tests; skips when none is configured."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url


@pytest.fixture(scope="session")
def db(db_url):
    """Session-scoped PostgresClient with the ledger schema applied."""
    from clients.postgres_client import PostgresClient

    client = PostgresClient(db_url)
    schema = (Path(__file__).parent.parent / "db" / "schema.sql").read_text()
    client.execute(schema)
    yield client
    client.close()
