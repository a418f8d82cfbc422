"""
Object graph for one process.

build_services() takes already-constructed clients so tests can pass
fakes; connect() builds the real clients from Vault secrets.
"""

import logging

from clients.notification_client import NotificationGatewayClient
from clients.payment_gateway_client import PaymentGatewayClient
from clients.postgres_client import PostgresClient
from clients.registrar_client import RegistrarClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_database_url,
    get_notification_config,
    get_payment_gateway_config,
    get_registrar_config,
    get_valkey_url,
)
from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.handlers.notification_handlers import register_notification_handlers
from core.ledger import LedgerStore
from core.models import PaymentMethod
from core.postgres_ledger import PostgresLedgerStore
from core.services.billing_service import BillingService
from core.services.cart_service import CartService
from core.services.checkout_service import CheckoutService
from core.services.payment_service import PaymentService
from core.services.provisioning_service import ProvisioningService
from core.services.wallet_service import WalletService
from jobs.queue import JobQueue
from jobs.rate_limiter import JobRateLimiter

logger = logging.getLogger(__name__)


def build_services(
    store: LedgerStore,
    valkey: ValkeyClient,
    config: ProvisioningConfig,
    gateways: dict | None = None,
) -> dict:
    """Wire the ledger, queue, event bus and services together."""
    gateways = gateways or {}
    event_bus = EventBus()
    queue = JobQueue(valkey, config)
    register_notification_handlers(event_bus, queue)

    provisioning = ProvisioningService(store, queue, event_bus)
    cart = CartService(valkey, config)

    return {
        "store": store,
        "config": config,
        "event_bus": event_bus,
        "queue": queue,
        "rate_limiter": JobRateLimiter(valkey, config),
        "provisioning": provisioning,
        "cart": cart,
        "checkout": CheckoutService(store, event_bus, provisioning, config, cart, gateways),
        "payment": PaymentService(store, event_bus, provisioning, gateways),
        "billing": BillingService(store, provisioning, config),
        "wallet": WalletService(store, event_bus, gateways),
    }


def connect(config: ProvisioningConfig | None = None) -> dict:
    """
    Build real clients from Vault and return the services dict.

    The returned dict also carries "postgres", "valkey", "registrar" and
    "notifier" so entry points can close them on shutdown.
    """
    config = config or ProvisioningConfig()
    timeout = config.external_call_timeout_seconds

    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())

    gateways = {}
    for method in (PaymentMethod.RAZORPAY, PaymentMethod.STRIPE):
        try:
            settings = get_payment_gateway_config(method.value)
        except (KeyError, PermissionError) as e:
            logger.warning(f"Payment gateway {method.value} not configured: {e}")
            continue
        gateways[method] = PaymentGatewayClient(
            name=method.value,
            base_url=settings["base_url"],
            key_id=settings["key_id"],
            key_secret=settings["key_secret"],
            timeout=timeout,
        )

    registrar_settings = get_registrar_config()
    registrar = RegistrarClient(
        base_url=registrar_settings["base_url"],
        api_key=registrar_settings["api_key"],
        api_secret=registrar_settings["api_secret"],
        timeout=timeout,
    )
    notifier = NotificationGatewayClient(**get_notification_config(), timeout=timeout)

    services = build_services(PostgresLedgerStore(postgres), valkey, config, gateways)
    services.update(postgres=postgres, valkey=valkey, registrar=registrar, notifier=notifier)
    return services
