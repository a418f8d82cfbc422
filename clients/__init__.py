# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_valkey_url,
    get_registrar_config,
    get_payment_gateway_config,
    get_notification_config,
)
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.registrar_client import RegistrarClient, RegistrarError
from clients.payment_gateway_client import PaymentGatewayClient, PaymentGatewayError
from clients.notification_client import NotificationGatewayClient, NotificationGatewayError
