"""
Cart store backed by Valkey.

Carts are shared by every orchestrator instance, so they live in Valkey
under "cart:{client_id}" with a TTL refreshed on every write. An expired
cart reads back as empty.
"""

import logging
from uuid import UUID

from clients.valkey_client import ValkeyClient
from core.config import ProvisioningConfig
from core.errors import NotFoundError, ValidationError
from core.models import Cart, LineItem, LineItemKind
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CartService:
    """Service for per-client carts."""

    KEY_PREFIX = "cart:"

    def __init__(self, valkey: ValkeyClient, config: ProvisioningConfig):
        self.valkey = valkey
        self.config = config

    def _key(self, client_id: UUID) -> str:
        return f"{self.KEY_PREFIX}{client_id}"

    def _save(self, cart: Cart) -> Cart:
        cart = cart.model_copy(update={"updated_at": now_utc()})
        self.valkey.set_json(
            self._key(cart.client_id),
            cart.model_dump(mode="json"),
            expire_seconds=self.config.cart_ttl_seconds,
        )
        return cart

    def get_cart(self, client_id: UUID) -> Cart:
        data = self.valkey.get_json(self._key(client_id))
        if data is None:
            return Cart(client_id=client_id)
        return Cart.model_validate(data)

    def add_item(self, client_id: UUID, item: LineItem) -> Cart:
        """
        Add an item.

        Raises:
            ValidationError: The cart already holds this domain name
        """
        cart = self.get_cart(client_id)
        if item.kind.is_domain and item.kind != LineItemKind.DOMAIN_RENEWAL:
            for existing in cart.items:
                if existing.domain_name == item.domain_name and existing.kind != LineItemKind.DOMAIN_RENEWAL:
                    raise ValidationError(f"{item.domain_name} is already in the cart")
        cart.items.append(item)
        return self._save(cart)

    def update_quantity(self, client_id: UUID, item_id: UUID, quantity: int) -> Cart:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        cart = self.get_cart(client_id)
        for index, existing in enumerate(cart.items):
            if existing.id == item_id:
                if existing.kind.is_domain:
                    raise ValidationError("Domain items have a fixed quantity of 1")
                cart.items[index] = existing.model_copy(update={"quantity": quantity})
                return self._save(cart)
        raise NotFoundError(f"Cart item {item_id} not found")

    def remove_item(self, client_id: UUID, item_id: UUID) -> Cart:
        cart = self.get_cart(client_id)
        remaining = [item for item in cart.items if item.id != item_id]
        if len(remaining) == len(cart.items):
            raise NotFoundError(f"Cart item {item_id} not found")
        return self._save(cart.model_copy(update={"items": remaining}))

    def clear(self, client_id: UUID) -> None:
        self.valkey.delete(self._key(client_id))
        logger.debug(f"Cleared cart for client {client_id}")
