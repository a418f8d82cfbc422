"""Shopping cart model. Persisted in Valkey by CartService."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.line_item import LineItem


class Cart(BaseModel):
    client_id: UUID
    items: list[LineItem] = Field(default_factory=list)
    updated_at: datetime | None = None

    @property
    def subtotal_cents(self) -> int:
        return sum(item.total_cents for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items
