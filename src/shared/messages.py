"""Wire contract for orders travelling from checkout to the warehouse.

These models are the queue's external contract (anti-corruption layer),
separate from the internal ``Order`` record. Every field is optional when
parsing: the warehouse consumer decides what a usable message is, so a
missing ``order_id`` must survive decoding and reach that decision.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict


class OrderItemMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: int | None = None
    quantity: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.product_id is not None and self.quantity is not None


class OrderMessage(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "order_id": 1000,
                    "shopping_cart_id": 1,
                    "customer_id": 100,
                    "items": [{"product_id": 5, "quantity": 2}],
                    "timestamp": "2026-01-01T12:00:00+00:00",
                }
            ]
        },
    )

    order_id: int | None = None
    shopping_cart_id: int | None = None
    customer_id: int | None = None
    items: list[OrderItemMessage] | None = None
    timestamp: str | None = None

    @classmethod
    def from_order(cls, order) -> "OrderMessage":
        """Project an ``Order`` onto the wire format."""
        created_at = order.created_at or datetime.now(UTC)
        return cls(
            order_id=order.order_id,
            shopping_cart_id=order.cart_id,
            customer_id=order.customer_id,
            items=[OrderItemMessage(product_id=item.product_id, quantity=item.quantity) for item in order.items],
            timestamp=created_at.isoformat(),
        )

    @property
    def item_count(self) -> int:
        return len(self.items) if self.items else 0

    def invalid_items(self) -> list[OrderItemMessage]:
        return [item for item in self.items or [] if not item.is_complete]

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")
