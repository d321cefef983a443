"""Magazine aggregate — a publisher's listing and its sellable stock.

``available_quantity`` is the only counter the order core touches. It is
decremented when a checkout reserves copies and restored when the order is
cancelled or its checkout expires. It never goes negative.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace.catalogue.events import MagazineRegistered, StockReleased, StockReserved
from marketplace.domain import marketplace
from marketplace.errors import InsufficientInventory


@marketplace.aggregate
class Magazine:
    publisher_id: Identifier(required=True)
    title: String(required=True, max_length=255)
    description: Text()
    image_url: String(max_length=1024)
    retail_price: Float(required=True, min_value=0.0)
    wholesale_price: Float(required=True, min_value=0.0)
    available_quantity: Integer(default=0, min_value=0)
    created_at: DateTime(default=lambda: datetime.now(UTC))

    @invariant.post
    def wholesale_price_cannot_exceed_retail_price(self):
        if self.wholesale_price is not None and self.retail_price is not None:
            if self.wholesale_price > self.retail_price:
                raise ValidationError({"wholesale_price": ["Wholesale price cannot exceed retail price"]})

    @classmethod
    def register(
        cls,
        publisher_id,
        title,
        retail_price,
        wholesale_price,
        available_quantity=0,
        description=None,
        image_url=None,
    ):
        now = datetime.now(UTC)
        magazine = cls(
            publisher_id=publisher_id,
            title=title,
            description=description,
            image_url=image_url,
            retail_price=retail_price,
            wholesale_price=wholesale_price,
            available_quantity=available_quantity,
            created_at=now,
        )
        magazine.raise_(
            MagazineRegistered(
                magazine_id=magazine.id,
                publisher_id=publisher_id,
                title=title,
                retail_price=retail_price,
                wholesale_price=wholesale_price,
                available_quantity=available_quantity,
                registered_at=now,
            )
        )
        return magazine

    def reserve(self, order_id, quantity):
        """Hold ``quantity`` copies for an order."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        available = self.available_quantity
        if available < quantity:
            raise InsufficientInventory(str(self.id), quantity, available)

        self.available_quantity = available - quantity
        self.raise_(
            StockReserved(
                magazine_id=self.id,
                order_id=order_id,
                quantity=quantity,
                previous_available=available,
                new_available=self.available_quantity,
                reserved_at=datetime.now(UTC),
            )
        )

    def release(self, order_id, quantity):
        """Put ``quantity`` copies held for an order back on sale."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        available = self.available_quantity
        self.available_quantity = available + quantity
        self.raise_(
            StockReleased(
                magazine_id=self.id,
                order_id=order_id,
                quantity=quantity,
                previous_available=available,
                new_available=self.available_quantity,
                released_at=datetime.now(UTC),
            )
        )
