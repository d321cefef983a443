"""Domain events for the Magazine aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Magazine")
class MagazineRegistered:
    """A publisher listed a new magazine with its prices and stock."""

    __version__ = 1

    magazine_id: Identifier(required=True)
    publisher_id: Identifier(required=True)
    title: String(required=True)
    retail_price: Float(required=True)
    wholesale_price: Float(required=True)
    available_quantity: Integer(required=True)
    registered_at: DateTime(required=True)


@marketplace.event(part_of="Magazine")
class StockReserved:
    """Copies were held back for a pending order."""

    __version__ = 1

    magazine_id: Identifier(required=True)
    order_id: Identifier(required=True)
    quantity: Integer(required=True)
    previous_available: Integer(required=True)
    new_available: Integer(required=True)
    reserved_at: DateTime(required=True)


@marketplace.event(part_of="Magazine")
class StockReleased:
    """Copies held for an order went back on sale."""

    __version__ = 1

    magazine_id: Identifier(required=True)
    order_id: Identifier(required=True)
    quantity: Integer(required=True)
    previous_available: Integer(required=True)
    new_available: Integer(required=True)
    released_at: DateTime(required=True)
