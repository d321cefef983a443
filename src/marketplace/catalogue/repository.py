"""Repository for the Magazine aggregate.

Reservation and release are compare-and-decrement operations: the read,
the availability check and the write happen under ``datastore_lock`` so
two checkouts can never both take the last copy.
"""

from protean.exceptions import ObjectNotFoundError

from marketplace.catalogue.magazine import Magazine
from marketplace.domain import marketplace
from marketplace.utils.locks import datastore_lock


@marketplace.repository(part_of=Magazine)
class MagazineRepository:
    def find(self, magazine_id: str) -> Magazine | None:
        """Return the magazine, or None when the id is unknown."""
        with datastore_lock:
            try:
                return self.get(magazine_id)
            except ObjectNotFoundError:
                return None

    def reserve(self, magazine_id: str, order_id: str, quantity: int) -> Magazine:
        """Atomically take ``quantity`` copies. Raises InsufficientInventory."""
        with datastore_lock:
            magazine = self.get(magazine_id)
            magazine.reserve(order_id, quantity)
            self.add(magazine)
            return magazine

    def release(self, magazine_id: str, order_id: str, quantity: int) -> Magazine:
        """Atomically return ``quantity`` copies to sale."""
        with datastore_lock:
            magazine = self.get(magazine_id)
            magazine.release(order_id, quantity)
            self.add(magazine)
            return magazine
