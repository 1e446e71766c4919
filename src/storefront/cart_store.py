"""Cart storage for storefront."""

import logging

from .database import Database
from .errors import CartNotFoundError, InvalidOrderError
from .models import Cart, CartItem, _utc_now

logger = logging.getLogger(__name__)

CARTS = "carts"


class CartStore:
    """Manages per-user carts."""

    def __init__(self, db: Database):
        self.db = db

    def get_cart(self, user_id: str) -> Cart:
        """
        Get a user's cart.

        Raises:
            CartNotFoundError: If the user has no cart.
        """
        doc = self.db.get(CARTS, user_id)
        if doc is None:
            raise CartNotFoundError(user_id)
        return Cart.from_dict(doc)

    def add_item(self, user_id: str, item: CartItem) -> Cart:
        """Add an item, merging it into an identical line if one exists."""
        if item.quantity < 1:
            raise InvalidOrderError("quantity must be at least 1")

        with self.db.transaction() as session:
            doc = session.get(CARTS, user_id)
            cart = Cart.from_dict(doc) if doc else Cart(user_id=user_id)
            for existing in cart.items:
                if existing.same_line(item):
                    existing.quantity += item.quantity
                    break
            else:
                cart.items.append(item)
            cart.updated_at = _utc_now()
            if doc:
                session.replace_one(CARTS, cart.to_dict())
            else:
                session.insert_one(CARTS, cart.to_dict())
        return cart

    def remove_item(self, user_id: str, index: int) -> Cart:
        """
        Remove the item at a position in the cart.

        Raises:
            CartNotFoundError: If the user has no cart.
            InvalidOrderError: If the index is out of range.
        """
        with self.db.transaction() as session:
            doc = session.get(CARTS, user_id)
            if doc is None:
                raise CartNotFoundError(user_id)
            cart = Cart.from_dict(doc)
            if not 0 <= index < len(cart.items):
                raise InvalidOrderError(f"cart has no item at position {index}")
            cart.items.pop(index)
            cart.updated_at = _utc_now()
            session.replace_one(CARTS, cart.to_dict())
        return cart

    def clear_cart(self, user_id: str) -> bool:
        """
        Empty a user's cart.

        Returns:
            True if a cart existed and was emptied, False otherwise.
        """

        def empty(doc: dict) -> bool:
            doc["items"] = []
            doc["updated_at"] = _utc_now()
            return True

        cleared = self.db.update_one(CARTS, user_id, empty) == 1
        if cleared:
            logger.debug("Cleared cart for user %s", user_id)
        return cleared
