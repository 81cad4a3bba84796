"""Abstract repository for the Cart aggregate (one cart per user)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pos.domain.model.cart import Cart


class CartRepository(ABC):

    @abstractmethod
    def get(self, user_id: str) -> Cart | None:
        """Return the user's saved cart, or None."""

    @abstractmethod
    def save(self, cart: Cart) -> None:
        """Persist a new or updated cart."""

    @abstractmethod
    def delete(self, user_id: str) -> None:
        """Remove the user's cart if it exists."""
