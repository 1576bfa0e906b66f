"""Store resolution ports (abstract interfaces).

Checkout never decides which store serves a customer by itself. It asks a
StoreLocator for the nearest store to a point and an AddressBook for the
customer's saved coordinates.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


class StoreLocator(ABC):
    @abstractmethod
    def nearest_store(self, point: Coordinates) -> str | None:
        """Id of the closest store within the service radius, or None."""
        ...


class AddressBook(ABC):
    @abstractmethod
    def address_coordinates(self, customer_id: str, address_id: str) -> Coordinates | None:
        """Coordinates of one of the customer's saved addresses, if it has them."""
        ...

    @abstractmethod
    def primary_coordinates(self, customer_id: str) -> Coordinates | None:
        """Coordinates of the customer's primary address, if it has them."""
        ...
