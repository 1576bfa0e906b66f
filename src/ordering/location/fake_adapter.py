"""In-memory store directory and address book for development and testing.

Stores and addresses are registered at runtime. Distances use the haversine
formula; the nearest store wins if it lies within ``max_radius_km``.
"""

import math

from ordering.location.port import AddressBook, Coordinates, StoreLocator

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class InMemoryStoreLocator(StoreLocator):
    def __init__(self, max_radius_km: float = 10.0) -> None:
        self.max_radius_km = max_radius_km
        self.stores: dict[str, Coordinates] = {}
        self.calls: list[dict] = []

    def add_store(self, store_id, latitude: float, longitude: float) -> None:
        self.stores[str(store_id)] = Coordinates(latitude, longitude)

    def nearest_store(self, point: Coordinates) -> str | None:
        self.calls.append({"method": "nearest_store", "point": point})
        best = min(
            ((haversine_km(point, location), store_id) for store_id, location in self.stores.items()),
            default=None,
        )
        if best is None or best[0] > self.max_radius_km:
            return None
        return best[1]


class InMemoryAddressBook(AddressBook):
    def __init__(self) -> None:
        # customer id -> {address id -> coordinates}; first address added is primary
        self.addresses: dict[str, dict[str, Coordinates | None]] = {}

    def add_address(self, customer_id, address_id, latitude=None, longitude=None) -> None:
        coords = Coordinates(latitude, longitude) if latitude is not None and longitude is not None else None
        self.addresses.setdefault(str(customer_id), {})[str(address_id)] = coords

    def address_coordinates(self, customer_id, address_id) -> Coordinates | None:
        return self.addresses.get(str(customer_id), {}).get(str(address_id))

    def primary_coordinates(self, customer_id) -> Coordinates | None:
        saved = self.addresses.get(str(customer_id))
        if not saved:
            return None
        return next(iter(saved.values()))
