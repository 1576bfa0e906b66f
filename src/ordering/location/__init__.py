"""Store resolution factory.

Provides get_store_locator() / get_address_book() and their set/reset
counterparts. The in-memory adapters are the defaults; deployments register
their own implementations at startup.
"""

from ordering.config import get_settings
from ordering.location.fake_adapter import InMemoryAddressBook, InMemoryStoreLocator
from ordering.location.port import AddressBook, StoreLocator

_current_locator: StoreLocator | None = None
_current_address_book: AddressBook | None = None


def get_store_locator() -> StoreLocator:
    global _current_locator
    if _current_locator is None:
        _current_locator = InMemoryStoreLocator(max_radius_km=get_settings().max_store_radius_km)
    return _current_locator


def set_store_locator(locator: StoreLocator) -> None:
    global _current_locator
    _current_locator = locator


def get_address_book() -> AddressBook:
    global _current_address_book
    if _current_address_book is None:
        _current_address_book = InMemoryAddressBook()
    return _current_address_book


def set_address_book(address_book: AddressBook) -> None:
    global _current_address_book
    _current_address_book = address_book


def reset_location() -> None:
    """Reset both collaborators to their defaults."""
    global _current_locator, _current_address_book
    _current_locator = None
    _current_address_book = None
