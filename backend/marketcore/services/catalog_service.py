# Overview: Service-layer operations for users, stores and catalog products.

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError
from ..models import User, Store, Product
from ..models.accounts import USER_ROLES
from ..validation import require_amount, require_choice
from . import entity_store as store
from .concurrency import run_with_retry


def create_user(*, name: str, email: str, role: str = "customer", phone: str | None = None) -> User:
    require_choice("role", role, USER_ROLES)

    def _op():
        if store.get_one_by(User, email=email) is not None:
            raise ConflictError(f"User with email {email} already exists")
        user = store.insert(User(name=name, email=email, phone=phone, role=role))
        db.session.commit()
        return user

    return run_with_retry(_op)


def get_user(user_id: int) -> User:
    return store.require(User, user_id, label="User")


def list_users(role: str | None = None) -> list[User]:
    if role is None:
        return store.list_where(User)
    return store.list_where(User, role=role)


def create_store(
    *,
    vendor_id: int,
    name: str,
    type: str | None = None,
    city: str | None = None,
    address: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
) -> Store:
    def _op():
        store.require(User, vendor_id, label="Vendor")
        shop = store.insert(Store(
            vendor_id=vendor_id,
            name=name,
            type=type,
            city=city,
            address=address,
            latitude=latitude,
            longitude=longitude,
        ))
        db.session.commit()
        return shop

    return run_with_retry(_op)


def get_store(store_id: int) -> Store:
    return store.require(Store, store_id, label="Store")


def list_stores_for_vendor(vendor_id: int) -> list[Store]:
    return store.list_where(Store, vendor_id=vendor_id)


def create_product(
    *,
    store_id: int,
    name: str,
    price_cents: int,
    description: str | None = None,
    available: bool = True,
) -> Product:
    require_amount("price_cents", price_cents)

    def _op():
        store.require(Store, store_id, label="Store")
        product = store.insert(Product(
            store_id=store_id,
            name=name,
            description=description,
            price_cents=price_cents,
            available=available,
        ))
        db.session.commit()
        return product

    return run_with_retry(_op)


def list_products(store_id: int, *, available_only: bool = False) -> list[Product]:
    if available_only:
        return store.list_where(Product, store_id=store_id, available=True)
    return store.list_where(Product, store_id=store_id)
