from __future__ import annotations

from ..extensions import db
from marketcore.time_utils import to_utc_z, utcnow


ORDER_STATUSES = (
    "pending",
    "accepted",
    "preparing",
    "ready",
    "assigned",
    "in_delivery",
    "delivered",
    "cancelled",
)
TERMINAL_STATUSES = frozenset({"delivered", "cancelled"})
PAYMENT_METHODS = ("cash", "card", "wallet")

# Status -> the timestamp column stamped on first entry into that status
STATUS_TIMESTAMP_FIELDS = {
    "accepted": "accepted_at",
    "preparing": "preparing_at",
    "ready": "ready_at",
    "assigned": "assigned_at",
    "delivered": "delivered_at",
}


class Order(db.Model):
    """
    Customer order moving through the delivery lifecycle.

    Transition timestamps (accepted_at .. delivered_at) are written once,
    on first entry into the matching status, so they never move backwards.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_store_status", "store_id", "status"),
        db.Index("ix_orders_status_driver", "status", "driver_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)

    delivery_address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    scheduled_date = db.Column(db.Date, nullable=True, index=True)
    scheduled_time = db.Column(db.String(16), nullable=True)

    # Package delivery (courier orders that carry no catalog products)
    is_package_delivery = db.Column(db.Boolean, nullable=False, default=False)
    package_description = db.Column(db.String(255), nullable=True)
    recipient_name = db.Column(db.String(128), nullable=True)
    recipient_phone = db.Column(db.String(32), nullable=True)
    who_pays = db.Column(db.String(16), nullable=True)  # customer, receiver

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    preparing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("User", foreign_keys=[customer_id])
    driver = db.relationship("User", foreign_keys=[driver_id])
    store = db.relationship("Store", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "store_id": self.store_id,
            "driver_id": self.driver_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "delivery_address": self.delivery_address,
            "city": self.city,
            "customer_phone": self.customer_phone,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "scheduled_time": self.scheduled_time,
            "is_package_delivery": self.is_package_delivery,
            "package_description": self.package_description,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "who_pays": self.who_pays,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "preparing_at": to_utc_z(self.preparing_at),
            "ready_at": to_utc_z(self.ready_at),
            "assigned_at": to_utc_z(self.assigned_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Line item on an order; price is captured at order time."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, order_by="OrderItem.id", cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
        }
