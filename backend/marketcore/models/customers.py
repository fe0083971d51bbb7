from __future__ import annotations

from ..extensions import db
from marketcore.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    POS customer with denormalized purchase aggregates.

    WHY: Lets vendors track lifetime value and repeat purchases without
    re-summing sales. Aggregates are written only by sales_service.record_sale.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    # Denormalized aggregates (updated when sales are recorded)
    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "total_purchases_cents": self.total_purchases_cents,
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
