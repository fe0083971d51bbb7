from __future__ import annotations

from ..extensions import db
from marketcore.time_utils import to_utc_z, utcnow


VENDOR_BADGES = ("top_rated", "fast_delivery", "excellent_service")


class VendorReview(db.Model):
    """Customer review of a vendor for one order; all ratings are 1-5."""
    __tablename__ = "vendor_reviews"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_vendor_reviews_order"),
        db.Index("ix_vendor_reviews_vendor_created", "vendor_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    rating = db.Column(db.Integer, nullable=False)
    food_quality = db.Column(db.Integer, nullable=False)
    delivery_time = db.Column(db.Integer, nullable=False)
    customer_service = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False, default="")
    photos = db.Column(db.JSON, nullable=False, default=list)

    helpful = db.Column(db.Integer, nullable=False, default=0)
    unhelpful = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "rating": self.rating,
            "food_quality": self.food_quality,
            "delivery_time": self.delivery_time,
            "customer_service": self.customer_service,
            "comment": self.comment,
            "photos": list(self.photos or []),
            "helpful": self.helpful,
            "unhelpful": self.unhelpful,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VendorResponse(db.Model):
    """Vendor's public reply to a review (at most one per review)."""
    __tablename__ = "vendor_responses"
    __table_args__ = (
        db.UniqueConstraint("review_id", name="uq_vendor_responses_review"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(db.Integer, db.ForeignKey("vendor_reviews.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    response = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    review = db.relationship(
        "VendorReview",
        backref=db.backref("response", uselist=False, lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "vendor_id": self.vendor_id,
            "response": self.response,
            "created_at": to_utc_z(self.created_at),
        }


class VendorPerformance(db.Model):
    """
    Derived per-vendor reputation record.

    Never authored directly: vendor_service.recompute_vendor_performance
    rebuilds every field from the vendor's current reviews.
    """
    __tablename__ = "vendor_performance"

    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)

    total_reviews = db.Column(db.Integer, nullable=False, default=0)
    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    food_quality_rating = db.Column(db.Float, nullable=False, default=0.0)
    delivery_time_rating = db.Column(db.Float, nullable=False, default=0.0)
    customer_service_rating = db.Column(db.Float, nullable=False, default=0.0)
    response_rate = db.Column(db.Float, nullable=False, default=0.0)  # percent of reviews answered
    response_time = db.Column(db.Float, nullable=False, default=0.0)  # mean hours to answer
    badges = db.Column(db.JSON, nullable=False, default=list)
    tier = db.Column(db.String(16), nullable=False, default="bronze")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def metrics(self) -> dict:
        """Derived fields only; two records built from the same reviews compare equal."""
        return {
            "total_reviews": self.total_reviews,
            "average_rating": self.average_rating,
            "food_quality_rating": self.food_quality_rating,
            "delivery_time_rating": self.delivery_time_rating,
            "customer_service_rating": self.customer_service_rating,
            "response_rate": self.response_rate,
            "response_time": self.response_time,
            "badges": list(self.badges or []),
            "tier": self.tier,
        }

    def to_dict(self) -> dict:
        data = {"vendor_id": self.vendor_id}
        data.update(self.metrics())
        data["created_at"] = to_utc_z(self.created_at)
        data["updated_at"] = to_utc_z(self.updated_at)
        return data
