from __future__ import annotations

from ..extensions import db
from marketcore.time_utils import to_utc_z, utcnow


MEMBERSHIP_TIERS = ("bronze", "silver", "gold", "platinum")
REWARD_CATEGORIES = ("discount", "free_item", "bonus_points")
REDEMPTION_STATUSES = ("active", "used", "expired")


class LoyaltyAccount(db.Model):
    """
    Loyalty account for a marketplace customer (one per customer).

    `tier` is derived from `points` on every change; it is never set on its own.
    """
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_loyalty_accounts_customer"),
        db.UniqueConstraint("referral_code", name="uq_loyalty_accounts_referral_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    points = db.Column(db.Integer, nullable=False, default=0)
    total_points_earned = db.Column(db.Integer, nullable=False, default=0)
    total_points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(16), nullable=False, default="bronze")

    referral_code = db.Column(db.String(16), nullable=False)
    referral_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "points": self.points,
            "total_points_earned": self.total_points_earned,
            "total_points_redeemed": self.total_points_redeemed,
            "tier": self.tier,
            "referral_code": self.referral_code,
            "referral_count": self.referral_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - earn: points added (positive delta)
    - redeem: points spent (negative delta, stored as positive magnitude)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_account_created", "loyalty_account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    loyalty_account_id = db.Column(db.Integer, db.ForeignKey("loyalty_accounts.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False)  # earn, redeem
    points = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")
    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    account = db.relationship("LoyaltyAccount", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "loyalty_account_id": self.loyalty_account_id,
            "type": self.type,
            "points": self.points,
            "description": self.description,
            "related_order_id": self.related_order_id,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyReward(db.Model):
    """Catalog entry a customer can buy with points."""
    __tablename__ = "loyalty_rewards"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    points_cost = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(16), nullable=False, default="discount")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "points_cost": self.points_cost,
            "discount_cents": self.discount_cents,
            "category": self.category,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }


class CustomerRedemption(db.Model):
    __tablename__ = "customer_redemptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    reward_id = db.Column(db.Integer, db.ForeignKey("loyalty_rewards.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    redeemed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    reward = db.relationship("LoyaltyReward")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "reward_id": self.reward_id,
            "status": self.status,
            "redeemed_at": to_utc_z(self.redeemed_at),
            "used_at": to_utc_z(self.used_at),
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }
