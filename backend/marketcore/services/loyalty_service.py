# Overview: Service-layer operations for loyalty points, tiers, rewards and referrals.

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import CustomerRedemption, LoyaltyAccount, LoyaltyReward, LoyaltyTransaction, User
from ..models.loyalty import REWARD_CATEGORIES
from marketcore.time_utils import parse_iso_datetime, utcnow
from ..validation import require_amount, require_choice
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry
"""
Loyalty Ledger Invariants (authoritative)

- points moves only through _apply_points(); every change appends one
  LoyaltyTransaction (earn for positive deltas, redeem otherwise).
- tier is a pure function of the current points total (tier_for_points).
  It is recomputed on every change and never set independently, so two
  accounts with equal points always share a tier.
- total_points_earned / total_points_redeemed only ever grow.
- The ledger applies deltas it is given; point formulas (per-order accrual,
  promotions) belong to the caller.
"""

# (minimum points, tier), highest first
TIER_THRESHOLDS = (
    (5000, "platinum"),
    (3000, "gold"),
    (1000, "silver"),
    (0, "bronze"),
)

REFERRAL_BONUS_POINTS = 500
REFERRAL_CODE_LENGTH = 8
_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits


def tier_for_points(points: int) -> str:
    for minimum, tier in TIER_THRESHOLDS:
        if points >= minimum:
            return tier
    return "bronze"


def _new_referral_code() -> str:
    while True:
        code = "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))
        if store.get_one_by(LoyaltyAccount, referral_code=code) is None:
            return code


def _apply_points(
    account: LoyaltyAccount,
    delta: int,
    description: str,
    related_order_id: int | None,
) -> LoyaltyAccount:
    """Core points change without locking, retry, or commit. A zero delta writes nothing."""
    if delta == 0:
        return account
    account.points = account.points + delta
    if delta > 0:
        account.total_points_earned = account.total_points_earned + delta
    else:
        account.total_points_redeemed = account.total_points_redeemed + abs(delta)
    account.tier = tier_for_points(account.points)
    account.updated_at = utcnow()

    store.insert(LoyaltyTransaction(
        loyalty_account_id=account.id,
        type="earn" if delta > 0 else "redeem",
        points=abs(delta),
        description=description,
        related_order_id=related_order_id,
    ))
    return account


def _locked_account(customer_id: int) -> LoyaltyAccount:
    account = store.get_one_by(LoyaltyAccount, lock=True, customer_id=customer_id)
    if account is None:
        raise NotFoundError("Loyalty account for customer", customer_id)
    return account


# =============================================================================
# ACCOUNTS
# =============================================================================

def create_loyalty_account(customer_id: int, *, points: int = 0) -> LoyaltyAccount:
    """Open an account with a fresh unique referral code."""
    if not isinstance(points, int) or isinstance(points, bool) or points < 0:
        raise ValidationError("points must be a non-negative integer")

    def _op():
        with hold_keys(("loyalty", customer_id)):
            store.require(User, customer_id, label="Customer")
            if store.get_one_by(LoyaltyAccount, customer_id=customer_id) is not None:
                raise ConflictError(f"Customer {customer_id} already has a loyalty account")
            account = store.insert(LoyaltyAccount(
                customer_id=customer_id,
                points=points,
                tier=tier_for_points(points),
                referral_code=_new_referral_code(),
            ))
            db.session.commit()
            return account

    return run_with_retry(_op)


def get_loyalty_account(customer_id: int) -> LoyaltyAccount:
    account = store.get_one_by(LoyaltyAccount, customer_id=customer_id)
    if account is None:
        raise NotFoundError("Loyalty account for customer", customer_id)
    return account


def update_loyalty_points(
    customer_id: int,
    delta: int,
    description: str | None = None,
    related_order_id: int | None = None,
) -> LoyaltyAccount:
    """
    Add delta (signed) to the customer's points and recompute the tier.

    Positive deltas grow total_points_earned; negative deltas grow
    total_points_redeemed by their magnitude. A zero delta changes nothing
    and logs no transaction.
    """
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("delta must be an integer")

    def _op():
        with hold_keys(("loyalty", customer_id)):
            account = _locked_account(customer_id)
            _apply_points(
                account,
                delta,
                description or ("Points earned" if delta > 0 else "Points redeemed"),
                related_order_id,
            )
            db.session.commit()
            return account

    return run_with_retry(_op)


def list_loyalty_transactions(customer_id: int) -> list[LoyaltyTransaction]:
    account = get_loyalty_account(customer_id)
    return store.list_where(LoyaltyTransaction, loyalty_account_id=account.id)


def register_referral(referral_code: str, *, bonus_points: int = REFERRAL_BONUS_POINTS) -> LoyaltyAccount:
    """Credit the owner of referral_code with one referral and its bonus points."""
    require_amount("bonus_points", bonus_points)
    account = store.get_one_by(LoyaltyAccount, referral_code=referral_code)
    if account is None:
        raise NotFoundError("Referral code", referral_code)
    customer_id = account.customer_id

    def _op():
        with hold_keys(("loyalty", customer_id)):
            locked = _locked_account(customer_id)
            locked.referral_count = locked.referral_count + 1
            if bonus_points:
                _apply_points(locked, bonus_points, f"Referral bonus ({referral_code})", None)
            else:
                locked.updated_at = utcnow()
            db.session.commit()
            return locked

    return run_with_retry(_op)


# =============================================================================
# REWARDS & REDEMPTIONS
# =============================================================================

def create_reward(
    *,
    name: str,
    points_cost: int,
    expires_at,
    description: str | None = None,
    discount_cents: int = 0,
    category: str = "discount",
) -> LoyaltyReward:
    require_amount("points_cost", points_cost, allow_zero=False)
    require_amount("discount_cents", discount_cents)
    require_choice("category", category, REWARD_CATEGORIES)
    if isinstance(expires_at, datetime):
        expires = expires_at
    else:
        try:
            expires = parse_iso_datetime(expires_at)
        except ValueError:
            raise ValidationError("expires_at must be an ISO-8601 datetime")
    if expires is None:
        raise ValidationError("expires_at is required")

    def _op():
        reward = store.insert(LoyaltyReward(
            name=name,
            description=description,
            points_cost=points_cost,
            discount_cents=discount_cents,
            category=category,
            expires_at=expires,
        ))
        db.session.commit()
        return reward

    return run_with_retry(_op)


def list_active_rewards(now: datetime | None = None) -> list[LoyaltyReward]:
    """Rewards that have not expired yet."""
    return store.list_where(LoyaltyReward, LoyaltyReward.expires_at > (now or utcnow()))


def redeem_reward(customer_id: int, reward_id: int, *, valid_days: int = 30) -> CustomerRedemption:
    """
    Spend points on a reward.

    The points deduction, its ledger row and the redemption are written in
    one transaction. The redemption expires after valid_days or when the
    reward itself expires, whichever comes first.

    Raises:
        NotFoundError: unknown account or reward
        ValidationError: reward expired or not enough points
    """
    def _op():
        with hold_keys(("loyalty", customer_id)):
            account = _locked_account(customer_id)
            reward = store.require(LoyaltyReward, reward_id, label="Reward")

            now = utcnow()
            if reward.expires_at <= now:
                raise ValidationError(f"Reward {reward_id} has expired")
            if account.points < reward.points_cost:
                raise ValidationError(
                    "Not enough points",
                    details={"points": account.points, "points_cost": reward.points_cost},
                )

            _apply_points(account, -reward.points_cost, f"Redeemed {reward.name}", None)
            redemption = store.insert(CustomerRedemption(
                customer_id=customer_id,
                reward_id=reward.id,
                status="active",
                redeemed_at=now,
                expires_at=min(now + timedelta(days=valid_days), reward.expires_at),
            ))
            db.session.commit()
            return redemption

    return run_with_retry(_op)


def use_redemption(redemption_id: int) -> CustomerRedemption:
    """Mark an active redemption as used. Expired or used ones are rejected."""
    def _op():
        with hold_keys(("redemption", redemption_id)):
            redemption = store.require(CustomerRedemption, redemption_id, lock=True, label="Redemption")
            now = utcnow()
            if redemption.status == "active" and redemption.expires_at <= now:
                redemption.status = "expired"
                db.session.commit()
            if redemption.status != "active":
                raise ValidationError(f"Redemption {redemption_id} is {redemption.status}")
            redemption.status = "used"
            redemption.used_at = now
            db.session.commit()
            return redemption

    return run_with_retry(_op)


def list_redemptions(customer_id: int, status: str | None = None) -> list[CustomerRedemption]:
    if status is None:
        return store.list_where(CustomerRedemption, customer_id=customer_id)
    return store.list_where(CustomerRedemption, customer_id=customer_id, status=status)


def expire_redemptions(now: datetime | None = None) -> int:
    """Flip every active redemption past its expiry to 'expired'. Returns the count."""
    cutoff = now or utcnow()

    def _op():
        stale = store.list_where(
            CustomerRedemption,
            CustomerRedemption.expires_at <= cutoff,
            status="active",
        )
        for redemption in stale:
            redemption.status = "expired"
        db.session.commit()
        return len(stale)

    return run_with_retry(_op)
