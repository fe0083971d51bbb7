# Overview: Service-layer operations for vendor reviews and the derived performance record.

"""
Vendor Reputation Service

WHY: A vendor's rating, badges and tier are derived data. They are rebuilt
from the vendor's CURRENT reviews on every review change, so adding and
then removing a review returns the record to its prior value.

THRESHOLDS:
- Badges: top_rated (avg rating >= 4.5), fast_delivery (avg delivery-time
  rating >= 4.0), excellent_service (avg customer-service rating >= 4.5).
- Tier: platinum (>= 100 reviews and >= 4.7), gold (>= 50 and >= 4.5),
  silver (>= 20 and >= 4.3), otherwise bronze.

Averages are stored rounded to two decimals; badges and tier are decided
on the unrounded values.

Response metrics come from VendorResponse rows:
- response_rate: percent of the vendor's reviews that have a response
- response_time: mean hours between review and response (0 when none)
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Order, User, VendorPerformance, VendorResponse, VendorReview
from marketcore.time_utils import utcnow
from ..validation import require_rating
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry


# (minimum reviews, minimum average rating, tier), highest first
VENDOR_TIER_THRESHOLDS = (
    (100, 4.7, "platinum"),
    (50, 4.5, "gold"),
    (20, 4.3, "silver"),
)


def vendor_tier(total_reviews: int, average_rating: float) -> str:
    for min_reviews, min_rating, tier in VENDOR_TIER_THRESHOLDS:
        if total_reviews >= min_reviews and average_rating >= min_rating:
            return tier
    return "bronze"


def vendor_badges(average_rating: float, delivery_time_rating: float, customer_service_rating: float) -> list[str]:
    badges = []
    if average_rating >= 4.5:
        badges.append("top_rated")
    if delivery_time_rating >= 4.0:
        badges.append("fast_delivery")
    if customer_service_rating >= 4.5:
        badges.append("excellent_service")
    return badges


def _mean(values: list) -> float:
    return sum(values) / len(values) if values else 0.0


def _recompute(vendor_id: int) -> VendorPerformance:
    """Rebuild the vendor's performance row inside the caller's transaction."""
    reviews = store.list_where(VendorReview, vendor_id=vendor_id)

    avg_rating = _mean([r.rating for r in reviews])
    avg_food = _mean([r.food_quality for r in reviews])
    avg_delivery = _mean([r.delivery_time for r in reviews])
    avg_service = _mean([r.customer_service for r in reviews])

    answered = [r for r in reviews if r.response is not None]
    response_rate = (len(answered) / len(reviews) * 100) if reviews else 0.0
    response_time = _mean([
        (r.response.created_at - r.created_at).total_seconds() / 3600 for r in answered
    ])

    perf = store.get(VendorPerformance, vendor_id, lock=True)
    if perf is None:
        perf = store.insert(VendorPerformance(vendor_id=vendor_id))

    perf.total_reviews = len(reviews)
    perf.average_rating = round(avg_rating, 2)
    perf.food_quality_rating = round(avg_food, 2)
    perf.delivery_time_rating = round(avg_delivery, 2)
    perf.customer_service_rating = round(avg_service, 2)
    perf.response_rate = round(response_rate, 2)
    perf.response_time = round(max(response_time, 0.0), 2)
    perf.badges = vendor_badges(avg_rating, avg_delivery, avg_service)
    perf.tier = vendor_tier(len(reviews), avg_rating)
    perf.updated_at = utcnow()
    return perf


def recompute_vendor_performance(vendor_id: int) -> VendorPerformance:
    def _op():
        with hold_keys(("vendor", vendor_id)):
            perf = _recompute(vendor_id)
            db.session.commit()
            return perf

    return run_with_retry(_op)


# =============================================================================
# REVIEWS
# =============================================================================

def add_review(
    *,
    vendor_id: int,
    customer_id: int,
    order_id: int,
    rating: int,
    food_quality: int,
    delivery_time: int,
    customer_service: int,
    comment: str = "",
    photos: list[str] | None = None,
) -> VendorReview:
    """
    Store a review and refresh the vendor's performance in the same transaction.

    One review per order (ConflictError on a second one).
    """
    for field, value in (
        ("rating", rating),
        ("food_quality", food_quality),
        ("delivery_time", delivery_time),
        ("customer_service", customer_service),
    ):
        require_rating(field, value)

    def _op():
        with hold_keys(("vendor", vendor_id)):
            store.require(User, vendor_id, label="Vendor")
            store.require(User, customer_id, label="Customer")
            store.require(Order, order_id, label="Order")
            if store.get_one_by(VendorReview, order_id=order_id) is not None:
                raise ConflictError(f"Order {order_id} has already been reviewed")

            now = utcnow()
            review = store.insert(VendorReview(
                vendor_id=vendor_id,
                customer_id=customer_id,
                order_id=order_id,
                rating=rating,
                food_quality=food_quality,
                delivery_time=delivery_time,
                customer_service=customer_service,
                comment=comment,
                photos=list(photos or []),
                created_at=now,
                updated_at=now,
            ))
            _recompute(vendor_id)
            db.session.commit()
            return review

    return run_with_retry(_op)


def get_review(review_id: int) -> VendorReview:
    return store.require(VendorReview, review_id, label="Review")


def list_reviews_for_vendor(vendor_id: int) -> list[VendorReview]:
    return store.list_where(VendorReview, vendor_id=vendor_id)


def remove_review(review_id: int) -> VendorPerformance:
    """Delete a review (and its response) and return the refreshed performance record."""
    review = get_review(review_id)
    vendor_id = review.vendor_id

    def _op():
        with hold_keys(("vendor", vendor_id)):
            target = store.require(VendorReview, review_id, lock=True, label="Review")
            db.session.delete(target)
            db.session.flush()
            perf = _recompute(vendor_id)
            db.session.commit()
            return perf

    return run_with_retry(_op)


def vote_review(review_id: int, helpful: bool) -> VendorReview:
    if not isinstance(helpful, bool):
        raise ValidationError("helpful must be true or false")

    def _op():
        with hold_keys(("review", review_id)):
            review = store.require(VendorReview, review_id, lock=True, label="Review")
            if helpful:
                review.helpful = review.helpful + 1
            else:
                review.unhelpful = review.unhelpful + 1
            db.session.commit()
            return review

    return run_with_retry(_op)


def respond_to_review(review_id: int, vendor_id: int, response: str) -> VendorResponse:
    """
    Attach the vendor's reply to a review and refresh response metrics.

    Only the reviewed vendor may respond, and only once.
    """
    if not response or not response.strip():
        raise ValidationError("response must not be empty")

    def _op():
        with hold_keys(("vendor", vendor_id)):
            review = store.require(VendorReview, review_id, label="Review")
            if review.vendor_id != vendor_id:
                raise ValidationError(f"Review {review_id} does not belong to vendor {vendor_id}")
            if review.response is not None:
                raise ConflictError(f"Review {review_id} already has a response")

            reply = store.insert(VendorResponse(
                review=review,
                vendor_id=vendor_id,
                response=response.strip(),
            ))
            _recompute(vendor_id)
            db.session.commit()
            return reply

    return run_with_retry(_op)


# =============================================================================
# PERFORMANCE READS
# =============================================================================

def get_vendor_performance(vendor_id: int) -> VendorPerformance:
    """The stored record, or a freshly computed one if the vendor has none yet."""
    perf = store.get(VendorPerformance, vendor_id)
    if perf is None:
        store.require(User, vendor_id, label="Vendor")
        perf = recompute_vendor_performance(vendor_id)
    return perf


def get_vendor_leaderboard(limit: int = 10) -> list[VendorPerformance]:
    """Vendors ranked by average rating, then review count."""
    records = store.list_where(VendorPerformance, VendorPerformance.total_reviews > 0)
    ranked = sorted(records, key=lambda p: (p.average_rating, p.total_reviews), reverse=True)
    return ranked[:max(limit, 0)]
