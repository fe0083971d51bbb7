# Overview: Service-layer operations for driver locations, availability, zones, dispatch, performance and routes.

from __future__ import annotations

import math
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..errors import InvariantViolation, NotFoundError, ValidationError
from ..models import DeliveryRoute, DeliveryZone, DriverLocation, DriverPerformance, Order, User
from ..models.delivery import DRIVER_STATUSES
from marketcore.time_utils import utcnow
from ..validation import enforce_rules_coordinates, require_amount, require_choice
from . import entity_store as store
from . import order_service
from .concurrency import hold_keys, run_with_retry
"""
Driver Geo-Matching Invariants (authoritative)

Distance:
- Flat-earth approximation: Euclidean distance in degrees times 111 km.
  No latitude correction; valid for short urban distances only.
- "Within radius" is inclusive (distance <= radius_km).

Locations:
- One DriverLocation row per driver; every ping overwrites it and stamps
  updated_at (last write wins).
- is_active is the driver's online switch. Inactive drivers are skipped by
  nearby, zone and dispatch lookups but keep their last position.

Zones:
- A driver is "in" a zone when within ZONE_VERTEX_RADIUS_KM of ANY polygon
  vertex. This is a proximity test, not point-in-polygon containment.
- DeliveryZone.active_drivers is derived and refreshed on every zone lookup.

Dispatch:
- assign_nearest_driver() considers only active drivers with pings newer than
  DRIVER_LOCATION_MAX_AGE_MINUTES and fewer than MAX_DRIVER_CONCURRENT_ORDERS
  active orders. The capacity check and the assignment run under the
  driver's key. Assignment goes through the order state machine.

Performance:
- One DriverPerformance row per driver. refresh_driver_performance()
  rebuilds every figure except rating from delivered orders.
"""

KM_PER_DEGREE = 111.0
ZONE_VERTEX_RADIUS_KM = 2.0
MAX_DRIVER_CONCURRENT_ORDERS = 3
_ACTIVE_DELIVERY_STATUSES = ("assigned", "in_delivery")
MAX_TOP_DRIVERS = 50
PERFORMANCE_FIELDS = (
    "total_deliveries",
    "average_delivery_time",
    "on_time_percentage",
    "rating",
    "earnings_cents",
)


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return math.sqrt((lat1 - lat2) ** 2 + (lng1 - lng2) ** 2) * KM_PER_DEGREE


# =============================================================================
# LOCATIONS
# =============================================================================

def update_driver_location(
    driver_id: int,
    latitude: float,
    longitude: float,
    *,
    heading: float = 0.0,
    speed: float = 0.0,
    accuracy: float = 0.0,
    is_active: bool = True,
    status: str | None = None,
) -> DriverLocation:
    """
    Upsert the driver's latest position, stamped now.

    A ping reports the driver online unless it says otherwise; status
    defaults to "online", or "offline" for an inactive ping.
    """
    enforce_rules_coordinates(latitude, longitude)
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")
    if status is None:
        status = "online" if is_active else "offline"
    require_choice("status", status, DRIVER_STATUSES)

    def _op():
        with hold_keys(("driver", driver_id)):
            location = store.get(DriverLocation, driver_id, lock=True)
            if location is None:
                store.require(User, driver_id, label="Driver")
                location = DriverLocation(driver_id=driver_id)
                db.session.add(location)

            location.latitude = float(latitude)
            location.longitude = float(longitude)
            location.heading = float(heading)
            location.speed = float(speed)
            location.accuracy = float(accuracy)
            location.is_active = is_active
            location.status = status
            location.updated_at = utcnow()
            db.session.commit()
            return location

    return run_with_retry(_op)


def get_driver_location(driver_id: int) -> DriverLocation | None:
    return store.get(DriverLocation, driver_id)


def set_driver_availability(driver_id: int, is_active: bool) -> DriverLocation:
    """
    Switch a driver online or offline without moving them.

    A driver with no ping yet gets a placeholder row at (0, 0); the next
    ping overwrites it.
    """
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")

    def _op():
        with hold_keys(("driver", driver_id)):
            location = store.get(DriverLocation, driver_id, lock=True)
            if location is None:
                driver = store.require(User, driver_id, label="Driver")
                if driver.role != "driver":
                    raise ValidationError(f"User {driver_id} is not a driver")
                location = DriverLocation(driver_id=driver_id, latitude=0.0, longitude=0.0)
                db.session.add(location)

            location.is_active = is_active
            location.status = "online" if is_active else "offline"
            location.updated_at = utcnow()
            db.session.commit()
            current_app.logger.info("Driver %s is now %s", driver_id, location.status)
            return location

    return run_with_retry(_op)


def get_driver_availability(driver_id: int) -> dict:
    """{"is_active", "status"}; a driver who never pinged is offline."""
    location = store.get(DriverLocation, driver_id)
    if location is None:
        return {"driver_id": driver_id, "is_active": False, "status": "offline"}
    return {"driver_id": driver_id, "is_active": location.is_active, "status": location.status}


def _active_locations() -> list[DriverLocation]:
    return store.list_where(DriverLocation, is_active=True)


def get_nearby_drivers(latitude: float, longitude: float, radius_km: float) -> list[DriverLocation]:
    """Active driver locations within radius_km of the point (inclusive)."""
    enforce_rules_coordinates(latitude, longitude)
    if radius_km < 0:
        raise ValidationError("radius_km must be >= 0")
    return [
        loc for loc in _active_locations()
        if distance_km(latitude, longitude, loc.latitude, loc.longitude) <= radius_km
    ]


# =============================================================================
# ZONES
# =============================================================================

def create_zone(
    *,
    name: str,
    city: str,
    coordinates: list[dict],
    delivery_fee_cents: int = 0,
    estimated_time: int = 30,
) -> DeliveryZone:
    if not coordinates:
        raise ValidationError("A zone needs at least one vertex")
    vertices = []
    for i, vertex in enumerate(coordinates):
        if not isinstance(vertex, dict) or "lat" not in vertex or "lng" not in vertex:
            raise ValidationError(f"coordinates[{i}] must have lat and lng")
        enforce_rules_coordinates(vertex["lat"], vertex["lng"])
        vertices.append({"lat": float(vertex["lat"]), "lng": float(vertex["lng"])})
    require_amount("delivery_fee_cents", delivery_fee_cents)

    def _op():
        zone = store.insert(DeliveryZone(
            name=name,
            city=city,
            coordinates=vertices,
            delivery_fee_cents=delivery_fee_cents,
            estimated_time=estimated_time,
        ))
        db.session.commit()
        return zone

    return run_with_retry(_op)


def get_zone(zone_id: int) -> DeliveryZone:
    return store.require(DeliveryZone, zone_id, label="Zone")


def list_zones(city: str | None = None) -> list[DeliveryZone]:
    if city is None:
        return store.list_where(DeliveryZone)
    return store.list_where(DeliveryZone, city=city)


def _near_any_vertex(location: DriverLocation, vertices: list[dict]) -> bool:
    return any(
        distance_km(location.latitude, location.longitude, v["lat"], v["lng"]) <= ZONE_VERTEX_RADIUS_KM
        for v in vertices
    )


def get_available_drivers_in_zone(zone_id: int) -> list[DriverLocation]:
    """Active drivers near any vertex of the zone; also refreshes zone.active_drivers."""
    def _op():
        with hold_keys(("zone", zone_id)):
            zone = store.require(DeliveryZone, zone_id, lock=True, label="Zone")
            vertices = list(zone.coordinates or [])
            matches = [loc for loc in _active_locations() if _near_any_vertex(loc, vertices)]
            zone.active_drivers = len(matches)
            db.session.commit()
            return matches

    return run_with_retry(_op)


# =============================================================================
# DISPATCH
# =============================================================================

def _active_order_count(driver_id: int) -> int:
    return store.count_where(
        Order,
        Order.status.in_(_ACTIVE_DELIVERY_STATUSES),
        driver_id=driver_id,
    )


def assign_nearest_driver(
    order_id: int,
    latitude: float,
    longitude: float,
    *,
    radius_km: float = 5.0,
    max_age_minutes: int | None = None,
) -> Order:
    """
    Assign the closest eligible driver to the order.

    Eligible: online, a ping within max_age_minutes (config default),
    inside radius_km, and fewer than MAX_DRIVER_CONCURRENT_ORDERS active orders.
    Ties on distance go to the lower driver id.

    Raises:
        NotFoundError: unknown order, or no eligible driver
        InvariantViolation: the order cannot move to 'assigned'
    """
    if max_age_minutes is None:
        max_age_minutes = current_app.config.get("DRIVER_LOCATION_MAX_AGE_MINUTES", 15)
    order = order_service.get_order(order_id)
    if order.status in ("assigned", "in_delivery", "delivered", "cancelled"):
        raise InvariantViolation(
            f"Order {order_id} is {order.status}; it cannot take a new driver",
            details={"status": order.status},
        )

    cutoff = utcnow() - timedelta(minutes=max_age_minutes)
    candidates = []
    for loc in get_nearby_drivers(latitude, longitude, radius_km):
        if loc.updated_at < cutoff:
            continue
        distance = distance_km(latitude, longitude, loc.latitude, loc.longitude)
        candidates.append((distance, loc.driver_id))

    # Capacity check and assignment happen under the driver's key so two
    # dispatches cannot both take the driver's last free slot.
    for _, driver_id in sorted(candidates):
        with hold_keys(("driver", driver_id)):
            if _active_order_count(driver_id) >= MAX_DRIVER_CONCURRENT_ORDERS:
                continue
            current_app.logger.info("Dispatching order %s to driver %s", order_id, driver_id)
            return order_service.assign_driver(order_id, driver_id)

    raise NotFoundError("Available driver near order", order_id)


# =============================================================================
# PERFORMANCE
# =============================================================================

def _require_driver(driver_id: int) -> User:
    driver = store.require(User, driver_id, label="Driver")
    if driver.role != "driver":
        raise ValidationError(f"User {driver_id} is not a driver")
    return driver


def _check_performance_fields(fields: dict) -> None:
    for field in ("total_deliveries", "earnings_cents"):
        value = fields.get(field)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
            raise ValidationError(f"{field} must be a non-negative integer")
    bounds = {
        "average_delivery_time": (0.0, None),
        "on_time_percentage": (0.0, 100.0),
        "rating": (0.0, 5.0),
    }
    for field, (low, high) in bounds.items():
        value = fields.get(field)
        if value is None:
            continue
        if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
            raise ValidationError(f"{field} must be a number")
        if value < low or (high is not None and value > high):
            raise ValidationError(
                f"{field} must be between {low:g} and {high:g}" if high is not None else f"{field} must be >= {low:g}"
            )


def upsert_driver_performance(driver_id: int, **fields) -> DriverPerformance:
    """
    Create or partially update a driver's performance record.

    Only the fields given are written. A new record starts at 0 deliveries,
    0 minutes, 100% on time, rating 5 and no earnings.
    """
    unknown = set(fields) - set(PERFORMANCE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown performance fields: {', '.join(sorted(unknown))}")
    _check_performance_fields(fields)

    def _op():
        with hold_keys(("driver_performance", driver_id)):
            record = store.get(DriverPerformance, driver_id, lock=True)
            if record is None:
                _require_driver(driver_id)
                record = store.insert(DriverPerformance(
                    driver_id=driver_id,
                    total_deliveries=0,
                    average_delivery_time=0.0,
                    on_time_percentage=100.0,
                    rating=5.0,
                    earnings_cents=0,
                ))
            for field, value in fields.items():
                if value is not None:
                    setattr(record, field, value)
            record.updated_at = utcnow()
            db.session.commit()
            return record

    return run_with_retry(_op)


def get_driver_performance(driver_id: int) -> DriverPerformance:
    return store.require(DriverPerformance, driver_id, label="Driver performance")


def get_top_drivers(limit: int = 10) -> list[DriverPerformance]:
    """Best-rated drivers first; limit is clamped to 1..50, ties go to the lower driver id."""
    limit = min(max(1, int(limit)), MAX_TOP_DRIVERS)
    return (
        db.session.query(DriverPerformance)
        .order_by(DriverPerformance.rating.desc(), DriverPerformance.driver_id.asc())
        .limit(limit)
        .all()
    )


def refresh_driver_performance(driver_id: int, *, on_time_minutes: int | None = None) -> DriverPerformance:
    """
    Recompute the delivery figures from the driver's delivered orders.

    Delivery time runs from assigned_at to delivered_at; orders missing
    either stamp count as deliveries but not toward timing. Earnings are
    the delivery fees collected. rating is left untouched.
    """
    if on_time_minutes is None:
        on_time_minutes = current_app.config.get("DRIVER_ON_TIME_MINUTES", 45)
    _require_driver(driver_id)

    delivered = store.list_where(Order, driver_id=driver_id, status="delivered")
    durations = [
        (o.delivered_at - o.assigned_at).total_seconds() / 60.0
        for o in delivered
        if o.assigned_at is not None and o.delivered_at is not None
    ]
    on_time = sum(1 for minutes in durations if minutes <= on_time_minutes)

    return upsert_driver_performance(
        driver_id,
        total_deliveries=len(delivered),
        average_delivery_time=round(sum(durations) / len(durations), 2) if durations else 0.0,
        on_time_percentage=round(100.0 * on_time / len(durations), 2) if durations else 100.0,
        earnings_cents=sum(o.delivery_fee_cents for o in delivered),
    )


# =============================================================================
# ROUTES
# =============================================================================

def _route_distance(stops: list[dict]) -> float:
    total = 0.0
    for prev, cur in zip(stops, stops[1:]):
        total += distance_km(prev["lat"], prev["lng"], cur["lat"], cur["lng"])
    return round(total, 3)


def create_route(
    *,
    driver_id: int,
    deliveries: list[int],
    sequence: list[int] | None = None,
    stops: list[dict] | None = None,
    estimated_time: int = 0,
) -> DeliveryRoute:
    """
    Plan a route over the given order ids.

    sequence defaults to the deliveries order and must be a permutation of
    it. When stops ({lat, lng} per visit, in sequence order) are supplied,
    total_distance_km is the straight-line sum between consecutive stops.
    """
    if not deliveries:
        raise ValidationError("A route needs at least one delivery")
    order_sequence = list(sequence) if sequence is not None else list(deliveries)
    if sorted(order_sequence) != sorted(deliveries):
        raise ValidationError("sequence must contain exactly the route's deliveries")
    for i, stop in enumerate(stops or []):
        if not isinstance(stop, dict) or "lat" not in stop or "lng" not in stop:
            raise ValidationError(f"stops[{i}] must have lat and lng")
        enforce_rules_coordinates(stop["lat"], stop["lng"])

    def _op():
        driver = store.require(User, driver_id, label="Driver")
        if driver.role != "driver":
            raise ValidationError(f"User {driver_id} is not a driver")
        for order_id in deliveries:
            store.require(Order, order_id, label="Order")

        route = store.insert(DeliveryRoute(
            driver_id=driver_id,
            deliveries=list(deliveries),
            sequence=order_sequence,
            total_distance_km=_route_distance(stops or []),
            estimated_time=estimated_time,
            status="planned",
        ))
        db.session.commit()
        return route

    return run_with_retry(_op)


def get_route(route_id: int) -> DeliveryRoute:
    return store.require(DeliveryRoute, route_id, label="Route")


def list_routes_for_driver(driver_id: int) -> list[DeliveryRoute]:
    return store.list_where(DeliveryRoute, driver_id=driver_id)


def _move_route(route_id: int, expected: str, new_status: str) -> DeliveryRoute:
    def _op():
        with hold_keys(("route", route_id)):
            route = store.require(DeliveryRoute, route_id, lock=True, label="Route")
            if route.status != expected:
                raise InvariantViolation(
                    f"Route is {route.status}; cannot move to {new_status}",
                    details={"from": route.status, "to": new_status},
                )
            route.status = new_status
            if new_status == "completed":
                route.completed_at = utcnow()
            db.session.commit()
            return route

    return run_with_retry(_op)


def start_route(route_id: int) -> DeliveryRoute:
    return _move_route(route_id, "planned", "in_progress")


def complete_route(route_id: int) -> DeliveryRoute:
    return _move_route(route_id, "in_progress", "completed")
