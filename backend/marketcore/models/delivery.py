from __future__ import annotations

from ..extensions import db
from marketcore.time_utils import to_utc_z, utcnow


ROUTE_STATUSES = ("planned", "in_progress", "completed")
DRIVER_STATUSES = ("online", "offline", "busy")


class DeliveryZone(db.Model):
    """
    Named polygon used for coarse driver-to-area matching.

    coordinates: list of {"lat": float, "lng": float} vertices.
    active_drivers is derived by driver_service.get_available_drivers_in_zone.
    """
    __tablename__ = "delivery_zones"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    city = db.Column(db.String(128), nullable=False, index=True)
    coordinates = db.Column(db.JSON, nullable=False, default=list)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    estimated_time = db.Column(db.Integer, nullable=False, default=30)  # minutes
    active_drivers = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "coordinates": list(self.coordinates or []),
            "delivery_fee_cents": self.delivery_fee_cents,
            "estimated_time": self.estimated_time,
            "active_drivers": self.active_drivers,
            "created_at": to_utc_z(self.created_at),
        }


class DriverLocation(db.Model):
    """
    Latest known position of a driver (one row per driver, last write wins).

    is_active is the driver's own online/offline switch; inactive drivers
    are never matched by nearby, zone or dispatch lookups.
    """
    __tablename__ = "driver_locations"

    driver_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    accuracy = db.Column(db.Float, nullable=False, default=0.0)
    heading = db.Column(db.Float, nullable=False, default=0.0)
    speed = db.Column(db.Float, nullable=False, default=0.0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="online")

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "driver_id": self.driver_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "heading": self.heading,
            "speed": self.speed,
            "is_active": self.is_active,
            "status": self.status,
            "updated_at": to_utc_z(self.updated_at),
        }


class DriverPerformance(db.Model):
    """
    Per-driver delivery record (one row per driver).

    Written directly by upsert or recomputed from delivered orders;
    rating is only ever set explicitly.
    """
    __tablename__ = "driver_performance"

    driver_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    total_deliveries = db.Column(db.Integer, nullable=False, default=0)
    average_delivery_time = db.Column(db.Float, nullable=False, default=0.0)  # minutes
    on_time_percentage = db.Column(db.Float, nullable=False, default=100.0)
    rating = db.Column(db.Float, nullable=False, default=5.0, index=True)
    earnings_cents = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "driver_id": self.driver_id,
            "total_deliveries": self.total_deliveries,
            "average_delivery_time": self.average_delivery_time,
            "on_time_percentage": self.on_time_percentage,
            "rating": self.rating,
            "earnings_cents": self.earnings_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryRoute(db.Model):
    """Ordered batch of deliveries handed to one driver."""
    __tablename__ = "delivery_routes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    deliveries = db.Column(db.JSON, nullable=False, default=list)  # order ids
    sequence = db.Column(db.JSON, nullable=False, default=list)
    total_distance_km = db.Column(db.Float, nullable=False, default=0.0)
    estimated_time = db.Column(db.Integer, nullable=False, default=0)  # minutes
    status = db.Column(db.String(16), nullable=False, default="planned", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "driver_id": self.driver_id,
            "deliveries": list(self.deliveries or []),
            "sequence": list(self.sequence or []),
            "total_distance_km": self.total_distance_km,
            "estimated_time": self.estimated_time,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
