# Overview: Flask API routes for driver locations, availability, zones, dispatch, performance and delivery routes.

# backend/marketcore/routes/drivers.py
"""
Driver Geo-Matching API Routes

Driver clients push POST /<driver_id>/location on a fixed interval.
Drivers go on and off duty with POST /<driver_id>/availability.
Dispatch polls GET /nearby and GET /zones/<id>/drivers; offline drivers never appear.
Distances use the flat-earth approximation in driver_service.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..services import driver_service


drivers_bp = Blueprint("drivers", __name__, url_prefix="/api/drivers")


@drivers_bp.post("/<int:driver_id>/location")
def update_location_route(driver_id: int):
    """
    Request body:
    {
        "latitude": 36.75,
        "longitude": 3.06,
        "heading": 90,  (optional)
        "speed": 12.5,  (optional)
        "accuracy": 5,  (optional)
        "is_active": true,  (optional, default true)
        "status": "online"  (optional: online, offline, busy)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("latitude") is None or data.get("longitude") is None:
            return jsonify({"error": "latitude and longitude required"}), 400

        location = driver_service.update_driver_location(
            driver_id,
            data["latitude"],
            data["longitude"],
            heading=data.get("heading", 0.0),
            speed=data.get("speed", 0.0),
            accuracy=data.get("accuracy", 0.0),
            is_active=data.get("is_active", True),
            status=data.get("status"),
        )
        return jsonify({"location": location.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (TypeError, ValueError):
        return jsonify({"error": "heading, speed and accuracy must be numbers"}), 400
    except Exception:
        current_app.logger.exception("Failed to update driver location")
        return jsonify({"error": "Internal server error"}), 500


@drivers_bp.get("/nearby")
def nearby_drivers_route():
    """
    Query params: lat, lng, radius_km (default 5)
    """
    lat = request.args.get("lat", type=float)
    lng = request.args.get("lng", type=float)
    radius_km = request.args.get("radius_km", 5.0, type=float)
    if lat is None or lng is None:
        return jsonify({"error": "lat and lng required"}), 400

    try:
        locations = driver_service.get_nearby_drivers(lat, lng, radius_km)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"drivers": [loc.to_dict() for loc in locations], "count": len(locations)}), 200


@drivers_bp.get("/<int:driver_id>/availability")
def get_availability_route(driver_id: int):
    return jsonify(driver_service.get_driver_availability(driver_id)), 200


@drivers_bp.post("/<int:driver_id>/availability")
def set_availability_route(driver_id: int):
    """
    Go online or offline.

    Request body: {"is_active": true}
    """
    try:
        data = request.get_json(silent=True) or {}
        if "is_active" not in data:
            return jsonify({"error": "is_active required"}), 400

        location = driver_service.set_driver_availability(driver_id, data["is_active"])
        return jsonify({
            "driver_id": driver_id,
            "is_active": location.is_active,
            "status": location.status,
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update driver availability")
        return jsonify({"error": "Internal server error"}), 500


@drivers_bp.post("/dispatch/<int:order_id>")
def dispatch_route(order_id: int):
    """
    Assign the nearest eligible driver to an order.

    Request body: {"latitude": ..., "longitude": ..., "radius_km": 5}
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("latitude") is None or data.get("longitude") is None:
            return jsonify({"error": "latitude and longitude required"}), 400

        order = driver_service.assign_nearest_driver(
            order_id,
            data["latitude"],
            data["longitude"],
            radius_km=data.get("radius_km", 5.0),
        )
        return jsonify({"order": order.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to dispatch order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ZONES
# =============================================================================

@drivers_bp.post("/zones")
def create_zone_route():
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("name", "city", "coordinates") if not data.get(f)]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        zone = driver_service.create_zone(
            name=data["name"],
            city=data["city"],
            coordinates=data["coordinates"],
            delivery_fee_cents=data.get("delivery_fee_cents", 0),
            estimated_time=data.get("estimated_time", 30),
        )
        return jsonify({"zone": zone.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create zone")
        return jsonify({"error": "Internal server error"}), 500


@drivers_bp.get("/zones")
def list_zones_route():
    zones = driver_service.list_zones(request.args.get("city"))
    return jsonify({"zones": [z.to_dict() for z in zones]}), 200


@drivers_bp.get("/zones/<int:zone_id>/drivers")
def zone_drivers_route(zone_id: int):
    try:
        locations = driver_service.get_available_drivers_in_zone(zone_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"drivers": [loc.to_dict() for loc in locations], "count": len(locations)}), 200


# =============================================================================
# PERFORMANCE
# =============================================================================

@drivers_bp.get("/performance")
def top_drivers_route():
    """Query params: limit (default 10, max 50)"""
    limit = request.args.get("limit", 10, type=int)
    records = driver_service.get_top_drivers(limit)
    return jsonify({"drivers": [r.to_dict() for r in records]}), 200


@drivers_bp.get("/<int:driver_id>/performance")
def get_performance_route(driver_id: int):
    try:
        record = driver_service.get_driver_performance(driver_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"performance": record.to_dict()}), 200


@drivers_bp.post("/<int:driver_id>/performance")
def upsert_performance_route(driver_id: int):
    """
    Request body (all optional):
    {
        "total_deliveries": 12,
        "average_delivery_time": 31.5,
        "on_time_percentage": 91.7,
        "rating": 4.8,
        "earnings_cents": 24000
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be an object"}), 400
        record = driver_service.upsert_driver_performance(driver_id, **data)
        return jsonify({"performance": record.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update driver performance")
        return jsonify({"error": "Internal server error"}), 500


@drivers_bp.post("/<int:driver_id>/performance/refresh")
def refresh_performance_route(driver_id: int):
    """Recompute deliveries, timing and earnings from delivered orders."""
    try:
        record = driver_service.refresh_driver_performance(driver_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refresh driver performance")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"performance": record.to_dict()}), 200


# =============================================================================
# DELIVERY ROUTES
# =============================================================================

@drivers_bp.post("/<int:driver_id>/routes")
def create_route_route(driver_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("deliveries"):
            return jsonify({"error": "deliveries required"}), 400

        route = driver_service.create_route(
            driver_id=driver_id,
            deliveries=data["deliveries"],
            sequence=data.get("sequence"),
            stops=data.get("stops"),
            estimated_time=data.get("estimated_time", 0),
        )
        return jsonify({"route": route.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create delivery route")
        return jsonify({"error": "Internal server error"}), 500


@drivers_bp.get("/<int:driver_id>/routes")
def list_routes_route(driver_id: int):
    routes = driver_service.list_routes_for_driver(driver_id)
    return jsonify({"routes": [r.to_dict() for r in routes]}), 200


@drivers_bp.post("/routes/<int:route_id>/<action>")
def move_route_route(route_id: int, action: str):
    """action: start | complete"""
    handlers = {"start": driver_service.start_route, "complete": driver_service.complete_route}
    handler = handlers.get(action)
    if handler is None:
        return jsonify({"error": "action must be start or complete"}), 404
    try:
        route = handler(route_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to %s delivery route", action)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"route": route.to_dict()}), 200
