from datetime import timedelta

import pytest

from marketcore.errors import InvariantViolation, NotFoundError, ValidationError
from marketcore.extensions import db
from marketcore.services import catalog_service, driver_service, order_service
from marketcore.time_utils import utcnow


@pytest.fixture
def make_driver(app):
    counter = {"n": 0}

    def _make(lat=None, lng=None):
        counter["n"] += 1
        user = catalog_service.create_user(
            name=f"Driver {counter['n']}", email=f"driver{counter['n']}@test.local", role="driver",
        )
        if lat is not None:
            driver_service.update_driver_location(user.id, lat, lng)
        return user

    return _make


class TestDistance:
    def test_flat_earth_approximation(self):
        assert driver_service.distance_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.0)
        assert driver_service.distance_km(36.0, 3.0, 36.03, 3.04) == pytest.approx(0.05 * 111)


class TestLocations:
    def test_latest_ping_wins(self, driver):
        driver_service.update_driver_location(driver.id, 36.70, 3.00)
        latest = driver_service.update_driver_location(driver.id, 36.80, 3.10, speed=12.5)
        stored = driver_service.get_driver_location(driver.id)
        assert (stored.latitude, stored.longitude, stored.speed) == (36.80, 3.10, 12.5)
        assert stored.updated_at == latest.updated_at

    def test_invalid_coordinates(self, driver):
        with pytest.raises(ValidationError):
            driver_service.update_driver_location(driver.id, 91.0, 3.0)

    def test_unknown_driver(self, app):
        with pytest.raises(NotFoundError):
            driver_service.update_driver_location(99, 36.0, 3.0)


class TestNearby:
    def test_radius_is_inclusive(self, make_driver):
        exact = make_driver(36.0, 3.0 + 5 / 111)
        make_driver(36.0, 3.0 + 6 / 111)
        found = driver_service.get_nearby_drivers(36.0, 3.0, 5.0 + 1e-9)
        assert [loc.driver_id for loc in found] == [exact.id]

    def test_monotonic_in_radius(self, make_driver):
        for offset in (0.001, 0.01, 0.02, 0.05, 0.1):
            make_driver(36.0 + offset, 3.0)

        previous = set()
        for radius in (0.0, 0.5, 1.5, 3.0, 6.0, 20.0):
            current = {loc.driver_id for loc in driver_service.get_nearby_drivers(36.0, 3.0, radius)}
            assert previous <= current
            previous = current
        assert len(previous) == 5

    def test_negative_radius_rejected(self, app):
        with pytest.raises(ValidationError):
            driver_service.get_nearby_drivers(36.0, 3.0, -1)


class TestAvailability:
    def test_offline_driver_is_not_matched(self, make_driver):
        online = make_driver(36.0, 3.0)
        offline = make_driver(36.001, 3.0)
        driver_service.set_driver_availability(offline.id, False)

        assert [loc.driver_id for loc in driver_service.get_nearby_drivers(36.0, 3.0, 1.0)] == [online.id]
        assert driver_service.get_driver_availability(offline.id) == {
            "driver_id": offline.id, "is_active": False, "status": "offline",
        }

    def test_offline_driver_keeps_position_and_comes_back(self, make_driver):
        courier = make_driver(36.2, 3.2)
        driver_service.set_driver_availability(courier.id, False)
        back = driver_service.set_driver_availability(courier.id, True)
        assert (back.latitude, back.longitude, back.status) == (36.2, 3.2, "online")
        assert len(driver_service.get_nearby_drivers(36.2, 3.2, 0.5)) == 1

    def test_offline_driver_is_never_dispatched(self, make_order, make_driver):
        offline = make_driver(36.0, 3.0)
        driver_service.set_driver_availability(offline.id, False)
        order = make_order()
        with pytest.raises(NotFoundError):
            driver_service.assign_nearest_driver(order.id, 36.0, 3.0)

        farther = make_driver(36.02, 3.0)
        assert driver_service.assign_nearest_driver(order.id, 36.0, 3.0).driver_id == farther.id

    def test_offline_driver_leaves_zone_count(self, make_driver):
        zone = driver_service.create_zone(name="Port", city="Algiers", coordinates=[{"lat": 36.0, "lng": 3.0}])
        courier = make_driver(36.0, 3.0)
        assert driver_service.get_available_drivers_in_zone(zone.id)[0].driver_id == courier.id

        driver_service.set_driver_availability(courier.id, False)
        assert driver_service.get_available_drivers_in_zone(zone.id) == []
        assert driver_service.get_zone(zone.id).active_drivers == 0

    def test_inactive_ping(self, driver):
        loc = driver_service.update_driver_location(driver.id, 36.0, 3.0, is_active=False)
        assert (loc.is_active, loc.status) == (False, "offline")
        assert driver_service.get_nearby_drivers(36.0, 3.0, 1.0) == []

        busy = driver_service.update_driver_location(driver.id, 36.0, 3.0, status="busy")
        assert (busy.is_active, busy.status) == (True, "busy")

    def test_toggle_before_first_ping(self, make_driver):
        courier = make_driver()
        assert driver_service.get_driver_availability(courier.id)["status"] == "offline"
        loc = driver_service.set_driver_availability(courier.id, False)
        assert (loc.latitude, loc.longitude, loc.is_active) == (0.0, 0.0, False)

    def test_rejects_non_boolean_and_non_drivers(self, driver, customer):
        with pytest.raises(ValidationError):
            driver_service.set_driver_availability(driver.id, "yes")
        with pytest.raises(ValidationError):
            driver_service.set_driver_availability(customer.id, True)
        with pytest.raises(NotFoundError):
            driver_service.set_driver_availability(999, True)
        with pytest.raises(ValidationError):
            driver_service.update_driver_location(driver.id, 36.0, 3.0, status="napping")


class TestZones:
    def test_vertex_proximity_and_active_count(self, make_driver):
        zone = driver_service.create_zone(
            name="Centre", city="Algiers",
            coordinates=[{"lat": 36.0, "lng": 3.0}, {"lat": 36.1, "lng": 3.0}, {"lat": 36.1, "lng": 3.1}],
        )
        near_vertex = make_driver(36.01, 3.0)      # 1.11 km from the first vertex
        make_driver(36.05, 3.05)                    # polygon interior, far from every vertex
        make_driver(37.0, 4.0)

        found = driver_service.get_available_drivers_in_zone(zone.id)
        assert [loc.driver_id for loc in found] == [near_vertex.id]
        assert driver_service.get_zone(zone.id).active_drivers == 1

    def test_zone_needs_vertices(self, app):
        with pytest.raises(ValidationError):
            driver_service.create_zone(name="Empty", city="Oran", coordinates=[])

    def test_list_zones_by_city(self, app):
        algiers = driver_service.create_zone(name="A", city="Algiers", coordinates=[{"lat": 36.0, "lng": 3.0}])
        driver_service.create_zone(name="B", city="Oran", coordinates=[{"lat": 35.7, "lng": -0.6}])
        assert [z.id for z in driver_service.list_zones("Algiers")] == [algiers.id]


class TestAssignNearest:
    def test_picks_closest_fresh_driver(self, make_order, make_driver):
        order = make_order()
        make_driver(36.02, 3.0)
        closest = make_driver(36.005, 3.0)
        stale = make_driver(36.0, 3.0)
        loc = driver_service.get_driver_location(stale.id)
        loc.updated_at = utcnow() - timedelta(minutes=30)
        db.session.commit()

        assigned = driver_service.assign_nearest_driver(order.id, 36.0, 3.0)
        assert assigned.driver_id == closest.id
        assert assigned.status == "assigned"

    def test_busy_drivers_are_skipped(self, make_order, make_driver):
        busy = make_driver(36.0, 3.0)
        for _ in range(driver_service.MAX_DRIVER_CONCURRENT_ORDERS):
            order_service.assign_driver(make_order().id, busy.id)
        free = make_driver(36.01, 3.0)

        assigned = driver_service.assign_nearest_driver(make_order().id, 36.0, 3.0)
        assert assigned.driver_id == free.id

    def test_no_driver_in_range(self, make_order, make_driver):
        order = make_order()
        make_driver(40.0, 5.0)
        with pytest.raises(NotFoundError):
            driver_service.assign_nearest_driver(order.id, 36.0, 3.0, radius_km=5)
        assert order_service.get_order(order.id).driver_id is None

    def test_closed_order_cannot_be_dispatched(self, make_order, make_driver):
        order = make_order()
        order_service.cancel_order(order.id)
        make_driver(36.0, 3.0)
        with pytest.raises(InvariantViolation):
            driver_service.assign_nearest_driver(order.id, 36.0, 3.0)

    def test_max_age_comes_from_config(self, app, make_order, make_driver):
        app.config["DRIVER_LOCATION_MAX_AGE_MINUTES"] = 1
        order = make_order()
        late = make_driver(36.0, 3.0)
        loc = driver_service.get_driver_location(late.id)
        loc.updated_at = utcnow() - timedelta(minutes=5)
        db.session.commit()
        with pytest.raises(NotFoundError):
            driver_service.assign_nearest_driver(order.id, 36.0, 3.0)


class TestPerformance:
    def _deliver(self, make_order, courier, minutes):
        order = make_order()
        order_service.assign_driver(order.id, courier.id)
        order_service.update_status(order.id, "delivered")
        stored = order_service.get_order(order.id)
        stored.delivered_at = stored.assigned_at + timedelta(minutes=minutes)
        db.session.commit()
        return stored

    def test_upsert_creates_with_defaults_then_patches(self, driver):
        record = driver_service.upsert_driver_performance(driver.id, total_deliveries=4)
        assert (record.total_deliveries, record.on_time_percentage, record.rating, record.earnings_cents) == (
            4, 100.0, 5.0, 0,
        )

        patched = driver_service.upsert_driver_performance(driver.id, rating=4.2)
        assert (patched.total_deliveries, patched.rating) == (4, 4.2)

    @pytest.mark.parametrize("fields", [
        {"total_deliveries": -1},
        {"total_deliveries": 2.5},
        {"on_time_percentage": 101},
        {"rating": 5.5},
        {"rating": "five"},
        {"average_delivery_time": -3},
        {"earnings_cents": 9.99},
        {"bonus": 1},
    ])
    def test_invalid_fields(self, driver, fields):
        with pytest.raises(ValidationError):
            driver_service.upsert_driver_performance(driver.id, **fields)

    def test_unknown_driver(self, app):
        with pytest.raises(NotFoundError):
            driver_service.upsert_driver_performance(404, rating=4.0)
        with pytest.raises(NotFoundError):
            driver_service.get_driver_performance(404)

    def test_top_drivers_by_rating(self, make_driver):
        low, high, mid = make_driver(), make_driver(), make_driver()
        driver_service.upsert_driver_performance(low.id, rating=3.1)
        driver_service.upsert_driver_performance(high.id, rating=4.9)
        driver_service.upsert_driver_performance(mid.id, rating=4.0)

        assert [r.driver_id for r in driver_service.get_top_drivers()] == [high.id, mid.id, low.id]
        assert [r.driver_id for r in driver_service.get_top_drivers(limit=0)] == [high.id]

    def test_refresh_from_delivered_orders(self, app, make_order, driver):
        self._deliver(make_order, driver, 30)
        self._deliver(make_order, driver, 60)
        cancelled = make_order()
        order_service.assign_driver(cancelled.id, driver.id)
        order_service.cancel_order(cancelled.id)
        driver_service.upsert_driver_performance(driver.id, rating=4.5)

        record = driver_service.refresh_driver_performance(driver.id)
        assert record.total_deliveries == 2
        assert record.average_delivery_time == pytest.approx(45.0)
        assert record.on_time_percentage == pytest.approx(50.0)
        assert record.earnings_cents == 400
        assert record.rating == 4.5

    def test_refresh_with_no_deliveries(self, driver):
        record = driver_service.refresh_driver_performance(driver.id)
        assert (record.total_deliveries, record.average_delivery_time, record.on_time_percentage) == (0, 0.0, 100.0)


class TestRoutes:
    def test_route_lifecycle_and_distance(self, make_order, driver):
        first, second = make_order(), make_order()
        route = driver_service.create_route(
            driver_id=driver.id,
            deliveries=[first.id, second.id],
            sequence=[second.id, first.id],
            stops=[{"lat": 36.0, "lng": 3.0}, {"lat": 36.0, "lng": 3.01}, {"lat": 36.01, "lng": 3.01}],
        )
        assert route.status == "planned"
        assert route.total_distance_km == pytest.approx(2.22, abs=1e-3)

        assert driver_service.start_route(route.id).status == "in_progress"
        done = driver_service.complete_route(route.id)
        assert done.status == "completed"
        assert done.completed_at is not None
        assert [r.id for r in driver_service.list_routes_for_driver(driver.id)] == [route.id]

    def test_cannot_complete_unstarted_route(self, make_order, driver):
        route = driver_service.create_route(driver_id=driver.id, deliveries=[make_order().id])
        with pytest.raises(InvariantViolation):
            driver_service.complete_route(route.id)

    def test_sequence_must_match_deliveries(self, make_order, driver):
        order = make_order()
        with pytest.raises(ValidationError):
            driver_service.create_route(driver_id=driver.id, deliveries=[order.id], sequence=[order.id, 99])

    def test_route_requires_driver_role(self, make_order, customer):
        with pytest.raises(ValidationError):
            driver_service.create_route(driver_id=customer.id, deliveries=[make_order().id])
