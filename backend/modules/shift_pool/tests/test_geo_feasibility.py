# backend/modules/shift_pool/tests/test_geo_feasibility.py

from datetime import timedelta

import pytest

from tests.factories import BASE_TIME, RestaurantFactory, RestaurantNetworkFactory
from modules.shift_pool.config import CommuteConfig
from modules.shift_pool.services.geo_feasibility import (
    bounding_box,
    can_commute,
    distance,
    estimate_commute,
    nearby_restaurants,
)

NYC = (40.7128, -74.0060)
LA = (34.0522, -118.2437)


@pytest.mark.unit
class TestDistance:
    def test_same_point_is_zero(self):
        assert distance(*NYC, *NYC) == 0

    def test_symmetric(self):
        assert distance(*NYC, *LA) == pytest.approx(distance(*LA, *NYC))

    def test_new_york_to_los_angeles(self):
        assert distance(*NYC, *LA) == pytest.approx(2445, rel=0.01)

    def test_one_degree_of_latitude(self):
        assert distance(40.0, -74.0, 41.0, -74.0) == pytest.approx(69.1, abs=0.1)


@pytest.mark.unit
class TestCommute:
    def test_zero_distance_needs_no_commute(self):
        assert estimate_commute(0) == 0
        assert estimate_commute(-1) == 0

    def test_estimate_rounds_up(self):
        # 15 + 5 / 25 * 60 * 1.3 = 30.6
        assert estimate_commute(5) == 31

    def test_custom_config(self):
        config = CommuteConfig(base_minutes=5, speed_mph=30, traffic_factor=1.0, min_buffer_minutes=10)
        assert estimate_commute(10, config) == 25

    def test_nine_minute_buffer_is_infeasible(self):
        end = BASE_TIME
        result = can_commute(end, end + timedelta(minutes=40), 5)

        assert result.estimated_minutes == 31
        assert result.available_minutes == 40
        assert result.buffer_minutes == 9
        assert not result.feasible

    def test_ten_minute_buffer_is_feasible(self):
        end = BASE_TIME
        result = can_commute(end, end + timedelta(minutes=41), 5)

        assert result.buffer_minutes == 10
        assert result.feasible

    def test_overlapping_shifts_are_infeasible(self):
        result = can_commute(BASE_TIME, BASE_TIME - timedelta(minutes=30), 0)
        assert result.available_minutes == -30
        assert not result.feasible


@pytest.mark.unit
class TestBoundingBox:
    def test_box_spans_radius(self):
        box = bounding_box(0.0, 0.0, 69.0)
        assert box.min_lat == pytest.approx(-1.0)
        assert box.max_lat == pytest.approx(1.0)
        assert box.max_lon == pytest.approx(1.0)

    def test_longitude_widens_away_from_equator(self):
        box = bounding_box(60.0, 10.0, 69.0)
        assert box.max_lon - 10.0 == pytest.approx(2.0)

    def test_box_contains_every_point_within_radius(self):
        box = bounding_box(*NYC, 25)
        for lat, lon in [(40.9, -74.0), (40.5, -73.8), (40.7128, -74.45)]:
            if distance(*NYC, lat, lon) <= 25:
                assert box.contains(lat, lon)
        assert not box.contains(*LA)


@pytest.mark.integration
class TestNearbyRestaurants:
    def test_exact_distance_check_and_ordering(self, db):
        network = RestaurantNetworkFactory()
        near = RestaurantFactory(network=network, latitude=40.7306, longitude=-73.9352)
        nearest = RestaurantFactory(network=network, latitude=40.7150, longitude=-74.0100)
        # Inside the box corner but beyond the radius
        corner = RestaurantFactory(network=network, latitude=40.7128 + 0.35, longitude=-74.0060 + 0.46)
        RestaurantFactory(network=network, latitude=LA[0], longitude=LA[1])
        RestaurantFactory(latitude=40.7130, longitude=-74.0050)

        results = nearby_restaurants(db, *NYC, 25, network_id=network.id)

        assert [r.id for r, _ in results] == [nearest.id, near.id]
        assert corner.id not in {r.id for r, _ in results}
        assert results[0][1] < results[1][1]
