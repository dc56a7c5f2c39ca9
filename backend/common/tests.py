import math

from django.test import SimpleTestCase, override_settings

from common.utils import (
	Point,
	calculate_distance,
	distance_meters,
	encode_geohash,
	get_covering_geohashes,
	is_valid_coordinate,
	within_radius,
	within_service_area,
)

# Meters per degree of latitude on the haversine sphere
METERS_PER_DEGREE = math.pi * 6371000 / 180


def north_of(point, meters):
	return Point(point.latitude + meters / METERS_PER_DEGREE, point.longitude)


class DistanceTests(SimpleTestCase):
	def setUp(self):
		self.origin = Point(14.5995, 120.9842)

	def test_same_point_is_zero(self):
		self.assertEqual(distance_meters(self.origin, self.origin), 0)

	def test_distance_is_symmetric(self):
		other = Point(14.6095, 120.9942)
		self.assertAlmostEqual(
			distance_meters(self.origin, other),
			distance_meters(other, self.origin),
			places=6,
		)

	def test_meridian_offset_matches_arc_length(self):
		target = north_of(self.origin, 250)
		self.assertAlmostEqual(distance_meters(self.origin, target), 250, delta=0.01)

	def test_antipodal_points_do_not_error(self):
		distance = calculate_distance(0, 0, 0, 180)
		self.assertAlmostEqual(distance, math.pi * 6371000, delta=1)

	def test_accepts_decimal_like_input(self):
		self.assertAlmostEqual(
			calculate_distance('14.5995', '120.9842', 14.5995, 120.9842), 0
		)


class WithinRadiusTests(SimpleTestCase):
	def setUp(self):
		self.center = Point(14.5995, 120.9842)

	def test_boundary_is_inclusive(self):
		point = north_of(self.center, 300)
		exact = distance_meters(point, self.center)
		self.assertTrue(within_radius(point, self.center, exact))
		self.assertFalse(within_radius(point, self.center, exact - 0.001))

	def test_completion_geofence_distances(self):
		self.assertTrue(within_radius(north_of(self.center, 250), self.center, 300))
		self.assertFalse(within_radius(north_of(self.center, 310), self.center, 300))


class CoordinateValidationTests(SimpleTestCase):
	def test_valid_ranges(self):
		self.assertTrue(is_valid_coordinate(90, 180))
		self.assertTrue(is_valid_coordinate(-90, -180))
		self.assertTrue(is_valid_coordinate('14.5', '121.0'))

	def test_invalid_values(self):
		self.assertFalse(is_valid_coordinate(91, 0))
		self.assertFalse(is_valid_coordinate(0, 181))
		self.assertFalse(is_valid_coordinate(None, 0))
		self.assertFalse(is_valid_coordinate('north', 0))
		self.assertFalse(is_valid_coordinate(float('nan'), 0))


class ServiceAreaTests(SimpleTestCase):
	def test_no_area_configured_allows_everything(self):
		self.assertTrue(within_service_area(Point(-33.9, 18.4)))

	@override_settings(SERVICE_AREA_CENTER=(14.5995, 120.9842), SERVICE_AREA_RADIUS_METERS=5000)
	def test_configured_area_is_a_geofence(self):
		self.assertTrue(within_service_area(Point(14.6095, 120.9842)))
		self.assertFalse(within_service_area(Point(15.5995, 120.9842)))


class GeohashTests(SimpleTestCase):
	def test_known_encoding(self):
		self.assertEqual(encode_geohash(57.64911, 10.40744, 11), 'u4pruydqqvj')

	def test_center_cell_is_covered(self):
		cells = get_covering_geohashes(14.5995, 120.9842, 1000, 5)
		self.assertIn(encode_geohash(14.5995, 120.9842, 5), cells)

	def test_covers_points_inside_radius_for_large_radius(self):
		center = Point(14.5995, 120.9842)
		cells = get_covering_geohashes(center.latitude, center.longitude, 20000, 5)
		for bearing in range(0, 360, 15):
			# 19.9 km along each bearing, via a small equirectangular step
			dlat = 19900 * math.cos(math.radians(bearing)) / METERS_PER_DEGREE
			dlon = 19900 * math.sin(math.radians(bearing)) / (
				METERS_PER_DEGREE * math.cos(math.radians(center.latitude))
			)
			point = Point(center.latitude + dlat, center.longitude + dlon)
			self.assertIn(encode_geohash(point.latitude, point.longitude, 5), cells)

	def test_wraps_across_antimeridian(self):
		cells = get_covering_geohashes(0.0, 179.999, 5000, 5)
		self.assertIn(encode_geohash(0.0, -179.99, 5), cells)
