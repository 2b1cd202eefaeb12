import pytest

from lotus_viewer.coordinates import Axis, CoordinateMapper, is_canonical_grid

MNI = CoordinateMapper((91, 109, 91), (2.0, 2.0, 2.0))


def test_canonical_grid_detection():
    assert is_canonical_grid((91, 109, 91), (2.0, 2.0, 2.0))
    assert is_canonical_grid((91, 109, 91), (2.0005, 1.9995, 2.0))
    assert not is_canonical_grid((91, 109, 91), (2.01, 2.0, 2.0))
    assert not is_canonical_grid((91, 109, 90), (2.0, 2.0, 2.0))


def test_canonical_anchor_points():
    assert MNI.index_to_coord(0, Axis.X) == 90
    assert MNI.index_to_coord(90, Axis.X) == -90
    assert MNI.index_to_coord(0, "y") == -126
    assert MNI.index_to_coord(0, "z") == -72
    assert MNI.coordinates((45, 63, 36)) == (0.0, 0.0, 0.0)


@pytest.mark.parametrize("axis", list(Axis))
def test_canonical_round_trip_is_exact(axis):
    n = MNI.dims[axis.index]
    for index in range(n):
        assert MNI.coord_to_index(MNI.index_to_coord(index, axis), axis) == index


@pytest.mark.parametrize(
    "dims, spacing",
    [((64, 64, 40), (3.0, 3.0, 3.5)), ((7, 10, 5), (1.5, 0.7, 2.2)), ((91, 109, 91), (1.0, 1.0, 1.0))],
)
def test_generic_round_trip_within_one_voxel(dims, spacing):
    mapper = CoordinateMapper(dims, spacing)
    assert not mapper.canonical
    for axis in Axis:
        for index in range(dims[axis.index]):
            back = mapper.coord_to_index(mapper.index_to_coord(index, axis), axis)
            assert abs(back - index) <= 1


def test_generic_regime_is_center_relative_with_inverted_x():
    mapper = CoordinateMapper((10, 10, 10), (3.0, 3.0, 3.0))
    assert mapper.index_to_coord(5, Axis.X) == 0
    assert mapper.index_to_coord(6, Axis.X) == -3.0
    assert mapper.index_to_coord(6, Axis.Y) == 3.0
    assert mapper.index_to_coord(4, Axis.Z) == -3.0


def test_coordinates_outside_the_grid_are_clamped():
    assert MNI.coord_to_index(500.0, Axis.X) == 0
    assert MNI.coord_to_index(-500.0, Axis.X) == 90
    assert MNI.coord_to_index(1e6, Axis.Y) == 108
    assert MNI.coord_to_index(-1e6, Axis.Z) == 0


def test_nearest_voxel_rounds_half_up():
    # y = -126 + 2 * i, so -125 sits halfway between index 0 and 1
    assert MNI.coord_to_index(-125.0, Axis.Y) == 1
    assert MNI.coord_to_index(-125.2, Axis.Y) == 0


def test_coordinate_text():
    assert MNI.format_coordinate(45, Axis.X) == "0"
    assert MNI.format_coordinate(54, Axis.Y) == "-18"
    mapper = CoordinateMapper((10, 10, 10), (1.5, 1.5, 1.5))
    assert mapper.format_coordinate(6, Axis.Y) == "1.5"
