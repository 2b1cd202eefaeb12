import gzip
import struct

import nibabel as nib
import numpy as np
import pytest

from lotus_viewer.errors import MissingDimensions, NotCompressedFormatRecognized, NotValidContainer
from lotus_viewer.nifti_decoder import DataType, decode_volume, is_compressed, is_nifti1


def _nifti_bytes(data: np.ndarray, spacing=(2.0, 2.0, 2.0)) -> bytes:
    affine = np.diag([spacing[0], spacing[1], spacing[2], 1.0])
    return nib.Nifti1Image(data, affine).to_bytes()


def test_integer_data_is_rescaled_to_unit_range():
    data = np.full((3, 2, 2), 12, dtype=np.int16)
    data[0, 0, 0] = 10
    data[2, 1, 1] = 20
    data[1, 0, 1] = 15

    volume = decode_volume(_nifti_bytes(data))

    assert volume.dims == (3, 2, 2)
    assert volume.data.dtype == np.float32
    assert volume.data[1, 0, 1] == pytest.approx(0.5)
    assert volume.data[0, 0, 0] == 0.0
    assert volume.data[2, 1, 1] == 1.0
    assert (volume.vmin, volume.vmax) == (0.0, 1.0)


def test_constant_integer_volume_decodes_to_zeros():
    data = np.full((2, 2, 2), 7, dtype=np.uint8)
    volume = decode_volume(_nifti_bytes(data))
    assert np.all(volume.data == 0.0)


def test_float_data_passes_through_as_float32():
    data = np.linspace(-4.0, 6.0, 24, dtype=np.float64).reshape(2, 3, 4)
    volume = decode_volume(_nifti_bytes(data))

    assert volume.data.dtype == np.float32
    np.testing.assert_allclose(volume.data, data.astype(np.float32))
    assert volume.vmin == pytest.approx(-4.0)
    assert volume.vmax == pytest.approx(6.0)


def test_buffer_is_x_fastest():
    data = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
    volume = decode_volume(_nifti_bytes(data))
    nx, ny, _ = volume.dims
    for x, y, z in [(0, 0, 0), (1, 2, 3), (1, 0, 2), (0, 1, 1)]:
        assert volume.buffer[x + y * nx + z * nx * ny] == data[x, y, z]
    assert volume.buffer.size == 2 * 3 * 4


def test_spacing_is_read_from_header():
    data = np.zeros((2, 2, 2), dtype=np.float32)
    volume = decode_volume(_nifti_bytes(data, spacing=(2.0, 3.0, 4.0)))
    assert volume.spacing == (2.0, 3.0, 4.0)


def test_gzip_and_raw_bytes_decode_identically():
    data = np.arange(8, dtype=np.float32).reshape(2, 2, 2)
    raw = _nifti_bytes(data)
    compressed = gzip.compress(raw)

    assert is_compressed(compressed) and not is_compressed(raw)
    np.testing.assert_array_equal(decode_volume(compressed).data, decode_volume(raw).data)


def test_corrupt_gzip_is_rejected():
    with pytest.raises(NotCompressedFormatRecognized):
        decode_volume(b"\x1f\x8b" + b"definitely not deflate data")


def test_non_nifti_bytes_are_rejected():
    assert not is_nifti1(b"hello" * 100)
    with pytest.raises(NotValidContainer):
        decode_volume(b"hello" * 100)
    with pytest.raises(NotValidContainer):
        decode_volume(b"")


def test_zero_extent_raises_missing_dimensions():
    raw = bytearray(_nifti_bytes(np.zeros((2, 2, 2), dtype=np.float32)))
    struct.pack_into("<h", raw, 42, 0)  # dim[1]
    with pytest.raises(MissingDimensions):
        decode_volume(bytes(raw))


def test_truncated_image_data_is_rejected():
    raw = _nifti_bytes(np.zeros((4, 4, 4), dtype=np.float32))
    with pytest.raises(NotValidContainer):
        decode_volume(raw[:-16])


def test_unknown_datatype_falls_back_to_float32():
    data = np.arange(8, dtype=np.float32).reshape(2, 2, 2) - 3.0
    raw = bytearray(_nifti_bytes(data))
    struct.pack_into("<h", raw, 70, 1024)  # datatype: int64, not in the supported set

    volume = decode_volume(bytes(raw))

    np.testing.assert_array_equal(volume.data, data)
    assert DataType.from_code(1024) is DataType.FLOAT32
