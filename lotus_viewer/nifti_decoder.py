"""Decode (optionally gzipped) NIfTI-1 bytes into a :class:`Volume`.

Only the subset needed by the viewer is supported: the first three spatial
dimensions, the voxel size and a handful of element datatypes.  Affine
matrices, scaling slopes and NIfTI-2 headers are ignored on purpose.
"""

from __future__ import annotations

from enum import IntEnum
import gzip
import io
import logging
import math
import struct
import zlib

import nibabel as nib
import numpy as np
from nibabel.spatialimages import HeaderDataError

from .errors import MissingDimensions, NotCompressedFormatRecognized, NotValidContainer
from .volume import Volume, value_range

LOGGER = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
NIFTI1_HEADER_SIZE = 348
NIFTI1_MAGICS = (b"n+1\x00", b"ni1\x00")


class DataType(IntEnum):
    """NIfTI-1 ``datatype`` codes understood by the decoder."""

    UINT8 = 2
    INT16 = 4
    INT32 = 8
    FLOAT32 = 16
    FLOAT64 = 64
    INT8 = 256
    UINT16 = 512
    UINT32 = 768

    @classmethod
    def from_code(cls, code: int) -> "DataType":
        """Map a header code onto the closed set, falling back to FLOAT32.

        The fallback reinterprets unknown encodings (RGB, complex, int64...) as
        single precision floats, which is knowingly wrong for those types.
        """
        try:
            return cls(int(code))
        except ValueError:
            LOGGER.warning("Unsupported NIfTI datatype %s; decoding as float32", code)
            return cls.FLOAT32

    @property
    def is_floating(self) -> bool:
        return self in (DataType.FLOAT32, DataType.FLOAT64)


_NUMPY_DTYPES = {
    DataType.UINT8: np.uint8,
    DataType.INT16: np.int16,
    DataType.INT32: np.int32,
    DataType.FLOAT32: np.float32,
    DataType.FLOAT64: np.float64,
    DataType.INT8: np.int8,
    DataType.UINT16: np.uint16,
    DataType.UINT32: np.uint32,
}


def is_compressed(raw: bytes) -> bool:
    """Return ``True`` when *raw* starts with the gzip signature."""
    return raw[:2] == GZIP_MAGIC


def is_nifti1(raw: bytes) -> bool:
    """Cheap signature check performed before handing the header to nibabel."""

    if len(raw) < NIFTI1_HEADER_SIZE:
        return False
    little = struct.unpack("<i", raw[:4])[0]
    big = struct.unpack(">i", raw[:4])[0]
    if NIFTI1_HEADER_SIZE not in (little, big):
        return False
    return raw[344:348] in NIFTI1_MAGICS


def _decompress(raw: bytes) -> bytes:
    try:
        return gzip.decompress(raw)
    except (OSError, EOFError, zlib.error) as exc:
        raise NotCompressedFormatRecognized(f"could not decompress data: {exc}") from exc


def _read_header(raw: bytes) -> nib.Nifti1Header:
    try:
        return nib.Nifti1Header.from_fileobj(io.BytesIO(raw), check=False)
    except (HeaderDataError, ValueError, TypeError, struct.error) as exc:
        raise NotValidContainer(f"not a NIfTI file: {exc}") from exc


def _spacing(header: nib.Nifti1Header) -> tuple:
    out = []
    for value in header["pixdim"][1:4]:
        value = abs(float(value))
        out.append(value if math.isfinite(value) and value > 0 else 1.0)
    return tuple(out)


def decode_volume(raw: bytes) -> Volume:
    """Decode *raw* NIfTI-1 bytes into a :class:`Volume`.

    Raises
    ------
    NotCompressedFormatRecognized
        Gzip signature present but decompression failed.
    NotValidContainer
        Missing/invalid NIfTI-1 header or truncated image data.
    MissingDimensions
        One of the three spatial extents is not positive.
    """

    raw = bytes(raw)
    if is_compressed(raw):
        raw = _decompress(raw)
    if not is_nifti1(raw):
        raise NotValidContainer("not a NIfTI file")

    header = _read_header(raw)
    dim = header["dim"]
    nx, ny, nz = (int(d) for d in dim[1:4])
    if nx <= 0 or ny <= 0 or nz <= 0:
        raise MissingDimensions(f"invalid dims {nx}x{ny}x{nz}")

    datatype = DataType.from_code(header["datatype"])
    dtype = np.dtype(_NUMPY_DTYPES[datatype]).newbyteorder(header.endianness)
    count = nx * ny * nz
    offset = int(header["vox_offset"]) or NIFTI1_HEADER_SIZE + 4
    try:
        flat = np.frombuffer(raw, dtype=dtype, count=count, offset=offset)
    except ValueError as exc:
        raise NotValidContainer(
            f"image data truncated: expected {count} voxels at offset {offset}"
        ) from exc

    if datatype.is_floating:
        values = flat.astype(np.float32)
    else:
        # Display normalisation: integers are mapped onto [0, 1] using the
        # buffer's own range, not converted to physical units.
        mn, mx = float(flat.min()), float(flat.max())
        rng = (mx - mn) or 1.0
        values = ((flat.astype(np.float64) - mn) / rng).astype(np.float32)

    vmin, vmax = value_range(values)
    data = values.reshape((nx, ny, nz), order="F")
    LOGGER.debug(
        "Decoded %s volume %dx%dx%d, range [%g, %g]", datatype.name, nx, ny, nz, vmin, vmax
    )
    return Volume((nx, ny, nz), _spacing(header), data, vmin, vmax)
