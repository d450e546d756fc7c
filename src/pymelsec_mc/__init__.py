"""pymelsec-mc: Mitsubishi MELSEC PLC device read/write over the MC protocol (3E/4E frames)."""

__version__ = "0.1.0"

from .address import normalize_device, offset_device, parse_device
from .client import MelsecClient
from .codec import AsciiCodec, BinaryCodec, Command, FrameCodec, get_codec
from .devicetable import DeviceEntry, DeviceTable, get_device_table
from .errors import (
    ConnectionLostError,
    EmptyBatchError,
    FrameError,
    FrameMalformedError,
    FrameTruncatedError,
    InvalidAddressError,
    MalformedBatchError,
    MelsecError,
    PlcRejectedError,
    TransportError,
    TransportTimeoutError,
    TypeMismatchError,
    UnsupportedDeviceError,
    describe_end_code,
)
from .planner import (
    ASCII_BATCH_LIMITS,
    BATCH_LIMITS,
    RANDOM_READ_LIMITS,
    RANDOM_WRITE_LIMITS,
    Batch,
    PointLimits,
    batch_limits,
    plan,
)
from .series import CommType, FrameType, PLCSeries, SeriesProfile, get_profile
from .transport import SocketTransport, Transport
from .types import AccessUnit, DataType, DeviceAddress, ExplainInfo, QueryTag, Tag

__all__ = [
    "__version__",
    "MelsecClient",
    "parse_device",
    "normalize_device",
    "offset_device",
    "FrameCodec",
    "BinaryCodec",
    "AsciiCodec",
    "Command",
    "get_codec",
    "DeviceEntry",
    "DeviceTable",
    "get_device_table",
    "MelsecError",
    "InvalidAddressError",
    "UnsupportedDeviceError",
    "EmptyBatchError",
    "MalformedBatchError",
    "TypeMismatchError",
    "TransportError",
    "TransportTimeoutError",
    "ConnectionLostError",
    "FrameError",
    "FrameTruncatedError",
    "FrameMalformedError",
    "PlcRejectedError",
    "describe_end_code",
    "Batch",
    "PointLimits",
    "plan",
    "RANDOM_READ_LIMITS",
    "RANDOM_WRITE_LIMITS",
    "BATCH_LIMITS",
    "ASCII_BATCH_LIMITS",
    "batch_limits",
    "PLCSeries",
    "FrameType",
    "CommType",
    "SeriesProfile",
    "get_profile",
    "Transport",
    "SocketTransport",
    "AccessUnit",
    "DataType",
    "DeviceAddress",
    "ExplainInfo",
    "QueryTag",
    "Tag",
]
