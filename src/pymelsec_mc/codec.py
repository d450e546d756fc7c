"""
FrameCodec: build MC protocol request frames and validate response frames.

Two strategies share one layout and differ only in how fields are rendered:
BinaryCodec writes little-endian integers, AsciiCodec writes upper-case hex text
(most significant digit first). 3E/4E framing and the iQ-R extended device
specification come from the SeriesProfile.
"""

import logging
import math
import struct
from collections.abc import Sequence
from enum import IntEnum
from typing import Any

from .address import check_span, offset_device
from .errors import (
    EmptyBatchError,
    FrameMalformedError,
    FrameTruncatedError,
    MalformedBatchError,
    PlcRejectedError,
    TypeMismatchError,
)
from .series import CommType, FrameType, SeriesProfile
from .types import AccessUnit, DataType, DeviceAddress

logger = logging.getLogger(__name__)


class Command(IntEnum):
    BATCH_READ = 0x0401
    BATCH_WRITE = 0x1401
    RANDOM_READ = 0x0403
    RANDOM_WRITE = 0x1402


_BATCH_COMMANDS = (Command.BATCH_READ, Command.BATCH_WRITE)

_ROUTE_SIZE = 5  # network(1) + pc(1) + module io(2) + module station(1)
_LENGTH_SIZE = 2
_END_CODE_SIZE = 2


def check_value(data_type: DataType, value: Any, device: str = "") -> Any:
    """
    Validate a write value against its data type and return it in canonical form
    (bool for BIT, int for integer types, float for FLOAT/DOUBLE).
    """
    tag = f"{device} ({data_type.name})" if device else data_type.name
    if data_type is DataType.BIT:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise TypeMismatchError(tag, value, f"Bit value must be True/False or 0/1, got {value!r}")
    if data_type.is_float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeMismatchError(tag, value, f"Expected a number for {tag}, got {value!r}")
        value = float(value)
        if data_type is DataType.FLOAT and math.isfinite(value):
            try:
                struct.pack("<f", value)
            except OverflowError:
                raise TypeMismatchError(tag, value, f"Value {value!r} out of range for {tag}") from None
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeMismatchError(tag, value, f"Expected an integer for {tag}, got {value!r}")
    lo, hi = data_type.value_range()
    if not lo <= value <= hi:
        raise TypeMismatchError(tag, value, f"Value {value} out of range {lo}..{hi} for {tag}")
    return value


def value_to_words(value: Any, data_type: DataType) -> list[int]:
    """Split a value into 16-bit words, low word first."""
    if data_type is DataType.BIT:
        return [1 if value else 0]
    raw = struct.pack("<" + data_type.fmt, value)
    return list(struct.unpack(f"<{data_type.words}H", raw))


def words_to_value(words: Sequence[int], data_type: DataType) -> Any:
    """Rebuild a value from 16-bit words (low word first). BIT takes bit 0 of the first word."""
    if data_type is DataType.BIT:
        return bool(words[0] & 1)
    raw = struct.pack(f"<{data_type.words}H", *words)
    return struct.unpack("<" + data_type.fmt, raw)[0]


def _as_types(devices: Sequence[DeviceAddress], data_type: "DataType | Sequence[DataType]") -> list[DataType]:
    if isinstance(data_type, DataType):
        return [data_type] * len(devices)
    types = list(data_type)
    if len(types) != len(devices):
        raise MalformedBatchError(f"{len(types)} data types given for {len(devices)} devices")
    return types


class FrameCodec:
    """
    Common frame layout. Subclasses render fields (_field/_parse_field), the subheader,
    device specifications and contiguous bit data.
    """

    comm: CommType

    # Wire units used by one field of ``size`` binary bytes.
    def width(self, size: int) -> int:
        raise NotImplementedError

    def _field(self, value: int, size: int) -> bytes:
        raise NotImplementedError

    def _parse_field(self, data: bytes, offset: int, size: int) -> int:
        raise NotImplementedError

    def _subheader(self, value: int) -> bytes:
        raise NotImplementedError

    def _device_spec(self, profile: SeriesProfile, address: DeviceAddress) -> bytes:
        raise NotImplementedError

    def pack_bits(self, values: Sequence[Any]) -> bytes:
        raise NotImplementedError

    def unpack_bits(self, payload: bytes, count: int) -> list[bool]:
        raise NotImplementedError

    # ---- shared layout ----

    def header_size(self, profile: SeriesProfile) -> int:
        """Response bytes up to and including the length field."""
        size = 2 + _ROUTE_SIZE + _LENGTH_SIZE
        if profile.frame is FrameType.E4:
            size += 4
        return self.width(size)

    def response_length(self, profile: SeriesProfile, header: bytes) -> int:
        """Bytes that follow the header, as declared by its length field."""
        size = self.header_size(profile)
        if len(header) < size:
            raise FrameTruncatedError(f"Response header needs {size} bytes, got {len(header)}")
        return self._parse_field(header, size - self.width(_LENGTH_SIZE), _LENGTH_SIZE)

    def pack_words(self, values: Sequence[Any], data_type: DataType) -> bytes:
        """Contiguous word data: each value split into words, each word one 2-byte field."""
        out = bytearray()
        for value in values:
            for word in value_to_words(value, data_type):
                out += self._field(word, 2)
        return bytes(out)

    def unpack_words(self, payload: bytes, data_types: Sequence[DataType]) -> list[Any]:
        """Decode contiguous word data into one value per data type."""
        expected = self.width(2) * sum(t.words for t in data_types)
        if len(payload) != expected:
            raise FrameMalformedError(f"Expected {expected} bytes of word data, got {len(payload)}")
        values = []
        offset = 0
        for data_type in data_types:
            words = []
            for _ in range(data_type.words):
                words.append(self._parse_field(payload, offset, 2))
                offset += self.width(2)
            values.append(words_to_value(words, data_type))
        return values

    def unpack_random(self, payload: bytes, data_types: Sequence[DataType]) -> list[Any]:
        """Decode a RANDOM_READ payload: all word points first, then all dword points."""
        word_idx = [i for i, t in enumerate(data_types) if t.words == 1]
        dword_idx = [i for i, t in enumerate(data_types) if t.words > 1]
        expected = self.width(2) * len(word_idx) + self.width(4) * sum(
            data_types[i].access_points for i in dword_idx
        )
        if len(payload) != expected:
            raise FrameMalformedError(f"Expected {expected} bytes of random read data, got {len(payload)}")

        values: list[Any] = [None] * len(data_types)
        offset = 0
        for i in word_idx:
            values[i] = words_to_value([self._parse_field(payload, offset, 2)], data_types[i])
            offset += self.width(2)
        for i in dword_idx:
            words: list[int] = []
            for _ in range(data_types[i].access_points):
                dword = self._parse_field(payload, offset, 4)
                offset += self.width(4)
                words += [dword & 0xFFFF, dword >> 16]
            values[i] = words_to_value(words, data_types[i])
        return values

    def _frame(self, profile: SeriesProfile, command: int, subcommand: int, data: bytes, serial: int) -> bytes:
        head = self._subheader(profile.request_subheader)
        if profile.frame is FrameType.E4:
            head += self._field(serial & 0xFFFF, 2) + self._field(0, 2)
        route = (
            self._field(profile.network, 1)
            + self._field(profile.pc, 1)
            + self._field(profile.module_io, 2)
            + self._field(profile.module_station, 1)
        )
        body = self._field(profile.timer, 2) + self._field(command, 2) + self._field(subcommand, 2) + data
        return head + route + self._field(len(body), 2) + body

    def _count(self, value: int, size: int, what: str) -> bytes:
        if value > (1 << (8 * size)) - 1:
            raise MalformedBatchError(f"Too many {what} for one frame: {value}")
        return self._field(value, size)

    def encode_request(
        self,
        profile: SeriesProfile,
        command: int,
        subcommand: int,
        devices: Sequence[DeviceAddress],
        data_type: "DataType | Sequence[DataType]",
        values: Sequence[Any] | None = None,
        serial: int = 0,
        count: int | None = None,
    ) -> bytes:
        """
        Build one request frame.

        BATCH_READ / BATCH_WRITE take a single starting device; ``count`` is the number of
        access points (bits, or words) for BATCH_READ and is derived from ``values`` for
        BATCH_WRITE. RANDOM_READ / RANDOM_WRITE take one device per value; ``data_type``
        may be a single type or one per device.
        """
        command = Command(command)
        devices = list(devices)
        if not devices:
            raise EmptyBatchError()
        types = _as_types(devices, data_type)
        for address, point_type in zip(devices, types):
            check_span(address, point_type.words, profile)
        if len({t.access_unit for t in types}) > 1:
            raise MalformedBatchError("A frame cannot mix bit and word devices")
        unit = types[0].access_unit
        if subcommand not in (profile.word_subcommand, profile.bit_subcommand):
            raise MalformedBatchError(f"Subcommand 0x{subcommand:04X} is not valid for {profile.series.value}")
        sub_unit = AccessUnit.BIT if subcommand == profile.bit_subcommand else AccessUnit.WORD
        if values is not None:
            values = list(values)

        if command in _BATCH_COMMANDS:
            if sub_unit is not unit:
                raise MalformedBatchError(f"{unit.value} data cannot be sent with a {sub_unit.value} subcommand")
            data = self._batch_data(profile, command, devices, types[0], values, count)
        elif command is Command.RANDOM_READ:
            if sub_unit is not AccessUnit.WORD:
                raise MalformedBatchError("Random read is only available in word units")
            if values is not None:
                raise MalformedBatchError("Random read takes no values")
            data = self._random_read_data(profile, devices, types)
        else:
            if sub_unit is not unit:
                raise MalformedBatchError(f"{unit.value} data cannot be sent with a {sub_unit.value} subcommand")
            if values is None or len(values) != len(devices):
                raise MalformedBatchError(
                    f"Random write needs one value per device ({len(devices)}), got {0 if values is None else len(values)}"
                )
            data = self._random_write_data(profile, devices, types, values, unit)

        frame = self._frame(profile, command, subcommand, data, serial)
        logger.debug("Encoded %s (%d devices): %s", command.name, len(devices), frame.hex())
        return frame

    def _batch_data(
        self,
        profile: SeriesProfile,
        command: Command,
        devices: list[DeviceAddress],
        data_type: DataType,
        values: list[Any] | None,
        count: int | None,
    ) -> bytes:
        if len(devices) != 1:
            raise MalformedBatchError(f"{command.name} takes one starting device, got {len(devices)}")
        if command is Command.BATCH_READ:
            if values is not None:
                raise MalformedBatchError("Batch read takes no values")
            if count is None or count < 1:
                raise MalformedBatchError(f"Batch read needs a point count >= 1, got {count}")
            if count % data_type.words:
                raise MalformedBatchError(
                    f"{count} words is not a whole number of {data_type.name} values ({data_type.words} words each)"
                )
            points = count
            payload = b""
        else:
            if not values:
                raise EmptyBatchError("Batch write has no values")
            points = len(values) * data_type.words
            if count is not None and count != points:
                raise MalformedBatchError(f"Declared {count} points but values cover {points}")
            if data_type is DataType.BIT:
                payload = self.pack_bits(values)
            else:
                payload = self.pack_words(values, data_type)
        check_span(devices[0], points, profile)
        return self._device_spec(profile, devices[0]) + self._count(points, 2, "points") + payload

    def _dword_points(self, address: DeviceAddress, data_type: DataType) -> list[DeviceAddress]:
        return [offset_device(address, 2 * i) for i in range(data_type.access_points)]

    def _random_read_data(self, profile: SeriesProfile, devices: list[DeviceAddress], types: list[DataType]) -> bytes:
        word_specs = bytearray()
        dword_specs = bytearray()
        words = dwords = 0
        for address, data_type in zip(devices, types):
            if data_type.words == 1:
                word_specs += self._device_spec(profile, address)
                words += 1
            else:
                for point in self._dword_points(address, data_type):
                    dword_specs += self._device_spec(profile, point)
                    dwords += 1
        return (
            self._count(words, 1, "word points")
            + self._count(dwords, 1, "dword points")
            + bytes(word_specs)
            + bytes(dword_specs)
        )

    def _random_write_data(
        self,
        profile: SeriesProfile,
        devices: list[DeviceAddress],
        types: list[DataType],
        values: list[Any],
        unit: AccessUnit,
    ) -> bytes:
        if unit is AccessUnit.BIT:
            # one value field per bit point: 1 byte, 2 on extended series
            size = 2 if profile.extended else 1
            out = bytearray(self._count(len(devices), 1, "bit points"))
            for address, value in zip(devices, values):
                out += self._device_spec(profile, address) + self._field(1 if value else 0, size)
            return bytes(out)

        word_items = bytearray()
        dword_items = bytearray()
        words = dwords = 0
        for address, data_type, value in zip(devices, types, values):
            split = value_to_words(value, data_type)
            if data_type.words == 1:
                word_items += self._device_spec(profile, address) + self._field(split[0], 2)
                words += 1
                continue
            for i, point in enumerate(self._dword_points(address, data_type)):
                dword = split[2 * i] | (split[2 * i + 1] << 16)
                dword_items += self._device_spec(profile, point) + self._field(dword, 4)
                dwords += 1
        return (
            self._count(words, 1, "word points")
            + self._count(dwords, 1, "dword points")
            + bytes(word_items)
            + bytes(dword_items)
        )

    def decode_response(self, profile: SeriesProfile, data: bytes, serial: int | None = None) -> bytes:
        """
        Validate a complete response frame and return its payload (after the end code).
        Raises FrameMalformedError, FrameTruncatedError or PlcRejectedError.
        """
        data = bytes(data)
        size = self.header_size(profile)
        if len(data) < size:
            raise FrameTruncatedError(f"Response shorter than its header: {len(data)} < {size} bytes")
        subheader = self._parse_field_be(data, 0, 2)
        if subheader != profile.response_subheader:
            raise FrameMalformedError(
                f"Unexpected response subheader 0x{subheader:04X}, expected 0x{profile.response_subheader:04X}"
            )
        if profile.frame is FrameType.E4 and serial is not None:
            echoed = self._parse_field(data, self.width(2), 2)
            if echoed != serial & 0xFFFF:
                raise FrameMalformedError(f"Response serial {echoed} does not match request serial {serial}")
        declared = self.response_length(profile, data[:size])
        if len(data) - size != declared:
            raise FrameTruncatedError(f"Response declares {declared} bytes after the header, got {len(data) - size}")
        end_width = self.width(_END_CODE_SIZE)
        if declared < end_width:
            raise FrameMalformedError(f"Response length {declared} leaves no room for the end code")
        end_code = self._parse_field(data, size, _END_CODE_SIZE)
        if end_code:
            logger.debug("PLC end code 0x%04X", end_code)
            raise PlcRejectedError(end_code)
        return data[size + end_width :]

    def _parse_field_be(self, data: bytes, offset: int, size: int) -> int:
        """Subheader is the one big-endian field in binary frames."""
        return self._parse_field(data, offset, size)


class BinaryCodec(FrameCodec):
    comm = CommType.BINARY

    def width(self, size: int) -> int:
        return size

    def _field(self, value: int, size: int) -> bytes:
        return value.to_bytes(size, "little")

    def _parse_field(self, data: bytes, offset: int, size: int) -> int:
        chunk = data[offset : offset + size]
        if len(chunk) != size:
            raise FrameTruncatedError(f"Need {size} bytes at offset {offset}, got {len(chunk)}")
        return int.from_bytes(chunk, "little")

    def _parse_field_be(self, data: bytes, offset: int, size: int) -> int:
        return int.from_bytes(data[offset : offset + size], "big")

    def _subheader(self, value: int) -> bytes:
        return struct.pack(">H", value)

    def _device_spec(self, profile: SeriesProfile, address: DeviceAddress) -> bytes:
        entry = profile.table.lookup(address.code, profile.series.value)
        if profile.extended:
            return struct.pack("<IH", address.index, entry.binary)
        return address.index.to_bytes(3, "little") + struct.pack("<B", entry.binary)

    def pack_bits(self, values: Sequence[Any]) -> bytes:
        """Two points per byte, first point in the high nibble."""
        out = bytearray((len(values) + 1) // 2)
        for i, value in enumerate(values):
            if value:
                out[i // 2] |= 0x10 if i % 2 == 0 else 0x01
        return bytes(out)

    def unpack_bits(self, payload: bytes, count: int) -> list[bool]:
        expected = (count + 1) // 2
        if len(payload) != expected:
            raise FrameMalformedError(f"Expected {expected} bytes for {count} bits, got {len(payload)}")
        return [bool(payload[i // 2] & (0x10 if i % 2 == 0 else 0x01)) for i in range(count)]


class AsciiCodec(FrameCodec):
    comm = CommType.ASCII

    def width(self, size: int) -> int:
        return size * 2

    def _field(self, value: int, size: int) -> bytes:
        return f"{value:0{size * 2}X}".encode("ascii")

    def _parse_field(self, data: bytes, offset: int, size: int) -> int:
        chunk = data[offset : offset + size * 2]
        if len(chunk) != size * 2:
            raise FrameTruncatedError(f"Need {size * 2} characters at offset {offset}, got {len(chunk)}")
        try:
            return int(chunk.decode("ascii"), 16)
        except (UnicodeDecodeError, ValueError):
            raise FrameMalformedError(f"Invalid hex field {chunk!r} at offset {offset}") from None

    def _subheader(self, value: int) -> bytes:
        return self._field(value, 2)

    def _device_spec(self, profile: SeriesProfile, address: DeviceAddress) -> bytes:
        entry = profile.table.lookup(address.code, profile.series.value)
        digits = 8 if profile.extended else 6
        number = f"{address.index:0{digits}X}" if entry.base == 16 else f"{address.index:0{digits}d}"
        if len(number) > digits:
            raise MalformedBatchError(f"Device number of {address} does not fit {digits} ASCII digits")
        return (entry.ascii + number).encode("ascii")

    def pack_bits(self, values: Sequence[Any]) -> bytes:
        """One character per point."""
        return "".join("1" if v else "0" for v in values).encode("ascii")

    def unpack_bits(self, payload: bytes, count: int) -> list[bool]:
        if len(payload) != count:
            raise FrameMalformedError(f"Expected {count} characters for {count} bits, got {len(payload)}")
        bits = []
        for ch in payload:
            if ch not in (0x30, 0x31):
                raise FrameMalformedError(f"Invalid bit character {chr(ch)!r}")
            bits.append(ch == 0x31)
        return bits


_CODECS: dict[CommType, FrameCodec] = {
    CommType.BINARY: BinaryCodec(),
    CommType.ASCII: AsciiCodec(),
}


def get_codec(profile: SeriesProfile) -> FrameCodec:
    """Codec strategy for the profile's data code."""
    return _CODECS[profile.comm]
