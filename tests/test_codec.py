"""Tests for frame encoding/decoding: exact bytes for binary and ASCII, 3E and 4E."""

import pytest

from pymelsec_mc import DataType, DeviceAddress, SeriesProfile, get_profile
from pymelsec_mc.address import parse_device
from pymelsec_mc.codec import AsciiCodec, BinaryCodec, Command, FrameCodec, check_value, get_codec
from pymelsec_mc.errors import (
    EmptyBatchError,
    FrameMalformedError,
    FrameTruncatedError,
    MalformedBatchError,
    PlcRejectedError,
    TypeMismatchError,
)
from pymelsec_mc.series import CommType
from pymelsec_mc.types import AccessUnit

D100 = DeviceAddress("D", 100)
M8304 = DeviceAddress("M", 8304)

# 3E binary header to the length field: subheader, network 0, pc FF, io 03FF, station 0
REQ_3E = "5000" "00" "ff" "ff03" "00"
RESP_3E = "d000" "00" "ff" "ff03" "00"


def h(*parts: str) -> bytes:
    return bytes.fromhex("".join(parts).replace(" ", ""))


def binary_response(payload: bytes = b"", end_code: int = 0, head: str = RESP_3E) -> bytes:
    body = end_code.to_bytes(2, "little") + payload
    return bytes.fromhex(head) + len(body).to_bytes(2, "little") + body


# ============================================================================
# Codec selection and header sizes
# ============================================================================


def test_get_codec() -> None:
    assert isinstance(get_codec(get_profile("Q")), BinaryCodec)
    assert isinstance(get_codec(get_profile("Q", comm="ascii")), AsciiCodec)


@pytest.mark.parametrize(
    "frame, comm, size",
    [("3E", "binary", 9), ("4E", "binary", 13), ("3E", "ascii", 18), ("4E", "ascii", 26)],
)
def test_header_size(frame: str, comm: str, size: int) -> None:
    p = get_profile("Q", frame, comm)
    assert get_codec(p).header_size(p) == size


# ============================================================================
# Binary requests
# ============================================================================


class TestBinaryEncode:
    def test_random_read_word(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [D100], DataType.UWORD)
        assert frame == h(REQ_3E, "0c00", "0400", "0304", "0000", "01", "00", "640000a8")

    def test_random_read_bit_device_as_word(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [M8304], DataType.BIT)
        assert frame == h(REQ_3E, "0c00", "0400", "0304", "0000", "0100", "702000", "90")

    def test_random_read_mixed_widths(self) -> None:
        p = get_profile("Q")
        devices = [D100, DeviceAddress("D", 200), DeviceAddress("D", 300), DeviceAddress("D", 110)]
        types = [DataType.SWORD, DataType.FLOAT, DataType.DOUBLE, DataType.UWORD]
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, devices, types)
        # words first (D100, D110), then dwords (D200, D300, D302)
        assert frame[15:] == h("02", "03", "640000a8", "6e0000a8", "c80000a8", "2c0100a8", "2e0100a8")
        assert frame[7:9] == (len(frame) - 9).to_bytes(2, "little")

    def test_iqr_extended_device_spec(self) -> None:
        p = get_profile("iQ-R")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0002, [D100], DataType.UWORD)
        assert frame == h(REQ_3E, "0e00", "0400", "0304", "0200", "0100", "64000000", "a800")

    def test_4e_header_carries_serial(self) -> None:
        p = get_profile("Q", "4E")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [D100], DataType.UWORD, serial=0x1234)
        assert frame == h("5400", "3412", "0000", "00ff", "ff03", "00", "0c00", "0400", "0304", "0000", "0100", "640000a8")

    def test_route_and_timer_fields(self) -> None:
        p = get_profile("Q", network=1, pc=2, module_io=0x03E0, module_station=3, timer=40)
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [D100], DataType.UWORD)
        assert frame[:13] == h("5000", "01", "02", "e003", "03", "0c00", "2800", "0304")

    def test_batch_read_words(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p, Command.BATCH_READ, 0x0000, [DeviceAddress("D", 0)], DataType.UWORD, count=960
        )
        assert frame == h(REQ_3E, "0c00", "0400", "0104", "0000", "000000a8", "c003")

    def test_batch_read_bits(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p, Command.BATCH_READ, 0x0001, [DeviceAddress("X", 0x1A, 16)], DataType.BIT, count=8
        )
        assert frame[11:] == h("0104", "0100", "1a00009c", "0800")

    def test_batch_write_bits_nibble_packed(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p, Command.BATCH_WRITE, 0x0001, [DeviceAddress("M", 0)], DataType.BIT, values=[True, False, True]
        )
        assert frame[11:] == h("0114", "0100", "00000090", "0300", "1010")

    def test_batch_write_dwords(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p, Command.BATCH_WRITE, 0x0000, [D100], DataType.UDWORD, values=[0x12345678, 1]
        )
        assert frame[11:] == h("0114", "0000", "640000a8", "0400", "78563412", "01000000")

    def test_random_write_words(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p,
            Command.RANDOM_WRITE,
            0x0000,
            [D100, DeviceAddress("D", 200)],
            [DataType.SWORD, DataType.FLOAT],
            values=[-1, 1.5],
        )
        assert frame[11:] == h("0214", "0000", "01", "01", "640000a8", "ffff", "c80000a8", "0000c03f")

    def test_random_write_double_as_two_dwords(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p, Command.RANDOM_WRITE, 0x0000, [D100], DataType.ULWORD, values=[0x1122334455667788]
        )
        assert frame[15:] == h("00", "02", "640000a8", "88776655", "660000a8", "44332211")

    def test_random_write_bits(self) -> None:
        p = get_profile("Q")
        frame = get_codec(p).encode_request(
            p, Command.RANDOM_WRITE, 0x0001, [DeviceAddress("M", 10), DeviceAddress("Y", 0x1F, 16)],
            DataType.BIT, values=[True, False],
        )
        assert frame[11:] == h("0214", "0100", "02", "0a000090", "01", "1f00009d", "00")

    def test_random_write_bits_iqr(self) -> None:
        p = get_profile("iQ-R")
        frame = get_codec(p).encode_request(
            p, Command.RANDOM_WRITE, 0x0003, [DeviceAddress("M", 10)], DataType.BIT, values=[True]
        )
        assert frame[11:] == h("0214", "0300", "01", "0a000000", "9000", "0100")


# ============================================================================
# ASCII requests
# ============================================================================


class TestAsciiEncode:
    def test_random_read_word(self) -> None:
        p = get_profile("Q", comm="ascii")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [D100], DataType.UWORD)
        assert frame == b"500000FF03FF00" b"0018" b"0004" b"0403" b"0000" b"01" b"00" b"D*000100"

    def test_hex_device_number_in_its_base(self) -> None:
        p = get_profile("Q", comm="ascii")
        frame = get_codec(p).encode_request(
            p, Command.RANDOM_READ, 0x0000, [DeviceAddress("X", 0x1A, 16)], DataType.BIT
        )
        assert frame.endswith(b"X*00001A")

    def test_iqr_device_spec(self) -> None:
        p = get_profile("iQ-R", comm="ascii")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0002, [D100], DataType.UWORD)
        assert frame.endswith(b"0403" b"0002" b"01" b"00" b"D***00000100")

    def test_4e_header(self) -> None:
        p = get_profile("Q", "4E", "ascii")
        frame = get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [D100], DataType.UWORD, serial=1)
        assert frame.startswith(b"5400" b"0001" b"0000" b"00FF03FF00" b"0018")

    def test_batch_write_bits_one_char_per_point(self) -> None:
        p = get_profile("Q", comm="ascii")
        frame = get_codec(p).encode_request(
            p, Command.BATCH_WRITE, 0x0001, [DeviceAddress("M", 0)], DataType.BIT, values=[1, 0, 1]
        )
        assert frame.endswith(b"1401" b"0001" b"M*000000" b"0003" b"101")

    def test_batch_write_words_msd_first(self) -> None:
        p = get_profile("Q", comm="ascii")
        frame = get_codec(p).encode_request(
            p, Command.BATCH_WRITE, 0x0000, [D100], DataType.UDWORD, values=[0x12345678]
        )
        assert frame.endswith(b"D*000100" b"0002" b"5678" b"1234")


# ============================================================================
# Request validation
# ============================================================================


class TestEncodeErrors:
    def test_empty_batch(self) -> None:
        p = get_profile("Q")
        with pytest.raises(EmptyBatchError):
            get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [], DataType.UWORD)

    def test_mixed_units(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError, match="mix"):
            get_codec(p).encode_request(
                p, Command.RANDOM_READ, 0x0000, [D100, M8304], [DataType.UWORD, DataType.BIT]
            )

    def test_width_must_divide_word_count(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError, match="whole number"):
            get_codec(p).encode_request(p, Command.BATCH_READ, 0x0000, [D100], DataType.DOUBLE, count=6)

    def test_value_count_mismatch(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError):
            get_codec(p).encode_request(
                p, Command.RANDOM_WRITE, 0x0000, [D100, DeviceAddress("D", 101)], DataType.UWORD, values=[1]
            )

    def test_type_list_length_mismatch(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError):
            get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, [D100], [DataType.UWORD, DataType.UWORD])

    def test_subcommand_unit_mismatch(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError):
            get_codec(p).encode_request(p, Command.BATCH_READ, 0x0001, [D100], DataType.UWORD, count=1)
        with pytest.raises(MalformedBatchError):
            get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0001, [M8304], DataType.BIT)

    def test_extended_subcommand_rejected_on_q(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError, match="Subcommand"):
            get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0002, [D100], DataType.UWORD)

    def test_too_many_random_points(self) -> None:
        p = get_profile("Q")
        devices = [DeviceAddress("D", i) for i in range(256)]
        with pytest.raises(MalformedBatchError, match="Too many"):
            get_codec(p).encode_request(p, Command.RANDOM_READ, 0x0000, devices, DataType.UWORD)

    def test_batch_takes_one_device(self) -> None:
        p = get_profile("Q")
        with pytest.raises(MalformedBatchError, match="one starting device"):
            get_codec(p).encode_request(
                p, Command.BATCH_READ, 0x0000, [D100, DeviceAddress("D", 101)], DataType.UWORD, count=2
            )


# ============================================================================
# Response decoding
# ============================================================================


class TestDecode:
    def test_word_payload(self) -> None:
        p = get_profile("Q")
        codec = get_codec(p)
        payload = codec.decode_response(p, binary_response(h("3412")))
        assert payload == h("3412")
        assert codec.unpack_random(payload, [DataType.UWORD]) == [0x1234]

    def test_bit_tag_reads_bit_zero(self) -> None:
        p = get_profile("Q")
        codec = get_codec(p)
        payload = codec.decode_response(p, binary_response(h("0100")))
        assert codec.unpack_random(payload, [DataType.BIT]) == [True]
        assert codec.unpack_random(h("fefe"), [DataType.BIT]) == [False]

    def test_response_length(self) -> None:
        p = get_profile("Q")
        codec = get_codec(p)
        data = binary_response(h("3412"))
        assert codec.response_length(p, data[:9]) == 4

    def test_end_code_rejected(self) -> None:
        p = get_profile("Q")
        data = binary_response(h("00ffff0300", "0304", "0000"), end_code=0x4031)
        with pytest.raises(PlcRejectedError) as exc_info:
            get_codec(p).decode_response(p, data)
        assert exc_info.value.code == 0x4031

    def test_bad_subheader(self) -> None:
        p = get_profile("Q")
        data = binary_response(h("3412"), head="d40000ffff0300")
        with pytest.raises(FrameMalformedError, match="subheader"):
            get_codec(p).decode_response(p, data)

    def test_length_mismatch(self) -> None:
        p = get_profile("Q")
        data = binary_response(h("3412"))
        with pytest.raises(FrameTruncatedError):
            get_codec(p).decode_response(p, data[:-1])
        with pytest.raises(FrameTruncatedError):
            get_codec(p).decode_response(p, data + b"\x00")

    def test_shorter_than_header(self) -> None:
        p = get_profile("Q")
        with pytest.raises(FrameTruncatedError):
            get_codec(p).decode_response(p, h("d000", "00"))

    def test_length_without_end_code(self) -> None:
        p = get_profile("Q")
        with pytest.raises(FrameMalformedError, match="end code"):
            get_codec(p).decode_response(p, h(RESP_3E, "0100", "00"))

    def test_4e_serial_echo(self) -> None:
        p = get_profile("Q", "4E")
        data = binary_response(h("3412"), head="d400" "3412" "0000" "00ffff0300")
        assert get_codec(p).decode_response(p, data, serial=0x1234) == h("3412")
        with pytest.raises(FrameMalformedError, match="serial"):
            get_codec(p).decode_response(p, data, serial=0x1235)

    def test_ascii_response(self) -> None:
        p = get_profile("Q", comm="ascii")
        codec = get_codec(p)
        data = b"D00000FF03FF00" b"0008" b"0000" b"1234"
        assert codec.response_length(p, data[:18]) == 8
        payload = codec.decode_response(p, data)
        assert codec.unpack_random(payload, [DataType.UWORD]) == [0x1234]

    def test_ascii_end_code(self) -> None:
        p = get_profile("Q", comm="ascii")
        data = b"D00000FF03FF00" b"0016" b"C059" b"00FF03FF00" b"0403" b"0000"
        with pytest.raises(PlcRejectedError) as exc_info:
            get_codec(p).decode_response(p, data)
        assert exc_info.value.code == 0xC059

    def test_ascii_bad_hex(self) -> None:
        p = get_profile("Q", comm="ascii")
        with pytest.raises(FrameMalformedError):
            get_codec(p).decode_response(p, b"D00000FF03FF00" b"00G8" b"0000" b"1234")


# ============================================================================
# Value packing
# ============================================================================


class TestValues:
    def test_unpack_random_words_then_dwords(self) -> None:
        codec = BinaryCodec()
        types = [DataType.UDWORD, DataType.SWORD, DataType.FLOAT]
        payload = h("ffff", "78563412", "0000c03f")
        assert codec.unpack_random(payload, types) == [0x12345678, -1, 1.5]

    def test_unpack_random_double(self) -> None:
        codec = BinaryCodec()
        payload = h("00000000", "0000f83f")  # 1.5 as IEEE 754 double
        assert codec.unpack_random(payload, [DataType.DOUBLE]) == [1.5]

    def test_unpack_random_ascii_dword(self) -> None:
        codec = AsciiCodec()
        assert codec.unpack_random(b"12345678", [DataType.UDWORD]) == [0x12345678]

    def test_unpack_random_wrong_length(self) -> None:
        with pytest.raises(FrameMalformedError):
            BinaryCodec().unpack_random(h("3412"), [DataType.UDWORD])

    def test_unpack_bits_binary(self) -> None:
        assert BinaryCodec().unpack_bits(h("1110"), 3) == [True, True, True]
        assert BinaryCodec().unpack_bits(h("0110"), 4) == [False, True, True, False]

    def test_unpack_bits_ascii(self) -> None:
        assert AsciiCodec().unpack_bits(b"101", 3) == [True, False, True]
        with pytest.raises(FrameMalformedError):
            AsciiCodec().unpack_bits(b"1x1", 3)

    def test_unpack_words(self) -> None:
        codec = BinaryCodec()
        assert codec.unpack_words(h("0100", "ffff"), [DataType.UWORD, DataType.SWORD]) == [1, -1]
        assert AsciiCodec().unpack_words(b"56781234", [DataType.UDWORD]) == [0x12345678]

    def test_pack_bits(self) -> None:
        assert BinaryCodec().pack_bits([1, 1, 0, 1, 1]) == h("11", "01", "10")
        assert AsciiCodec().pack_bits([True, False]) == b"10"


class TestCheckValue:
    def test_bits(self) -> None:
        assert check_value(DataType.BIT, 1) is True
        assert check_value(DataType.BIT, False) is False
        with pytest.raises(TypeMismatchError):
            check_value(DataType.BIT, 2)

    def test_integer_ranges(self) -> None:
        assert check_value(DataType.SWORD, -32768) == -32768
        with pytest.raises(TypeMismatchError, match="out of range"):
            check_value(DataType.UWORD, 70000, "D100")
        with pytest.raises(TypeMismatchError):
            check_value(DataType.UWORD, -1)
        with pytest.raises(TypeMismatchError):
            check_value(DataType.UDWORD, 1.5)
        with pytest.raises(TypeMismatchError):
            check_value(DataType.UWORD, True)

    def test_floats(self) -> None:
        assert check_value(DataType.FLOAT, 2) == 2.0
        with pytest.raises(TypeMismatchError):
            check_value(DataType.FLOAT, "1.0")
        with pytest.raises(TypeMismatchError, match="out of range"):
            check_value(DataType.FLOAT, 1e300)
        assert check_value(DataType.DOUBLE, 1e300) == 1e300


# ============================================================================
# Round trips
# ============================================================================

PROFILES = [get_profile(s, comm=c) for s in ("Q", "iQ-R") for c in ("binary", "ascii")]
PROFILE_IDS = [f"{p.series.value}-{p.comm.value}" for p in PROFILES]


def read_device_spec(profile: SeriesProfile, spec: bytes) -> tuple[str, int]:
    """Device code and number carried by one device specification."""
    entries = [profile.table.lookup(code) for code in profile.table.codes()]
    if profile.comm is CommType.BINARY:
        size = profile.table.number_bytes
        code = {e.binary: e.code for e in entries}[int.from_bytes(spec[size:], "little")]
        return code, int.from_bytes(spec[:size], "little")
    width = 4 if profile.extended else 2
    text = spec.decode("ascii")
    entry = {e.ascii: e for e in entries}[text[:width]]
    return entry.code, int(text[width:], entry.base)


def respond(codec: FrameCodec, profile: SeriesProfile, payload: bytes) -> bytes:
    """3E response frame with end code 0 around ``payload``."""
    body = codec._field(0, 2) + payload
    route = (
        codec._field(profile.network, 1)
        + codec._field(profile.pc, 1)
        + codec._field(profile.module_io, 2)
        + codec._field(profile.module_station, 1)
    )
    return codec._subheader(profile.response_subheader) + route + codec._field(len(body), 2) + body


def written_points(codec: FrameCodec, profile: SeriesProfile, data: bytes) -> tuple[list[int], list[int]]:
    """Word and dword values carried by RANDOM_WRITE word-unit data."""
    spec = len(codec._device_spec(profile, DeviceAddress("D", 0)))
    words = codec._parse_field(data, 0, 1)
    dwords = codec._parse_field(data, codec.width(1), 1)
    offset = codec.width(2)
    out: tuple[list[int], list[int]] = ([], [])
    for values, count, size in ((out[0], words, 2), (out[1], dwords, 4)):
        for _ in range(count):
            offset += spec
            values.append(codec._parse_field(data, offset, size))
            offset += codec.width(size)
    assert offset == len(data)
    return out


@pytest.mark.parametrize("profile", PROFILES, ids=PROFILE_IDS)
def test_device_spec_round_trip(profile: SeriesProfile) -> None:
    codec = get_codec(profile)
    for code in profile.table.codes():
        base = profile.table.lookup(code).base
        for index in (0, 0x1A5, profile.device_ceiling(base)):
            number = f"0{index:X}" if base == 16 else str(index)
            address = parse_device(f"{code}{number}", profile)
            assert read_device_spec(profile, codec._device_spec(profile, address)) == (code, index)


@pytest.mark.parametrize("profile", PROFILES, ids=PROFILE_IDS)
def test_bit_values_round_trip(profile: SeriesProfile) -> None:
    codec = get_codec(profile)
    values = [True, False, False, True, True]
    payload = codec.decode_response(profile, respond(codec, profile, codec.pack_bits(values)))
    assert codec.unpack_bits(payload, len(values)) == values


@pytest.mark.parametrize("profile", PROFILES, ids=PROFILE_IDS)
@pytest.mark.parametrize(
    ("data_type", "values"),
    [
        (DataType.UWORD, [0, 1, 0xFFFF]),
        (DataType.SWORD, [-32768, -1, 32767]),
        (DataType.UDWORD, [0, 0x12345678, 0xFFFFFFFF]),
        (DataType.SDWORD, [-(2**31), 2**31 - 1]),
        (DataType.FLOAT, [1.5, -2.25]),
        (DataType.DOUBLE, [3.125]),
        (DataType.ULWORD, [2**64 - 1]),
    ],
)
def test_word_values_round_trip(profile: SeriesProfile, data_type: DataType, values: list) -> None:
    codec = get_codec(profile)
    payload = codec.pack_words(values, data_type)
    payload = codec.decode_response(profile, respond(codec, profile, payload))
    assert codec.unpack_words(payload, [data_type] * len(values)) == values


@pytest.mark.parametrize("profile", PROFILES, ids=PROFILE_IDS)
def test_random_write_values_read_back(profile: SeriesProfile) -> None:
    codec = get_codec(profile)
    types = [DataType.UDWORD, DataType.UWORD, DataType.DOUBLE, DataType.SWORD, DataType.FLOAT]
    values = [0xDEADBEEF, 0x1234, -0.125, -2, 2.5]
    devices = [DeviceAddress("D", 10 * i) for i in range(len(types))]
    data = codec._random_write_data(profile, devices, types, values, AccessUnit.WORD)

    words, dwords = written_points(codec, profile, data)
    assert len(words) == 2
    assert len(dwords) == 4
    payload = b"".join(codec._field(w, 2) for w in words) + b"".join(codec._field(d, 4) for d in dwords)
    payload = codec.decode_response(profile, respond(codec, profile, payload))
    assert codec.unpack_random(payload, types) == values
