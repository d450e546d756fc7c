"""Series profiles: PLC family, frame type, data code, access route and monitoring timer."""

from dataclasses import dataclass, field
from enum import Enum

from .devicetable import DeviceTable, get_device_table


class PLCSeries(str, Enum):
    """Supported PLC families."""

    Q = "Q"
    L = "L"
    QNA = "QnA"
    IQ_L = "iQ-L"
    IQ_R = "iQ-R"

    @classmethod
    def from_name(cls, name: "str | PLCSeries") -> "PLCSeries":
        if isinstance(name, PLCSeries):
            return name
        key = name.strip().lower().replace("_", "-")
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"Unknown PLC series: {name!r}. Use 'Q', 'L', 'QnA', 'iQ-L' or 'iQ-R'")


class FrameType(str, Enum):
    """MC protocol frame family: 3E, or 4E which adds a serial number."""

    E3 = "3E"
    E4 = "4E"

    @classmethod
    def from_name(cls, name: "str | FrameType") -> "FrameType":
        if isinstance(name, FrameType):
            return name
        key = name.strip().upper()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown frame type: {name!r}. Use '3E' or '4E'")


class CommType(str, Enum):
    """Communication data code."""

    BINARY = "binary"
    ASCII = "ascii"


_SERIES_TABLE: dict[PLCSeries, str] = {
    PLCSeries.Q: "q",
    PLCSeries.L: "q",
    PLCSeries.QNA: "q",
    PLCSeries.IQ_L: "q",
    PLCSeries.IQ_R: "iqr",
}

REQUEST_SUBHEADER: dict[FrameType, int] = {FrameType.E3: 0x5000, FrameType.E4: 0x5400}
RESPONSE_SUBHEADER: dict[FrameType, int] = {FrameType.E3: 0xD000, FrameType.E4: 0xD400}

TIMER_UNIT_S = 0.25  #: Monitoring timer resolution in seconds
DEFAULT_TIMER = 4  #: 1 second


@dataclass(frozen=True)
class SeriesProfile:
    """
    Immutable per-connection configuration: which device table and frame dialect apply,
    plus the access route (network, PC, request destination module) and monitoring timer.

    ``timer`` is in units of 250 ms. ``timer=0`` tells the PLC to wait indefinitely,
    which hangs the request when the target never answers; it is only accepted with
    ``allow_unlimited_wait=True``.
    """

    series: PLCSeries
    table: DeviceTable = field(compare=False, repr=False)
    frame: FrameType = FrameType.E3
    comm: CommType = CommType.BINARY
    network: int = 0
    pc: int = 0xFF
    module_io: int = 0x03FF
    module_station: int = 0
    timer: int = DEFAULT_TIMER
    allow_unlimited_wait: bool = False

    def __post_init__(self) -> None:
        for name, value, limit in (
            ("network", self.network, 0xFF),
            ("pc", self.pc, 0xFF),
            ("module_io", self.module_io, 0xFFFF),
            ("module_station", self.module_station, 0xFF),
            ("timer", self.timer, 0xFFFF),
        ):
            if not 0 <= value <= limit:
                raise ValueError(f"{name} must be 0..{limit:#x}, got {value}")
        if self.timer == 0 and not self.allow_unlimited_wait:
            raise ValueError(
                "timer=0 makes the PLC wait indefinitely; pass allow_unlimited_wait=True to use it"
            )

    @property
    def extended(self) -> bool:
        """iQ-R extended device specification (2-byte code, 4-byte number)."""
        return self.table.extended

    @property
    def max_device_number(self) -> int:
        return self.table.max_device_number

    def device_ceiling(self, base: int) -> int:
        """
        Highest device number a frame can carry for a device numbered in ``base``: the binary
        number field, or for ASCII frames the 6 (8 on iQ-R) digits written in that base.
        """
        if self.comm is CommType.BINARY:
            return self.max_device_number
        digits = 8 if self.extended else 6
        return min(base**digits - 1, self.max_device_number)

    @property
    def word_subcommand(self) -> int:
        return 0x0002 if self.extended else 0x0000

    @property
    def bit_subcommand(self) -> int:
        return 0x0003 if self.extended else 0x0001

    @property
    def request_subheader(self) -> int:
        return REQUEST_SUBHEADER[self.frame]

    @property
    def response_subheader(self) -> int:
        return RESPONSE_SUBHEADER[self.frame]

    @property
    def timer_seconds(self) -> float | None:
        """Monitoring timer in seconds, or None for unlimited wait."""
        return self.timer * TIMER_UNIT_S if self.timer else None


def get_profile(
    series: "str | PLCSeries" = "Q",
    frame: "str | FrameType" = "3E",
    comm: "str | CommType" = "binary",
    *,
    network: int = 0,
    pc: int = 0xFF,
    module_io: int = 0x03FF,
    module_station: int = 0,
    timer: int = DEFAULT_TIMER,
    allow_unlimited_wait: bool = False,
    table: DeviceTable | None = None,
) -> SeriesProfile:
    """Build a SeriesProfile from names; the device table defaults to the one packaged for the series."""
    plc_series = PLCSeries.from_name(series)
    try:
        comm_type = CommType(comm.lower() if isinstance(comm, str) else comm)
    except ValueError:
        raise ValueError(f"Unknown communication type: {comm!r}. Use 'binary' or 'ascii'") from None
    return SeriesProfile(
        series=plc_series,
        table=table if table is not None else get_device_table(_SERIES_TABLE[plc_series]),
        frame=FrameType.from_name(frame),
        comm=comm_type,
        network=network,
        pc=pc,
        module_io=module_io,
        module_station=module_station,
        timer=timer,
        allow_unlimited_wait=allow_unlimited_wait,
    )
