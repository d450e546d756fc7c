"""Core data model: data types, access units, device addresses, query tags and result records."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple


class AccessUnit(str, Enum):
    """Unit a frame addresses device memory in; fixed per frame."""

    BIT = "bit"
    WORD = "word"


class DataType(Enum):
    """Value kinds exchanged with the PLC: (struct format, width in words)."""

    BIT = ("?", 1)
    SWORD = ("h", 1)
    UWORD = ("H", 1)
    SDWORD = ("i", 2)
    UDWORD = ("I", 2)
    FLOAT = ("f", 2)
    SLWORD = ("q", 4)
    ULWORD = ("Q", 4)
    DOUBLE = ("d", 4)

    # aliases
    WORD = ("H", 1)
    DWORD = ("I", 2)

    def __init__(self, fmt: str, words: int) -> None:
        self.fmt = fmt
        self.words = words

    @property
    def access_unit(self) -> AccessUnit:
        return AccessUnit.BIT if self is DataType.BIT else AccessUnit.WORD

    @property
    def access_points(self) -> int:
        """Random-access points one value occupies: word/dword values take one, 4-word values two dwords."""
        return 2 if self.words == 4 else 1

    @property
    def byte_size(self) -> int:
        return self.words * 2

    @property
    def is_float(self) -> bool:
        return self in (DataType.FLOAT, DataType.DOUBLE)

    @property
    def is_signed(self) -> bool:
        return self.fmt in ("h", "i", "q")

    def value_range(self) -> tuple[int, int]:
        """Inclusive integer range for BIT and integer types."""
        if self is DataType.BIT:
            return 0, 1
        bits = self.words * 16
        if self.is_signed:
            return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        return 0, (1 << bits) - 1

    @classmethod
    def from_str(cls, name: str) -> "DataType":
        """Resolve a type by name (case-insensitive) or by its struct character (b, h, H, i, I, f, d, q, Q)."""
        s = name.strip()
        if s in _BY_FMT:
            return _BY_FMT[s]
        try:
            return cls[s.upper()]
        except KeyError:
            raise ValueError(f"Invalid data type: {name!r}") from None


# struct format characters accepted as type names; "b" means a bit.
_BY_FMT: dict[str, DataType] = {
    "b": DataType.BIT,
    "?": DataType.BIT,
    "h": DataType.SWORD,
    "H": DataType.UWORD,
    "i": DataType.SDWORD,
    "I": DataType.UDWORD,
    "f": DataType.FLOAT,
    "d": DataType.DOUBLE,
    "q": DataType.SLWORD,
    "Q": DataType.ULWORD,
}


@dataclass(frozen=True)
class DeviceAddress:
    """Parsed device reference: device code, numeric index and the base the index is written in."""

    code: str
    index: int
    base: int = 10

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"index must be >= 0, got {self.index}")
        if self.base not in (10, 16):
            raise ValueError(f"base must be 10 or 16, got {self.base}")

    @property
    def number_text(self) -> str:
        """Index rendered in the device's own base (upper-case hex for base 16)."""
        return f"{self.index:X}" if self.base == 16 else str(self.index)

    def __str__(self) -> str:
        return f"{self.code}{self.number_text}"


@dataclass(frozen=True)
class QueryTag:
    """One unit of work: a device string and the type to read or write it as."""

    device: str
    data_type: DataType = DataType.UWORD

    @property
    def access_unit(self) -> AccessUnit:
        return self.data_type.access_unit


class Tag(NamedTuple):
    """Result of a read: device, value (None on failure), data type name and error text."""

    device: str
    value: Any
    type: str | None = None
    error: str | None = None

    def __bool__(self) -> bool:
        return self.value is not None and self.error is None

    def __str__(self) -> str:
        return f"{self.device}, {self.value!r}, {self.type}, {self.error}"


@dataclass(frozen=True)
class ExplainInfo:
    """Result of client.explain(device): how a device is addressed on the wire."""

    normalized_device: str
    device_code: str
    binary_code: int
    ascii_code: str
    index: int
    base: int
    unit: str
    request_hex: str
