"""DeviceTable: load embedded JSON via importlib.resources, per-series selection, O(1) lookup."""

import json
import logging
from dataclasses import dataclass
from importlib import resources
from typing import Any

from .errors import UnsupportedDeviceError
from .types import AccessUnit

logger = logging.getLogger(__name__)

_DATA_PACKAGE = "pymelsec_mc.data"

_TABLE_RESOURCE: dict[str, str] = {
    "q": "q_devices.json",
    "iqr": "iqr_devices.json",
}


@dataclass(frozen=True)
class DeviceEntry:
    """One device code: binary code, ASCII code, numbering base and access unit."""

    code: str
    binary: int
    ascii: str
    base: int
    unit: AccessUnit
    description: str = ""

    def __post_init__(self) -> None:
        if self.base not in (10, 16):
            raise ValueError(f"base must be 10 or 16, got {self.base} for {self.code}")


def _parse_entry(raw: dict[str, Any]) -> DeviceEntry:
    """Build DeviceEntry from a JSON entry (code, binary, ascii, base, unit, description)."""
    code = str(raw["code"]).upper()
    binary = raw["binary"]
    binary = int(binary, 0) if isinstance(binary, str) else int(binary)
    try:
        unit = AccessUnit(raw["unit"])
    except ValueError:
        raise ValueError(f"Unknown unit {raw['unit']!r} for device {code!r}")
    return DeviceEntry(
        code=code,
        binary=binary,
        ascii=str(raw["ascii"]),
        base=int(raw["base"]),
        unit=unit,
        description=str(raw.get("description", "")),
    )


class DeviceTable:
    """
    In-memory map of device codes to DeviceEntry for one table (q or iqr).
    Loaded from packaged JSON, or from an override list of entry dicts.
    """

    def __init__(
        self,
        name: str = "q",
        entries_override: list[dict[str, Any]] | None = None,
        *,
        extended: bool | None = None,
    ) -> None:
        self._name = name.lower()
        self._by_code: dict[str, DeviceEntry] = {}
        self._extended = bool(extended)

        if entries_override is not None:
            self._load(entries_override)
            logger.debug("DeviceTable loaded from override: %d entries", len(self._by_code))
            return

        json_name = _TABLE_RESOURCE.get(self._name)
        if not json_name:
            raise ValueError(f"Unknown device table: {name!r}")
        try:
            with resources.files(_DATA_PACKAGE).joinpath(json_name).open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise FileNotFoundError(f"Device table resource not found: {_DATA_PACKAGE}/{json_name}") from None

        if extended is None:
            self._extended = bool(data.get("extended", False))
        self._load(data.get("entries", []))
        logger.debug("DeviceTable %s loaded: %d entries", self._name, len(self._by_code))

    def _load(self, entries: list[dict[str, Any]]) -> None:
        for raw in entries:
            if not isinstance(raw, dict):
                continue
            entry = _parse_entry(raw)
            if entry.code in self._by_code:
                raise ValueError(f"Duplicate device code in table: {entry.code}")
            self._by_code[entry.code] = entry

    def lookup(self, device_code: str, series: str | None = None) -> DeviceEntry:
        """Return the entry for a device code; raise UnsupportedDeviceError if the table lacks it."""
        code = device_code.upper()
        if code not in self._by_code:
            raise UnsupportedDeviceError(series or self._name, code)
        return self._by_code[code]

    def code_for(self, device_code: str, series: str | None = None) -> int:
        """Protocol-level (binary) code for a device code."""
        return self.lookup(device_code, series).binary

    def __contains__(self, device_code: object) -> bool:
        return isinstance(device_code, str) and device_code.upper() in self._by_code

    def __len__(self) -> int:
        return len(self._by_code)

    def codes(self) -> list[str]:
        return sorted(self._by_code)

    @property
    def name(self) -> str:
        return self._name

    @property
    def extended(self) -> bool:
        """True when the table uses the extended (iQ-R) device specification layout."""
        return self._extended

    @property
    def number_bytes(self) -> int:
        return 4 if self._extended else 3

    @property
    def max_device_number(self) -> int:
        return (1 << (8 * self.number_bytes)) - 1


_CACHE: dict[str, DeviceTable] = {}


def get_device_table(name: str = "q") -> DeviceTable:
    """Load (once) and return the packaged DeviceTable for a table name."""
    key = name.lower()
    if key not in _CACHE:
        _CACHE[key] = DeviceTable(key)
    return _CACHE[key]


def known_device_codes() -> set[str]:
    """Device codes defined by any packaged table."""
    codes: set[str] = set()
    for name in _TABLE_RESOURCE:
        codes.update(get_device_table(name).codes())
    return codes
