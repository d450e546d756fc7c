"""Parse and normalize MELSEC device strings (M8304, D100, X1F, ZR0FFFF) against a series profile."""

import re

from .devicetable import DeviceEntry, known_device_codes
from .errors import InvalidAddressError, UnsupportedDeviceError
from .series import SeriesProfile
from .types import DeviceAddress

# Device letters + number; the number starts with a digit so hex devices need X0FFF, not XFFF
_DEVICE_PATTERN = re.compile(r"^([A-Z]+)([0-9][0-9A-F]*)$")


def split_device(raw: str) -> tuple[str, str]:
    """Split a device string into (device code, number text) without consulting any table."""
    s = raw.strip().upper()
    if not s:
        raise InvalidAddressError(raw, "Device cannot be empty")
    m = _DEVICE_PATTERN.match(s)
    if not m:
        if s.isalpha():
            raise InvalidAddressError(
                raw,
                f"Missing device number in {raw!r} (hex numbers starting with a letter need a leading 0, e.g. X0FFF)",
            )
        raise InvalidAddressError(raw, f"Malformed device: {raw!r}")
    return m.group(1), m.group(2)


def resolve_device(raw: str, profile: SeriesProfile) -> tuple[DeviceAddress, DeviceEntry]:
    """
    Parse a device string into a DeviceAddress plus its table entry.

    - Device code must exist in the profile's table (UnsupportedDeviceError when another
      series defines it, InvalidAddressError when no series does).
    - Number is read in the base the table records for the code.
    - Number must fit the profile's device-number field.
    """
    code, number = split_device(raw)
    series = profile.series.value
    if code not in profile.table:
        if code in known_device_codes():
            raise UnsupportedDeviceError(series, code)
        raise InvalidAddressError(raw, f"Unknown device code {code!r} in {raw!r}")
    entry = profile.table.lookup(code, series)

    try:
        index = int(number, entry.base)
    except ValueError:
        kind = "hexadecimal" if entry.base == 16 else "decimal"
        raise InvalidAddressError(raw, f"Device number {number!r} is not {kind} for {code}") from None

    ceiling = profile.device_ceiling(entry.base)
    if index > ceiling:
        raise InvalidAddressError(raw, f"Device number out of range 0-{ceiling:#x}: {index:#x}")
    return DeviceAddress(code=code, index=index, base=entry.base), entry


def parse_device(raw: str, profile: SeriesProfile) -> DeviceAddress:
    """Parse a device string for the given profile. Raises InvalidAddressError or UnsupportedDeviceError."""
    return resolve_device(raw, profile)[0]


def normalize_device(raw: str, profile: SeriesProfile) -> str:
    """Canonical text form: upper-case code, number without padding in the device's base (d0100 -> D100)."""
    return str(parse_device(raw, profile))


def check_span(address: DeviceAddress, points: int, profile: SeriesProfile) -> None:
    """Raise InvalidAddressError when ``points`` devices starting at ``address`` run past the last device number."""
    ceiling = profile.device_ceiling(address.base)
    if address.index + points - 1 > ceiling:
        raise InvalidAddressError(
            str(address), f"{points} points from {address} run past the last device number {ceiling:#x}"
        )


def offset_device(address: DeviceAddress, points: int) -> DeviceAddress:
    """Device ``points`` positions after ``address`` (D100 + 2 -> D102)."""
    return DeviceAddress(code=address.code, index=address.index + points, base=address.base)
