"""Clear exceptions for pymelsec-mc: bad input, transport failures, frame errors and PLC end codes."""


class MelsecError(Exception):
    """Base exception for pymelsec-mc."""

    batch_number: int | None = None
    failed_indices: tuple[int, ...] = ()
    completed_indices: tuple[int, ...] = ()

    def attach_batch(
        self,
        batch_number: int,
        failed_indices: list[int],
        completed_indices: list[int],
    ) -> None:
        """Record which batch of a multi-frame operation failed and which caller indices already succeeded."""
        self.batch_number = batch_number
        self.failed_indices = tuple(failed_indices)
        self.completed_indices = tuple(completed_indices)


class InvalidAddressError(MelsecError):
    """Raised when a device string is malformed or its number is out of range."""

    def __init__(self, address: str, message: str | None = None) -> None:
        self.address = address
        self._msg = message or f"Invalid device address: {address!r}"
        super().__init__(self._msg)


class UnsupportedDeviceError(MelsecError):
    """Raised when a device code is well-formed but not defined for the active series."""

    def __init__(self, series: str, device_code: str, message: str | None = None) -> None:
        self.series = series
        self.device_code = device_code
        self._msg = message or f"Device {device_code!r} is not supported on {series} series PLCs"
        super().__init__(self._msg)


class EmptyBatchError(MelsecError):
    """Raised when a request would carry no devices."""

    def __init__(self, message: str = "Batch contains no devices") -> None:
        super().__init__(message)


class MalformedBatchError(MelsecError):
    """Raised when a batch cannot be encoded into a single frame."""


class TypeMismatchError(MelsecError):
    """Raised when a write value does not fit the declared data type."""

    def __init__(self, tag: str, value: object, message: str | None = None) -> None:
        self.tag = tag
        self.value = value
        self._msg = message or f"Value {value!r} does not fit {tag}"
        super().__init__(self._msg)


class TransportError(MelsecError):
    """Raised when the underlying connection fails (refused, reset, timed out)."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class TransportTimeoutError(TransportError):
    """Raised when a send or receive exceeds the transport timeout."""


class ConnectionLostError(TransportError):
    """Raised when the peer closed or reset the connection, or the client was torn down."""


class FrameError(MelsecError):
    """Base for responses that do not match the expected envelope."""


class FrameTruncatedError(FrameError):
    """Raised when the received byte count differs from the declared response length."""


class FrameMalformedError(FrameError):
    """Raised when the response subheader, serial or length field is not valid."""


# Vendor end codes; 0x0051-0x0054 share one description.
END_CODE_DESCRIPTIONS: dict[int, str] = {
    0x0050: (
        'When "Communication Data Code" is set to ASCII Code, ASCII code data '
        "that cannot be converted to binary were received."
    ),
    0x0051: "The number of read or write points is outside the allowable range.",
    0x0052: "The number of read or write points is outside the allowable range.",
    0x0053: "The number of read or write points is outside the allowable range.",
    0x0054: "The number of read or write points is outside the allowable range.",
    0x0055: (
        "Although online change is disabled, the connected device requested "
        "the RUN-state CPU module for data writing."
    ),
    0x4031: "The specified device range is outside the range configured in the CPU module.",
    0xC050: "ASCII code data that cannot be converted to binary were received.",
    0xC051: "The number of bit points to read or write is outside the allowable range.",
    0xC052: "The number of word points to read or write is outside the allowable range.",
    0xC053: "The number of bit points for random access is outside the allowable range.",
    0xC054: "The number of word points for random access is outside the allowable range.",
    0xC056: "The read or write request exceeds the maximum address.",
    0xC058: (
        "The request data length after ASCII-to-binary conversion does not "
        "match the data size of the character area."
    ),
    0xC059: (
        "The command and/or subcommand are specified incorrectly. The CPU "
        "module does not support the command and/or subcommand."
    ),
    0xC05B: "The CPU module cannot read data from or write data to the specified device.",
    0xC05C: (
        "The request data is incorrect (e.g. reading or writing data in units "
        "of bits from or to a word device)."
    ),
    0xC05D: "No monitor registration.",
    0xC05F: "The request cannot be executed to the CPU module.",
    0xC060: "The request data is incorrect (e.g. incorrect specification of data for bit devices).",
    0xC061: "The request data length does not match the number of data in the character area.",
    0xC06F: (
        "The CPU module received a request message in ASCII format when "
        '"Communication Data Code" is set to Binary Code, or in binary format '
        "when the setting is ASCII Code."
    ),
    0xC070: "The device memory extension cannot be specified for the target station.",
    0xC0B5: "The CPU module cannot handle the data specified.",
    0xC200: "The remote password is incorrect.",
    0xC201: "The port used for communication is locked with the remote password.",
    0xC204: (
        "The connected device is different from the one that requested for "
        "unlock processing of the remote password."
    ),
}


def describe_end_code(code: int) -> str:
    """Return the vendor description for an end code, or a generic message."""
    return END_CODE_DESCRIPTIONS.get(code, "Unknown error code.")


class PlcRejectedError(MelsecError):
    """Raised when the PLC answers with a nonzero end code."""

    def __init__(self, code: int) -> None:
        self.code = code
        self.code_hex = f"0x{code:04X}"
        self.description = describe_end_code(code)
        super().__init__(f"PLC rejected request with end code {self.code_hex}: {self.description}")
