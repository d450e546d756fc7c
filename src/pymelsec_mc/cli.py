#!/usr/bin/env python3
"""Command line interface for pymelsec-mc using Typer."""

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__
from .client import MelsecClient
from .errors import (
    EmptyBatchError,
    FrameError,
    InvalidAddressError,
    MalformedBatchError,
    PlcRejectedError,
    TransportError,
    TypeMismatchError,
    UnsupportedDeviceError,
)
from .series import get_profile
from .types import DataType

app = typer.Typer(
    name="melsec",
    help="Read and write Mitsubishi MELSEC PLC devices over the MC protocol (3E/4E frames).",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# Bad input: exit 2
INPUT_ERRORS = (
    InvalidAddressError,
    UnsupportedDeviceError,
    EmptyBatchError,
    MalformedBatchError,
    TypeMismatchError,
    ValueError,
)
# Connection, framing or PLC-side failure: exit 3
IO_ERRORS = (TransportError, FrameError, PlcRejectedError)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="PLC hostname or IP address", envvar="MELSEC_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="MC protocol TCP port", envvar="MELSEC_PORT"),
]
SeriesOption = Annotated[
    str,
    typer.Option("--series", "-s", help="PLC series: Q, L, QnA, iQ-L, iQ-R", envvar="MELSEC_SERIES"),
]
FrameOption = Annotated[
    str,
    typer.Option("--frame", help="Frame type: 3E or 4E", envvar="MELSEC_FRAME"),
]
CommOption = Annotated[
    str,
    typer.Option("--comm", help="Communication data code: binary or ascii", envvar="MELSEC_COMM"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Socket timeout in seconds", envvar="MELSEC_TIMEOUT"),
]
TimerOption = Annotated[
    int,
    typer.Option("--timer", help="PLC monitoring timer in units of 250 ms", envvar="MELSEC_TIMER"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
TypeOption = Annotated[
    Optional[str],
    typer.Option("--type", help="Data type: BIT, SWORD, UWORD, SDWORD, UDWORD, FLOAT, SLWORD, ULWORD, DOUBLE"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_client(
    host: Optional[str],
    port: int,
    series: str,
    frame: str,
    comm: str,
    timeout: float,
    timer: int,
) -> MelsecClient:
    """Create and return a MelsecClient instance."""
    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    comm_name = comm.strip().lower()
    if comm_name not in ("binary", "ascii"):
        raise ValueError(f"Unknown communication type: {comm!r}. Use 'binary' or 'ascii'")
    return MelsecClient(
        host,
        port,
        series,
        comm_name == "binary",
        frame=frame,
        timeout=timeout,
        timer=timer,
    )


def split_tag(text: str) -> tuple[str, Optional[DataType]]:
    """Split DEVICE[:TYPE] (e.g. D100:FLOAT) into device and optional data type."""
    device, sep, type_name = text.partition(":")
    if not sep:
        return device.strip(), None
    return device.strip(), DataType.from_str(type_name)


def to_tag(device: str, data_type: Optional[DataType]) -> Any:
    """Client tag: bare device (type from the device table) or (device, type)."""
    return device if data_type is None else (device, data_type)


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_int(value: str) -> int:
    """Parse integer value from string, supporting 0x hex."""
    v = value.strip()
    if v.lower().startswith(("0x", "-0x")):
        return int(v, 16)
    return int(v)


def parse_value(value: str, data_type: DataType) -> Any:
    """Parse a command line value for the given data type; range checks happen in the client."""
    if data_type is DataType.BIT:
        return parse_bool(value)
    if data_type.is_float:
        return float(value)
    return parse_int(value)


def format_value(value: Any) -> str:
    """Format value for display."""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _fail(message: str, code: int, verbose: bool = False) -> None:
    typer.echo(f"Error: {message}", err=True)
    if verbose and code == 4:
        import traceback

        traceback.print_exc()
    raise typer.Exit(code)


# ============================================================================
# Commands
# ============================================================================


@app.command()
def read(
    tags: Annotated[list[str], typer.Argument(help="Devices to read, optionally typed (e.g. M8304 D100 D200:FLOAT)")],
    host: HostOption = None,
    port: PortOption = 5000,
    series: SeriesOption = "Q",
    frame: FrameOption = "3E",
    comm: CommOption = "binary",
    timeout: TimeoutOption = 2.0,
    timer: TimerOption = 4,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read one or more devices with random read frames.

    Untyped bit devices read as BIT and word devices as UWORD; append :TYPE for others.
    One device prints its value; several print DEVICE=VALUE lines, or a JSON list with --json.
    """
    setup_logging(verbose)

    try:
        parsed = [split_tag(t) for t in tags]
        client = create_client(host, port, series, frame, comm, timeout, timer)
        with client:
            values = client.read([to_tag(d, dt) for d, dt in parsed])

        if json_output:
            out = [
                {"device": d, "type": dt.name if dt else None, "value": v}
                for (d, dt), v in zip(parsed, values)
            ]
            typer.echo(json.dumps(out if len(out) > 1 else out[0]))
        elif len(values) == 1:
            typer.echo(format_value(values[0]))
        else:
            for (d, _), v in zip(parsed, values):
                typer.echo(f"{d}={format_value(v)}")
    except typer.Exit:
        raise
    except INPUT_ERRORS as e:
        _fail(f"Invalid input: {e}", 2)
    except IO_ERRORS as e:
        _fail(f"Connection/PLC error: {e}", 3)
    except Exception as e:
        _fail(f"Unexpected error: {e}", 4, verbose)


@app.command()
def write(
    tag: Annotated[str, typer.Argument(help="Device to write, optionally typed (e.g. M100, D100, D200:FLOAT)")],
    value: Annotated[str, typer.Argument(help="Value (bit: true/false/1/0/on/off/yes/no; int: decimal or 0x hex)")],
    host: HostOption = None,
    port: PortOption = 5000,
    series: SeriesOption = "Q",
    frame: FrameOption = "3E",
    comm: CommOption = "binary",
    timeout: TimeoutOption = 2.0,
    timer: TimerOption = 4,
    verbose: VerboseOption = False,
) -> None:
    """
    Write a value to a single device with a random write frame.

    The value is checked against the data type before anything is sent.
    """
    setup_logging(verbose)

    try:
        device, data_type = split_tag(tag)
        client = create_client(host, port, series, frame, comm, timeout, timer)
        if data_type is None:
            data_type = client.query_tag(device).data_type
        parsed_value = parse_value(value, data_type)
        with client:
            client.write([((device, data_type), parsed_value)])
        typer.echo(f"OK: Wrote {device} = {format_value(parsed_value)}")
    except typer.Exit:
        raise
    except INPUT_ERRORS as e:
        _fail(f"Invalid input: {e}", 2)
    except IO_ERRORS as e:
        _fail(f"Connection/PLC error: {e}", 3)
    except Exception as e:
        _fail(f"Unexpected error: {e}", 4, verbose)


@app.command(name="batch-read")
def batch_read(
    device: Annotated[str, typer.Argument(help="First device of the range (e.g. D100, M0)")],
    count: Annotated[int, typer.Argument(help="Number of consecutive values")],
    data_type: TypeOption = None,
    host: HostOption = None,
    port: PortOption = 5000,
    series: SeriesOption = "Q",
    frame: FrameOption = "3E",
    comm: CommOption = "binary",
    timeout: TimeoutOption = 2.0,
    timer: TimerOption = 4,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read COUNT consecutive values starting at DEVICE with batch read frames.

    Large ranges are split into several frames (960 words or 7168 bits each).
    """
    setup_logging(verbose)

    try:
        client = create_client(host, port, series, frame, comm, timeout, timer)
        dt = DataType.from_str(data_type) if data_type else client.query_tag(device).data_type
        with client:
            values = client.batch_read(device, count, dt)

        if json_output:
            typer.echo(json.dumps({"device": device, "type": dt.name, "values": values}))
        else:
            typer.echo(" ".join(format_value(v) for v in values))
    except typer.Exit:
        raise
    except INPUT_ERRORS as e:
        _fail(f"Invalid input: {e}", 2)
    except IO_ERRORS as e:
        _fail(f"Connection/PLC error: {e}", 3)
    except Exception as e:
        _fail(f"Unexpected error: {e}", 4, verbose)


@app.command()
def explain(
    tag: Annotated[str, typer.Argument(help="Device to explain, optionally typed (e.g. x1a, D200:FLOAT)")],
    series: SeriesOption = "Q",
    frame: FrameOption = "3E",
    comm: CommOption = "binary",
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show normalized device, device codes, numbering base and the read request frame.

    Does not require a connection.
    """
    setup_logging(verbose)

    try:
        device, data_type = split_tag(tag)
        # No I/O happens in explain; host is never contacted
        client = create_client("localhost", 5000, series, frame, comm, 2.0, 4)
        info = client.explain(device, data_type)

        if json_output:
            typer.echo(json.dumps(asdict(info), indent=2))
        else:
            typer.echo(f"Normalized device: {info.normalized_device}")
            typer.echo(f"Device code:       {info.device_code}")
            typer.echo(f"Binary code:       0x{info.binary_code:02X}")
            typer.echo(f"ASCII code:        {info.ascii_code}")
            typer.echo(f"Number:            {info.index} (base {info.base})")
            typer.echo(f"Unit:              {info.unit}")
            typer.echo(f"Request:           {info.request_hex}")
    except typer.Exit:
        raise
    except INPUT_ERRORS as e:
        _fail(f"Invalid input: {e}", 2)
    except Exception as e:
        _fail(f"Unexpected error: {e}", 4, verbose)


@app.command()
def devices(
    series: SeriesOption = "Q",
    json_output: JsonOption = False,
) -> None:
    """List the device codes supported by a PLC series."""
    try:
        profile = get_profile(series)
    except ValueError as e:
        _fail(f"Invalid input: {e}", 2)
    entries = [profile.table.lookup(code) for code in profile.table.codes()]
    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "code": e.code,
                        "binary": e.binary,
                        "ascii": e.ascii,
                        "base": e.base,
                        "unit": e.unit.value,
                        "description": e.description,
                    }
                    for e in entries
                ],
                indent=2,
            )
        )
        return
    for e in entries:
        typer.echo(f"{e.code:<5} 0x{e.binary:02X}  {e.ascii:<4}  base {e.base:<2}  {e.unit.value:<4}  {e.description}")


@app.command()
def info(
    host: HostOption = None,
    port: PortOption = 5000,
    series: SeriesOption = "Q",
    frame: FrameOption = "3E",
    comm: CommOption = "binary",
    timeout: TimeoutOption = 2.0,
    timer: TimerOption = 4,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show package version and connection settings, and optionally test connectivity.

    Without --host: shows local metadata only.
    With --host: also reads SM400 (always ON) to test the connection.
    """
    setup_logging(verbose)

    info_data: dict[str, Any] = {
        "version": __version__,
        "series": series,
        "frame": frame,
        "comm": comm,
        "timer": timer,
    }

    if host:
        try:
            client = create_client(host, port, series, frame, comm, timeout, timer)
            with client:
                client.read(["SM400"])
            info_data["connectivity"] = {"status": "connected", "host": host, "port": port}
        except IO_ERRORS as e:
            info_data["connectivity"] = {"status": "failed", "host": host, "port": port, "error": str(e)}
        except Exception as e:
            info_data["connectivity"] = {"status": "error", "error": str(e)}

    if json_output:
        typer.echo(json.dumps(info_data, indent=2))
    else:
        typer.echo(f"pymelsec-mc version: {info_data['version']}")
        typer.echo(f"Series: {series}  Frame: {frame}  Comm: {comm}  Timer: {timer}")
        if "connectivity" in info_data:
            status = info_data["connectivity"]["status"]
            if status == "connected":
                typer.echo(f"Connectivity: OK ({host}:{port})")
            elif status == "failed":
                typer.echo(f"Connectivity: FAILED ({host}:{port}): {info_data['connectivity']['error']}")
            else:
                typer.echo(f"Connectivity: ERROR - {info_data['connectivity'].get('error', 'unknown')}")


@app.command()
def poll(
    tags: Annotated[list[str], typer.Argument(help="Devices to poll, optionally typed (e.g. M8304 D100:SWORD)")],
    host: HostOption = None,
    port: PortOption = 5000,
    series: SeriesOption = "Q",
    frame: FrameOption = "3E",
    comm: CommOption = "binary",
    timeout: TimeoutOption = 2.0,
    timer: TimerOption = 4,
    verbose: VerboseOption = False,
    interval: Annotated[float, typer.Option("--interval", "-i", help="Polling interval in seconds")] = 1.0,
    once: Annotated[bool, typer.Option("--once", help="Poll once and exit")] = False,
    format: Annotated[str, typer.Option("--format", "-f", help="Output format: text, json, csv")] = "text",
) -> None:
    """
    Continuously read devices at a fixed interval.

    Outputs format:
    - text: timestamp + DEVICE=VALUE pairs (default)
    - json: NDJSON with {"timestamp": "...", "values": {...}} per line
    - csv: devices as columns, one row per poll cycle

    Use --once to poll once and exit. Press Ctrl+C to stop.
    """
    setup_logging(verbose)

    if format not in ("text", "json", "csv"):
        _fail(f"Invalid format '{format}'. Must be text, json, or csv.", 2)
    if interval <= 0:
        _fail(f"Interval must be positive, got {interval}", 2)

    try:
        parsed = [split_tag(t) for t in tags]
        names = [d for d, _ in parsed]
        client = create_client(host, port, series, frame, comm, timeout, timer)

        if format == "csv":
            typer.echo("timestamp," + ",".join(names))

        with client:
            for values in client.poll_iter([to_tag(d, dt) for d, dt in parsed], interval):
                timestamp = datetime.now(timezone.utc).isoformat()
                formatted = [format_value(v) for v in values]
                if format == "text":
                    pairs = " ".join(f"{n}={v}" for n, v in zip(names, formatted))
                    typer.echo(f"{timestamp} {pairs}")
                elif format == "json":
                    typer.echo(json.dumps({"timestamp": timestamp, "values": dict(zip(names, values))}))
                else:
                    typer.echo(timestamp + "," + ",".join(formatted))
                if once:
                    break
    except typer.Exit:
        raise
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)
    except INPUT_ERRORS as e:
        _fail(f"Invalid input: {e}", 2)
    except IO_ERRORS as e:
        _fail(f"Connection/PLC error: {e}", 3)
    except Exception as e:
        _fail(f"Unexpected error: {e}", 4, verbose)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pymelsec-mc {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """melsec - read and write MELSEC PLC devices over the MC protocol."""
    pass


if __name__ == "__main__":
    app()
