"""MelsecClient: typed reads and writes over MC protocol 3E/4E frames, with frame batching."""

import logging
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from typing import Any

from .address import check_span, resolve_device
from .codec import Command, check_value, get_codec
from .errors import ConnectionLostError, FrameError, MelsecError, TransportError
from .planner import (
    RANDOM_READ_LIMITS,
    RANDOM_WRITE_LIMITS,
    Batch,
    RangeBatch,
    as_query_tag,
    batch_limits,
    plan,
    plan_range,
    reassemble,
)
from .series import DEFAULT_TIMER, CommType, FrameType, SeriesProfile, get_profile
from .transport import SocketTransport, Transport
from .types import AccessUnit, DataType, DeviceAddress, ExplainInfo, QueryTag, Tag

logger = logging.getLogger(__name__)

TagLike = QueryTag | tuple[str, DataType | str] | str


def _serials(stop: int = 0x10000, start: int = 0) -> Iterator[int]:
    """Endless 4E serial numbers: start..stop-1, then wrap."""
    val = start
    while True:
        yield val
        val = (val + 1) % stop


def _device_text(tag: TagLike) -> str:
    if isinstance(tag, str):
        return tag
    if isinstance(tag, QueryTag):
        return tag.device
    if isinstance(tag, tuple) and tag:
        return str(tag[0])
    return str(tag)


class MelsecClient:
    """
    High-level MC protocol client for Mitsubishi Q/L/QnA/iQ-L/iQ-R PLCs.

    Tags are (device, data_type) pairs such as ("D100", DataType.UWORD) or QueryTag objects;
    a bare device string reads bit devices as BIT and word devices as UWORD. Construction
    does no I/O; the connection opens on first use or on connect().

    After a lost connection, a timeout or an unreadable response the transport is closed and
    the client refuses further requests with ConnectionLostError until connect() is called.
    """

    def __init__(
        self,
        host: str,
        port: int = 5000,
        series: str = "Q",
        use_binary_frame: bool = True,
        *,
        frame: str = "3E",
        timeout: float = 2.0,
        timer: int = DEFAULT_TIMER,
        allow_unlimited_wait: bool = False,
        network: int = 0,
        pc: int = 0xFF,
        module_io: int = 0x03FF,
        module_station: int = 0,
        transport: Transport | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._profile = get_profile(
            series,
            frame,
            "binary" if use_binary_frame else "ascii",
            network=network,
            pc=pc,
            module_io=module_io,
            module_station=module_station,
            timer=timer,
            allow_unlimited_wait=allow_unlimited_wait,
        )
        self._codec = get_codec(self._profile)
        self._transport = transport if transport is not None else SocketTransport(timeout)
        self._connected = False
        self._broken = False
        self._lock = threading.RLock()
        self._serial = _serials()

    @property
    def profile(self) -> SeriesProfile:
        return self._profile

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ---- connection ----

    def _get_transport(self) -> Transport:
        if self._broken:
            raise ConnectionLostError(
                f"Connection to {self._host}:{self._port} was torn down; call connect() to re-establish it"
            )
        if not self._connected:
            self._transport.connect(self._host, self._port)
            self._connected = True
            logger.debug("Connected to %s:%d (%s)", self._host, self._port, self._profile.series.value)
        return self._transport

    def _tear_down(self, err: Exception) -> None:
        logger.warning("Closing connection to %s:%d after %s: %s", self._host, self._port, type(err).__name__, err)
        self._transport.close()
        self._connected = False
        self._broken = True

    def connect(self) -> None:
        """Open the TCP connection now (also clears a torn-down state)."""
        with self._lock:
            if self._broken:
                self._transport.close()
                self._broken = False
            self._get_transport()

    def close(self) -> None:
        """Close the TCP connection. A later request connects again."""
        with self._lock:
            try:
                self._transport.close()
            except OSError as e:
                logger.warning("Error closing connection: %s", e)
            self._connected = False
            self._broken = False

    def __enter__(self) -> "MelsecClient":
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _next_serial(self) -> int:
        return next(self._serial) if self._profile.frame is FrameType.E4 else 0

    def _round_trip(
        self,
        command: Command,
        subcommand: int,
        devices: Sequence[DeviceAddress],
        data_type: DataType | Sequence[DataType],
        values: Sequence[Any] | None = None,
        count: int | None = None,
        unpack: Callable[[bytes], Any] | None = None,
    ) -> Any:
        """
        Encode, send, receive exactly the declared length, decode. Returns the response payload,
        or ``unpack(payload)``; an unreadable payload tears the connection down like a bad frame.
        """
        serial = self._next_serial()
        frame = self._codec.encode_request(
            self._profile, command, subcommand, devices, data_type, values=values, serial=serial, count=count
        )
        transport = self._get_transport()
        try:
            transport.write(frame)
            header = transport.read_exact(self._codec.header_size(self._profile))
            rest = transport.read_exact(self._codec.response_length(self._profile, header))
            logger.debug("Response: %s", (header + rest).hex())
            payload = self._codec.decode_response(self._profile, header + rest, serial=serial)
            return unpack(payload) if unpack is not None else payload
        except (TransportError, FrameError) as e:
            self._tear_down(e)
            raise

    def _run(self, jobs: Sequence[Any], indices: Callable[[Any], list[int]], fn: Callable[[Any], Any]) -> list[Any]:
        """Run jobs in order; on failure tag the error with the failing batch and completed caller indices."""
        results = []
        completed: list[int] = []
        for number, job in enumerate(jobs):
            try:
                results.append(fn(job))
            except MelsecError as e:
                e.attach_batch(number, indices(job), completed)
                if len(jobs) > 1:
                    logger.debug("Batch %d of %d failed; %d values completed", number, len(jobs), len(completed))
                raise
            completed.extend(indices(job))
        return results

    # ---- tag resolution ----

    def query_tag(self, tag: TagLike) -> QueryTag:
        if isinstance(tag, str):
            _, entry = resolve_device(tag, self._profile)
            return QueryTag(tag, DataType.BIT if entry.unit is AccessUnit.BIT else DataType.UWORD)
        return as_query_tag(tag)

    # ---- random access ----

    def _read_batch(self, batch: Batch) -> list[Any]:
        types = batch.data_types
        return self._round_trip(
            Command.RANDOM_READ,
            self._profile.word_subcommand,
            batch.addresses,
            types,
            unpack=lambda payload: self._codec.unpack_random(payload, types),
        )

    def read(self, tags: Sequence[TagLike]) -> list[Any]:
        """
        Read tags in any mix of devices and types; values come back in input order
        (bool for BIT, int for integer types, float for FLOAT/DOUBLE).
        """
        query = [self.query_tag(t) for t in tags]
        with self._lock:
            batches = plan(query, self._profile, RANDOM_READ_LIMITS)
            results = self._run(batches, lambda b: list(b.indices), self._read_batch)
        return reassemble(batches, results)

    def write(self, items: Sequence[tuple[TagLike, Any]]) -> None:
        """Write (tag, value) pairs. Values are checked against their types before anything is sent."""
        query = []
        values = []
        for tag, value in items:
            qt = self.query_tag(tag)
            query.append(qt)
            values.append(check_value(qt.data_type, value, qt.device))

        def write_batch(batch: Batch) -> None:
            subcommand = (
                self._profile.bit_subcommand if batch.unit is AccessUnit.BIT else self._profile.word_subcommand
            )
            self._round_trip(
                Command.RANDOM_WRITE,
                subcommand,
                batch.addresses,
                batch.data_types,
                values=[values[i] for i in batch.indices],
            )

        with self._lock:
            batches = plan(query, self._profile, RANDOM_WRITE_LIMITS)
            self._run(batches, lambda b: list(b.indices), write_batch)

    def read_tags(self, tags: Sequence[TagLike]) -> list[Tag]:
        """
        Like read() but returns Tag records. Tags with a bad address get a Tag with ``error``
        set instead of failing the whole call; transport and PLC errors still raise.
        """
        records: list[Tag | None] = [None] * len(tags)
        valid: list[tuple[int, QueryTag]] = []
        for i, tag in enumerate(tags):
            try:
                qt = self.query_tag(tag)
                address, _ = resolve_device(qt.device, self._profile)
                check_span(address, qt.data_type.words, self._profile)
            except MelsecError as e:
                records[i] = Tag(_device_text(tag), None, None, str(e))
                continue
            valid.append((i, qt))
        if valid:
            values = self.read([qt for _, qt in valid])
            for (i, qt), value in zip(valid, values):
                records[i] = Tag(qt.device, value, qt.data_type.name)
        return [r for r in records if r is not None]

    # ---- contiguous access ----

    def _range_indices(self, chunk: RangeBatch) -> list[int]:
        return list(range(chunk.offset, chunk.offset + chunk.count))

    def batch_read(self, device: str, count: int, data_type: DataType | str = DataType.UWORD) -> list[Any]:
        """Read ``count`` consecutive values of one type starting at ``device``."""
        dt = data_type if isinstance(data_type, DataType) else DataType.from_str(data_type)
        start, _ = resolve_device(device, self._profile)

        def read_chunk(chunk: RangeBatch) -> list[Any]:
            if dt is DataType.BIT:
                return self._round_trip(
                    Command.BATCH_READ,
                    self._profile.bit_subcommand,
                    [chunk.start],
                    dt,
                    count=chunk.count,
                    unpack=lambda payload: self._codec.unpack_bits(payload, chunk.count),
                )
            return self._round_trip(
                Command.BATCH_READ,
                self._profile.word_subcommand,
                [chunk.start],
                dt,
                count=chunk.count * dt.words,
                unpack=lambda payload: self._codec.unpack_words(payload, [dt] * chunk.count),
            )

        with self._lock:
            chunks = plan_range(start, count, dt, batch_limits(self._profile), self._profile)
            results = self._run(chunks, self._range_indices, read_chunk)
        return [v for chunk in results for v in chunk]

    def batch_write(self, device: str, values: Sequence[Any], data_type: DataType | str = DataType.UWORD) -> None:
        """Write consecutive values of one type starting at ``device``."""
        dt = data_type if isinstance(data_type, DataType) else DataType.from_str(data_type)
        start, _ = resolve_device(device, self._profile)
        checked = [check_value(dt, v, device) for v in values]
        subcommand = self._profile.bit_subcommand if dt is DataType.BIT else self._profile.word_subcommand

        def write_chunk(chunk: RangeBatch) -> None:
            self._round_trip(
                Command.BATCH_WRITE,
                subcommand,
                [chunk.start],
                dt,
                values=checked[chunk.offset : chunk.offset + chunk.count],
            )

        with self._lock:
            chunks = plan_range(start, len(checked), dt, batch_limits(self._profile), self._profile)
            self._run(chunks, self._range_indices, write_chunk)

    # ---- helpers ----

    def explain(self, device: str, data_type: DataType | str | None = None) -> ExplainInfo:
        """Describe how a device is addressed and the read request it produces; no I/O."""
        address, entry = resolve_device(device, self._profile)
        if data_type is None:
            dt = DataType.BIT if entry.unit is AccessUnit.BIT else DataType.UWORD
        else:
            dt = data_type if isinstance(data_type, DataType) else DataType.from_str(data_type)
        frame = self._codec.encode_request(
            self._profile, Command.RANDOM_READ, self._profile.word_subcommand, [address], dt
        )
        return ExplainInfo(
            normalized_device=str(address),
            device_code=entry.code,
            binary_code=entry.binary,
            ascii_code=entry.ascii,
            index=address.index,
            base=entry.base,
            unit=entry.unit.value,
            request_hex=frame.hex() if self._profile.comm is CommType.BINARY else frame.decode("ascii"),
        )

    def poll_iter(self, tags: Sequence[TagLike], interval_s: float) -> Iterator[list[Any]]:
        """Yield read(tags) every interval_s seconds indefinitely."""
        query = [self.query_tag(t) for t in tags]
        while True:
            yield self.read(query)
            time.sleep(interval_s)

    def __getitem__(self, device: str) -> Any:
        return self.read([device])[0]

    def __setitem__(self, device: str, value: Any) -> None:
        self.write([(device, value)])

    def __repr__(self) -> str:
        p = self._profile
        return (
            f"MelsecClient(host={self._host!r}, port={self._port}, series={p.series.value!r}, "
            f"frame={p.frame.value!r}, comm={p.comm.value!r})"
        )
