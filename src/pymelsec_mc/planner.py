"""RequestPlanner: split tag lists into frames by access unit and per-frame point ceilings."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from .address import check_span, offset_device, parse_device
from .errors import EmptyBatchError, MalformedBatchError
from .series import CommType, SeriesProfile
from .types import AccessUnit, DataType, DeviceAddress, QueryTag

logger = logging.getLogger(__name__)


class PointLimits(NamedTuple):
    """
    Per-frame ceilings for bit and word units. In word units each point is charged
    ``word_cost`` (one-word value) or ``dword_cost`` (per dword point), against a budget of
    ``word * word_cost``; with the default costs of 1 this is a plain point count.
    """

    bit: int
    word: int
    word_cost: int = 1
    dword_cost: int = 1

    def for_unit(self, unit: AccessUnit) -> int:
        return self.bit if unit is AccessUnit.BIT else self.word

    def budget(self, unit: AccessUnit) -> int:
        return self.bit if unit is AccessUnit.BIT else self.word * self.word_cost

    def cost(self, data_type: DataType) -> int:
        if data_type.access_unit is AccessUnit.BIT:
            return 1
        if data_type.words == 1:
            return self.word_cost
        return self.dword_cost * data_type.access_points


RANDOM_READ_LIMITS = PointLimits(bit=192, word=192)
# Word-unit random write: word points weigh 12, dword points 14, within 1920
RANDOM_WRITE_LIMITS = PointLimits(bit=188, word=160, word_cost=12, dword_cost=14)
BATCH_LIMITS = PointLimits(bit=7168, word=960)
# ASCII spends one character per bit point
ASCII_BATCH_LIMITS = PointLimits(bit=3584, word=960)


def batch_limits(profile: SeriesProfile) -> PointLimits:
    """Contiguous batch ceilings for the profile's data code."""
    return ASCII_BATCH_LIMITS if profile.comm is CommType.ASCII else BATCH_LIMITS


def as_query_tag(tag: "QueryTag | tuple[str, DataType | str]") -> QueryTag:
    """Accept a QueryTag or a (device, data_type) pair; data_type may be a name like "FLOAT"."""
    if isinstance(tag, QueryTag):
        return tag
    if isinstance(tag, tuple) and len(tag) == 2:
        device, data_type = tag
        if not isinstance(data_type, DataType):
            try:
                data_type = DataType.from_str(str(data_type))
            except ValueError as e:
                raise MalformedBatchError(f"{e} for {device!r}") from None
        return QueryTag(str(device), data_type)
    raise MalformedBatchError(f"Cannot interpret {tag!r} as a tag; use QueryTag or (device, data_type)")


@dataclass(frozen=True)
class Batch:
    """
    Tags that go out in one frame. ``indices[i]`` is the caller's input position of
    ``tags[i]``; ``addresses[i]`` is its parsed device.
    """

    unit: AccessUnit
    tags: tuple[QueryTag, ...]
    addresses: tuple[DeviceAddress, ...]
    indices: tuple[int, ...]

    @property
    def data_types(self) -> list[DataType]:
        return [t.data_type for t in self.tags]

    @property
    def points(self) -> int:
        return sum(t.data_type.access_points for t in self.tags)

    def __len__(self) -> int:
        return len(self.tags)


def plan(
    tags: Sequence[QueryTag],
    profile: SeriesProfile,
    limits: PointLimits = RANDOM_READ_LIMITS,
) -> list[Batch]:
    """
    Validate every tag against the profile, then group by access unit (bit group first,
    stable within each group) and chunk so no frame exceeds the unit's point ceiling.
    Raises EmptyBatchError for an empty list; address errors propagate before any batching.
    """
    if not tags:
        raise EmptyBatchError()
    groups: dict[AccessUnit, list[tuple[int, QueryTag, DeviceAddress]]] = {
        AccessUnit.BIT: [],
        AccessUnit.WORD: [],
    }
    for i, tag in enumerate(tags):
        address = parse_device(tag.device, profile)
        check_span(address, tag.data_type.words, profile)
        groups[tag.access_unit].append((i, tag, address))

    batches: list[Batch] = []
    for unit in (AccessUnit.BIT, AccessUnit.WORD):
        ceiling = limits.budget(unit)
        chunk: list[tuple[int, QueryTag, DeviceAddress]] = []
        points = 0
        for item in groups[unit]:
            need = limits.cost(item[1].data_type)
            if chunk and points + need > ceiling:
                batches.append(_make_batch(unit, chunk))
                chunk, points = [], 0
            chunk.append(item)
            points += need
        if chunk:
            batches.append(_make_batch(unit, chunk))

    logger.debug(
        "Planned %d tags into %d frames (bit ceiling %d, word ceiling %d)",
        len(tags),
        len(batches),
        limits.bit,
        limits.word,
    )
    return batches


def _make_batch(unit: AccessUnit, chunk: list[tuple[int, QueryTag, DeviceAddress]]) -> Batch:
    return Batch(
        unit=unit,
        tags=tuple(t for _, t, _ in chunk),
        addresses=tuple(a for _, _, a in chunk),
        indices=tuple(i for i, _, _ in chunk),
    )


def reassemble(batches: Sequence[Batch], results: Sequence[Sequence[Any]]) -> list[Any]:
    """Put per-batch results back into the caller's original order using each batch's index map."""
    if len(batches) != len(results):
        raise ValueError(f"{len(results)} result lists for {len(batches)} batches")
    total = sum(len(b) for b in batches)
    out: list[Any] = [None] * total
    for batch, values in zip(batches, results):
        if len(values) != len(batch):
            raise ValueError(f"Batch of {len(batch)} tags got {len(values)} values")
        for index, value in zip(batch.indices, values):
            out[index] = value
    return out


class RangeBatch(NamedTuple):
    """One contiguous chunk: starting device, value count, and offset of the first value in the request."""

    start: DeviceAddress
    count: int
    offset: int


def plan_range(
    start: DeviceAddress,
    count: int,
    data_type: DataType,
    limits: PointLimits = BATCH_LIMITS,
    profile: SeriesProfile | None = None,
) -> list[RangeBatch]:
    """
    Split ``count`` consecutive values starting at ``start`` into chunks under the batch
    ceiling, never splitting a multi-word value across frames. With a profile, the whole
    range must end at or below its last device number (InvalidAddressError).
    """
    if count < 1:
        raise EmptyBatchError(f"Range read/write needs at least one value, got {count}")
    if profile is not None:
        check_span(start, count * data_type.words, profile)
    ceiling = limits.for_unit(data_type.access_unit)
    per_frame = ceiling // data_type.words
    chunks: list[RangeBatch] = []
    done = 0
    while done < count:
        n = min(per_frame, count - done)
        chunks.append(RangeBatch(offset_device(start, done * data_type.words), n, done))
        done += n
    logger.debug("Planned %d x %s from %s into %d frames", count, data_type.name, start, len(chunks))
    return chunks
