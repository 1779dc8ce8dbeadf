"""Delta heap, block and mutex profiles in pprof format."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterable, Optional

from .builder import (
    TAG_PROFILE_DEFAULT_SAMPLE_TYPE,
    TAG_PROFILE_PERIOD,
    TAG_PROFILE_PERIOD_TYPE,
    TAG_PROFILE_SAMPLE_TYPE,
    TAG_SAMPLE_LABEL,
    ProfileBuilder,
    ProfileBuilderOptions,
    Symbolizer,
)
from .procmaps import MemMap, read_mapping
from .profmap import ProfMap

MappingReader = Callable[[], list]

# Durations are measured in nanoseconds, so one "cycle" is one nanosecond.
DEFAULT_CYCLES_PER_SECOND = 1_000_000_000


def _trim_stack(stack: Iterable[int]) -> tuple[int, ...]:
    out = []
    for pc in stack:
        if pc == 0:
            break
        out.append(pc)
    return tuple(out)


@dataclass
class MemProfileRecord:
    """Allocation counters for one allocation site."""

    alloc_bytes: int = 0
    free_bytes: int = 0
    alloc_objects: int = 0
    free_objects: int = 0
    stack0: tuple[int, ...] = field(default_factory=tuple)

    def in_use_bytes(self) -> int:
        return self.alloc_bytes - self.free_bytes

    def in_use_objects(self) -> int:
        return self.alloc_objects - self.free_objects

    def stack(self) -> tuple[int, ...]:
        """Return the stack up to the first zero PC."""
        return _trim_stack(self.stack0)


@dataclass
class BlockProfileRecord:
    """Contention counters for one blocking site."""

    count: int = 0
    cycles: int = 0
    stack0: tuple[int, ...] = field(default_factory=tuple)

    def stack(self) -> tuple[int, ...]:
        return _trim_stack(self.stack0)


@dataclass(frozen=True)
class MutexProfileScaler:
    """Adjusts sampled contention counts; without a function it is a no-op."""

    fn: Optional[Callable[[int, float], tuple[int, float]]] = None


SCALER_MUTEX_PROFILE = MutexProfileScaler()
SCALER_BLOCK_PROFILE = MutexProfileScaler()


def scale_mutex_profile(
    scaler: MutexProfileScaler, count: int, nanoseconds: float
) -> tuple[int, float]:
    if scaler.fn is None:
        return count, nanoseconds
    return scaler.fn(count, nanoseconds)


def scale_heap_sample(count: int, size: int, rate: int) -> tuple[int, int]:
    """Estimate unsampled values from a sampled heap record.

    A sample of size S appears with probability 1-exp(-S/R).
    """
    if count == 0 or size == 0:
        return 0, 0
    if rate <= 1:
        return count, size
    avg_size = size / count
    scale = 1 / (1 - math.exp(-avg_size / rate))
    return int(count * scale), int(size * scale)


class _DeltaBase:
    def __init__(
        self,
        options: Optional[ProfileBuilderOptions] = None,
        symbolizer: Optional[Symbolizer] = None,
        mapping_reader: Optional[MappingReader] = None,
    ) -> None:
        self.options = options if options is not None else ProfileBuilderOptions()
        self.symbolizer = symbolizer
        self._mapping_reader = mapping_reader if mapping_reader is not None else read_mapping
        self._map = ProfMap()
        self._mem: Optional[list[MemMap]] = None

    def _builder(self, w: BinaryIO) -> ProfileBuilder:
        if self._mem is None or not self.options.lazy_mapping:
            self._mem = list(self._mapping_reader())
        return ProfileBuilder(w, self.options, self._mem, self.symbolizer)


class DeltaHeapProfiler(_DeltaBase):
    """Writes heap profiles holding only allocations since the previous one."""

    def _is_runtime(self, addr: int) -> bool:
        if self.symbolizer is None:
            return False
        frames = self.symbolizer(addr)
        return bool(frames) and frames[0].function.startswith("runtime.")

    def write_heap_proto(
        self,
        w: BinaryIO,
        records: Iterable[MemProfileRecord],
        rate: int,
        default_sample_type: str = "",
    ) -> None:
        b = self._builder(w)
        b.pb_value_type(TAG_PROFILE_PERIOD_TYPE, "space", "bytes")
        b.pb.int64_opt(TAG_PROFILE_PERIOD, rate)
        b.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, "alloc_objects", "count")
        b.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, "alloc_space", "bytes")
        b.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, "inuse_objects", "count")
        b.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, "inuse_space", "bytes")
        if default_sample_type:
            b.pb.int64_opt(TAG_PROFILE_DEFAULT_SAMPLE_TYPE, b.string_index(default_sample_type))

        for r in records:
            if r.alloc_bytes == 0 and r.alloc_objects == 0 and r.free_objects == 0 and r.free_bytes == 0:
                # Fresh bucket, published after the next GC cycles.
                continue
            block_size = r.alloc_bytes // r.alloc_objects if r.alloc_objects > 0 else 0
            entry = self._map.lookup(r.stack(), block_size)
            if r.alloc_objects - entry.v1 < 0:
                continue
            alloc_objects = r.alloc_objects - entry.v1
            alloc_bytes = r.alloc_bytes - entry.v2
            entry.v1 = r.alloc_objects
            entry.v2 = r.alloc_bytes

            values = [
                *scale_heap_sample(alloc_objects, alloc_bytes, rate),
                *scale_heap_sample(r.in_use_objects(), r.in_use_bytes(), rate),
            ]
            if not any(values):
                continue

            locs: list[int] = []
            hide_runtime = True
            for _ in range(2):
                stk = r.stack()
                if hide_runtime:
                    for i, addr in enumerate(stk):
                        if self._is_runtime(addr):
                            continue
                        stk = stk[i:]
                        break
                locs = b.append_locs_for_stack([], stk)
                if locs:
                    break
                hide_runtime = False

            def labels(size: int = block_size) -> None:
                if size != 0:
                    b.pb_label(TAG_SAMPLE_LABEL, "bytes", "", size)

            b.pb_sample(values, locs, labels)
        b.build()


class DeltaMutexProfiler(_DeltaBase):
    """Writes block or mutex profiles holding only contention since the previous one."""

    def __init__(
        self,
        options: Optional[ProfileBuilderOptions] = None,
        symbolizer: Optional[Symbolizer] = None,
        mapping_reader: Optional[MappingReader] = None,
        cycles_per_second: int = DEFAULT_CYCLES_PER_SECOND,
    ) -> None:
        super().__init__(options, symbolizer, mapping_reader)
        self.cycles_per_second = cycles_per_second

    def print_count_cycle_profile(
        self,
        w: BinaryIO,
        count_name: str,
        cycle_name: str,
        scaler: MutexProfileScaler,
        records: Iterable[BlockProfileRecord],
    ) -> None:
        b = self._builder(w)
        b.pb_value_type(TAG_PROFILE_PERIOD_TYPE, count_name, "count")
        b.pb.int64_opt(TAG_PROFILE_PERIOD, 1)
        b.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, count_name, "count")
        b.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, cycle_name, "nanoseconds")

        cpu_ghz = self.cycles_per_second / 1e9
        for r in records:
            count, nanosec = scale_mutex_profile(scaler, r.count, r.cycles / cpu_ghz)
            inanosec = int(nanosec)
            entry = self._map.lookup(r.stack(), 0)
            values = [count - entry.v1, inanosec - entry.v2]
            entry.v1 = count
            entry.v2 = inanosec
            if values[0] < 0 or values[1] < 0:
                continue
            if values[0] == 0 and values[1] == 0:
                continue
            locs = b.append_locs_for_stack([], r.stack())
            b.pb_sample(values, locs, None)
        b.build()