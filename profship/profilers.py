"""Stateful heap, block and mutex profilers that report deltas."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterable, Optional

from .builder import ProfileBuilderOptions, Symbolizer
from .delta import (
    DEFAULT_CYCLES_PER_SECOND,
    SCALER_BLOCK_PROFILE,
    SCALER_MUTEX_PROFILE,
    BlockProfileRecord,
    DeltaHeapProfiler,
    DeltaMutexProfiler,
    MemProfileRecord,
    MutexProfileScaler,
)

DEFAULT_MEM_PROFILE_RATE = 512 * 1024


@dataclass
class ProfileOptions:
    """``generics_frames`` names functions with generic shapes;
    ``lazy_mappings`` reads memory mappings once per profiler."""

    generics_frames: bool = False
    lazy_mappings: bool = False

    def builder_options(self) -> ProfileBuilderOptions:
        return ProfileBuilderOptions(self.generics_frames, self.lazy_mappings)


_DEFAULT_OPTIONS = ProfileOptions(generics_frames=True, lazy_mappings=True)


class HeapProfiler:
    """Profiles heap allocations made since the previous call; thread-safe."""

    def __init__(
        self,
        source: Callable[[], Iterable[MemProfileRecord]],
        rate: int = DEFAULT_MEM_PROFILE_RATE,
        options: Optional[ProfileOptions] = None,
        *,
        symbolizer: Optional[Symbolizer] = None,
        mapping_reader=None,
    ) -> None:
        opts = options if options is not None else ProfileOptions()
        self._source = source
        self.rate = rate
        self._impl = DeltaHeapProfiler(opts.builder_options(), symbolizer, mapping_reader)
        self._lock = threading.Lock()

    def profile(self, w: BinaryIO) -> None:
        with self._lock:
            records = list(self._source())
            self._impl.write_heap_proto(w, records, self.rate, "")


class BlockProfiler:
    """Profiles blocking or mutex contention since the previous call; thread-safe."""

    def __init__(
        self,
        source: Callable[[], Iterable[BlockProfileRecord]],
        scaler: MutexProfileScaler = SCALER_BLOCK_PROFILE,
        options: Optional[ProfileOptions] = None,
        *,
        symbolizer: Optional[Symbolizer] = None,
        mapping_reader=None,
        cycles_per_second: int = DEFAULT_CYCLES_PER_SECOND,
    ) -> None:
        opts = options if options is not None else ProfileOptions()
        self._source = source
        self._scaler = scaler
        self._impl = DeltaMutexProfiler(
            opts.builder_options(), symbolizer, mapping_reader, cycles_per_second
        )
        self._lock = threading.Lock()

    def profile(self, w: BinaryIO) -> None:
        with self._lock:
            records = sorted(self._source(), key=lambda r: r.cycles, reverse=True)
            self._impl.print_count_cycle_profile(w, "contentions", "delay", self._scaler, records)


def new_heap_profiler(source, rate=DEFAULT_MEM_PROFILE_RATE, options=None) -> HeapProfiler:
    return HeapProfiler(source, rate, options if options is not None else _DEFAULT_OPTIONS)


def new_mutex_profiler(source, options=None) -> BlockProfiler:
    return BlockProfiler(
        source, SCALER_MUTEX_PROFILE, options if options is not None else _DEFAULT_OPTIONS
    )


def new_block_profiler(source, options=None) -> BlockProfiler:
    return BlockProfiler(
        source, SCALER_BLOCK_PROFILE, options if options is not None else _DEFAULT_OPTIONS
    )