"""Incremental construction of gzip-compressed pprof profiles."""

from __future__ import annotations

import dataclasses
import enum
import gzip
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Optional, Sequence

from .procmaps import MemMap
from .protobuf import ProtobufEncoder

# message Profile
TAG_PROFILE_SAMPLE_TYPE = 1
TAG_PROFILE_SAMPLE = 2
TAG_PROFILE_MAPPING = 3
TAG_PROFILE_LOCATION = 4
TAG_PROFILE_FUNCTION = 5
TAG_PROFILE_STRING_TABLE = 6
TAG_PROFILE_DROP_FRAMES = 7
TAG_PROFILE_KEEP_FRAMES = 8
TAG_PROFILE_TIME_NANOS = 9
TAG_PROFILE_DURATION_NANOS = 10
TAG_PROFILE_PERIOD_TYPE = 11
TAG_PROFILE_PERIOD = 12
TAG_PROFILE_COMMENT = 13
TAG_PROFILE_DEFAULT_SAMPLE_TYPE = 14

# message ValueType
TAG_VALUE_TYPE_TYPE = 1
TAG_VALUE_TYPE_UNIT = 2

# message Sample
TAG_SAMPLE_LOCATION = 1
TAG_SAMPLE_VALUE = 2
TAG_SAMPLE_LABEL = 3

# message Label
TAG_LABEL_KEY = 1
TAG_LABEL_STR = 2
TAG_LABEL_NUM = 3

# message Mapping
TAG_MAPPING_ID = 1
TAG_MAPPING_START = 2
TAG_MAPPING_LIMIT = 3
TAG_MAPPING_OFFSET = 4
TAG_MAPPING_FILENAME = 5
TAG_MAPPING_BUILD_ID = 6
TAG_MAPPING_HAS_FUNCTIONS = 7
TAG_MAPPING_HAS_FILENAMES = 8
TAG_MAPPING_HAS_LINE_NUMBERS = 9
TAG_MAPPING_HAS_INLINE_FRAMES = 10

# message Location
TAG_LOCATION_ID = 1
TAG_LOCATION_MAPPING_ID = 2
TAG_LOCATION_ADDRESS = 3
TAG_LOCATION_LINE = 4

# message Line
TAG_LINE_FUNCTION_ID = 1
TAG_LINE_LINE = 2

# message Function
TAG_FUNCTION_ID = 1
TAG_FUNCTION_NAME = 2
TAG_FUNCTION_SYSTEM_NAME = 3
TAG_FUNCTION_FILENAME = 4
TAG_FUNCTION_START_LINE = 5

GOEXIT = "runtime.goexit"
_DATA_FLUSH = 4096


class SymbolizeFlag(enum.IntFlag):
    """Outcome of a symbol lookup."""

    NONE = 0
    LOOKUP_TRIED = 1
    LOOKUP_FAILED = 2


@dataclass
class ProfileBuilderOptions:
    """``generics_frames`` names functions with their generic shapes;
    ``lazy_mapping`` reads the memory mappings only once per profiler."""

    generics_frames: bool = False
    lazy_mapping: bool = False


@dataclass(frozen=True)
class Frame:
    """One symbolized frame expanded from a program counter.

    ``has_func`` is false for frames of inlined functions (and of non-native
    code); ``symbol_name`` is the name including generic shapes, if known.
    """

    pc: int = 0
    function: str = ""
    file: str = ""
    line: int = 0
    entry: int = 0
    has_func: bool = False
    start_line: int = 0
    symbol_name: str = ""


Symbolizer = Callable[[int], Sequence[Frame]]


def _no_symbols(addr: int) -> Sequence[Frame]:
    return ()


def all_frames(addr: int, symbolizer: Optional[Symbolizer]) -> tuple[list[Frame], SymbolizeFlag]:
    """Expand one return address into its frames and report the lookup result.

    A stack ending in ``runtime.goexit`` yields no frames at all.
    """
    frames = list(symbolizer(addr)) if symbolizer is not None else []
    first = frames[0] if frames else Frame()
    if first.function == GOEXIT:
        return [], SymbolizeFlag.NONE

    result = SymbolizeFlag.LOOKUP_TRIED
    if first.pc == 0 or not first.function or not first.file or first.line == 0:
        result |= SymbolizeFlag.LOOKUP_FAILED
    if first.pc == 0:
        # Make up a reasonable call PC for an unresolved frame.
        first = dataclasses.replace(first, pc=addr - 1)

    out = [first]
    for frame in frames[1:]:
        if out[-1].function == GOEXIT:
            break
        out.append(frame)
    return out, result


@dataclass
class PCDeck:
    """Collects consecutive PCs that belong to one chain of inlined calls."""

    pcs: list[int] = field(default_factory=list)
    frames: list[Frame] = field(default_factory=list)
    symbolize_result: SymbolizeFlag = SymbolizeFlag.NONE
    first_pc_frames: int = 0
    first_pc_symbolize_result: SymbolizeFlag = SymbolizeFlag.NONE

    def reset(self) -> None:
        self.pcs.clear()
        self.frames.clear()
        self.symbolize_result = SymbolizeFlag.NONE
        self.first_pc_frames = 0
        self.first_pc_symbolize_result = SymbolizeFlag.NONE

    def try_add(self, pc: int, frames: Sequence[Frame], symbolize_result: SymbolizeFlag) -> bool:
        """Add ``pc`` if it continues the inlined chain; False means flush first."""
        if self.frames:
            new_frame = frames[0]
            last = self.frames[-1]
            if last.has_func:
                return False
            if last.entry == 0 or new_frame.entry == 0:
                return False
            if last.entry != new_frame.entry:
                return False
            if last.function == new_frame.function:
                return False
        self.pcs.append(pc)
        self.frames.extend(frames)
        self.symbolize_result |= symbolize_result
        if len(self.pcs) == 1:
            self.first_pc_frames = len(self.frames)
            self.first_pc_symbolize_result = symbolize_result
        return True


@dataclass(frozen=True)
class _LocInfo:
    id: int
    pcs: tuple[int, ...]
    first_pc_frames: tuple[Frame, ...]
    first_pc_symbolize_result: SymbolizeFlag


@dataclass(frozen=True)
class _NewFunc:
    id: int
    name: str
    file: str
    start_line: int


class ProfileBuilder:
    """Writes a profile message incrementally, gzip-compressed, to ``w``.

    ``mapping`` is shared with the caller: symbolization results are
    accumulated on its entries across profiles.
    """

    def __init__(
        self,
        w: BinaryIO,
        options: Optional[ProfileBuilderOptions] = None,
        mapping: Optional[list[MemMap]] = None,
        symbolizer: Optional[Symbolizer] = None,
        expand_final_inline_frame: Optional[Callable[[list[int]], Sequence[int]]] = None,
    ) -> None:
        self.w = w
        self.opt = options if options is not None else ProfileBuilderOptions()
        self.mem: list[MemMap] = mapping if mapping is not None else []
        self.symbolizer: Symbolizer = symbolizer if symbolizer is not None else _no_symbols
        self._expand = expand_final_inline_frame if expand_final_inline_frame is not None else list
        self.start = time.time_ns()
        self.end = 0
        self.have_period = False
        self.period = 0
        self.pb = ProtobufEncoder()
        self.strings: list[str] = [""]
        self.string_map: dict[str, int] = {"": 0}
        self.locs: dict[int, _LocInfo] = {}
        self.funcs: dict[str, int] = {}
        self.deck = PCDeck()
        self._zw = gzip.GzipFile(filename="", mode="wb", compresslevel=1, fileobj=w, mtime=0)

    def string_index(self, s: str) -> int:
        """Return the string table index of ``s``, adding it if new."""
        idx = self.string_map.get(s)
        if idx is None:
            idx = len(self.strings)
            self.strings.append(s)
            self.string_map[s] = idx
        return idx

    def _flush(self) -> None:
        if self.pb.nest == 0 and len(self.pb.data) > _DATA_FLUSH:
            self._zw.write(bytes(self.pb.data))
            self.pb.data.clear()

    def pb_value_type(self, tag: int, typ: str, unit: str) -> None:
        start = self.pb.start_message()
        self.pb.int64(TAG_VALUE_TYPE_TYPE, self.string_index(typ))
        self.pb.int64(TAG_VALUE_TYPE_UNIT, self.string_index(unit))
        self.pb.end_message(tag, start)

    def pb_sample(
        self,
        values: Sequence[int],
        locs: Sequence[int],
        labels: Optional[Callable[[], None]],
    ) -> None:
        start = self.pb.start_message()
        self.pb.int64s(TAG_SAMPLE_VALUE, values)
        self.pb.uint64s(TAG_SAMPLE_LOCATION, locs)
        if labels is not None:
            labels()
        self.pb.end_message(TAG_PROFILE_SAMPLE, start)
        self._flush()

    def pb_label(self, tag: int, key: str, string: str, num: int) -> None:
        start = self.pb.start_message()
        self.pb.int64_opt(TAG_LABEL_KEY, self.string_index(key))
        self.pb.int64_opt(TAG_LABEL_STR, self.string_index(string))
        self.pb.int64_opt(TAG_LABEL_NUM, num)
        self.pb.end_message(tag, start)

    def pb_line(self, tag: int, func_id: int, line: int) -> None:
        start = self.pb.start_message()
        self.pb.uint64_opt(TAG_LINE_FUNCTION_ID, func_id)
        self.pb.int64_opt(TAG_LINE_LINE, line)
        self.pb.end_message(tag, start)

    def pb_mapping(
        self,
        tag: int,
        mapping_id: int,
        base: int,
        limit: int,
        offset: int,
        file: str,
        build_id: str,
        has_funcs: bool,
    ) -> None:
        start = self.pb.start_message()
        self.pb.uint64_opt(TAG_MAPPING_ID, mapping_id)
        self.pb.uint64_opt(TAG_MAPPING_START, base)
        self.pb.uint64_opt(TAG_MAPPING_LIMIT, limit)
        self.pb.uint64_opt(TAG_MAPPING_OFFSET, offset)
        self.pb.int64_opt(TAG_MAPPING_FILENAME, self.string_index(file))
        self.pb.int64_opt(TAG_MAPPING_BUILD_ID, self.string_index(build_id))
        if has_funcs:
            self.pb.bool(TAG_MAPPING_HAS_FUNCTIONS, True)
        self.pb.end_message(tag, start)

    def append_locs_for_stack(self, locs: list[int], stk: Sequence[int]) -> list[int]:
        """Append the location IDs for the return PCs in ``stk`` to ``locs``.

        Returns ``locs``. It may stay unchanged even for a non-empty stack,
        for example one consisting only of ``runtime.goexit``.
        """
        self.deck.reset()
        stack = list(self._expand(list(stk)))

        def emit() -> None:
            loc_id = self.emit_location()
            if loc_id > 0:
                locs.append(loc_id)

        i = 0
        while i < len(stack):
            addr = stack[i]
            cached = self.locs.get(addr)
            if cached is not None:
                # A cached PC may still be a fake PC of an inlined call.
                if self.deck.pcs and self.deck.try_add(
                    addr, cached.first_pc_frames, cached.first_pc_symbolize_result
                ):
                    i += 1
                    continue
                emit()
                locs.append(cached.id)
                i += len(cached.pcs)
                continue

            frames, result = all_frames(addr, self.symbolizer)
            if not frames:  # runtime.goexit
                emit()
                i += 1
                continue

            if self.deck.try_add(addr, frames, result):
                i += 1
                continue
            emit()

            cached = self.locs.get(addr)
            if cached is not None:
                locs.append(cached.id)
                i += len(cached.pcs)
            else:
                self.deck.try_add(addr, frames, result)
                i += 1
        emit()
        return locs

    def emit_location(self) -> int:
        """Write the location held in the deck and return its ID (0 if empty)."""
        deck = self.deck
        if not deck.pcs:
            return 0
        try:
            addr = deck.pcs[0]
            first = deck.frames[0]
            loc_id = len(self.locs) + 1
            self.locs[addr] = _LocInfo(
                id=loc_id,
                pcs=tuple(deck.pcs),
                first_pc_frames=tuple(deck.frames[: deck.first_pc_frames]),
                first_pc_symbolize_result=deck.first_pc_symbolize_result,
            )

            new_funcs: list[_NewFunc] = []
            start = self.pb.start_message()
            self.pb.uint64_opt(TAG_LOCATION_ID, loc_id)
            self.pb.uint64_opt(TAG_LOCATION_ADDRESS, first.pc)
            for frame in deck.frames:
                func_id = self.funcs.get(frame.function, 0)
                if func_id == 0:
                    func_id = len(self.funcs) + 1
                    self.funcs[frame.function] = func_id
                    if self.opt.generics_frames:
                        name = frame.symbol_name or frame.function
                    else:
                        name = frame.function
                    new_funcs.append(_NewFunc(func_id, name, frame.file, frame.start_line))
                self.pb_line(TAG_LOCATION_LINE, func_id, frame.line)
            for index, m in enumerate(self.mem):
                if m.start <= addr < m.end or m.fake:
                    self.pb.uint64_opt(TAG_LOCATION_MAPPING_ID, index + 1)
                    m.funcs = int(m.funcs | deck.symbolize_result)
                    break
            self.pb.end_message(TAG_PROFILE_LOCATION, start)

            for fn in new_funcs:
                start = self.pb.start_message()
                self.pb.uint64_opt(TAG_FUNCTION_ID, fn.id)
                self.pb.int64_opt(TAG_FUNCTION_NAME, self.string_index(fn.name))
                self.pb.int64_opt(TAG_FUNCTION_SYSTEM_NAME, self.string_index(fn.name))
                self.pb.int64_opt(TAG_FUNCTION_FILENAME, self.string_index(fn.file))
                self.pb.int64_opt(TAG_FUNCTION_START_LINE, fn.start_line)
                self.pb.end_message(TAG_PROFILE_FUNCTION, start)

            self._flush()
            return loc_id
        finally:
            deck.reset()

    def build(self) -> None:
        """Finish the profile and close the compressed stream."""
        self.end = time.time_ns()
        self.pb.int64_opt(TAG_PROFILE_TIME_NANOS, self.start)
        if self.have_period:
            self.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, "samples", "count")
            self.pb_value_type(TAG_PROFILE_SAMPLE_TYPE, "cpu", "nanoseconds")
            self.pb.int64_opt(TAG_PROFILE_DURATION_NANOS, self.end - self.start)
            self.pb_value_type(TAG_PROFILE_PERIOD_TYPE, "cpu", "nanoseconds")
            self.pb.int64_opt(TAG_PROFILE_PERIOD, self.period)

        for index, m in enumerate(self.mem):
            has_functions = m.funcs == SymbolizeFlag.LOOKUP_TRIED
            self.pb_mapping(
                TAG_PROFILE_MAPPING,
                index + 1,
                m.start,
                m.end,
                m.offset,
                m.file,
                m.build_id,
                has_functions,
            )

        self.pb.strings(TAG_PROFILE_STRING_TABLE, self.strings)
        self._zw.write(bytes(self.pb.data))
        self.pb.data.clear()
        self._zw.close()