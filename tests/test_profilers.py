import gzip
import io

from profship.builder import Frame
from profship.delta import BlockProfileRecord, MemProfileRecord
from profship.procmaps import MemMap
from profship.profilers import BlockProfiler, HeapProfiler, new_block_profiler, new_heap_profiler


def symbolizer(addr):
    return [Frame(pc=addr, function=f"pkg.f{addr:x}", file="x.py", line=1, entry=addr, has_func=True)]


def fake_mapping():
    return [MemMap(0, 0, 0, "", "", fake=True)]


def _varint(buf, pos):
    result = shift = 0
    while True:
        b = buf[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        shift += 7
        if b < 0x80:
            return result, pos


def _fields(buf):
    pos = 0
    while pos < len(buf):
        key, pos = _varint(buf, pos)
        if key & 7 == 0:
            val, pos = _varint(buf, pos)
        else:
            n, pos = _varint(buf, pos)
            val = bytes(buf[pos : pos + n])
            pos += n
        yield key >> 3, key & 7, val


def _ints(wire, val):
    if wire == 0:
        return [val]
    out, pos = [], 0
    while pos < len(val):
        v, pos = _varint(val, pos)
        out.append(v)
    return out


def sample_values(data):
    out = []
    for f, _, val in _fields(gzip.decompress(data)):
        if f == 2:
            values = []
            for ff, w, v in _fields(val):
                if ff == 2:
                    values += _ints(w, v)
            out.append(values)
    return out


def test_heap_profiler_reports_only_deltas():
    records = [MemProfileRecord(1024, 0, 1, 0, (0x10,))]
    p = HeapProfiler(lambda: records, 1, symbolizer=symbolizer, mapping_reader=fake_mapping)
    first = io.BytesIO()
    p.profile(first)
    assert sample_values(first.getvalue()) == [[1, 1024, 1, 1024]]
    second = io.BytesIO()
    p.profile(second)
    assert sample_values(second.getvalue()) == [[0, 0, 1, 1024]]


def test_block_profiler_sorts_by_cycles():
    records = [BlockProfileRecord(1, 10, (0x10,)), BlockProfileRecord(2, 50, (0x20,))]
    p = BlockProfiler(lambda: records, symbolizer=symbolizer, mapping_reader=fake_mapping)
    buf = io.BytesIO()
    p.profile(buf)
    assert sample_values(buf.getvalue()) == [[2, 50], [1, 10]]
    again = io.BytesIO()
    p.profile(again)
    assert sample_values(again.getvalue()) == []


def test_default_constructors_produce_profiles():
    heap = new_heap_profiler(lambda: [MemProfileRecord(2048, 0, 2, 0, (0x10,))], rate=1)
    buf = io.BytesIO()
    heap.profile(buf)
    assert sample_values(buf.getvalue()) == [[2, 2048, 2, 2048]]
    block = new_block_profiler(lambda: [BlockProfileRecord(3, 30, (0x10,))])
    buf = io.BytesIO()
    block.profile(buf)
    assert sample_values(buf.getvalue()) == [[3, 30]]