# profship

`profship` is a library of building blocks for a profiling client. It writes
gzip-compressed pprof profiles that hold only what changed since the previous
profile, parses and normalises application keys with tags, parses tag queries,
and describes the jobs in which profiles are handed to an upload service.

It has no runtime dependencies.

## Delta profiles

`profship.profilers` has thread-safe profilers that write one gzipped pprof
profile per call to `profile(w)`. Each takes a `source`: a callable that
returns the current cumulative records.

```python
import io
from profship.delta import MemProfileRecord, BlockProfileRecord
from profship.profilers import new_heap_profiler, new_block_profiler, new_mutex_profiler

heap_records = [
    MemProfileRecord(alloc_objects=5, alloc_bytes=5 * 1024, stack0=(0x401000, 0x402000)),
]
heap = new_heap_profiler(lambda: heap_records, rate=1)
buf = io.BytesIO()
heap.profile(buf)

block_records = [BlockProfileRecord(count=3, cycles=3000, stack0=(0x401000,))]
block = new_block_profiler(lambda: block_records)
block.profile(io.BytesIO())
```

- Heap profiles carry `alloc_objects`, `alloc_space`, `inuse_objects` and
  `inuse_space`. Allocation values are the change since the previous call;
  in-use values are the current ones. Values are scaled by the sampling
  `rate` (a rate of 1 or less leaves them as they are). Records with all
  counters at zero are skipped, and a sample whose four values are all zero
  is left out.
- Block and mutex profiles carry `contentions` and `delay`. Both values are
  the change since the previous call; a record with no change is left out.
  Records are written in descending order of cycles.
- `new_heap_profiler`, `new_block_profiler` and `new_mutex_profiler` default
  to `ProfileOptions(generics_frames=True, lazy_mappings=True)`.

For control over symbolization and memory mappings, construct
`HeapProfiler(source, rate, options, symbolizer=..., mapping_reader=...)` or
`BlockProfiler(source, scaler, options, symbolizer=..., mapping_reader=...,
cycles_per_second=...)` directly. A symbolizer is a callable that takes a
return address and returns a sequence of `profship.builder.Frame`; without
one, locations are written with empty function names. The default mapping
reader is `profship.procmaps.read_mapping`, which reads `/proc/self/maps`
(executable mappings only, with GNU build IDs from `profship.elf.elf_build_id`)
and falls back to a single fake mapping.

The lower-level `profship.delta.DeltaHeapProfiler.write_heap_proto` and
`profship.delta.DeltaMutexProfiler.print_count_cycle_profile` do the same
work without locking or a record source, and `profship.builder.ProfileBuilder`
with `profship.protobuf.ProtobufEncoder` write the profile message itself.

## Application keys

```python
from profship.key import parse_key

key = parse_key("app.name{foo=bar,baz=qux}")
key.add("env", "prod")
key.normalized()      # 'app.name{baz=qux,env=prod,foo=bar}'
key.app_name()        # 'app.name'
key.add("foo", "")    # an empty value removes the tag
```

`profship.key` also has `tree_key`, `parse_tree_key` and
`from_tree_to_dict_key` for keys of the form `name{tags}:depth:unixtime`.

## Queries

```python
from profship.flameql import parse_query

query = parse_query('app.name{env="prod",region=~"eu-.*"}')
key.match(query)
```

Matchers support `=`, `!=`, `=~` and `!~`; they are sorted so that negations
come first. Invalid names, tag keys and matchers raise
`profship.flameql.FlameQLError`, whose `kind` is the reason and `expr` the
offending expression. The tag key `__name__` is reserved.

## Upload jobs and session IDs

`profship.upstream` defines `UploadJob`, `SampleType` (with `to_json()`,
which omits empty fields), `Format` and the `Upstream` protocol with
`upload(job)` and `flush()`.

`profship.session_id.new_session_id()` returns a `SessionID` whose string form
is its eight little-endian bytes in hex. The generator is seeded from a hash
of the host name, or from OS randomness if that is unavailable; the label name
for it is `SESSION_ID_LABEL_NAME` (`__session_id__`).

## What it does not do

`profship` does not collect profiles from the running interpreter: records
come from the `source` you supply. It has no CPU profiler, no background
session that takes snapshots on a schedule, no client that sends upload jobs
to a server, no logger implementations and no HTTP endpoints. It provides no
command-line program.