# metawatch

A library for working with the key-value metadata behind a Milvus instance.
You can use it to:

- read and change keys
- write backup files and restore them
- keep an audit log of changes
- remove stale component sessions
- read legacy QueryCoord task state

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Key-value stores

`metawatch.kv.MetaKV` is the abstract interface that every store implements.
It is also a context manager that calls `close()` on exit.

`metawatch.kv.MemoryKV` implements it in memory. Keys are kept in order, so
prefix reads return them in ascending key order. Every change raises
`revision`. Loading a missing key raises `KeyNotFoundError`. Removing a missing
key does nothing.

```python
from metawatch.kv import MemoryKV, KeyNotFoundError

kv = MemoryKV()
kv.save("by-dev/meta/session/id", "1")
keys, values = kv.load_with_prefix("by-dev/meta")
print(kv.get_all_root_paths())   # ['by-dev']

try:
    kv.load("missing")
except KeyNotFoundError:
    ...
```

`split_instance("by-dev/meta")` returns `("by-dev", "meta")`.

`metawatch.tikv.PlaceholderKV` is a `MemoryKV` with one difference: it stores
an empty value as a reserved placeholder string. Reads turn the placeholder
back into an empty value. If you save the placeholder text itself, you get
`ReservedValueError`. The conversion is also available on its own as
`encode_value` and `decode_value`.

`metawatch.audit.AuditKV` wraps any `MetaKV` and writes length-prefixed audit
records to a binary stream:

- `save` writes `PUT`, `PUT_BEFORE` (with the key-value) and `PUT_AFTER`
  records.
- `remove` writes a `DEL` record with the removed key-value.
- `remove_with_prefix` also writes a `DEL` record. It first loads the exact
  prefix key, so it raises `KeyNotFoundError` when that key itself is absent.

All other calls pass straight through to the wrapped store. `read_audit_log`
reads the records back as `AuditRecord` objects.

## Backups

A backup file has this layout:

1. A backup header that records the format version.
2. A series of parts. Each part starts with a `PartHeader` frame, then holds
   length-prefixed frames, and ends with an empty stopper frame.

`metawatch.framing` has the building blocks:

- `write_frame`, `read_frame` and `iter_part_frames`
- `write_backup_header` and `read_backup_header`
- the `PartHeader` and `KeyDataPair` messages
- `backup_file_name`, which builds names such as
  `bw_etcd_ALL.240101-120000.bak.gz`

Malformed input raises `BackupFormatError`.

```python
import gzip
from metawatch.framing import read_backup_header
from metawatch.kv import MemoryKV
from metawatch.restore import backup_instance, restore_v2

with gzip.open("backup.bak.gz", "wb") as out:
    backup_instance(kv, "by-dev/meta", "ALL", out, False, 100)

target = MemoryKV()
with gzip.open("backup.bak.gz", "rb") as src:
    version = read_backup_header(src)   # 2
    result = restore_v2(target, src)
print(result.instance)                  # 'by-dev'
```

`backup_instance` accepts only the `ALL` and `QUERYCOORD` components. It returns
the number of keys written.

`restore_v2` saves the key-value parts into the store. It returns a
`RestoreResult` that holds:

- the instance name
- any metrics, configurations and app metrics found in the file

`restore_v1` reads the older single-part body. `read_metrics_part` and
`read_labelled_part` read single non-key-value parts. Progress is reported
through the standard `logging` module.

## Other tools

- `metawatch.kill.kill_component(kv, base_path, Component.parse("querycoord"), server_id)`
  removes a component session. It first checks that the stored session belongs
  to the given server ID, and raises `SessionMismatchError` if it does not.
- `metawatch.analysis.parse_segment_id_by_binlog(root, path)` gets the segment
  ID from a binlog object path. `count_duplicates` and `global_duplicates`
  report repeated primary keys.
- `metawatch.tasks.list_task_states(kv, base_path)` reads legacy QueryCoord task
  states as `TaskState` values. `check_task_states` raises
  `TaskStateMismatchError` if any task has no state.
- `metawatch.connect` provides:
  - `ConnectParams`, the connection options with their defaults
  - `tls_min_version`, which maps `"1.0"` to `"1.3"` to `ssl.TLSVersion`
  - `meta_base_path`
  - `ping_meta_store`, which raises `NotMilvusRootPathError` when a root path
    has no Milvus session ID key
- `metawatch.sizes.human_size(size)` formats a byte count, for example
  `human_size(1536)` gives `"1.500000 KB"`.
- `metawatch.version.set_version` and `get_version` hold the current metadata
  layout version.

## What it does not do

- It opens no network connections. There is no etcd or TiKV client, and no
  TLS setup beyond choosing a minimum version. `MemoryKV` and `PlaceholderKV`
  are the only stores included. Anything else has to implement `MetaKV`.
- It has no command-line program or interactive shell.
- It does not collect metrics or configurations from running components. The
  metrics, configuration and app-metrics parts that `backup_instance` writes
  are empty.