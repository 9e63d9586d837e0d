# esdumper

esdumper backs up Elasticsearch indices as plain JSON files and restores them
into a cluster. For each index it saves the mapping and every document.
Documents are read with the scroll API and written back with the bulk API.

## Installation

```
pip install esdumper
```

To run the test suite, install the test extra as well:

```
pip install "esdumper[test]"
pytest
```

## Usage

Run the commands from the directory that holds your `config.toml`.

```
esdumper                  # back up every index
esdumper backup           # same as above
esdumper backup my-index  # back up a single index
esdumper restore          # restore every index found in the backup directory
esdumper restore my-index # restore a single index
```

Any other first argument is treated as a backup of every index. The command
exits with status 0 on success. If setup fails, for example because the
configuration cannot be read, the cluster version cannot be fetched, or a
single named index does not exist, it prints `Error: ...` to standard error
and exits with status 1. A failure while processing one index is written to
the log, and the other indices are still processed.

Progress bars for all indices and for each index are shown on the terminal.

## Configuration

If `config.toml` cannot be opened, esdumper writes a default one and uses it.
The default points at `http://es.example.com:9200`, so edit the file to point
at your cluster:

```toml
[elastic]
host = "http://localhost:9200"
username = "user"
password = "password"
timeout_secs = 180
connect_timeout_secs = 60

[backup]
backup_dir = "./backups"
scroll_size = 10000
scroll_time = "10m"
max_parallel_indices = 4
skip_indices = []
# max_index_size_mb = 1024

[restore]
bulk_batch_size = 5000
```

The `[elastic]`, `[backup]` and `[restore]` tables must all be present. Every
key inside them is optional, and a key that is left out takes the default
shown above. Basic authentication is used only when both `username` and
`password` are set. TLS certificates are not verified. `max_parallel_indices`
and `bulk_batch_size` must be at least 1.

## Backup layout

```
backups/
  backup.log
  my-index/
    my-index_mapping.json
    my-index_data.json
```

- The mapping file is the `_mapping` response, pretty-printed.
- The data file is one JSON array of search hits. The `_index`, `_type` and
  `_score` fields are removed from each hit.
- Backups skip indices whose names start with `.` and indices listed in
  `skip_indices`.
- When `max_index_size_mb` is set, backups also skip indices whose store size
  is larger than that many megabytes. An index whose size cannot be read is
  kept.
- Against Elasticsearch 8.3.x the scroll size is halved, with a minimum of
  1000.

A restore finds every subdirectory of the backup directory whose name does
not start with `.`. It creates each index from its saved mapping, which fails
if the index already exists, and then uploads the documents in bulk batches.
Item errors reported by the bulk API are logged, with up to five of them
listed. If only a gzipped data file (`*_data.json.gz`) is present, it is
unpacked with `gunzip -k` first.

Details of each step, including errors, are appended with timestamps to
`backup.log` inside the backup directory.

## What it does not do

Backups always write uncompressed data files. `esdumper.utils.compress_file`
can gzip a file with `gzip -k`, but neither command calls it. Backups are full
dumps. There are no incremental backups, snapshots or scheduling.

## Library use

```python
from pathlib import Path

from esdumper.backup import run_backup
from esdumper.config import BackupConfig, Operation, OperationKind, load_config
from esdumper.utils import LogFile, setup_backup_dir

operation = Operation(OperationKind.BACKUP)
config = BackupConfig.from_config_file(load_config("config.toml"), operation)
setup_backup_dir(config.backup_dir)
with LogFile(Path(config.backup_dir) / "backup.log") as log_file:
    run_backup(config, log_file, None)
```

`esdumper.restore.run_restore(config, log_file, index)` restores in the same
way. The helpers `build_bulk_body`, `summarize_bulk_errors`,
`find_backed_up_indices` and `esdumper.backup.effective_scroll_size` can also
be used on their own.