"""Command-line entry point: back up or restore Elasticsearch indices."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

from esdumper.backup import run_backup
from esdumper.config import (
    DEFAULT_LOG_FILE,
    BackupConfig,
    Operation,
    OperationKind,
    load_config,
)
from esdumper.restore import run_restore
from esdumper.utils import LogFile, setup_backup_dir


def parse_operation(argv: Sequence[str]) -> Operation:
    """Turn the arguments after the program name into an operation; backup by default."""
    args = list(argv)
    command = args[0] if args else None
    index = args[1] if len(args) > 1 else None
    if command == "restore":
        return Operation(OperationKind.RESTORE, index)
    if command == "backup":
        return Operation(OperationKind.BACKUP, index)
    return Operation(OperationKind.BACKUP)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the requested operation and return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    operation = parse_operation(args)
    try:
        config = BackupConfig.from_config_file(load_config(), operation)
        setup_backup_dir(config.backup_dir)
        with LogFile(Path(config.backup_dir) / DEFAULT_LOG_FILE) as log_file:
            if operation.kind is OperationKind.RESTORE:
                run_restore(config, log_file, operation.index)
            else:
                run_backup(config, log_file, operation.index)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())