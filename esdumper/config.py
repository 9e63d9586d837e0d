"""Configuration file handling and the resolved runtime configuration."""

from __future__ import annotations

import enum
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

DEFAULT_CONFIG_PATH = "config.toml"
DEFAULT_BACKUP_DIR = "./backups"
DEFAULT_LOG_FILE = "backup.log"
DEFAULT_ELASTIC_HOST = "http://es.example.com:9200"
DEFAULT_USERNAME = "es_user"
PASSWORD = "password"
DEFAULT_CONNECT_TIMEOUT_SECS = 60
DEFAULT_REQUEST_TIMEOUT_SECS = 180
DEFAULT_SCROLL_SIZE = 10000
DEFAULT_SCROLL_TIME = "10m"
DEFAULT_MAX_PARALLEL_INDICES = 4
DEFAULT_BUFFER_SIZE = 1024 * 1024
DEFAULT_BULK_BATCH_SIZE = 5000

_ELASTIC_STRING_KEYS = ("host", "username", "password")
_ELASTIC_UINT_KEYS = ("timeout_secs", "connect_timeout_secs")


class OperationKind(enum.Enum):
    """What the tool has been asked to do."""

    BACKUP = "backup"
    RESTORE = "restore"


@dataclass(frozen=True)
class Operation:
    """An operation, optionally limited to a single index."""

    kind: OperationKind
    index: str | None = None


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _read_table(data: Any, name: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("configuration must be a table")
    if name not in data:
        raise ValueError(f"missing field `{name}`")
    table = data[name]
    if not isinstance(table, dict):
        raise ValueError(f"`{name}` must be a table")
    return table


def _optional_uint(table: dict[str, Any], section: str, key: str) -> int | None:
    value = table.get(key)
    if value is None:
        return None
    if not _is_uint(value):
        raise ValueError(f"`{section}.{key}` must be a non-negative integer")
    return value


def _optional_str(table: dict[str, Any], section: str, key: str) -> str | None:
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"`{section}.{key}` must be a string")
    return value


def _optional_str_list(table: dict[str, Any], section: str, key: str) -> list[str] | None:
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"`{section}.{key}` must be a list of strings")
    return list(value)


@dataclass
class ElasticSection:
    """The `[elastic]` table of the configuration file."""

    host: str | None = None
    username: str | None = None
    password: str | None = None
    timeout_secs: int | None = None
    connect_timeout_secs: int | None = None

    @classmethod
    def _from_table(cls, table: dict[str, Any]) -> ElasticSection:
        values: dict[str, Any] = {
            key: _optional_str(table, "elastic", key) for key in _ELASTIC_STRING_KEYS
        }
        values.update(
            {key: _optional_uint(table, "elastic", key) for key in _ELASTIC_UINT_KEYS}
        )
        return cls(**values)


@dataclass
class BackupSection:
    """The `[backup]` table of the configuration file."""

    backup_dir: str | None = None
    scroll_size: int | None = None
    scroll_time: str | None = None
    max_parallel_indices: int | None = None
    skip_indices: list[str] | None = None
    max_index_size_mb: int | None = None

    @classmethod
    def _from_table(cls, table: dict[str, Any]) -> BackupSection:
        return cls(
            backup_dir=_optional_str(table, "backup", "backup_dir"),
            scroll_size=_optional_uint(table, "backup", "scroll_size"),
            scroll_time=_optional_str(table, "backup", "scroll_time"),
            max_parallel_indices=_optional_uint(table, "backup", "max_parallel_indices"),
            skip_indices=_optional_str_list(table, "backup", "skip_indices"),
            max_index_size_mb=_optional_uint(table, "backup", "max_index_size_mb"),
        )


@dataclass
class RestoreSection:
    """The `[restore]` table of the configuration file."""

    bulk_batch_size: int | None = None

    @classmethod
    def _from_table(cls, table: dict[str, Any]) -> RestoreSection:
        return cls(bulk_batch_size=_optional_uint(table, "restore", "bulk_batch_size"))


@dataclass
class ConfigFile:
    """The whole configuration file, as read from TOML."""

    elastic: ElasticSection
    backup: BackupSection
    restore: RestoreSection

    @classmethod
    def default(cls) -> ConfigFile:
        """The configuration written when no file exists yet."""
        return cls(
            elastic=ElasticSection(
                host=DEFAULT_ELASTIC_HOST,
                username=DEFAULT_USERNAME,
                password=PASSWORD,
                timeout_secs=DEFAULT_REQUEST_TIMEOUT_SECS,
                connect_timeout_secs=DEFAULT_CONNECT_TIMEOUT_SECS,
            ),
            backup=BackupSection(
                backup_dir=DEFAULT_BACKUP_DIR,
                scroll_size=DEFAULT_SCROLL_SIZE,
                scroll_time=DEFAULT_SCROLL_TIME,
                max_parallel_indices=DEFAULT_MAX_PARALLEL_INDICES,
                skip_indices=[],
                max_index_size_mb=None,
            ),
            restore=RestoreSection(bulk_batch_size=DEFAULT_BULK_BATCH_SIZE),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigFile:
        """Build from parsed TOML; all three tables must be present."""
        return cls(
            elastic=ElasticSection._from_table(_read_table(data, "elastic")),
            backup=BackupSection._from_table(_read_table(data, "backup")),
            restore=RestoreSection._from_table(_read_table(data, "restore")),
        )

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """A TOML-ready mapping; unset values are left out."""
        return {
            name: {key: value for key, value in asdict(section).items() if value is not None}
            for name, section in (
                ("elastic", self.elastic),
                ("backup", self.backup),
                ("restore", self.restore),
            )
        }


@dataclass
class BackupConfig:
    """Fully resolved settings used by backup and restore."""

    host: str
    backup_dir: str
    operation: Operation
    auth: tuple[str, str] | None = None
    skip_indices: list[str] = field(default_factory=list)
    max_index_size_mb: int | None = None
    connect_timeout_secs: int = DEFAULT_CONNECT_TIMEOUT_SECS
    request_timeout_secs: int = DEFAULT_REQUEST_TIMEOUT_SECS
    scroll_size: int = DEFAULT_SCROLL_SIZE
    scroll_time: str = DEFAULT_SCROLL_TIME
    max_parallel_indices: int = DEFAULT_MAX_PARALLEL_INDICES
    buffer_size: int = DEFAULT_BUFFER_SIZE
    bulk_batch_size: int = DEFAULT_BULK_BATCH_SIZE

    @classmethod
    def from_config_file(cls, config_file: ConfigFile, operation: Operation) -> BackupConfig:
        """Resolve a configuration file, filling unset values with defaults."""
        elastic, backup, restore = config_file.elastic, config_file.backup, config_file.restore
        auth = None
        if elastic.username is not None and elastic.password is not None:
            auth = (elastic.username, elastic.password)

        def pick(value, default):
            return default if value is None else value

        return cls(
            host=pick(elastic.host, DEFAULT_ELASTIC_HOST),
            backup_dir=pick(backup.backup_dir, DEFAULT_BACKUP_DIR),
            operation=operation,
            auth=auth,
            skip_indices=list(backup.skip_indices or []),
            max_index_size_mb=backup.max_index_size_mb,
            connect_timeout_secs=pick(elastic.connect_timeout_secs, DEFAULT_CONNECT_TIMEOUT_SECS),
            request_timeout_secs=pick(elastic.timeout_secs, DEFAULT_REQUEST_TIMEOUT_SECS),
            scroll_size=pick(backup.scroll_size, DEFAULT_SCROLL_SIZE),
            scroll_time=pick(backup.scroll_time, DEFAULT_SCROLL_TIME),
            max_parallel_indices=pick(backup.max_parallel_indices, DEFAULT_MAX_PARALLEL_INDICES),
            buffer_size=DEFAULT_BUFFER_SIZE,
            bulk_batch_size=pick(restore.bulk_batch_size, DEFAULT_BULK_BATCH_SIZE),
        )


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> ConfigFile:
    """Read the configuration, writing and returning the default one if it cannot be opened."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError:
        default = ConfigFile.default()
        config_path.write_text(tomli_w.dumps(default.to_dict()), encoding="utf-8")
        return default
    return ConfigFile.from_dict(tomllib.loads(text))