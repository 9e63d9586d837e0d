import tomllib

import pytest

from esdumper.config import (
    DEFAULT_BACKUP_DIR,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_BULK_BATCH_SIZE,
    DEFAULT_ELASTIC_HOST,
    DEFAULT_SCROLL_SIZE,
    DEFAULT_SCROLL_TIME,
    BackupConfig,
    BackupSection,
    ConfigFile,
    ElasticSection,
    Operation,
    OperationKind,
    RestoreSection,
    load_config,
)


def test_load_config_writes_default_when_missing(tmp_path):
    path = tmp_path / "config.toml"
    config = load_config(path)
    assert path.exists()
    assert config == ConfigFile.default()
    assert ConfigFile.from_dict(tomllib.loads(path.read_text())) == config


def test_default_values_match_source():
    config = ConfigFile.default()
    assert config.elastic.host == "http://es.example.com:9200"
    assert config.backup.scroll_size == 10000
    assert config.backup.scroll_time == "10m"
    assert config.backup.max_index_size_mb is None
    assert config.restore.bulk_batch_size == 5000


def test_to_dict_drops_unset_values():
    data = ConfigFile.default().to_dict()
    assert list(data) == ["elastic", "backup", "restore"]
    assert "max_index_size_mb" not in data["backup"]
    assert data["backup"]["skip_indices"] == []


def test_load_existing_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[elastic]\nhost = "http://localhost:9200"\n'
        '[backup]\nskip_indices = ["logs"]\nmax_index_size_mb = 50\n'
        "[restore]\n"
    )
    config = load_config(path)
    assert config.elastic.host == "http://localhost:9200"
    assert config.elastic.username is None
    assert config.backup.skip_indices == ["logs"]
    assert config.backup.max_index_size_mb == 50
    assert config.restore.bulk_batch_size is None


def test_missing_section_is_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[elastic]\n[backup]\n")
    with pytest.raises(ValueError, match="restore"):
        load_config(path)


def test_wrong_type_is_error():
    with pytest.raises(ValueError, match="scroll_size"):
        ConfigFile.from_dict({"elastic": {}, "backup": {"scroll_size": "big"}, "restore": {}})


def test_negative_integer_is_error():
    with pytest.raises(ValueError):
        ConfigFile.from_dict({"elastic": {}, "backup": {}, "restore": {"bulk_batch_size": -1}})


def test_invalid_toml_raises(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[elastic\n")
    with pytest.raises(tomllib.TOMLDecodeError):
        load_config(path)


def test_backup_config_fills_defaults():
    config_file = ConfigFile(ElasticSection(), BackupSection(), RestoreSection())
    operation = Operation(OperationKind.BACKUP)
    config = BackupConfig.from_config_file(config_file, operation)
    assert config.host == DEFAULT_ELASTIC_HOST
    assert config.backup_dir == DEFAULT_BACKUP_DIR
    assert config.auth is None
    assert config.skip_indices == []
    assert config.scroll_size == DEFAULT_SCROLL_SIZE
    assert config.scroll_time == DEFAULT_SCROLL_TIME
    assert config.buffer_size == DEFAULT_BUFFER_SIZE
    assert config.bulk_batch_size == DEFAULT_BULK_BATCH_SIZE
    assert config.operation is operation


def test_backup_config_uses_file_values():
    password = "password"
    config_file = ConfigFile(
        ElasticSection(username="user", password=password, timeout_secs=5, connect_timeout_secs=2),
        BackupSection(backup_dir="out", max_parallel_indices=2),
        RestoreSection(bulk_batch_size=10),
    )
    config = BackupConfig.from_config_file(config_file, Operation(OperationKind.RESTORE, "idx"))
    assert config.auth == ("user", password)
    assert config.request_timeout_secs == 5
    assert config.connect_timeout_secs == 2
    assert config.backup_dir == "out"
    assert config.max_parallel_indices == 2
    assert config.bulk_batch_size == 10
    assert config.operation.index == "idx"


def test_auth_requires_both_parts():
    config_file = ConfigFile(ElasticSection(username="user"), BackupSection(), RestoreSection())
    config = BackupConfig.from_config_file(config_file, Operation(OperationKind.BACKUP))
    assert config.auth is None