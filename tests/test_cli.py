import json
import tomllib
from pathlib import Path

import pytest
import responses

from esdumper.cli import main, parse_operation
from esdumper.config import ConfigFile, Operation, OperationKind

HOST = "http://es.test:9200"

CONFIG_TEXT = f"""
[elastic]
host = "{HOST}"

[backup]
backup_dir = "dumps"

[restore]
bulk_batch_size = 10
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def configured(workdir):
    (workdir / "config.toml").write_text(CONFIG_TEXT, encoding="utf-8")
    return workdir


@pytest.mark.parametrize(
    "argv, expected",
    [
        (["restore", "logs"], Operation(OperationKind.RESTORE, "logs")),
        (["restore"], Operation(OperationKind.RESTORE)),
        (["backup", "logs"], Operation(OperationKind.BACKUP, "logs")),
        (["backup"], Operation(OperationKind.BACKUP)),
        ([], Operation(OperationKind.BACKUP)),
        (["other", "logs"], Operation(OperationKind.BACKUP)),
    ],
)
def test_parse_operation(argv, expected):
    assert parse_operation(argv) == expected


def test_main_writes_default_config(workdir):
    assert main(["restore"]) == 0
    written = tomllib.loads((workdir / "config.toml").read_text(encoding="utf-8"))
    assert ConfigFile.from_dict(written) == ConfigFile.default()
    log_text = (workdir / "backups" / "backup.log").read_text(encoding="utf-8")
    assert "No backups found to restore" in log_text


def test_main_restore_missing_index(configured, capsys):
    assert main(["restore", "missing"]) == 1
    assert "Backup for index 'missing' not found" in capsys.readouterr().err


def test_main_restore_index(configured):
    index_dir = configured / "dumps" / "logs"
    index_dir.mkdir(parents=True)
    (index_dir / "logs_mapping.json").write_text(json.dumps({"mappings": {}}))
    (index_dir / "logs_data.json").write_text(json.dumps([{"_id": "1", "_source": {"a": 1}}]))
    with responses.RequestsMock() as rsps:
        rsps.add(responses.PUT, f"{HOST}/logs", json={"acknowledged": True})
        rsps.add(responses.POST, f"{HOST}/_bulk", json={"errors": False, "items": []})
        assert main(["restore", "logs"]) == 0
        assert len(rsps.calls) == 2
    log_text = Path("dumps/backup.log").read_text(encoding="utf-8")
    assert "Restore completed for index: logs" in log_text


def test_main_backup_unknown_index(configured, capsys):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, f"{HOST}/", json={"version": {"number": "8.10.0"}})
        rsps.add(responses.GET, f"{HOST}/nope/_count", status=404, json={})
        assert main(["backup", "nope"]) == 1
    assert "Index 'nope' does not exist" in capsys.readouterr().err


def test_main_rejects_incomplete_config(workdir, capsys):
    (workdir / "config.toml").write_text('[elastic]\n[backup]\n', encoding="utf-8")
    assert main(["restore"]) == 1
    assert "missing field `restore`" in capsys.readouterr().err