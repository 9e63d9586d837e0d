import json
import re
import subprocess
from unittest import mock

import pytest
import responses

from esdumper.http_client import ElasticClient
from esdumper.utils import (
    LogFile,
    compress_file,
    get_elasticsearch_version,
    reduce_document_size,
    setup_backup_dir,
)

HOST = "http://localhost:9200"


@pytest.fixture
def http():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mocked:
        yield mocked


@pytest.fixture
def log_file(tmp_path):
    with LogFile(tmp_path / "backup.log") as handle:
        yield handle


def test_log_writes_timestamped_lines(tmp_path):
    path = tmp_path / "backup.log"
    with LogFile(path) as handle:
        handle.log("first")
        handle.log("second")
    lines = path.read_text().splitlines()
    assert len(lines) == 2
    assert re.fullmatch(r"\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] first", lines[0])
    assert lines[1].endswith("] second")


def test_log_appends_to_existing_file(tmp_path):
    path = tmp_path / "backup.log"
    path.write_text("old\n")
    with LogFile(path) as handle:
        handle.log("new")
    lines = path.read_text().splitlines()
    assert lines[0] == "old"
    assert lines[1].endswith("] new")


def test_setup_backup_dir_creates_nested(tmp_path):
    target = tmp_path / "a" / "b"
    setup_backup_dir(target)
    setup_backup_dir(target)
    assert target.is_dir()


def test_reduce_document_size_removes_meta_fields():
    doc = {"_index": "i", "_type": "_doc", "_score": None, "_id": "1", "_source": {"a": 1}}
    reduced = reduce_document_size(doc)
    assert reduced == {"_id": "1", "_source": {"a": 1}}
    assert "_index" in doc


def test_reduce_document_size_non_object_unchanged():
    assert reduce_document_size([1, 2]) == [1, 2]


def test_compress_file_runs_gzip(tmp_path):
    target = tmp_path / "data.json"
    done = subprocess.CompletedProcess(args=[], returncode=0)
    with mock.patch("esdumper.utils.subprocess.run", return_value=done) as run:
        compress_file(target)
    assert run.call_args.args[0] == ["gzip", "-k", str(target)]


def test_compress_file_failure_raises(tmp_path):
    failed = subprocess.CompletedProcess(args=[], returncode=1)
    with mock.patch("esdumper.utils.subprocess.run", return_value=failed):
        with pytest.raises(RuntimeError, match="Failed to compress file"):
            compress_file(tmp_path / "data.json")


def test_get_version(http, log_file):
    http.add(responses.GET, f"{HOST}/", json={"version": {"number": "8.3.3"}})
    version = get_elasticsearch_version(ElasticClient(), HOST, log_file)
    assert version == "8.3.3"
    assert "Response from version check (status: 200" in log_file.path.read_text()


def test_get_version_http_error(http, log_file):
    http.add(responses.GET, f"{HOST}/", status=500, body="boom")
    with pytest.raises(RuntimeError, match="Failed to fetch version"):
        get_elasticsearch_version(ElasticClient(), HOST, log_file)
    assert "boom" in log_file.path.read_text()


def test_get_version_missing_number(http, log_file):
    http.add(responses.GET, f"{HOST}/", json={"version": {}})
    with pytest.raises(RuntimeError, match="No version number found in response"):
        get_elasticsearch_version(ElasticClient(), HOST, log_file)


def test_get_version_invalid_json(http, log_file):
    http.add(responses.GET, f"{HOST}/", body="not json")
    with pytest.raises(json.JSONDecodeError):
        get_elasticsearch_version(ElasticClient(), HOST, log_file)