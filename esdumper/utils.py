"""Logging, filesystem and small Elasticsearch helpers."""

from __future__ import annotations

import copy
import json
import os
import subprocess
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import requests

from esdumper.http_client import ElasticClient


class LogFile:
    """A thread-safe, append-only, timestamped log file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._file = open(self.path, "a", encoding="utf-8")

    def log(self, message: str) -> None:
        """Append one timestamped line and flush it."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with self._lock:
            self._file.write(f"[{timestamp}] {message}\n")
            self._file.flush()

    def close(self) -> None:
        """Close the underlying file."""
        with self._lock:
            self._file.close()

    def __enter__(self) -> LogFile:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def setup_backup_dir(backup_dir: str | Path) -> None:
    """Create the backup directory and any missing parents."""
    os.makedirs(backup_dir, exist_ok=True)


def reduce_document_size(doc: Any) -> Any:
    """Copy a search hit without the fields that are not needed for a restore."""
    reduced = copy.deepcopy(doc)
    if isinstance(reduced, dict):
        for key in ("_index", "_type", "_score"):
            reduced.pop(key, None)
    return reduced


def compress_file(file_path: str | Path) -> None:
    """Gzip a file next to itself, keeping the original."""
    result = subprocess.run(["gzip", "-k", str(file_path)], check=False)
    if result.returncode != 0:
        raise RuntimeError("Failed to compress file")


def _status_text(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason or ''}".strip()


def get_elasticsearch_version(client: ElasticClient, host: str, log_file: LogFile) -> str:
    """Ask the cluster for its version number."""
    response = client.request("GET", f"{host}/")
    status = _status_text(response)
    body = response.text
    log_file.log(f"Response from version check (status: {status}): {body}")
    if not response.ok:
        raise RuntimeError(f"Failed to fetch version: {status}")
    data = json.loads(body)
    version = data.get("version") if isinstance(data, dict) else None
    number = version.get("number") if isinstance(version, dict) else None
    if not isinstance(number, str):
        raise RuntimeError("No version number found in response")
    return number