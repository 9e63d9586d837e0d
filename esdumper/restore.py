"""Load backed-up indices (mappings and documents) back into Elasticsearch."""

from __future__ import annotations

import json
import math
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from pathlib import Path
from typing import Any, Iterable, Iterator

import requests
from tqdm import tqdm

from esdumper.config import BackupConfig
from esdumper.http_client import build_http_client
from esdumper.utils import LogFile


def _status(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason or ''}".strip()


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _batches(items: Iterable[Any], size: int) -> Iterator[list[Any]]:
    iterator = iter(items)
    while batch := list(islice(iterator, size)):
        yield batch


def find_backed_up_indices(backup_dir: str | Path) -> list[str]:
    """Names of the non-hidden subdirectories of the backup directory, sorted."""
    return sorted(
        entry.name
        for entry in Path(backup_dir).iterdir()
        if entry.is_dir() and not entry.name.startswith(".")
    )


def build_bulk_body(index: str, documents: Iterable[Any]) -> str:
    """The newline-delimited bulk request body that indexes the given documents."""
    lines = []
    for doc in documents:
        doc_id = doc.get("_id") if isinstance(doc, dict) else None
        if not isinstance(doc_id, str):
            doc_id = ""
        lines.append(f'{{ "index": {{ "_index": "{index}", "_id": "{doc_id}" }} }}\n')
        source = doc.get("_source") if isinstance(doc, dict) else None
        if isinstance(source, dict):
            lines.append(_compact(source) + "\n")
    return "".join(lines)


def summarize_bulk_errors(response_json: Any, limit: int = 5) -> list[str]:
    """Describe up to `limit` failed items of a bulk response as "type: reason"."""
    items = response_json.get("items") if isinstance(response_json, dict) else None
    if not isinstance(items, list):
        return []

    def describe(item: Any) -> str | None:
        action = item.get("index") if isinstance(item, dict) else None
        error = action.get("error") if isinstance(action, dict) else None
        if not isinstance(error, dict):
            return None
        error_type = error.get("type")
        reason = error.get("reason")
        error_type = error_type if isinstance(error_type, str) else "unknown"
        reason = reason if isinstance(reason, str) else "unknown reason"
        return f"{error_type}: {reason}"

    errors = (text for text in map(describe, items) if text is not None)
    return list(islice(errors, limit))


def run_restore(
    config: BackupConfig, log_file: LogFile, specific_index: str | None = None
) -> None:
    """Restore one index, or every backed-up index, in parallel."""
    if config.max_parallel_indices < 1:
        raise ValueError("max_parallel_indices must be at least 1")

    log_file.log("Starting Elasticsearch restore process")
    backup_dir = Path(config.backup_dir)

    if specific_index is not None:
        if not (backup_dir / specific_index).is_dir():
            raise RuntimeError(f"Backup for index '{specific_index}' not found")
        indices = [specific_index]
    else:
        indices = find_backed_up_indices(backup_dir)

    if not indices:
        log_file.log("No backups found to restore")
        return

    log_file.log(f"Found {len(indices)} indices to restore")

    start = time.monotonic()
    lock = threading.Lock()

    with tqdm(total=len(indices), desc="Indices", unit="index") as main_bar:

        def process(index: str) -> None:
            with tqdm(total=0, desc=index, leave=False) as bar:
                try:
                    restore_index(config, index, log_file, bar)
                except Exception as exc:  # one failing index must not stop the others
                    log_file.log(f"Error restoring index {index}: {exc}")
                    bar.set_description(f"Error: {exc}")
            with lock:
                main_bar.update(1)

        with ThreadPoolExecutor(max_workers=config.max_parallel_indices) as pool:
            list(pool.map(process, indices))

        duration = time.monotonic() - start
        main_bar.set_postfix_str(f"Completed in {duration:.2f} seconds")

    log_file.log(f"Restore completed successfully in {duration:.2f} seconds")


def restore_index(config: BackupConfig, index: str, log_file: LogFile, progress: tqdm) -> None:
    """Recreate one index from its mapping and load its documents."""
    log_file.log(f"Starting restore for index: {index}")
    index_dir = Path(config.backup_dir) / index
    if not index_dir.is_dir():
        raise RuntimeError(f"Backup directory for index '{index}' not found")
    restore_mapping(config, index, index_dir, log_file)
    restore_data(config, index, index_dir, log_file, progress)
    log_file.log(f"Restore completed for index: {index}")


def _locate_data_file(index: str, index_dir: Path, log_file: LogFile, progress: tqdm) -> Path:
    data_file = index_dir / f"{index}_data.json"
    gz_data_file = index_dir / f"{index}_data.json.gz"
    if data_file.exists():
        return data_file
    if gz_data_file.exists():
        log_file.log(f"Uncompressing data file for index: {index}")
        result = subprocess.run(["gunzip", "-k", str(gz_data_file)], check=False)
        if result.returncode != 0:
            progress.set_description("Failed to uncompress data file")
            raise RuntimeError(f"Failed to uncompress data file for index '{index}'")
        return data_file
    progress.set_description("Data file not found")
    raise RuntimeError(f"Data file for index '{index}' not found")


def restore_data(
    config: BackupConfig,
    index: str,
    index_dir: str | Path,
    log_file: LogFile,
    progress: tqdm,
) -> None:
    """Send the backed-up documents of an index to the cluster in bulk batches."""
    if config.bulk_batch_size < 1:
        raise ValueError("bulk_batch_size must be at least 1")

    data_path = _locate_data_file(index, Path(index_dir), log_file, progress)
    log_file.log(f"Reading data file for index: {index}")
    with open(data_path, encoding="utf-8", buffering=config.buffer_size) as source:
        documents = json.load(source)
    if not isinstance(documents, list):
        raise ValueError(f"Data file for index '{index}' does not hold a JSON array")

    doc_count = len(documents)
    if doc_count == 0:
        log_file.log(f"Index {index} has no documents, skipping restore")
        progress.set_description(f"{index} (empty)")
        return

    log_file.log(f"Found {doc_count} documents to restore for index: {index}")
    progress.total = math.ceil(doc_count / config.bulk_batch_size)
    progress.set_description(index)
    progress.refresh()

    bulk_url = f"{config.host}/_bulk"
    with build_http_client(config) as client:
        for batch_num, batch in enumerate(_batches(documents, config.bulk_batch_size), start=1):
            body = build_bulk_body(index, batch)
            log_file.log(
                f"Uploading batch {batch_num} for index: {index} ({len(batch)} documents)"
            )
            response = client.request(
                "POST",
                bulk_url,
                data=body.encode("utf-8"),
                headers={"Content-Type": "application/x-ndjson"},
            )
            if not response.ok:
                status = _status(response)
                progress.set_description(f"Bulk upload failed: {status}")
                raise RuntimeError(
                    f"Bulk upload failed for index '{index}': {status} - {response.text}"
                )

            result = json.loads(response.text)
            if isinstance(result, dict) and result.get("errors") is True:
                log_file.log(
                    f"Warning: Some errors occurred during bulk upload for index: {index}"
                )
                errors = summarize_bulk_errors(result, 5)
                if errors:
                    log_file.log(f"First few errors: {', '.join(errors)}")

            progress.update(1)

    log_file.log(
        f"Data restoration completed for index: {index}. Total documents: {doc_count}"
    )


def restore_mapping(
    config: BackupConfig, index: str, index_dir: str | Path, log_file: LogFile
) -> None:
    """Create the index on the cluster from its saved mapping."""
    mapping_file = Path(index_dir) / f"{index}_mapping.json"
    with open(mapping_file, encoding="utf-8") as source:
        mapping = json.load(source)

    with build_http_client(config) as client:
        response = client.request("PUT", f"{config.host}/{index}", json=mapping)
        if not response.ok:
            raise RuntimeError(f"Failed to create index '{index}': {response.text}")

    log_file.log(f"Mapping restored for index: {index}")