"""Export Elasticsearch indices (mappings and documents) to the backup directory."""

from __future__ import annotations

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Iterable, TextIO

import requests
from tqdm import tqdm

from esdumper.config import BackupConfig
from esdumper.http_client import ElasticClient, build_http_client
from esdumper.utils import LogFile, get_elasticsearch_version, reduce_document_size

_BYTES_PER_MB = 1024 * 1024


def _status(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason or ''}".strip()


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _scroll_id(data: Any) -> str:
    scroll_id = _dig(data, "_scroll_id")
    if not isinstance(scroll_id, str):
        raise RuntimeError("No scroll ID returned")
    return scroll_id


def _hits(data: Any) -> list[Any]:
    hits = _dig(data, "hits", "hits")
    if not isinstance(hits, list):
        raise RuntimeError("Invalid hits format")
    return hits


def _clear_scroll(client: ElasticClient, host: str, scroll_id: str) -> None:
    try:
        client.request("DELETE", f"{host}/_search/scroll", json={"scroll_id": [scroll_id]})
    except requests.RequestException:
        pass


def _write_hits(out: TextIO, hits: Iterable[Any], first: bool, progress: tqdm) -> int:
    separator = "" if first else ","
    written = 0
    for hit in hits:
        out.write(separator)
        out.write(_compact(reduce_document_size(hit)))
        separator = ","
        written += 1
        progress.update(1)
    return written


def effective_scroll_size(scroll_size: int, es_version: str) -> int:
    """Scroll page size to use; 8.3.x clusters get half the size, but at least 1000."""
    if es_version.startswith("8.3"):
        return max(scroll_size // 2, 1000)
    return scroll_size


def run_backup(config: BackupConfig, log_file: LogFile, specific_index: str | None = None) -> None:
    """Back up one index, or every eligible index, in parallel."""
    if config.max_parallel_indices < 1:
        raise ValueError("max_parallel_indices must be at least 1")

    log_file.log("Starting Elasticsearch backup process")

    with build_http_client(config) as client:
        es_version = get_elasticsearch_version(client, config.host, log_file)
        log_file.log(f"Detected Elasticsearch version: {es_version}")

        if specific_index is not None:
            response = client.request("GET", f"{config.host}/{specific_index}/_count")
            if not response.ok:
                raise RuntimeError(f"Index '{specific_index}' does not exist")
            indices = [specific_index]
        else:
            indices = fetch_indices(config, log_file, es_version)

    if not indices:
        log_file.log("No indices found to backup")
        return

    log_file.log(f"Found {len(indices)} indices to backup")

    start = time.monotonic()
    lock = threading.Lock()
    active = 0

    with tqdm(total=len(indices), desc="Indices", unit="index") as main_bar:

        def process(index: str) -> None:
            nonlocal active
            with lock:
                active += 1
                current = active
            log_file.log(f"Starting backup for index: {index} (active indices: {current})")

            with tqdm(total=0, desc=index, leave=False) as bar:
                try:
                    backup_index(config, index, log_file, bar, es_version)
                except Exception as exc:  # one failing index must not stop the others
                    log_file.log(f"Error backing up index {index}: {exc}")
                    bar.set_description(f"Error: {exc}")

            with lock:
                active -= 1
                current = active
            log_file.log(f"Completed backup for index: {index} (active indices: {current})")
            with lock:
                main_bar.update(1)

        with ThreadPoolExecutor(max_workers=config.max_parallel_indices) as pool:
            list(pool.map(process, indices))

        duration = time.monotonic() - start
        main_bar.set_postfix_str(f"Completed in {duration:.2f} seconds")

    log_file.log(f"Backup completed successfully in {duration:.2f} seconds")


def backup_index(
    config: BackupConfig, index: str, log_file: LogFile, progress: tqdm, es_version: str
) -> None:
    """Back up the mapping and the documents of one index."""
    log_file.log(f"Processing index: {index}")
    index_dir = Path(config.backup_dir) / index
    index_dir.mkdir(parents=True, exist_ok=True)
    backup_mapping(config, index, index_dir, log_file)
    backup_data(config, index, index_dir, log_file, progress, es_version)
    log_file.log(f"Backup completed for index: {index}")


def backup_data(
    config: BackupConfig,
    index: str,
    index_dir: str | Path,
    log_file: LogFile,
    progress: tqdm,
    es_version: str,
) -> None:
    """Scroll through an index and write its documents as one JSON array."""
    index_dir = Path(index_dir)
    host = config.host
    with build_http_client(config) as client:
        count_json = client.request("GET", f"{host}/{index}/_count").json()
        doc_count = _dig(count_json, "count")
        if not _is_uint(doc_count):
            doc_count = 0

        if doc_count == 0:
            log_file.log(f"Index {index} is empty, skipping data backup")
            progress.set_description(f"{index} (empty)")
            return

        progress.total = doc_count
        progress.refresh()

        size = effective_scroll_size(config.scroll_size, es_version)
        body = {
            "size": size,
            "query": {"match_all": {}},
            "_source": True,
            "sort": ["_doc"],
        }
        log_file.log(
            f"Starting data export for index: {index} "
            f"({doc_count} documents, scroll_size: {size})"
        )

        start = time.monotonic()
        response = client.request(
            "POST", f"{host}/{index}/_search?scroll={config.scroll_time}", json=body
        )
        if not response.ok:
            status = _status(response)
            progress.set_description(f"Scroll failed: {status}")
            raise RuntimeError(f"Failed to initialize scroll for {index}: {status}")

        data = response.json()
        scroll_id = _scroll_id(data)
        data_file = index_dir / f"{index}_data.json"

        with open(data_file, "w", encoding="utf-8", buffering=config.buffer_size) as out:
            hits = _hits(data)
            out.write("[")
            total_docs = _write_hits(out, hits, True, progress)

            while hits:
                response = client.request(
                    "POST",
                    f"{host}/_search/scroll",
                    json={"scroll": config.scroll_time, "scroll_id": scroll_id},
                )
                if not response.ok:
                    status = _status(response)
                    _clear_scroll(client, host, scroll_id)
                    progress.set_description(f"Scroll failed: {status}")
                    raise RuntimeError(f"Failed to continue scroll: {status}")

                data = response.json()
                scroll_id = _scroll_id(data)
                batch = _hits(data)
                if not batch:
                    break
                total_docs += _write_hits(out, batch, False, progress)
                out.flush()

            out.write("]")

        _clear_scroll(client, host, scroll_id)

    duration = time.monotonic() - start
    log_file.log(
        f"Completed data export for index: {index}. Total documents: {total_docs}. "
        f"Duration: {duration:.2f} seconds"
    )


def backup_mapping(
    config: BackupConfig, index: str, index_dir: str | Path, log_file: LogFile
) -> None:
    """Write the index mapping as pretty-printed JSON."""
    with build_http_client(config) as client:
        mapping = client.request("GET", f"{config.host}/{index}/_mapping").json()
    mapping_file = Path(index_dir) / f"{index}_mapping.json"
    with open(mapping_file, "w", encoding="utf-8") as out:
        json.dump(mapping, out, indent=2, sort_keys=True, ensure_ascii=False)
    log_file.log(f"Mapping backed up for index: {index}")


def fetch_indices(config: BackupConfig, log_file: LogFile, es_version: str) -> list[str]:
    """List the indices to back up, sorted, without hidden, skipped or oversized ones."""
    host = config.host
    with build_http_client(config) as client:
        response = client.request("GET", f"{host}/_cat/indices?format=json&v=true")
        status = _status(response)
        text = response.text
        log_file.log(
            f"Response from _cat/indices (status: {status}, version: {es_version}): {text}"
        )

        try:
            data = json.loads(text)
        except ValueError as exc:
            raise RuntimeError(
                f"Failed to parse _cat/indices response: {exc}. Raw response: {text}"
            ) from exc

        if isinstance(data, dict) and "error" in data:
            reason = _dig(data, "error", "reason")
            error_type = _dig(data, "error", "type")
            reason = reason if isinstance(reason, str) else "Unknown error"
            error_type = error_type if isinstance(error_type, str) else "Unknown type"
            raise RuntimeError(f"Elasticsearch error (type: {error_type}): {reason}")

        if isinstance(data, list):
            entries = data
        elif isinstance(data, dict) and es_version.startswith("8.3"):
            log_file.log(
                "Received map response from _cat/indices, attempting to handle for ES 8.3.x"
            )
            if not data:
                log_file.log("No indices found in map response")
                return []
            entries = data.get("indices")
            if not isinstance(entries, list):
                raise RuntimeError(
                    "Expected 'indices' array in map response for ES 8.3.x, "
                    f"got: {_compact(data)}"
                )
        else:
            raise RuntimeError(
                f"Unexpected response format for ES version {es_version}: {_compact(data)}"
            )

        names = [
            name
            for name in (_dig(entry, "index") for entry in entries)
            if isinstance(name, str)
            and not name.startswith(".")
            and name not in config.skip_indices
        ]

        if config.max_index_size_mb is not None:
            limit = config.max_index_size_mb

            def fits(name: str) -> bool:
                try:
                    stats = client.request("GET", f"{host}/{name}/_stats/store").json()
                except (requests.RequestException, ValueError):
                    return True
                size_bytes = _dig(stats, "indices", name, "total", "store", "size_in_bytes")
                if not _is_uint(size_bytes):
                    return True
                return size_bytes // _BYTES_PER_MB <= limit

            names = [name for name in names if fits(name)]

    return sorted(names)