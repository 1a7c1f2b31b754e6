"""Record store — durable key/value records for posts, the corpus index and the slug counter."""

from __future__ import annotations

import copy
import logging
import os
import tempfile

import yaml

log = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class MemoryRecordStore:
    """In-process store with the same contract as FileRecordStore."""

    def __init__(self):
        self.records: dict[str, dict] = {}

    def put(self, key: str, record: dict):
        self.records[key] = copy.deepcopy(record)

    def get(self, key: str) -> dict | None:
        record = self.records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def list(self, prefix: str = "") -> list[tuple[str, dict]]:
        return [
            (key, copy.deepcopy(record))
            for key, record in sorted(self.records.items())
            if key.startswith(prefix)
        ]


class FileRecordStore:
    """One YAML file per record under a root directory.

    Keys map to paths (``post/3`` -> ``<root>/post/3.yaml``). Each write goes
    to a temp file in the target directory and is renamed into place, so a
    crash never leaves a half-written record behind.
    """

    SUFFIX = ".yaml"

    def __init__(self, root: str):
        self.root = root

    def _path(self, key: str) -> str:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StorageError(f"Invalid record key: {key!r}")
        return os.path.join(self.root, *parts) + self.SUFFIX

    def put(self, key: str, record: dict):
        path = self._path(key)
        directory = os.path.dirname(path)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=self.SUFFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    yaml.safe_dump(record, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (OSError, yaml.YAMLError) as e:
            log.error(f"Failed to write record {key}: {e}")
            raise StorageError(f"Failed to write record {key}: {e}") from e

    def get(self, key: str) -> dict | None:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            log.error(f"Failed to read record {key}: {e}")
            raise StorageError(f"Failed to read record {key}: {e}") from e

    def list(self, prefix: str = "") -> list[tuple[str, dict]]:
        if not os.path.isdir(self.root):
            return []
        keys = []
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for filename in filenames:
                if not filename.endswith(self.SUFFIX) or filename.startswith(".tmp-"):
                    continue
                rel = os.path.relpath(os.path.join(dirpath, filename), self.root)
                key = rel[: -len(self.SUFFIX)].replace(os.sep, "/")
                if key.startswith(prefix):
                    keys.append(key)
        return [(key, self.get(key)) for key in sorted(keys)]
