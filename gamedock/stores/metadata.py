"""Metadata stores for resolvers.

Resolvers receive a MetadataStore instead of reading module-level state.
Data is grouped by namespace ("volumes", "display"); each namespace is a
JSON object.
"""

from __future__ import annotations

import copy
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


class MetadataStore(ABC):
    """Namespaced key/value metadata."""

    @abstractmethod
    def load(self, namespace: str) -> dict[str, Any]:
        """Return the namespace document (empty dict when absent)."""
        ...

    @abstractmethod
    def save(self, namespace: str, data: dict[str, Any]) -> None:
        """Replace the namespace document."""
        ...

    def update(self, namespace: str, key: str, value: dict[str, Any]) -> dict[str, Any]:
        """Merge ``value`` into ``namespace[key]`` and persist it."""
        data = self.load(namespace)
        entry = dict(data.get(key) or {})
        entry.update({k: v for k, v in value.items() if v is not None})
        data[key] = entry
        self.save(namespace, data)
        return entry


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed store."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None) -> None:
        self._data: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    def load(self, namespace: str) -> dict[str, Any]:
        return copy.deepcopy(self._data.get(namespace, {}))

    def save(self, namespace: str, data: dict[str, Any]) -> None:
        self._data[namespace] = copy.deepcopy(data)


class JsonFileMetadataStore(MetadataStore):
    """One ``<namespace>.json`` file per namespace under ``root``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._log = logger.bind(store="metadata", root=str(self._root))

    def _path(self, namespace: str) -> Path:
        return self._root / f"{namespace}.json"

    def load(self, namespace: str) -> dict[str, Any]:
        path = self._path(namespace)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            self._log.warning("metadata.load.invalid_json", namespace=namespace, error=str(e))
            return {}
        if not isinstance(data, dict):
            self._log.warning("metadata.load.not_an_object", namespace=namespace)
            return {}
        return data

    def save(self, namespace: str, data: dict[str, Any]) -> None:
        path = self._path(namespace)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so readers never see a partial document
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, path)
        self._log.info("metadata.save", namespace=namespace, keys=len(data))
