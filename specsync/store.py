"""
Persistence for specification records between runs
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from .api_models import SpecificationRecord

logger = logging.getLogger(__name__)


class SpecificationStore(ABC):
    """Keeps the last accepted record per function key"""

    @abstractmethod
    def get(self, function_key: str) -> Optional[SpecificationRecord]:
        ...

    @abstractmethod
    def put(self, record: SpecificationRecord) -> None:
        ...

    def keys(self) -> List[str]:
        return []


class InMemorySpecificationStore(SpecificationStore):

    def __init__(self):
        self._records: Dict[str, SpecificationRecord] = {}

    def get(self, function_key: str) -> Optional[SpecificationRecord]:
        return self._records.get(function_key)

    def put(self, record: SpecificationRecord) -> None:
        self._records[record.function_key] = record

    def keys(self) -> List[str]:
        return list(self._records)


class JsonSpecificationStore(SpecificationStore):
    """
    Records in a single JSON file keyed by function key.

    The file is loaded once on construction and rewritten on every put.
    Entries that no longer validate are skipped with a warning.
    """

    def __init__(self, path: str):
        self.path = path
        self._records: Dict[str, SpecificationRecord] = {}
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        for key, raw in data.get("records", {}).items():
            try:
                self._records[key] = SpecificationRecord.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping invalid stored record %s: %s", key, e)

    def _save(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        payload = {"records": {k: r.to_dict() for k, r in self._records.items()}}
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def get(self, function_key: str) -> Optional[SpecificationRecord]:
        return self._records.get(function_key)

    def put(self, record: SpecificationRecord) -> None:
        self._records[record.function_key] = record
        self._save()

    def keys(self) -> List[str]:
        return list(self._records)
