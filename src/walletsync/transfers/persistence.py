"""JSON file persistence for bridge transfers."""
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

from .models import SCHEMA_VERSION, BridgeTransfer


@dataclass
class LoadedTransfers:
    next_id: int = 1
    transfers: Dict[int, BridgeTransfer] = field(default_factory=dict)
    skipped: int = 0


class JsonTransferRepository:
    """
    Keyed collection of transfers in one JSON document.

    The document is ``{"schema_version", "next_id", "transfers": {id: record}}``.
    Records whose ``schema_version`` is not understood, or that cannot be
    parsed, are left on disk as they are and are not loaded.

    Parameters
    ----------
    path : str
        State file location. Parent directories are created on save.
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)
        self._lock = threading.Lock()
        self._foreign: Dict[str, Dict[str, Any]] = {}

    def load(self) -> LoadedTransfers:
        result = LoadedTransfers()
        if not os.path.exists(self.path):
            return result

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            corrupt = self.path + ".corrupt"
            logging.error(f"Could not load transfer state {self.path}: {e}; moved to {corrupt}")
            os.replace(self.path, corrupt)
            return result

        max_id = 0
        self._foreign = {}
        for key, record in data.get("transfers", {}).items():
            if key.isdigit():
                max_id = max(max_id, int(key))
            version = record.get("schema_version") if isinstance(record, dict) else None
            if version != SCHEMA_VERSION:
                logging.warning(
                    f"Skipping transfer {key} with unsupported schema version {version}"
                )
                self._foreign[key] = record
                result.skipped += 1
                continue
            try:
                transfer = BridgeTransfer.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logging.warning(f"Skipping unreadable transfer {key}: {e!r}")
                self._foreign[key] = record
                result.skipped += 1
                continue
            result.transfers[transfer.id] = transfer

        result.next_id = max(int(data.get("next_id", 1)), max_id + 1)
        logging.info(
            f"Loaded {len(result.transfers)} transfers from {self.path} "
            f"({result.skipped} skipped)"
        )
        return result

    def save(self, next_id: int, transfers: Iterable[BridgeTransfer]) -> None:
        records: Dict[str, Dict[str, Any]] = dict(self._foreign)
        for transfer in transfers:
            records[str(transfer.id)] = transfer.to_dict()
        data = {
            "schema_version": SCHEMA_VERSION,
            "next_id": next_id,
            "transfers": records,
        }

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = self.path + ".tmp"
        with self._lock:
            with open(tmp, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
