"""JSON snapshot storage: one immutable file per block plus a latest pointer"""
import json
import os
import tempfile
from dataclasses import asdict, is_dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

LATEST = "latest"


def to_jsonable(payload: Any) -> Any:
    """Convert models, dataclasses and Decimals into plain JSON values."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True)
    if is_dataclass(payload) and not isinstance(payload, type):
        if hasattr(payload, "to_dict"):
            return payload.to_dict()
        return to_jsonable(asdict(payload))
    if isinstance(payload, dict):
        return {str(key): to_jsonable(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in payload]
    if isinstance(payload, Decimal):
        return str(payload)
    if isinstance(payload, datetime):
        return payload.isoformat()
    return payload


class SnapshotStore:
    """
    Writes table snapshots under ``<data_dir>/<chain_id>/<category>/``.

    Each save writes ``<block_num>.json`` and overwrites ``latest.json``.
    Both are written through a temporary file and renamed into place, so a
    reader never sees a partially written snapshot.
    """

    def __init__(self, data_dir: Union[str, Path], chain_id: str):
        self.chain_id = chain_id
        self.basepath = Path(data_dir) / chain_id

    def category_path(self, category: str) -> Path:
        return self.basepath.joinpath(*category.split("/"))

    def save(self, category: str, block_num: int, payload: Any) -> Path:
        """Save a snapshot for ``block_num`` and point ``latest`` at it."""
        directory = self.category_path(category)
        directory.mkdir(parents=True, exist_ok=True)

        body = json.dumps(to_jsonable(payload), indent=2, sort_keys=False)
        filepath = directory / f"{block_num}.json"
        logger.info("Saving snapshot", path=str(filepath))

        self._write_atomic(filepath, body)
        self._write_atomic(directory / f"{LATEST}.json", body)
        return filepath

    def load_latest(self, category: str) -> Optional[Any]:
        """Load the latest snapshot of a category, or None if there is none."""
        filepath = self.category_path(category) / f"{LATEST}.json"
        if not filepath.exists():
            return None
        with filepath.open("r", encoding="utf-8") as f:
            return json.load(f)

    def load(self, category: str, block_num: int) -> Optional[Any]:
        """Load the snapshot of a category saved for ``block_num``."""
        filepath = self.category_path(category) / f"{block_num}.json"
        if not filepath.exists():
            return None
        with filepath.open("r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_atomic(filepath: Path, body: str) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            os.replace(tmp_path, filepath)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
