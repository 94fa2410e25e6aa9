from __future__ import annotations

import asyncio
import copy
import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
from uuid import uuid4

from models.records import Identity
from services.errors import StorageError
from services.policy import can_insert_readings
from services.validation import NUMERIC_FIELDS, check_ranges
from settings import get_settings

logger = logging.getLogger(__name__)


class LocalReadingTable:
    """In-process stand-in for the ``sensor_readings`` table.

    Enforces the same rules as the managed schema: the writer role policy,
    the column range constraints and, when known assets are configured,
    the asset foreign key.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        known_assets: Iterable[str] = (),
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self.known_assets: FrozenSet[str] = frozenset(known_assets)
        self._rows: List[Dict[str, Any]] = []
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    async def insert(self, table: str, row: Dict[str, Any], identity: Identity) -> None:
        await asyncio.to_thread(self.put_row, table, row, identity)

    def put_row(self, table: str, row: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
        if table != self.name:
            raise StorageError(f'relation "{table}" does not exist')
        if not can_insert_readings(identity.role):
            raise StorageError(
                f'new row violates row-level security policy for table "{table}"',
                provider_status=403,
            )

        missing = [field for field in NUMERIC_FIELDS if row.get(field) is None]
        if missing:
            raise StorageError(f"null value in column(s) {', '.join(missing)}")
        violation = check_ranges(row)
        if violation is not None:
            raise StorageError(f"check constraint violated: {violation}")

        asset_id = row.get("asset_id")
        if self.known_assets and asset_id not in self.known_assets:
            raise StorageError(f"asset {asset_id!r} is not present in table \"assets\"")

        stored = dict(row)
        stored["id"] = str(uuid4())
        if not stored.get("timestamp"):
            stored["timestamp"] = datetime.now(timezone.utc).isoformat()

        with self._lock:
            self._rows.append(stored)
            self._persist()
        logger.debug("Stored reading locally", extra={"asset_id": asset_id, "table": table})
        return copy.deepcopy(stored)

    def scan(self) -> List[Dict[str, Any]]:
        """Return deep copies of all stored rows."""

        with self._lock:
            return copy.deepcopy(self._rows)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(self._rows, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = []

        if isinstance(data, list):
            self._rows = [row for row in data if isinstance(row, dict)]


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> LocalReadingTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.local_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return LocalReadingTable(
        name=table_name,
        persistence_path=persistence,
        known_assets=settings.local_known_assets,
    )
