from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from models.records import Identity
from services.errors import StorageError


class RecordingVerifier:
    def __init__(self, identities: Optional[Dict[str, Identity]] = None) -> None:
        self.identities = dict(identities or {})
        self.calls: List[str] = []

    async def verify(self, token: str) -> Optional[Identity]:
        self.calls.append(token)
        return self.identities.get(token)


class RecordingWriter:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.inserts: List[Tuple[str, Dict[str, Any], Identity]] = []

    async def insert(self, table: str, row: Dict[str, Any], identity: Identity) -> None:
        if self.error is not None:
            raise self.error
        self.inserts.append((table, dict(row), identity))


ENGINEER = Identity(user_id="user-1", access_token="good-token", role="engineer")


@pytest.fixture()
def verifier() -> RecordingVerifier:
    return RecordingVerifier({"good-token": ENGINEER})


@pytest.fixture()
def writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture()
def failing_writer() -> RecordingWriter:
    return RecordingWriter(
        error=StorageError('violates foreign key constraint "sensor_readings_asset_id_fkey"')
    )


@pytest.fixture()
def valid_body() -> Dict[str, Any]:
    return {
        "asset_id": "A1",
        "temperature": 25,
        "pressure": 10,
        "vibration": 0.5,
        "energy_consumption": 100,
    }
