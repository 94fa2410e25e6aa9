from __future__ import annotations

from typing import Dict, Optional

from models.records import Identity


def parse_token_table(raw: str) -> Dict[str, Identity]:
    """Parse ``token=user_id:role`` entries separated by commas.

    The role part is optional. Malformed entries raise ``ValueError``.
    """
    identities: Dict[str, Identity] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, sep, principal = entry.partition("=")
        token = token.strip()
        if not sep or not token or not principal.strip():
            raise ValueError(f"Malformed local auth entry: {entry!r}")
        user_id, _, role = principal.strip().partition(":")
        identities[token] = Identity(
            user_id=user_id.strip(),
            access_token=token,
            role=role.strip() or None,
        )
    return identities


class LocalTokenVerifier:
    """Static token table used when no managed auth provider is configured."""

    def __init__(self, identities: Dict[str, Identity]) -> None:
        self._identities = dict(identities)

    @classmethod
    def from_string(cls, raw: str) -> "LocalTokenVerifier":
        return cls(parse_token_table(raw))

    async def verify(self, token: str) -> Optional[Identity]:
        if not token:
            return None
        return self._identities.get(token)
