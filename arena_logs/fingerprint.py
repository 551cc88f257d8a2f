"""Identificadores estaveis de partida."""

import hashlib
from collections.abc import Iterable
from datetime import datetime


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value is not None else ""


def compute_unique_hash(
    participants: Iterable[str], start: datetime | None, end: datetime | None
) -> str:
    """SHA-256 de 'nomes ordenados|inicio|fim'; independe da ordem dos eventos."""
    base = "|".join(sorted(participants)) + f"|{_iso(start)}|{_iso(end)}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def lua_arena_match_id(zone: str | None, start: datetime, end: datetime, mode: str | None) -> str:
    base = f"{zone or ''}_{start:%Y%m%d%H%M%S}_{end:%Y%m%d%H%M%S}_{mode or ''}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest().upper()[:16]
