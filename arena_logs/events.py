"""
Modelo de evento normalizado.

Os tres decodificadores (tradicional, simplificado e tabela Lua) produzem
NormalizedEvent; a segmentacao de partidas nunca enxerga o texto bruto.
Tambem vive aqui o estado de parse compartilhado (contagem de linhas
malformadas e avisos agregados).
"""

import hashlib
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

logger = logging.getLogger("arena_logs.events")
_PARSE_WARN_SAMPLE = 6


class EventType(StrEnum):
    ZONE_CHANGE = "ZONE_CHANGE"
    SWING_DAMAGE = "SWING_DAMAGE"
    SPELL_DAMAGE = "SPELL_DAMAGE"
    RANGE_DAMAGE = "RANGE_DAMAGE"
    SPELL_HEAL = "SPELL_HEAL"
    SPELL_PERIODIC_HEAL = "SPELL_PERIODIC_HEAL"
    SPELL_ABSORBED = "SPELL_ABSORBED"
    OTHER = "OTHER"

    @classmethod
    def from_raw(cls, raw: str) -> "EventType":
        """Mapeia o nome bruto do evento; qualquer outro nome vira OTHER."""
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.OTHER


class LogFormat(StrEnum):
    TRADITIONAL = "traditional"
    SIMPLIFIED = "simplified"
    LUA_TABLE = "lua_table"

    @classmethod
    def parse(cls, value: str | None) -> "LogFormat | None":
        """Aceita 'traditional', 'simplified', 'lua', 'luatable' (sem caixa)."""
        if value is None:
            return None
        text = value.strip().lower().replace("-", "_")
        if not text or text == "auto":
            return None
        if text in ("lua", "luatable"):
            return cls.LUA_TABLE
        return cls(text)


@dataclass(slots=True)
class NormalizedEvent:
    timestamp: datetime
    event_type: EventType
    raw_event: str = ""
    source_name: str | None = None
    target_name: str | None = None
    spell_id: int | None = None
    spell_name: str | None = None
    damage: int | None = None
    healing: int | None = None
    absorbed: int | None = None
    zone_id: int | None = None
    zone_name: str | None = None
    arena_match_id: str | None = None
    match_type: str | None = None

    @property
    def ability(self) -> str:
        """Nome da habilidade; sem spell usa o nome bruto do evento."""
        return self.spell_name or self.raw_event or self.event_type.value


@dataclass(frozen=True, slots=True)
class ParseWarningKey:
    event: str
    reason: str
    source: str
    cols: str


@dataclass(slots=True)
class ParserState:
    source: str = "<desconhecido>"
    line_no: int = 0
    raw_line: str = ""
    warning_counts: defaultdict[str, int] = field(
        default_factory=lambda: defaultdict(int)
    )
    malformed_lines: int = 0
    events: int = 0


def _make_warning_id(key: ParseWarningKey) -> str:
    raw = f"{key.event}|{key.reason}|{key.source}|{key.cols}"
    return hashlib.md5(raw.encode("utf-8", "replace")).hexdigest()[:8]


def log_parse_warning(
    event_label: str,
    cols: list[str],
    exc: Exception,
    expected: str | None = None,
    state: ParserState | None = None,
) -> None:
    source = state.source if state else "<desconhecido>"
    line_no = state.line_no if state else -1
    reason = expected or str(exc)
    cols_repr = str(cols[:_PARSE_WARN_SAMPLE])
    key = ParseWarningKey(event=event_label, reason=reason, source=source, cols=cols_repr)
    warning_id = _make_warning_id(key)
    count = 1
    if state is not None:
        state.warning_counts[warning_id] += 1
        count = state.warning_counts[warning_id]
    # so o primeiro de cada id vai para WARNING; repeticoes ficam em DEBUG
    level = logging.WARNING if count == 1 else logging.DEBUG
    logger.log(
        level,
        "Parse parcial em %s: %s | esperado=%s | cols=%s | origem=%s | linha=%s | id=%s | ocorrencias=%s",
        event_label,
        exc,
        expected or "n/d",
        cols_repr,
        source,
        line_no if line_no != -1 else "desconhecida",
        warning_id,
        count,
    )


def iter_records(lines: Iterable[str]) -> Iterator[tuple[int, str]]:
    """Numera as linhas e descarta vazias e comentarios ('#')."""
    for idx, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        yield idx, line


def parse_events(
    records: Iterable[tuple[int, str]],
    parse_line: Callable[[str], NormalizedEvent | None],
    state: ParserState,
) -> Iterator[NormalizedEvent]:
    """Aplica parse_line linha a linha; linha invalida e ignorada, nunca fatal."""
    for state.line_no, state.raw_line in records:
        try:
            event = parse_line(state.raw_line)
        except ValueError as exc:
            state.malformed_lines += 1
            logger.debug(
                "Linha ignorada (%s): %s | origem=%s | linha=%s",
                exc,
                state.raw_line.strip()[:200],
                state.source,
                state.line_no,
            )
            continue
        if event is not None:
            state.events += 1
            yield event
