"""
Decodificador do formato tradicional do combat log.

Cada linha e '<timestamp><dois espacos><campos CSV>'. O timestamp aceita
'M/D/AAAA H:MM:SS.ffff', 'M/D H:MM:SS.fff' e 'M/D H:MM:SS' (com ou sem
fuso no final); o nome do evento fica na coluna 0 e as demais colunas
sao posicionais, mapeadas pelas tabelas *_SPEC abaixo.
"""

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from typing import Any

from arena_logs.events import (
    EventType,
    NormalizedEvent,
    ParserState,
    iter_records,
    log_parse_warning,
    parse_events,
)

logger = logging.getLogger("arena_logs.parser_traditional")

FIELD_SEPARATOR = "  "
_YEAR_ROLLBACK_DAYS = 180

# Regex pre-compiladas para hot paths
_RE_TIMEZONE = re.compile(r"([+-]\d{1,2}(?::?\d{2})?)$")


def split_timestamp(line: str) -> tuple[str, str]:
    """Separa 'timestamp' e 'CSV' no primeiro bloco de dois espacos."""
    head, sep, rest = line.partition(FIELD_SEPARATOR)
    if not sep or not head.strip() or not rest.strip():
        raise ValueError(f"Malformed line: {line[:50]}")
    return head.strip(), rest.strip()


def parse_timestamp(
    head: str, reference: datetime | None = None, now: datetime | None = None
) -> datetime:
    """Converte 'M/D[/(AAAA|AA)] H:MM:SS[.fff]' em datetime.

    Sem ano na linha, usa o ano de `reference`; sem referencia, usa o ano
    corrente e recua um ano se a data cair mais de 180 dias no futuro.
    """
    parts = head.split()
    if len(parts) != 2:
        raise ValueError(f"Malformed timestamp: {head[:50]}")
    date_str, time_raw = parts
    time_str = _RE_TIMEZONE.sub("", time_raw)

    current_time = now or datetime.now()
    try:
        date_parts = [int(p) for p in date_str.split("/")]
        if len(date_parts) not in (2, 3):
            raise ValueError(f"Unexpected date: {date_str}")
        month, day = date_parts[0], date_parts[1]
        year = reference.year if reference else current_time.year
        if len(date_parts) == 3:
            raw_year = date_parts[2]
            year = (
                raw_year + (2000 if raw_year < 70 else 1900)
                if raw_year < 100
                else raw_year
            )

        fmt = "%m/%d/%Y %H:%M:%S.%f" if "." in time_str else "%m/%d/%Y %H:%M:%S"
        dt = datetime.strptime(f"{month}/{day}/{year} {time_str}", fmt)

        if (
            len(date_parts) == 2
            and reference is None
            and (dt - current_time).days > _YEAR_ROLLBACK_DAYS
        ):
            dt = dt.replace(year=dt.year - 1)
        return dt
    except (ValueError, IndexError) as e:
        raise ValueError(f"Could not parse timestamp: {date_str} {time_str}") from e


def split_fields(csv_text: str) -> list[str]:
    """Separa por virgula ignorando virgulas dentro de aspas duplas."""
    out: list[str] = []
    buf: list[str] = []
    quoted = False
    for ch in csv_text:
        if ch == '"':
            quoted = not quoted
        if ch == "," and not quoted:
            out.append("".join(buf).strip())
            buf.clear()
        else:
            buf.append(ch)
    out.append("".join(buf).strip())
    return out


def strip_quotes(s: str) -> str:
    """Remove uma unica camada de aspas duplas nas extremidades."""
    text = str(s).strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text[1:-1]
    return text


def _optional_int(val: Any) -> int | None:
    """Inteiro decimal ou hexadecimal; vazio, "nil" ou invalido viram None."""
    if val is None:
        return None
    text = str(val).strip()
    if not text or text.lower() == "nil":
        return None
    try:
        return int(text, 0)
    except ValueError:
        return None


def _strip_optional(val: Any) -> str | None:
    """Remove aspas de val; None, vazio ou "nil" viram None."""
    if val is None:
        return None
    text = strip_quotes(str(val))
    if not text or text.lower() == "nil":
        return None
    return text


Spec = list[tuple[str, int, Callable[[Any], Any] | None]]

BASE_SPEC: Spec = [
    ("source_name", 2, _strip_optional),
    ("target_name", 6, _strip_optional),
]
SPELL_PREFIX_SPEC: Spec = [
    ("spell_id", 9, _optional_int),
    ("spell_name", 10, _strip_optional),
]
SWING_DAMAGE_SPEC: Spec = BASE_SPEC + [("damage", 9, _optional_int)]
SPELL_DAMAGE_SPEC: Spec = BASE_SPEC + SPELL_PREFIX_SPEC + [("damage", 12, _optional_int)]
SPELL_HEAL_SPEC: Spec = BASE_SPEC + SPELL_PREFIX_SPEC + [("healing", 12, _optional_int)]
SPELL_ABSORBED_SPEC: Spec = BASE_SPEC + SPELL_PREFIX_SPEC + [("absorbed", 15, _optional_int)]
SPELL_OTHER_SPEC: Spec = BASE_SPEC + SPELL_PREFIX_SPEC
ZONE_CHANGE_SPEC: Spec = [
    ("zone_id", 1, _optional_int),
    ("zone_name", 2, _strip_optional),
]
ARENA_MATCH_START_SPEC: Spec = [
    ("arena_match_id", 1, _strip_optional),
    ("zone_id", 2, _optional_int),
    ("match_type", 3, _strip_optional),
]

_SPELL_PREFIXES = ("SPELL_", "RANGE_", "DAMAGE_")


def _map_cols(cols: list[str], spec: Spec) -> dict[str, Any]:
    return {
        field: (
            pre(cols[idx])
            if pre and idx < len(cols)
            else cols[idx] if idx < len(cols) else None
        )
        for field, idx, pre in spec
    }


class TraditionalLogParser:
    """Despachante explicito de eventos do formato tradicional."""

    def __init__(self, reference_date: datetime | None = None) -> None:
        self.reference_date = reference_date
        self.state: ParserState | None = None
        # Eventos "standalone" (nao seguem o layout origem/alvo/spell)
        self.standalone_events: dict[str, Callable[[datetime, list[str]], NormalizedEvent]] = {
            "ZONE_CHANGE": self.parse_zone_change,
            "ARENA_MATCH_START": self.parse_arena_start,
        }
        self.event_specs: dict[EventType, Spec] = {
            EventType.SWING_DAMAGE: SWING_DAMAGE_SPEC,
            EventType.SPELL_DAMAGE: SPELL_DAMAGE_SPEC,
            EventType.RANGE_DAMAGE: SPELL_DAMAGE_SPEC,
            EventType.SPELL_HEAL: SPELL_HEAL_SPEC,
            EventType.SPELL_PERIODIC_HEAL: SPELL_HEAL_SPEC,
            EventType.SPELL_ABSORBED: SPELL_ABSORBED_SPEC,
        }

    def parse_line(self, line: str) -> NormalizedEvent:
        head, csv_text = split_timestamp(line)
        ts = parse_timestamp(head, self.reference_date)
        cols = split_fields(csv_text)
        event_name = cols[0].upper()
        match event_name:
            case "":
                raise ValueError("Empty CSV or missing event after timestamp")
            case _ if event_name in self.standalone_events:
                return self.standalone_events[event_name](ts, cols)
            case _:
                return self.parse_combat_event(ts, event_name, cols)

    def parse_zone_change(self, ts: datetime, cols: list[str]) -> NormalizedEvent:
        mapped = _map_cols(cols, ZONE_CHANGE_SPEC)
        if mapped["zone_id"] is None:
            raise ValueError(f"Invalid format for ZONE_CHANGE: {cols[:3]}")
        return NormalizedEvent(
            timestamp=ts,
            event_type=EventType.ZONE_CHANGE,
            raw_event="ZONE_CHANGE",
            **mapped,
        )

    def parse_arena_start(self, ts: datetime, cols: list[str]) -> NormalizedEvent:
        mapped = _map_cols(cols, ARENA_MATCH_START_SPEC)
        if mapped["arena_match_id"] is None:
            log_parse_warning(
                "ARENA_MATCH_START",
                cols,
                ValueError("Arena start data incomplete"),
                expected="arenaMatchId, zoneId[, matchType]",
                state=self.state,
            )
        return NormalizedEvent(
            timestamp=ts,
            event_type=EventType.OTHER,
            raw_event="ARENA_MATCH_START",
            **mapped,
        )

    def _spec_for(self, event_type: EventType, event_name: str) -> Spec:
        if spec := self.event_specs.get(event_type):
            return spec
        if event_name.startswith(_SPELL_PREFIXES):
            return SPELL_OTHER_SPEC
        return BASE_SPEC

    def parse_combat_event(
        self, ts: datetime, event_name: str, cols: list[str]
    ) -> NormalizedEvent:
        event_type = EventType.from_raw(event_name)
        spec = self._spec_for(event_type, event_name)
        mapped = _map_cols(cols, spec)
        if event_type is not EventType.OTHER and len(cols) <= spec[-1][1]:
            # linha curta: campos opcionais ficam ausentes
            log_parse_warning(
                event_name,
                cols,
                ValueError(f"Insufficient {event_name} data"),
                expected=f">= {spec[-1][1] + 1} cols",
                state=self.state,
            )
        return NormalizedEvent(
            timestamp=ts,
            event_type=event_type,
            raw_event=event_name,
            **mapped,
        )

    def decode(self, lines: Iterable[str], state: ParserState | None = None) -> Iterator[NormalizedEvent]:
        """Stream de linhas -> stream de eventos; linhas invalidas sao puladas."""
        self.state = state or ParserState()
        return parse_events(iter_records(lines), self.parse_line, self.state)
