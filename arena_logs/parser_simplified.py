"""
Decodificador do formato simplificado (legivel) do addon.

    HH:MM:SS - HEAL: <origem> healed with <spell> for <valor>
    HH:MM:SS - DAMAGE: <origem> used <spell> for <valor> on <alvo>
    HH:MM:SS - |cffff8800INTERRUPT:|r <origem> interrupted <alvo>'s <spell>

O formato nao carrega data: o horario e combinado com uma data de
referencia fornecida por quem chama.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from datetime import date, datetime, time

from arena_logs.events import (
    EventType,
    NormalizedEvent,
    ParserState,
    iter_records,
    parse_events,
)

logger = logging.getLogger("arena_logs.parser_simplified")

_RE_COLOR_CODES = re.compile(r"\|c[0-9a-fA-F]{8}|\|r")
_RE_HEAL = re.compile(
    r"^(?P<time>\d{2}:\d{2}:\d{2})\s*-\s*HEAL:\s*"
    r"(?P<source>.+?)\s+healed\s+with\s+(?P<spell>.+?)"
    r"(?:\s+for\s+(?P<amount>\d+))?(?:\s+on\s+(?P<target>.+?))?\s*$",
    re.IGNORECASE,
)
_RE_DAMAGE = re.compile(
    r"^(?P<time>\d{2}:\d{2}:\d{2})\s*-\s*DAMAGE:\s*"
    r"(?P<source>.+?)\s+used\s+(?P<spell>.+?)"
    r"(?:\s+for\s+(?P<amount>\d+))?(?:\s+on\s+(?P<target>.+?))?\s*$",
    re.IGNORECASE,
)
_RE_INTERRUPT = re.compile(
    r"^(?P<time>\d{2}:\d{2}:\d{2})\s*-\s*[A-Z_ ]*INTERRUPT[A-Z_ ]*:\s*"
    r"(?P<source>.+?)\s+interrupted\s+(?P<target>.+?)'s\s+(?P<spell>.+?)\s*$",
    re.IGNORECASE,
)
RE_SIMPLIFIED_PREFIX = re.compile(r"^\s*\d{2}:\d{2}:\d{2}\s*-\s*")


def parse_time_of_day(text: str) -> time:
    try:
        return datetime.strptime(text, "%H:%M:%S").time()
    except ValueError as e:
        raise ValueError(f"Could not parse time of day: {text}") from e


class SimplifiedLogParser:
    """Parser linha a linha; a data vem de `reference_date`."""

    def __init__(self, reference_date: date | datetime) -> None:
        if isinstance(reference_date, datetime):
            reference_date = reference_date.date()
        self.reference_date = reference_date
        self.state: ParserState | None = None
        self._kinds: tuple[tuple[re.Pattern[str], EventType, str], ...] = (
            (_RE_HEAL, EventType.SPELL_HEAL, "healing"),
            (_RE_DAMAGE, EventType.SPELL_DAMAGE, "damage"),
        )

    def _timestamp(self, time_text: str) -> datetime:
        return datetime.combine(self.reference_date, parse_time_of_day(time_text))

    def parse_line(self, line: str) -> NormalizedEvent | None:
        text = _RE_COLOR_CODES.sub("", line).strip()
        if match := _RE_INTERRUPT.match(text):
            return NormalizedEvent(
                timestamp=self._timestamp(match["time"]),
                event_type=EventType.OTHER,
                raw_event="SPELL_CAST_SUCCESS",
                source_name=match["source"].strip(),
                target_name=match["target"].strip(),
                spell_name=match["spell"].strip(),
            )
        for pattern, event_type, amount_field in self._kinds:
            if not (match := pattern.match(text)):
                continue
            amount = match["amount"]
            target = match["target"]
            event = NormalizedEvent(
                timestamp=self._timestamp(match["time"]),
                event_type=event_type,
                raw_event=event_type.value,
                source_name=match["source"].strip(),
                target_name=target.strip() if target else None,
                spell_name=match["spell"].strip(),
            )
            if amount is not None:
                setattr(event, amount_field, int(amount))
            return event
        # sem HEAL:/DAMAGE: reconhecido a linha e descartada
        return None

    def decode(self, lines: Iterable[str], state: ParserState | None = None) -> Iterator[NormalizedEvent]:
        self.state = state or ParserState()
        return parse_events(iter_records(lines), self.parse_line, self.state)
