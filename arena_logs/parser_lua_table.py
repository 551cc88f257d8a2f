"""
Decodificador do export em tabela Lua (SavedVariables do addon).

    PvPAnalyticsDB = {
        ["players"] = { ["Player-1-ABC"] = { ["name"] = "...", ["faction"] = "Horde" } },
        ["matches"] = {
            { ["players"] = {...}, ["events"] = { {...}, ... }, ["metadata"] = {...} },
        },
    }

O formato antigo troca "events"/"metadata" por ["Logs"] (linhas
'HH:MM:SS - ...' em lista ou num unico texto) e campos StartTime,
EndTime, Zone, Faction e Mode.

A tabela de partidas e fatiada com um rastreador de profundidade de
chaves (ciente de aspas e escapes); cada partida e entao lida por um
leitor com pilha explicita. Partida truncada ou malformada e descartada
sem afetar as anteriores.
"""

import logging
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from arena_logs.events import EventType, NormalizedEvent, ParserState
from arena_logs.parser_simplified import SimplifiedLogParser, parse_time_of_day

logger = logging.getLogger("arena_logs.parser_lua_table")

LuaValue = str | int | float | bool | None | list[Any] | dict[Any, Any]

_RE_MATCHES_KEY = re.compile(r"""\[\s*["']matches["']\s*\]\s*=\s*\{""")
_RE_PLAYERS_KEY = re.compile(r"""\[\s*["']players["']\s*\]\s*=\s*\{""")
_RE_ROOT_ASSIGN = re.compile(r"^\s*[A-Za-z_]\w*\s*=\s*\{", re.MULTILINE)
RE_LUA_OPENING = re.compile(r"^\s*(?:[A-Za-z_]\w*\s*=\s*)?\{")
_RE_DECIMAL_ESCAPE = re.compile(r"\d{1,3}")
_RE_NAME = re.compile(r"[A-Za-z_]\w*")
_RE_NUMBER = re.compile(r"-?(?:0[xX][0-9a-fA-F]+|\d+\.?\d*(?:[eE][-+]?\d+)?|\.\d+)")
_LUA_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "a": "\a", "b": "\b", "f": "\f", "v": "\v"}
_LUA_EVENT_TYPES = {
    "HEAL": EventType.SPELL_HEAL,
    "DAMAGE": EventType.SPELL_DAMAGE,
    "ABSORB": EventType.SPELL_ABSORBED,
}
_AMOUNT_FIELDS = {
    EventType.SWING_DAMAGE: "damage",
    EventType.SPELL_DAMAGE: "damage",
    EventType.RANGE_DAMAGE: "damage",
    EventType.SPELL_HEAL: "healing",
    EventType.SPELL_PERIODIC_HEAL: "healing",
    EventType.SPELL_ABSORBED: "absorbed",
}


class LuaSyntaxError(ValueError):
    pass


@dataclass(slots=True)
class LuaPlayerData:
    player_guid: str
    name: str | None = None
    realm: str | None = None
    class_id: str | None = None
    class_name: str | None = None
    spec_id: int | None = None
    faction: str | None = None
    kd_ratio: float | None = None
    losses: int | None = None
    wins: int | None = None
    matches_played: int | None = None
    total_damage: int | None = None
    total_healing: int | None = None
    interrupts_per_match: float | None = None


@dataclass(slots=True)
class LuaMatchData:
    logs: list[str] = field(default_factory=list)
    start_time: str | None = None
    end_time: str | None = None
    zone: str | None = None
    faction: str | None = None
    mode: str | None = None
    duration: float | None = None
    player_ids: list[str] = field(default_factory=list)
    raw_events: list[dict[str, Any]] = field(default_factory=list)

    def bounds(self) -> tuple[datetime, datetime]:
        """(inicio, fim) da partida; ValueError se o inicio nao for legivel."""
        start = parse_lua_datetime(self.start_time)
        if self.end_time:
            return start, parse_lua_datetime(self.end_time)
        if self.duration is not None:
            return start, start + timedelta(seconds=self.duration)
        raise ValueError(f"Match without end time: {self.start_time}")


def parse_lua_datetime(text: str | None) -> datetime:
    if not text or not text.strip():
        raise ValueError("Empty Lua timestamp")
    value = text.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return _naive_utc(datetime.fromisoformat(value))


def _naive_utc(value: datetime) -> datetime:
    """Horario com fuso vira UTC sem tzinfo, comparavel aos demais."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def unescape_lua_string(text: str) -> str:
    """Resolve escapes de string Lua (\\", \\\\, \\n, \\t, \\ddd...)."""
    out: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 >= len(text):
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if digits := _RE_DECIMAL_ESCAPE.match(text, i + 1):
            out.append(chr(int(digits.group(0))))
            i = digits.end()
            continue
        out.append(_LUA_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _skip_comment(text: str, i: int) -> int:
    """Se houver '--' em i, devolve a posicao apos o comentario."""
    if not text.startswith("--", i):
        return i
    if text.startswith("--[[", i):
        end = text.find("]]", i + 4)
        return len(text) if end == -1 else end + 2
    end = text.find("\n", i)
    return len(text) if end == -1 else end + 1


def _balanced_end(text: str, open_pos: int) -> int | None:
    """Indice logo apos o '}' que fecha o '{' em open_pos (None se truncado)."""
    depth = 0
    quote: str | None = None
    i = open_pos
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == "-" and text.startswith("--", i):
            i = _skip_comment(text, i)
            continue
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def iter_table_elements(text: str, open_pos: int) -> Iterator[tuple[int, int | None]]:
    """Fatia os sub-tabelas de profundidade 1 da tabela que abre em open_pos.

    Gera (inicio, fim); fim None indica sub-tabela truncada no fim do texto.
    """
    depth = 0
    quote: str | None = None
    start: int | None = None
    i = open_pos
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == "-" and text.startswith("--", i):
            i = _skip_comment(text, i)
            continue
        elif ch == "{":
            depth += 1
            if depth == 2:
                start = i
        elif ch == "}":
            depth -= 1
            if depth == 1 and start is not None:
                yield start, i + 1
                start = None
            elif depth == 0:
                return
        i += 1
    if start is not None:
        yield start, None


_POSITIONAL = object()


@dataclass(slots=True)
class _TableFrame:
    keyed: dict[Any, Any] = field(default_factory=dict)
    positional: list[Any] = field(default_factory=list)
    key: Any = _POSITIONAL

    def store(self, value: Any) -> None:
        if self.key is _POSITIONAL:
            self.positional.append(value)
        else:
            self.keyed[self.key] = value

    def build(self) -> LuaValue:
        if not self.keyed:
            return self.positional
        for idx, value in enumerate(self.positional, start=1):
            self.keyed.setdefault(idx, value)
        return self.keyed


class _LuaReader:
    """Leitor de um literal de tabela Lua (escalares e tabelas aninhadas)."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _error(self, msg: str) -> LuaSyntaxError:
        return LuaSyntaxError(f"{msg} (pos {self.pos})")

    def _skip_ws(self) -> None:
        while self.pos < len(self.text):
            if self.text[self.pos].isspace():
                self.pos += 1
            elif self.text.startswith("--", self.pos):
                self.pos = _skip_comment(self.text, self.pos)
            else:
                return

    def _peek(self) -> str:
        self._skip_ws()
        if self.pos >= len(self.text):
            raise self._error("Unexpected end of table")
        return self.text[self.pos]

    def _expect(self, ch: str) -> None:
        if self._peek() != ch:
            raise self._error(f"Expected {ch!r}")
        self.pos += 1

    def parse_document(self) -> LuaValue:
        value = self.parse_value()
        self._skip_ws()
        if self.pos != len(self.text):
            raise self._error("Trailing content after table")
        return value

    def parse_value(self) -> LuaValue:
        if self._peek() == "{":
            return self._parse_table()
        return self._parse_scalar()

    def _parse_scalar(self) -> LuaValue:
        ch = self._peek()
        if ch in ('"', "'"):
            return self._parse_string()
        if ch == "[" and self.text.startswith("[[", self.pos):
            return self._parse_long_string()
        if ch.isdigit() or ch in "-.":
            return self._parse_number()
        if ch.isalpha() or ch == "_":
            word = self._parse_name()
            match word:
                case "true":
                    return True
                case "false":
                    return False
                case "nil":
                    return None
            raise self._error(f"Unexpected identifier {word!r}")
        raise self._error(f"Unexpected character {ch!r}")

    def _parse_name(self) -> str:
        m = _RE_NAME.match(self.text, self.pos)
        if not m:
            raise self._error("Expected name")
        self.pos = m.end()
        return m.group(0)

    def _parse_string(self) -> str:
        quote = self.text[self.pos]
        i = self.pos + 1
        while i < len(self.text):
            ch = self.text[i]
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                raw = self.text[self.pos + 1:i]
                self.pos = i + 1
                return unescape_lua_string(raw)
            if ch == "\n":
                break
            i += 1
        raise self._error("Unterminated string")

    def _parse_long_string(self) -> str:
        end = self.text.find("]]", self.pos + 2)
        if end == -1:
            raise self._error("Unterminated long string")
        value = self.text[self.pos + 2:end]
        self.pos = end + 2
        return value.removeprefix("\n")

    def _parse_number(self) -> int | float:
        m = _RE_NUMBER.match(self.text, self.pos)
        if not m:
            raise self._error("Malformed number")
        self.pos = m.end()
        token = m.group(0)
        if token.lower().lstrip("-").startswith("0x"):
            return int(token, 16)
        if any(c in token for c in ".eE"):
            return float(token)
        return int(token)

    def _parse_table(self) -> LuaValue:
        """Tabelas aninhadas ficam numa pilha explicita, sem limite de profundidade."""
        self._expect("{")
        stack = [_TableFrame()]
        while True:
            frame = stack[-1]
            if self._peek() == "}":
                self.pos += 1
                value = stack.pop().build()
                if not stack:
                    return value
                stack[-1].store(value)
                self._end_field()
                continue
            frame.key = self._parse_field_key()
            if self._peek() == "{":
                self.pos += 1
                stack.append(_TableFrame())
                continue
            frame.store(self._parse_scalar())
            self._end_field()

    def _parse_field_key(self) -> Any:
        ch = self._peek()
        if ch == "[" and not self.text.startswith("[[", self.pos):
            self.pos += 1
            if self._peek() == "{":
                raise self._error("Unhashable table key")
            key = self._parse_scalar()
            self._expect("]")
            self._expect("=")
            return key
        if ch.isalpha() or ch == "_":
            saved = self.pos
            name = self._parse_name()
            if self._peek() == "=":
                self.pos += 1
                return name
            self.pos = saved
        return _POSITIONAL

    def _end_field(self) -> None:
        sep = self._peek()
        if sep in ",;":
            self.pos += 1
        elif sep != "}":
            raise self._error("Expected ',' or '}'")


def parse_lua_literal(text: str) -> LuaValue:
    return _LuaReader(text).parse_document()


def _as_list(value: LuaValue) -> list[Any]:
    """Tabela Lua em lista: listas passam direto; dicts ordenados por chave."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        numeric = sorted(k for k in value if isinstance(k, int))
        others = [k for k in value if not isinstance(k, int)]
        return [value[k] for k in numeric] + [value[k] for k in others]
    return []


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (list, dict)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _number(value: Any, typ: type = int) -> Any:
    try:
        return typ(float(value)) if typ is int else typ(value)
    except (TypeError, ValueError, OverflowError):
        return None


def format_event_time(value: Any) -> str:
    """Epoch (segundos) -> 'HH:MM:SS' em UTC; outro texto passa direto."""
    if value is None:
        return "00:00:00"
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return _text(value) or "00:00:00"
    try:
        dt = datetime.fromtimestamp(math.floor(seconds), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return f"{seconds:.0f}"
    return dt.strftime("%H:%M:%S")


def event_timestamp(value: Any, start: datetime) -> datetime:
    """Epoch vira o instante UTC; texto 'HH:MM:SS' fica na data de inicio."""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        try:
            return datetime.combine(start.date(), parse_time_of_day(_text(value) or ""))
        except ValueError:
            return start
    try:
        return _naive_utc(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return start


def render_event_line(fields: dict[str, Any]) -> str:
    """Linha 'HH:MM:SS - TIPO: spell from origem[ to destino]' de um evento."""
    time_text = format_event_time(fields.get("time"))
    kind = _text(fields.get("type")) or _text(fields.get("action")) or "EVENT"
    spell = _text(fields.get("spellname")) or "Unknown"
    source = _text(fields.get("source")) or _text(fields.get("sourceguid")) or "Unknown"
    line = f"{time_text} - {kind.upper()}: {spell} from {source}"
    if dest := _text(fields.get("dest")):
        line += f" to {dest}"
    return line


def _player_from_fields(guid: str, fields: dict[str, Any]) -> LuaPlayerData:
    data = {str(k).lower(): v for k, v in fields.items()}
    return LuaPlayerData(
        player_guid=guid,
        name=_text(data.get("name")),
        realm=_text(data.get("realm")),
        class_id=_text(data.get("classid")),
        class_name=_text(data.get("class")),
        spec_id=_number(data.get("specid")),
        faction=_text(data.get("faction")),
        kd_ratio=_number(data.get("kdratio"), float),
        losses=_number(data.get("losses")),
        wins=_number(data.get("wins")),
        matches_played=_number(data.get("matchesplayed")),
        total_damage=_number(data.get("totaldamage")),
        total_healing=_number(data.get("totalhealing")),
        interrupts_per_match=_number(data.get("interruptspermatch"), float),
    )


class LuaTableParser:
    """Le o export inteiro e devolve uma LuaMatchData por partida valida."""

    def __init__(self) -> None:
        self.state: ParserState | None = None
        self.skipped_matches = 0
        self.root_players: list[LuaPlayerData] = []

    def parse(self, content: str, state: ParserState | None = None) -> list[LuaMatchData]:
        self.state = state or ParserState()
        self.skipped_matches = 0
        if matches_key := _RE_MATCHES_KEY.search(content):
            self.root_players = self._parse_root_players(content[: matches_key.start()])
            open_pos = matches_key.end() - 1
        else:
            self.root_players = []
            root = _RE_ROOT_ASSIGN.search(content)
            open_pos = root.end() - 1 if root else content.find("{")
            if open_pos < 0:
                logger.warning("Export Lua sem tabela raiz: %s", self.state.source)
                return []

        factions = {p.player_guid.lower(): p.faction for p in self.root_players if p.faction}
        matches: list[LuaMatchData] = []
        for idx, (start, end) in enumerate(iter_table_elements(content, open_pos), start=1):
            self.state.line_no = content.count("\n", 0, start) + 1
            if end is None:
                self._skip(idx, LuaSyntaxError("Truncated match table"))
                continue
            try:
                table = parse_lua_literal(content[start:end])
                match = self._build_match(table, factions)
            except LuaSyntaxError as exc:
                self._skip(idx, exc)
                continue
            if match is None or not match.logs:
                continue
            matches.append(match)
        return matches

    def _skip(self, idx: int, exc: Exception) -> None:
        self.skipped_matches += 1
        if self.state is not None:
            self.state.malformed_lines += 1
        logger.warning(
            "Partida Lua #%s ignorada (%s) | origem=%s | linha=%s",
            idx,
            exc,
            self.state.source if self.state else "<desconhecido>",
            self.state.line_no if self.state else "desconhecida",
        )

    def _parse_root_players(self, head: str) -> list[LuaPlayerData]:
        if not (key := _RE_PLAYERS_KEY.search(head)):
            return []
        open_pos = key.end() - 1
        end = _balanced_end(head, open_pos)
        if end is None:
            logger.warning("Tabela raiz de jogadores truncada; ignorando")
            return []
        try:
            table = parse_lua_literal(head[open_pos:end])
        except LuaSyntaxError as exc:
            logger.warning("Tabela raiz de jogadores malformada (%s); ignorando", exc)
            return []
        if not isinstance(table, dict):
            return []
        return [
            _player_from_fields(str(guid), fields)
            for guid, fields in table.items()
            if isinstance(fields, dict)
        ]

    def _build_match(
        self, table: LuaValue, factions: dict[str, str]
    ) -> LuaMatchData | None:
        if not isinstance(table, dict):
            return None
        keys = {str(k).lower(): k for k in table}
        if "logs" in keys:
            return self._build_legacy_match(table, keys)
        if "events" in keys or "metadata" in keys:
            return self._build_match_new(table, keys, factions)
        return None

    @staticmethod
    def _build_legacy_match(table: dict[Any, Any], keys: dict[str, Any]) -> LuaMatchData:
        raw_logs = table[keys["logs"]]
        lines: list[str] = []
        for item in _as_list(raw_logs) if not isinstance(raw_logs, str) else [raw_logs]:
            if isinstance(item, str):
                lines.extend(item.splitlines())

        def get(name: str) -> str | None:
            return _text(table.get(keys.get(name.lower())))

        return LuaMatchData(
            logs=[line.strip() for line in lines if " - " in line],
            start_time=get("StartTime"),
            end_time=get("EndTime"),
            zone=get("Zone"),
            faction=get("Faction"),
            mode=get("Mode"),
        )

    @staticmethod
    def _build_match_new(
        table: dict[Any, Any], keys: dict[str, Any], factions: dict[str, str]
    ) -> LuaMatchData:
        metadata = table.get(keys.get("metadata"), {})
        if not isinstance(metadata, dict):
            raise LuaSyntaxError("metadata is not a table")
        meta = {str(k).lower(): v for k, v in metadata.items()}

        match = LuaMatchData(
            start_time=_text(meta.get("date")),
            end_time=_text(meta.get("endtime")),
            zone=_text(meta.get("map")),
            mode=_text(meta.get("mode")),
            duration=_number(meta.get("duration"), float),
        )

        players = table.get(keys.get("players"), {})
        if isinstance(players, dict):
            for guid, attrs in players.items():
                if isinstance(guid, int):
                    guid = attrs
                    attrs = None
                if (guid_text := _text(guid)) is None:
                    continue
                match.player_ids.append(guid_text)
                if match.faction is None and isinstance(attrs, dict):
                    match.faction = _text({str(k).lower(): v for k, v in attrs.items()}.get("faction"))
        else:
            match.player_ids.extend(p for p in map(_text, _as_list(players)) if p)
        if match.faction is None:
            match.faction = next(
                (factions[pid.lower()] for pid in match.player_ids if pid.lower() in factions),
                None,
            )

        for event in _as_list(table.get(keys.get("events"), [])):
            if not isinstance(event, dict):
                continue
            fields = {str(k).lower(): v for k, v in event.items()}
            match.raw_events.append(fields)
            match.logs.append(render_event_line(fields))
        return match

    def match_events(self, match: LuaMatchData, start: datetime) -> Iterator[NormalizedEvent]:
        """Eventos normalizados da partida, ancorados na data de inicio."""
        if match.raw_events:
            for fields in match.raw_events:
                yield self._event_from_fields(fields, start)
            return
        yield from SimplifiedLogParser(start).decode(match.logs, self.state)

    @staticmethod
    def _event_from_fields(fields: dict[str, Any], start: datetime) -> NormalizedEvent:
        kind = (_text(fields.get("type")) or _text(fields.get("action")) or "EVENT").upper()
        event_type = _LUA_EVENT_TYPES.get(kind) or EventType.from_raw(kind)
        if event_type is EventType.ZONE_CHANGE:
            # troca de zona nao vem do addon; a partida ja delimita a sessao
            event_type = EventType.OTHER
        timestamp = start
        if (raw_time := fields.get("time")) is not None:
            timestamp = event_timestamp(raw_time, start)
        event = NormalizedEvent(
            timestamp=timestamp,
            event_type=event_type,
            raw_event=kind,
            source_name=_text(fields.get("source")),
            target_name=_text(fields.get("dest")),
            spell_id=_number(fields.get("spellid")),
            spell_name=_text(fields.get("spellname")),
        )
        if (amount_field := _AMOUNT_FIELDS.get(event_type)) and (
            amount := _number(fields.get("amount"))
        ) is not None:
            setattr(event, amount_field, amount)
        return event
