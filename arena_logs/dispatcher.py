"""
Seleciona o decodificador pelo formato declarado (ou detectado) e expoe
um unico contrato: texto -> sequencia ordenada de NormalizedEvent.
"""

import codecs
import itertools
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from datetime import date, datetime
from pathlib import Path

import chardet

from arena_logs.events import LogFormat, NormalizedEvent, ParserState
from arena_logs.parser_lua_table import RE_LUA_OPENING, LuaTableParser
from arena_logs.parser_simplified import RE_SIMPLIFIED_PREFIX, SimplifiedLogParser
from arena_logs.parser_traditional import TraditionalLogParser

logger = logging.getLogger("arena_logs.dispatcher")

RE_TRADITIONAL_PREFIX = re.compile(
    r"^\s*\d{1,2}/\d{1,2}(?:/\d{2,4})?\s+\d{1,2}:\d{2}:\d{2}(?:\.\d+)?"
    r"(?:[+-]\d{1,2}(?::?\d{2})?)?  \S"
)
_DETECTION_SCAN_LINES = 200

Decoder = Callable[[Iterable[str], date | datetime | None, ParserState], Iterator[NormalizedEvent]]


def read_text(data: bytes) -> str:
    """Decodifica bytes; fora de UTF-8 usa o encoding sugerido pelo chardet."""
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        encoding = chardet.detect(data)["encoding"] or "latin-1"
        logger.info("Entrada fora de UTF-8; decodificando como %s", encoding)
        return data.decode(encoding, errors="replace")


def detect_file_encoding(path: Path, sample_bytes: int = 64 * 1024) -> str:
    """Encoding para ler o arquivo em streaming, decidido por uma amostra."""
    with path.open("rb") as handle:
        sample = handle.read(sample_bytes)
    if sample.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as exc:
        # amostra cortada no meio de um caractere multibyte ainda e UTF-8
        if exc.start < len(sample) - 3:
            return chardet.detect(sample)["encoding"] or "latin-1"
    return "utf-8"


def classify_line(line: str) -> LogFormat | None:
    text = line.strip()
    if not text or text.startswith("#"):
        return None
    if RE_LUA_OPENING.match(text):
        return LogFormat.LUA_TABLE
    if RE_SIMPLIFIED_PREFIX.match(text):
        return LogFormat.SIMPLIFIED
    if RE_TRADITIONAL_PREFIX.match(line):
        return LogFormat.TRADITIONAL
    return None


def detect_format(lines: Iterable[str]) -> LogFormat:
    """Formato da primeira linha reconhecivel; sem nenhuma, tradicional."""
    for line in itertools.islice(lines, _DETECTION_SCAN_LINES):
        if fmt := classify_line(line):
            return fmt
    return LogFormat.TRADITIONAL


def _decode_traditional(
    lines: Iterable[str], reference_date: date | datetime | None, state: ParserState
) -> Iterator[NormalizedEvent]:
    reference = (
        datetime.combine(reference_date, datetime.min.time())
        if isinstance(reference_date, date) and not isinstance(reference_date, datetime)
        else reference_date
    )
    return TraditionalLogParser(reference).decode(lines, state)


def _decode_simplified(
    lines: Iterable[str], reference_date: date | datetime | None, state: ParserState
) -> Iterator[NormalizedEvent]:
    if reference_date is None:
        reference_date = date.today()
        logger.warning(
            "Formato simplificado sem data de referencia; usando %s | origem=%s",
            reference_date,
            state.source,
        )
    return SimplifiedLogParser(reference_date).decode(lines, state)


def _decode_lua_table(
    lines: Iterable[str], reference_date: date | datetime | None, state: ParserState
) -> Iterator[NormalizedEvent]:
    parser = LuaTableParser()
    for match in parser.parse("".join(lines), state):
        try:
            start, _end = match.bounds()
        except ValueError as exc:
            logger.warning("Partida Lua sem horario valido (%s); ignorando", exc)
            continue
        yield from parser.match_events(match, start)


DECODERS: dict[LogFormat, Decoder] = {
    LogFormat.TRADITIONAL: _decode_traditional,
    LogFormat.SIMPLIFIED: _decode_simplified,
    LogFormat.LUA_TABLE: _decode_lua_table,
}


def _as_lines(source: str | bytes | Iterable[str]) -> Iterator[str]:
    if isinstance(source, bytes):
        source = read_text(source)
    if isinstance(source, str):
        return iter(source.splitlines(keepends=True))
    return iter(source)


def resolve_format(
    source: str | bytes | Iterable[str], log_format: LogFormat | str | None = None
) -> tuple[LogFormat, Iterator[str]]:
    """Devolve (formato, linhas) sem perder as linhas lidas na deteccao."""
    lines = _as_lines(source)
    fmt = LogFormat.parse(log_format) if isinstance(log_format, str) else log_format
    if fmt is not None:
        return fmt, lines
    head = list(itertools.islice(lines, _DETECTION_SCAN_LINES))
    fmt = detect_format(head)
    logger.debug("Formato detectado: %s", fmt)
    return fmt, itertools.chain(head, lines)


def decode_stream(
    source: str | bytes | Iterable[str],
    log_format: LogFormat | str | None = None,
    *,
    reference_date: date | datetime | None = None,
    state: ParserState | None = None,
) -> Iterator[NormalizedEvent]:
    """Texto, bytes ou linhas -> eventos normalizados; linhas invalidas somem."""
    fmt, lines = resolve_format(source, log_format)
    return DECODERS[fmt](lines, reference_date, state or ParserState())
