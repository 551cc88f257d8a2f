"""
Ingestao de combat logs -> partidas de arena persistidas.

Este modulo e o "maestro": escolhe o decodificador, passa os eventos
pela maquina de segmentacao, finaliza cada sessao (modo de jogo, hash,
resultados e entradas) e grava no store. Tambem traz a CLI em lote que
processa a pasta de entrada e escreve um resumo NDJSON por partida.
"""

import logging
import os
import re
import sys
import threading
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import orjson
from rich import box
from rich.console import Console
from rich.table import Table
from rich.theme import Theme
from tqdm import tqdm  # type: ignore[import-untyped]

from arena_logs.config import DEFAULT_MAX_UPLOAD_BYTES, Config, load_config_from_env
from arena_logs.dispatcher import DECODERS, detect_file_encoding, resolve_format
from arena_logs.enrichment import BlizzardProfileClient, CharacterLookup, MemoizedLookup
from arena_logs.events import LogFormat, NormalizedEvent, ParserState
from arena_logs.fingerprint import compute_unique_hash, lua_arena_match_id
from arena_logs.models import CombatLogEntry, Match, MatchResult
from arena_logs.parser_lua_table import LuaPlayerData, LuaTableParser
from arena_logs.player_attributes import determine_spec
from arena_logs.players import DEFAULT_REGION, PlayerResolver, apply_spells, fill_empty
from arena_logs.segmentation import MatchIngestionContext, SegmentationStateMachine
from arena_logs.store import DuplicateMatchError, MatchStore, SqlAlchemyStore, StoreError
from arena_logs.zones import (
    UNKNOWN_ARENA_NAME,
    ArenaZone,
    arena_name,
    arena_zone_from_name,
    game_mode_from_declared,
    game_mode_from_participants,
)

logger = logging.getLogger("arena_logs.ingest_logs")  # console/geral
file_logger = logging.getLogger("arena_logs.file")  # resultado por arquivo
LOG_FILE_NAME = "ingest_logs.log"
SUMMARY_FILE_NAME = "matches.ndjson"
JSON_WRITE_BUFFER_BYTES: int = 2 * 1024 * 1024
INPUT_PATTERNS = ("*.txt", "*.lua")
CONSOLE_THEME = Theme(
    {
        "created": "bold yellow",
        "exists": "bold green",
        "error": "bold red",
    }
)

_RE_DATE_IN_NAME = re.compile(r"(?P<year>\d{4})-?(?P<month>\d{2})-?(?P<day>\d{2})")


def configure_stdout() -> None:
    if str(getattr(sys.stdout, "encoding", "")).lower() != "utf-8" and hasattr(
        sys.stdout, "reconfigure"
    ):
        try:
            sys.stdout.reconfigure(encoding="utf-8")
        except AttributeError:
            logger.warning("Nao foi possivel reconfigurar stdout para utf-8")


def configure_logging(log_dir: Path, *, for_worker: bool = False) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_level = os.getenv("ARENA_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, log_level, logging.WARNING)
    fmt = "%(asctime)s %(levelname)s [%(process)d] %(name)s: %(message)s"
    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        mode="a" if for_worker else "w",
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
        delay=True,
    )
    file_handler.setLevel(logging.ERROR)
    handlers: list[logging.Handler] = [file_handler]
    if not for_worker:
        handlers.append(logging.StreamHandler(sys.stdout))
    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)
    logger.setLevel(level)


def _input_size(source: str | bytes | Iterable[str]) -> int | None:
    if isinstance(source, bytes):
        return len(source)
    if isinstance(source, str):
        return len(source.encode("utf-8"))
    return None


class CombatLogIngestionService:
    """Ponto de entrada: um log (ou export Lua) -> lista de partidas gravadas."""

    def __init__(
        self,
        store: MatchStore,
        lookup: CharacterLookup | None = None,
        *,
        default_region: str = DEFAULT_REGION,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self.store = store
        self.lookup = lookup
        self.default_region = default_region
        self.max_upload_bytes = max_upload_bytes

    def ingest(
        self,
        source: str | bytes | Iterable[str],
        log_format: LogFormat | str | None = None,
        *,
        reference_date: date | datetime | None = None,
        cancel: threading.Event | None = None,
        source_name: str = "<upload>",
    ) -> list[Match]:
        size = _input_size(source)
        if size is not None and size > self.max_upload_bytes:
            raise ValueError(
                f"Input too large: {size} bytes (limit {self.max_upload_bytes})"
            )
        fmt, lines = resolve_format(source, log_format)
        state = ParserState(source=source_name)
        resolver = PlayerResolver(self.store)
        logger.info("Ingestao iniciada: %s (formato %s)", source_name, fmt)

        if fmt is LogFormat.LUA_TABLE:
            matches = self._ingest_lua(lines, resolver, state, cancel)
        else:
            events = DECODERS[fmt](lines, reference_date, state)
            matches = self._ingest_events(events, resolver, cancel)

        if cancel is not None and cancel.is_set():
            logger.info(
                "Ingestao cancelada: %s | partidas gravadas=%s", source_name, len(matches)
            )
            return matches
        self._enrich_players(resolver)
        logger.info(
            "Ingestao concluida: %s | partidas=%s | eventos=%s | linhas ignoradas=%s",
            source_name,
            len(matches),
            state.events,
            state.malformed_lines,
        )
        return matches

    def _ingest_events(
        self,
        events: Iterable[NormalizedEvent],
        resolver: PlayerResolver,
        cancel: threading.Event | None,
    ) -> list[Match]:
        machine = SegmentationStateMachine(resolver.resolve_name)
        committed: list[Match] = []
        for event in events:
            if cancel is not None and cancel.is_set():
                # sessao em andamento e descartada
                return committed
            if (ctx := machine.feed(event)) is not None:
                committed.append(self.finalize(ctx, resolver))
        if cancel is not None and cancel.is_set():
            return committed
        if (ctx := machine.finish()) is not None:
            committed.append(self.finalize(ctx, resolver))
        return committed

    def _ingest_lua(
        self,
        lines: Iterable[str],
        resolver: PlayerResolver,
        state: ParserState,
        cancel: threading.Event | None,
    ) -> list[Match]:
        parser = LuaTableParser()
        lua_matches = parser.parse("".join(lines), state)
        machine = SegmentationStateMachine(resolver.resolve_name)
        committed: list[Match] = []
        for lua_match in lua_matches:
            if cancel is not None and cancel.is_set():
                return committed
            try:
                start, end = lua_match.bounds()
            except ValueError as exc:
                logger.warning(
                    "Partida Lua ignorada: horario invalido (%s) | zona=%s", exc, lua_match.zone
                )
                continue
            zone = arena_zone_from_name(lua_match.zone)
            map_name = (
                arena_name(zone)
                if zone is not ArenaZone.UNKNOWN
                else lua_match.zone or UNKNOWN_ARENA_NAME
            )
            machine.open_session(
                zone,
                start,
                map_name,
                declared_mode=game_mode_from_declared(lua_match.mode),
                arena_match_id=lua_arena_match_id(lua_match.zone, start, end, lua_match.mode),
            )
            for event in parser.match_events(lua_match, start):
                if cancel is not None and cancel.is_set():
                    return committed
                machine.feed(event)
            if (ctx := machine.close_session(end)) is not None:
                committed.append(self.finalize(ctx, resolver))
        self._apply_root_players(parser.root_players, resolver)
        return committed

    def _apply_root_players(
        self, root_players: list[LuaPlayerData], resolver: PlayerResolver
    ) -> None:
        """Completa classe/faccao com a tabela de jogadores do export."""
        for data in root_players:
            if not data.name:
                continue
            player = resolver.get(data.name) or self.store.find_player_by_name(data.name)
            if player is None:
                continue
            if fill_empty(
                player,
                realm=data.realm,
                player_class=data.class_name or data.class_id,
                faction=data.faction,
            ):
                self.store.update_player(player)
                logger.debug("Jogador %s completado pelo export Lua", player.name)

    def finalize(self, ctx: MatchIngestionContext, resolver: PlayerResolver) -> Match:
        """Converte o contexto em Match/MatchResult/CombatLogEntry e grava."""
        game_mode = ctx.declared_mode or game_mode_from_participants(
            len(ctx.participants), ctx.mode_hint
        )
        duration = (
            int((ctx.end - ctx.start).total_seconds())
            if ctx.start is not None and ctx.end is not None
            else 0
        )
        unique_hash = compute_unique_hash(ctx.participants, ctx.start, ctx.end)
        match = Match(
            unique_hash=unique_hash,
            created_on=ctx.start or datetime.now(),
            map_name=ctx.map_name,
            arena_zone=ctx.arena_zone,
            arena_match_id=ctx.arena_match_id,
            game_mode=game_mode,
            duration=duration,
            is_ranked=True,
        )

        for name, spells in sorted(ctx.player_spells.items()):
            player = resolver.get(name)
            if player is not None and apply_spells(player, spells):
                self.store.update_player(player)

        entries = []
        for draft in ctx.entries:
            source = resolver.get(draft.source)
            if source is None:
                continue
            target = resolver.get(draft.target) if draft.target else None
            entries.append(
                CombatLogEntry(
                    timestamp=draft.timestamp,
                    source_player_id=source.id,
                    target_player_id=target.id if target is not None else None,
                    ability=draft.ability,
                    damage_done=draft.damage,
                    healing_done=draft.healing,
                    crowd_control=draft.crowd_control,
                )
            )
        results = []
        for name in sorted(ctx.participants):
            player = resolver.get(name)
            if player is None:
                continue
            results.append(
                MatchResult(
                    player_id=player.id,
                    team="Unknown",
                    rating_before=0,
                    rating_after=0,
                    is_winner=False,
                    spec=determine_spec(ctx.player_spells.get(name, ())) or "",
                )
            )

        try:
            match = self.store.persist_match(match, entries, results)
        except DuplicateMatchError:
            existing = self.store.find_match_by_hash(unique_hash)
            if existing is None:
                raise StoreError(
                    f"Match {unique_hash} reported as duplicate but not found"
                ) from None
            logger.info("Partida %s ja ingerida (id=%s); reaproveitando", unique_hash, existing.id)
            return existing
        logger.info(
            "Partida %s gravada: %s, %s, %s participante(s), %s entrada(s)",
            match.id,
            match.map_name,
            match.game_mode,
            len(ctx.participants),
            len(entries),
        )
        return match

    def _enrich_players(self, resolver: PlayerResolver) -> None:
        if self.lookup is None:
            return
        lookup = MemoizedLookup(self.lookup)
        for player in resolver.players():
            if (player.player_class and player.faction) or not player.realm:
                continue
            region = resolver.region_for(player.name, self.default_region)
            try:
                profile = lookup.lookup(player.realm, player.name, region)
            except Exception:  # consulta externa nunca derruba a ingestao
                logger.warning("Falha ao enriquecer %s-%s", player.name, player.realm, exc_info=True)
                continue
            if profile is None:
                continue
            if fill_empty(player, player_class=profile.class_name, faction=profile.faction):
                self.store.update_player(player)
                logger.debug(
                    "Jogador %s enriquecido: classe=%s faccao=%s",
                    player.name,
                    player.player_class,
                    player.faction,
                )


# -------------------- Pipeline em lote --------------------


def match_summary(match: Match, source: str) -> dict[str, Any]:
    return {
        "id": match.id,
        "source": source,
        "unique_hash": match.unique_hash,
        "created_on": match.created_on,
        "map_name": match.map_name,
        "arena_zone": ArenaZone(match.arena_zone).name,
        "arena_match_id": match.arena_match_id,
        "game_mode": str(match.game_mode),
        "duration": match.duration,
        "is_ranked": match.is_ranked,
    }


def _extract_reference_date(file_path: Path) -> date:
    """Data (AAAA-MM-DD ou AAAAMMDD) no nome do arquivo; senao, a do mtime."""
    if match := _RE_DATE_IN_NAME.search(file_path.stem):
        try:
            return date(int(match["year"]), int(match["month"]), int(match["day"]))
        except ValueError:
            pass
    return datetime.fromtimestamp(file_path.stat().st_mtime).date()


def process_single_file(
    service: CombatLogIngestionService, file_path: Path, log_format: LogFormat | None
) -> tuple[list[dict[str, Any]], list[str]]:
    try:
        if file_path.stat().st_size > service.max_upload_bytes:
            raise ValueError(
                f"File too large: {file_path.stat().st_size} bytes (limit {service.max_upload_bytes})"
            )
        encoding = detect_file_encoding(file_path)
        with file_path.open("r", encoding=encoding, errors="replace") as handle:
            matches = service.ingest(
                handle,
                log_format,
                reference_date=_extract_reference_date(file_path),
                source_name=file_path.name,
            )
    except (OSError, ValueError) as exc:
        err_type = exc.__class__.__name__
        msg = f"Erro ao ingerir {file_path.name} [{err_type}]: {exc}"
        logger.exception("%s", msg)
        file_logger.exception("%s", msg)
        return [], [msg]
    except StoreError as exc:
        msg = f"Falha no banco ao ingerir {file_path.name}: {exc}"
        logger.exception("%s", msg)
        file_logger.exception("%s", msg)
        return [], [msg]
    file_logger.info("%s: %s partida(s)", file_path.name, len(matches))
    return [match_summary(m, file_path.name) for m in matches], []


def _log_aggregated_errors(errors: dict[str, int]) -> None:
    for msg, count in errors.items():
        if count > 1:
            logger.error("%s (repetido %s vezes)", msg, count)
        else:
            logger.error("%s", msg)


def _write_summaries(summaries: list[dict[str, Any]], output_dir: Path) -> Path:
    dst = output_dir / SUMMARY_FILE_NAME
    tmp_dst = dst.with_suffix(dst.suffix + ".part")
    with tmp_dst.open("wb", buffering=JSON_WRITE_BUFFER_BYTES) as handle:
        for summary in summaries:
            handle.write(orjson.dumps(summary))
            handle.write(b"\n")
    tmp_dst.replace(dst)
    return dst


def process_files(
    files: list[Path],
    service: CombatLogIngestionService,
    output_dir: Path,
    *,
    log_format: LogFormat | None = None,
    max_workers: int | None = None,
    max_files: int | None = None,
) -> list[dict[str, Any]]:
    if max_files is not None and max_files > 0:
        files = sorted(files, key=lambda p: p.stat().st_size)[:max_files]
    if not files:
        logger.info("Nenhum arquivo para ingerir.")
        return []

    summaries: list[dict[str, Any]] = []
    aggregated_errors: dict[str, int] = defaultdict(int)

    def _run(path: Path) -> tuple[list[dict[str, Any]], list[str]]:
        return process_single_file(service, path, log_format)

    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(
                tqdm(executor.map(_run, files), total=len(files), desc="Ingerindo logs")
            )
    else:
        outcomes = [_run(path) for path in tqdm(files, desc="Ingerindo logs")]

    for file_summaries, errors in outcomes:
        summaries.extend(file_summaries)
        for msg in errors:
            aggregated_errors[msg] += 1

    dst = _write_summaries(summaries, output_dir)
    logger.info(
        "Arquivos processados: %s; partidas: %s; resumo em %s", len(files), len(summaries), dst
    )
    if aggregated_errors:
        _log_aggregated_errors(aggregated_errors)
    return summaries


def check_and_create_directories(input_dir: Path, output_dir: Path) -> None:
    console = Console(theme=CONSOLE_THEME)
    table = Table(
        title="Directory Check Results",
        box=box.ASCII,
        show_header=True,
        header_style="yellow3",
    )
    table.add_column("Directory", justify="center")
    table.add_column("Path")
    table.add_column("Message", justify="center")

    for name, path in [("Input", input_dir), ("Output", output_dir)]:
        if path.exists():
            status, style = "Folder Exists", "exists"
        else:
            try:
                path.mkdir(parents=True)
                status, style = "Created", "created"
            except OSError as e:
                status, style = f"Error: {e}", "error"
                logger.error("Nao foi possivel criar %s: %s", path, e)
        logger.info("%s directory: %s (%s)", name, path, status)
        table.add_row(name, str(path), f"[{style}]{status}[/{style}]")

    console.print(table)


def print_summary_table(summaries: list[dict[str, Any]]) -> None:
    """Uma linha por partida gravada (arquivo, arena, modo, duracao)."""
    if not summaries:
        return
    table = Table(title="Partidas ingeridas", box=box.ASCII, header_style="yellow3")
    for column in ("Arquivo", "Arena", "Modo", "Duracao (s)", "Inicio"):
        table.add_column(column, justify="center")
    for summary in summaries:
        table.add_row(
            summary["source"],
            summary["map_name"],
            summary["game_mode"],
            str(summary["duration"]),
            f"{summary['created_on']:%Y-%m-%d %H:%M:%S}",
        )
    Console(theme=CONSOLE_THEME).print(table)


def build_service(cfg: Config) -> CombatLogIngestionService:
    store = SqlAlchemyStore.from_url(cfg.database_url)
    lookup = (
        BlizzardProfileClient(
            cfg.wow_client_id, cfg.wow_client_secret, timeout=cfg.request_timeout
        )
        if cfg.enrichment_enabled
        else None
    )
    return CombatLogIngestionService(
        store,
        lookup,
        default_region=cfg.region,
        max_upload_bytes=cfg.max_upload_bytes,
    )


def main() -> None:
    configure_stdout()
    cfg = load_config_from_env()
    configure_logging(cfg.output_dir)
    check_and_create_directories(cfg.input_dir, cfg.output_dir)
    max_files = (
        int(sys.argv[1][1:])
        if len(sys.argv) > 1
        and sys.argv[1].startswith("-")
        and sys.argv[1][1:].isdigit()
        else None
    )
    files = sorted({p for pattern in INPUT_PATTERNS for p in cfg.input_dir.glob(pattern)})
    summaries = process_files(
        files,
        build_service(cfg),
        cfg.output_dir,
        log_format=cfg.log_format,
        max_workers=cfg.max_workers,
        max_files=max_files,
    )
    print_summary_table(summaries)
    logger.info("Ingestao concluida com sucesso.")


if __name__ == "__main__":
    main()
