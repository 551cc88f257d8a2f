"""
Maquina de estados que recorta o fluxo de eventos em sessoes de arena.

Dois estados: fora de arena (ocioso) e com sessao ativa. ZONE_CHANGE
fecha a sessao corrente (fim = horario do evento) e abre outra se a nova
zona for arena ranqueada. O fim do fluxo fecha a sessao ativa com o
horario do ultimo evento. Jogadores sao resolvidos em qualquer estado.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime

from arena_logs.events import EventType, NormalizedEvent
from arena_logs.players import canonical_name
from arena_logs.zones import ArenaZone, GameMode, arena_name, arena_zone, is_arena

logger = logging.getLogger("arena_logs.segmentation")

NameResolver = Callable[[str | None], str | None]


@dataclass(slots=True)
class EntryDraft:
    timestamp: datetime
    source: str
    target: str | None
    ability: str
    damage: int = 0
    healing: int = 0
    crowd_control: str = ""


@dataclass(slots=True)
class MatchIngestionContext:
    arena_zone: ArenaZone
    map_name: str
    start: datetime | None = None
    end: datetime | None = None
    participants: set[str] = field(default_factory=set)
    entries: list[EntryDraft] = field(default_factory=list)
    player_spells: dict[str, set[str]] = field(default_factory=dict)
    declared_mode: GameMode | None = None
    arena_match_id: str | None = None
    match_type: str | None = None

    def record(self, event: NormalizedEvent, source: str | None, target: str | None) -> None:
        """Acumula um evento de combate dentro da sessao."""
        if self.start is None:
            self.start = event.timestamp
        self.end = event.timestamp
        for name in (source, target):
            if name:
                self.participants.add(name)
        if source is None:
            return
        if event.spell_name:
            self.player_spells.setdefault(source, set()).add(event.spell_name)
        self.entries.append(
            EntryDraft(
                timestamp=event.timestamp,
                source=source,
                target=target,
                ability=event.ability,
                damage=event.damage or 0,
                healing=event.healing or 0,
            )
        )

    @property
    def mode_hint(self) -> str | None:
        parts = [p for p in (self.arena_match_id, self.match_type) if p]
        return " ".join(parts) or None


class SegmentationStateMachine:
    """Consome eventos em ordem e entrega contextos de partida concluidos."""

    def __init__(self, resolver: NameResolver | None = None) -> None:
        self.resolver: NameResolver = resolver or canonical_name
        self.current: MatchIngestionContext | None = None
        self.last_timestamp: datetime | None = None
        self._pending_match_id: tuple[str | None, str | None] | None = None

    @property
    def active(self) -> bool:
        return self.current is not None

    def open_session(
        self,
        zone: ArenaZone,
        start: datetime | None,
        map_name: str,
        *,
        declared_mode: GameMode | None = None,
        arena_match_id: str | None = None,
    ) -> MatchIngestionContext:
        ctx = MatchIngestionContext(
            arena_zone=zone,
            map_name=map_name,
            start=start,
            declared_mode=declared_mode,
            arena_match_id=arena_match_id,
        )
        if self._pending_match_id and ctx.arena_match_id is None:
            ctx.arena_match_id, ctx.match_type = self._pending_match_id
        self._pending_match_id = None
        self.current = ctx
        logger.info("Sessao de arena aberta: %s em %s", map_name, start)
        return ctx

    def close_session(self, end: datetime | None) -> MatchIngestionContext | None:
        """Encerra a sessao ativa; sem entradas nao ha partida."""
        ctx, self.current = self.current, None
        if ctx is None:
            return None
        if end is not None:
            ctx.end = end
        if not ctx.entries:
            logger.debug("Sessao em %s sem eventos de combate; descartada", ctx.map_name)
            return None
        return ctx

    def _tag_match(self, event: NormalizedEvent) -> None:
        if self.current is not None and self.current.arena_match_id is None:
            self.current.arena_match_id = event.arena_match_id
            self.current.match_type = event.match_type
        else:
            self._pending_match_id = (event.arena_match_id, event.match_type)

    def feed(self, event: NormalizedEvent) -> MatchIngestionContext | None:
        """Aplica um evento; devolve o contexto se ele fechou uma sessao."""
        self.last_timestamp = event.timestamp
        source = self.resolver(event.source_name)
        target = self.resolver(event.target_name)

        if event.event_type is EventType.ZONE_CHANGE:
            finished = self.close_session(event.timestamp)
            if is_arena(event.zone_id):
                self.open_session(
                    arena_zone(event.zone_id),
                    event.timestamp,
                    arena_name(event.zone_id),
                )
            return finished
        if event.raw_event == "ARENA_MATCH_START":
            self._tag_match(event)
            return None
        if self.current is not None:
            self.current.record(event, source, target)
        return None

    def finish(self) -> MatchIngestionContext | None:
        """Fim do fluxo: fecha a sessao ativa no horario do ultimo evento."""
        return self.close_session(self.last_timestamp)

    def segment(self, events: Iterable[NormalizedEvent]) -> Iterator[MatchIngestionContext]:
        for event in events:
            if (ctx := self.feed(event)) is not None:
                yield ctx
        if (ctx := self.finish()) is not None:
            yield ctx
