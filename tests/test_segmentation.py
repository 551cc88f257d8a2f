from datetime import datetime, timedelta

from arena_logs.events import EventType, NormalizedEvent
from arena_logs.parser_traditional import TraditionalLogParser
from arena_logs.segmentation import SegmentationStateMachine
from arena_logs.zones import ArenaZone

T0 = datetime(2024, 1, 2, 19, 10, 0)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def zone(seconds: float, zone_id: int, name: str = "") -> NormalizedEvent:
    return NormalizedEvent(
        timestamp=at(seconds),
        event_type=EventType.ZONE_CHANGE,
        raw_event="ZONE_CHANGE",
        zone_id=zone_id,
        zone_name=name,
    )


def hit(seconds: float, source: str | None, target: str | None, amount: int = 100) -> NormalizedEvent:
    return NormalizedEvent(
        timestamp=at(seconds),
        event_type=EventType.SPELL_DAMAGE,
        raw_event="SPELL_DAMAGE",
        source_name=source,
        target_name=target,
        spell_name="Chaos Bolt",
        damage=amount,
    )


def test_uma_sessao_por_entrada_em_arena():
    events = [
        zone(0, 559, "Nagrand Arena"),
        hit(1, "Alpha-Illidan", "Bravo-Illidan"),
        hit(2, "Bravo-Illidan", "Alpha-Illidan"),
        zone(10, 87, "Stormwind City"),
    ]
    [ctx] = SegmentationStateMachine().segment(events)
    assert ctx.arena_zone is ArenaZone.NAGRAND_ARENA
    assert ctx.map_name == "Nagrand Arena"
    assert ctx.start == at(0)
    assert ctx.end == at(10)
    assert ctx.participants == {"Alpha", "Bravo"}
    assert len(ctx.entries) == 2
    assert ctx.player_spells == {"Alpha": {"Chaos Bolt"}, "Bravo": {"Chaos Bolt"}}


def test_entradas_em_sequencia_geram_sessoes_separadas():
    """Arena -> arena fecha a primeira no horário da troca e abre outra."""
    events = [
        zone(0, 559),
        hit(1, "Alpha", "Bravo"),
        zone(20, 572),
        hit(21, "Charlie", "Delta"),
    ]
    first, second = SegmentationStateMachine().segment(events)
    assert first.end == at(20)
    assert first.participants == {"Alpha", "Bravo"}
    assert second.arena_zone is ArenaZone.RUINS_OF_LORDAERON
    assert second.start == at(20)
    assert second.participants == {"Charlie", "Delta"}


def test_fim_do_fluxo_fecha_no_ultimo_evento():
    events = [zone(0, 559), hit(1, "Alpha", "Bravo"), hit(7, "Bravo", "Alpha")]
    [ctx] = SegmentationStateMachine().segment(events)
    assert ctx.end == at(7)


def test_fora_de_arena_nao_gera_sessao():
    events = [zone(0, 87), hit(1, "Alpha", "Bravo"), hit(2, "Bravo", "Alpha")]
    assert list(SegmentationStateMachine().segment(events)) == []


def test_sessao_sem_eventos_de_combate_e_descartada():
    assert list(SegmentationStateMachine().segment([zone(0, 559), zone(5, 87)])) == []


def test_evento_sem_origem_conta_participante_mas_nao_entrada():
    events = [zone(0, 559), hit(1, "Alpha", "Bravo"), hit(2, None, "Charlie")]
    [ctx] = SegmentationStateMachine().segment(events)
    assert ctx.participants == {"Alpha", "Bravo", "Charlie"}
    assert len(ctx.entries) == 1


def test_resolver_e_chamado_fora_de_arena():
    seen: list[str] = []

    def resolver(raw: str | None) -> str | None:
        if raw:
            seen.append(raw)
        return raw

    machine = SegmentationStateMachine(resolver)
    list(machine.segment([hit(0, "Alpha", "Bravo")]))
    assert seen == ["Alpha", "Bravo"]


def test_arena_match_start_marca_a_partida():
    start = NormalizedEvent(
        timestamp=at(0),
        event_type=EventType.OTHER,
        raw_event="ARENA_MATCH_START",
        arena_match_id="match-123",
        zone_id=559,
        match_type="Rated Solo Shuffle",
    )
    events = [start, zone(1, 559), hit(2, "Alpha", "Bravo")]
    [ctx] = SegmentationStateMachine().segment(events)
    assert ctx.arena_match_id == "match-123"
    assert ctx.mode_hint == "match-123 Rated Solo Shuffle"
    assert len(ctx.entries) == 1


LOG = """\
1/2/2024 19:10:03.100  ZONE_CHANGE,559,Nagrand Arena,,,,,,,,,,,,
1/2/2024 19:10:04.200  SPELL_DAMAGE,0x1,Alpha-Illidan,0x0,0x0,0x2,Bravo-Illidan,0x0,0x0,1337,Chaos Bolt,0x0,1200,0,0,0,0,0,0,0
1/2/2024 19:10:05.300  SPELL_HEAL,0x2,Bravo-Illidan,0x0,0x0,0x1,Alpha-Illidan,0x0,0x0,774,Rejuvenation,0x0,900,0,0
1/2/2024 19:10:30.000  ZONE_CHANGE,1,Elwynn Forest,,,,,,,,,,,,
"""


def bounds(log: str) -> list[tuple[frozenset[str], datetime | None, datetime | None]]:
    events = TraditionalLogParser().decode(log.splitlines())
    return [
        (frozenset(ctx.participants), ctx.start, ctx.end)
        for ctx in SegmentationStateMachine().segment(events)
    ]


def test_segmentacao_repetida_e_identica():
    assert bounds(LOG) == bounds(LOG)
    assert len(bounds(LOG)) == 1


def test_linha_malformada_nao_altera_a_segmentacao():
    """Linhas que não casam com a gramática não geram troca de zona nem entrada."""
    lines = LOG.splitlines()
    noisy = "\n".join(
        [lines[0], "lixo,559,Nagrand Arena", lines[1], "1/2/2024  ZONE_CHANGE,87", lines[2], lines[3]]
    )
    assert bounds(noisy) == bounds(LOG)


def test_log_so_com_zonas_fora_de_arena():
    log = (
        "1/2/2024 19:00:00.000  ZONE_CHANGE,1,Elwynn Forest,,,,\n"
        "1/2/2024 19:05:00.000  ZONE_CHANGE,1,Elwynn Forest,,,,\n"
    )
    assert bounds(log) == []
