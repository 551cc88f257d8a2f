import threading
from datetime import date, datetime

import orjson
import pytest
from sqlalchemy import func, select

from arena_logs.enrichment import CharacterProfile
from arena_logs.ingest_logs import (
    SUMMARY_FILE_NAME,
    CombatLogIngestionService,
    _extract_reference_date,
    check_and_create_directories,
    print_summary_table,
    process_files,
    process_single_file,
)
from arena_logs.models import CombatLogEntry, Match, MatchResult, Player
from arena_logs.store import (
    InMemoryStore,
    SqlAlchemyStore,
    StoreError,
    ensure_schema,
    make_engine,
    make_session_factory,
)
from arena_logs.zones import ArenaZone, GameMode

ARENA_LOG = """\
# combat log de teste
1/2/2024 19:10:02.000  ARENA_MATCH_START,match-123,559,,,,,,,,,,,,
1/2/2024 19:10:03.100  ZONE_CHANGE,559,Nagrand Arena,,,,,,,,,,,,
1/2/2024 19:10:04.200  SPELL_DAMAGE,0x0100,Alpha-Illidan,0x0,0x0,0x0200,Bravo-Illidan,0x0,0x0,1337,Chaos Bolt,0x0,1200,0,0,0,0,0,0,0
1/2/2024 19:10:05.300  SPELL_HEAL,0x0200,Bravo-Illidan,0x0,0x0,0x0100,Alpha-Illidan,0x0,0x0,2337,Rejuvenation,0x0,0,900,0,0,0,0,0,0
1/2/2024 19:10:30.000  ZONE_CHANGE,87,Stormwind City,,,,,,,,,,,,
"""

OPEN_WORLD_LOG = """\
1/2/2024 18:00:00.000  ZONE_CHANGE,87,Stormwind City,,,,,,,,,,,,
1/2/2024 18:00:01.000  SPELL_DAMAGE,0x1,Charlie-Illidan,0x0,0x0,0x2,Delta-Illidan,0x0,0x0,1337,Chaos Bolt,0x0,500,0,0,0,0,0,0,0
"""

LUA_EXPORT = """\
PvPAnalyticsDB = {
    ["players"] = {
        ["Player-1-AAA"] = { ["name"] = "Alice", ["realm"] = "Realm", ["class"] = "Mage", ["faction"] = "Alliance" },
    },
    ["matches"] = {
        {
            ["players"] = { "Player-1-AAA" },
            ["events"] = {
                { ["type"] = "DAMAGE", ["time"] = 1735819201, ["spellName"] = "Frostbolt", ["source"] = "Alice-Realm", ["dest"] = "Bob-Realm", ["amount"] = 800 },
                { ["type"] = "HEAL", ["time"] = 1735819202, ["spellName"] = "Flash Heal", ["source"] = "Bob-Realm", ["amount"] = 400 },
            },
            ["metadata"] = {
                ["map"] = "Nagrand Arena",
                ["mode"] = "3v3",
                ["date"] = "2025-01-02 12:00:00",
                ["endTime"] = "2025-01-02 12:05:00",
            },
        },
    },
}
"""


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    ensure_schema(engine)
    yield make_session_factory(engine)
    engine.dispose()


def count(session_factory, model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


@pytest.mark.ingest
def test_partida_de_arena_completa():
    """Um log com uma entrada em arena gera uma partida com resultados e entradas."""
    store = InMemoryStore()
    [match] = CombatLogIngestionService(store).ingest(ARENA_LOG)

    assert match.arena_zone is ArenaZone.NAGRAND_ARENA
    assert match.map_name == "Nagrand Arena"
    assert match.game_mode is GameMode.TWO_VS_TWO
    assert match.arena_match_id == "match-123"
    assert match.created_on == datetime(2024, 1, 2, 19, 10, 3, 100000)
    assert match.duration == 26
    assert match.is_ranked
    assert len(match.unique_hash) == 64

    assert len(store.players) == 2
    assert len(store.results) == 2
    assert len(store.entries) == 2
    players = {p.name: p for p in store.players.values()}
    chaos_bolt = next(e for e in store.entries if e.ability == "Chaos Bolt")
    assert chaos_bolt.damage_done == 1200
    assert chaos_bolt.source_player_id == players["Alpha"].id
    assert chaos_bolt.target_player_id == players["Bravo"].id


@pytest.mark.ingest
def test_atributos_inferidos_pelas_spells():
    store = InMemoryStore()
    CombatLogIngestionService(store).ingest(ARENA_LOG)
    players = {p.name: p for p in store.players.values()}
    assert players["Alpha"].player_class == "Warlock"
    assert players["Alpha"].realm == "Illidan"
    assert players["Bravo"].player_class == "Druid"
    specs = {r.player_id: r.spec for r in store.results}
    assert specs[players["Alpha"].id] == "Destruction"
    assert specs[players["Bravo"].id] == ""


@pytest.mark.ingest
def test_log_sem_arena_nao_gera_partida_mas_cria_jogadores():
    store = InMemoryStore()
    assert CombatLogIngestionService(store).ingest(OPEN_WORLD_LOG) == []
    assert store.matches == {}
    assert sorted(p.name for p in store.players.values()) == ["Charlie", "Delta"]


@pytest.mark.ingest
def test_reingestao_nao_duplica(session_factory):
    """O mesmo log duas vezes devolve a partida existente sem gravar de novo."""
    service = CombatLogIngestionService(SqlAlchemyStore(session_factory))
    [first] = service.ingest(ARENA_LOG)
    [second] = service.ingest(ARENA_LOG.encode("utf-8"))
    assert second.id == first.id
    assert second.unique_hash == first.unique_hash
    assert count(session_factory, Match) == 1
    assert count(session_factory, MatchResult) == 2
    assert count(session_factory, CombatLogEntry) == 2
    assert count(session_factory, Player) == 2


@pytest.mark.ingest
def test_duas_arenas_em_sequencia():
    log = ARENA_LOG + (
        "1/2/2024 19:20:00.000  ZONE_CHANGE,572,Ruins of Lordaeron,,,,,,,,,,,,\n"
        "1/2/2024 19:20:01.000  SPELL_DAMAGE,0x1,Charlie-Illidan,0x0,0x0,0x2,Delta-Illidan,"
        "0x0,0x0,1337,Chaos Bolt,0x0,500,0,0,0,0,0,0,0\n"
    )
    store = InMemoryStore()
    first, second = CombatLogIngestionService(store).ingest(log)
    assert first.arena_zone is ArenaZone.NAGRAND_ARENA
    assert second.arena_zone is ArenaZone.RUINS_OF_LORDAERON
    assert second.arena_match_id is None
    assert second.duration == 1
    assert len(store.matches) == 2


@pytest.mark.ingest
def test_cancelamento_antes_de_comecar():
    cancel = threading.Event()
    cancel.set()
    store = InMemoryStore()
    assert CombatLogIngestionService(store).ingest(ARENA_LOG, cancel=cancel) == []
    assert store.matches == {}


@pytest.mark.ingest
def test_cancelamento_descarta_sessao_em_andamento():
    """Partidas já gravadas ficam; a sessão interrompida não é gravada."""
    cancel = threading.Event()
    second_arena = [
        "1/2/2024 19:20:00.000  ZONE_CHANGE,572,Ruins of Lordaeron,,,,,,,,,,,,\n",
        "1/2/2024 19:20:01.000  SPELL_DAMAGE,0x1,Charlie-Illidan,0x0,0x0,0x2,Delta-Illidan,"
        "0x0,0x0,1337,Chaos Bolt,0x0,500,0,0,0,0,0,0,0\n",
    ]

    def lines():
        yield from ARENA_LOG.splitlines(keepends=True)
        yield second_arena[0]
        cancel.set()
        yield second_arena[1]

    lookup = CharacterLookupSpy()
    store = InMemoryStore()
    service = CombatLogIngestionService(store, lookup)
    matches = service.ingest(lines(), "traditional", cancel=cancel)
    assert len(matches) == 1
    assert len(store.matches) == 1
    assert lookup.calls == []


@pytest.mark.ingest
def test_falha_no_store_propaga(mocker):
    store = InMemoryStore()
    mocker.patch.object(store, "persist_match", side_effect=StoreError("banco fora do ar"))
    with pytest.raises(StoreError):
        CombatLogIngestionService(store).ingest(ARENA_LOG)


@pytest.mark.ingest
def test_entrada_grande_demais():
    service = CombatLogIngestionService(InMemoryStore(), max_upload_bytes=10)
    with pytest.raises(ValueError):
        service.ingest(ARENA_LOG)


class CharacterLookupSpy:
    def __init__(self, profile=None, error=None):
        self.profile = profile
        self.error = error
        self.calls = []

    def lookup(self, realm, name, region):
        self.calls.append((realm, name, region))
        if self.error is not None:
            raise self.error
        return self.profile


@pytest.mark.ingest
def test_enriquecimento_completa_so_campos_vazios():
    lookup = CharacterLookupSpy(CharacterProfile(class_name="Mage", faction="Horde"))
    store = InMemoryStore()
    CombatLogIngestionService(store, lookup, default_region="us").ingest(ARENA_LOG)
    players = {p.name: p for p in store.players.values()}
    assert players["Alpha"].player_class == "Warlock"
    assert players["Alpha"].faction == "Horde"
    assert sorted(lookup.calls) == [("Illidan", "Alpha", "us"), ("Illidan", "Bravo", "us")]


@pytest.mark.ingest
def test_falha_no_enriquecimento_nao_interrompe():
    lookup = CharacterLookupSpy(error=RuntimeError("api fora do ar"))
    store = InMemoryStore()
    matches = CombatLogIngestionService(store, lookup).ingest(ARENA_LOG)
    assert len(matches) == 1
    assert all(p.faction == "" for p in store.players.values())


@pytest.mark.ingest
def test_export_lua():
    store = InMemoryStore()
    [match] = CombatLogIngestionService(store).ingest(LUA_EXPORT)
    assert match.arena_zone is ArenaZone.NAGRAND_ARENA
    assert match.map_name == "Nagrand Arena"
    assert match.game_mode is GameMode.THREE_VS_THREE
    assert match.duration == 300
    assert len(match.arena_match_id) == 16
    assert len(store.entries) == 2
    assert len(store.results) == 2
    players = {p.name: p for p in store.players.values()}
    assert players["Alice"].player_class == "Mage"
    assert players["Alice"].faction == "Alliance"
    frostbolt = next(e for e in store.entries if e.ability == "Frostbolt")
    assert frostbolt.damage_done == 800
    assert frostbolt.timestamp == datetime(2025, 1, 2, 12, 0, 1)


LUA_OFFSET_MATCH = """\
        {
            ["events"] = {
                { ["type"] = "DAMAGE", ["time"] = 1735822801, ["spellName"] = "Chaos Bolt", ["source"] = "Carol-Realm", ["dest"] = "Dave-Realm", ["amount"] = 700 },
            },
            ["metadata"] = {
                ["map"] = "Nagrand Arena",
                ["mode"] = "2v2",
                ["date"] = "2025-01-02T13:00:00+00:00",
                ["endTime"] = "2025-01-02 13:05:00",
            },
        },
"""


@pytest.mark.ingest
def test_export_lua_com_data_em_fuso_horario():
    """Data com fuso não quebra a ingestão; as duas partidas são gravadas."""
    export = LUA_EXPORT.replace("    },\n}\n", LUA_OFFSET_MATCH + "    },\n}\n")
    store = InMemoryStore()
    first, second = CombatLogIngestionService(store).ingest(export, "lua")
    assert first.duration == 300
    assert second.duration == 300
    assert second.created_on == datetime(2025, 1, 2, 13, 0)
    assert second.created_on.tzinfo is None
    chaos_bolt = next(e for e in store.entries if e.ability == "Chaos Bolt")
    assert chaos_bolt.timestamp == datetime(2025, 1, 2, 13, 0, 1)


@pytest.mark.ingest
def test_formato_simplificado_com_data_de_referencia():
    log = (
        "12:00:01 - DAMAGE: Alice used Chaos Bolt for 900 on Bob\n"
        "12:00:02 - HEAL: Bob healed with Flash Heal for 500\n"
    )
    store = InMemoryStore()
    assert CombatLogIngestionService(store).ingest(log, reference_date=date(2025, 1, 2)) == []
    assert len(store.players) == 2


def test_data_de_referencia_pelo_nome_do_arquivo(tmp_path):
    path = tmp_path / "WoWCombatLog-2024-01-02_arena.txt"
    path.write_text("x", encoding="utf-8")
    assert _extract_reference_date(path) == date(2024, 1, 2)
    other = tmp_path / "combat.txt"
    other.write_text("x", encoding="utf-8")
    assert _extract_reference_date(other) == datetime.fromtimestamp(other.stat().st_mtime).date()


@pytest.mark.ingest
def test_process_single_file_com_erro(tmp_path):
    service = CombatLogIngestionService(InMemoryStore(), max_upload_bytes=10)
    path = tmp_path / "grande.txt"
    path.write_text(ARENA_LOG, encoding="utf-8")
    summaries, errors = process_single_file(service, path, None)
    assert summaries == []
    assert len(errors) == 1
    assert "grande.txt" in errors[0]


@pytest.mark.ingest
def test_process_files_escreve_resumo_ndjson(tmp_path):
    input_dir = tmp_path / "logs"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    output_dir.mkdir()
    (input_dir / "2024-01-02_arena.txt").write_text(ARENA_LOG, encoding="utf-8")
    (input_dir / "mundo.txt").write_text(OPEN_WORLD_LOG, encoding="utf-8")
    (input_dir / "export.lua").write_text(LUA_EXPORT, encoding="utf-8")

    service = CombatLogIngestionService(InMemoryStore())
    summaries = process_files(sorted(input_dir.iterdir()), service, output_dir)

    assert len(summaries) == 2
    lines = (output_dir / SUMMARY_FILE_NAME).read_bytes().splitlines()
    records = [orjson.loads(line) for line in lines]
    assert {r["source"] for r in records} == {"2024-01-02_arena.txt", "export.lua"}
    arena = next(r for r in records if r["source"] == "2024-01-02_arena.txt")
    assert arena["arena_zone"] == "NAGRAND_ARENA"
    assert arena["game_mode"] == "2v2"
    assert arena["duration"] == 26
    assert not (output_dir / (SUMMARY_FILE_NAME + ".part")).exists()


def test_check_and_create_directories(tmp_path, capsys):
    existing = tmp_path / "logs"
    existing.mkdir()
    missing = tmp_path / "output" / "novo"
    check_and_create_directories(existing, missing)
    assert existing.is_dir()
    assert missing.is_dir()
    assert "Directory Check Results" in capsys.readouterr().out


def test_print_summary_table(capsys):
    print_summary_table(
        [
            {
                "source": "arena.txt",
                "map_name": "Nagrand Arena",
                "game_mode": "2v2",
                "duration": 26,
                "created_on": datetime(2024, 1, 2, 19, 10, 3),
            }
        ]
    )
    out = capsys.readouterr().out
    assert "Nagrand Arena" in out
    assert "2024-01-02 19:10:03" in out
