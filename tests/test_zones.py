import pytest

from arena_logs.zones import (
    UNKNOWN_ARENA_NAME,
    ArenaZone,
    GameMode,
    arena_name,
    arena_zone,
    arena_zone_from_name,
    game_mode_from_declared,
    game_mode_from_participants,
    is_arena,
)


def test_is_arena():
    assert is_arena(559)
    assert is_arena(1505)
    assert not is_arena(87)
    assert not is_arena(0)
    assert not is_arena(None)


def test_arena_zone_e_nome():
    assert arena_zone(559) is ArenaZone.NAGRAND_ARENA
    assert arena_zone(87) is ArenaZone.UNKNOWN
    assert arena_name(572) == "Ruins of Lordaeron"
    assert arena_name(9999) == UNKNOWN_ARENA_NAME
    assert arena_name(None, "Stormwind City") == "Stormwind City"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Nagrand Arena", ArenaZone.NAGRAND_ARENA),
        ("  nagrand arena ", ArenaZone.NAGRAND_ARENA),
        ("The Tiger's Peak", ArenaZone.THE_TIGERS_PEAK),
        ("Dornogal", ArenaZone.MALDRAXXUS_COLISEUM),
        ("Test Map", ArenaZone.UNKNOWN),
        ("", ArenaZone.UNKNOWN),
        (None, ArenaZone.UNKNOWN),
    ],
)
def test_arena_zone_from_name(name, expected):
    assert arena_zone_from_name(name) is expected


@pytest.mark.parametrize(
    "count, expected",
    [
        (4, GameMode.TWO_VS_TWO),
        (6, GameMode.THREE_VS_THREE),
        (10, GameMode.SKIRMISH),
        (2, GameMode.TWO_VS_TWO),
        (5, GameMode.TWO_VS_TWO),
        (0, GameMode.TWO_VS_TWO),
    ],
)
def test_game_mode_from_participants(count, expected):
    assert game_mode_from_participants(count) is expected


def test_solo_shuffle_pelo_tipo_da_partida():
    assert game_mode_from_participants(6, "572 Rated Solo Shuffle") is GameMode.SHUFFLE
    assert game_mode_from_participants(4, "Rated Solo Shuffle") is GameMode.TWO_VS_TWO
    assert game_mode_from_participants(6, "match-123") is GameMode.THREE_VS_THREE


@pytest.mark.parametrize(
    "declared, expected",
    [
        ("2v2", GameMode.TWO_VS_TWO),
        ("3V3", GameMode.THREE_VS_THREE),
        ("Skirmish", GameMode.SKIRMISH),
        ("shuffle", GameMode.SHUFFLE),
        ("RBG", GameMode.RBG),
        ("5v5", GameMode.TWO_VS_TWO),
        (None, GameMode.TWO_VS_TWO),
    ],
)
def test_game_mode_from_declared(declared, expected):
    assert game_mode_from_declared(declared) is expected
