"""Arenas ranqueadas conhecidas e modo de jogo por numero de participantes."""

from enum import IntEnum, StrEnum


class ArenaZone(IntEnum):
    UNKNOWN = 0
    BLOOD_RING = 2759
    DALARAN_ARENA = 617
    RING_OF_VALOR = 618
    RUINS_OF_LORDAERON = 572
    NAGRAND_ARENA = 559
    MUGAMBALA = 6178
    THE_TIGERS_PEAK = 1505
    TOLVIRON_ARENA = 1504
    BLACK_ROOK_HOLD_ARENA = 1825
    MALDRAXXUS_COLISEUM = 3963


class GameMode(StrEnum):
    TWO_VS_TWO = "2v2"
    THREE_VS_THREE = "3v3"
    SKIRMISH = "Skirmish"
    RBG = "RBG"
    SHUFFLE = "Shuffle"


UNKNOWN_ARENA_NAME = "Unknown Arena"

ARENA_NAMES: dict[int, str] = {
    ArenaZone.BLOOD_RING: "Blood Ring",
    ArenaZone.DALARAN_ARENA: "Dalaran Arena",
    ArenaZone.RING_OF_VALOR: "Ring of Valor",
    ArenaZone.RUINS_OF_LORDAERON: "Ruins of Lordaeron",
    ArenaZone.NAGRAND_ARENA: "Nagrand Arena",
    ArenaZone.MUGAMBALA: "Mugambala",
    ArenaZone.THE_TIGERS_PEAK: "The Tiger's Peak",
    ArenaZone.TOLVIRON_ARENA: "Tol'viron Arena",
    ArenaZone.BLACK_ROOK_HOLD_ARENA: "Black Rook Hold Arena",
    ArenaZone.MALDRAXXUS_COLISEUM: "Maldraxxus Coliseum",
}

# nomes como aparecem no export Lua (comparacao sem caixa)
_ARENA_BY_NAME: dict[str, ArenaZone] = {
    name.lower(): ArenaZone(zone_id) for zone_id, name in ARENA_NAMES.items()
}
_ARENA_BY_NAME["dornogal"] = ArenaZone.MALDRAXXUS_COLISEUM

_DECLARED_MODES: dict[str, GameMode] = {
    "2v2": GameMode.TWO_VS_TWO,
    "3v3": GameMode.THREE_VS_THREE,
    "skirmish": GameMode.SKIRMISH,
    "rbg": GameMode.RBG,
    "shuffle": GameMode.SHUFFLE,
}

_MODE_BY_COUNT: dict[int, GameMode] = {
    4: GameMode.TWO_VS_TWO,
    6: GameMode.THREE_VS_THREE,
    10: GameMode.SKIRMISH,
}


def is_arena(zone_id: int | None) -> bool:
    return zone_id is not None and zone_id in ARENA_NAMES


def arena_zone(zone_id: int | None) -> ArenaZone:
    return ArenaZone(zone_id) if is_arena(zone_id) else ArenaZone.UNKNOWN


def arena_name(zone_id: int | None, fallback: str = UNKNOWN_ARENA_NAME) -> str:
    return ARENA_NAMES.get(zone_id, fallback) if zone_id is not None else fallback


def arena_zone_from_name(name: str | None) -> ArenaZone:
    if not name or not name.strip():
        return ArenaZone.UNKNOWN
    return _ARENA_BY_NAME.get(name.strip().lower(), ArenaZone.UNKNOWN)


def game_mode_from_participants(count: int, arena_match_id: str | None = None) -> GameMode:
    """4 -> 2v2, 6 -> 3v3 (ou Shuffle), 10 -> Skirmish; outro valor -> 2v2.

    Seis participantes com id/tipo de partida contendo "shuffle" sao
    Solo Shuffle. Contagens fora da tabela caem em 2v2 de proposito:
    a sessao continua sendo registrada.
    """
    if count == 6 and arena_match_id and "shuffle" in arena_match_id.lower():
        return GameMode.SHUFFLE
    return _MODE_BY_COUNT.get(count, GameMode.TWO_VS_TWO)


def game_mode_from_declared(mode: str | None) -> GameMode:
    if not mode or not mode.strip():
        return GameMode.TWO_VS_TWO
    return _DECLARED_MODES.get(mode.strip().lower(), GameMode.TWO_VS_TWO)
