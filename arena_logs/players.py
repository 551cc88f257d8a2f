"""
Identidade de jogadores: nome canonico, resolucao contra o store e
preenchimento de classe/raca a partir das spells observadas.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from arena_logs.models import Player
from arena_logs.player_attributes import determine_class, determine_faction
from arena_logs.store import MatchStore

logger = logging.getLogger("arena_logs.players")

REGION_SUFFIXES = ("-EU", "-US", "-KR", "-TW", "-CN")
DEFAULT_REGION = "eu"


@dataclass(frozen=True, slots=True)
class PlayerIdentity:
    name: str
    realm: str
    region: str | None = None


def parse_player_name(raw: str) -> PlayerIdentity:
    """'"Nome-Reino-EU"' -> PlayerIdentity('Nome', 'Reino', 'eu').

    Remove uma camada de aspas, depois o sufixo de regiao (sem caixa) e
    separa no primeiro '-'. Sem '-' o reino fica vazio.
    """
    text = raw.strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    text = text.strip()
    region = None
    upper = text.upper()
    for suffix in REGION_SUFFIXES:
        if upper.endswith(suffix):
            text = text[: -len(suffix)]
            region = suffix[1:].lower()
            break
    name, _, realm = text.partition("-")
    return PlayerIdentity(name=name.strip(), realm=realm.strip(), region=region)


def canonical_name(raw: str | None) -> str | None:
    if not raw:
        return None
    return parse_player_name(raw).name or None


def fill_empty(player: Player, **values: str | None) -> bool:
    """Preenche so os campos vazios; devolve True se algo mudou."""
    changed = False
    for attr, value in values.items():
        if value and not getattr(player, attr):
            setattr(player, attr, value)
            changed = True
    return changed


def apply_spells(player: Player, spells: Iterable[str]) -> bool:
    """Infere classe/raca pelas spells; spec fica na partida, nao no jogador."""
    spells = list(spells)
    if not spells:
        return False
    return fill_empty(
        player,
        player_class=determine_class(spells),
        faction=determine_faction(spells),
    )


class PlayerResolver:
    """Resolve nomes brutos para Player, criando no store na primeira vez.

    Mantem cache por nome canonico (sem caixa) durante uma ingestao e
    a regiao vista no sufixo de cada nome.
    """

    def __init__(self, store: MatchStore) -> None:
        self.store = store
        self._cache: dict[str, Player] = {}
        self.regions: dict[str, str] = {}

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._cache

    def get(self, name: str) -> Player | None:
        return self._cache.get(name.lower())

    def players(self) -> list[Player]:
        return list(self._cache.values())

    def region_for(self, name: str, default: str = DEFAULT_REGION) -> str:
        return self.regions.get(name.lower(), default)

    def resolve(self, raw_name: str | None) -> Player | None:
        if not raw_name or not raw_name.strip():
            return None
        identity = parse_player_name(raw_name)
        if not identity.name:
            return None
        key = identity.name.lower()
        if identity.region:
            self.regions[key] = identity.region
        if (player := self._cache.get(key)) is not None:
            return player

        fresh: Player | None = None
        player = self.store.find_player_by_name(identity.name)
        if player is None:
            fresh = Player(
                name=identity.name,
                realm=identity.realm,
                player_class="",
                faction="",
                spec="",
            )
            # outra ingestao pode ter criado o nome entre a busca e a gravacao
            player = self.store.create_player(fresh)
            if player is fresh:
                logger.debug("Jogador criado: %s (%s)", player.name, player.realm or "sem reino")
        if player is not fresh and fill_empty(player, realm=identity.realm):
            self.store.update_player(player)
        self._cache[key] = player
        return player

    def resolve_name(self, raw_name: str | None) -> str | None:
        """Como resolve(), mas devolve o nome canonico do jogador."""
        player = self.resolve(raw_name)
        return player.name if player is not None else None
