"""
Consulta externa de personagens (Blizzard Profile API).

Melhor esforco: qualquer falha de rede, HTTP ou JSON vira None com um
aviso no log; a ingestao nunca e interrompida por aqui.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import requests

logger = logging.getLogger("arena_logs.enrichment")

TOKEN_TTL_SECONDS = 55 * 60
ALLIANCE_RACES = (
    "Human",
    "Dwarf",
    "Night Elf",
    "Gnome",
    "Draenei",
    "Worgen",
    "Pandaren",
    "Void Elf",
    "Lightforged Draenei",
    "Dark Iron Dwarf",
    "Kul Tiran",
    "Mechagnome",
    "Dracthyr",
)
HORDE_RACES = (
    "Orc",
    "Undead",
    "Tauren",
    "Troll",
    "Blood Elf",
    "Goblin",
    "Pandaren",
    "Nightborne",
    "Highmountain Tauren",
    "Mag'har Orc",
    "Zandalari Troll",
    "Vulpera",
    "Dracthyr",
)


@dataclass(slots=True)
class CharacterProfile:
    class_name: str | None = None
    faction: str | None = None
    race: str | None = None
    level: int | None = None


class CharacterLookup(Protocol):
    def lookup(self, realm: str, name: str, region: str) -> CharacterProfile | None: ...


def realm_slug(realm: str) -> str:
    return realm.strip().lower().replace(" ", "-").replace("'", "")


def faction_from_race(race: str | None) -> str | None:
    """Alliance/Horde pela raca; racas neutras caem na primeira lista."""
    if not race:
        return None
    text = race.lower()
    if any(r.lower() in text for r in ALLIANCE_RACES):
        return "Alliance"
    if any(r.lower() in text for r in HORDE_RACES):
        return "Horde"
    return None


def _api_region(region: str) -> str:
    return "eu" if region.lower() == "eu" else "us"


def _nested_name(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, dict) and isinstance(value.get("name"), str):
        return value["name"]
    return None


class BlizzardProfileClient:
    """Cliente com token OAuth (client credentials) em cache por regiao."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._clock = clock
        self._tokens: dict[str, tuple[str, float]] = {}

    def _access_token(self, region: str) -> str | None:
        api_region = _api_region(region)
        cached = self._tokens.get(api_region)
        if cached and cached[1] > self._clock():
            return cached[0]
        response = requests.post(
            f"https://{api_region}.battle.net/oauth/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            timeout=self.timeout,
        )
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            logger.error("Resposta OAuth sem access_token")
            return None
        self._tokens[api_region] = (token, self._clock() + TOKEN_TTL_SECONDS)
        logger.debug("Novo token OAuth obtido (%s)", api_region)
        return token

    def lookup(self, realm: str, name: str, region: str) -> CharacterProfile | None:
        try:
            token = self._access_token(region)
            if token is None:
                return None
            api_region = _api_region(region)
            url = (
                f"https://{api_region}.api.blizzard.com/profile/wow/character/"
                f"{realm_slug(realm)}/{name.lower()}"
            )
            response = requests.get(
                url,
                params={"namespace": f"profile-{region.lower()}", "locale": "en_US"},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            if response.status_code == 404:
                logger.debug("Personagem %s-%s nao encontrado", name, realm)
                return None
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            logger.warning("Falha ao consultar %s-%s (%s): %s", name, realm, region, exc)
            return None
        except ValueError as exc:
            logger.warning("Resposta invalida para %s-%s: %s", name, realm, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Resposta inesperada para %s-%s", name, realm)
            return None

        race = _nested_name(data, "race")
        level = data.get("level")
        return CharacterProfile(
            class_name=_nested_name(data, "character_class"),
            faction=faction_from_race(race),
            race=race,
            level=level if isinstance(level, int) else None,
        )


class MemoizedLookup:
    """Evita repetir a mesma consulta dentro de uma ingestao."""

    def __init__(self, inner: CharacterLookup) -> None:
        self.inner = inner
        self._cache: dict[tuple[str, str, str], CharacterProfile | None] = {}

    def lookup(self, realm: str, name: str, region: str) -> CharacterProfile | None:
        key = (realm.lower(), name.lower(), region.lower())
        if key not in self._cache:
            self._cache[key] = self.inner.lookup(realm, name, region)
        return self._cache[key]
