"""
Persistencia de jogadores e partidas.

`MatchStore` e o contrato consumido pela ingestao. `SqlAlchemyStore` e a
implementacao sobre banco relacional; `InMemoryStore` mantem tudo em
memoria (testes e execucoes sem banco). Em ambas, `persist_match` grava
partida, entradas e resultados como uma unidade: ou tudo, ou nada.
"""

import itertools
import logging
import threading
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from arena_logs.models import Base, CombatLogEntry, Match, MatchResult, Player

logger = logging.getLogger("arena_logs.store")

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class StoreError(RuntimeError):
    pass


class DuplicateMatchError(StoreError):
    def __init__(self, unique_hash: str) -> None:
        super().__init__(f"Match with unique hash {unique_hash} already exists")
        self.unique_hash = unique_hash


class MatchStore(Protocol):
    def find_player_by_name(self, name: str) -> Player | None: ...

    def create_player(self, player: Player) -> Player: ...

    def update_player(self, player: Player) -> None: ...

    def find_match_by_hash(self, unique_hash: str) -> Match | None: ...

    def persist_match(
        self,
        match: Match,
        entries: Sequence[CombatLogEntry],
        results: Sequence[MatchResult],
    ) -> Match: ...


def make_engine(database_url: str) -> Engine:
    kwargs: dict = {"pool_pre_ping": True, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in _MEMORY_URLS:
            # banco em memoria so existe dentro de uma conexao
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def ensure_schema(engine: Engine) -> None:
    """Cria as tabelas que ainda nao existem."""
    Base.metadata.create_all(engine)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class SqlAlchemyStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlAlchemyStore":
        engine = make_engine(database_url)
        ensure_schema(engine)
        return cls(make_session_factory(engine))

    def find_player_by_name(self, name: str) -> Player | None:
        stmt = (
            select(Player)
            .where(func.lower(Player.name) == name.lower())
            .order_by(Player.id)
            .limit(1)
        )
        try:
            with self._session_factory() as session:
                return session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            logger.exception("Falha ao buscar jogador %s", name)
            raise StoreError(str(exc)) from exc

    def create_player(self, player: Player) -> Player:
        """Grava o jogador; se outra ingestao ja criou o nome, devolve o existente."""
        try:
            with self._session_factory() as session, session.begin():
                session.add(player)
        except IntegrityError as exc:
            if (existing := self.find_player_by_name(player.name)) is None:
                logger.exception("Falha de integridade ao gravar jogador %s", player.name)
                raise StoreError(str(exc)) from exc
            logger.debug("Jogador %s ja existia; reaproveitando id=%s", player.name, existing.id)
            return existing
        except SQLAlchemyError as exc:
            logger.exception("Falha ao gravar jogador %s", player.name)
            raise StoreError(str(exc)) from exc
        return player

    def update_player(self, player: Player) -> None:
        try:
            with self._session_factory() as session, session.begin():
                session.merge(player)
        except SQLAlchemyError as exc:
            logger.exception("Falha ao atualizar jogador %s", player.name)
            raise StoreError(str(exc)) from exc

    def find_match_by_hash(self, unique_hash: str) -> Match | None:
        stmt = select(Match).where(Match.unique_hash == unique_hash)
        try:
            with self._session_factory() as session:
                return session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            logger.exception("Falha ao buscar partida %s", unique_hash)
            raise StoreError(str(exc)) from exc

    def persist_match(
        self,
        match: Match,
        entries: Sequence[CombatLogEntry],
        results: Sequence[MatchResult],
    ) -> Match:
        try:
            with self._session_factory() as session, session.begin():
                session.add(match)
                session.flush()
                for row in itertools.chain(entries, results):
                    row.match_id = match.id
                session.add_all(entries)
                session.add_all(results)
        except IntegrityError as exc:
            if self.find_match_by_hash(match.unique_hash) is not None:
                raise DuplicateMatchError(match.unique_hash) from exc
            logger.exception("Falha de integridade ao gravar partida %s", match.unique_hash)
            raise StoreError(str(exc)) from exc
        except SQLAlchemyError as exc:
            logger.exception("Falha ao gravar partida %s", match.unique_hash)
            raise StoreError(str(exc)) from exc
        return match


class InMemoryStore:
    """Mesmo contrato do SqlAlchemyStore, com ids sequenciais em memoria."""

    def __init__(self) -> None:
        self.players: dict[int, Player] = {}
        self.matches: dict[int, Match] = {}
        self.entries: list[CombatLogEntry] = []
        self.results: list[MatchResult] = []
        self._ids = {name: itertools.count(1) for name in ("player", "match", "entry", "result")}
        self._lock = threading.Lock()

    def find_player_by_name(self, name: str) -> Player | None:
        key = name.lower()
        return next((p for p in self.players.values() if p.name.lower() == key), None)

    def create_player(self, player: Player) -> Player:
        with self._lock:
            if (existing := self.find_player_by_name(player.name)) is not None:
                return existing
            player.id = next(self._ids["player"])
            self.players[player.id] = player
        return player

    def update_player(self, player: Player) -> None:
        if player.id not in self.players:
            raise StoreError(f"Unknown player id {player.id}")
        self.players[player.id] = player

    def _check_results(self, results: Sequence[MatchResult]) -> None:
        seen = {(r.match_id, r.player_id) for r in self.results}
        for result in results:
            key = (result.match_id, result.player_id)
            if key in seen:
                raise StoreError(f"Duplicate result for match/player {key}")
            seen.add(key)

    def find_match_by_hash(self, unique_hash: str) -> Match | None:
        return next((m for m in self.matches.values() if m.unique_hash == unique_hash), None)

    def persist_match(
        self,
        match: Match,
        entries: Sequence[CombatLogEntry],
        results: Sequence[MatchResult],
    ) -> Match:
        with self._lock:
            if self.find_match_by_hash(match.unique_hash) is not None:
                raise DuplicateMatchError(match.unique_hash)
            match_id = next(self._ids["match"])
            for row in itertools.chain(entries, results):
                row.match_id = match_id
            self._check_results(results)
            match.id = match_id
            self.matches[match_id] = match
            for entry in entries:
                entry.id = next(self._ids["entry"])
                self.entries.append(entry)
            for result in results:
                result.id = next(self._ids["result"])
                self.results.append(result)
        return match
