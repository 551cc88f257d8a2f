"""Entidades duraveis (jogadores, partidas, resultados e entradas de combate)."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from arena_logs.zones import ArenaZone, GameMode


class Base(DeclarativeBase):
    """Base declarativa dos modelos."""

    pass


class Player(Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    realm: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    player_class: Mapped[str] = mapped_column("class", String(32), nullable=False, default="")
    faction: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    spec: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    def __repr__(self) -> str:
        return f"Player(id={self.id!r}, name={self.name!r}, realm={self.realm!r})"


# nome canonico e unico sem diferenciar caixa
Index("ux_players_name_lower", func.lower(Player.name), unique=True)


class Match(Base):
    """
    Partida de arena finalizada. `unique_hash` identifica a mesma sessao
    ingerida mais de uma vez; a restricao UNIQUE rejeita a duplicata.
    """

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    unique_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_on: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    map_name: Mapped[str] = mapped_column(String(64), nullable=False)
    arena_zone: Mapped[ArenaZone] = mapped_column(
        Enum(ArenaZone, native_enum=False, length=32), nullable=False
    )
    arena_match_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    game_mode: Mapped[GameMode] = mapped_column(
        Enum(GameMode, native_enum=False, length=16), nullable=False
    )
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_ranked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"Match(id={self.id!r}, map_name={self.map_name!r}, game_mode={self.game_mode!r})"


class MatchResult(Base):
    __tablename__ = "match_results"
    __table_args__ = (UniqueConstraint("match_id", "player_id", name="uq_match_results_match_player"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id"), nullable=False, index=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    team: Mapped[str] = mapped_column(String(32), nullable=False, default="Unknown")
    rating_before: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating_after: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    spec: Mapped[str] = mapped_column(String(32), nullable=False, default="")


class CombatLogEntry(Base):
    __tablename__ = "combat_log_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id"), nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    source_player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    target_player_id: Mapped[int | None] = mapped_column(ForeignKey("players.id"), nullable=True)
    ability: Mapped[str] = mapped_column(String(128), nullable=False)
    damage_done: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    healing_done: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    crowd_control: Mapped[str] = mapped_column(String(64), nullable=False, default="")
