# =============================================================================
# core/models/game.py - Pickup Game Schemas
# =============================================================================

from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .booking import PaymentState


class GameStatus(str, Enum):
    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Game(BaseModel):
    """A hosted pickup game players can join."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    host_id: str
    venue_id: str | None = None
    game_date: date | None = None
    game_time: time | None = None
    duration_hours: float = 1
    max_players: int = Field(default=10, ge=1)
    current_players: int = Field(default=0, ge=0)
    price_per_player: float | None = None
    status: str = GameStatus.OPEN.value

    @property
    def is_free(self) -> bool:
        return not self.price_per_player

    @property
    def is_full(self) -> bool:
        return self.current_players >= self.max_players

    @property
    def is_joinable(self) -> bool:
        return self.status not in (GameStatus.CANCELLED.value, GameStatus.COMPLETED.value)


class GameParticipant(BaseModel):
    """A row of game_participants."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    game_id: str
    user_id: str
    status: str = "confirmed"
    payment_intent_id: str | None = None
    joined_at: datetime | None = None


class ParticipationResult(BaseModel):
    """Outcome of joining a game."""
    participant: GameParticipant
    state: PaymentState

    @property
    def already_joined(self) -> bool:
        return self.state == PaymentState.ALREADY_BOOKED
