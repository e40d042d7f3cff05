# =============================================================================
# app/routers/games.py - Pickup Game Endpoints
# =============================================================================
# All endpoints require authentication.
# =============================================================================

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from app.auth import AuthUser, get_current_user
from core.services.game_service import GameService

router = APIRouter()


class GameRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(..., alias="gameId", min_length=1)


class GameVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")


@router.post("/join")
async def join_game(
    request: GameRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Join a free game.

    Joining a game you are already in returns your place with
    `alreadyJoined: true`.
    """
    result = GameService.join_free_game(request.game_id, user.user_id)
    return {
        "participant": result.participant.model_dump(mode="json"),
        "alreadyJoined": result.already_joined,
    }


@router.post("/checkout")
async def create_game_checkout(
    request: GameRequest,
    user: AuthUser = Depends(get_current_user),
):
    """Start a Stripe checkout for a paid game."""
    result = GameService.create_game_checkout(request.game_id, user.user_id, user.email)
    return {"url": result.url, "sessionId": result.session_id}


@router.post("/verify")
async def verify_game_payment(
    request: GameVerifyRequest,
    user: AuthUser = Depends(get_current_user),
):
    """Confirm a paid game checkout and add the payer to the game."""
    result = GameService.verify_game_payment(request.session_id, user_id=user.user_id)
    return {
        "participant": result.participant.model_dump(mode="json"),
        "status": result.state.value,
    }
