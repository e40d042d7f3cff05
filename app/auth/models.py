# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data.
# =============================================================================

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuthUser(BaseModel):
    """
    Authenticated user extracted from Supabase JWT.

    This is the minimal user info available from the token itself,
    without querying the database.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID
    email: Optional[str] = None

    @property
    def user_id(self) -> str:
        """The id as stored in user_id columns and checkout metadata."""
        return str(self.id)


class UserResponse(BaseModel):
    """
    Full user response for API endpoints.

    Includes profile data from the public.profiles table.
    """
    model_config = ConfigDict(extra="ignore")

    id: UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    user_type: Optional[str] = None
    created_at: Optional[datetime] = None
