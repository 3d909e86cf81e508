"""Bearer credential models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TokenGrant(BaseModel):
    """Token endpoint reply for a JWT-bearer grant."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(min_length=1)
    expires_in: float = Field(default=3600, gt=0)
    token_type: str = "Bearer"


class Credential(BaseModel):
    """A cached bearer token.

    Parameters
    ----------
    token : str
        The bearer token sent to the store.
    expires_at : float
        Epoch seconds after which the store rejects the token.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: str = Field(repr=False)
    expires_at: float

    def remaining(self, now: float) -> float:
        """Seconds of validity left at *now*."""
        return self.expires_at - now

    def is_usable(self, now: float, margin: float) -> bool:
        """Whether the token has more than *margin* seconds left."""
        return self.remaining(now) > margin
