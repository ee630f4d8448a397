"""Caller identity model."""

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """A user resolved from the x-user-email header."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
