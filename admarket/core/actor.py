import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """The already-authenticated user on whose behalf an operation runs."""

    user_id: uuid.UUID
    telegram_id: int
