"""Character data access interface and in-memory implementation."""

import itertools
from datetime import UTC, datetime
from typing import Any, Protocol

from chronicler.models.character import Character
from chronicler.models.user import User
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Infrastructure failure in the data store."""


class CharacterNotFoundError(LookupError):
    """Raised when a character id does not exist."""


class CharacterAccessError(PermissionError):
    """Raised when a character exists but belongs to another user."""


class CharacterStore(Protocol):
    """Interface for user and character persistence.

    Any method may raise StoreError when the backing store is unreachable.
    """

    async def find_or_create_user(self, email: str) -> User:
        """Resolve an email to a user, creating the user on first sight."""
        ...

    async def create_character(self, owner_id: int, name: str) -> Character: ...

    async def get_character(self, character_id: int, owner_id: int) -> Character:
        """Get a character owned by owner_id.

        Raises:
            CharacterNotFoundError: No character with this id
            CharacterAccessError: Character belongs to another user
        """
        ...

    async def update_character(self, character_id: int, owner_id: int, **changes: Any) -> Character:
        """Apply field changes to an owned character and return the new record."""
        ...

    async def list_characters(self, owner_id: int) -> list[Character]: ...


class InMemoryCharacterStore:
    """In-memory character store.

    Records are copied on the way in and out so callers never hold a live
    reference to stored state.
    """

    def __init__(self):
        self.users: dict[str, User] = {}
        self.characters: dict[int, Character] = {}
        self._user_ids = itertools.count(1)
        self._character_ids = itertools.count(1)

    async def find_or_create_user(self, email: str) -> User:
        key = email.strip().lower()
        if not key:
            raise ValueError("Email is required")

        user = self.users.get(key)
        if user is None:
            user = User(id=next(self._user_ids), email=key)
            self.users[key] = user
            logger.info(f"Created user {user.id} for {key}")
        return user

    async def create_character(self, owner_id: int, name: str) -> Character:
        character = Character(id=next(self._character_ids), owner_id=owner_id, name=name)
        self.characters[character.id] = character
        return character.model_copy(deep=True)

    async def get_character(self, character_id: int, owner_id: int) -> Character:
        return self._find_owned(character_id, owner_id).model_copy(deep=True)

    async def update_character(self, character_id: int, owner_id: int, **changes: Any) -> Character:
        current = self._find_owned(character_id, owner_id)
        updated = current.model_copy(update={**changes, "updated_at": datetime.now(UTC)}, deep=True)
        self.characters[character_id] = updated
        return updated.model_copy(deep=True)

    async def list_characters(self, owner_id: int) -> list[Character]:
        return [c.model_copy(deep=True) for c in self.characters.values() if c.owner_id == owner_id]

    def _find_owned(self, character_id: int, owner_id: int) -> Character:
        character = self.characters.get(character_id)
        if character is None:
            raise CharacterNotFoundError(f"Character {character_id} not found")
        if character.owner_id != owner_id:
            raise CharacterAccessError(f"Character {character_id} does not belong to user {owner_id}")
        return character
