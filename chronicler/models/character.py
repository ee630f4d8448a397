"""Character and game content models."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

STAT_NAMES = ("Strength", "Dexterity", "Constitution", "Intelligence", "Wisdom", "Charisma")


class ApprovalStatus(StrEnum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted for Approval"
    REVISED = "Revised"


class StatBlock(BaseModel):
    """The six core attributes, keyed by their display names on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    strength: int = Field(..., alias="Strength")
    dexterity: int = Field(..., alias="Dexterity")
    constitution: int = Field(..., alias="Constitution")
    intelligence: int = Field(..., alias="Intelligence")
    wisdom: int = Field(..., alias="Wisdom")
    charisma: int = Field(..., alias="Charisma")

    def as_dict(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


class Character(BaseModel):
    """A player character owned by a single user."""

    id: int
    owner_id: int
    name: str
    class_name: str | None = None
    race_name: str | None = None
    stats: StatBlock | None = None
    status: ApprovalStatus = ApprovalStatus.DRAFT
    dm_feedback: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def snapshot(self) -> dict:
        """Render the character the way tools report it back to the model."""
        return {
            "id": self.id,
            "name": self.name,
            "class": self.class_name,
            "race": self.race_name,
            "stats": self.stats.as_dict() if self.stats else None,
            "approvalStatus": self.status.value,
            "dmFeedback": self.dm_feedback,
        }


@dataclass
class CharacterClass:
    """A playable class from the game catalog."""

    id: int
    name: str
    description: str
    how_to_play: str = ""


@dataclass
class Race:
    """A playable race from the game catalog."""

    id: int
    name: str
    description: str
