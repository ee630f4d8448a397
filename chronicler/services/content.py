"""Game content catalog and class/race search."""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from chronicler.models.character import CharacterClass, Race
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

_WORD = re.compile(r"[a-z]+")
_STOPWORDS = frozenset({"a", "an", "and", "the", "of", "to", "who", "with", "i", "want", "is", "in", "that", "for"})


class SearchKind(StrEnum):
    CLASS = "class"
    RACE = "race"


@dataclass
class SearchHit:
    """A catalog entity and its distance from the query (lower is closer)."""

    entity: CharacterClass | Race
    distance: float

    def as_dict(self) -> dict:
        return {
            "id": self.entity.id,
            "name": self.entity.name,
            "description": self.entity.description,
            "distance": round(self.distance, 4),
        }


class SemanticSearch(Protocol):
    """Interface for ranked class/race lookup by free-text description."""

    async def search(self, kind: SearchKind, query: str, limit: int = 10) -> list[SearchHit]:
        """Return hits ordered by ascending distance. An empty list is a valid result."""
        ...


class ContentCatalog:
    """In-memory catalog of playable classes and races."""

    def __init__(self, classes: list[CharacterClass] | None = None, races: list[Race] | None = None):
        self.classes = classes if classes is not None else _default_classes()
        self.races = races if races is not None else _default_races()

    def find_class(self, name: str) -> CharacterClass | None:
        key = name.strip().lower()
        return next((c for c in self.classes if c.name.lower() == key), None)

    def find_race(self, name: str) -> Race | None:
        key = name.strip().lower()
        return next((r for r in self.races if r.name.lower() == key), None)

    def how_to_play(self) -> str:
        """Render the class play guide as markdown."""
        sections = [f"## {c.name}\n{c.how_to_play}" for c in self.classes if c.how_to_play]
        return "# How to play the classes of the Omuns\n\n" + "\n\n".join(sections)


class KeywordSearchService:
    """Keyword-overlap ranking over the catalog.

    Distance is the share of query terms that do not appear in the entity's
    name or description, so an exact thematic match scores 0.0.
    """

    def __init__(self, catalog: ContentCatalog):
        self.catalog = catalog

    async def search(self, kind: SearchKind, query: str, limit: int = 10) -> list[SearchHit]:
        entities: list[CharacterClass] | list[Race] = (
            self.catalog.classes if kind == SearchKind.CLASS else self.catalog.races
        )
        terms = _terms(query)

        hits = [SearchHit(entity=entity, distance=_distance(terms, entity)) for entity in entities]
        hits.sort(key=lambda hit: (hit.distance, hit.entity.name))

        logger.debug(f"Search {kind} for {query!r}: {len(hits)} candidates, returning {min(limit, len(hits))}")
        return hits[:limit]


def _terms(text: str) -> set[str]:
    return {word for word in _WORD.findall(text.lower()) if word not in _STOPWORDS}


def _distance(query_terms: set[str], entity: CharacterClass | Race) -> float:
    if not query_terms:
        return 1.0
    entity_terms = _terms(f"{entity.name} {entity.description}")
    return 1.0 - len(query_terms & entity_terms) / len(query_terms)


def _default_classes() -> list[CharacterClass]:
    return [
        CharacterClass(
            id=1,
            name="Barbarian",
            description="A fierce warrior of primal rage who charges into melee and shrugs off wounds.",
            how_to_play=(
                "Lead with Strength and Constitution. "
                "Rage before closing the distance and stay in the thick of the fight."
            ),
        ),
        CharacterClass(
            id=2,
            name="Fighter",
            description="A disciplined warrior trained in weapons, armor and battlefield tactics.",
            how_to_play="Prioritize Strength or Dexterity depending on your weapon. Hold the line and protect allies.",
        ),
        CharacterClass(
            id=3,
            name="Paladin",
            description="A holy warrior bound by an oath, mixing heavy armor with divine magic.",
            how_to_play="Strength and Charisma carry you. Save divine power for the moments that decide a battle.",
        ),
        CharacterClass(
            id=4,
            name="Ranger",
            description="A wilderness hunter and tracker who fights with bow and blade.",
            how_to_play="Dexterity and Wisdom first. Scout ahead and strike from range.",
        ),
        CharacterClass(
            id=5,
            name="Rogue",
            description="A stealthy trickster who strikes from the shadows with precision.",
            how_to_play="Dexterity above all. Look for flanks and avoid fair fights.",
        ),
        CharacterClass(
            id=6,
            name="Wizard",
            description="A scholar of arcane magic who studies spellbooks to bend reality.",
            how_to_play="Intelligence is everything. Stay behind the front line and control the battlefield.",
        ),
        CharacterClass(
            id=7,
            name="Cleric",
            description="A divine healer and priest channeling the power of the gods.",
            how_to_play="Wisdom for spells, Constitution to survive. Keep the party standing.",
        ),
        CharacterClass(
            id=8,
            name="Druid",
            description="A guardian of nature who shapeshifts into beasts and calls on the wild.",
            how_to_play="Wisdom first. Switch between beast forms and nature magic as the fight demands.",
        ),
        CharacterClass(
            id=9,
            name="Bard",
            description="A charismatic performer whose music and stories weave magic and inspire allies.",
            how_to_play="Charisma drives your magic. Support the party and talk your way past trouble.",
        ),
        CharacterClass(
            id=10,
            name="Warlock",
            description="A seeker of forbidden power granted by a pact with a dark patron.",
            how_to_play="Charisma fuels your pact magic. Lean on a few reliable spells.",
        ),
        CharacterClass(
            id=11,
            name="Monk",
            description="A martial artist who channels inner ki through swift unarmed strikes.",
            how_to_play="Dexterity and Wisdom. Move fast and hit often.",
        ),
        CharacterClass(
            id=12,
            name="Sorcerer",
            description="A wielder of innate, wild magic born into their bloodline.",
            how_to_play="Charisma powers your spells. Shape them on the fly for the situation.",
        ),
    ]


def _default_races() -> list[Race]:
    return [
        Race(id=1, name="Human", description="Adaptable and ambitious people found in every corner of the Omuns."),
        Race(id=2, name="Elf", description="Graceful, long-lived folk of the forests with keen senses and magic."),
        Race(id=3, name="Dwarf", description="Stout, hardy mountain folk known for stubborn resilience and craft."),
        Race(id=4, name="Halfling", description="Small, nimble and lucky wanderers who love comfort and stealth."),
        Race(id=5, name="Orc", description="Strong and fierce warrior people of the wastes, proud and relentless."),
        Race(id=6, name="Gnome", description="Curious, clever tinkerers with a knack for illusion and invention."),
        Race(id=7, name="Tiefling", description="Descendants of a fiendish bloodline, charismatic and mistrusted."),
        Race(id=8, name="Dragonborn", description="Proud draconic warriors who breathe elemental fire."),
    ]
