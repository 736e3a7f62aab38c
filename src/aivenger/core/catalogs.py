"""Prompt catalogs for the superhero transformation prompt.

Each catalog is an immutable tuple of phrases.  The prompt synthesizer picks
one phrase from every catalog per generation, so the catalogs define the full
space of possible prompts.

Catalogs are loaded once at application startup, either the built-in
defaults below or a JSON file named by ``AIVENGER_PROMPT_CATALOG_FILE``.

JSON Format
-----------
A single object with one non-empty list of strings per catalog::

    {
      "hero_archetypes": ["a cosmic guardian", "..."],
      "costume_styles": ["..."],
      "color_schemes": ["..."],
      "poses": ["..."],
      "backgrounds": ["..."],
      "lighting_styles": ["..."],
      "humorous_elements": ["..."],
      "face_effects": ["..."]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)


class PromptCatalogs(BaseModel):
    """The eight phrase catalogs sampled by the prompt synthesizer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hero_archetypes: tuple[str, ...]
    costume_styles: tuple[str, ...]
    color_schemes: tuple[str, ...]
    poses: tuple[str, ...]
    backgrounds: tuple[str, ...]
    lighting_styles: tuple[str, ...]
    humorous_elements: tuple[str, ...]
    face_effects: tuple[str, ...]

    @field_validator("*")
    @classmethod
    def _non_empty(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(item.strip() for item in value if item and item.strip())
        if not cleaned:
            raise ValueError("catalog must contain at least one non-blank entry")
        return cleaned


DEFAULT_CATALOGS = PromptCatalogs(
    hero_archetypes=(
        "a cosmic guardian who protects the galaxy",
        "a street-level vigilante who patrols the city at night",
        "an armored tech genius with a flying exosuit",
        "a mystic sorcerer who bends reality",
        "a lightning-fast speedster",
        "a shape-shifting elemental hero of fire and ice",
        "a royal warrior from a hidden advanced kingdom",
        "a time-travelling hero from the far future",
    ),
    costume_styles=(
        "a sleek form-fitting suit with a flowing cape",
        "high-tech nano armor with glowing seams",
        "a tactical stealth suit with utility belts",
        "ornate ceremonial armor with engraved runes",
        "a retro golden-age costume with a bold chest emblem",
        "a leather jacket over a reinforced bodysuit",
    ),
    color_schemes=(
        "crimson and gold",
        "midnight blue and silver",
        "emerald green and black",
        "royal purple and electric teal",
        "white and sky blue",
        "obsidian black with neon orange accents",
    ),
    poses=(
        "standing tall with fists on hips in a classic heroic stance",
        "mid-flight with one arm stretched forward",
        "crouched on a ledge, ready to leap into action",
        "striding toward the camera with determination",
        "landing in a three-point superhero landing",
        "arms crossed with a confident half-smile",
    ),
    backgrounds=(
        "a futuristic city skyline at dusk",
        "the rooftop of a skyscraper during a thunderstorm",
        "a swirling nebula in deep space",
        "the ruins of an ancient temple crackling with energy",
        "a neon-lit cyberpunk street in the rain",
        "a mountain peak above the clouds at sunrise",
    ),
    lighting_styles=(
        "dramatic cinematic rim lighting with strong contrast",
        "golden-hour backlighting with lens flare",
        "moody low-key lighting with deep shadows",
        "vibrant comic-book style lighting with bold highlights",
        "cool blue moonlight with glowing energy accents",
    ),
    humorous_elements=(
        "a tiny sidekick hamster wearing a matching mini cape",
        "a coffee mug emblazoned with the hero's logo",
        "a cape that is slightly too long and trails on the ground",
        "a sticky note on the suit that reads 'hero in training'",
        "a pet cat unimpressed in the background",
        "a rubber duck tucked into the utility belt",
    ),
    face_effects=(
        "glowing eyes that emit a soft energy light",
        "subtle circuit-like tattoos tracing along the cheekbones",
        "a faint shimmering aura wrapping the outline of the face",
        "crackling electric sparks reflected across the skin",
        "holographic war paint across the forehead and cheeks",
        "a thin luminous mask painted over the eyes",
    ),
)


def load_catalogs(path: Path | None = None) -> PromptCatalogs:
    """Load prompt catalogs from ``path``, or return the built-in defaults.

    Args:
        path: JSON file in the format described in the module docstring.

    Returns:
        Validated, immutable catalogs.

    Raises:
        FileNotFoundError: If ``path`` is given but doesn't exist.
        pydantic.ValidationError: If the file is missing a catalog, has an
            unknown key, or contains an empty catalog.
    """
    if path is None:
        return DEFAULT_CATALOGS

    path = Path(path)
    with open(path, encoding="utf-8") as handle:
        data = json.load(handle)

    catalogs = PromptCatalogs.model_validate(data)
    logger.info(f"Loaded prompt catalogs from {path}")
    return catalogs
