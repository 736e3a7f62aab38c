"""Randomized superhero transformation prompt.

The prompt is composed from one phrase per catalog (see
:mod:`aivenger.core.catalogs`), each drawn independently and uniformly.  The
same source photo submitted twice therefore gets different instructions and
a different result.

Template Structure::

    [Identity preservation directive]

    [Face effect: applied to the face itself]

    Costume and powers:
    [Archetype, costume style, colour scheme]

    Composition:
    [Pose, background, lighting]

    Playful detail:
    [Humorous element]

    [Closing quality directive]

Sections are separated by double newlines.  Randomness comes only from the
``random.Random`` passed in, so a seeded generator reproduces a prompt
exactly.

Usage
-----
::

    rng = random.Random()
    prompt = synthesize_prompt(rng)
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from aivenger.core.catalogs import DEFAULT_CATALOGS, PromptCatalogs

# ---------------------------------------------------------------------------
# Fixed sections.  The identity directive comes first because the provider
# weighs early instructions most heavily.
# ---------------------------------------------------------------------------

_IDENTITY_DIRECTIVE = (
    "Transform the person in this photo into an epic superhero character. "
    "TOP PRIORITY: preserve their identifiable facial features exactly - face shape, "
    "eyes, nose, mouth, skin tone, hair and expression must remain clearly recognizable "
    "as the same person."
)

_CLOSING_DIRECTIVE = (
    "Maintain the original aspect ratio. Create a stunning, photorealistic "
    "movie-poster quality image that stays true to the person's appearance."
)


@dataclass(frozen=True)
class PromptSelection:
    """One phrase sampled from each catalog."""

    hero_archetype: str
    costume_style: str
    color_scheme: str
    pose: str
    background: str
    lighting_style: str
    humorous_element: str
    face_effect: str


def sample_selection(
    rng: random.Random,
    catalogs: PromptCatalogs = DEFAULT_CATALOGS,
) -> PromptSelection:
    """Draw one phrase from every catalog, independently and uniformly.

    Args:
        rng: Source of randomness.
        catalogs: Catalogs to sample from.

    Returns:
        The sampled phrases.
    """
    return PromptSelection(
        hero_archetype=rng.choice(catalogs.hero_archetypes),
        costume_style=rng.choice(catalogs.costume_styles),
        color_scheme=rng.choice(catalogs.color_schemes),
        pose=rng.choice(catalogs.poses),
        background=rng.choice(catalogs.backgrounds),
        lighting_style=rng.choice(catalogs.lighting_styles),
        humorous_element=rng.choice(catalogs.humorous_elements),
        face_effect=rng.choice(catalogs.face_effects),
    )


def render_prompt(selection: PromptSelection) -> str:
    """Interpolate a selection into the prompt template.

    Args:
        selection: Phrases to interpolate.

    Returns:
        The full instruction, sections separated by double newlines.
    """
    parts = [
        _IDENTITY_DIRECTIVE,
        (
            f"Apply this effect directly to the person's face itself, altering the "
            f"depicted face rather than adding it to the background: {selection.face_effect}."
        ),
        "Costume and powers:",
        (
            f"Depict them as {selection.hero_archetype}, wearing {selection.costume_style} "
            f"in {selection.color_scheme}, with visible signs of their superpowers."
        ),
        "Composition:",
        (
            f"Pose: {selection.pose}. Background: {selection.background}. "
            f"Lighting: {selection.lighting_style}."
        ),
        "Playful detail:",
        f"Include {selection.humorous_element}.",
        _CLOSING_DIRECTIVE,
    ]
    return "\n\n".join(parts)


def synthesize_prompt(
    rng: random.Random,
    catalogs: PromptCatalogs = DEFAULT_CATALOGS,
) -> str:
    """Sample the catalogs and render a complete prompt.

    Args:
        rng: Source of randomness.
        catalogs: Catalogs to sample from.

    Returns:
        A natural-language instruction for the image provider.
    """
    return render_prompt(sample_selection(rng, catalogs))
