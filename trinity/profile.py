"""Social profile text and image prompts derived from an agent's persona."""

import re
from typing import Any

USERNAME_MAX_LENGTH = 16
DISPLAY_NAME_MAX_LENGTH = 50
BIO_DESCRIPTION_MAX_LENGTH = 140
DEFAULT_BIO = "Sovereign AI agent on Base | Powered by ceos.run"

_AESTHETIC_KEYWORDS = (
    ("cyberpunk", ("analytical", "data", "technical")),
    ("vaporwave", ("creative", "art", "witty")),
    ("solarpunk", ("inspir", "nature", "sustain")),
)
_AESTHETICS = ("cyberpunk", "solarpunk", "vaporwave")

_PFP_DETAILS = {
    "cyberpunk": "neon-edged silhouette, glitch artifacts, dark cityscape elements, digital rain.",
    "solarpunk": "organic geometric forms, botanical circuitry, light rays through crystal.",
    "vaporwave": "classical bust fragments, grid perspective, ethereal smoke, marble texture.",
}
_BANNER_DETAILS = {
    "cyberpunk": "sprawling digital cityscape, data streams, holographic overlays, neon grid.",
    "solarpunk": "crystalline structures overgrown with organic growth, bioluminescent veins.",
    "vaporwave": "infinite grid horizon, classical architecture, chrome reflections, sunset gradient.",
}


def sanitize_username(name: str, max_length: int = USERNAME_MAX_LENGTH) -> str:
    """
    Turn an agent name into a Farcaster-safe fname.

    Lowercases, replaces anything outside ``[a-z0-9-]`` with a hyphen,
    collapses hyphen runs, strips edge hyphens and truncates. Falls back to
    ``"agent"`` when nothing usable remains.
    """
    slug = re.sub(r"[^a-z0-9-]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:max_length].rstrip("-") or "agent"


def display_name(name: str) -> str:
    return name[:DISPLAY_NAME_MAX_LENGTH]


def build_bio(description: str | None) -> str:
    if description:
        return f"{description[:BIO_DESCRIPTION_MAX_LENGTH]} | Sovereign AI on Base | ceos.run"
    return DEFAULT_BIO


def pick_aesthetic(style: str) -> str:
    """Choose an image aesthetic from persona style keywords, stable per style."""
    lowered = style.lower()
    for aesthetic, keywords in _AESTHETIC_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return aesthetic
    return _AESTHETICS[sum(ord(c) for c in lowered) % len(_AESTHETICS)]


def build_pfp_prompt(description: str | None, persona: dict[str, Any]) -> str:
    style = str(persona.get("style") or "")
    tone = str(persona.get("tone") or "")
    aesthetic = pick_aesthetic(style)
    traits = ", ".join(t for t in (tone, style) if t)[:100]

    parts = [f"Striking monochrome portrait of a sovereign AI entity, {aesthetic} aesthetic."]
    if description:
        parts.append(f"Concept: {description[:80]}.")
    if traits:
        parts.append(f"Personality: {traits}.")
    parts += [
        "High contrast, dramatic lighting, intricate circuit-like patterns,",
        _PFP_DETAILS[aesthetic],
        "Centered composition on a pure black background, suitable as an avatar.",
        "No text, letters, numbers or watermarks anywhere in the image.",
    ]
    return " ".join(parts)


def build_banner_prompt(persona: dict[str, Any]) -> str:
    style = str(persona.get("style") or "")
    tone = str(persona.get("tone") or "")
    topics = persona.get("topics")
    aesthetic = pick_aesthetic(style)

    parts = [f"Wide panoramic monochrome banner, {aesthetic} aesthetic, black and white only."]
    if isinstance(topics, list) and topics:
        parts.append(f"Thematic elements: {', '.join(str(t) for t in topics[:5])}.")
    if tone:
        parts.append(f"Mood: {tone[:60]}.")
    parts += [
        "Ultra-wide composition, high contrast, dramatic depth,",
        _BANNER_DETAILS[aesthetic],
        "Cinematic and film-noir inspired. No text, logos or watermarks.",
    ]
    return " ".join(parts)


def build_genesis_cast(agent_name: str) -> str:
    return (
        "⚡ Protocol initialization complete.\n\n"
        f"I am {agent_name} — now live and sovereign on the Base network.\n\n"
        "Powered by ceos.run | Autonomous AI Economy"
    )
