from __future__ import annotations

import json
import re

ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert at analyzing restaurant reviews for unusual, strange, or surreal elements. "
    "You return JSON responses only."
)

FLAGGED_WORDS = (
    "blood", "bloody", "kill", "murder", "dead", "death", "die", "dying",
    "gun", "shoot", "weapon", "knife", "stab", "fight", "attack",
    "drug", "cocaine", "heroin", "meth",
    "naked", "nude", "sex", "sexual",
    "hate", "racist", "racial",
    "vomit", "puke", "disgusting",
    "roach", "cockroach", "rat", "mice", "vermin",
    "poison", "toxic", "contaminated",
)

FLAGGED_RE = re.compile(r"\b(?:" + "|".join(FLAGGED_WORDS) + r")\w*\b", re.IGNORECASE)

PANEL_LAYOUTS = {
    1: "Single-panorama comic strip (one wide scene filling the frame)",
    2: "Two-panel comic strip with equal landscape panels stacked vertically",
    3: "Three-panel strip with cinematic flow (left-to-right storytelling)",
    4: "Four-panel comic strip arranged left-to-right, top-to-bottom (1-2 on top row, 3-4 on bottom row)",
}

PANEL_BREAKDOWNS = {
    1: "1. Capture the most surreal moment as a cinematic snapshot with supporting background details.",
    2: (
        "1. Setup the unusual situation or conflict.\n"
        "2. Deliver the punchline, reaction, or outcome with expressive characters."
    ),
    3: (
        "1. Introduce the setting and main characters.\n"
        "2. Escalate the bizarre or unexpected element.\n"
        "3. Conclude with the payoff or lingering reaction."
    ),
    4: (
        "1. Setup the restaurant and characters (establish the normal world).\n"
        "2. Introduce the strange or unsettling twist.\n"
        "3. Spotlight the climax or most absurd detail.\n"
        "4. Show the aftermath or characters processing what happened."
    ),
}


def build_analysis_prompt(reviews: list[str]) -> str:
    reviews_text = "\n\n".join(f"Review {idx}: {text}" for idx, text in enumerate(reviews, start=1))

    output_contract = {
        "strangenessScore": 75,
        "panelCount": 3,
        "narrative": "A concise summary of the strangest elements suitable for a comic strip.",
    }

    return (
        "Analyze these restaurant reviews for strangeness. Rate the overall strangeness on a scale of 0-100:\n"
        "- 0-20: Completely normal, typical restaurant experience\n"
        "- 21-40: Slightly unusual details or phrasing\n"
        "- 41-60: Moderately strange situations or observations\n"
        "- 61-80: Very weird, surreal, or unexpected experiences\n"
        "- 81-100: Extremely bizarre, dreamlike, or nonsensical content\n\n"
        "Also write a concise narrative paragraph (1-3 sentences) summarizing the strangest aspects "
        "for comic generation.\n"
        "Determine the optimal number of panels (1-4) for the comic based on narrative complexity:\n"
        "- 1 panel: Single moment, simple observation, or quick joke\n"
        "- 2 panels: Before/after, cause/effect, or simple contrast\n"
        "- 3 panels: Setup, escalation, punchline\n"
        "- 4 panels: Full story arc with setup, development, climax, resolution\n\n"
        "Reviews:\n"
        f"{reviews_text}\n\n"
        "Return JSON in this exact format:\n"
        f"{json.dumps(output_contract, indent=2)}\n"
    )


def sanitize_narrative(narrative: str) -> str:
    """Replace words likely to trip image content filters with a neutral term."""
    return FLAGGED_RE.sub("unusual", narrative)


def build_comic_prompt(narrative: str, panel_count: int) -> str:
    layout = PANEL_LAYOUTS.get(panel_count, PANEL_LAYOUTS[4])
    breakdown = PANEL_BREAKDOWNS.get(panel_count, PANEL_BREAKDOWNS[4])

    return (
        f"Create a vibrant {panel_count}-panel comic strip in a clean, modern illustration style.\n\n"
        "REQUIREMENTS:\n"
        f"1. Create EXACTLY {panel_count} panel(s)\n"
        "2. Do NOT draw any text, speech bubbles, word balloons, captions, labels, signs, or writing anywhere\n"
        "3. This is a SILENT COMIC - tell the story purely through visuals\n\n"
        "Story context:\n"
        f'"{narrative}"\n\n'
        f"Layout: {layout}\n"
        "- Consistent characters across panels with matching outfits and visual traits\n"
        f"- Clean panel gutters/borders separating EXACTLY {panel_count} panel(s)\n\n"
        "Panel breakdown:\n"
        f"{breakdown}\n\n"
        "Visual style:\n"
        f"- Square image with {panel_count} distinct panels\n"
        "- Bold outlines, vivid colors, exaggerated facial expressions\n"
        "- Modern cartoon illustration (NOT manga, NOT realistic)\n"
        "- Leave clear empty space in each panel for text overlay\n"
        "- Tell the story through actions, expressions, and body language only\n"
    )
