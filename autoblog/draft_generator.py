"""Draft Generator — templated article bodies for a topic, plus rewrite variants."""

from __future__ import annotations

import logging
import math
import random
import re

import markdown as md_lib
from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader

log = logging.getLogger(__name__)

INTRODUCTIONS = [
    "Mastering {title} opens doors to authentic Portuguese communication.",
    "Understanding {title} is a cornerstone of European Portuguese fluency.",
    "Effective {title} usage distinguishes confident Portuguese speakers.",
    "The key to natural Portuguese lies in proper {title} application.",
]

EXTRA_SECTIONS = [
    "## Common Patterns\n\nRecognizing patterns in {title} helps accelerate your learning process.",
    "## Advanced Applications\n\nOnce you master the basics, explore more sophisticated uses of {title}.",
    "## Cultural Context\n\nUnderstanding the cultural background enhances your {title} usage.",
    "## Regional Variations\n\nEuropean Portuguese has subtle variations in {title} across different regions.",
]

PHRASE_SUBSTITUTIONS = [
    ("essential for effective communication", "crucial for successful interaction"),
    ("real-world applications", "practical implementations"),
    ("significantly improve", "substantially enhance"),
    ("practice regularly", "maintain consistent practice"),
    ("native speakers", "Portuguese speakers"),
    ("everyday interactions", "daily conversations"),
    ("business contexts", "professional environments"),
    ("language nuances", "linguistic subtleties"),
]

WORDS_PER_MINUTE = 200


def plain_text(markdown_text: str) -> str:
    """Render markdown and strip the markup, so link URLs don't count as words."""
    html = md_lib.markdown(markdown_text or "")
    return BeautifulSoup(html, "html.parser").get_text(" ")


def read_time(markdown_text: str) -> str:
    words = len(plain_text(markdown_text).split())
    return f"{max(1, math.ceil(words / WORDS_PER_MINUTE))} min read"


class DraftGenerator:
    """Fills the article templates for a topic; no language model involved."""

    def __init__(self, templates_dir: str = "templates", rng: random.Random | None = None):
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.rng = rng or random.Random()

    def draft(self, topic) -> str:
        template = self.env.get_template("draft.md.j2")
        return template.render(
            title_lower=topic.title.lower(),
            description_lower=topic.description.lower(),
        ).strip()

    def regenerate(self, topic, hints: list[str] | None = None) -> str:
        """A structurally different body built from the topic's own description and keywords."""
        if hints:
            log.info(f"Regenerating '{topic.title}' ({len(hints)} uniqueness hints)")
        title_lower = topic.title.lower()
        keywords = list(topic.keywords) or [title_lower]

        template = self.env.get_template("regenerated.md.j2")
        return template.render(
            introduction=self.rng.choice(INTRODUCTIONS).format(title=title_lower),
            extra_section=self.rng.choice(EXTRA_SECTIONS).format(title=title_lower),
            description=(topic.description or topic.title).rstrip("."),
            keywords=keywords,
            keywords_phrase=", ".join(keywords[:3]),
            title_lower=title_lower,
        ).strip()

    def mutate(self, text: str) -> str:
        """Swap stock phrases for synonyms from a fixed table."""
        for original, replacement in PHRASE_SUBSTITUTIONS:
            text = re.sub(re.escape(original), replacement, text, flags=re.IGNORECASE)
        return text
