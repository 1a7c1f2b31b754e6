"""Topic catalog — the fixed pool of subjects that seed generated posts."""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass

import yaml
from slugify import slugify

log = logging.getLogger(__name__)

DIFFICULTIES = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True)
class Topic:
    id: str
    title: str
    description: str
    category: str
    difficulty: str = "beginner"
    keywords: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Topic":
        difficulty = data.get("difficulty", "beginner")
        if difficulty not in DIFFICULTIES:
            raise ValueError(f"Invalid difficulty '{difficulty}' for topic '{data.get('title')}'")
        title = data["title"]
        return cls(
            id=data.get("id") or slugify(title, max_length=80),
            title=title,
            description=data.get("description", ""),
            category=data.get("category", ""),
            difficulty=difficulty,
            keywords=tuple(data.get("keywords", [])),
        )


class TopicPool:
    """Hands out topics that no published post has used yet."""

    def __init__(self, topics: list[Topic], rng: random.Random | None = None):
        ids = [t.id for t in topics]
        if len(ids) != len(set(ids)):
            raise ValueError("Topic catalog contains duplicate topic ids")
        self.topics = list(topics)
        self.rng = rng or random.Random()

    @classmethod
    def load(cls, path: str, rng: random.Random | None = None) -> "TopicPool":
        if not os.path.exists(path):
            log.warning(f"Topic catalog not found: {path}")
            return cls([], rng=rng)
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        topics = [Topic.from_dict(entry) for entry in data.get("topics", [])]
        log.info(f"Loaded {len(topics)} topics from {path}")
        return cls(topics, rng=rng)

    def get(self, topic_id: str) -> Topic | None:
        return next((t for t in self.topics if t.id == topic_id), None)

    def available(self, used_ids: set[str]) -> list[Topic]:
        return [t for t in self.topics if t.id not in used_ids]

    def pick(self, used_ids: set[str]) -> Topic | None:
        """Random unused topic, or None when the pool is exhausted."""
        candidates = self.available(used_ids)
        if not candidates:
            return None
        return self.rng.choice(candidates)

    def match_titles(self, titles: list[str]) -> set[str]:
        """Topic ids whose title overlaps a published title.

        Only used to migrate corpora written before topic ids were recorded;
        the substring test misses paraphrased titles.
        """
        matched = set()
        for topic in self.topics:
            topic_title = topic.title.lower()
            for title in titles:
                title = title.lower()
                if title and (topic_title in title or title in topic_title):
                    matched.add(topic.id)
                    break
        return matched
