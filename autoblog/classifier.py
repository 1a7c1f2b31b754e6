"""Classifier — scores free text against the category/tag taxonomy."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field

import yaml

log = logging.getLogger(__name__)

STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can", "this", "that", "these", "those",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their", "mine", "yours", "ours", "theirs",
}

REGION_INDICATORS = ("portuguese", "portugal", "brazil", "lusophone")
PRACTICAL_WORDS = {"example", "practice", "exercise", "tip"}
EVERYDAY_WORDS = {"common", "everyday", "daily", "useful"}

PRIMARY_CATEGORY_BOOST = 1.5
TAG_THRESHOLD = 0.1
MAX_TAGS = 8
MIN_TAGS = 3


class TaxonomyError(ValueError):
    pass


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    keywords: tuple[str, ...]
    weight: float = 1.0
    description: str = ""


@dataclass(frozen=True)
class Tag:
    id: str
    name: str
    keywords: tuple[str, ...]
    category_id: str
    weight: float = 1.0


@dataclass
class Taxonomy:
    categories: list[Category]
    tags: list[Tag]
    fallback_category: str

    @classmethod
    def load(cls, path: str) -> "Taxonomy":
        if not os.path.exists(path):
            raise TaxonomyError(f"Taxonomy file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        taxonomy = cls.from_dict(data)
        log.info(f"Loaded taxonomy: {len(taxonomy.categories)} categories, {len(taxonomy.tags)} tags")
        return taxonomy

    @classmethod
    def from_dict(cls, data: dict) -> "Taxonomy":
        categories = [
            Category(
                id=c["id"],
                name=c.get("name", c["id"]),
                keywords=tuple(c.get("keywords", [])),
                weight=float(c.get("weight", 1.0)),
                description=c.get("description", ""),
            )
            for c in data.get("categories", [])
        ]
        if not categories:
            raise TaxonomyError("Taxonomy defines no categories")

        category_ids = {c.id for c in categories}
        tags = []
        for t in data.get("tags", []):
            parent = t.get("category", "")
            if parent not in category_ids:
                raise TaxonomyError(f"Tag '{t.get('name')}' references unknown category '{parent}'")
            tags.append(Tag(
                id=t.get("id", t["name"].lower()),
                name=t["name"],
                keywords=tuple(t.get("keywords", [])),
                category_id=parent,
                weight=float(t.get("weight", 1.0)),
            ))

        fallback = data.get("fallback_category", categories[0].id)
        if fallback not in category_ids:
            raise TaxonomyError(f"Fallback category '{fallback}' is not defined")
        return cls(categories=categories, tags=tags, fallback_category=fallback)

    def category(self, category_id: str) -> Category:
        for category in self.categories:
            if category.id == category_id:
                return category
        raise KeyError(category_id)


@dataclass
class ClassificationResult:
    category: str
    category_id: str
    tags: list[str] = field(default_factory=list)
    confidence: float = 0.0
    heuristic_tags: list[str] = field(default_factory=list)


def tokenize(text: str) -> list[str]:
    """Lowercase words longer than two characters, stop words removed."""
    words = re.sub(r"[^\w\s]", " ", (text or "").lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS]


def _phrase_matches(phrase: str, vocabulary: set[str]) -> bool:
    return all(
        any(part in word or word in part for word in vocabulary)
        for part in phrase.lower().split()
    )


class Classifier:
    """Picks a category and tags for a post from keyword matches against the taxonomy."""

    def __init__(self, taxonomy: Taxonomy):
        self.taxonomy = taxonomy

    @classmethod
    def from_path(cls, path: str) -> "Classifier":
        return cls(Taxonomy.load(path))

    def classify(self, title: str, body: str) -> ClassificationResult:
        words = tokenize(f"{title} {body}")
        vocabulary = set(words)
        count = len(words)

        best = self.taxonomy.category(self.taxonomy.fallback_category)
        best_score = 0.0
        for category in self.taxonomy.categories:
            score = self._score(category.keywords, category.weight, vocabulary, count, 100)
            if score > best_score:
                best, best_score = category, score

        tag_scores = []
        for tag in self.taxonomy.tags:
            weight = tag.weight * (PRIMARY_CATEGORY_BOOST if tag.category_id == best.id else 1.0)
            tag_scores.append((tag.name, self._score(tag.keywords, weight, vocabulary, count, 50)))
        selected = self._select_tags(tag_scores)

        heuristic = [t for t in self._heuristic_tags(words) if t not in selected]
        result = ClassificationResult(
            category=best.name,
            category_id=best.id,
            tags=selected + heuristic,
            confidence=min(1.0, best_score),
            heuristic_tags=heuristic,
        )
        log.debug(f"Classified as {result.category} ({result.confidence:.2f}) with tags {result.tags}")
        return result

    def _score(self, keywords, weight: float, vocabulary: set[str], word_count: int, per: int) -> float:
        matches = sum(1 for phrase in keywords if _phrase_matches(phrase, vocabulary))
        return (weight * matches * matches) / max(word_count / per, 1)

    def _select_tags(self, tag_scores: list[tuple[str, float]]) -> list[str]:
        ranked = sorted(tag_scores, key=lambda item: item[1], reverse=True)
        selected = [name for name, score in ranked if score > TAG_THRESHOLD][:MAX_TAGS]

        # Top up with weaker matches so every post gets a usable tag set
        for name, score in ranked:
            if len(selected) >= MIN_TAGS:
                break
            if score > 0 and name not in selected:
                selected.append(name)
        return selected

    def _heuristic_tags(self, words: list[str]) -> list[str]:
        tags = []
        complex_ratio = sum(1 for w in words if len(w) > 8) / len(words) if words else 0.0
        if complex_ratio < 0.1:
            tags.append("Beginner")
        elif complex_ratio < 0.2:
            tags.append("Intermediate")
        else:
            tags.append("Advanced")

        if any(indicator in word for word in words for indicator in REGION_INDICATORS):
            if any("european" in w or "portugal" in w for w in words):
                tags.append("European Portuguese")
            if any("brazil" in w for w in words):
                tags.append("Brazilian Portuguese")

        vocabulary = set(words)
        if vocabulary & PRACTICAL_WORDS:
            tags.append("Practical")
        if vocabulary & EVERYDAY_WORDS:
            tags.append("Everyday Portuguese")
        return tags

    def tags_for_category(self, category_id: str) -> list[Tag]:
        return [t for t in self.taxonomy.tags if t.category_id == category_id]

    def related_tags(self, tag_name: str) -> list[str]:
        """Other tags under the same category, at most five."""
        tag = next((t for t in self.taxonomy.tags if t.name == tag_name), None)
        if tag is None:
            return []
        return [t.name for t in self.tags_for_category(tag.category_id) if t.name != tag_name][:5]

    def validate_tags(self, tags: list[str]) -> list[str]:
        known = {t.name for t in self.taxonomy.tags}
        return [t for t in tags if t in known or len(t) > 2]
