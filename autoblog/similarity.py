"""Similarity Engine — text similarity and uniqueness validation against the published corpus."""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from rapidfuzz.distance import Levenshtein

log = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

JACCARD_WEIGHT = 0.4
COSINE_WEIGHT = 0.4
EDIT_WEIGHT = 0.2


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _NON_WORD.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def jaccard_similarity(words1: Sequence[str], words2: Sequence[str]) -> float:
    set1, set2 = set(words1), set(words2)
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def cosine_similarity(words1: Sequence[str], words2: Sequence[str]) -> float:
    freq1, freq2 = Counter(words1), Counter(words2)
    if not freq1 or not freq2:
        return 0.0
    dot = sum(count * freq2[word] for word, count in freq1.items())
    norm1 = sum(count * count for count in freq1.values())
    norm2 = sum(count * count for count in freq2.values())
    # Integer norms keep sqrt(n*n) exact, so identical texts score exactly 1.
    return min(1.0, dot / math.sqrt(norm1 * norm2))


def edit_similarity(text1: str, text2: str, max_chars: int | None = None) -> float:
    if max_chars:
        text1, text2 = text1[:max_chars], text2[:max_chars]
    longest = max(len(text1), len(text2))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(text1, text2) / longest


def similarity(text1: str, text2: str, max_edit_chars: int | None = 5000) -> float:
    """Weighted Jaccard / cosine / edit-distance similarity in [0, 1]."""
    norm1, norm2 = normalize_text(text1), normalize_text(text2)
    return _normalized_similarity(norm1, norm2, norm1.split(), norm2.split(), max_edit_chars)


def _normalized_similarity(norm1: str, norm2: str, words1: list[str], words2: list[str],
                           max_edit_chars: int | None) -> float:
    if not norm1 and not norm2:
        return 0.0
    score = (
        jaccard_similarity(words1, words2) * JACCARD_WEIGHT
        + cosine_similarity(words1, words2) * COSINE_WEIGHT
        + edit_similarity(norm1, norm2, max_edit_chars) * EDIT_WEIGHT
    )
    return max(0.0, min(1.0, score))


@dataclass
class DuplicateMatch:
    post_id: str
    title: str
    similarity_percentage: int
    duplicate_segments: list[str] = field(default_factory=list)


@dataclass
class SimilarityVerdict:
    score: float
    is_unique: bool
    matches: list[DuplicateMatch] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def duplicate_segments(self) -> list[str]:
        segments: list[str] = []
        for match in self.matches:
            segments.extend(s for s in match.duplicate_segments if s not in segments)
        return segments


@dataclass
class SimilarTitle:
    post_id: str
    title: str
    similarity: float


@dataclass
class UniquenessReport:
    total_posts: int
    unique_posts: int
    duplicate_pairs: list[tuple[str, str, float]] = field(default_factory=list)
    average_uniqueness: float = 1.0


class UniquenessValidator:
    """Checks a draft against every published post and explains near-duplicates."""

    def __init__(self, threshold: float = 0.3, segment_words: int = 50,
                 segment_similarity: float = 0.8, max_segments: int = 150,
                 max_edit_chars: int = 5000, title_threshold: float = 0.5):
        self.threshold = threshold
        self.segment_words = segment_words
        self.segment_similarity = segment_similarity
        self.max_segments = max_segments
        self.max_edit_chars = max_edit_chars
        self.title_threshold = title_threshold

    @classmethod
    def from_config(cls, config: dict) -> "UniquenessValidator":
        cfg = config.get("uniqueness", {})
        return cls(
            threshold=cfg.get("threshold", 0.3),
            segment_words=cfg.get("segment_words", 50),
            segment_similarity=cfg.get("segment_similarity", 0.8),
            max_segments=cfg.get("max_segments", 150),
            max_edit_chars=cfg.get("max_edit_chars", 5000),
        )

    def similarity(self, text1: str, text2: str) -> float:
        return similarity(text1, text2, self.max_edit_chars)

    def validate(self, draft: str, title: str, corpus: Sequence) -> SimilarityVerdict:
        """Score a draft against the corpus; unique iff the max similarity is below the threshold."""
        if not corpus or not normalize_text(draft):
            return SimilarityVerdict(score=0.0, is_unique=True)

        matches: list[DuplicateMatch] = []
        max_similarity = 0.0

        for post in corpus:
            title_similarity = self.similarity(title, post.title)
            content_similarity = self.similarity(draft, post.body)
            overall = max(title_similarity, content_similarity)

            if overall > self.threshold:
                matches.append(DuplicateMatch(
                    post_id=post.id,
                    title=post.title,
                    similarity_percentage=round(overall * 100),
                    duplicate_segments=self.find_duplicate_segments(draft, post.body),
                ))
            max_similarity = max(max_similarity, overall)

        matches.sort(key=lambda m: m.similarity_percentage, reverse=True)
        verdict = SimilarityVerdict(
            score=max_similarity,
            is_unique=max_similarity < self.threshold,
            matches=matches,
            recommendations=self.recommendations(matches, max_similarity),
        )
        log.debug(f"Uniqueness score {verdict.score:.3f} across {len(corpus)} posts")
        return verdict

    def find_duplicate_segments(self, text1: str, text2: str) -> list[str]:
        """Return windows of text1 that nearly duplicate some window of text2."""
        windows1 = self._windows(text1)
        windows2 = self._windows(text2)
        if not windows1 or not windows2:
            return []

        prepared2 = [(w, w.split(), frozenset(w.split())) for w in windows2]
        duplicates: list[str] = []
        seen: set[str] = set()
        # sim = 0.4*j + 0.4*c + 0.2*e <= 0.4*j + 0.6, so j must exceed this bound
        min_jaccard = (self.segment_similarity - COSINE_WEIGHT - EDIT_WEIGHT) / JACCARD_WEIGHT

        for window in windows1:
            if window in seen:
                continue
            words = window.split()
            word_set = frozenset(words)
            for other, other_words, other_set in prepared2:
                union = len(word_set | other_set)
                if not union or len(word_set & other_set) / union <= min_jaccard:
                    continue
                score = _normalized_similarity(window, other, words, other_words, self.max_edit_chars)
                if score > self.segment_similarity:
                    seen.add(window)
                    duplicates.append(window)
                    break
        return duplicates

    def _windows(self, text: str) -> list[str]:
        words = normalize_text(text).split()
        count = len(words) - self.segment_words + 1
        if count <= 0:
            return []
        stride = 1
        if self.max_segments and count > self.max_segments:
            stride = math.ceil(count / self.max_segments)
        return [" ".join(words[i:i + self.segment_words]) for i in range(0, count, stride)]

    def recommendations(self, matches: list[DuplicateMatch], max_similarity: float) -> list[str]:
        recs: list[str] = []

        if max_similarity > 0.7:
            recs.append("Content is very similar to existing posts. Consider completely rewriting with a different approach.")
        elif max_similarity > 0.5:
            recs.append("Content has significant similarities. Rewrite duplicate sections and add more original insights.")
        elif max_similarity > 0.3:
            recs.append("Some similarities detected. Review and modify similar sections to improve uniqueness.")

        if matches:
            recs.append(f"Found similarities with {len(matches)} existing post(s). Review the highlighted sections.")
            for match in matches:
                if match.duplicate_segments:
                    recs.append(f'Rewrite sections similar to "{match.title}" ({match.similarity_percentage}% similar).')

        if max_similarity > self.threshold:
            recs.extend([
                "Add more personal insights and unique perspectives.",
                "Include specific examples and case studies.",
                "Use different vocabulary and sentence structures.",
                "Add original research or data points.",
                "Include practical exercises or activities.",
            ])
        return recs

    def validate_title(self, title: str, corpus: Sequence) -> list[SimilarTitle]:
        """Return published titles too close to the proposed one, most similar first."""
        similar = []
        for post in corpus:
            score = self.similarity(title, post.title)
            if score > self.title_threshold:
                similar.append(SimilarTitle(post_id=post.id, title=post.title, similarity=round(score, 2)))
        return sorted(similar, key=lambda s: s.similarity, reverse=True)

    def uniqueness_report(self, corpus: Sequence) -> UniquenessReport:
        """Pairwise body similarity across the whole corpus."""
        posts = list(corpus)
        pairs: list[tuple[str, str, float]] = []
        total = 0.0
        comparisons = 0

        for i, first in enumerate(posts):
            for second in posts[i + 1:]:
                score = self.similarity(first.body, second.body)
                total += score
                comparisons += 1
                if score > self.threshold:
                    pairs.append((first.title, second.title, round(score, 2)))

        average = 1 - total / comparisons if comparisons else 1.0
        return UniquenessReport(
            total_posts=len(posts),
            unique_posts=len(posts) - len(pairs),
            duplicate_pairs=sorted(pairs, key=lambda p: p[2], reverse=True),
            average_uniqueness=round(average, 2),
        )

    def suggest_improvements(self, body: str, duplicate_segments: list[str]) -> list[str]:
        suggestions: list[str] = []
        sentences = [s for s in re.split(r"[.!?]+", body) if s.strip()]
        paragraphs = [p for p in re.split(r"\n\s*\n", body) if p.strip()]

        if len(body.split()) < 500:
            suggestions.append("Expand content to at least 500 words for better uniqueness.")
        if len(paragraphs) < 3:
            suggestions.append("Break content into more paragraphs for better structure.")
        if len(sentences) < 10:
            suggestions.append("Add more detailed explanations and examples.")

        if duplicate_segments:
            suggestions.append("Rewrite the following similar sections:")
            suggestions.extend(f'- "{segment[:100]}..."' for segment in duplicate_segments[:3])

        suggestions.extend([
            "Add personal anecdotes or experiences.",
            "Include specific Portuguese examples with translations.",
            "Use varied sentence structures and vocabulary.",
        ])
        return suggestions
