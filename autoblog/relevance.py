"""Relevance Graph — pairwise post relatedness, related-post lists and in-body link insertion."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass

log = logging.getLogger(__name__)

STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can", "this", "that", "these", "those",
}

SAME_CATEGORY = "same-category"
SHARED_TAGS = "shared-tags"
SHARED_KEYWORDS = "shared-keywords"
TEXTUAL_OVERLAP = "textual-overlap"

CATEGORY_WEIGHT = 0.3
TAG_WEIGHT = 0.4
CONTENT_WEIGHT = 0.2
KEYWORD_WEIGHT = 0.1

# Markdown links are kept whole so dots inside a URL do not end a sentence
_SENTENCE = re.compile(r"(?:\[[^\]\n]*\]\([^)\s]*\)|[^.!?\n])+")
_MARKDOWN_LINK = re.compile(r"\[[^\]]*\]\([^)]*\)")
_ANCHOR_UNSAFE = re.compile(r"[\[\]().!?\n]")


@dataclass
class RelevanceEdge:
    source_id: str
    target_id: str
    score: float
    relationship: str


@dataclass
class LinkSuggestion:
    source_id: str
    target_id: str
    anchor_text: str
    sentence: str
    position: int
    score: float


@dataclass
class LinkingReport:
    total_posts: int
    average_related_posts: float
    posts_without_relations: int
    top_linked_posts: list[tuple[str, str, int]]


def significant_words(text: str, limit: int = 50) -> list[str]:
    """Most frequent content words (longer than 3 chars, no stop words)."""
    words = re.sub(r"[^\w\s]", " ", (text or "").lower()).split()
    counts = Counter(w for w in words if len(w) > 3 and w not in STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def _jaccard(items1, items2) -> float:
    set1, set2 = set(items1), set(items2)
    union = set1 | set2
    return len(set1 & set2) / len(union) if union else 0.0


class RelevanceGraph:
    """Scores every pair of posts in a corpus snapshot and derives links from the scores."""

    def __init__(self, posts, blog_path: str = "/blog", max_related: int = 5,
                 min_relevance: float = 0.3, min_link_relevance: float = 0.5,
                 max_auto_links: int = 3):
        self.posts = list(posts)
        self.blog_path = blog_path.rstrip("/")
        self.max_related = max_related
        self.min_relevance = min_relevance
        self.min_link_relevance = min_link_relevance
        self.max_auto_links = max_auto_links
        self._by_id = {p.id: p for p in self.posts}
        self._word_cache: dict[str, tuple[str, list[str]]] = {}

    @classmethod
    def from_config(cls, posts, config: dict) -> "RelevanceGraph":
        linking = config.get("linking", {})
        return cls(
            posts,
            blog_path=config.get("site", {}).get("blog_path", "/blog"),
            max_related=linking.get("max_related", 5),
            min_relevance=linking.get("min_relevance", 0.3),
            min_link_relevance=linking.get("min_link_relevance", 0.5),
            max_auto_links=linking.get("max_auto_links", 3),
        )

    def _content_words(self, post) -> list[str]:
        cached = self._word_cache.get(post.id)
        if cached is None or cached[0] != post.body:
            cached = (post.body, significant_words(post.body, 50))
            self._word_cache[post.id] = cached
        return cached[1]

    def _content_overlap(self, post1, post2) -> float:
        words1, words2 = self._content_words(post1), self._content_words(post2)
        if not words1 or not words2:
            return 0.0
        return len(set(words1) & set(words2)) / max(len(words1), len(words2))

    def edge(self, source, target) -> RelevanceEdge:
        """Weighted relevance of target to source, labelled by its strongest signal."""
        same_category = bool(source.category) and source.category == target.category
        contributions = [
            (SAME_CATEGORY, CATEGORY_WEIGHT if same_category else 0.0),
            (SHARED_TAGS, TAG_WEIGHT * _jaccard(source.tags, target.tags)),
            (SHARED_KEYWORDS, KEYWORD_WEIGHT * _jaccard(source.keywords, target.keywords)
             if source.keywords and target.keywords else 0.0),
            (TEXTUAL_OVERLAP, CONTENT_WEIGHT * self._content_overlap(source, target)),
        ]
        score = min(1.0, sum(value for _, value in contributions))
        relationship = max(contributions, key=lambda item: item[1])[0]
        return RelevanceEdge(source.id, target.id, score, relationship)

    def score(self, source, target) -> float:
        return self.edge(source, target).score

    def related_posts(self, post_id: str) -> list[RelevanceEdge]:
        """Top related posts scoring at least min_relevance, best first."""
        post = self._by_id.get(post_id)
        if post is None:
            return []
        edges = [self.edge(post, other) for other in self.posts if other.id != post_id]
        edges = [e for e in edges if e.score >= self.min_relevance]
        edges.sort(key=lambda e: e.score, reverse=True)
        return edges[: self.max_related]

    def backlink_opportunities(self, post_id: str) -> list[RelevanceEdge]:
        """Posts that would benefit from linking to post_id."""
        target = self._by_id.get(post_id)
        if target is None:
            return []
        edges = [self.edge(other, target) for other in self.posts if other.id != post_id]
        edges = [e for e in edges if e.score >= self.min_relevance]
        edges.sort(key=lambda e: e.score, reverse=True)
        return edges[: self.max_related]

    def link_suggestions(self, post_id: str) -> list[LinkSuggestion]:
        post = self._by_id.get(post_id)
        if post is None or not post.body:
            return []

        sentences = self._sentences(post.body)
        suggestions = []
        for edge in self.related_posts(post_id):
            if edge.score < self.min_link_relevance:
                continue
            target = self._by_id[edge.target_id]
            anchors = self._anchor_texts(post, target, edge)
            contexts = self._linking_contexts(sentences, target)
            for i, (position, sentence) in enumerate(contexts):
                if i < len(anchors):
                    suggestions.append(LinkSuggestion(
                        source_id=post_id,
                        target_id=target.id,
                        anchor_text=anchors[i],
                        sentence=sentence,
                        position=position,
                        score=edge.score,
                    ))
        suggestions.sort(key=lambda s: s.score, reverse=True)
        return suggestions

    def insert_automatic_links(self, post_id: str) -> str:
        """Return the post body with up to max_auto_links new markdown links appended to sentences."""
        post = self._by_id.get(post_id)
        if post is None:
            return ""
        body = post.body
        spans = _SENTENCE.finditer(body)
        spans = [m for m in spans if m.group().strip()]

        chosen = []
        used_positions: set[int] = set()
        linked_targets: set[str] = set()
        for suggestion in self.link_suggestions(post_id):
            if len(chosen) >= self.max_auto_links:
                break
            target = self._by_id[suggestion.target_id]
            url = self._url(target)
            if suggestion.target_id in linked_targets or f"]({url})" in body:
                continue
            if suggestion.position in used_positions or suggestion.position >= len(spans):
                continue
            if _MARKDOWN_LINK.search(spans[suggestion.position].group()):
                continue
            chosen.append((suggestion.position, f"[{suggestion.anchor_text}]({url})"))
            used_positions.add(suggestion.position)
            linked_targets.add(suggestion.target_id)

        # Insert back to front so earlier offsets stay valid
        for position, link in sorted(chosen, reverse=True):
            span = spans[position]
            offset = span.start() + len(span.group().rstrip())
            body = f"{body[:offset]} {link}{body[offset:]}"

        if chosen:
            log.debug(f"Inserted {len(chosen)} links into post {post.slug}")
        return body

    def linking_report(self) -> LinkingReport:
        related = {p.id: self.related_posts(p.id) for p in self.posts}
        inbound: Counter = Counter()
        for edges in related.values():
            inbound.update(e.target_id for e in edges)

        total_relations = sum(len(edges) for edges in related.values())
        top = sorted(
            ((p.id, p.title, inbound.get(p.id, 0)) for p in self.posts),
            key=lambda item: item[2],
            reverse=True,
        )[:10]
        return LinkingReport(
            total_posts=len(self.posts),
            average_related_posts=total_relations / len(self.posts) if self.posts else 0.0,
            posts_without_relations=sum(1 for edges in related.values() if not edges),
            top_linked_posts=top,
        )

    def _url(self, post) -> str:
        return f"{self.blog_path}/{post.slug}"

    def _sentences(self, body: str) -> list[tuple[int, str]]:
        sentences = [m.group().strip() for m in _SENTENCE.finditer(body)]
        return [(i, s) for i, s in enumerate(s for s in sentences if s)]

    def _linking_contexts(self, sentences: list[tuple[int, str]], target) -> list[tuple[int, str]]:
        keywords = [tag.lower() for tag in target.tags]
        keywords.append(target.category.lower())
        keywords.extend(significant_words(target.excerpt, 5))
        keywords = [k for k in keywords if k]

        contexts = []
        for position, sentence in sentences:
            if len(sentence) <= 20 or sentence.startswith("#"):
                continue
            lowered = sentence.lower()
            if any(keyword in lowered for keyword in keywords):
                contexts.append((position, sentence))
                if len(contexts) == 2:
                    break
        return contexts

    def _anchor_texts(self, source, target, edge: RelevanceEdge) -> list[str]:
        anchors = [target.title]
        if edge.relationship == SAME_CATEGORY:
            category = target.category.lower()
            anchors.extend([f"more about {category}", f"{category} guide"])
        for tag in (t for t in source.tags if t in target.tags):
            anchors.extend([f"{tag.lower()} examples", f"learn {tag.lower()}"])
        anchors.extend(["related article", "helpful guide", "detailed explanation"])
        cleaned = [_ANCHOR_UNSAFE.sub("", a).strip() for a in anchors]
        return [a for a in cleaned if a][:3]
