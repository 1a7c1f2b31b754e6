"""Corpus — published posts, the slug counter and used topics, persisted through a record store."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

log = logging.getLogger(__name__)

INDEX_KEY = "index"
COUNTER_KEY = "counter"
POST_PREFIX = "post/"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Post:
    id: str
    title: str
    slug: int
    excerpt: str
    body: str
    category: str
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    featured: bool = False
    related_posts: list[str] = field(default_factory=list)
    topic_id: str = ""
    author: str = ""
    read_time: str = ""
    seo_title: str = ""
    seo_description: str = ""

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, record: dict) -> "Post":
        known = cls.__dataclass_fields__
        data = {k: v for k, v in record.items() if k in known}
        data["slug"] = int(data["slug"])
        return cls(**data)


class Corpus:
    """In-memory view of the published corpus, kept in step with the record store.

    Layout: one ``post/<slug>`` record per post, an ``index`` record listing
    every post plus the used topic ids, and a ``counter`` record holding the
    next slug. The counter, not a lookup, decides the next slug, so
    ``next_slug == len(posts) + 1`` must always hold.
    """

    def __init__(self, store):
        self.store = store
        self.posts: list[Post] = []
        self.next_slug = 1
        self.used_topics: set[str] = set()
        self.last_run: str | None = None

    @classmethod
    def load(cls, store, topic_pool=None) -> "Corpus":
        corpus = cls(store)
        corpus.reconcile(topic_pool)
        return corpus

    def reconcile(self, topic_pool=None) -> list[str]:
        """Load state from the store, repairing partial writes. Returns the repairs made."""
        repairs: list[str] = []
        index = self.store.get(INDEX_KEY) or {}
        counter = self.store.get(COUNTER_KEY) or {}

        records: dict[int, dict] = {}
        for key, record in self.store.list(POST_PREFIX):
            try:
                records[int(key[len(POST_PREFIX):])] = record
            except ValueError:
                log.warning(f"Ignoring record with non-numeric slug: {key}")

        posts: dict[int, Post] = {}
        for entry in index.get("posts", []):
            slug = int(entry["slug"])
            if slug in records:
                posts[slug] = Post.from_record(records[slug])
            else:
                repairs.append(f"index lists slug {slug} but its record is missing")

        for slug in sorted(set(records) - set(posts)):
            posts[slug] = Post.from_record(records[slug])
            repairs.append(f"post record {slug} was not in the index")

        self.posts = [posts[slug] for slug in sorted(posts)]
        self.last_run = index.get("last_run")

        expected_slug = self.posts[-1].slug + 1 if self.posts else 1
        stored_slug = counter.get("next_slug")
        if stored_slug != expected_slug:
            if stored_slug is not None or self.posts:
                repairs.append(f"counter was {stored_slug}, expected {expected_slug}")
        self.next_slug = expected_slug

        used = set(index.get("used_topics", []))
        used.update(p.topic_id for p in self.posts if p.topic_id)
        if topic_pool is not None:
            legacy_titles = [p.title for p in self.posts if not p.topic_id]
            if legacy_titles:
                used.update(topic_pool.match_titles(legacy_titles))
        if used != set(index.get("used_topics", [])) and self.posts:
            repairs.append("used topic set rebuilt from published posts")
        self.used_topics = used

        for repair in repairs:
            log.warning(f"Corpus repair: {repair}")
        if repairs:
            self._write_index()
            self.store.put(COUNTER_KEY, {"next_slug": self.next_slug})

        log.info(f"Corpus loaded: {len(self.posts)} posts, next slug {self.next_slug}")
        return repairs

    def verify(self) -> list[str]:
        """Check the cross-record invariants; an empty list means consistent."""
        problems = []
        if self.next_slug != len(self.posts) + 1:
            problems.append(f"next slug {self.next_slug} != post count + 1 ({len(self.posts) + 1})")
        slugs = [p.slug for p in self.posts]
        if slugs != list(range(1, len(self.posts) + 1)):
            problems.append(f"slugs are not sequential: {slugs}")
        ids = [p.id for p in self.posts]
        if len(ids) != len(set(ids)):
            problems.append("duplicate post ids")
        known = set(ids)
        for post in self.posts:
            dangling = [rid for rid in post.related_posts if rid not in known]
            if dangling:
                problems.append(f"post {post.slug} links to unknown posts {dangling}")
            if post.topic_id and post.topic_id not in self.used_topics:
                problems.append(f"topic {post.topic_id} of post {post.slug} not marked used")
        return problems

    def get(self, post_id: str) -> Post | None:
        return next((p for p in self.posts if p.id == post_id), None)

    def get_by_slug(self, slug: int) -> Post | None:
        return next((p for p in self.posts if p.slug == slug), None)

    def publish(self, post: Post):
        """Persist a new post: post record, then index, then counter.

        In-memory state only changes once all three writes succeeded.
        """
        if post.slug != self.next_slug:
            raise ValueError(f"Post slug {post.slug} does not match next slug {self.next_slug}")

        self.store.put(f"{POST_PREFIX}{post.slug}", post.to_record())
        used = self.used_topics | ({post.topic_id} if post.topic_id else set())
        self._write_index(self.posts + [post], used)
        self.store.put(COUNTER_KEY, {"next_slug": post.slug + 1})

        self.posts.append(post)
        self.used_topics = used
        self.next_slug = post.slug + 1
        log.info(f"Published post {post.slug}: {post.title}", extra={"slug": post.slug})

    def save_post(self, post: Post):
        """Rewrite the record of an already-published post."""
        self.store.put(f"{POST_PREFIX}{post.slug}", post.to_record())

    def record_run(self):
        self.last_run = utc_now()
        self._write_index()

    def _write_index(self, posts: list[Post] | None = None, used: set[str] | None = None):
        posts = self.posts if posts is None else posts
        used = self.used_topics if used is None else used
        self.store.put(INDEX_KEY, {
            "posts": [{"slug": p.slug, "id": p.id, "title": p.title} for p in posts],
            "used_topics": sorted(used),
            "last_run": self.last_run,
        })
