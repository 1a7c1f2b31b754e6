"""Tests for the Generation Orchestrator."""

import os
import random
import threading

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(PROJECT_ROOT, "templates")
TAXONOMY_PATH = os.path.join(PROJECT_ROOT, "data", "taxonomy.yaml")

from autoblog.classifier import ClassificationResult, Classifier
from autoblog.config import load_config
from autoblog.corpus import Corpus, Post
from autoblog.draft_generator import DraftGenerator
from autoblog.orchestrator import (
    NO_TOPICS,
    PUBLISHED,
    REJECTED,
    GenerationOrchestrator,
    RunInProgressError,
)
from autoblog.similarity import UniquenessValidator
from autoblog.store import MemoryRecordStore, StorageError
from autoblog.topics import Topic, TopicPool

FIXED_NOW = "2026-01-05T09:00:00+00:00"

TOPICS = [
    {
        "title": "Present Tense Verb Conjugation",
        "description": "Conjugate regular verbs in the present tense",
        "category": "Grammar",
        "keywords": ["verbs", "present tense", "conjugation"],
    },
    {
        "title": "Irregular Verbs Every Learner Needs",
        "description": "The irregular verbs you will hear every day",
        "category": "Grammar",
        "keywords": ["irregular verbs", "ser", "estar"],
    },
    {
        "title": "Fado and Portuguese Music",
        "description": "An introduction to fado and the music of Lisbon",
        "category": "Culture",
        "keywords": ["fado", "music", "lisbon"],
    },
]


class FixedClassifier:
    """Always Grammar with the same tags, so every pair of posts is related and linkable."""

    def classify(self, title, body):
        return ClassificationResult(
            category="Grammar", category_id="grammar", tags=["Portuguese", "Practice"], confidence=1.0
        )


class FailingStore(MemoryRecordStore):
    def put(self, key, record):
        raise StorageError(f"Failed to write record {key}: disk full")


def build(store=None, topics=TOPICS, classifier=None, validator=None, generator=None, **overrides):
    config = load_config(None, overrides=overrides)
    rng = random.Random(3)
    pool = TopicPool([Topic.from_dict(t) for t in topics], rng=rng)
    store = store if store is not None else MemoryRecordStore()
    corpus = Corpus.load(store, pool)
    orchestrator = GenerationOrchestrator(
        corpus=corpus,
        topic_pool=pool,
        generator=generator or DraftGenerator(TEMPLATES_DIR, rng=rng),
        validator=validator or UniquenessValidator.from_config(config),
        classifier=classifier or Classifier.from_path(TAXONOMY_PATH),
        config=config,
        rng=rng,
        clock=lambda: FIXED_NOW,
    )
    return orchestrator, corpus, store


class TestRun:
    def test_first_post(self):
        """An empty corpus publishes slug 1 with no escalation."""
        orchestrator, corpus, store = build()
        result = orchestrator.run()

        assert result.status == PUBLISHED
        assert result.published
        assert result.escalation == "none"
        assert result.similarity_scores == [0.0]
        post = result.post
        assert post.slug == 1
        assert post.id.startswith("post-")
        assert post.created_at == FIXED_NOW
        assert post.related_posts == []
        assert corpus.next_slug == 2
        assert post.topic_id in corpus.used_topics
        assert store.get("post/1")["title"] == post.title

    def test_post_fields(self):
        orchestrator, _, _ = build(content={"featured_probability": 1.0, "max_keywords": 8})
        post = orchestrator.run().post

        assert post.featured is True
        assert len(post.keywords) == 8
        assert post.keywords[0] == "Portuguese learning"
        assert len(post.keywords) == len(set(post.keywords))
        assert post.seo_title == f"{post.title} | Learn European Portuguese | Sayola"
        assert post.excerpt == post.seo_description
        assert post.read_time.endswith("min read")
        assert post.author == "Sayola Team"

    def test_slugs_are_sequential_until_pool_exhausted(self):
        """Manual and scheduled runs share one slug sequence; then the pool runs dry."""
        orchestrator, corpus, store = build()
        triggers = ["manual", "scheduled", "manual"]
        results = [orchestrator.run(trigger=t) for t in triggers]

        assert [r.post.slug for r in results] == [1, 2, 3]
        assert len({r.topic.id for r in results}) == 3
        assert corpus.verify() == []

        snapshot = {k: v for k, v in store.list()}
        result = orchestrator.run()
        assert result.status == NO_TOPICS
        assert result.post is None
        assert {k: v for k, v in store.list()} == snapshot

    def test_corpus_survives_reload(self):
        orchestrator, corpus, store = build()
        orchestrator.run()
        orchestrator.run()

        reloaded = Corpus.load(store)
        assert [p.id for p in reloaded.posts] == [p.id for p in corpus.posts]
        assert reloaded.used_topics == corpus.used_topics
        assert reloaded.next_slug == 3
        assert reloaded.last_run is not None

    def test_summary(self):
        orchestrator, _, _ = build()
        summary = orchestrator.run().summary()
        assert set(summary) == {"id", "title", "slug", "category", "tags", "created_at"}
        assert summary["slug"] == 1


class TestBacklinks:
    def test_related_posts_are_bidirectional(self):
        """A new post that relates to an older one is added to the older post's list."""
        orchestrator, corpus, store = build(classifier=FixedClassifier())
        first = orchestrator.run().post
        result = orchestrator.run()
        second = result.post

        assert second.related_posts == [first.id]
        assert corpus.get(first.id).related_posts == [second.id]
        assert store.get("post/1")["related_posts"] == [second.id]
        assert 1 in result.updated_slugs
        assert corpus.verify() == []

    def test_new_post_links_into_body(self):
        orchestrator, _, _ = build(classifier=FixedClassifier())
        orchestrator.run()
        second = orchestrator.run().post
        assert "](/blog/1)" in second.body

    def test_older_body_gains_link(self):
        orchestrator, corpus, _ = build(classifier=FixedClassifier())
        orchestrator.run()
        orchestrator.run()
        assert "](/blog/2)" in corpus.get_by_slug(1).body


class TestUniquenessEscalation:
    def test_duplicate_draft_is_regenerated(self):
        """A first draft identical to a published body is never published as-is."""
        topics = TOPICS[:1]
        generator = DraftGenerator(TEMPLATES_DIR, rng=random.Random(5))
        seed_body = generator.draft(Topic.from_dict(topics[0]))
        store = MemoryRecordStore()
        seed = Post(id="post-seed", title="Seasonal Fado Festivals", slug=1, excerpt="",
                    body=seed_body, category="Culture", topic_id="seed")
        store.put("post/1", seed.to_record())

        orchestrator, corpus, _ = build(store=store, topics=topics, generator=generator)
        result = orchestrator.run()

        assert result.published
        assert result.initial_draft == seed_body
        assert result.similarity_scores[0] == 1.0
        assert result.escalation in ("regenerated", "mutated")
        assert result.post.body != seed_body
        assert result.post.slug == 2

    def test_mutated_draft_published_by_default(self):
        """After one regeneration the substituted text is accepted without another check."""
        store = MemoryRecordStore()
        store.put("post/1", Post(id="post-seed", title="Seed", slug=1, excerpt="",
                                 body="Some published text.", category="Grammar").to_record())
        orchestrator, _, _ = build(store=store, validator=UniquenessValidator(threshold=0.0))
        result = orchestrator.run()

        assert result.published
        assert result.escalation == "mutated"
        assert len(result.similarity_scores) == 2

    def test_strict_mode_rejects(self):
        """With reject_after_mutation the run fails without writing anything."""
        store = MemoryRecordStore()
        store.put("post/1", Post(id="post-seed", title="Seed", slug=1, excerpt="",
                                 body="Some published text.", category="Grammar").to_record())
        orchestrator, corpus, _ = build(
            store=store,
            validator=UniquenessValidator(threshold=0.0),
            uniqueness={"reject_after_mutation": True},
        )
        snapshot = {k: v for k, v in store.list()}
        result = orchestrator.run()

        assert result.status == REJECTED
        assert result.post is None
        assert len(result.similarity_scores) == 3
        assert corpus.next_slug == 2
        assert {k: v for k, v in store.list()} == snapshot


class TestRunGuard:
    def test_concurrent_run_rejected(self):
        """A second run while one is in flight raises instead of queueing."""
        started = threading.Event()
        release = threading.Event()

        class BlockingGenerator(DraftGenerator):
            def draft(self, topic):
                started.set()
                release.wait(5)
                return super().draft(topic)

        orchestrator, corpus, _ = build(generator=BlockingGenerator(TEMPLATES_DIR))
        worker = threading.Thread(target=orchestrator.run)
        worker.start()
        try:
            assert started.wait(5)
            assert orchestrator.running
            with pytest.raises(RunInProgressError):
                orchestrator.run()
        finally:
            release.set()
            worker.join(5)

        assert not orchestrator.running
        assert [p.slug for p in corpus.posts] == [1]

    def test_storage_failure_propagates(self):
        """A failed write aborts the run and leaves the in-memory corpus as it was."""
        orchestrator, corpus, _ = build(store=FailingStore())
        with pytest.raises(StorageError):
            orchestrator.run()

        assert not orchestrator.running
        assert corpus.posts == []
        assert corpus.next_slug == 1
        assert corpus.used_topics == set()

    def test_close_title_is_reported(self, caplog):
        """A topic whose title matches a published post still runs, with a warning."""
        store = MemoryRecordStore()
        store.put("post/1", Post(id="post-seed", title="Present Tense Verb Conjugation", slug=1,
                                 excerpt="", body="Some published text.", category="Grammar",
                                 topic_id="seed").to_record())
        orchestrator, _, _ = build(store=store, topics=TOPICS[:1])
        with caplog.at_level("WARNING", logger="autoblog.orchestrator"):
            result = orchestrator.run()

        assert result.published
        assert [t.post_id for t in result.similar_titles] == ["post-seed"]
        assert result.similar_titles[0].similarity == 1.0
        assert "close to published" in caplog.text
