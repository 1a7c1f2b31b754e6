"""Generation Orchestrator — selects a topic, drafts, validates, classifies, links and publishes one post."""

from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass, field

from autoblog.corpus import Post, utc_now
from autoblog.draft_generator import read_time
from autoblog.relevance import RelevanceGraph
from autoblog.store import StorageError

log = logging.getLogger(__name__)

PUBLISHED = "published"
NO_TOPICS = "no_topics"
REJECTED = "rejected"


class RunInProgressError(RuntimeError):
    pass


@dataclass
class GenerationResult:
    status: str
    message: str
    post: Post | None = None
    topic: object = None
    initial_draft: str = ""
    similarity_scores: list[float] = field(default_factory=list)
    escalation: str = "none"
    updated_slugs: list[int] = field(default_factory=list)
    similar_titles: list = field(default_factory=list)

    @property
    def published(self) -> bool:
        return self.status == PUBLISHED

    def summary(self) -> dict:
        if self.post is None:
            return {}
        return {
            "id": self.post.id,
            "title": self.post.title,
            "slug": self.post.slug,
            "category": self.post.category,
            "tags": list(self.post.tags),
            "created_at": self.post.created_at,
        }


class GenerationOrchestrator:
    """Runs the generation pipeline against a corpus, one run at a time.

    SelectTopic -> Draft -> Validate -> (Regenerate -> Validate -> Mutate)?
    -> Classify -> ComputeLinks -> Persist -> UpdateBacklinks. An exhausted
    topic pool ends the run early with status ``no_topics``.
    """

    def __init__(self, corpus, topic_pool, generator, validator, classifier,
                 config: dict | None = None, rng: random.Random | None = None, clock=utc_now):
        self.corpus = corpus
        self.topic_pool = topic_pool
        self.generator = generator
        self.validator = validator
        self.classifier = classifier
        self.config = config or {}
        self.rng = rng or random.Random()
        self.clock = clock
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def run(self, trigger: str = "manual") -> GenerationResult:
        """Generate and publish one post. Raises RunInProgressError if another run is active."""
        if not self._lock.acquire(blocking=False):
            raise RunInProgressError("A generation run is already in progress")
        run_id = uuid.uuid4().hex[:8]
        start = time.time()
        try:
            result = self._run(run_id, trigger)
        except StorageError as e:
            log.error(f"Generation run aborted by storage failure: {e}",
                      extra={"run_id": run_id, "trigger": trigger})
            raise
        finally:
            self._lock.release()
        log.info(
            f"Generation run finished: {result.status}",
            extra={"run_id": run_id, "trigger": trigger, "duration": round(time.time() - start, 3)},
        )
        return result

    def _run(self, run_id: str, trigger: str) -> GenerationResult:
        extra = {"run_id": run_id, "trigger": trigger}

        # 1. Select topic
        topic = self.topic_pool.pick(self.corpus.used_topics)
        if topic is None:
            log.info("No unused topics available", extra=extra)
            return GenerationResult(status=NO_TOPICS, message="No unused topics available for generation")
        log.info(f"Topic selected: {topic.title}", extra=extra)
        similar_titles = self.validator.validate_title(topic.title, self.corpus.posts)
        if similar_titles:
            closest = similar_titles[0]
            log.warning(
                f"Topic title is close to published \"{closest.title}\" ({closest.similarity:.0%})",
                extra=extra,
            )

        # 2. Draft and validate
        initial = self.generator.draft(topic)
        body, escalation, scores = self._ensure_unique(topic, initial, extra)
        if body is None:
            return GenerationResult(
                status=REJECTED,
                message=f"Draft for '{topic.title}' is still too similar to published posts",
                topic=topic,
                initial_draft=initial,
                similarity_scores=scores,
                escalation=escalation,
                similar_titles=similar_titles,
            )

        # 3. Classify
        classification = self.classifier.classify(topic.title, body)
        log.info(f"Classified as {classification.category}: {', '.join(classification.tags)}", extra=extra)

        # 4. Build the post and compute its links
        post = self._build_post(topic, body, classification)
        graph = RelevanceGraph.from_config(self.corpus.posts + [post], self.config)
        post.related_posts = [edge.target_id for edge in graph.related_posts(post.id)]
        post.body = graph.insert_automatic_links(post.id)

        # 5. Persist
        self.corpus.publish(post)

        # 6. Backlinks across the corpus
        updated = self._update_backlinks(post)
        self.corpus.record_run()

        return GenerationResult(
            status=PUBLISHED,
            message="Blog post generated successfully",
            post=post,
            topic=topic,
            initial_draft=initial,
            similarity_scores=scores,
            escalation=escalation,
            updated_slugs=updated,
            similar_titles=similar_titles,
        )

    def _ensure_unique(self, topic, body: str, extra: dict) -> tuple[str | None, str, list[float]]:
        """One regeneration, then one phrase-substitution pass that is accepted as-is.

        With ``uniqueness.reject_after_mutation`` the substituted text is
        checked again and the run is rejected (body None) if it still fails.
        """
        verdict = self.validator.validate(body, topic.title, self.corpus.posts)
        scores = [verdict.score]
        if verdict.is_unique:
            return body, "none", scores

        log.info(f"Content similarity detected ({verdict.score:.0%}). Regenerating...", extra=extra)
        body = self.generator.regenerate(topic, verdict.recommendations)
        verdict = self.validator.validate(body, topic.title, self.corpus.posts)
        scores.append(verdict.score)
        if verdict.is_unique:
            return body, "regenerated", scores

        log.info("Content still not unique enough. Applying phrase substitutions...", extra=extra)
        body = self.generator.mutate(body)
        if self.config.get("uniqueness", {}).get("reject_after_mutation", False):
            verdict = self.validator.validate(body, topic.title, self.corpus.posts)
            scores.append(verdict.score)
            if not verdict.is_unique:
                log.warning(f"Rejecting draft at {verdict.score:.0%} similarity", extra=extra)
                return None, "mutated", scores
        else:
            log.warning("Publishing substituted draft without re-validation", extra=extra)
        return body, "mutated", scores

    def _build_post(self, topic, body: str, classification) -> Post:
        site = self.config.get("site", {})
        content = self.config.get("content", {})
        now = self.clock()

        keywords = []
        for keyword in list(content.get("base_keywords", [])) + list(topic.keywords):
            if keyword not in keywords:
                keywords.append(keyword)

        suffix = site.get("seo_title_suffix", "")
        return Post(
            id=f"post-{uuid.uuid4().hex[:12]}",
            title=topic.title,
            slug=self.corpus.next_slug,
            excerpt=topic.description,
            body=body,
            category=classification.category,
            tags=list(classification.tags),
            keywords=keywords[: content.get("max_keywords", 10)],
            created_at=now,
            updated_at=now,
            featured=self.rng.random() < content.get("featured_probability", 0.3),
            topic_id=topic.id,
            author=site.get("author", ""),
            read_time=read_time(body),
            seo_title=f"{topic.title} | {suffix}" if suffix else topic.title,
            seo_description=topic.description,
        )

    def _update_backlinks(self, new_post: Post) -> list[int]:
        """Add the new post to the related lists it points at, then re-link every older body."""
        now = self.clock()
        touched: dict[int, Post] = {}

        for related_id in new_post.related_posts:
            related = self.corpus.get(related_id)
            if related is not None and new_post.id not in related.related_posts:
                related.related_posts.append(new_post.id)
                related.updated_at = now
                touched[related.slug] = related

        graph = RelevanceGraph.from_config(self.corpus.posts, self.config)
        for existing in self.corpus.posts:
            if existing.id == new_post.id:
                continue
            body = graph.insert_automatic_links(existing.id)
            if body != existing.body:
                existing.body = body
                existing.updated_at = now
                touched[existing.slug] = existing

        for slug in sorted(touched):
            self.corpus.save_post(touched[slug])
        if touched:
            log.info(f"Backlink maintenance updated {len(touched)} posts", extra={"slug": new_post.slug})
        return sorted(touched)
