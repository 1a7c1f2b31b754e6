"""Pipeline — builds the long-lived objects once at process start and wires them together."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from autoblog.classifier import Classifier
from autoblog.config import load_config, resolve_path
from autoblog.corpus import Corpus
from autoblog.draft_generator import DraftGenerator
from autoblog.orchestrator import GenerationOrchestrator, RunInProgressError
from autoblog.scheduler import JobScheduler, ScheduledJob
from autoblog.similarity import UniquenessValidator
from autoblog.store import FileRecordStore
from autoblog.topics import TopicPool

log = logging.getLogger(__name__)


@dataclass
class Pipeline:
    config: dict
    store: object
    corpus: Corpus
    topic_pool: TopicPool
    orchestrator: GenerationOrchestrator
    scheduler: JobScheduler


def generation_handler(orchestrator: GenerationOrchestrator):
    """Scheduled-job handler. Returns None when a colliding run made it skip, else the GenerationResult."""

    def run_generation():
        try:
            result = orchestrator.run(trigger="scheduled")
        except RunInProgressError:
            log.info("Skipping scheduled generation: a run is already in progress")
            return None
        if result.published:
            log.info(f'Successfully generated new blog post: "{result.post.title}" (slug {result.post.slug})')
        else:
            log.info(f"No new blog post generated: {result.message}")
        return result

    return run_generation


def build_pipeline(config: dict | None = None, config_path: str = "config.yaml", store=None,
                   clock=None) -> Pipeline:
    config = config or load_config(config_path)
    content = config["content"]
    rng = random.Random(content.get("random_seed"))

    if store is None:
        store = FileRecordStore(resolve_path(config["storage"]["data_dir"]))
    topic_pool = TopicPool.load(resolve_path(content["topics_path"]), rng=rng)
    corpus = Corpus.load(store, topic_pool)

    orchestrator = GenerationOrchestrator(
        corpus=corpus,
        topic_pool=topic_pool,
        generator=DraftGenerator(resolve_path(content["templates_dir"]), rng=rng),
        validator=UniquenessValidator.from_config(config),
        classifier=Classifier.from_path(resolve_path(content["taxonomy_path"])),
        config=config,
        rng=rng,
    )

    sched_cfg = config.get("scheduler", {})
    scheduler = JobScheduler(poll_interval=sched_cfg.get("poll_interval_seconds", 60), clock=clock)
    for job_cfg in sched_cfg.get("jobs", []):
        scheduler.add_job(ScheduledJob(
            id=job_cfg["id"],
            name=job_cfg.get("name", job_cfg["id"]),
            handler=generation_handler(orchestrator),
            run_at=str(job_cfg.get("run_at", "09:00")),
            timezone=job_cfg.get("timezone", "UTC"),
            enabled=job_cfg.get("enabled", True),
        ))

    log.info(f"Pipeline ready: {len(corpus.posts)} posts, {len(topic_pool.available(corpus.used_topics))} unused topics")
    return Pipeline(
        config=config,
        store=store,
        corpus=corpus,
        topic_pool=topic_pool,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )
