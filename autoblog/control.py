"""Control surface — request/response operations for manual generation and scheduler management."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from autoblog.orchestrator import NO_TOPICS, RunInProgressError
from autoblog.relevance import RelevanceGraph
from autoblog.scheduler import JobAlreadyRunningError, JobNotFoundError
from autoblog.store import StorageError

log = logging.getLogger(__name__)


@dataclass
class ControlResponse:
    success: bool
    message: str
    status_code: int = 200
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, **self.data}


class ControlSurface:
    """Thin request handlers over the orchestrator and scheduler of one pipeline."""

    ACTIONS = ("start", "stop", "enable", "disable", "run")

    def __init__(self, pipeline):
        self.orchestrator = pipeline.orchestrator
        self.scheduler = pipeline.scheduler
        self.corpus = pipeline.corpus
        self.config = pipeline.config

    def trigger_generation(self) -> ControlResponse:
        try:
            result = self.orchestrator.run(trigger="manual")
        except RunInProgressError:
            return ControlResponse(False, "A generation run is already in progress", 409)
        except StorageError as e:
            return ControlResponse(False, "Failed to generate blog post", 500, {"error": str(e)})
        except Exception as e:
            log.exception("Manual generation failed")
            return ControlResponse(False, "Failed to generate blog post", 500, {"error": str(e)})

        if result.published:
            return ControlResponse(True, result.message, 200, {"post": result.summary()})
        if result.status == NO_TOPICS:
            return ControlResponse(False, result.message, 400)
        return ControlResponse(False, result.message, 422)

    def scheduler_action(self, action: str, job_id: str | None = None) -> ControlResponse:
        if action == "start":
            self.scheduler.start()
            return ControlResponse(True, "Scheduler started successfully")
        if action == "stop":
            self.scheduler.stop()
            return ControlResponse(True, "Scheduler stopped successfully")
        if action not in self.ACTIONS:
            return ControlResponse(
                False, f"Invalid action. Supported actions: {', '.join(self.ACTIONS)}", 400
            )
        if not job_id:
            return ControlResponse(False, f"Job ID is required for {action} action", 400)

        try:
            if action == "enable":
                self.scheduler.enable_job(job_id)
                return ControlResponse(True, f"Job {job_id} enabled successfully")
            if action == "disable":
                self.scheduler.disable_job(job_id)
                return ControlResponse(True, f"Job {job_id} disabled successfully")

            if job_id in self.scheduler.jobs and self.orchestrator.running:
                return ControlResponse(False, "A generation run is already in progress", 409)
            result = self.scheduler.run_job_now(job_id)
        except JobNotFoundError:
            return ControlResponse(False, f"Job with ID {job_id} not found", 404)
        except JobAlreadyRunningError:
            return ControlResponse(False, f"Job {job_id} is already running", 409)
        except Exception as e:
            log.exception(f"Error running job {job_id}")
            return ControlResponse(False, "Failed to manage scheduler", 500, {"error": str(e)})

        # The handler returns None when it lost the race for the generation lock
        if result is None:
            return ControlResponse(False, "A generation run is already in progress", 409)
        data = {"status": result.status}
        if result.published:
            data["post"] = result.summary()
        return ControlResponse(True, f"Job {job_id} executed successfully", 200, data)

    def list_jobs(self) -> ControlResponse:
        return ControlResponse(True, "Scheduler status", 200, {
            "scheduler": self.scheduler.status(),
            "jobs": [job.to_dict() for job in self.scheduler.jobs.values()],
        })

    def list_posts(self) -> ControlResponse:
        posts = [
            {
                "id": p.id,
                "title": p.title,
                "slug": p.slug,
                "excerpt": p.excerpt,
                "category": p.category,
                "tags": list(p.tags),
                "created_at": p.created_at,
                "read_time": p.read_time,
                "featured": p.featured,
            }
            for p in self.corpus.posts
        ]
        return ControlResponse(True, f"{len(posts)} posts", 200, {"posts": posts})

    def corpus_report(self, post_id: str | None = None) -> ControlResponse:
        """Linking and uniqueness overview, plus backlink candidates for one post (newest by default)."""
        posts = self.corpus.posts
        if post_id is None and posts:
            post_id = max(posts, key=lambda p: p.slug).id
        if post_id is not None and self.corpus.get(post_id) is None:
            return ControlResponse(False, f"Post with ID {post_id} not found", 404)

        graph = RelevanceGraph.from_config(posts, self.config)
        backlinks = graph.backlink_opportunities(post_id) if post_id else []
        return ControlResponse(True, f"Corpus report for {len(posts)} posts", 200, {
            "linking": asdict(graph.linking_report()),
            "uniqueness": asdict(self.orchestrator.validator.uniqueness_report(posts)),
            "backlinks": {"post_id": post_id, "candidates": [asdict(edge) for edge in backlinks]},
        })
