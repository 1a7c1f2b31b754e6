"""Scheduler — daily jobs checked on a fixed polling cadence, with manual run/enable/disable."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

log = logging.getLogger(__name__)


class JobNotFoundError(KeyError):
    pass


class JobAlreadyRunningError(RuntimeError):
    pass


@dataclass
class ScheduledJob:
    id: str
    name: str
    handler: Callable[[], object]
    run_at: str = "09:00"
    timezone: str = "Europe/Lisbon"
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    running: bool = False
    last_error: str | None = None

    def compute_next_run(self, now: datetime) -> datetime:
        """Next occurrence of run_at (HH:MM) in the job's timezone, strictly after now."""
        hour, minute = (int(part) for part in self.run_at.split(":"))
        local = now.astimezone(ZoneInfo(self.timezone))
        candidate = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= local:
            candidate += timedelta(days=1)
        return candidate

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "run_at": self.run_at,
            "timezone": self.timezone,
            "running": self.running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_error": self.last_error,
        }


class JobScheduler:
    """Polls registered jobs and runs the ones that are due.

    A job whose previous run is still active is skipped for that tick rather
    than started a second time.
    """

    def __init__(self, poll_interval: float = 60, clock: Callable[[], datetime] | None = None):
        self.poll_interval = poll_interval
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.jobs: dict[str, ScheduledJob] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _get(self, job_id: str) -> ScheduledJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job with ID {job_id} not found")
        return job

    def add_job(self, job: ScheduledJob):
        with self._lock:
            if job.enabled:
                job.next_run = job.compute_next_run(self.clock())
            self.jobs[job.id] = job
        log.info(f"Registered job '{job.name}'", extra={"job_id": job.id})

    def remove_job(self, job_id: str):
        with self._lock:
            self._get(job_id)
            del self.jobs[job_id]

    def enable_job(self, job_id: str):
        with self._lock:
            job = self._get(job_id)
            job.enabled = True
            job.next_run = job.compute_next_run(self.clock())
        log.info(f"Enabled job '{job.name}', next run {job.next_run.isoformat()}", extra={"job_id": job_id})

    def disable_job(self, job_id: str):
        with self._lock:
            job = self._get(job_id)
            job.enabled = False
            job.next_run = None
        log.info(f"Disabled job '{job.name}'", extra={"job_id": job_id})

    def run_job_now(self, job_id: str):
        """Run a job immediately in the caller's thread; handler errors propagate."""
        job = self._get(job_id)
        log.info(f"Manually executing job: {job.name}", extra={"job_id": job_id})
        return self._execute(job, self.clock())

    def tick(self, now: datetime | None = None) -> list[str]:
        """Run every enabled job whose next_run has passed. Returns the ids that ran."""
        now = now or self.clock()
        with self._lock:
            due = [j for j in self.jobs.values() if j.enabled and j.next_run and j.next_run <= now]
            for job in due:
                job.next_run = job.compute_next_run(now)

        executed = []
        for job in due:
            if job.running:
                log.warning(f"Skipping '{job.name}': previous run still active", extra={"job_id": job.id})
                continue
            try:
                self._execute(job, now)
                executed.append(job.id)
            except JobAlreadyRunningError:
                log.warning(f"Skipping '{job.name}': previous run still active", extra={"job_id": job.id})
            except Exception:
                log.exception(f"Error executing job {job.name}", extra={"job_id": job.id})
        return executed

    def _execute(self, job: ScheduledJob, now: datetime):
        with self._lock:
            if job.running:
                raise JobAlreadyRunningError(f"Job {job.id} is already running")
            job.running = True
            job.last_run = now
        try:
            result = job.handler()
            job.last_error = None
            return result
        except Exception as e:
            job.last_error = str(e)
            raise
        finally:
            job.running = False

    def start(self):
        if self.is_running:
            log.info("Job scheduler already running")
            return
        now = self.clock()
        with self._lock:
            for job in self.jobs.values():
                if job.enabled:
                    job.next_run = job.compute_next_run(now)
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="autoblog-scheduler", daemon=True)
        self._thread.start()
        log.info(f"Job scheduler started ({len(self.jobs)} jobs, polling every {self.poll_interval}s)")

    def stop(self, timeout: float | None = 5.0):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        log.info("Job scheduler stopped")

    def _loop(self):
        while not self._stop_event.wait(self.poll_interval):
            try:
                self.tick()
            except Exception:
                log.exception("Scheduler tick failed")

    def status(self) -> dict:
        running = self.is_running
        with self._lock:
            jobs = list(self.jobs.values())
        return {
            "is_running": running,
            "active_jobs": sum(1 for j in jobs if j.enabled) if running else 0,
            "total_jobs": len(jobs),
            "next_runs": [
                {"job_id": j.id, "name": j.name, "next_run": j.next_run.isoformat() if j.next_run else None}
                for j in jobs
            ],
        }
