#!/usr/bin/env python3
"""Manual generation entry point: produce and publish one post right now."""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from autoblog.config import load_config, resolve_path
from autoblog.control import ControlSurface
from autoblog.pipeline import build_pipeline
from autoblog.utils.logger import setup_logging


def write_last_run(log_dir: Path, success: bool, message: str = ""):
    """Write a last_run.txt for health check monitoring."""
    last_run_path = log_dir / "last_run.txt"
    last_run_path.parent.mkdir(parents=True, exist_ok=True)
    status = "SUCCESS" if success else "FAILURE"
    timestamp = datetime.now(timezone.utc).isoformat()
    last_run_path.write_text(f"{status}\n{timestamp}\n{message}\n")


def main():
    config = load_config("config.yaml")
    log_dir = Path(resolve_path(config["logging"]["dir"]))
    setup_logging({**config["logging"], "dir": str(log_dir)})

    try:
        control = ControlSurface(build_pipeline(config))
        response = control.trigger_generation()
    except Exception as e:
        print(f"FAILED: {e}", file=sys.stderr)
        write_last_run(log_dir, success=False, message=str(e))
        raise

    if response.success:
        post = response.data["post"]
        print(f"Post published: {post['title']}")
        print(f"   Slug: {post['slug']}  Category: {post['category']}  Tags: {', '.join(post['tags'])}")
        write_last_run(log_dir, success=True, message=f"Post #{post['slug']}: {post['title']}")
        return 0

    # Running out of topics is not a failure of the engine itself
    print(response.message)
    write_last_run(log_dir, success=response.status_code == 400, message=response.message)
    return 0 if response.status_code == 400 else 1


if __name__ == "__main__":
    sys.exit(main())
