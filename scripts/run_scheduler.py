#!/usr/bin/env python3
"""Long-running entry point: start the job scheduler and block until interrupted."""

import sys
import threading
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from autoblog.config import load_config, resolve_path
from autoblog.control import ControlSurface
from autoblog.pipeline import build_pipeline
from autoblog.utils.logger import setup_logging


def main():
    config = load_config("config.yaml")
    setup_logging({**config["logging"], "dir": resolve_path(config["logging"]["dir"])})

    control = ControlSurface(build_pipeline(config))
    control.scheduler_action("start")
    for job in control.list_jobs().data["jobs"]:
        state = "enabled" if job["enabled"] else "disabled"
        print(f"  {job['name']} ({state}) next run: {job['next_run']}")

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("Shutting down scheduler...")
    finally:
        control.scheduler_action("stop")
    return 0


if __name__ == "__main__":
    sys.exit(main())
