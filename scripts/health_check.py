#!/usr/bin/env python3
"""System health check — run hourly via cron."""

import os
import shutil
import smtplib
import sys
from datetime import datetime, timezone, timedelta
from email.mime.text import MIMEText
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from autoblog.config import load_config, resolve_path
from autoblog.corpus import Corpus
from autoblog.relevance import RelevanceGraph
from autoblog.similarity import UniquenessValidator
from autoblog.store import FileRecordStore, MemoryRecordStore, StorageError


def check_last_run(log_dir: Path, log_filename: str = "autoblog.log") -> tuple[bool, str]:
    """Verify the generator ran within last 26 hours."""
    last_run_file = log_dir / "last_run.txt"
    if not last_run_file.exists():
        # Fallback to log file modification time
        log_file = log_dir / log_filename
        if not log_file.exists():
            return False, "No last_run.txt or log file found"
        last_modified = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
        age = datetime.now(timezone.utc) - last_modified
        if age > timedelta(hours=26):
            return False, f"Last log activity was {age.total_seconds()/3600:.1f} hours ago"
        return True, "OK (from log mtime)"

    lines = last_run_file.read_text().strip().split("\n")
    if len(lines) < 2:
        return False, "last_run.txt is malformed"

    status = lines[0].strip()
    timestamp_str = lines[1].strip()
    message = lines[2].strip() if len(lines) > 2 else ""

    try:
        age = datetime.now(timezone.utc) - datetime.fromisoformat(timestamp_str)
    except ValueError:
        return False, f"Cannot parse last_run timestamp: {timestamp_str}"

    if status == "FAILURE":
        return False, f"Last run FAILED {age.total_seconds()/3600:.1f}h ago: {message}"
    if age > timedelta(hours=26):
        return False, f"Last successful run was {age.total_seconds()/3600:.1f} hours ago"
    return True, f"OK, last run {age.total_seconds()/3600:.1f}h ago"


def load_scratch_corpus(data_dir: str) -> tuple[Corpus, list[str]]:
    """Copy the record store into memory so reconcile never writes to disk."""
    scratch = MemoryRecordStore()
    for key, record in FileRecordStore(data_dir).list():
        scratch.put(key, record)
    corpus = Corpus(scratch)
    return corpus, corpus.reconcile()


def check_corpus(data_dir: str) -> tuple[bool, str]:
    """Load the corpus into a scratch copy and report repairs or broken invariants."""
    try:
        corpus, repairs = load_scratch_corpus(data_dir)
    except StorageError as e:
        return False, f"Cannot read corpus: {e}"

    problems = repairs + corpus.verify()
    if problems:
        return False, "; ".join(problems)
    return True, f"{len(corpus.posts)} posts, next slug {corpus.next_slug}"


def check_corpus_links(data_dir: str, config: dict) -> tuple[bool, str]:
    """Fail on near-duplicate published bodies; report posts with no related posts."""
    try:
        corpus, _ = load_scratch_corpus(data_dir)
    except StorageError as e:
        return False, f"Cannot read corpus: {e}"

    linking = RelevanceGraph.from_config(corpus.posts, config).linking_report()
    uniqueness = UniquenessValidator.from_config(config).uniqueness_report(corpus.posts)
    summary = (
        f"{linking.posts_without_relations}/{linking.total_posts} posts without related posts, "
        f"average uniqueness {uniqueness.average_uniqueness:.0%}"
    )
    if uniqueness.duplicate_pairs:
        first, second, score = uniqueness.duplicate_pairs[0]
        return False, f"{len(uniqueness.duplicate_pairs)} near-duplicate pairs, worst \"{first}\" / \"{second}\" at {score:.0%}; {summary}"
    return True, summary


def check_disk_space() -> tuple[bool, str]:
    """Warn if disk > 80% full."""
    total, used, free = shutil.disk_usage("/")
    pct_used = used / total * 100
    if pct_used > 80:
        return False, f"Disk {pct_used:.1f}% full ({free // (1024**3)}GB free)"
    return True, f"Disk {pct_used:.1f}% used"


def send_alert(message: str):
    """Send email alert on failure."""
    smtp_user = os.getenv("SMTP_USER", "")
    smtp_pass = os.getenv("SMTP_PASSWORD", "")
    to_email = os.getenv("NOTIFICATION_EMAIL", "")

    if not smtp_user or not to_email:
        print(f"ALERT: {message}")
        return

    try:
        msg = MIMEText(message)
        msg["Subject"] = "Autoblog ALERT"
        msg["From"] = smtp_user
        msg["To"] = to_email

        with smtplib.SMTP(os.getenv("SMTP_HOST", "smtp.gmail.com"), int(os.getenv("SMTP_PORT", "587"))) as s:
            s.starttls()
            s.login(smtp_user, smtp_pass)
            s.send_message(msg)
    except Exception as e:
        print(f"Could not send alert email: {e}")


def main():
    print(f"Health check: {datetime.now(timezone.utc).isoformat()}")
    config = load_config("config.yaml")
    log_dir = Path(resolve_path(config["logging"]["dir"]))
    data_dir = resolve_path(config["storage"]["data_dir"])
    alerts = []

    checks = [
        ("Last Run", lambda: check_last_run(log_dir, config["logging"]["filename"])),
        ("Corpus", lambda: check_corpus(data_dir)),
        ("Corpus Links", lambda: check_corpus_links(data_dir, config)),
        ("Disk Space", check_disk_space),
    ]

    for name, check_fn in checks:
        ok, msg = check_fn()
        status = "OK" if ok else "FAIL"
        print(f"  [{status}] {name}: {msg}")
        if not ok:
            alerts.append(f"{name}: {msg}")

    if alerts:
        send_alert("Health check failures:\n\n" + "\n".join(alerts))
        return 1

    print("All checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
