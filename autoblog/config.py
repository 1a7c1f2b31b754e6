"""Configuration — config.yaml merged over defaults, with .env overrides."""

from __future__ import annotations

import copy
import logging
import os

import yaml
from dotenv import load_dotenv

load_dotenv(override=True)

log = logging.getLogger(__name__)

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DEFAULTS = {
    "site": {
        "name": "Sayola",
        "author": "Sayola Team",
        "blog_path": "/blog",
        "seo_title_suffix": "Learn European Portuguese | Sayola",
    },
    "storage": {
        "data_dir": "content/blog",
    },
    "content": {
        "topics_path": "data/topics.yaml",
        "taxonomy_path": "data/taxonomy.yaml",
        "templates_dir": "templates",
        "base_keywords": [
            "Portuguese learning",
            "European Portuguese",
            "Portuguese language",
            "learn Portuguese",
            "Portuguese grammar",
            "Portuguese vocabulary",
        ],
        "max_keywords": 10,
        "featured_probability": 0.3,
        "random_seed": None,
    },
    "uniqueness": {
        "threshold": 0.3,
        "segment_words": 50,
        "segment_similarity": 0.8,
        "max_segments": 150,
        "max_edit_chars": 5000,
        "reject_after_mutation": False,
    },
    "linking": {
        "max_related": 5,
        "min_relevance": 0.3,
        "min_link_relevance": 0.5,
        "max_auto_links": 3,
    },
    "scheduler": {
        "poll_interval_seconds": 60,
        "jobs": [
            {
                "id": "daily-blog-generation",
                "name": "Daily Blog Post Generation",
                "run_at": "09:00",
                "timezone": "Europe/Lisbon",
                "enabled": True,
            },
        ],
    },
    "logging": {
        "dir": "logs",
        "level": "INFO",
        "filename": "autoblog.log",
        "max_bytes": 10 * 1024 * 1024,
        "backup_count": 5,
    },
}

ENV_OVERRIDES = {
    "AUTOBLOG_DATA_DIR": ("storage", "data_dir"),
    "AUTOBLOG_LOG_DIR": ("logging", "dir"),
    "AUTOBLOG_LOG_LEVEL": ("logging", "level"),
}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_path(path: str, root: str = PROJECT_ROOT) -> str:
    """Relative paths in the config are relative to the project root."""
    if os.path.isabs(path):
        return path
    return os.path.normpath(os.path.join(root, path))


def load_config(path: str | None = "config.yaml", overrides: dict | None = None) -> dict:
    file_config = {}
    if path:
        path = resolve_path(path)
        if os.path.exists(path):
            with open(path, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        else:
            log.warning(f"Config file not found at {path}, using defaults")

    config = _merge(DEFAULTS, file_config)
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            config[section][key] = value
    return _merge(config, overrides or {})
