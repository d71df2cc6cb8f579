"""Logging setup for Phantom Recall entry points.

Library modules only create ``logging.getLogger(__name__)`` loggers; entry
points (the MCP server) call ``configure_logging()`` once at startup.

Levels:
- DEBUG: per-memory exclusions, selector scores, joined in-flight updates
- INFO: injections, no-op terminations
- WARNING: fallback tiers, selector failures, sink failures
- ERROR: exceptions caught at the orchestrator boundary
"""

import logging
import os
import sys

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_logging(level: str | None = None) -> None:
    """Send logs to stderr (stdout carries the MCP stdio transport).

    Args:
        level: Log level. If None, uses PHANTOM_RECALL_LOG_LEVEL or INFO.
    """
    if level is None:
        level = os.environ.get("PHANTOM_RECALL_LOG_LEVEL", "INFO")
    level = level.upper()
    if level not in LEVELS:
        level = "INFO"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logging.basicConfig(level=getattr(logging, level), handlers=[handler], force=True)

    # Suppress noisy third-party loggers
    for name in ("httpx", "openai", "sentence_transformers", "mcp"):
        logging.getLogger(name).setLevel(logging.WARNING)
