"""Batch identity for search index synchronization runs."""

import logging
import os
import subprocess
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

UNKNOWN_BRANCH = "unknown"

# Checked in order; CI systems set one of these.
BRANCH_ENV_VARS = (
    "VERCEL_GIT_COMMIT_REF",
    "GITHUB_REF_NAME",
    "CI_COMMIT_BRANCH",
    "BRANCH",
)


@dataclass(frozen=True)
class RecordBatch:
    """Branch and batch identifier stamped on every record of one run."""

    branch: str
    batch_id: str


def resolve_branch(env: Mapping[str, str] | None = None) -> str:
    """Resolve the branch the records belong to.

    Tries the CI environment variables first, then ``git``. Never raises.

    Args:
        env: Environment mapping, defaults to ``os.environ``.

    Returns:
        Branch name, or ``"unknown"`` if it cannot be determined.
    """
    if env is None:
        env = os.environ

    for name in BRANCH_ENV_VARS:
        value = env.get(name, "").strip()
        if value:
            return value

    try:
        result = subprocess.run(  # noqa: S603
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],  # noqa: S607
            check=True,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError):
        logger.warning("Could not determine git branch, using %r", UNKNOWN_BRANCH)
        return UNKNOWN_BRANCH

    return result.stdout.strip() or UNKNOWN_BRANCH


def new_batch(branch: str | None = None) -> RecordBatch:
    """Start a new synchronization batch.

    Args:
        branch: Branch override; resolved from the environment if omitted.

    Returns:
        RecordBatch with a fresh globally unique identifier.
    """
    batch = RecordBatch(branch=branch or resolve_branch(), batch_id=str(uuid.uuid4()))
    logger.info("Starting record batch %s for branch %s", batch.batch_id, batch.branch)
    return batch
