"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the configured store and delegates to the matching scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from reviewreply.infrastructure.observability.logging import get_logger, setup_logging
from reviewreply.jobs.auto_reply_job import start_auto_reply_scheduler
from reviewreply.jobs.campaign_job import start_campaign_scheduler
from reviewreply.repositories.factory import get_store

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "auto_reply": start_auto_reply_scheduler,
    "campaigns": start_campaign_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "auto_reply").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    store = get_store()
    await store.initialize()
    logger.info("Starting background worker", job=name, store_backend=store.backend)
    try:
        await JOB_REGISTRY[name]()
    finally:
        await store.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging()
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
