"""Delete expired account tokens once.

Standalone script for cron-style scheduling when the in-process
TokenSweepWorker is not running.

Usage:
    python -m scripts.sweep_expired_tokens
"""

import logging

from turnstile.services.token_sweep_worker import TokenSweepWorker

logger = logging.getLogger(__name__)


async def main() -> None:
    """CLI entry point: run one sweep against the configured database."""
    from turnstile.core.config import settings
    from turnstile.core.database import async_session_factory, engine

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        deleted = await TokenSweepWorker(async_session_factory).run_once()
    finally:
        await engine.dispose()

    logger.info("Deleted %d expired tokens", deleted)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
