"""Main entry point for Tiergate."""

import structlog
import uvicorn

from tiergate.config import get_settings
from tiergate.logging import setup_logging

logger = structlog.get_logger()


def main() -> None:
    """Run the Tiergate gateway server."""
    settings = get_settings()
    setup_logging()

    if settings.store_backend == "memory":
        # Quotas are per process here, so every worker would hand out its own
        logger.warning("tiergate_memory_store", hint="set TIERGATE_STORE_BACKEND=redis")

    logger.info(
        "tiergate_launch",
        host=settings.host,
        port=settings.port,
        api_key_header=settings.api_key_header,
        default_tier=settings.default_tier,
    )

    uvicorn.run(
        "tiergate.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
