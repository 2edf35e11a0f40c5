#!/usr/bin/env python3
"""
Start the Guided Tutor API server.

Usage:
    python run.py

Host, port, reload and the generation backend come from Settings
(environment variables or .env): HOST, PORT, DEBUG, GENERATION_PROVIDER.
"""

import uvicorn

from guided_tutor.config import settings
from guided_tutor.logging_config import get_logger, setup_logging


def main():
    setup_logging(settings)
    logger = get_logger("server")

    model = {
        "ollama": settings.ollama_model,
        "openai": settings.openai_model,
        "anthropic": settings.anthropic_model,
    }[settings.generation_provider]

    logger.info(
        f"Guided Tutor listening on http://{settings.host}:{settings.port} (docs at /docs)",
        extra={
            "component": "server",
            "event": "starting",
            "data": {
                "env": settings.env,
                "provider": settings.generation_provider,
                "model": model,
                "reload": settings.debug and settings.is_development,
            },
        },
    )

    uvicorn.run(
        "guided_tutor.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug and settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
