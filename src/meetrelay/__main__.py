"""Run the relay with uvicorn: ``python -m meetrelay``."""

import uvicorn

from meetrelay.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "meetrelay.api.app:create_asgi_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
