"""Run the service with ``python -m hub_treasuries``."""

import uvicorn

from hub_treasuries.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "hub_treasuries.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
