"""Run the hub: python -m powerhub"""

import uvicorn

from powerhub.config import settings_from_env


def main() -> None:
    settings = settings_from_env()
    uvicorn.run(
        "powerhub.transport.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
