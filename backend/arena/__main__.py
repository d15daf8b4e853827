"""Run the arena server: python -m arena."""

import uvicorn

from arena.server.settings import ArenaServerSettings


def main() -> None:
    settings = ArenaServerSettings()
    uvicorn.run(
        "arena.server.app:get_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
