"""Process entry point: serves the API and, when enabled, the gas keeper loop.

Usage:
    gaswise
    python -m gaswise.main
"""

import asyncio
import logging
import signal
from typing import Awaitable, Callable, Optional

import uvicorn

from gaswise.api.app import create_app
from gaswise.config import Settings, get_settings
from gaswise.services import Services, build_services

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    # Access logs per request are noise outside debug.
    if not settings.debug:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Application:
    """Owns the services and the background tasks of one gaswise process."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.services: Optional[Services] = None
        self._stopping = asyncio.Event()

    def _jobs(self) -> dict[str, Callable[[], Awaitable[None]]]:
        jobs: dict[str, Callable[[], Awaitable[None]]] = {"api": self._serve_api}
        if self.settings.keeper_enabled:
            jobs["keeper"] = self.services.keeper.run
        else:
            logger.warning("Keeper disabled - gas prices must be pushed to POST /api/v1/gas")
        return jobs

    async def _supervise(self, name: str, job: Callable[[], Awaitable[None]]) -> None:
        try:
            await job()
        except asyncio.CancelledError:
            logger.info(f"{name} stopped")
        except Exception as e:
            logger.error(f"{name} crashed: {e}")
            self.stop()
            raise

    async def _serve_api(self) -> None:
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(self.services),
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
        )
        logger.info(f"API listening on {self.settings.api_host}:{self.settings.api_port}")
        await server.serve()
        # The server also reacts to SIGINT; take the rest of the process down with it.
        self.stop()

    async def start(self) -> None:
        configure_logging(self.settings)
        logger.info(
            f"GasWise starting: env={self.settings.environment} network={self.settings.network} "
            f"chain={self.settings.current_chain_id}"
        )
        if self.settings.dry_run:
            logger.warning("DRY RUN - static USD prices and simulated bridge")

        self.services = build_services(self.settings)
        running = [
            asyncio.create_task(self._supervise(name, job), name=name)
            for name, job in self._jobs().items()
        ]
        logger.info(f"Started: {', '.join(task.get_name() for task in running)}")

        await self._stopping.wait()

        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        await self.services.close()
        logger.info("GasWise stopped")

    def stop(self) -> None:
        if not self._stopping.is_set():
            logger.info("Shutdown requested")
            self._stopping.set()


async def main() -> None:
    app = Application()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.stop)
    await app.start()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
