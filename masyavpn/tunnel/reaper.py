"""Cleanup of engine processes left behind by an earlier abnormal exit."""

from typing import Iterable, Optional

from .command_factory import get_command_factory
from .commands import CommandError
from .settings import Settings
from .utils import run_command
from ..logging_utility import logger


class ZombieReaper:
    def __init__(self, settings: Settings, factory=None):
        self.settings = settings
        self.factory = factory or get_command_factory()

    def image_names(self) -> Iterable[str]:
        return self.settings.engine_binary.name, self.settings.bridge_binary.name

    async def reap(self, images: Optional[Iterable[str]] = None) -> None:
        """Force-kill every running instance of the engine executables."""
        logger.info("Cleaning up potential zombie processes...")
        for image in images or self.image_names():
            try:
                await run_command(self.factory.kill_by_name(image), timeout=10)
                logger.info(f"Killed zombie {image} processes")
            except CommandError as e:
                if e.returncode is not None and self.factory.process_not_found(e.returncode, e.output):
                    continue
                logger.warning(f"No zombie {image} found or cleanup failed: {e}")
