"""Supervision of the proxy engine and tunnel adapter bridge processes."""

import asyncio
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional

from .command_factory import get_command_factory
from .commands import CommandError
from .exceptions import ConfigInvalid, EngineStartFailed
from .settings import Settings
from .utils import run_command, spawn_options
from ..logging_utility import logger

Matcher = Callable[[str], bool]

PROXY_ENGINE = "xray"
ADAPTER_BRIDGE = "tun2socks"

# Lines of output kept per stream for error reports
OUTPUT_HISTORY = 200


def marker_matcher(marker: str) -> Matcher:
    """Ready once the marker appears, ignoring case."""
    marker = marker.lower()
    return lambda output: marker in output.lower()


def tokens_matcher(*tokens: str) -> Matcher:
    """Ready once every token has appeared."""
    return lambda output: all(token in output for token in tokens)


class EngineProcess:
    """Handle to one running engine: pid, captured output, termination."""

    def __init__(self, name: str, process: asyncio.subprocess.Process):
        self.name = name
        self.process = process
        self.matcher: Optional[Matcher] = None
        self.ready = asyncio.Event()
        self.stopping = False
        self.stdout_lines: Deque[str] = deque(maxlen=OUTPUT_HISTORY)
        self.stderr_lines: Deque[str] = deque(maxlen=OUTPUT_HISTORY)
        # Everything printed on stdout until the engine is ready
        self.startup_lines: List[str] = []
        self._pumps = [
            asyncio.ensure_future(self._pump(process.stdout, self.stdout_lines, "stdout")),
            asyncio.ensure_future(self._pump(process.stderr, self.stderr_lines, "stderr")),
        ]
        self.exited = asyncio.ensure_future(process.wait())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    async def _pump(self, stream: Optional[asyncio.StreamReader], lines: Deque[str], label: str) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            lines.append(line)
            logger.info(f"{self.name} {label}: {line}")
            if label == "stdout" and not self.ready.is_set():
                self.startup_lines.append(line)
                self.check_ready()

    def check_ready(self) -> None:
        if self.matcher is not None and not self.ready.is_set():
            if self.matcher("\n".join(self.startup_lines)):
                self.ready.set()
                self.startup_lines = []

    async def drain(self, timeout: float = 1.0) -> None:
        """Give the output pumps a moment to catch up after exit."""
        await asyncio.wait(self._pumps, timeout=timeout)

    def output(self, limit: int = 50) -> str:
        lines = self.stderr_lines or self.stdout_lines
        return "\n".join(list(lines)[-limit:])

    def terminate(self) -> None:
        """Request termination without waiting for the exit."""
        self.stopping = True
        if self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass


async def wait_for_ready(engine: EngineProcess, matcher: Matcher, timeout: float) -> None:
    """
    Wait until the engine's stdout satisfies the matcher.

    Args:
        engine: Freshly launched engine
        matcher: Predicate over everything printed on stdout so far
        timeout: Seconds to wait before giving up

    Raises:
        EngineStartFailed: on exit before readiness or on timeout
    """
    engine.matcher = matcher
    engine.check_ready()

    ready = asyncio.ensure_future(engine.ready.wait())
    try:
        done, _ = await asyncio.wait(
            {ready, engine.exited}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        if not ready.done():
            ready.cancel()

    if engine.exited.done():
        await engine.drain()
        raise EngineStartFailed(
            f"{engine.name} exited with code {engine.returncode} before it was ready",
            output=engine.output(),
        )
    if ready in done:
        logger.info(f"{engine.name} is ready (pid {engine.pid})")
        return

    engine.terminate()
    raise EngineStartFailed(f"{engine.name} startup timeout after {timeout}s", output=engine.output())


class ProcessSupervisor:
    def __init__(self, settings: Settings, factory=None):
        self.settings = settings
        self.factory = factory or get_command_factory()
        self.engine: Optional[EngineProcess] = None
        self.bridge: Optional[EngineProcess] = None
        self.on_unexpected_exit: Optional[Callable[[str, Optional[int]], None]] = None

    def _cwd(self) -> Optional[str]:
        binary_dir = self.settings.binary_dir
        return str(binary_dir) if binary_dir.is_dir() else None

    async def _launch(self, name: str, cmd: list[str]) -> EngineProcess:
        logger.info(f"Starting {name} process: {cmd[0]}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd(),
                **spawn_options(),
            )
        except OSError as e:
            logger.error(f"Failed to start {name}: {e}")
            raise EngineStartFailed(f"Failed to start {name}: {e}")
        return EngineProcess(name, process)

    async def _start(self, name: str, cmd: list[str], matcher: Matcher) -> EngineProcess:
        engine = await self._launch(name, cmd)
        try:
            await wait_for_ready(engine, matcher, self.settings.engine_startup_timeout)
        except EngineStartFailed:
            engine.terminate()
            raise
        engine.exited.add_done_callback(lambda _: self._handle_exit(engine))
        return engine

    def _handle_exit(self, engine: EngineProcess) -> None:
        if engine.stopping:
            logger.info(f"{engine.name} exited with code {engine.returncode}")
            return
        logger.error(f"{engine.name} exited unexpectedly with code {engine.returncode}")
        if self.on_unexpected_exit is not None:
            self.on_unexpected_exit(engine.name, engine.returncode)

    @staticmethod
    def _require_binary(name: str, binary: Path) -> None:
        if not binary.exists():
            raise EngineStartFailed(f"{name} binary not found: {binary}")

    async def validate_config(self, config_path: Path) -> None:
        """Run the proxy engine in validate-only mode."""
        if not config_path.exists():
            raise ConfigInvalid(f"{PROXY_ENGINE} config not found: {config_path}")

        logger.info(f"Validating {PROXY_ENGINE} config...")
        cmd = self.factory.validate_engine_config(self.settings.engine_binary, config_path)
        try:
            stdout, _ = await run_command(cmd, timeout=self.settings.engine_startup_timeout)
        except CommandError as e:
            logger.error(f"{PROXY_ENGINE} config validation failed: {e}")
            raise ConfigInvalid(f"{PROXY_ENGINE} config validation failed", output=e.output or str(e))
        for line in stdout.splitlines():
            if line.strip():
                logger.info(f"{PROXY_ENGINE} test: {line.strip()}")

    async def start_proxy_engine(self, config_path: Path) -> EngineProcess:
        """Validate the config, then run the proxy engine until it reports readiness."""
        self._require_binary(PROXY_ENGINE, self.settings.engine_binary)
        await self.validate_config(config_path)

        cmd = self.factory.start_engine(self.settings.engine_binary, config_path)
        self.engine = await self._start(PROXY_ENGINE, cmd, marker_matcher(self.settings.engine_ready_marker))
        return self.engine

    async def stop_proxy_engine(self) -> None:
        if self.engine is not None:
            logger.info(f"Stopping {PROXY_ENGINE} (pid {self.engine.pid})")
            self.engine.terminate()
            self.engine = None

    async def start_adapter_bridge(self, socks_port: int) -> EngineProcess:
        """Run the adapter bridge until it reports both its device and proxy."""
        self._require_binary(ADAPTER_BRIDGE, self.settings.bridge_binary)

        adapter = self.settings.adapter_name
        cmd = self.factory.start_bridge(self.settings.bridge_binary, adapter, socks_port)
        matcher = tokens_matcher(self.factory.bridge_device(adapter), self.factory.bridge_proxy(socks_port))
        self.bridge = await self._start(ADAPTER_BRIDGE, cmd, matcher)
        return self.bridge

    async def stop_adapter_bridge(self) -> None:
        if self.bridge is not None:
            logger.info(f"Stopping {ADAPTER_BRIDGE} (pid {self.bridge.pid})")
            self.bridge.terminate()
            self.bridge = None
