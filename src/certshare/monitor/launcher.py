# src/certshare/monitor/launcher.py
"""Spawn sharded worker processes."""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import structlog

from certshare.core.clock import DEFAULT_CLOCK, Clock

logger = structlog.get_logger(__name__)

STAGGER_SECONDS = 1.0
TERMINATE_GRACE_SECONDS = 5.0


def worker_command(settings_path: Path | None = None) -> list[str]:
    """Command line that runs one worker with the current interpreter."""
    command = [sys.executable, "-m", "certshare", "worker"]
    if settings_path is not None:
        command += ["--settings", str(settings_path)]
    return command


def worker_env(base: Mapping[str, str], shard_total: int, shard_index: int, *, loop: bool = True) -> dict[str, str]:
    env = dict(base)
    env["SHARD_TOTAL"] = str(shard_total)
    env["SHARD_INDEX"] = str(shard_index)
    env.setdefault("LOOP", "true" if loop else "false")
    return env


class WorkerLauncher:
    """Starts N workers, one per shard slot, and stops them on exit.

    Example:
        with WorkerLauncher(4) as launcher:
            launcher.start()
            follow_logs()
    """

    def __init__(
        self,
        workers: int,
        *,
        command: Sequence[str] | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Clock = DEFAULT_CLOCK,
        spawn: Callable[..., subprocess.Popen[bytes]] = subprocess.Popen,
        stagger_seconds: float = STAGGER_SECONDS,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.workers = workers
        self._command = list(command) if command is not None else worker_command()
        self._environ = os.environ if environ is None else environ
        self._clock = clock
        self._spawn = spawn
        self._stagger_seconds = stagger_seconds
        self.processes: list[subprocess.Popen[bytes]] = []

    def start(self) -> None:
        for index in range(self.workers):
            if index:
                self._clock.sleep(self._stagger_seconds)
            process = self._spawn(
                self._command,
                env=worker_env(self._environ, self.workers, index),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            self.processes.append(process)
            logger.info("Worker started", shard_index=index, shard_total=self.workers, pid=process.pid)

    def stop(self) -> None:
        """Terminate every child still running, killing laggards."""
        for process in self.processes:
            if process.poll() is None:
                process.terminate()
        for process in self.processes:
            try:
                process.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        self.processes.clear()

    def __enter__(self) -> WorkerLauncher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
