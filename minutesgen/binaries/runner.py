"""
minutesgen.binaries.runner - Subprocess execution with a strategy ladder.

A single logical command is attempted through an ordered list of
execution strategies. The first strategy that completes (and whose
result is accepted) wins; when every strategy fails, the error carries
the last strategy's failure reason.

Default ladder:
1. direct spawn, argv-based, no shell
2. shell spawn with the executable path quoted
3. copy the binary to a safe directory, then spawn the copy
4. platform shell wrapper (PowerShell on Windows, /bin/sh elsewhere)
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import sys
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from minutesgen.exceptions import BinaryUnverifiedError, ExecutionError

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
DEFAULT_TIMEOUT = 10.0


@dataclass
class RunResult:
    """Outcome of one completed process."""

    stdout: str
    stderr: str
    returncode: int
    strategy: str = ""

    @property
    def output(self) -> str:
        return f"{self.stdout}\n{self.stderr}"

    @property
    def ok(self) -> bool:
        return self.returncode == 0


StrategyFn = Callable[[Path, Sequence[str], float], RunResult]
Acceptor = Callable[[RunResult], bool]


@dataclass(frozen=True)
class ExecutionStrategy:
    name: str
    execute: StrategyFn


def _tail(text: str, lines: int = 5) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


def _spawn(cmd: str | list[str], timeout: float, shell: bool = False) -> RunResult:
    """Run a command to completion; the child is killed on timeout."""
    kwargs = {}
    if IS_WINDOWS:
        kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            shell=shell,
            stdin=subprocess.DEVNULL,
            **kwargs,
        )
    except subprocess.TimeoutExpired as e:
        raise ExecutionError(f"timed out after {timeout:g}s") from e
    except OSError as e:
        raise ExecutionError(f"launch failed: {e}") from e
    return RunResult(proc.stdout or "", proc.stderr or "", proc.returncode)


def _join_args(args: Sequence[str]) -> str:
    if IS_WINDOWS:
        return subprocess.list2cmdline(list(args))
    return shlex.join(args)


def _quote_path(path: Path) -> str:
    if IS_WINDOWS:
        return f'"{path}"'
    return shlex.quote(str(path))


def direct_spawn(path: Path, args: Sequence[str], timeout: float) -> RunResult:
    return _spawn([str(path), *args], timeout)


def quoted_shell(path: Path, args: Sequence[str], timeout: float) -> RunResult:
    cmd = f"{_quote_path(path)} {_join_args(args)}".rstrip()
    return _spawn(cmd, timeout, shell=True)


def platform_shell(path: Path, args: Sequence[str], timeout: float) -> RunResult:
    if IS_WINDOWS:
        command = f'& "{path}" {_join_args(args)}'.rstrip()
        return _spawn(["powershell.exe", "-NoProfile", "-Command", command], timeout)
    return _spawn(["/bin/sh", "-c", 'exec "$0" "$@"', str(path), *args], timeout)


def make_safe_copy_strategy(safe_dir: Path) -> StrategyFn:
    """Build a strategy that runs a private copy of the binary from safe_dir.

    The copy is removed after the run whatever the outcome.
    """

    def safe_copy(path: Path, args: Sequence[str], timeout: float) -> RunResult:
        target = safe_dir / f"{uuid.uuid4().hex[:8]}-{path.name}"
        try:
            safe_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            if not IS_WINDOWS:
                os.chmod(target, 0o755)
        except OSError as e:
            target.unlink(missing_ok=True)
            raise ExecutionError(f"safe directory copy failed: {e}") from e

        try:
            return _spawn([str(target), *args], timeout)
        finally:
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove safe copy {target}: {e}")

    return safe_copy


def default_strategies(safe_dir: Path | None = None) -> list[ExecutionStrategy]:
    """The standard ladder, most direct first."""
    strategies = [
        ExecutionStrategy("direct", direct_spawn),
        ExecutionStrategy("quoted-shell", quoted_shell),
    ]
    if safe_dir is not None:
        strategies.append(ExecutionStrategy("safe-copy", make_safe_copy_strategy(safe_dir)))
    strategies.append(ExecutionStrategy("platform-shell", platform_shell))
    return strategies


def is_version_banner(result: RunResult) -> bool:
    """Accept a `-version` run: clean exit and a version line in the output."""
    return result.returncode == 0 and "version" in result.output.lower()


class ProcessRunner:
    """Runs verified binaries through the strategy ladder.

    A path must pass ``verify`` before ``run`` will spawn it. The strategy
    that verified a path is tried first on later runs of that path.
    """

    def __init__(
        self,
        strategies: Sequence[ExecutionStrategy] | None = None,
        safe_dir: Path | None = None,
    ) -> None:
        if strategies is None:
            strategies = default_strategies(safe_dir)
        self.strategies = list(strategies)
        self._verified: dict[str, str] = {}
        self._lock = threading.Lock()

    def is_verified(self, path: Path) -> bool:
        with self._lock:
            return str(path) in self._verified

    def verified_strategy(self, path: Path) -> str | None:
        with self._lock:
            return self._verified.get(str(path))

    def forget(self, path: Path) -> None:
        """Drop the verification record, e.g. after the binary was replaced."""
        with self._lock:
            self._verified.pop(str(path), None)

    def verify(self, path: Path, timeout: float = DEFAULT_TIMEOUT) -> RunResult:
        """Confirm that the binary actually runs by asking for its version.

        Raises:
            BinaryUnverifiedError: If every strategy failed
        """
        path = Path(path)
        result = self._attempt(path, ["-version"], timeout, is_version_banner, self.strategies)
        with self._lock:
            self._verified[str(path)] = result.strategy
        first_line = result.output.strip().splitlines()[0] if result.output.strip() else ""
        logger.info(f"Verified {path.name} via {result.strategy}: {first_line}")
        return result

    def run(
        self,
        path: Path,
        args: Sequence[str],
        timeout: float = DEFAULT_TIMEOUT,
        accept: Acceptor | None = None,
    ) -> RunResult:
        """Run a verified binary and return its result.

        Any completed process counts as success unless ``accept`` rejects it;
        a non-zero exit code is reported, not raised.

        Raises:
            BinaryUnverifiedError: If the path was never verified, or every
                strategy failed
        """
        path = Path(path)
        preferred = self.verified_strategy(path)
        if preferred is None:
            raise BinaryUnverifiedError(str(path), "binary has not been verified")

        ordered = sorted(self.strategies, key=lambda s: s.name != preferred)
        return self._attempt(path, list(args), timeout, accept, ordered)

    def _attempt(
        self,
        path: Path,
        args: Sequence[str],
        timeout: float,
        accept: Acceptor | None,
        strategies: Sequence[ExecutionStrategy],
    ) -> RunResult:
        attempted: list[str] = []
        last_error = "no execution strategies configured"

        for strategy in strategies:
            attempted.append(strategy.name)
            logger.debug(f"Trying {strategy.name} for {path.name} {' '.join(args[:2])}")
            try:
                result = strategy.execute(path, args, timeout)
            except (ExecutionError, OSError) as e:
                last_error = f"{strategy.name}: {e}"
                logger.warning(f"Strategy {last_error}")
                continue

            if accept is not None and not accept(result):
                last_error = (
                    f"{strategy.name}: rejected output (exit code {result.returncode})"
                    f" {_tail(result.stderr)}".rstrip()
                )
                logger.warning(f"Strategy {last_error}")
                continue

            result.strategy = strategy.name
            return result

        raise BinaryUnverifiedError(
            str(path),
            f"All execution strategies failed. Last error: {last_error}",
            attempted,
        )
