"""
Locating external tools through an ordered list of named strategies.

Each strategy returns a DiscoveryResult instead of raising; the locator stops at the
first success and otherwise reports every attempt.
"""
import os
import sys
import shutil
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence
from fleetmaint.models.errors import ToolNotFound


@dataclass(frozen=True)
class DiscoveryResult:
    found: bool
    strategy: str
    command: List[str] = field(default_factory=list)
    error: str = ""

    @classmethod
    def ok(cls, strategy: str, command: List[str]) -> "DiscoveryResult":
        return cls(found=True, strategy=strategy, command=list(command))

    @classmethod
    def fail(cls, strategy: str, error: str) -> "DiscoveryResult":
        return cls(found=False, strategy=strategy, error=error)


@dataclass(frozen=True)
class Strategy:
    name: str
    attempt: Callable[[str], DiscoveryResult]


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def configured_path(path: Optional[str]) -> Strategy:
    def attempt(tool: str) -> DiscoveryResult:
        if not path:
            return DiscoveryResult.fail("configured_path", "no path configured")
        if _is_executable(path):
            return DiscoveryResult.ok("configured_path", [path])
        return DiscoveryResult.fail("configured_path", f"{path} is not an executable file")
    return Strategy("configured_path", attempt)


def path_lookup() -> Strategy:
    def attempt(tool: str) -> DiscoveryResult:
        found = shutil.which(tool)
        if found:
            return DiscoveryResult.ok("path_lookup", [found])
        return DiscoveryResult.fail("path_lookup", f"{tool} not found on PATH")
    return Strategy("path_lookup", attempt)


def python_module(module: str, python: Optional[str] = None, timeout: float = 15.0) -> Strategy:
    """Runs ``python -m <module> --version`` to confirm the module is importable."""
    def attempt(tool: str) -> DiscoveryResult:
        command = [python or sys.executable, "-m", module]
        try:
            completed = subprocess.run(command + ["--version"], capture_output=True, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            return DiscoveryResult.fail("python_module", f"{' '.join(command)}: {e}")
        if completed.returncode != 0:
            return DiscoveryResult.fail("python_module", completed.stderr.strip() or f"exit code {completed.returncode}")
        return DiscoveryResult.ok("python_module", command)
    return Strategy("python_module", attempt)


def well_known_dirs(directories: Sequence[str]) -> Strategy:
    def attempt(tool: str) -> DiscoveryResult:
        for directory in directories:
            candidate = os.path.join(os.path.expanduser(directory), tool)
            if _is_executable(candidate):
                return DiscoveryResult.ok("well_known_dirs", [candidate])
        return DiscoveryResult.fail("well_known_dirs", f"{tool} not in {', '.join(directories) or 'no directories'}")
    return Strategy("well_known_dirs", attempt)


class ToolLocator:
    def __init__(self, tool: str, strategies: Sequence[Strategy]):
        self.tool = tool
        self.strategies = list(strategies)
        self.attempts: List[DiscoveryResult] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    def locate(self) -> DiscoveryResult:
        self.attempts = []
        for strategy in self.strategies:
            result = strategy.attempt(self.tool)
            self.attempts.append(result)
            if result.found:
                self.logger.info(f"Located {self.tool} via {strategy.name}: {' '.join(result.command)}")
                return result
            self.logger.debug(f"{strategy.name} could not locate {self.tool}: {result.error}")

        summary = "; ".join(f"{attempt.strategy}: {attempt.error}" for attempt in self.attempts)
        return DiscoveryResult.fail("exhausted", summary or "no strategies configured")

    def require(self) -> List[str]:
        """Returns the command prefix for the tool or raises ToolNotFound."""
        result = self.locate()
        if not result.found:
            raise ToolNotFound(f"Could not locate {self.tool}: {result.error}")
        return result.command
