"""Git process runner.

Infrastructure component that runs the git executable as a subprocess.
Services depend on the ProcessInvoker protocol so they can be tested
without spawning git.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


class GitOperation(Enum):
    """Whether an invocation mutates the repository."""

    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class GitRequest:
    """One git invocation.

    Attributes:
        cwd: Working directory for the process
        argv: Full argument vector, starting with the executable
        op: READ for queries, WRITE for anything that changes repo state
        workspace_id: Workspace this call belongs to, if any
        timeout_ms: Kill the process after this many milliseconds
        meta: Opaque tags passed through for observability
    """

    cwd: str
    argv: tuple[str, ...]
    op: GitOperation = GitOperation.READ
    workspace_id: str | None = None
    timeout_ms: int | None = None
    meta: dict = field(default_factory=dict)

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class GitResponse:
    """Captured output of one invocation."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class GitCommandError(Exception):
    """Raised when a git read fails and the call site does not tolerate it."""

    def __init__(self, request: GitRequest, response: GitResponse):
        self.request = request
        self.response = response
        detail = response.stderr.strip() or f"exit code {response.exit_code}"
        super().__init__(f"{request.command_line} failed: {detail}")


class ProcessInvoker(Protocol):
    """Protocol for running git commands."""

    async def run(self, request: GitRequest) -> GitResponse:
        """Run a command and return its output; never raises for non-zero exit."""
        ...


@dataclass
class SubprocessGitRunner:
    """Runs git via asyncio subprocesses.

    This is the production implementation of ProcessInvoker. With
    ``dry_run`` set, WRITE requests are logged and reported as successful
    without being executed. ``on_write`` is called after every executed
    WRITE request, so a host can keep an audit log of mutations.
    """

    dry_run: bool = False
    on_write: Callable[[GitRequest, GitResponse], None] | None = None

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    async def run(self, request: GitRequest) -> GitResponse:
        """Run a git command.

        Args:
            request: The invocation to perform

        Returns:
            GitResponse; a missing executable yields exit code 127 and a
            timeout yields exit code 124
        """
        if self.dry_run and request.op == GitOperation.WRITE:
            logger.info("[dry run] would run: %s (cwd=%s)", request.command_line, request.cwd)
            return GitResponse(stdout=f"[DRY RUN] Would run: {request.command_line}")

        started = time.monotonic()
        response = await self._execute(request)
        logger.debug(
            "git %s exited %d in %.0fms (cwd=%s, op=%s)",
            " ".join(request.argv[1:]),
            response.exit_code,
            (time.monotonic() - started) * 1000,
            request.cwd,
            request.op.value,
        )

        if request.op == GitOperation.WRITE and self.on_write is not None:
            self.on_write(request, response)
        return response

    # --------------------------------------------------------
    # Private Methods
    # --------------------------------------------------------

    async def _execute(self, request: GitRequest) -> GitResponse:
        env = {**os.environ, "NO_COLOR": "1", "FORCE_COLOR": "0", "GIT_TERMINAL_PROMPT": "0"}
        try:
            process = await asyncio.create_subprocess_exec(
                *request.argv,
                cwd=request.cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as e:
            return GitResponse(stderr=f"Executable not found: {e.filename or request.argv[0]}", exit_code=EXIT_NOT_FOUND)

        timeout = request.timeout_ms / 1000 if request.timeout_ms else None
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            logger.warning("git command timed out after %sms: %s", request.timeout_ms, request.command_line)
            return GitResponse(
                stderr=f"Command timed out after {request.timeout_ms}ms: {request.command_line}",
                exit_code=EXIT_TIMEOUT,
            )
        except BaseException:
            # Cancelled by the caller; reap the child before propagating
            await _kill(process)
            raise

        return GitResponse(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else 0,
        )


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()
