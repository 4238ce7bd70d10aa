"""Isolated execution of assembled analysis scripts.

The script runs in a separate interpreter process started in isolated mode
(``-I``) with the workspace as working directory, a scrubbed environment and
its own process session.  Standard output and error go to workspace-owned
files so partial output survives a timeout kill and memory use stays bounded
by the output cap.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from datachat.core.errors import ErrorKind, ResourceError
from datachat.core.schema import ExecutionResult
from datachat.core.script import SCRIPT_FILENAME, AssembledScript
from datachat.domain import Workspace

logger = logging.getLogger(__name__)

STDOUT_FILENAME = "stdout.log"
STDERR_FILENAME = "stderr.log"
SENTINEL_TAIL_BYTES = 8192

ENV_ALLOWLIST = (
    "PATH",
    "HOME",
    "LANG",
    "LC_ALL",
    "LC_CTYPE",
    "MPLCONFIGDIR",
    "SYSTEMROOT",
)


class SandboxExecutor:
    """Run an :class:`AssembledScript` under timeout and output-size policy."""

    def __init__(
        self,
        *,
        python_executable: str | None = None,
        timeout: float = 30.0,
        max_output_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self._python = python_executable or sys.executable
        self._timeout = timeout
        self._max_output_bytes = max_output_bytes

    @property
    def timeout(self) -> float:
        return self._timeout

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _child_env(workspace: Workspace) -> dict[str, str]:
        env = {key: os.environ[key] for key in ENV_ALLOWLIST if key in os.environ}
        env["MPLBACKEND"] = "Agg"
        env["TMPDIR"] = str(workspace.directory_path)
        return env

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:  # pragma: no cover - non-POSIX hosts
                process.kill()
        except ProcessLookupError:
            pass

    def _read_capped(self, path: Path) -> tuple[str, bool]:
        try:
            size = path.stat().st_size
            with path.open("rb") as handle:
                data = handle.read(self._max_output_bytes)
        except FileNotFoundError:
            return "", False
        return data.decode("utf-8", errors="replace"), size > self._max_output_bytes

    @staticmethod
    def _final_line(path: Path) -> str:
        try:
            size = path.stat().st_size
            with path.open("rb") as handle:
                handle.seek(max(size - SENTINEL_TAIL_BYTES, 0))
                tail = handle.read()
        except FileNotFoundError:
            return ""
        text = tail.decode("utf-8", errors="replace").rstrip("\r\n")
        return text.rsplit("\n", 1)[-1].strip()

    @staticmethod
    def _strip_sentinel(stdout: str, script: AssembledScript) -> str:
        index = stdout.rfind("\n" + script.sentinel_token)
        if index == -1:
            return stdout
        return stdout[:index]

    @staticmethod
    def _collect_artifact(script: AssembledScript, final_line: str) -> bytes | None:
        if not final_line.startswith(script.artifact_sentinel):
            return None
        reported = Path(final_line[len(script.artifact_sentinel):])
        expected = script.artifact_path
        if reported.resolve() != expected.resolve() or not expected.is_file():
            logger.warning("ignoring artifact sentinel for unexpected path %s", reported)
            return None
        data = expected.read_bytes()
        expected.unlink(missing_ok=True)
        return data or None

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def execute(self, script: AssembledScript, workspace: Workspace) -> ExecutionResult:
        script_path = workspace.claim(SCRIPT_FILENAME)
        stdout_path = workspace.claim(STDOUT_FILENAME)
        stderr_path = workspace.claim(STDERR_FILENAME)
        try:
            script_path.write_text(script.text, encoding="utf-8")
        except OSError as exc:
            raise ResourceError(f"could not write script into workspace {workspace.id}: {exc}") from exc

        command = [self._python, "-I", "-u", str(script_path)]
        timed_out = False
        try:
            with stdout_path.open("wb") as stdout_handle, stderr_path.open("wb") as stderr_handle:
                process = subprocess.Popen(
                    command,
                    cwd=workspace.directory_path,
                    env=self._child_env(workspace),
                    stdin=subprocess.DEVNULL,
                    stdout=stdout_handle,
                    stderr=stderr_handle,
                    start_new_session=os.name == "posix",
                )
                try:
                    exit_code = process.wait(timeout=self._timeout)
                except subprocess.TimeoutExpired:
                    timed_out = True
                    self._kill(process)
                    exit_code = process.wait()
        except OSError as exc:
            raise ResourceError(f"could not start interpreter {self._python}: {exc}") from exc

        stdout, stdout_truncated = self._read_capped(stdout_path)
        stderr, stderr_truncated = self._read_capped(stderr_path)
        truncated = stdout_truncated or stderr_truncated
        if truncated:
            logger.warning("workspace %s: output exceeded %s bytes and was truncated", workspace.id, self._max_output_bytes)

        final_line = self._final_line(stdout_path)
        artifact = None
        if final_line.startswith(script.sentinel_token):
            artifact = self._collect_artifact(script, final_line)
            stdout = self._strip_sentinel(stdout, script)

        error_kind: ErrorKind | None = None
        if timed_out:
            error_kind = ErrorKind.TIMEOUT_ERROR
            marker = f"Execution timed out after {self._timeout:g} seconds."
            stderr = f"{stderr.rstrip()}\n{marker}" if stderr.strip() else marker
            logger.warning("workspace %s: execution timed out after %ss", workspace.id, self._timeout)
        elif exit_code != 0:
            error_kind = ErrorKind.EXECUTION_ERROR
            if not stderr.strip():
                stderr = f"Interpreter exited with status {exit_code}."
            logger.info("workspace %s: execution failed with status %s", workspace.id, exit_code)

        return ExecutionResult(
            stdout=stdout,
            stderr=stderr,
            artifact_bytes=artifact,
            error_kind=error_kind,
            exit_code=None if timed_out else exit_code,
            output_truncated=truncated,
        )


__all__ = ["SandboxExecutor"]
