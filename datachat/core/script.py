"""Assembly of the self-contained analysis script.

The script is built from four typed slots, in this order:

* ``harness_header`` - non-interactive plotting backend, quiet warnings,
  deterministic styling and (on POSIX) resource limits for the child process;
* ``file_bindings`` - one loader statement per uploaded file, in upload order;
* ``sanitized_user_code`` - the generated code with display calls neutralized;
* ``capture_epilogue`` - saves the current figure, if any, and prints the
  sentinel line that tells the executor whether an artifact exists.

Every value interpolated into the script goes through :func:`py_literal`.
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path

from datachat.core.sanitize import neutralize_display_calls
from datachat.core.schema import FileDescriptor, GenerationContext
from datachat.domain import Workspace

SCRIPT_FILENAME = "analysis_script.py"
ARTIFACT_FILENAME = "artifact.png"

ARTIFACT_MARKER = "ARTIFACT"
NO_ARTIFACT_MARKER = "NO_ARTIFACT"

LOADERS = {
    "csv": "pd.read_csv",
    "excel": "pd.read_excel",
    "json": "pd.read_json",
    "unknown": "pd.read_csv",
}

PLOT_STYLE = "seaborn-v0_8-darkgrid"

HARNESS_HEADER = f"""\
import logging
import warnings

warnings.filterwarnings("ignore")
logging.getLogger("matplotlib").setLevel(logging.ERROR)

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

try:
    plt.style.use({PLOT_STYLE!r})
except (OSError, ValueError):
    pass
sns.set_palette("husl")
np.random.seed(0)
"""

RESOURCE_LIMITS = """\
import resource as _datachat_resource


def _datachat_cap(limit, value):
    soft, hard = _datachat_resource.getrlimit(limit)
    if hard != _datachat_resource.RLIM_INFINITY:
        value = min(value, hard)
    _datachat_resource.setrlimit(limit, (value, hard))

"""

CAPTURE_EPILOGUE = """\
import os as _datachat_os
import sys as _datachat_sys

import matplotlib.pyplot as _datachat_plt

_datachat_sys.stdout.flush()
if _datachat_plt.get_fignums():
    try:
        _datachat_plt.tight_layout()
    except Exception:
        pass
    _datachat_plt.savefig({artifact_path}, dpi=150, bbox_inches="tight")
    _datachat_plt.close("all")
    _datachat_sys.stdout.write("\\n" + {artifact_sentinel} + {artifact_path} + "\\n")
else:
    _datachat_sys.stdout.write("\\n" + {empty_sentinel} + "\\n")
_datachat_sys.stdout.flush()
_datachat_sys.stderr.flush()
# Nothing may print after the sentinel line, so exit handlers are skipped.
_datachat_os._exit(0)
"""


def py_literal(value: str | Path) -> str:
    """Render a string or path as a Python literal safe to splice into code."""

    return repr(str(value))


def binding_names(count: int) -> list[tuple[str, str]]:
    """Return ``(path_variable, frame_variable)`` pairs for ``count`` files."""

    if count == 1:
        return [("file_path", "df")]
    return [(f"file_path_{index}", f"df{index}") for index in range(1, count + 1)]


@dataclass(frozen=True, slots=True)
class AssembledScript:
    harness_header: str
    file_bindings: str
    sanitized_user_code: str
    capture_epilogue: str
    artifact_path: Path
    sentinel_token: str

    @property
    def text(self) -> str:
        slots = (self.harness_header, self.file_bindings, self.sanitized_user_code, self.capture_epilogue)
        return "\n\n".join(slot.strip("\n") for slot in slots) + "\n"

    @property
    def artifact_sentinel(self) -> str:
        return f"{self.sentinel_token}:{ARTIFACT_MARKER}:"

    @property
    def empty_sentinel(self) -> str:
        return f"{self.sentinel_token}:{NO_ARTIFACT_MARKER}"


class ScriptAssembler:
    """Combine the harness, file bindings and generated code into one script."""

    def __init__(
        self,
        *,
        cpu_limit_seconds: int | None = None,
        memory_limit_mb: int = 0,
        max_file_bytes: int | None = None,
    ) -> None:
        self._cpu_limit_seconds = cpu_limit_seconds
        self._memory_limit_mb = memory_limit_mb
        self._max_file_bytes = max_file_bytes

    def _header(self) -> str:
        if os.name != "posix" or not (self._cpu_limit_seconds or self._memory_limit_mb > 0 or self._max_file_bytes):
            return HARNESS_HEADER
        lines = [RESOURCE_LIMITS]
        if self._cpu_limit_seconds:
            lines.append(f"_datachat_cap(_datachat_resource.RLIMIT_CPU, {int(self._cpu_limit_seconds)})")
        if self._memory_limit_mb > 0:
            limit = int(self._memory_limit_mb) * 1024 * 1024
            lines.append(f"_datachat_cap(_datachat_resource.RLIMIT_AS, {limit})")
        if self._max_file_bytes:
            # Caps every file the child writes, its stdout and stderr logs included.
            lines.append(f"_datachat_cap(_datachat_resource.RLIMIT_FSIZE, {int(self._max_file_bytes)})")
        return "\n".join(lines) + "\n\n" + HARNESS_HEADER

    @staticmethod
    def build_bindings(files: list[FileDescriptor]) -> str:
        if not files:
            raise ValueError("at least one file is required to build bindings")
        names = binding_names(len(files))
        lines: list[str] = []
        for descriptor, (path_name, frame_name) in zip(files, names):
            loader = LOADERS.get(descriptor.format_tag, LOADERS["unknown"])
            lines.append(f"{path_name} = {py_literal(descriptor.storage_path)}")
            lines.append(f"{frame_name} = {loader}({path_name})")
        if len(files) > 1:
            lines.append(f"file_paths = [{', '.join(path for path, _ in names)}]")
            lines.append(f"dfs = [{', '.join(frame for _, frame in names)}]")
        return "\n".join(lines) + "\n"

    def assemble(self, context: GenerationContext, sanitized_code: str, workspace: Workspace) -> AssembledScript:
        artifact_path = workspace.claim(ARTIFACT_FILENAME)
        token = f"__DATACHAT_{secrets.token_hex(12)}__"
        epilogue = CAPTURE_EPILOGUE.format(
            artifact_path=py_literal(artifact_path),
            artifact_sentinel=py_literal(f"{token}:{ARTIFACT_MARKER}:"),
            empty_sentinel=py_literal(f"{token}:{NO_ARTIFACT_MARKER}"),
        )
        return AssembledScript(
            harness_header=self._header(),
            file_bindings=self.build_bindings(context.descriptors),
            sanitized_user_code=neutralize_display_calls(sanitized_code),
            capture_epilogue=epilogue,
            artifact_path=artifact_path,
            sentinel_token=token,
        )
