"""Domain entities for ephemeral execution workspaces."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class Workspace:
    """Exclusively owned scratch directory for one pipeline invocation."""

    id: str
    directory_path: Path
    created_paths: set[Path] = field(default_factory=set)

    def claim(self, name: str) -> Path:
        """Return a path inside the workspace and record it for teardown."""

        safe_name = Path(name).name
        if not safe_name or safe_name in {".", ".."}:
            raise ValueError(f"invalid workspace file name: {name!r}")
        path = self.directory_path / safe_name
        self.created_paths.add(path)
        return path

    def owns(self, path: Path) -> bool:
        try:
            return path.resolve() in {item.resolve() for item in self.created_paths}
        except OSError:  # pragma: no cover - unresolvable path
            return False
