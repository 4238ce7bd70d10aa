from __future__ import annotations

import itertools
import logging
import shutil
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from datachat.core.errors import ResourceError
from datachat.domain import Workspace

logger = logging.getLogger(__name__)

# Process-wide sequence; combined with a random fragment so ids never repeat
# within a process and do not collide across processes sharing the root.
_sequence = itertools.count(1)


def _next_workspace_id() -> str:
    return f"ws-{next(_sequence):06d}-{uuid.uuid4().hex[:16]}"


class WorkspaceManager:
    """Allocates and tears down ephemeral execution directories."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def create(self) -> Workspace:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            ws_id = _next_workspace_id()
            directory = self._root / ws_id
            directory.mkdir(exist_ok=False)
        except OSError as exc:
            raise ResourceError(f"could not create workspace under {self._root}: {exc}") from exc
        logger.debug("created workspace %s at %s", ws_id, directory)
        return Workspace(id=ws_id, directory_path=directory)

    def release(self, workspace: Workspace) -> None:
        """Delete every path the workspace created, then its directory.

        Deletion failures are logged, never raised.
        """

        for path in sorted(workspace.created_paths, key=lambda item: len(item.parts), reverse=True):
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("workspace %s: could not delete %s: %s", workspace.id, path, exc)
        workspace.created_paths.clear()

        try:
            shutil.rmtree(workspace.directory_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("workspace %s: could not delete %s: %s", workspace.id, workspace.directory_path, exc)
        logger.debug("released workspace %s", workspace.id)

    @contextmanager
    def scope(self) -> Iterator[Workspace]:
        workspace = self.create()
        try:
            yield workspace
        finally:
            self.release(workspace)
