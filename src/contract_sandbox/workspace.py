# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import secrets
import shutil
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from loguru import logger

from contract_sandbox.errors import CleanupError, StagingError
from contract_sandbox.models import Workspace


class WorkspaceManager:
    """Allocates, fills and removes per-request workspace directories.

    Every workspace lives directly under ``temp_root`` and is named from a
    nanosecond timestamp plus a random token, so concurrent requests for the
    same entry never share a directory. The temp root itself is never removed.
    """

    def __init__(
        self,
        temp_root: Path,
        test_filename: str = "test_contract.py",
        artifact_extension: str = ".py",
    ):
        """Initializes the WorkspaceManager.

        Args:
            temp_root: Directory under which all workspaces are created.
            test_filename: Fixed filename for the test artifact.
            artifact_extension: Extension appended to the contract filename.
        """
        self.temp_root = Path(temp_root)
        self.test_filename = test_filename
        self.artifact_extension = artifact_extension
        self._live: set[Path] = set()

    @property
    def live_workspaces(self) -> set[Path]:
        return set(self._live)

    def _new_root(self) -> Path:
        return self.temp_root / f"{time.time_ns()}_{secrets.token_hex(8)}"

    def allocate(self) -> Workspace:
        """Create a fresh, uniquely named workspace directory.

        Returns:
            Workspace: The allocated workspace, owned by the caller.

        Raises:
            StagingError: If the directory cannot be created.
        """
        root = self._new_root()
        try:
            self.temp_root.mkdir(parents=True, exist_ok=True)
            # exist_ok=False: a name collision is a staging failure, not a shared directory
            root.mkdir(mode=0o755)
        except OSError as e:
            logger.error(f"Failed to create workspace {root}: {e}")
            raise StagingError(f"Failed to create workspace: {e}") from e

        self._live.add(root)
        logger.debug(f"Allocated workspace {root}")
        return Workspace(root_path=root)

    def _contained(self, workspace: Workspace, filename: str) -> Path:
        target = workspace.root_path / filename
        if not target.resolve().is_relative_to(workspace.root_path.resolve()):
            raise StagingError(f"Refusing to write outside the workspace: {filename}")
        return target

    async def place(
        self,
        workspace: Workspace,
        contract_artifact: str,
        test_artifact: str,
        entry_identifier: str,
    ) -> Workspace:
        """Write both artifacts verbatim into the workspace.

        The contract file is named after the sanitized entry identifier; the
        test file name is fixed.

        Args:
            workspace: The workspace returned by ``allocate``.
            contract_artifact: Contract source text.
            test_artifact: Test source text.
            entry_identifier: Sanitized entry identifier.

        Returns:
            Workspace: The same workspace, with its file paths recorded.

        Raises:
            StagingError: If a target path escapes the workspace or a write fails.
        """
        contract_path = self._contained(workspace, f"{entry_identifier}{self.artifact_extension}")
        test_path = self._contained(workspace, self.test_filename)
        if contract_path == test_path:
            raise StagingError(f"Contract filename collides with the test filename: {test_path.name}")

        try:
            for path, content in ((contract_path, contract_artifact), (test_path, test_artifact)):
                async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
                    await f.write(content)
        except (OSError, ValueError) as e:
            # UnicodeEncodeError is a ValueError
            logger.error(f"Failed to stage artifacts in {workspace.root_path}: {e}")
            raise StagingError(f"Failed to write artifacts: {e}") from e

        workspace.contract_file_path = contract_path
        workspace.test_file_path = test_path
        logger.info(f"Files created for entry {entry_identifier}: {contract_path.name}, {test_path.name}")
        return workspace

    def _remove(self, root: Path) -> None:
        try:
            shutil.rmtree(root)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(f"Failed to remove workspace {root}: {e}") from e

    def release(self, workspace: Workspace) -> None:
        """Recursively remove a workspace.

        Idempotent: removing an already removed or never created workspace is
        not an error. Failures are logged and never raised, since the request
        outcome is already decided by the time cleanup runs. A workspace that
        could not be removed stays live so that ``release_all`` retries it.
        """
        root = workspace.root_path
        try:
            self._remove(root)
        except CleanupError as e:
            logger.warning(str(e))
            return
        self._live.discard(root)
        logger.debug(f"Cleaned up workspace {root}")

    def release_all(self) -> None:
        """Remove every workspace that is still live."""
        for root in list(self._live):
            self.release(Workspace(root_path=root))

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Workspace]:
        """Allocate a workspace and guarantee its release on every exit path."""
        workspace = self.allocate()
        try:
            yield workspace
        finally:
            self.release(workspace)
