import os
import stat
import shutil
import logging
from pathlib import Path

from worker_supervisor.local.supervisor.errors import InstallError
from worker_supervisor.local.supervisor.models import WorkerSpec

log = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024
EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class ArtifactInstaller:
    """
    Copies the bundled worker executable into a writable location.

    An existing file at the destination is trusted as a previous install: it
    is neither verified nor re-copied, so the copy happens once per
    destination.
    """

    def ensure_installed(self, spec: WorkerSpec) -> Path:
        """
        Returns the path of a runnable copy of the worker, installing it first if needed.

        :param spec: The worker spec naming the bundled artifact and its destination.
        :return: The destination path.
        :raises InstallError: If the artifact is unreadable or the destination unwritable.
        """
        destination = spec.install_path
        if destination.exists():
            log.debug(f"Worker artifact already installed at '{destination}'.")
            return destination

        source = spec.artifact_path
        log.info(f"Installing worker artifact '{source}' to '{destination}'...")
        self._copy(source, destination)
        self._make_executable(destination)
        log.info(f"Worker artifact installed at '{destination}'.")
        return destination

    def _copy(self, source: Path, destination: Path) -> None:
        """Streams source to a temporary sibling and moves it into place."""
        temp_path = destination.with_name(destination.name + ".part")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with source.open("rb") as fsrc:
                with temp_path.open("wb") as fdst:
                    shutil.copyfileobj(fsrc, fdst, COPY_CHUNK_SIZE)
            temp_path.replace(destination)
        except FileNotFoundError as e:
            if not source.is_file():
                raise InstallError(f"Bundled artifact '{source}' not found.") from e
            raise InstallError(f"Cannot write worker artifact to '{destination}': {e}") from e
        except OSError as e:
            raise InstallError(f"Failed to copy '{source}' to '{destination}': {e}") from e
        finally:
            temp_path.unlink(missing_ok=True)

    def _make_executable(self, destination: Path) -> None:
        try:
            mode = destination.stat().st_mode
            os.chmod(destination, mode | EXECUTABLE_BITS)
        except OSError as e:
            # An install that cannot run must not be mistaken for a valid one later.
            destination.unlink(missing_ok=True)
            raise InstallError(f"Cannot mark '{destination}' executable: {e}") from e
