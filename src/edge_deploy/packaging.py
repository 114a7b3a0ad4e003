"""Build workspace, server bundle staging and ZIP packaging for the function code."""
import os
import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Optional, Union

from edge_deploy.exceptions import ArchiveWriteError, SourceDirectoryError
from edge_deploy.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

ARCHIVE_NAME = "lambda.zip"
PRERENDERED_DIR_NAME = "prerendered"


class BuildWorkspace:
    """Private scratch space for one pipeline run.

    Holds the staged server bundle under `build/` and the deployment archive
    inside it. The whole directory is removed when the context exits, whether
    the run succeeded or not.

    Usage:
        with BuildWorkspace() as workspace:
            stage_server_bundle(server_dir, workspace.build_dir)
            package_directory(workspace.build_dir, workspace.archive_path)
    """

    def __init__(self, parent_dir: Optional[PathLike] = None, keep: bool = False):
        self.parent_dir = parent_dir
        self.keep = keep
        self.root: Optional[Path] = None

    def __enter__(self) -> "BuildWorkspace":
        self.root = Path(tempfile.mkdtemp(prefix="edge-deploy-", dir=self.parent_dir))
        self.build_dir.mkdir()
        logger.debug(f"Created build workspace: {self.root}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def build_dir(self) -> Path:
        return self._require_root() / "build"

    @property
    def archive_path(self) -> Path:
        return self.build_dir / ARCHIVE_NAME

    def _require_root(self) -> Path:
        if self.root is None:
            raise RuntimeError("BuildWorkspace used outside of its context")
        return self.root

    def cleanup(self) -> None:
        if self.root is None:
            return
        if self.keep:
            logger.info(f"Keeping build workspace: {self.root}")
            return
        shutil.rmtree(self.root, ignore_errors=True)
        logger.debug(f"Removed build workspace: {self.root}")
        self.root = None


def _require_directory(path: Path, label: str) -> None:
    if not path.is_dir():
        raise SourceDirectoryError(f"{label} does not exist or is not a directory: {path}")
    if not os.access(path, os.R_OK | os.X_OK):
        raise SourceDirectoryError(f"{label} is not readable: {path}")


def stage_server_bundle(
    server_dir: PathLike,
    build_dir: PathLike,
    prerendered_dir: Optional[PathLike] = None,
) -> Path:
    """Copy the bundled server entry point (and pre-rendered pages) into the build dir.

    Args:
        server_dir: Directory holding the already-bundled server script(s)
        build_dir: Workspace build directory; created if missing
        prerendered_dir: Optional pre-rendered pages, copied to `build_dir/prerendered`

    Returns:
        The build directory
    """
    server_path = Path(server_dir)
    build_path = Path(build_dir)
    _require_directory(server_path, "Server bundle directory")

    try:
        shutil.copytree(server_path, build_path, dirs_exist_ok=True,
                        ignore=shutil.ignore_patterns('__pycache__', '*.map'))

        if prerendered_dir is not None and Path(prerendered_dir).is_dir():
            shutil.copytree(prerendered_dir, build_path / PRERENDERED_DIR_NAME, dirs_exist_ok=True)
        else:
            logger.info("No prerendered directory found")
    except OSError as e:
        raise ArchiveWriteError(f"Failed to stage server bundle into {build_path}: {e}") from e

    logger.info(f"Staged server bundle from {server_path} into {build_path}")
    return build_path


@log_execution_time
def package_directory(source_dir: PathLike, archive_path: PathLike) -> int:
    """Compress every file under `source_dir` into a ZIP at `archive_path`.

    If the archive itself lives inside `source_dir` it is left out of the
    walk. `source_dir` is never modified.

    Returns:
        Number of files written to the archive

    Raises:
        SourceDirectoryError: `source_dir` is missing or a file in it is unreadable
        ArchiveWriteError: the archive cannot be created, written or verified
    """
    source = Path(source_dir)
    archive = Path(archive_path)
    _require_directory(source, "Package source directory")

    source_resolved = source.resolve()
    archive_resolved = archive.resolve()
    excluded = archive_resolved if source_resolved in archive_resolved.parents else None

    try:
        zipf = zipfile.ZipFile(archive, 'w', zipfile.ZIP_DEFLATED, compresslevel=9)
    except OSError as e:
        raise ArchiveWriteError(f"Failed to create archive {archive}: {e}") from e

    file_count = 0
    try:
        with zipf:
            for file_path in sorted(source.rglob('*')):
                if not file_path.is_file():
                    continue
                if excluded is not None and file_path.resolve() == excluded:
                    continue
                arcname = file_path.relative_to(source).as_posix()
                try:
                    zinfo = zipfile.ZipInfo.from_file(file_path, arcname)
                    data = file_path.read_bytes()
                except OSError as e:
                    raise SourceDirectoryError(f"Failed to read {file_path}: {e}") from e
                zipf.writestr(zinfo, data, compress_type=zipfile.ZIP_DEFLATED, compresslevel=9)
                file_count += 1
    except SourceDirectoryError:
        archive.unlink(missing_ok=True)
        raise
    except OSError as e:
        # Writing or closing the archive failed, e.g. the disk is full
        archive.unlink(missing_ok=True)
        raise ArchiveWriteError(f"Failed to write archive {archive}: {e}") from e

    # Verify ZIP file integrity
    try:
        with zipfile.ZipFile(archive, 'r') as zipf:
            bad_member = zipf.testzip()
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveWriteError(f"Cannot verify archive {archive}: {e}") from e
    if bad_member is not None:
        raise ArchiveWriteError(f"ZIP integrity check failed on {bad_member}")

    zip_size = os.path.getsize(archive)
    logger.info(f"Created ZIP package: {archive} ({zip_size} bytes, {file_count} files)")
    return file_count
