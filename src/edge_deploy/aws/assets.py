"""Static asset publishing to S3."""
import os
import logging
import mimetypes
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from edge_deploy.aws.utils import get_s3_client
from edge_deploy.exceptions import AssetUploadError, SourceDirectoryError
from edge_deploy.s3.write_objects import DEFAULT_CONTENT_TYPE, upload_s3_object
from edge_deploy.utils.decorators import log_execution_time

try:
    from mypy_boto3_s3 import S3Client
except ImportError:
    ...

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_WORKERS = 8


@dataclass(frozen=True)
class AssetEntry:
    """One file discovered in the asset tree."""
    relative_path: str
    content_type: str
    path: Path


@dataclass
class UploadOutcome:
    """Result of uploading a single asset."""
    key: str
    path: Path
    content_type: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class UploadReport:
    """Per-file outcomes of one publish run."""
    bucket: str
    prefix: str
    outcomes: List[UploadOutcome] = field(default_factory=list)

    @property
    def uploaded(self) -> List[UploadOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[UploadOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict:
        return {
            'bucket': self.bucket,
            'prefix': self.prefix,
            'uploaded': len(self.uploaded),
            'failed': [{'key': o.key, 'error': o.error} for o in self.failed],
        }


def guess_content_type(path: os.PathLike) -> str:
    """MIME type from the file extension, or a generic binary type."""
    content_type, _ = mimetypes.guess_type(str(path))
    return content_type or DEFAULT_CONTENT_TYPE


def build_object_key(prefix: str, relative_path: str) -> str:
    """Join prefix and relative path with '/', omitting an empty prefix."""
    prefix = (prefix or "").strip("/")
    return f"{prefix}/{relative_path}" if prefix else relative_path


def walk_assets(directory: os.PathLike,
                on_error: Optional[Callable[[Path, OSError], None]] = None) -> Iterator[AssetEntry]:
    """Depth-first walk yielding every regular file under `directory`.

    Symlinks to files are followed; symlinked directories and special files
    (sockets, FIFOs, devices) are skipped. A directory that cannot be listed
    is passed to `on_error` and the walk continues with its siblings; without
    a callback the OSError propagates.
    """
    root = Path(directory)

    def _walk(current: Path) -> Iterator[AssetEntry]:
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if on_error is None:
                raise
            on_error(current, e)
            return

        for entry in entries:
            entry_path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                yield from _walk(entry_path)
            elif entry.is_file(follow_symlinks=True):
                relative_path = entry_path.relative_to(root).as_posix()
                yield AssetEntry(
                    relative_path=relative_path,
                    content_type=guess_content_type(entry_path),
                    path=entry_path,
                )
            else:
                logger.debug(f"Skipping non-regular file: {entry_path}")

    yield from _walk(root)


def _upload_entry(entry: AssetEntry, bucket: str, prefix: str, s3_client: "S3Client") -> UploadOutcome:
    key = build_object_key(prefix, entry.relative_path)
    outcome = UploadOutcome(key=key, path=entry.path, content_type=entry.content_type)
    try:
        with open(entry.path, 'rb') as f:
            upload_s3_object(bucket, key, f, entry.content_type, s3_client=s3_client)
        logger.debug(f"Uploaded {entry.path} to s3://{bucket}/{key}")
    except Exception as e:
        outcome.error = str(e)
        logger.error(f"Failed to upload {entry.path} to s3://{bucket}/{key}: {e}")
    return outcome


@log_execution_time
def publish_assets(
    directory: os.PathLike,
    bucket: str,
    prefix: str,
    region: str,
    s3_client: Optional["S3Client"] = None,
    strict: bool = False,
    max_workers: int = DEFAULT_UPLOAD_WORKERS,
) -> UploadReport:
    """Upload every file under `directory` to `s3://bucket/prefix/<relative path>`.

    Best-effort by default: a failed file, or a subdirectory that cannot be
    listed, is recorded in the returned report and the walk carries on. With
    `strict=True` the first failure raises `AssetUploadError` and no further
    uploads are started.

    Args:
        directory: Root of the static asset tree
        bucket: Target bucket
        prefix: Key prefix; empty string for the bucket root
        region: Bucket region, used when no client is passed
        s3_client: Optional boto3 S3 client
        strict: Abort on first failure
        max_workers: Upload worker pool size

    Returns:
        UploadReport with one outcome per discovered file
    """
    root = Path(directory)
    if not root.is_dir():
        raise SourceDirectoryError(f"Asset directory does not exist: {root}")

    s3_client = s3_client or get_s3_client(region)
    report = UploadReport(bucket=bucket, prefix=prefix or "")

    def _record_unreadable(path: Path, error: OSError) -> None:
        relative_path = path.relative_to(root).as_posix()
        key = build_object_key(prefix, "" if relative_path == "." else relative_path)
        report.outcomes.append(UploadOutcome(key=key, path=path, content_type="", error=str(error)))
        logger.error(f"Cannot read asset directory {path}: {error}")

    entries = list(walk_assets(root, on_error=_record_unreadable))
    if strict and report.failed:
        unreadable = report.failed[0]
        raise AssetUploadError(
            f"Asset directory {unreadable.path} could not be read: {unreadable.error}",
            key=unreadable.key,
        )
    logger.info(f"Publishing {len(entries)} assets from {root} to s3://{bucket}/{prefix or ''}")

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [executor.submit(_upload_entry, entry, bucket, prefix, s3_client) for entry in entries]
        for future in as_completed(futures):
            outcome = future.result()
            report.outcomes.append(outcome)
            if strict and not outcome.ok:
                for pending in futures:
                    pending.cancel()
                raise AssetUploadError(
                    f"Upload of {outcome.path} to s3://{bucket}/{outcome.key} failed: {outcome.error}",
                    key=outcome.key,
                )

    logger.info(f"Published {len(report.uploaded)} assets, {len(report.failed)} failed")
    return report
