"""Export of object-storage buckets into a zip archive."""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from threading import Event
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import BaseExtractor
from ..exceptions import BucketListingError, ExportCancelled, MigrationToolError, RetryExhausted
from ..loaders.archive_builder import BucketArchiveBuilder
from ..loaders.base import ArchiveTarget
from ..models.migration import BucketExportResult, ExporterState, ProgressEvent
from ..models.record import DownloadOutcome
from ..services.retry import RetryPolicy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class ObjectStoreExporter(BaseExtractor):
    """
    Downloads every object of a bucket and bundles them into one archive.

    A run moves through IDLE -> LISTING -> DOWNLOADING -> BUNDLING ->
    COMPLETED, or ends in FAILED / CANCELLED.

    Listing walks the folder tree with a work queue; each prefix listing
    is itself paginated. Downloads run in fixed-size batches on a thread
    pool, each wrapped in a RetryPolicy. A failed download is recorded and
    the run continues; only a failed top-level listing aborts it.
    """

    def __init__(
        self,
        client: Any,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: int = 3,
        page_size: int = 1000,
        bucket_labels: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the exporter.

        Args:
            client: Storage client (list / download)
            retry_policy: Policy applied to every download
            batch_size: Concurrent downloads per batch
            page_size: Entries requested per listing call
            bucket_labels: Display names per bucket for the manifest
        """
        super().__init__(page_size=page_size)
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.bucket_labels = bucket_labels or {}
        self.state = ExporterState.IDLE
        self.result: Optional[BucketExportResult] = None

    def extract_batch(self, source: Tuple[str, str], offset: int = 0, limit: int = 1000) -> List[Dict[str, Any]]:
        """List one page of entries under a (bucket, prefix) pair."""
        bucket, prefix = source
        return self.client.list(bucket, prefix=prefix, limit=limit, offset=offset)

    def list_objects(
        self,
        bucket: str,
        cancel_event: Optional[Event] = None,
        listing_errors: Optional[List[Dict[str, str]]] = None,
    ) -> List[str]:
        """
        List every object path in a bucket.

        Args:
            bucket: Bucket name
            cancel_event: When set, listing stops before the next request
            listing_errors: Receives {"prefix", "error"} for nested prefixes
                that could not be listed

        Returns:
            Object paths in discovery order

        Raises:
            BucketListingError: If the top-level listing fails
            ExportCancelled: If cancelled while listing
        """
        paths: List[str] = []
        queue = deque([""])

        while queue:
            prefix = queue.popleft()
            try:
                for page in self.stream((bucket, prefix), cancel_event=cancel_event):
                    for item in page:
                        name = item.get("name", "")
                        full_path = f"{prefix}/{name}" if prefix else name
                        if item.get("id"):
                            paths.append(full_path)
                        else:
                            queue.append(full_path)
            except ExportCancelled:
                raise
            except MigrationToolError as e:
                if not prefix:
                    raise BucketListingError(bucket, e) from e
                message = getattr(e, "message", str(e))
                if listing_errors is not None:
                    listing_errors.append({"prefix": prefix, "error": message})
                self.add_warning(f"Could not list {bucket}/{prefix}: {message}")

        logger.info(f"Listed {len(paths)} objects in bucket {bucket}")
        return paths

    def _download(self, bucket: str, path: str) -> Tuple[DownloadOutcome, Optional[bytes]]:
        """Download one object under the retry policy; never raises for I/O failures."""
        attempts = 0

        def attempt() -> bytes:
            nonlocal attempts
            attempts += 1
            return self.client.download(bucket, path)

        try:
            content = self.retry_policy.call(attempt)
        except RetryExhausted as e:
            message = getattr(e.last_error, "message", None) or str(e.last_error) or "Error desconocido"
            return DownloadOutcome(path=path, error_message=message, attempts=attempts), None

        return DownloadOutcome(path=path, size_bytes=len(content), attempts=attempts), content

    def export(
        self,
        bucket: str,
        destination: ArchiveTarget,
        cancel_event: Optional[Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BucketExportResult:
        """
        Export a bucket into a zip archive.

        Args:
            bucket: Bucket name
            destination: Archive file path or writable binary buffer
            cancel_event: When set, no further batch is started
            on_progress: Optional progress callback

        Returns:
            BucketExportResult; no archive is written for a cancelled run

        Raises:
            BucketListingError: If the bucket cannot be listed at all
        """
        self.reset()
        self.state = ExporterState.IDLE
        result = self.result = BucketExportResult(bucket=bucket, started_at=datetime.utcnow())
        archive = BucketArchiveBuilder(bucket, self.bucket_labels.get(bucket))
        archive.started_at = result.started_at

        self._set_state(result, ExporterState.LISTING)
        try:
            paths = self.list_objects(bucket, cancel_event, result.listing_errors)
        except BucketListingError as e:
            result.error = e.message
            self._set_state(result, ExporterState.FAILED)
            result.completed_at = datetime.utcnow()
            raise
        except ExportCancelled:
            return self._cancel(result)

        for entry in result.listing_errors:
            archive.add_listing_error(entry["prefix"], entry["error"])
        result.expected = archive.expected = len(paths)

        self._set_state(result, ExporterState.DOWNLOADING)
        processed = 0

        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for i in range(0, len(paths), self.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    result.skipped = len(paths) - processed
                    return self._cancel(result)

                batch = paths[i:i + self.batch_size]
                futures = [pool.submit(self._download, bucket, path) for path in batch]

                for future in futures:
                    outcome, content = future.result()
                    if outcome.success:
                        result.succeeded.append(outcome)
                        archive.add_file(outcome, content)
                    else:
                        result.failed.append(outcome)
                        archive.add_failure(outcome)
                        logger.error(f"Download of {bucket}/{outcome.path} failed: {outcome.error_message}")
                    processed += 1

                if on_progress:
                    on_progress(ProgressEvent(
                        "bucket", bucket, processed, len(paths),
                        f"Descargando {bucket}: {processed}/{len(paths)} archivos",
                    ))

        self._set_state(result, ExporterState.BUNDLING)
        result.completed_at = archive.completed_at = datetime.utcnow()
        archive.build(destination, exported_at=result.completed_at)
        if isinstance(destination, str):
            result.archive_path = destination

        self._set_state(result, ExporterState.COMPLETED)
        logger.info(
            f"Bucket {bucket}: {len(result.succeeded)}/{result.expected} files exported, "
            f"{len(result.failed)} failed, {len(result.listing_errors)} folders not listed"
        )
        return result

    def _set_state(self, result: BucketExportResult, state: ExporterState) -> None:
        logger.debug(f"Bucket {result.bucket}: {self.state.value} -> {state.value}")
        self.state = state
        result.state = state

    def _cancel(self, result: BucketExportResult) -> BucketExportResult:
        self._set_state(result, ExporterState.CANCELLED)
        result.completed_at = datetime.utcnow()
        logger.warning(f"Export of bucket {result.bucket} cancelled")
        return result
