"""
Upload orchestration.

Drives the validation gate, creates placeholder records, hands the batch
to the transfer collaborator and folds its progress and outcome back into
the record store. Failures become session state; nothing here escalates.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import Settings
from .errors import NoFilesSelectedError, TransportError
from .logger import get_logger
from .models import (
    FileDescriptor,
    ProgressEvent,
    ResumeRecord,
    ResumeStatus,
    UploadSession,
    UploadStatus,
    UploadedFile,
)
from .store import RecordStore
from .validation import FileVerdict, validate_files

logger = get_logger()

ProgressCallback = Callable[[str, int], None]
Transfer = Callable[[List[FileDescriptor], str, ProgressCallback], List[Dict[str, Any]]]

GENERIC_FAILURE = "Upload failed. Please try again."


class UploadOrchestrator:
    """Turns a pending file selection into tracked resume records."""

    def __init__(self, store: RecordStore, transfer: Transfer, settings: Optional[Settings] = None):
        self.store = store
        self.transfer = transfer
        self.settings = settings or Settings()
        # (name, size) -> record id left in error by the last failed attempt
        self._failed: Dict[Tuple[str, int], str] = {}

    def select_files(self, files: Iterable[FileDescriptor]) -> List[FileVerdict]:
        """Validate files and merge the accepted ones into the pending selection."""
        verdicts = validate_files(
            files,
            self.store.session.pending,
            max_size=self.settings.max_file_size,
            allowed_types=self.settings.allowed_types,
        )
        accepted = [v.file for v in verdicts if v.accepted]
        rejected = [v for v in verdicts if not v.accepted]
        self.store.add_pending(accepted)

        logger.record_validation(len(accepted), len(rejected))
        for verdict in rejected:
            logger.warning("File rejected", file=verdict.file.name, violations=verdict.violations)
        return verdicts

    def remove_file(self, file_name: str) -> bool:
        return self.store.remove_pending(file_name)

    def clear_files(self) -> bool:
        return self.store.clear_pending()

    def clear_uploaded(self) -> bool:
        return self.store.clear_completed()

    def submit_upload(self, group_id: str) -> UploadSession:
        """
        Upload the whole pending selection as one batch.

        Raises:
            NoFilesSelectedError: if nothing is pending

        Returns:
            Snapshot of the upload session after the batch finished
        """
        batch = self.store.session.pending
        if not batch:
            raise NoFilesSelectedError()

        self.store.update_session(
            is_uploading=True,
            status=UploadStatus.UPLOADING,
            progress={},
            errors={},
        )
        logger.record_upload_attempt(len(batch))
        logger.info("Upload started", group_id=group_id, files=[f.name for f in batch])

        try:
            record_ids = self._create_placeholders(batch, group_id)
            try:
                results = self.transfer(batch, group_id, self._progress_reporter(batch, record_ids))
            except TransportError as e:
                self._fail_batch(batch, record_ids, str(e) or GENERIC_FAILURE, type(e).__name__)
            except Exception as e:
                logger.error("Unexpected transfer failure", error=repr(e))
                self._fail_batch(batch, record_ids, GENERIC_FAILURE, type(e).__name__)
            else:
                self._complete_batch(batch, record_ids, results or [])
        finally:
            if self.store.session.status == UploadStatus.UPLOADING:
                self.store.set_session_status(UploadStatus.ERROR)
            self.store.update_session(is_uploading=False)

        return self.store.session

    def _create_placeholders(self, batch: List[FileDescriptor], group_id: str) -> Dict[Tuple[str, int], str]:
        record_ids: Dict[Tuple[str, int], str] = {}
        for f in batch:
            previous = self._failed.pop(f.key, None)
            if previous and self.store.set_status(previous, ResumeStatus.UPLOADING):
                self.store.update_resume(previous, group_id=group_id)
                record_ids[f.key] = previous
                logger.debug("Retrying failed record", resume_id=previous, file=f.name)
                continue
            record = ResumeRecord(
                id=self.store.new_resume_id(),
                file_name=f.name,
                file_size=f.size,
                status=ResumeStatus.UPLOADING,
                progress=0,
                group_id=group_id,
            )
            self.store.add_resume(record)
            record_ids[f.key] = record.id
        return record_ids

    def _progress_reporter(
        self,
        batch: List[FileDescriptor],
        record_ids: Dict[Tuple[str, int], str],
    ) -> ProgressCallback:
        by_name: Dict[str, List[str]] = {}
        for f in batch:
            by_name.setdefault(f.name, []).append(record_ids[f.key])

        def report(file_name: str, percent: int) -> None:
            if file_name not in by_name:
                logger.debug("Progress for file outside the batch", file=file_name)
                return
            for record_id in by_name[file_name]:
                self.store.apply_progress(ProgressEvent(file_name, int(percent), record_id))

        return report

    def _complete_batch(
        self,
        batch: List[FileDescriptor],
        record_ids: Dict[Tuple[str, int], str],
        results: List[Dict[str, Any]],
    ):
        by_name = {}
        for result in results:
            name = result.get("original_filename") or result.get("filename")
            if name:
                by_name.setdefault(name, result)

        completed: List[UploadedFile] = []
        for f in batch:
            record_id = record_ids[f.key]
            result = by_name.get(f.name)
            changes: Dict[str, Any] = {"status": ResumeStatus.COMPLETED}
            if result is not None:
                changes["parsed_data"] = result.get("parsed_data") or result.get("parsedData") or result
                if result.get("id") is not None:
                    changes["remote_id"] = str(result["id"])
                if result.get("cloud_url"):
                    changes["cloud_url"] = result["cloud_url"]
            self.store.update_resume(record_id, **changes)
            completed.append(
                UploadedFile(
                    id=changes.get("remote_id", record_id),
                    name=f.name,
                    size=f.size,
                )
            )

        self.store.add_completed(completed)
        self.store.clear_pending()
        self.store.set_session_status(UploadStatus.SUCCESS)
        self.store.recount_groups()
        logger.record_upload_success(len(batch))
        logger.info("Upload finished", files=len(batch), matched=sum(1 for f in batch if f.name in by_name))

    def _fail_batch(
        self,
        batch: List[FileDescriptor],
        record_ids: Dict[Tuple[str, int], str],
        message: str,
        error_type: str,
    ):
        # The service reports one outcome per request, so every file in the
        # batch carries the same message.
        for f in batch:
            record_id = record_ids[f.key]
            self.store.set_upload_error(f.name, message)
            self.store.set_status(record_id, ResumeStatus.ERROR, error=message)
            self._failed[f.key] = record_id
        self.store.set_session_status(UploadStatus.ERROR)
        logger.record_upload_failure(len(batch), error_type)
        logger.error("Upload failed", files=len(batch), error=message)
