"""
In-memory record store.

Holds groups, resume records, the upload session and the search state.
Every mutation runs its read-modify-write under one lock, so progress
callbacks arriving from transfer threads cannot interleave with each other
or with the orchestrator. Mutations never raise: unknown ids and illegal
status transitions are logged and reported by returning False.
"""

import copy
import itertools
import threading
from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from .config import bootstrap_groups
from .logger import get_logger
from .models import (
    FileDescriptor,
    Group,
    ProgressEvent,
    ResumeRecord,
    ResumeStatus,
    SearchFilters,
    UploadSession,
    UploadStatus,
    UploadedFile,
)

logger = get_logger()

GROUPS = "groups"
RESUMES = "resumes"
SESSION = "session"
FILTERS = "filters"

Listener = Callable[[str], None]

_GROUP_MUTABLE = {"name", "description", "resume_count"}
_RESUME_FIELDS = {f.name for f in fields(ResumeRecord)} - {"id"}
_SESSION_FIELDS = {f.name for f in fields(UploadSession)}


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Unknown status value", kind=enum_cls.__name__, value=str(value))
        return None


def _clamp_percent(percent: Union[int, float]) -> int:
    return max(0, min(100, int(percent)))


def _dedupe_pending(files: Iterable[FileDescriptor]) -> List[FileDescriptor]:
    seen = set()
    unique = []
    for f in files:
        if f.key not in seen:
            seen.add(f.key)
            unique.append(f)
    return unique


def _settle_progress(record: ResumeRecord) -> ResumeRecord:
    """Progress exists only while a record is uploading or processing."""
    if record.status.tracks_progress:
        record.progress = _clamp_percent(record.progress or 0)
    else:
        record.progress = None
    return record


class RecordStore:
    """State container exposing a closed set of atomic operations."""

    def __init__(self, groups: Optional[Iterable[Group]] = None):
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        # ids of deleted records; never accepted again
        self._retired: Set[str] = set()
        self._listeners: List[Listener] = []
        self._initial_groups = list(groups) if groups is not None else None
        self._load_initial_state()

    def _load_initial_state(self):
        groups = self._initial_groups if self._initial_groups is not None else bootstrap_groups()
        self._groups: Dict[str, Group] = {g.id: replace(g) for g in groups}
        self._selected_group_id: Optional[str] = None
        self._resumes: Dict[str, ResumeRecord] = {}
        self._session = UploadSession()
        self._filters = SearchFilters()

    # Listeners

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(topic) after every mutation. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, topic: str):
        # Runs outside the lock so listeners may read the store.
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(topic)

    # Reads (always copies)

    @property
    def groups(self) -> List[Group]:
        with self._lock:
            return [replace(g) for g in self._groups.values()]

    def get_group(self, group_id: str) -> Optional[Group]:
        with self._lock:
            group = self._groups.get(group_id)
            return replace(group) if group else None

    @property
    def selected_group(self) -> Optional[Group]:
        with self._lock:
            if self._selected_group_id is None:
                return None
            return replace(self._groups[self._selected_group_id])

    @property
    def resumes(self) -> List[ResumeRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._resumes.values()]

    def get_resume(self, resume_id: str) -> Optional[ResumeRecord]:
        with self._lock:
            record = self._resumes.get(resume_id)
            return copy.deepcopy(record) if record else None

    @property
    def session(self) -> UploadSession:
        with self._lock:
            return copy.deepcopy(self._session)

    @property
    def filters(self) -> SearchFilters:
        with self._lock:
            return replace(self._filters)

    def new_resume_id(self) -> str:
        """Hand out a record id that is never reused for the store's lifetime."""
        with self._lock:
            return f"resume-{next(self._ids)}"

    # Groups

    def set_groups(self, groups: Iterable[Group]) -> bool:
        with self._lock:
            self._groups = {g.id: replace(g) for g in groups}
            if self._selected_group_id not in self._groups:
                self._selected_group_id = None
        self._notify(GROUPS)
        return True

    def add_group(self, group: Group) -> bool:
        with self._lock:
            if group.id in self._groups:
                logger.warning("Group already exists", group_id=group.id)
                return False
            self._groups[group.id] = replace(group)
        self._notify(GROUPS)
        return True

    def update_group(self, group_id: str, **changes: Any) -> bool:
        unknown = set(changes) - _GROUP_MUTABLE
        if unknown:
            logger.warning("Ignoring immutable group fields", group_id=group_id, fields=sorted(unknown))
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                logger.warning("Update for unknown group", group_id=group_id)
                return False
            for name in set(changes) & _GROUP_MUTABLE:
                setattr(group, name, changes[name])
        self._notify(GROUPS)
        return True

    def delete_group(self, group_id: str) -> bool:
        """Remove a group and clear the reference on every resume that pointed at it."""
        with self._lock:
            if self._groups.pop(group_id, None) is None:
                logger.warning("Delete for unknown group", group_id=group_id)
                return False
            cleared = 0
            for record in self._resumes.values():
                if record.group_id == group_id:
                    record.group_id = None
                    cleared += 1
            if self._selected_group_id == group_id:
                self._selected_group_id = None
            if self._filters.group_id == group_id:
                self._filters.group_id = None
        logger.info("Group deleted", group_id=group_id, resumes_cleared=cleared)
        self._notify(GROUPS)
        if cleared:
            self._notify(RESUMES)
        return True

    def select_group(self, group_id: Optional[str]) -> bool:
        with self._lock:
            if group_id is not None and group_id not in self._groups:
                logger.warning("Select for unknown group", group_id=group_id)
                return False
            self._selected_group_id = group_id
        self._notify(GROUPS)
        return True

    def recount_groups(self) -> Dict[str, int]:
        """Recompute each group's resume_count from the records."""
        with self._lock:
            counts = {gid: 0 for gid in self._groups}
            for record in self._resumes.values():
                if record.group_id in counts:
                    counts[record.group_id] += 1
            for gid, count in counts.items():
                self._groups[gid].resume_count = count
        self._notify(GROUPS)
        return counts

    # Resumes

    def set_resumes(self, resumes: Iterable[ResumeRecord]) -> bool:
        """Replace the collection. Ids that drop out are retired; retired ids are skipped."""
        with self._lock:
            incoming = {}
            for r in resumes:
                if r.id in self._retired:
                    logger.warning("Skipping retired resume id", resume_id=r.id)
                    continue
                incoming[r.id] = _settle_progress(copy.deepcopy(r))
            self._retired.update(set(self._resumes) - set(incoming))
            self._resumes = incoming
        self._notify(RESUMES)
        return True

    def add_resume(self, resume: ResumeRecord) -> bool:
        with self._lock:
            if resume.id in self._resumes:
                logger.warning("Resume already exists", resume_id=resume.id)
                return False
            if resume.id in self._retired:
                logger.warning("Resume id was deleted and cannot be reused", resume_id=resume.id)
                return False
            self._resumes[resume.id] = _settle_progress(copy.deepcopy(resume))
        self._notify(RESUMES)
        return True

    def update_resume(self, resume_id: str, **changes: Any) -> bool:
        """
        Merge changes into a record.

        A status change goes through the transition table; if it is illegal
        the whole update is dropped. Progress obeys the same rules as
        set_progress. The id cannot change.
        """
        unknown = set(changes) - _RESUME_FIELDS
        if unknown:
            logger.warning("Ignoring unknown resume fields", resume_id=resume_id, fields=sorted(unknown))
        with self._lock:
            record = self._resumes.get(resume_id)
            if record is None:
                logger.warning("Update for unknown resume", resume_id=resume_id)
                return False
            updated = copy.deepcopy(record)
            status = changes.get("status")
            if status is not None:
                target = _coerce(ResumeStatus, status)
                if target is None or not self._apply_status(updated, target, changes.get("error")):
                    return False
            for name in set(changes) & (_RESUME_FIELDS - {"status", "progress", "error"}):
                setattr(updated, name, changes[name])
            if "error" in changes and status is None:
                updated.error = changes["error"]
            if changes.get("progress") is not None:
                self._apply_progress(updated, changes["progress"])
            self._resumes[resume_id] = updated
        self._notify(RESUMES)
        return True

    def delete_resume(self, resume_id: str) -> bool:
        with self._lock:
            if self._resumes.pop(resume_id, None) is None:
                logger.warning("Delete for unknown resume", resume_id=resume_id)
                return False
            self._retired.add(resume_id)
        self._notify(RESUMES)
        return True

    def set_progress(self, resume_id: str, percent: Union[int, float]) -> bool:
        with self._lock:
            record = self._resumes.get(resume_id)
            if record is None:
                return False
            changed = self._apply_progress(record, percent)
        if changed:
            self._notify(RESUMES)
        return changed

    def set_status(
        self,
        resume_id: str,
        status: Union[ResumeStatus, str],
        error: Optional[str] = None,
    ) -> bool:
        with self._lock:
            record = self._resumes.get(resume_id)
            if record is None:
                logger.warning("Status change for unknown resume", resume_id=resume_id)
                return False
            target = _coerce(ResumeStatus, status)
            changed = target is not None and self._apply_status(record, target, error)
        if changed:
            self._notify(RESUMES)
        return changed

    @staticmethod
    def _apply_status(record: ResumeRecord, target: ResumeStatus, error: Optional[str]) -> bool:
        if target == record.status:
            if target == ResumeStatus.ERROR and error is not None:
                record.error = error
            return True
        if not record.status.can_transition_to(target):
            logger.warning(
                "Rejected status transition",
                resume_id=record.id,
                current=record.status.value,
                requested=target.value,
            )
            return False
        record.status = target
        if target.tracks_progress:
            # new attempt
            record.progress = 0
            record.error = None
        else:
            record.progress = None
            record.error = error if target == ResumeStatus.ERROR else None
        return True

    @staticmethod
    def _apply_progress(record: ResumeRecord, percent: Union[int, float]) -> bool:
        if not record.status.tracks_progress:
            return False
        value = _clamp_percent(percent)
        if record.progress is not None and value <= record.progress:
            return False
        record.progress = value
        return True

    # Upload session

    def update_session(self, **changes: Any) -> bool:
        unknown = set(changes) - _SESSION_FIELDS
        if unknown:
            logger.warning("Ignoring unknown session fields", fields=sorted(unknown))
        with self._lock:
            for name in set(changes) & _SESSION_FIELDS:
                value = copy.deepcopy(changes[name])
                if name == "status":
                    value = _coerce(UploadStatus, value)
                    if value is None:
                        continue
                elif name == "pending":
                    value = _dedupe_pending(value)
                setattr(self._session, name, value)
        self._notify(SESSION)
        return True

    def add_pending(self, files: Iterable[FileDescriptor]) -> List[FileDescriptor]:
        """Append files to the pending selection, skipping any (name, size) already there."""
        added: List[FileDescriptor] = []
        with self._lock:
            keys = {f.key for f in self._session.pending}
            for f in files:
                if f.key in keys:
                    continue
                keys.add(f.key)
                self._session.pending.append(f)
                added.append(f)
        if added:
            self._notify(SESSION)
        return added

    def remove_pending(self, file_name: str) -> bool:
        with self._lock:
            before = len(self._session.pending)
            self._session.pending = [f for f in self._session.pending if f.name != file_name]
            if len(self._session.pending) == before:
                return False
            self._session.progress.pop(file_name, None)
            self._session.errors.pop(file_name, None)
        self._notify(SESSION)
        return True

    def clear_pending(self) -> bool:
        """Empty the pending selection together with its progress and error maps."""
        with self._lock:
            self._session.pending = []
            self._session.progress = {}
            self._session.errors = {}
        self._notify(SESSION)
        return True

    def set_upload_progress(self, file_name: str, percent: Union[int, float]) -> bool:
        with self._lock:
            changed = self._merge_session_progress(file_name, percent)
        if changed:
            self._notify(SESSION)
        return changed

    def _merge_session_progress(self, file_name: str, percent: Union[int, float]) -> bool:
        value = _clamp_percent(percent)
        current = self._session.progress.get(file_name)
        if current is not None and value <= current:
            return False
        self._session.progress[file_name] = value
        return True

    def set_upload_error(self, file_name: str, message: str) -> bool:
        with self._lock:
            self._session.errors[file_name] = message
        self._notify(SESSION)
        return True

    def clear_upload_errors(self) -> bool:
        with self._lock:
            self._session.errors = {}
        self._notify(SESSION)
        return True

    def add_completed(self, entries: Iterable[UploadedFile]) -> bool:
        with self._lock:
            self._session.completed.extend(copy.deepcopy(list(entries)))
        self._notify(SESSION)
        return True

    def clear_completed(self) -> bool:
        with self._lock:
            self._session.completed = []
            self._session.status = UploadStatus.IDLE
        self._notify(SESSION)
        return True

    def set_session_status(self, status: Union[UploadStatus, str]) -> bool:
        target = _coerce(UploadStatus, status)
        if target is None:
            return False
        with self._lock:
            self._session.status = target
        self._notify(SESSION)
        return True

    def apply_progress(self, event: ProgressEvent) -> bool:
        """Merge one progress report into the record and the session map in a single step."""
        with self._lock:
            changed = self._merge_session_progress(event.file_name, event.percent)
            record = self._resumes.get(event.record_id) if event.record_id else None
            record_changed = record is not None and self._apply_progress(record, event.percent)
        if changed:
            self._notify(SESSION)
        if record_changed:
            self._notify(RESUMES)
        return changed or record_changed

    # Search state

    def set_query(self, query: str) -> bool:
        with self._lock:
            self._filters.query = query
        self._notify(FILTERS)
        return True

    def set_status_filter(self, statuses: Iterable[Union[ResumeStatus, str]]) -> bool:
        with self._lock:
            coerced = (_coerce(ResumeStatus, s) for s in statuses)
            self._filters.statuses = frozenset(s for s in coerced if s is not None)
        self._notify(FILTERS)
        return True

    def set_date_range(self, start: Optional[datetime], end: Optional[datetime]) -> bool:
        with self._lock:
            self._filters.date_start = start
            self._filters.date_end = end
        self._notify(FILTERS)
        return True

    def set_group_filter(self, group_id: Optional[str]) -> bool:
        with self._lock:
            self._filters.group_id = group_id
        self._notify(FILTERS)
        return True

    def clear_filters(self) -> bool:
        with self._lock:
            self._filters = SearchFilters()
        self._notify(FILTERS)
        return True

    def reset(self):
        """Restore the bootstrap state. Issued ids stay retired."""
        with self._lock:
            self._retired.update(self._resumes)
            self._load_initial_state()
        for topic in (GROUPS, RESUMES, SESSION, FILTERS):
            self._notify(topic)
