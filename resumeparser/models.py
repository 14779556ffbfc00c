"""Data models for the resume upload pipeline and candidate search."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResumeStatus(Enum):
    """Lifecycle status of a resume record."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    def can_transition_to(self, target: "ResumeStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]

    @property
    def tracks_progress(self) -> bool:
        return self in (ResumeStatus.UPLOADING, ResumeStatus.PROCESSING)


# completed is terminal; error only leaves through a retry
ALLOWED_TRANSITIONS: Dict[ResumeStatus, FrozenSet[ResumeStatus]] = {
    ResumeStatus.UPLOADING: frozenset({ResumeStatus.COMPLETED, ResumeStatus.ERROR}),
    ResumeStatus.PROCESSING: frozenset({ResumeStatus.COMPLETED, ResumeStatus.ERROR}),
    ResumeStatus.ERROR: frozenset({ResumeStatus.UPLOADING}),
    ResumeStatus.COMPLETED: frozenset(),
}


class UploadStatus(Enum):
    """Overall status of the current (or most recent) upload batch."""
    IDLE = "idle"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


class SortKey(Enum):
    """Dimensions a candidate result list can be ranked by."""
    SCORE = "score"
    NAME = "name"
    CLARITY = "clarity"
    EXPERIENCE = "experience"
    REPUTATION = "reputation"
    LOYALTY = "loyalty"


@dataclass
class Group:
    """Named bucket used to scope uploads and searches."""
    id: str
    name: str
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    resume_count: int = 0


@dataclass(frozen=True)
class FileDescriptor:
    """A file chosen for upload but not yet submitted."""
    name: str
    size: int
    content_type: str = ""
    path: Optional[str] = None

    @property
    def key(self) -> Tuple[str, int]:
        return (self.name, self.size)


@dataclass
class ResumeRecord:
    """One uploaded file tracked through its lifecycle."""
    id: str
    file_name: str
    file_size: int
    status: ResumeStatus = ResumeStatus.UPLOADING
    uploaded_at: datetime = field(default_factory=utcnow)
    progress: Optional[int] = None
    parsed_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    group_id: Optional[str] = None
    remote_id: Optional[str] = None
    cloud_url: Optional[str] = None


@dataclass(frozen=True)
class ProgressEvent:
    """Progress report for one file of an in-flight batch."""
    file_name: str
    percent: int
    record_id: Optional[str] = None


@dataclass
class UploadedFile:
    """Entry in the completed-file list of an upload session."""
    id: str
    name: str
    size: int
    status: str = "success"
    uploaded_at: datetime = field(default_factory=utcnow)


@dataclass
class UploadSession:
    """Ephemeral state of the in-flight or most recent upload batch."""
    is_uploading: bool = False
    pending: List[FileDescriptor] = field(default_factory=list)
    progress: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    completed: List[UploadedFile] = field(default_factory=list)
    status: UploadStatus = UploadStatus.IDLE


@dataclass
class SearchFilters:
    """Free-text and structured criteria applied to the resume collection."""
    query: str = ""
    statuses: FrozenSet[ResumeStatus] = frozenset()
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    group_id: Optional[str] = None


@dataclass(frozen=True)
class CandidateResult:
    """Read-only ranked projection of a resume plus its scores."""
    id: str
    name: str
    file_name: Optional[str] = None
    emails: Tuple[str, ...] = ()
    phones: Tuple[str, ...] = ()
    clarity_score: Optional[float] = None
    experience_score: Optional[float] = None
    reputation_score: Optional[float] = None
    loyalty_score: Optional[float] = None
    average_score: Optional[float] = None
    match_score: Optional[float] = None
    job_profile: Optional[str] = None
    total_experience: Optional[str] = None
    college: Tuple[str, ...] = ()
    highlights: Tuple[str, ...] = ()
    details: Optional[str] = None
    group: Optional[str] = None
    comment: Optional[str] = None
    commented_at: Optional[str] = None
