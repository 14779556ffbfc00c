from pathlib import PurePath
from typing import Iterable, List, Optional, Union

from .models import ResumeStatus

PDF = "application/pdf"
DOC = "application/msword"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT = "text/plain"

SUPPORTED_CONTENT_TYPES = frozenset({PDF, DOC, DOCX, TEXT})

EXTENSION_TYPES = {
    ".pdf": PDF,
    ".doc": DOC,
    ".docx": DOCX,
    ".txt": TEXT,
}

# Types browsers send when they could not sniff the file
UNKNOWN_TYPES = {"", "application/octet-stream"}

# Status words the service uses. Anything else is treated as completed,
# since most listings carry no status at all.
STATUS_ALIASES = {
    "uploading": ResumeStatus.UPLOADING,
    "uploaded": ResumeStatus.PROCESSING,
    "pending": ResumeStatus.PROCESSING,
    "processing": ResumeStatus.PROCESSING,
    "in_progress": ResumeStatus.PROCESSING,
    "completed": ResumeStatus.COMPLETED,
    "done": ResumeStatus.COMPLETED,
    "finished": ResumeStatus.COMPLETED,
    "failed": ResumeStatus.ERROR,
    "error": ResumeStatus.ERROR,
}


def normalize_text(s: str) -> str:
    return " ".join(s.strip().casefold().split())


def normalize_status(value: Union[None, str, ResumeStatus]) -> ResumeStatus:
    if isinstance(value, ResumeStatus):
        return value
    return STATUS_ALIASES.get(str(value or "").strip().lower(), ResumeStatus.COMPLETED)


def canonical_content_type(content_type: Optional[str], file_name: str = "") -> str:
    """Return the bare lowercase media type, inferring it from the extension
    when none was declared."""
    ct = (content_type or "").split(";")[0].strip().lower()
    if ct in UNKNOWN_TYPES:
        return EXTENSION_TYPES.get(PurePath(file_name).suffix.lower(), ct)
    return ct


def content_type_for(path: Union[str, PurePath]) -> str:
    return EXTENSION_TYPES.get(PurePath(path).suffix.lower(), "application/octet-stream")


def as_text_list(value: Union[None, str, Iterable[str]]) -> List[str]:
    """Coerce a parsed field that may be a string or a list into a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if v]


def personal_field(parsed_data: Optional[dict], name: str) -> Union[None, str, List[str]]:
    """Look up a personal detail in a parsed payload.

    Parsers return either ``{"personalInfo": {"name": ...}}`` or the flat
    ``{"name": ...}`` form; both are accepted.
    """
    if not parsed_data:
        return None
    info = parsed_data.get("personalInfo") or parsed_data.get("personal_info")
    if isinstance(info, dict) and info.get(name):
        return info[name]
    return parsed_data.get(name)
