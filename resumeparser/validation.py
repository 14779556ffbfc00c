from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple

from .config import MAX_FILE_SIZE
from .models import FileDescriptor
from .normalize import SUPPORTED_CONTENT_TYPES, canonical_content_type


@dataclass
class FileVerdict:
    file: FileDescriptor
    violations: List[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return not self.violations


def validate_file(
    file: FileDescriptor,
    pending_keys: Iterable[Tuple[str, int]] = (),
    max_size: int = MAX_FILE_SIZE,
    allowed_types: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Returns every violation message for one file. Empty list means accepted.
    Rules are checked independently so a file can fail more than one.
    """
    errors: List[str] = []
    allowed = set(allowed_types) if allowed_types is not None else SUPPORTED_CONTENT_TYPES

    if file.size > max_size:
        limit_mb = max_size // (1024 * 1024)
        errors.append(f"{file.name} is too large. Maximum size is {limit_mb}MB.")

    if canonical_content_type(file.content_type, file.name) not in allowed:
        errors.append(f"{file.name} is not a supported file type.")

    if file.key in set(pending_keys):
        errors.append(f"{file.name} has already been selected.")

    return errors


def validate_files(
    files: Iterable[FileDescriptor],
    pending: Iterable[FileDescriptor] = (),
    max_size: int = MAX_FILE_SIZE,
    allowed_types: Optional[Iterable[str]] = None,
) -> List[FileVerdict]:
    """
    Classify a batch against the current pending selection.

    Files accepted earlier in the same batch count as pending for the ones
    after them, so a batch cannot carry its own duplicates. Nothing is
    mutated; merging accepted files is the caller's job.
    """
    seen: Set[Tuple[str, int]] = {f.key for f in pending}
    verdicts: List[FileVerdict] = []
    for f in files:
        violations = validate_file(f, seen, max_size=max_size, allowed_types=allowed_types)
        verdicts.append(FileVerdict(file=f, violations=violations))
        if not violations:
            seen.add(f.key)
    return verdicts
