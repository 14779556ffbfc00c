"""Error taxonomy for the upload pipeline and resume retrieval."""

from typing import List, Optional


class ResumeParserError(Exception):
    """Base class for every error raised by resumeparser."""


class ValidationError(ResumeParserError):
    """A file was rejected before submission (size, type or duplicate)."""

    def __init__(self, file_name: str, violations: List[str]):
        super().__init__("; ".join(violations))
        self.file_name = file_name
        self.violations = violations


class NoFilesSelectedError(ResumeParserError):
    """An upload was submitted with an empty pending selection."""

    def __init__(self, message: str = "No files selected"):
        super().__init__(message)


class TransportError(ResumeParserError):
    """The transfer of a batch failed as a whole."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RetrievalError(ResumeParserError):
    """Fetching the raw content of a resume failed."""

    user_message = "Unable to open the resume. Please try again."

    def __init__(self, message: str, resume_id: Optional[str] = None):
        super().__init__(message)
        self.resume_id = resume_id


class AuthError(RetrievalError):
    user_message = "Your session has expired. Please log in again."


class AccessDeniedError(RetrievalError):
    user_message = "You do not have permission to view this resume."


class NotFoundError(RetrievalError):
    user_message = "This resume could not be found. It may have been deleted."


class UnknownRetrievalError(RetrievalError):
    pass


class GroupInUseError(ResumeParserError):
    """The service refused to delete a group that still has resumes."""

    def __init__(self, group_id: str):
        super().__init__(f"Group {group_id} has associated CVs")
        self.group_id = group_id
