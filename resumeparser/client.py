"""
HTTP client for the remote resume service.

Implements the two external collaborators of the pipeline: the batch
transfer (multipart upload with progress) and resume content retrieval.
The rest mirrors the service: resume listing and deletion, group
management, candidate comments and candidate search by text or by job
description file.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from urllib3.filepost import encode_multipart_formdata

from .candidates import candidates_from_search_response
from .config import Settings
from .errors import (
    AccessDeniedError,
    AuthError,
    GroupInUseError,
    NotFoundError,
    RetrievalError,
    TransportError,
    UnknownRetrievalError,
    ValidationError,
)
from .logger import get_logger
from .models import CandidateResult, FileDescriptor, Group, ResumeRecord
from .normalize import normalize_status
from .retry import RetryError, RetryableStatus, exponential_backoff, should_retry_http_status
from .validation import validate_file

logger = get_logger()

MIN_QUERY_LENGTH = 5
JD_SUMMARY_FALLBACK = "Job description analysis completed successfully."

_RETRIEVAL_ERRORS = {
    401: AuthError,
    403: AccessDeniedError,
    404: NotFoundError,
}


@dataclass
class ResumeContent:
    resume_id: str
    data: bytes
    content_type: str
    url: str
    via_direct_link: bool = False


@dataclass
class ResumeComment:
    resume_id: str
    comment: str
    commented_at: Optional[datetime] = None


class ProgressReader:
    """
    File-like view of an encoded request body.

    requests streams objects with read() and __len__; each read reports
    the overall percent sent so far, once per distinct value.
    """

    def __init__(self, body: bytes, on_progress: Callable[[int], None]):
        self._body = body
        self._pos = 0
        self._last = -1
        self._on_progress = on_progress

    def __len__(self) -> int:
        return len(self._body)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._body) - self._pos
        chunk = self._body[self._pos:self._pos + size]
        self._pos += len(chunk)
        total = len(self._body)
        percent = (self._pos * 100) // total if total else 100
        if percent != self._last:
            self._last = percent
            self._on_progress(percent)
        return chunk


def describe_retrieval_error(error: RetrievalError) -> str:
    """User-facing message for a failed view/download."""
    return error.user_message


class ResumeApiClient:
    """Thin requests-based client; one instance per configured service."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or Settings()
        self.base_url = self.settings.api_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if self.settings.api_token:
            self.session.headers["Authorization"] = f"Bearer {self.settings.api_token}"

        self._send = exponential_backoff(
            max_retries=max(self.settings.retry_attempts - 1, 0),
            base_delay=self.settings.retry_delay,
            exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, RetryableStatus),
            on_retry=self._log_retry,
        )(self._send_once)

    def url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def resume_url(self, resume_id: str) -> str:
        return self.url(f"download/{resume_id}")

    @staticmethod
    def _log_retry(attempt: int, error: Exception, delay: float):
        logger.warning("Request failed, retrying", attempt=attempt, delay=delay, error=str(error))

    def _send_once(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.record_api_call()
        kwargs.setdefault("timeout", self.settings.timeout)
        response = self.session.request(method, url, **kwargs)
        if should_retry_http_status(response.status_code):
            raise RetryableStatus(response)
        return response

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Send with retries; returns the last response even if its status is
        retryable. Exhausted network retries surface as TransportError.
        """
        try:
            return self._send(method, self.url(endpoint), **kwargs)
        except RetryError as e:
            if isinstance(e.__cause__, RetryableStatus):
                return e.__cause__.response
            raise TransportError(str(e)) from e

    # Transfer

    def upload_resumes(
        self,
        files: List[FileDescriptor],
        group_id: str,
        on_progress: Optional[Callable[[str, int], None]] = None,
    ) -> List[Dict[str, Any]]:
        """
        POST the batch to /upload_cv as one multipart request.

        The service only reports progress for the whole body, so the same
        percent is reported for every file in the batch.

        Raises:
            TransportError: on any failure of the batch
        """
        fields: List[Tuple[str, Any]] = []
        for f in files:
            if f.path is None:
                raise TransportError(f"No content available for {f.name}")
            try:
                data = Path(f.path).read_bytes()
            except OSError as e:
                raise TransportError(f"Could not read {f.name}: {e}")
            fields.append(("cv", (f.name, data, f.content_type or "application/octet-stream")))
        fields.append(("group", group_id))
        body, content_type = encode_multipart_formdata(fields)

        def report(percent: int):
            if on_progress:
                for f in files:
                    on_progress(f.name, percent)

        headers = {
            "Content-Type": content_type,
            "X-Requested-With": "XMLHttpRequest",
            "X-Upload-Group": group_id,
        }
        url = self.url("upload_cv")
        logger.record_api_call()
        try:
            # Not retried: a timed-out upload may still have landed.
            response = self.session.post(
                url,
                data=ProgressReader(body, report),
                headers=headers,
                timeout=self.settings.timeout,
            )
        except requests.exceptions.Timeout:
            raise TransportError(
                f"Upload timeout after {self.settings.timeout:.0f} seconds. "
                "Please try with fewer or smaller files."
            )
        except requests.exceptions.RequestException as e:
            logger.error("Upload request error", url=url, error=str(e))
            raise TransportError("Network error: Unable to connect to server")

        if response.status_code != 200:
            message = response.text or f"Upload failed: {response.status_code} {response.reason}"
            raise TransportError(message, status_code=response.status_code)

        try:
            result = response.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {"files": result} if isinstance(result, list) else {}

        for err in result.get("errors") or []:
            logger.warning("Service rejected file", file=err.get("filename"), error=err.get("error"))
        return list(result.get("files") or result.get("data") or [])

    # Retrieval

    def fetch_resume(self, resume_id: str) -> ResumeContent:
        """
        Download the raw file behind a resume.

        Raises:
            AuthError: 401, the user must log in again
            AccessDeniedError: 403
            NotFoundError: 404
            UnknownRetrievalError: anything else
        """
        url = self.resume_url(resume_id)
        try:
            response = self._request("GET", f"download/{resume_id}")
        except (TransportError, requests.exceptions.RequestException) as e:
            raise UnknownRetrievalError(f"Request failed: {e}", resume_id=resume_id)

        if response.status_code in _RETRIEVAL_ERRORS:
            error_cls = _RETRIEVAL_ERRORS[response.status_code]
            logger.record_error(error_cls.__name__)
            raise error_cls(f"HTTP {response.status_code} for {url}", resume_id=resume_id)
        if not response.ok:
            raise UnknownRetrievalError(f"HTTP {response.status_code} for {url}", resume_id=resume_id)

        return ResumeContent(
            resume_id=resume_id,
            data=response.content,
            content_type=response.headers.get("Content-Type", "application/octet-stream"),
            url=url,
        )

    def retrieve_resume(self, resume_id: str, direct_url: Optional[str] = None) -> ResumeContent:
        """fetch_resume, falling back once to the direct link on unknown failures."""
        try:
            return self.fetch_resume(resume_id)
        except UnknownRetrievalError as e:
            fallback = direct_url or self.resume_url(resume_id)
            logger.warning("Retrieval failed, trying direct link", resume_id=resume_id, url=fallback, error=str(e))
            try:
                response = requests.get(fallback, timeout=self.settings.timeout)
                response.raise_for_status()
            except requests.exceptions.RequestException as fallback_error:
                logger.record_error("UnknownRetrievalError")
                raise UnknownRetrievalError(
                    f"Direct link failed too: {fallback_error}", resume_id=resume_id
                ) from e
            return ResumeContent(
                resume_id=resume_id,
                data=response.content,
                content_type=response.headers.get("Content-Type", "application/octet-stream"),
                url=fallback,
                via_direct_link=True,
            )

    # Resumes

    def list_resumes(self, group: Optional[str] = None) -> List[ResumeRecord]:
        """POST /cvs; an empty body lists everything, {"group": name} narrows it."""
        response = self._request("POST", "cvs", json={"group": group} if group else {})
        response.raise_for_status()
        payload = response.json()
        items = payload.get("data", []) if isinstance(payload, dict) else payload
        return [resume_from_api(item) for item in items or []]

    def delete_resume(self, resume_id: str) -> str:
        response = self._request("DELETE", f"delete/{resume_id}")
        response.raise_for_status()
        logger.info("Resume deleted remotely", resume_id=resume_id)
        return _message(response, "Resume deleted successfully")

    # Comments

    def save_comment(self, resume_id: str, comment: str) -> ResumeComment:
        """Create or replace the reviewer comment on a resume."""
        comment = (comment or "").strip()
        if not comment:
            raise ValueError("Comment cannot be empty.")
        response = self._request("POST", f"cv/{resume_id}/comment", json={"comment": comment})
        response.raise_for_status()
        cv = _json_or_empty(response).get("cv") or {}
        return ResumeComment(
            resume_id=str(cv.get("id") or resume_id),
            comment=cv.get("comment") or comment,
            commented_at=_timestamp(cv.get("commented_at")),
        )

    def delete_comment(self, resume_id: str) -> bool:
        response = self._request("DELETE", f"cv/{resume_id}/comment")
        response.raise_for_status()
        return True

    # Search

    def search_candidates(self, query: str, group: Optional[str] = None) -> Tuple[List[CandidateResult], str]:
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise ValueError(f"Please enter at least {MIN_QUERY_LENGTH} characters for your search query.")

        response = self._request("POST", "search_api", json={"query": query, "group": group})
        response.raise_for_status()
        return candidates_from_search_response(response.json())

    def search_by_job_description(
        self,
        job_description: FileDescriptor,
        group: Optional[str] = None,
    ) -> Tuple[List[CandidateResult], str]:
        """
        POST a job description file to /upload_jd and rank the matches.

        The file goes through the same size and type rules as resumes.

        Raises:
            ValidationError: the file is too large or of an unsupported type
        """
        violations = validate_file(
            job_description,
            max_size=self.settings.max_file_size,
            allowed_types=self.settings.allowed_types,
        )
        if violations:
            raise ValidationError(job_description.name, violations)
        if job_description.path is None:
            raise ValidationError(job_description.name, [f"{job_description.name} has no content."])

        data = Path(job_description.path).read_bytes()
        form = {"group": group.strip()} if group and group.strip() else {}
        response = self._request(
            "POST",
            "upload_jd",
            files={"file": (job_description.name, data, job_description.content_type or "application/octet-stream")},
            data=form,
        )
        response.raise_for_status()
        candidates, summary = candidates_from_search_response(response.json())
        return candidates, summary or JD_SUMMARY_FALLBACK

    # Groups

    def list_groups(self) -> List[Group]:
        response = self._request("GET", "groups")
        response.raise_for_status()
        payload = response.json()
        items = payload.get("data", []) if isinstance(payload, dict) else payload
        return [_group_from_api(item) for item in items or []]

    def create_group(self, name: str, description: Optional[str] = None) -> Group:
        name = (name or "").strip()
        if not name:
            raise ValueError("Group name is required.")
        response = self._request("POST", "groups", json={"name": name, "description": description or ""})
        response.raise_for_status()
        payload = _json_or_empty(response)
        item = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        group = _group_from_api(item, fallback_name=name)
        logger.info("Group created", group_id=group.id, name=group.name)
        return group

    def update_group(self, group_id: str, **changes: Any) -> Group:
        """PUT /groups/<id> with name and/or description."""
        body = {k: v for k, v in changes.items() if k in ("name", "description") and v is not None}
        response = self._request("PUT", f"groups/{group_id}", json=body)
        response.raise_for_status()
        payload = _json_or_empty(response)
        item = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        item = dict(item or {})
        item.setdefault("id", group_id)
        return _group_from_api(item, fallback_name=body.get("name", ""))

    def delete_group(self, group_id: str) -> str:
        """
        Raises:
            GroupInUseError: the group still holds resumes
        """
        response = self._request("DELETE", f"groups/{group_id}")
        if not response.ok and "associated CVs" in (response.text or ""):
            raise GroupInUseError(group_id)
        response.raise_for_status()
        logger.info("Group deleted remotely", group_id=group_id)
        return _message(response, "Group deleted successfully")


def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _message(response: requests.Response, default: str) -> str:
    return _json_or_empty(response).get("message") or default


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _group_from_api(item: Dict[str, Any], fallback_name: str = "") -> Group:
    created = item.get("createdAt") or item.get("created_at")
    group_id = item.get("id") or item.get("group_id") or item.get("groupId")
    return Group(
        id=str(group_id),
        name=item.get("name") or item.get("group_name") or fallback_name,
        description=item.get("description") or item.get("group_description"),
        created_at=_timestamp(created) or datetime.now(timezone.utc),
        resume_count=int(item.get("resumeCount") or item.get("resume_count") or 0),
    )


def resume_from_api(item: Dict[str, Any]) -> ResumeRecord:
    """Build a record from a service listing or a local JSON export."""
    record = ResumeRecord(
        id=str(item["id"]),
        file_name=(
            item.get("file_name") or item.get("fileName")
            or item.get("original_filename") or item.get("filename") or ""
        ),
        file_size=int(item.get("file_size") or item.get("fileSize") or 0),
        status=normalize_status(item.get("status")),
        parsed_data=item.get("parsed_data") or item.get("parsedData"),
        error=item.get("error"),
        group_id=item.get("group_id") or item.get("group"),
        remote_id=str(item["id"]),
        cloud_url=item.get("cloud_url"),
    )
    uploaded = _timestamp(item.get("uploaded_at") or item.get("uploadDate") or item.get("upload_time"))
    if uploaded:
        record.uploaded_at = uploaded
    return record
