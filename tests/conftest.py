"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from resumeparser.config import Settings
from resumeparser.models import FileDescriptor, ResumeRecord, ResumeStatus
from resumeparser.normalize import DOCX, PDF
from resumeparser.store import RecordStore


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    created: List["FakeTimer"] = []

    def __init__(self, delay, function, args=None, kwargs=None):
        self.delay = delay
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        # A cancelled threading.Timer may still run if it already woke up
        self.function(*self.args, **self.kwargs)


@pytest.fixture
def fake_timer():
    FakeTimer.created = []
    return FakeTimer


@pytest.fixture
def store() -> RecordStore:
    """Store seeded with the default groups."""
    return RecordStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(api_url="http://api.test/api", retry_attempts=2, retry_delay=0.0, timeout=5.0)


@pytest.fixture
def pdf_file() -> FileDescriptor:
    return FileDescriptor(name="a.pdf", size=2048, content_type=PDF)


@pytest.fixture
def docx_file() -> FileDescriptor:
    return FileDescriptor(name="b.docx", size=4096, content_type=DOCX)


@pytest.fixture
def resume_files(tmp_path) -> List[FileDescriptor]:
    """Two real files on disk, ready for the HTTP client."""
    pdf = tmp_path / "a.pdf"
    pdf.write_bytes(b"%PDF-1.4 fake resume")
    docx = tmp_path / "b.docx"
    docx.write_bytes(b"PK fake docx resume")
    return [
        FileDescriptor(name=pdf.name, size=pdf.stat().st_size, content_type=PDF, path=str(pdf)),
        FileDescriptor(name=docx.name, size=docx.stat().st_size, content_type=DOCX, path=str(docx)),
    ]


@pytest.fixture
def sample_records() -> List[ResumeRecord]:
    """Completed and failed records across two groups."""
    return [
        ResumeRecord(
            id="r1",
            file_name="jane_doe_cv.pdf",
            file_size=1000,
            status=ResumeStatus.COMPLETED,
            uploaded_at=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
            parsed_data={"personalInfo": {"name": "Jane Doe", "email": "jane@example.com"}},
            group_id="1",
        ),
        ResumeRecord(
            id="r2",
            file_name="resume_final.docx",
            file_size=2000,
            status=ResumeStatus.ERROR,
            uploaded_at=datetime(2025, 3, 5, 12, 0, tzinfo=timezone.utc),
            error="Upload failed",
            group_id="2",
        ),
        ResumeRecord(
            id="r3",
            file_name="cv.txt",
            file_size=300,
            status=ResumeStatus.COMPLETED,
            uploaded_at=datetime(2025, 3, 10, 18, 30, tzinfo=timezone.utc),
            parsed_data={"name": "John Smith", "email": ["john@smith.io", "js@work.com"]},
            group_id="1",
        ),
    ]


@pytest.fixture
def search_response() -> dict:
    """Response body of the candidate search endpoint."""
    return {
        "answer": {
            "summary": "Two strong matches for the query.",
            "candidate_details": [
                {
                    "candidate_name": "Alice",
                    "file_name": "alice.pdf",
                    "email": "alice@example.com",
                    "phone": ["555-0100"],
                    "score_card": {
                        "clarity_score": 6,
                        "experience_score": 6,
                        "loyalty_score": 6,
                        "reputation_score": 6,
                    },
                    "details": "* Led ML team * Shipped search * Mentored * Spoke at PyCon",
                },
                {
                    "candidate_name": "Bob",
                    "file_name": "bob.pdf",
                    "email": ["bob@example.com"],
                    "score_card": {
                        "clarity_score": 9,
                        "experience_score": 8,
                        "loyalty_score": 7,
                        "reputation_score": 8,
                    },
                },
            ],
        },
        "results": [
            {"id": 11, "score": 0.71, "source_file": "alice.pdf", "group": "AI"},
            {"id": 12, "score": 0.93, "source_file": "bob.pdf", "group": "AI"},
        ],
    }
