"""
Tests for the pre-submission file checks.
"""

from resumeparser.config import MAX_FILE_SIZE
from resumeparser.models import FileDescriptor
from resumeparser.normalize import DOC, PDF, TEXT, canonical_content_type
from resumeparser.validation import validate_file, validate_files


class TestValidateFile:
    """Test the single-file rules."""

    def test_exactly_max_size_accepted(self):
        """A file of exactly 10MB passes the size rule."""
        f = FileDescriptor(name="big.pdf", size=10 * 1024 * 1024, content_type=PDF)
        assert validate_file(f) == []

    def test_one_byte_over_rejected(self):
        """One byte over the limit is rejected with the size message."""
        f = FileDescriptor(name="big.pdf", size=MAX_FILE_SIZE + 1, content_type=PDF)
        assert validate_file(f) == ["big.pdf is too large. Maximum size is 10MB."]

    def test_unsupported_type(self):
        """Images are not resumes."""
        f = FileDescriptor(name="photo.png", size=100, content_type="image/png")
        assert validate_file(f) == ["photo.png is not a supported file type."]

    def test_supported_types(self):
        """PDF, DOC, DOCX and plain text are all accepted."""
        for name, ct in [("a.pdf", PDF), ("a.doc", DOC), ("a.txt", TEXT)]:
            assert validate_file(FileDescriptor(name=name, size=1, content_type=ct)) == []

    def test_type_inferred_from_extension(self):
        """An unknown declared type falls back to the extension."""
        f = FileDescriptor(name="cv.docx", size=10, content_type="application/octet-stream")
        assert validate_file(f) == []

    def test_content_type_parameters_ignored(self):
        """Charset parameters don't change the media type."""
        assert canonical_content_type("Text/Plain; charset=utf-8") == TEXT

    def test_duplicate_rejected(self):
        """Same name and size as a pending file is a duplicate."""
        f = FileDescriptor(name="a.pdf", size=10, content_type=PDF)
        assert validate_file(f, pending_keys=[("a.pdf", 10)]) == ["a.pdf has already been selected."]

    def test_same_name_different_size_not_duplicate(self):
        """Identity is (name, size), not name alone."""
        f = FileDescriptor(name="a.pdf", size=11, content_type=PDF)
        assert validate_file(f, pending_keys=[("a.pdf", 10)]) == []

    def test_all_violations_reported(self):
        """A file can fail several rules at once."""
        f = FileDescriptor(name="huge.exe", size=MAX_FILE_SIZE + 1, content_type="application/x-msdownload")
        errors = validate_file(f, pending_keys=[("huge.exe", MAX_FILE_SIZE + 1)])
        assert len(errors) == 3
        assert errors[0].startswith("huge.exe is too large")
        assert errors[1] == "huge.exe is not a supported file type."
        assert errors[2] == "huge.exe has already been selected."

    def test_custom_limit(self):
        """The limit in the message follows the configured size."""
        f = FileDescriptor(name="a.pdf", size=3 * 1024 * 1024, content_type=PDF)
        assert validate_file(f, max_size=2 * 1024 * 1024) == ["a.pdf is too large. Maximum size is 2MB."]


class TestValidateFiles:
    """Test batch classification."""

    def test_duplicate_within_batch(self):
        """The second copy in one batch is rejected."""
        f = FileDescriptor(name="a.pdf", size=10, content_type=PDF)
        verdicts = validate_files([f, f])
        assert verdicts[0].accepted
        assert not verdicts[1].accepted

    def test_rejected_file_does_not_block_later(self):
        """Only accepted files count as selected for the rest of the batch."""
        bad = FileDescriptor(name="a.pdf", size=10, content_type="image/png")
        good = FileDescriptor(name="a.pdf", size=10, content_type=PDF)
        verdicts = validate_files([bad, good])
        assert not verdicts[0].accepted
        assert verdicts[1].accepted

    def test_against_pending(self, pdf_file, docx_file):
        """Files already pending are rejected, others pass."""
        verdicts = validate_files([pdf_file, docx_file], pending=[pdf_file])
        assert [v.accepted for v in verdicts] == [False, True]

    def test_preserves_order(self, pdf_file, docx_file):
        verdicts = validate_files([docx_file, pdf_file])
        assert [v.file.name for v in verdicts] == ["b.docx", "a.pdf"]
