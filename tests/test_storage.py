from __future__ import annotations

import pytest

from storage import DocumentStore, file_extension, guess_mime_type
from wizard import UploadedDocument


def test_save_writes_under_application_folder(tmp_path) -> None:
    store = DocumentStore(tmp_path, clock=lambda: 1767225600.5)
    document = UploadedDocument("My Transcript.PDF", "application/pdf", b"%PDF")

    path = store.save("app-1", "transcript", document)

    assert path == "app-1/transcript_1767225600500.pdf"
    assert (tmp_path / "app-1" / "transcript_1767225600500.pdf").read_bytes() == b"%PDF"
    assert store.exists(path) is True
    assert store.read(path) == b"%PDF"


def test_paths_cannot_escape_the_store(tmp_path) -> None:
    store = DocumentStore(tmp_path / "uploads")

    with pytest.raises(ValueError):
        store.read("../secrets.toml")


def test_file_extension_falls_back_to_mime_type() -> None:
    assert file_extension(UploadedDocument("scan", "image/jpeg", b"")) == "jpg"
    assert file_extension(UploadedDocument("statement", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", b"")) == "docx"
    assert file_extension(UploadedDocument("blob", "", b"")) == "bin"


def test_guess_mime_type() -> None:
    assert guess_mime_type("passport.png") == "image/png"
    assert guess_mime_type("notes", "text/plain") == "text/plain"
    assert guess_mime_type("notes") == "application/octet-stream"
