"""
Tests for picking and packaging attachments.
"""

import pytest

from medpro.services.attachments import (
    build_multipart,
    format_file_size,
    guess_mime_type,
    pick_file,
)
from medpro.services.errors import AttachmentError


class TestFormatFileSize:
    """Test human readable sizes."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (0, "0 Bytes"),
            (500, "500 Bytes"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (2 * 1024 * 1024, "2 MB"),
            (10 * 1024 * 1024, "10 MB"),
            (1288490189, "1.2 GB"),
        ],
    )
    def test_sizes(self, size, expected):
        assert format_file_size(size) == expected


class TestPickFile:
    """Test validation of files picked from disk."""

    def test_document(self, tmp_path):
        path = tmp_path / "laudo.pdf"
        path.write_bytes(b"%PDF-1.4 data")

        attachment = pick_file(path)

        assert attachment.name == "laudo.pdf"
        assert attachment.type == "application/pdf"
        assert attachment.size == 13
        assert attachment.path == str(path)
        assert attachment.id

    def test_too_large(self, tmp_path):
        path = tmp_path / "big.pdf"
        path.write_bytes(b"x" * 2048)

        with pytest.raises(AttachmentError) as exc_info:
            pick_file(path, max_bytes=1024)

        assert str(exc_info.value) == "Arquivo muito grande. O tamanho máximo é 1 KB."

    def test_default_limit_message(self, tmp_path, monkeypatch):
        from medpro.services import attachments

        monkeypatch.setattr(attachments.settings, "max_attachment_bytes", 10 * 1024 * 1024)
        path = tmp_path / "ok.pdf"
        path.write_bytes(b"x")

        assert pick_file(path).size == 1

    def test_missing_and_empty(self, tmp_path):
        with pytest.raises(AttachmentError):
            pick_file(tmp_path / "nope.pdf")

        empty = tmp_path / "empty.pdf"
        empty.write_bytes(b"")
        with pytest.raises(AttachmentError):
            pick_file(empty)

    def test_image_kind_requires_image(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not an image")

        with pytest.raises(AttachmentError):
            pick_file(path, kind="image")

        image = tmp_path / "raio-x.png"
        image.write_bytes(b"\x89PNG")
        assert pick_file(image, kind="image").type == "image/png"

    def test_fallback_mime_types(self):
        assert guess_mime_type("recording", "audio") == "audio/mp4"
        assert guess_mime_type("blob", "attachment") == "application/octet-stream"

    def test_build_multipart(self, tmp_path):
        path = tmp_path / "laudo.pdf"
        path.write_bytes(b"%PDF")
        attachment = pick_file(path)

        assert build_multipart(attachment) == ("laudo.pdf", b"%PDF", "application/pdf")
        assert build_multipart(attachment, filename="a.bin", content_type="x/y") == (
            "a.bin",
            b"%PDF",
            "x/y",
        )
