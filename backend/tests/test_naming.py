"""Tests for download filenames."""
from ytgrab.services.naming import ascii_filename, content_disposition, filename_from_title, sanitize_title


class TestSanitizeTitle:
    """Tests for title sanitization."""

    def test_strips_reserved_characters(self) -> None:
        assert sanitize_title('AC/DC: "Live" <2024>?') == "ACDC Live 2024"

    def test_keeps_unicode(self) -> None:
        assert sanitize_title("日本語 タイトル") == "日本語 タイトル"

    def test_reserved_device_name(self) -> None:
        assert sanitize_title("CON") == "_CON"

    def test_trailing_dots(self) -> None:
        assert sanitize_title("Title...") == "Title"


class TestFilenames:
    """Tests for filename and header helpers."""

    def test_fallback_for_empty_title(self) -> None:
        assert filename_from_title("", "mkv", "video") == "video.mkv"
        assert filename_from_title("///", "mp3", "audio") == "audio.mp3"

    def test_ascii_filename(self) -> None:
        assert ascii_filename("My Video (Live).mp4") == "My_Video_Live.mp4"
        assert ascii_filename("日本語") == "download"

    def test_content_disposition(self) -> None:
        header = content_disposition("日本語 Video.mp4")
        assert header.startswith('attachment; filename="')
        assert 'filename="_Video.mp4"' in header
        assert "filename*=UTF-8''%E6%97%A5%E6%9C%AC%E8%AA%9E%20Video.mp4" in header
