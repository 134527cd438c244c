"""
Tests for cache path sanitization and URL validation.
"""
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import InvalidIdentifier


class TestCachePathSanitization:
    """Test identifier sanitization to prevent directory traversal attacks."""

    def test_valid_identifier(self, tmp_path):
        """Valid identifier should return a path inside the cache directory."""
        from core.security import get_cache_file_path

        result = get_cache_file_path(str(tmp_path), "video-123_abc", "mp4")
        assert result == os.path.join(str(tmp_path), "video-123_abc.mp4")

    def test_directory_traversal_double_dot(self, tmp_path):
        """Identifiers with '..' should be rejected."""
        from core.security import get_cache_file_path

        with pytest.raises(InvalidIdentifier):
            get_cache_file_path(str(tmp_path), "../../../etc/passwd", "mp4")

    def test_directory_traversal_forward_slash(self):
        """Identifiers with '/' should be rejected."""
        from core.security import sanitize_identifier

        with pytest.raises(InvalidIdentifier):
            sanitize_identifier("videos/other")

    def test_directory_traversal_backslash(self):
        """Identifiers with '\\' should be rejected."""
        from core.security import sanitize_identifier

        with pytest.raises(InvalidIdentifier):
            sanitize_identifier("videos\\..\\other")

    def test_empty_identifier(self):
        """Empty identifier should be rejected."""
        from core.security import sanitize_identifier

        with pytest.raises(InvalidIdentifier):
            sanitize_identifier("")

    def test_none_identifier(self):
        """None identifier should be rejected."""
        from core.security import sanitize_identifier

        with pytest.raises(InvalidIdentifier):
            sanitize_identifier(None)

    def test_too_long_identifier(self):
        from core.security import sanitize_identifier

        with pytest.raises(InvalidIdentifier):
            sanitize_identifier("a" * 201)

    def test_temp_file_namespace_rejected(self, tmp_path):
        """Final names must never look like in-progress temp files."""
        from core.security import get_cache_file_path

        with pytest.raises(InvalidIdentifier):
            get_cache_file_path(str(tmp_path), "clip", "~.tmp")
        assert get_cache_file_path(str(tmp_path), "clip.tmp", "").endswith("clip.tmp")

    def test_special_characters_sanitized(self):
        """Special characters should be replaced with '_'."""
        from core.security import sanitize_identifier

        assert sanitize_identifier("user+clip@example.com") == "user_clip@example.com"
        assert sanitize_identifier("clip #1 (final)") == "clip__1__final_"
        assert sanitize_identifier("vidéo") == "vid_o"


class TestRemoteUrlValidation:
    """Only http(s) URLs with a host can be fetched."""

    def test_https_allowed(self):
        from core.security import validate_remote_url

        validate_remote_url("https://cdn.example.com/v/1.mp4")

    @pytest.mark.parametrize("url", ["ftp://example.com/a.mp4", "file:///etc/passwd", "", "https://"])
    def test_rejected(self, url):
        from core.security import validate_remote_url

        with pytest.raises(ValueError):
            validate_remote_url(url)
