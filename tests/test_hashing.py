# Tests for dotvault.utils.hashing and dotvault.utils.paths
# Content fingerprints and atomic writes

import stat

from dotvault.utils.hashing import MISSING_HASH, content_hash, short_hash
from dotvault.utils.paths import atomic_write, expand_path, file_mode


class TestContentHash:
    """Tests for content_hash."""

    def test_string_input(self):
        h = content_hash("hello")
        assert isinstance(h, str)
        assert len(h) == 64  # SHA256 hex length

    def test_bytes_input(self):
        assert content_hash(b"hello") == content_hash("hello")

    def test_different_content(self):
        assert content_hash("name=A") != content_hash("name=B")

    def test_none_is_sentinel(self):
        assert content_hash(None) == MISSING_HASH

    def test_empty_string_is_not_missing(self):
        assert content_hash("") != MISSING_HASH


class TestShortHash:
    """Tests for short_hash display helper."""

    def test_truncates(self):
        assert short_hash(content_hash("x")) == content_hash("x")[:12]

    def test_sentinels(self):
        assert short_hash(None) == "<never>"
        assert short_hash(MISSING_HASH) == "<missing>"


class TestAtomicWrite:
    """Tests for atomic_write."""

    def test_creates_owner_only_file(self, temp_dir):
        target = temp_dir / "sub" / "secret"
        atomic_write(target, "s3cret")
        assert target.read_text(encoding="utf-8") == "s3cret"
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_custom_mode(self, temp_dir):
        target = temp_dir / "key.pub"
        atomic_write(target, "ssh-ed25519 AAAA", mode=0o644)
        assert file_mode(target) == 0o644

    def test_replaces_existing(self, temp_dir):
        target = temp_dir / "file"
        target.write_text("old", encoding="utf-8")
        atomic_write(target, b"new")
        assert target.read_bytes() == b"new"

    def test_no_temp_files_left(self, temp_dir):
        atomic_write(temp_dir / "file", "content")
        assert [p.name for p in temp_dir.iterdir()] == ["file"]

    def test_preserves_newlines(self, temp_dir):
        target = temp_dir / "file"
        atomic_write(target, "a\r\nb\n")
        assert target.read_bytes() == b"a\r\nb\n"


class TestPaths:
    """Tests for path helpers."""

    def test_expand_home(self, temp_home):
        assert expand_path("~/.gitconfig") == temp_home / ".gitconfig"

    def test_variables_left_alone(self, temp_home, monkeypatch):
        monkeypatch.setenv("DOTVAULT_TEST_DIR", str(temp_home / "x"))
        assert expand_path("~/$DOTVAULT_TEST_DIR/file") == temp_home / "$DOTVAULT_TEST_DIR" / "file"

    def test_symlink_not_resolved(self, temp_home):
        real = temp_home / "dotfiles" / "gitconfig"
        real.parent.mkdir()
        real.write_text("x", encoding="utf-8")
        (temp_home / ".gitconfig").symlink_to(real)
        assert expand_path("~/.gitconfig") == temp_home / ".gitconfig"

    def test_file_mode_missing(self, temp_dir):
        assert file_mode(temp_dir / "nope") is None
