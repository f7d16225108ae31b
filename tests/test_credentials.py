"""身份记录测试。Identity record tests."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from freeland.credentials import Identity, load_identity, save_identity
from freeland.exceptions import CredentialError


class TestLoadIdentity:
    """测试 load_identity()。"""

    def test_reads_subject_and_secret(self, identity_file: Path):
        """测试读取两行记录。"""
        identity = load_identity(identity_file)
        assert identity == Identity(subject="bob", secret="uuid-123")

    def test_missing_file(self, temp_dir: Path):
        """测试文件不存在。"""
        with pytest.raises(CredentialError, match="Not configured yet"):
            load_identity(temp_dir / "absent.conf")

    def test_single_line_is_incomplete(self, temp_dir: Path):
        """测试只有用户名。"""
        path = temp_dir / "id.conf"
        path.write_text("bob\n", encoding="utf-8")
        with pytest.raises(CredentialError, match="Configuration error"):
            load_identity(path)

    def test_empty_secret_line(self, temp_dir: Path):
        """测试第二行为空。"""
        path = temp_dir / "id.conf"
        path.write_text("bob\n\n", encoding="utf-8")
        with pytest.raises(CredentialError):
            load_identity(path)

    def test_crlf_and_extra_lines(self, temp_dir: Path):
        """测试 Windows 换行与多余行。"""
        path = temp_dir / "id.conf"
        path.write_bytes(b"bob\r\nuuid-123\r\nleftover\r\n")
        identity = load_identity(path)
        assert identity.subject == "bob"
        assert identity.secret == "uuid-123"

    def test_repr_hides_secret(self):
        """测试 repr 不泄露 uuid。"""
        assert "uuid-123" not in repr(Identity("bob", "uuid-123"))


class TestSaveIdentity:
    """测试 save_identity()。"""

    def test_round_trip(self, temp_dir: Path):
        """测试写入后可以读回。"""
        path = save_identity(temp_dir / "id.conf", "alice", "b831381d")
        assert path.read_text(encoding="utf-8") == "alice\nb831381d\n"
        assert load_identity(path) == Identity("alice", "b831381d")

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions only")
    def test_file_is_private(self, temp_dir: Path):
        """测试文件权限为 0600。"""
        path = save_identity(temp_dir / "id.conf", "alice", "b831381d")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.parametrize("subject,secret", [("", "x"), ("a", ""), ("a\nb", "x"), ("a", "x\ny")])
    def test_rejects_invalid_fields(self, temp_dir: Path, subject: str, secret: str):
        """测试空值或含换行的字段。"""
        with pytest.raises(CredentialError):
            save_identity(temp_dir / "id.conf", subject, secret)
        assert not (temp_dir / "id.conf").exists()
