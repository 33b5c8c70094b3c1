"""Tests related to asgstack.key module."""

import pytest

from asgstack.errors import AsgstackError, UnsetSSHKeyError
from asgstack.key import KeyPair


# pylint: disable=missing-function-docstring
class TestFromPaths:
    """Tests for building a KeyPair from configured paths."""

    def test_unset(self):
        key_pair = KeyPair.from_paths(None, "/ignored", name="me")
        assert KeyPair(name="me") == key_pair

    def test_private_key_defaults_to_public_without_suffix(self):
        key_pair = KeyPair.from_paths("/keys/id_test.pub")
        assert "/keys/id_test" == key_pair.private_key_path

    def test_expands_user_and_variables(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/me")
        monkeypatch.setenv("KEY_DIR", "/keys")
        key_pair = KeyPair.from_paths("~/.ssh/id_test.pub", "$KEY_DIR/id")
        assert "/home/me/.ssh/id_test.pub" == key_pair.public_key_path
        assert "/keys/id" == key_pair.private_key_path


# pylint: disable=missing-function-docstring
class TestPublicKeyContent:
    """Tests for reading the public key."""

    def test_strips_trailing_newline(self, tmp_path):
        path = tmp_path / "id_test.pub"
        path.write_text("ssh-ed25519 AAAA me@host\n")
        key_pair = KeyPair.from_paths(str(path))
        assert "ssh-ed25519 AAAA me@host" == key_pair.public_key_content

    def test_unset_key(self):
        with pytest.raises(UnsetSSHKeyError):
            KeyPair().public_key_content  # pylint: disable=W0104

    def test_missing_file(self, tmp_path):
        key_pair = KeyPair.from_paths(str(tmp_path / "missing.pub"))
        with pytest.raises(AsgstackError, match="Cannot read public key"):
            key_pair.public_key_content  # pylint: disable=W0104
