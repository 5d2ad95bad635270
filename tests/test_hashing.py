"""
Tests for corpus content hashing.
"""

import hashlib

import pytest

from app.services.legal_corpus import hash_text, sha256_hex, source_set_hash


class TestSha256Hex:
    """Document fingerprints."""

    def test_bytes_and_text_agree(self):
        assert sha256_hex("Art. 1") == sha256_hex(b"Art. 1")

    def test_known_digest(self):
        assert sha256_hex(b"") == hashlib.sha256(b"").hexdigest()
        assert len(sha256_hex("abc")) == 64

    def test_accented_text_is_utf8(self):
        assert sha256_hex("curatelle é") == hashlib.sha256("curatelle é".encode("utf-8")).hexdigest()

    def test_rejects_non_text(self):
        with pytest.raises(TypeError):
            sha256_hex(42)

    def test_lone_surrogate_is_not_hashed(self):
        with pytest.raises(UnicodeEncodeError):
            sha256_hex("\ud800")


class TestUnitHash:
    """Per-unit fingerprints."""

    def test_deterministic(self):
        assert hash_text("Le curateur") == hash_text("Le curateur")

    def test_content_sensitive(self):
        assert hash_text("Le curateur") != hash_text("Le curateur.")

    def test_source_set_hash_depends_on_url(self):
        content = sha256_hex("text")
        assert source_set_hash("https://a.example/cc", content) != source_set_hash("https://b.example/cc", content)
