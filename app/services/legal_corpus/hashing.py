"""
Content hashing for the legal corpus.

SHA-256 hex digests serve two purposes:
- full-document fingerprint (skip-if-unchanged on incremental runs)
- per-unit integrity fingerprint (hash of a unit's content_text)
"""

import hashlib
from typing import Union


def sha256_hex(data: Union[bytes, str]) -> str:
    """
    Hash bytes or text with SHA-256.

    Text is encoded as strict UTF-8: a string that cannot be encoded
    (lone surrogates) raises UnicodeEncodeError instead of producing a
    digest of something else.
    """
    if isinstance(data, str):
        data = data.encode("utf-8", errors="strict")
    elif not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"cannot hash object of type {type(data).__name__}")
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    """Per-unit fingerprint; a pure function of content_text."""
    return sha256_hex(text)


def source_set_hash(source_url: str, content_hash: str) -> str:
    """Fingerprint of the source set a version was built from."""
    return sha256_hex(source_url + content_hash)
