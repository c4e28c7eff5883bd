"""Unit tests for core/utils/hashing.py"""

from texpub.core.utils.hashing import file_hash, is_valid_hash, object_hash, sha256, sha256_bytes, short_hash


def test_sha256_known_value():
    """sha256 matches the reference digest of the empty string."""
    assert sha256("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_file_hash_matches_bytes(tmp_path):
    """file_hash hashes raw bytes, not decoded text."""
    p = tmp_path / "a.tex"
    p.write_bytes(b"\\titre{x}\r\n")
    assert file_hash(p) == sha256_bytes(b"\\titre{x}\r\n")


def test_object_hash_ignores_key_order():
    """Key order does not change the object hash."""
    assert object_hash({"a": 1, "b": [1, 2]}) == object_hash({"b": [1, 2], "a": 1})


def test_short_hash_and_validation():
    """short_hash is a prefix; is_valid_hash accepts 64 hex digits only."""
    digest = sha256("x")
    assert short_hash("x") == digest[:8]
    assert is_valid_hash(digest.upper())
    assert not is_valid_hash(digest[:10])
    assert not is_valid_hash(None)
