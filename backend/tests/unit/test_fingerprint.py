"""Unit tests for deltagov.services.diff.fingerprint."""
from deltagov.services.diff.fingerprint import fingerprint


def test_fingerprint_is_sha256_hex():
    digest = fingerprint("SEC. 2.")
    assert len(digest) == 64
    assert all(c in "0123456789abcdef" for c in digest)


def test_text_and_its_utf8_bytes_share_a_fingerprint():
    text = "Appropriations for fiscal year 2026 — § 101"
    assert fingerprint(text) == fingerprint(text.encode("utf-8"))


def test_fingerprint_distinguishes_whitespace():
    assert fingerprint("SEC. 1.\n") != fingerprint("SEC. 1.")


def test_empty_text_has_the_empty_sha256():
    assert fingerprint("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
