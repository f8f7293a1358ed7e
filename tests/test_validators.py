"""Tests for input validators."""

import pytest

from remsync.validators import (
    is_valid_doc_id,
    validate_base_url,
    validate_doc_id,
)


class TestDocId:
    @pytest.mark.parametrize(
        "doc_id",
        ["a", "2f9a1c7e-0000-4d6c-9d7b-1a2b3c4d5e6f", "Doc_1", "0"],
    )
    def test_valid(self, doc_id):
        assert is_valid_doc_id(doc_id)
        assert validate_doc_id(doc_id) == (True, "")

    @pytest.mark.parametrize(
        "doc_id",
        ["", "-lead", "has space", "a.b", "../x", "a/b", "abc\n", ".hidden"],
    )
    def test_invalid(self, doc_id):
        assert not is_valid_doc_id(doc_id)
        ok, reason = validate_doc_id(doc_id)
        assert not ok
        assert reason.startswith("Document id")

    def test_empty_message(self):
        assert validate_doc_id("   ") == (
            False,
            "Document id cannot be empty",
        )


class TestBaseUrl:
    def test_https(self):
        assert validate_base_url("https://my.remarkable.com/") == (True, "")

    def test_http_with_port(self):
        assert validate_base_url("http://localhost:8080")[0]

    def test_no_scheme(self):
        ok, reason = validate_base_url("example.com", "Auth server")
        assert not ok
        assert reason.startswith("Auth server")
        assert "http:// or https://" in reason

    def test_no_host(self):
        ok, reason = validate_base_url("https://")
        assert not ok
        assert "hostname" in reason
