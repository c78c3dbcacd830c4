"""Tests for Postgres identifier quoting."""

import pytest

from dal.quoting import quote_identifier


def test_plain_identifier_is_wrapped():
    assert quote_identifier("users") == '"users"'


def test_case_and_spaces_are_preserved():
    assert quote_identifier("Order Items") == '"Order Items"'


def test_embedded_quotes_are_doubled():
    assert quote_identifier('a"b') == '"a""b"'


def test_injection_attempt_stays_one_identifier():
    """A hostile name cannot terminate the quoted identifier early."""
    quoted = quote_identifier('users"; DROP TABLE users; --')
    assert quoted == '"users""; DROP TABLE users; --"'
    inner = quoted[1:-1]
    assert '"' not in inner.replace('""', "")


def test_nul_character_is_rejected():
    with pytest.raises(ValueError):
        quote_identifier("bad\x00name")
