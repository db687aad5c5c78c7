"""Tests for short code generation and syntax checks."""

import pytest

from shortlink.codegen import ALPHABET, SHORT_CODE_PATTERN, generate_short_code, is_valid_short_code


def test_alphabet_is_url_safe():
    assert len(ALPHABET) == 64
    assert len(set(ALPHABET)) == 64
    assert set(ALPHABET) <= set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-")


def test_generate_default_length():
    code = generate_short_code()
    assert len(code) == 8
    assert SHORT_CODE_PATTERN.fullmatch(code)


@pytest.mark.parametrize("length", [4, 8, 12, 20])
def test_generate_requested_length(length):
    code = generate_short_code(length)
    assert len(code) == length
    assert all(ch in ALPHABET for ch in code)


def test_generated_codes_are_distinct():
    codes = {generate_short_code() for _ in range(1000)}
    assert len(codes) == 1000


def test_generate_rejects_non_positive_length():
    with pytest.raises(AssertionError):
        generate_short_code(0)


@pytest.mark.parametrize("code", ["abcd", "my-link", "A_b-9", "x" * 20, "promo2024"])
def test_valid_codes(code):
    assert is_valid_short_code(code)


@pytest.mark.parametrize("code", ["abc", "x" * 21, "has space", "dot.com", "slash/", "", None, 1234])
def test_invalid_codes(code):
    assert not is_valid_short_code(code)
