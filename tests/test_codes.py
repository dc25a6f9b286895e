"""Short code generation and validation tests."""

import pytest

from swifturl.codes import (
    ALPHABET,
    generate_short_code,
    is_reserved_code,
    is_valid_short_code,
)


def test_generated_code_has_default_length_and_alphabet() -> None:
    code = generate_short_code()
    assert len(code) == 6
    assert all(ch in ALPHABET for ch in code)


@pytest.mark.parametrize("length", [1, 3, 10, 21])
def test_generated_code_honours_length(length: int) -> None:
    assert len(generate_short_code(length)) == length


@pytest.mark.parametrize("length", [0, -1, 2.5, "6", True])
def test_generated_code_rejects_bad_length(length) -> None:
    with pytest.raises(ValueError):
        generate_short_code(length)


def test_generated_codes_do_not_repeat_in_practice() -> None:
    codes = {generate_short_code() for _ in range(2000)}
    assert len(codes) == 2000


def test_alphabet_is_62_alphanumerics() -> None:
    assert len(ALPHABET) == 62
    assert len(set(ALPHABET)) == 62
    assert ALPHABET.isalnum()


@pytest.mark.parametrize("code", ["abc", "mylink", "ABCdef1234"])
def test_valid_codes(code: str) -> None:
    assert is_valid_short_code(code)


@pytest.mark.parametrize("code", ["ab", "abcdefghijk", "my-link", "my_link", "héllo", "", None])
def test_invalid_codes(code) -> None:
    assert not is_valid_short_code(code)


@pytest.mark.parametrize("code", ["api", "API", "Health", "metrics", "docs"])
def test_reserved_codes_are_case_insensitive(code: str) -> None:
    assert is_reserved_code(code)


def test_ordinary_code_is_not_reserved() -> None:
    assert not is_reserved_code("mylink")
