from guesswho.backend.security import (
    DEFAULT_PLAYER_NAME,
    MAX_NAME_LENGTH,
    generate_token,
    normalize_code,
    sanitize_player_name,
)


def test_generate_token_returns_non_empty_random_value() -> None:
    first = generate_token()
    second = generate_token()

    assert first
    assert second
    assert first != second


def test_sanitize_player_name_strips_markup() -> None:
    assert sanitize_player_name("<b>Alice</b>") == "Alice"
    assert "<script>" not in sanitize_player_name("<script>alert(1)</script>Bob")
    assert sanitize_player_name("Tom & <i>Jerry</i>") == "Tom & Jerry"


def test_sanitize_player_name_caps_length_and_collapses_whitespace() -> None:
    assert len(sanitize_player_name("A" * 30)) == MAX_NAME_LENGTH
    assert sanitize_player_name("  Ada \t  Lovelace  ") == "Ada Lovelace"


def test_sanitize_player_name_falls_back_when_nothing_is_left() -> None:
    assert sanitize_player_name("<i></i>   ") == DEFAULT_PLAYER_NAME


def test_normalize_code_trims_and_upper_cases() -> None:
    assert normalize_code("  ab2c ") == "AB2C"
