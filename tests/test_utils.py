import pytest

from directory_auth.utils import (
    generate_otp, generate_session_id, hash_password, is_valid_username, mask_phone_number,
    normalize_phone_number, normalize_username, verify_password,
)


@pytest.mark.parametrize("raw", [
    "+1 (555) 123-4567",
    "5551234567",
    "  +91 98765 43210 ",
    "0044 20 7946 0958",
    "12345",
])
def test_normalize_phone_number_is_idempotent(raw):
    once = normalize_phone_number(raw)
    assert normalize_phone_number(once) == once


def test_normalize_phone_number_keeps_explicit_country_code():
    assert normalize_phone_number("+1 (555) 123-4567") == "+15551234567"


def test_normalize_phone_number_prefixes_ten_digit_numbers():
    assert normalize_phone_number("98765-43210") == "+919876543210"
    assert normalize_phone_number("5551234567", default_country_code="+1") == "+15551234567"


def test_normalize_phone_number_leaves_other_lengths_alone():
    assert normalize_phone_number("12345") == "12345"


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", 5551234567])
def test_normalize_phone_number_rejects_empty_input(raw):
    assert normalize_phone_number(raw) is None


def test_username_rules():
    assert normalize_username("  Alice_1 ") == "alice_1"
    assert is_valid_username("alice_1")
    assert not is_valid_username("al")
    assert not is_valid_username("a" * 21)
    assert not is_valid_username("al!ce")
    assert not is_valid_username(None)


def test_hash_and_verify_round_trip():
    hashed = hash_password("longenough1")
    assert hashed != "longenough1"
    assert verify_password("longenough1", hashed)
    assert not verify_password("longenough2", hashed)


def test_verify_password_handles_bad_input():
    assert not verify_password("", hash_password("x" * 8))
    assert not verify_password("longenough1", "")
    assert not verify_password("longenough1", "not-a-bcrypt-hash")


def test_generate_otp_is_six_digits():
    codes = {generate_otp() for _ in range(200)}
    assert all(len(c) == 6 and c.isdigit() and c[0] != "0" for c in codes)
    assert len(codes) > 1


def test_session_ids_are_long_and_unique():
    ids = {generate_session_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(len(i) >= 43 for i in ids)


def test_mask_phone_number():
    assert mask_phone_number("+15551234567") == "********4567"
    assert mask_phone_number(None) == "<none>"
