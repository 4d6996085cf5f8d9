import pytest

from cli_oauth_library.providers.oauth_base import (
    TOKEN_REFRESH_BUFFER_MS,
    OAuthCredentials,
    is_token_valid,
)

NOW = 1_700_000_000_000


def _creds(expiry_date):
    return OAuthCredentials(access_token="A1", refresh_token="R1", expiry_date=expiry_date)


def test_buffer_is_thirty_seconds():
    assert TOKEN_REFRESH_BUFFER_MS == 30_000


@pytest.mark.parametrize(
    "expiry_date, expected",
    [
        (NOW + 30_000, False),  # exactly at the buffer edge
        (NOW + 29_999, False),
        (NOW - 1000, False),
        (NOW + 30_001, True),
        (NOW + 3_600_000, True),
    ],
)
def test_validity_respects_buffer(expiry_date, expected):
    assert is_token_valid(_creds(expiry_date), now=NOW) is expected


@pytest.mark.parametrize("expiry_date", [0, None])
def test_absent_or_zero_expiry_is_expired(expiry_date):
    assert is_token_valid(_creds(expiry_date), now=0) is False


def test_no_record_is_invalid():
    assert is_token_valid(None) is False


def test_from_dict_treats_garbage_expiry_as_expired():
    creds = OAuthCredentials.from_dict(
        {"access_token": "A1", "refresh_token": "R1", "expiry_date": "soon"}
    )
    assert creds.expiry_date == 0
    assert is_token_valid(creds) is False


def test_repr_hides_tokens():
    text = repr(_creds(NOW))
    assert "A1" not in text
    assert "R1" not in text
