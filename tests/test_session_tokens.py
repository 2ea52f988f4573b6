import pytest

from session_tokens import InvalidSessionToken, issue_session_token, read_session_token


def test_token_round_trips_for_owning_household() -> None:
    token = issue_session_token("abc123", 4)
    assert read_session_token(token, 4) == "abc123"


def test_token_is_rejected_for_other_household() -> None:
    token = issue_session_token("abc123", 4)
    with pytest.raises(InvalidSessionToken):
        read_session_token(token, 5)


def test_tampered_token_is_rejected() -> None:
    token = issue_session_token("abc123", 4)
    with pytest.raises(InvalidSessionToken):
        read_session_token(token[:-2] + "xx", 4)
    with pytest.raises(InvalidSessionToken):
        read_session_token("not-a-token", 4)
