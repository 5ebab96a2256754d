import pytest

from rssagg.auth import AuthError, NoAuthHeaderError, get_api_key


def test_returns_key_after_scheme():
    assert get_api_key({"Authorization": "ApiKey placeholder"}) == "placeholder"


def test_header_name_is_case_insensitive():
    assert get_api_key({"authorization": "ApiKey placeholder"}) == "placeholder"


def test_extra_parts_are_ignored():
    assert get_api_key({"Authorization": "ApiKey placeholder trailing"}) == "placeholder"


def test_missing_header_raises_no_header_error():
    with pytest.raises(NoAuthHeaderError) as excinfo:
        get_api_key({})
    assert str(excinfo.value) == "no authorization header included"


def test_empty_header_counts_as_missing():
    with pytest.raises(NoAuthHeaderError):
        get_api_key({"Authorization": ""})


def test_no_header_error_is_an_auth_error():
    with pytest.raises(AuthError):
        get_api_key({"Other": "value"})


@pytest.mark.parametrize(
    "value",
    ["Bearer token", "ApiKey", "apikey placeholder", "placeholder"],
)
def test_malformed_header(value):
    with pytest.raises(AuthError) as excinfo:
        get_api_key({"Authorization": value})
    assert not isinstance(excinfo.value, NoAuthHeaderError)
    assert str(excinfo.value) == "malformed authorization header"