import json
from urllib.parse import parse_qsl, urlencode

from conftest import BOT_TOKEN, init_data
from security.telegram_auth import sign, validate_init_data

AUTH_DATE = 1_770_000_000


def test_valid_launch_params():
    user = validate_init_data(init_data(42, "Anna", "anna", auth_date=AUTH_DATE), BOT_TOKEN, now=AUTH_DATE + 60)
    assert (user.id, user.first_name, user.username) == (42, "Anna", "anna")


def test_tampered_user_rejected():
    params = dict(parse_qsl(init_data(42, auth_date=AUTH_DATE)))
    params["user"] = json.dumps({"id": 1000, "first_name": "Boss"})
    assert validate_init_data(urlencode(params), BOT_TOKEN, now=AUTH_DATE) is None


def test_wrong_bot_token_rejected():
    raw = init_data(42, bot_token="999:OTHER", auth_date=AUTH_DATE)
    assert validate_init_data(raw, BOT_TOKEN, now=AUTH_DATE) is None


def test_expired_params_rejected():
    raw = init_data(42, auth_date=AUTH_DATE)
    assert validate_init_data(raw, BOT_TOKEN, max_age_seconds=86400, now=AUTH_DATE + 86400) is not None
    assert validate_init_data(raw, BOT_TOKEN, max_age_seconds=86400, now=AUTH_DATE + 86401) is None


def test_missing_pieces_rejected():
    assert validate_init_data("", BOT_TOKEN) is None
    assert validate_init_data("auth_date=1&user=%7B%7D", BOT_TOKEN) is None
    assert validate_init_data(init_data(42), "") is None

    params = {"auth_date": str(AUTH_DATE), "query_id": "x"}
    params["hash"] = sign(params, BOT_TOKEN)
    # signed, but carries no user
    assert validate_init_data(urlencode(params), BOT_TOKEN, now=AUTH_DATE) is None
