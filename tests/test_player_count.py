import pytest

from gamewatch.services.player_count import extract_player_count


@pytest.mark.parametrize("online,max_players", [(0, 20), (5, 20), (71, 100), (1000, 999)])
def test_standard_format_returns_online(online, max_players):
    assert extract_player_count(f"{online}/{max_players}") == online


@pytest.mark.parametrize("response", [None, "", "   \n", "no digits here", "N/A"])
def test_empty_or_digit_free_response_is_zero(response):
    assert extract_player_count(response) == 0


def test_numbered_listing_counts_lines():
    response = (
        "1. Alice, 0002d1b5b7b64b6e\n"
        "2. Bob, 0002aa11bb22cc33\n"
        "3. Carol, 0002ffeeddccbbaa\n"
    )
    assert extract_player_count(response) == 3


def test_palworld_csv_counts_rows_without_header():
    response = (
        "name,playeruid,steamid\n"
        "Alice,1234567890,76561198000000001\n"
        "Bob,2345678901,76561198000000002\n"
    )
    assert extract_player_count(response) == 2


def test_factorio_online_players():
    response = "Online players (4):\n  alice (online)\n  bob (online)\n"
    assert extract_player_count(response) == 4


def test_custom_pattern_is_applied_last():
    response = "There are 7 of a max of 20 players online"
    assert extract_player_count(response) == 0
    assert extract_player_count(response, r"\d+(?= of a max)") == 7


def test_custom_pattern_must_match_an_integer():
    assert extract_player_count("players: seven 3", r"players: \w+") == 0


def test_invalid_custom_pattern_does_not_raise():
    assert extract_player_count("players 3", r"(unclosed") == 0


def test_builtin_shapes_win_over_custom_pattern():
    assert extract_player_count("3/10", r"10") == 3
