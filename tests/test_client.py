import pytest

from client import PokedexClient, decode_token_claims
from pokedex import NetworkError, PokedexError, ValidationError


@pytest.fixture
def api(client):
    return PokedexClient(base_url="", session=client)


def test_register_stores_token(api):
    data = api.register("ash", "ash@example.com", "pass123")

    assert api.token == data["token"]
    assert api.is_authenticated
    assert api.is_admin is False
    assert api.claims["email"] == "ash@example.com"
    assert api.me()["username"] == "ash"


def test_logout(api):
    api.register("ash", "ash@example.com", "pass123")
    api.logout()

    assert not api.is_authenticated
    assert api.claims is None


def test_admin_flow(api, first_admin):
    api.login("admin@example.com", "admin123")

    assert api.is_admin is True

    created = api.create_custom_pokemon("Yuli", ["water"], "https://img.test/yuli.png", "Wet", height=6)
    assert created["id"] == 1026
    assert created["customPokemon"] is True
    assert created["weight"] is None

    updated = api.update_evolutions("Yuli", ["Yulix"])
    assert updated["evolutions"] == ["Yulix"]
    assert api.get_custom_pokemon(1026)["evolutions"] == ["Yulix"]
    assert [p["name"] for p in api.list_custom_pokemon()] == ["Yuli"]
    assert len(api.list_custom_pokemon_by_user(first_admin.id)) == 1


def test_user_management(api, first_admin, trainer):
    api.login("admin@example.com", "admin123")

    assert len(api.list_users()) == 2
    assert api.get_user(trainer.id)["username"] == "misty"
    assert api.promote_user(trainer.id)["user"]["isAdmin"] is True
    assert api.demote_user(trainer.id)["user"]["isAdmin"] is False


def test_validation_errors_carry_server_message(api):
    with pytest.raises(ValidationError) as excinfo:
        api.register("ash", "ash@example.com", "123")

    assert excinfo.value.status_code == 400
    assert str(excinfo.value).startswith("password")
    assert api.token is None


def test_http_errors_carry_status(api, trainer):
    with pytest.raises(NetworkError) as excinfo:
        api.login("misty@example.com", "wrong-password")

    assert excinfo.value.status_code == 401
    assert str(excinfo.value) == "Invalid credentials"

    with pytest.raises(NetworkError) as excinfo:
        api.get_custom_pokemon("missingno")
    assert excinfo.value.status_code == 404


def test_admin_routes_reject_trainers(api, first_admin, trainer):
    api.login("misty@example.com", "starmie1")

    with pytest.raises(NetworkError) as excinfo:
        api.create_custom_pokemon("Yuli", ["water"], "https://img.test/yuli.png", "Wet")

    assert excinfo.value.status_code == 403
    assert str(excinfo.value) == "Administrator privileges required"


def test_authenticated_calls_need_a_token(api):
    with pytest.raises(PokedexError) as excinfo:
        api.me()

    assert excinfo.value.status_code == 401
    assert str(excinfo.value) == "Authentication required"


@pytest.mark.parametrize("token", [None, "", "not.a.jwt"])
def test_decode_bad_tokens(token):
    assert decode_token_claims(token) is None


def test_names_with_reserved_characters(api, first_admin):
    api.login("admin@example.com", "admin123")
    api.create_custom_pokemon("Who?#", ["psychic"], "https://img.test/who.png", "Hides its name")

    assert api.get_custom_pokemon("Who?#")["id"] == 1026
    assert api.update_evolutions("who?#", ["What"])["evolutions"] == ["What"]
