import pytest
import requests

from evolution import EvolutionChainBuilder, map_evolution_detail
from pokedex import (
    CancellationToken,
    CancelledError,
    CustomStoreClient,
    NoEvolutionDataError,
    OfficialCatalog,
    PokedexContext,
)
from schemas import PokemonRecord
from tests.fakes import ARTWORK, BACKEND, POKEAPI, FakeHttp, chain_node, register_pokemon


@pytest.fixture
def builder(context):
    return EvolutionChainBuilder(context.resolver, context.official)


def test_official_chain(context, builder):
    chain = builder.build(context.lookup("bulbasaur"))

    assert chain.name == "bulbasaur"
    assert chain.sprite == ARTWORK.format(1)
    assert chain.trigger_from_previous is None
    [ivysaur] = chain.children
    assert ivysaur.name == "ivysaur"
    assert ivysaur.trigger_from_previous.trigger == "level-up"
    assert ivysaur.trigger_from_previous.min_level == 16
    [venusaur] = ivysaur.children
    assert venusaur.sprite == ARTWORK.format(3)
    assert venusaur.trigger_from_previous.min_level == 32
    assert venusaur.children == []


def test_chain_is_the_same_from_any_stage(context, builder):
    assert builder.build(context.lookup("venusaur")) == builder.build(context.lookup("bulbasaur"))


def test_branching_chain():
    routes = {}
    register_pokemon(routes, 133, "eevee", chain_id=67)
    register_pokemon(routes, 134, "vaporeon", chain_id=67)
    register_pokemon(routes, 196, "espeon", chain_id=67)
    routes[f"{POKEAPI}/evolution-chain/67/"] = {"chain": chain_node(
        "eevee",
        chain_node("vaporeon", details={"trigger": {"name": "use-item"}, "item": {"name": "water-stone"}}),
        chain_node("espeon", details={"trigger": {"name": "level-up"}, "min_happiness": 160, "time_of_day": "day"}),
    )}
    context = PokedexContext(
        official=OfficialCatalog(base_url=POKEAPI, session=FakeHttp(routes)),
        custom=CustomStoreClient(base_url=BACKEND, session=FakeHttp()),
    )

    chain = EvolutionChainBuilder(context.resolver, context.official).build(context.lookup("eevee"))

    assert [c.name for c in chain.children] == ["vaporeon", "espeon"]
    assert chain.children[0].trigger_from_previous.item == "water-stone"
    espeon = chain.children[1].trigger_from_previous
    assert espeon.happiness == 160
    assert espeon.time_of_day == "day"


def test_missing_stage_sprite_degrades_to_none(context, builder, pokeapi):
    pokeapi.routes[f"{POKEAPI}/pokemon/venusaur"] = requests.ConnectionError("offline")

    chain = builder.build(context.lookup("bulbasaur"))

    venusaur = chain.children[0].children[0]
    assert venusaur.name == "venusaur"
    assert venusaur.sprite is None


def test_species_without_chain_pointer(context, builder, pokeapi):
    register_pokemon(pokeapi.routes, 151, "mew")

    with pytest.raises(NoEvolutionDataError):
        builder.build(context.lookup("mew"))


def test_single_stage_chain(context, builder, pokeapi):
    register_pokemon(pokeapi.routes, 132, "ditto", chain_id=66)
    pokeapi.routes[f"{POKEAPI}/evolution-chain/66/"] = {"chain": chain_node("ditto")}

    chain = builder.build(context.lookup("ditto"))

    assert chain.name == "ditto"
    assert chain.children == []


def test_custom_chain_is_one_level(builder, backend):
    record = PokemonRecord(
        id=1026, name="Yuli", sprite="https://img.test/yuli.png", height=6, weight=15,
        is_custom=True, evolutions=["ivysaur", "Yulix"],
    )

    chain = builder.build(record)

    assert chain.name == "Yuli"
    assert chain.sprite == "https://img.test/yuli.png"
    assert [c.name for c in chain.children] == ["ivysaur", "Yulix"]
    assert chain.children[0].sprite == ARTWORK.format(2)
    assert chain.children[1].sprite is None
    # Custom children never recurse, even into an official chain.
    assert all(c.children == [] and c.trigger_from_previous is None for c in chain.children)


def test_custom_without_evolutions(builder):
    record = PokemonRecord(id=1027, name="Solo", height=1, weight=1, is_custom=True)

    chain = builder.build(record)

    assert chain.name == "Solo"
    assert chain.children == []


def test_cancelled_build(context, builder):
    record = context.lookup("bulbasaur")
    token = CancellationToken()
    token.cancel()

    with pytest.raises(CancelledError):
        builder.build(record, token)


def test_map_evolution_detail():
    detail = map_evolution_detail({
        "trigger": {"name": "level-up"},
        "min_level": None,
        "held_item": {"name": "metal-coat"},
        "known_move": {"name": "rollout"},
        "location": {"name": "mt-coronet"},
        "gender": 1,
        "needs_overworld_rain": True,
        "turn_upside_down": False,
        "time_of_day": "",
    })

    assert detail.trigger == "level-up"
    assert detail.min_level is None
    assert detail.held_item == "metal-coat"
    assert detail.known_move == "rollout"
    assert detail.time_of_day is None
    assert detail.other == "mt-coronet, gender:1, rain"


def test_map_empty_evolution_detail():
    detail = map_evolution_detail({})

    assert detail.trigger is None
    assert detail.other is None
