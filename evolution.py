import logging
from typing import Optional

from pokedex import (
    CancellationToken,
    IdentityResolver,
    NetworkError,
    NoEvolutionDataError,
    NotFoundError,
    OfficialCatalog,
    check_cancelled,
)
from schemas import EvolutionDetail, EvolutionStage, PokemonRecord

logger = logging.getLogger(__name__)


def _name_of(value) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("name")
    return None


def map_evolution_detail(raw) -> EvolutionDetail:
    """Flatten one PokéAPI ``evolution_details`` entry."""
    if not raw:
        return EvolutionDetail()
    other = [
        _name_of(raw.get("location")),
        f"gender:{raw['gender']}" if raw.get("gender") is not None else None,
        "rain" if raw.get("needs_overworld_rain") else None,
        "upside-down" if raw.get("turn_upside_down") else None,
        f"beauty:{raw['min_beauty']}" if raw.get("min_beauty") is not None else None,
    ]
    return EvolutionDetail(
        trigger=_name_of(raw.get("trigger")),
        min_level=raw.get("min_level"),
        item=_name_of(raw.get("item")),
        held_item=_name_of(raw.get("held_item")),
        time_of_day=raw.get("time_of_day") or None,
        known_move=_name_of(raw.get("known_move")),
        happiness=raw.get("min_happiness"),
        other=", ".join(o for o in other if o) or None,
    )


class EvolutionChainBuilder:
    def __init__(self, resolver: IdentityResolver, official: OfficialCatalog):
        self.resolver = resolver
        self.official = official

    def build(self, record: PokemonRecord, token: Optional[CancellationToken] = None) -> EvolutionStage:
        if record.is_custom:
            return self._build_custom(record, token)
        return self._build_official(record, token)

    def sprite_for(self, name: str, token: Optional[CancellationToken] = None) -> Optional[str]:
        try:
            return self.resolver.sprite_for(name, token)
        except (NotFoundError, NetworkError) as e:
            logger.warning("No sprite for evolution stage %s: %s", name, e)
            return None

    def _build_custom(self, record: PokemonRecord, token: Optional[CancellationToken]) -> EvolutionStage:
        # Custom evolutions are a flat list; they never recurse.
        children = [
            EvolutionStage(name=name, sprite=self.sprite_for(name, token))
            for name in record.evolutions
        ]
        return EvolutionStage(name=record.name, sprite=record.sprite, children=children)

    def _build_official(self, record: PokemonRecord, token: Optional[CancellationToken]) -> EvolutionStage:
        species = self.official.get_species(record.id, token)
        chain_url = (species.get("evolution_chain") or {}).get("url")
        if not chain_url:
            raise NoEvolutionDataError(f"{record.name} has no evolution chain")
        chain = self.official.fetch(chain_url, token)
        return self._build_stage(chain.get("chain") or {}, token)

    def _build_stage(self, node: dict, token: Optional[CancellationToken]) -> EvolutionStage:
        check_cancelled(token)
        name = (node.get("species") or {}).get("name", "")
        stage = EvolutionStage(name=name, sprite=self.sprite_for(name, token))
        for branch in node.get("evolves_to") or []:
            details = branch.get("evolution_details") or []
            child = self._build_stage(branch, token)
            child.trigger_from_previous = map_evolution_detail(details[0]) if details else None
            stage.children.append(child)
        return stage
