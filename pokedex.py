"""
Pokédex lookups

A query (name or id) is tried against the official PokéAPI catalog first and
the local custom store second. Whichever source answers is normalized into a
``PokemonRecord``. Sources are plain objects with a ``lookup`` method, so the
resolver is just an ordered list of them.
"""

import json
import logging
import threading
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import quote

import requests

from config import BACKEND_BASE, HTTP_TIMEOUT, POKEAPI_BASE
from schemas import PokemonRecord

logger = logging.getLogger(__name__)

Query = Union[str, int]

DEFAULT_SIZE = 10
CUSTOM_FLAVOR = "Custom Pokémon"


class PokedexError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(PokedexError):
    def __init__(self, query: Query):
        super().__init__(f'Pokémon "{query}" not found', 404)
        self.query = query


class NoEvolutionDataError(PokedexError):
    pass


class CancelledError(PokedexError):
    pass


class NetworkError(PokedexError):
    pass


class ValidationError(PokedexError):
    pass


class CancellationToken:
    """Set once by whoever supersedes the lookup; checked between fetches."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise CancelledError("Lookup cancelled")


def check_cancelled(token: Optional[CancellationToken]):
    if token is not None:
        token.raise_if_cancelled()


# Cache

def cache_key(query: Query) -> Query:
    if isinstance(query, int) and not isinstance(query, bool):
        return query
    return str(query).strip().lower()


class ResultCache:
    """Unbounded memo of normalized lookups. Names and ids are separate keys."""

    def __init__(self):
        self._entries: Dict[Query, PokemonRecord] = {}

    def get(self, key: Query) -> Optional[PokemonRecord]:
        return self._entries.get(cache_key(key))

    def put(self, key: Query, record: PokemonRecord):
        self._entries[cache_key(key)] = record

    def __contains__(self, key: Query) -> bool:
        return cache_key(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# Normalization

def _official_sprite(sprites) -> Optional[str]:
    if not isinstance(sprites, dict):
        return None
    artwork = ((sprites.get("other") or {}).get("official-artwork") or {}).get("front_default")
    sprite = artwork or sprites.get("front_default")
    if isinstance(sprite, str) and sprite.strip():
        return sprite
    return None


def english_flavor_text(species) -> str:
    if not isinstance(species, dict):
        return ""
    for entry in species.get("flavor_text_entries") or []:
        if (entry.get("language") or {}).get("name") == "en":
            text = entry.get("flavor_text") or ""
            return text.replace("\f", " ").replace("\n", " ").replace("\r", " ")
    return ""


def type_names(value) -> List[str]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        return []
    names = []
    for item in items:
        if isinstance(item, dict):
            item = (item.get("type") or {}).get("name") or item.get("name")
        if isinstance(item, str) and item.strip() and item.strip() not in names:
            names.append(item.strip())
    return names


def evolution_names(value) -> List[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []
    names = []
    for item in value:
        if isinstance(item, dict):
            item = (item.get("species") or {}).get("name") or item.get("name")
        if isinstance(item, str) and item.strip():
            names.append(item.strip())
    return names


def _size(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value:
        return value
    return DEFAULT_SIZE


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def normalize_official(raw: dict, species: Optional[dict] = None) -> PokemonRecord:
    return PokemonRecord(
        id=raw.get("id"),
        name=raw.get("name", ""),
        sprite=_official_sprite(raw.get("sprites")),
        types=type_names(raw.get("types")),
        height=raw.get("height") or 0,
        weight=raw.get("weight") or 0,
        flavor_text=english_flavor_text(species),
        is_custom=False,
    )


def normalize_custom(raw: dict) -> PokemonRecord:
    # Dumps of an already normalized record use either spelling.
    flavor_key = next((k for k in ("flavorText", "flavor_text") if k in raw), None)
    if flavor_key:
        flavor = raw.get(flavor_key) or ""
    else:
        flavor = raw.get("description") or CUSTOM_FLAVOR
    custom_key = next((k for k in ("isCustom", "is_custom") if k in raw), None)
    if custom_key:
        is_custom = bool(raw[custom_key])
    else:
        is_custom = bool(raw.get("customPokemon", True))
    sprite = raw.get("sprite") or raw.get("image") or None
    return PokemonRecord(
        id=_as_int(raw.get("id")),
        name=str(raw.get("name") or ""),
        sprite=sprite if isinstance(sprite, str) else None,
        types=type_names(raw.get("types")),
        height=_size(raw.get("height")),
        weight=_size(raw.get("weight")),
        flavor_text=flavor,
        is_custom=is_custom,
        evolutions=evolution_names(raw.get("evolutions")),
    )


def normalize(raw, species: Optional[dict] = None) -> PokemonRecord:
    """Map a PokéAPI payload, a custom store row or an already normalized
    record dump into a PokemonRecord. Never raises on missing fields."""
    if isinstance(raw, PokemonRecord):
        return raw.model_copy(deep=True)
    if isinstance(raw.get("sprites"), dict):
        return normalize_official(raw, species)
    return normalize_custom(raw)


# Sources

def path_segment(query: Query) -> str:
    return quote(str(query).lower(), safe="")


class HttpSource:
    name = "http"

    def __init__(self, base_url: str, session=None, timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, url: str, token: Optional[CancellationToken] = None):
        if url.startswith("/"):
            url = f"{self.base_url}{url}"
        check_cancelled(token)
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        check_cancelled(token)
        if r.status_code != 200:
            raise NetworkError(f"HTTP {r.status_code} from {url}", r.status_code)
        return r.json()


class OfficialCatalog(HttpSource):
    name = "official"

    def __init__(self, base_url: str = POKEAPI_BASE, session=None, timeout: float = HTTP_TIMEOUT):
        super().__init__(base_url, session, timeout)

    def get_pokemon(self, query: Query, token: Optional[CancellationToken] = None) -> dict:
        return self.fetch(f"/pokemon/{path_segment(query)}", token)

    def get_species(self, query: Query, token: Optional[CancellationToken] = None) -> dict:
        return self.fetch(f"/pokemon-species/{path_segment(query)}", token)

    def list_names(self, offset: int, limit: int, token: Optional[CancellationToken] = None) -> List[str]:
        data = self.fetch(f"/pokemon?offset={offset}&limit={limit}", token)
        return [r["name"] for r in data.get("results") or []]

    def lookup(self, query: Query, token: Optional[CancellationToken] = None, brief: bool = False) -> Optional[PokemonRecord]:
        try:
            raw = self.get_pokemon(query, token)
        except NetworkError as e:
            logger.debug("Official catalog miss for %s: %s", query, e)
            return None
        species = None
        if not brief:
            try:
                species = self.get_species(raw.get("id"), token)
            except NetworkError as e:
                logger.warning("No species data for %s: %s", raw.get("name"), e)
        return normalize_official(raw, species)


class CustomStoreClient(HttpSource):
    """Custom Pokémon served by this project's backend."""

    name = "custom"

    def __init__(self, base_url: str = BACKEND_BASE, session=None, timeout: float = HTTP_TIMEOUT):
        super().__init__(base_url, session, timeout)

    def lookup(self, query: Query, token: Optional[CancellationToken] = None, brief: bool = False) -> Optional[PokemonRecord]:
        try:
            raw = self.fetch(f"/api/pokemon/custom/{quote(str(query), safe='')}", token)
        except NetworkError as e:
            logger.debug("Custom store miss for %s: %s", query, e)
            return None
        return normalize_custom(raw)

    def list_names(self, token: Optional[CancellationToken] = None) -> List[str]:
        return [str(p.get("name", "")).lower() for p in self.fetch("/api/pokemon/custom", token)]


class IdentityResolver:
    def __init__(self, providers: Iterable):
        self.providers = list(providers)

    def resolve(self, query: Query, token: Optional[CancellationToken] = None, brief: bool = False) -> PokemonRecord:
        search = str(query).strip().lower()
        if not search:
            raise NotFoundError(query)
        for provider in self.providers:
            check_cancelled(token)
            record = provider.lookup(search, token, brief=brief)
            if record is not None:
                logger.debug("Resolved %s from %s source", search, provider.name)
                return record
        check_cancelled(token)
        raise NotFoundError(search)

    def sprite_for(self, name: str, token: Optional[CancellationToken] = None) -> Optional[str]:
        return self.resolve(name, token, brief=True).sprite


class PokedexContext:
    """Sources, resolver and cache for one consumer (a UI session or a request)."""

    def __init__(self, official=None, custom=None, cache: Optional[ResultCache] = None):
        self.official = official if official is not None else OfficialCatalog()
        self.custom = custom if custom is not None else CustomStoreClient()
        self.resolver = IdentityResolver([self.official, self.custom])
        self.cache = cache if cache is not None else ResultCache()

    def lookup(self, query: Query, token: Optional[CancellationToken] = None) -> PokemonRecord:
        cached = self.cache.get(query)
        if cached is not None:
            return cached
        record = self.resolver.resolve(query, token)
        check_cancelled(token)
        self.cache.put(query, record)
        return record

    def list_names(self, offset: int, limit: int, token: Optional[CancellationToken] = None) -> List[str]:
        """Custom names first, then the official catalog, paginated as one sequence."""
        try:
            custom_names = self.custom.list_names(token)
        except NetworkError as e:
            logger.warning("Custom store unavailable for listing, using official catalog only: %s", e)
            custom_names = []
        names = custom_names[offset:offset + limit]
        remaining = limit - len(names)
        if remaining > 0:
            official_offset = max(0, offset - len(custom_names))
            names.extend(self.official.list_names(official_offset, remaining, token))
        return names
