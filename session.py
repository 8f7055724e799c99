"""
Pokédex session

The state behind the Game Boy screen: the current record, its evolution
chain and the error or not-found state. Every search supersedes the previous
one through a ``LookupController``; results of a superseded search are
dropped instead of overwriting newer state.
"""

import logging
import random
import re
import threading
from typing import Callable, Optional

from config import MAX_OFFICIAL_ID, MAX_QUERY_ID
from evolution import EvolutionChainBuilder
from pokedex import (
    CancellationToken,
    CancelledError,
    NoEvolutionDataError,
    NotFoundError,
    PokedexContext,
    PokedexError,
    Query,
)
from schemas import EvolutionStage, PokemonRecord

logger = logging.getLogger(__name__)

MIN_QUERY_ID = 1
INTEGER_RE = re.compile(r"^-?\d+$")


class LookupController:
    def __init__(self):
        self._lock = threading.Lock()
        self._current: Optional[CancellationToken] = None

    def begin(self) -> CancellationToken:
        """Cancel whatever is pending and hand out the new authoritative token."""
        with self._lock:
            if self._current is not None:
                self._current.cancel()
            self._current = CancellationToken()
            return self._current

    def is_current(self, token: CancellationToken) -> bool:
        with self._lock:
            return token is self._current and not token.cancelled

    def commit(self, token: CancellationToken, apply: Callable[[], None]) -> bool:
        with self._lock:
            if token is not self._current or token.cancelled:
                return False
            apply()
            return True

    def close(self):
        with self._lock:
            if self._current is not None:
                self._current.cancel()
            self._current = None


class PokedexSession:
    def __init__(self, context: Optional[PokedexContext] = None, builder: Optional[EvolutionChainBuilder] = None, rng: Optional[random.Random] = None):
        self.context = context or PokedexContext()
        self.builder = builder or EvolutionChainBuilder(self.context.resolver, self.context.official)
        self.controller = LookupController()
        self.rng = rng or random.Random()

        self.input = ""
        self.query: Optional[Query] = None
        self.record: Optional[PokemonRecord] = None
        self.chain: Optional[EvolutionStage] = None
        self.error: Optional[str] = None
        self.chain_error: Optional[str] = None
        self.loading = False
        self.not_found = False

    @property
    def height_m(self) -> Optional[float]:
        return self.record.height / 10 if self.record else None

    @property
    def weight_kg(self) -> Optional[float]:
        return self.record.weight / 10 if self.record else None

    def search(self, text) -> Optional[PokemonRecord]:
        raw = str(text).strip()
        if not raw:
            return None
        self.input = raw
        if INTEGER_RE.match(raw):
            return self.show(int(raw))
        return self.show(raw.lower())

    def random(self) -> Optional[PokemonRecord]:
        pokemon_id = self.rng.randint(MIN_QUERY_ID, MAX_OFFICIAL_ID)
        self.input = str(pokemon_id)
        return self.show(pokemon_id)

    def step(self, delta: int) -> Optional[PokemonRecord]:
        if not INTEGER_RE.match(self.input):
            return None
        pokemon_id = int(self.input) + delta
        self.input = str(pokemon_id)
        return self.show(pokemon_id)

    def clear(self):
        self.input = ""
        self.not_found = False

    def close(self):
        self.controller.close()

    def show(self, query: Query) -> Optional[PokemonRecord]:
        """Look up ``query`` and its chain. Returns the record only if this
        call's result is the one now on screen."""
        token = self.controller.begin()
        if isinstance(query, int) and not MIN_QUERY_ID <= query <= MAX_QUERY_ID:
            self.controller.commit(token, self._set_not_found)
            return None

        self.controller.commit(token, lambda: self._start(query))
        try:
            record = self.context.lookup(query, token)
            if not self.controller.commit(token, lambda: self._set_record(record)):
                return None
            chain, chain_error = self._build_chain(record, token)
            self.controller.commit(token, lambda: self._set_chain(chain, chain_error))
            return record if self.controller.is_current(token) else None
        except CancelledError:
            logger.debug("Lookup for %s superseded", query)
            return None
        except NotFoundError:
            self.controller.commit(token, self._set_not_found)
            return None
        except PokedexError as e:
            self.controller.commit(token, lambda: self._set_error(str(e)))
            return None
        finally:
            self.controller.commit(token, self._stop)

    def _build_chain(self, record: PokemonRecord, token: CancellationToken):
        try:
            return self.builder.build(record, token), None
        except NoEvolutionDataError:
            return EvolutionStage(name=record.name, sprite=record.sprite), None
        except CancelledError:
            raise
        except PokedexError as e:
            logger.warning("Evolution chain for %s failed: %s", record.name, e)
            return None, str(e)

    def _start(self, query: Query):
        self.query = query
        self.loading = True
        self.error = None

    def _stop(self):
        self.loading = False

    def _set_record(self, record: PokemonRecord):
        self.record = record
        self.chain = None
        self.chain_error = None
        self.not_found = False
        self.error = None

    def _set_chain(self, chain: Optional[EvolutionStage], chain_error: Optional[str]):
        self.chain = chain
        self.chain_error = chain_error

    def _set_not_found(self):
        self.record = None
        self.chain = None
        self.chain_error = None
        self.error = None
        self.not_found = True
        self.loading = False

    def _set_error(self, message: str):
        self.record = None
        self.chain = None
        self.chain_error = None
        self.not_found = False
        self.error = message
