import logging
from typing import List, Optional
from urllib.parse import quote

import jwt
import requests

from config import BACKEND_BASE, HTTP_TIMEOUT
from pokedex import NetworkError, PokedexError, ValidationError

logger = logging.getLogger(__name__)


def decode_token_claims(token: Optional[str]) -> Optional[dict]:
    """Read a token's payload without checking its signature.

    Only for deciding what to show; the backend verifies every request.
    """
    if not token:
        return None
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None


class PokedexClient:
    """Thin wrapper over the backend's auth, user and custom Pokémon routes."""

    def __init__(self, base_url: str = BACKEND_BASE, session=None, token: Optional[str] = None, timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.token = token
        self.timeout = timeout

    @property
    def claims(self) -> Optional[dict]:
        return decode_token_claims(self.token)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_admin(self) -> bool:
        return bool((self.claims or {}).get("isAdmin"))

    def _request(self, method: str, path: str, fallback: str, json=None, auth: bool = False):
        headers = {}
        if auth:
            if not self.token:
                raise PokedexError("Authentication required", 401)
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=json, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"{fallback}: {e}") from e
        if 200 <= r.status_code < 300:
            return r.json()
        message = self._error_message(r, fallback)
        logger.debug("%s %s -> %s: %s", method, path, r.status_code, message)
        if r.status_code in (400, 422):
            raise ValidationError(message, r.status_code)
        raise NetworkError(message, r.status_code)

    @staticmethod
    def _error_message(response, fallback: str) -> str:
        try:
            detail = response.json().get("detail")
        except (ValueError, AttributeError):
            return fallback
        return detail if isinstance(detail, str) and detail else fallback

    # Auth

    def register(self, username: str, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/register", "Registration failed",
                             json={"username": username, "email": email, "password": password})
        self.token = data["token"]
        return data

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", "Login failed",
                             json={"email": email, "password": password})
        self.token = data["token"]
        return data

    def logout(self):
        self.token = None

    def me(self) -> dict:
        return self._request("GET", "/api/auth/me", "Could not load the current user", auth=True)

    # Users

    def list_users(self) -> List[dict]:
        return self._request("GET", "/api/users", "Could not load users", auth=True)

    def get_user(self, user_id: str) -> dict:
        return self._request("GET", f"/api/users/{user_id}", "Could not load user", auth=True)

    def promote_user(self, user_id: str) -> dict:
        return self._request("PATCH", f"/api/users/{user_id}/promote", "Could not promote user", auth=True)

    def demote_user(self, user_id: str) -> dict:
        return self._request("PATCH", f"/api/users/{user_id}/demote", "Could not demote user", auth=True)

    # Custom Pokémon

    def list_custom_pokemon(self) -> List[dict]:
        return self._request("GET", "/api/pokemon/custom", "Could not load custom Pokémon")

    def list_custom_pokemon_by_user(self, user_id: str) -> List[dict]:
        return self._request("GET", f"/api/pokemon/custom/user/{user_id}", "Could not load custom Pokémon")

    def get_custom_pokemon(self, id_or_name) -> dict:
        return self._request("GET", f"/api/pokemon/custom/{quote(str(id_or_name), safe='')}", "Could not load custom Pokémon")

    def create_custom_pokemon(self, name: str, types: List[str], sprite: str, description: str,
                              height: Optional[float] = None, weight: Optional[float] = None,
                              evolutions: Optional[List[str]] = None) -> dict:
        payload = {"name": name, "types": types, "sprite": sprite, "description": description}
        if height is not None:
            payload["height"] = height
        if weight is not None:
            payload["weight"] = weight
        if evolutions is not None:
            payload["evolutions"] = evolutions
        data = self._request("POST", "/api/pokemon/custom", "Could not create custom Pokémon", json=payload, auth=True)
        return data["pokemon"]

    def update_evolutions(self, id_or_name, evolutions: List[str]) -> dict:
        data = self._request("PUT", f"/api/pokemon/custom/{quote(str(id_or_name), safe='')}", "Could not update evolutions",
                             json={"evolutions": evolutions}, auth=True)
        return data["pokemon"]
