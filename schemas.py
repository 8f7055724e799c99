"""
API Schemas

Pydantic models shared by the backend routes and the client library.
JSON bodies use camelCase (``flavorText``, ``isAdmin``); Python code uses the
snake_case attribute names. Both spellings are accepted on input.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Pokédex records

class PokemonRecord(CamelModel):
    id: int = Field(..., description="National Pokédex number, or 1026+ for custom Pokémon")
    name: str
    sprite: Optional[str] = None
    types: List[str] = Field(default_factory=list)
    height: float = Field(..., description="Decimeters")
    weight: float = Field(..., description="Hectograms")
    flavor_text: str = ""
    is_custom: bool = False
    evolutions: List[str] = Field(default_factory=list, description="Flat evolution list, custom Pokémon only")


class EvolutionDetail(CamelModel):
    trigger: Optional[str] = None
    min_level: Optional[int] = None
    item: Optional[str] = None
    held_item: Optional[str] = None
    time_of_day: Optional[str] = None
    known_move: Optional[str] = None
    happiness: Optional[int] = None
    other: Optional[str] = None


class EvolutionStage(CamelModel):
    name: str
    sprite: Optional[str] = None
    trigger_from_previous: Optional[EvolutionDetail] = None
    children: List["EvolutionStage"] = Field(default_factory=list)


EvolutionStage.model_rebuild()


class PokemonListItem(BaseModel):
    name: str


# Users and authentication

class RegisterPayload(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenClaims(CamelModel):
    user_id: str
    email: str
    is_admin: bool = False


class UserOut(CamelModel):
    id: str
    username: str
    email: str
    is_admin: bool
    is_first_admin: bool
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserOut


class RoleChangeResponse(BaseModel):
    message: str
    user: UserOut


# Custom Pokémon

class CustomPokemonCreate(BaseModel):
    name: str = Field(..., max_length=100)
    types: List[str] = Field(..., min_length=1, max_length=2)
    sprite: str
    description: str = Field(..., max_length=500)
    height: Optional[float] = Field(None, ge=0, le=100, description="Decimeters")
    weight: Optional[float] = Field(None, ge=0, le=1000, description="Hectograms")
    evolutions: Optional[List[str]] = None

    @field_validator("name", "sprite", "description")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("types")
    @classmethod
    def valid_types(cls, value: List[str]) -> List[str]:
        if not all(0 < len(t) < 50 for t in value):
            raise ValueError("each type must be a string of 1-49 characters")
        if len(set(t.lower() for t in value)) != len(value):
            raise ValueError("types must not repeat")
        return value


class EvolutionsUpdate(BaseModel):
    evolutions: List[str] = Field(..., max_length=10)

    @field_validator("evolutions")
    @classmethod
    def valid_names(cls, value: List[str]) -> List[str]:
        if not all(e.strip() and len(e) < 100 for e in value):
            raise ValueError("each evolution must be a name of 1-99 characters")
        return value


class CustomPokemonOut(CamelModel):
    id: int
    name: str
    types: List[str]
    sprite: str
    description: str
    height: Optional[float] = None
    weight: Optional[float] = None
    evolutions: List[str] = Field(default_factory=list)
    created_by: str
    created_at: Optional[datetime] = None
    custom_pokemon: bool = True


class CustomPokemonResponse(BaseModel):
    message: str
    pokemon: CustomPokemonOut
