"""
Relational store

SQLAlchemy models for users and custom Pokémon, plus the query helpers the
routes use. Custom Pokémon keep ``types`` as a comma separated string and
``evolutions`` as a JSON string; ``serialize_custom`` turns a row back into
plain lists.
"""

import json
import logging
import re
import uuid
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, create_engine, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker

from auth import hash_password
from config import (
    DATABASE_URL,
    FIRST_ADMIN_EMAIL,
    FIRST_ADMIN_PASSWORD,
    FIRST_ADMIN_USERNAME,
    FIRST_CUSTOM_ID,
)
from pokedex import CancellationToken, Query, check_cancelled, normalize_custom
from schemas import PokemonRecord

logger = logging.getLogger(__name__)

# ASCII digits only; int() rejects digits such as "²".
ID_RE = re.compile(r"-?[0-9]+")


def make_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_first_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    custom_pokemon: Mapped[List["CustomPokemon"]] = relationship(
        back_populates="creator",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class CustomPokemon(Base):
    __tablename__ = "custom_pokemons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    types: Mapped[str] = mapped_column(Text, nullable=False)
    sprite: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    height: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    evolutions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    creator: Mapped[User] = relationship(back_populates="custom_pokemon")


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Users

def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email.lower()))


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.scalar(select(User).where(User.username == username))


def get_all_users(db: Session) -> List[User]:
    return list(db.scalars(select(User).order_by(User.created_at)))


def create_user(db: Session, username: str, email: str, password: str, is_admin: bool = False, is_first_admin: bool = False) -> User:
    user = User(
        username=username,
        email=email.lower(),
        password=hash_password(password),
        is_admin=is_admin,
        is_first_admin=is_first_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def promote_user(db: Session, user: User) -> User:
    user.is_admin = True
    db.commit()
    db.refresh(user)
    return user


def demote_user(db: Session, user: User) -> Optional[User]:
    """Clear the admin flag. The first admin is never demoted (returns None)."""
    if user.is_first_admin:
        logger.warning("Refused to demote the first administrator %s", user.username)
        return None
    user.is_admin = False
    db.commit()
    db.refresh(user)
    return user


def initialize_database(db: Session) -> User:
    """Create the first administrator unless one already exists."""
    first_admin = db.scalar(select(User).where(User.is_first_admin.is_(True)))
    if first_admin is not None:
        logger.info("First administrator already exists: %s", first_admin.username)
        return first_admin
    first_admin = create_user(
        db,
        FIRST_ADMIN_USERNAME,
        FIRST_ADMIN_EMAIL,
        FIRST_ADMIN_PASSWORD,
        is_admin=True,
        is_first_admin=True,
    )
    logger.info("Created first administrator %s <%s>; change its password outside development", first_admin.username, first_admin.email)
    return first_admin


# Custom Pokémon

def _load_evolutions(text: Optional[str]) -> List[str]:
    if not text:
        return []
    try:
        value = json.loads(text)
    except ValueError:
        logger.warning("Malformed evolutions column: %r", text)
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def serialize_custom(pokemon: CustomPokemon) -> dict:
    return {
        "id": pokemon.id,
        "name": pokemon.name,
        "types": [t for t in pokemon.types.split(",") if t] if pokemon.types else [],
        "sprite": pokemon.sprite,
        "description": pokemon.description,
        "height": pokemon.height,
        "weight": pokemon.weight,
        "evolutions": _load_evolutions(pokemon.evolutions),
        "createdBy": pokemon.created_by,
        "createdAt": pokemon.created_at,
        "customPokemon": True,
    }


def next_custom_id(db: Session) -> int:
    current = db.scalar(select(func.max(CustomPokemon.id))) or 0
    return max(current + 1, FIRST_CUSTOM_ID)


def create_custom_pokemon(
    db: Session,
    name: str,
    types: List[str],
    sprite: str,
    description: str,
    evolutions: Optional[List[str]],
    created_by: str,
    height: Optional[float] = None,
    weight: Optional[float] = None,
) -> CustomPokemon:
    pokemon = CustomPokemon(
        id=next_custom_id(db),
        name=name,
        types=",".join(types),
        sprite=sprite,
        description=description,
        evolutions=json.dumps(evolutions) if evolutions is not None else None,
        created_by=created_by,
        height=height,
        weight=weight,
    )
    db.add(pokemon)
    db.commit()
    db.refresh(pokemon)
    logger.info("Custom Pokémon %s created with id %d by %s", name, pokemon.id, created_by)
    return pokemon


def get_all_custom_pokemon(db: Session) -> List[CustomPokemon]:
    return list(db.scalars(select(CustomPokemon).order_by(CustomPokemon.id)))


def get_custom_pokemon_by_id(db: Session, pokemon_id: int) -> Optional[CustomPokemon]:
    return db.get(CustomPokemon, pokemon_id)


def get_custom_pokemon_by_user(db: Session, user_id: str) -> List[CustomPokemon]:
    return list(db.scalars(select(CustomPokemon).where(CustomPokemon.created_by == user_id).order_by(CustomPokemon.id)))


def find_custom_pokemon(db: Session, id_or_name: str) -> Optional[CustomPokemon]:
    """Look up by numeric id first, then by case-insensitive name."""
    text = str(id_or_name).strip()
    if ID_RE.fullmatch(text):
        pokemon = get_custom_pokemon_by_id(db, int(text))
        if pokemon is not None:
            return pokemon
    return db.scalar(
        select(CustomPokemon).where(func.lower(CustomPokemon.name) == text.lower()).order_by(CustomPokemon.id).limit(1)
    )


def update_custom_pokemon_evolutions(db: Session, pokemon: CustomPokemon, evolutions: List[str]) -> CustomPokemon:
    pokemon.evolutions = json.dumps(evolutions)
    db.commit()
    db.refresh(pokemon)
    logger.info("Evolutions of %s set to %s", pokemon.name, ", ".join(evolutions) or "(none)")
    return pokemon


class DatabaseCustomStore:
    """Custom store source that reads the database directly (server side)."""

    name = "custom"

    def __init__(self, db: Session):
        self.db = db

    def lookup(self, query: Query, token: Optional[CancellationToken] = None, brief: bool = False) -> Optional[PokemonRecord]:
        check_cancelled(token)
        pokemon = find_custom_pokemon(self.db, str(query))
        if pokemon is None:
            return None
        return normalize_custom(serialize_custom(pokemon))

    def list_names(self, token: Optional[CancellationToken] = None) -> List[str]:
        check_cancelled(token)
        return [p.name.lower() for p in get_all_custom_pokemon(self.db)]
