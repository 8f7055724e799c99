import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Query as QueryParam, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import database as store
from auth import authenticate_token, generate_token, require_admin, verify_password
from config import CORS_ORIGINS, LOG_LEVEL, PORT, check_secrets, is_development
from database import DatabaseCustomStore, get_db, init_db, initialize_database, serialize_custom
from evolution import EvolutionChainBuilder
from pokedex import NetworkError, NoEvolutionDataError, NotFoundError, OfficialCatalog, PokedexContext
from schemas import (
    AuthResponse,
    CustomPokemonCreate,
    CustomPokemonOut,
    CustomPokemonResponse,
    EvolutionsUpdate,
    EvolutionStage,
    LoginPayload,
    PokemonListItem,
    PokemonRecord,
    RegisterPayload,
    RoleChangeResponse,
    TokenClaims,
    UserOut,
)

logger = logging.getLogger(__name__)

official_catalog = OfficialCatalog()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    check_secrets()
    init_db()
    with store.SessionLocal() as db:
        initialize_database(db)
    logger.info("CORS origins: %s", ", ".join(CORS_ORIGINS))
    yield


app = FastAPI(title="Pixel PokéDex API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ())[1:]) or "body"
        message = f"{field}: {errors[0].get('msg')}"
    else:
        message = "Invalid request"
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"detail": message})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = str(exc) if is_development() else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": detail})


def user_out(user: store.User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        email=user.email,
        is_admin=user.is_admin,
        is_first_admin=user.is_first_admin,
        created_at=user.created_at,
    )


def custom_out(pokemon: store.CustomPokemon) -> CustomPokemonOut:
    return CustomPokemonOut.model_validate(serialize_custom(pokemon))


def get_pokedex(db: Session = Depends(get_db)) -> PokedexContext:
    return PokedexContext(official=official_catalog, custom=DatabaseCustomStore(db))


@app.get("/")
def read_root():
    return {"message": "Pixel PokéDex API running"}


@app.get("/api/hello")
def hello():
    return {"message": "Pixel PokéDex backend", "status": "OK"}


# Auth

@app.post("/api/auth/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterPayload, db: Session = Depends(get_db)):
    logger.info("Registering %s <%s>", payload.username, payload.email)
    if store.get_user_by_email(db, payload.email):
        logger.warning("Email already registered: %s", payload.email)
        raise HTTPException(status_code=409, detail="Email already registered")
    if store.get_user_by_username(db, payload.username):
        logger.warning("Username already taken: %s", payload.username)
        raise HTTPException(status_code=409, detail="Username already taken")
    user = store.create_user(db, payload.username, payload.email, payload.password)
    token = generate_token(user.id, user.email, user.is_admin)
    return AuthResponse(message="User registered", token=token, user=user_out(user))


@app.post("/api/auth/login", response_model=AuthResponse)
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    user = store.get_user_by_email(db, payload.email)
    # Same answer for unknown email and wrong password.
    if user is None or not verify_password(payload.password, user.password):
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = generate_token(user.id, user.email, user.is_admin)
    logger.info("User %s logged in", user.username)
    return AuthResponse(message="Logged in", token=token, user=user_out(user))


@app.get("/api/auth/me", response_model=UserOut)
def me(claims: TokenClaims = Depends(authenticate_token), db: Session = Depends(get_db)):
    user = store.get_user_by_id(db, claims.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user_out(user)


# Users

@app.get("/api/users", response_model=List[UserOut])
def list_users(claims: TokenClaims = Depends(require_admin), db: Session = Depends(get_db)):
    return [user_out(u) for u in store.get_all_users(db)]


@app.get("/api/users/{user_id}", response_model=UserOut)
def get_user(user_id: str, claims: TokenClaims = Depends(authenticate_token), db: Session = Depends(get_db)):
    user = store.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if claims.user_id != user_id and not claims.is_admin:
        logger.warning("User %s denied access to user %s", claims.user_id, user_id)
        raise HTTPException(status_code=403, detail="Not allowed to view this user")
    return user_out(user)


@app.patch("/api/users/{user_id}/promote", response_model=RoleChangeResponse)
def promote_user(user_id: str, claims: TokenClaims = Depends(require_admin), db: Session = Depends(get_db)):
    user = store.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.is_admin:
        raise HTTPException(status_code=400, detail="User is already an administrator")
    user = store.promote_user(db, user)
    logger.info("%s promoted %s to administrator", claims.user_id, user.username)
    return RoleChangeResponse(message="User promoted to administrator", user=user_out(user))


@app.patch("/api/users/{user_id}/demote", response_model=RoleChangeResponse)
def demote_user(user_id: str, claims: TokenClaims = Depends(require_admin), db: Session = Depends(get_db)):
    user = store.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_admin:
        raise HTTPException(status_code=400, detail="User is not an administrator")
    if user.is_first_admin:
        raise HTTPException(status_code=403, detail="The first administrator cannot be demoted")
    demoted = store.demote_user(db, user)
    if demoted is None:
        raise HTTPException(status_code=400, detail="This user cannot be demoted")
    logger.info("%s demoted %s to regular user", claims.user_id, demoted.username)
    return RoleChangeResponse(message="User demoted to regular user", user=user_out(demoted))


# Custom Pokémon

@app.get("/api/pokemon/custom", response_model=List[CustomPokemonOut])
def list_custom_pokemon(db: Session = Depends(get_db)):
    return [custom_out(p) for p in store.get_all_custom_pokemon(db)]


@app.get("/api/pokemon/custom/user/{user_id}", response_model=List[CustomPokemonOut])
def list_custom_pokemon_by_user(user_id: str, db: Session = Depends(get_db)):
    return [custom_out(p) for p in store.get_custom_pokemon_by_user(db, user_id)]


@app.get("/api/pokemon/custom/{id_or_name}", response_model=CustomPokemonOut)
def get_custom_pokemon(id_or_name: str, db: Session = Depends(get_db)):
    pokemon = store.find_custom_pokemon(db, id_or_name)
    if pokemon is None:
        raise HTTPException(status_code=404, detail="Pokémon not found")
    return custom_out(pokemon)


@app.post("/api/pokemon/custom", response_model=CustomPokemonResponse, status_code=201)
def create_custom_pokemon(payload: CustomPokemonCreate, claims: TokenClaims = Depends(require_admin), db: Session = Depends(get_db)):
    if store.get_user_by_id(db, claims.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    pokemon = store.create_custom_pokemon(
        db,
        payload.name,
        payload.types,
        payload.sprite,
        payload.description,
        payload.evolutions,
        claims.user_id,
        payload.height,
        payload.weight,
    )
    return CustomPokemonResponse(message="Custom Pokémon created", pokemon=custom_out(pokemon))


@app.put("/api/pokemon/custom/{id_or_name}", response_model=CustomPokemonResponse)
def update_custom_pokemon(id_or_name: str, payload: EvolutionsUpdate, claims: TokenClaims = Depends(require_admin), db: Session = Depends(get_db)):
    pokemon = store.find_custom_pokemon(db, id_or_name)
    if pokemon is None:
        raise HTTPException(status_code=404, detail="Pokémon not found")
    pokemon = store.update_custom_pokemon_evolutions(db, pokemon, payload.evolutions)
    return CustomPokemonResponse(message="Pokémon updated", pokemon=custom_out(pokemon))


# Pokédex (official catalog merged with the custom store)

@app.get("/api/pokedex", response_model=List[PokemonListItem])
def list_pokedex(
    offset: int = QueryParam(0, ge=0),
    limit: int = QueryParam(20, ge=1, le=100),
    pokedex: PokedexContext = Depends(get_pokedex),
):
    try:
        names = pokedex.list_names(offset, limit)
    except NetworkError as e:
        logger.error("Listing failed: %s", e)
        raise HTTPException(status_code=502, detail="Failed to fetch list from PokeAPI")
    return [PokemonListItem(name=n) for n in names]


@app.get("/api/pokedex/{query}", response_model=PokemonRecord)
def get_pokemon(query: str, pokedex: PokedexContext = Depends(get_pokedex)):
    try:
        return pokedex.lookup(query)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pokémon not found")


@app.get("/api/pokedex/{query}/evolution", response_model=EvolutionStage)
def get_evolution_chain(query: str, pokedex: PokedexContext = Depends(get_pokedex)):
    try:
        record = pokedex.lookup(query)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pokémon not found")
    builder = EvolutionChainBuilder(pokedex.resolver, pokedex.official)
    try:
        return builder.build(record)
    except NoEvolutionDataError:
        return EvolutionStage(name=record.name, sprite=record.sprite)
    except NetworkError as e:
        logger.error("Evolution chain for %s failed: %s", record.name, e)
        raise HTTPException(status_code=502, detail="Failed to fetch evolution chain from PokeAPI")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
