# Configuration for the tests.
# Run `pytest` from this directory.

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import database as store
from auth import generate_token
from main import app, get_pokedex
from pokedex import CustomStoreClient, OfficialCatalog, PokedexContext
from tests.fakes import BACKEND, POKEAPI, FakeHttp, bulbasaur_routes


@pytest.fixture
def db():
    engine = store.make_engine("sqlite://", poolclass=StaticPool)
    store.init_db(bind=engine)
    session = Session(bind=engine, autoflush=False)
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def pokeapi():
    return FakeHttp(bulbasaur_routes())


@pytest.fixture
def official(pokeapi):
    return OfficialCatalog(base_url=POKEAPI, session=pokeapi)


@pytest.fixture
def backend():
    return FakeHttp()


@pytest.fixture
def custom(backend):
    return CustomStoreClient(base_url=BACKEND, session=backend)


@pytest.fixture
def context(official, custom):
    return PokedexContext(official=official, custom=custom)


@pytest.fixture
def client(db, official):
    def override_db():
        yield db

    def override_pokedex():
        return PokedexContext(official=official, custom=store.DatabaseCustomStore(db))

    app.dependency_overrides[store.get_db] = override_db
    app.dependency_overrides[get_pokedex] = override_pokedex
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def first_admin(db):
    return store.initialize_database(db)


@pytest.fixture
def admin_token(first_admin):
    return generate_token(first_admin.id, first_admin.email, True)


@pytest.fixture
def trainer(db):
    return store.create_user(db, "misty", "misty@example.com", "starmie1")


@pytest.fixture
def trainer_token(trainer):
    return generate_token(trainer.id, trainer.email, False)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_header():
    return bearer
