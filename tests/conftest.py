import pytest
from sqlmodel import SQLModel, Session

from directory_auth.database import build_engine
from directory_auth.utils import configure_password_hashing

from fakes import FakeClock


@pytest.fixture(autouse=True)
def fast_password_hashing():
    # Lowest cost bcrypt accepts
    configure_password_hashing(4)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()
