import os

# must be set before the app modules build their engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import main
from crud import ensure_default_staff
from database import Base, build_engine, get_db


@pytest.fixture
def session_factory(tmp_path, request):
    # Separate database file per test so sessions get their own connections
    db_file = tmp_path / f"test_{request.node.name}.db"
    engine = build_engine(f"sqlite:///{db_file}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    seed = factory()
    try:
        ensure_default_staff(seed, "admin", "admin123")
    finally:
        seed.close()
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
