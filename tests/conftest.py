import os
import sqlite3

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from named_scopes import Base
from scoped_models import Author, Comment, Post

load_dotenv(os.path.join(os.getcwd(), ".env"))


def _resolve_test_database_url() -> str | None:
    return os.getenv("TEST_DATABASE_URL")


@pytest.fixture(scope="session")
def engine():
    database_url = _resolve_test_database_url()
    if database_url:
        engine = create_engine(database_url)
    else:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={
                "check_same_thread": False,
                "detect_types": sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            },
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    Base.metadata.create_all(engine)

    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def authors(db_session):
    ada = Author(name="Ada")
    grace = Author(name="Grace")
    db_session.add_all([ada, grace])
    db_session.flush()
    return {"ada": ada, "grace": grace}


@pytest.fixture()
def posts(db_session, authors):
    published = Post(title="Published", published=True, visible=True, author=authors["ada"])
    unpublished = Post(title="Draft", published=False, visible=True, author=authors["grace"])
    hidden = Post(title="Hidden", published=True, visible=False, author=authors["ada"])
    published.comments = [Comment(body="First!"), Comment(body="Nice post")]
    db_session.add_all([published, unpublished, hidden])
    db_session.commit()
    ids = {"published": published.id, "unpublished": unpublished.id, "hidden": hidden.id}
    # Fresh identity map so scopes load their own instances.
    db_session.expunge_all()
    return ids
