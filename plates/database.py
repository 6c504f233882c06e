# plates/database.py

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

Base = declarative_base()


def make_engine(url: str = DATABASE_URL):
    """SQLAlchemy engine; creates the folder of a file-backed SQLite database."""
    parsed = make_url(url)
    connect_args = {}
    if parsed.get_backend_name() == "sqlite":
        # Katalog yazıcısı ve istek iş parçacıkları aynı bağlantıyı paylaşabilir
        connect_args["check_same_thread"] = False
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# SQLAlchemy engine ve session oluşturuluyor
engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
