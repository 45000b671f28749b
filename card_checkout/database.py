from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from card_checkout.config import get_settings


def make_engine(database_url: str):
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


engine = make_engine(get_settings().database_url)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()
