from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    kwargs = {}
    if database_url.startswith('sqlite'):
        # sessions may be touched from a worker thread
        kwargs['connect_args'] = {'check_same_thread': False}
    return create_engine(database_url, pool_pre_ping=True, echo=echo, future=True, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
