import logging

from fastapi import HTTPException
from sqlmodel import SQLModel, Session, create_engine

from toolcrib.config import settings
from toolcrib.error import LedgerError

logger = logging.getLogger(__name__)


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(settings.database_url)


def create_db_and_tables() -> None:
    # 测试里会替换 engine，所以每次按模块属性取
    SQLModel.metadata.create_all(engine)


def open_session() -> Session:
    return Session(engine)


def get_session():
    session = open_session()
    try:
        yield session
    except (HTTPException, LedgerError):
        # 业务错误：台账在内存里已经拒绝了，库里没有要回滚的东西
        raise
    except Exception as e:
        session.rollback()
        logger.error("rollback: %s: %s", type(e).__name__, e)
        raise
    finally:
        session.close()
