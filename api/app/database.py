from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL, DB_STATEMENT_TIMEOUT_MS

_connect_args = {"options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"} if DATABASE_URL.startswith("postgresql") else {}

engine = create_engine(DATABASE_URL, future=True, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
