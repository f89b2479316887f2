from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storeops.config import Settings
from storeops.models_sqlalchemy import Base
from storeops.utils.logger import logger


class DataProvider(ABC):
    """Source of database sessions for the request handlers.

    The application is handed exactly one provider at startup; nothing else
    in the code base decides between the persistent and the demo store.
    """

    name: str = "abstract"

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @abstractmethod
    def create_engine(self) -> Engine:  # pragma: no cover - interface
        raise NotImplementedError

    def on_engine_ready(self, engine: Engine) -> None:
        """Hook for providers that need to prepare the schema or data."""

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self.create_engine()
            self.on_engine_ready(self._engine)
        return self._engine

    def session(self) -> Session:
        if self._session_factory is None:
            self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        return self._session_factory()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


class PostgresDataProvider(DataProvider):
    name = "postgres"

    def __init__(self, database_url: str):
        super().__init__()
        if not database_url:
            raise RuntimeError("DATABASE_URL is required when DATA_PROVIDER=postgres")
        self.database_url = database_url

    def create_engine(self) -> Engine:
        logger.info("Connecting to persistent store")
        return create_engine(
            self.database_url,
            connect_args={
                "connect_timeout": 10,
                "keepalives": 1,
                "keepalives_idle": 30,
                "keepalives_interval": 10,
                "keepalives_count": 5,
                "options": "-c statement_timeout=30000",
            },
            echo=False,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_recycle=3600,
            pool_timeout=30,
        )


class DemoDataProvider(DataProvider):
    """In-memory SQLite store, created from the models and optionally seeded.

    A single shared connection keeps the in-memory database alive for the
    lifetime of the provider.
    """

    name = "demo"

    def __init__(self, seed: int = 42, seed_data: bool = True):
        super().__init__()
        self.seed = seed
        self.seed_data = seed_data

    def create_engine(self) -> Engine:
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )

    def on_engine_ready(self, engine: Engine) -> None:
        Base.metadata.create_all(bind=engine)
        if not self.seed_data:
            return

        from storeops.demo_seed import seed_demo_data

        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        db = factory()
        try:
            counts = seed_demo_data(db, seed=self.seed)
            db.commit()
            logger.info(f"Demo store seeded: {counts}")
        finally:
            db.close()


def build_data_provider(settings: Settings) -> DataProvider:
    mode = (settings.DATA_PROVIDER or "").strip().lower()
    if mode == "demo":
        return DemoDataProvider(seed=settings.DEMO_SEED)
    if mode == "postgres":
        return PostgresDataProvider(settings.DATABASE_URL)
    raise RuntimeError(f"Unknown DATA_PROVIDER {settings.DATA_PROVIDER!r}; expected 'postgres' or 'demo'")
