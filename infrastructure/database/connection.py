from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from infrastructure.config import DATABASE_URL


def crear_engine(url: str = DATABASE_URL):
    """
    Crea el motor de SQLAlchemy.
    pool_size reducido para Cloud Run: cada instancia crea su propio pool.
    SQLite no acepta parámetros de pool.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=2,
        max_overflow=3
    )


engine = crear_engine()

# Fábrica de sesiones
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Clase Base de donde heredan todas las tablas
Base = declarative_base()
