from contextlib import contextmanager

from .connection import SessionLocal
from infrastructure.repositories.repo_anticipos import RepositorioAnticipos
from infrastructure.repositories.repo_liquidaciones import RepositorioLiquidaciones
from infrastructure.repositories.repo_parametros import RepositorioParametros


@contextmanager
def get_db_session(fabrica=None):
    """Context manager: commit al salir, rollback ante cualquier error, y cierre siempre."""
    db = (fabrica or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class Repositorios:
    """Repositorios que comparten una misma sesión (una transacción)."""

    def __init__(self, db):
        self.db = db
        self.parametros = RepositorioParametros(db)
        self.liquidaciones = RepositorioLiquidaciones(db)
        self.anticipos = RepositorioAnticipos(db)


def fabrica_unidades(fabrica=None):
    """Retorna un callable que abre una unidad de trabajo: `with abrir() as repos: ...`"""
    @contextmanager
    def abrir():
        with get_db_session(fabrica) as db:
            yield Repositorios(db)
    return abrir
