import logging
import sys

from infrastructure.database.connection import engine, Base

# Importar TODOS los modelos para que SQLAlchemy los registre en Base.metadata
import infrastructure.database.models  # noqa: F401
from core.domain.parametros import snapshot_chile_2026_02
from infrastructure.database.db_manager import get_db_session
from infrastructure.logging_config import configurar_logging
from infrastructure.repositories.repo_parametros import RepositorioParametros

logger = logging.getLogger("crear_tablas")


def inicializar_base_de_datos(forzar_recrear=False, fabrica=None, motor=None):
    """
    Crea las tablas si no existen y registra la versión base de parámetros legales.

    Args:
        forzar_recrear (bool): Si es True, BORRA y recrea todas las tablas.
                               ⚠️ SOLO usar en entornos de desarrollo, NUNCA en producción.
    """
    motor = motor or engine
    if forzar_recrear:
        logger.warning("MODO DESTRUCTIVO: borrando estructura antigua...")
        Base.metadata.drop_all(bind=motor)
    Base.metadata.create_all(bind=motor)
    logger.info(f"Tablas verificadas/creadas: {list(Base.metadata.tables.keys())}")

    semilla = snapshot_chile_2026_02()
    with get_db_session(fabrica) as db:
        repo = RepositorioParametros(db)
        if any(v.version_id == semilla.version_id for v in repo.listar_versiones()):
            logger.info(f"Versión {semilla.version_id} ya registrada.")
        else:
            repo.registrar_version(semilla)


if __name__ == "__main__":
    configurar_logging()
    # --reset borra y recrea el esquema (solo desarrollo)
    forzar = "--reset" in sys.argv
    if forzar:
        print("[WARN] --reset eliminará TODAS las liquidaciones, anticipos y parámetros registrados.")
        if input("Escriba 'CONFIRMAR' para continuar: ") != "CONFIRMAR":
            print("Operación cancelada.")
            sys.exit(1)
    inicializar_base_de_datos(forzar_recrear=forzar)
