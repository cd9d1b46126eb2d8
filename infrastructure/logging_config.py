import logging

from infrastructure.config import NIVEL_LOG

FORMATO = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configurar_logging(nivel: str = None):
    """Configura el logger raíz una sola vez (app Streamlit y scripts)."""
    logging.basicConfig(level=(nivel or NIVEL_LOG), format=FORMATO)
    # SQLAlchemy es muy verboso en INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
