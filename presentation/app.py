import sys
import os

# Raíz del proyecto en el path para `streamlit run presentation/app.py`
ruta_raiz = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ruta_raiz not in sys.path:
    sys.path.append(ruta_raiz)

import streamlit as st

st.set_page_config(
    page_title="Remuneraciones Guardias",
    page_icon="🛡️",
    layout="wide",
    initial_sidebar_state="expanded"
)

from infrastructure.logging_config import configurar_logging
from presentation.session_state import inicializar_estado
from presentation.components.sidebar import OPCIONES, render_sidebar
from presentation.views import anticipos, ingreso_asistencias, parametros_legales, periodos_remuneraciones

VISTAS = {
    "Periodos de Remuneraciones": periodos_remuneraciones.render,
    "Anticipos": anticipos.render,
    "Importar Asistencia": ingreso_asistencias.render,
    "Parámetros Legales": parametros_legales.render,
}


def _verificar_esquema():
    """Crea las tablas faltantes una vez por sesión; no toca datos existentes."""
    if st.session_state.get('_tablas_verificadas'):
        return
    from sqlalchemy.exc import SQLAlchemyError
    from infrastructure.database.connection import engine, Base
    import infrastructure.database.models  # noqa: F401 registra los modelos en Base.metadata
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        st.error(f"❌ No se pudo conectar a la base de datos: {e}")
        st.stop()
    st.session_state['_tablas_verificadas'] = True


configurar_logging()
_verificar_esquema()
inicializar_estado()

vista_actual = render_sidebar() or OPCIONES[0]
VISTAS[vista_actual]()
