from datetime import date, timedelta

import streamlit as st

from core.use_cases.proceso_anticipos import ProcesadorAnticipos
from core.use_cases.proceso_liquidaciones import ProcesadorLiquidaciones
from infrastructure.config import GLOSA_PAGO_BANCO, MAX_TRABAJADORES_LOTE, VENCIMIENTO_BLOQUEO_MINUTOS
from infrastructure.database.db_manager import fabrica_unidades
from infrastructure.repositories.repo_guardias import FuentesSQL

MESES = ["01 - Enero", "02 - Febrero", "03 - Marzo", "04 - Abril", "05 - Mayo", "06 - Junio",
         "07 - Julio", "08 - Agosto", "09 - Septiembre", "10 - Octubre", "11 - Noviembre", "12 - Diciembre"]


def inicializar_estado():
    """Inicializa las variables globales de la sesión si no existen."""
    hoy = date.today()
    if 'periodo_anio' not in st.session_state:
        st.session_state['periodo_anio'] = hoy.year
    if 'periodo_mes' not in st.session_state:
        st.session_state['periodo_mes'] = hoy.month
    if 'ultimo_informe' not in st.session_state:
        st.session_state['ultimo_informe'] = None


def set_periodo_activo(anio: int, mes: int):
    if (anio, mes) != (st.session_state.get('periodo_anio'), st.session_state.get('periodo_mes')):
        st.session_state['ultimo_informe'] = None
    st.session_state['periodo_anio'] = anio
    st.session_state['periodo_mes'] = mes


def periodo_activo():
    return st.session_state['periodo_anio'], st.session_state['periodo_mes']


@st.cache_resource
def obtener_servicios():
    """Procesadores compartidos por todas las sesiones del servidor."""
    abrir_unidad = fabrica_unidades()
    fuentes = FuentesSQL()
    return {
        "abrir_unidad": abrir_unidad,
        "fuentes": fuentes,
        "liquidaciones": ProcesadorLiquidaciones(abrir_unidad, fuentes, MAX_TRABAJADORES_LOTE, GLOSA_PAGO_BANCO,
                                                 timedelta(minutes=VENCIMIENTO_BLOQUEO_MINUTOS)),
        "anticipos": ProcesadorAnticipos(abrir_unidad, fuentes),
    }
