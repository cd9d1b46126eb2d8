import streamlit as st

from presentation.session_state import MESES, periodo_activo, set_periodo_activo

OPCIONES = [
    "Periodos de Remuneraciones",
    "Anticipos",
    "Importar Asistencia",
    "Parámetros Legales",
]


def render_sidebar():
    with st.sidebar:
        st.markdown("### 🛡️ Remuneraciones Guardias")
        st.markdown("---")

        anio, mes = periodo_activo()
        col_m, col_a = st.columns([2, 1])
        mes_sel = col_m.selectbox("Mes", MESES, index=mes - 1, key="sb_mes")
        anio_sel = col_a.number_input("Año", min_value=2020, max_value=2100, value=anio, step=1, key="sb_anio")
        set_periodo_activo(int(anio_sel), int(mes_sel[:2]))
        st.success(f"📅 Periodo **{int(mes_sel[:2]):02d}-{int(anio_sel)}**")

        st.markdown("---")
        return st.radio("Navegación", OPCIONES, label_visibility="collapsed")
