import json

import pandas as pd
import streamlit as st

from core.domain.exceptions import ReglaNegocioError
from core.domain.parametros import snapshot_a_dict, snapshot_desde_dict
from infrastructure.database.db_manager import get_db_session
from infrastructure.repositories.repo_parametros import RepositorioParametros
from infrastructure.services.indicadores_api import crear_snapshot_desde_indicadores
from presentation.session_state import periodo_activo


def render():
    st.title("⚙️ Parámetros Legales (Versiones)")
    st.markdown("""
    Cada versión es **inmutable**: un cambio legal se registra como una versión nueva con su fecha de vigencia.
    Los periodos ya calculados conservan la versión con la que se calcularon.
    """)
    st.markdown("---")

    with get_db_session() as db:
        versiones = [
            {"version_id": v.version_id, "nombre": v.nombre, "vigente_desde": v.vigente_desde,
             "vigente_hasta": v.vigente_hasta, "datos": json.loads(v.datos_json)}
            for v in RepositorioParametros(db).listar_versiones()
        ]

    if not versiones:
        st.warning("No hay versiones registradas. Ejecute `python crear_tablas.py` para cargar la versión base.")
        return

    st.subheader("1. Versiones registradas")
    st.dataframe(
        pd.DataFrame([{k: v[k] for k in ("version_id", "nombre", "vigente_desde", "vigente_hasta")} for v in versiones]),
        use_container_width=True, hide_index=True,
    )

    sel = st.selectbox("Ver detalle", [v["version_id"] for v in versiones])
    detalle = next(v for v in versiones if v["version_id"] == sel)["datos"]
    c1, c2, c3 = st.columns(3)
    c1.metric("UF", detalle["valor_uf"])
    c2.metric("UTM", detalle["valor_utm"])
    c3.metric("Ingreso mínimo", detalle["ingreso_minimo"])
    with st.expander("JSON completo"):
        st.json(detalle)

    # ── Nueva versión desde indicadores ───────────────────────────────────────
    st.markdown("---")
    st.subheader("2. Nueva versión mensual desde indicadores (UF/UTM)")
    anio, mes = periodo_activo()
    st.caption(f"Copia la versión seleccionada y actualiza UF y UTM al 01-{mes:02d}-{anio}.")

    if st.button("🔄 Consultar indicadores"):
        try:
            base = snapshot_desde_dict(detalle)
            st.session_state['borrador_parametros'] = snapshot_a_dict(crear_snapshot_desde_indicadores(base, anio, mes))
        except ReglaNegocioError as e:
            st.error(f"❌ {e}")

    borrador = st.session_state.get('borrador_parametros')
    if borrador:
        st.info(f"Borrador **{borrador['version_id']}**: UF {borrador['valor_uf']} · UTM {borrador['valor_utm']}")
        if st.button("💾 Registrar versión", type="primary"):
            try:
                with get_db_session() as db:
                    RepositorioParametros(db).registrar_version(snapshot_desde_dict(borrador))
                st.session_state.pop('borrador_parametros', None)
                st.success("✅ Versión registrada.")
                st.rerun()
            except ReglaNegocioError as e:
                st.error(f"❌ {e}")
