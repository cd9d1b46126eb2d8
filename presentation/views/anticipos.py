import pandas as pd
import streamlit as st

from core.domain.exceptions import ReglaNegocioError
from core.domain.montos import formato_clp
from presentation.session_state import obtener_servicios, periodo_activo


def render():
    servicios = obtener_servicios()
    procesador = servicios["anticipos"]
    fuentes = servicios["fuentes"]
    anio, mes = periodo_activo()

    st.title("💵 Anticipos Quincenales")
    st.markdown(f"**Periodo:** {mes:02d}-{anio}")
    st.markdown("---")

    items = procesador.listar_items(anio, mes)
    if not items:
        st.info("No existe proceso de anticipo para este periodo.")
        if st.button("➕ Crear proceso de anticipo", type="primary"):
            try:
                res = procesador.crear_proceso(anio, mes)
                st.success(f"Proceso creado con {res['items']} guardias.")
                for om in res["omisiones"]:
                    st.warning(om["mensaje"])
            except ReglaNegocioError as e:
                st.error(str(e))
        return

    estado = procesador.estado_proceso(anio, mes)
    st.markdown(f"**Estado del proceso:** `{estado}`")
    filas = []
    for it in items:
        perfil = fuentes.obtener_perfil_pago(it["guardia_id"])
        filas.append({
            "ID": it["id"],
            "Guardia": perfil.nombre_completo if perfil else it["guardia_id"],
            "Monto": int(it["monto"]),
            "Tope": int(it["tope"]),
            "Estado": it["estado"],
        })
    df = pd.DataFrame(filas)
    st.dataframe(df, use_container_width=True, hide_index=True)
    st.markdown(f"**Total:** {formato_clp(df['Monto'].sum())}")

    if estado == "BORRADOR":
        with st.form("form_ajuste_anticipo"):
            c1, c2 = st.columns(2)
            item_id = c1.selectbox("Ítem", df["ID"].tolist())
            monto = c2.number_input("Nuevo monto ($)", min_value=0, step=1000)
            if st.form_submit_button("Ajustar"):
                try:
                    procesador.ajustar_item(item_id, monto)
                    st.rerun()
                except ReglaNegocioError as e:
                    st.error(str(e))

    c_ap, c_pg = st.columns(2)
    if c_ap.button("✔️ Aprobar anticipo", disabled=estado != "BORRADOR", use_container_width=True):
        procesador.aprobar_proceso(anio, mes)
        st.rerun()
    if c_pg.button("💸 Marcar anticipo pagado", disabled=estado != "APROBADO", use_container_width=True):
        procesador.pagar_proceso(anio, mes)
        st.rerun()
