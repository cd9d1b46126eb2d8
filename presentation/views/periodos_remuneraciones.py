import json
import threading

import pandas as pd
import streamlit as st

from core.domain.exceptions import OmisionesPendientesError, ReglaNegocioError, SueldoLiquidoNegativoError
from core.domain.montos import formato_clp
from core.use_cases.generador_interfaces import resumen_periodo
from infrastructure.database.connection import SessionLocal
from infrastructure.repositories.repo_liquidaciones import RepositorioLiquidaciones
from infrastructure.services.pdf_liquidaciones import generar_pdf_liquidaciones
from presentation.session_state import obtener_servicios, periodo_activo

EXPORTACIONES = {
    "Previred": ("previred", "text/plain"),
    "Libro de remuneraciones (CSV)": ("libro", "text/csv"),
    "Libro de remuneraciones (Excel)": ("libro_excel", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "Nómina bancaria": ("banco", "text/plain"),
}


def _estado_periodo(anio: int, mes: int):
    db = SessionLocal()
    try:
        periodo = RepositorioLiquidaciones(db).get_periodo(anio, mes)
        if periodo is None:
            return None
        return {"estado": periodo.estado, "version": periodo.version_parametros_id, "informe": periodo.informe_json}
    finally:
        db.close()


def _mostrar_informe(informe: dict):
    c1, c2, c3 = st.columns(3)
    c1.metric("Liquidaciones", len(informe.get("procesados", [])))
    c2.metric("Omitidos", len(informe.get("omisiones", [])))
    c3.metric("Alertas", len(informe.get("alertas", [])))

    if informe.get("omisiones"):
        st.error("⚠️ Guardias omitidos en el cálculo:")
        st.dataframe(pd.DataFrame(informe["omisiones"]), use_container_width=True, hide_index=True)
    if informe.get("alertas"):
        st.warning("Liquidaciones con descuentos no aplicados (líquido insuficiente):")
        st.dataframe(pd.DataFrame(informe["alertas"]), use_container_width=True, hide_index=True)
    if informe.get("cancelado"):
        st.info(f"Ejecución cancelada; {len(informe.get('pendientes', []))} guardias quedaron pendientes.")


def render():
    servicios = obtener_servicios()
    procesador = servicios["liquidaciones"]
    fuentes = servicios["fuentes"]
    anio, mes = periodo_activo()

    st.title("🧾 Liquidaciones del Periodo")
    info = _estado_periodo(anio, mes)
    estado = info["estado"] if info else "SIN ABRIR"
    st.markdown(f"**Periodo:** {mes:02d}-{anio} · **Estado:** `{estado}`"
                + (f" · **Parámetros:** `{info['version']}`" if info and info["version"] else ""))
    st.markdown("---")

    # ── 1. Cálculo ────────────────────────────────────────────────────────────
    st.subheader("1. Cálculo")
    col1, col2 = st.columns(2)
    reanudar = col1.checkbox("Reanudar (no recalcular borradores existentes)", value=False)
    if col2.button("▶️ Calcular liquidaciones", type="primary", use_container_width=True,
                   disabled=estado in ("APROBADO", "PAGADO")):
        with st.spinner("Calculando..."):
            try:
                informe = procesador.ejecutar_periodo(
                    anio, mes, recalcular_borradores=not reanudar, cancelacion=threading.Event())
                st.session_state['ultimo_informe'] = informe.a_dict()
                st.success("✅ Cálculo terminado.")
            except ReglaNegocioError as e:
                st.error(f"❌ {e}")
        st.rerun()

    if info and info["informe"]:
        _mostrar_informe(json.loads(info["informe"]))

    # ── 2. Revisión ───────────────────────────────────────────────────────────
    liquidaciones = procesador.listar_liquidaciones(anio, mes)
    if not liquidaciones:
        st.info("Aún no hay liquidaciones para este periodo.")
        return

    perfiles = {l["guardia_id"]: fuentes.obtener_perfil_pago(l["guardia_id"]) for l in liquidaciones}
    st.subheader("2. Resumen")
    df = resumen_periodo(liquidaciones, perfiles)
    st.dataframe(df, use_container_width=True, hide_index=True)
    st.markdown(f"**Total líquido:** {formato_clp(df['Líquido'].sum())} · "
                f"**Costo empleador:** {formato_clp(df['Costo Empleador'].sum())}")

    pdf = generar_pdf_liquidaciones("Empresa de Seguridad", f"{mes:02d}-{anio}", liquidaciones, perfiles)
    st.download_button("📄 Descargar liquidaciones (PDF)", data=pdf, file_name=f"liquidaciones_{anio}{mes:02d}.pdf",
                       mime="application/pdf")

    # ── 3. Aprobación y pago ──────────────────────────────────────────────────
    st.subheader("3. Aprobación y pago")
    reconocer = st.checkbox("Reconozco las omisiones y alertas del informe", value=False)
    c_ap, c_pg = st.columns(2)
    if c_ap.button("✔️ Aprobar periodo", use_container_width=True, disabled=estado != "BORRADOR"):
        try:
            n = procesador.aprobar_periodo(anio, mes, reconocer_omisiones=reconocer)
            st.success(f"Periodo aprobado ({n} liquidaciones).")
            st.rerun()
        except SueldoLiquidoNegativoError as e:
            st.warning(f"Hay liquidaciones con líquido insuficiente: {e}")
        except OmisionesPendientesError as e:
            st.warning(str(e))
        except ReglaNegocioError as e:
            st.error(str(e))
    if c_pg.button("💸 Marcar como pagado", use_container_width=True, disabled=estado not in ("BORRADOR", "APROBADO", "PAGADO")):
        try:
            n = procesador.pagar_periodo(anio, mes, reconocer_omisiones=reconocer)
            st.success(f"{n} liquidaciones pagadas.")
            st.rerun()
        except ReglaNegocioError as e:
            st.error(str(e))

    # ── Correcciones ──────────────────────────────────────────────────────────
    if estado in ("APROBADO", "PAGADO"):
        with st.expander("✏️ Corregir una liquidación"):
            opciones = {f"{perfiles[l['guardia_id']].nombre_completo} (v{l['version']})": l["id"] for l in liquidaciones
                        if perfiles.get(l["guardia_id"]) and l["estado"] != "BORRADOR"}
            if opciones:
                sel = st.selectbox("Liquidación", list(opciones.keys()))
                motivo = st.text_input("Motivo de la corrección")
                if st.button("Crear versión corregida", disabled=not motivo.strip()):
                    try:
                        procesador.corregir_liquidacion(opciones[sel], motivo.strip())
                        st.success("Corrección creada en borrador.")
                        st.rerun()
                    except ReglaNegocioError as e:
                        st.error(str(e))

    # ── 4. Exportaciones ─────────────────────────────────────────────────────
    st.subheader("4. Archivos")
    if estado not in ("APROBADO", "PAGADO"):
        st.caption("Los archivos se generan con el periodo aprobado o pagado.")
        return
    for etiqueta, (tipo, mime) in EXPORTACIONES.items():
        archivo = procesador.exportar_periodo(anio, mes, tipo)
        st.download_button(f"⬇️ {etiqueta} ({archivo.filas} filas)", data=archivo.contenido,
                           file_name=archivo.nombre_archivo, mime=mime, key=f"dl_{tipo}")
        for om in archivo.omisiones:
            st.caption(f"⚠️ {om.mensaje}")
