import pandas as pd
import streamlit as st

from core.domain.exceptions import ArchivoAsistenciaInvalidoError
from core.use_cases.importacion_asistencia import (conciliar_asistencias, diferencias_con_detalle, emparejar_por_rut,
                                                   fila_a_hecho, parsear_csv_asistencia)
from infrastructure.database.db_manager import get_db_session
from infrastructure.repositories.repo_guardias import RepositorioGuardias


def render():
    st.title("📥 Importar Asistencia")
    st.markdown("""
    Cargue el CSV mensual del control de asistencia (separado por `;`, una columna por día `DD-MM-YYYY`
    seguida de las columnas de resumen). Los guardias se emparejan por RUT.
    """)
    st.markdown("---")

    archivo = st.file_uploader("Archivo CSV", type=["csv", "txt"])
    if archivo is None:
        return

    try:
        datos = parsear_csv_asistencia(archivo.getvalue())
    except ArchivoAsistenciaInvalidoError as e:
        st.error(f"❌ {e}")
        return

    st.success(f"Archivo de {datos.mes:02d}-{datos.anio}: {len(datos.filas)} filas, {len(datos.dias)} días.")

    with get_db_session() as db:
        repo = RepositorioGuardias(db)
        emparejados, sin_match = emparejar_por_rut(datos.filas, repo.mapa_ruts())
        entrantes = [fila_a_hecho(fila, gid, datos) for fila, gid in emparejados]
        conciliacion = conciliar_asistencias(repo.asistencias_del_periodo(datos.anio, datos.mes), entrantes)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Nuevos", len(conciliacion.insertados))
    c2.metric("Reemplazados", len(conciliacion.reemplazados))
    c3.metric("Sin cambios", len(conciliacion.sin_cambios))
    c4.metric("RUT sin guardia", len(sin_match))

    if sin_match:
        st.warning("Filas sin guardia activo con ese RUT:")
        st.dataframe(pd.DataFrame([{"RUT": f["rut"], "Nombre": f["nombre"]} for f in sin_match]),
                     use_container_width=True, hide_index=True)

    descuadres = [
        {"Guardia": h.guardia_id, "Campo": campo, "Resumen": resumen, "Detalle diario": detalle}
        for h in entrantes for campo, (resumen, detalle) in diferencias_con_detalle(h).items()
    ]
    if descuadres:
        st.warning("El resumen del archivo no cuadra con los códigos día a día (se guarda el resumen):")
        st.dataframe(pd.DataFrame(descuadres), use_container_width=True, hide_index=True)

    if st.button("💾 Guardar asistencia", type="primary",
                 disabled=not (conciliacion.insertados or conciliacion.reemplazados)):
        with get_db_session() as db:
            n = RepositorioGuardias(db).guardar_conciliacion(conciliacion)
        st.success(f"✅ {n} registros de asistencia guardados.")
