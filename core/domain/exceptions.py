class ReglaNegocioError(Exception):
    """Errores generales de cálculo o de flujo de remuneraciones."""
    pass


# ── Parámetros legales ────────────────────────────────────────────────────────

class ParametroNoEncontradoError(ReglaNegocioError):
    """No existe una versión de parámetros legales que cubra la fecha o el id pedido.
    Es fatal para una ejecución: no se calcula sin base legal."""

    def __init__(self, fecha=None, version_id=None):
        self.fecha = fecha
        self.version_id = version_id
        if version_id:
            msg = f"No existe la versión de parámetros legales '{version_id}'."
        else:
            msg = f"No hay parámetros legales vigentes para la fecha {fecha}."
        super().__init__(msg)


class VersionParametroDuplicadaError(ReglaNegocioError):
    """Se intentó registrar (o sobrescribir) una versión de parámetros ya existente."""
    pass


# ── Errores por guardia (recuperables, quedan en el informe) ──────────────────

class ErrorPorGuardia(ReglaNegocioError):
    """Base de los errores que excluyen a un guardia de la ejecución sin abortarla."""
    codigo = "ERROR"

    def __init__(self, guardia_id, mensaje: str):
        self.guardia_id = guardia_id
        super().__init__(mensaje)


class SinEstructuraSueldoError(ErrorPorGuardia):
    codigo = "SIN_ESTRUCTURA"

    def __init__(self, guardia_id):
        super().__init__(guardia_id, f"El guardia {guardia_id} no tiene estructura de sueldo vigente.")


class SinAsistenciaError(ErrorPorGuardia):
    codigo = "SIN_ASISTENCIA"

    def __init__(self, guardia_id, anio: int, mes: int):
        super().__init__(guardia_id, f"El guardia {guardia_id} no tiene asistencia para {mes:02d}-{anio}.")


class SueldoCeroError(ErrorPorGuardia):
    codigo = "SUELDO_CERO"

    def __init__(self, guardia_id):
        super().__init__(guardia_id, f"La estructura del guardia {guardia_id} tiene sueldo base 0.")


class LiquidacionDuplicadaError(ErrorPorGuardia):
    """Se intentó recalcular una liquidación ya aprobada o pagada."""
    codigo = "LIQUIDACION_PAGADA"

    def __init__(self, guardia_id, estado: str):
        self.estado = estado
        super().__init__(guardia_id, f"El guardia {guardia_id} ya tiene una liquidación {estado}; no se recalcula.")


class SinDatosPrevisionalesError(ErrorPorGuardia):
    codigo = "SIN_DATOS_PREVISIONALES"

    def __init__(self, guardia_id):
        super().__init__(guardia_id, f"El guardia {guardia_id} no tiene AFP ni sistema de salud registrados.")


class AnticipoExcedeTopeError(ErrorPorGuardia):
    codigo = "EXCEDE_TOPE"

    def __init__(self, guardia_id, monto, tope):
        self.monto = monto
        self.tope = tope
        super().__init__(guardia_id, f"Anticipo de {monto} excede el tope {tope} del guardia {guardia_id}.")


# ── Ciclo de vida de periodos ────────────────────────────────────────────────

class EjecucionConcurrenteError(ReglaNegocioError):
    """El bloqueo del periodo está tomado por otra ejecución; reintentar más tarde."""

    def __init__(self, anio: int, mes: int, propietario: str = ""):
        self.anio = anio
        self.mes = mes
        super().__init__(f"Ya existe una ejecución en curso para {mes:02d}-{anio} ({propietario}).")


class PeriodoCerradoError(ReglaNegocioError):
    """El periodo ya fue aprobado o pagado y no admite recálculo."""
    pass


class TransicionInvalidaError(ReglaNegocioError):
    pass


class OmisionesPendientesError(ReglaNegocioError):
    """El informe de la ejecución tiene omisiones o alertas que deben reconocerse antes de aprobar."""

    def __init__(self, omisiones: list, alertas: list):
        self.omisiones = omisiones
        self.alertas = alertas
        super().__init__(
            f"Hay {len(omisiones)} guardia(s) omitidos y {len(alertas)} alerta(s) sin reconocer."
        )


class SueldoLiquidoNegativoError(OmisionesPendientesError):
    """Hay liquidaciones con descuentos no aplicados por líquido negativo."""
    pass


class ProcesoAnticipoDuplicadoError(ReglaNegocioError):
    pass


# ── Exportaciones e importaciones ─────────────────────────────────────────────

class ExportacionNoDisponibleError(ReglaNegocioError):
    """El periodo todavía está abierto o en cálculo."""
    pass


class CampoExportacionFaltanteError(ReglaNegocioError):
    """Un guardia no tiene un dato obligatorio para un archivo; la fila se omite."""

    def __init__(self, guardia_id, campo: str, archivo: str):
        self.guardia_id = guardia_id
        self.campo = campo
        self.archivo = archivo
        super().__init__(f"Guardia {guardia_id} sin '{campo}' para el archivo {archivo}.")


class ArchivoAsistenciaInvalidoError(ReglaNegocioError):
    pass


class IndicadoresNoDisponiblesError(ReglaNegocioError):
    """Ninguna fuente de indicadores económicos respondió con UF y UTM."""
    pass
