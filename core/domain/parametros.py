"""
Snapshot versionado e inmutable de parámetros legales (Chile).

Un `SnapshotParametrosLegales` reúne en un solo objeto todas las tasas, topes,
tramos e índices que usa el motor de liquidaciones. Se inyecta al simulador;
el cálculo nunca lee tasas desde variables globales.

Serialización: `snapshot_a_dict` / `snapshot_desde_dict` usan strings para
los Decimal y así el JSON guardado reproduce exactamente los mismos valores.
"""
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from typing import Optional

from core.domain.montos import a_decimal


@dataclass(frozen=True)
class TasaCesantia:
    trabajador: Decimal
    empleador_cic: Decimal
    empleador_fcs: Decimal


@dataclass(frozen=True)
class TramoImpuesto:
    desde_utm: Decimal
    hasta_utm: Optional[Decimal]  # None = sin límite superior
    tasa: Decimal


@dataclass(frozen=True)
class TramoAsignacionFamiliar:
    hasta_renta: Optional[Decimal]  # None = sin límite superior
    monto_por_carga: Decimal


@dataclass(frozen=True)
class RebajasTributarias:
    # Montos en UTM que se restan de la base antes de aplicar los tramos.
    por_carga_utm: Decimal = Decimal("0")
    maternal_utm: Decimal = Decimal("0")
    invalidez_utm: Decimal = Decimal("0")


@dataclass(frozen=True)
class SnapshotParametrosLegales:
    version_id: str
    vigente_desde: date
    valor_uf: Decimal
    valor_utm: Decimal
    ingreso_minimo: Decimal
    # {'modelo': Decimal('0.0058'), ...}
    comisiones_afp: dict
    # {'INDEFINIDO': TasaCesantia, 'PLAZO_FIJO': TasaCesantia}
    cesantia: dict
    tramos_impuesto: tuple
    tramos_asignacion_familiar: tuple
    vigente_hasta: Optional[date] = None
    nombre: str = ""

    # Pensiones y salud
    tasa_base_afp: Decimal = Decimal("0.10")
    tasa_sis_empleador: Decimal = Decimal("0.0154")
    tasa_fonasa: Decimal = Decimal("0.07")
    tope_imponible_afp_uf: Decimal = Decimal("89.9")
    tope_imponible_salud_uf: Decimal = Decimal("89.9")
    tope_imponible_cesantia_uf: Decimal = Decimal("135.1")
    tope_apv_mensual_uf: Decimal = Decimal("50")

    # Mutual (Ley 16.744)
    tasa_mutual_base: Decimal = Decimal("0.0093")
    tasa_mutual_adicional: Decimal = Decimal("0")
    # {'low': ..., 'medium': ..., 'high': ..., 'security_industry': ...}
    tasas_mutual_por_riesgo: dict = field(default_factory=dict)

    # Gratificación Art. 50: 25% con tope de 4,75 IMM anuales
    tasa_gratificacion: Decimal = Decimal("0.25")
    indice_tope_gratificacion: str = "IMM"
    multiplo_tope_gratificacion: Decimal = Decimal("4.75")

    # Valor hora y recargos
    divisor_dias_valor_hora: Decimal = Decimal("30")
    horas_jornada_diaria: Decimal = Decimal("8")
    recargo_horas_extra_1: Decimal = Decimal("1.5")
    recargo_horas_extra_2: Decimal = Decimal("2.0")
    recargo_feriado: Decimal = Decimal("2.0")

    # Impuesto único de segunda categoría
    rebajas_tributarias: RebajasTributarias = field(default_factory=RebajasTributarias)
    impuesto_descuenta_cesantia: bool = True

    # Provisiones (solo para costeo/cotización)
    tasa_provision_vacaciones: Decimal = Decimal("0.0833")
    tasa_provision_indemnizacion: Decimal = Decimal("0.04166")

    regla_redondeo: str = "HALF_UP"

    # ── Valores derivados ─────────────────────────────────────────────────────

    @property
    def tope_imponible_afp(self) -> Decimal:
        return self.tope_imponible_afp_uf * self.valor_uf

    @property
    def tope_imponible_salud(self) -> Decimal:
        return self.tope_imponible_salud_uf * self.valor_uf

    @property
    def tope_imponible_cesantia(self) -> Decimal:
        return self.tope_imponible_cesantia_uf * self.valor_uf

    @property
    def tope_gratificacion_mensual(self) -> Decimal:
        indice = self.valor_utm if self.indice_tope_gratificacion == "UTM" else self.ingreso_minimo
        return self.multiplo_tope_gratificacion * indice / Decimal("12")

    def tasa_comision_afp(self, afp: str) -> Decimal:
        clave = (afp or "").strip().lower()
        if clave not in self.comisiones_afp:
            raise KeyError(f"La versión {self.version_id} no tiene comisión para la AFP '{afp}'.")
        return self.comisiones_afp[clave]

    def tasas_cesantia(self, tipo_contrato: str) -> TasaCesantia:
        clave = (tipo_contrato or "INDEFINIDO").upper()
        if clave not in self.cesantia:
            raise KeyError(f"Tipo de contrato sin tasa de cesantía: {tipo_contrato}")
        return self.cesantia[clave]

    def tasa_mutual(self, nivel_riesgo: Optional[str] = None) -> Decimal:
        if nivel_riesgo and nivel_riesgo in self.tasas_mutual_por_riesgo:
            return self.tasas_mutual_por_riesgo[nivel_riesgo]
        return self.tasa_mutual_base + self.tasa_mutual_adicional


# ── Serialización ─────────────────────────────────────────────────────────────

def _dec_str(valor) -> Optional[str]:
    return None if valor is None else str(valor)


def _dec_opt(valor) -> Optional[Decimal]:
    return None if valor is None else a_decimal(valor)


def snapshot_a_dict(s: SnapshotParametrosLegales) -> dict:
    """Representación JSON-serializable y estable (Decimal como string)."""
    datos = {}
    for f in fields(s):
        valor = getattr(s, f.name)
        if isinstance(valor, Decimal):
            datos[f.name] = str(valor)
        elif isinstance(valor, date):
            datos[f.name] = valor.isoformat()
        elif isinstance(valor, bool) or valor is None or isinstance(valor, str):
            datos[f.name] = valor
        elif f.name in ("comisiones_afp", "tasas_mutual_por_riesgo"):
            datos[f.name] = {k: str(v) for k, v in sorted(valor.items())}
        elif f.name == "cesantia":
            datos[f.name] = {
                k: {"trabajador": str(t.trabajador), "empleador_cic": str(t.empleador_cic), "empleador_fcs": str(t.empleador_fcs)}
                for k, t in sorted(valor.items())
            }
        elif f.name == "tramos_impuesto":
            datos[f.name] = [
                {"desde_utm": str(t.desde_utm), "hasta_utm": _dec_str(t.hasta_utm), "tasa": str(t.tasa)} for t in valor
            ]
        elif f.name == "tramos_asignacion_familiar":
            datos[f.name] = [
                {"hasta_renta": _dec_str(t.hasta_renta), "monto_por_carga": str(t.monto_por_carga)} for t in valor
            ]
        elif f.name == "rebajas_tributarias":
            datos[f.name] = {
                "por_carga_utm": str(valor.por_carga_utm),
                "maternal_utm": str(valor.maternal_utm),
                "invalidez_utm": str(valor.invalidez_utm),
            }
    return datos


def snapshot_desde_dict(datos: dict) -> SnapshotParametrosLegales:
    """Reconstruye el snapshot desde el JSON guardado en BD."""
    escalares = {}
    nombres_decimales = {
        f.name for f in fields(SnapshotParametrosLegales)
        if f.type in (Decimal, "Decimal")
    }
    for nombre in nombres_decimales:
        if nombre in datos:
            escalares[nombre] = a_decimal(datos[nombre])

    rebajas = datos.get("rebajas_tributarias") or {}
    return SnapshotParametrosLegales(
        version_id=datos["version_id"],
        nombre=datos.get("nombre", ""),
        vigente_desde=date.fromisoformat(datos["vigente_desde"]),
        vigente_hasta=date.fromisoformat(datos["vigente_hasta"]) if datos.get("vigente_hasta") else None,
        comisiones_afp={k: a_decimal(v) for k, v in datos["comisiones_afp"].items()},
        tasas_mutual_por_riesgo={k: a_decimal(v) for k, v in (datos.get("tasas_mutual_por_riesgo") or {}).items()},
        cesantia={
            k: TasaCesantia(a_decimal(v["trabajador"]), a_decimal(v["empleador_cic"]), a_decimal(v["empleador_fcs"]))
            for k, v in datos["cesantia"].items()
        },
        tramos_impuesto=tuple(
            TramoImpuesto(a_decimal(t["desde_utm"]), _dec_opt(t["hasta_utm"]), a_decimal(t["tasa"]))
            for t in datos["tramos_impuesto"]
        ),
        tramos_asignacion_familiar=tuple(
            TramoAsignacionFamiliar(_dec_opt(t["hasta_renta"]), a_decimal(t["monto_por_carga"]))
            for t in datos["tramos_asignacion_familiar"]
        ),
        rebajas_tributarias=RebajasTributarias(
            por_carga_utm=a_decimal(rebajas.get("por_carga_utm", "0")),
            maternal_utm=a_decimal(rebajas.get("maternal_utm", "0")),
            invalidez_utm=a_decimal(rebajas.get("invalidez_utm", "0")),
        ),
        impuesto_descuenta_cesantia=bool(datos.get("impuesto_descuenta_cesantia", True)),
        indice_tope_gratificacion=datos.get("indice_tope_gratificacion", "IMM"),
        regla_redondeo=datos.get("regla_redondeo", "HALF_UP"),
        **escalares,
    )


# ── Versión semilla ───────────────────────────────────────────────────────────

def snapshot_chile_2026_02() -> SnapshotParametrosLegales:
    """Parámetros legales Chile febrero 2026 (SII, Previred, Superintendencia de Pensiones)."""
    D = Decimal
    return SnapshotParametrosLegales(
        version_id="CL-2026-02",
        nombre="Parámetros Legales Chile - Febrero 2026",
        vigente_desde=date(2026, 2, 1),
        valor_uf=D("39703.50"),
        valor_utm=D("69611"),
        ingreso_minimo=D("500000"),
        comisiones_afp={
            "uno": D("0.0046"),
            "modelo": D("0.0058"),
            "planvital": D("0.0116"),
            "habitat": D("0.0127"),
            "capital": D("0.0144"),
            "cuprum": D("0.0144"),
            "provida": D("0.0145"),
        },
        cesantia={
            "INDEFINIDO": TasaCesantia(D("0.006"), D("0.016"), D("0.008")),
            "PLAZO_FIJO": TasaCesantia(D("0"), D("0.028"), D("0.002")),
        },
        tasas_mutual_por_riesgo={
            "low": D("0.0093"),
            "medium": D("0.0095"),
            "high": D("0.0134"),
            "security_industry": D("0.0120"),
        },
        # Tramos mensuales en UTM (13,5 / 30 / 50 / 70 / 90 / 120 / 310)
        tramos_impuesto=(
            TramoImpuesto(D("0"), D("13.5"), D("0")),
            TramoImpuesto(D("13.5"), D("30"), D("0.04")),
            TramoImpuesto(D("30"), D("50"), D("0.08")),
            TramoImpuesto(D("50"), D("70"), D("0.135")),
            TramoImpuesto(D("70"), D("90"), D("0.23")),
            TramoImpuesto(D("90"), D("120"), D("0.304")),
            TramoImpuesto(D("120"), D("310"), D("0.35")),
            TramoImpuesto(D("310"), None, D("0.40")),
        ),
        tramos_asignacion_familiar=(
            TramoAsignacionFamiliar(D("631976"), D("22007")),
            TramoAsignacionFamiliar(D("923067"), D("13505")),
            TramoAsignacionFamiliar(D("1439668"), D("4267")),
            TramoAsignacionFamiliar(None, D("0")),
        ),
    )
