"""
Motor de simulación de liquidaciones de sueldo (Chile).

Función pura: (estructura, bonos, asistencia, snapshot de parámetros) ->
desglose completo de haberes, descuentos, líquido y costo empleador.

Orden del cálculo (cada ítem final se redondea una sola vez, al peso):
  1. Haberes imponibles: sueldo base proporcional, gratificación, horas extra,
     recargo feriado, comisiones, bonos imponibles y otros imponibles.
  2. Haberes no imponibles: colación y movilización proporcionales, asignación
     familiar, bonos no imponibles y otros no imponibles.
  3. AFP: 10% + comisión sobre el imponible con tope 89,9 UF.
  4. Salud: Fonasa 7% o Isapre (% del plan, mínimo 7%) con tope 89,9 UF.
  5. Seguro de cesantía trabajador según contrato, tope 135,1 UF.
  6. Impuesto único por tramos marginales sobre la base tributable.
  7. Líquido = haberes - descuentos legales - APV - anticipo - otros descuentos.
     Si los descuentos voluntarios no caben, se aplican hasta dejar el líquido
     en cero y el saldo queda informado con la alerta NETO_NEGATIVO.
  8. Costo empleador = imponible + SIS + cesantía empleador + mutual
     (+ provisiones de vacaciones e indemnización si se piden).
"""
import calendar
import hashlib
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from core.domain.entities import (SISTEMAS_SALUD, TIPOS_CONTRATO, TIPOS_GRATIFICACION, EstructuraSueldo,
                                  HechoAsistencia)
from core.domain.montos import CERO, a_decimal, redondear
from core.domain.parametros import SnapshotParametrosLegales
from core.use_cases.calculo_impuesto_unico import calcular_base_tributable, calcular_impuesto_unico
from core.use_cases.calculo_previsional import calcular_cesantia_trabajador, calcular_pension, calcular_salud
from core.use_cases.costo_empleador import calcular_aportes_empleador, calcular_provisiones
from core.use_cases.proporcionalidad_asistencia import calcular_fraccion_trabajada
from core.use_cases.resolucion_sueldo import evaluar_bonos

ALERTA_NETO_NEGATIVO = "NETO_NEGATIVO"


@dataclass
class EntradaLiquidacion:
    # Obligatorios
    estructura: EstructuraSueldo
    asistencia: HechoAsistencia
    snapshot: SnapshotParametrosLegales
    afp: str
    sistema_salud: str = "FONASA"
    tipo_contrato: str = "INDEFINIDO"
    # Opcionales
    bonos: Optional[list] = None  # None = usar los bonos de la estructura
    comisiones: Decimal = CERO
    otros_imponibles: Decimal = CERO
    otros_no_imponibles: Decimal = CERO
    porcentaje_isapre: Decimal = CERO
    nombre_isapre: Optional[str] = None
    cargas_familiares: int = 0
    renta_referencia_asignacion: Optional[Decimal] = None  # None = renta contractual de mes completo
    asignacion_maternal: bool = False
    asignacion_invalidez: bool = False
    apv: Decimal = CERO
    anticipo: Decimal = CERO
    descuentos_adicionales: dict = field(default_factory=dict)
    licencia_remunerada: bool = True
    incluir_provisiones: bool = False
    nivel_riesgo_mutual: Optional[str] = None

    def __post_init__(self):
        if self.bonos is None:
            self.bonos = list(self.estructura.bonos)
        self.comisiones = a_decimal(self.comisiones)
        self.otros_imponibles = a_decimal(self.otros_imponibles)
        self.otros_no_imponibles = a_decimal(self.otros_no_imponibles)
        self.porcentaje_isapre = a_decimal(self.porcentaje_isapre)
        self.apv = a_decimal(self.apv)
        self.anticipo = a_decimal(self.anticipo)
        self.descuentos_adicionales = {k: a_decimal(v) for k, v in (self.descuentos_adicionales or {}).items()}
        self.sistema_salud = (self.sistema_salud or "FONASA").upper()
        self.tipo_contrato = (self.tipo_contrato or "INDEFINIDO").upper()
        if self.sistema_salud not in SISTEMAS_SALUD:
            raise ValueError(f"Sistema de salud desconocido: {self.sistema_salud}")
        if self.tipo_contrato not in TIPOS_CONTRATO:
            raise ValueError(f"Tipo de contrato desconocido: {self.tipo_contrato}")
        if (self.estructura.tipo_gratificacion or "NINGUNA").upper() not in TIPOS_GRATIFICACION:
            raise ValueError(f"Tipo de gratificación desconocido: {self.estructura.tipo_gratificacion}")
        if self.renta_referencia_asignacion is not None:
            self.renta_referencia_asignacion = a_decimal(self.renta_referencia_asignacion)
            if self.renta_referencia_asignacion < 0:
                raise ValueError("La renta de referencia de la asignación familiar no puede ser negativa.")
        for nombre in ("comisiones", "otros_imponibles", "otros_no_imponibles", "apv", "anticipo"):
            if getattr(self, nombre) < 0:
                raise ValueError(f"El monto '{nombre}' no puede ser negativo.")


@dataclass
class ResultadoLiquidacion:
    version_parametros_id: str
    fraccion_trabajada: Decimal
    dias_acreditados: Decimal
    valor_hora: Decimal
    # Haberes imponibles
    sueldo_base: Decimal
    gratificacion: Decimal
    horas_extra_1: Decimal
    horas_extra_2: Decimal
    recargo_feriado: Decimal
    comisiones: Decimal
    bonos_imponibles: dict
    otros_imponibles: Decimal
    total_imponible: Decimal
    # Haberes no imponibles
    colacion: Decimal
    movilizacion: Decimal
    asignacion_familiar: Decimal
    bonos_no_imponibles: dict
    otros_no_imponibles: Decimal
    total_no_imponible: Decimal
    # Descuentos
    afp: Decimal
    salud: Decimal
    seguro_cesantia: Decimal
    base_tributable: Decimal
    impuesto_unico: Decimal
    apv: Decimal
    anticipo: Decimal
    otros_descuentos: dict
    total_descuentos: Decimal
    descuentos_no_aplicados: Decimal
    liquido: Decimal
    # Empleador
    sis: Decimal
    cesantia_empleador_cic: Decimal
    cesantia_empleador_fcs: Decimal
    mutual: Decimal
    provision_vacaciones: Decimal
    provision_indemnizacion: Decimal
    costo_empleador: Decimal
    alertas: list = field(default_factory=list)
    # Afiliación usada en el cálculo (afp, sistema_salud, nombre_isapre, tipo_contrato)
    afiliacion: dict = field(default_factory=dict)
    renta_referencia_asignacion: Decimal = CERO

    @property
    def total_haberes(self) -> Decimal:
        return self.total_imponible + self.total_no_imponible

    @property
    def total_bonos_imponibles(self) -> Decimal:
        return sum(self.bonos_imponibles.values(), CERO)

    @property
    def total_bonos_no_imponibles(self) -> Decimal:
        return sum(self.bonos_no_imponibles.values(), CERO)

    @property
    def total_otros_descuentos(self) -> Decimal:
        return sum(self.otros_descuentos.values(), CERO)

    def a_dict(self) -> dict:
        datos = {}
        for nombre, valor in self.__dict__.items():
            if isinstance(valor, Decimal):
                datos[nombre] = str(valor)
            elif isinstance(valor, dict):
                datos[nombre] = {k: str(v) if isinstance(v, Decimal) else v for k, v in valor.items()}
            else:
                datos[nombre] = list(valor) if isinstance(valor, list) else valor
        return datos

    def a_json(self) -> str:
        """JSON canónico: mismas entradas producen exactamente los mismos bytes."""
        return json.dumps(self.a_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def huella(self) -> str:
        return hashlib.sha256(self.a_json().encode("utf-8")).hexdigest()


def _gratificacion(tipo: str, base: Decimal, estructura, s) -> Decimal:
    if tipo == "AUTOMATICA":
        return min(base * s.tasa_gratificacion, s.tope_gratificacion_mensual)
    if tipo == "FIJA":
        return a_decimal(estructura.monto_gratificacion)
    return CERO


def _renta_referencia_asignacion(entrada: EntradaLiquidacion, tipo_grat: str) -> Decimal:
    """
    El tramo de la asignación familiar se fija con la renta promedio del
    semestre anterior. Sin ese dato se usa la renta contractual de mes
    completo (base + gratificación), que no depende de la asistencia del mes.
    """
    if entrada.renta_referencia_asignacion is not None:
        return entrada.renta_referencia_asignacion
    base = a_decimal(entrada.estructura.sueldo_base)
    renta = base + _gratificacion(tipo_grat, base, entrada.estructura, entrada.snapshot)
    return redondear(renta, entrada.snapshot.regla_redondeo)


def _asignacion_familiar(renta: Decimal, entrada: EntradaLiquidacion) -> Decimal:
    cargas = entrada.cargas_familiares + int(entrada.asignacion_maternal) + int(entrada.asignacion_invalidez)
    if cargas <= 0:
        return CERO
    for tramo in entrada.snapshot.tramos_asignacion_familiar:
        if tramo.hasta_renta is None or renta <= tramo.hasta_renta:
            return tramo.monto_por_carga * cargas
    return CERO


def _aplicar_descuentos_voluntarios(disponible: Decimal, descuentos: list) -> tuple:
    """Aplica (nombre, monto) en orden hasta agotar el disponible. Retorna (aplicados, no_aplicado)."""
    aplicados = {}
    no_aplicado = CERO
    for nombre, monto in descuentos:
        aplicado = min(monto, max(disponible, CERO))
        aplicados[nombre] = aplicado
        disponible -= aplicado
        no_aplicado += monto - aplicado
    return aplicados, no_aplicado


def simular_liquidacion(entrada: EntradaLiquidacion) -> ResultadoLiquidacion:
    s = entrada.snapshot
    regla = s.regla_redondeo
    estructura = entrada.estructura
    sueldo_base = a_decimal(estructura.sueldo_base)

    prop = calcular_fraccion_trabajada(entrada.asistencia, s.horas_jornada_diaria, entrada.licencia_remunerada)
    fraccion = prop.fraccion

    # ── 1. Haberes imponibles ─────────────────────────────────────────────────
    base_proporcional = sueldo_base * fraccion
    valor_hora = sueldo_base / s.divisor_dias_valor_hora / s.horas_jornada_diaria
    he1 = a_decimal(entrada.asistencia.horas_extra_1) * valor_hora * s.recargo_horas_extra_1
    he2 = a_decimal(entrada.asistencia.horas_extra_2) * valor_hora * s.recargo_horas_extra_2
    feriado = a_decimal(entrada.asistencia.horas_feriado) * valor_hora * s.recargo_feriado

    tipo_grat = (estructura.tipo_gratificacion or "NINGUNA").upper()
    base_grat = base_proporcional + he1 + he2 + feriado + entrada.comisiones
    gratificacion = _gratificacion(tipo_grat, base_grat, estructura, s)

    bonos = evaluar_bonos(entrada.bonos, sueldo_base, entrada.asistencia)
    bonos_imponibles = {}
    bonos_no_imponibles = {}
    tributable_no_imponible = CERO
    for b in bonos:
        if not b.cumplido:
            continue
        monto = redondear(b.monto, regla)
        destino = bonos_imponibles if b.imponible else bonos_no_imponibles
        destino[b.codigo] = destino.get(b.codigo, CERO) + monto
        if not b.imponible and b.tributable:
            tributable_no_imponible += monto

    lineas_imponibles = {
        "sueldo_base": redondear(base_proporcional, regla),
        "gratificacion": redondear(gratificacion, regla),
        "horas_extra_1": redondear(he1, regla),
        "horas_extra_2": redondear(he2, regla),
        "recargo_feriado": redondear(feriado, regla),
        "comisiones": redondear(entrada.comisiones, regla),
        "otros_imponibles": redondear(entrada.otros_imponibles, regla),
    }
    total_imponible = sum(lineas_imponibles.values(), CERO) + sum(bonos_imponibles.values(), CERO)

    # ── 2. Haberes no imponibles ──────────────────────────────────────────────
    colacion = redondear(a_decimal(estructura.colacion) * fraccion, regla)
    movilizacion = redondear(a_decimal(estructura.movilizacion) * fraccion, regla)
    renta_referencia = _renta_referencia_asignacion(entrada, tipo_grat)
    asig_familiar = redondear(_asignacion_familiar(renta_referencia, entrada), regla)
    otros_no_imponibles = redondear(entrada.otros_no_imponibles, regla)
    total_no_imponible = (colacion + movilizacion + asig_familiar + otros_no_imponibles
                          + sum(bonos_no_imponibles.values(), CERO))

    # ── 3-5. Cotizaciones del trabajador ──────────────────────────────────────
    pension = calcular_pension(total_imponible, entrada.afp, s)
    salud = calcular_salud(total_imponible, entrada.sistema_salud, s, entrada.porcentaje_isapre)
    cesantia = calcular_cesantia_trabajador(total_imponible, entrada.tipo_contrato, s)

    # ── 6. Impuesto único ─────────────────────────────────────────────────────
    base_tributable = calcular_base_tributable(
        total_imponible, pension["monto"], salud["monto"], cesantia["monto"], s,
        apv=entrada.apv,
        cargas_familiares=entrada.cargas_familiares,
        asignacion_maternal=entrada.asignacion_maternal,
        asignacion_invalidez=entrada.asignacion_invalidez,
        tributable_no_imponible=tributable_no_imponible,
    )
    impuesto = calcular_impuesto_unico(base_tributable, s)

    # ── 7. Líquido ────────────────────────────────────────────────────────────
    total_haberes = total_imponible + total_no_imponible
    descuentos_legales = pension["monto"] + salud["monto"] + cesantia["monto"] + impuesto["monto"]
    voluntarios = [("apv", redondear(entrada.apv, regla)), ("anticipo", redondear(entrada.anticipo, regla))]
    voluntarios += [(k, redondear(v, regla)) for k, v in entrada.descuentos_adicionales.items()]
    aplicados, no_aplicado = _aplicar_descuentos_voluntarios(total_haberes - descuentos_legales, voluntarios)

    apv = aplicados.pop("apv")
    anticipo = aplicados.pop("anticipo")
    total_descuentos = descuentos_legales + apv + anticipo + sum(aplicados.values(), CERO)
    liquido = total_haberes - total_descuentos

    alertas = []
    if no_aplicado > 0:
        alertas.append(ALERTA_NETO_NEGATIVO)

    # ── 8. Costo empleador ────────────────────────────────────────────────────
    aportes = calcular_aportes_empleador(total_imponible, entrada.tipo_contrato, s, entrada.nivel_riesgo_mutual)
    provisiones = {"vacaciones": CERO, "indemnizacion": CERO, "total": CERO}
    if entrada.incluir_provisiones:
        provisiones = calcular_provisiones(total_imponible, s)
    costo_empleador = total_imponible + aportes["total"] + provisiones["total"]

    return ResultadoLiquidacion(
        version_parametros_id=s.version_id,
        fraccion_trabajada=fraccion,
        dias_acreditados=prop.dias_acreditados,
        valor_hora=valor_hora,
        bonos_imponibles=bonos_imponibles,
        total_imponible=total_imponible,
        colacion=colacion,
        movilizacion=movilizacion,
        asignacion_familiar=asig_familiar,
        bonos_no_imponibles=bonos_no_imponibles,
        otros_no_imponibles=otros_no_imponibles,
        total_no_imponible=total_no_imponible,
        afp=pension["monto"],
        salud=salud["monto"],
        seguro_cesantia=cesantia["monto"],
        base_tributable=base_tributable,
        impuesto_unico=impuesto["monto"],
        apv=apv,
        anticipo=anticipo,
        otros_descuentos=aplicados,
        total_descuentos=total_descuentos,
        descuentos_no_aplicados=no_aplicado,
        liquido=liquido,
        sis=aportes["sis"],
        cesantia_empleador_cic=aportes["cesantia_cic"],
        cesantia_empleador_fcs=aportes["cesantia_fcs"],
        mutual=aportes["mutual"],
        provision_vacaciones=provisiones["vacaciones"],
        provision_indemnizacion=provisiones["indemnizacion"],
        costo_empleador=costo_empleador,
        alertas=alertas,
        afiliacion={
            "afp": entrada.afp.strip().lower(),
            "sistema_salud": entrada.sistema_salud,
            "nombre_isapre": entrada.nombre_isapre if entrada.sistema_salud == "ISAPRE" else None,
            "tipo_contrato": entrada.tipo_contrato,
        },
        renta_referencia_asignacion=renta_referencia,
        **lineas_imponibles,
    )


def estimar_costo_empleador(
    sueldo_base,
    snapshot: SnapshotParametrosLegales,
    afp: str = "modelo",
    tipo_contrato: str = "INDEFINIDO",
    colacion=0,
    movilizacion=0,
    nivel_riesgo_mutual: str = None,
) -> dict:
    """
    Costeo de un puesto para cotizaciones: mes completo, gratificación
    automática y provisiones incluidas.
    """
    estructura = EstructuraSueldo(
        id=0,
        sueldo_base=a_decimal(sueldo_base),
        colacion=a_decimal(colacion),
        movilizacion=a_decimal(movilizacion),
        tipo_gratificacion="AUTOMATICA",
    )
    dias = calendar.monthrange(snapshot.vigente_desde.year, snapshot.vigente_desde.month)[1]
    asistencia = HechoAsistencia(guardia_id=0, anio=snapshot.vigente_desde.year, mes=snapshot.vigente_desde.month,
                                 dias_mes=dias, dias_trabajados=dias, dias_programados=dias)
    r = simular_liquidacion(EntradaLiquidacion(
        estructura=estructura, asistencia=asistencia, snapshot=snapshot, afp=afp,
        tipo_contrato=tipo_contrato, incluir_provisiones=True, nivel_riesgo_mutual=nivel_riesgo_mutual,
    ))
    return {
        "total_imponible": r.total_imponible,
        "total_no_imponible": r.total_no_imponible,
        "liquido": r.liquido,
        "aportes_empleador": r.sis + r.cesantia_empleador_cic + r.cesantia_empleador_fcs + r.mutual,
        "provisiones": r.provision_vacaciones + r.provision_indemnizacion,
        "costo_empleador": r.costo_empleador,
        "costo_total_con_no_imponibles": r.costo_empleador + r.total_no_imponible,
    }
