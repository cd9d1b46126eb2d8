from decimal import Decimal

from core.domain.montos import redondear


def calcular_aportes_empleador(imponible: Decimal, tipo_contrato: str, snapshot, nivel_riesgo: str = None) -> dict:
    """
    Aportes de cargo del empleador sobre la renta imponible:
      - SIS (seguro de invalidez y sobrevivencia), tope AFP
      - Seguro de cesantía, CIC + FCS según tipo de contrato, tope AFC
      - Mutual Ley 16.744 según nivel de riesgo, tope AFP
    """
    regla = snapshot.regla_redondeo
    base_afp = min(imponible, snapshot.tope_imponible_afp)
    base_afc = min(imponible, snapshot.tope_imponible_cesantia)
    tasas_afc = snapshot.tasas_cesantia(tipo_contrato)

    sis = redondear(base_afp * snapshot.tasa_sis_empleador, regla)
    cesantia_cic = redondear(base_afc * tasas_afc.empleador_cic, regla)
    cesantia_fcs = redondear(base_afc * tasas_afc.empleador_fcs, regla)
    mutual = redondear(base_afp * snapshot.tasa_mutual(nivel_riesgo), regla)

    return {
        "sis": sis,
        "cesantia_cic": cesantia_cic,
        "cesantia_fcs": cesantia_fcs,
        "cesantia": cesantia_cic + cesantia_fcs,
        "mutual": mutual,
        "total": sis + cesantia_cic + cesantia_fcs + mutual,
    }


def calcular_provisiones(imponible: Decimal, snapshot) -> dict:
    """ Provisiones de vacaciones e indemnización, solo para costeo. """
    regla = snapshot.regla_redondeo
    vacaciones = redondear(imponible * snapshot.tasa_provision_vacaciones, regla)
    indemnizacion = redondear(imponible * snapshot.tasa_provision_indemnizacion, regla)
    return {
        "vacaciones": vacaciones,
        "indemnizacion": indemnizacion,
        "total": vacaciones + indemnizacion,
    }
