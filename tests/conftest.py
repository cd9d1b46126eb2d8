from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from core.domain.entities import EstructuraSueldo, HechoAsistencia
from core.domain.parametros import snapshot_chile_2026_02
from core.use_cases.simulador_liquidacion import EntradaLiquidacion
from infrastructure.database.connection import Base, crear_engine
from infrastructure.database.db_manager import fabrica_unidades, get_db_session
from infrastructure.database.models import AsistenciaMensual, Estructura, Guardia, Instalacion
from infrastructure.repositories.repo_guardias import FuentesSQL
from infrastructure.repositories.repo_parametros import RepositorioParametros

ANIO, MES = 2026, 2


@pytest.fixture
def snapshot():
    return snapshot_chile_2026_02()


@pytest.fixture
def nueva_estructura():
    def _crear(sueldo_base="800000", **kwargs):
        return EstructuraSueldo(id=1, sueldo_base=Decimal(str(sueldo_base)), **kwargs)
    return _crear


@pytest.fixture
def nueva_asistencia():
    """Mes completo: 30 de 30 días trabajados."""
    def _crear(**kwargs):
        datos = dict(guardia_id=1, anio=ANIO, mes=MES, dias_mes=30, dias_trabajados=30, dias_programados=30)
        datos.update(kwargs)
        return HechoAsistencia(**datos)
    return _crear


@pytest.fixture
def nueva_entrada(snapshot, nueva_estructura, nueva_asistencia):
    """Caso de referencia: base 800.000, gratificación automática, AFP Modelo, Fonasa, indefinido."""
    def _crear(sueldo_base="800000", estructura=None, asistencia=None, **kwargs):
        datos = dict(
            estructura=estructura or nueva_estructura(sueldo_base),
            asistencia=asistencia or nueva_asistencia(),
            snapshot=snapshot,
            afp="modelo",
        )
        datos.update(kwargs)
        return EntradaLiquidacion(**datos)
    return _crear


# ── Base de datos temporal ────────────────────────────────────────────────────

@pytest.fixture
def fabrica(tmp_path):
    motor = crear_engine(f"sqlite:///{tmp_path / 'remuneraciones_test.db'}")
    Base.metadata.create_all(bind=motor)
    fab = sessionmaker(autocommit=False, autoflush=False, bind=motor)
    with get_db_session(fab) as db:
        RepositorioParametros(db).registrar_version(snapshot_chile_2026_02())
    yield fab
    motor.dispose()


@pytest.fixture
def abrir_unidad(fabrica):
    return fabrica_unidades(fabrica)


@pytest.fixture
def fuentes(fabrica):
    return FuentesSQL(fabrica)


@pytest.fixture
def crear_guardia(fabrica):
    """
    Inserta un guardia con estructura propia y asistencia de mes completo.
    Retorna el id del guardia.
    """
    contador = {"n": 0}

    def _crear(sueldo_base=800000, con_estructura=True, con_asistencia=True, anio=ANIO, mes=MES,
               asistencia=None, **datos_guardia):
        contador["n"] += 1
        n = contador["n"]
        with get_db_session(fabrica) as db:
            estructura = None
            if con_estructura:
                estructura = Estructura(nombre=f"Estructura {n}", sueldo_base=sueldo_base,
                                        tipo_gratificacion="AUTOMATICA")
                db.add(estructura)
            guardia = Guardia(
                rut=datos_guardia.pop("rut", f"{10000000 + n}-{n % 10}"),
                nombres=datos_guardia.pop("nombres", f"Guardia{n}"),
                apellidos=datos_guardia.pop("apellidos", "Pérez"),
                afp=datos_guardia.pop("afp", "modelo"),
                sistema_salud=datos_guardia.pop("sistema_salud", "FONASA"),
                banco=datos_guardia.pop("banco", "BancoEstado"),
                tipo_cuenta=datos_guardia.pop("tipo_cuenta", "Cuenta RUT"),
                numero_cuenta=datos_guardia.pop("numero_cuenta", f"{10000000 + n}"),
                email=datos_guardia.pop("email", f"guardia{n}@ejemplo.cl"),
                estructura=estructura,
                **datos_guardia,
            )
            db.add(guardia)
            db.flush()
            if con_asistencia:
                valores = dict(dias_mes=30, dias_trabajados=30, dias_programados=30)
                valores.update(asistencia or {})
                db.add(AsistenciaMensual(guardia_id=guardia.id, anio=anio, mes=mes, fuente="INTERNA", **valores))
            return guardia.id
    return _crear


@pytest.fixture
def crear_instalacion(fabrica):
    def _crear(sueldo_base=700000):
        with get_db_session(fabrica) as db:
            estructura = Estructura(nombre="Puesto", sueldo_base=sueldo_base, tipo_gratificacion="AUTOMATICA")
            instalacion = Instalacion(nombre="Instalación Centro", estructura=estructura)
            db.add(instalacion)
            db.flush()
            return instalacion.id
    return _crear
