import json
import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.domain.exceptions import ParametroNoEncontradoError, VersionParametroDuplicadaError
from core.domain.parametros import SnapshotParametrosLegales, snapshot_a_dict, snapshot_desde_dict
from core.use_cases.interfaces import IRegistroParametros
from infrastructure.database.models import VersionParametroLegal

logger = logging.getLogger(__name__)


class RepositorioParametros(IRegistroParametros):
    """Registro versionado de parámetros legales. Las versiones solo se insertan."""

    def __init__(self, db: Session):
        self.db = db

    def registrar_version(self, snapshot: SnapshotParametrosLegales) -> VersionParametroLegal:
        if self.db.get(VersionParametroLegal, snapshot.version_id) is not None:
            raise VersionParametroDuplicadaError(
                f"La versión '{snapshot.version_id}' ya existe; los cambios legales se registran como una versión nueva."
            )
        fila = VersionParametroLegal(
            version_id=snapshot.version_id,
            nombre=snapshot.nombre or snapshot.version_id,
            vigente_desde=snapshot.vigente_desde,
            vigente_hasta=snapshot.vigente_hasta,
            datos_json=json.dumps(snapshot_a_dict(snapshot), sort_keys=True),
        )
        self.db.add(fila)
        self.db.flush()
        logger.info(f"Versión de parámetros {snapshot.version_id} registrada (vigente desde {snapshot.vigente_desde}).")
        return fila

    def resolver_snapshot(self, fecha: Optional[date] = None, version_id: Optional[str] = None) -> SnapshotParametrosLegales:
        """Por id (re-despliegue histórico) o por fecha (nueva ejecución)."""
        if version_id:
            fila = self.db.get(VersionParametroLegal, version_id)
            if fila is None:
                raise ParametroNoEncontradoError(version_id=version_id)
            return snapshot_desde_dict(json.loads(fila.datos_json))

        if fecha is None:
            raise ValueError("Debe indicar fecha o version_id.")
        fila = self.db.query(VersionParametroLegal).filter(
            VersionParametroLegal.vigente_desde <= fecha,
            or_(VersionParametroLegal.vigente_hasta.is_(None), VersionParametroLegal.vigente_hasta >= fecha),
        ).order_by(VersionParametroLegal.vigente_desde.desc()).first()
        if fila is None:
            raise ParametroNoEncontradoError(fecha=fecha)
        return snapshot_desde_dict(json.loads(fila.datos_json))

    def listar_versiones(self):
        return self.db.query(VersionParametroLegal).order_by(VersionParametroLegal.vigente_desde.desc()).all()
