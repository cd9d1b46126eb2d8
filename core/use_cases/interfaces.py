from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional


class IRegistroParametros(ABC):
    @abstractmethod
    def resolver_snapshot(self, fecha: Optional[date] = None, version_id: Optional[str] = None):
        """Retorna un SnapshotParametrosLegales o lanza ParametroNoEncontradoError."""
        pass


class IFuenteAsistencia(ABC):
    @abstractmethod
    def obtener_asistencia(self, guardia_id: int, anio: int, mes: int):
        """Retorna HechoAsistencia o None si no hay registro."""
        pass


class IFuenteEstructuraSueldo(ABC):
    @abstractmethod
    def obtener_estructura_guardia(self, guardia_id: int):
        """Estructura override del guardia (nivel RUT) o None."""
        pass

    @abstractmethod
    def obtener_estructura_instalacion(self, guardia_id: int):
        """Estructura por defecto del puesto/instalación del guardia o None."""
        pass


class IFuentePerfilPago(ABC):
    @abstractmethod
    def obtener_perfil_pago(self, guardia_id: int):
        """Retorna PerfilPago o None."""
        pass


class IFuenteGuardias(ABC):
    @abstractmethod
    def listar_guardias_elegibles(self, anio: int, mes: int) -> List[int]:
        pass

    @abstractmethod
    def obtener_datos_previsionales(self, guardia_id: int):
        """Retorna DatosPrevisionales o None."""
        pass


class IFuenteFeriados(ABC):
    @abstractmethod
    def listar_feriados(self, anio: int, mes: int) -> List[date]:
        pass
