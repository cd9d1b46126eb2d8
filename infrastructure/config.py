import os
from dotenv import load_dotenv

# Cargar las variables de entorno (archivo .env en la raíz)
load_dotenv()

# Sin DATABASE_URL se usa un SQLite local (solo desarrollo)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///remuneraciones.db")

# Neon y otros PaaS entregan 'postgres://' pero SQLAlchemy 2.x requiere 'postgresql://'
DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Hilos para el cálculo de liquidaciones de un periodo
MAX_TRABAJADORES_LOTE = int(os.getenv("MAX_TRABAJADORES_LOTE", "4"))

NIVEL_LOG = os.getenv("NIVEL_LOG", "INFO").upper()

# Glosa del archivo de transferencias ("REMUNERACION 02-2026")
GLOSA_PAGO_BANCO = os.getenv("GLOSA_PAGO_BANCO", "REMUNERACION")

# Indicadores económicos (UF/UTM)
URL_INDICADORES = os.getenv("URL_INDICADORES", "https://mindicador.cl/api")
URL_INDICADORES_RESPALDO = os.getenv("URL_INDICADORES_RESPALDO", "https://api.boostr.cl/economy/indicators.json")
TIMEOUT_INDICADORES = int(os.getenv("TIMEOUT_INDICADORES", "5"))

# Minutos sin progreso tras los que el bloqueo de una ejecución caída se puede tomar
VENCIMIENTO_BLOQUEO_MINUTOS = int(os.getenv("VENCIMIENTO_BLOQUEO_MINUTOS", "30"))
