# ==============================================================================
# CONFIGURACIÓN
# ==============================================================================
# Carga el archivo de credenciales requerido al iniciar el proceso.
#
# RUTA: variable de entorno OPTICA_CREDENCIALES, por defecto ./credenciales.json
# Comando: export OPTICA_CREDENCIALES="/ruta/a/credenciales.json"
#
# Formato del archivo:
# {
#     "data_dir": "data",                 <- relativo al archivo
#     "secret_key": "...",                <- opcional
#     "tasa_iva": 0.15,                   <- opcional
#     "usuarios_autorizados": ["a@b.com"],
#     "usuarios_iniciales": [{"email": ..., "password": ..., "nombre": ..., "rol": ...}]
# }
# ==============================================================================

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from optica.errors import StartupConfigError


ENV_CREDENCIALES = 'OPTICA_CREDENCIALES'
ENV_SECRET_KEY = 'OPTICA_SECRET_KEY'
DEFAULT_CREDENCIALES = 'credenciales.json'

# Ecuador 15%
TASA_IVA_DEFAULT = 0.15

# Máximo de operaciones por lote de escritura
BATCH_MAX_OPS = 500

_DEFAULT_SECRET = "optica_dev_secret_key_change_in_production"


@dataclass
class Settings:
    """Valores de configuración resueltos al arrancar."""
    data_dir: str
    tasa_iva: float = TASA_IVA_DEFAULT
    secret_key: str = _DEFAULT_SECRET
    batch_max_ops: int = BATCH_MAX_OPS
    credenciales_path: str = ''
    usuarios_autorizados: List[str] = field(default_factory=list)
    usuarios_iniciales: List[Dict[str, Any]] = field(default_factory=list)


def credenciales_path() -> str:
    """Ruta efectiva del archivo de credenciales."""
    return os.environ.get(ENV_CREDENCIALES) or os.path.join(os.getcwd(), DEFAULT_CREDENCIALES)


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Lee el archivo de credenciales y construye la configuración.

    Args:
        path: Ruta explícita (si no, se usa OPTICA_CREDENCIALES o el default)

    Returns:
        Settings listos para usar

    Raises:
        StartupConfigError: si el archivo no existe o no es JSON válido
    """
    path = path or credenciales_path()
    if not os.path.isfile(path):
        raise StartupConfigError(
            f"No se encontró el archivo de credenciales: {path}. "
            f"Configura {ENV_CREDENCIALES} o coloca {DEFAULT_CREDENCIALES} en el directorio actual."
        )
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise StartupConfigError(f"No se pudo cargar el archivo de credenciales {path}: {e}")

    if not isinstance(raw, dict):
        raise StartupConfigError(f"Formato de credenciales inválido en {path}")

    base = os.path.dirname(os.path.abspath(path))
    data_dir = raw.get('data_dir') or 'data'
    if not os.path.isabs(data_dir):
        data_dir = os.path.join(base, data_dir)

    try:
        tasa_iva = float(raw.get('tasa_iva', TASA_IVA_DEFAULT))
    except (TypeError, ValueError):
        raise StartupConfigError(f"tasa_iva inválida en {path}")

    try:
        batch_max_ops = int(raw.get('batch_max_ops', BATCH_MAX_OPS))
    except (TypeError, ValueError, OverflowError):
        raise StartupConfigError(f"batch_max_ops inválido en {path}")
    if batch_max_ops < 1:
        raise StartupConfigError(f"batch_max_ops debe ser al menos 1 en {path}")

    return Settings(
        data_dir=data_dir,
        tasa_iva=tasa_iva,
        secret_key=os.environ.get(ENV_SECRET_KEY) or raw.get('secret_key') or _DEFAULT_SECRET,
        batch_max_ops=batch_max_ops,
        credenciales_path=os.path.abspath(path),
        usuarios_autorizados=list(raw.get('usuarios_autorizados') or []),
        usuarios_iniciales=list(raw.get('usuarios_iniciales') or []),
    )
