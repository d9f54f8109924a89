# ==============================================================================
# SISTEMA DE PROFILING INTERNO
# ==============================================================================
# Mide cuánto tardan las rutas y los servicios clave de la óptica.
#
# Archivos (una línea por evento, separados por " | "):
#   performance.log      → todas las peticiones
#   slow_routes.log      → peticiones sobre el umbral de aviso
#   slow_functions.log   → servicios (@profile_function) sobre el umbral
#
# ACTIVAR/DESACTIVAR: entorno OPTICA_PROFILING=0
# DIRECTORIO: entorno OPTICA_LOGS_DIR (por defecto optica/logs)
# ==============================================================================

import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, Optional

ENABLE_PROFILING = os.environ.get('OPTICA_PROFILING', '1') != '0'

# Umbrales en milisegundos
UMBRAL_AVISO_MS = 300
UMBRAL_CRITICO_MS = 700

# Acciones legibles por regla de Flask
ACCIONES = {
    'POST /': 'Iniciar sesión',
    'GET /logout': 'Cerrar sesión',
    'GET /api/clientes': 'Listar clientes',
    'POST /api/clientes': 'Crear cliente',
    'POST /api/clientes/<cliente_id>': 'Editar cliente',
    'POST /api/clientes/<cliente_id>/desactivar': 'Desactivar cliente',
    'POST /api/clientes/<cliente_id>/historial': 'Guardar historia clínica',
    'GET /api/clientes/<cliente_id>/deuda': 'Ver deuda',
    'POST /api/productos': 'Crear producto',
    'POST /api/carrito/agregar': 'Agregar al carrito',
    'POST /api/carrito/confirmar': 'Confirmar venta',
    'POST /api/facturas/<factura_id>/abono': 'Registrar abono',
    'GET /facturas/<factura_id>/imprimir': 'Imprimir ticket',
    'POST /api/caja/abrir': 'Abrir caja',
    'POST /api/caja/<caja_id>/cerrar': 'Cerrar caja',
}


def logs_dir() -> str:
    return os.environ.get('OPTICA_LOGS_DIR') or os.path.join(os.path.dirname(__file__), 'logs')


@dataclass
class Medicion:
    """Acumulado de tiempos de una ruta o función."""
    llamadas: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    lentas: int = 0

    def registrar(self, ms: float) -> None:
        self.llamadas += 1
        self.total_ms += ms
        self.max_ms = max(self.max_ms, ms)
        if ms >= UMBRAL_AVISO_MS:
            self.lentas += 1

    def to_dict(self) -> Dict[str, Any]:
        promedio = self.total_ms / self.llamadas if self.llamadas else 0.0
        return {
            'llamadas': self.llamadas,
            'promedio_ms': round(promedio, 2),
            'max_ms': round(self.max_ms, 2),
            'lentas': self.lentas,
        }


@dataclass
class _Registro:
    rutas: Dict[str, Medicion] = field(default_factory=dict)
    funciones: Dict[str, Medicion] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def medir(self, tabla: Dict[str, Medicion], clave: str, ms: float) -> None:
        with self.lock:
            tabla.setdefault(clave, Medicion()).registrar(ms)


_registro = _Registro()
_write_lock = threading.Lock()


# ═══════════════════════════════════════════════════════════════════════════
# ESCRITURA DE LOGS
# ═══════════════════════════════════════════════════════════════════════════

def _nivel(ms: float) -> str:
    if ms >= UMBRAL_CRITICO_MS:
        return 'CRITICO'
    if ms >= UMBRAL_AVISO_MS:
        return 'LENTO'
    return 'OK'


def _append(nombre: str, *campos: Any) -> None:
    linea = ' | '.join([datetime.now().strftime('%Y-%m-%d %H:%M:%S')] + [str(c) for c in campos])
    ruta = os.path.join(logs_dir(), nombre)
    try:
        with _write_lock:
            os.makedirs(os.path.dirname(ruta), exist_ok=True)
            with open(ruta, 'a', encoding='utf-8') as f:
                f.write(linea + '\n')
    except OSError as e:
        print(f"[PROFILING] No se pudo escribir {nombre}: {e}")


def accion_de(method: str, rule: str) -> str:
    return ACCIONES.get(f"{method} {rule}", f"{method} {rule}")


def registrar_peticion(method: str, rule: str, path: str, ms: float, user: Optional[str] = None) -> None:
    """
    Registra una petición en performance.log y, si fue lenta, en slow_routes.log.

    Args:
        method: Método HTTP
        rule: Regla de Flask (/api/clientes/<cliente_id>)
        path: Ruta concreta solicitada
        ms: Duración en milisegundos
        user: Email de la sesión, si hay
    """
    accion = accion_de(method, rule)
    _registro.medir(_registro.rutas, accion, ms)
    _append('performance.log', _nivel(ms), f"{ms:.0f} ms", accion, f"{method} {path}", user or 'anónimo')
    if ms >= UMBRAL_AVISO_MS:
        _append('slow_routes.log', _nivel(ms), f"{ms:.0f} ms", accion, f"{method} {path}", user or 'anónimo')


# ═══════════════════════════════════════════════════════════════════════════
# HOOKS PARA FLASK
# ═══════════════════════════════════════════════════════════════════════════

def init_profiling(app) -> None:
    """
    Registra los hooks before_request/after_request que miden cada petición.

    Uso:
        init_profiling(app)
    """
    if not ENABLE_PROFILING:
        return

    from flask import g, request, session

    @app.before_request
    def _iniciar_cronometro():
        g.profiling_inicio = time.perf_counter()

    @app.after_request
    def _medir_peticion(response):
        inicio = g.pop('profiling_inicio', None)
        if inicio is None or request.path.startswith('/static'):
            return response
        ms = (time.perf_counter() - inicio) * 1000
        rule = str(request.url_rule) if request.url_rule else request.path
        registrar_peticion(request.method, rule, request.path, ms, session.get('user'))
        return response


# ═══════════════════════════════════════════════════════════════════════════
# DECORADOR PARA SERVICIOS
# ═══════════════════════════════════════════════════════════════════════════

def profile_function(func: Optional[Callable] = None, name: Optional[str] = None):
    """
    Mide un servicio. Las llamadas lentas van a slow_functions.log.

    Uso:
        @profile_function(name="Confirmar venta")
        def confirmar_venta(...):
            ...
    """
    def decorator(fn):
        if not ENABLE_PROFILING:
            return fn
        nombre = name or fn.__qualname__

        @wraps(fn)
        def wrapper(*args, **kwargs):
            inicio = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                ms = (time.perf_counter() - inicio) * 1000
                _registro.medir(_registro.funciones, nombre, ms)
                if ms >= UMBRAL_AVISO_MS:
                    _append('slow_functions.log', _nivel(ms), f"{ms:.0f} ms", nombre)

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


# ═══════════════════════════════════════════════════════════════════════════
# REPORTE
# ═══════════════════════════════════════════════════════════════════════════

def resumen_rendimiento() -> Dict[str, Dict[str, Dict[str, Any]]]:
    """{'rutas': {accion: medicion}, 'funciones': {nombre: medicion}}"""
    with _registro.lock:
        return {
            'rutas': {k: m.to_dict() for k, m in _registro.rutas.items()},
            'funciones': {k: m.to_dict() for k, m in _registro.funciones.items()},
        }


def reset_stats() -> None:
    with _registro.lock:
        _registro.rutas.clear()
        _registro.funciones.clear()


__all__ = [
    'ENABLE_PROFILING',
    'init_profiling',
    'profile_function',
    'registrar_peticion',
    'resumen_rendimiento',
    'reset_stats',
]
