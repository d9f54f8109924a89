# ==============================================================================
# ERRORES DEL DOMINIO
# ==============================================================================
# Taxonomía única de errores de la aplicación. Los servicios lanzan estas
# excepciones y las capas externas (rutas Flask, CLI de administración) las
# traducen a respuestas JSON o códigos de salida.
# ==============================================================================

from typing import Any, Dict, Optional


class OpticaError(Exception):
    """Excepción base de la aplicación."""

    status_code = 500

    def __init__(self, message: str = '', details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Representación JSON para respuestas de API."""
        data = {'ok': False, 'error': self.message or self.__class__.__name__}
        if self.details:
            data['details'] = self.details
        return data


class NotFound(OpticaError):
    """Cliente, historia, producto, factura o caja inexistente."""
    status_code = 404


class ValidationFailed(OpticaError):
    """
    Campos mal formados o duplicados.

    Attributes:
        errores: {campo: {codigo: True}} p.ej. {'cedula': {'cedulaTomada': True}}
    """
    status_code = 422

    def __init__(self, errores: Dict[str, Dict[str, bool]], message: str = 'Datos inválidos'):
        super().__init__(message, {'errores': errores})
        self.errores = errores


class WriteFailed(OpticaError):
    """El almacén no está disponible o rechazó la escritura."""
    status_code = 500


class StartupConfigError(OpticaError):
    """Falta el archivo de credenciales o es ilegible."""
    status_code = 500


class InvalidTotals(OpticaError):
    """Los totales enviados no coinciden con los recalculados en el servidor."""
    status_code = 400


class ConfirmacionRequerida(OpticaError):
    """La acción es destructiva y requiere confirmación explícita."""
    status_code = 409


class CajaNoAbierta(OpticaError):
    """No hay una caja chica abierta hoy para registrar la venta."""
    status_code = 409


class CajaYaAbierta(OpticaError):
    """Ya existe una caja chica para la fecha indicada."""
    status_code = 409


class StockInsuficiente(OpticaError):
    status_code = 409


class BatchLimitExceeded(OpticaError):
    """Se superó el máximo de operaciones por lote."""
    status_code = 500
