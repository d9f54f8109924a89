# ==============================================================================
# CAPA DE MODELOS - Estructuras de datos del sistema
# ==============================================================================
# Entidades del dominio definidas con dataclasses, independientes del
# mecanismo de persistencia. Cada una expone to_dict() / from_dict().
# ==============================================================================

from .entities import (
    # Enumeraciones
    Rol,
    EstadoPago,
    TipoControlStock,
    EstadoCaja,
    TipoMovimiento,
    MetodoPago,
    EstadoCarrito,
    AuditType,

    # Clientes
    Cliente,
    CAMPOS_CLIENTE,

    # Historia clínica
    HistoriaClinica,
    HistorialSnapshot,
    CAMPOS_HISTORIA,
    CAMPOS_SNAPSHOT,

    # Productos
    Producto,
    GRUPO_LUNAS,
    tipo_control_para_grupo,

    # Ventas
    ItemVenta,
    Factura,

    # Caja chica
    CajaChica,
    MovimientoCajaChica,

    # Usuarios
    Usuario,
)

__all__ = [
    'Rol',
    'EstadoPago',
    'TipoControlStock',
    'EstadoCaja',
    'TipoMovimiento',
    'MetodoPago',
    'EstadoCarrito',
    'AuditType',
    'Cliente',
    'CAMPOS_CLIENTE',
    'HistoriaClinica',
    'HistorialSnapshot',
    'CAMPOS_HISTORIA',
    'CAMPOS_SNAPSHOT',
    'Producto',
    'GRUPO_LUNAS',
    'tipo_control_para_grupo',
    'ItemVenta',
    'Factura',
    'CajaChica',
    'MovimientoCajaChica',
    'Usuario',
]
