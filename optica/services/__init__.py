# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Esta capa contiene TODA la lógica de negocio de la aplicación.
#
# PRINCIPIOS:
# 1. Los servicios orquestan operaciones entre colecciones del almacén
# 2. Aplican reglas de negocio y validaciones
# 3. Las rutas y los scripts solo llaman a servicios
#
# ESTRUCTURA:
# ├── cliente_service.py            → Clientes, unicidad, baja lógica
# ├── historial_clinico_service.py  → Historia clínica (upsert con fusión)
# ├── producto_service.py           → Catálogo y stock
# ├── carrito_service.py            → Carrito en sesión
# ├── factura_service.py            → Facturas, deuda, abonos
# ├── venta_service.py              → Confirmación de venta (transacción completa)
# ├── caja_chica_service.py         → Caja de efectivo diaria
# ├── ticket_service.py             → Ticket de 40 columnas
# ├── user_service.py               → Usuarios y autenticación
# ├── audit_service.py              → Logs de actividad
# └── paginacion.py                 → Paginación en memoria
# ==============================================================================

from optica.services.audit_service import AuditService
from optica.services.factura_service import FacturaService
from optica.services.cliente_service import ClienteService
from optica.services.historial_clinico_service import HistorialClinicoService
from optica.services.producto_service import ProductoService
from optica.services.carrito_service import Carrito, CarritoService
from optica.services.caja_chica_service import CajaChicaService, SesionCaja
from optica.services.venta_service import VentaService
from optica.services.ticket_service import TicketService
from optica.services.user_service import UserService
from optica.services.paginacion import paginar

__all__ = [
    'AuditService',
    'FacturaService',
    'ClienteService',
    'HistorialClinicoService',
    'ProductoService',
    'Carrito',
    'CarritoService',
    'CajaChicaService',
    'SesionCaja',
    'VentaService',
    'TicketService',
    'UserService',
    'paginar',
]
