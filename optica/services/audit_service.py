# ==============================================================================
# SERVICIO DE AUDITORÍA
# ==============================================================================
# Centraliza toda la lógica de registro de auditoría.
# Formatea mensajes humanizados y categoriza eventos.
# ==============================================================================

from typing import Any, Dict, List, Optional

from optica.models.entities import AuditType
from optica.repositories.interfaces import IAuditRepository


class AuditService:
    """
    Servicio para registro y consulta de auditoría.

    Centraliza:
    - Registro de eventos con mensajes humanizados
    - Categorización de eventos (CLIENTE, HISTORIA, VENTA, PAGO, STOCK, PRODUCTO, CAJA, SISTEMA)
    - Consulta de logs recientes

    La regla de oro: Si entra dinero → siempre log de PAGO
    """

    TYPE_CLIENTE = AuditType.CLIENTE.value
    TYPE_HISTORIA = AuditType.HISTORIA.value
    TYPE_VENTA = AuditType.VENTA.value
    TYPE_PAGO = AuditType.PAGO.value
    TYPE_STOCK = AuditType.STOCK.value
    TYPE_PRODUCTO = AuditType.PRODUCTO.value
    TYPE_CAJA = AuditType.CAJA.value
    TYPE_SISTEMA = AuditType.SISTEMA.value

    def __init__(self, audit_repo: IAuditRepository):
        self.audit_repo = audit_repo

    # =========================================================================
    # REGISTRO DE EVENTOS
    # =========================================================================

    def log(
        self,
        log_type: str,
        user: Optional[str],
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Registra un evento de auditoría genérico.

        Args:
            log_type: Tipo de evento
            user: Usuario que realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (cliente, factura, producto...)
            details: Detalles adicionales
        """
        self.audit_repo.log(log_type, user or 'sistema', message, related_id, details)

    def log_cliente(self, user: Optional[str], accion: str, cliente_id: str, nombre: str) -> None:
        message = f"Cliente {nombre} {accion} por {user or 'sistema'}"
        self.log(self.TYPE_CLIENTE, user, message, cliente_id, {'accion': accion})

    def log_historia(self, user: Optional[str], cliente_id: str, creada: bool, campos: List[str]) -> None:
        accion = 'creada' if creada else 'actualizada'
        message = f"Historia clínica de {cliente_id} {accion} - Campos: {', '.join(sorted(campos)) or 'ninguno'}"
        self.log(self.TYPE_HISTORIA, user, message, cliente_id, {'creada': creada, 'campos': sorted(campos)})

    def log_sale_created(
        self,
        user: Optional[str],
        factura_id: str,
        cliente: str,
        total: float,
        estado_pago: str,
        items_count: int
    ) -> None:
        """
        Registra la emisión de una factura.

        Args:
            user: Usuario que creó la venta
            factura_id: idPersonalizado de la factura
            cliente: Nombre del cliente
            total: Total de la venta
            estado_pago: PENDIENTE o PAGADA
            items_count: Cantidad de líneas
        """
        message = (
            f"Factura {factura_id} emitida a {cliente} por {user or 'sistema'} - "
            f"Total: $ {total:.2f} - {items_count} items - Estado: {estado_pago}"
        )
        self.log(
            self.TYPE_VENTA,
            user,
            message,
            factura_id,
            {'total': total, 'estadoPago': estado_pago, 'items_count': items_count}
        )

    def log_payment(
        self,
        user: Optional[str],
        factura_id: str,
        amount: float,
        method: str,
        pending_after: Optional[float] = None
    ) -> None:
        """
        Registra un pago recibido.
        REGLA DE ORO: Si entra dinero, siempre se debe llamar esta función.
        """
        message = f"Pago de $ {amount:.2f} ({method}) en factura {factura_id}"
        if pending_after is not None:
            message += f" - Saldo pendiente: $ {pending_after:.2f}"
        self.log(
            self.TYPE_PAGO,
            user,
            message,
            factura_id,
            {'amount': amount, 'method': method, 'pending_after': pending_after}
        )

    def log_stock_change(
        self,
        user: Optional[str],
        producto_id: str,
        nombre: str,
        before: int,
        after: int,
        reason: str = ''
    ) -> None:
        delta = after - before
        message = f"Stock de {nombre}: {before} → {after} ({delta:+d})"
        if reason:
            message += f" - {reason}"
        self.log(self.TYPE_STOCK, user, message, producto_id, {'before': before, 'after': after, 'reason': reason})

    def log_product(self, user: Optional[str], accion: str, producto_id: str, nombre: str) -> None:
        message = f"Producto {nombre} {accion} por {user or 'sistema'}"
        self.log(self.TYPE_PRODUCTO, user, message, producto_id, {'accion': accion})

    def log_caja(self, user: Optional[str], caja_id: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.log(self.TYPE_CAJA, user, message, caja_id, details)

    def log_system(self, user: Optional[str], message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.log(self.TYPE_SISTEMA, user, message, '', details)

    # =========================================================================
    # CONSULTA
    # =========================================================================

    def get_recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self.audit_repo.load()[:limit]

    def get_by_type(self, log_type: str) -> List[Dict[str, Any]]:
        return [log for log in self.audit_repo.load() if log.get('type') == log_type]
