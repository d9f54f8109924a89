# ==============================================================================
# SERVICIO DE VENTAS
# ==============================================================================
# Confirma el carrito como venta. En una sola transacción:
#   1. Verifica la sesión de caja (caja ABIERTA de hoy)
#   2. Copia la graduación actual del cliente (historialSnapshot)
#   3. Descuenta stock de los productos NORMAL
#   4. Crea la factura
#   5. Registra el INGRESO en caja chica si el pago es en efectivo
# Si cualquier paso falla, nada queda escrito.
# ==============================================================================

from typing import Any, Dict, List, Optional, Union

from optica.errors import NotFound, ValidationFailed
from optica.models.entities import MetodoPago, TipoMovimiento
from optica.performance_logger import profile_function
from optica.services.caja_chica_service import SesionCaja
from optica.services.carrito_service import Carrito
from optica.services.factura_service import normalizar_metodo_pago


class VentaService:
    """Orquesta clientes, historia clínica, productos, facturas y caja chica."""

    def __init__(
        self,
        store,
        cliente_service,
        historial_service,
        producto_service,
        factura_service,
        caja_chica_service,
        audit_service=None
    ):
        self.store = store
        self.cliente_service = cliente_service
        self.historial_service = historial_service
        self.producto_service = producto_service
        self.factura_service = factura_service
        self.caja_chica_service = caja_chica_service
        self.audit_service = audit_service

    @profile_function(name="Confirmar venta")
    def confirmar_venta(
        self,
        sesion: Optional[SesionCaja],
        cliente_id: str,
        carrito: Union[Carrito, Dict[str, Any]],
        metodo_pago: str,
        usuario: Optional[str] = None,
        abono: Optional[float] = None,
        codigo_transferencia: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Registra la venta del carrito.

        Args:
            sesion: Sesión de caja obtenida con sesion_abierta_hoy()
            cliente_id: Cliente de la venta
            carrito: Carrito (objeto o dict de sesión)
            metodo_pago: EFECTIVO, TARJETA o TRANSFERENCIA
            usuario: Usuario que vende
            abono: Monto pagado ahora (por defecto el total)
            codigo_transferencia: Obligatorio si el pago es por transferencia

        Returns:
            Factura creada

        Raises:
            CajaNoAbierta: sesión ausente, cerrada o de otro día
            NotFound: cliente o producto inexistente
            StockInsuficiente: algún producto no alcanza
            InvalidTotals / ValidationFailed: datos de la venta inválidos
        """
        if not isinstance(carrito, Carrito):
            carrito = Carrito.from_dict(carrito, self.factura_service.tasa_iva)
        if not carrito.items:
            raise ValidationFailed({'items': {'required': True}}, "El carrito está vacío")
        metodo = normalizar_metodo_pago(metodo_pago)

        movimientos_stock: List[Dict[str, Any]] = []
        with self.store.transaction():
            self.caja_chica_service.validar_sesion(sesion)

            cliente = self.cliente_service.obtener(cliente_id)
            if not cliente.activo:
                raise NotFound(f"Cliente {cliente_id} desactivado")

            snapshot = self.historial_service.snapshot(cliente_id)

            for item in carrito.items:
                cambio = self.producto_service.descontar_stock(item.productoId, item.cantidad)
                if cambio is not None:
                    movimientos_stock.append({'item': item, **cambio})

            factura = self.factura_service.crear_en_transaccion({
                'clienteId': cliente_id,
                'clienteNombre': cliente.nombre_completo,
                'historialSnapshot': snapshot,
                'items': [i.to_dict() for i in carrito.items],
                'subtotal': carrito.subtotal,
                'iva': carrito.iva,
                'total': carrito.total,
                'metodoPago': metodo,
                'codigoTransferencia': codigo_transferencia,
                'abonado': abono,
                'cajaChicaId': sesion.caja_id,
            }, usuario)

            if metodo == MetodoPago.EFECTIVO.value and factura['abonado'] > 0:
                self.caja_chica_service.registrar_movimiento(
                    sesion.caja_id, TipoMovimiento.INGRESO.value, factura['abonado'],
                    f"Venta factura {factura['idPersonalizado']}",
                    usuario=usuario, factura_id=factura['idPersonalizado'],
                    comprobante=factura['idPersonalizado']
                )

        print(f"[VENTA] Factura {factura['idPersonalizado']} - Total: $ {factura['total']:.2f} - {metodo}")
        self.factura_service.auditar_creacion(factura, usuario)
        if self.audit_service:
            for mov in movimientos_stock:
                self.audit_service.log_stock_change(
                    usuario, mov['item'].productoId, mov['item'].nombre,
                    mov['before'], mov['after'], f"Venta {factura['idPersonalizado']}"
                )
        return factura
