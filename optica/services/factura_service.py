# ==============================================================================
# SERVICIO DE FACTURAS
# ==============================================================================
# Emisión de facturas, resumen de deuda y registro de abonos.
#
# REGLAS:
#   - Los totales se recalculan en el servidor; una diferencia mayor a 0.01
#     con los enviados rechaza la factura (InvalidTotals)
#   - idPersonalizado: secuencial de 10 dígitos (máximo + 1), también es la
#     clave del documento
#   - saldoPendiente = total - abonado; PAGADA cuando llega a 0
# ==============================================================================

from typing import Any, Dict, List, Optional

from optica.errors import InvalidTotals, NotFound, ValidationFailed
from optica.models.entities import EstadoPago, Factura, MetodoPago, TipoMovimiento
from optica.performance_logger import profile_function
from optica.repositories import FACTURAS, DocumentStore


TOLERANCIA = 0.01


def calcular_resumen_deuda(facturas: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Suma el saldo de las facturas PENDIENTE con saldo positivo.

    Returns:
        {'deudaTotal': float redondeado a 2, 'pendientes': cantidad de facturas}
    """
    deuda = 0.0
    pendientes = 0
    for f in facturas:
        if f.get('activo') is False or f.get('estadoPago') != EstadoPago.PENDIENTE.value:
            continue
        saldo = float(f.get('saldoPendiente') or 0)
        if saldo > 0:
            deuda += saldo
            pendientes += 1
    return {'deudaTotal': round(deuda, 2), 'pendientes': pendientes}


def siguiente_id_personalizado(facturas: List[Dict[str, Any]]) -> str:
    """Máximo idPersonalizado + 1 con relleno a 10 dígitos."""
    maximo = 0
    for f in facturas:
        try:
            numero = int(str(f.get('idPersonalizado') or '').strip())
        except ValueError:
            continue
        maximo = max(maximo, numero)
    return str(maximo + 1).zfill(10)


def normalizar_metodo_pago(metodo: Optional[str]) -> str:
    """
    Raises:
        ValidationFailed: método no soportado
    """
    valor = (metodo or '').strip().upper()
    try:
        return MetodoPago(valor).value
    except ValueError:
        raise ValidationFailed({'metodoPago': {'pattern': True}})


def _difiere(enviado: Any, calculado: float) -> bool:
    if enviado is None:
        return False
    try:
        return abs(float(enviado) - calculado) > TOLERANCIA
    except (TypeError, ValueError):
        return True


class FacturaService:
    """
    Servicio de facturación.

    Responsabilidades:
    - Crear facturas con totales verificados y numeración secuencial
    - Consultar facturas, pendientes y deuda por cliente
    - Registrar abonos (y su ingreso en caja chica si es efectivo)
    """

    def __init__(self, store: DocumentStore, audit_service=None, caja_chica_service=None, tasa_iva: float = 0.15):
        self.store = store
        self.facturas = store.collection(FACTURAS)
        self.audit_service = audit_service
        self.caja_chica_service = caja_chica_service
        self.tasa_iva = tasa_iva

    # =========================================================================
    # TOTALES
    # =========================================================================

    def recalcular_totales(self, factura: Dict[str, Any]) -> Dict[str, Any]:
        """
        Recalcula líneas, subtotal, IVA y total.

        Returns:
            {'items', 'subtotal', 'iva', 'total'}

        Raises:
            ValidationFailed: sin items o con cantidades/precios inválidos
            InvalidTotals: algún total enviado difiere del calculado
        """
        items_in = factura.get('items') or []
        if not items_in:
            raise ValidationFailed({'items': {'required': True}})

        items: List[Dict[str, Any]] = []
        diferencias: Dict[str, Any] = {}
        for idx, raw in enumerate(items_in):
            try:
                cantidad = int(raw.get('cantidad'))
                precio = round(float(raw.get('precioUnitario', raw.get('precio'))), 2)
            except (TypeError, ValueError, OverflowError):
                raise ValidationFailed({f'items.{idx}': {'number': True}})
            if cantidad < 1 or precio < 0:
                raise ValidationFailed({f'items.{idx}': {'min': True}})
            total_linea = round(cantidad * precio, 2)
            if _difiere(raw.get('total'), total_linea):
                diferencias[f'items.{idx}.total'] = total_linea
            items.append({
                'productoId': str(raw.get('productoId', '')),
                'nombre': raw.get('nombre', ''),
                'tipo': raw.get('tipo', ''),
                'cantidad': cantidad,
                'precioUnitario': precio,
                'total': total_linea,
            })

        subtotal = round(sum(i['total'] for i in items), 2)
        iva = round(subtotal * self.tasa_iva, 2)
        total = round(subtotal + iva, 2)
        for campo, calculado in (('subtotal', subtotal), ('iva', iva), ('total', total)):
            if _difiere(factura.get(campo), calculado):
                diferencias[campo] = calculado

        if diferencias:
            raise InvalidTotals("Los totales no coinciden con los calculados", {'esperado': diferencias})
        return {'items': items, 'subtotal': subtotal, 'iva': iva, 'total': total}

    # =========================================================================
    # CREACIÓN
    # =========================================================================

    @profile_function(name="Crear factura")
    def crear(self, factura: Dict[str, Any], usuario: Optional[str] = None) -> str:
        """
        Crea una factura.

        Args:
            factura: clienteId, clienteNombre, items, subtotal, iva, total,
                     metodoPago, abonado (opcional, por defecto el total),
                     codigoTransferencia, historialSnapshot, cajaChicaId
            usuario: Usuario que emite

        Returns:
            ID de la factura (su idPersonalizado)
        """
        with self.store.transaction():
            datos = self.crear_en_transaccion(factura, usuario)
        self.auditar_creacion(datos, usuario)
        return datos['idPersonalizado']

    def crear_en_transaccion(self, factura: Dict[str, Any], usuario: Optional[str] = None) -> Dict[str, Any]:
        """Crea la factura dentro de la transacción activa; no audita."""
        if not factura.get('clienteId'):
            raise ValidationFailed({'clienteId': {'required': True}})
        totales = self.recalcular_totales(factura)
        metodo = normalizar_metodo_pago(factura.get('metodoPago') or MetodoPago.EFECTIVO.value)
        codigo = (factura.get('codigoTransferencia') or '').strip() or None
        if metodo == MetodoPago.TRANSFERENCIA.value and not codigo:
            raise ValidationFailed({'codigoTransferencia': {'required': True}})

        abonado = factura.get('abonado')
        try:
            abonado = totales['total'] if abonado is None else round(float(abonado), 2)
        except (TypeError, ValueError):
            raise ValidationFailed({'abonado': {'number': True}})
        if abonado < 0 or abonado - totales['total'] > TOLERANCIA:
            raise ValidationFailed({'abonado': {'range': True}})
        abonado = min(abonado, totales['total'])
        saldo = round(totales['total'] - abonado, 2)

        fecha = self.store.server_timestamp()
        id_personalizado = siguiente_id_personalizado(self.facturas.list_all())
        pagos = []
        if abonado > 0:
            pagos.append({'monto': abonado, 'metodoPago': metodo, 'fecha': fecha, 'usuario': usuario})

        doc = Factura(
            clienteId=factura['clienteId'],
            clienteNombre=factura.get('clienteNombre', ''),
            historialSnapshot=factura.get('historialSnapshot'),
            items=totales['items'],
            subtotal=totales['subtotal'],
            iva=totales['iva'],
            total=totales['total'],
            metodoPago=metodo,
            codigoTransferencia=codigo,
            usuarioId=usuario or '',
            cajaChicaId=factura.get('cajaChicaId'),
            idPersonalizado=id_personalizado,
            fecha=fecha,
            abonado=abonado,
            saldoPendiente=saldo,
            estadoPago=EstadoPago.PAGADA.value if saldo <= 0 else EstadoPago.PENDIENTE.value,
            pagos=pagos,
        )
        self.facturas.set(id_personalizado, doc.to_dict())
        return self.facturas.get_by_id(id_personalizado)

    def auditar_creacion(self, factura: Dict[str, Any], usuario: Optional[str]) -> None:
        if not self.audit_service:
            return
        self.audit_service.log_sale_created(
            usuario, factura['idPersonalizado'], factura.get('clienteNombre') or factura['clienteId'],
            factura['total'], factura['estadoPago'], len(factura['items'])
        )
        if factura['abonado'] > 0:
            self.audit_service.log_payment(
                usuario, factura['idPersonalizado'], factura['abonado'],
                factura['metodoPago'], factura['saldoPendiente']
            )

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def obtener(self, factura_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFound: si la factura no existe
        """
        doc = self.facturas.get_by_id(factura_id)
        if doc is None:
            raise NotFound(f"Factura {factura_id} no encontrada")
        return doc

    def listar(self, cliente_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Facturas activas (opcionalmente de un cliente), más recientes primero."""
        if cliente_id:
            facturas = self.facturas.find_all_by('clienteId', cliente_id)
        else:
            facturas = self.facturas.list_all()
        facturas = [f for f in facturas if f.get('activo') is not False]
        facturas.sort(key=lambda f: (f.get('fecha') or '', f.get('idPersonalizado') or ''), reverse=True)
        return facturas

    def pendientes_por_cliente(self, cliente_id: str) -> List[Dict[str, Any]]:
        return [
            f for f in self.listar(cliente_id)
            if f.get('estadoPago') == EstadoPago.PENDIENTE.value
        ]

    def resumen_deuda(self, cliente_id: str) -> Dict[str, Any]:
        """
        Returns:
            {'deudaTotal', 'pendientes'}
        """
        return calcular_resumen_deuda(self.facturas.find_all_by('clienteId', cliente_id))

    # =========================================================================
    # ABONOS
    # =========================================================================

    @profile_function(name="Registrar abono")
    def registrar_abono(
        self,
        factura_id: str,
        monto: float,
        metodo_pago: str,
        usuario: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Registra un abono sobre una factura pendiente.

        Si el pago es en efectivo y hay caja abierta hoy, el ingreso se
        registra en la caja dentro de la misma transacción.

        Returns:
            {'factura', 'abonadoAnterior', 'abonoRealizado', 'abonadoNuevo', 'saldoNuevo'}

        Raises:
            NotFound: factura inexistente
            ValidationFailed: monto <= 0 o mayor al saldo pendiente
        """
        metodo = normalizar_metodo_pago(metodo_pago)
        try:
            monto = round(float(monto), 2)
        except (TypeError, ValueError):
            raise ValidationFailed({'monto': {'number': True}})
        if monto <= 0:
            raise ValidationFailed({'monto': {'min': True}})

        with self.store.transaction():
            factura = self.obtener(factura_id)
            saldo = round(float(factura.get('saldoPendiente') or 0), 2)
            if monto - saldo > TOLERANCIA / 2:
                raise ValidationFailed({'monto': {'max': True}}, f"El abono supera el saldo pendiente ($ {saldo:.2f})")

            total = float(factura.get('total') or 0)
            abonado_anterior = round(float(factura.get('abonado') or 0), 2)
            abonado_nuevo = round(abonado_anterior + monto, 2)
            saldo_nuevo = max(0.0, round(total - abonado_nuevo, 2))
            ahora = self.store.server_timestamp()

            pagos = list(factura.get('pagos') or [])
            pagos.append({'monto': monto, 'metodoPago': metodo, 'fecha': ahora, 'usuario': usuario})
            self.facturas.update(factura_id, {
                'abonado': abonado_nuevo,
                'saldoPendiente': saldo_nuevo,
                'estadoPago': EstadoPago.PAGADA.value if saldo_nuevo <= 0 else EstadoPago.PENDIENTE.value,
                'pagos': pagos,
                'ultimaActualizacionPago': ahora,
            })

            if metodo == MetodoPago.EFECTIVO.value and self.caja_chica_service is not None:
                self._ingreso_en_caja(factura_id, monto, usuario)

            actualizada = self.facturas.get_by_id(factura_id)

        if self.audit_service:
            self.audit_service.log_payment(usuario, factura_id, monto, metodo, saldo_nuevo)
        return {
            'factura': actualizada,
            'abonadoAnterior': abonado_anterior,
            'abonoRealizado': monto,
            'abonadoNuevo': abonado_nuevo,
            'saldoNuevo': saldo_nuevo,
        }

    def _ingreso_en_caja(self, factura_id: str, monto: float, usuario: Optional[str]) -> None:
        caja = self.caja_chica_service.caja_abierta_hoy()
        if caja is None:
            return
        self.caja_chica_service.registrar_movimiento(
            caja['id'], TipoMovimiento.INGRESO.value, monto,
            f"Abono factura {factura_id}", usuario=usuario, factura_id=factura_id
        )
