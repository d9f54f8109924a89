# -*- coding: utf-8 -*-
"""
Tests de confirmación de venta: todo o nada sobre stock, factura y caja.
"""
import pytest

from optica.errors import CajaNoAbierta, NotFound, StockInsuficiente
from optica.models.entities import ItemVenta
from optica.services.carrito_service import Carrito
from optica.tests.conftest import datos_cliente


@pytest.fixture
def escenario(container):
    cliente_id = container.cliente_service.crear(datos_cliente())
    container.historial_service.guardar(cliente_id, {'odEsfera': -1.5, 'oiEsfera': -1.25, 'odEje': 90})
    productos = container.producto_service
    armazon = productos.crear({'codigo': 'ARM-001', 'nombre': 'Armazón', 'pvp1': 50, 'stock': 3})
    luna = productos.crear({'codigo': 'LUN-001', 'nombre': 'Luna antirreflejo', 'pvp1': 30, 'grupo': 'LUNAS'})
    caja_id = container.caja_chica_service.abrir(20, 'admin@optica.ec')

    carrito = Carrito(0.15)
    carrito.agregar_producto(productos.obtener(armazon))
    carrito.agregar_producto(productos.obtener(armazon))
    carrito.agregar_producto(productos.obtener(luna))
    carrito.asignar_cliente(cliente_id)
    return {'cliente_id': cliente_id, 'armazon': armazon, 'luna': luna, 'caja_id': caja_id, 'carrito': carrito}


def _confirmar(container, escenario, metodo='EFECTIVO', **kwargs):
    sesion = container.caja_chica_service.sesion_abierta_hoy()
    return container.venta_service.confirmar_venta(
        sesion, escenario['cliente_id'], escenario['carrito'], metodo, 'caja@optica.ec', **kwargs
    )


def test_venta_en_efectivo(container, escenario):
    factura = _confirmar(container, escenario)

    assert factura['idPersonalizado'] == '0000000001'
    assert (factura['subtotal'], factura['iva'], factura['total']) == (130.0, 19.5, 149.5)
    assert factura['estadoPago'] == 'PAGADA'
    assert factura['cajaChicaId'] == escenario['caja_id']
    assert factura['historialSnapshot']['odEsfera'] == -1.5
    assert factura['historialSnapshot']['odEje'] == 90

    productos = container.producto_service
    assert productos.obtener(escenario['armazon'])['stock'] == 1
    assert productos.obtener(escenario['luna'])['stock'] == 0

    caja = container.caja_chica_service
    assert caja.obtener(escenario['caja_id'])['monto_actual'] == 169.5
    movimiento = caja.movimientos_de(escenario['caja_id'])[0]
    assert movimiento['tipo'] == 'INGRESO'
    assert movimiento['factura_id'] == '0000000001'


def test_venta_registra_auditoria(container, escenario):
    _confirmar(container, escenario)
    audit = container.audit_service
    assert audit.get_by_type('VENTA')[0]['related_id'] == '0000000001'
    assert audit.get_by_type('PAGO')[0]['details']['amount'] == 149.5
    stock = audit.get_by_type('STOCK')
    assert len(stock) == 1
    assert stock[0]['details']['after'] == 1


def test_venta_con_abono_parcial_y_tarjeta(container, escenario):
    factura = _confirmar(container, escenario, 'Tarjeta', abono=50)

    assert factura['abonado'] == 50.0
    assert factura['saldoPendiente'] == 99.5
    assert factura['estadoPago'] == 'PENDIENTE'
    assert container.factura_service.resumen_deuda(escenario['cliente_id']) == {
        'deudaTotal': 99.5, 'pendientes': 1
    }
    # Solo el efectivo entra a caja
    assert container.caja_chica_service.movimientos_de(escenario['caja_id']) == []


def test_venta_sin_historia_no_lleva_snapshot(container, escenario):
    otro = container.cliente_service.crear(datos_cliente(2))
    sesion = container.caja_chica_service.sesion_abierta_hoy()
    factura = container.venta_service.confirmar_venta(sesion, otro, escenario['carrito'], 'TARJETA')
    assert factura['historialSnapshot'] is None


def test_venta_acepta_carrito_de_sesion(container, escenario):
    sesion = container.caja_chica_service.sesion_abierta_hoy()
    factura = container.venta_service.confirmar_venta(
        sesion, escenario['cliente_id'], escenario['carrito'].to_dict(), 'EFECTIVO'
    )
    assert factura['total'] == 149.5


# ═══════════════════════════════════════════════════════════════════════════
# TODO O NADA
# ═══════════════════════════════════════════════════════════════════════════

def _nada_escrito(container, escenario, stock_armazon=3):
    assert container.factura_service.listar() == []
    assert container.producto_service.obtener(escenario['armazon'])['stock'] == stock_armazon
    assert container.caja_chica_service.movimientos_de(escenario['caja_id']) == []


def test_venta_sin_sesion_de_caja(container, escenario):
    with pytest.raises(CajaNoAbierta):
        container.venta_service.confirmar_venta(None, escenario['cliente_id'], escenario['carrito'], 'EFECTIVO')
    _nada_escrito(container, escenario)


def test_venta_con_caja_cerrada(container, escenario):
    sesion = container.caja_chica_service.sesion_abierta_hoy()
    container.caja_chica_service.cerrar(escenario['caja_id'])
    with pytest.raises(CajaNoAbierta):
        container.venta_service.confirmar_venta(sesion, escenario['cliente_id'], escenario['carrito'], 'EFECTIVO')
    _nada_escrito(container, escenario)


def test_stock_insuficiente_revierte_todo(container, escenario):
    escenario['carrito'].cambiar_cantidad(escenario['carrito'].items[0], 4)
    with pytest.raises(StockInsuficiente):
        _confirmar(container, escenario)
    _nada_escrito(container, escenario)


def test_producto_inexistente_revierte_descuentos_previos(container, escenario):
    carrito = escenario['carrito']
    carrito.items.append(ItemVenta(productoId='borrado', nombre='Fantasma', cantidad=1, precioUnitario=5, total=5))
    carrito.recalcular()
    with pytest.raises(NotFound):
        _confirmar(container, escenario)
    _nada_escrito(container, escenario)


def test_cliente_desactivado(container, escenario):
    container.cliente_service.desactivar(escenario['cliente_id'])
    with pytest.raises(NotFound):
        _confirmar(container, escenario)
    _nada_escrito(container, escenario)
