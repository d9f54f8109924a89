# -*- coding: utf-8 -*-
"""
Tests de facturación: totales en servidor, numeración, deuda y abonos.
"""
import pytest

from optica.errors import InvalidTotals, NotFound, ValidationFailed
from optica.services.factura_service import (
    calcular_resumen_deuda,
    normalizar_metodo_pago,
    siguiente_id_personalizado,
)
from optica.tests.conftest import datos_cliente


@pytest.fixture
def facturas(container):
    return container.factura_service


@pytest.fixture
def cliente_id(container):
    return container.cliente_service.crear(datos_cliente())


def _factura(cliente_id, **extra):
    factura = {
        'clienteId': cliente_id,
        'clienteNombre': 'María José Pérez León',
        'items': [
            {'productoId': 'p1', 'nombre': 'Armazón', 'cantidad': 2, 'precioUnitario': 25},
            {'productoId': 'p2', 'nombre': 'Luna', 'cantidad': 1, 'precioUnitario': 50},
        ],
    }
    factura.update(extra)
    return factura


def test_crear_calcula_totales_y_numera(facturas, cliente_id):
    primera = facturas.crear(_factura(cliente_id))
    segunda = facturas.crear(_factura(cliente_id))

    assert (primera, segunda) == ('0000000001', '0000000002')
    factura = facturas.obtener(primera)
    assert factura['id'] == factura['idPersonalizado'] == primera
    assert factura['items'][0]['total'] == 50.0
    assert (factura['subtotal'], factura['iva'], factura['total']) == (100.0, 15.0, 115.0)
    # Sin abonado explícito se paga completa
    assert factura['abonado'] == 115.0
    assert factura['saldoPendiente'] == 0.0
    assert factura['estadoPago'] == 'PAGADA'
    assert factura['pagos'][0]['monto'] == 115.0


def test_totales_enviados_incorrectos(facturas, cliente_id):
    with pytest.raises(InvalidTotals) as exc:
        facturas.crear(_factura(cliente_id, subtotal=100, iva=15, total=100))
    assert exc.value.details['esperado'] == {'total': 115.0}
    assert facturas.listar() == []


def test_totales_dentro_de_tolerancia(facturas, cliente_id):
    factura_id = facturas.crear(_factura(cliente_id, subtotal=100, iva=15.005, total=115.005))
    assert facturas.obtener(factura_id)['total'] == 115.0


def test_total_de_linea_incorrecto(facturas, cliente_id):
    factura = _factura(cliente_id)
    factura['items'][0]['total'] = 60
    with pytest.raises(InvalidTotals) as exc:
        facturas.crear(factura)
    assert exc.value.details['esperado'] == {'items.0.total': 50.0}


def test_factura_sin_items(facturas, cliente_id):
    with pytest.raises(ValidationFailed) as exc:
        facturas.crear(_factura(cliente_id, items=[]))
    assert exc.value.errores == {'items': {'required': True}}


def test_transferencia_requiere_codigo(facturas, cliente_id):
    with pytest.raises(ValidationFailed):
        facturas.crear(_factura(cliente_id, metodoPago='Transferencia'))

    factura_id = facturas.crear(_factura(cliente_id, metodoPago='Transferencia', codigoTransferencia='TRX-99'))
    factura = facturas.obtener(factura_id)
    assert factura['metodoPago'] == 'TRANSFERENCIA'
    assert factura['codigoTransferencia'] == 'TRX-99'


def test_abonado_mayor_al_total(facturas, cliente_id):
    with pytest.raises(ValidationFailed) as exc:
        facturas.crear(_factura(cliente_id, abonado=200))
    assert exc.value.errores == {'abonado': {'range': True}}


def test_resumen_de_deuda(facturas, cliente_id, container):
    facturas.crear(_factura(cliente_id, abonado=15))
    facturas.crear(_factura(cliente_id, abonado=65))
    facturas.crear(_factura(cliente_id))
    otro = container.cliente_service.crear(datos_cliente(2))
    facturas.crear(_factura(otro, abonado=0))

    assert facturas.resumen_deuda(cliente_id) == {'deudaTotal': 150.0, 'pendientes': 2}
    assert [f['idPersonalizado'] for f in facturas.pendientes_por_cliente(cliente_id)] == [
        '0000000002', '0000000001'
    ]
    assert facturas.resumen_deuda('sin-facturas') == {'deudaTotal': 0.0, 'pendientes': 0}


def test_listar_mas_recientes_primero(facturas, cliente_id):
    ids = [facturas.crear(_factura(cliente_id)) for _ in range(3)]
    assert [f['id'] for f in facturas.listar()] == list(reversed(ids))
    assert facturas.listar('otro-cliente') == []


# ═══════════════════════════════════════════════════════════════════════════
# ABONOS
# ═══════════════════════════════════════════════════════════════════════════

def test_registrar_abonos_hasta_pagar(facturas, cliente_id):
    factura_id = facturas.crear(_factura(cliente_id, abonado=15))

    r = facturas.registrar_abono(factura_id, 40, 'Tarjeta', 'caja@optica.ec')
    assert r['abonadoAnterior'] == 15.0
    assert r['abonoRealizado'] == 40.0
    assert r['abonadoNuevo'] == 55.0
    assert r['saldoNuevo'] == 60.0
    assert r['factura']['estadoPago'] == 'PENDIENTE'

    r = facturas.registrar_abono(factura_id, '60', 'EFECTIVO')
    assert r['saldoNuevo'] == 0.0
    factura = facturas.obtener(factura_id)
    assert factura['estadoPago'] == 'PAGADA'
    assert [p['monto'] for p in factura['pagos']] == [15.0, 40.0, 60.0]
    assert 'ultimaActualizacionPago' in factura


@pytest.mark.parametrize('monto,codigo', [(0, 'min'), (-5, 'min'), (100.01, 'max'), ('diez', 'number')])
def test_abono_invalido(facturas, cliente_id, monto, codigo):
    factura_id = facturas.crear(_factura(cliente_id, abonado=15))
    with pytest.raises(ValidationFailed) as exc:
        facturas.registrar_abono(factura_id, monto, 'EFECTIVO')
    assert exc.value.errores == {'monto': {codigo: True}}
    assert facturas.obtener(factura_id)['abonado'] == 15.0


def test_abono_factura_inexistente(facturas):
    with pytest.raises(NotFound):
        facturas.registrar_abono('0000009999', 10, 'EFECTIVO')


def test_abono_en_efectivo_entra_a_caja_abierta(facturas, cliente_id, container):
    caja = container.caja_chica_service
    caja_id = caja.abrir(20)
    factura_id = facturas.crear(_factura(cliente_id, abonado=0, metodoPago='TARJETA'))

    facturas.registrar_abono(factura_id, 30, 'Efectivo')
    facturas.registrar_abono(factura_id, 10, 'Tarjeta')

    movimientos = caja.movimientos_de(caja_id)
    assert len(movimientos) == 1
    assert movimientos[0]['factura_id'] == factura_id
    assert caja.obtener(caja_id)['monto_actual'] == 50.0


def test_abono_en_efectivo_sin_caja(facturas, cliente_id, container):
    factura_id = facturas.crear(_factura(cliente_id, abonado=0))
    facturas.registrar_abono(factura_id, 30, 'EFECTIVO')
    assert container.caja_chica_service.listar() == []


def test_abonos_registran_pago_en_auditoria(facturas, cliente_id, container):
    factura_id = facturas.crear(_factura(cliente_id, abonado=0))
    facturas.registrar_abono(factura_id, 30, 'EFECTIVO', 'caja@optica.ec')
    pagos = container.audit_service.get_by_type('PAGO')
    assert pagos[0]['details']['amount'] == 30.0
    assert pagos[0]['details']['pending_after'] == 85.0


# ═══════════════════════════════════════════════════════════════════════════
# FUNCIONES PURAS
# ═══════════════════════════════════════════════════════════════════════════

def test_siguiente_id_personalizado():
    assert siguiente_id_personalizado([]) == '0000000001'
    assert siguiente_id_personalizado([
        {'idPersonalizado': '0000000041'}, {'idPersonalizado': 'ABC'}, {},
    ]) == '0000000042'


def test_normalizar_metodo_pago():
    assert normalizar_metodo_pago('Efectivo') == 'EFECTIVO'
    assert normalizar_metodo_pago(' transferencia ') == 'TRANSFERENCIA'
    with pytest.raises(ValidationFailed):
        normalizar_metodo_pago('cheque')


def test_calcular_resumen_deuda_ignora_pagadas_e_inactivas():
    resumen = calcular_resumen_deuda([
        {'estadoPago': 'PENDIENTE', 'saldoPendiente': 10.5},
        {'estadoPago': 'PENDIENTE', 'saldoPendiente': 0},
        {'estadoPago': 'PAGADA', 'saldoPendiente': 5},
        {'estadoPago': 'PENDIENTE', 'saldoPendiente': 7, 'activo': False},
    ])
    assert resumen == {'deudaTotal': 10.5, 'pendientes': 1}
