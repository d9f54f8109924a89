# -*- coding: utf-8 -*-
"""
Tests de caja chica: una caja por día, movimientos, sesión y cierre.
"""
import pytest

from optica.errors import CajaNoAbierta, CajaYaAbierta, NotFound, ValidationFailed
from optica.services.caja_chica_service import SesionCaja


@pytest.fixture
def caja(container):
    return container.caja_chica_service


def test_abrir_caja_del_dia(caja, reloj):
    caja_id = caja.abrir(25.5, 'admin@optica.ec', 'Apertura')
    doc = caja.obtener(caja_id)

    assert doc['fecha'] == reloj.actual.date().isoformat()
    assert doc['monto_inicial'] == doc['monto_actual'] == 25.5
    assert doc['estado'] == 'ABIERTA'
    assert caja.caja_abierta_hoy()['id'] == caja_id


def test_solo_una_caja_por_dia(caja):
    caja_id = caja.abrir(10)
    with pytest.raises(CajaYaAbierta):
        caja.abrir(20)

    # Tampoco después de cerrarla
    caja.cerrar(caja_id)
    with pytest.raises(CajaYaAbierta):
        caja.abrir(20)


def test_nueva_caja_al_dia_siguiente(caja, reloj):
    caja.abrir(10)
    reloj.avanzar_dias(1)
    assert caja.caja_abierta_hoy() is None
    assert caja.abrir(15)
    assert len(caja.listar()) == 2


@pytest.mark.parametrize('monto,codigo', [(-1, 'min'), ('abc', 'number')])
def test_monto_inicial_invalido(caja, monto, codigo):
    with pytest.raises(ValidationFailed) as exc:
        caja.abrir(monto)
    assert exc.value.errores == {'monto_inicial': {codigo: True}}


# ═══════════════════════════════════════════════════════════════════════════
# SESIÓN
# ═══════════════════════════════════════════════════════════════════════════

def test_sesion_sin_caja(caja):
    with pytest.raises(CajaNoAbierta):
        caja.sesion_abierta_hoy()


def test_sesion_valida_hoy(caja):
    caja_id = caja.abrir(10, 'admin@optica.ec')
    sesion = caja.sesion_abierta_hoy()

    assert sesion == SesionCaja(caja_id=caja_id, fecha=sesion.fecha, usuario_id='admin@optica.ec')
    assert caja.validar_sesion(sesion)['id'] == caja_id


def test_sesion_de_otro_dia_no_es_valida(caja, reloj):
    caja.abrir(10)
    sesion = caja.sesion_abierta_hoy()
    reloj.avanzar_dias(1)
    with pytest.raises(CajaNoAbierta):
        caja.validar_sesion(sesion)


def test_sesion_de_caja_cerrada_no_es_valida(caja):
    caja_id = caja.abrir(10)
    sesion = caja.sesion_abierta_hoy()
    caja.cerrar(caja_id)

    with pytest.raises(CajaNoAbierta):
        caja.validar_sesion(sesion)
    with pytest.raises(CajaNoAbierta):
        caja.validar_sesion(None)
    with pytest.raises(CajaNoAbierta):
        caja.validar_sesion(SesionCaja(caja_id='otra', fecha=sesion.fecha))


# ═══════════════════════════════════════════════════════════════════════════
# MOVIMIENTOS Y CIERRE
# ═══════════════════════════════════════════════════════════════════════════

def test_movimientos_actualizan_saldo(caja):
    caja_id = caja.abrir(50)
    caja.registrar_movimiento(caja_id, 'ingreso', 30, 'Venta mostrador')
    mov_id = caja.registrar_movimiento(caja_id, 'EGRESO', 20.25, 'Compra de insumos', comprobante='N-15')

    assert caja.obtener(caja_id)['monto_actual'] == 59.75
    movimientos = caja.movimientos_de(caja_id)
    assert [m['tipo'] for m in movimientos] == ['INGRESO', 'EGRESO']
    assert movimientos[1]['id'] == mov_id
    assert (movimientos[1]['saldo_anterior'], movimientos[1]['saldo_nuevo']) == (80.0, 59.75)
    assert movimientos[1]['comprobante'] == 'N-15'


def test_egreso_mayor_al_saldo(caja):
    caja_id = caja.abrir(10)
    with pytest.raises(ValidationFailed) as exc:
        caja.registrar_movimiento(caja_id, 'EGRESO', 10.01, 'Demasiado')
    assert exc.value.errores == {'monto': {'saldoInsuficiente': True}}
    assert caja.movimientos_de(caja_id) == []


@pytest.mark.parametrize('tipo,monto,campo', [('OTRO', 5, 'tipo'), ('INGRESO', 0, 'monto'), ('INGRESO', 'x', 'monto')])
def test_movimiento_invalido(caja, tipo, monto, campo):
    caja_id = caja.abrir(10)
    with pytest.raises(ValidationFailed) as exc:
        caja.registrar_movimiento(caja_id, tipo, monto, 'Prueba')
    assert campo in exc.value.errores


def test_movimiento_en_caja_inexistente(caja):
    with pytest.raises(NotFound):
        caja.registrar_movimiento('nada', 'INGRESO', 5, 'Prueba')


def test_cerrar_caja_con_resumen(caja, container):
    caja_id = caja.abrir(100, 'admin@optica.ec')
    caja.registrar_movimiento(caja_id, 'INGRESO', 40, 'Venta')
    caja.registrar_movimiento(caja_id, 'EGRESO', 15, 'Taxi')

    resumen = caja.cerrar(caja_id, monto_final=120, usuario='admin@optica.ec')

    assert resumen == {
        'caja_id': caja_id,
        'total_ingresos': 40.0,
        'total_egresos': 15.0,
        'saldo_final': 125.0,
        'cantidad_movimientos': 2,
        'diferencia': -5.0,
    }
    doc = caja.obtener(caja_id)
    assert doc['estado'] == 'CERRADA'
    assert doc['cerrado_en']
    assert caja.caja_abierta_hoy() is None

    with pytest.raises(CajaNoAbierta):
        caja.registrar_movimiento(caja_id, 'INGRESO', 5, 'Tarde')
    with pytest.raises(CajaNoAbierta):
        caja.cerrar(caja_id)

    assert container.audit_service.get_by_type('CAJA')[0]['related_id'] == caja_id


@pytest.mark.parametrize('monto,codigo', [('abc', 'number'), (-5, 'min')])
def test_cerrar_con_monto_final_invalido(caja, monto, codigo):
    caja_id = caja.abrir(10)
    with pytest.raises(ValidationFailed) as exc:
        caja.cerrar(caja_id, monto)
    assert exc.value.errores == {'monto_final': {codigo: True}}
    # La caja sigue abierta
    assert caja.obtener(caja_id)['estado'] == 'ABIERTA'
