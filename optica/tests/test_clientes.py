# -*- coding: utf-8 -*-
"""
Tests del servicio de clientes: validación, unicidad, edición y baja lógica.
"""
import threading

import pytest

from optica.errors import ConfirmacionRequerida, NotFound, ValidationFailed
from optica.repositories import CLIENTES
from optica.tests.conftest import datos_cliente


@pytest.fixture
def clientes(container):
    return container.cliente_service


def _factura_pendiente(container, cliente_id, abonado=0):
    return container.factura_service.crear({
        'clienteId': cliente_id,
        'items': [{'productoId': 'p1', 'nombre': 'Armazón', 'cantidad': 1, 'precioUnitario': 100}],
        'abonado': abonado,
    })


def test_crear_cliente(clientes):
    cliente_id = clientes.crear(datos_cliente(), 'admin@optica.ec')
    cliente = clientes.obtener(cliente_id)

    assert cliente.id == cliente_id
    assert cliente.nombre_completo == 'María José Pérez León'
    assert cliente.activo is True
    assert cliente.createdAt == cliente.updatedAt


def test_crear_registra_auditoria(clientes, container):
    cliente_id = clientes.crear(datos_cliente(), 'admin@optica.ec')
    logs = container.audit_service.get_by_type('CLIENTE')
    assert logs[0]['related_id'] == cliente_id
    assert logs[0]['user'] == 'admin@optica.ec'


def test_obtener_inexistente(clientes):
    with pytest.raises(NotFound):
        clientes.obtener('no-existe')


# ═══════════════════════════════════════════════════════════════════════════
# VALIDACIÓN
# ═══════════════════════════════════════════════════════════════════════════

def test_validar_cliente_correcto(clientes):
    assert clientes.validar(datos_cliente()) == {}


def test_validar_campos_requeridos(clientes):
    errores = clientes.validar({})
    for campo in ('nombres', 'apellidos', 'cedula', 'telefono', 'email', 'direccion', 'ciudad'):
        assert errores[campo] == {'required': True}
    assert 'fechaNacimiento' not in errores


@pytest.mark.parametrize('campo,valor,codigo', [
    ('nombres', 'J', 'minlength'),
    ('nombres', 'Juan3', 'pattern'),
    ('cedula', '12345', 'pattern'),
    ('cedula', '01020304AB', 'pattern'),
    ('telefono', '1991234567', 'pattern'),
    ('email', 'maria@', 'email'),
    ('direccion', 'Av.', 'minlength'),
])
def test_validar_formato(clientes, campo, valor, codigo):
    errores = clientes.validar(datos_cliente(**{campo: valor}))
    assert errores[campo].get(codigo) is True


def test_validar_parcial_solo_revisa_campos_enviados(clientes):
    assert clientes.validar({'telefono': '0987654321'}, parcial=True) == {}


def test_cedula_duplicada(clientes):
    clientes.crear(datos_cliente(1))
    with pytest.raises(ValidationFailed) as exc:
        clientes.crear(datos_cliente(2, cedula='0102030401'))
    assert exc.value.errores == {'cedula': {'cedulaTomada': True}}
    assert exc.value.status_code == 422


def test_cedula_numerica_se_guarda_como_texto(clientes):
    cliente_id = clientes.crear(datos_cliente(1, cedula=1234567890))
    cliente = clientes.obtener(cliente_id)
    assert cliente.cedula == '1234567890'

    assert clientes.existe_cedula(1234567890)
    with pytest.raises(ValidationFailed) as exc:
        clientes.crear(datos_cliente(2, cedula=1234567890))
    assert exc.value.errores == {'cedula': {'cedulaTomada': True}}


def test_validaciones_sin_sincronizar_ambas_reportan_disponible(clientes):
    # Consultas puras: ninguna reserva la cédula
    primera = clientes.validar(datos_cliente(1, cedula='0999999999'))
    segunda = clientes.validar(datos_cliente(2, cedula='0999999999'))
    assert primera == {} and segunda == {}

    clientes.crear(datos_cliente(1, cedula='0999999999'))
    with pytest.raises(ValidationFailed) as exc:
        clientes.crear(datos_cliente(2, cedula='0999999999'))
    assert exc.value.errores == {'cedula': {'cedulaTomada': True}}


def test_altas_concurrentes_con_la_misma_cedula(clientes, store):
    creados, rechazados, otros = [], [], []

    def alta(n):
        try:
            creados.append(clientes.crear(datos_cliente(n, cedula='0707070707')))
        except ValidationFailed as e:
            rechazados.append(e.errores)
        except Exception as e:
            otros.append(e)

    hilos = [threading.Thread(target=alta, args=(n,)) for n in range(1, 9)]
    for h in hilos:
        h.start()
    for h in hilos:
        h.join()

    assert otros == []
    assert len(creados) == 1
    assert rechazados == [{'cedula': {'cedulaTomada': True}}] * 7
    assert len(store.collection(CLIENTES).find_all_by('cedula', '0707070707')) == 1


def test_email_duplicado_sin_distinguir_mayusculas(clientes):
    clientes.crear(datos_cliente(1))
    errores = clientes.validar(datos_cliente(2, email='CLIENTE1@Correo.EC'))
    assert errores == {'email': {'emailTomado': True}}


def test_email_en_campo_legacy_correo(clientes, store):
    store.collection(CLIENTES).set('viejo', {'nombres': 'Ana', 'correo': 'ana@correo.ec'})
    assert clientes.existe_email('ANA@correo.ec') is True


def test_email_de_usuario_cuenta_como_tomado(clientes, container):
    container.user_service.create_user('vendedor@optica.ec', 'clave123')
    assert clientes.existe_email('vendedor@optica.ec') is True


def test_cliente_inactivo_libera_cedula(clientes):
    original = clientes.crear(datos_cliente(1))
    clientes.desactivar(original)

    assert clientes.existe_cedula('0102030401') is False
    clientes.crear(datos_cliente(2, cedula='0102030401'))

    # Al reactivar, la cédula ya pertenece a otro cliente activo
    with pytest.raises(ValidationFailed) as exc:
        clientes.activar(original)
    assert exc.value.errores == {'cedula': {'cedulaTomada': True}}
    assert clientes.obtener(original).activo is False


# ═══════════════════════════════════════════════════════════════════════════
# EDICIÓN
# ═══════════════════════════════════════════════════════════════════════════

def test_actualizar_solo_campos_enviados(clientes):
    cliente_id = clientes.crear(datos_cliente())
    antes = clientes.obtener(cliente_id)

    despues = clientes.actualizar(cliente_id, {'telefono': '0987654321', 'cedula': antes.cedula})

    assert despues.telefono == '0987654321'
    assert despues.email == antes.email
    assert despues.createdAt == antes.createdAt
    assert despues.updatedAt > antes.updatedAt


def test_actualizar_con_cedula_de_otro(clientes):
    clientes.crear(datos_cliente(1))
    segundo = clientes.crear(datos_cliente(2))
    with pytest.raises(ValidationFailed) as exc:
        clientes.actualizar(segundo, {'cedula': '0102030401'})
    assert 'cedulaTomada' in exc.value.errores['cedula']


def test_actualizar_inexistente(clientes):
    with pytest.raises(NotFound):
        clientes.actualizar('no-existe', {'telefono': '0987654321'})


# ═══════════════════════════════════════════════════════════════════════════
# BAJA LÓGICA
# ═══════════════════════════════════════════════════════════════════════════

def test_desactivar_con_deuda_requiere_confirmacion(clientes, container):
    cliente_id = clientes.crear(datos_cliente())
    _factura_pendiente(container, cliente_id)

    with pytest.raises(ConfirmacionRequerida) as exc:
        clientes.desactivar(cliente_id)
    assert exc.value.details['resumen'] == {'deudaTotal': 115.0, 'pendientes': 1}
    assert clientes.obtener(cliente_id).activo is True

    clientes.desactivar(cliente_id, confirmar=True)
    assert clientes.obtener(cliente_id).activo is False


def test_desactivar_sin_deuda(clientes, container):
    cliente_id = clientes.crear(datos_cliente())
    _factura_pendiente(container, cliente_id, abonado=115)
    clientes.desactivar(cliente_id)

    assert clientes.listar() == []
    assert [c['id'] for c in clientes.listar(incluir_inactivos=True)] == [cliente_id]

    clientes.activar(cliente_id)
    assert clientes.obtener(cliente_id).activo is True


# ═══════════════════════════════════════════════════════════════════════════
# LISTADOS
# ═══════════════════════════════════════════════════════════════════════════

def test_listar_recientes_ordena_y_pagina(clientes):
    ids = [clientes.crear(datos_cliente(n)) for n in range(1, 6)]

    pagina = clientes.listar_recientes(pagina=1, por_pagina=2)
    assert pagina['total'] == 5
    assert pagina['paginas'] == 3
    assert [c['id'] for c in pagina['items']] == [ids[4], ids[3]]

    ultima = clientes.listar_recientes(pagina=99, por_pagina=2)
    assert ultima['pagina'] == 3
    assert [c['id'] for c in ultima['items']] == [ids[0]]


def test_listar_recientes_filtra(clientes):
    clientes.crear(datos_cliente(1))
    clientes.crear(datos_cliente(2, nombres='Carlos', apellidos='Rodríguez'))

    assert clientes.listar_recientes('carlos')['total'] == 1
    assert clientes.listar_recientes('0102030401')['total'] == 1
    assert clientes.listar_recientes('cliente2@')['total'] == 1
    assert clientes.listar_recientes('nadie')['items'] == []
