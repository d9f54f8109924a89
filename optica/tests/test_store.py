# -*- coding: utf-8 -*-
"""
Tests del almacén de documentos: colecciones, transacciones y lotes.
"""
import json
import os

import pytest

from optica.errors import BatchLimitExceeded, NotFound, WriteFailed
from optica.repositories import AuditRepository, DocumentStore, IAuditRepository, ICollectionRepository


@pytest.fixture
def almacen(tmp_path, reloj):
    return DocumentStore(str(tmp_path / 'data'), clock=reloj)


def _leer_archivo(store, nombre):
    with open(os.path.join(store.data_dir, f'{nombre}.json'), encoding='utf-8') as f:
        return json.load(f)


def test_set_y_get_agregan_id(almacen):
    col = almacen.collection('clientes')
    col.set('c1', {'nombres': 'Ana', 'id': 'ignorado'})

    assert col.get_by_id('c1') == {'nombres': 'Ana', 'id': 'c1'}
    assert col.list_all() == [{'nombres': 'Ana', 'id': 'c1'}]
    # En disco el ID solo es la clave
    assert _leer_archivo(almacen, 'clientes') == {'c1': {'nombres': 'Ana'}}


def test_set_con_merge_conserva_campos(almacen):
    col = almacen.collection('historiales_clinicos')
    col.set('c1', {'odEsfera': -1.0, 'color': 'azul'})
    col.set('c1', {'color': 'gris'}, merge=True)

    assert col.get_by_id('c1')['odEsfera'] == -1.0
    assert col.get_by_id('c1')['color'] == 'gris'

    col.set('c1', {'color': 'negro'})
    assert 'odEsfera' not in col.get_by_id('c1')


def test_add_genera_ids_distintos(almacen):
    col = almacen.collection('productos')
    a = col.add({'nombre': 'A'})
    b = col.add({'nombre': 'B'})
    assert a != b
    assert col.exists(a) and col.exists(b)


def test_update_inexistente_lanza_not_found(almacen):
    with pytest.raises(NotFound):
        almacen.collection('clientes').update('nada', {'x': 1})


def test_delete_field(almacen):
    col = almacen.collection('productos')
    col.set('p1', {'nombre': 'Luna', 'stockIlimitado': True})
    assert col.delete_field('p1', 'stockIlimitado') is True
    assert col.delete_field('p1', 'stockIlimitado') is False
    assert 'stockIlimitado' not in col.get_by_id('p1')


def test_archivo_corrupto_se_lee_vacio(almacen):
    col = almacen.collection('clientes')
    with open(col.file_path, 'w', encoding='utf-8') as f:
        f.write('{no es json')
    assert col.list_all() == []


def test_server_timestamp_usa_el_reloj(almacen, reloj):
    ts = almacen.server_timestamp()
    assert ts == reloj.actual.isoformat()
    assert almacen.today() == reloj.actual.date()


# ═══════════════════════════════════════════════════════════════════════════
# TRANSACCIONES
# ═══════════════════════════════════════════════════════════════════════════

def test_transaccion_confirma_todo_junto(almacen):
    clientes = almacen.collection('clientes')
    historiales = almacen.collection('historiales_clinicos')

    with almacen.transaction():
        clientes.set('c1', {'nombres': 'Ana'})
        historiales.set('c1', {'odEsfera': -0.5})
        # Las lecturas dentro de la transacción ven lo pendiente
        assert clientes.get_by_id('c1')['nombres'] == 'Ana'
        # Nada en disco todavía
        assert _leer_archivo(almacen, 'clientes') == {}

    assert _leer_archivo(almacen, 'clientes') == {'c1': {'nombres': 'Ana'}}
    assert _leer_archivo(almacen, 'historiales_clinicos') == {'c1': {'odEsfera': -0.5}}


def test_transaccion_con_error_no_escribe_nada(almacen):
    clientes = almacen.collection('clientes')
    clientes.set('c0', {'nombres': 'Previo'})

    with pytest.raises(RuntimeError):
        with almacen.transaction():
            clientes.set('c1', {'nombres': 'Ana'})
            clientes.update('c0', {'nombres': 'Cambiado'})
            raise RuntimeError('falla a mitad')

    assert clientes.get_by_id('c1') is None
    assert clientes.get_by_id('c0')['nombres'] == 'Previo'


def test_transaccion_anidada_se_une_a_la_exterior(almacen):
    clientes = almacen.collection('clientes')

    with pytest.raises(ValueError):
        with almacen.transaction() as exterior:
            with almacen.transaction() as interior:
                assert interior is exterior
                clientes.set('c1', {'nombres': 'Ana'})
            # La interior no confirmó por su cuenta
            assert _leer_archivo(almacen, 'clientes') == {}
            raise ValueError('aborta la exterior')

    assert clientes.get_by_id('c1') is None


def test_fallo_en_commit_restaura_colecciones_escritas(almacen, monkeypatch):
    clientes = almacen.collection('clientes')
    historiales = almacen.collection('historiales_clinicos')
    clientes.set('c1', {'nombres': 'Ana'})

    escribir = almacen._write_json
    llamadas = []

    def falla_en_la_segunda(path, data):
        llamadas.append(path)
        if len(llamadas) == 2:
            raise OSError('disco lleno')
        escribir(path, data)

    monkeypatch.setattr(almacen, '_write_json', falla_en_la_segunda)

    with pytest.raises(WriteFailed) as exc:
        with almacen.transaction():
            clientes.update('c1', {'nombres': 'Ana María'})
            historiales.set('c1', {'odEsfera': -1.0})

    assert exc.value.status_code == 500
    assert _leer_archivo(almacen, 'clientes') == {'c1': {'nombres': 'Ana'}}
    assert _leer_archivo(almacen, 'historiales_clinicos') == {}


# ═══════════════════════════════════════════════════════════════════════════
# LOTES
# ═══════════════════════════════════════════════════════════════════════════

def test_batch_respeta_el_tope_de_operaciones(almacen):
    almacen.collection('productos').set('p1', {'nombre': 'A'})
    batch = almacen.batch(max_ops=2)
    batch.update('productos', 'p1', {'idInterno': 1})
    batch.set('productos', 'p2', {'nombre': 'B'})

    with pytest.raises(BatchLimitExceeded):
        batch.set('productos', 'p3', {'nombre': 'C'})

    assert batch.commit() == ['p1', 'p2']
    assert len(batch) == 0
    assert almacen.collection('productos').get_by_id('p1')['idInterno'] == 1
    assert almacen.collection('productos').get_by_id('p3') is None


def test_batch_fallido_no_aplica_ninguna_operacion(almacen):
    productos = almacen.collection('productos')
    productos.set('p1', {'nombre': 'A'})
    batch = almacen.batch()
    batch.update('productos', 'p1', {'idInterno': 1})
    batch.update('productos', 'no-existe', {'idInterno': 2})

    with pytest.raises(NotFound):
        batch.commit()
    assert 'idInterno' not in productos.get_by_id('p1')


def test_size_report(almacen):
    col = almacen.collection('clientes')
    col.set('c1', {'nombres': 'Ana'})
    reporte = dict(col.size_report())
    assert reporte['c1'] == len(json.dumps({'nombres': 'Ana'}).encode('utf-8'))


# ═══════════════════════════════════════════════════════════════════════════
# AUDITORÍA
# ═══════════════════════════════════════════════════════════════════════════

def test_auditoria_mas_reciente_primero_y_con_tope(tmp_path, reloj, monkeypatch):
    repo = AuditRepository(str(tmp_path), clock=reloj)
    monkeypatch.setattr(AuditRepository, 'MAX_LOGS', 3)

    for i in range(5):
        repo.log('VENTA', 'caja@optica.ec', f'Factura {i}', str(i))

    logs = repo.load()
    assert [l['related_id'] for l in logs] == ['4', '3', '2']
    assert repo.get_logs_by_type('VENTA') == logs
    assert repo.get_recent_logs(1)[0]['message'] == 'Factura 4'


def test_colecciones_y_auditoria_cumplen_los_protocolos(almacen):
    assert isinstance(almacen.collection('clientes'), ICollectionRepository)
    assert isinstance(AuditRepository(almacen.data_dir), IAuditRepository)
