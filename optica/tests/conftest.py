# -*- coding: utf-8 -*-
"""
Fixtures compartidas: almacén en un directorio temporal, reloj determinista
y cliente Flask con login.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Los logs de profiling van a un directorio temporal (se lee al importar)
os.environ.setdefault('OPTICA_LOGS_DIR', tempfile.mkdtemp(prefix='optica-logs-'))

import pytest

from optica.app_container import AppContainer
from optica.config import Settings
from optica.main import create_app
from optica.models.entities import Rol


class Reloj:
    """Reloj de prueba: avanza un segundo en cada lectura."""

    def __init__(self, inicio=None):
        self.actual = inicio or datetime(2025, 3, 10, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.actual += timedelta(seconds=1)
        return self.actual

    def avanzar_dias(self, dias=1):
        self.actual += timedelta(days=dias)


@pytest.fixture
def reloj():
    return Reloj()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=str(tmp_path / 'data'),
        secret_key='clave-de-pruebas',
        usuarios_autorizados=['admin@optica.ec'],
    )


@pytest.fixture
def container(settings, reloj):
    AppContainer.reset_instance()
    c = AppContainer(settings, clock=reloj)
    yield c
    AppContainer.reset_instance()


@pytest.fixture
def store(container):
    return container.store


@pytest.fixture
def app(container):
    flask_app = create_app(container)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


def datos_cliente(n=1, **extra):
    """Campos válidos de un cliente; n distingue cédula, teléfono y email."""
    datos = {
        'nombres': 'María José',
        'apellidos': 'Pérez León',
        'cedula': f'01020304{n:02d}',
        'telefono': f'09912345{n:02d}',
        'email': f'cliente{n}@correo.ec',
        'fechaNacimiento': '1990-05-12',
        'direccion': 'Av. Ferroviaria 123',
        'pais': 'Ecuador',
        'provincia': 'El Oro',
        'ciudad': 'Pasaje',
    }
    datos.update(extra)
    return datos


def login(client, container, email='admin@optica.ec', password='clave123', rol=Rol.ADMINISTRADOR.value):
    """Crea el usuario (si no existe), inicia sesión y retorna el token CSRF."""
    container.user_service.create_user(email, password, 'Usuario de prueba', rol)
    r = client.get('/')
    assert r.status_code == 200
    token = r.get_json()['csrf_token']
    r = client.post('/', json={'email': email, 'password': password, 'csrf_token': token})
    assert r.status_code == 200, r.get_json()
    return token
