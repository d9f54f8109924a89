# ==============================================================================
# APLICACIÓN FLASK - API JSON de la óptica
# ==============================================================================
# Las rutas solo orquestan request → servicio → respuesta.
# Toda la lógica de negocio vive en services/.
#
# Los errores del dominio (OpticaError) se convierten en una respuesta JSON
# con su código HTTP; el detalle completo se imprime en consola.
# ==============================================================================

import traceback
import uuid
from datetime import timedelta
from functools import wraps
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request, session
from werkzeug.exceptions import HTTPException

from optica.app_container import AppContainer, get_container
from optica.errors import OpticaError
from optica.models.entities import Rol
from optica.performance_logger import init_profiling, resumen_rendimiento


# ═══════════════════════════════════════════════════════════════════════════
# DECORADORES DE SEGURIDAD
# ═══════════════════════════════════════════════════════════════════════════

def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if "user" not in session:
            return {"ok": False, "error": "Debes iniciar sesión"}, 401
        return f(*args, **kwargs)
    return wrapper


def role_required(rol: int):
    def deco(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if session.get("rol") != rol:
                return {"ok": False, "error": "Permiso denegado"}, 403
            return f(*args, **kwargs)
        return wrapper
    return deco


def generate_csrf_token() -> str:
    if 'csrf_token' not in session:
        session['csrf_token'] = uuid.uuid4().hex
    return session['csrf_token']


def verify_csrf(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if request.method == 'POST':
            token = session.get('csrf_token')
            form_token = (
                request.form.get('csrf_token') or
                request.headers.get('X-CSRF-Token') or
                request.headers.get('X-CSRFToken')
            )
            if not form_token and request.is_json:
                json_data = request.get_json(silent=True) or {}
                form_token = json_data.get('csrf_token')

            if not token or not form_token or token != form_token:
                return {"ok": False, "error": "CSRF token inválido"}, 403
        return f(*args, **kwargs)
    return wrapper


def _payload() -> Dict[str, Any]:
    """Cuerpo JSON o formulario, sin el token CSRF."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form.to_dict()
    data = dict(data)
    data.pop('csrf_token', None)
    return data


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'si', 'sí', 'yes', 'on')
    return bool(value)


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


# ═══════════════════════════════════════════════════════════════════════════
# FÁBRICA DE LA APLICACIÓN
# ═══════════════════════════════════════════════════════════════════════════

def create_app(container: Optional[AppContainer] = None) -> Flask:
    """
    Crea la aplicación Flask.

    Args:
        container: Contenedor de dependencias (si no, el global; cargar la
                   configuración falla con StartupConfigError si no hay credenciales)
    """
    container = container or get_container()
    settings = container.settings

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=8)
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    app.extensions['optica'] = container

    # Mide rendimiento de rutas. Logs en logs/
    init_profiling(app)

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # ═══════════════════════════════════════════════════════════════════════
    # MANEJO DE ERRORES
    # ═══════════════════════════════════════════════════════════════════════

    @app.errorhandler(OpticaError)
    def handle_optica_error(e: OpticaError):
        print(f"[ERROR] {request.method} {request.path} → {type(e).__name__}: {e.message} {e.details or ''}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        print(f"[ERROR] {request.method} {request.path} → {type(e).__name__}: {e}")
        traceback.print_exc()
        return {"ok": False, "error": "Error interno. Por favor intenta de nuevo."}, 500

    def usuario_actual() -> Optional[str]:
        return session.get("user")

    # ═══════════════════════════════════════════════════════════════════════
    # AUTENTICACIÓN
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/", methods=["GET", "POST"])
    @verify_csrf
    def login():
        if request.method == "POST":
            data = _payload()
            email = (data.get("email") or data.get("user") or "").strip()
            password = data.get("password") or ""
            if not email or not password:
                return {"ok": False, "error": "Usuario y contraseña requeridos"}, 400

            user = container.user_service.authenticate(email, password)
            if not user:
                return {"ok": False, "error": "Usuario o contraseña incorrecta"}, 401

            session.permanent = True
            session["user"] = user["email"]
            session["user_id"] = user["id"]
            session["rol"] = user["rol"]
            session["sucursal"] = user["claims"].get("sucursal")
            return {"ok": True, "user": user["email"], "nombre": user["nombre"], "rol": user["rol"]}
        return {"csrf_token": generate_csrf_token(), "user": session.get("user")}

    @app.route("/logout")
    @login_required
    def logout():
        session.clear()
        return {"ok": True}

    # ═══════════════════════════════════════════════════════════════════════
    # CLIENTES
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/clientes", methods=["GET"])
    @login_required
    def api_clientes_listar():
        if _truthy(request.args.get("inactivos")):
            return {"ok": True, "items": container.cliente_service.listar(incluir_inactivos=True)}
        resultado = container.cliente_service.listar_recientes(
            request.args.get("q", ""),
            _int_arg("pagina", 1),
            _int_arg("por_pagina", 20),
        )
        return {"ok": True, **resultado}

    @app.route("/api/clientes", methods=["POST"])
    @login_required
    @verify_csrf
    def api_clientes_crear():
        cliente_id = container.cliente_service.crear(_payload(), usuario_actual())
        return {"ok": True, "id": cliente_id}, 201

    @app.route("/api/clientes/validar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_clientes_validar():
        data = _payload()
        excluir_id = data.pop("excluir_id", None)
        errores = container.cliente_service.validar(data, excluir_id=excluir_id, parcial=bool(excluir_id))
        return {"ok": not errores, "errores": errores}

    @app.route("/api/clientes/<cliente_id>", methods=["GET"])
    @login_required
    def api_cliente_ver(cliente_id):
        cliente = container.cliente_service.obtener(cliente_id)
        return {"ok": True, "cliente": {**cliente.to_dict(), "id": cliente.id}}

    @app.route("/api/clientes/<cliente_id>", methods=["POST"])
    @login_required
    @verify_csrf
    def api_cliente_editar(cliente_id):
        cliente = container.cliente_service.actualizar(cliente_id, _payload(), usuario_actual())
        return {"ok": True, "cliente": {**cliente.to_dict(), "id": cliente.id}}

    @app.route("/api/clientes/<cliente_id>/desactivar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_cliente_desactivar(cliente_id):
        confirmar = _truthy(_payload().get("confirmar"))
        container.cliente_service.desactivar(cliente_id, confirmar=confirmar, usuario=usuario_actual())
        return {"ok": True}

    @app.route("/api/clientes/<cliente_id>/activar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_cliente_activar(cliente_id):
        container.cliente_service.activar(cliente_id, usuario_actual())
        return {"ok": True}

    # ═══════════════════════════════════════════════════════════════════════
    # HISTORIA CLÍNICA
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/clientes/<cliente_id>/historial", methods=["GET"])
    @login_required
    def api_historial_ver(cliente_id):
        existe, datos = container.historial_service.obtener(cliente_id)
        return {"ok": True, "existe": existe, "datos": datos}

    @app.route("/api/clientes/<cliente_id>/historial", methods=["POST"])
    @login_required
    @verify_csrf
    def api_historial_guardar(cliente_id):
        data = _payload()
        if "cliente" in data or "historial" in data:
            resultado = container.historial_service.guardar_con_cliente(
                cliente_id, data.get("cliente") or {}, data.get("historial") or {}, usuario_actual()
            )
            return {"ok": True, **resultado}
        datos = container.historial_service.guardar(cliente_id, data, usuario_actual())
        return {"ok": True, "datos": datos}

    @app.route("/api/clientes/<cliente_id>/historiales", methods=["GET"])
    @login_required
    def api_historiales_listar(cliente_id):
        return {"ok": True, "items": container.historial_service.listar(cliente_id)}

    @app.route("/api/clientes/<cliente_id>/historiales", methods=["POST"])
    @login_required
    @verify_csrf
    def api_historiales_agregar(cliente_id):
        entrada_id = container.historial_service.agregar_entrada(cliente_id, _payload(), usuario_actual())
        return {"ok": True, "id": entrada_id}, 201

    @app.route("/api/clientes/<cliente_id>/deuda", methods=["GET"])
    @login_required
    def api_cliente_deuda(cliente_id):
        container.cliente_service.obtener(cliente_id)
        return {
            "ok": True,
            **container.factura_service.resumen_deuda(cliente_id),
            "facturas": container.factura_service.pendientes_por_cliente(cliente_id),
        }

    # ═══════════════════════════════════════════════════════════════════════
    # PRODUCTOS
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/productos", methods=["GET"])
    @login_required
    def api_productos_listar():
        incluir = _truthy(request.args.get("inactivos"))
        return {"ok": True, "items": container.producto_service.listar(incluir_inactivos=incluir)}

    @app.route("/api/productos", methods=["POST"])
    @login_required
    @role_required(Rol.ADMINISTRADOR.value)
    @verify_csrf
    def api_productos_crear():
        producto_id = container.producto_service.crear(_payload(), usuario_actual())
        return {"ok": True, "id": producto_id}, 201

    @app.route("/api/productos/<producto_id>", methods=["GET"])
    @login_required
    def api_producto_ver(producto_id):
        return {"ok": True, "producto": container.producto_service.obtener(producto_id)}

    @app.route("/api/productos/<producto_id>", methods=["POST"])
    @login_required
    @role_required(Rol.ADMINISTRADOR.value)
    @verify_csrf
    def api_producto_editar(producto_id):
        producto = container.producto_service.actualizar(producto_id, _payload(), usuario_actual())
        return {"ok": True, "producto": producto}

    @app.route("/api/productos/<producto_id>/desactivar", methods=["POST"])
    @login_required
    @role_required(Rol.ADMINISTRADOR.value)
    @verify_csrf
    def api_producto_desactivar(producto_id):
        container.producto_service.desactivar(producto_id, usuario_actual())
        return {"ok": True}

    @app.route("/api/productos/<producto_id>/activar", methods=["POST"])
    @login_required
    @role_required(Rol.ADMINISTRADOR.value)
    @verify_csrf
    def api_producto_activar(producto_id):
        container.producto_service.activar(producto_id, usuario_actual())
        return {"ok": True}

    # ═══════════════════════════════════════════════════════════════════════
    # CARRITO
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/carrito", methods=["GET"])
    @login_required
    def api_carrito():
        return {"ok": True, "carrito": container.carrito_service.ver()}

    @app.route("/api/carrito/agregar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_carrito_agregar():
        carrito = container.carrito_service.agregar(_payload().get("producto_id"))
        return {"ok": True, "carrito": carrito}

    @app.route("/api/carrito/cantidad", methods=["POST"])
    @login_required
    @verify_csrf
    def api_carrito_cantidad():
        data = _payload()
        carrito = container.carrito_service.cambiar_cantidad(data.get("producto_id"), data.get("cantidad"))
        return {"ok": True, "carrito": carrito}

    @app.route("/api/carrito/quitar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_carrito_quitar():
        carrito = container.carrito_service.quitar(_payload().get("producto_id"))
        return {"ok": True, "carrito": carrito}

    @app.route("/api/carrito/cliente", methods=["POST"])
    @login_required
    @verify_csrf
    def api_carrito_cliente():
        carrito = container.carrito_service.asignar_cliente(_payload().get("cliente_id"))
        return {"ok": True, "carrito": carrito}

    @app.route("/api/carrito/limpiar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_carrito_limpiar():
        return {"ok": True, "carrito": container.carrito_service.vaciar()}

    @app.route("/api/carrito/confirmar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_carrito_confirmar():
        """
        Confirma el carrito como venta. SIEMPRE devuelve JSON.

        Body JSON:
        {
            "metodo_pago": "EFECTIVO" | "TARJETA" | "TRANSFERENCIA",
            "abono": 20.0,                  (opcional, por defecto el total)
            "codigo_transferencia": "..."   (si es transferencia)
        }
        """
        data = _payload()
        carrito = container.carrito_service.carrito()
        if not carrito.cliente_id:
            return {"ok": False, "error": "Seleccione el cliente de la venta"}, 400
        sesion = container.caja_chica_service.sesion_abierta_hoy()
        factura = container.venta_service.confirmar_venta(
            sesion,
            carrito.cliente_id,
            carrito,
            data.get("metodo_pago") or "EFECTIVO",
            usuario_actual(),
            abono=data.get("abono"),
            codigo_transferencia=data.get("codigo_transferencia"),
        )
        container.carrito_service.vaciar()
        return {
            "ok": True,
            "factura": factura,
            "imprimir": f"/facturas/{factura['idPersonalizado']}/imprimir",
        }, 201

    # ═══════════════════════════════════════════════════════════════════════
    # FACTURAS
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/facturas", methods=["GET"])
    @login_required
    def api_facturas_listar():
        return {"ok": True, "items": container.factura_service.listar(request.args.get("cliente_id"))}

    @app.route("/api/facturas/<factura_id>", methods=["GET"])
    @login_required
    def api_factura_ver(factura_id):
        return {"ok": True, "factura": container.factura_service.obtener(factura_id)}

    @app.route("/api/facturas/<factura_id>/abono", methods=["POST"])
    @login_required
    @verify_csrf
    def api_factura_abono(factura_id):
        data = _payload()
        resultado = container.factura_service.registrar_abono(
            factura_id, data.get("monto"), data.get("metodo_pago") or "EFECTIVO", usuario_actual()
        )
        return {"ok": True, **resultado}

    @app.route("/facturas/<factura_id>/imprimir")
    @login_required
    def factura_imprimir(factura_id):
        factura = container.factura_service.obtener(factura_id)
        texto = container.ticket_service.render(factura)
        return Response(texto, mimetype="text/plain")

    # ═══════════════════════════════════════════════════════════════════════
    # CAJA CHICA
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/caja", methods=["GET"])
    @login_required
    def api_caja_hoy():
        caja = container.caja_chica_service.caja_abierta_hoy()
        return {"ok": True, "abierta": caja is not None, "caja": caja}

    @app.route("/api/caja/abrir", methods=["POST"])
    @login_required
    @verify_csrf
    def api_caja_abrir():
        data = _payload()
        caja_id = container.caja_chica_service.abrir(
            data.get("monto_inicial", 0), usuario_actual(), data.get("observacion", "")
        )
        return {"ok": True, "id": caja_id}, 201

    @app.route("/api/caja/<caja_id>/movimiento", methods=["POST"])
    @login_required
    @verify_csrf
    def api_caja_movimiento(caja_id):
        data = _payload()
        movimiento_id = container.caja_chica_service.registrar_movimiento(
            caja_id, data.get("tipo"), data.get("monto"), data.get("descripcion", ""),
            usuario=usuario_actual(), comprobante=data.get("comprobante")
        )
        return {"ok": True, "id": movimiento_id}, 201

    @app.route("/api/caja/<caja_id>/resumen", methods=["GET"])
    @login_required
    def api_caja_resumen(caja_id):
        return {
            "ok": True,
            "resumen": container.caja_chica_service.resumen(caja_id),
            "movimientos": container.caja_chica_service.movimientos_de(caja_id),
        }

    @app.route("/api/caja/<caja_id>/cerrar", methods=["POST"])
    @login_required
    @verify_csrf
    def api_caja_cerrar(caja_id):
        monto_final = _payload().get("monto_final")
        resumen = container.caja_chica_service.cerrar(caja_id, monto_final, usuario_actual())
        return {"ok": True, "resumen": resumen}

    # ═══════════════════════════════════════════════════════════════════════
    # AUDITORÍA
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/api/auditoria", methods=["GET"])
    @login_required
    @role_required(Rol.ADMINISTRADOR.value)
    def api_auditoria():
        tipo = request.args.get("tipo")
        if tipo:
            logs = container.audit_service.get_by_type(tipo.upper())
        else:
            logs = container.audit_service.get_recent(_int_arg("limite", 100))
        return {"ok": True, "items": logs}

    @app.route("/api/rendimiento", methods=["GET"])
    @login_required
    @role_required(Rol.ADMINISTRADOR.value)
    def api_rendimiento():
        return {"ok": True, **resumen_rendimiento()}

    return app
