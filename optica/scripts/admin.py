# ==============================================================================
# SCRIPTS DE ADMINISTRACIÓN - CLI optica-admin (Typer)
# ==============================================================================
# Tareas puntuales sobre el almacén de documentos, independientes de la app.
#
# Comandos:
# - crear-usuarios [archivo]      -> crea usuarios iniciales (contraseña hasheada)
# - migrar-roles                  -> 'admin' → 1, 'empleado' → 2
# - asignar-sucursal [sucursal]   -> claim sucursal para usuarios autorizados
# - agregar-id-interno            -> idInterno secuencial en productos sin él
# - migrar-tipo-control-stock     -> tipo_control_stock según grupo
# - eliminar-stock-ilimitado      -> quita el campo legacy stockIlimitado
# - medir-coleccion <coleccion>   -> tamaño de documentos y proyección
# - cambiar-password <id|email> <nueva>
#
# Patrón común: cargar credenciales → leer la colección completa → cada
# documento verifica si ya está migrado → escrituras en lotes de como máximo
# batch_max_ops operaciones → progreso y resumen por consola.
# Si algo falla se listan los IDs ya escritos y el proceso sale con código 1.
# ==============================================================================

import json
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from optica.config import Settings, load_settings
from optica.errors import OpticaError, StartupConfigError
from optica.models.entities import tipo_control_para_grupo
from optica.repositories import COLECCIONES, PRODUCTOS, USUARIOS, AuditRepository, DocumentStore, WriteBatch
from optica.services.audit_service import AuditService
from optica.services.producto_service import siguiente_id_interno
from optica.services.user_service import UserService, normalizar_rol


app = typer.Typer(help="Óptica: scripts de administración")
console = Console()

# Proyecciones de medir-coleccion
PROYECCIONES = (10_000, 100_000, 1_000_000)
CUOTA_MB = 1024


# -----------------------
# util
# -----------------------

@app.callback()
def main(
    ctx: typer.Context,
    credenciales: Optional[str] = typer.Option(
        None, "--credenciales", "-c",
        help="Archivo de credenciales (por defecto OPTICA_CREDENCIALES o ./credenciales.json)"
    ),
):
    """Scripts de mantenimiento del almacén de la óptica."""
    ctx.obj = {'credenciales': credenciales}


def _cargar(ctx: typer.Context) -> Tuple[Settings, DocumentStore]:
    """Carga configuración y almacén; sale con código 1 si faltan credenciales."""
    path = (ctx.obj or {}).get('credenciales')
    try:
        settings = load_settings(path)
    except StartupConfigError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)
    return settings, DocumentStore(settings.data_dir)


def _user_service(settings: Settings, store: DocumentStore) -> UserService:
    return UserService(store, AuditService(AuditRepository(settings.data_dir)))


def _reportar_escritos(escritos: List[str]) -> None:
    if not escritos:
        console.print("   Ningún documento fue escrito.")
        return
    console.print(f"   Documentos ya escritos ({len(escritos)}), se omitirán al re-ejecutar:")
    for doc_id in escritos:
        console.print(f"   - {doc_id}")


def _fallar(error: Exception, escritos: List[str]) -> None:
    mensaje = error.message if isinstance(error, OpticaError) else str(error)
    console.print(f"\n❌ Error: {mensaje}")
    _reportar_escritos(escritos)
    raise typer.Exit(code=1)


def _escribir_por_lotes(
    store: DocumentStore,
    max_ops: int,
    pendientes: List[Any],
    agregar: Callable[[WriteBatch, Any], None]
) -> List[str]:
    """
    Escribe las operaciones pendientes en lotes de como máximo max_ops.

    Args:
        store: Almacén
        max_ops: Tope de operaciones por lote
        pendientes: Elementos a escribir (uno por operación)
        agregar: Agrega la operación de un elemento al lote

    Returns:
        IDs escritos
    """
    escritos: List[str] = []
    try:
        for inicio in range(0, len(pendientes), max_ops):
            batch = store.batch(max_ops)
            for item in pendientes[inicio:inicio + max_ops]:
                agregar(batch, item)
            escritos.extend(batch.commit())
            console.print(f"   📦 Lote confirmado: {len(escritos)}/{len(pendientes)}")
    except OpticaError as e:
        _fallar(e, escritos)
    return escritos


def _resumen(actualizados: int, sin_cambios: int, total: int, entidad: str) -> None:
    console.print("\n✨ Migración completada:")
    console.print(f"   ✅ {entidad} actualizados: {actualizados}")
    console.print(f"   ✓ {entidad} sin cambios: {sin_cambios}")
    console.print(f"   📊 Total procesados: {total}")


# -----------------------
# usuarios
# -----------------------

@app.command("crear-usuarios")
def cmd_crear_usuarios(
    ctx: typer.Context,
    archivo: Optional[str] = typer.Argument(
        None, help="JSON con [{email, password, nombre, rol}] (por defecto usuarios_iniciales)"
    ),
):
    """Crea los usuarios iniciales con contraseña hasheada. Omite los existentes."""
    settings, store = _cargar(ctx)

    if archivo:
        try:
            with open(archivo, 'r', encoding='utf-8') as f:
                usuarios = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"❌ No se pudo leer {archivo}: {e}")
            raise typer.Exit(code=1)
    else:
        usuarios = settings.usuarios_iniciales

    if not isinstance(usuarios, list) or not usuarios:
        console.print("⚠️  No hay usuarios para crear.")
        return

    console.print("🚀 Iniciando creación de usuarios...\n")
    service = _user_service(settings, store)
    creados: List[str] = []
    omitidos = 0
    for u in usuarios:
        email = str(u.get('email') or '')
        try:
            resultado = service.create_user(
                email, u.get('password', ''), u.get('nombre', ''), u.get('rol', 'empleado'), u.get('claims')
            )
        except OpticaError as e:
            _fallar(e, creados)
        if resultado['ok']:
            creados.append(email)
            console.print(f"✅ Usuario creado: {email} ({resultado['id']})")
        elif resultado.get('existente'):
            omitidos += 1
            console.print(f"✓ Ya existe: {email}")
        else:
            _fallar(ValueError(f"{email or '(sin email)'}: {resultado['error']}"), creados)

    console.print(f"\n✨ Usuarios creados: {len(creados)} - ya existentes: {omitidos}")


@app.command("migrar-roles")
def cmd_migrar_roles(ctx: typer.Context):
    """Convierte roles de texto a numéricos: admin → 1, empleado → 2 (desconocido → 2)."""
    settings, store = _cargar(ctx)
    usuarios = store.collection(USUARIOS).list_all()
    if not usuarios:
        console.print("⚠️  No se encontraron usuarios.")
        return

    console.print("🚀 Iniciando migración de roles...\n")
    pendientes = []
    for u in usuarios:
        rol = u.get('rol')
        if isinstance(rol, int) and not isinstance(rol, bool):
            continue
        nuevo = normalizar_rol(rol)
        pendientes.append((u['id'], nuevo))
        console.print(f"✅ {u.get('email') or u['id']}: {rol!r} → {nuevo}")

    _escribir_por_lotes(
        store, settings.batch_max_ops, pendientes,
        lambda batch, p: batch.update(USUARIOS, p[0], {'rol': p[1]})
    )
    _resumen(len(pendientes), len(usuarios) - len(pendientes), len(usuarios), 'Usuarios')


@app.command("asignar-sucursal")
def cmd_asignar_sucursal(
    ctx: typer.Context,
    sucursal: str = typer.Argument("PASAJE", help="Sucursal a asignar"),
):
    """Asigna el claim de sucursal a cada usuario autorizado en las credenciales."""
    settings, store = _cargar(ctx)
    if not settings.usuarios_autorizados:
        console.print("⚠️  No hay usuarios_autorizados en el archivo de credenciales.")
        return

    console.print(f"🔐 Configurando usuarios para sucursal {sucursal}...\n")
    service = _user_service(settings, store)
    pendientes = []
    sin_cambios = 0
    for email in settings.usuarios_autorizados:
        user = service.get_user(email)
        if user is None:
            console.print(f"⚠️  Usuario no encontrado: {email}")
            sin_cambios += 1
            continue
        claims = dict(user.get('claims') or {})
        if claims.get('sucursal') == sucursal:
            sin_cambios += 1
            continue
        claims['sucursal'] = sucursal
        pendientes.append((user['id'], claims))
        console.print(f"✅ Sucursal \"{sucursal}\" asignada a {user['email']}")

    _escribir_por_lotes(
        store, settings.batch_max_ops, pendientes,
        lambda batch, p: batch.update(USUARIOS, p[0], {'claims': p[1]})
    )
    _resumen(len(pendientes), sin_cambios, len(settings.usuarios_autorizados), 'Usuarios')


@app.command("cambiar-password")
def cmd_cambiar_password(
    ctx: typer.Context,
    usuario: str = typer.Argument(..., help="ID o email del usuario"),
    nueva: str = typer.Argument(..., help="Nueva contraseña"),
):
    """Cambia la contraseña de un usuario."""
    settings, store = _cargar(ctx)
    email = usuario
    if '@' not in usuario:
        doc = store.collection(USUARIOS).get_by_id(usuario)
        if doc is None:
            console.print(f"❌ Usuario no encontrado: {usuario}")
            raise typer.Exit(code=1)
        email = doc.get('email', '')

    resultado = _user_service(settings, store).change_password(email, nueva)
    if not resultado['ok']:
        console.print(f"❌ Error al actualizar contraseña: {resultado['error']}")
        raise typer.Exit(code=1)
    console.print(f"Contraseña actualizada exitosamente para: {resultado['id']}")


# -----------------------
# productos
# -----------------------

@app.command("agregar-id-interno")
def cmd_agregar_id_interno(ctx: typer.Context):
    """Asigna idInterno secuencial (máximo + 1) a los productos que no lo tienen."""
    settings, store = _cargar(ctx)
    productos = store.collection(PRODUCTOS).list_all()
    if not productos:
        console.print("⚠️  No se encontraron productos.")
        return

    console.print("🚀 Asignando idInterno a productos...\n")
    siguiente = siguiente_id_interno(productos)
    pendientes = []
    for p in sorted(productos, key=lambda x: (x.get('createdAt') or '', x['id'])):
        valor = p.get('idInterno')
        if isinstance(valor, int) and not isinstance(valor, bool):
            continue
        pendientes.append((p['id'], siguiente))
        console.print(f"✅ {p.get('nombre') or p['id']} → idInterno {siguiente}")
        siguiente += 1

    _escribir_por_lotes(
        store, settings.batch_max_ops, pendientes,
        lambda batch, p: batch.update(PRODUCTOS, p[0], {'idInterno': p[1]})
    )
    _resumen(len(pendientes), len(productos) - len(pendientes), len(productos), 'Productos')


@app.command("migrar-tipo-control-stock")
def cmd_migrar_tipo_control_stock(ctx: typer.Context):
    """grupo LUNAS → ILIMITADO; el resto → NORMAL."""
    settings, store = _cargar(ctx)
    productos = store.collection(PRODUCTOS).list_all()
    if not productos:
        console.print("⚠️  No se encontraron productos en la base de datos.")
        return

    console.print("🚀 Iniciando migración de tipo_control_stock...\n")
    ahora = store.server_timestamp()
    pendientes = []
    for p in productos:
        deseado = tipo_control_para_grupo(p.get('grupo'))
        if p.get('tipo_control_stock') == deseado:
            continue
        pendientes.append((p['id'], deseado))
        console.print(f"✅ {p.get('nombre') or p['id']}")
        console.print(f"   Grupo: {p.get('grupo') or 'N/A'}")
        console.print(f"   tipo_control_stock: {p.get('tipo_control_stock') or 'sin definir'} → {deseado}")

    _escribir_por_lotes(
        store, settings.batch_max_ops, pendientes,
        lambda batch, p: batch.update(PRODUCTOS, p[0], {'tipo_control_stock': p[1], 'updatedAt': ahora})
    )
    _resumen(len(pendientes), len(productos) - len(pendientes), len(productos), 'Productos')


@app.command("eliminar-stock-ilimitado")
def cmd_eliminar_stock_ilimitado(ctx: typer.Context):
    """Quita el campo legacy stockIlimitado de los productos."""
    settings, store = _cargar(ctx)
    productos = store.collection(PRODUCTOS).list_all()
    pendientes = [p['id'] for p in productos if 'stockIlimitado' in p]
    if not pendientes:
        console.print("✨ Ningún producto tiene el campo stockIlimitado.")
        return

    console.print(f"🧹 Eliminando stockIlimitado de {len(pendientes)} productos...\n")
    for pid in pendientes:
        console.print(f"✅ {pid}")
    _escribir_por_lotes(
        store, settings.batch_max_ops, pendientes,
        lambda batch, pid: batch.delete_field(PRODUCTOS, pid, 'stockIlimitado')
    )
    _resumen(len(pendientes), len(productos) - len(pendientes), len(productos), 'Productos')


# -----------------------
# métricas
# -----------------------

@app.command("medir-coleccion")
def cmd_medir_coleccion(
    ctx: typer.Context,
    coleccion: str = typer.Argument(..., help=f"Colección a medir ({', '.join(COLECCIONES)})"),
):
    """Mide el tamaño de cada documento de una colección y proyecta su crecimiento."""
    settings, store = _cargar(ctx)
    if not os.path.exists(os.path.join(settings.data_dir, f'{coleccion}.json')):
        console.print(f"⚠️ La colección {coleccion} no existe")
        raise typer.Exit(code=1)

    console.print(f"\n📦 Midiendo peso de la colección: {coleccion}\n")
    tamanos = store.collection(coleccion).size_report()
    if not tamanos:
        console.print("⚠️ La colección está vacía")
        return

    table = Table(title=coleccion, box=box.ROUNDED)
    table.add_column("Documento")
    table.add_column("KB", justify="right")
    total_kb = 0.0
    for doc_id, size in tamanos:
        kb = size / 1024
        total_kb += kb
        table.add_row(doc_id, f"{kb:.2f}")
    console.print(table)

    promedio = total_kb / len(tamanos)
    console.print(f"📊 Documentos analizados: {len(tamanos)}")
    console.print(f"📦 Tamaño total: {total_kb:.2f} KB")
    console.print(f"📏 Promedio por documento: {promedio:.2f} KB")

    console.print("\n📈 Proyección de almacenamiento:")
    for n in PROYECCIONES:
        console.print(f"{n:,} documentos ≈ {promedio * n / 1024:.2f} MB")
    console.print(f"\n💡 Con {CUOTA_MB} MB la colección puede crecer aprox hasta: "
                  f"{CUOTA_MB * 1024 / promedio:.0f} documentos")


if __name__ == "__main__":
    app()
