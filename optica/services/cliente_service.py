# ==============================================================================
# SERVICIO DE CLIENTES
# ==============================================================================
# Alta, edición, búsqueda y baja lógica de clientes.
#
# REGLAS:
#   - Cédula y email son únicos entre los clientes activos (y usuarios)
#   - Nunca se elimina un cliente: activo=False lo oculta de los listados
#   - Desactivar un cliente con deuda requiere confirmación explícita
# ==============================================================================

import re
from typing import Any, Dict, List, Optional

from optica.errors import ConfirmacionRequerida, NotFound, ValidationFailed
from optica.models.entities import CAMPOS_CLIENTE, Cliente
from optica.performance_logger import profile_function
from optica.repositories import CLIENTES, FACTURAS, USUARIOS, DocumentStore
from optica.services.factura_service import calcular_resumen_deuda
from optica.services.paginacion import paginar


_LETRAS = re.compile(r'^[a-zA-ZáéíóúÁÉÍÓÚñÑüÜ\s]+$')
_CEDULA = re.compile(r'^\d{10}$')
_TELEFONO = re.compile(r'^0\d{9}$')
_EMAIL = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

# campo -> (requerido, longitud mínima, patrón, código de error del patrón)
REGLAS_CLIENTE = {
    'nombres': (True, 2, _LETRAS, 'pattern'),
    'apellidos': (True, 2, _LETRAS, 'pattern'),
    'cedula': (True, 0, _CEDULA, 'pattern'),
    'telefono': (True, 0, _TELEFONO, 'pattern'),
    'email': (True, 0, _EMAIL, 'email'),
    'direccion': (True, 5, None, None),
    'pais': (True, 0, None, None),
    'provincia': (True, 0, None, None),
    'ciudad': (True, 2, None, None),
    'fechaNacimiento': (False, 0, None, None),
}


def _es_activo(doc: Dict[str, Any]) -> bool:
    return doc.get('activo') is not False


class ClienteService:
    """
    Servicio de gestión de clientes.

    Responsabilidades:
    - Validar campos y unicidad de cédula/email
    - Crear y actualizar clientes con marcas de tiempo del servidor
    - Listar, buscar y paginar
    - Baja lógica (desactivar/activar)
    """

    def __init__(self, store: DocumentStore, audit_service=None):
        """
        Args:
            store: Almacén de documentos
            audit_service: Servicio de auditoría (opcional)
        """
        self.store = store
        self.clientes = store.collection(CLIENTES)
        self.usuarios = store.collection(USUARIOS)
        self.facturas = store.collection(FACTURAS)
        self.audit_service = audit_service

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def listar(self, incluir_inactivos: bool = False) -> List[Dict[str, Any]]:
        """
        Lista clientes.

        Args:
            incluir_inactivos: Si True incluye los desactivados

        Returns:
            Lista de clientes (dicts con 'id')
        """
        clientes = self.clientes.list_all()
        if not incluir_inactivos:
            clientes = [c for c in clientes if _es_activo(c)]
        return clientes

    @profile_function(name="Listar clientes recientes")
    def listar_recientes(self, filtro: str = '', pagina: int = 1, por_pagina: int = 20) -> Dict[str, Any]:
        """
        Clientes activos filtrados por nombre, cédula o email, más recientes primero.

        Returns:
            {items, total, pagina, paginas}
        """
        clientes = self.listar()
        texto = (filtro or '').strip().lower()
        if texto:
            clientes = [
                c for c in clientes
                if texto in f"{c.get('nombres', '')} {c.get('apellidos', '')}".lower()
                or texto in str(c.get('cedula', '')).lower()
                or texto in str(c.get('email') or c.get('correo') or '').lower()
            ]
        clientes.sort(key=lambda c: c.get('createdAt') or '', reverse=True)
        return paginar(clientes, pagina, por_pagina)

    def obtener(self, cliente_id: str) -> Cliente:
        """
        Raises:
            NotFound: si el cliente no existe
        """
        doc = self.clientes.get_by_id(cliente_id)
        if doc is None:
            raise NotFound(f"Cliente {cliente_id} no encontrado")
        return Cliente.from_dict(doc)

    # =========================================================================
    # UNICIDAD
    # =========================================================================

    def existe_cedula(self, cedula: str, excluir_id: Optional[str] = None) -> bool:
        """
        Verifica si la cédula ya pertenece a un cliente activo o a un usuario.

        Es una consulta pura: dos llamadas concurrentes pueden reportar
        "disponible" para el mismo valor. crear() repite la verificación
        dentro de la transacción.
        """
        cedula = str(cedula or '').strip()
        if not cedula:
            return False
        for doc in self.clientes.find_all_by('cedula', cedula):
            if _es_activo(doc) and doc['id'] != excluir_id:
                return True
        return self.usuarios.find_by('cedula', cedula) is not None

    def existe_email(self, email: str, excluir_id: Optional[str] = None) -> bool:
        """
        Verifica si el email ya existe (sin distinguir mayúsculas).
        Considera también el campo legacy 'correo' y la colección de usuarios.
        """
        email = str(email or '').strip().lower()
        if not email:
            return False
        for doc in self.clientes.list_all():
            if not _es_activo(doc) or doc['id'] == excluir_id:
                continue
            for campo in ('email', 'correo'):
                if str(doc.get(campo) or '').strip().lower() == email:
                    return True
        return any(
            str(u.get('email') or '').strip().lower() == email
            for u in self.usuarios.list_all()
        )

    # =========================================================================
    # VALIDACIÓN
    # =========================================================================

    def validar(
        self,
        campos: Dict[str, Any],
        excluir_id: Optional[str] = None,
        parcial: bool = False
    ) -> Dict[str, Dict[str, bool]]:
        """
        Valida los campos de un cliente.

        Args:
            campos: Campos a validar
            excluir_id: Cliente en edición (no cuenta para unicidad)
            parcial: Si True solo valida los campos presentes

        Returns:
            {campo: {codigo: True}}; vacío si todo es válido
        """
        errores: Dict[str, Dict[str, bool]] = {}

        for campo, (requerido, minimo, patron, codigo) in REGLAS_CLIENTE.items():
            if parcial and campo not in campos:
                continue
            valor = campos.get(campo)
            texto = str(valor).strip() if valor is not None else ''
            if not texto:
                if requerido:
                    errores[campo] = {'required': True}
                continue
            if minimo and len(texto) < minimo:
                errores.setdefault(campo, {})['minlength'] = True
            if patron is not None and not patron.match(texto):
                errores.setdefault(campo, {})[codigo] = True

        if 'cedula' in campos and 'cedula' not in errores:
            if self.existe_cedula(campos['cedula'], excluir_id):
                errores['cedula'] = {'cedulaTomada': True}
        if 'email' in campos and 'email' not in errores:
            if self.existe_email(campos['email'], excluir_id):
                errores['email'] = {'emailTomado': True}

        return errores

    @staticmethod
    def _normalizar(campos: Dict[str, Any]) -> Dict[str, Any]:
        datos = {}
        for campo in CAMPOS_CLIENTE:
            if campo in campos:
                valor = campos[campo]
                if valor is not None and not isinstance(valor, (str, bool)):
                    valor = str(valor)
                datos[campo] = valor.strip() if isinstance(valor, str) else valor
        return datos

    # =========================================================================
    # ESCRITURA
    # =========================================================================

    @profile_function(name="Crear cliente")
    def crear(self, campos: Dict[str, Any], usuario: Optional[str] = None) -> str:
        """
        Crea un cliente nuevo.

        La verificación de unicidad y la escritura ocurren en la misma
        transacción: de dos altas simultáneas con la misma cédula solo una
        se guarda.

        Returns:
            ID del cliente creado

        Raises:
            ValidationFailed: campos inválidos o cédula/email ya registrados
        """
        datos = self._normalizar(campos)
        with self.store.transaction():
            errores = self.validar(datos)
            if errores:
                raise ValidationFailed(errores)
            ahora = self.store.server_timestamp()
            cliente = Cliente.from_dict({
                **datos,
                'activo': True,
                'createdAt': ahora,
                'updatedAt': ahora,
            })
            cliente_id = self.clientes.add(cliente.to_dict())

        if self.audit_service:
            self.audit_service.log_cliente(usuario, 'creado', cliente_id, cliente.nombre_completo)
        return cliente_id

    @profile_function(name="Actualizar cliente")
    def actualizar(self, cliente_id: str, campos: Dict[str, Any], usuario: Optional[str] = None) -> Cliente:
        """
        Actualiza solo los campos enviados (más updatedAt).

        Raises:
            NotFound: si el cliente no existe
            ValidationFailed: campos inválidos o duplicados
        """
        datos = self._normalizar(campos)
        with self.store.transaction():
            self._actualizar_en_transaccion(cliente_id, datos)
        cliente = self.obtener(cliente_id)

        if self.audit_service:
            self.audit_service.log_cliente(usuario, 'actualizado', cliente_id, cliente.nombre_completo)
        return cliente

    def _actualizar_en_transaccion(self, cliente_id: str, datos: Dict[str, Any]) -> None:
        if not self.clientes.exists(cliente_id):
            raise NotFound(f"Cliente {cliente_id} no encontrado")
        errores = self.validar(datos, excluir_id=cliente_id, parcial=True)
        if errores:
            raise ValidationFailed(errores)
        self.clientes.update(cliente_id, {**datos, 'updatedAt': self.store.server_timestamp()})

    def desactivar(self, cliente_id: str, confirmar: bool = False, usuario: Optional[str] = None) -> None:
        """
        Baja lógica del cliente.

        Args:
            cliente_id: ID del cliente
            confirmar: Debe ser True si el cliente tiene deuda pendiente

        Raises:
            NotFound: si el cliente no existe
            ConfirmacionRequerida: si hay deuda y no se confirmó (no se escribe nada)
        """
        with self.store.transaction():
            cliente = self.obtener(cliente_id)
            resumen = calcular_resumen_deuda(self.facturas.find_all_by('clienteId', cliente_id))
            if resumen['deudaTotal'] > 0 and not confirmar:
                raise ConfirmacionRequerida(
                    f"{cliente.nombre_completo} tiene deuda pendiente de $ {resumen['deudaTotal']:.2f}",
                    {'resumen': resumen}
                )
            self.clientes.update(cliente_id, {
                'activo': False,
                'updatedAt': self.store.server_timestamp(),
            })

        if self.audit_service:
            self.audit_service.log_cliente(usuario, 'desactivado', cliente_id, cliente.nombre_completo)

    def activar(self, cliente_id: str, usuario: Optional[str] = None) -> None:
        """
        Reactiva un cliente. Falla con ValidationFailed si su cédula o email
        fueron tomados por otro cliente activo mientras estaba desactivado.
        """
        with self.store.transaction():
            cliente = self.obtener(cliente_id)
            errores = self.validar(
                {'cedula': cliente.cedula, 'email': cliente.email},
                excluir_id=cliente_id,
                parcial=True
            )
            tomados = {k: v for k, v in errores.items() if 'cedulaTomada' in v or 'emailTomado' in v}
            if tomados:
                raise ValidationFailed(tomados)
            self.clientes.update(cliente_id, {
                'activo': True,
                'updatedAt': self.store.server_timestamp(),
            })
        if self.audit_service:
            self.audit_service.log_cliente(usuario, 'activado', cliente_id, cliente.nombre_completo)
