# ==============================================================================
# SERVICIO DE USUARIOS
# ==============================================================================
# Autenticación y administración de usuarios del sistema.
#
# ROLES:
#   1 → ADMINISTRADOR
#   2 → OPERADOR
# Los valores de texto anteriores ('admin', 'empleado') se normalizan a número.
# ==============================================================================

from typing import Any, Dict, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from optica.models.entities import Rol, Usuario
from optica.repositories import USUARIOS, DocumentStore


# Mapeo de roles de texto a numéricos
ROLES_TEXTO = {
    'admin': Rol.ADMINISTRADOR.value,
    'administrador': Rol.ADMINISTRADOR.value,
    'empleado': Rol.OPERADOR.value,
    'operador': Rol.OPERADOR.value,
}

MIN_PASSWORD = 6


def normalizar_rol(valor: Any) -> int:
    """
    Convierte un rol a su valor numérico.

    Los numéricos se conservan; 'admin' → 1, 'empleado' → 2, desconocido → 2.
    """
    if isinstance(valor, int) and not isinstance(valor, bool):
        return valor
    return ROLES_TEXTO.get(str(valor or '').strip().lower(), Rol.OPERADOR.value)


class UserService:
    """
    Servicio para gestión de usuarios.

    Responsabilidades:
    - Autenticación (email + contraseña con hash Werkzeug)
    - Alta de usuarios
    - Cambio de contraseña y de claims
    """

    def __init__(self, store: DocumentStore, audit_service=None):
        self.store = store
        self.usuarios = store.collection(USUARIOS)
        self.audit_service = audit_service

    def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        email = (email or '').strip().lower()
        if not email:
            return None
        for u in self.usuarios.list_all():
            if str(u.get('email') or '').strip().lower() == email:
                return u
        return None

    def get_all_users(self) -> List[Dict[str, Any]]:
        return self.usuarios.list_all()

    def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Autentica un usuario.

        Returns:
            {'id', 'email', 'nombre', 'rol', 'claims'} si es válido, None si no
        """
        user = self.get_user(email)
        if not user or user.get('activo') is False:
            return None
        if not check_password_hash(user.get('password', ''), password or ''):
            return None

        if self.audit_service:
            self.audit_service.log_system(user['email'], f"Inicio de sesión de {user['email']}")
        return {
            'id': user['id'],
            'email': user['email'],
            'nombre': user.get('nombre', ''),
            'rol': normalizar_rol(user.get('rol')),
            'claims': user.get('claims') or {},
        }

    def create_user(
        self,
        email: str,
        password: str,
        nombre: str = '',
        rol: Any = Rol.OPERADOR.value,
        claims: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Crea un usuario con la contraseña hasheada.

        Returns:
            {'ok': True, 'id': ...} o {'ok': False, 'error': ..., 'existente': bool}
        """
        email = (email or '').strip().lower()
        if not email:
            return {'ok': False, 'error': 'Email requerido', 'existente': False}
        if not password or len(password) < MIN_PASSWORD:
            return {'ok': False, 'error': f'La contraseña debe tener al menos {MIN_PASSWORD} caracteres', 'existente': False}

        with self.store.transaction():
            if self.get_user(email):
                return {'ok': False, 'error': 'El usuario ya existe', 'existente': True}
            usuario = Usuario(
                email=email,
                nombre=nombre or email,
                password=generate_password_hash(password),
                rol=normalizar_rol(rol),
                claims=dict(claims or {}),
                createdAt=self.store.server_timestamp(),
            )
            user_id = self.usuarios.add(usuario.to_dict())

        if self.audit_service:
            self.audit_service.log_system(None, f"Usuario {email} creado", {'rol': usuario.rol})
        return {'ok': True, 'id': user_id}

    def change_password(self, email: str, new_password: str) -> Dict[str, Any]:
        user = self.get_user(email)
        if not user:
            return {'ok': False, 'error': 'Usuario no encontrado'}
        if not new_password or len(new_password) < MIN_PASSWORD:
            return {'ok': False, 'error': f'La contraseña debe tener al menos {MIN_PASSWORD} caracteres'}
        self.usuarios.update(user['id'], {'password': generate_password_hash(new_password)})
        if self.audit_service:
            self.audit_service.log_system(None, f"Contraseña de {user['email']} actualizada")
        return {'ok': True, 'id': user['id']}

    def is_admin(self, user: Optional[Dict[str, Any]]) -> bool:
        return bool(user) and normalizar_rol(user.get('rol')) == Rol.ADMINISTRADOR.value
