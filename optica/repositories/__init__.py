# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso a datos
# ==============================================================================
# Esta capa encapsula todo el acceso a la persistencia (archivos JSON).
#
# ESTRUCTURA:
# ├── interfaces.py       → Protocolos (contratos de colecciones y auditoría)
# ├── base.py             → DocumentStore, CollectionRepository, ListRepository
# └── audit_repository.py → Acceso a auditoria.json
#
# COLECCIONES:
#   clientes, historiales_clinicos, productos, facturas, usuarios,
#   cajas_chicas, movimientos_cajas_chicas
# ==============================================================================

from .interfaces import ICollectionRepository, IAuditRepository
from .base import (
    BaseRepository,
    ListRepository,
    CollectionRepository,
    DocumentStore,
    Transaction,
    WriteBatch,
)
from .audit_repository import AuditRepository

# Nombres de colecciones
CLIENTES = 'clientes'
HISTORIALES = 'historiales_clinicos'
PRODUCTOS = 'productos'
FACTURAS = 'facturas'
USUARIOS = 'usuarios'
CAJAS_CHICAS = 'cajas_chicas'
MOVIMIENTOS_CAJA = 'movimientos_cajas_chicas'

COLECCIONES = (
    CLIENTES, HISTORIALES, PRODUCTOS, FACTURAS,
    USUARIOS, CAJAS_CHICAS, MOVIMIENTOS_CAJA,
)

__all__ = [
    'ICollectionRepository',
    'IAuditRepository',
    'BaseRepository',
    'ListRepository',
    'CollectionRepository',
    'DocumentStore',
    'Transaction',
    'WriteBatch',
    'AuditRepository',
    'CLIENTES',
    'HISTORIALES',
    'PRODUCTOS',
    'FACTURAS',
    'USUARIOS',
    'CAJAS_CHICAS',
    'MOVIMIENTOS_CAJA',
    'COLECCIONES',
]
