# ==============================================================================
# INTERFACES DE REPOSITORIOS
# ==============================================================================
# Contratos que cumplen las colecciones del almacén. Los servicios dependen
# de estos protocolos y no de los archivos JSON, de modo que en los tests
# se puede usar cualquier objeto que los implemente.
# ==============================================================================

from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class ICollectionRepository(Protocol):
    """
    Interfaz de una colección de documentos indexada por ID.
    Usado por: clientes, historiales, productos, facturas, usuarios, cajas.
    """

    name: str

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        ...

    def list_all(self) -> List[Dict[str, Any]]:
        ...

    def get_by_id(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        ...

    def exists(self, doc_id: Any) -> bool:
        ...

    def find_by(self, field: str, value: Any) -> Optional[Dict[str, Any]]:
        ...

    def find_all_by(self, field: str, value: Any) -> List[Dict[str, Any]]:
        ...

    def add(self, fields: Dict[str, Any]) -> str:
        ...

    def set(self, doc_id: Any, fields: Dict[str, Any], merge: bool = False) -> None:
        ...

    def update(self, doc_id: Any, fields: Dict[str, Any]) -> None:
        """Actualiza campos; NotFound si el documento no existe."""
        ...

    def size_report(self) -> List[Tuple[str, int]]:
        ...


@runtime_checkable
class IAuditRepository(Protocol):
    """Interfaz para el registro de auditoría."""

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        ...

    def load(self) -> List[Dict[str, Any]]:
        ...
