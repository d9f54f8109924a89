# ==============================================================================
# REPOSITORIO DE AUDITORÍA
# ==============================================================================
# Encapsula todo el acceso a auditoria.json
# La auditoría se almacena como lista: [{log1}, {log2}, ...] (más reciente primero)
# ==============================================================================

import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .base import ListRepository


class AuditRepository(ListRepository):
    """
    Repositorio para gestión del log de auditoría.

    Formato de datos en auditoria.json:
    [
        {
            "type": "VENTA",
            "user": "caja@optica.ec",
            "message": "Factura 0000000001 emitida ...",
            "timestamp": "2025-01-01 10:00:00",
            "related_id": "0000000001",
            "details": {...}
        }
    ]
    """

    # Límite de registros para evitar archivos muy grandes
    MAX_LOGS = 10000

    def __init__(self, data_dir: str, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            data_dir: Directorio de datos
            clock: Reloj inyectable (por defecto hora local)
        """
        self.clock = clock or datetime.now
        super().__init__(os.path.join(data_dir, 'auditoria.json'))

    def load(self) -> List[Dict[str, Any]]:
        """Todos los logs, más recientes primero."""
        return sorted(self.get_all(), key=lambda x: x.get('timestamp', ''), reverse=True)

    def save(self, logs: List[Dict[str, Any]]) -> None:
        if len(logs) > self.MAX_LOGS:
            logs = logs[:self.MAX_LOGS]
        self.save_all(logs)

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Registra un nuevo evento de auditoría.

        Args:
            log_type: Tipo de evento (CLIENTE, HISTORIA, VENTA, PAGO, STOCK, PRODUCTO, CAJA, SISTEMA)
            user: Usuario que realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (cliente, factura, producto...)
            details: Detalles adicionales
        """
        entry = {
            'type': log_type,
            'user': user or 'sistema',
            'message': message,
            'timestamp': self.clock().strftime("%Y-%m-%d %H:%M:%S"),
            'related_id': related_id,
            'details': details or {}
        }
        with self._file_lock:
            logs = self.get_all()
            logs.insert(0, entry)
            self.save(logs)

    def get_logs_by_type(self, log_type: str) -> List[Dict[str, Any]]:
        return [log for log in self.load() if log.get('type') == log_type]

    def get_recent_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self.load()[:limit]
