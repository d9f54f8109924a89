# ==============================================================================
# REPOSITORIO BASE - Almacén de documentos sobre archivos JSON
# ==============================================================================
# Un archivo JSON por colección dentro del directorio de datos:
#   clientes.json -> {"<id>": {...}, "<id>": {...}}
#
# DocumentStore coordina las colecciones y ofrece:
#   - server_timestamp(): marca de tiempo asignada por el servidor
#   - transaction(): escrituras agrupadas que se confirman juntas o no se aplican
#   - batch(): lote de escrituras para scripts, con tope de operaciones
# ==============================================================================

import copy
import json
import os
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from optica.errors import BatchLimitExceeded, NotFound, WriteFailed


def write_json_atomic(file_path: str, data: Any) -> None:
    """
    Escribe datos a un archivo JSON de forma atómica.

    Escribe a un archivo temporal y luego lo reemplaza, así un lector
    nunca ve un archivo a medio escribir.
    """
    temp_path = file_path + '.tmp'
    try:
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_path, file_path)
    except Exception:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise


class BaseRepository(ABC):
    """
    Clase base abstracta para repositorios sobre un archivo JSON.
    Proporciona lectura/escritura con un lock global compartido.
    """

    # Lock global del almacén (re-entrante para permitir transacciones anidadas)
    _file_lock = threading.RLock()

    def __init__(self, file_path: str):
        """
        Args:
            file_path: Ruta absoluta al archivo JSON de datos
        """
        self.file_path = file_path
        self._ensure_file_exists()

    def _ensure_file_exists(self) -> None:
        """Crea el archivo con datos vacíos si no existe."""
        if not os.path.exists(self.file_path):
            self._write_raw(self._empty_data())

    @abstractmethod
    def _empty_data(self) -> Any:
        """Estructura vacía del repositorio (dict, list...)."""
        pass

    def _read_raw(self) -> Any:
        """
        Lee los datos crudos del archivo JSON.

        Returns:
            Datos parseados, o la estructura vacía si el archivo falta o está corrupto
        """
        with self._file_lock:
            try:
                with open(self.file_path, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except (json.JSONDecodeError, FileNotFoundError):
                return self._empty_data()

    def _write_raw(self, data: Any) -> None:
        """
        Escribe datos al archivo JSON.

        Raises:
            WriteFailed: si el sistema de archivos rechaza la escritura
        """
        with self._file_lock:
            try:
                write_json_atomic(self.file_path, data)
            except OSError as e:
                raise WriteFailed(f"No se pudo escribir {os.path.basename(self.file_path)}: {e}")


class ListRepository(BaseRepository):
    """
    Repositorio base para datos almacenados como lista.

    Ejemplo: auditoria.json -> [{...}, {...}]
    """

    def _empty_data(self) -> List:
        return []

    def get_all(self) -> List[Dict[str, Any]]:
        data = self._read_raw()
        return data if isinstance(data, list) else []

    def save_all(self, data: List[Dict[str, Any]]) -> None:
        self._write_raw(data)

    def append(self, record: Dict[str, Any]) -> None:
        data = self.get_all()
        data.append(record)
        self._write_raw(data)

    def find_all_by(self, field: str, value: Any) -> List[Dict[str, Any]]:
        return [r for r in self.get_all() if r.get(field) == value]


# ==============================================================================
# COLECCIONES DE DOCUMENTOS
# ==============================================================================

class CollectionRepository(BaseRepository):
    """
    Una colección de documentos indexados por ID.

    Los documentos se devuelven como copias con la clave 'id' agregada;
    en disco el ID solo existe como clave del diccionario.

    Dentro de una transacción activa del almacén, las lecturas ven las
    escrituras pendientes y las escrituras quedan en espera hasta el commit.
    """

    def __init__(self, store: 'DocumentStore', name: str):
        self.store = store
        self.name = name
        super().__init__(os.path.join(store.data_dir, f'{name}.json'))

    def _empty_data(self) -> Dict:
        return {}

    def _read_raw(self) -> Dict[str, Any]:
        tx = self.store._active_transaction()
        if tx is not None and self.name in tx.staged:
            return copy.deepcopy(tx.staged[self.name])
        data = super()._read_raw()
        return data if isinstance(data, dict) else {}

    def _write_raw(self, data: Any) -> None:
        tx = self.store._active_transaction()
        if tx is not None:
            tx.stage(self, data)
            return
        super()._write_raw(data)

    @staticmethod
    def _with_id(doc_id: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(doc)
        result['id'] = doc_id
        return result

    # -------------------------------------------------------------------------
    # Lectura
    # -------------------------------------------------------------------------

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        """Todos los documentos como {id: documento}."""
        return self._read_raw()

    def list_all(self) -> List[Dict[str, Any]]:
        """Todos los documentos como lista, cada uno con su 'id'."""
        return [self._with_id(k, v) for k, v in self._read_raw().items()]

    def get_by_id(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        if doc_id is None:
            return None
        doc = self._read_raw().get(str(doc_id))
        return self._with_id(str(doc_id), doc) if doc is not None else None

    def exists(self, doc_id: Any) -> bool:
        return doc_id is not None and str(doc_id) in self._read_raw()

    def find_by(self, field: str, value: Any) -> Optional[Dict[str, Any]]:
        """Primer documento cuyo campo coincide, o None."""
        for doc_id, doc in self._read_raw().items():
            if doc.get(field) == value:
                return self._with_id(doc_id, doc)
        return None

    def find_all_by(self, field: str, value: Any) -> List[Dict[str, Any]]:
        return [
            self._with_id(doc_id, doc)
            for doc_id, doc in self._read_raw().items()
            if doc.get(field) == value
        ]

    # -------------------------------------------------------------------------
    # Escritura
    # -------------------------------------------------------------------------

    def add(self, fields: Dict[str, Any]) -> str:
        """
        Crea un documento con ID generado.

        Returns:
            ID del nuevo documento
        """
        doc_id = uuid.uuid4().hex[:20]
        self.set(doc_id, fields)
        return doc_id

    def set(self, doc_id: Any, fields: Dict[str, Any], merge: bool = False) -> None:
        """
        Escribe un documento completo, o lo fusiona si merge=True.

        Args:
            doc_id: ID del documento
            fields: Campos a escribir (la clave 'id' se ignora)
            merge: Si True, solo se reemplazan los campos enviados
        """
        with self._file_lock:
            data = self._read_raw()
            clean = {k: v for k, v in fields.items() if k != 'id'}
            key = str(doc_id)
            if merge and key in data:
                data[key].update(clean)
            else:
                data[key] = clean
            self._write_raw(data)

    def update(self, doc_id: Any, fields: Dict[str, Any]) -> None:
        """
        Actualiza campos de un documento existente.

        Raises:
            NotFound: si el documento no existe
        """
        with self._file_lock:
            data = self._read_raw()
            key = str(doc_id)
            if key not in data:
                raise NotFound(f"Documento {doc_id} no existe en {self.name}")
            data[key].update({k: v for k, v in fields.items() if k != 'id'})
            self._write_raw(data)

    def delete(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        """Elimina físicamente un documento. Uso reservado a scripts."""
        with self._file_lock:
            data = self._read_raw()
            removed = data.pop(str(doc_id), None)
            if removed is not None:
                self._write_raw(data)
            return removed

    def delete_field(self, doc_id: Any, field: str) -> bool:
        """Quita un campo de un documento. Retorna True si existía."""
        with self._file_lock:
            data = self._read_raw()
            doc = data.get(str(doc_id))
            if doc is None or field not in doc:
                return False
            del doc[field]
            self._write_raw(data)
            return True

    # -------------------------------------------------------------------------
    # Métricas
    # -------------------------------------------------------------------------

    def size_report(self) -> List[Tuple[str, int]]:
        """
        Tamaño serializado de cada documento.

        Returns:
            Lista de (id, bytes)
        """
        return [
            (doc_id, len(json.dumps(doc, ensure_ascii=False).encode('utf-8')))
            for doc_id, doc in self._read_raw().items()
        ]


# ==============================================================================
# TRANSACCIONES Y LOTES
# ==============================================================================

class Transaction:
    """Escrituras pendientes de una transacción, una entrada por colección."""

    def __init__(self) -> None:
        self.staged: Dict[str, Dict[str, Any]] = {}
        self.paths: Dict[str, str] = {}

    def stage(self, repo: CollectionRepository, data: Dict[str, Any]) -> None:
        self.staged[repo.name] = copy.deepcopy(data)
        self.paths[repo.name] = repo.file_path


class WriteBatch:
    """
    Lote de escrituras para scripts de mantenimiento.

    Uso:
        batch = store.batch()
        batch.update('productos', pid, {'idInterno': 7})
        escritos = batch.commit()
    """

    def __init__(self, store: 'DocumentStore', max_ops: int):
        self.store = store
        self.max_ops = max_ops
        self._ops: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []

    def __len__(self) -> int:
        return len(self._ops)

    def _add(self, op: str, collection: str, doc_id: Any, fields: Optional[Dict[str, Any]]) -> None:
        if len(self._ops) >= self.max_ops:
            raise BatchLimitExceeded(
                f"El lote admite como máximo {self.max_ops} operaciones"
            )
        self._ops.append((op, collection, str(doc_id), fields))

    def set(self, collection: str, doc_id: Any, fields: Dict[str, Any], merge: bool = False) -> None:
        self._add('merge' if merge else 'set', collection, doc_id, fields)

    def update(self, collection: str, doc_id: Any, fields: Dict[str, Any]) -> None:
        self._add('update', collection, doc_id, fields)

    def delete_field(self, collection: str, doc_id: Any, field: str) -> None:
        self._add('delete_field', collection, doc_id, {'field': field})

    def commit(self) -> List[str]:
        """
        Aplica todas las operaciones en una sola transacción.

        Returns:
            IDs escritos, en el orden del lote
        """
        written = []
        with self.store.transaction():
            for op, name, doc_id, fields in self._ops:
                repo = self.store.collection(name)
                if op == 'set':
                    repo.set(doc_id, fields)
                elif op == 'merge':
                    repo.set(doc_id, fields, merge=True)
                elif op == 'update':
                    repo.update(doc_id, fields)
                elif op == 'delete_field':
                    repo.delete_field(doc_id, fields['field'])
                written.append(doc_id)
        self._ops = []
        return written


class DocumentStore:
    """
    Almacén de documentos del sistema.

    Uso:
        store = DocumentStore('/ruta/data')
        clientes = store.collection('clientes')
        with store.transaction():
            ...
    """

    def __init__(self, data_dir: str, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            data_dir: Directorio donde viven los archivos de colecciones
            clock: Función que retorna el datetime actual (inyectable en tests)
        """
        self.data_dir = data_dir
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._collections: Dict[str, CollectionRepository] = {}
        self._local = threading.local()
        os.makedirs(data_dir, exist_ok=True)

    @property
    def lock(self) -> threading.RLock:
        return BaseRepository._file_lock

    def collection(self, name: str) -> CollectionRepository:
        with self.lock:
            if name not in self._collections:
                self._collections[name] = CollectionRepository(self, name)
            return self._collections[name]

    def server_timestamp(self) -> str:
        """Marca de tiempo ISO-8601 asignada por el servidor."""
        return self.clock().isoformat()

    def today(self) -> date:
        return self.clock().date()

    def _active_transaction(self) -> Optional[Transaction]:
        return getattr(self._local, 'tx', None)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Agrupa escrituras en una unidad atómica.

        Si el bloque lanza una excepción, nada se escribe. Las transacciones
        anidadas se unen a la exterior.

        Raises:
            WriteFailed: si el commit falla; las colecciones ya escritas se restauran
        """
        with self.lock:
            current = self._active_transaction()
            if current is not None:
                yield current
                return

            tx = Transaction()
            self._local.tx = tx
            try:
                yield tx
            finally:
                self._local.tx = None
            self._commit(tx)

    def _commit(self, tx: Transaction) -> None:
        originals: Dict[str, Any] = {}
        written: List[str] = []
        try:
            for name, data in tx.staged.items():
                path = tx.paths[name]
                originals[name] = self._read_original(path)
                self._write_json(path, data)
                written.append(name)
        except OSError as e:
            for name in written:
                try:
                    self._write_json(tx.paths[name], originals[name])
                except OSError as restore_error:
                    print(f"[ERROR] No se pudo restaurar {name}: {restore_error}")
            raise WriteFailed(f"Transacción revertida: {e}", {'colecciones': list(tx.staged)})

    @staticmethod
    def _read_original(path: str) -> Any:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            return {}

    def _write_json(self, path: str, data: Any) -> None:
        write_json_atomic(path, data)

    def batch(self, max_ops: int = 500) -> WriteBatch:
        return WriteBatch(self, max_ops)
