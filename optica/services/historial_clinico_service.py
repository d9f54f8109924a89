# ==============================================================================
# SERVICIO DE HISTORIA CLÍNICA
# ==============================================================================
# Una historia clínica canónica por cliente (documento con ID = cliente),
# más entradas fechadas opcionales para conservar graduaciones anteriores.
#
# Guardar es un upsert con fusión: la primera escritura fija createdAt,
# las siguientes solo reemplazan los campos enviados y actualizan updatedAt.
# ==============================================================================

import math
from typing import Any, Dict, List, Optional, Tuple

from optica.errors import NotFound, ValidationFailed
from optica.models.entities import CAMPOS_HISTORIA, HistoriaClinica, HistorialSnapshot
from optica.performance_logger import profile_function
from optica.repositories import CLIENTES, HISTORIALES, DocumentStore


# Campos numéricos (esfera, cilindro, medidas en mm)
CAMPOS_NUMERICOS = (
    'odEsfera', 'odCilindro', 'oiEsfera', 'oiCilindro', 'dp', 'add', 'altura',
    'armazonH', 'armazonV', 'armazonDM', 'armazonP',
    'armazonDNP_OD', 'armazonDNP_OI', 'armazonAltura',
)
CAMPOS_EJE = ('odEje', 'oiEje')
EJE_MIN, EJE_MAX = 0, 180


def _a_numero(valor: Any) -> Optional[float]:
    if valor is None or (isinstance(valor, str) and not valor.strip()):
        return None
    if isinstance(valor, bool):
        raise ValueError(valor)
    numero = float(str(valor).replace(',', '.'))
    if not math.isfinite(numero):
        raise ValueError(valor)
    return numero


class HistorialClinicoService:
    """
    Servicio de historia clínica.

    Responsabilidades:
    - Guardar (crear o fusionar) la historia canónica del cliente
    - Registrar entradas fechadas adicionales y listarlas
    - Guardar cliente e historia en una sola transacción
    - Generar el snapshot de graduación para facturas
    """

    def __init__(self, store: DocumentStore, cliente_service=None, audit_service=None):
        """
        Args:
            store: Almacén de documentos
            cliente_service: Necesario para guardar_con_cliente
            audit_service: Servicio de auditoría (opcional)
        """
        self.store = store
        self.historiales = store.collection(HISTORIALES)
        self.clientes = store.collection(CLIENTES)
        self.cliente_service = cliente_service
        self.audit_service = audit_service

    def _limpiar(self, campos: Dict[str, Any]) -> Dict[str, Any]:
        """
        Filtra los campos conocidos y convierte los numéricos.

        Raises:
            ValidationFailed: números mal formados o eje fuera de 0-180
        """
        datos: Dict[str, Any] = {}
        errores: Dict[str, Dict[str, bool]] = {}

        for campo in CAMPOS_HISTORIA:
            if campo not in campos:
                continue
            valor = campos[campo]
            if campo in CAMPOS_NUMERICOS or campo in CAMPOS_EJE:
                try:
                    numero = _a_numero(valor)
                except ValueError:
                    errores[campo] = {'number': True}
                    continue
                if campo in CAMPOS_EJE and numero is not None:
                    if numero != int(numero) or not EJE_MIN <= numero <= EJE_MAX:
                        errores[campo] = {'range': True}
                        continue
                    numero = int(numero)
                datos[campo] = numero
            else:
                datos[campo] = valor.strip() if isinstance(valor, str) else valor

        if errores:
            raise ValidationFailed(errores)
        return datos

    def _verificar_cliente(self, cliente_id: str) -> None:
        if not self.clientes.exists(cliente_id):
            raise NotFound(f"Cliente {cliente_id} no encontrado")

    # =========================================================================
    # GUARDAR
    # =========================================================================

    @profile_function(name="Guardar historia clínica")
    def guardar(self, cliente_id: str, campos: Dict[str, Any], usuario: Optional[str] = None) -> Dict[str, Any]:
        """
        Crea o fusiona la historia clínica canónica del cliente.

        Args:
            cliente_id: ID del cliente (también ID del documento)
            campos: Campos a guardar; los no enviados se conservan

        Returns:
            Historia completa tras guardar

        Raises:
            NotFound: si el cliente no existe
            ValidationFailed: valores numéricos inválidos
        """
        datos = self._limpiar(campos)
        with self.store.transaction():
            creada = self._guardar_en_transaccion(cliente_id, datos)
            guardada = self.historiales.get_by_id(cliente_id)

        if self.audit_service:
            self.audit_service.log_historia(usuario, cliente_id, creada, list(datos))
        return guardada

    def _guardar_en_transaccion(self, cliente_id: str, datos: Dict[str, Any]) -> bool:
        """Lee y escribe bajo el lock del almacén. Retorna True si la creó."""
        self._verificar_cliente(cliente_id)
        ahora = self.store.server_timestamp()
        existe = self.historiales.exists(cliente_id)
        escritura = {**datos, 'clienteId': cliente_id, 'updatedAt': ahora}
        if not existe:
            escritura['createdAt'] = ahora
        self.historiales.set(cliente_id, escritura, merge=True)
        return not existe

    def guardar_con_cliente(
        self,
        cliente_id: str,
        campos_cliente: Dict[str, Any],
        campos_historial: Dict[str, Any],
        usuario: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Guarda la edición del cliente y su historia juntas.

        Ambas escrituras ocurren en una transacción: si una falla,
        ninguna queda guardada.

        Returns:
            {'cliente': {...}, 'historial': {...}}
        """
        if self.cliente_service is None:
            raise RuntimeError("guardar_con_cliente requiere cliente_service")

        datos_cliente = self.cliente_service._normalizar(campos_cliente)
        datos_historial = self._limpiar(campos_historial)
        with self.store.transaction():
            self.cliente_service._actualizar_en_transaccion(cliente_id, datos_cliente)
            creada = self._guardar_en_transaccion(cliente_id, datos_historial)

        if self.audit_service:
            self.audit_service.log_historia(usuario, cliente_id, creada, list(datos_historial))
        return {
            'cliente': self.clientes.get_by_id(cliente_id),
            'historial': self.historiales.get_by_id(cliente_id),
        }

    def agregar_entrada(self, cliente_id: str, campos: Dict[str, Any], usuario: Optional[str] = None) -> str:
        """
        Registra una entrada fechada adicional (no toca la historia canónica).

        Returns:
            ID de la entrada
        """
        datos = self._limpiar(campos)
        with self.store.transaction():
            self._verificar_cliente(cliente_id)
            ahora = self.store.server_timestamp()
            historia = HistoriaClinica.from_dict({
                **datos, 'clienteId': cliente_id, 'createdAt': ahora, 'updatedAt': ahora,
            })
            entrada_id = self.historiales.add(historia.to_dict())

        if self.audit_service:
            self.audit_service.log_historia(usuario, cliente_id, True, list(datos))
        return entrada_id

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def obtener(self, cliente_id: str) -> Tuple[bool, Dict[str, Any]]:
        """
        Historia canónica del cliente.

        Returns:
            (existe, datos); datos vacío si no existe
        """
        doc = self.historiales.get_by_id(cliente_id)
        if doc is None:
            return False, {}
        return True, doc

    def listar(self, cliente_id: str) -> List[Dict[str, Any]]:
        """Todas las entradas del cliente, más recientes primero."""
        entradas = self.historiales.find_all_by('clienteId', cliente_id)
        entradas.sort(key=lambda h: h.get('updatedAt') or h.get('createdAt') or '', reverse=True)
        return entradas

    def snapshot(self, cliente_id: str) -> Optional[Dict[str, Any]]:
        """Subconjunto de graduación que se copia en la factura, o None."""
        existe, datos = self.obtener(cliente_id)
        if not existe:
            return None
        return HistorialSnapshot.desde_historia(datos).to_dict()
