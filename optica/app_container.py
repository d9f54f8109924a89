# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Punto único para obtener el almacén, los repositorios y los servicios.
# Facilita:
#   - Inyección de dependencias
#   - Testing (almacén en un directorio temporal y reloj fijo)
#   - Que rutas Flask y scripts de administración compartan la misma lógica
# ==============================================================================

from datetime import datetime
from typing import Callable, Optional

from optica.config import Settings, load_settings
from optica.repositories import AuditRepository, DocumentStore
from optica.services import (
    AuditService,
    CajaChicaService,
    CarritoService,
    ClienteService,
    FacturaService,
    HistorialClinicoService,
    ProductoService,
    TicketService,
    UserService,
    VentaService,
)


class AppContainer:
    """
    Contenedor de dependencias de la aplicación.

    Implementa el patrón Singleton para asegurar una única instancia
    de cada repositorio y servicio.

    Uso:
        container = AppContainer(settings)
        clientes = container.cliente_service
    """

    _instance: Optional['AppContainer'] = None

    def __new__(cls, settings: Optional[Settings] = None, clock: Optional[Callable[[], datetime]] = None):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            settings: Configuración (si no, se carga el archivo de credenciales)
            clock: Reloj del almacén (tests)
        """
        if self._initialized:
            return

        self.settings = settings or load_settings()
        self._clock = clock

        self._store: Optional[DocumentStore] = None
        self._audit_repo: Optional[AuditRepository] = None

        self._audit_service: Optional[AuditService] = None
        self._cliente_service: Optional[ClienteService] = None
        self._historial_service: Optional[HistorialClinicoService] = None
        self._producto_service: Optional[ProductoService] = None
        self._carrito_service: Optional[CarritoService] = None
        self._factura_service: Optional[FacturaService] = None
        self._caja_chica_service: Optional[CajaChicaService] = None
        self._venta_service: Optional[VentaService] = None
        self._ticket_service: Optional[TicketService] = None
        self._user_service: Optional[UserService] = None

        self._initialized = True

    # =========================================================================
    # PERSISTENCIA
    # =========================================================================

    @property
    def store(self) -> DocumentStore:
        """Almacén de documentos (singleton)."""
        if self._store is None:
            self._store = DocumentStore(self.settings.data_dir, clock=self._clock)
        return self._store

    @property
    def audit_repo(self) -> AuditRepository:
        if self._audit_repo is None:
            self._audit_repo = AuditRepository(self.settings.data_dir, clock=self._clock)
        return self._audit_repo

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def audit_service(self) -> AuditService:
        if self._audit_service is None:
            self._audit_service = AuditService(self.audit_repo)
        return self._audit_service

    @property
    def cliente_service(self) -> ClienteService:
        if self._cliente_service is None:
            self._cliente_service = ClienteService(self.store, self.audit_service)
        return self._cliente_service

    @property
    def historial_service(self) -> HistorialClinicoService:
        if self._historial_service is None:
            self._historial_service = HistorialClinicoService(
                self.store,
                self.cliente_service,
                self.audit_service
            )
        return self._historial_service

    @property
    def producto_service(self) -> ProductoService:
        if self._producto_service is None:
            self._producto_service = ProductoService(
                self.store,
                self.audit_service,
                tasa_iva=self.settings.tasa_iva
            )
        return self._producto_service

    @property
    def carrito_service(self) -> CarritoService:
        if self._carrito_service is None:
            self._carrito_service = CarritoService(
                self.producto_service,
                self.cliente_service,
                tasa_iva=self.settings.tasa_iva
            )
        return self._carrito_service

    @property
    def caja_chica_service(self) -> CajaChicaService:
        if self._caja_chica_service is None:
            self._caja_chica_service = CajaChicaService(self.store, self.audit_service)
        return self._caja_chica_service

    @property
    def factura_service(self) -> FacturaService:
        if self._factura_service is None:
            self._factura_service = FacturaService(
                self.store,
                self.audit_service,
                self.caja_chica_service,
                tasa_iva=self.settings.tasa_iva
            )
        return self._factura_service

    @property
    def venta_service(self) -> VentaService:
        if self._venta_service is None:
            self._venta_service = VentaService(
                self.store,
                self.cliente_service,
                self.historial_service,
                self.producto_service,
                self.factura_service,
                self.caja_chica_service,
                self.audit_service
            )
        return self._venta_service

    @property
    def ticket_service(self) -> TicketService:
        if self._ticket_service is None:
            self._ticket_service = TicketService(tasa_iva=self.settings.tasa_iva)
        return self._ticket_service

    @property
    def user_service(self) -> UserService:
        if self._user_service is None:
            self._user_service = UserService(self.store, self.audit_service)
        return self._user_service

    # =========================================================================
    # UTILIDADES
    # =========================================================================

    @classmethod
    def get_instance(cls, settings: Optional[Settings] = None) -> 'AppContainer':
        if cls._instance is None:
            return cls(settings)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Elimina la instancia singleton (útil para tests)."""
        cls._instance = None


def get_container(settings: Optional[Settings] = None) -> AppContainer:
    """Obtiene el contenedor de dependencias global."""
    return AppContainer.get_instance(settings)
