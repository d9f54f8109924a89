# ==============================================================================
# ENTIDADES DEL DOMINIO - Definiciones de dataclasses
# ==============================================================================
# Cada entidad representa un concepto del negocio de la óptica.
# Los nombres de campo almacenados conservan el formato camelCase de los
# documentos existentes (cedula, fechaNacimiento, idPersonalizado...).
# ==============================================================================

from dataclasses import dataclass, field, fields as dc_fields
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class Rol(IntEnum):
    """Roles numéricos de usuario."""
    ADMINISTRADOR = 1
    OPERADOR = 2


class EstadoPago(str, Enum):
    PENDIENTE = "PENDIENTE"
    PAGADA = "PAGADA"


class TipoControlStock(str, Enum):
    """NORMAL descuenta stock; ILIMITADO (lunas) nunca se agota."""
    NORMAL = "NORMAL"
    ILIMITADO = "ILIMITADO"


class EstadoCaja(str, Enum):
    ABIERTA = "ABIERTA"
    CERRADA = "CERRADA"


class TipoMovimiento(str, Enum):
    INGRESO = "INGRESO"
    EGRESO = "EGRESO"


class MetodoPago(str, Enum):
    """Métodos de pago aceptados."""
    EFECTIVO = "EFECTIVO"
    TARJETA = "TARJETA"
    TRANSFERENCIA = "TRANSFERENCIA"


class EstadoCarrito(str, Enum):
    VACIO = "VACIO"
    EN_CONSTRUCCION = "EN_CONSTRUCCION"
    LISTO = "LISTO"


class AuditType(str, Enum):
    """Tipos de eventos de auditoría."""
    CLIENTE = "CLIENTE"
    HISTORIA = "HISTORIA"
    VENTA = "VENTA"
    PAGO = "PAGO"
    STOCK = "STOCK"
    PRODUCTO = "PRODUCTO"
    CAJA = "CAJA"
    SISTEMA = "SISTEMA"


# Grupo de productos con stock ilimitado
GRUPO_LUNAS = 'LUNAS'


def tipo_control_para_grupo(grupo: Optional[str]) -> str:
    """Tipo de control de stock que corresponde a un grupo de producto."""
    if (grupo or '').strip().upper() == GRUPO_LUNAS:
        return TipoControlStock.ILIMITADO.value
    return TipoControlStock.NORMAL.value


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in dc_fields(cls)}
    return {k: v for k, v in data.items() if k in names}


class _Documento:
    """Serialización común de entidades almacenadas."""

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia (sin 'id')."""
        data = {}
        for f in dc_fields(self):
            if f.name == 'id':
                continue
            value = getattr(self, f.name)
            data[f.name] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Crea instancia desde diccionario, ignorando campos desconocidos."""
        return cls(**_known_fields(cls, data or {}))


# ==============================================================================
# CLIENTES
# ==============================================================================

@dataclass
class Cliente(_Documento):
    """
    Cliente de la óptica.

    Cédula y email son únicos entre los clientes activos.
    Nunca se elimina físicamente: activo=False lo oculta.
    """
    nombres: str = ''
    apellidos: str = ''
    cedula: str = ''
    telefono: str = ''
    email: str = ''
    fechaNacimiento: Optional[str] = None
    direccion: str = ''
    pais: str = 'Ecuador'
    provincia: str = ''
    ciudad: str = ''
    activo: bool = True
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    id: Optional[str] = None

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombres} {self.apellidos}".strip()


# Campos editables del cliente
CAMPOS_CLIENTE = (
    'nombres', 'apellidos', 'cedula', 'telefono', 'email', 'fechaNacimiento',
    'direccion', 'pais', 'provincia', 'ciudad',
)


# ==============================================================================
# HISTORIA CLÍNICA
# ==============================================================================

@dataclass
class HistoriaClinica(_Documento):
    """
    Historia clínica (refracción y medidas de armazón) de un cliente.

    Relación uno a uno: el documento canónico se guarda con ID = cliente.
    createdAt se fija en la primera escritura y nunca cambia.
    """
    clienteId: str = ''
    # Ojo derecho
    odEsfera: Optional[float] = None
    odCilindro: Optional[float] = None
    odEje: Optional[int] = None
    odAVSC: str = ''
    odAVCC: str = ''
    # Ojo izquierdo
    oiEsfera: Optional[float] = None
    oiCilindro: Optional[float] = None
    oiEje: Optional[int] = None
    oiAVSC: str = ''
    oiAVCC: str = ''
    # Generales
    dp: Optional[float] = None
    add: Optional[float] = None
    de: str = ''
    altura: Optional[float] = None
    color: str = ''
    observacion: str = ''
    doctor: str = ''
    # Armazón
    armazonH: Optional[float] = None
    armazonV: Optional[float] = None
    armazonDM: Optional[float] = None
    armazonP: Optional[float] = None
    armazonTipo: str = ''
    armazonDNP_OD: Optional[float] = None
    armazonDNP_OI: Optional[float] = None
    armazonAltura: Optional[float] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    id: Optional[str] = None


CAMPOS_HISTORIA = tuple(
    f.name for f in dc_fields(HistoriaClinica)
    if f.name not in ('clienteId', 'createdAt', 'updatedAt', 'id')
)

CAMPOS_SNAPSHOT = (
    'odEsfera', 'odCilindro', 'odEje',
    'oiEsfera', 'oiCilindro', 'oiEje',
    'de', 'altura', 'color', 'observacion',
)


@dataclass
class HistorialSnapshot(_Documento):
    """Copia de la graduación guardada en la factura al momento de la venta."""
    odEsfera: Optional[float] = None
    odCilindro: Optional[float] = None
    odEje: Optional[int] = None
    oiEsfera: Optional[float] = None
    oiCilindro: Optional[float] = None
    oiEje: Optional[int] = None
    de: str = ''
    altura: Optional[float] = None
    color: str = ''
    observacion: str = ''

    @classmethod
    def desde_historia(cls, datos: Dict[str, Any]) -> 'HistorialSnapshot':
        return cls(**{k: datos.get(k, getattr(cls, k)) for k in CAMPOS_SNAPSHOT})


# ==============================================================================
# PRODUCTOS
# ==============================================================================

@dataclass
class Producto(_Documento):
    """
    Producto del catálogo.

    Attributes:
        idInterno: Secuencial entero, distinto del ID del documento
        tipo_control_stock: ILIMITADO si grupo == LUNAS, NORMAL en otro caso
    """
    codigo: str = ''
    nombre: str = ''
    modelo: str = ''
    color: str = ''
    grupo: str = ''
    stock: int = 0
    costo: float = 0.0
    pvp1: float = 0.0
    iva: bool = True
    precioConIVA: Optional[float] = None
    proveedor: str = ''
    observacion: str = ''
    activo: bool = True
    idInterno: Optional[int] = None
    tipo_control_stock: str = TipoControlStock.NORMAL.value
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    id: Optional[str] = None

    @property
    def stock_ilimitado(self) -> bool:
        return self.tipo_control_stock == TipoControlStock.ILIMITADO.value


# ==============================================================================
# VENTAS Y FACTURAS
# ==============================================================================

@dataclass
class ItemVenta(_Documento):
    """Línea del carrito/factura. Invariante: total == cantidad * precioUnitario."""
    productoId: str = ''
    nombre: str = ''
    tipo: str = ''
    cantidad: int = 1
    precioUnitario: float = 0.0
    total: float = 0.0

    def recalcular(self) -> None:
        self.total = round(self.cantidad * self.precioUnitario, 2)


@dataclass
class Factura(_Documento):
    """
    Factura emitida a un cliente.

    idPersonalizado es el secuencial de 10 dígitos y también la clave del documento.
    """
    clienteId: str = ''
    clienteNombre: str = ''
    historialSnapshot: Optional[Dict[str, Any]] = None
    items: List[Dict[str, Any]] = field(default_factory=list)
    subtotal: float = 0.0
    iva: float = 0.0
    total: float = 0.0
    metodoPago: str = MetodoPago.EFECTIVO.value
    codigoTransferencia: Optional[str] = None
    usuarioId: str = ''
    cajaChicaId: Optional[str] = None
    idPersonalizado: Optional[str] = None
    fecha: Optional[str] = None
    abonado: float = 0.0
    saldoPendiente: float = 0.0
    estadoPago: str = EstadoPago.PENDIENTE.value
    pagos: List[Dict[str, Any]] = field(default_factory=list)
    activo: bool = True
    id: Optional[str] = None


# ==============================================================================
# CAJA CHICA
# ==============================================================================

@dataclass
class CajaChica(_Documento):
    """Caja de efectivo diaria. Solo una por fecha."""
    fecha: str = ''
    monto_inicial: float = 0.0
    monto_actual: float = 0.0
    estado: str = EstadoCaja.ABIERTA.value
    usuario_id: Optional[str] = None
    usuario_nombre: Optional[str] = None
    observacion: str = ''
    activo: bool = True
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    cerrado_en: Optional[str] = None
    id: Optional[str] = None


@dataclass
class MovimientoCajaChica(_Documento):
    caja_chica_id: str = ''
    fecha: Optional[str] = None
    tipo: str = TipoMovimiento.INGRESO.value
    descripcion: str = ''
    monto: float = 0.0
    saldo_anterior: float = 0.0
    saldo_nuevo: float = 0.0
    comprobante: Optional[str] = None
    factura_id: Optional[str] = None
    usuario_id: Optional[str] = None
    createdAt: Optional[str] = None
    id: Optional[str] = None


# ==============================================================================
# USUARIOS
# ==============================================================================

@dataclass
class Usuario(_Documento):
    """
    Usuario del sistema.

    Attributes:
        password: Hash Werkzeug (nunca texto plano)
        rol: 1 ADMINISTRADOR, 2 OPERADOR
        claims: Atributos de sesión, p.ej. {"sucursal": "PASAJE"}
    """
    email: str = ''
    nombre: str = ''
    password: str = ''
    rol: int = Rol.OPERADOR.value
    activo: bool = True
    claims: Dict[str, Any] = field(default_factory=dict)
    createdAt: Optional[str] = None
    id: Optional[str] = None

    def is_admin(self) -> bool:
        return self.rol == Rol.ADMINISTRADOR
