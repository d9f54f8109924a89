# ==============================================================================
# SERVICIO DE PRODUCTOS
# ==============================================================================
# Catálogo de armazones, lunas y accesorios.
#
# REGLAS:
#   - idInterno es un secuencial entero (máximo + 1), distinto del ID del documento
#   - grupo LUNAS → tipo_control_stock ILIMITADO (nunca se descuenta stock)
#   - Baja lógica con activo=False
# ==============================================================================

from typing import Any, Dict, List, Optional

from optica.errors import NotFound, StockInsuficiente, ValidationFailed
from optica.models.entities import Producto, TipoControlStock, tipo_control_para_grupo
from optica.performance_logger import profile_function
from optica.repositories import PRODUCTOS, DocumentStore


CAMPOS_PRODUCTO = (
    'codigo', 'nombre', 'modelo', 'color', 'grupo', 'stock', 'costo', 'pvp1',
    'iva', 'precioConIVA', 'proveedor', 'observacion',
)


def siguiente_id_interno(productos: List[Dict[str, Any]]) -> int:
    """Máximo idInterno numérico + 1 (1 si no hay ninguno)."""
    maximo = 0
    for p in productos:
        valor = p.get('idInterno')
        if isinstance(valor, int) and not isinstance(valor, bool) and valor > maximo:
            maximo = valor
    return maximo + 1


class ProductoService:
    """
    Servicio de catálogo de productos.

    Responsabilidades:
    - CRUD con baja lógica
    - Asignar idInterno y tipo_control_stock
    - Descontar stock de forma transaccional
    """

    def __init__(self, store: DocumentStore, audit_service=None, tasa_iva: float = 0.15):
        self.store = store
        self.productos = store.collection(PRODUCTOS)
        self.audit_service = audit_service
        self.tasa_iva = tasa_iva

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def listar(self, incluir_inactivos: bool = False) -> List[Dict[str, Any]]:
        productos = self.productos.list_all()
        if not incluir_inactivos:
            productos = [p for p in productos if p.get('activo') is not False]
        productos.sort(key=lambda p: (p.get('idInterno') or 0))
        return productos

    def obtener(self, producto_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFound: si el producto no existe
        """
        doc = self.productos.get_by_id(producto_id)
        if doc is None:
            raise NotFound(f"Producto {producto_id} no encontrado")
        return doc

    def obtener_por_codigo(self, codigo: str) -> Optional[Dict[str, Any]]:
        return self.productos.find_by('codigo', (codigo or '').strip())

    def codigo_existe(self, codigo: str, excluir_id: Optional[str] = None) -> bool:
        """Verifica si el código ya lo usa otro producto."""
        codigo = (codigo or '').strip()
        if not codigo:
            return False
        return any(p['id'] != excluir_id for p in self.productos.find_all_by('codigo', codigo))

    # =========================================================================
    # ESCRITURA
    # =========================================================================

    def _limpiar(self, campos: Dict[str, Any]) -> Dict[str, Any]:
        datos = {k: campos[k] for k in CAMPOS_PRODUCTO if k in campos}
        errores: Dict[str, Dict[str, bool]] = {}
        for campo in ('codigo', 'nombre', 'grupo', 'modelo', 'color', 'proveedor', 'observacion'):
            if isinstance(datos.get(campo), str):
                datos[campo] = datos[campo].strip()
        if 'grupo' in datos:
            datos['grupo'] = (datos['grupo'] or '').upper()
        for campo in ('stock',):
            if campo in datos:
                try:
                    datos[campo] = int(datos[campo] or 0)
                except (TypeError, ValueError, OverflowError):
                    errores[campo] = {'number': True}
                    continue
                if datos[campo] < 0:
                    errores[campo] = {'min': True}
        for campo in ('costo', 'pvp1', 'precioConIVA'):
            if campo in datos and datos[campo] is not None:
                try:
                    datos[campo] = round(float(datos[campo]), 2)
                except (TypeError, ValueError):
                    errores[campo] = {'number': True}
        if errores:
            raise ValidationFailed(errores)
        return datos

    def _precio_con_iva(self, pvp1: float, grava_iva: bool) -> float:
        return round(pvp1 * (1 + self.tasa_iva), 2) if grava_iva else round(pvp1, 2)

    @profile_function(name="Crear producto")
    def crear(self, campos: Dict[str, Any], usuario: Optional[str] = None) -> str:
        """
        Crea un producto asignando idInterno y tipo_control_stock.

        Returns:
            ID del documento creado

        Raises:
            ValidationFailed: faltan campos o el código ya existe
        """
        datos = self._limpiar(campos)
        errores: Dict[str, Dict[str, bool]] = {}
        for campo in ('codigo', 'nombre'):
            if not datos.get(campo):
                errores[campo] = {'required': True}

        with self.store.transaction():
            if 'codigo' not in errores and self.codigo_existe(datos['codigo']):
                errores['codigo'] = {'codigoTomado': True}
            if errores:
                raise ValidationFailed(errores)

            ahora = self.store.server_timestamp()
            tipo = tipo_control_para_grupo(datos.get('grupo'))
            producto = Producto.from_dict({
                **datos,
                'idInterno': siguiente_id_interno(self.productos.list_all()),
                'tipo_control_stock': tipo,
                'activo': True,
                'createdAt': ahora,
                'updatedAt': ahora,
            })
            if tipo == TipoControlStock.ILIMITADO.value:
                producto.stock = 0
            if producto.precioConIVA is None:
                producto.precioConIVA = self._precio_con_iva(producto.pvp1, producto.iva)
            producto_id = self.productos.add(producto.to_dict())

        if self.audit_service:
            self.audit_service.log_product(usuario, 'creado', producto_id, producto.nombre)
        return producto_id

    def actualizar(self, producto_id: str, campos: Dict[str, Any], usuario: Optional[str] = None) -> Dict[str, Any]:
        """
        Actualiza campos del producto. Si cambia el grupo se recalcula
        tipo_control_stock; si cambia el precio se recalcula precioConIVA.
        """
        datos = self._limpiar(campos)
        with self.store.transaction():
            actual = self.obtener(producto_id)
            if datos.get('codigo') and self.codigo_existe(datos['codigo'], excluir_id=producto_id):
                raise ValidationFailed({'codigo': {'codigoTomado': True}})
            if 'grupo' in datos:
                datos['tipo_control_stock'] = tipo_control_para_grupo(datos['grupo'])
            if ('pvp1' in datos or 'iva' in datos) and 'precioConIVA' not in datos:
                pvp1 = datos.get('pvp1', actual.get('pvp1') or 0)
                grava = datos.get('iva', actual.get('iva', True))
                datos['precioConIVA'] = self._precio_con_iva(float(pvp1), bool(grava))
            datos['updatedAt'] = self.store.server_timestamp()
            self.productos.update(producto_id, datos)
            producto = self.productos.get_by_id(producto_id)

        if self.audit_service:
            self.audit_service.log_product(usuario, 'actualizado', producto_id, producto.get('nombre', ''))
            if 'stock' in datos and datos['stock'] != actual.get('stock'):
                self.audit_service.log_stock_change(
                    usuario, producto_id, producto.get('nombre', ''),
                    int(actual.get('stock') or 0), datos['stock'], 'Edición de producto'
                )
        return producto

    def desactivar(self, producto_id: str, usuario: Optional[str] = None) -> None:
        producto = self.obtener(producto_id)
        self.productos.update(producto_id, {'activo': False, 'updatedAt': self.store.server_timestamp()})
        if self.audit_service:
            self.audit_service.log_product(usuario, 'desactivado', producto_id, producto.get('nombre', ''))

    def activar(self, producto_id: str, usuario: Optional[str] = None) -> None:
        producto = self.obtener(producto_id)
        self.productos.update(producto_id, {'activo': True, 'updatedAt': self.store.server_timestamp()})
        if self.audit_service:
            self.audit_service.log_product(usuario, 'activado', producto_id, producto.get('nombre', ''))

    # =========================================================================
    # STOCK
    # =========================================================================

    def es_ilimitado(self, producto: Dict[str, Any]) -> bool:
        """ILIMITADO por tipo, o por datos anteriores a la migración (grupo / stockIlimitado)."""
        return (
            producto.get('tipo_control_stock') == TipoControlStock.ILIMITADO.value
            or (producto.get('grupo') or '').upper() == 'LUNAS'
            or producto.get('stockIlimitado') is True
        )

    def descontar_stock(self, producto_id: str, cantidad: int) -> Optional[Dict[str, int]]:
        """
        Descuenta stock dentro de una transacción.

        Args:
            producto_id: ID del producto
            cantidad: Unidades a descontar (> 0)

        Returns:
            {'before', 'after'} o None si el producto no controla stock

        Raises:
            NotFound: si el producto no existe
            StockInsuficiente: si el stock es menor a la cantidad
        """
        if cantidad <= 0:
            return None
        with self.store.transaction():
            producto = self.obtener(producto_id)
            if self.es_ilimitado(producto):
                return None
            actual = int(producto.get('stock') or 0)
            if actual < cantidad:
                raise StockInsuficiente(
                    f"Stock insuficiente para {producto.get('nombre', producto_id)}. "
                    f"Disponible: {actual}, requerido: {cantidad}",
                    {'productoId': producto_id, 'disponible': actual, 'requerido': cantidad}
                )
            self.productos.update(producto_id, {
                'stock': actual - cantidad,
                'updatedAt': self.store.server_timestamp(),
            })
        return {'before': actual, 'after': actual - cantidad}
