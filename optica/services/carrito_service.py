# ==============================================================================
# SERVICIO DE CARRITO
# ==============================================================================
# Carrito de venta en memoria y su persistencia en la sesión de Flask.
#
# ESTADOS: VACIO → EN_CONSTRUCCION → LISTO (tiene items y cliente asignado)
# Cada mutación recalcula subtotal, IVA y total desde cero:
#   subtotal = Σ item.total
#   iva      = round(subtotal * tasa, 2)
#   total    = round(subtotal + iva, 2)
# ==============================================================================

from typing import Any, Dict, List, Optional

from flask import session

from optica.errors import NotFound, StockInsuficiente
from optica.models.entities import EstadoCarrito, ItemVenta


class Carrito:
    """
    Carrito de venta.

    Uso:
        carrito = Carrito(tasa_iva=0.15)
        item = carrito.agregar_producto({'id': 'p1', 'nombre': 'Armazón', 'pvp1': 10})
        carrito.cambiar_cantidad(item, 3)
    """

    def __init__(self, tasa_iva: float = 0.15):
        self.tasa_iva = tasa_iva
        self.items: List[ItemVenta] = []
        self.cliente_id: Optional[str] = None
        self.cliente_nombre: str = ''
        self.subtotal = 0.0
        self.iva = 0.0
        self.total = 0.0

    @property
    def estado(self) -> str:
        if not self.items:
            return EstadoCarrito.VACIO.value
        if self.cliente_id:
            return EstadoCarrito.LISTO.value
        return EstadoCarrito.EN_CONSTRUCCION.value

    def buscar_item(self, producto_id: str) -> Optional[ItemVenta]:
        for item in self.items:
            if item.productoId == producto_id:
                return item
        return None

    def agregar_producto(self, producto: Dict[str, Any]) -> ItemVenta:
        """
        Agrega una unidad del producto: incrementa su línea si ya existe,
        si no crea una con cantidad 1.
        """
        producto_id = str(producto.get('id'))
        item = self.buscar_item(producto_id)
        if item is not None:
            item.cantidad += 1
            item.recalcular()
        else:
            precio = float(producto.get('precio', producto.get('pvp1')) or 0)
            item = ItemVenta(
                productoId=producto_id,
                nombre=producto.get('nombre', ''),
                tipo=producto.get('tipo') or producto.get('grupo') or '',
                cantidad=1,
                precioUnitario=precio,
                total=round(precio, 2),
            )
            self.items.append(item)
        self.recalcular()
        return item

    def cambiar_cantidad(self, item: ItemVenta, cantidad: Any) -> None:
        """Fija la cantidad de una línea; nunca menor a 1."""
        try:
            n = int(cantidad)
        except (TypeError, ValueError, OverflowError):
            n = 1
        item.cantidad = max(1, n)
        item.recalcular()
        self.recalcular()

    def quitar_item(self, item: ItemVenta) -> None:
        """Quita la línea (por identidad, no por igualdad de valores)."""
        self.items = [i for i in self.items if i is not item]
        self.recalcular()

    def asignar_cliente(self, cliente_id: Optional[str], nombre: str = '') -> None:
        self.cliente_id = cliente_id
        self.cliente_nombre = nombre

    def vaciar(self) -> None:
        self.items = []
        self.cliente_id = None
        self.cliente_nombre = ''
        self.recalcular()

    def recalcular(self) -> None:
        self.subtotal = round(sum(i.total for i in self.items), 2)
        self.iva = round(self.subtotal * self.tasa_iva, 2)
        self.total = round(self.subtotal + self.iva, 2)

    # =========================================================================
    # SERIALIZACIÓN (sesión)
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': [i.to_dict() for i in self.items],
            'cliente_id': self.cliente_id,
            'cliente_nombre': self.cliente_nombre,
            'tasa_iva': self.tasa_iva,
            'subtotal': self.subtotal,
            'iva': self.iva,
            'total': self.total,
            'estado': self.estado,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], tasa_iva: Optional[float] = None) -> 'Carrito':
        """Reconstruye el carrito y recalcula los totales (no confía en los guardados)."""
        data = data or {}
        carrito = cls(tasa_iva if tasa_iva is not None else data.get('tasa_iva', 0.15))
        for raw in data.get('items', []):
            item = ItemVenta.from_dict(raw)
            item.cantidad = max(1, int(item.cantidad or 1))
            item.recalcular()
            carrito.items.append(item)
        carrito.cliente_id = data.get('cliente_id')
        carrito.cliente_nombre = data.get('cliente_nombre', '')
        carrito.recalcular()
        return carrito


class CarritoService:
    """
    Servicio para gestión del carrito de compras.

    Responsabilidades:
    - Agregar/quitar items del carrito
    - Validar stock disponible
    - Asignar el cliente de la venta

    El carrito se almacena en session['carrito'].
    """

    def __init__(self, producto_service, cliente_service=None, tasa_iva: float = 0.15):
        self.producto_service = producto_service
        self.cliente_service = cliente_service
        self.tasa_iva = tasa_iva

    def _cargar(self) -> Carrito:
        return Carrito.from_dict(session.get('carrito'), self.tasa_iva)

    def _guardar(self, carrito: Carrito) -> Dict[str, Any]:
        data = carrito.to_dict()
        session['carrito'] = data
        session.modified = True
        return data

    def carrito(self) -> Carrito:
        return self._cargar()

    def ver(self) -> Dict[str, Any]:
        return self._cargar().to_dict()

    def _item(self, carrito: Carrito, producto_id: str) -> ItemVenta:
        item = carrito.buscar_item(str(producto_id))
        if item is None:
            raise NotFound(f"El producto {producto_id} no está en el carrito")
        return item

    def _verificar_stock(self, producto: Dict[str, Any], cantidad: int) -> None:
        if self.producto_service.es_ilimitado(producto):
            return
        disponible = int(producto.get('stock') or 0)
        if cantidad > disponible:
            raise StockInsuficiente(
                f"Stock insuficiente para {producto.get('nombre', '')}. Disponible: {disponible}",
                {'productoId': producto['id'], 'disponible': disponible, 'requerido': cantidad}
            )

    def agregar(self, producto_id: str) -> Dict[str, Any]:
        """
        Agrega una unidad de un producto activo.

        Raises:
            NotFound: producto inexistente o desactivado
            StockInsuficiente: no alcanza el stock
        """
        producto = self.producto_service.obtener(producto_id)
        if producto.get('activo') is False:
            raise NotFound(f"Producto {producto_id} no disponible")
        carrito = self._cargar()
        actual = carrito.buscar_item(str(producto_id))
        self._verificar_stock(producto, (actual.cantidad if actual else 0) + 1)
        carrito.agregar_producto(producto)
        return self._guardar(carrito)

    def cambiar_cantidad(self, producto_id: str, cantidad: Any) -> Dict[str, Any]:
        carrito = self._cargar()
        item = self._item(carrito, producto_id)
        carrito.cambiar_cantidad(item, cantidad)
        self._verificar_stock(self.producto_service.obtener(producto_id), item.cantidad)
        return self._guardar(carrito)

    def quitar(self, producto_id: str) -> Dict[str, Any]:
        carrito = self._cargar()
        carrito.quitar_item(self._item(carrito, producto_id))
        return self._guardar(carrito)

    def asignar_cliente(self, cliente_id: str) -> Dict[str, Any]:
        """Asigna el cliente (debe existir y estar activo)."""
        cliente = self.cliente_service.obtener(cliente_id)
        if not cliente.activo:
            raise NotFound(f"Cliente {cliente_id} desactivado")
        carrito = self._cargar()
        carrito.asignar_cliente(cliente_id, cliente.nombre_completo)
        return self._guardar(carrito)

    def vaciar(self) -> Dict[str, Any]:
        session.pop('carrito', None)
        session.modified = True
        return Carrito(self.tasa_iva).to_dict()
