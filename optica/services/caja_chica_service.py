# ==============================================================================
# SERVICIO DE CAJA CHICA
# ==============================================================================
# Caja de efectivo diaria. Una sola caja por fecha; las ventas solo se
# registran con una caja ABIERTA del día (SesionCaja).
#
# Cada movimiento guarda saldo_anterior y saldo_nuevo para trazabilidad.
# ==============================================================================

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from optica.errors import CajaNoAbierta, CajaYaAbierta, NotFound, ValidationFailed
from optica.models.entities import CajaChica, EstadoCaja, MovimientoCajaChica, TipoMovimiento
from optica.repositories import CAJAS_CHICAS, MOVIMIENTOS_CAJA, DocumentStore


@dataclass(frozen=True)
class SesionCaja:
    """
    Prueba de que hay una caja abierta hoy.

    Se obtiene con CajaChicaService.sesion_abierta_hoy() y se pasa
    explícitamente a las operaciones que registran ventas.
    """
    caja_id: str
    fecha: str
    usuario_id: Optional[str] = None


class CajaChicaService:
    """
    Servicio de caja chica.

    Responsabilidades:
    - Abrir la caja del día (una por fecha)
    - Registrar ingresos y egresos
    - Cerrar la caja y resumir movimientos
    """

    def __init__(self, store: DocumentStore, audit_service=None):
        self.store = store
        self.cajas = store.collection(CAJAS_CHICAS)
        self.movimientos = store.collection(MOVIMIENTOS_CAJA)
        self.audit_service = audit_service

    def _hoy(self) -> str:
        return self.store.today().isoformat()

    def _caja_del_dia(self, fecha: str) -> Optional[Dict[str, Any]]:
        for caja in self.cajas.find_all_by('fecha', fecha):
            if caja.get('activo') is not False:
                return caja
        return None

    def obtener(self, caja_id: str) -> Dict[str, Any]:
        caja = self.cajas.get_by_id(caja_id)
        if caja is None:
            raise NotFound(f"Caja chica {caja_id} no encontrada")
        return caja

    def listar(self) -> List[Dict[str, Any]]:
        cajas = [c for c in self.cajas.list_all() if c.get('activo') is not False]
        cajas.sort(key=lambda c: c.get('fecha') or '', reverse=True)
        return cajas

    # =========================================================================
    # APERTURA Y SESIÓN
    # =========================================================================

    def abrir(self, monto_inicial: float, usuario: Optional[str] = None, observacion: str = '') -> str:
        """
        Abre la caja del día.

        Raises:
            CajaYaAbierta: si ya existe una caja para hoy (abierta o cerrada)
            ValidationFailed: monto inicial negativo o no numérico
        """
        try:
            monto = round(float(monto_inicial), 2)
        except (TypeError, ValueError):
            raise ValidationFailed({'monto_inicial': {'number': True}})
        if monto < 0:
            raise ValidationFailed({'monto_inicial': {'min': True}})

        with self.store.transaction():
            hoy = self._hoy()
            if self._caja_del_dia(hoy) is not None:
                raise CajaYaAbierta(f"Ya existe una caja chica para {hoy}")
            ahora = self.store.server_timestamp()
            caja = CajaChica(
                fecha=hoy,
                monto_inicial=monto,
                monto_actual=monto,
                estado=EstadoCaja.ABIERTA.value,
                usuario_id=usuario,
                observacion=observacion,
                createdAt=ahora,
                updatedAt=ahora,
            )
            caja_id = self.cajas.add(caja.to_dict())

        if self.audit_service:
            self.audit_service.log_caja(usuario, caja_id, f"Caja chica {hoy} abierta con $ {monto:.2f}",
                                        {'monto_inicial': monto})
        return caja_id

    def caja_abierta_hoy(self) -> Optional[Dict[str, Any]]:
        caja = self._caja_del_dia(self._hoy())
        if caja is None or caja.get('estado') != EstadoCaja.ABIERTA.value:
            return None
        return caja

    def sesion_abierta_hoy(self) -> SesionCaja:
        """
        Raises:
            CajaNoAbierta: si no hay caja ABIERTA para hoy
        """
        caja = self.caja_abierta_hoy()
        if caja is None:
            raise CajaNoAbierta("Debe abrir la caja chica del día antes de registrar ventas")
        return SesionCaja(caja_id=caja['id'], fecha=caja['fecha'], usuario_id=caja.get('usuario_id'))

    def validar_sesion(self, sesion: Optional[SesionCaja]) -> Dict[str, Any]:
        """
        Verifica que la sesión corresponda a una caja abierta de hoy.

        Raises:
            CajaNoAbierta: sesión ausente, cerrada o de otro día
        """
        if sesion is None:
            raise CajaNoAbierta("No hay sesión de caja")
        caja = self.cajas.get_by_id(sesion.caja_id)
        if (
            caja is None
            or caja.get('activo') is False
            or caja.get('estado') != EstadoCaja.ABIERTA.value
            or caja.get('fecha') != self._hoy()
        ):
            raise CajaNoAbierta("La caja chica de la sesión no está abierta hoy")
        return caja

    # =========================================================================
    # MOVIMIENTOS
    # =========================================================================

    def registrar_movimiento(
        self,
        caja_id: str,
        tipo: str,
        monto: float,
        descripcion: str,
        usuario: Optional[str] = None,
        factura_id: Optional[str] = None,
        comprobante: Optional[str] = None
    ) -> str:
        """
        Registra un ingreso o egreso y actualiza monto_actual.

        Returns:
            ID del movimiento

        Raises:
            NotFound: caja inexistente
            CajaNoAbierta: la caja está cerrada
            ValidationFailed: tipo o monto inválidos, o egreso mayor al saldo
        """
        tipo = (tipo or '').upper()
        if tipo not in (TipoMovimiento.INGRESO.value, TipoMovimiento.EGRESO.value):
            raise ValidationFailed({'tipo': {'pattern': True}})
        try:
            monto = round(float(monto), 2)
        except (TypeError, ValueError):
            raise ValidationFailed({'monto': {'number': True}})
        if monto <= 0:
            raise ValidationFailed({'monto': {'min': True}})

        with self.store.transaction():
            caja = self.obtener(caja_id)
            if caja.get('estado') != EstadoCaja.ABIERTA.value:
                raise CajaNoAbierta(f"La caja chica {caja_id} está cerrada")
            anterior = round(float(caja.get('monto_actual') or 0), 2)
            if tipo == TipoMovimiento.EGRESO.value:
                if monto > anterior:
                    raise ValidationFailed({'monto': {'saldoInsuficiente': True}})
                nuevo = round(anterior - monto, 2)
            else:
                nuevo = round(anterior + monto, 2)

            ahora = self.store.server_timestamp()
            movimiento = MovimientoCajaChica(
                caja_chica_id=caja_id,
                fecha=ahora,
                tipo=tipo,
                descripcion=descripcion,
                monto=monto,
                saldo_anterior=anterior,
                saldo_nuevo=nuevo,
                comprobante=comprobante,
                factura_id=factura_id,
                usuario_id=usuario,
                createdAt=ahora,
            )
            movimiento_id = self.movimientos.add(movimiento.to_dict())
            self.cajas.update(caja_id, {'monto_actual': nuevo, 'updatedAt': ahora})
        return movimiento_id

    def movimientos_de(self, caja_id: str) -> List[Dict[str, Any]]:
        movimientos = self.movimientos.find_all_by('caja_chica_id', caja_id)
        movimientos.sort(key=lambda m: m.get('createdAt') or '')
        return movimientos

    # =========================================================================
    # CIERRE Y RESUMEN
    # =========================================================================

    def resumen(self, caja_id: str) -> Dict[str, Any]:
        """
        Returns:
            {caja_id, total_ingresos, total_egresos, saldo_final, cantidad_movimientos}
        """
        caja = self.obtener(caja_id)
        movimientos = self.movimientos_de(caja_id)
        ingresos = sum(m.get('monto', 0) for m in movimientos if m.get('tipo') == TipoMovimiento.INGRESO.value)
        egresos = sum(m.get('monto', 0) for m in movimientos if m.get('tipo') == TipoMovimiento.EGRESO.value)
        return {
            'caja_id': caja_id,
            'total_ingresos': round(ingresos, 2),
            'total_egresos': round(egresos, 2),
            'saldo_final': round(float(caja.get('monto_inicial') or 0) + ingresos - egresos, 2),
            'cantidad_movimientos': len(movimientos),
        }

    def cerrar(self, caja_id: str, monto_final: Optional[float] = None, usuario: Optional[str] = None) -> Dict[str, Any]:
        """
        Cierra la caja. Si se indica el efectivo contado (monto_final),
        se guarda junto con la diferencia respecto al saldo calculado.

        Raises:
            CajaNoAbierta: si ya estaba cerrada
            ValidationFailed: monto_final negativo o no numérico
        """
        contado = None
        if monto_final is not None:
            try:
                contado = round(float(monto_final), 2)
            except (TypeError, ValueError):
                raise ValidationFailed({'monto_final': {'number': True}})
            if contado < 0:
                raise ValidationFailed({'monto_final': {'min': True}})

        with self.store.transaction():
            caja = self.obtener(caja_id)
            if caja.get('estado') != EstadoCaja.ABIERTA.value:
                raise CajaNoAbierta(f"La caja chica {caja_id} ya está cerrada")
            resumen = self.resumen(caja_id)
            ahora = self.store.server_timestamp()
            cambios: Dict[str, Any] = {
                'estado': EstadoCaja.CERRADA.value,
                'cerrado_en': ahora,
                'updatedAt': ahora,
            }
            if contado is not None:
                cambios['monto_final'] = contado
                cambios['diferencia'] = round(contado - resumen['saldo_final'], 2)
                resumen['diferencia'] = cambios['diferencia']
            self.cajas.update(caja_id, cambios)

        if self.audit_service:
            self.audit_service.log_caja(
                usuario, caja_id,
                f"Caja chica {caja.get('fecha')} cerrada - Saldo: $ {resumen['saldo_final']:.2f}",
                resumen
            )
        return resumen
