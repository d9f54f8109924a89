# ==============================================================================
# SERVICIO DE TICKETS
# ==============================================================================
# Genera el texto de ancho fijo (40 columnas) para impresoras térmicas.
# ==============================================================================

from typing import Any, Dict, List

ANCHO = 40


def _centrar(texto: str) -> str:
    return texto[:ANCHO].center(ANCHO).rstrip()


def _par(izquierda: str, derecha: str) -> str:
    """Texto a la izquierda y valor alineado a la derecha en la misma línea."""
    espacio = ANCHO - len(derecha) - 1
    if espacio < 1:
        # Valor que no cabe junto a la etiqueta: va debajo, partido en líneas de ANCHO
        partes = [derecha[i:i + ANCHO] for i in range(0, len(derecha), ANCHO)]
        return '\n'.join([izquierda[:ANCHO]] + partes)
    return f"{izquierda[:espacio]:<{espacio}} {derecha}"


def _monto(valor: Any) -> str:
    return f"$ {float(valor or 0):.2f}"


def _valor(valor: Any) -> str:
    return '-' if valor in (None, '') else str(valor)


class TicketService:
    """Renderiza facturas como tickets de texto."""

    def __init__(self, nombre_negocio: str = 'ÓPTICA', tasa_iva: float = 0.15):
        self.nombre_negocio = nombre_negocio
        self.tasa_iva = tasa_iva

    def render(self, factura: Dict[str, Any]) -> str:
        """
        Args:
            factura: Documento de factura

        Returns:
            Ticket con líneas de a lo sumo 40 caracteres
        """
        separador = '-' * ANCHO
        lineas: List[str] = [
            _centrar(self.nombre_negocio.upper()),
            _centrar('FACTURA'),
            separador,
            _par('No.', factura.get('idPersonalizado') or factura.get('id', '')),
            _par('Fecha', str(factura.get('fecha') or '')[:19].replace('T', ' ')),
        ]
        cliente = factura.get('clienteNombre') or factura.get('clienteId', '')
        lineas.append(f"Cliente: {cliente}"[:ANCHO])
        lineas.append(separador)

        for item in factura.get('items', []):
            lineas.append(str(item.get('nombre', ''))[:ANCHO])
            detalle = f"  {item.get('cantidad', 0)} x {float(item.get('precioUnitario', 0)):.2f}"
            lineas.append(_par(detalle, _monto(item.get('total'))))

        lineas.append(separador)
        lineas.append(_par('SUBTOTAL', _monto(factura.get('subtotal'))))
        lineas.append(_par(f"IVA {round(self.tasa_iva * 100):d}%", _monto(factura.get('iva'))))
        lineas.append(_par('TOTAL', _monto(factura.get('total'))))
        lineas.append(_par('ABONADO', _monto(factura.get('abonado'))))
        lineas.append(_par('SALDO', _monto(factura.get('saldoPendiente'))))
        lineas.append(_par('Pago', str(factura.get('metodoPago', ''))))
        if factura.get('codigoTransferencia'):
            lineas.append(_par('Transf.', str(factura['codigoTransferencia'])))
        lineas.append(_par('Estado', str(factura.get('estadoPago', ''))))

        snapshot = factura.get('historialSnapshot')
        if snapshot:
            lineas.append(separador)
            lineas.append(_centrar('GRADUACIÓN'))
            lineas.append(_par('', 'ESF    CIL    EJE'))
            for ojo, prefijo in (('OD', 'od'), ('OI', 'oi')):
                valores = ' '.join(
                    f"{_valor(snapshot.get(prefijo + campo)):>6}"
                    for campo in ('Esfera', 'Cilindro', 'Eje')
                )
                lineas.append(_par(ojo, valores))
            if snapshot.get('de'):
                lineas.append(_par('DE', str(snapshot['de'])))
            if snapshot.get('altura') not in (None, ''):
                lineas.append(_par('Altura', str(snapshot['altura'])))
            if snapshot.get('color'):
                lineas.append(_par('Color', str(snapshot['color'])))

        lineas.append(separador)
        lineas.append(_centrar('Gracias por su compra'))
        return '\n'.join(
            parte[:ANCHO] for linea in lineas for parte in linea.split('\n')
        ) + '\n'
