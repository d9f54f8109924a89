# ==============================================================================
# PAGINACIÓN EN MEMORIA
# ==============================================================================

import math
from typing import Any, Dict, List


def paginar(items: List[Any], pagina: int = 1, por_pagina: int = 20) -> Dict[str, Any]:
    """
    Corta una lista ya ordenada en páginas.

    Args:
        items: Lista completa
        pagina: Número de página (desde 1, se ajusta al rango válido)
        por_pagina: Elementos por página (mínimo 1)

    Returns:
        {items, total, pagina, paginas}
    """
    por_pagina = max(1, int(por_pagina))
    total = len(items)
    paginas = max(1, math.ceil(total / por_pagina))
    pagina = min(max(1, int(pagina)), paginas)
    inicio = (pagina - 1) * por_pagina
    return {
        'items': items[inicio:inicio + por_pagina],
        'total': total,
        'pagina': pagina,
        'paginas': paginas,
    }
