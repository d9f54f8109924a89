# ==============================================================================
# ÓPTICA - Gestión de clientes, historia clínica, ventas y caja chica
# ==============================================================================
# Paquete principal. Estructura:
#   main.py           → API Flask (create_app)
#   app_container.py  → Inyección de dependencias
#   config.py         → Archivo de credenciales y Settings
#   errors.py         → Taxonomía de errores
#   models/           → Entidades (dataclasses)
#   repositories/     → Almacén de documentos JSON
#   services/         → Lógica de negocio
#   scripts/          → CLI optica-admin
# ==============================================================================

__version__ = "1.0.0"
