# ==============================================================================
# WSGI Entry Point - Para Gunicorn en producción
# ==============================================================================
# USO:
#   export OPTICA_CREDENCIALES=/ruta/a/credenciales.json
#   gunicorn wsgi:app --bind 0.0.0.0:$PORT
#
# ESTRUCTURA DEL PROYECTO:
#   repo_root/           <- Directorio de trabajo (en sys.path automáticamente)
#   ├── wsgi.py          <- Este archivo
#   ├── pyproject.toml
#   └── optica/          <- Paquete Python
#       ├── main.py
#       ├── services/
#       └── repositories/
#
# Sin archivo de credenciales la app no arranca (StartupConfigError).
# ==============================================================================

from optica.main import create_app

app = create_app()

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
