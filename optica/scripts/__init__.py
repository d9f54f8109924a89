# Scripts de administración (CLI optica-admin)
