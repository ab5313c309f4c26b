# ==============================================================================
# Point d'entrée WSGI - Pour Gunicorn en production
# ==============================================================================
# Ce fichier est le point d'entrée des serveurs WSGI comme Gunicorn.
#
# USAGE :
#   gunicorn wsgi:app --bind 0.0.0.0:$PORT
#
# STRUCTURE DU PROJET :
#   repo_root/           <- Répertoire de travail (dans sys.path)
#   ├── wsgi.py          <- Ce fichier
#   ├── pyproject.toml
#   └── pharma_stock/    <- Paquet Python
#       ├── __init__.py
#       ├── main.py
#       ├── api/
#       ├── services/
#       └── repositories/
#
# Avec cette structure, les imports absolus fonctionnent sans toucher à
# sys.path :
#   from pharma_stock.main import create_app
# ==============================================================================

from pharma_stock.app_container import AppContainer
from pharma_stock.config import configure_logging
from pharma_stock.main import create_app

container = AppContainer()
configure_logging(container.settings.log_level)

# Variable 'app' exportée pour Gunicorn : la restauration de session démarre
# en arrière-plan dès l'import.
app = create_app(container)

if __name__ == '__main__':
    app.run(
        host=container.settings.host,
        port=container.settings.port,
        debug=container.settings.debug,
        threaded=True,
    )
