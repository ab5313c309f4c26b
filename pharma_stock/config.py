# ==============================================================================
# CONFIGURATION
# ==============================================================================
# Toutes les valeurs viennent de variables d'environnement avec des valeurs
# par défaut pour le développement local.
#
#   PHARMA_API_URL      URL de base du backend REST
#   PHARMA_API_TIMEOUT  Délai max d'un appel HTTP (secondes)
#   PHARMA_DATA_DIR     Dossier du fichier de session
#   PHARMA_SECRET_KEY   Clé secrète Flask (OBLIGATOIRE en production)
#   PHARMA_LOG_LEVEL    Niveau de log (INFO, DEBUG, ...)
#   FLASK_HOST / FLASK_PORT / FLASK_DEBUG
# ==============================================================================

import logging
import os
from dataclasses import dataclass

_DEFAULT_SECRET = "pharma_stock_dev_secret_key_change_in_production"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class Settings:
    """Paramètres de l'application."""
    api_url: str = "http://localhost:8000/api"
    api_timeout: float = 10.0
    data_dir: str = os.path.join(os.path.expanduser("~"), ".pharma_stock")
    secret_key: str = _DEFAULT_SECRET
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False

    @property
    def session_file(self) -> str:
        return os.path.join(self.data_dir, 'session.json')

    @classmethod
    def from_env(cls) -> 'Settings':
        """Construit les paramètres depuis l'environnement."""
        defaults = cls()
        return cls(
            api_url=os.environ.get('PHARMA_API_URL', defaults.api_url).rstrip('/'),
            api_timeout=float(os.environ.get('PHARMA_API_TIMEOUT', defaults.api_timeout)),
            data_dir=os.environ.get('PHARMA_DATA_DIR', defaults.data_dir),
            secret_key=os.environ.get('PHARMA_SECRET_KEY') or _DEFAULT_SECRET,
            log_level=os.environ.get('PHARMA_LOG_LEVEL', defaults.log_level).upper(),
            host=os.environ.get('FLASK_HOST', defaults.host),
            port=int(os.environ.get('FLASK_PORT', defaults.port)),
            debug=os.environ.get('FLASK_DEBUG', '0') == '1',
        )

    @property
    def uses_default_secret(self) -> bool:
        return self.secret_key == _DEFAULT_SECRET


def configure_logging(level: str = "INFO") -> None:
    """Configure le logger racine (format commun à tous les modules)."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
