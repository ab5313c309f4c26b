# ==============================================================================
# DÉPÔT DE BASE - Accès commun aux fichiers JSON
# ==============================================================================
# Un dépôt = un fichier JSON.
#   - lecture tolérante : fichier absent ou illisible → contenu vide
#   - écriture atomique : fichier temporaire dans le même dossier, puis
#     os.replace
#   - un verrou partagé par tous les dépôts du processus
# ==============================================================================

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Fichier JSON lu et écrit en entier.

    Usage :
        repo = BaseRepository('/tmp/data.json', default_factory=list)
        with repo.editing() as items:
            items.append({'id': 1})
    """

    _io_lock = threading.RLock()

    def __init__(self, file_path: str, default_factory: Callable[[], Any] = dict):
        """
        Args:
            file_path: Chemin du fichier JSON
            default_factory: Contenu d'un fichier absent ou illisible
        """
        self.file_path = file_path
        self._default_factory = default_factory
        self._folder = os.path.dirname(os.path.abspath(file_path))
        os.makedirs(self._folder, exist_ok=True)

    def load(self) -> Any:
        with self._io_lock:
            if not os.path.exists(self.file_path):
                return self._default_factory()
            try:
                with open(self.file_path, encoding='utf-8') as fh:
                    return json.load(fh)
            except (OSError, ValueError) as e:
                logger.warning("Fichier %s illisible, contenu ignoré : %s", self.file_path, e)
                return self._default_factory()

    def save(self, data: Any) -> None:
        with self._io_lock:
            fd, temp_path = tempfile.mkstemp(dir=self._folder, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                    json.dump(data, fh, indent=2, ensure_ascii=False)
                os.replace(temp_path, self.file_path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise

    @contextmanager
    def editing(self) -> Iterator[Any]:
        """Lecture, modification sur place puis écriture, sous le verrou."""
        with self._io_lock:
            data = self.load()
            yield data
            self.save(data)


class DictRepository(BaseRepository):
    """Fichier JSON clé -> valeur."""

    def __init__(self, file_path: str):
        super().__init__(file_path, default_factory=dict)

    def load(self) -> Dict[str, Any]:
        data = super().load()
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set_many(self, values: Dict[str, Any]) -> None:
        with self.editing() as data:
            data.update(values)

    def delete(self, key: str) -> Any:
        """Supprime une clé et renvoie son ancienne valeur (None si absente)."""
        with self.editing() as data:
            return data.pop(key, None)

    def clear(self) -> None:
        self.save({})
