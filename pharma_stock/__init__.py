# ==============================================================================
# PHARMA STOCK - Client de gestion de stock pour pharmacie
# ==============================================================================
# Client du backend REST de la pharmacie : catalogue, ventes, demandes de
# réapprovisionnement, péremptions et historique.
#
# STRUCTURE :
# ├── models/        → Entités du domaine (dataclasses gelées)
# ├── api/           → Passerelle HTTP + schémas pydantic
# ├── repositories/  → Session persistée (JSON)
# ├── services/      → Règles métier (stock, session, vues dérivées)
# ├── app_container.py → Construction des dépendances
# └── main.py        → Application Flask
# ==============================================================================

__version__ = "1.0.0"
