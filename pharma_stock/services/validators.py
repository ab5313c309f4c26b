# ==============================================================================
# VALIDATION LOCALE DES SAISIES
# ==============================================================================
# Vérifications faites avant tout appel réseau. Chaque échec lève une
# ValidationError portant le champ fautif.
# ==============================================================================

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable

from pharma_stock.exceptions import ValidationError


def require_fields(data: Dict[str, Any], fields: Iterable[str], labels: Dict[str, str] = None) -> None:
    """Lève une ValidationError listant les champs vides."""
    labels = labels or {}
    missing = [f for f in fields if not str(data.get(f) or '').strip()]
    if missing:
        errors = {f: [f"Le champ {labels.get(f, f)} est obligatoire"] for f in missing}
        raise ValidationError(errors=errors)


def to_int(value: Any, field: str, minimum: int = 0) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(errors={field: ["Nombre entier attendu"]})
    if isinstance(value, float) and value != number:
        raise ValidationError(errors={field: ["Nombre entier attendu"]})
    if number < minimum:
        raise ValidationError(errors={field: [f"La valeur doit être supérieure ou égale à {minimum}"]})
    return number


def to_price(value: Any, field: str = 'prix') -> Decimal:
    try:
        price = Decimal(str(value).replace(',', '.'))
    except (InvalidOperation, ValueError):
        raise ValidationError(errors={field: ["Prix invalide"]})
    if not price.is_finite() or price < 0:
        raise ValidationError(errors={field: ["Le prix doit être positif"]})
    return price


def to_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).split('T')[0])
    except (TypeError, ValueError):
        raise ValidationError(errors={field: ["Date invalide (AAAA-MM-JJ)"]})
