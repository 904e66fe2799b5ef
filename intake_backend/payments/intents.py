"""
Référence au PaymentIntent d'une facture Stripe.

Stripe renvoie `invoice.payment_intent` soit comme identifiant (non étendu),
soit comme objet (étendu via expand). La forme est décidée une seule fois à la
frontière Stripe (stripe_client) : la suite de l'orchestration ne manipule
qu'un PaymentIntent résolu.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Unresolved:
    """Identifiant seul (pi_...), à récupérer via l'API."""
    id: str


@dataclass(frozen=True)
class Resolved:
    """Objet PaymentIntent déjà étendu."""
    intent: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return str(self.intent.get("id") or "")


IntentRef = Union[Unresolved, Resolved]


def intent_ref(value: Any) -> Optional[IntentRef]:
    """
    Construit la référence à partir de la valeur brute de invoice.payment_intent.
    - str non vide -> Unresolved
    - dict avec un id -> Resolved
    - sinon None (pas de PaymentIntent exploitable)
    """
    if isinstance(value, str):
        return Unresolved(value) if value else None
    if isinstance(value, dict) and value.get("id"):
        return Resolved(value)
    return None
