"""
Catalogue: produit unique et ses prix actifs, normalisés pour l'affichage.
- Tri: prix listés dans STRIPE_PRICE_ORDER d'abord (dans cet ordre), puis les autres par interval_count croissant.
- Dérivés: libellé, équivalent mensuel, pourcentage d'économie par rapport au prix mensuel.
"""
import math
from typing import Any, Dict, List, Optional

from intake_backend.payments import stripe_client

# module intake_backend.catalog.service
def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def _recurring(price: Dict[str, Any]) -> Dict[str, Any]:
    return price.get("recurring") or {}

def interval_count(price: Dict[str, Any]) -> int:
    return int(_recurring(price).get("interval_count") or 1)

def price_label(price: Dict[str, Any]) -> str:
    """Libellé lisible: Monthly, Every 3 months, Yearly, ..."""
    recurring = price.get("recurring")
    if not recurring:
        return "One-time payment"
    interval = recurring.get("interval")
    count = int(recurring.get("interval_count") or 1)
    if interval == "month":
        return "Monthly" if count == 1 else f"Every {count} months"
    if interval == "year":
        return "Yearly" if count == 1 else f"Every {count} years"
    return f"Every {count} {interval}(s)"

def sort_prices(prices: List[Dict[str, Any]], order: List[str]) -> List[Dict[str, Any]]:
    """
    Tri stable en deux niveaux: les prix de la liste manuelle dans son ordre,
    les autres par interval_count croissant, placés après.
    """
    def key(price: Dict[str, Any]):
        pid = price.get("id")
        if pid in order:
            return (0, order.index(pid))
        return (1, interval_count(price))
    return sorted(prices, key=key)

def _monthly_reference(prices: List[Dict[str, Any]]) -> Optional[int]:
    for price in prices:
        rec = _recurring(price)
        if rec.get("interval") == "month" and interval_count(price) == 1 and price.get("unit_amount"):
            return int(price["unit_amount"])
    return None

def price_option(price: Dict[str, Any], monthly_amount: Optional[int] = None) -> Dict[str, Any]:
    rec = _recurring(price)
    count = interval_count(price)
    unit = price.get("unit_amount")
    option: Dict[str, Any] = {
        "id": price.get("id"),
        "unitAmount": unit,
        "currency": price.get("currency"),
        "interval": rec.get("interval") or "one_time",
        "intervalCount": count,
        "nickname": price.get("nickname"),
        "label": price_label(price),
    }
    if rec.get("interval") == "month" and count > 1 and unit:
        option["monthlyEquivalent"] = round_half_up(unit / count)
        if monthly_amount:
            full = monthly_amount * count
            savings = round_half_up((full - unit) / full * 100)
            if savings > 0:
                option["savingsPercent"] = savings
    return option

def get_catalog() -> Dict[str, Any]:
    """
    Produit (STRIPE_PRODUCT_ID) + prix actifs triés et libellés.
    Les erreurs Stripe remontent: la vue les convertit en réponse uniforme.
    """
    from intake_backend.config import STRIPE_PRODUCT_ID, STRIPE_PRICE_ORDER, PRODUCT_IMAGE_URL

    product = stripe_client.retrieve_product(STRIPE_PRODUCT_ID)
    prices = sort_prices(stripe_client.list_active_prices(STRIPE_PRODUCT_ID), STRIPE_PRICE_ORDER)
    monthly = _monthly_reference(prices)
    images = product.get("images") or []
    return {
        "id": product.get("id"),
        "name": product.get("name"),
        "description": product.get("description"),
        "image": images[0] if images else PRODUCT_IMAGE_URL,
        "prices": [price_option(p, monthly) for p in prices],
    }
