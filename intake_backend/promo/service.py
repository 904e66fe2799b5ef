"""
Validation d'un code promo Stripe.
Vérifications dans l'ordre, la première en échec court-circuite:
  code trouvé -> coupon présent -> coupon valide -> plafond non atteint -> non expiré.
"""
import time
from typing import Any, Callable, Dict, Optional

from intake_backend.payments import stripe_client


def _lookup(code: str) -> Optional[Dict[str, Any]]:
    # Stripe compare les codes à la casse près: majuscules d'abord, puis minuscules
    promo = stripe_client.find_promotion_code(code.upper())
    if promo is None and code.lower() != code.upper():
        promo = stripe_client.find_promotion_code(code.lower())
    return promo

def _coupon_of(promo: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    coupon = promo.get("coupon")
    if isinstance(coupon, str) and coupon:
        return stripe_client.retrieve_coupon(coupon) or None
    if isinstance(coupon, dict) and coupon:
        return coupon
    return None

def _invalid(reason: str) -> Dict[str, Any]:
    return {"valid": False, "error": reason}

# module intake_backend.promo.service
def validate_code(code: str, now: Callable[[], float] = time.time) -> Dict[str, Any]:
    """
    Retourne toujours {valid: bool, ...}.
    Les erreurs Stripe remontent à l'appelant (la vue répond "Failed to validate code").
    """
    code = (code or "").strip()
    if not code:
        return _invalid("No code provided")

    promo = _lookup(code)
    if promo is None:
        return _invalid("Code not found")

    coupon = _coupon_of(promo)
    if coupon is None:
        return _invalid("Coupon not found")
    if not coupon.get("valid"):
        return _invalid("Coupon is not valid")

    max_redemptions = coupon.get("max_redemptions")
    if max_redemptions and int(coupon.get("times_redeemed") or 0) >= int(max_redemptions):
        return _invalid("Coupon has reached max redemptions")

    redeem_by = coupon.get("redeem_by")
    if redeem_by and int(redeem_by) < int(now()):
        return _invalid("Coupon has expired")

    result: Dict[str, Any] = {
        "valid": True,
        "couponId": coupon.get("id"),
        "promotionCodeId": promo.get("id"),
        "currency": coupon.get("currency") or "usd",
        "name": coupon.get("name"),
    }
    if coupon.get("percent_off"):
        result["percentOff"] = coupon["percent_off"]
    if coupon.get("amount_off"):
        result["amountOff"] = coupon["amount_off"]
    return result
