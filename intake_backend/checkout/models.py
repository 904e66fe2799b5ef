from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CheckoutStep(str, Enum):
    PRODUCT = "product"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class PaymentStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProductMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow")

    medication: Optional[str] = None
    dosage: Optional[str] = None
    category: Optional[str] = None
    interval_count: Optional[str] = None


class Product(BaseModel):
    """Offre choisie (prix Stripe), immuable une fois récupérée. `price` en centimes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    description: str = ""
    price_id: str
    price: int
    currency: str = "usd"
    interval: Optional[Literal["month", "year", "one_time"]] = None
    metadata: Optional[ProductMetadata] = None


class ShippingAddress(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    street: str = ""
    unit: Optional[str] = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    full_address: str = ""
