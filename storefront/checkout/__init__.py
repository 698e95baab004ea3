from storefront.checkout.assembler import CheckoutAssembler
from storefront.checkout.models import CustomerProfile, DraftLine, OrderDraft, ShippingRate

__all__ = ["CheckoutAssembler", "CustomerProfile", "DraftLine", "OrderDraft", "ShippingRate"]
