"""
Device warranty lookup across brand providers with a canonical result shape.
"""
from .base import WarrantyLookupResult
from .lookup import WarrantyLookupAdapter, resolve_brand_family
from .status import map_warranty_status

__all__ = [
    "WarrantyLookupResult",
    "WarrantyLookupAdapter",
    "map_warranty_status",
    "resolve_brand_family",
]
