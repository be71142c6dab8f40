# =============================================================================
# URL-PARITY Inventory
# Stage 1: URL normalization, route templates, inventory loading
# =============================================================================
"""
Inventory layer.

Every URL that enters the pipeline passes through normalize_url() here.
"""

from parity.inventory.loader import InventoryLoader, load_inventory
from parity.inventory.normalize import (
    RouteTemplate,
    classify_url,
    matches_template,
    normalize_url,
)

__all__ = [
    "InventoryLoader",
    "RouteTemplate",
    "classify_url",
    "load_inventory",
    "matches_template",
    "normalize_url",
]
