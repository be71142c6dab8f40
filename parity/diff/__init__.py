# =============================================================================
# URL-PARITY Diff
# Stage 2: Inventory-only diff engine
# =============================================================================
