# =============================================================================
# URL-PARITY Report
# Canonical JSON artifacts and markdown summaries
# =============================================================================
