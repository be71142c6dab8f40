# =============================================================================
# URL-PARITY Fix
# Stage 3: Remediation strategy, content extraction, fix runner
# =============================================================================
