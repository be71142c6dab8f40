# =============================================================================
# URL-PARITY
# Production vs. local URL audit and remediation pipeline
# =============================================================================
"""
URL parity pipeline for a site migration.

Stages (each one reads the previous stage's artifact from reports/parity/):

    inventory  - normalize + classify URLs, load inventory files
    diff       - production vs. local: missing / extra / change notes
    fix        - one remediation action per missing URL, content extraction
    report     - canonical JSON artifacts + markdown summaries
"""

__version__ = "1.0.0"
