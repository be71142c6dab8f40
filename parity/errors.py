"""
Errors raised at the pipeline's input boundaries.

Per-entry problems (a failed fetch, an unclassifiable URL) are never raised;
they are recorded on the entry's action record instead.
"""


class ParityInputError(Exception):
    """An input file required by a stage is missing, unreadable or invalid."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class InventoryError(ParityInputError):
    """Raised when an inventory file cannot be loaded."""
    pass


class DiffArtifactError(ParityInputError):
    """Raised when the diff artifact consumed by the fix stage is unusable."""
    pass


class RulesError(ParityInputError):
    """Raised when the remediation rule table cannot be loaded."""
    pass


class RunCancelled(Exception):
    """Raised between stages when the run was interrupted."""
    pass
