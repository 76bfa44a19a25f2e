"""megaverse — reconcile a remote grid toward its goal map without tripping rate limits."""

from megaverse.api.client import GridService, MegaverseClient
from megaverse.reconcile.builder import MegaverseBuilder, ReconcileReport

__version__ = "0.1.0"

__all__ = [
    "GridService",
    "MegaverseBuilder",
    "MegaverseClient",
    "ReconcileReport",
    "__version__",
]
