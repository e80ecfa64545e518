"""
Per-user trust state and the repositories that persist it.
"""

from .repository import (
    MemoryRepository,
    PersistenceFailure,
    InMemoryRepository,
    JsonFileRepository,
    SqliteRepository,
)
from .trust_store import (
    TrustStateStore,
    StaleMemoryError,
    compute_trust_adjustment,
    apply_adjustment,
    default_memory,
)
