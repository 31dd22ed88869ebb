"""
Asset Kernel

Shared infrastructure for the asset requisition workflow:
- Transactional persistence (PostgreSQL in production, SQLite for development)
- Locked-counter document numbering
- Typed, coded exceptions
- Structured JSON logging
- Read-only directory lookups (users, departments, locations, assets)
"""

__version__ = "0.1.0"
