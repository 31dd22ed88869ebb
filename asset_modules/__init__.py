"""
Workflow modules.

Each module package follows the same layout: ``models`` (enums and frozen
DTOs), ``orm`` (SQLAlchemy persistence), ``service`` (transaction-owning
operations) and ``selectors`` (read-only queries).
"""
