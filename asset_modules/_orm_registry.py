"""
Module ORM Registry (``asset_modules._orm_registry``).

Ensure kernel and module SQLAlchemy models are imported so that
``Base.metadata`` contains every table before ``create_tables()`` runs.
Scripts, entrypoints, and ``tests/conftest.py`` all go through here.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``asset_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    # Kernel tables first; module tables reference users, departments, assets.
    import asset_kernel.models  # noqa: F401
    import asset_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import asset_modules.requisitions.orm  # noqa: F401
    import asset_modules.assignments.orm  # noqa: F401
    # fmt: on


def create_all_tables(engine=None) -> None:
    """Register every ORM model, then create the full schema."""
    from asset_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables(engine)


def drop_all_tables(engine=None) -> None:
    """Register every ORM model, then drop the full schema."""
    from asset_kernel.db.engine import drop_tables

    import_all_orm_models()
    drop_tables(engine)
