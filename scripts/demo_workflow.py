#!/usr/bin/env python3
"""
Walk a requisition through the whole workflow using the REAL architecture.

Builds a fresh SQLite database (or the one given by --db-url), seeds a small
directory, then drives RequisitionWorkflow through two scenarios:

  1. Laptop for a new hire: create -> department head approves -> IT head
     approves -> coordinator assigns asset and engineer.
  2. Monitor no longer needed: create -> department head approves ->
     requester cancels; a second cancel is refused.

Notifications are collected in memory and printed at the end.

Usage:
    python3 scripts/demo_workflow.py
    python3 scripts/demo_workflow.py --db-url sqlite:////tmp/assets_demo.db
    python3 scripts/demo_workflow.py --verbose   # structured JSON logs on stderr
"""

import argparse
import logging
import sys
import tempfile
from datetime import date, timedelta
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _seed(session_scope):
    """Seed one department, one user per role, and two assets."""
    from asset_kernel.domain.actor import Role
    from asset_kernel.models.directory import Asset, Department, Location, User

    with session_scope() as session:
        operations = Department(name="Operations")
        office = Location(name="Head Office")
        store = Location(name="IT Store")
        session.add_all([operations, office, store])
        session.flush()

        def user(first, last, role, location):
            u = User(
                first_name=first,
                last_name=last,
                email=f"{first.lower()}@example.com",
                role=role.value,
                department_id=operations.id,
                location_id=location.id,
            )
            session.add(u)
            return u

        people = {
            "employee": user("Priya", "Shah", Role.EMPLOYEE, office),
            "dept_head": user("Alice", "Moreno", Role.DEPARTMENT_HEAD, office),
            "it_head": user("Bob", "Okafor", Role.IT_HEAD, office),
            "coordinator": user("Dana", "Kim", Role.COORDINATOR, store),
            "engineer": user("Carol", "Nguyen", Role.ENGINEER, store),
        }
        laptop = Asset(asset_tag="A-123", product_name="Laptop 14in", location_id=store.id)
        monitor = Asset(asset_tag="M-456", product_name="Monitor 27in", location_id=store.id)
        session.add_all([laptop, monitor])
        session.flush()
        return {k: v.id for k, v in people.items()}, laptop.id


def _actors(session_factory, ids):
    from asset_kernel.domain.actor import Actor
    from asset_kernel.selectors.directory_selector import DirectorySelector

    session = session_factory()
    try:
        directory = DirectorySelector(session)
        actors = {}
        for key, user_id in ids.items():
            ref = directory.get_user(user_id)
            actors[key] = Actor(
                id=ref.id,
                role=ref.role,
                display_name=ref.display_name,
                department_id=ref.department_id,
            )
        return actors
    finally:
        session.close()


def _show(title, requisition):
    print(f"  {title:<28} {requisition.requisition_number}  {requisition.status.value}")


def _next_monday(today: date) -> date:
    return today + timedelta(days=(7 - today.weekday()) or 7)


def main() -> int:
    parser = argparse.ArgumentParser(description="Requisition workflow demo")
    parser.add_argument("--db-url", default=None, help="Database URL (default: temp SQLite)")
    parser.add_argument("--verbose", action="store_true", help="Emit structured logs")
    args = parser.parse_args()

    if not args.verbose:
        logging.disable(logging.CRITICAL)

    from asset_config import get_active_config
    from asset_kernel.db.engine import (
        get_session_factory,
        init_engine_from_url,
        reset_engine,
        session_scope,
    )
    from asset_kernel.exceptions import StateConflictError
    from asset_modules._orm_registry import create_all_tables, drop_all_tables
    from asset_modules.requisitions.models import RequisitionDetails
    from asset_services.notifications import InMemoryNotificationDispatcher
    from asset_services.workflow import RequisitionWorkflow

    db_url = args.db_url or f"sqlite:///{Path(tempfile.mkdtemp()) / 'assets_demo.db'}"
    config = get_active_config()
    engine = init_engine_from_url(
        db_url,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        pool_timeout=config.database.pool_timeout,
        lock_timeout_seconds=config.database.lock_timeout_seconds,
    )
    drop_all_tables(engine)
    create_all_tables(engine)

    ids, laptop_id = _seed(session_scope)
    session_factory = get_session_factory()
    actors = _actors(session_factory, ids)
    dispatcher = InMemoryNotificationDispatcher()
    workflow = RequisitionWorkflow(session_factory, config, dispatcher=dispatcher)

    print(f"Database: {db_url}")
    print()
    print("Scenario 1: laptop for a new hire")
    req = workflow.create_requisition(
        actors["employee"], RequisitionDetails(purpose="Laptop for new hire", urgency="high"),
    )
    _show("created", req)
    req = workflow.approve_at_dept_head(req.id, actors["dept_head"], "approved for new hire")
    _show("department head approved", req)
    req = workflow.approve_at_it_head(req.id, actors["it_head"])
    _show("IT head approved", req)
    result = workflow.assign_asset(
        req.id, laptop_id, actors["engineer"].id, _next_monday(date.today()),
        "Desk 4B", actors["coordinator"],
    )
    detail = workflow.get(req.id)
    _show("assigned", detail.requisition)
    print(f"  delivery ticket              {result.delivery_ticket.ticket_number}")
    print(f"  asset movements              {len(workflow.asset_movements(laptop_id))}")
    print("  history:")
    for entry in detail.history:
        print(f"    {entry.seq:>3}  {entry.approval_level.value:<12} "
              f"{entry.action.value:<10} {entry.new_status.value:<20} {entry.comments}")

    print()
    print("Scenario 2: monitor no longer needed")
    req = workflow.create_requisition(
        actors["employee"], RequisitionDetails(purpose="Second monitor", urgency="low"),
    )
    req = workflow.approve_at_dept_head(req.id, actors["dept_head"])
    _show("department head approved", req)
    req = workflow.cancel(req.id, actors["employee"], "no longer needed")
    _show("cancelled", req)
    try:
        workflow.cancel(req.id, actors["employee"], "no longer needed")
    except StateConflictError as exc:
        print(f"  second cancel refused        {exc.code}")

    print()
    print(f"Notifications ({len(dispatcher.sent)}):")
    for note in dispatcher.sent:
        names = ", ".join(r.name for r in note.recipients)
        print(f"  [{note.priority.value:<6}] {note.title:<48} -> {names}")

    reset_engine()
    return 0


if __name__ == "__main__":
    sys.exit(main())
