"""Tests for DirectorySelector approver resolution and lookups."""

from uuid import uuid4

from asset_kernel.domain.actor import Role
from asset_kernel.models.directory import User
from asset_kernel.selectors.directory_selector import DirectorySelector


class TestDirectorySelector:

    def test_get_user(self, session, org):
        user = DirectorySelector(session).get_user(org.employee.id)
        assert user.display_name == "Ada Lovelace"
        assert user.role == "employee"
        assert user.department_id == org.engineering.id
        assert user.is_active

    def test_missing_lookups_return_none(self, session, org):
        directory = DirectorySelector(session)
        assert directory.get_user(uuid4()) is None
        assert directory.get_department(uuid4()) is None
        assert directory.get_location(uuid4()) is None
        assert directory.get_asset(uuid4()) is None

    def test_get_asset(self, session, org):
        asset = DirectorySelector(session).get_asset(org.assigned_asset.id)
        assert asset.asset_tag == "LT-0099"
        assert asset.status == "assigned"
        assert asset.assigned_to == org.finance_employee.id

    def test_department_head_for(self, session, org):
        directory = DirectorySelector(session)
        assert directory.department_head_for(org.engineering.id).id == org.dept_head.id
        assert directory.department_head_for(org.finance.id).id == org.finance_head.id

    def test_it_head(self, session, org):
        assert DirectorySelector(session).it_head().id == org.it_head.id

    def test_inactive_users_excluded(self, session, org):
        engineers = DirectorySelector(session).active_users_with_role(Role.ENGINEER)
        assert [u.id for u in engineers] == [org.engineer.id]

    def test_deactivated_head_falls_back_to_next(self, session, session_factory, org):
        s = session_factory()
        s.add(User(
            first_name="Barbara", last_name="Liskov", email="barbara@example.com",
            role="department_head", department_id=org.engineering.id,
        ))
        head = s.get(User, org.dept_head.id)
        head.is_active = False
        s.commit()
        s.close()

        head = DirectorySelector(session).department_head_for(org.engineering.id)
        assert head.display_name == "Barbara Liskov"

    def test_department_scope_filter(self, session, org):
        heads = DirectorySelector(session).active_users_with_role(
            "department_head", department_id=org.finance.id,
        )
        assert [u.id for u in heads] == [org.finance_head.id]
