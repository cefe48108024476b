"""
tests/test_roles.py — Role Precedence
======================================
"""

from __future__ import annotations

import pytest

from clubhouse.errors import AuthorizationError
from clubhouse.policy.roles import (
    ANONYMOUS_RANK,
    Actor,
    Role,
    check_approved,
    is_at_least,
    is_staff,
    rank,
    role_of,
)


class TestRank:
    def test_order(self):
        assert rank(Role.ADMIN) > rank(Role.OFFICER) > rank(Role.MEMBER) > rank(Role.VISITOR)
        assert rank(Role.VISITOR) > rank(None) == ANONYMOUS_RANK

    def test_member_and_volunteer_share_a_tier(self):
        assert rank(Role.MEMBER) == rank(Role.VOLUNTEER)
        assert is_at_least(Role.VOLUNTEER, Role.MEMBER)
        assert not is_at_least(Role.VOLUNTEER, Role.OFFICER)

    def test_unknown_role_ranks_as_visitor(self):
        assert rank("superhero") == rank(Role.VISITOR)

    def test_plain_strings_accepted(self):
        assert rank("admin") == rank(Role.ADMIN)


class TestStaff:
    @pytest.mark.parametrize("role", [Role.ADMIN, Role.OFFICER])
    def test_staff_roles(self, role):
        assert is_staff(role)

    @pytest.mark.parametrize("role", [Role.MEMBER, Role.VOLUNTEER, Role.VISITOR, None])
    def test_non_staff_roles(self, role):
        assert not is_staff(role)

    def test_role_of_anonymous(self):
        assert role_of(None) is None
        assert role_of(Actor(id=1, role=Role.OFFICER)) == Role.OFFICER


class TestApproval:
    @pytest.mark.parametrize("role", [Role.MEMBER, Role.VOLUNTEER])
    def test_unapproved_member_rejected(self, role):
        with pytest.raises(AuthorizationError, match="pending approval"):
            check_approved(Actor(id=1, role=role, is_approved=False))

    @pytest.mark.parametrize("role", [Role.VISITOR, Role.OFFICER, Role.ADMIN])
    def test_other_roles_not_gated(self, role):
        check_approved(Actor(id=1, role=role, is_approved=False))

    def test_approved_member_passes(self):
        check_approved(Actor(id=1, role=Role.MEMBER, is_approved=True))
