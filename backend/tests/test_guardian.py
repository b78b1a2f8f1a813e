from __future__ import annotations

from payables.core.errors import ErrorKind
from payables.core.rbac import actor_for_user
from payables.models.enums import Role
from payables.models.master import Currency
from payables.models.user import User
from payables.services import currencies, guardian, users


def _second_super_admin(db) -> User:
    user = User(email="root2@example.com", hashed_password="not-used", role=Role.SUPER_ADMIN, is_active=True)
    db.add(user)
    db.commit()
    return user


def test_last_super_admin_cannot_be_demoted(db, super_admin, super_actor):
    result = users.change_user_role(db, user_id=super_admin.id, role=Role.ADMIN, actor=super_actor)
    assert result.error_kind == ErrorKind.STATE_CONFLICT
    assert result.error == "Cannot change role of the last super admin"
    db.refresh(super_admin)
    assert super_admin.role == Role.SUPER_ADMIN


def test_demotion_allowed_until_one_remains(db, super_admin, super_actor):
    second = _second_super_admin(db)

    assert users.change_user_role(db, user_id=second.id, role=Role.ADMIN, actor=super_actor).success
    blocked = users.change_user_role(db, user_id=super_admin.id, role=Role.ADMIN, actor=super_actor)
    assert blocked.code == "LAST_SUPER_ADMIN"


def test_inactive_super_admins_do_not_count(db, super_admin, super_actor):
    second = _second_super_admin(db)
    assert users.deactivate_user(db, user_id=second.id, actor=super_actor).success

    check = guardian.check_last_super_admin(db, super_admin.id)
    assert check.blocked
    assert check.holder_count == 1


def test_validate_role_change(db, super_admin, super_actor, admin, admin_actor):
    check = users.validate_role_change(db, user_id=super_admin.id, role=Role.STANDARD_USER, actor=super_actor).data
    assert check.can_change is False
    assert check.is_last_super_admin is True
    assert check.reason == "Cannot change role of the last super admin"

    assert users.validate_role_change(db, user_id=admin.id, role=Role.STANDARD_USER, actor=super_actor).data.can_change is True
    assert users.validate_role_change(db, user_id=999, role=Role.ADMIN, actor=super_actor).error_kind == ErrorKind.NOT_FOUND

    dry_run = users.validate_role_change(db, user_id=super_admin.id, role=Role.ADMIN, actor=admin_actor)
    assert dry_run.error_kind == ErrorKind.AUTHORIZATION


def test_guardian_not_applicable_to_non_holder(db, super_admin, admin):
    check = guardian.check_last_super_admin(db, admin.id)
    assert check.applicable is False
    assert check.blocked is False


def test_role_change_requires_super_admin(db, admin, admin_actor, standard_user):
    result = users.change_user_role(db, user_id=standard_user.id, role=Role.ADMIN, actor=admin_actor)
    assert result.error_kind == ErrorKind.AUTHORIZATION


def test_deactivation_rules(db, super_admin, super_actor, standard_user):
    own = users.deactivate_user(db, user_id=super_admin.id, actor=super_actor)
    assert own.error == "You cannot deactivate your own account"

    assert users.deactivate_user(db, user_id=standard_user.id, actor=super_actor, reason="Left company").success
    again = users.deactivate_user(db, user_id=standard_user.id, actor=super_actor)
    assert again.code == "ALREADY_DEACTIVATED"

    assert [user.id for user in users.list_users(db, actor=super_actor).data] == [super_admin.id]
    assert users.reactivate_user(db, user_id=standard_user.id, actor=super_actor).data.is_active is True


def test_demoted_super_admin_loses_user_management(db, super_admin):
    second = _second_super_admin(db)
    second_actor = actor_for_user(second)
    assert users.change_user_role(db, user_id=super_admin.id, role=Role.ADMIN, actor=second_actor).success

    result = users.deactivate_user(db, user_id=second.id, actor=actor_for_user(super_admin))
    assert result.error_kind == ErrorKind.AUTHORIZATION


def test_last_active_currency_cannot_be_deactivated(db, currency, admin_actor):
    result = currencies.toggle_currency(db, currency_id=currency.id, is_active=False, actor=admin_actor)
    assert result.code == "LAST_ACTIVE_CURRENCY"
    assert result.error == "Cannot deactivate the last active currency. At least one currency must remain active."


def test_currency_toggle_with_spare(db, currency, admin_actor):
    usd = Currency(code="USD", name="US Dollar", symbol="$", decimal_places=2, is_active=True)
    db.add(usd)
    db.commit()

    assert currencies.toggle_currency(db, currency_id=currency.id, is_active=False, actor=admin_actor).success
    assert [item.code for item in currencies.list_currencies(db, actor=admin_actor).data] == ["USD"]
    assert currencies.toggle_currency(db, currency_id=usd.id, is_active=False, actor=admin_actor).code == "LAST_ACTIVE_CURRENCY"
    assert currencies.toggle_currency(db, currency_id=currency.id, is_active=True, actor=admin_actor).success
    assert len(currencies.list_currencies(db, actor=admin_actor, include_inactive=True).data) == 2


def test_currency_toggle_requires_admin(db, currency, user_actor):
    result = currencies.toggle_currency(db, currency_id=currency.id, is_active=False, actor=user_actor)
    assert result.error_kind == ErrorKind.AUTHORIZATION
