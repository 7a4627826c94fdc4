"""
Access guard tests.

Verifies:
- 3 wrong passwords lock the terminal; a locked attempt is not counted
- the lockout self-clears after its window and a correct password resets the counter
- inactivity expiry is an automatic logout, distinct from a manual one
- logout is idempotent and closes the persisted session
- permissions follow the explicit role; logged out has none
- persisted session is restored by a fresh guard
"""

from datetime import timedelta

import pytest

from stockledger.models import AuthSession, LoginThrottle, SecurityEvent, User
from stockledger.services import auth_service
from stockledger.services.access_guard import AccessGuard, GuardState


def _event_types():
    return [e.event_type for e in SecurityEvent.query.order_by(SecurityEvent.id).all()]


# =============================================================================
# AUTHENTICATION / LOCKOUT
# =============================================================================


class TestAuthenticate:

    def test_correct_password(self, guard, users, clock):
        result = guard.authenticate("admin", "CG2024")
        assert result.success
        assert result.user == {"username": "admin", "role": "admin"}
        assert result.session_id
        assert guard.state == GuardState.LOGGED_IN

        session = AuthSession.query.one()
        assert session.login_time == clock.now
        assert session.last_activity == clock.now
        assert User.query.filter_by(username="admin").one().last_login_at == clock.now

    def test_wrong_password_counts_down(self, guard, users):
        first = guard.authenticate("admin", "nope")
        assert not first.success
        assert first.remaining_attempts == 2
        assert not first.is_locked_out
        second = guard.authenticate("admin", "nope")
        assert second.remaining_attempts == 1

    def test_unknown_user_counts_as_failure(self, guard, users):
        result = guard.authenticate("ghost", "whatever")
        assert not result.success
        assert result.attempts == 1

    def test_inactive_user_rejected(self, guard, users, db_session):
        users["clerk"].is_active = False
        db_session.commit()
        assert not guard.authenticate("clerk", "VENTA2024").success

    def test_three_failures_lock_and_fourth_is_not_counted(self, guard, users, clock):
        for _ in range(2):
            guard.authenticate("admin", "bad")
        third = guard.authenticate("admin", "bad")
        assert third.is_locked_out
        assert "15 minutes" in third.message
        assert guard.is_locked_out()
        assert guard.state == GuardState.LOCKED_OUT

        clock.advance(minutes=5)
        fourth = guard.authenticate("admin", "CG2024")
        assert not fourth.success
        assert fourth.is_locked_out
        assert "10 minutes" in fourth.message
        assert LoginThrottle.query.one().failed_attempts == 3
        assert guard.get_remaining_lockout() == timedelta(minutes=10)

    def test_lockout_expires_and_login_resets_counter(self, guard, users, clock):
        for _ in range(3):
            guard.authenticate("admin", "bad")
        clock.advance(minutes=15)
        assert not guard.is_locked_out()

        result = guard.authenticate("admin", "CG2024")
        assert result.success
        throttle = LoginThrottle.query.one()
        assert throttle.failed_attempts == 0
        assert throttle.lockout_until is None

    def test_expired_lockout_starts_fresh_count(self, guard, users, clock):
        for _ in range(3):
            guard.authenticate("admin", "bad")
        clock.advance(minutes=16)
        result = guard.authenticate("admin", "bad")
        assert result.remaining_attempts == 2

    def test_remaining_minutes_round_up(self, guard, users, clock):
        for _ in range(3):
            guard.authenticate("admin", "bad")
        clock.advance(minutes=14, seconds=30)
        result = guard.authenticate("admin", "CG2024")
        assert "1 minutes" in result.message
        status = guard.get_lockout_status()
        assert status["locked"] is True
        assert status["minutes_until_unlock"] == 1
        assert status["seconds_until_unlock"] == 30

    def test_security_log_records_attempts(self, guard, users):
        for _ in range(3):
            guard.authenticate("admin", "bad")
        guard.authenticate("admin", "CG2024")
        assert _event_types() == ["LOGIN_FAILED", "LOGIN_FAILED", "LOGIN_FAILED", "LOGIN_LOCKED", "LOGIN_BLOCKED"]


# =============================================================================
# SESSION LIVENESS
# =============================================================================


class TestSession:

    def test_session_info_time_left(self, guard, users, clock):
        guard.authenticate("manager", "FERR2024")
        clock.advance(minutes=10)
        info = guard.get_session_info()
        assert info.user["role"] == "manager"
        assert info.time_left == timedelta(minutes=20)

    def test_inactivity_auto_logout(self, guard, users, clock):
        guard.authenticate("clerk", "VENTA2024")
        clock.advance(minutes=30)
        assert not guard.is_user_authenticated()
        assert guard.last_logout_was_automatic is True

        session = AuthSession.query.one()
        assert session.end_reason == "expired"
        assert "SESSION_EXPIRED" in _event_types()

    def test_activity_keeps_session_alive(self, guard, users, clock):
        result = guard.authenticate("clerk", "VENTA2024")
        clock.advance(minutes=20)
        assert guard.validate_session(result.session_id)
        clock.advance(minutes=20)
        assert guard.is_user_authenticated()

    def test_activity_persistence_is_debounced(self, guard, users, clock):
        result = guard.authenticate("clerk", "VENTA2024")
        login_time = clock.now
        clock.advance(seconds=10)
        guard.record_activity()
        assert AuthSession.query.one().last_activity == login_time

        clock.advance(seconds=30)
        guard.record_activity()
        assert AuthSession.query.one().last_activity == clock.now
        assert guard.validate_session(result.session_id)

    def test_validate_session_rejects_other_ids(self, guard, users):
        guard.authenticate("clerk", "VENTA2024")
        assert not guard.validate_session("not-the-session")
        assert not guard.validate_session(None)

    def test_manual_logout_is_idempotent(self, guard, users):
        guard.authenticate("admin", "CG2024")
        assert guard.logout() is True
        assert guard.logout() is False
        assert guard.last_logout_was_automatic is False
        assert guard.get_current_user() is None
        assert AuthSession.query.one().end_reason == "logout"

    def test_new_login_closes_previous_session(self, guard, users):
        guard.authenticate("admin", "CG2024")
        guard.authenticate("clerk", "VENTA2024")
        open_rows = AuthSession.query.filter(AuthSession.ended_at.is_(None)).all()
        assert [s.username for s in open_rows] == ["clerk"]
        assert guard.get_current_role() == "clerk"

    def test_fresh_guard_restores_open_session(self, app, guard, users, clock):
        result = guard.authenticate("manager", "FERR2024")
        restored = AccessGuard.from_config(app.config, clock=clock)
        assert restored.get_current_user() == {"username": "manager", "role": "manager"}
        assert restored.validate_session(result.session_id)

    def test_fresh_guard_expires_stale_session(self, app, guard, users, clock):
        guard.authenticate("manager", "FERR2024")
        clock.advance(hours=1)
        restored = AccessGuard.from_config(app.config, clock=clock)
        assert not restored.is_user_authenticated()
        assert AuthSession.query.one().end_reason == "expired"


# =============================================================================
# PERMISSIONS
# =============================================================================


class TestPermissions:

    def test_logged_out_has_nothing(self, guard, users):
        perms = guard.get_user_permissions()
        assert perms.codes == frozenset()
        assert not perms.can_view_inventory

    @pytest.mark.parametrize("username,password,allowed,denied", [
        ("admin", "CG2024", {"DELETE_PRODUCTS", "MANAGE_USERS", "VIEW_SECURITY_LOG"}, set()),
        ("manager", "FERR2024", {"ADD_PRODUCTS", "IMPORT_DATA", "VIEW_REPORTS"}, {"DELETE_PRODUCTS", "MANAGE_USERS"}),
        ("clerk", "VENTA2024", {"VIEW_INVENTORY", "PROCESS_SALES"}, {"ADD_PRODUCTS", "RESTOCK", "EXPORT_DATA"}),
    ])
    def test_role_permissions(self, guard, users, username, password, allowed, denied):
        guard.authenticate(username, password)
        perms = guard.get_user_permissions()
        assert allowed <= perms.codes
        assert not (denied & perms.codes)

    def test_role_is_explicit_not_inferred(self, guard, users):
        auth_service.create_user("administrator", "secret1", "clerk", rounds=4)
        guard.authenticate("administrator", "secret1")
        assert guard.get_current_role() == "clerk"
        assert not guard.get_user_permissions().can_manage_users


# =============================================================================
# ACCOUNT MANAGEMENT
# =============================================================================


class TestAccountManagement:

    def test_change_password(self, guard, users):
        guard.authenticate("clerk", "VENTA2024")
        assert not guard.change_password("wrong", "newpass1").success
        short = guard.change_password("VENTA2024", "123")
        assert not short.success
        assert "6 characters" in short.message

        assert guard.change_password("VENTA2024", "newpass1").success
        guard.logout()
        assert guard.authenticate("clerk", "newpass1").success

    def test_change_password_requires_login(self, guard, users):
        assert guard.change_password("CG2024", "another1").message == "Not authorized"

    def test_add_user_admin_only(self, guard, users):
        guard.authenticate("manager", "FERR2024")
        result = guard.add_user("nuevo", "secret1", "clerk")
        assert not result.success
        assert auth_service.get_user("nuevo") is None

    def test_add_user(self, guard, users):
        guard.authenticate("admin", "CG2024")
        assert guard.add_user("nuevo", "secret1", "manager").success
        assert auth_service.get_user("nuevo").role == "manager"
        assert guard.add_user("nuevo", "secret1").message == "User already exists"
        assert not guard.add_user("otro", "12345").success
        assert not guard.add_user("otro", "secret1", "owner").success

    def test_security_log_admin_only(self, guard, users):
        guard.authenticate("clerk", "VENTA2024")
        assert guard.get_security_log() == []
        guard.authenticate("admin", "CG2024")
        log = guard.get_security_log()
        assert log[0]["event_type"] == "LOGIN_SUCCESS"
        assert log[0]["username"] == "admin"

    def test_cleanup_removes_old_events(self, guard, users, clock):
        guard.authenticate("admin", "bad")
        clock.advance(days=31)
        guard.authenticate("admin", "CG2024")
        assert guard.cleanup(retention_days=30) == 1
        assert _event_types() == ["LOGIN_SUCCESS"]
