"""
Tests — Lifecycle coordinator: Apply, Invite, Accept, Decline.

Covers:
    1. Apply: per-role results, bound chat seeding, partial failures
    2. Invite: authorization, role availability, seeded chat
    3. Accept: role fill + ledger + chat mirror commit together
    4. Lazy rejection on touch for sibling requests
    5. Decline: reason rules, trail message, role untouched
    6. Terminal immutability and rollback on a failing step
"""

import pytest
from sqlalchemy import delete, select
from sqlalchemy.orm.attributes import set_committed_value

from teamhub.core.exceptions import (
    DuplicateRequestError,
    InvalidReasonError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
    RoleAlreadyFilledError,
    RoleUnavailableError,
    ValidationError,
)
from teamhub.models import db
from teamhub.models.chat import Chat
from teamhub.models.collaboration import Application, Invitation
from teamhub.models.project import Role
from teamhub.services import conversation_service, lifecycle, project_service, request_ledger

from tests.conftest import APPLICANT, CREATOR, OTHER, THIRD

REASON = "Team is complete for now"


def _role(project, title):
    return db.session.execute(
        select(Role).where(Role.project_id == project.id, Role.title == title)
        .order_by(Role.position).execution_options(populate_existing=True)
    ).scalars().first()


def _bound_chat(kind, request_id):
    return conversation_service.find_bound_chat(kind, request_id)


def _apply(project, user=APPLICANT, roles=("Designer",), message="I'd love to help"):
    return lifecycle.apply(project.id, list(roles), user, message)["created"][0]


# ═══════════════════════════════════════════════════════════════════════════
#  APPLY
# ═══════════════════════════════════════════════════════════════════════════

class TestApply:

    def test_creates_pending_application_and_leaves_role_open(self, project):
        created = _apply(project)
        assert created["status"] == "Pending"
        assert _role(project, "Designer").filled is False

        chat = _bound_chat("application", created["id"])
        assert chat.id == created["chat_id"]
        assert chat.status == "Pending"
        assert set(chat.participants) == {APPLICANT, CREATOR}
        assert chat.last_message_text == "I'd love to help"

    def test_default_seed_message(self, project):
        created = _apply(project, message="")
        chat = _bound_chat("application", created["id"])
        assert "Campus Ride Share" in chat.last_message_text
        assert "Designer" in chat.last_message_text

    def test_multiple_roles_one_chat_each(self, project):
        result = lifecycle.apply(project.id, ["Designer", "Marketer", "Designer"], APPLICANT, "")
        assert [a["role_title"] for a in result["created"]] == ["Designer", "Marketer"]
        assert result["errors"] == []
        assert Chat.query.count() == 2

    def test_partial_failure_reported_per_role(self, project):
        project_service.fill_role(project.id, "Marketer", OTHER)
        db.session.commit()
        result = lifecycle.apply(project.id, ["Designer", "Marketer", "Astronaut"], APPLICANT, "")
        assert [a["role_title"] for a in result["created"]] == ["Designer"]
        codes = {e["role_title"]: e["code"] for e in result["errors"]}
        assert codes == {"Marketer": "ERR_ROLE_UNAVAILABLE", "Astronaut": "ERR_NOT_FOUND"}

    def test_all_failed_raises_first_error(self, project):
        _apply(project)
        with pytest.raises(DuplicateRequestError):
            lifecycle.apply(project.id, ["Designer"], APPLICANT, "")
        assert Application.query.count() == 1
        assert Chat.query.count() == 1

    def test_no_roles(self, project):
        with pytest.raises(ValidationError):
            lifecycle.apply(project.id, [], APPLICANT, "")

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            lifecycle.apply(999, ["Designer"], APPLICANT, "")

    def test_creator_cannot_apply(self, project):
        with pytest.raises(ValidationError):
            lifecycle.apply(project.id, ["Designer"], CREATOR, "")

    def test_directory_outage_does_not_fail_apply(self, project, app, monkeypatch):
        gateway = app.extensions["user_directory"]

        def _boom(user_id):
            raise RuntimeError("directory down")

        monkeypatch.setattr(gateway, "resolve_user", _boom)
        created = _apply(project)
        assert created["applicant"] is None


# ═══════════════════════════════════════════════════════════════════════════
#  INVITE
# ═══════════════════════════════════════════════════════════════════════════

class TestInvite:

    def test_creates_invitation_and_seeded_chat(self, project):
        result = lifecycle.invite(project.id, "Designer", CREATOR, OTHER, "You'd be great")
        inv = result["invitation"]
        assert inv["status"] == "Pending"
        assert result["chat"]["status"] == "Pending"
        assert result["chat"]["binding"] == {"kind": "invitation", "target_id": inv["id"]}
        assert result["chat"]["last_message"]["text"] == "You'd be great"

    def test_default_message_names_role(self, project):
        result = lifecycle.invite(project.id, "Developer", CREATOR, OTHER)
        assert "for the role of Developer" in result["chat"]["last_message"]["text"]

    def test_filled_role_creates_nothing(self, project):
        project_service.fill_role(project.id, "Designer", APPLICANT)
        db.session.commit()
        with pytest.raises(RoleUnavailableError):
            lifecycle.invite(project.id, "Designer", CREATOR, THIRD)
        assert Invitation.query.count() == 0
        assert Chat.query.count() == 0

    def test_non_creator(self, project):
        with pytest.raises(NotAuthorizedError):
            lifecycle.invite(project.id, "Designer", APPLICANT, OTHER)

    def test_self_invite(self, project):
        with pytest.raises(ValidationError):
            lifecycle.invite(project.id, "Designer", CREATOR, CREATOR)

    def test_duplicate_invitation(self, project):
        lifecycle.invite(project.id, "Designer", CREATOR, OTHER)
        with pytest.raises(DuplicateRequestError):
            lifecycle.invite(project.id, "Designer", CREATOR, OTHER)
        assert Chat.query.count() == 1


# ═══════════════════════════════════════════════════════════════════════════
#  ACCEPT
# ═══════════════════════════════════════════════════════════════════════════

class TestAccept:

    def test_accept_application_commits_all_three_stores(self, project):
        created = _apply(project)
        result = lifecycle.accept_application(created["id"], CREATOR)

        assert result["application"]["status"] == "Accepted"
        assert result["role"]["user_id"] == APPLICANT
        assert result["chat"]["status"] == "Accepted"

        role = _role(project, "Designer")
        assert role.filled is True
        assert role.user_id == APPLICANT
        app_row = request_ledger.get_request("application", created["id"])
        assert app_row.role_id == role.id
        assert _bound_chat("application", created["id"]).status == "Accepted"

    def test_accept_invitation_by_invitee(self, project):
        inv = lifecycle.invite(project.id, "Marketer", CREATOR, OTHER)["invitation"]
        result = lifecycle.accept_invitation(inv["id"], OTHER)
        assert result["invitation"]["status"] == "Accepted"
        assert _role(project, "Marketer").user_id == OTHER
        assert _bound_chat("invitation", inv["id"]).status == "Accepted"

    def test_wrong_actor(self, project):
        created = _apply(project)
        with pytest.raises(NotAuthorizedError):
            lifecycle.accept_application(created["id"], APPLICANT)
        inv = lifecycle.invite(project.id, "Marketer", CREATOR, OTHER)["invitation"]
        with pytest.raises(NotAuthorizedError):
            lifecycle.accept_invitation(inv["id"], CREATOR)
        assert _role(project, "Designer").filled is False
        assert _role(project, "Marketer").filled is False

    def test_accept_twice_is_invalid_transition(self, project):
        created = _apply(project)
        lifecycle.accept_application(created["id"], CREATOR)
        with pytest.raises(InvalidTransitionError):
            lifecycle.accept_application(created["id"], CREATOR)
        assert Role.query.filter_by(user_id=APPLICANT).count() == 1

    def test_duplicate_titles_fill_separate_slots(self, project):
        first = _apply(project, APPLICANT, roles=("Developer",))
        second = _apply(project, OTHER, roles=("Developer",))
        r1 = lifecycle.accept_application(first["id"], CREATOR)["role"]
        r2 = lifecycle.accept_application(second["id"], CREATOR)["role"]
        assert r1["id"] != r2["id"]

    def test_missing_role_leaves_request_pending(self, project):
        created = _apply(project)
        db.session.execute(delete(Role).where(Role.title == "Designer"))
        db.session.commit()
        with pytest.raises(NotFoundError):
            lifecycle.accept_application(created["id"], CREATOR)
        assert request_ledger.get_request("application", created["id"]).status == "Pending"

    def test_chat_failure_rolls_back_role_and_ledger(self, project, monkeypatch):
        created = _apply(project)

        def _fail(chat, status):
            raise RuntimeError("chat store unavailable")

        monkeypatch.setattr(conversation_service, "mirror_status", _fail)
        with pytest.raises(RuntimeError):
            lifecycle.accept_application(created["id"], CREATOR)

        assert _role(project, "Designer").filled is False
        assert request_ledger.get_request("application", created["id"]).status == "Pending"
        assert _bound_chat("application", created["id"]).status == "Pending"

    def test_accept_recreates_missing_bound_chat(self, project):
        created = _apply(project)
        db.session.execute(delete(Chat))
        db.session.commit()
        result = lifecycle.accept_application(created["id"], CREATOR)
        assert result["chat"]["status"] == "Accepted"
        assert _bound_chat("application", created["id"]) is not None


# ═══════════════════════════════════════════════════════════════════════════
#  LAZY REJECTION ON TOUCH
# ═══════════════════════════════════════════════════════════════════════════

class TestLazyRejection:

    def test_sibling_stays_pending_until_touched(self, project):
        a1 = _apply(project, APPLICANT)
        a2 = _apply(project, OTHER)
        lifecycle.accept_application(a1["id"], CREATOR)

        assert request_ledger.get_request("application", a2["id"]).status == "Pending"
        assert _bound_chat("application", a2["id"]).status == "Pending"

        with pytest.raises(RoleAlreadyFilledError) as exc:
            lifecycle.accept_application(a2["id"], CREATOR)
        assert exc.value.request_status == "Rejected"

        a2_row = request_ledger.get_request("application", a2["id"])
        assert a2_row.status == "Rejected"
        assert a2_row.decline_reason == lifecycle.AUTO_REJECT_REASON
        assert _bound_chat("application", a2["id"]).status == "Rejected"
        assert _role(project, "Designer").user_id == APPLICANT

    def test_invitation_loses_to_application(self, project):
        a1 = _apply(project, APPLICANT)
        inv = lifecycle.invite(project.id, "Designer", CREATOR, OTHER)["invitation"]
        lifecycle.accept_application(a1["id"], CREATOR)
        with pytest.raises(RoleAlreadyFilledError):
            lifecycle.accept_invitation(inv["id"], OTHER)
        assert request_ledger.get_request("invitation", inv["id"]).status == "Rejected"

    def test_racing_accept_with_stale_read(self, project, monkeypatch):
        a1 = _apply(project, APPLICANT)
        a2 = _apply(project, OTHER)
        lifecycle.accept_application(a1["id"], CREATOR)

        # The second command read the slot before the first one committed
        real = project_service.roles_titled

        def _stale_read(*args, **kwargs):
            slots = real(*args, **kwargs)
            for slot in slots:
                set_committed_value(slot, "filled", False)
            return slots

        monkeypatch.setattr(project_service, "roles_titled", _stale_read)
        with pytest.raises(RoleAlreadyFilledError):
            lifecycle.accept_application(a2["id"], CREATOR)
        monkeypatch.undo()

        assert Role.query.filter(Role.title == "Designer", Role.filled.is_(True)).count() == 1
        assert request_ledger.get_request("application", a2["id"]).status == "Rejected"

    def test_retry_after_auto_rejection_is_invalid_transition(self, project):
        a1 = _apply(project, APPLICANT)
        a2 = _apply(project, OTHER)
        lifecycle.accept_application(a1["id"], CREATOR)
        with pytest.raises(RoleAlreadyFilledError):
            lifecycle.accept_application(a2["id"], CREATOR)
        with pytest.raises(InvalidTransitionError):
            lifecycle.accept_application(a2["id"], CREATOR)


# ═══════════════════════════════════════════════════════════════════════════
#  DECLINE
# ═══════════════════════════════════════════════════════════════════════════

class TestDecline:

    def test_decline_application(self, project):
        created = _apply(project)
        result = lifecycle.decline("application", created["id"], CREATOR, REASON)
        assert result["application"]["status"] == "Rejected"
        assert result["application"]["decline_reason"] == REASON
        assert result["chat"]["status"] == "Rejected"
        assert result["chat"]["last_message"]["text"] == f"Application declined. Reason: {REASON}"
        assert _role(project, "Designer").filled is False

    def test_decline_invitation_by_invitee(self, project):
        inv = lifecycle.invite(project.id, "Designer", CREATOR, OTHER)["invitation"]
        result = lifecycle.decline("invitation", inv["id"], OTHER, REASON)
        assert result["invitation"]["status"] == "Rejected"
        assert result["chat"]["last_message"]["sender_id"] == OTHER

    @pytest.mark.parametrize("reason", [
        "", "   ", None, "too short", 12345678901, ["a perfectly long reason"], "x" * 1001,
    ])
    def test_invalid_reason_keeps_pending(self, project, reason):
        inv = lifecycle.invite(project.id, "Designer", CREATOR, OTHER)["invitation"]
        with pytest.raises(InvalidReasonError):
            lifecycle.decline("invitation", inv["id"], OTHER, reason)
        assert request_ledger.get_request("invitation", inv["id"]).status == "Pending"
        assert _bound_chat("invitation", inv["id"]).status == "Pending"

    def test_wrong_actor(self, project):
        inv = lifecycle.invite(project.id, "Designer", CREATOR, OTHER)["invitation"]
        with pytest.raises(NotAuthorizedError):
            lifecycle.decline("invitation", inv["id"], THIRD, REASON)

    def test_terminal_requests_are_immutable(self, project):
        created = _apply(project)
        lifecycle.accept_application(created["id"], CREATOR)
        chat_before = _bound_chat("application", created["id"]).messages.count()

        with pytest.raises(InvalidTransitionError):
            lifecycle.decline("application", created["id"], CREATOR, REASON)

        row = request_ledger.get_request("application", created["id"])
        assert row.status == "Accepted"
        assert row.decline_reason is None
        assert _bound_chat("application", created["id"]).messages.count() == chat_before
        assert _role(project, "Designer").user_id == APPLICANT

    def test_reapply_after_decline(self, project):
        created = _apply(project)
        lifecycle.decline("application", created["id"], CREATOR, REASON)
        again = _apply(project)
        assert again["id"] != created["id"]
        assert again["chat_id"] != created["chat_id"]

    def test_reason_at_max_length_fits_trail(self, project, app):
        limit = app.config["DECLINE_REASON_MAX_LENGTH"]
        inv = lifecycle.invite(project.id, "Designer", CREATOR, OTHER)["invitation"]
        result = lifecycle.decline("invitation", inv["id"], OTHER, "y" * limit)
        assert result["invitation"]["decline_reason"] == "y" * limit
