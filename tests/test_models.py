"""
Tests — model layer: Project/Role, Application/Invitation, Chat/Message,
Notification.

Covers:
    1. Role slot ordering and filled/user_id consistency
    2. Partial unique indexes on Pending request triples
    3. Chat participant normalisation, binding uniqueness, to_dict
    4. Notification read tracking
"""

import pytest
from sqlalchemy.exc import IntegrityError

from teamhub.models import db
from teamhub.models.chat import Chat, Message, normalise_participants
from teamhub.models.collaboration import Application, Invitation
from teamhub.models.notification import Notification
from teamhub.models.project import Role

from tests.conftest import APPLICANT, CREATOR, OTHER


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 1: Project / Role
# ═══════════════════════════════════════════════════════════════════════════

class TestProjectModel:

    def test_roles_are_ordered_by_position(self, project):
        titles = [r.title for r in project.roles]
        assert titles == ["Designer", "Developer", "Developer", "Marketer"]
        assert [r.position for r in project.roles] == [0, 1, 2, 3]

    def test_roles_titled_returns_every_slot(self, project):
        assert len(project.roles_titled("Developer")) == 2
        assert project.roles_titled("Nope") == []

    def test_member_ids_only_counts_filled_slots(self, project):
        assert project.member_ids() == set()
        slot = project.roles[0]
        slot.filled = True
        slot.user_id = APPLICANT
        db.session.commit()
        assert project.member_ids() == {APPLICANT}

    def test_to_dict_includes_roles(self, project):
        d = project.to_dict()
        assert d["creator_id"] == CREATOR
        assert d["status"] == "Planning"
        assert d["tags"] == ["mobile", "sustainability"]
        assert len(d["roles"]) == 4
        assert d["roles"][0]["filled"] is False
        assert "roles" not in project.to_dict(include_roles=False)

    def test_filled_requires_user(self, project):
        slot = project.roles[0]
        slot.filled = True
        slot.user_id = None
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_role_repr(self, project):
        assert "open" in repr(project.roles[0])


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 2: Request ledger rows
# ═══════════════════════════════════════════════════════════════════════════

class TestRequestModels:

    def _application(self, project, status="Pending"):
        return Application(project_id=project.id, role_title="Designer",
                           applicant_id=APPLICANT, message="hi", status=status)

    def test_second_pending_application_violates_index(self, project):
        db.session.add(self._application(project))
        db.session.commit()
        db.session.add(self._application(project))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_terminal_rows_do_not_block_new_pending(self, project):
        db.session.add(self._application(project, status="Rejected"))
        db.session.add(self._application(project, status="Rejected"))
        db.session.add(self._application(project))
        db.session.commit()
        assert Application.query.count() == 3

    def test_pending_invitation_index(self, project):
        for _ in range(2):
            db.session.add(Invitation(project_id=project.id, role_title="Designer",
                                      inviter_id=CREATOR, invitee_id=OTHER))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_candidate_id(self, project):
        app_row = self._application(project)
        inv_row = Invitation(project_id=project.id, role_title="Designer",
                             inviter_id=CREATOR, invitee_id=OTHER)
        assert app_row.candidate_id == APPLICANT
        assert inv_row.candidate_id == OTHER

    def test_to_dict_carries_kind(self, project):
        row = self._application(project)
        db.session.add(row)
        db.session.commit()
        d = row.to_dict()
        assert d["kind"] == "application"
        assert d["status"] == "Pending"
        assert d["decided_at"] is None


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 3: Chat / Message
# ═══════════════════════════════════════════════════════════════════════════

class TestChatModel:

    def test_normalise_participants(self):
        assert normalise_participants("b", "a") == ("a", "b")
        assert normalise_participants("a", "b") == ("a", "b")

    def test_bound_chat_requires_status(self, project):
        chat = Chat(kind="application", project_id=project.id, participant_a="a",
                    participant_b="b", bound_kind="application", bound_id=1, status=None)
        db.session.add(chat)
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_one_chat_per_binding(self, project):
        for _ in range(2):
            db.session.add(Chat(kind="invitation", project_id=project.id, participant_a="a",
                                participant_b="b", bound_kind="invitation", bound_id=9,
                                status="Pending"))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_unread_count_and_to_dict(self):
        chat = Chat(participant_a="a", participant_b="b")
        db.session.add(chat)
        db.session.flush()
        db.session.add_all([
            Message(chat_id=chat.id, sender_id="a", text="hello"),
            Message(chat_id=chat.id, sender_id="b", text="hey"),
            Message(chat_id=chat.id, sender_id="a", text="how are you"),
        ])
        db.session.commit()

        assert chat.unread_count("b") == 2
        assert chat.unread_count("a") == 1
        d = chat.to_dict(viewer_id="b", include_messages=True)
        assert d["binding"] is None
        assert d["status"] is None
        assert d["unread_count"] == 2
        assert [m["text"] for m in d["messages"]] == ["hello", "hey", "how are you"]

    def test_other_participant(self):
        chat = Chat(participant_a="a", participant_b="b")
        assert chat.other_participant("a") == "b"
        assert chat.other_participant("b") == "a"
        assert chat.has_participant("a")
        assert not chat.has_participant("c")


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 4: Notification
# ═══════════════════════════════════════════════════════════════════════════

class TestNotificationModel:

    def test_mark_read(self):
        n = Notification(recipient_id="a", type="project_invite", title="Invite")
        db.session.add(n)
        db.session.commit()
        assert n.is_read is False
        n.mark_read()
        db.session.commit()
        d = n.to_dict()
        assert d["is_read"] is True
        assert d["read_at"] is not None
