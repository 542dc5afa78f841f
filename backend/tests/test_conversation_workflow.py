"""End-to-end tests for the case request workflow over the HTTP API."""
import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from app.db.database import SessionLocal
from app.db.models import Case, CaseStatus, Conversation, ConversationStatus, Message, User
from app.services.conversation_service import ACCEPTED_MESSAGE, REJECTED_MESSAGE, conversation_service
from app.utils.exceptions import ConflictError
from conftest import auth_headers

SEND = "/api/v1/messages/send"
DECIDE = "/api/v1/conversations/decide"


def _first_contact(api, headers, lawyer, text="Need help with a lease dispute"):
    resp = api.post(SEND, json={"lawyer_id": str(lawyer.id), "text": text}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _decide(api, headers, conversation_id, accepted, title=None, description=None):
    body = {"conversation_id": conversation_id, "accepted": accepted}
    if title is not None:
        body["title"] = title
    if description is not None:
        body["description"] = description
    return api.post(DECIDE, json=body, headers=headers)


# ---------------------------------------------------------------------------
# First contact
# ---------------------------------------------------------------------------

class TestFirstContact:
    def test_creates_pending_conversation_with_case_request(self, api, db, client_headers, client_user, lawyer):
        data = _first_contact(api, client_headers, lawyer)

        conversation = db.query(Conversation).one()
        assert str(conversation.id) == data["conversation_id"]
        assert conversation.status == ConversationStatus.pending
        assert conversation.client_id == client_user.id
        assert conversation.lawyer_id == lawyer.id
        assert conversation.case_id is None

        message = data["message"]
        assert message["is_case_request"] is True
        assert message["text"] == "Need help with a lease dispute"
        assert message["delivered"] is True
        assert message["read"] is False

    def test_second_message_reuses_conversation(self, api, db, client_headers, lawyer):
        first = _first_contact(api, client_headers, lawyer, "hello")
        second = _first_contact(api, client_headers, lawyer, "follow-up details")

        assert first["conversation_id"] == second["conversation_id"]
        assert second["message"]["is_case_request"] is False
        assert db.query(Conversation).count() == 1
        assert db.query(Message).count() == 2

    def test_client_flag_is_ignored(self, api, client_headers, lawyer):
        first = api.post(
            SEND,
            json={"lawyer_id": str(lawyer.id), "text": "hi", "is_case_request": False},
            headers=client_headers,
        ).json()
        assert first["message"]["is_case_request"] is True

        second = api.post(
            SEND,
            json={"conversation_id": first["conversation_id"], "text": "again", "is_case_request": True},
            headers=client_headers,
        ).json()
        assert second["message"]["is_case_request"] is False

    def test_empty_message_rejected(self, api, db, client_headers, lawyer):
        resp = api.post(SEND, json={"lawyer_id": str(lawyer.id), "text": "   "}, headers=client_headers)
        assert resp.status_code == 400
        assert db.query(Conversation).count() == 0

    def test_attachment_only_message_allowed(self, api, client_headers, lawyer):
        attachment = {
            "name": "lease.pdf",
            "url": "https://test-chat-attachments.s3.ap-south-1.amazonaws.com/chat-attachments/a/b/lease.pdf",
            "type": "application/pdf",
        }
        resp = api.post(
            SEND,
            json={"lawyer_id": str(lawyer.id), "text": "", "attachments": [attachment]},
            headers=client_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["message"]["attachments"] == [attachment]

    def test_malformed_attachment_rejected(self, api, client_headers, lawyer):
        resp = api.post(
            SEND,
            json={"lawyer_id": str(lawyer.id), "text": "see file", "attachments": [{"name": "x.pdf"}]},
            headers=client_headers,
        )
        assert resp.status_code == 400

    def test_unknown_lawyer_is_404(self, api, client_headers):
        resp = api.post(SEND, json={"lawyer_id": str(uuid.uuid4()), "text": "hi"}, headers=client_headers)
        assert resp.status_code == 404

    def test_lawyer_cannot_open_request(self, api, lawyer_headers, other_lawyer):
        resp = api.post(SEND, json={"lawyer_id": str(other_lawyer.id), "text": "hi"}, headers=lawyer_headers)
        assert resp.status_code == 403

    def test_missing_target_is_400(self, api, client_headers):
        resp = api.post(SEND, json={"text": "hi"}, headers=client_headers)
        assert resp.status_code == 400

    def test_lawyer_cannot_reply_while_pending(self, api, client_headers, lawyer_headers, lawyer):
        data = _first_contact(api, client_headers, lawyer)
        resp = api.post(
            SEND,
            json={"conversation_id": data["conversation_id"], "text": "let me check"},
            headers=lawyer_headers,
        )
        assert resp.status_code == 409

    def test_outsider_cannot_post(self, api, db, client_headers, lawyer, other_client):
        data = _first_contact(api, client_headers, lawyer)
        resp = api.post(
            SEND,
            json={"conversation_id": data["conversation_id"], "text": "hi"},
            headers=auth_headers(other_client),
        )
        assert resp.status_code == 403

    def test_unique_pair_enforced(self, db, client_user, lawyer):
        db.add(Conversation(client_id=client_user.id, lawyer_id=lawyer.id))
        db.commit()
        db.add(Conversation(client_id=client_user.id, lawyer_id=lawyer.id))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class TestDecideRequest:
    def test_accept_creates_case_and_activates(self, api, db, client_headers, lawyer_headers, client_user, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]

        resp = _decide(api, lawyer_headers, conv_id, True, "Lease Dispute", "Landlord withholding deposit")
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["status"] == "active"
        assert body["case_id"]

        case = db.query(Case).one()
        assert str(case.id) == body["case_id"]
        assert case.status == CaseStatus.pending
        assert case.title == "Lease Dispute"
        assert case.description == "Landlord withholding deposit"
        assert case.lawyer_id == lawyer.id
        assert case.client_id == client_user.id
        assert case.accepted_at is not None

        conversation = db.query(Conversation).one()
        assert conversation.status == ConversationStatus.active
        assert conversation.case_id == case.id

        last = db.query(Message).order_by(Message.created_at.desc()).first()
        assert last.sender_id == lawyer.id
        assert last.text == ACCEPTED_MESSAGE
        assert last.is_case_request is False

    def test_reject_archives_without_case(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]

        resp = _decide(api, lawyer_headers, conv_id, False)
        assert resp.status_code == 200
        assert resp.json()["status"] == "archived"
        assert resp.json()["case_id"] is None

        assert db.query(Case).count() == 0
        conversation = db.query(Conversation).one()
        assert conversation.status == ConversationStatus.archived
        texts = [m.text for m in db.query(Message).all()]
        assert REJECTED_MESSAGE in texts

    def test_archived_conversation_refuses_messages(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        _decide(api, lawyer_headers, conv_id, False)
        count_before = db.query(Message).count()

        resp = api.post(SEND, json={"conversation_id": conv_id, "text": "please reconsider"}, headers=client_headers)
        assert resp.status_code == 409

        resp = api.post(SEND, json={"lawyer_id": str(lawyer.id), "text": "please reconsider"}, headers=client_headers)
        assert resp.status_code == 409
        assert db.query(Message).count() == count_before

    def test_second_decision_conflicts(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        assert _decide(api, lawyer_headers, conv_id, True, "Lease Dispute", "Deposit").status_code == 200

        assert _decide(api, lawyer_headers, conv_id, True, "Again", "Again").status_code == 409
        assert _decide(api, lawyer_headers, conv_id, False).status_code == 409
        assert db.query(Case).count() == 1

    def test_accept_after_reject_conflicts(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        assert _decide(api, lawyer_headers, conv_id, False).status_code == 200

        resp = _decide(api, lawyer_headers, conv_id, True, "Lease Dispute", "Deposit")
        assert resp.status_code == 409
        assert db.query(Case).count() == 0
        assert db.query(Conversation).one().status == ConversationStatus.archived

    def test_stale_read_loses_to_committed_decision(self, db, client_user, lawyer):
        """The conditional update refuses a decision made on an outdated pending row."""
        conversation, _ = conversation_service.send_message(db, client_user, lawyer_id=lawyer.id, text="hi")
        conversation_id = conversation.id
        lawyer_id = lawyer.id
        # db keeps this row cached as pending from here on
        assert conversation.status == ConversationStatus.pending

        other = SessionLocal()
        try:
            conversation_service.decide_request(other, other.get(User, lawyer_id), conversation_id, False)
        finally:
            other.close()

        with pytest.raises(ConflictError):
            conversation_service.decide_request(
                db, lawyer, conversation_id, True, title="Lease Dispute", description="Deposit"
            )

        db.expire_all()
        assert db.query(Case).count() == 0
        assert db.get(Conversation, conversation_id).status == ConversationStatus.archived
        texts = [m.text for m in db.query(Message).all()]
        assert ACCEPTED_MESSAGE not in texts
        assert texts.count(REJECTED_MESSAGE) == 1
        assert len(texts) == 2

    def test_accept_requires_title_and_description(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]

        assert _decide(api, lawyer_headers, conv_id, True, description="Deposit").status_code == 400
        assert _decide(api, lawyer_headers, conv_id, True, "  ", "Deposit").status_code == 400
        assert _decide(api, lawyer_headers, conv_id, True, "Lease Dispute").status_code == 400

        assert db.query(Case).count() == 0
        assert db.query(Conversation).one().status == ConversationStatus.pending

    def test_client_cannot_decide(self, api, client_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        assert _decide(api, client_headers, conv_id, False).status_code == 403

    def test_other_lawyer_cannot_decide(self, api, client_headers, lawyer, other_lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        assert _decide(api, auth_headers(other_lawyer), conv_id, False).status_code == 403

    def test_unknown_conversation_is_404(self, api, lawyer_headers):
        assert _decide(api, lawyer_headers, str(uuid.uuid4()), False).status_code == 404

    def test_active_conversation_accepts_both_sides(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        _decide(api, lawyer_headers, conv_id, True, "Lease Dispute", "Deposit")

        for headers in (lawyer_headers, client_headers):
            resp = api.post(SEND, json={"conversation_id": conv_id, "text": "update"}, headers=headers)
            assert resp.status_code == 201
            assert resp.json()["message"]["is_case_request"] is False


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestConversationReads:
    def test_list_filters_by_status(self, api, client_headers, lawyer_headers, lawyer, other_lawyer):
        pending_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        _first_contact(api, client_headers, other_lawyer)

        resp = api.get("/api/v1/conversations/", headers=client_headers)
        assert resp.json()["total"] == 2

        _decide(api, lawyer_headers, pending_id, False)
        resp = api.get("/api/v1/conversations/", params={"status": "pending"}, headers=client_headers)
        assert resp.json()["total"] == 1

        resp = api.get("/api/v1/conversations/", headers=lawyer_headers)
        assert [c["id"] for c in resp.json()["conversations"]] == [pending_id]

    def test_detail_counts_unread_and_mark_read(self, api, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer, "one")["conversation_id"]
        _first_contact(api, client_headers, lawyer, "two")

        detail = api.get(f"/api/v1/conversations/{conv_id}", headers=lawyer_headers).json()
        assert detail["unread_count"] == 2
        assert detail["client"]["email"] == "asha@example.com"
        assert detail["lawyer"]["role"] == "lawyer"

        resp = api.post(f"/api/v1/conversations/{conv_id}/read", headers=lawyer_headers)
        assert resp.json()["marked_read"] == 2

        detail = api.get(f"/api/v1/conversations/{conv_id}", headers=lawyer_headers).json()
        assert detail["unread_count"] == 0

    def test_messages_in_order(self, api, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer, "first")["conversation_id"]
        _decide(api, lawyer_headers, conv_id, True, "Lease Dispute", "Deposit")

        messages = api.get(f"/api/v1/conversations/{conv_id}/messages", headers=client_headers).json()
        assert [m["text"] for m in messages] == ["first", ACCEPTED_MESSAGE]
        assert messages[0]["is_case_request"] is True

    def test_outsider_cannot_read(self, api, client_headers, lawyer, other_client):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        resp = api.get(f"/api/v1/conversations/{conv_id}/messages", headers=auth_headers(other_client))
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------

class TestIdempotentSend:
    def test_same_key_returns_original_message(self, api, db, client_headers, lawyer):
        headers = {**client_headers, "Idempotency-Key": "tab-1-msg-1"}
        body = {"lawyer_id": str(lawyer.id), "text": "hello"}

        first = api.post(SEND, json=body, headers=headers)
        second = api.post(SEND, json=body, headers=headers)

        assert first.status_code == second.status_code == 201
        assert first.json()["message"]["id"] == second.json()["message"]["id"]
        assert db.query(Message).count() == 1

    def test_different_keys_send_twice(self, api, db, client_headers, lawyer):
        body = {"lawyer_id": str(lawyer.id), "text": "hello"}
        api.post(SEND, json=body, headers={**client_headers, "Idempotency-Key": "a"})
        api.post(SEND, json=body, headers={**client_headers, "Idempotency-Key": "b"})
        assert db.query(Message).count() == 2

    def test_same_key_different_body_conflicts(self, api, db, client_headers, lawyer):
        headers = {**client_headers, "Idempotency-Key": "shared"}
        first = api.post(SEND, json={"lawyer_id": str(lawyer.id), "text": "hello"}, headers=headers)
        assert first.status_code == 201

        resp = api.post(
            SEND,
            json={"conversation_id": first.json()["conversation_id"], "text": "something else"},
            headers=headers,
        )
        assert resp.status_code == 409
        assert db.query(Message).count() == 1


class TestIdempotentDecide:
    def test_retried_accept_returns_original_decision(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        headers = {**lawyer_headers, "Idempotency-Key": "decide-1"}

        first = _decide(api, headers, conv_id, True, "Lease Dispute", "Deposit")
        retry = _decide(api, headers, conv_id, True, "Lease Dispute", "Deposit")

        assert first.status_code == retry.status_code == 200
        assert retry.json() == first.json()
        assert db.query(Case).count() == 1
        assert [m.text for m in db.query(Message).all()].count(ACCEPTED_MESSAGE) == 1

    def test_same_key_different_decision_conflicts(self, api, db, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        headers = {**lawyer_headers, "Idempotency-Key": "decide-2"}

        assert _decide(api, headers, conv_id, False).status_code == 200
        resp = _decide(api, headers, conv_id, True, "Lease Dispute", "Deposit")
        assert resp.status_code == 409
        assert "Idempotency-Key" in resp.json()["detail"]

    def test_retry_without_key_still_conflicts(self, api, client_headers, lawyer_headers, lawyer):
        conv_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        assert _decide(api, lawyer_headers, conv_id, False).status_code == 200
        assert _decide(api, lawyer_headers, conv_id, False).status_code == 409

    def test_key_reused_across_endpoints_conflicts(
        self, api, db, client_headers, lawyer_headers, lawyer, other_client
    ):
        active_id = _first_contact(api, client_headers, lawyer)["conversation_id"]
        _decide(api, lawyer_headers, active_id, True, "Lease Dispute", "Deposit")
        pending_id = _first_contact(api, auth_headers(other_client), lawyer)["conversation_id"]

        headers = {**lawyer_headers, "Idempotency-Key": "lawyer-key"}
        sent = api.post(SEND, json={"conversation_id": active_id, "text": "noted"}, headers=headers)
        assert sent.status_code == 201

        resp = _decide(api, headers, pending_id, False)
        assert resp.status_code == 409
        assert db.get(Conversation, uuid.UUID(pending_id)).status == ConversationStatus.pending
