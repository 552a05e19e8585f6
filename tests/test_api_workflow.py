import uuid

from edms.models.document import DocumentStatus
from tests.factories import make_document, make_user


def _headers(user):
    return {"X-Actor-Id": str(user.id)}


class TestTransitionEndpoint:
    def test_submit_then_publish(self, client, db_session, qc_author, qc_colleague) -> None:
        doc = make_document(db_session, qc_author, reviewer=qc_colleague)

        submitted = client.post(
            f"/api/v1/documents/{doc.id}/transitions",
            json={"to_status": "review"},
            headers=_headers(qc_author),
        )
        assert submitted.status_code == 200
        assert submitted.json()["success"] is True
        assert submitted.json()["from_status"] == "draft"

        published = client.post(
            f"/api/v1/documents/{doc.id}/transitions",
            json={"to_status": "published", "comment": "ok", "decision": "approved"},
            headers=_headers(qc_colleague),
        )
        assert published.status_code == 200
        assert published.json()["to_status"] == "published"
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.published

    def test_illegal_transition_is_400(self, client, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        response = client.post(
            f"/documents/{doc.id}/transitions",
            json={"to_status": "published"},
            headers=_headers(qc_author),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation"
        assert response.json()["reason"] == "Invalid transition from draft to published"

    def test_denied_is_403(self, client, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        outsider = make_user(db_session, department="LEGAL")
        response = client.post(
            f"/documents/{doc.id}/transitions",
            json={"to_status": "review"},
            headers=_headers(outsider),
        )
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_unknown_document_is_404(self, client, admin) -> None:
        response = client.post(
            f"/documents/{uuid.uuid4()}/transitions",
            json={"to_status": "review"},
            headers=_headers(admin),
        )
        assert response.status_code == 404

    def test_unknown_state_reaches_engine(self, client, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        response = client.post(
            f"/documents/{doc.id}/transitions",
            json={"to_status": "limbo"},
            headers=_headers(admin),
        )
        assert response.status_code == 400
        assert response.json()["reason"] == "Invalid workflow state: limbo"


class TestWorkflowQueries:
    def test_available_transitions(self, client, qc_author, td_document) -> None:
        response = client.get(
            f"/api/v1/documents/{td_document.id}/transitions", headers=_headers(qc_author)
        )
        assert response.status_code == 200
        targets = {item["to_status"]: item for item in response.json()}
        assert set(targets) == {"review", "archived"}
        assert targets["review"]["allowed"] is True

    def test_available_transitions_unknown_document(self, client, admin) -> None:
        response = client.get(
            f"/documents/{uuid.uuid4()}/transitions", headers=_headers(admin)
        )
        assert response.status_code == 404

    def test_history(self, client, qc_author, td_document) -> None:
        client.post(
            f"/documents/{td_document.id}/transitions",
            json={"to_status": "review"},
            headers=_headers(qc_author),
        )
        response = client.get(
            f"/documents/{td_document.id}/history", headers=_headers(qc_author)
        )
        assert response.status_code == 200
        (entry,) = response.json()
        assert entry["from_status"] == "draft"
        assert entry["to_status"] == "review"
        assert entry["transitioned_by"] == str(qc_author.id)

    def test_history_forbidden(self, client, db_session, td_document) -> None:
        outsider = make_user(db_session, department="FINANCE")
        response = client.get(
            f"/documents/{td_document.id}/history", headers=_headers(outsider)
        )
        assert response.status_code == 403

    def test_workflow_action(self, client, qc_author, td_document) -> None:
        response = client.get(
            f"/documents/{td_document.id}/workflow-actions/SUBMIT_FOR_REVIEW",
            headers=_headers(qc_author),
        )
        assert response.status_code == 200
        assert response.json()["allowed"] is True

    def test_pending(self, client, db_session, qc_author, qc_colleague) -> None:
        doc = make_document(db_session, qc_author, status="review", reviewer=qc_colleague)
        response = client.get("/workflow/pending", headers=_headers(qc_colleague))
        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [str(doc.id)]

    def test_statistics(self, client, db_session, qc_author) -> None:
        make_document(db_session, qc_author)
        response = client.get(
            "/api/v1/workflow/statistics",
            params={"department": "QC"},
            headers=_headers(qc_author),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["by_status"]["draft"] == 1

    def test_statistics_requires_actor(self, client) -> None:
        response = client.get("/workflow/statistics")
        assert response.status_code == 403
