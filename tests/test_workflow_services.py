from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from edms.exceptions import NotFoundError, PermissionDeniedError
from edms.models.audit import AuditEvent
from edms.models.document import DocumentStatus, WorkflowDecision, WorkflowTransition
from edms.services.audit import AuditRecorder
from edms.services.store import ResourceStore
from edms.services.vocabulary import TRANSITIONS, AuditAction
from edms.services.workflow import TRANSITION_META, WorkflowEngine
from tests.factories import make_document, make_user


def _engine(db_session, **kwargs):
    return WorkflowEngine(db_session, **kwargs)


def _transitions(db_session, document):
    return (
        db_session.query(WorkflowTransition)
        .filter(WorkflowTransition.document_id == document.id)
        .all()
    )


def _audit_actions(db_session, document):
    return [
        event.action
        for event in db_session.query(AuditEvent)
        .filter(AuditEvent.resource_id == str(document.id))
        .all()
    ]


class TestTransitionMetadata:
    def test_every_edge_has_metadata(self) -> None:
        edges = {(s, t) for s, targets in TRANSITIONS.items() for t in targets}
        assert edges == set(TRANSITION_META)

    def test_comment_required_edges(self) -> None:
        required = {edge for edge, spec in TRANSITION_META.items() if spec.requires_comment}
        assert required == {
            (DocumentStatus.review, DocumentStatus.draft),
            (DocumentStatus.review, DocumentStatus.published),
            (DocumentStatus.published, DocumentStatus.review),
            (DocumentStatus.archived, DocumentStatus.disposed),
            (DocumentStatus.review, DocumentStatus.archived),
        }

    def test_decision_sets(self) -> None:
        publish = TRANSITION_META[(DocumentStatus.review, DocumentStatus.published)]
        revise = TRANSITION_META[(DocumentStatus.review, DocumentStatus.draft)]
        assert publish.decisions == (WorkflowDecision.approved,)
        assert set(revise.decisions) == {WorkflowDecision.rejected, WorkflowDecision.returned}


class TestNonAdjacentTransitions:
    @pytest.mark.parametrize("source", list(DocumentStatus))
    def test_non_adjacent_targets_always_fail(self, db_session, admin, source) -> None:
        for target in DocumentStatus:
            if target in TRANSITIONS[source]:
                continue
            doc = make_document(db_session, admin, status=source.value)
            result = _engine(db_session).transition_status(
                doc.id, target, admin.id, comment="c", decision=None
            )
            assert result.success is False
            assert result.error == "validation"
            db_session.refresh(doc)
            assert doc.status is source
            assert _transitions(db_session, doc) == []

    def test_failure_is_audited(self, db_session, admin) -> None:
        doc = make_document(db_session, admin)
        _engine(db_session).transition_status(doc.id, "published", admin.id)
        assert AuditAction.WORKFLOW_TRANSITION_FAILED.value in _audit_actions(db_session, doc)


class TestScenario:
    def test_draft_to_review_to_published_to_archived(
        self, db_session, qc_author, qc_colleague
    ) -> None:
        doc = make_document(
            db_session, qc_author, doc_type="TD", department="QC", reviewer=qc_colleague
        )
        engine = _engine(db_session)

        submitted = engine.transition_status(doc.id, "review", qc_author.id)
        assert submitted.success is True
        assert submitted.transition_id is not None
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.review
        (record,) = _transitions(db_session, doc)
        assert record.from_status is DocumentStatus.draft
        assert record.to_status is DocumentStatus.review

        published = engine.transition_status(
            doc.id, "published", qc_colleague.id, comment="ok", decision="approved"
        )
        assert published.success is True
        db_session.refresh(doc)
        today = datetime.now(timezone.utc).date()
        assert doc.status is DocumentStatus.published
        assert doc.published_at is not None
        assert doc.next_review_date == today + timedelta(days=doc.review_cycle)
        assert doc.approver_id == qc_colleague.id

        archived = engine.transition_status(doc.id, "archived", qc_author.id)
        assert archived.success is True
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.archived
        assert doc.archived_at is not None
        assert doc.disposal_date == today + timedelta(days=doc.retention_period)

        assert len(_transitions(db_session, doc)) == 3
        assert (
            _audit_actions(db_session, doc).count(AuditAction.WORKFLOW_TRANSITION.value) == 3
        )

    def test_author_cannot_publish_unless_designated(
        self, db_session, qc_author, qc_colleague
    ) -> None:
        doc = make_document(db_session, qc_author, status="review", reviewer=qc_colleague)
        result = _engine(db_session).transition_status(
            doc.id, "published", qc_author.id, comment="ship it", decision="approved"
        )
        assert result.success is False
        assert result.error == "denied"
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.review

    def test_author_who_is_approver_can_publish(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="review", approver=qc_author)
        result = _engine(db_session).transition_status(
            doc.id, "published", qc_author.id, comment="ok", decision="approved"
        )
        assert result.success is True

    def test_reviewer_cannot_publish_when_approver_assigned(
        self, db_session, qc_author, qc_colleague
    ) -> None:
        approver = make_user(db_session, department="QC")
        doc = make_document(
            db_session,
            qc_author,
            status="review",
            reviewer=qc_colleague,
            approver=approver,
        )
        result = _engine(db_session).transition_status(
            doc.id, "published", qc_colleague.id, comment="ok", decision="approved"
        )
        assert result.success is False
        assert "approver" in result.reason


class TestEdgeAuthorization:
    def test_other_department_cannot_submit(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        outsider = make_user(db_session, department="LEGAL")
        result = _engine(db_session).transition_status(doc.id, "review", outsider.id)
        assert result.success is False
        assert result.error == "denied"

    def test_same_department_can_submit(self, db_session, qc_author, qc_colleague) -> None:
        doc = make_document(db_session, qc_author)
        result = _engine(db_session).transition_status(doc.id, "review", qc_colleague.id)
        assert result.success is True

    def test_return_for_revision_by_reviewer(self, db_session, qc_author, qc_colleague) -> None:
        doc = make_document(db_session, qc_author, status="review", reviewer=qc_colleague)
        result = _engine(db_session).transition_status(
            doc.id, "draft", qc_colleague.id, comment="fix section 2", decision="returned"
        )
        assert result.success is True
        (record,) = _transitions(db_session, doc)
        assert record.decision is WorkflowDecision.returned
        assert record.comment == "fix section 2"

    def test_dispose_falls_back_to_generic_check(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="archived")
        result = _engine(db_session).transition_status(
            doc.id, "disposed", qc_author.id, comment="retention ended"
        )
        assert result.success is False
        assert "Insufficient role permissions" in result.reason

    def test_admin_can_dispose(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="archived")
        result = _engine(db_session).transition_status(
            doc.id, "disposed", admin.id, comment="retention ended"
        )
        assert result.success is True
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.disposed

    def test_published_to_review_uses_author_or_department(
        self, db_session, qc_author, marketing_user
    ) -> None:
        doc = make_document(db_session, qc_author, status="published")
        engine = _engine(db_session)
        denied = engine.transition_status(
            doc.id, "review", marketing_user.id, comment="outdated"
        )
        assert denied.success is False
        allowed = engine.transition_status(doc.id, "review", qc_author.id, comment="outdated")
        assert allowed.success is True


class TestCommentAndDecision:
    def test_blank_comment_rejected(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="review")
        result = _engine(db_session).transition_status(
            doc.id, "archived", admin.id, comment="   "
        )
        assert result.success is False
        assert "Comment is required" in result.reason

    def test_missing_decision_rejected(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="review")
        result = _engine(db_session).transition_status(
            doc.id, "published", admin.id, comment="ok"
        )
        assert result.success is False
        assert "Decision is required" in result.reason

    def test_decision_outside_permitted_set(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="review")
        result = _engine(db_session).transition_status(
            doc.id, "draft", admin.id, comment="no", decision="approved"
        )
        assert result.success is False
        assert "not valid" in result.reason
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.review

    def test_unknown_decision(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="review")
        result = _engine(db_session).transition_status(
            doc.id, "published", admin.id, comment="ok", decision="maybe"
        )
        assert result.success is False
        assert "Invalid workflow decision" in result.reason

    def test_unknown_state(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        result = _engine(db_session).transition_status(doc.id, "pending", admin.id)
        assert result.success is False
        assert "Invalid workflow state" in result.reason

    def test_missing_document(self, db_session, admin) -> None:
        result = _engine(db_session).transition_status(
            "00000000-0000-0000-0000-000000000000", "review", admin.id
        )
        assert result.success is False
        assert result.error == "not_found"


class TestAtomicity:
    def test_failure_mid_transition_rolls_back(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        with patch(
            "edms.services.workflow.AuditEntry.to_model",
            side_effect=RuntimeError("audit table locked"),
        ):
            result = _engine(db_session).transition_status(doc.id, "review", admin.id)
        assert result.success is False
        assert result.error == "error"
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.draft
        assert _transitions(db_session, doc) == []

    def test_concurrent_status_change_detected(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        real_get_document = ResourceStore.get_document

        def stale_read(self, document_id, for_update=False):
            document = real_get_document(self, document_id, for_update)
            if for_update:
                # Simulates a second writer that already moved the row
                document.status = DocumentStatus.review
            return document

        with patch.object(ResourceStore, "get_document", stale_read):
            result = _engine(db_session).transition_status(
                doc.id, "archived", admin.id, comment="cancel"
            )
        assert result.success is False
        assert result.error == "conflict"
        assert result.retryable is True
        db_session.refresh(doc)
        assert doc.status is DocumentStatus.draft
        assert _transitions(db_session, doc) == []

    def test_failed_audit_recorder_does_not_block_failure_result(
        self, db_session, admin, qc_author
    ) -> None:
        class Broken(AuditRecorder):
            def append(self, entry) -> None:
                raise RuntimeError("sink down")

        doc = make_document(db_session, qc_author)
        result = _engine(db_session, recorder=Broken()).transition_status(
            doc.id, "disposed", admin.id
        )
        assert result.success is False
        assert result.error == "validation"


class TestAvailableTransitions:
    def test_author_on_draft(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        options = _engine(db_session).get_available_transitions(doc.id, qc_author.id)
        by_target = {option["to_status"]: option for option in options}
        assert set(by_target) == {DocumentStatus.review, DocumentStatus.archived}
        assert by_target[DocumentStatus.review]["allowed"] is True
        assert by_target[DocumentStatus.review]["label"] == "Submit for review"
        assert by_target[DocumentStatus.review]["requires_comment"] is False

    def test_outsider_sees_edges_but_not_allowed(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        outsider = make_user(db_session, department="FINANCE")
        options = _engine(db_session).get_available_transitions(doc.id, outsider.id)
        assert options
        assert all(option["allowed"] is False for option in options)

    def test_review_edges_expose_decisions(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="review")
        options = _engine(db_session).get_available_transitions(doc.id, admin.id)
        publish = next(o for o in options if o["to_status"] is DocumentStatus.published)
        assert publish["requires_decision"] is True
        assert publish["decisions"] == [WorkflowDecision.approved]

    def test_disposed_has_none(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="disposed")
        assert _engine(db_session).get_available_transitions(doc.id, admin.id) == []

    def test_missing_document_raises(self, db_session, admin) -> None:
        with pytest.raises(NotFoundError):
            _engine(db_session).get_available_transitions(
                "00000000-0000-0000-0000-000000000000", admin.id
            )


class TestHistory:
    def test_newest_first_and_audited(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        engine = _engine(db_session)
        engine.transition_status(doc.id, "review", qc_author.id)
        engine.transition_status(doc.id, "draft", admin.id, comment="redo", decision="rejected")

        history = engine.get_workflow_history(doc.id, qc_author.id)
        assert [h.to_status for h in history] == [
            DocumentStatus.draft,
            DocumentStatus.review,
        ]
        assert AuditAction.WORKFLOW_HISTORY_VIEWED.value in _audit_actions(db_session, doc)

    def test_gated_by_view_permission(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        outsider = make_user(db_session, department="FINANCE")
        with pytest.raises(PermissionDeniedError) as exc:
            _engine(db_session).get_workflow_history(doc.id, outsider.id)
        assert "no default access" in exc.value.message


class TestWorkflowActions:
    def test_author_may_submit(self, db_session, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        decision = _engine(db_session).can_perform_workflow_action(
            doc.id, qc_author.id, "submit_for_review"
        )
        assert decision.allowed is True

    def test_user_cannot_approve(self, db_session, qc_author, qc_colleague) -> None:
        doc = make_document(db_session, qc_author, status="review", reviewer=qc_colleague)
        decision = _engine(db_session).can_perform_workflow_action(
            doc.id, qc_colleague.id, "APPROVE"
        )
        assert decision.allowed is False

    def test_admin_may_dispose_archived(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author, status="archived")
        assert _engine(db_session).can_perform_workflow_action(doc.id, admin.id, "DISPOSE").allowed

    def test_wrong_state_for_action(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        decision = _engine(db_session).can_perform_workflow_action(doc.id, admin.id, "DISPOSE")
        assert decision.allowed is False
        assert "Invalid transition" in decision.reason

    def test_unknown_action(self, db_session, admin, qc_author) -> None:
        doc = make_document(db_session, qc_author)
        decision = _engine(db_session).can_perform_workflow_action(doc.id, admin.id, "TELEPORT")
        assert decision.allowed is False
        assert "Unknown workflow action" in decision.reason


class TestPendingAndStatistics:
    def test_pending_for_reviewer_and_admin(
        self, db_session, admin, qc_author, qc_colleague
    ) -> None:
        mine = make_document(db_session, qc_author, status="review", reviewer=qc_colleague)
        make_document(db_session, qc_author, status="review")
        make_document(db_session, qc_author, status="draft", reviewer=qc_colleague)
        engine = _engine(db_session)

        assert [d.id for d in engine.get_pending_approvals(qc_colleague.id)] == [mine.id]
        assert len(engine.get_pending_approvals(admin.id)) == 2
        assert engine.get_pending_approvals(qc_author.id) == []

    def test_statistics_by_status(self, db_session, qc_author, marketing_user) -> None:
        make_document(db_session, qc_author)
        make_document(db_session, qc_author, status="review")
        make_document(db_session, marketing_user, doc_type="PR", status="published")
        engine = _engine(db_session)

        overall = engine.get_workflow_statistics()
        assert overall["total"] == 3
        assert overall["by_status"]["draft"] == 1
        assert overall["by_status"]["disposed"] == 0

        qc = engine.get_workflow_statistics("QC")
        assert qc["total"] == 2
        assert qc["by_status"]["published"] == 0
