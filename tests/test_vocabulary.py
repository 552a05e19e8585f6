import pytest

from edms.models.document import DocumentStatus, DocumentType
from edms.models.user import UserRole
from edms.services.vocabulary import (
    ACTION_GRANT_LEVELS,
    AUDIT_ALIASES,
    DEPARTMENT_DOCUMENT_TYPES,
    ROLE_ACTIONS,
    ROLE_CLEARANCE,
    TRANSITIONS,
    Action,
    AuditAction,
    ResourceType,
    parse_action,
    parse_resource_type,
    transition_action,
)


class TestTables:
    def test_every_role_has_actions_and_clearance(self) -> None:
        assert set(ROLE_ACTIONS) == set(UserRole)
        assert set(ROLE_CLEARANCE) == set(UserRole)

    def test_admin_role_holds_every_action(self) -> None:
        assert ROLE_ACTIONS[UserRole.admin] == frozenset(Action)

    def test_clearance_is_ordered(self) -> None:
        assert (
            ROLE_CLEARANCE[UserRole.guest]
            < ROLE_CLEARANCE[UserRole.user]
            < ROLE_CLEARANCE[UserRole.admin]
        )

    def test_every_state_has_adjacency(self) -> None:
        assert set(TRANSITIONS) == set(DocumentStatus)
        assert TRANSITIONS[DocumentStatus.disposed] == ()

    def test_board_sees_every_type(self) -> None:
        assert DEPARTMENT_DOCUMENT_TYPES["BOD"] == frozenset(DocumentType)

    def test_audit_aliases_are_log_only(self) -> None:
        for alias in AUDIT_ALIASES.values():
            assert isinstance(alias, AuditAction)
            assert parse_action(alias.value) is None

    def test_grant_levels_only_name_document_actions(self) -> None:
        assert Action.MANAGE_USERS not in ACTION_GRANT_LEVELS
        assert Action.VIEW_AUDIT_LOGS not in ACTION_GRANT_LEVELS


class TestParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("VIEW_DOCUMENT", Action.VIEW_DOCUMENT),
            ("view_document", Action.VIEW_DOCUMENT),
            (" edit_document ", Action.EDIT_DOCUMENT),
            (Action.MANAGE_USERS, Action.MANAGE_USERS),
            ("DOCUMENT_VIEWED", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_action(self, raw, expected) -> None:
        assert parse_action(raw) is expected

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("document", ResourceType.document),
            ("AUDIT_LOG", ResourceType.audit_log),
            (ResourceType.user, ResourceType.user),
            ("folder", None),
        ],
    )
    def test_parse_resource_type(self, raw, expected) -> None:
        assert parse_resource_type(raw) is expected

    def test_transition_action_names(self) -> None:
        assert (
            transition_action(DocumentStatus.archived, DocumentStatus.disposed)
            is Action.TRANSITION_ARCHIVED_TO_DISPOSED
        )

    def test_transition_action_exists_for_every_edge(self) -> None:
        for source, targets in TRANSITIONS.items():
            for target in targets:
                assert transition_action(source, target).value.startswith("TRANSITION_")
