"""
Tests for the audit record model.
"""
import dataclasses

import pytest

from spo_access_audit.models import (
    AUDIT_FIELDS,
    AuditRecord,
    GroupPrincipal,
    ItemType,
    PermissionAssignment,
    PrincipalType,
    UserPrincipal,
)


def make_record(**overrides):
    values = dict(
        site_url="https://contoso.sharepoint.com/sites/hr",
        item_type=ItemType.FILE,
        item_path="Documents/report.docx",
        principal_type=PrincipalType.USER,
        principal_name="Alice",
        user_name="Alice",
        permission="Read",
        user_email="alice@contoso.com",
    )
    values.update(overrides)
    return AuditRecord(**values)


def test_external_flag_is_derived_from_email():
    assert make_record().is_external is False
    guest = make_record(user_email="jane_fabrikam.com#ext#@contoso.onmicrosoft.com")
    assert guest.is_external is True


def test_external_flag_cannot_be_passed_in():
    with pytest.raises(TypeError):
        make_record(is_external=True)
    with pytest.raises(TypeError):
        make_record(has_external_links=True)


def test_records_are_immutable():
    record = make_record()
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.permission = "Full Control"


def test_has_external_links_only_for_sharing_links():
    assert make_record().has_external_links is False
    link = make_record(
        item_type=ItemType.SHARING_LINK,
        principal_type=PrincipalType.SHARING_LINK,
        principal_name="AnonymousView",
        user_name="",
        user_email=None,
        permission="AnonymousView",
        link_type="AnonymousView",
    )
    assert link.has_external_links is True
    assert link.is_external is True


def test_to_dict_uses_export_columns_in_order():
    row = make_record().to_dict()
    assert list(row) == AUDIT_FIELDS
    assert row["itemType"] == "File"
    assert row["principalType"] == "User"
    assert row["linkType"] == ""


def test_from_dict_parses_string_values():
    row = {k: str(v) for k, v in make_record(inherited=True).to_dict().items()}
    record = AuditRecord.from_dict(row)
    assert record == make_record(inherited=True)
    assert record.inherited is True


def test_from_dict_treats_blank_email_as_missing():
    row = make_record(principal_type=PrincipalType.GROUP, user_email=None).to_dict()
    assert AuditRecord.from_dict(row).user_email is None


def test_permission_assignment_joins_roles():
    assignment = PermissionAssignment(
        principal=UserPrincipal(name="Alice"),
        roles=("Contribute", "Read"),
    )
    assert assignment.permission == "Contribute, Read"


def test_principal_variants_carry_their_type():
    assert UserPrincipal(name="Alice").principal_type is PrincipalType.USER
    assert GroupPrincipal(name="HR Owners").principal_type is PrincipalType.GROUP


def security_group_record():
    return make_record(
        item_type=ItemType.LIBRARY,
        item_path="Documents",
        principal_type=PrincipalType.GROUP,
        principal_name="Everyone",
        user_name="Everyone",
        user_email=None,
        principal_kind="SecurityGroup",
    )


def test_security_group_records_are_external():
    record = security_group_record()
    assert record.is_external is True
    assert record.has_external_links is False
    assert "principalKind" not in record.to_dict()


def test_sharepoint_group_records_are_internal():
    assert make_record(principal_type=PrincipalType.GROUP, user_email=None,
                       principal_kind="SharePointGroup").is_external is False


def test_from_dict_keeps_security_group_classification():
    row = {k: str(v) for k, v in security_group_record().to_dict().items()}
    record = AuditRecord.from_dict(row)
    assert record.is_external is True
    assert record == security_group_record()
