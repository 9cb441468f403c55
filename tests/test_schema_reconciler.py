import pytest

from errors import AuthenticationError, SchemaConflictError, TransientPlatformError
from importers.schema_reconciler import SchemaReconciler, types_compatible
from models import ColumnSpec


def _desired():
    return [
        ColumnSpec('Task Name', 'TEXT_NUMBER', primary=True),
        ColumnSpec('Start Date', 'DATE'),
        ColumnSpec('Milestone', 'CHECKBOX'),
        ColumnSpec('Cost Center Code', 'TEXT_NUMBER'),
    ]


@pytest.fixture
def sheet(client):
    return client.add_sheet(1, 'Plan - Tasks', [{'title': 'Task Name', 'type': 'TEXT_NUMBER', 'primary': True}])


def test_ensure_columns_is_idempotent(client, policy, sheet):
    reconciler = SchemaReconciler(client, policy)
    first = reconciler.ensure_columns(sheet['id'], _desired())
    creates = client.count('create_columns')

    second = reconciler.ensure_columns(sheet['id'], _desired())

    assert second == first
    assert client.count('create_columns') == creates
    assert reconciler.columns_created == 3
    assert set(first) == {'Task Name', 'Start Date', 'Milestone', 'Cost Center Code'}


def test_missing_columns_go_in_one_batch_at_the_end(client, policy, sheet):
    SchemaReconciler(client, policy).ensure_columns(sheet['id'], _desired())
    create_calls = [call for call in client.calls if call[0] == 'create_columns']
    assert create_calls == [('create_columns', sheet['id'], ['Start Date', 'Milestone', 'Cost Center Code'], 1)]


def test_titles_match_ignoring_case_and_spacing(client, policy):
    sheet = client.add_sheet(1, 'Plan - Tasks', [
        {'title': 'Task Name', 'type': 'TEXT_NUMBER', 'primary': True},
        {'title': 'start  date', 'type': 'ABSTRACT_DATETIME'},
    ])
    reconciler = SchemaReconciler(client, policy)
    column_map = reconciler.ensure_columns(sheet['id'], [ColumnSpec('Start Date', 'DATE')])

    existing_id = client.column_id(sheet, 'start  date')
    assert column_map['Start Date'] == existing_id
    assert column_map['start  date'] == existing_id
    assert client.count('create_columns') == 0


def test_incompatible_type_is_a_conflict(client, policy):
    sheet = client.add_sheet(1, 'Plan - Tasks', [
        {'title': 'Task Name', 'type': 'TEXT_NUMBER', 'primary': True},
        {'title': 'Milestone', 'type': 'DATE'},
    ])
    with pytest.raises(SchemaConflictError) as excinfo:
        SchemaReconciler(client, policy).ensure_columns(sheet['id'], _desired())
    assert excinfo.value.title == 'Milestone'
    assert client.count('create_columns') == 0


def test_failed_batch_falls_back_to_one_by_one(client, policy, sheet):
    client.rejected_column_titles.add('Milestone')
    reconciler = SchemaReconciler(client, policy)

    column_map = reconciler.ensure_columns(sheet['id'], _desired())

    assert 'Start Date' in column_map and 'Cost Center Code' in column_map
    assert 'Milestone' not in column_map
    assert reconciler.columns_created == 2
    assert len(reconciler.warnings) == 1 and 'Milestone' in reconciler.warnings[0]


def test_authentication_failure_is_not_swallowed(client, policy, sheet):
    client.fail('create_columns', AuthenticationError("token expired", status=401))
    with pytest.raises(AuthenticationError):
        SchemaReconciler(client, policy).ensure_columns(sheet['id'], _desired())
    assert client.count('create_columns') == 1


def test_transient_failures_are_retried(client, policy, sheet):
    client.fail('list_columns', TransientPlatformError("rate limited", status=429))
    column_map = SchemaReconciler(client, policy).ensure_columns(sheet['id'], _desired())
    assert len(column_map) == 4


def test_workspace_and_sheet_are_reused(client, policy):
    reconciler = SchemaReconciler(client, policy)
    workspace = reconciler.get_or_create_workspace('Data Center Build')
    again = reconciler.get_or_create_workspace('Data Center Build')
    assert again['id'] == workspace['id']
    assert client.count('create_workspace') == 1

    seed = [ColumnSpec('Task Name', primary=True), ColumnSpec('Notes')]
    sheet, created = reconciler.get_or_create_sheet(workspace['id'], 'Data Center Build - Tasks', seed)
    same, created_again = reconciler.get_or_create_sheet(workspace['id'], 'Data Center Build - Tasks', seed)
    assert (created, created_again) == (True, False)
    assert same['id'] == sheet['id']
    assert reconciler.columns_created == 2


def test_cross_sheet_reference_bodies(client, policy):
    tasks = client.add_sheet(1, 'Tasks', [{'title': 'Work Resource', 'type': 'MULTI_CONTACT_LIST'},
                                          {'title': 'Material Resource', 'type': 'MULTI_PICKLIST'}])
    reconciler = SchemaReconciler(client, policy)
    work_id = client.column_id(tasks, 'Work Resource')
    material_id = client.column_id(tasks, 'Material Resource')

    reconciler.configure_cross_sheet_reference(tasks['id'], work_id, 'MULTI_CONTACT_LIST', 77, 701)
    reconciler.configure_cross_sheet_reference(tasks['id'], material_id, 'MULTI_PICKLIST', 77, 702)

    bodies = [call[3] for call in client.calls if call[0] == 'update_column']
    assert bodies[0] == {'type': 'MULTI_CONTACT_LIST', 'contactOptions': [{'sheetId': 77, 'columnId': 701}]}
    assert bodies[1]['options'][0]['value'] == {'objectType': 'CELL_LINK', 'sheetId': 77, 'columnId': 702}
    with pytest.raises(ValueError):
        reconciler.configure_cross_sheet_reference(tasks['id'], work_id, 'DATE', 77, 701)


def test_type_compatibility():
    assert types_compatible('ABSTRACT_DATETIME', 'DATE')
    assert types_compatible('TEXT_NUMBER', 'PICKLIST')
    assert types_compatible('CONTACT_LIST', 'MULTI_CONTACT_LIST')
    assert not types_compatible('CHECKBOX', 'TEXT_NUMBER')
    assert not types_compatible('DATE', 'PREDECESSOR')
