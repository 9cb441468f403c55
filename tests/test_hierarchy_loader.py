import threading

import pytest

from errors import MigrationCancelled, ProjectLoadError, TransientPlatformError
from importers.hierarchy_loader import NO_PARENT, HierarchyLoader, group_key
from models import ColumnSpec, SourcePredecessor, SourceTask
from transformers import sheet_layouts as layout

TASK_COLUMNS = [
    {'title': layout.TASK_NAME, 'type': 'TEXT_NUMBER', 'primary': True},
    {'title': layout.TASK_ID, 'type': 'TEXT_NUMBER', 'hidden': True},
    {'title': layout.PREDECESSORS, 'type': 'PREDECESSOR'},
]


@pytest.fixture
def sheet(client):
    return client.add_sheet(1, 'Plan - Tasks', TASK_COLUMNS)


@pytest.fixture
def column_ids(sheet):
    return {column['title']: column['id'] for column in sheet['columns']}


def _loader(client, sheet, column_ids, policy, **kwargs):
    kwargs.setdefault('project_id', 'p-1')
    return HierarchyLoader(client, sheet['id'], column_ids, policy, **kwargs)


def _add_row_calls(client):
    return [call[2] for call in client.calls if call[0] == 'add_rows']


def _name_order(client, sheet):
    return [client.cell(sheet, row, layout.TASK_NAME)['value'] for row in client.sheets[sheet['id']]['rows']]


def test_three_roots_and_two_children_make_two_batches(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('A', 'A'),
        SourceTask('B', 'B'),
        SourceTask('C', 'C'),
        SourceTask('B1', 'B1', outline_level=2, parent_id='B'),
        SourceTask('B2', 'B2', outline_level=2, parent_id='B'),
    ]
    loader = _loader(client, sheet, column_ids, policy)
    identity = loader.load(tasks)

    batches = _add_row_calls(client)
    assert [len(batch) for batch in batches] == [3, 2]
    assert all(row['toBottom'] and 'parentId' not in row for row in batches[0])
    assert {row['parentId'] for row in batches[1]} == {identity['B']}

    assert [(b.level, b.group) for b in loader.batches] == [(1, NO_PARENT), (2, group_key(identity['B']))]
    assert _name_order(client, sheet) == ['A', 'B', 'B1', 'B2', 'C']
    assert loader.rows_created == 5


def test_round_trip_reproduces_outline_levels(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('1', 'Phase 1'),
        SourceTask('1.1', 'Work package', outline_level=2, parent_id='1'),
        SourceTask('1.1.1', 'Activity', outline_level=3, parent_id='1.1'),
        SourceTask('1.1.2', 'Activity 2', outline_level=3, parent_id='1.1'),
        SourceTask('1.2', 'Sign-off', outline_level=2, parent_id='1'),
        SourceTask('2', 'Phase 2'),
        SourceTask('2.1', 'Closeout', outline_level=2, parent_id='2'),
    ]
    identity = _loader(client, sheet, column_ids, policy, batch_size=2).load(tasks)

    levels = client.row_levels(sheet['id'])
    for task in tasks:
        assert levels[identity[task.id]] == task.outline_level
    assert _name_order(client, sheet) == [t.name for t in tasks]


def test_large_groups_are_split_with_the_same_placement(client, policy, sheet, column_ids):
    tasks = [SourceTask('root', 'Root')] + [
        SourceTask(f'c{i}', f'Child {i}', outline_level=2, parent_id='root') for i in range(5)
    ]
    identity = _loader(client, sheet, column_ids, policy, batch_size=2).load(tasks)

    batches = _add_row_calls(client)
    assert [len(batch) for batch in batches] == [1, 2, 2, 1]
    assert all(row['parentId'] == identity['root'] for batch in batches[1:] for row in batch)
    assert _name_order(client, sheet) == ['Root'] + [f'Child {i}' for i in range(5)]


def test_missing_parent_goes_to_the_top_level_with_a_warning(client, policy, sheet, column_ids):
    tasks = [SourceTask('A', 'A'), SourceTask('orphan', 'Orphan', outline_level=2, parent_id='gone')]
    loader = _loader(client, sheet, column_ids, policy)
    loader.load(tasks)

    assert 'parentId' not in _add_row_calls(client)[1][0]
    assert any('Orphan' in w for w in loader.warnings)


def test_predecessors_use_declaration_positions(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('A', 'A'),
        SourceTask('A1', 'A1', outline_level=2, parent_id='A'),
        SourceTask('B', 'B'),
        SourceTask('B1', 'B1', outline_level=2, parent_id='B', predecessors=[SourcePredecessor('A1', 1)]),
    ]
    loader = _loader(client, sheet, column_ids, policy)
    identity = loader.load(tasks)

    # A1 exists before B1's batch, so the link is written with the row itself
    child_batch = _add_row_calls(client)[-1]
    assert {'columnId': column_ids[layout.PREDECESSORS], 'value': '2FS'} in child_batch[0]['cells']
    assert loader.deferred == []
    rows = {row['id']: row for row in client.sheets[sheet['id']]['rows']}
    assert client.cell(sheet, rows[identity['B1']], layout.PREDECESSORS)['value'] == '2FS'


def test_same_batch_link_is_written_in_full_after_loading(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('A', 'A'),
        SourceTask('B', 'B'),
        SourceTask('C', 'C', predecessors=[SourcePredecessor('A', 1)]),
    ]
    loader = _loader(client, sheet, column_ids, policy)
    loader.load(tasks)
    loader.apply_deferred_predecessors()

    row_c = client.sheets[sheet['id']]['rows'][2]
    assert client.cell(sheet, row_c, layout.PREDECESSORS)['value'] == '1FS'


def test_links_to_later_rows_are_applied_afterwards(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('P', 'Parent', predecessors=[SourcePredecessor('K', 1)]),
        SourceTask('K', 'Kid', outline_level=2, parent_id='P'),
        SourceTask('Q', 'Peer', predecessors=[SourcePredecessor('P', 1), SourcePredecessor('K', 3, 'PT8H')]),
    ]
    loader = _loader(client, sheet, column_ids, policy)
    identity = loader.load(tasks)

    first_batch = _add_row_calls(client)[0]
    assert [c for c in first_batch[0]['cells'] if c['columnId'] == column_ids[layout.PREDECESSORS]] == []
    assert [d.task_id for d in loader.deferred] == ['P', 'Q']

    assert loader.apply_deferred_predecessors() == 2
    rows = {row['id']: row for row in client.sheets[sheet['id']]['rows']}
    assert client.cell(sheet, rows[identity['P']], layout.PREDECESSORS)['value'] == '2FS'
    assert client.cell(sheet, rows[identity['Q']], layout.PREDECESSORS)['value'] == '1FS,2SS+1d'


def test_deferred_links_only_warn_when_disabled(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('P', 'Parent', predecessors=[SourcePredecessor('K', 1)]),
        SourceTask('K', 'Kid', outline_level=2, parent_id='P'),
    ]
    loader = _loader(client, sheet, column_ids, policy, resolve_deferred=False)
    loader.load(tasks)

    assert loader.apply_deferred_predecessors() == 0
    assert client.count('update_rows') == 0
    assert any("'2FS'" in w for w in loader.warnings)


def test_batch_failure_carries_context(client, policy, sheet, column_ids):
    tasks = [SourceTask('A', 'A'), SourceTask('A1', 'A1', outline_level=2, parent_id='A')]
    error = TransientPlatformError("service unavailable", status=503)
    loader = _loader(client, sheet, column_ids, policy)
    loader.load(tasks[:1])
    client.fail('add_rows', error, error, error)

    with pytest.raises(ProjectLoadError) as excinfo:
        loader.load(tasks)

    context = excinfo.value.context()
    assert context['project_id'] == 'p-1'
    assert context['stage'] == 'tasks'
    assert context['level'] == 2
    assert context['group'] == group_key(loader.identity_map['A'])
    assert context['batch_size'] == 1
    assert context['rows_created'] == 1
    assert excinfo.value.cause is error


def test_transient_failure_is_retried(client, policy, sheet, column_ids):
    client.fail('add_rows', TransientPlatformError("timeout"))
    identity = _loader(client, sheet, column_ids, policy).load([SourceTask('A', 'A')])
    assert 'A' in identity
    assert len(client.sheets[sheet['id']]['rows']) == 1


def test_short_response_is_an_error(client, policy, sheet, column_ids):
    client.short_add_rows = True
    with pytest.raises(ProjectLoadError):
        _loader(client, sheet, column_ids, policy).load([SourceTask('A', 'A'), SourceTask('B', 'B')])


def test_resume_skips_rows_already_on_the_sheet(client, policy, sheet, column_ids):
    tasks = [
        SourceTask('A', 'A'),
        SourceTask('A1', 'A1', outline_level=2, parent_id='A'),
        SourceTask('B', 'B'),
    ]
    first = _loader(client, sheet, column_ids, policy)
    first.load(tasks[:2])

    second = _loader(client, sheet, column_ids, policy)
    assert second.seed_from_rows(client.list_rows(sheet['id'])) == 2
    identity = second.load(tasks)

    assert second.rows_created == 1
    assert second.rows_skipped == 2
    assert identity['A'] == first.identity_map['A']
    assert _name_order(client, sheet) == ['A', 'A1', 'B']


def test_cancellation_between_batches(client, policy, sheet, column_ids):
    cancel = threading.Event()
    tasks = [SourceTask('A', 'A'), SourceTask('A1', 'A1', outline_level=2, parent_id='A')]

    def stop_after_first(stage, detail):
        cancel.set()

    loader = _loader(client, sheet, column_ids, policy, cancel_event=cancel, progress_callback=stop_after_first)
    with pytest.raises(MigrationCancelled):
        loader.load(tasks)
    assert loader.rows_created == 1
    assert client.count('add_rows') == 1


def test_custom_cell_builder(client, policy, sheet, column_ids):
    notes = client.create_columns(sheet['id'], [ColumnSpec('Notes').to_api()])[0]
    column_ids = dict(column_ids, Notes=notes['id'])

    def build(task):
        return [{'columnId': column_ids[layout.TASK_NAME], 'value': task.name.upper()},
                {'columnId': notes['id'], 'value': f"from {task.id}"}]

    _loader(client, sheet, column_ids, policy, cell_builder=build).load([SourceTask('a', 'alpha')])
    row = client.sheets[sheet['id']]['rows'][0]
    assert client.cell(sheet, row, layout.TASK_NAME)['value'] == 'ALPHA'
    assert client.cell(sheet, row, 'Notes')['value'] == 'from a'
