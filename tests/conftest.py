import pytest

from config import MigrationConfig
from models import ProjectSnapshot, SourceAssignment, SourcePredecessor, SourceProject, SourceResource, SourceTask
from tests.fakes import FakeSmartsheetClient
from utils import BackoffPolicy
from errors import is_retryable


@pytest.fixture
def client():
    return FakeSmartsheetClient()


@pytest.fixture
def policy():
    """No waiting between attempts"""
    return BackoffPolicy(max_attempts=3, initial_delay=0, max_delay=0, should_retry=is_retryable)


@pytest.fixture
def config():
    return MigrationConfig(batch_size=100, max_attempts=3, initial_delay=0, max_delay=0, rate_limit_delay=0)


@pytest.fixture
def snapshot():
    """Small construction project: two phases, a milestone, three kinds of resources"""
    project = SourceProject(id='p-1', name='Data Center Build', owner='Dana Lee',
                            owner_email='dana@example.com', start='2024-03-01T08:00:00',
                            finish='2024-06-28T17:00:00', priority=500, percent_complete=25)
    resources = [
        SourceResource(id='r-alice', name='Alice', email='alice@example.com', resource_class='Work',
                       max_capacity=1.0, department='Engineering'),
        SourceResource(id='r-concrete', name='Concrete', resource_class='Material', material_label='m3'),
        SourceResource(id='r-travel', name='Travel', resource_class='Cost'),
    ]
    tasks = [
        SourceTask(id='t-design', name='Design', outline_level=1, duration='PT80H', percent_complete=100),
        SourceTask(id='t-layout', name='Layout', outline_level=2, parent_id='t-design', duration='PT40H',
                   assignments=[SourceAssignment('t-layout', 'r-alice')]),
        SourceTask(id='t-review', name='Review', outline_level=2, parent_id='t-design', duration='PT40H',
                   predecessors=[SourcePredecessor('t-layout', 1)]),
        SourceTask(id='t-build', name='Build', outline_level=1, duration='PT160H',
                   predecessors=[SourcePredecessor('t-design', 1, 'PT16H')]),
        SourceTask(id='t-pour', name='Pour slab', outline_level=2, parent_id='t-build', duration='PT16H',
                   assignments=[SourceAssignment('t-pour', 'r-concrete'), SourceAssignment('t-pour', 'r-travel')],
                   extra={'CostCenterCode': 'CC-42'}),
        SourceTask(id='t-done', name='Handover', outline_level=1, duration='PT0H', is_milestone=True,
                   predecessors=[SourcePredecessor('t-pour', 1)]),
    ]
    assignments = [a for t in tasks for a in t.assignments]
    return ProjectSnapshot(project=project, tasks=tasks, resources=resources, assignments=assignments)
