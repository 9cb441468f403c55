"""
Project Online exporter for extracting one project's data
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Set

from errors import ValidationError
from models import (
    ProjectSnapshot, SourceAssignment, SourcePredecessor, SourceProject, SourceResource, SourceTask
)
from utils import BackoffPolicy, logger

# Keys never copied into the residual 'extra' dict
_METADATA_PREFIXES = ('@', '__', 'odata.')


class _Fields:
    """Reads an OData entity by trying alternative property names, remembering what was used"""

    def __init__(self, raw: Dict[str, Any]):
        self.raw = raw
        self.used: Set[str] = set()

    def get(self, *names: str, default: Any = None) -> Any:
        for name in names:
            if name in self.raw:
                self.used.add(name)
                value = self.raw[name]
                if value is not None:
                    return value
        return default

    def text(self, *names: str) -> Optional[str]:
        value = self.get(*names)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def number(self, *names: str) -> Optional[float]:
        value = self.get(*names)
        if value is None or value == '' or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return number if math.isfinite(number) else None

    def flag(self, *names: str) -> Optional[bool]:
        value = self.get(*names)
        if value is None:
            return None
        if isinstance(value, str):
            return value.strip().lower() in ('true', '1', 'yes')
        return bool(value)

    def residual(self) -> Dict[str, Any]:
        extra = {}
        for key, value in self.raw.items():
            if key in self.used or key.startswith(_METADATA_PREFIXES):
                continue
            if isinstance(value, (dict, list)):
                continue
            extra[key] = value
        return extra


def _collection(value: Any) -> List[Any]:
    """Navigation property as a list (plain list, {'results': [...]}, or {'value': [...]})"""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return value.get('results') or value.get('value') or []
    return []


def _int_or_none(value: Optional[float]) -> Optional[int]:
    return int(value) if value is not None else None


def parse_project(raw: Dict[str, Any]) -> SourceProject:
    fields = _Fields(raw)
    project_id = fields.text('ProjectId', 'Id')
    name = fields.text('ProjectName', 'Name')
    if not project_id:
        raise ValidationError("Project has no id", entity_type='project')
    if not name:
        raise ValidationError(f"Project {project_id} has no name", entity_type='project', entity_id=project_id)
    return SourceProject(
        id=project_id,
        name=name,
        description=fields.text('ProjectDescription', 'Description'),
        owner=fields.text('ProjectOwnerName', 'Owner'),
        owner_email=fields.text('ProjectOwnerEmail', 'OwnerEmail'),
        start=fields.get('ProjectStartDate', 'StartDate'),
        finish=fields.get('ProjectFinishDate', 'FinishDate'),
        status=fields.text('ProjectStatus'),
        priority=_int_or_none(fields.number('ProjectPriority', 'Priority')),
        percent_complete=fields.number('ProjectPercentCompleted', 'PercentComplete'),
        created=fields.get('ProjectCreatedDate', 'CreatedDate', 'Created'),
        modified=fields.get('ProjectModifiedDate', 'ModifiedDate', 'Modified'),
    )


def parse_predecessor(raw: Dict[str, Any]) -> Optional[SourcePredecessor]:
    fields = _Fields(raw)
    predecessor_id = fields.text('PredecessorTaskId', 'PredecessorTaskUid', 'TaskId')
    if not predecessor_id:
        return None
    lag = fields.get('LinkLagDuration', 'LagDuration')
    link_lag = fields.number('LinkLag')
    # LinkLag carries the sign, LinkLagDuration the magnitude
    if lag and link_lag is not None and link_lag < 0 and not str(lag).startswith('-'):
        lag = f"-{lag}"
    return SourcePredecessor(
        predecessor_task_id=predecessor_id,
        dependency_type=fields.get('DependencyType', 'LinkType', default=1),
        lag=lag,
    )


def parse_task(raw: Dict[str, Any]) -> SourceTask:
    """
    Convert an OData task entity into a SourceTask

    Raises:
        ValidationError: If the task has no id or no name
    """
    fields = _Fields(raw)
    task_id = fields.text('TaskId', 'Id')
    name = fields.text('TaskName', 'Name')
    if not task_id:
        raise ValidationError(f"Task '{name or '?'}' has no id", entity_type='task')
    if not name:
        raise ValidationError(f"Task {task_id} has no name", entity_type='task', entity_id=task_id)

    predecessors = []
    for link in _collection(fields.get('Predecessors')):
        if isinstance(link, dict):
            predecessor = parse_predecessor(link)
            if predecessor:
                predecessors.append(predecessor)

    level = fields.number('TaskOutlineLevel', 'OutlineLevel')
    is_summary = bool(fields.flag('TaskIsProjectSummary', 'IsProjectSummary')) or level == 0
    return SourceTask(
        id=task_id,
        name=name,
        outline_level=int(level) if level is not None else 1,
        parent_id=fields.text('ParentTaskId'),
        start=fields.get('TaskStartDate', 'Start'),
        finish=fields.get('TaskFinishDate', 'Finish'),
        duration=fields.get('DurationTimeSpan', 'TaskDuration', 'Duration'),
        work=fields.get('TaskWork', 'Work'),
        actual_work=fields.get('TaskActualWork', 'ActualWork'),
        percent_complete=fields.number('TaskPercentCompleted', 'PercentComplete'),
        priority=_int_or_none(fields.number('TaskPriority', 'Priority')),
        is_project_summary=is_summary,
        is_milestone=bool(fields.flag('TaskIsMilestone', 'IsMilestone')),
        notes=fields.text('TaskNotes', 'Notes'),
        predecessors=predecessors,
        constraint_type=fields.get('TaskConstraintType', 'ConstraintType'),
        constraint_date=fields.get('TaskConstraintDate', 'ConstraintDate'),
        deadline=fields.get('TaskDeadline', 'Deadline'),
        late_start=fields.get('TaskLateStart', 'LatestStart'),
        late_finish=fields.get('TaskLateFinish', 'LatestFinish'),
        total_slack=fields.get('TaskTotalSlack', 'TotalSlack'),
        free_slack=fields.get('TaskFreeSlack', 'FreeSlack'),
        created=fields.get('TaskCreatedDate', 'CreatedDate', 'Created'),
        modified=fields.get('TaskModifiedDate', 'ModifiedDate', 'Modified'),
        extra=_task_extra(fields),
    )


def _task_extra(fields: _Fields) -> Dict[str, Any]:
    # Identity and bookkeeping columns of the feed are not migrated
    for name in ('ProjectId', 'ProjectName', 'TaskIndex', 'TaskIsProjectSummary', 'TaskIsActive',
                 'IsProjectSummary', 'IsActive', 'ParentTaskName'):
        fields.used.add(name)
    return fields.residual()


def parse_resource(raw: Dict[str, Any]) -> SourceResource:
    """
    Convert an OData resource entity into a SourceResource

    Raises:
        ValidationError: If the resource has no id or no name
    """
    fields = _Fields(raw)
    resource_id = fields.text('ResourceId', 'Id')
    name = fields.text('ResourceName', 'Name')
    if not resource_id:
        raise ValidationError(f"Resource '{name or '?'}' has no id", entity_type='resource')
    if not name:
        raise ValidationError(f"Resource {resource_id} has no name", entity_type='resource', entity_id=resource_id)

    resource = SourceResource(
        id=resource_id,
        name=name,
        email=fields.text('ResourceEmailAddress', 'Email'),
        resource_class=fields.get('ResourceType', 'TypeName', 'Type'),
        material_label=fields.text('ResourceMaterialLabel', 'MaterialLabel'),
        can_level=fields.flag('ResourceCanLevel', 'CanLevel'),
        max_capacity=fields.number('ResourceMaxUnits', 'MaxUnits'),
        standard_rate=fields.number('ResourceStandardRate', 'StandardRate'),
        overtime_rate=fields.number('ResourceOvertimeRate', 'OvertimeRate'),
        cost_per_use=fields.number('ResourceCostPerUse', 'CostPerUse'),
        department=fields.text('ResourceDepartments', 'Department'),
        code=fields.text('ResourceCode', 'Code'),
        is_active=fields.flag('ResourceIsActive', 'IsActive'),
        is_generic=fields.flag('ResourceIsGeneric', 'IsGeneric'),
        created=fields.get('ResourceCreatedDate', 'CreatedDate', 'Created'),
        modified=fields.get('ResourceModifiedDate', 'ModifiedDate', 'Modified'),
    )
    resource.extra = fields.residual()
    return resource


def parse_assignment(raw: Dict[str, Any]) -> SourceAssignment:
    fields = _Fields(raw)
    task_id = fields.text('TaskId')
    resource_id = fields.text('ResourceId')
    assignment_id = fields.text('AssignmentId', 'Id')
    if not task_id or not resource_id:
        raise ValidationError(f"Assignment {assignment_id or '?'} is missing its task or resource",
                              entity_type='assignment', entity_id=assignment_id)
    return SourceAssignment(task_id=task_id, resource_id=resource_id, id=assignment_id)


def _parse_all(items: Iterable[Dict], parser, warnings: List[str]) -> List[Any]:
    parsed = []
    for raw in items:
        try:
            parsed.append(parser(raw))
        except ValidationError as e:
            message = f"Skipping {e.entity_type or 'entity'}: {e}"
            logger.warning(message)
            warnings.append(message)
    return parsed


def normalize_hierarchy(tasks: List[SourceTask], warnings: List[str]) -> List[SourceTask]:
    """
    Drop the project summary task and make outline levels follow the parent chain

    Project Online exposes the project itself as an outline level 0 task;
    its children become roots. A child's level is always its parent's + 1.
    """
    summary_ids = {t.id for t in tasks if t.is_project_summary and t.parent_id in (None, t.id)}
    kept = [t for t in tasks if t.id not in summary_ids]
    if summary_ids:
        logger.debug(f"Dropped {len(summary_ids)} project summary task(s)")

    by_id = {t.id: t for t in kept}
    for task in kept:
        if task.parent_id == task.id or task.parent_id in summary_ids:
            task.parent_id = None
        elif task.parent_id and task.parent_id not in by_id:
            message = f"Task '{task.name}' ({task.id}) references unknown parent {task.parent_id}"
            logger.warning(message)
            warnings.append(message)

    levels: Dict[str, int] = {}

    def resolve(task: SourceTask, trail: Set[str]) -> int:
        if task.id in levels:
            return levels[task.id]
        parent = by_id.get(task.parent_id) if task.parent_id else None
        if parent is None:
            level = task.outline_level if task.parent_id else 1
            level = max(level, 1)
        elif parent.id in trail:
            message = f"Task '{task.name}' ({task.id}) is part of a parent cycle; treating it as a root"
            logger.warning(message)
            warnings.append(message)
            task.parent_id = None
            level = 1
        else:
            level = resolve(parent, trail | {task.id}) + 1
        levels[task.id] = level
        return level

    for task in kept:
        level = resolve(task, {task.id})
        if task.outline_level not in (0, level):
            logger.debug(f"Task '{task.name}' outline level {task.outline_level} adjusted to {level}")
        task.outline_level = level
    return kept


def export_project(client, project_id: str, policy: Optional[BackoffPolicy] = None) -> ProjectSnapshot:
    """
    Export one project with its tasks, resources and assignments

    Args:
        client: ProjectOnlineClient (or anything with the same read methods)
        project_id: Project GUID
        policy: Backoff policy wrapped around every call

    Returns:
        ProjectSnapshot with validated entities; dropped entities are listed in warnings

    Raises:
        ValidationError: If the project itself is missing or malformed
    """
    policy = policy or BackoffPolicy()
    warnings: List[str] = []

    logger.info(f"Exporting project {project_id} from Project Online...")
    raw_project = policy.execute(lambda: client.get_project(project_id), description=f"get_project({project_id})")
    if not raw_project:
        raise ValidationError(f"Project {project_id} not found", entity_type='project', entity_id=project_id)
    project = parse_project(raw_project)

    raw_tasks = policy.execute(lambda: client.list_tasks(project_id), description=f"list_tasks({project_id})")
    raw_resources = policy.execute(client.list_resources, description='list_resources')
    raw_assignments = policy.execute(lambda: client.list_assignments(project_id),
                                     description=f"list_assignments({project_id})")
    logger.info(f"  Retrieved {len(raw_tasks)} tasks, {len(raw_resources)} resources, "
                f"{len(raw_assignments)} assignments")

    tasks = normalize_hierarchy(_parse_all(raw_tasks, parse_task, warnings), warnings)
    resources = _parse_all(raw_resources, parse_resource, warnings)
    assignments = _parse_all(raw_assignments, parse_assignment, warnings)

    tasks_by_id = {t.id: t for t in tasks}
    resource_ids = {r.id for r in resources}
    linked = []
    for assignment in assignments:
        task = tasks_by_id.get(assignment.task_id)
        if task is None or assignment.resource_id not in resource_ids:
            message = (f"Skipping assignment {assignment.id or '?'}: "
                       f"task {assignment.task_id} or resource {assignment.resource_id} not found")
            logger.warning(message)
            warnings.append(message)
            continue
        task.assignments.append(assignment)
        linked.append(assignment)

    logger.info(f"✓ Exported '{project.name}': {len(tasks)} tasks, {len(resources)} resources, "
                f"{len(linked)} assignments ({len(warnings)} warning(s))")
    return ProjectSnapshot(project=project, tasks=tasks, resources=resources,
                           assignments=linked, warnings=warnings)
