"""
Cell builders for task, resource and summary rows
"""
from typing import Any, Dict, List, Mapping, Optional

from models import ResourceClass, SourceProject, SourceResource, SourceTask
from transformers.field_discovery import FieldDiscovery
from transformers.field_mappers import (
    convert_date, convert_max_units, create_contact, derive_status, format_duration_days,
    format_hours, format_percent, map_constraint_type, map_priority, duration_to_decimal_days,
    to_checkbox
)
from transformers.resource_router import column_family_for
from transformers import sheet_layouts as layout


def _add(cells: List[Dict[str, Any]], column_ids: Mapping[str, int], title: str, value: Any):
    """Append a cell when the column exists and there is something to write"""
    column_id = column_ids.get(title)
    if column_id is None or value is None or value == '':
        return
    cells.append({'columnId': column_id, 'value': value})


def _add_object(cells: List[Dict[str, Any]], column_ids: Mapping[str, int], title: str, object_value: Dict):
    column_id = column_ids.get(title)
    if column_id is None:
        return
    cells.append({'columnId': column_id, 'objectValue': object_value})


def _contact_object(contact: Dict[str, str]) -> Dict[str, Any]:
    value = {'objectType': 'CONTACT'}
    value.update(contact)
    return value


def assignment_cells(task: SourceTask, column_ids: Mapping[str, int],
                     resources: Mapping[str, SourceResource],
                     classes: Mapping[str, ResourceClass]) -> List[Dict[str, Any]]:
    """
    Cells for a task's assigned resources, split by resource class

    People go into the multi-contact column, materials and cost resources
    into their multi-picklist columns. Unknown resource ids are skipped.
    """
    contacts: List[Dict[str, Any]] = []
    seen_contacts = set()
    picks: Dict[ResourceClass, List[str]] = {ResourceClass.CONSUMABLE: [], ResourceClass.COST: []}

    for assignment in task.assignments:
        resource = resources.get(assignment.resource_id)
        resource_class = classes.get(assignment.resource_id)
        if resource is None or resource_class is None:
            continue
        if resource_class is ResourceClass.PERSON:
            contact = create_contact(resource.name, resource.email)
            if contact is None:
                continue
            key = contact.get('email') or contact.get('name')
            if key not in seen_contacts:
                seen_contacts.add(key)
                contacts.append(_contact_object(contact))
        elif resource.name not in picks[resource_class]:
            picks[resource_class].append(resource.name)

    cells: List[Dict[str, Any]] = []
    if contacts:
        _add_object(cells, column_ids, column_family_for(ResourceClass.PERSON).task_column,
                    {'objectType': 'MULTI_CONTACT', 'values': contacts})
    for resource_class, names in picks.items():
        if names:
            _add_object(cells, column_ids, column_family_for(resource_class).task_column,
                        {'objectType': 'MULTI_PICKLIST', 'values': names})
    return cells


def task_cells(task: SourceTask, column_ids: Mapping[str, int],
               resources: Optional[Mapping[str, SourceResource]] = None,
               classes: Optional[Mapping[str, ResourceClass]] = None,
               discovery: Optional[FieldDiscovery] = None) -> List[Dict[str, Any]]:
    """All task cells except predecessors, which depend on load order"""
    cells: List[Dict[str, Any]] = []
    _add(cells, column_ids, layout.TASK_NAME, task.name)
    _add(cells, column_ids, layout.TASK_ID, task.id)
    _add(cells, column_ids, 'Start Date', convert_date(task.start))
    _add(cells, column_ids, 'End Date', convert_date(task.finish))
    _add(cells, column_ids, 'Duration', format_duration_days(task.duration))
    _add(cells, column_ids, '% Complete', format_percent(task.percent_complete))
    if task.percent_complete is not None:
        _add(cells, column_ids, 'Status', derive_status(task.percent_complete))
    _add(cells, column_ids, 'Priority', map_priority(task.priority))
    _add(cells, column_ids, 'Work (hrs)', format_hours(task.work))
    _add(cells, column_ids, 'Actual Work (hrs)', format_hours(task.actual_work))
    _add(cells, column_ids, 'Milestone', to_checkbox(task.is_milestone))
    _add(cells, column_ids, 'Notes', task.notes)
    _add(cells, column_ids, 'Constraint Type', map_constraint_type(task.constraint_type))
    _add(cells, column_ids, 'Constraint Date', convert_date(task.constraint_date))
    _add(cells, column_ids, 'Deadline', convert_date(task.deadline))
    _add(cells, column_ids, 'Late Start', convert_date(task.late_start))
    _add(cells, column_ids, 'Late Finish', convert_date(task.late_finish))
    _add(cells, column_ids, 'Total Slack (days)', duration_to_decimal_days(task.total_slack))
    _add(cells, column_ids, 'Free Slack (days)', duration_to_decimal_days(task.free_slack))
    _add(cells, column_ids, 'Project Online Created Date', convert_date(task.created))
    _add(cells, column_ids, 'Project Online Modified Date', convert_date(task.modified))
    if resources and classes:
        cells.extend(assignment_cells(task, column_ids, resources, classes))
    if discovery:
        cells.extend(discovery.cells_for(task.extra, column_ids))
    return cells


def resource_cells(resource: SourceResource, resource_class: ResourceClass,
                   column_ids: Mapping[str, int],
                   discovery: Optional[FieldDiscovery] = None) -> List[Dict[str, Any]]:
    """
    Cells for one resource row

    Exactly one of the type-specific columns (Team Members, Materials,
    Cost Resources) is filled, chosen by the resource class.
    """
    cells: List[Dict[str, Any]] = []
    _add(cells, column_ids, layout.RESOURCE_NAME, resource.name)
    _add(cells, column_ids, layout.RESOURCE_ID, resource.id)

    family = column_family_for(resource_class)
    if resource_class is ResourceClass.PERSON:
        contact = create_contact(resource.name, resource.email)
        if contact and contact.get('email'):
            _add_object(cells, column_ids, family.resource_column, _contact_object(contact))
        else:
            _add(cells, column_ids, family.resource_column, resource.name)
    else:
        _add(cells, column_ids, family.resource_column, resource.name)

    _add(cells, column_ids, 'Resource Type', resource_class.value)
    _add(cells, column_ids, 'Max Units', convert_max_units(resource.max_capacity))
    _add(cells, column_ids, 'Standard Rate', resource.standard_rate)
    _add(cells, column_ids, 'Overtime Rate', resource.overtime_rate)
    _add(cells, column_ids, 'Cost Per Use', resource.cost_per_use)
    _add(cells, column_ids, 'Department', resource.department)
    _add(cells, column_ids, 'Code', resource.code)
    if resource.is_active is not None:
        _add(cells, column_ids, 'Is Active', to_checkbox(resource.is_active))
    if resource.is_generic is not None:
        _add(cells, column_ids, 'Is Generic', to_checkbox(resource.is_generic))
    _add(cells, column_ids, 'Project Online Created Date', convert_date(resource.created))
    _add(cells, column_ids, 'Project Online Modified Date', convert_date(resource.modified))
    if discovery:
        cells.extend(discovery.cells_for(resource.extra, column_ids))
    return cells


def summary_cells(project: SourceProject, column_ids: Mapping[str, int]) -> List[Dict[str, Any]]:
    cells: List[Dict[str, Any]] = []
    _add(cells, column_ids, layout.PROJECT_NAME, project.name)
    _add(cells, column_ids, layout.PROJECT_ID, project.id)
    _add(cells, column_ids, 'Description', project.description)
    owner = create_contact(project.owner, project.owner_email)
    if owner and owner.get('email'):
        _add_object(cells, column_ids, 'Owner', _contact_object(owner))
    elif owner:
        _add(cells, column_ids, 'Owner', owner['name'])
    _add(cells, column_ids, 'Start Date', convert_date(project.start))
    _add(cells, column_ids, 'Finish Date', convert_date(project.finish))
    if project.status:
        _add(cells, column_ids, 'Status', project.status)
    elif project.percent_complete is not None:
        _add(cells, column_ids, 'Status', derive_status(project.percent_complete))
    _add(cells, column_ids, 'Priority', map_priority(project.priority))
    _add(cells, column_ids, '% Complete', format_percent(project.percent_complete))
    _add(cells, column_ids, 'Project Online Created Date', convert_date(project.created))
    _add(cells, column_ids, 'Project Online Modified Date', convert_date(project.modified))
    return cells
