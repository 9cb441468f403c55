"""
Column layouts for the Summary, Tasks and Resources sheets
"""
from typing import Iterable, List

from models import ColumnSpec, ResourceClass
from transformers.field_mappers import CONSTRAINT_OPTIONS, PRIORITY_OPTIONS, STATUS_OPTIONS
from transformers.resource_router import COLUMN_FAMILIES

TASK_SHEET_SUFFIX = 'Tasks'
RESOURCE_SHEET_SUFFIX = 'Resources'
SUMMARY_SHEET_SUFFIX = 'Summary'

TASK_NAME = 'Task Name'
TASK_ID = 'Project Online Task ID'
PREDECESSORS = 'Predecessors'
RESOURCE_NAME = 'Resource Name'
RESOURCE_ID = 'Project Online Resource ID'
PROJECT_NAME = 'Project Name'
PROJECT_ID = 'Project Online Project ID'

RESOURCE_TYPE_OPTIONS = [cls.value for cls in ResourceClass]


def task_columns() -> List[ColumnSpec]:
    """Core task sheet columns, in display order"""
    work = COLUMN_FAMILIES[ResourceClass.PERSON]
    material = COLUMN_FAMILIES[ResourceClass.CONSUMABLE]
    cost = COLUMN_FAMILIES[ResourceClass.COST]
    return [
        ColumnSpec(TASK_NAME, 'TEXT_NUMBER', primary=True, width=300),
        ColumnSpec(TASK_ID, 'TEXT_NUMBER', hidden=True, locked=True, width=150),
        ColumnSpec('Start Date', 'DATE', width=120),
        ColumnSpec('End Date', 'DATE', width=120),
        ColumnSpec('Duration', 'TEXT_NUMBER', width=80),
        ColumnSpec('% Complete', 'TEXT_NUMBER', width=100),
        ColumnSpec('Status', 'PICKLIST', options=STATUS_OPTIONS, width=120),
        ColumnSpec('Priority', 'PICKLIST', options=PRIORITY_OPTIONS, width=100),
        ColumnSpec('Work (hrs)', 'TEXT_NUMBER', width=100),
        ColumnSpec('Actual Work (hrs)', 'TEXT_NUMBER', width=120),
        ColumnSpec('Milestone', 'CHECKBOX', width=80),
        ColumnSpec('Notes', 'TEXT_NUMBER', width=300),
        ColumnSpec(PREDECESSORS, 'PREDECESSOR', width=150),
        ColumnSpec('Constraint Type', 'PICKLIST', options=CONSTRAINT_OPTIONS, width=120),
        ColumnSpec('Constraint Date', 'DATE', width=120),
        ColumnSpec('Deadline', 'DATE', width=120),
        ColumnSpec('Late Start', 'DATE', width=120),
        ColumnSpec('Late Finish', 'DATE', width=120),
        ColumnSpec('Total Slack (days)', 'TEXT_NUMBER', width=120),
        ColumnSpec('Free Slack (days)', 'TEXT_NUMBER', width=120),
        ColumnSpec('Project Online Created Date', 'DATE', width=120),
        ColumnSpec('Project Online Modified Date', 'DATE', width=120),
        ColumnSpec(work.task_column, work.task_column_type, width=200),
        ColumnSpec(material.task_column, material.task_column_type, width=200),
        ColumnSpec(cost.task_column, cost.task_column_type, width=200),
    ]


def resource_columns(departments: Iterable[str] = ()) -> List[ColumnSpec]:
    """Core resource sheet columns; department options come from the data"""
    work = COLUMN_FAMILIES[ResourceClass.PERSON]
    material = COLUMN_FAMILIES[ResourceClass.CONSUMABLE]
    cost = COLUMN_FAMILIES[ResourceClass.COST]
    department_options = sorted({d.strip() for d in departments if d and d.strip()})
    # Picklist options are set inline; no shared reference sheets are built
    return [
        ColumnSpec(RESOURCE_NAME, 'TEXT_NUMBER', primary=True, width=200),
        ColumnSpec(RESOURCE_ID, 'TEXT_NUMBER', hidden=True, locked=True, width=150),
        ColumnSpec(work.resource_column, work.resource_column_type, width=200),
        ColumnSpec(material.resource_column, material.resource_column_type, width=200),
        ColumnSpec(cost.resource_column, cost.resource_column_type, width=200),
        ColumnSpec('Resource Type', 'PICKLIST', options=RESOURCE_TYPE_OPTIONS, width=100),
        ColumnSpec('Max Units', 'TEXT_NUMBER', width=80),
        ColumnSpec('Standard Rate', 'TEXT_NUMBER', width=100),
        ColumnSpec('Overtime Rate', 'TEXT_NUMBER', width=100),
        ColumnSpec('Cost Per Use', 'TEXT_NUMBER', width=100),
        ColumnSpec('Department', 'PICKLIST', options=department_options or None, width=150),
        ColumnSpec('Code', 'TEXT_NUMBER', width=100),
        ColumnSpec('Is Active', 'CHECKBOX', width=80),
        ColumnSpec('Is Generic', 'CHECKBOX', width=80),
        ColumnSpec('Project Online Created Date', 'DATE', width=120),
        ColumnSpec('Project Online Modified Date', 'DATE', width=120),
    ]


def summary_columns() -> List[ColumnSpec]:
    """Single-row project summary sheet"""
    return [
        ColumnSpec(PROJECT_NAME, 'TEXT_NUMBER', primary=True, width=250),
        ColumnSpec(PROJECT_ID, 'TEXT_NUMBER', hidden=True, locked=True, width=150),
        ColumnSpec('Description', 'TEXT_NUMBER', width=300),
        ColumnSpec('Owner', 'CONTACT_LIST', width=150),
        ColumnSpec('Start Date', 'DATE', width=120),
        ColumnSpec('Finish Date', 'DATE', width=120),
        ColumnSpec('Status', 'PICKLIST', options=STATUS_OPTIONS, width=120),
        ColumnSpec('Priority', 'PICKLIST', options=PRIORITY_OPTIONS, width=100),
        ColumnSpec('% Complete', 'TEXT_NUMBER', width=100),
        ColumnSpec('Project Online Created Date', 'DATE', width=120),
        ColumnSpec('Project Online Modified Date', 'DATE', width=120),
    ]
