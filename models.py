"""
Data models for source entities, target columns and migration tracking
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from utils import logger


@dataclass
class SourcePredecessor:
    """Dependency link pointing at another task of the same project"""
    predecessor_task_id: str
    dependency_type: Any = 1
    lag: Optional[str] = None


@dataclass
class SourceAssignment:
    """Join between a task and a resource"""
    task_id: str
    resource_id: str
    id: Optional[str] = None


@dataclass
class SourceTask:
    """Project Online task (outline_level 1 = root)"""
    id: str
    name: str
    outline_level: int = 1
    parent_id: Optional[str] = None
    start: Optional[str] = None
    finish: Optional[str] = None
    duration: Optional[str] = None
    work: Optional[str] = None
    actual_work: Optional[str] = None
    percent_complete: Optional[float] = None
    priority: Optional[int] = None
    is_milestone: bool = False
    is_project_summary: bool = False
    notes: Optional[str] = None
    predecessors: List[SourcePredecessor] = field(default_factory=list)
    constraint_type: Any = None
    constraint_date: Optional[str] = None
    deadline: Optional[str] = None
    late_start: Optional[str] = None
    late_finish: Optional[str] = None
    total_slack: Optional[str] = None
    free_slack: Optional[str] = None
    created: Optional[str] = None
    modified: Optional[str] = None
    assignments: List[SourceAssignment] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)


class ResourceClass(Enum):
    """The three resource kinds, each with its own column family"""
    PERSON = 'Work'
    CONSUMABLE = 'Material'
    COST = 'Cost'


@dataclass
class SourceResource:
    """Project Online enterprise resource"""
    id: str
    name: str
    email: Optional[str] = None
    resource_class: Any = None
    material_label: Optional[str] = None
    can_level: Optional[bool] = None
    max_capacity: Optional[float] = None
    standard_rate: Optional[float] = None
    overtime_rate: Optional[float] = None
    cost_per_use: Optional[float] = None
    department: Optional[str] = None
    code: Optional[str] = None
    is_active: Optional[bool] = None
    is_generic: Optional[bool] = None
    created: Optional[str] = None
    modified: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SourceProject:
    """Project Online project header"""
    id: str
    name: str
    description: Optional[str] = None
    owner: Optional[str] = None
    owner_email: Optional[str] = None
    start: Optional[str] = None
    finish: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    percent_complete: Optional[float] = None
    created: Optional[str] = None
    modified: Optional[str] = None


@dataclass
class ProjectSnapshot:
    """Everything exported for one project; tasks keep source declaration order"""
    project: SourceProject
    tasks: List[SourceTask] = field(default_factory=list)
    resources: List[SourceResource] = field(default_factory=list)
    assignments: List[SourceAssignment] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ColumnSpec:
    """Desired target column"""
    title: str
    type: str = 'TEXT_NUMBER'
    primary: bool = False
    hidden: bool = False
    locked: bool = False
    width: Optional[int] = None
    options: Optional[List[str]] = None
    symbol: Optional[str] = None

    def to_api(self) -> Dict[str, Any]:
        """Column body in Smartsheet API shape"""
        body = {'title': self.title, 'type': self.type}
        if self.primary:
            body['primary'] = True
        if self.hidden:
            body['hidden'] = True
        if self.locked:
            body['locked'] = True
        if self.width:
            body['width'] = self.width
        if self.options:
            body['options'] = list(self.options)
        if self.symbol:
            body['symbol'] = self.symbol
        return body


@dataclass
class MigrationSummary:
    """Track migration statistics for one project"""
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    success: bool = False
    rows_created: int = 0
    rows_skipped: int = 0
    columns_created: int = 0
    workspace_id: Optional[int] = None
    sheet_ids: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error_context: Dict[str, Any] = field(default_factory=dict)

    def add_warning(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def add_error(self, message: str):
        logger.error(message)
        self.errors.append(message)

    def print_summary(self):
        """Print migration summary report"""
        logger.info("\n" + "="*60)
        logger.info(f"MIGRATION SUMMARY: {self.project_name or self.project_id}")
        logger.info("="*60)
        logger.info(f"Result: {'✓ Success' if self.success else '✗ Failed'}")
        logger.info(f"Rows created: {self.rows_created}")
        logger.info(f"Rows already present: {self.rows_skipped}")
        logger.info(f"Columns created: {self.columns_created}")
        if self.warnings:
            logger.info(f"\nWarnings ({len(self.warnings)}):")
            for i, warning in enumerate(self.warnings, 1):
                logger.info(f"  {i}. {warning}")
        if self.errors:
            logger.info(f"\nErrors ({len(self.errors)}):")
            for i, error in enumerate(self.errors, 1):
                logger.info(f"  {i}. {error}")
        logger.info("="*60 + "\n")


# The orchestrator returns the same record it accumulates
LoadResult = MigrationSummary
