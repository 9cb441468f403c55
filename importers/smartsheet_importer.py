"""
Import functionality for loading an exported project into Smartsheet
"""
import threading
from typing import Any, Callable, Dict, List, Optional

from config import MigrationConfig
from errors import MigrationCancelled, MigrationError, ProjectLoadError, ValidationError
from importers.hierarchy_loader import HierarchyLoader
from importers.resource_loader import ResourceLoader, classify_resources
from importers.schema_reconciler import SchemaReconciler
from models import MigrationSummary, ProjectSnapshot, ResourceClass
from transformers import sheet_layouts as layout
from transformers.field_discovery import discover_fields
from transformers.field_mappers import create_sheet_name, sanitize_workspace_name
from transformers.resource_router import column_family_for
from transformers.row_builders import summary_cells, task_cells
from utils import BackoffPolicy, logger

ProgressCallback = Callable[[str, Dict[str, Any]], None]


def validate_snapshot(snapshot: ProjectSnapshot) -> List[str]:
    """
    Check a snapshot before anything is written

    Duplicate task and resource ids are dropped (first one wins) and
    predecessor links to unknown tasks are reported.

    Returns:
        Warnings

    Raises:
        ValidationError: If the project has no id or name
    """
    project = snapshot.project
    if project is None or not project.id:
        raise ValidationError("Snapshot has no project id", entity_type='project')
    if not project.name or not project.name.strip():
        raise ValidationError(f"Project {project.id} has no name", entity_type='project', entity_id=project.id)

    warnings = []
    seen = set()
    unique = []
    for task in snapshot.tasks:
        if task.id in seen:
            warnings.append(f"Duplicate task id {task.id} ('{task.name}') dropped")
            continue
        seen.add(task.id)
        unique.append(task)
    snapshot.tasks = unique

    resource_ids = set()
    resources = []
    for resource in snapshot.resources:
        if resource.id in resource_ids:
            warnings.append(f"Duplicate resource id {resource.id} ('{resource.name}') dropped")
            continue
        resource_ids.add(resource.id)
        resources.append(resource)
    snapshot.resources = resources

    for task in snapshot.tasks:
        for predecessor in task.predecessors:
            if predecessor.predecessor_task_id not in seen:
                warnings.append(f"Task '{task.name}' ({task.id}) depends on unknown task "
                                f"{predecessor.predecessor_task_id}; link dropped")
    return warnings


class SmartsheetImporter:
    """Load one project snapshot into a workspace with Summary, Tasks and Resources sheets"""

    def __init__(self, client, config: Optional[MigrationConfig] = None,
                 cancel_event: Optional[threading.Event] = None):
        """
        Args:
            client: SmartsheetClient (or any object with the same methods)
            config: Run configuration; defaults to MigrationConfig()
            cancel_event: Set it to stop the load between batches
        """
        self.client = client
        self.config = config or MigrationConfig()
        self.policy = BackoffPolicy.from_config(self.config)
        self.cancel_event = cancel_event

    def _list_rows(self, sheet_id: int) -> List[Dict]:
        return self.policy.execute(lambda: self.client.list_rows(sheet_id),
                                   description=f"list rows of sheet {sheet_id}")

    def load_project(self, snapshot: ProjectSnapshot, workspace_name: Optional[str] = None,
                     progress_callback: Optional[ProgressCallback] = None) -> MigrationSummary:
        """
        Load a project, reusing whatever a previous run already created

        Args:
            snapshot: Exported project
            workspace_name: Override for the workspace name (defaults to the sanitized project name)
            progress_callback: Called as (stage, detail) between stages and task batches

        Returns:
            MigrationSummary with success flag, counts created so far, warnings and errors
        """
        project = snapshot.project
        summary = MigrationSummary(project_id=getattr(project, 'id', None),
                                   project_name=getattr(project, 'name', None))
        summary.warnings.extend(snapshot.warnings)
        reconciler = SchemaReconciler(self.client, self.policy)
        resource_loader: Optional[ResourceLoader] = None
        task_loader: Optional[HierarchyLoader] = None
        stage = 'validate'

        def report(name: str, **detail):
            if progress_callback:
                progress_callback(name, detail)

        try:
            for warning in validate_snapshot(snapshot):
                summary.add_warning(warning)

            stage = 'workspace'
            report(stage)
            name = workspace_name or sanitize_workspace_name(project.name)
            if not name:
                raise ValidationError(f"Project name '{project.name}' is empty after sanitizing",
                                      entity_type='project', entity_id=project.id)
            logger.info(f"Provisioning workspace '{name}'...")
            workspace = reconciler.get_or_create_workspace(name)
            summary.workspace_id = workspace['id']

            stage = 'sheets'
            report(stage)
            summary_sheet, summary_new = reconciler.get_or_create_sheet(
                workspace['id'], create_sheet_name(name, layout.SUMMARY_SHEET_SUFFIX), layout.summary_columns())
            tasks_sheet, tasks_new = reconciler.get_or_create_sheet(
                workspace['id'], create_sheet_name(name, layout.TASK_SHEET_SUFFIX), layout.task_columns())
            resource_core = layout.resource_columns(r.department for r in snapshot.resources)
            resources_sheet, resources_new = reconciler.get_or_create_sheet(
                workspace['id'], create_sheet_name(name, layout.RESOURCE_SHEET_SUFFIX), resource_core)
            summary.sheet_ids = {
                layout.SUMMARY_SHEET_SUFFIX: summary_sheet['id'],
                layout.TASK_SHEET_SUFFIX: tasks_sheet['id'],
                layout.RESOURCE_SHEET_SUFFIX: resources_sheet['id'],
            }

            stage = 'resources'
            report(stage, total=len(snapshot.resources))
            resource_discovery = discover_fields(snapshot.resources, [c.title for c in resource_core])
            resource_columns = reconciler.ensure_columns(
                resources_sheet['id'], resource_core + resource_discovery.columns)
            classes = classify_resources(snapshot.resources, summary.warnings)
            resource_loader = ResourceLoader(self.client, resources_sheet['id'], resource_columns, self.policy,
                                             self.config.batch_size, project.id, resource_discovery)
            if not resources_new:
                resource_loader.seed_from_rows(self._list_rows(resources_sheet['id']))
            resource_loader.load(snapshot.resources, classes)

            stage = 'task columns'
            report(stage)
            task_core = layout.task_columns()
            task_discovery = discover_fields(snapshot.tasks, [c.title for c in task_core])
            task_columns = reconciler.ensure_columns(tasks_sheet['id'], task_core + task_discovery.columns)
            self._link_resource_columns(reconciler, tasks_sheet['id'], task_columns,
                                        resources_sheet['id'], resource_columns)

            stage = 'tasks'
            report(stage, total=len(snapshot.tasks))
            resources_by_id = {r.id: r for r in snapshot.resources}
            task_loader = HierarchyLoader(
                self.client, tasks_sheet['id'], task_columns, self.policy,
                batch_size=self.config.batch_size,
                project_id=project.id,
                cell_builder=lambda task: task_cells(task, task_columns, resources_by_id, classes, task_discovery),
                cancel_event=self.cancel_event,
                progress_callback=progress_callback,
                resolve_deferred=self.config.resolve_deferred_predecessors,
            )
            if not tasks_new:
                task_loader.seed_from_rows(self._list_rows(tasks_sheet['id']))
            task_loader.load(snapshot.tasks)

            stage = 'predecessors'
            task_loader.apply_deferred_predecessors()

            stage = 'summary'
            report(stage)
            summary_columns = reconciler.ensure_columns(summary_sheet['id'], layout.summary_columns())
            summary.rows_created += self._write_summary_row(summary_sheet['id'], summary_new, snapshot,
                                                            summary_columns)
            summary.success = True
            report('complete')

        except ProjectLoadError as e:
            summary.add_error(str(e))
            summary.error_context = e.context()
        except MigrationCancelled as e:
            summary.add_error(str(e))
            summary.error_context = {'project_id': summary.project_id, 'stage': stage, 'cancelled': True}
        except MigrationError as e:
            error = ProjectLoadError(f"Load of project {summary.project_id} failed during {stage}: {e}",
                                     project_id=summary.project_id, stage=stage, cause=e)
            summary.add_error(str(error))
            summary.error_context = error.context()
        finally:
            if resource_loader is not None:
                summary.rows_created += resource_loader.rows_created
                summary.rows_skipped += resource_loader.rows_skipped
            if task_loader is not None:
                summary.rows_created += task_loader.rows_created
                summary.rows_skipped += task_loader.rows_skipped
                summary.warnings.extend(task_loader.warnings)
            summary.columns_created = reconciler.columns_created
            summary.warnings.extend(reconciler.warnings)
            if summary.error_context:
                summary.error_context['rows_created'] = summary.rows_created
                summary.error_context['columns_created'] = summary.columns_created

        return summary

    def _link_resource_columns(self, reconciler: SchemaReconciler, tasks_sheet_id: int,
                               task_columns: Dict[str, int], resources_sheet_id: int,
                               resource_columns: Dict[str, int]):
        """Wire the three task-side assignment columns to their Resources sheet columns"""
        for resource_class in ResourceClass:
            family = column_family_for(resource_class)
            task_column_id = task_columns.get(family.task_column)
            source_column_id = resource_columns.get(family.resource_column)
            if task_column_id is None or source_column_id is None:
                logger.warning(f"Cannot link '{family.task_column}' to '{family.resource_column}': column missing")
                continue
            reconciler.configure_cross_sheet_reference(tasks_sheet_id, task_column_id, family.task_column_type,
                                                       resources_sheet_id, source_column_id)

    def _write_summary_row(self, sheet_id: int, sheet_new: bool, snapshot: ProjectSnapshot,
                           column_ids: Dict[str, int]) -> int:
        project_column = column_ids.get(layout.PROJECT_ID)
        if not sheet_new and project_column is not None:
            for row in self._list_rows(sheet_id):
                if any(c.get('columnId') == project_column and str(c.get('value')) == snapshot.project.id
                       for c in row.get('cells', [])):
                    logger.info("  Summary row already present")
                    return 0
        row = {'toBottom': True, 'cells': summary_cells(snapshot.project, column_ids)}
        try:
            self.policy.execute(lambda: self.client.add_rows(sheet_id, [row]), description='add summary row')
        except Exception as e:
            raise ProjectLoadError(f"Failed to add summary row for project {snapshot.project.id}: {e}",
                                   project_id=snapshot.project.id, stage='summary', batch_size=1,
                                   cause=e) from e
        logger.info("  ✓ Added project summary row")
        return 1


def import_to_smartsheet(client, snapshot: ProjectSnapshot, config: Optional[MigrationConfig] = None,
                         workspace_name: Optional[str] = None, cancel_event: Optional[threading.Event] = None,
                         progress_callback: Optional[ProgressCallback] = None) -> MigrationSummary:
    """
    Import an exported project into Smartsheet

    Args:
        client: Initialized SmartsheetClient
        snapshot: Exported project data
        config: Run configuration
        workspace_name: Optional workspace name override
        cancel_event: Optional event that stops the load between batches
        progress_callback: Optional (stage, detail) callback

    Returns:
        MigrationSummary for the project
    """
    importer = SmartsheetImporter(client, config, cancel_event=cancel_event)
    return importer.load_project(snapshot, workspace_name=workspace_name, progress_callback=progress_callback)
