"""
Level-ordered loading of the task hierarchy into the Tasks sheet

Rows are created one outline level at a time so that every parent row exists
(and its row id is known) before its children are submitted. Within a level,
tasks are grouped by parent and each group goes out as one or more addRows
calls that share the same placement.
"""
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from errors import MigrationCancelled, ProjectLoadError
from models import SourceTask
from transformers import sheet_layouts as layout
from transformers.field_mappers import map_predecessors
from transformers.row_builders import task_cells
from utils import BackoffPolicy, logger, process_batch

NO_PARENT = 'NO_PARENT'


def group_key(parent_row_id: Optional[int]) -> str:
    return NO_PARENT if parent_row_id is None else f"PARENT_{parent_row_id}"


def _cell_value(cell: Optional[Dict[str, Any]]) -> str:
    if not cell:
        return ''
    value = cell.get('value', cell.get('displayValue'))
    return '' if value is None else str(value)


@dataclass
class BatchRecord:
    """One addRows call made by the loader"""
    level: int
    group: str
    parent_row_id: Optional[int]
    task_ids: List[str]
    row_ids: List[int] = field(default_factory=list)


@dataclass
class DeferredPredecessor:
    """A predecessor value that could only be written in full after every row existed"""
    task_id: str
    full_value: str
    written_value: str


class HierarchyLoader:
    """Create task rows level by level and keep the task id -> row id map"""

    def __init__(self, client, sheet_id: int, column_ids: Mapping[str, int],
                 policy: Optional[BackoffPolicy] = None, batch_size: int = 100,
                 project_id: Optional[str] = None,
                 cell_builder: Optional[Callable[[SourceTask], List[Dict[str, Any]]]] = None,
                 cancel_event: Optional[threading.Event] = None,
                 progress_callback: Optional[Callable[[str, Dict[str, Any]], None]] = None,
                 resolve_deferred: bool = True):
        """
        Args:
            client: Smartsheet client (add_rows, update_rows)
            sheet_id: Tasks sheet
            column_ids: Column title -> column id for the Tasks sheet
            policy: Backoff policy for every call
            batch_size: Maximum rows per addRows call
            project_id: Used in error context and log messages
            cell_builder: Builds the non-predecessor cells of a task row
            cancel_event: Checked between batches
            progress_callback: Called as (stage, detail) after each batch
            resolve_deferred: Re-apply predecessors that were dropped because
                their target row did not exist yet
        """
        self.client = client
        self.sheet_id = sheet_id
        self.column_ids = dict(column_ids)
        self.policy = policy or BackoffPolicy()
        self.batch_size = max(1, batch_size)
        self.project_id = project_id
        self.cell_builder = cell_builder or (lambda task: task_cells(task, self.column_ids))
        self.cancel_event = cancel_event
        self.progress_callback = progress_callback
        self.resolve_deferred = resolve_deferred

        self.identity_map: Dict[str, int] = {}
        self.rows_created = 0
        self.rows_skipped = 0
        self.batches: List[BatchRecord] = []
        self.deferred: List[DeferredPredecessor] = []
        self.seeded_predecessors: Dict[str, str] = {}
        self.warnings: List[str] = []

    def _warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def seed_from_rows(self, rows: List[Dict[str, Any]]) -> int:
        """
        Pre-populate the identity map from rows already on the sheet

        Rows are matched through the hidden task id column. The current
        Predecessors value of each matched row is kept so that links cut short
        by an interrupted run can be completed. Returns the number of rows
        recognised.
        """
        id_column = self.column_ids.get(layout.TASK_ID)
        predecessor_column = self.column_ids.get(layout.PREDECESSORS)
        if id_column is None:
            return 0
        found = 0
        for row in rows:
            cells = {cell.get('columnId'): cell for cell in row.get('cells', [])}
            value = _cell_value(cells.get(id_column))
            if not value:
                continue
            self.identity_map[value] = row['id']
            self.seeded_predecessors[value] = _cell_value(cells.get(predecessor_column))
            found += 1
        if found:
            logger.info(f"  Found {found} task row(s) from a previous run")
        return found

    def _check_cancelled(self, where: str):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise MigrationCancelled(f"Load of project {self.project_id} cancelled before {where}")

    def _predecessor_cell(self, task: SourceTask, positions: Dict[str, int]) -> Optional[Dict[str, Any]]:
        column_id = self.column_ids.get(layout.PREDECESSORS)
        if column_id is None or not task.predecessors:
            return None
        full_value = map_predecessors(task.predecessors, positions)
        written_value = map_predecessors(task.predecessors, positions, resolvable=self.identity_map)
        if full_value != written_value:
            self.deferred.append(DeferredPredecessor(task.id, full_value, written_value))
        if not written_value:
            return None
        return {'columnId': column_id, 'value': written_value}

    def _queue_seeded_predecessors(self, tasks: List[SourceTask], positions: Dict[str, int]):
        """Queue updates for rows from a previous run whose predecessors were written short"""
        if layout.PREDECESSORS not in self.column_ids:
            return
        queued = {entry.task_id for entry in self.deferred}
        for task in tasks:
            if task.id not in self.seeded_predecessors or task.id in queued or not task.predecessors:
                continue
            full_value = map_predecessors(task.predecessors, positions)
            written_value = self.seeded_predecessors[task.id]
            if full_value and full_value != written_value:
                self.deferred.append(DeferredPredecessor(task.id, full_value, written_value))

    def _group_level(self, tasks: List[SourceTask], level: int) -> "OrderedDict[str, List[SourceTask]]":
        groups: "OrderedDict[str, List[SourceTask]]" = OrderedDict()
        for task in tasks:
            parent_row_id = None
            if level > 1 or task.parent_id:
                parent_row_id = self.identity_map.get(task.parent_id) if task.parent_id else None
                if parent_row_id is None:
                    self._warn(f"Parent row for task '{task.name}' ({task.id}) not found; "
                               f"placing it at the top level")
            groups.setdefault(group_key(parent_row_id), []).append(task)
        return groups

    def _submit(self, level: int, key: str, chunk: List[SourceTask], positions: Dict[str, int]):
        parent_row_id = None if key == NO_PARENT else int(key[len('PARENT_'):])
        rows = []
        for task in chunk:
            cells = list(self.cell_builder(task))
            predecessor = self._predecessor_cell(task, positions)
            if predecessor:
                cells.append(predecessor)
            row: Dict[str, Any] = {'toBottom': True, 'cells': cells}
            if parent_row_id is not None:
                row['parentId'] = parent_row_id
            rows.append(row)

        record = BatchRecord(level, key, parent_row_id, [t.id for t in chunk])
        self.batches.append(record)
        try:
            created = self.policy.execute(lambda: self.client.add_rows(self.sheet_id, rows),
                                          description=f"add {len(rows)} task rows (level {level}, {key})")
            if len(created) != len(chunk):
                raise ProjectLoadError(f"Expected {len(chunk)} rows back, got {len(created)}")
        except MigrationCancelled:
            raise
        except Exception as e:
            raise ProjectLoadError(
                f"Failed to add task rows for project {self.project_id} at level {level} ({key}): {e}",
                project_id=self.project_id, stage='tasks', level=level, group=key,
                batch_size=len(chunk), rows_created=self.rows_created, cause=e,
            ) from e

        for task, row in zip(chunk, created):
            self.identity_map[task.id] = row['id']
            record.row_ids.append(row['id'])
        self.rows_created += len(created)

    def load(self, tasks: List[SourceTask]) -> Dict[str, int]:
        """
        Create rows for every task not already present on the sheet

        Args:
            tasks: All tasks of the project in declaration order

        Returns:
            Identity map (task id -> row id), including rows found by seed_from_rows

        Raises:
            ProjectLoadError: If a batch fails after retries
            MigrationCancelled: If the cancel event is set between batches
        """
        if not tasks:
            return self.identity_map

        positions = {task.id: index for index, task in enumerate(tasks, 1)}
        max_level = max(task.outline_level for task in tasks)
        logger.info(f"  Loading {len(tasks)} tasks across {max_level} level(s) "
                    f"(batch size {self.batch_size})")

        for level in range(1, max_level + 1):
            level_tasks = [t for t in tasks if t.outline_level == level]
            pending = [t for t in level_tasks if t.id not in self.identity_map]
            self.rows_skipped += len(level_tasks) - len(pending)
            if not pending:
                continue

            groups = self._group_level(pending, level)
            for key, group in groups.items():
                for chunk in process_batch(group, self.batch_size):
                    self._check_cancelled(f"level {level} batch")
                    self._submit(level, key, chunk, positions)
                    if self.progress_callback:
                        self.progress_callback('tasks', {
                            'level': level,
                            'max_level': max_level,
                            'rows_created': self.rows_created,
                            'total': len(tasks),
                        })
            logger.info(f"  ✓ Level {level}: {len(pending)} row(s) in {len(groups)} group(s)")

        self._queue_seeded_predecessors(tasks, positions)
        if self.rows_skipped:
            logger.info(f"  Skipped {self.rows_skipped} task(s) already on the sheet")
        return self.identity_map

    def apply_deferred_predecessors(self) -> int:
        """
        Write the complete predecessor value for rows whose links were cut short

        Returns:
            Number of rows updated
        """
        if not self.deferred:
            return 0
        if not self.resolve_deferred:
            for entry in self.deferred:
                self._warn(f"Predecessors of task {entry.task_id} written as '{entry.written_value}' "
                           f"instead of '{entry.full_value}' (target rows created later)")
            return 0

        column_id = self.column_ids[layout.PREDECESSORS]
        updates = [
            {'id': self.identity_map[entry.task_id],
             'cells': [{'columnId': column_id, 'value': entry.full_value}]}
            for entry in self.deferred if entry.task_id in self.identity_map and entry.full_value
        ]
        updated = 0
        for chunk in process_batch(updates, self.batch_size):
            self._check_cancelled("predecessor updates")
            try:
                self.policy.execute(lambda: self.client.update_rows(self.sheet_id, chunk),
                                    description=f"update predecessors of {len(chunk)} rows")
            except Exception as e:
                raise ProjectLoadError(
                    f"Failed to apply deferred predecessors for project {self.project_id}: {e}",
                    project_id=self.project_id, stage='predecessors', batch_size=len(chunk),
                    rows_created=self.rows_created, cause=e,
                ) from e
            updated += len(chunk)
        logger.info(f"  ✓ Applied {updated} deferred predecessor update(s)")
        return updated
