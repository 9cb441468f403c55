"""
Idempotent provisioning of workspaces, sheets and columns

Existing structure is matched by name (workspaces, sheets) or by normalized
column title, so running the same load twice creates nothing the second time.
"""
from typing import Dict, List, Optional, Tuple

from errors import SchemaConflictError, is_retryable
from models import ColumnSpec
from utils import BackoffPolicy, logger, normalize_title

# Column types that can stand in for each other when a column already exists.
# Sheets with dependencies enabled turn DATE into ABSTRACT_DATETIME and
# TEXT_NUMBER duration columns into DURATION.
_COMPATIBLE_TYPES = [
    {'DATE', 'ABSTRACT_DATETIME', 'DATETIME'},
    {'TEXT_NUMBER', 'DURATION', 'PICKLIST', 'MULTI_PICKLIST'},
    {'CONTACT_LIST', 'MULTI_CONTACT_LIST'},
    {'CHECKBOX'},
    {'PREDECESSOR'},
]


def types_compatible(existing: str, requested: str) -> bool:
    if not existing or not requested or existing == requested:
        return True
    for group in _COMPATIBLE_TYPES:
        if existing in group and requested in group:
            return True
    return False


class SchemaReconciler:
    """Get-or-create for workspaces, sheets and columns of one project load"""

    def __init__(self, client, policy: Optional[BackoffPolicy] = None):
        self.client = client
        self.policy = policy or BackoffPolicy()
        self.columns_created = 0
        self.warnings: List[str] = []

    def _warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def get_or_create_workspace(self, name: str) -> Dict:
        """
        Find a workspace by exact name, creating it when missing

        Returns:
            Workspace dict (contains 'id' and 'name')
        """
        workspace = self.policy.execute(lambda: self.client.find_workspace_by_name(name),
                                        description=f"find workspace '{name}'")
        if workspace:
            logger.info(f"  Using existing workspace '{name}' (ID: {workspace['id']})")
            return workspace
        workspace = self.policy.execute(lambda: self.client.create_workspace(name),
                                        description=f"create workspace '{name}'")
        logger.info(f"  ✓ Created workspace '{name}' (ID: {workspace['id']})")
        return workspace

    def get_or_create_sheet(self, workspace_id: int, name: str,
                            seed_columns: List[ColumnSpec]) -> Tuple[Dict, bool]:
        """
        Find a sheet in a workspace by name, creating it with seed columns when missing

        Args:
            workspace_id: Owning workspace
            name: Sheet name
            seed_columns: Columns for a new sheet (must contain exactly one primary column)

        Returns:
            Tuple of (sheet dict, created flag)
        """
        sheet = self.policy.execute(lambda: self.client.find_sheet_by_name(workspace_id, name),
                                    description=f"find sheet '{name}'")
        if sheet:
            logger.info(f"  Using existing sheet '{name}' (ID: {sheet['id']})")
            return sheet, False

        body = [column.to_api() for column in seed_columns]
        sheet = self.policy.execute(lambda: self.client.create_sheet(workspace_id, name, body),
                                    description=f"create sheet '{name}'")
        self.columns_created += len(seed_columns)
        logger.info(f"  ✓ Created sheet '{name}' (ID: {sheet['id']}) with {len(seed_columns)} columns")
        return sheet, True

    def _fetch_columns(self, sheet_id: int) -> List[Dict]:
        return self.policy.execute(lambda: self.client.list_columns(sheet_id),
                                   description=f"list columns of sheet {sheet_id}")

    def ensure_columns(self, sheet_id: int, desired: List[ColumnSpec]) -> Dict[str, int]:
        """
        Make sure every desired column exists on the sheet

        Only the missing columns are created, in one batch. If the batch is
        rejected, columns are created one at a time and individual failures
        are recorded as warnings.

        Args:
            sheet_id: Target sheet
            desired: Columns that should exist

        Returns:
            Map of column title -> column id, covering existing and new columns.
            Desired columns are keyed by their desired title even when the
            existing title differs in case or spacing.

        Raises:
            SchemaConflictError: If an existing column has an incompatible type
        """
        existing = self._fetch_columns(sheet_id)
        by_key = {normalize_title(c.get('title')): c for c in existing}

        missing: List[ColumnSpec] = []
        seen = set()
        for column in desired:
            key = normalize_title(column.title)
            if key in seen:
                continue
            seen.add(key)
            current = by_key.get(key)
            if current is None:
                missing.append(column)
            elif not types_compatible(current.get('type'), column.type):
                raise SchemaConflictError(column.title, current.get('type'), column.type)

        if missing:
            self._create_missing(sheet_id, missing, index=len(existing))
            existing = self._fetch_columns(sheet_id)
            by_key = {normalize_title(c.get('title')): c for c in existing}
        else:
            logger.debug(f"All {len(desired)} columns already present on sheet {sheet_id}")

        column_map = {c.get('title'): c.get('id') for c in existing}
        for column in desired:
            current = by_key.get(normalize_title(column.title))
            if current is not None:
                column_map[column.title] = current.get('id')
        return column_map

    def _create_missing(self, sheet_id: int, missing: List[ColumnSpec], index: int):
        titles = ', '.join(c.title for c in missing)
        try:
            created = self.policy.execute(
                lambda: self.client.create_columns(sheet_id, [c.to_api() for c in missing], index=index),
                description=f"add {len(missing)} columns to sheet {sheet_id}",
                should_retry=is_retryable,
            )
            self.columns_created += len(created)
            logger.info(f"  ✓ Added {len(created)} column(s) to sheet {sheet_id}: {titles}")
            return
        except Exception as e:
            if not is_retryable(e):
                raise
            logger.warning(f"Batch column creation failed on sheet {sheet_id} ({e}); adding columns one by one")

        position = index
        for column in missing:
            try:
                self.policy.execute(
                    lambda: self.client.create_columns(sheet_id, [column.to_api()], index=position),
                    description=f"add column '{column.title}' to sheet {sheet_id}",
                    should_retry=is_retryable,
                )
            except Exception as e:
                if not is_retryable(e):
                    raise
                self._warn(f"Could not create column '{column.title}' on sheet {sheet_id}: {e}")
                continue
            self.columns_created += 1
            position += 1

    def configure_cross_sheet_reference(self, sheet_id: int, column_id: int, column_type: str,
                                        source_sheet_id: int, source_column_id: int):
        """
        Point a task-sheet column at a column of another sheet

        MULTI_CONTACT_LIST columns take contact options from the source
        column, MULTI_PICKLIST columns get a CELL_LINK option.
        """
        if column_type == 'MULTI_CONTACT_LIST':
            body = {
                'type': 'MULTI_CONTACT_LIST',
                'contactOptions': [{'sheetId': source_sheet_id, 'columnId': source_column_id}],
            }
        elif column_type == 'MULTI_PICKLIST':
            body = {
                'type': 'MULTI_PICKLIST',
                'options': [{
                    'value': {
                        'objectType': 'CELL_LINK',
                        'sheetId': source_sheet_id,
                        'columnId': source_column_id,
                    }
                }],
            }
        else:
            raise ValueError(f"Column type {column_type} cannot reference another sheet")

        self.policy.execute(lambda: self.client.update_column(sheet_id, column_id, body),
                            description=f"link column {column_id} to sheet {source_sheet_id}",
                            should_retry=is_retryable)
        logger.debug(f"Linked column {column_id} of sheet {sheet_id} to column "
                     f"{source_column_id} of sheet {source_sheet_id}")
