"""
Resource sheet loading
"""
from typing import Dict, List, Mapping, Optional

from errors import ProjectLoadError
from models import ResourceClass, SourceResource
from transformers import sheet_layouts as layout
from transformers.field_discovery import FieldDiscovery
from transformers.resource_router import classification_conflict, classify
from transformers.row_builders import resource_cells
from utils import BackoffPolicy, logger, process_batch


def classify_resources(resources: List[SourceResource], warnings: Optional[List[str]] = None
                       ) -> Dict[str, ResourceClass]:
    """
    Classify every resource, collecting explicit/attribute conflicts as warnings

    Returns:
        Map of resource id -> ResourceClass
    """
    classes: Dict[str, ResourceClass] = {}
    for resource in resources:
        classes[resource.id] = classify(resource)
        conflict = classification_conflict(resource)
        if conflict:
            logger.warning(conflict)
            if warnings is not None:
                warnings.append(conflict)
    counts = {cls: sum(1 for c in classes.values() if c is cls) for cls in ResourceClass}
    logger.info("  Resource classes: " + ', '.join(f"{cls.value}={n}" for cls, n in counts.items()))
    return classes


class ResourceLoader:
    """Add resource rows that are not already on the Resources sheet"""

    def __init__(self, client, sheet_id: int, column_ids: Mapping[str, int],
                 policy: Optional[BackoffPolicy] = None, batch_size: int = 100,
                 project_id: Optional[str] = None, discovery: Optional[FieldDiscovery] = None):
        self.client = client
        self.sheet_id = sheet_id
        self.column_ids = dict(column_ids)
        self.policy = policy or BackoffPolicy()
        self.batch_size = max(1, batch_size)
        self.project_id = project_id
        self.discovery = discovery
        self.row_ids: Dict[str, int] = {}
        self.rows_created = 0
        self.rows_skipped = 0

    def seed_from_rows(self, rows: List[Dict]) -> int:
        id_column = self.column_ids.get(layout.RESOURCE_ID)
        if id_column is None:
            return 0
        for row in rows:
            for cell in row.get('cells', []):
                if cell.get('columnId') == id_column and cell.get('value') not in (None, ''):
                    self.row_ids[str(cell['value'])] = row['id']
                    break
        return len(self.row_ids)

    def load(self, resources: List[SourceResource], classes: Mapping[str, ResourceClass]) -> Dict[str, int]:
        """
        Create one row per resource, in toBottom batches

        Args:
            resources: Resources to load
            classes: Resource id -> class (see classify_resources)

        Returns:
            Map of resource id -> row id (existing and new)
        """
        pending = [r for r in resources if r.id not in self.row_ids]
        self.rows_skipped += len(resources) - len(pending)
        if not pending:
            logger.info(f"  All {len(resources)} resource(s) already on the sheet")
            return self.row_ids

        for chunk in process_batch(pending, self.batch_size):
            rows = [
                {'toBottom': True,
                 'cells': resource_cells(r, classes[r.id], self.column_ids, self.discovery)}
                for r in chunk
            ]
            try:
                created = self.policy.execute(lambda: self.client.add_rows(self.sheet_id, rows),
                                              description=f"add {len(rows)} resource rows")
                if len(created) != len(chunk):
                    raise ProjectLoadError(f"Expected {len(chunk)} rows back, got {len(created)}")
            except Exception as e:
                raise ProjectLoadError(
                    f"Failed to add resource rows for project {self.project_id}: {e}",
                    project_id=self.project_id, stage='resources', batch_size=len(chunk),
                    rows_created=self.rows_created, cause=e,
                ) from e
            for resource, row in zip(chunk, created):
                self.row_ids[resource.id] = row['id']
            self.rows_created += len(created)

        logger.info(f"  ✓ Added {self.rows_created} resource row(s)"
                    + (f", {self.rows_skipped} already present" if self.rows_skipped else ""))
        return self.row_ids
