"""
Discovery of source fields that have no fixed column mapping

Runs as a separate pass after the typed mapping: looks at the residual
fields of each entity, infers a column type from the values it sees and
proposes extra columns. Fields whose title collides with a core column are
ignored, and so are fields that are empty on every entity.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from models import ColumnSpec
from transformers.field_mappers import convert_date
from utils import logger, normalize_title

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')
_ISO_DATETIME_VALUE = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}')

DEFAULT_SAMPLE_SIZE = 200


def field_title(name: str) -> str:
    """Turn a field name like 'CostCenterCode' or 'cost_center' into 'Cost Center Code'"""
    spaced = _CAMEL_BOUNDARY.sub(' ', name.replace('_', ' '))
    words = [w for w in spaced.split() if w]
    return ' '.join(w[:1].upper() + w[1:] for w in words)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def infer_column_type(values: Iterable[Any]) -> str:
    """bool -> CHECKBOX, ISO datetime strings -> DATE, anything else -> TEXT_NUMBER"""
    seen = [v for v in values if not _is_empty(v)]
    if not seen:
        return 'TEXT_NUMBER'
    if all(isinstance(v, bool) for v in seen):
        return 'CHECKBOX'
    if all(isinstance(v, str) and _ISO_DATETIME_VALUE.match(v) for v in seen):
        return 'DATE'
    return 'TEXT_NUMBER'


@dataclass
class DiscoveredField:
    source_name: str
    column: ColumnSpec

    def cell_value(self, raw: Any) -> Any:
        if _is_empty(raw):
            return None
        if self.column.type == 'DATE':
            return convert_date(raw) or None
        if self.column.type == 'CHECKBOX':
            return bool(raw)
        if isinstance(raw, (int, float)):
            return raw
        return str(raw)


@dataclass
class FieldDiscovery:
    """Result of a discovery pass over one entity kind"""
    fields: List[DiscoveredField] = field(default_factory=list)

    @property
    def columns(self) -> List[ColumnSpec]:
        return [f.column for f in self.fields]

    def cells_for(self, extra: Dict[str, Any], column_ids: Dict[str, int]) -> List[Dict[str, Any]]:
        """Cells for one entity's residual fields"""
        cells = []
        for discovered in self.fields:
            column_id = column_ids.get(discovered.column.title)
            if column_id is None:
                continue
            value = discovered.cell_value(extra.get(discovered.source_name))
            if value is not None:
                cells.append({'columnId': column_id, 'value': value})
        return cells


def discover_fields(entities: Iterable[Any], core_titles: Iterable[str],
                    sample_size: Optional[int] = DEFAULT_SAMPLE_SIZE) -> FieldDiscovery:
    """
    Propose extra columns for the residual fields of a set of entities

    Args:
        entities: Objects with an 'extra' dict (SourceTask, SourceResource)
        core_titles: Titles already produced by the typed mapping
        sample_size: Number of entities inspected for type inference (None = all)

    Returns:
        FieldDiscovery with one entry per new column, in first-seen order
    """
    reserved = {normalize_title(t) for t in core_titles}
    samples: Dict[str, List[Any]] = {}
    for index, entity in enumerate(entities):
        if sample_size is not None and index >= sample_size:
            break
        for name, value in (getattr(entity, 'extra', None) or {}).items():
            if isinstance(value, (dict, list)):
                continue
            samples.setdefault(name, []).append(value)

    discovery = FieldDiscovery()
    for name, values in samples.items():
        if all(_is_empty(v) for v in values):
            continue
        title = field_title(name)
        key = normalize_title(title)
        if not key:
            continue
        if key in reserved:
            logger.debug(f"Skipping discovered field '{name}': title '{title}' is already a column")
            continue
        reserved.add(key)
        column = ColumnSpec(title, infer_column_type(values), width=150)
        discovery.fields.append(DiscoveredField(name, column))

    if discovery.fields:
        logger.info(f"Discovered {len(discovery.fields)} additional field(s): "
                    f"{', '.join(f.column.title for f in discovery.fields)}")
    return discovery
