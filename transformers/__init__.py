"""
Data transformation modules for converting Project Online data to Smartsheet format
"""
from .field_mappers import (
    convert_date,
    parse_duration_hours,
    format_duration_days,
    format_hours,
    map_priority,
    derive_status,
    map_constraint_type,
    convert_max_units,
    create_contact,
    format_lag,
    map_predecessors,
    sanitize_workspace_name,
    create_sheet_name
)
from .resource_router import classify, classification_conflict, column_family_for
from .field_discovery import discover_fields

__all__ = [
    'convert_date',
    'parse_duration_hours',
    'format_duration_days',
    'format_hours',
    'map_priority',
    'derive_status',
    'map_constraint_type',
    'convert_max_units',
    'create_contact',
    'format_lag',
    'map_predecessors',
    'sanitize_workspace_name',
    'create_sheet_name',
    'classify',
    'classification_conflict',
    'column_family_for',
    'discover_fields'
]
