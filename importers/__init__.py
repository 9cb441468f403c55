"""
Import modules for loading project data into Smartsheet
"""
from .schema_reconciler import SchemaReconciler
from .hierarchy_loader import HierarchyLoader
from .resource_loader import ResourceLoader, classify_resources
from .smartsheet_importer import SmartsheetImporter, import_to_smartsheet

__all__ = [
    'SchemaReconciler',
    'HierarchyLoader',
    'ResourceLoader',
    'classify_resources',
    'SmartsheetImporter',
    'import_to_smartsheet'
]
