"""
Export modules for reading project data from Project Online
"""
from .project_online_exporter import export_project

__all__ = ['export_project']
