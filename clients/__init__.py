"""
API client modules for Project Online and Smartsheet
"""
from .project_online_client import ProjectOnlineClient
from .smartsheet_client import SmartsheetClient

__all__ = ['ProjectOnlineClient', 'SmartsheetClient']
