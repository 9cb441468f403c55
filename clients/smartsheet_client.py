"""
Smartsheet API client for interacting with the Smartsheet REST API 2.0
"""
import os
from typing import Any, Dict, List, Optional

import requests

from config import DEFAULT_SMARTSHEET_BASE_URL, ENV_SMARTSHEET_API_TOKEN, RATE_LIMIT_DELAY
from errors import AuthenticationError, ConfigurationError, PlatformError, TransientPlatformError
from utils import logger, rate_limit

TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)


def raise_for_response(response: requests.Response, what: str):
    """Translate an HTTP error response into a migration error"""
    if response.ok:
        return
    status = response.status_code
    try:
        detail = response.json().get('message') or response.text
    except ValueError:
        detail = response.text
    message = f"{what} failed with HTTP {status}: {detail}"
    if status in (401, 403):
        raise AuthenticationError(message, status=status, body=response.text)
    if status in TRANSIENT_STATUS_CODES:
        raise TransientPlatformError(message, status=status, body=response.text)
    raise PlatformError(message, status=status, body=response.text)


class SmartsheetClient:
    """Handle Smartsheet API interactions"""

    def __init__(self, api_token: Optional[str] = None, base_url: Optional[str] = None,
                 rate_limit_delay: float = RATE_LIMIT_DELAY, timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize Smartsheet client

        Args:
            api_token: Smartsheet API access token. If None, reads from SMARTSHEET_API_TOKEN env var
            base_url: API root (defaults to https://api.smartsheet.com/2.0)
            rate_limit_delay: Delay before each call in seconds
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.api_token = api_token or os.getenv(ENV_SMARTSHEET_API_TOKEN)
        if not self.api_token:
            raise ConfigurationError("Smartsheet API token not provided. Set SMARTSHEET_API_TOKEN env var.")

        self.base_url = (base_url or DEFAULT_SMARTSHEET_BASE_URL).rstrip('/')
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {self.api_token}',
            'Content-Type': 'application/json'
        })
        logger.info(f"Smartsheet client initialized for {self.base_url}")

    @rate_limit
    def _request(self, method: str, path: str, what: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError) as e:
            raise TransientPlatformError(f"{what} failed: {type(e).__name__}: {e}") from e
        raise_for_response(response, what)
        if not response.content:
            return {}
        return response.json()

    def _get_all(self, path: str, what: str) -> List[Dict]:
        """GET a paginated list endpoint, following page numbers until totalPages"""
        items: List[Dict] = []
        page = 1
        while True:
            data = self._request('GET', path, what, params={'page': page, 'pageSize': 1000})
            items.extend(data.get('data', []))
            total_pages = data.get('totalPages') or 1
            if page >= total_pages:
                return items
            page += 1

    def test_connection(self) -> bool:
        """Test the API connection by fetching the current user"""
        try:
            user = self._request('GET', '/users/me', 'Get current user')
            logger.info(f"Connected to Smartsheet as {user.get('email', 'unknown')}")
            return True
        except PlatformError as e:
            logger.error(f"Smartsheet connection test failed: {e}")
            return False

    # Workspaces

    def find_workspace_by_name(self, name: str) -> Optional[Dict]:
        for workspace in self._get_all('/workspaces', 'List workspaces'):
            if workspace.get('name') == name:
                return workspace
        return None

    def create_workspace(self, name: str) -> Dict:
        data = self._request('POST', '/workspaces', f"Create workspace '{name}'", json={'name': name})
        return data.get('result', data)

    # Sheets

    def find_sheet_by_name(self, workspace_id: int, name: str) -> Optional[Dict]:
        data = self._request('GET', f'/workspaces/{workspace_id}', f"Get workspace {workspace_id}",
                             params={'loadAll': 'false'})
        for sheet in data.get('sheets', []):
            if sheet.get('name') == name:
                return sheet
        return None

    def create_sheet(self, workspace_id: int, name: str, columns: List[Dict]) -> Dict:
        data = self._request('POST', f'/workspaces/{workspace_id}/sheets', f"Create sheet '{name}'",
                             json={'name': name, 'columns': columns})
        return data.get('result', data)

    # Columns

    def list_columns(self, sheet_id: int) -> List[Dict]:
        data = self._request('GET', f'/sheets/{sheet_id}/columns', f"List columns of sheet {sheet_id}",
                             params={'includeAll': 'true'})
        return data.get('data', [])

    def create_columns(self, sheet_id: int, columns: List[Dict], index: Optional[int] = None) -> List[Dict]:
        """
        Add columns to a sheet in one call

        Args:
            sheet_id: Target sheet
            columns: Column bodies (title, type, ...)
            index: Insertion index applied to every column (defaults to append)

        Returns:
            Created columns as returned by the API
        """
        if index is None:
            index = len(self.list_columns(sheet_id))
        body = [dict(column, index=index) for column in columns]
        data = self._request('POST', f'/sheets/{sheet_id}/columns', f"Add columns to sheet {sheet_id}", json=body)
        result = data.get('result', [])
        return result if isinstance(result, list) else [result]

    def update_column(self, sheet_id: int, column_id: int, body: Dict) -> Dict:
        data = self._request('PUT', f'/sheets/{sheet_id}/columns/{column_id}',
                             f"Update column {column_id} of sheet {sheet_id}", json=body)
        return data.get('result', data)

    # Rows

    def add_rows(self, sheet_id: int, rows: List[Dict]) -> List[Dict]:
        """Add rows; the API returns them in submission order"""
        data = self._request('POST', f'/sheets/{sheet_id}/rows', f"Add {len(rows)} rows to sheet {sheet_id}",
                             json=rows)
        result = data.get('result', [])
        return result if isinstance(result, list) else [result]

    def update_rows(self, sheet_id: int, rows: List[Dict]) -> List[Dict]:
        data = self._request('PUT', f'/sheets/{sheet_id}/rows', f"Update {len(rows)} rows of sheet {sheet_id}",
                             json=rows)
        result = data.get('result', [])
        return result if isinstance(result, list) else [result]

    def list_rows(self, sheet_id: int) -> List[Dict]:
        data = self._request('GET', f'/sheets/{sheet_id}', f"Get sheet {sheet_id}")
        return data.get('rows', [])
