"""
Project Online API client for reading the ProjectData OData feed
"""
import os
from typing import Any, Dict, List, Optional

import requests

from config import ENV_PROJECT_ONLINE_ACCESS_TOKEN, ENV_PROJECT_ONLINE_URL, PROJECT_DATA_PATH, RATE_LIMIT_DELAY
from errors import ConfigurationError, PlatformError, TransientPlatformError
from clients.smartsheet_client import raise_for_response
from utils import logger, rate_limit


def _odata_items(data: Any) -> List[Dict]:
    """Entity list from either a JSON light or a verbose OData payload"""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    if 'value' in data:
        return data['value'] or []
    verbose = data.get('d')
    if isinstance(verbose, dict):
        if 'results' in verbose:
            return verbose['results'] or []
        return [verbose]
    if isinstance(verbose, list):
        return verbose
    return []


def _next_link(data: Any) -> Optional[str]:
    """Continuation URL, if the server paged the result"""
    if not isinstance(data, dict):
        return None
    link = data.get('@odata.nextLink') or data.get('odata.nextLink')
    if link:
        return link
    verbose = data.get('d')
    if isinstance(verbose, dict):
        return verbose.get('__next')
    return None


class ProjectOnlineClient:
    """Handle Project Online (ProjectData OData) interactions"""

    def __init__(self, site_url: Optional[str] = None, access_token: Optional[str] = None,
                 rate_limit_delay: float = RATE_LIMIT_DELAY, timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize Project Online client

        Args:
            site_url: PWA site URL (e.g. https://contoso.sharepoint.com/sites/pwa).
                If None, reads from PROJECT_ONLINE_URL env var
            access_token: OAuth bearer token. If None, reads from PROJECT_ONLINE_ACCESS_TOKEN env var
            rate_limit_delay: Delay before each call in seconds
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.site_url = site_url or os.getenv(ENV_PROJECT_ONLINE_URL)
        self.access_token = access_token or os.getenv(ENV_PROJECT_ONLINE_ACCESS_TOKEN)

        if not self.site_url:
            raise ConfigurationError("Project Online URL not provided. Set PROJECT_ONLINE_URL env var.")
        if not self.access_token:
            raise ConfigurationError(
                "Project Online access token not provided. Set PROJECT_ONLINE_ACCESS_TOKEN env var."
            )

        site = self.site_url.rstrip('/')
        if site.endswith(PROJECT_DATA_PATH):
            site = site[:-len(PROJECT_DATA_PATH)]
        self.base_url = f"{site}{PROJECT_DATA_PATH}"
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {self.access_token}',
            'Accept': 'application/json;odata=nometadata'
        })
        logger.info(f"Project Online base URL: {self.base_url}")

    @rate_limit
    def _get(self, url: str, what: str, params: Optional[Dict] = None) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError) as e:
            raise TransientPlatformError(f"{what} failed: {type(e).__name__}: {e}") from e
        raise_for_response(response, what)
        return response.json()

    def _fetch_all_pages(self, path: str, what: str, params: Optional[Dict] = None) -> List[Dict]:
        """
        Fetch a collection, following continuation links until exhausted

        Args:
            path: Path below /_api/ProjectData (e.g. "/Tasks")
            what: Label for logs and errors
            params: OData query options for the first request

        Returns:
            All entities across pages
        """
        items: List[Dict] = []
        url = f"{self.base_url}{path}"
        page = 0
        while url:
            page += 1
            data = self._get(url, what, params=params if page == 1 else None)
            batch = _odata_items(data)
            items.extend(batch)
            logger.debug(f"{what}: page {page} returned {len(batch)} item(s)")
            url = _next_link(data)
        return items

    def test_connection(self) -> bool:
        """Test the API connection with a minimal projects query"""
        try:
            self._get(f"{self.base_url}/Projects", 'Test connection', params={'$top': 1})
            return True
        except PlatformError as e:
            logger.error(f"Project Online connection test failed: {e}")
            return False

    def get_project(self, project_id: str) -> Optional[Dict]:
        """
        Get a single project by its GUID

        Returns:
            Project entity, or None if the project does not exist
        """
        try:
            data = self._get(f"{self.base_url}/Projects(guid'{project_id}')", f"Get project {project_id}")
        except PlatformError as e:
            if e.status == 404:
                return None
            raise
        items = _odata_items(data)
        if items:
            return items[0]
        return data if isinstance(data, dict) and data.get('ProjectId', data.get('Id')) else None

    def list_tasks(self, project_id: str) -> List[Dict]:
        return self._fetch_all_pages('/Tasks', f"List tasks of project {project_id}",
                                     params={'$filter': f"ProjectId eq guid'{project_id}'"})

    def list_resources(self) -> List[Dict]:
        return self._fetch_all_pages('/Resources', 'List resources')

    def list_assignments(self, project_id: str) -> List[Dict]:
        return self._fetch_all_pages('/Assignments', f"List assignments of project {project_id}",
                                     params={'$filter': f"ProjectId eq guid'{project_id}'"})
