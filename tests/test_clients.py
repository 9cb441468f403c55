import json

import pytest
import requests

from clients import ProjectOnlineClient, SmartsheetClient
from errors import AuthenticationError, ConfigurationError, PlatformError, TransientPlatformError

SITE = 'https://contoso.sharepoint.com/sites/pwa'


def _response(status, payload=None):
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(payload).encode('utf-8') if payload is not None else b''
    response.headers['Content-Type'] = 'application/json'
    return response


class FakeSession:
    """Replays queued responses and records every request"""

    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.requests = []

    def _next(self):
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, params=None, timeout=None):
        self.requests.append(('GET', url, params, None))
        return self._next()

    def request(self, method, url, timeout=None, params=None, json=None):
        self.requests.append((method, url, params, json))
        return self._next()


def _project_online(*responses):
    session = FakeSession(*responses)
    return ProjectOnlineClient(SITE, 'token', rate_limit_delay=0, session=session), session


def _smartsheet(*responses):
    session = FakeSession(*responses)
    return SmartsheetClient('token', rate_limit_delay=0, session=session), session


class TestProjectOnlineClient:
    def test_follows_next_links_until_exhausted(self):
        client, session = _project_online(
            _response(200, {'value': [{'TaskId': '1'}, {'TaskId': '2'}],
                            '@odata.nextLink': f"{SITE}/_api/ProjectData/Tasks?$skiptoken=2"}),
            _response(200, {'value': [{'TaskId': '3'}], 'odata.nextLink': f"{SITE}/_api/ProjectData/Tasks?p=3"}),
            _response(200, {'value': [{'TaskId': '4'}]}),
        )
        tasks = client.list_tasks('p-1')

        assert [t['TaskId'] for t in tasks] == ['1', '2', '3', '4']
        assert len(session.requests) == 3
        assert session.requests[0][2] == {'$filter': "ProjectId eq guid'p-1'"}
        assert session.requests[1][1].endswith('$skiptoken=2')
        assert session.requests[1][2] is None

    def test_verbose_payloads(self):
        client, _ = _project_online(
            _response(200, {'d': {'results': [{'ResourceId': 'r-1'}], '__next': f"{SITE}/next"}}),
            _response(200, {'d': {'results': [{'ResourceId': 'r-2'}]}}),
        )
        assert [r['ResourceId'] for r in client.list_resources()] == ['r-1', 'r-2']

    def test_base_url_and_headers(self):
        client, session = _project_online()
        assert client.base_url == f"{SITE}/_api/ProjectData"
        assert session.headers['Authorization'] == 'Bearer token'
        again = ProjectOnlineClient(f"{SITE}/_api/ProjectData/", 'token', session=FakeSession())
        assert again.base_url == f"{SITE}/_api/ProjectData"

    def test_get_project(self):
        client, session = _project_online(_response(200, {'ProjectId': 'p-1', 'ProjectName': 'Build'}))
        assert client.get_project('p-1')['ProjectName'] == 'Build'
        assert session.requests[0][1].endswith("/Projects(guid'p-1')")

    def test_missing_project_returns_none(self):
        client, _ = _project_online(_response(404, {'error': 'not found'}))
        assert client.get_project('p-404') is None

    def test_status_codes_map_to_error_types(self):
        client, _ = _project_online(_response(401, {}), _response(503, {}), _response(400, {}))
        with pytest.raises(AuthenticationError):
            client.list_resources()
        with pytest.raises(TransientPlatformError):
            client.list_resources()
        with pytest.raises(PlatformError) as excinfo:
            client.list_resources()
        assert excinfo.value.status == 400

    def test_connection_errors_are_transient(self):
        client, _ = _project_online(requests.exceptions.ConnectionError("reset by peer"))
        with pytest.raises(TransientPlatformError):
            client.list_resources()

    def test_connection_test(self):
        client, _ = _project_online(_response(200, {'value': []}), _response(403, {}))
        assert client.test_connection() is True
        assert client.test_connection() is False

    def test_requires_url_and_token(self, monkeypatch):
        monkeypatch.delenv('PROJECT_ONLINE_URL', raising=False)
        monkeypatch.delenv('PROJECT_ONLINE_ACCESS_TOKEN', raising=False)
        with pytest.raises(ConfigurationError):
            ProjectOnlineClient(None, 'token')
        with pytest.raises(ConfigurationError):
            ProjectOnlineClient(SITE, None)


class TestSmartsheetClient:
    def test_find_workspace_pages_through_results(self):
        client, session = _smartsheet(
            _response(200, {'data': [{'id': 1, 'name': 'Other'}], 'totalPages': 2}),
            _response(200, {'data': [{'id': 2, 'name': 'Data Center Build'}], 'totalPages': 2}),
        )
        assert client.find_workspace_by_name('Data Center Build') == {'id': 2, 'name': 'Data Center Build'}
        assert [r[2]['page'] for r in session.requests] == [1, 2]

    def test_create_columns_sets_index(self):
        client, session = _smartsheet(_response(200, {'result': [{'id': 11, 'title': 'Notes'}]}))
        created = client.create_columns(5, [{'title': 'Notes', 'type': 'TEXT_NUMBER'}], index=3)
        assert created == [{'id': 11, 'title': 'Notes'}]
        method, url, _, body = session.requests[0]
        assert (method, url) == ('POST', 'https://api.smartsheet.com/2.0/sheets/5/columns')
        assert body == [{'title': 'Notes', 'type': 'TEXT_NUMBER', 'index': 3}]

    def test_add_rows_returns_created_rows_in_order(self):
        client, session = _smartsheet(_response(200, {'result': [{'id': 101}, {'id': 102}]}))
        rows = [{'toBottom': True, 'cells': []}, {'toBottom': True, 'cells': []}]
        assert [r['id'] for r in client.add_rows(9, rows)] == [101, 102]
        assert session.requests[0][3] == rows

    def test_find_sheet_by_name(self):
        client, _ = _smartsheet(_response(200, {'id': 3, 'sheets': [{'id': 30, 'name': 'Plan - Tasks'}]}))
        assert client.find_sheet_by_name(3, 'Plan - Tasks')['id'] == 30

    def test_rate_limited_response_is_transient(self):
        client, _ = _smartsheet(_response(429, {'message': 'Rate limit exceeded', 'errorCode': 4003}))
        with pytest.raises(TransientPlatformError) as excinfo:
            client.list_columns(1)
        assert 'Rate limit exceeded' in str(excinfo.value)

    def test_requires_token(self, monkeypatch):
        monkeypatch.delenv('SMARTSHEET_API_TOKEN', raising=False)
        with pytest.raises(ConfigurationError):
            SmartsheetClient(None)
