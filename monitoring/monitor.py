#!/usr/bin/env python3
"""
Migration Monitoring System
Receives status updates from migration runs and displays them in a web dashboard
"""
import csv
import os
import threading
from datetime import datetime
from typing import Dict, Optional

from flask import Flask, request, jsonify, render_template_string
from flask_cors import CORS

from utils import logger

# CSV file path
DEFAULT_CSV_FILE = os.path.join(os.path.dirname(__file__), 'migration_status.csv')
CSV_HEADER = ['Timestamp', 'Project ID', 'Project Name', 'Status', 'Detail']
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

MONITOR_PORT = 8002


class StatusStore:
    """Latest status per project, persisted to a CSV file (one row per project)"""

    def __init__(self, csv_file: str = DEFAULT_CSV_FILE):
        self.csv_file = csv_file
        self.projects: Dict[str, Dict] = {}
        # Lock for thread-safe CSV writing
        self.lock = threading.Lock()

    def ensure_csv_header(self):
        """Ensure CSV file has proper headers"""
        if not os.path.exists(self.csv_file):
            with open(self.csv_file, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow(CSV_HEADER)

    def load(self) -> int:
        """Load the latest status for each project from the CSV file"""
        if not os.path.exists(self.csv_file):
            return 0
        with self.lock, open(self.csv_file, 'r', encoding='utf-8') as f:
            for row in csv.DictReader(f):
                project_id = (row.get('Project ID') or '').strip()
                status = (row.get('Status') or '').strip()
                if not project_id or not status:
                    continue
                timestamp_str = (row.get('Timestamp') or '').strip()
                try:
                    timestamp = datetime.strptime(timestamp_str, TIMESTAMP_FORMAT)
                except ValueError:
                    logger.warning(f"Bad timestamp '{timestamp_str}' for project {project_id} in {self.csv_file}")
                    timestamp = datetime.now()
                current = self.projects.get(project_id)
                if current and datetime.fromisoformat(current['timestamp']) > timestamp:
                    continue
                self.projects[project_id] = {
                    'project_id': project_id,
                    'project_name': (row.get('Project Name') or 'Unknown Project').strip(),
                    'status': status,
                    'detail': (row.get('Detail') or '').strip(),
                    'timestamp': timestamp.isoformat(),
                }
        logger.info(f"✓ Loaded {len(self.projects)} projects from CSV")
        return len(self.projects)

    def update(self, project_id: str, status: str, project_name: Optional[str] = None,
               detail: Optional[str] = None) -> Dict:
        """Record a status update in memory and rewrite its CSV row"""
        now = datetime.now()
        previous = self.projects.get(project_id, {})
        entry = {
            'project_id': project_id,
            'project_name': project_name or previous.get('project_name') or 'Unknown Project',
            'status': status,
            'detail': detail or '',
            'timestamp': now.isoformat(),
        }
        with self.lock:
            self.projects[project_id] = entry
            self.ensure_csv_header()
            rows = []
            with open(self.csv_file, 'r', encoding='utf-8') as f:
                reader = csv.reader(f)
                header = next(reader, None)
                rows.append(header or CSV_HEADER)
                # Drop the previous row for this project
                rows.extend(row for row in reader if len(row) < 2 or row[1] != project_id)
            rows.append([now.strftime(TIMESTAMP_FORMAT), project_id, entry['project_name'], status, entry['detail']])
            with open(self.csv_file, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerows(rows)
        return entry


def create_app(csv_file: Optional[str] = None) -> Flask:
    """
    Build the monitoring Flask app

    Args:
        csv_file: Where statuses are persisted (defaults to monitoring/migration_status.csv)
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes
    store = StatusStore(csv_file or DEFAULT_CSV_FILE)
    store.load()
    app.config['STATUS_STORE'] = store

    @app.route('/', methods=['GET'])
    def dashboard():
        """Serve the monitoring dashboard"""
        return render_template_string(DASHBOARD_HTML)

    @app.route('/api/status', methods=['GET', 'POST'])
    def receive_status():
        """Receive status updates from migration runs (GET returns the latest status per project)"""
        if request.method == 'GET':
            return jsonify({"projects": store.projects}), 200

        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400
        project_id = data.get('project_id')
        status = data.get('status')
        if not project_id or not status:
            return jsonify({"error": "Missing required fields: 'project_id' and 'status'"}), 400

        try:
            entry = store.update(str(project_id), str(status), data.get('project_name'), data.get('detail'))
        except OSError as e:
            logger.error(f"✗ Error saving status update: {e}")
            return jsonify({"error": str(e)}), 500

        logger.info(f"✓ Status update received: {project_id} ({entry['project_name']}) - {status}")
        return jsonify({
            "received": True,
            "project_id": entry['project_id'],
            "status": entry['status'],
            "project_name": entry['project_name']
        }), 200

    @app.route('/api/projects', methods=['GET'])
    def get_projects():
        """Get all project statuses for the dashboard"""
        projects = sorted(store.projects.values(), key=lambda p: p['timestamp'], reverse=True)
        return jsonify({"projects": projects})

    @app.route('/api/health', methods=['GET'])
    def health():
        """Health check endpoint"""
        return jsonify({"status": "ok", "projects_tracked": len(store.projects)}), 200

    return app


# HTML Dashboard Template
DASHBOARD_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Project Online Migration Dashboard</title>
    <style>
        body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: #f4f6fb; padding: 20px; }
        .header { background: white; padding: 20px; border-radius: 10px; text-align: center; margin-bottom: 20px; }
        table { width: 100%; border-collapse: collapse; background: white; border-radius: 10px; }
        th, td { padding: 10px 14px; border-bottom: 1px solid #eee; text-align: left; }
        .status { font-weight: 600; padding: 3px 10px; border-radius: 12px; }
        .Complete { background: #d4edda; color: #155724; }
        .Failed { background: #f8d7da; color: #721c24; }
        .Phase1, .Phase2, .Phase3 { background: #fff3cd; color: #856404; }
    </style>
</head>
<body>
    <div class="header">
        <h1>Project Online &rarr; Smartsheet Migration</h1>
        <div id="counts"></div>
    </div>
    <table>
        <thead>
            <tr><th>Project</th><th>Project ID</th><th>Status</th><th>Detail</th><th>Updated</th></tr>
        </thead>
        <tbody id="projects"></tbody>
    </table>
    <script>
        function escapeHtml(text) {
            const div = document.createElement('div');
            div.textContent = text || '';
            return div.innerHTML;
        }

        function loadProjects() {
            fetch('/api/projects')
                .then(response => response.json())
                .then(data => {
                    const projects = data.projects || [];
                    const done = projects.filter(p => p.status === 'Complete').length;
                    const failed = projects.filter(p => p.status === 'Failed').length;
                    document.getElementById('counts').textContent =
                        `${projects.length} projects: ${done} complete, ${failed} failed`;
                    document.getElementById('projects').innerHTML = projects.map(p => `
                        <tr>
                            <td>${escapeHtml(p.project_name)}</td>
                            <td>${escapeHtml(p.project_id)}</td>
                            <td><span class="status ${escapeHtml(p.status)}">${escapeHtml(p.status)}</span></td>
                            <td>${escapeHtml(p.detail)}</td>
                            <td>${new Date(p.timestamp).toLocaleString()}</td>
                        </tr>`).join('');
                });
        }

        loadProjects();
        setInterval(loadProjects, 5000);
    </script>
</body>
</html>
"""


if __name__ == '__main__':
    app = create_app()
    store = app.config['STATUS_STORE']
    store.ensure_csv_header()

    print("=" * 60)
    print("Migration Monitoring System")
    print("=" * 60)
    print(f"Dashboard: http://localhost:{MONITOR_PORT}")
    print(f"API Endpoint: http://localhost:{MONITOR_PORT}/api/status")
    print(f"CSV File: {store.csv_file}")
    print(f"Projects loaded: {len(store.projects)}")
    print("=" * 60)
    print("\nStarting server...")

    app.run(host='0.0.0.0', port=MONITOR_PORT, debug=True)
