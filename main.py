"""
Main entry point for Project Online to Smartsheet migration script
"""
import sys
import argparse
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

import requests

from clients import ProjectOnlineClient, SmartsheetClient
from config import MigrationConfig, PROJECT_IDS, DEFAULT_MONITOR_URL
from errors import ConfigurationError, MigrationError
from exporters import export_project
from importers import import_to_smartsheet
from models import MigrationSummary
from utils import BackoffPolicy, logger, setup_logging

# Load stages reported to the monitoring server
STAGE_STATUS = {
    'workspace': 'Phase2',
    'sheets': 'Phase2',
    'resources': 'Phase3',
    'task columns': 'Phase3',
    'tasks': 'Phase3',
    'summary': 'Phase3',
}


def send_status_update(monitor_url: Optional[str], project_id, status, project_name=None, detail=None):
    """
    Send migration status update to monitoring server

    Args:
        monitor_url: Status endpoint (None disables updates)
        project_id: Project Online project id
        status: Phase status (Phase1, Phase2, Phase3, Complete, Failed)
        project_name: Project name (optional)
        detail: Short free-text progress detail (optional)
    """
    if not monitor_url:
        return
    payload = {
        "project_id": str(project_id),
        "status": status
    }
    if project_name:
        payload["project_name"] = project_name
    if detail:
        payload["detail"] = detail
    try:
        response = requests.post(monitor_url, json=payload, timeout=2)
        logger.debug(f"Status update sent: {payload} - Response: {response.status_code}")
    except requests.exceptions.RequestException as e:
        # Monitoring is optional
        logger.debug(f"Could not send status update to monitoring server: {e}")


def migrate_single_project(project_online_client, smartsheet_client, project_id: str, config: MigrationConfig,
                           workspace_name: Optional[str] = None,
                           cancel_event: Optional[threading.Event] = None) -> dict:
    """
    Migrate a single project from Project Online to Smartsheet

    Args:
        project_online_client: Initialized Project Online client
        smartsheet_client: Initialized Smartsheet client
        project_id: Project Online project GUID
        config: Run configuration
        workspace_name: Optional workspace name override
        cancel_event: Event that stops the load between batches

    Returns:
        dict: Migration results with 'success' (bool) and 'summary' (MigrationSummary)
    """
    project_name = None
    try:
        logger.info(f"\n{'='*60}")
        logger.info("PHASE 1: EXPORT FROM PROJECT ONLINE")
        logger.info(f"{'='*60}")
        send_status_update(config.monitor_url, project_id, "Phase1")

        snapshot = export_project(project_online_client, project_id, BackoffPolicy.from_config(config))
        project_name = snapshot.project.name
        logger.info("Project Details Retrieved:")
        logger.info(f"  Name: {snapshot.project.name}")
        logger.info(f"  ID: {snapshot.project.id}")
        logger.info(f"  Tasks: {len(snapshot.tasks)}")
        logger.info(f"  Resources: {len(snapshot.resources)}")
        logger.info(f"  Assignments: {len(snapshot.assignments)}")

        logger.info(f"\n{'='*60}")
        logger.info("PHASE 2-3: LOAD INTO SMARTSHEET")
        logger.info(f"{'='*60}")

        last_status = {'value': None}

        def on_progress(stage, detail):
            status = STAGE_STATUS.get(stage)
            if status and status != last_status['value']:
                last_status['value'] = status
                send_status_update(config.monitor_url, project_id, status, project_name, detail=stage)

        summary = import_to_smartsheet(smartsheet_client, snapshot, config, workspace_name=workspace_name,
                                       cancel_event=cancel_event, progress_callback=on_progress)
        summary.print_summary()

        send_status_update(config.monitor_url, project_id, "Complete" if summary.success else "Failed",
                           project_name)
        result = {
            'success': summary.success,
            'summary': summary,
            'project': project_name,
            'project_id': project_id
        }
        if not summary.success:
            result['error'] = summary.errors[-1] if summary.errors else 'Unknown error'
        return result

    except MigrationError as e:
        logger.error(f"Error migrating project {project_id}: {e}")
        send_status_update(config.monitor_url, project_id, "Failed", project_name)
        summary = MigrationSummary(project_id=project_id, project_name=project_name, errors=[str(e)])
        return {'success': False, 'summary': summary, 'project': project_name or project_id,
                'project_id': project_id, 'error': str(e)}
    except Exception as e:
        logger.exception(f"Unexpected error migrating project {project_id}: {e}")
        send_status_update(config.monitor_url, project_id, "Failed", project_name)
        summary = MigrationSummary(project_id=project_id, project_name=project_name, errors=[str(e)])
        return {'success': False, 'summary': summary, 'project': project_name or project_id,
                'project_id': project_id, 'error': str(e)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Migrate projects from Project Online to Smartsheet',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py 6b8f0b6e-3d4a-4f7e-9d0e-2f4c1a7b9e21
  python main.py <project-id-1> <project-id-2> --workers 2
  python main.py <project-id> --workspace-name "Data Center Build"
  python main.py  # Uses PROJECT_IDS from config.py if no arguments provided
        """
    )
    parser.add_argument(
        'project_ids',
        nargs='*',
        help='One or more Project Online project GUIDs to migrate'
    )
    parser.add_argument('--workspace-name', help='Workspace name override (single project only)')
    parser.add_argument('--workers', type=int, default=None,
                        help='Number of projects migrated in parallel')
    parser.add_argument('--batch-size', type=int, default=None, help='Rows per addRows call')
    parser.add_argument('--no-deferred-predecessors', action='store_true',
                        help='Do not re-apply predecessor links to rows created later in the run')
    parser.add_argument('--monitor', action='store_true',
                        help=f'Send status updates to the monitoring server ({DEFAULT_MONITOR_URL})')
    parser.add_argument('--verbose', action='store_true', help='Show debug output on the console')
    return parser


def main(argv=None):
    """Main execution function"""
    args = build_parser().parse_args(argv)
    log_file = setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    logger.info("\n" + "="*60)
    logger.info("PROJECT ONLINE TO SMARTSHEET MIGRATION SCRIPT")
    logger.info("="*60 + "\n")
    logger.info(f"Log file: {log_file}")

    project_ids = args.project_ids or PROJECT_IDS
    if not project_ids:
        logger.error("No project ids provided via command line and none configured in config.py")
        logger.error("Usage: python main.py <project_id1> [project_id2] ...")
        sys.exit(1)
    if args.workspace_name and len(project_ids) > 1:
        logger.error("--workspace-name can only be used with a single project")
        sys.exit(1)

    try:
        config = MigrationConfig.from_env(
            batch_size=args.batch_size,
            max_workers=args.workers,
            monitor_url=DEFAULT_MONITOR_URL if args.monitor else None,
        )
        if args.no_deferred_predecessors:
            config.resolve_deferred_predecessors = False

        logger.info("Initializing API clients...")
        project_online_client = ProjectOnlineClient(config.project_online_url, config.project_online_token,
                                                    rate_limit_delay=config.rate_limit_delay,
                                                    timeout=config.request_timeout)
        smartsheet_client = SmartsheetClient(config.smartsheet_token, config.smartsheet_base_url,
                                             rate_limit_delay=config.rate_limit_delay,
                                             timeout=config.request_timeout)

        logger.info("Testing Project Online connection...")
        if not project_online_client.test_connection():
            logger.error("✗ Project Online connection test failed")
            logger.error("\nPossible issues:")
            logger.error("  1. PROJECT_ONLINE_ACCESS_TOKEN may be invalid or expired")
            logger.error("  2. The token may not have ProjectWebAppReporting permission")
            logger.error("  3. PROJECT_ONLINE_URL may not point at a PWA site")
            sys.exit(1)
        logger.info("✓ Project Online connection test successful")

        logger.info("Testing Smartsheet connection...")
        if not smartsheet_client.test_connection():
            logger.error("✗ Smartsheet connection test failed, check SMARTSHEET_API_TOKEN")
            sys.exit(1)
        logger.info("✓ Smartsheet connection test successful")
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        logger.error("\nPlease check your .env file.")
        sys.exit(1)

    logger.info(f"\n{'='*60}")
    logger.info(f"MIGRATING {len(project_ids)} PROJECT(S) WITH {config.max_workers} WORKER(S)")
    logger.info(f"{'='*60}")

    cancel_event = threading.Event()
    all_results = []
    executor = ThreadPoolExecutor(max_workers=max(1, config.max_workers))
    try:
        futures = {
            executor.submit(migrate_single_project, project_online_client, smartsheet_client, project_id,
                            config, args.workspace_name, cancel_event): project_id
            for project_id in project_ids
        }
        for future in as_completed(futures):
            result = future.result()
            all_results.append(result)
            if result['success']:
                logger.info(f"✓ Successfully migrated project: {result.get('project', futures[future])}")
            else:
                logger.error(f"✗ Failed to migrate project: {result.get('project', futures[future])}")
                if 'error' in result:
                    logger.error(f"  Error: {result['error']}")
    except KeyboardInterrupt:
        logger.warning("Interrupted, stopping after the current batch...")
        cancel_event.set()
    finally:
        executor.shutdown(wait=True)

    # Print overall summary
    logger.info(f"\n{'='*60}")
    logger.info("OVERALL MIGRATION SUMMARY")
    logger.info(f"{'='*60}")

    successful_migrations = sum(1 for r in all_results if r['success'])
    failed_migrations = len(all_results) - successful_migrations

    logger.info(f"Total projects: {len(all_results)}")
    logger.info(f"  ✓ Successful: {successful_migrations}")
    logger.info(f"  ✗ Failed: {failed_migrations}")

    if all_results:
        logger.info("\nProject Details:")
        for idx, result in enumerate(all_results, 1):
            status = "✓" if result['success'] else "✗"
            summary = result['summary']
            logger.info(f"  {idx}. {status} {result.get('project', 'Unknown')} "
                        f"({summary.rows_created} rows, {summary.columns_created} columns)")
            if not result['success'] and 'error' in result:
                logger.info(f"       Error: {result['error']}")

    logger.info(f"\n{'='*60}")
    logger.info("Migration process completed")
    logger.info(f"{'='*60}")

    if failed_migrations or cancel_event.is_set():
        sys.exit(1)


if __name__ == '__main__':
    main()
