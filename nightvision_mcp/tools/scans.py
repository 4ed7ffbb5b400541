"""
Scan tools: launch, list and inspect scans.

start-scan is fire-and-forget. The launch is handed to the background
dispatcher and the tool returns straight away with polling instructions.
"""

import json
import logging
from typing import List, Literal, Optional

from ..background import BackgroundDispatcher
from ..errors import ApiError, NotFoundError
from ..service import NightVisionService
from .common import OutputFormat, as_dict, error_result, parse_json, tool_handler

logger = logging.getLogger(__name__)

Severity = Literal["critical", "high", "medium", "low", "info", "unknown", "unspecified"]
ScanStatus = Literal["running", "finished", "failed", "all"]

SCAN_NOT_FOUND_MESSAGE = (
    "Scan not found: The scan with ID '{scan_id}' was not found or you don't have permission to access it.\n\n"
    "Please check that the scan ID is correct and that you have access to the project containing this scan."
)


def scan_confirmation(target_name: str, project: Optional[str], project_id: Optional[str]) -> str:
    """Message returned by start-scan, describing how to poll the scan"""
    lookup = {"target_name": target_name, "project": project or ""}
    if project_id:
        lookup["project_id"] = project_id
    lookup_json = json.dumps(lookup, indent=2).replace("\n", "\n   ")

    return (
        f"Scan initiated for target '{target_name}'.\n\n"
        "The scan is being processed in the background and may take several minutes to complete.\n\n"
        "To check the status of this scan, you can use the get-scan-status tool in either of these ways:\n\n"
        f"1. Using the target name:\n   {lookup_json}\n\n"
        "2. Or when the scan ID becomes available, you can use:\n"
        '   {\n     "scan_id": "scan-id-here"\n   }\n\n'
        "You can also list all your scans with the list-scans tool."
    )


def log_scan_launch(result: str):
    scan = as_dict(parse_json(result))
    scan_id = scan.get("extracted_id") or scan.get("id")
    if scan_id:
        logger.info(f"Scan started with ID: {scan_id}")
    logger.info(f"Scan started successfully in background: {result[:100]}...")


def register_scan_tools(mcp, service: NightVisionService, dispatcher: BackgroundDispatcher):
    """Register start-scan, list-scans, get-scan-status, get-scan-checks and get-scan-paths"""

    @mcp.tool(name="start-scan", structured_output=False)
    @tool_handler(service, "Failed to start scan")
    async def start_scan(
        target_name: str,
        auth: Optional[str] = None,
        auth_id: Optional[str] = None,
        no_auth: bool = False,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        format: OutputFormat = "json",
    ):
        """
        Start a scan on a NightVision target. Returns immediately; the scan is launched in the background.

        Args:
            target_name: Name of the target to scan
            auth: Authentication name to execute an authenticated scan
            auth_id: Authentication UUID for scan authentication
            no_auth: Do not include any authentication in the scan
            project: Project name of the target to scan
            project_id: Project UUID of the target to scan
            format: Format of command output (json, text, table)
        """
        if not project and not project_id:
            return error_result(
                "You must specify a project when starting a scan. "
                "Please include either the 'project' or 'project_id' parameter."
            )

        logger.info(f"Starting scan for target '{target_name}' in background...")
        dispatcher.submit(
            f"scan {target_name}",
            lambda: service.start_scan(target_name, auth, auth_id, no_auth, project, project_id, format),
            on_success=log_scan_launch,
        )
        return scan_confirmation(target_name, project, project_id)

    @mcp.tool(name="list-scans", structured_output=False)
    @tool_handler(service, "Failed to list scans")
    async def list_scans(
        target: Optional[str] = None,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        limit: Optional[int] = None,
        status: ScanStatus = "all",
        format: OutputFormat = "json",
    ):
        """
        List scans with optional filtering.

        Args:
            target: Filter scans by target name
            project: Filter scans by project name
            project_id: Filter scans by project UUID
            limit: Maximum number of scans to return
            status: Filter scans by status (running, finished, failed, all)
            format: Format of command output (json, text, table)
        """
        return await service.list_scans(target, project, project_id, limit, status, format)

    @mcp.tool(name="get-scan-status", structured_output=False)
    @tool_handler(service, "Failed to get scan status")
    async def get_scan_status(
        scan_id: Optional[str] = None,
        target_name: Optional[str] = None,
        project: Optional[str] = None,
        format: OutputFormat = "json",
    ):
        """
        Get the status of a scan, by scan ID or as the latest scan of a target.

        Args:
            scan_id: ID of the scan
            target_name: Name of the target whose latest scan should be shown
            project: Project name to filter by when using target_name
            format: Format of command output (json, text, table)
        """
        if not scan_id and not target_name:
            return error_result("Either scan_id or target_name is required. Please provide one of these parameters.")

        if scan_id:
            try:
                return await service.get_scan_status(scan_id, format)
            except ApiError as e:
                if e.status == 404:
                    return error_result(SCAN_NOT_FOUND_MESSAGE.format(scan_id=scan_id))
                raise

        try:
            latest = await service.get_latest_scan_for_target(target_name, project)
            note = f"This is the latest scan for target '{target_name}' (created: {latest.get('created')})"
            return await service.get_scan_status(latest["id"], format, note=note)
        except NotFoundError as e:
            return error_result(str(e))
        except Exception as e:
            return error_result(f"Failed to find latest scan for target '{target_name}': {e}")

    @mcp.tool(name="get-scan-checks", structured_output=False)
    @tool_handler(service, "Failed to get scan vulnerabilities")
    async def get_scan_checks(
        scan_id: str,
        severity: List[Severity],
        status: List[Literal[0, 1, 2, 3]],
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        name: Optional[str] = None,
        check_kind: Optional[str] = None,
        format: OutputFormat = "json",
    ):
        """
        Get the vulnerability checks found by a scan.

        Args:
            scan_id: ID of the scan
            severity: Severity levels to include (can specify multiple)
            status: Check status codes to include: 0 open, 1 false positive, 2 resolved, 3 accepted risk
            page: Page number for pagination
            page_size: Number of items per page (default 100)
            name: Filter checks by name
            check_kind: Filter checks by kind
            format: Format of command output (json, text, table)
        """
        try:
            return await service.get_scan_checks(scan_id, severity, status, page, page_size, name, check_kind, format)
        except ApiError as e:
            if e.status == 404:
                return error_result(SCAN_NOT_FOUND_MESSAGE.format(scan_id=scan_id))
            raise

    @mcp.tool(name="get-scan-paths", structured_output=False)
    @tool_handler(service, "Error getting scan paths")
    async def get_scan_paths(
        scan_id: str,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        filter: Optional[str] = None,
        format: OutputFormat = "json",
    ):
        """
        Get the paths that were checked during a scan.

        Args:
            scan_id: ID of the scan
            page: Page number for pagination
            page_size: Number of items per page
            filter: Filter string to narrow down the paths
            format: Format of command output (json, text, table)
        """
        return await service.get_scan_paths(scan_id, page, page_size, filter, format)
