"""Target management tools: list, inspect, create and delete targets."""

import logging
from typing import List, Optional

from ..errors import NotFoundError
from ..formatting import format_key_values, to_json
from ..service import NightVisionService
from .common import OutputFormat, as_dict, error_result, parse_json, text_result, tool_handler

logger = logging.getLogger(__name__)


def summarize_targets(targets: list) -> dict:
    """Condense the CLI target listing to the fields a caller needs"""
    return {
        "totalTargets": len(targets),
        "targets": [
            {
                "name": target.get("name"),
                "id": target.get("id"),
                "location": target.get("location"),
                "project": target.get("project_name"),
                "type": target.get("type"),
                "isReadyToScan": target.get("is_ready_to_scan"),
            }
            for target in targets
        ],
    }


def register_target_tools(mcp, service: NightVisionService):
    """Register list-targets, get-target-details, create-target and delete-target"""

    @mcp.tool(name="list-targets", structured_output=False)
    @tool_handler(service, "Error listing targets")
    async def list_targets(all: bool = False, projects: Optional[List[str]] = None, format: OutputFormat = "json"):
        """
        List NightVision targets.

        Args:
            all: List targets across all projects
            projects: Project names to filter the target list
            format: Format of command output (json, text, table)
        """
        output = await service.list_targets(all, projects, format)
        if format != "json":
            return output

        targets = parse_json(output)
        if not isinstance(targets, list):
            return output
        return to_json(summarize_targets(targets))

    @mcp.tool(name="get-target-details", structured_output=False)
    @tool_handler(service, "Error getting target details")
    async def get_target_details(name: str, format: OutputFormat = "json"):
        """
        Get detailed information about a target, looked up by exact name across all projects.

        Args:
            name: Name of the target
            format: Format of command output (json, text, table)
        """
        try:
            target = await service.get_target(name)
        except NotFoundError as e:
            return error_result(str(e))

        if format == "json":
            return to_json(target)
        return format_key_values([
            ("Name", target.get("name")),
            ("ID", target.get("id")),
            ("Location", target.get("location")),
            ("Type", target.get("type")),
            ("Project", target.get("project_name")),
            ("Ready To Scan", target.get("is_ready_to_scan")),
        ])

    @mcp.tool(name="create-target", structured_output=False)
    @tool_handler(service, "Error creating target")
    async def create_target(
        name: str,
        url: str,
        project: str,
        project_id: Optional[str] = None,
        type: Optional[str] = "WEB",
        spec_file: Optional[str] = None,
        spec_url: Optional[str] = None,
        exclude_url: Optional[List[str]] = None,
        exclude_xpath: Optional[List[str]] = None,
        format: OutputFormat = "json",
    ):
        """
        Create a new NightVision target.

        Args:
            name: Name of the target to create
            url: URL of the target
            project: Project name of the target (required)
            project_id: Project UUID of the target
            type: Type of the target (API or WEB)
            spec_file: Path to a swagger specification / Postman collection file (for API)
            spec_url: URL of a swagger specification / Postman collection (for API)
            exclude_url: URL regex patterns to exclude
            exclude_xpath: XPath expressions to exclude
            format: Format of command output (json, text, table)
        """
        if not project:
            return error_result(
                "Project name is required. Please provide a 'project' parameter with the name of the project."
            )

        output = await service.create_target(
            name, url, project, project_id, type, spec_file, spec_url, exclude_url, exclude_xpath, format
        )
        if format != "json":
            return f'Successfully created target "{name}"\n\n{output}'

        target = parse_json(output)
        if target is None:
            return output
        return f'Successfully created target "{name}" with ID: {as_dict(target).get("id")}\n\n{to_json(target)}'

    @mcp.tool(name="delete-target", structured_output=False)
    @tool_handler(service, "Error deleting target")
    async def delete_target(name: str, format: OutputFormat = "json"):
        """
        Delete a target. The target's project is resolved from the target listing first.

        Args:
            name: Name of the target to delete
            format: Format of command output (json, text, table)
        """
        project = project_id = None
        try:
            target = await service.get_target(name)
            project = target.get("project_name")
            project_id = target.get("project_id")
        except NotFoundError:
            return error_result(f'Target "{name}" not found. Please check the name and try again.')
        except Exception as e:
            # Deletion is still attempted without the project filter
            logger.error(f"Error checking if target exists: {e}")

        output = await service.delete_target(name, project, project_id, format)
        if format != "json":
            return f'Successfully deleted target "{name}"\n\n{output}'

        result = parse_json(output)
        if result is None:
            return output
        return f'Successfully deleted target "{name}"\n\n{to_json(result)}'
