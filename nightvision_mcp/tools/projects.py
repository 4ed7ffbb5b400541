"""Project tools."""

from ..errors import NotFoundError
from ..service import NightVisionService
from .common import OutputFormat, error_result, tool_handler


def register_project_tools(mcp, service: NightVisionService):
    """Register list-projects and get-project-details"""

    @mcp.tool(name="list-projects", structured_output=False)
    @tool_handler(service, "Failed to list projects")
    async def list_projects(format: OutputFormat = "json"):
        """
        List the projects in NightVision.

        Args:
            format: Format of command output (json, text, table)
        """
        result = await service.list_projects(format)
        return f"Projects in NightVision:\n\n{result}"

    @mcp.tool(name="get-project-details", structured_output=False)
    @tool_handler(service, "Failed to get project details")
    async def get_project_details(name: str, format: OutputFormat = "json"):
        """
        Get details about a project by name.

        Args:
            name: Name of the project
            format: Format of command output (json, text, table)
        """
        if not name:
            return error_result("Project name is required.")

        try:
            project = await service.get_project_by_name(name)
        except NotFoundError as e:
            return error_result(str(e))
        return f'Project Details for "{name}":\n\n{service.format_project(project, format)}'
