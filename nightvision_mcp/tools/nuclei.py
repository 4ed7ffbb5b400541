"""Nuclei template tools: list, create, upload and assign custom templates."""

import logging
import os
from typing import Optional

from ..errors import NotFoundError, ValidationError
from ..service import NightVisionService
from .common import OutputFormat, error_result, tool_handler

logger = logging.getLogger(__name__)


def register_nuclei_tools(mcp, service: NightVisionService):
    """Register list-, create-, upload- and assign-nuclei-template tools"""

    @mcp.tool(name="list-nuclei-templates", structured_output=False)
    @tool_handler(service, "Failed to list nuclei templates")
    async def list_nuclei_templates(
        project_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        format: OutputFormat = "json",
    ):
        """
        List nuclei templates.

        Args:
            project_id: UUID of the project to filter templates by
            search: Search string to narrow down templates by name
            limit: Maximum number of templates to return
            offset: Number of templates to skip
            format: Format of command output (json, text, table)
        """
        result = await service.list_nuclei_templates(project_id, search, limit, offset, format)
        return f"Nuclei Templates:\n\n{result}"

    @mcp.tool(name="create-nuclei-template", structured_output=False)
    @tool_handler(service, "Failed to create nuclei template")
    async def create_nuclei_template(
        name: str,
        project_id: str,
        description: Optional[str] = None,
        format: OutputFormat = "json",
    ):
        """
        Create a new, empty nuclei template. Upload its YAML with upload-nuclei-template.

        Args:
            name: Name of the nuclei template (required)
            project_id: UUID of the project to associate the template with (required)
            description: Description of the nuclei template
            format: Format of command output (json, text, table)
        """
        if not name or not name.strip():
            return error_result("Template name is required. Please provide a name for your nuclei template.")
        if not project_id or not project_id.strip():
            return error_result(
                "Project ID is required. Please specify the project UUID to associate with this template."
            )

        result = await service.create_nuclei_template(name, project_id, description, format)
        return (
            f'Successfully created nuclei template "{name}" with project ID "{project_id}".\n\n{result}\n\n'
            "You can now use the template ID shown above with the upload-nuclei-template tool "
            "to upload your YAML template file."
        )

    @mcp.tool(name="upload-nuclei-template", structured_output=False)
    @tool_handler(service, "Failed to upload nuclei template")
    async def upload_nuclei_template(
        template_id: str,
        file_path: str,
        project_path: Optional[str] = None,
        format: OutputFormat = "json",
    ):
        """
        Upload a nuclei template YAML file to an existing template.

        Args:
            template_id: ID of the nuclei template to upload to
            file_path: Path to the YAML file (absolute, or relative to project_path)
            project_path: Absolute path of the project directory, used for relative file paths
            format: Format of command output (json, text, table)
        """
        resolved_path = file_path
        if not os.path.isabs(file_path):
            base = project_path or os.getcwd()
            resolved_path = os.path.abspath(os.path.join(base, file_path))
            logger.info(f"Resolved relative path '{file_path}' to absolute path '{resolved_path}'")

        if not os.path.exists(resolved_path):
            return error_result(
                f"File not found: {resolved_path}\n\nPlease check that the file path is correct and the file "
                "exists. If using a relative path, consider providing the 'project_path' parameter for "
                "accurate resolution."
            )

        try:
            result = await service.upload_nuclei_template(template_id, resolved_path, format)
        except NotFoundError as e:
            return error_result(
                f"{e}\n\nMake sure you've created the nuclei template first before trying to upload a file "
                "to it. You can list available templates with the list-nuclei-templates tool."
            )
        except ValidationError as e:
            return error_result(
                f"{e}\n\nNuclei templates are YAML files with a specific structure. They should include "
                "'id:' and 'info:' sections. Please check the template format."
            )
        return f"Successfully uploaded nuclei template from {file_path} to template ID {template_id}.\n\n{result}"

    @mcp.tool(name="assign-nuclei-template", structured_output=False)
    @tool_handler(service, "Failed to assign nuclei template")
    async def assign_nuclei_template(target_id: str, template_id: str, format: OutputFormat = "json"):
        """
        Assign a nuclei template to a target so it runs in the target's scans.

        Args:
            target_id: ID of the target
            template_id: ID of the nuclei template to assign
            format: Format of command output (json, text, table)
        """
        return await service.assign_nuclei_template(target_id, template_id, format)
