"""
Traffic tools: record, list, download and upload HAR files for a target.

download-traffic is two-phase. Without download_path it replies with a
prompt for the directory and the parameters to replay; nothing is kept on
the server between the two calls.
"""

import logging
import os
from typing import Optional

from ..service import NightVisionService, resolve_download_directory
from .common import OutputFormat, known_parameters, text_result, tool_handler

logger = logging.getLogger(__name__)


def register_traffic_tools(mcp, service: NightVisionService):
    """Register record-traffic, list-traffic, download-traffic and upload-traffic"""

    @mcp.tool(name="record-traffic", structured_output=False)
    @tool_handler(service, "Failed to record traffic")
    async def record_traffic(name: str, url: str, target: str, project: str, format: OutputFormat = "text"):
        """
        Record traffic for a target through a browser session; the HAR file is uploaded to NightVision.

        Args:
            name: Name for the traffic recording
            url: URL to open in the browser
            target: Name of the target
            project: Name of the project
            format: Format of command output (json, text, table)
        """
        browser_info = (
            "\nThis tool will open a browser window for you to interact with the target application.\n"
            f"1. The browser will open automatically at {url}\n"
            "2. Navigate through the application to generate traffic\n"
            "3. When finished, close the browser window\n"
            "4. The traffic will be automatically recorded as a HAR file and uploaded to NightVision\n"
        )
        result = await service.record_traffic(name, url, target, project, format)
        return f"{browser_info}\nTraffic recording completed:\n\n{result}"

    @mcp.tool(name="list-traffic", structured_output=False)
    @tool_handler(service, "Failed to list traffic files")
    async def list_traffic(target: str, project: str, format: OutputFormat = "json"):
        """
        List the traffic files recorded for a target.

        Args:
            target: Name of the target
            project: Name of the project
            format: Format of command output (json, text, table)
        """
        result = await service.list_traffic(target, project, format)
        return f"Traffic files for target {target} in project {project}:\n\n{result}"

    @mcp.tool(name="download-traffic", structured_output=False)
    @tool_handler(service, "Failed to download traffic file")
    async def download_traffic(
        name: str,
        target: str,
        project: str,
        output_file: Optional[str] = None,
        download_path: Optional[str] = None,
        format: OutputFormat = "text",
    ):
        """
        Download a traffic (HAR) file of a target.

        Without download_path the tool asks for the directory first; call it again
        with the same parameters plus download_path.

        Args:
            name: Name of the traffic file to download
            target: Name of the target
            project: Name of the project
            output_file: File name or absolute path for the HAR file (default: <name>.har)
            download_path: Absolute, writable directory to download into
            format: Format of command output (json, text, table)
        """
        if download_path is None:
            params = known_parameters(name=name, target=target, project=project, output_file=output_file, format=format)
            return text_result(
                f'I\'ll download the traffic file "{name}" for target "{target}" in project "{project}".\n'
                "Please provide the 'download_path' parameter as an absolute directory path "
                "(e.g., /Users/username/Downloads) where I should download the file. This directory must "
                "exist and be writable. Call download-traffic again with these parameters plus "
                f"download_path:\n\n{params}"
            )

        directory = resolve_download_directory(download_path)
        if output_file:
            final_path = output_file if os.path.isabs(output_file) else os.path.join(directory, output_file)
        else:
            final_path = os.path.join(directory, f"{name}.har")

        result = await service.download_traffic(name, target, project, final_path, format)
        return (
            f'The traffic file "{name}" has been downloaded for target "{target}" in project "{project}".\n\n'
            f"The HAR file is saved at the absolute path: {final_path}\n\n"
            f"Download directory used: {directory}\n\n{result}"
        )

    @mcp.tool(name="upload-traffic", structured_output=False)
    @tool_handler(service, "Failed to upload traffic file")
    async def upload_traffic(name: str, har_path: str, target: str, project: str, format: OutputFormat = "text"):
        """
        Upload a HAR file recorded outside NightVision to a target.

        Args:
            name: Name for the traffic file in NightVision
            har_path: Absolute path of the HAR file
            target: Name of the target
            project: Name of the project
            format: Format of command output (json, text, table)
        """
        result = await service.upload_traffic(name, har_path, target, project, format)
        return f'Uploaded traffic file "{name}" for target {target} in project {project}:\n\n{result}'
