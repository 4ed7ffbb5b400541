"""
API discovery tools: extract an OpenAPI specification from source code.

discover-api-with-path is the two-phase variant. Called without
project_path it asks for the directory and echoes the parameters it already
has, so the caller can replay them together with the missing path.
"""

import logging
import os
from typing import List, Optional

from ..service import SUPPORTED_LANGUAGES, NightVisionService, language_output_path
from .common import OutputFormat, error_result, known_parameters, text_result, tool_handler

logger = logging.getLogger(__name__)

MISSING_LANGUAGES_MESSAGE = (
    "No languages specified. You should analyze the source code to determine the appropriate language(s).\n\n"
    f"Supported languages are: {', '.join(SUPPORTED_LANGUAGES)}.\n\n"
    "Please analyze the file extensions and code patterns in the source paths to identify the language, "
    "then call this tool again with the appropriate 'langs' parameter as an array."
)


def check_languages(langs: Optional[List[str]]) -> Optional[str]:
    """Return an error message for missing or unsupported languages, None when they are fine"""
    if not langs:
        return MISSING_LANGUAGES_MESSAGE
    for lang in langs:
        if lang not in SUPPORTED_LANGUAGES:
            return f"Unsupported language: {lang}. Supported languages are: {', '.join(SUPPORTED_LANGUAGES)}"
    return None


async def run_discovery(
    service: NightVisionService,
    source_paths: List[str],
    langs: List[str],
    output: str,
    project_root: str,
    **options,
) -> str:
    """
    Run swagger extract once per language.

    With several languages each run writes its own file, named after the
    requested output with the language appended (openapi_python.yml).
    """
    if len(langs) == 1:
        return await service.discover_api(source_paths, langs[0], output, project_root, **options)

    sections = []
    for lang in langs:
        lang_output = language_output_path(output, lang)
        logger.info(f"Discovering {lang} endpoints into {lang_output}")
        result = await service.discover_api(source_paths, lang, lang_output, project_root, **options)
        sections.append(f"=== {lang} ===\n{result}")
    return "\n\n".join(sections)


def register_api_tools(mcp, service: NightVisionService):
    """Register discover-api and discover-api-with-path"""

    @mcp.tool(name="discover-api", structured_output=False)
    @tool_handler(service, "Error discovering API endpoints")
    async def discover_api(
        output: str,
        langs: Optional[List[str]] = None,
        source_paths: Optional[List[str]] = None,
        target: Optional[str] = None,
        target_id: Optional[str] = None,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        exclude: Optional[str] = None,
        version: Optional[str] = "0.1",
        no_upload: bool = True,
        dump_code: bool = False,
        verbose: bool = False,
        format: OutputFormat = "text",
    ):
        """
        Discover API endpoints by analyzing source code and generate an OpenAPI specification.

        Before calling, scan the source tree to identify its languages. With several
        languages, one specification file is written per language.

        Args:
            output: Output file for the OpenAPI specification (required)
            langs: Languages of the source code (csharp, go, java, js, python, ruby)
            source_paths: Code directories to analyze (default: the server's working directory)
            target: Target name to upload the specification to
            target_id: Target UUID to upload the specification to
            project: Project name for the extraction
            project_id: Project UUID for the extraction
            exclude: Files or directories to exclude (comma-separated, e.g. 'vendor/*,*.json')
            version: Version for the OpenAPI specification
            no_upload: Skip creating a new target in NightVision
            dump_code: Include code snippets in the generated specification
            verbose: Accepted for compatibility; has no effect
            format: Format of command output (json, text, table)
        """
        if not output:
            return error_result("Output file path is required. Please specify where to save the API specification.")

        problem = check_languages(langs)
        if problem:
            return error_result(problem)

        project_root = os.getcwd()
        paths = source_paths or [project_root]
        return await run_discovery(
            service, paths, langs, output, project_root,
            target=target, target_id=target_id, project=project, project_id=project_id,
            exclude=exclude, version=version, no_upload=no_upload, dump_code=dump_code,
            verbose=verbose, format=format,
        )

    @mcp.tool(name="discover-api-with-path", structured_output=False)
    @tool_handler(service, "Error discovering API endpoints")
    async def discover_api_with_path(
        output: str,
        langs: Optional[List[str]] = None,
        project_path: Optional[str] = None,
        source_paths: Optional[List[str]] = None,
        target: Optional[str] = None,
        project: Optional[str] = None,
        exclude: Optional[str] = None,
        version: Optional[str] = "0.1",
        no_upload: bool = True,
        format: OutputFormat = "text",
    ):
        """
        Discover API endpoints relative to a project directory supplied by the user.

        Without project_path this asks for it and lists the parameters to send back
        together with it. Relative source paths and output resolve against project_path.

        Args:
            output: Output file for the OpenAPI specification (required)
            langs: Languages of the source code (csharp, go, java, js, python, ruby)
            project_path: Absolute path of the project directory
            source_paths: Code directories to analyze (default: project_path)
            target: Target name to upload the specification to
            project: Project name for the extraction
            exclude: Files or directories to exclude (comma-separated)
            version: Version for the OpenAPI specification
            no_upload: Skip creating a new target in NightVision
            format: Format of command output (json, text, table)
        """
        if not project_path or not project_path.strip():
            params = known_parameters(
                output=output, langs=langs, source_paths=source_paths, target=target,
                project=project, exclude=exclude, version=version, no_upload=no_upload, format=format,
            )
            return text_result(
                "I'll discover the API endpoints of your project.\n"
                "Please provide the 'project_path' parameter as an absolute path to the project directory "
                "and call discover-api-with-path again with these parameters:\n\n"
                f"{params}"
            )

        problem = check_languages(langs)
        if problem:
            return error_result(problem)

        project_root = project_path.strip().strip("'\"")
        if not os.path.isabs(project_root) or not os.path.isdir(project_root):
            return error_result(f"Project path must be an existing absolute directory: {project_root}")

        paths = source_paths or [project_root]
        return await run_discovery(
            service, paths, langs, output, project_root,
            target=target, project=project, exclude=exclude, version=version,
            no_upload=no_upload, format=format,
        )
