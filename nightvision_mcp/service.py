"""
================================================================================
NightVision Service - CLI and REST API translation layer
================================================================================

Every NightVision operation the MCP tools expose goes through this module.
Each operation is one method that assembles either:

    - a NightVision CLI command (targets, scan launch, projects, API
      discovery, traffic), or
    - a REST API request (scans, checks, paths, nuclei templates, project
      lookup),

and returns the result as a string in the requested output format.

Keeping the "known subcommand + flags" knowledge behind one method per
operation means a CLI-backed operation can move to the REST API without
touching the tools that call it.

LICENSE: MIT
================================================================================
"""

import json
import logging
import os
import re
import tempfile
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from .config import Settings, load_settings
from .errors import (
    ApiError,
    CredentialCreationError,
    ExternalToolError,
    NightVisionError,
    NotFoundError,
    ValidationError,
)
from .executor import BUFFER_EXCEEDED_MESSAGE, build_command_line, execute_command
from .formatting import (
    CHECKS_FORMATTER,
    PATHS_FORMATTER,
    PROJECTS_FORMATTER,
    SCANS_FORMATTER,
    TEMPLATES_FORMATTER,
    format_key_values,
    nested,
    to_json,
    yes_no,
)

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("csharp", "go", "java", "js", "python", "ruby")
SEVERITIES = ("critical", "high", "medium", "low", "info", "unknown", "unspecified")
CHECK_STATUSES = (0, 1, 2, 3)
DEFAULT_CHECKS_PAGE_SIZE = 100
MIN_TOKEN_LENGTH = 20


def token_preview(token: Optional[str]) -> str:
    """First 8 characters of a token, safe to log or show"""
    return f"{(token or '')[:8]}..."


def build_query_params(params: Optional[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """
    Flatten query parameters into (key, value) pairs.

    None values are dropped so that absent filters are never sent. List values
    become repeated keys (severity=critical&severity=high).

    Args:
        params: Mapping of parameter names to scalars, lists or None

    Returns:
        Ordered list of (key, value) string pairs
    """
    pairs: List[Tuple[str, str]] = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, bool):
                item = "true" if item else "false"
            pairs.append((key, str(item)))
    return pairs


def is_root_directory(path: str) -> bool:
    return os.path.dirname(path) == path


def resolve_output_path(output: str, project_root: str) -> str:
    """
    Pick a writable location for a generated OpenAPI file.

    Relative paths resolve against project_root. An absolute path in the
    filesystem root or in a directory that does not exist, and any path whose
    directory is not writable, is redirected to the temp directory with the
    same file name.

    Args:
        output: Requested output path
        project_root: Directory relative paths are resolved against

    Returns:
        Absolute output path
    """
    temp_dir = tempfile.gettempdir()

    if os.path.isabs(output):
        dirname = os.path.dirname(output)
        basename = os.path.basename(output)
        if is_root_directory(dirname) or not os.path.exists(dirname):
            output_file = os.path.join(temp_dir, basename)
            logger.warning(f"Redirecting output from {output} to {output_file} due to potential permissions issues")
        else:
            output_file = output
    else:
        output_file = os.path.abspath(os.path.join(project_root, output))
        logger.info(f"Converting relative output path '{output}' to absolute path '{output_file}'")

    if not os.access(os.path.dirname(output_file), os.W_OK):
        logger.warning("Output directory is not writable, redirecting to temp directory")
        output_file = os.path.join(temp_dir, os.path.basename(output_file))

    return output_file


def language_output_path(output: str, lang: str) -> str:
    """openapi.yml -> openapi_python.yml, used when several languages are extracted"""
    stem, ext = os.path.splitext(output)
    return f"{stem}_{lang}{ext}"


def resolve_download_directory(download_path: Optional[str]) -> str:
    """
    Vet a caller-supplied download directory.

    Surrounding quotes are stripped. Empty or relative paths fall back to the
    home directory, and a directory that is not writable falls back to the
    temp directory.
    """
    path = (download_path or "").strip().strip("'\"").strip()
    home_dir = os.path.expanduser("~")

    if not path:
        logger.info(f"No download path provided. Using home directory: {home_dir}")
        path = home_dir
    elif not os.path.isabs(path):
        logger.warning(f"Provided path '{path}' is not absolute. Using home directory instead: {home_dir}")
        path = home_dir

    if not (os.path.isdir(path) and os.access(path, os.W_OK)):
        temp_dir = tempfile.gettempdir()
        logger.warning(f"Provided path '{path}' is not writable. Falling back to temp directory: {temp_dir}")
        path = temp_dir

    return path


def _parse_created(value: Any) -> datetime:
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except (TypeError, ValueError):
        return datetime.min


class NightVisionService:
    """
    Facade over the NightVision CLI and REST API.

    Holds the process-wide token used for both CLI flags and API headers.

    Attributes:
        settings: Runtime settings (API URL, CLI binary, buffer size, timeout)
        token: Current bearer token, or None when not authenticated
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self.token: Optional[str] = None
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def api_url(self) -> str:
        return self.settings.api_url

    def set_token(self, token: Optional[str]) -> None:
        self.token = token

    def get_token(self) -> Optional[str]:
        return self.token

    # ========================================================================
    # HTTP CLIENT
    # ========================================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session"""
        if self.session is None or self.session.closed:
            if self.settings.request_timeout:
                timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
                self.session = aiohttp.ClientSession(timeout=timeout)
            else:
                self.session = aiohttp.ClientSession()
        return self.session

    async def close(self):
        """Close the aiohttp session"""
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def api_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
        is_form_data: bool = False,
    ) -> Any:
        """
        Make a request against the NightVision REST API.

        Args:
            endpoint: Path relative to the API base URL (e.g. "scans/")
            method: HTTP method
            params: Query parameters; None values are omitted, lists repeat the key
            data: JSON body, or an aiohttp.FormData when is_form_data is set
            is_form_data: Send data as multipart form instead of JSON

        Returns:
            Parsed JSON response (or raw text when the body is not JSON)

        Raises:
            ApiError: Non-2xx status or transport failure
        """
        url = f"{self.api_url}{endpoint}"
        headers = {}
        if self.token:
            headers["Authorization"] = f"Token {self.token}"

        kwargs: Dict[str, Any] = {"params": build_query_params(params), "headers": headers}
        if data is not None:
            if is_form_data:
                kwargs["data"] = data
            else:
                kwargs["json"] = data

        logger.debug(f"{method} {url} with params: {kwargs['params']}")
        try:
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as response:
                body = await response.text()
                if not 200 <= response.status < 300:
                    raise ApiError(response.status, self._error_detail(body, response.reason))
                if not body.strip():
                    return {}
                try:
                    return json.loads(body)
                except ValueError:
                    return body
        except aiohttp.ClientError as e:
            logger.error(f"Request failed: {str(e)}")
            raise ApiError(None, str(e)) from e

    @staticmethod
    def _error_detail(body: str, reason: Optional[str]) -> str:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("detail"):
            return str(payload["detail"])
        return reason or "Request failed"

    # ========================================================================
    # CLI EXECUTION
    # ========================================================================

    def _mask(self, command: str) -> str:
        if self.token:
            return command.replace(self.token, token_preview(self.token))
        return command

    async def execute_command(self, args: List[str], format: Optional[str] = "text", skip_token: bool = False) -> str:
        """
        Execute a NightVision CLI command.

        Args:
            args: Command verb, positional arguments and flags
            format: Output format passed as -F (text, json, table)
            skip_token: Do not append --token even if a token is held

        Returns:
            Command stdout (plus stderr for swagger extract)

        Raises:
            ExternalToolError: Spawn failure, non-zero exit or output overflow
        """
        command_args = list(args)
        if format:
            command_args += ["-F", format]
        # Always pin the API URL so the CLI never talks to another environment
        command_args += ["--api-url", self.api_url]
        if self.token and not skip_token:
            command_args += ["--token", self.token]

        argv = [self.settings.cli_binary, *command_args]
        logger.info(f"Executing: {self._mask(build_command_line(argv[0], argv[1:]))}")

        result = await execute_command(argv, self.settings.max_output_bytes)
        stdout, stderr = result["stdout"], result["stderr"]

        if not result["success"]:
            message = self._mask(result.get("error", "unknown error"))
            logger.error(f"Failed to execute NightVision command: {message}")
            raise ExternalToolError(f"NightVision command failed: {message}")

        if stderr.strip():
            logger.warning(f"NightVision CLI warning/error: {stderr.strip()}")

        # swagger extract reports its progress and path counts on stderr
        if list(args[:2]) == ["swagger", "extract"] and stderr.strip():
            logger.info("Including stderr in command output for API discovery")
            return stdout + ("\n" if stdout else "") + stderr

        return stdout

    async def is_installed(self) -> bool:
        """Check if the NightVision CLI is installed"""
        try:
            await self.execute_command(["version"])
            return True
        except NightVisionError:
            return False

    # ========================================================================
    # AUTHENTICATION
    # ========================================================================

    async def create_token(self, expiry_date: Optional[str] = None) -> str:
        """
        Create a new authentication token usable by both the CLI and the API.

        Runs the interactive CLI login first; its failure is logged only, since
        the login may have succeeded despite errors in its output.

        Args:
            expiry_date: Optional expiry in YYYY-MM-DD format

        Returns:
            The new token

        Raises:
            CredentialCreationError: The CLI produced no token
        """
        hint = self.settings.login_hint
        logger.info("Attempting to login to NightVision before creating a new token...")
        login = await execute_command(
            [self.settings.cli_binary, "login", "--api-url", self.api_url],
            self.settings.max_output_bytes,
        )
        if login["success"]:
            logger.info("Login completed successfully.")
        else:
            logger.warning(f"Login attempt encountered an error: {login.get('error')}")

        args = ["token", "create"]
        if expiry_date:
            args += ["-d", expiry_date]

        try:
            output = await self.execute_command(args, "text", skip_token=True)
        except ExternalToolError as e:
            raise CredentialCreationError(
                f"{e}\n\nPlease manually run the following command in your terminal to authenticate:\n{hint}"
            ) from e

        lines = [line.strip() for line in output.strip().splitlines() if line.strip()]
        new_token = lines[-1] if lines else ""
        if not new_token:
            raise CredentialCreationError(f"Failed to create new token. Please manually run: {hint}")

        if len(new_token) < MIN_TOKEN_LENGTH:
            logger.warning(f"Created token has an unexpected format: {token_preview(new_token)}")

        logger.info(f"Successfully created a new authentication token: {token_preview(new_token)}")
        return new_token

    async def verify_token(self) -> bool:
        """
        Verify the held token against the current-user endpoint.

        Returns:
            True only if the API returns a user object with an id
        """
        if not self.token:
            return False

        try:
            response = await self.api_request("user/me/")
        except NightVisionError as e:
            logger.warning(f"Token validation failed: {e}")
            return False

        user = response.get("user") if isinstance(response, dict) else None
        return bool(isinstance(user, dict) and user.get("id"))

    # ========================================================================
    # TARGETS (CLI)
    # ========================================================================

    async def list_targets(self, all_projects: bool = False, projects: Optional[List[str]] = None, format: str = "json") -> str:
        """
        List targets.

        Args:
            all_projects: List targets across all projects (-a)
            projects: Project names to filter by
            format: Output format
        """
        args = ["target", "list"]
        if all_projects:
            args.append("-a")
        if projects:
            args += ["-p", ",".join(projects)]
        return await self.execute_command(args, format)

    async def get_target(self, name: str) -> Dict[str, Any]:
        """
        Find a target by exact name across all projects.

        Raises:
            NotFoundError: No target has that name
            ExternalToolError: The target listing could not be parsed
        """
        output = await self.list_targets(all_projects=True, format="json")
        if not output or not output.strip():
            raise ExternalToolError("No target data received. Please try again later.")
        try:
            targets = json.loads(output)
        except ValueError as e:
            raise ExternalToolError(f"Error parsing target data: {e}") from e

        if isinstance(targets, dict):
            targets = targets.get("results", [])
        for target in targets:
            if target.get("name") == name:
                return target
        raise NotFoundError(f"No target found with name: {name}")

    async def create_target(
        self,
        name: str,
        url: str,
        project: str,
        project_id: Optional[str] = None,
        type: Optional[str] = None,
        spec_file: Optional[str] = None,
        spec_url: Optional[str] = None,
        exclude_url: Optional[List[str]] = None,
        exclude_xpath: Optional[List[str]] = None,
        format: str = "json",
    ) -> str:
        """
        Create a new target.

        Args:
            name: Target name
            url: Target URL
            project: Project name (required)
            project_id: Project UUID
            type: API or WEB
            spec_file: Swagger / Postman file for API targets
            spec_url: Swagger / Postman URL for API targets
            exclude_url: URL regex patterns to exclude
            exclude_xpath: XPath expressions to exclude
            format: Output format
        """
        if not project:
            raise ValidationError(
                "Project name is required. Please provide a 'project' parameter with the name of the project."
            )

        args = ["target", "create", name, url, "-p", project]
        if project_id:
            args += ["-P", project_id]
        if type:
            args += ["-t", type]
        if spec_file:
            args += ["-f", spec_file]
        if spec_url:
            args += ["-s", spec_url]
        for pattern in exclude_url or []:
            args += ["--exclude-url", pattern]
        for xpath in exclude_xpath or []:
            args += ["--exclude-xpath", xpath]

        return await self.execute_command(args, format)

    async def delete_target(
        self, name: str, project: Optional[str] = None, project_id: Optional[str] = None, format: str = "json"
    ) -> str:
        args = ["target", "delete", name]
        if project:
            args += ["-p", project]
        if project_id:
            args += ["-P", project_id]
        return await self.execute_command(args, format)

    # ========================================================================
    # SCANS
    # ========================================================================

    async def start_scan(
        self,
        target_name: str,
        auth: Optional[str] = None,
        auth_id: Optional[str] = None,
        no_auth: bool = False,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        format: str = "json",
    ) -> str:
        """
        Launch a scan against a target through the CLI.

        For JSON output the scan id is echoed under "extracted_id" as well.

        Args:
            target_name: Name of the target to scan
            auth: Authentication name for an authenticated scan
            auth_id: Authentication UUID
            no_auth: Do not attach any authentication
            project: Project name
            project_id: Project UUID
            format: Output format
        """
        args = ["scan", target_name]
        if auth:
            args += ["-c", auth]
        if auth_id:
            args += ["-C", auth_id]
        if no_auth:
            args.append("--no-auth")
        if project:
            args += ["-p", project]
        if project_id:
            args += ["-P", project_id]

        result = await self.execute_command(args, format)

        if format == "json":
            try:
                result_obj = json.loads(result)
            except ValueError as e:
                logger.warning(f"Could not parse JSON result to extract scan ID: {e}")
                return result
            if isinstance(result_obj, dict) and result_obj.get("id"):
                logger.info(f"Extracted scan ID: {result_obj['id']}")
                result_obj["extracted_id"] = result_obj["id"]
                return to_json(result_obj)

        return result

    async def list_scans(
        self,
        target: Optional[str] = None,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        limit: Optional[int] = None,
        status: Optional[str] = None,
        format: str = "json",
    ) -> str:
        """
        List scans through the API.

        Args:
            target: Filter by target name
            project: Filter by project name
            project_id: Filter by project UUID
            limit: Maximum number of scans
            status: running, finished, failed or all (all sends no filter)
            format: Output format
        """
        response = await self.list_scans_raw(target, project, project_id, limit, status)
        return SCANS_FORMATTER.render(response, format)

    async def list_scans_raw(
        self,
        target: Optional[str] = None,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        limit: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Any:
        logger.info("Listing scans via API endpoint...")
        params = {
            "target_name": target or None,
            "project_name": project or None,
            "project_id": project_id or None,
            "limit": limit or None,
            "status": status if status and status != "all" else None,
        }
        return await self.api_request("scans/", "GET", params)

    async def get_scan(self, scan_id: str) -> Dict[str, Any]:
        return await self.api_request(f"scans/{scan_id}/", "GET")

    async def get_scan_status(self, scan_id: str, format: str = "json", note: Optional[str] = None) -> str:
        """
        Get scan details.

        Args:
            scan_id: Scan UUID
            format: Output format
            note: Optional note added to the output (latest-scan lookups)
        """
        logger.info(f"Getting scan status for {scan_id} via API endpoint...")
        scan = await self.get_scan(scan_id)

        if format == "json":
            if note and isinstance(scan, dict):
                scan = dict(scan, note=note)
            return to_json(scan)

        details = format_key_values([
            ("ID", scan.get("id")),
            ("Target", nested(scan, "target")),
            ("Status", scan.get("status")),
            ("Created", scan.get("created")),
            ("Started", scan.get("started")),
            ("Completed", scan.get("completed")),
            ("Project", nested(scan, "project")),
            ("Progress", f"{scan.get('progress') or 0}%"),
        ])
        if note:
            return f"Note: {note}\n\n{details}"
        return details

    async def get_latest_scan_for_target(self, target_name: str, project: Optional[str] = None) -> Dict[str, Any]:
        """
        Find the most recently created scan of a target.

        Raises:
            NotFoundError: The target has no scans
        """
        logger.info(f"Looking up latest scan for target: {target_name}")
        response = await self.list_scans_raw(target=target_name, project=project, limit=10)
        results = response.get("results") if isinstance(response, dict) else None
        if not results:
            raise NotFoundError(
                f"No scans found for target '{target_name}'. "
                "Please check that you have run a scan for this target recently."
            )
        return max(results, key=lambda scan: _parse_created(scan.get("created")))

    async def get_scan_checks(
        self,
        scan_id: str,
        severity: List[str],
        status: List[int],
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        name: Optional[str] = None,
        check_kind: Optional[str] = None,
        format: str = "json",
    ) -> str:
        """
        Get vulnerability checks for a scan.

        Args:
            scan_id: Scan UUID
            severity: Severity levels, sent as repeated severity= parameters
            status: Check status codes (0-3), sent as repeated status= parameters
            page: Page number
            page_size: Items per page (default 100)
            name: Filter by check name
            check_kind: Filter by check kind
            format: Output format
        """
        if not severity:
            raise ValidationError("Severity parameter is required and must be an array of severity values.")
        if not status:
            raise ValidationError("Status parameter is required and must be an array of status codes (0, 1, 2, 3).")

        logger.info(f"Getting scan checks for {scan_id} via API endpoint...")
        params = {
            "page": page or None,
            "page_size": page_size or DEFAULT_CHECKS_PAGE_SIZE,
            "name": name or None,
            "check_kind": check_kind or None,
            "severity": list(severity),
            "status": list(status),
        }
        response = await self.api_request(f"scans/{scan_id}/checks/", "GET", params)
        return CHECKS_FORMATTER.render(response, format)

    async def get_scan_paths(
        self,
        scan_id: str,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        filter: Optional[str] = None,
        format: str = "json",
    ) -> str:
        """Get the paths checked during a scan; page_size is left to the server unless given"""
        if not scan_id:
            raise ValidationError(
                "Scan ID is required. Please provide a 'scan_id' parameter with the UUID of the scan."
            )

        logger.info(f"Getting scan paths for {scan_id} via API endpoint...")
        params = {
            "page": page or None,
            "page_size": page_size or None,
            "filter": filter or None,
        }
        response = await self.api_request(f"scans/{scan_id}/paths/", "GET", params)
        return PATHS_FORMATTER.render(response, format)

    # ========================================================================
    # NUCLEI TEMPLATES (API)
    # ========================================================================

    async def list_nuclei_templates(
        self,
        project_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        format: str = "json",
    ) -> str:
        logger.info("Listing nuclei templates...")
        params = {
            "project": project_id or None,
            "search": search or None,
            "limit": limit or None,
            "offset": offset or None,
        }
        response = await self.api_request("nuclei-templates/", "GET", params)

        if format == "json":
            return to_json(response)
        if not isinstance(response, dict) or not response.get("results"):
            return "No nuclei templates found."

        total = f"\n\nTotal Templates: {response.get('count') or 0}"
        if format == "table":
            return TEMPLATES_FORMATTER.as_table(response).rstrip("\n") + total
        return TEMPLATES_FORMATTER.as_text(response).rstrip("\n") + total

    async def create_nuclei_template(
        self, name: str, project_id: str, description: Optional[str] = None, format: str = "json"
    ) -> str:
        """
        Create an empty nuclei template; its YAML is uploaded separately.

        Args:
            name: Template name (required)
            project_id: Project UUID the template belongs to (required)
            description: Optional description
            format: Output format
        """
        if not name or not name.strip():
            raise ValidationError("Template name is required")
        if not project_id or not project_id.strip():
            raise ValidationError("Project ID is required")

        logger.info(f"Creating a new nuclei template with name {name} using project UUID {project_id}...")
        data = {"name": name, "project": project_id}
        if description and description.strip():
            data["description"] = description

        try:
            response = await self.api_request("nuclei-templates/", "POST", None, data)
        except ApiError as e:
            if e.status in (401, 403):
                raise NightVisionError(
                    "Authentication or permission error. Please ensure you're authenticated "
                    "and have permission to create templates."
                ) from e
            if e.status == 400:
                match = re.search(r"\(400\): (.+)", str(e))
                detail = match.group(1) if match else str(e)
                raise NightVisionError(
                    f"Bad request when creating template: {detail}. Make sure all required fields are valid."
                ) from e
            raise

        logger.info(f"Successfully created nuclei template with ID: {response.get('id')}")
        if format == "json":
            return to_json(response)

        lines = [
            "Template successfully created:",
            f"ID: {response.get('id')}",
            f"Name: {response.get('name')}",
        ]
        if description:
            lines.append(f"Description: {description}")
        lines += [f"Project UUID: {project_id}", f"Created: {response.get('created') or 'N/A'}"]
        return "\n".join(lines)

    async def upload_nuclei_template(self, template_id: str, file_path: str, format: str = "json") -> str:
        """
        Upload a nuclei template YAML file to an existing template.

        The file must exist and contain both an 'id:' and an 'info:' section.

        Args:
            template_id: Template UUID to upload to
            file_path: Absolute path of the YAML file
            format: Output format
        """
        logger.info(f"Uploading nuclei template from {file_path} to template ID {template_id}...")

        if not os.path.isfile(file_path):
            raise ValidationError(f"Nuclei template file not found at: {file_path}")

        invalid = (
            "The file does not appear to be a valid nuclei template. "
            "It should contain 'id:' and 'info:' sections."
        )
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = f.read()
        except UnicodeDecodeError as e:
            raise ValidationError(f"{invalid} The file is not valid UTF-8 text.") from e

        if "id:" not in content or "info:" not in content:
            raise ValidationError(invalid)

        form = aiohttp.FormData()
        form.add_field(
            "file",
            content.encode("utf-8"),
            filename=os.path.basename(file_path),
            content_type="application/x-yaml",
        )

        try:
            response = await self.api_request(f"nuclei-templates/{template_id}/upload/", "POST", None, form, True)
        except ApiError as e:
            if e.status == 404:
                raise NotFoundError(
                    f"Template ID {template_id} not found. Please check that the ID exists and you have access to it."
                ) from e
            if e.status in (401, 403):
                raise NightVisionError(
                    "Authentication or permission error. Please ensure you're authenticated "
                    "and have permission to upload templates."
                ) from e
            if e.status == 400:
                raise NightVisionError(
                    "Bad request when uploading template. The template may have invalid format or syntax."
                ) from e
            raise NightVisionError(f"Failed to upload nuclei template: {e}") from e

        if format == "json":
            return to_json(response)
        return format_key_values([
            ("Template successfully uploaded to ID", template_id),
            ("Name", response.get("name")),
            ("Type", response.get("type")),
            ("Updated", response.get("updated")),
        ])

    async def assign_nuclei_template(self, target_id: str, template_id: str, format: str = "json") -> str:
        """Assign a nuclei template to a target"""
        if not target_id or not target_id.strip():
            raise ValidationError("Target ID is required")
        if not template_id or not template_id.strip():
            raise ValidationError("Template ID is required")

        logger.info(f"Assigning nuclei template {template_id} to target {target_id}...")
        data = {"nuclei_templates": [template_id]}

        try:
            response = await self.api_request(f"targets/{target_id}/nuclei-templates/assign/", "POST", None, data)
        except ApiError as e:
            if e.status == 404:
                raise NotFoundError(
                    "Target ID or Template ID not found. Please check that both exist and you have access to them."
                ) from e
            if e.status in (401, 403):
                raise NightVisionError(
                    "Authentication or permission error. Please ensure you're authenticated "
                    "and have permission to assign templates."
                ) from e
            if e.status == 400:
                raise NightVisionError(
                    "Bad request when assigning template. The template may not be compatible with this target."
                ) from e
            raise NightVisionError(f"Failed to assign nuclei template to target: {e}") from e

        logger.info("Successfully assigned nuclei template to target")
        if format == "table":
            return f"Template {template_id} successfully assigned to target {target_id}"
        if format == "text":
            return f"Successfully assigned nuclei template {template_id} to target {target_id}"
        return to_json(response)

    # ========================================================================
    # PROJECTS
    # ========================================================================

    async def list_projects(self, format: str = "json") -> str:
        """List projects via the CLI's JSON output and re-render it"""
        output = await self.execute_command(["project", "list"], "json")
        try:
            response = json.loads(output)
        except ValueError as e:
            raise ExternalToolError(f"Unexpected output from project list: {e}") from e

        if format == "json":
            return to_json(response)
        if not isinstance(response, dict) or not response.get("results"):
            return "No projects found."

        total = f"\n\nTotal Projects: {response.get('count') or 0}"
        if format == "table":
            return PROJECTS_FORMATTER.as_table(response) + total
        lines = [PROJECTS_FORMATTER.text_block(i, project)[0] for i, project in enumerate(response["results"], 1)]
        return "\n".join(lines) + total

    async def get_project_by_name(self, project_name: str) -> Dict[str, Any]:
        """
        Look up a project by name.

        Raises:
            NotFoundError: HTTP 404 or an empty result set
        """
        logger.info(f"Getting details for project: {project_name}")
        try:
            response = await self.api_request(f"projects/name/{project_name}/", "GET")
        except ApiError as e:
            if e.status == 404:
                raise NotFoundError(
                    f"Project '{project_name}' not found. Please check the project name and try again."
                ) from e
            raise

        results = response.get("results") if isinstance(response, dict) else None
        if not results:
            raise NotFoundError(f"Project '{project_name}' not found or has no data.")
        return results[0]

    @staticmethod
    def format_project(project: Dict[str, Any], format: str = "json") -> str:
        if format == "json":
            return to_json(project)
        return format_key_values([
            ("ID", project.get("id")),
            ("Name", project.get("name")),
            ("Targets", project.get("targets_count") or 0),
            ("Created", project.get("created_at")),
            ("Last Updated", project.get("last_updated_at")),
            ("Is Default", yes_no(project.get("is_default"))),
        ])

    # ========================================================================
    # API DISCOVERY (CLI: swagger extract)
    # ========================================================================

    async def discover_api(
        self,
        source_paths: List[str],
        lang: str,
        output: str,
        project_root: str,
        target: Optional[str] = None,
        target_id: Optional[str] = None,
        project: Optional[str] = None,
        project_id: Optional[str] = None,
        exclude: Optional[str] = None,
        version: Optional[str] = None,
        no_upload: bool = True,
        dump_code: bool = False,
        verbose: bool = False,
        format: str = "text",
    ) -> str:
        """
        Extract an OpenAPI specification from source code.

        Args:
            source_paths: Code directories; relative ones resolve against project_root
            lang: One of csharp, go, java, js, python, ruby
            output: Where to write the OpenAPI file (redirected to temp if unwritable)
            project_root: Directory used to resolve relative paths
            target: Target name to upload the spec to
            target_id: Target UUID to upload the spec to
            project: Project name
            project_id: Project UUID
            exclude: Comma-separated exclude patterns
            version: OpenAPI document version
            no_upload: Skip uploading to NightVision (default True)
            dump_code: Include code snippets in the spec
            verbose: Accepted for compatibility; verbose CLI output is never enabled
            format: Output format

        Returns:
            CLI output followed by the OpenAPI file location
        """
        try:
            if not lang:
                raise ValidationError("Language is required for API discovery")
            if lang not in SUPPORTED_LANGUAGES:
                raise ValidationError(
                    f"Unsupported language: {lang}. Supported languages are: {', '.join(SUPPORTED_LANGUAGES)}"
                )

            logger.info(f"Discovering API endpoints using swagger extract (project path: {project_root})")
            absolute_paths = []
            for source_path in source_paths:
                if os.path.isabs(source_path):
                    absolute_paths.append(source_path)
                else:
                    absolute_path = os.path.abspath(os.path.join(project_root, source_path))
                    logger.info(f"Converting relative path '{source_path}' to absolute path '{absolute_path}'")
                    absolute_paths.append(absolute_path)

            args = ["swagger", "extract", *absolute_paths, "--lang", lang]
            if target:
                args += ["--target", target]
            if target_id:
                args += ["--target-id", target_id]
            if project:
                args += ["--project", project]
            if project_id:
                args += ["--project-id", project_id]

            output_file = resolve_output_path(output, project_root)
            args += ["--output", output_file]

            if exclude:
                args += ["--exclude", exclude]
            if version:
                args += ["--version", version]
            if no_upload is not False:
                args.append("--no-upload")
            if dump_code:
                args.append("--dump-code")
            if verbose:
                logger.info("Ignoring verbose flag to keep swagger extract output bounded")

            try:
                result = await self.execute_command(args, format)
            except ExternalToolError as e:
                message = str(e)
                if "0 paths discovered" in message:
                    raise NotFoundError(
                        f"No API endpoints found in [{', '.join(source_paths)}] using {lang}. "
                        "Try more specific directories."
                    ) from e
                lowered = message.lower()
                if any(s in lowered for s in ("read-only file system", "permission denied", "no such file or directory")):
                    raise NightVisionError(
                        f"File system error: Unable to write to {output_file}.\n\n"
                        "This may be due to permissions issues. Try specifying a different output "
                        "location where you have write permissions."
                    ) from e
                if BUFFER_EXCEEDED_MESSAGE in message:
                    raise NightVisionError(
                        "Output too large. Try analyzing smaller directories or using the 'exclude' "
                        "parameter to filter files."
                    ) from e
                raise

            logger.debug(f"Command result: {result[:500]}{'...' if len(result) > 500 else ''}")
            logger.info(f"Output file location: {output_file}")
            return f"{result}\nOpenAPI Specification File: {output_file}"

        except NightVisionError as e:
            logger.error(f"Error discovering API endpoints: {e}")
            error_class = NightVisionError if isinstance(e, ApiError) else type(e)
            raise error_class(f"Failed to discover API endpoints: {e}") from e

    # ========================================================================
    # TRAFFIC (CLI)
    # ========================================================================

    async def record_traffic(self, name: str, url: str, target: str, project: str, format: str = "text") -> str:
        """Open a browser at url and record the session as a HAR file"""
        args = ["traffic", "record", name, url, "-t", target, "-p", project]
        return await self.execute_command(args, format)

    async def list_traffic(self, target: str, project: str, format: str = "json") -> str:
        args = ["traffic", "list", "-t", target, "-p", project]
        return await self.execute_command(args, format)

    async def download_traffic(self, name: str, target: str, project: str, output_file: str, format: str = "text") -> str:
        """Download a recorded HAR file to output_file"""
        args = ["traffic", "download", name, "-t", target, "-p", project, "-o", output_file]
        return await self.execute_command(args, format)

    async def upload_traffic(self, name: str, har_path: str, target: str, project: str, format: str = "text") -> str:
        """
        Upload a HAR file recorded elsewhere.

        Raises:
            ValidationError: The file is missing or is not a HAR document
        """
        if not os.path.isfile(har_path):
            raise ValidationError(f"HAR file not found at: {har_path}")
        try:
            with open(har_path, "r", encoding="utf-8") as f:
                har = json.load(f)
        except ValueError as e:
            raise ValidationError(f"The file is not valid JSON: {e}") from e
        if not isinstance(har, dict) or not isinstance(har.get("log"), dict):
            raise ValidationError("The file does not appear to be a HAR file. It should contain a top-level 'log' object.")

        args = ["traffic", "upload", har_path, "-n", name, "-t", target, "-p", project]
        return await self.execute_command(args, format)
