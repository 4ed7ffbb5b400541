"""Tests for the NightVision service: CLI command assembly and API requests."""

import json
import os
import tempfile
from unittest.mock import AsyncMock, patch

import pytest

from nightvision_mcp.errors import (
    ApiError,
    CredentialCreationError,
    ExternalToolError,
    NightVisionError,
    NotFoundError,
    ValidationError,
)
from nightvision_mcp.service import build_query_params, language_output_path, resolve_download_directory

API_URL = "https://api.example.test/api/v1/"
TOKEN = "tok-1234567890abcdefghij"


def argvs(mock):
    return [call.args[0] for call in mock.await_args_list]


def commands(mock):
    return [" ".join(argv) for argv in argvs(mock)]


class FakeResponse:
    def __init__(self, status=200, body="", reason="OK"):
        self.status = status
        self.reason = reason
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.response

    async def close(self):
        self.closed = True


# ============================================================================
# CLI COMMANDS
# ============================================================================


@pytest.mark.asyncio
async def test_create_target_command_sequence(authed_service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result('{"id": "t-1"}'))) as run:
        await authed_service.create_target("t1", "http://x", "p1")

    command = commands(run)[0]
    assert "nightvision target create t1 http://x -p p1" in command
    assert command.endswith(f"-F json --api-url {API_URL} --token {TOKEN}")


@pytest.mark.asyncio
async def test_create_target_optional_flags(authed_service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("{}"))) as run:
        await authed_service.create_target(
            "my app", "http://x", "p1", project_id="pid", type="API",
            spec_url="http://x/openapi.json", exclude_url=["/logout", "/admin"],
        )

    argv = argvs(run)[0]
    assert argv[1:4] == ["target", "create", "my app"]
    command = " ".join(argv)
    assert "http://x -p p1 -P pid -t API -s http://x/openapi.json" in command
    assert "--exclude-url /logout --exclude-url /admin" in command


@pytest.mark.asyncio
async def test_arguments_reach_the_cli_unchanged(authed_service, tmp_path):
    fake_cli = tmp_path / "nightvision"
    fake_cli.write_text("#!/bin/sh\nfor arg in \"$@\"; do printf '%s\\n' \"$arg\"; done\n")
    fake_cli.chmod(0o755)
    authed_service.settings.cli_binary = str(fake_cli)

    output = await authed_service.create_target(
        "my $HOME app", "http://x?a=b&c=d", "p1", exclude_url=["^/(admin|logout)$"], format="text"
    )

    assert output.splitlines()[:9] == [
        "target", "create", "my $HOME app", "http://x?a=b&c=d", "-p", "p1",
        "--exclude-url", "^/(admin|logout)$", "-F",
    ]


@pytest.mark.asyncio
async def test_create_target_requires_project(authed_service):
    with pytest.raises(ValidationError):
        await authed_service.create_target("t1", "http://x", "")


@pytest.mark.asyncio
async def test_no_token_flag_without_token(service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("[]"))) as run:
        await service.list_targets(all_projects=True, projects=["a", "b"])

    command = commands(run)[0]
    assert command == f"nightvision target list -a -p a,b -F json --api-url {API_URL}"


@pytest.mark.asyncio
async def test_failed_command_raises_external_tool_error(authed_service, cli_result):
    failure = cli_result(stderr="bad", return_code=1, error="Command failed with exit code 1: bad")
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=failure)):
        with pytest.raises(ExternalToolError) as excinfo:
            await authed_service.delete_target("t1")

    assert str(excinfo.value).startswith("NightVision command failed:")
    assert TOKEN not in str(excinfo.value)


@pytest.mark.asyncio
async def test_swagger_extract_includes_stderr(authed_service, cli_result):
    output = cli_result("done", stderr="12 paths discovered")
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=output)):
        result = await authed_service.execute_command(["swagger", "extract", "/src"])

    assert result == "done\n12 paths discovered"


@pytest.mark.asyncio
async def test_other_commands_drop_stderr(authed_service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("ok", stderr="warn"))):
        assert await authed_service.execute_command(["target", "list"]) == "ok"


@pytest.mark.asyncio
async def test_is_installed(service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("v1.0"))):
        assert await service.is_installed() is True
    missing = cli_result(return_code=127, error="Command failed with exit code 127: not found")
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=missing)):
        assert await service.is_installed() is False


@pytest.mark.asyncio
async def test_start_scan_adds_extracted_id(authed_service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result('{"id": "scan-1"}'))) as run:
        result = await authed_service.start_scan("t1", auth="login", no_auth=False, project="p1")

    assert json.loads(result) == {"id": "scan-1", "extracted_id": "scan-1"}
    assert "nightvision scan t1 -c login -p p1" in commands(run)[0]


@pytest.mark.asyncio
async def test_start_scan_returns_raw_output_when_not_json(authed_service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("Scan started"))):
        assert await authed_service.start_scan("t1", project="p1") == "Scan started"


@pytest.mark.asyncio
async def test_create_token_skips_token_flag_and_takes_last_line(authed_service, cli_result):
    responses = [cli_result("logged in"), cli_result("Token created:\nabcdefghijklmnopqrstuvwxyz\n")]
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(side_effect=responses)) as run:
        token = await authed_service.create_token("2030-01-01")

    login, create = commands(run)
    assert token == "abcdefghijklmnopqrstuvwxyz"
    assert login == f"nightvision login --api-url {API_URL}"
    assert create == f"nightvision token create -d 2030-01-01 -F text --api-url {API_URL}"


@pytest.mark.asyncio
async def test_create_token_with_no_output(service, cli_result):
    responses = [cli_result(return_code=1, error="login failed"), cli_result("   \n")]
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(side_effect=responses)):
        with pytest.raises(CredentialCreationError) as excinfo:
            await service.create_token()

    assert "nightvision login --api-url" in str(excinfo.value)


@pytest.mark.asyncio
async def test_traffic_commands(authed_service, cli_result):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("ok"))) as run:
        await authed_service.record_traffic("rec", "http://x", "t1", "p1")
        await authed_service.list_traffic("t1", "p1")
        await authed_service.download_traffic("rec", "t1", "p1", "/tmp/rec.har")

    record, listing, download = commands(run)
    assert "nightvision traffic record rec http://x -t t1 -p p1 -F text" in record
    assert "nightvision traffic list -t t1 -p p1 -F json" in listing
    assert "nightvision traffic download rec -t t1 -p p1 -o /tmp/rec.har -F text" in download


@pytest.mark.asyncio
async def test_upload_traffic_validates_har(authed_service, cli_result, tmp_path):
    not_har = tmp_path / "x.har"
    not_har.write_text('{"entries": []}')
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock()) as run:
        with pytest.raises(ValidationError):
            await authed_service.upload_traffic("rec", str(not_har), "t1", "p1")
        with pytest.raises(ValidationError):
            await authed_service.upload_traffic("rec", str(tmp_path / "missing.har"), "t1", "p1")
    run.assert_not_awaited()

    har = tmp_path / "ok.har"
    har.write_text('{"log": {"entries": []}}')
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("uploaded"))) as run:
        assert await authed_service.upload_traffic("rec", str(har), "t1", "p1") == "uploaded"
    assert f"traffic upload {har} -n rec -t t1 -p p1" in commands(run)[0]


@pytest.mark.asyncio
async def test_list_projects_table(authed_service, cli_result):
    payload = {"count": 1, "results": [{"id": "p-1", "name": "demo", "targets_count": 2, "created_at": "2024"}]}
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result(json.dumps(payload)))):
        table = await authed_service.list_projects("table")

    assert table.split("\n")[0].startswith("ID  | Name | Targets")
    assert table.endswith("Total Projects: 1")


# ============================================================================
# API DISCOVERY
# ============================================================================


@pytest.mark.asyncio
async def test_discover_api_redirects_root_output_to_temp(authed_service, cli_result, tmp_path):
    expected = os.path.join(tempfile.gettempdir(), "spec.yml")
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("3 paths discovered"))) as run:
        result = await authed_service.discover_api(["src"], "python", "/spec.yml", str(tmp_path))

    command = commands(run)[0]
    assert f"swagger extract {os.path.join(str(tmp_path), 'src')} --lang python" in command
    assert f"--output {expected} --no-upload" in command
    assert result.endswith(f"\nOpenAPI Specification File: {expected}")


@pytest.mark.asyncio
async def test_discover_api_relative_output_resolves_against_root(authed_service, cli_result, tmp_path):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=cli_result("ok"))) as run:
        await authed_service.discover_api(
            [str(tmp_path)], "go", "openapi.yml", str(tmp_path), exclude="vendor/*", version="0.2", no_upload=False
        )

    command = commands(run)[0]
    assert f"--output {os.path.join(str(tmp_path), 'openapi.yml')} --exclude vendor/* --version 0.2" in command
    assert "--no-upload" not in command


@pytest.mark.asyncio
async def test_discover_api_no_paths_found(authed_service, cli_result, tmp_path):
    failure = cli_result(return_code=1, error="Command failed with exit code 1: 0 paths discovered")
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=failure)):
        with pytest.raises(NotFoundError) as excinfo:
            await authed_service.discover_api(["src"], "js", "out.yml", str(tmp_path))

    message = str(excinfo.value)
    assert message.startswith("Failed to discover API endpoints: No API endpoints found in [src] using js.")


@pytest.mark.asyncio
async def test_discover_api_output_too_large(authed_service, cli_result, tmp_path):
    failure = cli_result(error="stdout maxBuffer length exceeded", buffer_exceeded=True)
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock(return_value=failure)):
        with pytest.raises(NightVisionError) as excinfo:
            await authed_service.discover_api(["src"], "java", "out.yml", str(tmp_path))

    assert "Output too large" in str(excinfo.value)


@pytest.mark.asyncio
async def test_discover_api_rejects_unknown_language(authed_service, tmp_path):
    with patch("nightvision_mcp.service.execute_command", new=AsyncMock()) as run:
        with pytest.raises(ValidationError):
            await authed_service.discover_api(["src"], "cobol", "out.yml", str(tmp_path))
    run.assert_not_awaited()


def test_language_output_path():
    assert language_output_path("/tmp/openapi.yml", "python") == "/tmp/openapi_python.yml"
    assert language_output_path("spec", "go") == "spec_go"


def test_download_directory_vetting(tmp_path):
    home = os.path.expanduser("~")
    assert resolve_download_directory(f'"{tmp_path}"') == str(tmp_path)
    assert resolve_download_directory("relative/dir") in (home, tempfile.gettempdir())
    assert resolve_download_directory(str(tmp_path / "missing")) == tempfile.gettempdir()


# ============================================================================
# REST API
# ============================================================================


def test_query_params_drop_none_and_repeat_lists():
    pairs = build_query_params({"severity": ["critical", "high"], "status": [0], "page": None, "page_size": 100})
    assert pairs == [("severity", "critical"), ("severity", "high"), ("status", "0"), ("page_size", "100")]


@pytest.mark.asyncio
async def test_api_request_sends_token_and_parses_json(authed_service):
    session = FakeSession(FakeResponse(200, '{"ok": true}'))
    authed_service._get_session = AsyncMock(return_value=session)

    result = await authed_service.api_request("scans/", params={"limit": 5, "status": None})

    method, url, kwargs = session.requests[0]
    assert result == {"ok": True}
    assert (method, url) == ("GET", f"{API_URL}scans/")
    assert kwargs["headers"] == {"Authorization": f"Token {TOKEN}"}
    assert kwargs["params"] == [("limit", "5")]
    assert "json" not in kwargs


@pytest.mark.asyncio
async def test_api_request_json_body(authed_service):
    session = FakeSession(FakeResponse(201, '{"id": "n-1"}'))
    authed_service._get_session = AsyncMock(return_value=session)

    await authed_service.api_request("nuclei-templates/", "POST", None, {"name": "x"})

    assert session.requests[0][2]["json"] == {"name": "x"}


@pytest.mark.asyncio
async def test_api_request_error_carries_status_and_detail(authed_service):
    session = FakeSession(FakeResponse(403, '{"detail": "Forbidden here"}', reason="Forbidden"))
    authed_service._get_session = AsyncMock(return_value=session)

    with pytest.raises(ApiError) as excinfo:
        await authed_service.api_request("scans/")

    assert excinfo.value.status == 403
    assert str(excinfo.value) == "API request failed (403): Forbidden here"


@pytest.mark.asyncio
async def test_api_request_error_falls_back_to_reason(authed_service):
    session = FakeSession(FakeResponse(502, "<html>bad gateway</html>", reason="Bad Gateway"))
    authed_service._get_session = AsyncMock(return_value=session)

    with pytest.raises(ApiError) as excinfo:
        await authed_service.api_request("scans/")

    assert str(excinfo.value) == "API request failed (502): Bad Gateway"


@pytest.mark.asyncio
async def test_verify_token_without_token(service):
    service.api_request = AsyncMock()
    assert await service.verify_token() is False
    service.api_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_verify_token(authed_service):
    authed_service.api_request = AsyncMock(return_value={"user": {"id": 7}})
    assert await authed_service.verify_token() is True
    authed_service.api_request.assert_awaited_once_with("user/me/")

    authed_service.api_request = AsyncMock(return_value={"user": {}})
    assert await authed_service.verify_token() is False

    authed_service.api_request = AsyncMock(side_effect=ApiError(401, "Invalid token"))
    assert await authed_service.verify_token() is False


@pytest.mark.asyncio
async def test_get_scan_checks_params(authed_service):
    authed_service.api_request = AsyncMock(return_value={"count": 0, "results": []})

    await authed_service.get_scan_checks("scan-1", ["critical"], [0])

    endpoint, method, params = authed_service.api_request.await_args.args
    assert endpoint == "scans/scan-1/checks/"
    pairs = build_query_params(params)
    assert ("severity", "critical") in pairs
    assert ("status", "0") in pairs
    assert ("page_size", "100") in pairs


@pytest.mark.asyncio
async def test_list_scans_omits_status_all(authed_service):
    authed_service.api_request = AsyncMock(return_value={"count": 0, "results": []})

    await authed_service.list_scans(target="t1", status="all")

    params = authed_service.api_request.await_args.args[2]
    assert build_query_params(params) == [("target_name", "t1")]


@pytest.mark.asyncio
async def test_get_scan_status_table(authed_service):
    authed_service.api_request = AsyncMock(return_value={
        "id": "s1", "status": "running", "target": {"name": "t1"}, "progress": 40,
    })

    table = await authed_service.get_scan_status("s1", "table")

    assert "ID: s1" in table
    assert "Target: t1" in table
    assert "Completed: N/A" in table
    assert "Progress: 40%" in table


@pytest.mark.asyncio
async def test_latest_scan_is_newest_by_created(authed_service):
    authed_service.api_request = AsyncMock(return_value={"results": [
        {"id": "old", "created": "2024-01-01T00:00:00Z"},
        {"id": "new", "created": "2024-03-01T00:00:00Z"},
        {"id": "mid", "created": "2024-02-01T00:00:00Z"},
    ]})

    latest = await authed_service.get_latest_scan_for_target("t1")

    assert latest["id"] == "new"


@pytest.mark.asyncio
async def test_latest_scan_none_found(authed_service):
    authed_service.api_request = AsyncMock(return_value={"count": 0, "results": []})
    with pytest.raises(NotFoundError):
        await authed_service.get_latest_scan_for_target("t1")


@pytest.mark.asyncio
async def test_get_project_by_name(authed_service):
    authed_service.api_request = AsyncMock(return_value={"results": [{"id": "p-1", "name": "demo"}]})
    assert await authed_service.get_project_by_name("demo") == {"id": "p-1", "name": "demo"}

    authed_service.api_request = AsyncMock(return_value={"results": []})
    with pytest.raises(NotFoundError):
        await authed_service.get_project_by_name("demo")

    authed_service.api_request = AsyncMock(side_effect=ApiError(404, "Not found."))
    with pytest.raises(NotFoundError) as excinfo:
        await authed_service.get_project_by_name("demo")
    assert "Project 'demo' not found" in str(excinfo.value)


@pytest.mark.asyncio
async def test_create_nuclei_template_bad_request(authed_service):
    authed_service.api_request = AsyncMock(side_effect=ApiError(400, "name already exists"))

    with pytest.raises(NightVisionError) as excinfo:
        await authed_service.create_nuclei_template("tpl", "p-1", "desc")

    assert str(excinfo.value).startswith("Bad request when creating template: name already exists.")


@pytest.mark.asyncio
async def test_create_nuclei_template_body(authed_service):
    authed_service.api_request = AsyncMock(return_value={"id": "n-1", "name": "tpl"})

    await authed_service.create_nuclei_template("tpl", "p-1")

    assert authed_service.api_request.await_args.args == ("nuclei-templates/", "POST", None, {"name": "tpl", "project": "p-1"})


@pytest.mark.asyncio
async def test_create_nuclei_template_requires_name(authed_service):
    authed_service.api_request = AsyncMock()
    with pytest.raises(ValidationError):
        await authed_service.create_nuclei_template("  ", "p-1")
    authed_service.api_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_rejects_non_template(authed_service, tmp_path):
    template = tmp_path / "t.yaml"
    template.write_text("name: nothing here\n")
    authed_service.api_request = AsyncMock()

    with pytest.raises(ValidationError):
        await authed_service.upload_nuclei_template("n-1", str(template))
    authed_service.api_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_rejects_undecodable_template(authed_service, tmp_path):
    template = tmp_path / "t.yaml"
    template.write_bytes(b"id: x\ninfo:\n  name: \xff\xfe\n")
    authed_service.api_request = AsyncMock()

    with pytest.raises(ValidationError) as excinfo:
        await authed_service.upload_nuclei_template("n-1", str(template))

    assert "not appear to be a valid nuclei template" in str(excinfo.value)
    authed_service.api_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_sends_multipart_and_maps_404(authed_service, tmp_path):
    template = tmp_path / "t.yaml"
    template.write_text("id: my-check\ninfo:\n  name: check\n")
    authed_service.api_request = AsyncMock(return_value={"name": "my-check"})

    await authed_service.upload_nuclei_template("n-1", str(template))

    endpoint, method, params, form, is_form = authed_service.api_request.await_args.args
    assert (endpoint, method, is_form) == ("nuclei-templates/n-1/upload/", "POST", True)

    authed_service.api_request = AsyncMock(side_effect=ApiError(404, "Not found."))
    with pytest.raises(NotFoundError):
        await authed_service.upload_nuclei_template("n-1", str(template))


@pytest.mark.asyncio
async def test_assign_nuclei_template(authed_service):
    authed_service.api_request = AsyncMock(return_value={"ok": True})

    text = await authed_service.assign_nuclei_template("t-1", "n-1", "text")

    assert authed_service.api_request.await_args.args == (
        "targets/t-1/nuclei-templates/assign/", "POST", None, {"nuclei_templates": ["n-1"]}
    )
    assert text == "Successfully assigned nuclei template n-1 to target t-1"


@pytest.mark.asyncio
async def test_close_closes_session(authed_service):
    session = FakeSession(FakeResponse())
    authed_service.session = session

    await authed_service.close()

    assert session.closed is True
    assert authed_service.session is None

