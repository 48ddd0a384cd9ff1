import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from crashtrack.config.settings import get_settings

app = typer.Typer(help="CLI for the CrashTrack crash analytics API")
console = Console()

# API URL, configurable through CRASHTRACK_API_URL
API_URL = get_settings().crashtrack_api_url

SOURCEMAP_SUFFIXES = (".js", ".mjs", ".cjs", ".map")

STATUS_STYLES = {
    "unresolved": "yellow",
    "regressed": "bold red",
    "resolved": "green",
    "ignored": "dim",
}


def api_request(method: str, path: str, **kwargs) -> Any:
    """
    Call the API and return the decoded JSON body.

    Prints the error and exits with status 1 when the request fails.
    """
    try:
        response = httpx.request(method, f"{API_URL}{path}", timeout=60.0, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        try:
            message = e.response.json().get("message", e.response.text)
        except ValueError:
            message = e.response.text
        console.print(f"[bold red]Error {e.response.status_code}: {message}")
        raise typer.Exit(code=1)
    except httpx.HTTPError as e:
        console.print(f"[bold red]Could not reach {API_URL}: {e}")
        raise typer.Exit(code=1)

    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def collect_artifacts(directory: Path) -> List[Path]:
    """Source maps and JavaScript files below ``directory``, sorted by path."""
    return sorted(
        path for path in directory.rglob("*")
        if path.is_file() and path.suffix in SOURCEMAP_SUFFIXES
    )


@app.command("create-project")
def create_project(
    org_id: str = typer.Argument(..., help="Organization id"),
    name: str = typer.Argument(..., help="Project name"),
    slug: str = typer.Argument(..., help="Project slug (lowercase)"),
    platform: str = typer.Option("javascript", help="javascript, node or rust"),
):
    """
    Create a crash project.
    """
    project = api_request(
        "POST", "/projects", json={"org_id": org_id, "name": name, "slug": slug, "platform": platform}
    )
    console.print(f"[green]Project created: [bold]{project['slug']}[/] ({project['id']})")


@app.command("upload-sourcemaps")
def upload_sourcemaps(
    project_id: str = typer.Argument(..., help="Project id"),
    directory: Path = typer.Argument(..., exists=True, file_okay=False, help="Build output directory"),
    release: str = typer.Option(..., "--release", "-r", help="Release the files belong to"),
    dist: Optional[str] = typer.Option(None, help="Optional distribution"),
    url_prefix: str = typer.Option("", help="Prefix added to each relative path (e.g. '~/static/js')"),
):
    """
    Upload source maps and minified sources of a build.

    Files are named by their path relative to DIRECTORY, with URL_PREFIX
    prepended, so the names match the frame filenames of the release.
    """
    paths = collect_artifacts(directory)
    if not paths:
        console.print(f"[yellow]No .js or .map files found in {directory}")
        raise typer.Exit(code=1)

    prefix = url_prefix.rstrip("/")
    files = []
    for path in paths:
        name = path.relative_to(directory).as_posix()
        if prefix:
            name = f"{prefix}/{name}"
        files.append(("files", (name, path.read_bytes(), "application/octet-stream")))

    data: Dict[str, str] = {"release": release}
    if dist:
        data["dist"] = dist

    console.print(f"[bold green]Uploading {len(files)} files for release [cyan]{release}[/]...")
    result = api_request("POST", f"/projects/{project_id}/artifacts", data=data, files=files)

    table = Table(show_header=True, header_style="bold green")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    for artifact in result["artifacts"]:
        table.add_row(
            artifact["name"],
            artifact["artifact_type"],
            f"{artifact['size_bytes']:,}",
            "uploaded" if artifact["created"] else "unchanged",
        )
    for error in result["errors"]:
        table.add_row(error["filename"], "-", "-", f"[red]{error['error']}[/]")
    console.print(table)

    console.print(
        f"Uploaded: [cyan]{result['uploaded_count']}[/]  "
        f"Unchanged: [cyan]{result['existing_count']}[/]  "
        f"Rejected: [red]{result['error_count']}[/]"
    )


@app.command("send-event")
def send_event(
    project_id: str = typer.Argument(..., help="Project id"),
    event_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with one event or a list"),
):
    """
    Send crash events from a JSON file.
    """
    try:
        payload = json.loads(event_file.read_text(encoding="utf-8"))
    except ValueError as e:
        console.print(f"[bold red]Invalid JSON in {event_file}: {e}")
        raise typer.Exit(code=1)

    if isinstance(payload, list):
        result = api_request("POST", f"/projects/{project_id}/events/batch", json=payload)
        console.print(
            f"[green]{result['success_count']}/{result['total']} events stored[/], "
            f"[red]{result['error_count']} failed"
        )
        for item in result["results"]:
            if not item["success"]:
                console.print(f"  [red]#{item['index']}: {item['error_code']} - {item['error']}")
        return

    result = api_request("POST", f"/projects/{project_id}/events", json=payload)
    label = "new issue" if result["is_new_issue"] else "regression" if result["is_regression"] else "existing issue"
    console.print(f"[green]Event stored in [bold]{result['short_id']}[/] ({label})")


@app.command()
def issues(
    project_id: str = typer.Argument(..., help="Project id"),
    status: Optional[str] = typer.Option(None, help="unresolved, resolved, ignored or regressed"),
    limit: int = typer.Option(25, help="Maximum number of issues"),
):
    """
    List a project's issues, most recently seen first.
    """
    params: Dict[str, Any] = {"limit": limit}
    if status:
        params["status"] = status
    result = api_request("GET", f"/projects/{project_id}/issues", params=params)

    if not result["issues"]:
        console.print("[yellow]No issues found.")
        return

    table = Table(show_header=True, header_style="bold green")
    table.add_column("Issue")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Events", justify="right")
    table.add_column("Users", justify="right")
    table.add_column("Last seen")
    for issue in result["issues"]:
        style = STATUS_STYLES.get(issue["status"], "")
        table.add_row(
            issue["short_id"],
            issue["title"],
            f"[{style}]{issue['status']}[/]" if style else issue["status"],
            str(issue["event_count"]),
            str(issue["user_count"]),
            issue["last_seen"],
        )
    console.print(table)
    console.print(f"Showing {len(result['issues'])} of [cyan]{result['total']}[/] issues")


@app.command()
def resolve(
    issue_id: str = typer.Argument(..., help="Issue id"),
    release: Optional[str] = typer.Option(None, help="Release the fix ships in"),
    resolved_by: Optional[str] = typer.Option(None, help="Who resolved the issue"),
):
    """
    Mark an issue as resolved.
    """
    issue = api_request(
        "POST", f"/issues/{issue_id}/resolve", json={"release": release, "resolved_by": resolved_by}
    )
    console.print(f"[green]Issue [bold]{issue['short_id']}[/] is {issue['status']}")


@app.command()
def cleanup(
    days_to_keep: Optional[int] = typer.Option(None, help="Days of data to keep (server default if omitted)"),
):
    """
    Delete old events and unused artifacts.
    """
    params = {"days_to_keep": days_to_keep} if days_to_keep is not None else {}
    result = api_request("DELETE", "/maintenance/cleanup", params=params)
    console.print(
        f"[green]Cleanup done:[/] {result['events_deleted']} events and "
        f"{result['artifacts_deleted']} artifacts deleted (before {result['cutoff']})"
    )


if __name__ == "__main__":
    app()
