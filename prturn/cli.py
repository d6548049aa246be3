"""Typer CLI for the pull request turn dashboard."""

from __future__ import annotations

import asyncio
from typing import Annotated

import httpx
import typer

from prturn.dashboard import DashboardFetchError, fetch_dashboard
from prturn.github_client import (
    GitHubApiError,
    GitHubAuthError,
    GitHubNetworkError,
    build_github_client,
    fetch_authenticated_user_login,
    get_configured_username,
    get_github_token_with_source,
)
from prturn.logging_config import configure_logging
from prturn.output import render_dashboard_text
from prturn.schema import DashboardError, ErrorCode

app = typer.Typer(help="Show whose turn it is on your open GitHub pull requests.")


@app.command("dashboard")
def dashboard_command(
    username: Annotated[
        str | None,
        typer.Option(
            help="GitHub login to report on. Defaults to GITHUB_USERNAME or the token owner."
        ),
    ] = None,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the raw dashboard (or error) as JSON.")
    ] = False,
    debug: Annotated[bool, typer.Option(help="Print the turn checks evaluated per PR.")] = False,
    verbose: Annotated[bool, typer.Option(help="Enable debug logging.")] = False,
    timeout_seconds: Annotated[
        float, typer.Option(help="GitHub API timeout in seconds per request.")
    ] = 20,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Fetch open pull requests once and report whose turn each one is."""
    configure_logging(verbose)

    try:
        token, _token_source = get_github_token_with_source()
    except GitHubAuthError as error:
        _fail(str(error), code=ErrorCode.UNAUTHORIZED, as_json=as_json)
        raise typer.Exit(code=1) from error

    try:
        response = asyncio.run(
            fetch_dashboard(
                token,
                username or get_configured_username(),
                timeout_seconds=timeout_seconds,
                trust_env=trust_env,
            )
        )
    except DashboardFetchError as error:
        _fail(error.message, code=error.code, as_json=as_json)
        raise typer.Exit(code=1) from error

    if as_json:
        typer.echo(response.model_dump_json(indent=2))
    else:
        typer.echo(render_dashboard_text(response, debug=debug))


def _fail(message: str, *, code: ErrorCode, as_json: bool) -> None:
    """Print a failure as text on stderr or as a JSON error payload."""
    if as_json:
        typer.echo(DashboardError(error=message, code=code).model_dump_json(indent=2))
    else:
        typer.echo(f"Dashboard fetch failed [{code}]: {message}", err=True)


@app.command("auth-check")
def auth_check_command(
    timeout_seconds: Annotated[
        float, typer.Option(help="GitHub API timeout in seconds for the validation call.")
    ] = 20,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Validate GitHub token setup."""
    try:
        token, token_source = get_github_token_with_source()
    except GitHubAuthError as error:
        typer.echo(f"GitHub auth check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Token detected in {token_source}.")

    async def _check() -> str:
        """Return the login the token authenticates as."""
        async with build_github_client(
            token, timeout_seconds=timeout_seconds, trust_env=trust_env
        ) as client:
            return await fetch_authenticated_user_login(client=client)

    try:
        login = asyncio.run(_check())
    except GitHubApiError as error:
        typer.echo(
            "GitHub auth check failed: "
            f"status={error.status_code} endpoint={error.endpoint}. {error}"
        )
        raise typer.Exit(code=1) from error
    except (GitHubNetworkError, httpx.HTTPError) as error:
        typer.echo(f"GitHub auth check failed: network error ({error}).")
        raise typer.Exit(code=1) from error

    typer.echo(f"Authenticated as GitHub user '{login}'.")
    typer.echo("GitHub token setup is valid.")


def main() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    main()
