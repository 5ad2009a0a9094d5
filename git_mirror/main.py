"""
git-mirror — CLI Entry Point

Usage:
    git-mirror -g my-group [-c 4] [--lfs] [--junit report.xml]
    git-mirror -p GitHub -g my-org --https --fail-on-sync-error
    python -m git_mirror.main --version
"""

from __future__ import annotations

# Load .env file FIRST, before any option reads its envvar
from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True))

import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __version__
from .errors import GitMirrorError
from .logging_config import setup_logging
from .mirror.config import MirrorOptions
from .mirror.manager import do_mirror
from .provider import DEFAULT_URLS, PROVIDERS, Provider

logger = logging.getLogger(__name__)


def resolve_token(private_token: Optional[str]) -> Optional[str]:
    """Token from --private-token / PRIVATE_TOKEN, else the deprecated GITLAB_PRIVATE_TOKEN."""
    if private_token:
        return private_token
    legacy = os.environ.get("GITLAB_PRIVATE_TOKEN")
    if legacy:
        logger.warning(
            "GITLAB_PRIVATE_TOKEN is deprecated, use PRIVATE_TOKEN or --private-token"
        )
        return legacy
    logger.debug("Private token is not set")
    return None


def build_provider(kind: str, url: Optional[str], group: str, token: Optional[str]) -> Provider:
    """Instantiate the provider class registered under kind (GitLab or GitHub)."""
    return PROVIDERS[kind](url or DEFAULT_URLS[kind], group, private_token=token)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-p", "--provider", "provider_kind",
    type=click.Choice(list(PROVIDERS)), default="GitLab", show_default=True,
    help="Provider to use for fetching repositories",
)
@click.option(
    "-u", "--url",
    help="URL of the instance to get repositories from "
         "[default: https://gitlab.com or https://api.github.com]",
)
@click.option("-g", "--group", required=True, help="Name of the group to check for repositories to sync")
@click.option(
    "-m", "--mirror-dir", type=click.Path(file_okay=False, path_type=Path),
    default=Path("./mirror-dir"), show_default=True,
    help="Directory where the local clones are stored",
)
@click.option("-c", "--worker-count", type=int, default=1, show_default=True, help="Number of concurrent mirror jobs")
@click.option("--https", "use_http", is_flag=True, help="Push to the destination over https instead of SSH")
@click.option("--dry-run", is_flag=True, help="Only print what to do without running any git commands")
@click.option("--git-executable", default="git", show_default=True, help="Git executable to use")
@click.option("--git-timeout", type=float, help="Timeout in seconds for each git command")
@click.option("--lfs", "mirror_lfs", is_flag=True, help="Mirror LFS objects (per-project `lfs:` overrides)")
@click.option(
    "--refspec", multiple=True,
    help="Refspec to push instead of all refs (repeatable, per-project `refspec:` overrides)",
)
@click.option("--force/--no-force", "force_push", default=True, show_default=True,
              help="Force push, so rewritten upstream history reaches the destination")
@click.option("--remove-workrepo", is_flag=True, help="Delete the local mirror clone after a successful push")
@click.option("--fail-on-sync-error", is_flag=True, help="Exit non-zero if any sync task fails")
@click.option("--junit", "junit_file", type=click.Path(dir_okay=False, path_type=Path),
              help="Write a JUnit XML report to this file")
@click.option("--metrics", "metrics_file", type=click.Path(dir_okay=False, path_type=Path),
              help="Write Prometheus metrics for node-exporter's textfile collector")
@click.option("--private-token", envvar="PRIVATE_TOKEN", show_envvar=True,
              help="Private token or personal access token for the GitLab or GitHub API")
@click.option("-v", "--verbose", count=True, help="Verbosity level (repeatable)")
@click.version_option(__version__, prog_name="git-mirror")
@click.pass_context
def cli(
    ctx: click.Context,
    provider_kind: str,
    url: Optional[str],
    group: str,
    mirror_dir: Path,
    worker_count: int,
    use_http: bool,
    dry_run: bool,
    git_executable: str,
    git_timeout: Optional[float],
    mirror_lfs: bool,
    refspec: Tuple[str, ...],
    force_push: bool,
    remove_workrepo: bool,
    fail_on_sync_error: bool,
    junit_file: Optional[Path],
    metrics_file: Optional[Path],
    private_token: Optional[str],
    verbose: int,
) -> None:
    """Mirror repositories listed in the project descriptions of a group."""
    setup_logging(verbosity=verbose)

    provider = build_provider(provider_kind, url, group, resolve_token(private_token))
    logger.debug(f"Using provider {provider.label}")

    options = MirrorOptions(
        mirror_dir=mirror_dir,
        worker_count=worker_count,
        git_executable=git_executable,
        git_timeout=git_timeout,
        refspec=tuple(refspec),
        mirror_lfs=mirror_lfs,
        use_http=use_http,
        force_push=force_push,
        dry_run=dry_run,
        remove_workrepo=remove_workrepo,
        fail_on_sync_error=fail_on_sync_error,
        junit_file=junit_file,
        metrics_file=metrics_file,
    )

    try:
        do_mirror(provider, options)
    except GitMirrorError as e:
        logger.error(f"Error occurred: {e}")
        ctx.exit(e.exit_code)
    finally:
        provider.close()

    logger.info("All done")


def main() -> None:
    cli(prog_name="git-mirror")


if __name__ == "__main__":
    main()
