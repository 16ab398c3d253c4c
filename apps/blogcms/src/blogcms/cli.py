"""Command line interface for the blog CMS."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, TypeVar

import click

from repohost import DeviceFlowState, RateLimitExceeded, RepoHostError, RepositoryRef, get_token

from .app import Services, create_services
from .config import Settings
from .content import RepositoryNotSet
from .events import EventChannel
from .models import PostData, PublishConfig, PublishStatus, ValidationFailure
from .parser import generate_slug

logger = logging.getLogger(__name__)

T = TypeVar("T")


def setup_logging(verbose: int) -> None:
    """Setup logging."""
    level = logging.DEBUG if verbose >= 2 else logging.INFO if verbose == 1 else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def run(coro: Awaitable[T]) -> T:
    """Run a coroutine, turning domain errors into a CLI error message."""
    try:
        return asyncio.run(coro)
    except ValidationFailure as e:
        raise click.ClickException("\n".join(e.errors)) from e
    except RateLimitExceeded as e:
        reset = e.reset_datetime
        hint = f" Quota resets at {reset.astimezone():%H:%M:%S}." if reset else ""
        raise click.ClickException(f"{e}{hint}") from e
    except (RepoHostError, RepositoryNotSet) as e:
        raise click.ClickException(str(e)) from e


def authenticate(services: Services) -> None:
    """Bind a token from --token, the environment or the credential store."""
    token = get_token(services.settings.token, services.store)
    if not token:
        raise click.ClickException("Not logged in. Run 'blogcms login' first.")
    services.client.initialize(token)


async def open_repository(services: Services) -> RepositoryRef:
    """Current repository; its default branch is looked up unless configured."""
    repository = services.content.require_repository()
    if services.settings.branch:
        return repository
    info = await services.client.get_repository(repository.owner, repository.name)
    repository = RepositoryRef(owner=repository.owner, name=repository.name, default_branch=info.default_branch)
    services.content.set_repository(repository)
    return repository


# ============ CLI Group ============

@click.group()
@click.option("--token", envvar="GH_TOKEN", help="GitHub token")
@click.option("--repo", envvar="BLOGCMS_REPO", help="Blog repository (owner/name)")
@click.option("--branch", envvar="BLOGCMS_BRANCH", help="Branch to read and commit to")
@click.option("--env-file", type=click.Path(dir_okay=False), help="Load settings from this .env file")
@click.option("-v", "--verbose", count=True, help="Verbosity (-v, -vv)")
@click.pass_context
def cli(
    ctx: click.Context,
    token: str | None,
    repo: str | None,
    branch: str | None,
    env_file: str | None,
    verbose: int,
) -> None:
    """Manage a blog stored in a GitHub repository."""
    setup_logging(verbose)
    ctx.ensure_object(dict)

    settings = Settings.from_env(env_file)
    overrides: dict[str, Any] = {"token": token, "repository": repo, "branch": branch}
    settings = settings.model_copy(update={k: v for k, v in overrides.items() if v})
    try:
        ctx.obj["services"] = create_services(settings, transport=ctx.obj.get("transport"))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--repo") from e


# ============ Account Commands ============

@cli.command()
@click.option("--device", is_flag=True, help="Authorize in the browser with a one-time code")
@click.pass_context
def login(ctx, device):
    """Log in and store the token encrypted."""
    services: Services = ctx.obj["services"]
    session = services.session

    if device:
        if session.device_flow is None:
            raise click.ClickException("GITHUB_CLIENT_ID is not set; the device flow needs an OAuth app client id.")

        def show_code(state: DeviceFlowState) -> None:
            click.echo(f"Open {state.verification_uri} and enter the code: {state.user_code}")
            click.echo(f"The code expires in {state.expires_in // 60} minutes.")

        ok = run(session.login_with_device_flow(on_code=show_code))
    else:
        token = services.settings.token or click.prompt("GitHub token", hide_input=True)
        ok = run(session.login_with_token(token))

    if not ok:
        raise click.ClickException(session.state.error or "Login failed")
    user = session.state.user
    click.echo(f"Logged in as {user.login if user else 'unknown'}")
    click.echo(f"Writable repositories: {len(session.state.repositories)}")


@cli.command()
@click.pass_context
def logout(ctx):
    """Forget the stored token."""
    services: Services = ctx.obj["services"]
    run(services.session.logout())
    click.echo("Logged out.")


@cli.command()
@click.pass_context
def whoami(ctx):
    """Show the authenticated user."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    user = run(services.client.get_current_user())
    click.echo(f"{user.login}" + (f" ({user.name})" if user.name else ""))


@cli.command()
@click.pass_context
def repos(ctx):
    """List repositories you can push to."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    repositories = run(services.client.get_user_repositories())
    if not repositories:
        click.echo("No writable repositories.")
        return
    for repository in repositories:
        visibility = "private" if repository.private else "public"
        click.echo(f"  {repository.full_name} [{visibility}, {repository.default_branch}]")


@cli.command("rate-limit")
@click.pass_context
def rate_limit(ctx):
    """Show the remaining API quota."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    snapshot = run(services.client.get_rate_limit_info())
    if snapshot is None:
        raise click.ClickException("Could not fetch rate limit status")
    click.echo(f"Remaining: {snapshot.remaining}/{snapshot.limit} (used {snapshot.used})")
    click.echo(f"Resets at: {snapshot.reset_at.strftime('%Y-%m-%d %H:%M:%S %Z')}")


# ============ Content Commands ============

@cli.command()
@click.argument("path", default="content")
@click.option("-r", "--recursive", is_flag=True, help="List subdirectories too")
@click.option("--max-depth", type=int, help="Recursion limit")
@click.pass_context
def ls(ctx, path, recursive, max_depth):
    """List a directory of the blog repository."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    content = services.content

    if recursive:
        for entry in run(content.list_directory_recursive(path, max_depth, ref=services.settings.branch)):
            suffix = "/" if entry.type == "dir" else ""
            click.echo(f"{entry.path}{suffix}")
        return

    directory = run(content.list_directory(path, ref=services.settings.branch))
    for name in directory.subdirectories:
        click.echo(f"{name}/")
    for file in directory.files:
        click.echo(f"{file.name}  ({file.size} bytes)")


@cli.command()
@click.argument("path")
@click.pass_context
def cat(ctx, path):
    """Print a file."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    record = run(services.content.read_file(path, ref=services.settings.branch))
    click.echo(record.content or "", nl=False)


@cli.command()
@click.option("--drafts/--no-drafts", default=True, show_default=True, help="Include drafts")
@click.pass_context
def posts(ctx, drafts):
    """List blog posts, newest first."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    found = run(services.content.get_blog_posts())
    shown = 0
    for post in found:
        if post.metadata.draft and not drafts:
            continue
        date = post.metadata.date.isoformat() if post.metadata.date else "----------"
        draft = " [draft]" if post.metadata.draft else ""
        click.echo(f"{date}  {post.metadata.title or post.name}{draft}  ({post.reading_time or 1} min)")
        shown += 1
    click.echo(f"\n{shown} posts")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", help="Post title (default: front matter title or file name)")
@click.option("--slug", help="URL slug (default: derived from the title)")
@click.option("-m", "--message", help="Commit message")
@click.option("--path", "target", help="Destination path in the repository")
@click.pass_context
def publish(ctx, file, title, slug, message, target):
    """Publish a markdown file as a blog post."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    parser = services.content.parser

    text = file.read_text(encoding="utf-8")
    metadata = parser.extract_metadata(text)
    _, body = parser.split_front_matter(text)
    title = title or metadata.title or file.stem
    post = PostData(
        title=title,
        content=body.lstrip("\n"),
        slug=slug or generate_slug(title),
        metadata=metadata,
    )
    config = PublishConfig(message=message, branch=services.settings.branch, path=target)

    async def report(status: PublishStatus) -> None:
        click.echo(f"[{status.progress:3d}%] {status.stage.value}: {status.message}")

    async def go():
        channel: EventChannel[PublishStatus] = EventChannel()
        channel.subscribe(report)
        return await services.publisher.publish(post, config, channel)

    result = run(go())
    action = "Created" if result.created else "Updated"
    click.echo(f"{action} {result.path}")
    if result.status.commit_url:
        click.echo(f"Commit: {result.status.commit_url}")


@cli.command()
@click.argument("path")
@click.option("-m", "--message", help="Commit message")
@click.pass_context
def rm(ctx, path, message):
    """Delete a file from the repository."""
    services: Services = ctx.obj["services"]
    authenticate(services)
    content = services.content

    async def go():
        record = await content.read_file(path, ref=services.settings.branch)
        return await content.delete_file(path, record.sha, message, branch=services.settings.branch)

    commit = run(go())
    click.echo(f"Deleted {path} ({commit.sha[:7]})")


@cli.command("upload-image")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def upload_image(ctx, file):
    """Upload an image and print its URL."""
    services: Services = ctx.obj["services"]
    authenticate(services)

    async def go():
        await open_repository(services)
        return await services.images.upload(file.read_bytes(), file.name)

    result = run(go())
    if not result.success:
        error = result.error
        detail = f" ({error.details})" if error.details else ""
        raise click.ClickException(f"{error.message}{detail}")
    click.echo(result.image.raw_url)
    click.echo(f"![{file.stem}]({result.image.raw_url})")


if __name__ == "__main__":
    cli()
