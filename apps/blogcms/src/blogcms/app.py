"""Service wiring: every service is built once here and passed to its consumers."""

import functools
import logging
from dataclasses import dataclass

import httpx

from repohost import CredentialStore, DeviceFlow, GitHubClient, RepositoryRef, validate_token

from .config import Settings
from .content import ContentService
from .images import ImageUploader
from .parser import MarkdownParser
from .publish import PublishPipeline
from .session import AuthSession

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    client: GitHubClient
    store: CredentialStore
    session: AuthSession
    content: ContentService
    publisher: PublishPipeline
    images: ImageUploader


def create_services(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    oauth_transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    """Build the service graph for ``settings``."""
    client = GitHubClient(
        base_url=settings.api_url,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
        transport=transport,
    )
    store = CredentialStore(settings.credentials_path, key=settings.credentials_key)

    device_flow = None
    if settings.client_id:
        device_flow = DeviceFlow(
            settings.client_id,
            base_url=settings.oauth_url,
            timeout=settings.timeout,
            transport=oauth_transport or transport,
        )
    validator = functools.partial(
        validate_token, base_url=settings.api_url, timeout=settings.timeout, transport=transport
    )
    session = AuthSession(client, store, device_flow=device_flow, validator=validator)

    repository = None
    if settings.repository:
        repository = RepositoryRef.parse(settings.repository, settings.branch or "main")

    parser = MarkdownParser()
    content = ContentService(
        client,
        repository,
        parser=parser,
        max_depth=settings.max_depth,
        posts_dir=settings.posts_dir,
        pages_dir=settings.pages_dir,
    )
    publisher = PublishPipeline(content, parser=parser, posts_dir=settings.posts_dir)
    images = ImageUploader(content, images_dir=settings.images_dir)
    logger.debug("Services created (repository=%s)", settings.repository)
    return Services(
        settings=settings,
        client=client,
        store=store,
        session=session,
        content=content,
        publisher=publisher,
        images=images,
    )
