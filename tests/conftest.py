"""Shared test fixtures for blogcms."""

import pytest

from blogcms.content import ContentService
from blogcms.parser import MarkdownParser
from repohost import GitHubClient, RepositoryRef

from fakes import OWNER, REPO, TOKEN, FakeClock, FakeGitHub


@pytest.fixture(autouse=True)
def _no_env_token(monkeypatch):
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def github(clock):
    return FakeGitHub(clock)


@pytest.fixture
def client(github, clock):
    client = GitHubClient(transport=github.transport, sleep=clock.sleep, clock=clock)
    client.initialize(TOKEN)
    return client


@pytest.fixture
def repository():
    return RepositoryRef(owner=OWNER, name=REPO)


@pytest.fixture
def content(client, repository):
    return ContentService(client, repository, parser=MarkdownParser())
