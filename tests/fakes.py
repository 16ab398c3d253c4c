"""In-memory GitHub double served through httpx.MockTransport."""

import base64
import hashlib
import json
from typing import Any

import httpx

TOKEN = "ghp_testtoken"
OWNER = "octo"
REPO = "blog"


def blob_sha(data: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


def _json(status: int, payload: Any, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status, json=payload, headers=headers)


class FakeClock:
    """Wall clock that only moves when something sleeps."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0)


class FakeGitHub:
    """
    Enough of the REST and OAuth device-flow APIs for the client.

    Files live in ``files`` as path -> bytes. Writes enforce the sha
    guard the real contents API applies. ``queue`` holds responses or
    exceptions returned for the next non-quota requests, in order.
    """

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock or FakeClock()
        self.token = TOKEN
        self.scopes: str | None = "repo, user"
        self.files: dict[str, bytes] = {}
        self.branches: dict[str, dict[str, bytes]] = {}
        self.requests: list[httpx.Request] = []
        self.timeline: list[tuple[float, str]] = []
        self.queue: list[httpx.Response | Exception] = []
        self.rate = {"limit": 5000, "used": 0, "remaining": 5000, "reset": int(self.clock.now) + 3600}
        self.permission = "write"
        self.user = {"id": 1, "login": "octocat", "name": "The Octocat"}
        self.repos = [
            {
                "id": 10,
                "name": REPO,
                "full_name": f"{OWNER}/{REPO}",
                "private": False,
                "default_branch": "main",
                "permissions": {"admin": False, "push": True, "pull": True},
            },
            {
                "id": 11,
                "name": "readonly",
                "full_name": f"{OWNER}/readonly",
                "default_branch": "main",
                "permissions": {"admin": False, "push": False, "pull": True},
            },
        ]
        self.device_code = {
            "device_code": "dev-123",
            "user_code": "ABCD-1234",
            "verification_uri": "https://github.com/login/device",
            "expires_in": 900,
            "interval": 5,
        }
        self.token_responses: list[dict[str, Any]] = [{"error": "authorization_pending"}]
        self.commits = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ============ Inspection ============

    def calls(self, method: str, prefix: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(prefix)]

    def content_calls(self, method: str) -> list[httpx.Request]:
        return self.calls(method, f"/repos/{OWNER}/{REPO}/contents/")

    def put_file(self, path: str, text: str | bytes) -> str:
        data = text.encode("utf-8") if isinstance(text, str) else text
        self.files[path] = data
        return blob_sha(data)

    def add_branch(self, name: str) -> dict[str, bytes]:
        """Branch off the default branch; returns the new branch's files."""
        self.branches[name] = dict(self.files)
        return self.branches[name]

    def _branch(self, name: str | None) -> dict[str, bytes] | None:
        if name in (None, "", "main"):
            return self.files
        return self.branches.get(name)

    # ============ Dispatch ============

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.timeline.append((self.clock.now, request.url.path))
        path = request.url.path

        if path.startswith("/login/"):
            return self._oauth(request, path)

        if request.headers.get("authorization") != f"Bearer {self.token}":
            return _json(401, {"message": "Bad credentials"})

        if path == "/rate_limit":
            return _json(200, {"resources": {"core": self.rate}, "rate": self.rate})

        if self.queue:
            item = self.queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        if path == "/user":
            headers = {"x-oauth-scopes": self.scopes} if self.scopes is not None else None
            return _json(200, self.user, headers)
        if path == "/user/repos":
            return _json(200, self.repos)

        prefix = f"/repos/{OWNER}/{REPO}"
        if path == prefix:
            return _json(200, self.repos[0])
        if path.startswith(f"{prefix}/collaborators/"):
            return _json(200, {"permission": self.permission})
        if path.startswith(f"{prefix}/contents"):
            file_path = path[len(f"{prefix}/contents"):].strip("/")
            return self._contents(request, file_path)
        if path.startswith("/raw/"):
            data = self.files.get(path[len("/raw/"):])
            if data is None:
                return _json(404, {"message": "Not Found"})
            return httpx.Response(200, content=data)
        return _json(404, {"message": "Not Found"})

    def _entry(self, path: str, files: dict[str, bytes] | None = None) -> dict[str, Any]:
        data = (self.files if files is None else files)[path]
        return {
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": blob_sha(data),
            "size": len(data),
            "type": "file",
            "url": "",
            "download_url": f"https://api.github.com/raw/{path}",
        }

    def _listing(self, directory: str, files: dict[str, bytes]) -> list[dict[str, Any]] | None:
        prefix = f"{directory}/" if directory else ""
        entries: dict[str, dict[str, Any]] = {}
        for path in sorted(files):
            if not path.startswith(prefix):
                continue
            head, _, rest = path[len(prefix):].partition("/")
            if rest:
                sub = f"{prefix}{head}"
                entries.setdefault(
                    head, {"name": head, "path": sub, "sha": "d" * 40, "size": 0, "type": "dir", "url": ""}
                )
            else:
                entries[head] = self._entry(path, files)
        if not entries and directory:
            return None
        return list(entries.values())

    def _contents(self, request: httpx.Request, path: str) -> httpx.Response:
        if request.method == "GET":
            files = self._branch(request.url.params.get("ref"))
            if files is None:
                return _json(404, {"message": "No commit found for the ref"})
            if path in files:
                entry = self._entry(path, files)
                entry["encoding"] = "base64"
                # the API wraps base64 at 60 columns
                entry["content"] = base64.encodebytes(files[path]).decode("ascii")
                return _json(200, entry)
            listing = self._listing(path, files)
            if listing is None:
                return _json(404, {"message": "Not Found"})
            return _json(200, listing)

        body = json.loads(request.content)
        files = self._branch(body.get("branch"))
        if files is None:
            return _json(404, {"message": "Branch not found"})
        current = files.get(path)
        sha = body.get("sha")

        if request.method == "PUT":
            if current is not None and not sha:
                return _json(422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
            if current is not None and sha != blob_sha(current):
                return _json(409, {"message": f"{path} does not match {sha}"})
            data = base64.b64decode(body["content"])
            files[path] = data
            return _json(201 if current is None else 200, self._commit(body["message"], path, files))

        if request.method == "DELETE":
            if current is None:
                return _json(404, {"message": "Not Found"})
            if sha != blob_sha(current):
                return _json(409, {"message": f"{path} does not match {sha}"})
            del files[path]
            return _json(200, self._commit(body["message"], None, files))

        return _json(405, {"message": "Method not allowed"})

    def _commit(self, message: str, path: str | None, files: dict[str, bytes]) -> dict[str, Any]:
        self.commits += 1
        sha = f"{self.commits:040x}"
        return {
            "content": self._entry(path, files) if path else None,
            "commit": {
                "sha": sha,
                "message": message,
                "html_url": f"https://github.com/{OWNER}/{REPO}/commit/{sha}",
                "author": {"name": "The Octocat", "email": "octocat@example.com", "date": "2024-01-01T00:00:00Z"},
                "committer": {"name": "The Octocat", "email": "octocat@example.com", "date": "2024-01-01T00:00:00Z"},
            },
        }

    def _oauth(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "/login/device/code":
            return _json(200, self.device_code)
        if path == "/login/oauth/access_token":
            response = self.token_responses.pop(0) if len(self.token_responses) > 1 else self.token_responses[0]
            return _json(200, response)
        return _json(404, {"message": "Not Found"})
