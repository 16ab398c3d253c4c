"""Runtime settings loaded from the environment and .env."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_CREDENTIALS = "~/.config/blogcms/credentials"


class Settings(BaseModel):
    """Application settings."""

    client_id: str | None = None  # OAuth app client id for the device flow
    token: str | None = None
    repository: str | None = None  # owner/name
    branch: str | None = None
    credentials_path: Path = Path(DEFAULT_CREDENTIALS).expanduser()
    credentials_key: str | None = None  # urlsafe base64, 32 bytes
    api_url: str = "https://api.github.com"
    oauth_url: str = "https://github.com"
    timeout: float = 30.0
    max_retries: int = 3
    max_depth: int = 10
    posts_dir: str = "content/posts"
    pages_dir: str = "content/pages"
    images_dir: str = "public/images"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        """Build settings from environment variables (after loading .env)."""
        load_dotenv(env_file)
        env = os.environ
        values: dict[str, object] = {
            "client_id": env.get("GITHUB_CLIENT_ID"),
            "token": env.get("GH_TOKEN") or env.get("GITHUB_TOKEN"),
            "repository": env.get("BLOGCMS_REPO"),
            "branch": env.get("BLOGCMS_BRANCH"),
            "credentials_key": env.get("BLOGCMS_CREDENTIALS_KEY"),
        }
        if env.get("BLOGCMS_CREDENTIALS"):
            values["credentials_path"] = Path(env["BLOGCMS_CREDENTIALS"]).expanduser()
        if env.get("BLOGCMS_MAX_DEPTH"):
            values["max_depth"] = int(env["BLOGCMS_MAX_DEPTH"])
        if env.get("GITHUB_API_URL"):
            values["api_url"] = env["GITHUB_API_URL"]
        return cls(**values)
