"""GitHub repository backend using the REST contents API."""

import base64
import logging
import os
import posixpath
from typing import Any, Dict, List, Optional

import requests
import yaml
from pydantic import PrivateAttr

from capi_bootstrap.cloudinit.models import InitFile
from capi_bootstrap.config import Config
from capi_bootstrap.exceptions import BackendError, ConfigurationError, MissingCredentialsError, StateNotFoundError
from capi_bootstrap.providers.backend.base import STATE_FILE, BackendProvider, download_command
from capi_bootstrap.utils import to_yaml

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
DEFAULT_ORG = "linode"
DEFAULT_REPO = "capi-bootstrap"
DEFAULT_BRANCH = "main"
CLUSTERS_DIR = "clusters"


class GitHubBackend(BackendProvider):
    """Keeps state in ``clusters/<cluster>/`` on a branch of a GitHub repository."""
    name: str = "github"
    org: str = DEFAULT_ORG
    repo: str = DEFAULT_REPO
    branch: str = DEFAULT_BRANCH
    api_url: str = GITHUB_API_URL

    _token: str = PrivateAttr(default="")
    _session: Optional[requests.Session] = PrivateAttr(default=None)

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            raise ConfigurationError("github session is not initialized, run pre_cmd first")
        return self._session

    def pre_cmd(self, cluster_name: str) -> None:
        token = os.getenv("GITHUB_TOKEN", "")
        if not token:
            raise MissingCredentialsError("GITHUB_TOKEN")
        self._token = token

        for attr, variable, default in (
            ("org", "GITHUB_ORG", DEFAULT_ORG),
            ("repo", "GITHUB_REPO", DEFAULT_REPO),
            ("branch", "GITHUB_BRANCH", DEFAULT_BRANCH),
        ):
            value = os.getenv(variable, "")
            if not value:
                logger.info(f"{variable} is not set, defaulting to {default}")
            setattr(self, attr, value or default)

        if self._session is None:
            self._session = requests.Session()
        self._session.headers.update(self._headers())

        self._request("authenticate", "GET", self._repo_path())
        self._ensure_branch()
        logger.info(f"✅ [github backend] authenticated to state repo {self.org}/{self.repo} using branch {self.branch}")

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": API_VERSION,
        }

    def _repo_path(self, *parts: str) -> str:
        return posixpath.join("repos", self.org, self.repo, *parts)

    def _request(self, operation: str, method: str, path: str, allow_404: bool = False, **kwargs) -> Any:
        url = f"{self.api_url.rstrip('/')}/{path}"
        logger.debug(f"[github backend] {method} {url}")
        try:
            response = self.session.request(method, url, timeout=Config.API_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            raise BackendError(operation, str(e)) from e
        if allow_404 and response.status_code == 404:
            return None
        if not response.ok:
            raise BackendError(operation, f"[{response.status_code}] {response.text}", response.status_code)
        if not response.content:
            return {}
        if kwargs.get("headers", {}).get("Accept") == "application/vnd.github.raw+json":
            return response.content
        return response.json()

    def _ensure_branch(self) -> None:
        found = self._request("get branch", "GET", self._repo_path("branches", self.branch), allow_404=True)
        if found is not None:
            return
        repository = self._request("get repository", "GET", self._repo_path())
        default_branch = repository["default_branch"]
        ref = self._request("get ref", "GET", self._repo_path("git", "ref", "heads", default_branch))
        self._request("create branch", "POST", self._repo_path("git", "refs"), json={
            "ref": f"refs/heads/{self.branch}",
            "sha": ref["object"]["sha"],
        })
        logger.info(f"✅ [github backend] created branch {self.branch} from {default_branch}")

    def _get_raw(self, operation: str, path: str) -> Optional[bytes]:
        return self._request(operation, "GET", self._repo_path("contents", path), allow_404=True,
                             params={"ref": self.branch},
                             headers={"Accept": "application/vnd.github.raw+json"})

    def _put_file(self, operation: str, path: str, content: bytes, message: str) -> None:
        existing = self._request(operation, "GET", self._repo_path("contents", path), allow_404=True,
                                 params={"ref": self.branch})
        body = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if existing:
            body["sha"] = existing["sha"]
        self._request(operation, "PUT", self._repo_path("contents", path), json=body)

    def read(self, cluster_name: str) -> Dict[str, Any]:
        path = posixpath.join(CLUSTERS_DIR, cluster_name, STATE_FILE)
        logger.debug(f"[github backend] reading {path} from {self.org}/{self.repo}@{self.branch}")
        raw = self._get_raw("read state", path)
        if raw is None:
            raise StateNotFoundError(cluster_name)
        try:
            return yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise BackendError("read state", f"invalid state file {path}: {e}") from e

    def write_config(self, cluster_name: str, config: Dict[str, Any]) -> None:
        path = posixpath.join(CLUSTERS_DIR, cluster_name, STATE_FILE)
        self._put_file("write state", path, to_yaml(config).encode("utf-8"),
                       f"writing state for cluster {cluster_name}")

    def delete(self, cluster_name: str) -> None:
        prefix = posixpath.join(CLUSTERS_DIR, cluster_name) + "/"
        tree = self._request("list files", "GET", self._repo_path("git", "trees", self.branch),
                             params={"recursive": "1"})
        blobs: List[Dict[str, Any]] = [
            entry for entry in tree.get("tree", [])
            if entry.get("type") == "blob" and entry.get("path", "").startswith(prefix)
        ]
        for blob in blobs:
            self._request("delete state", "DELETE", self._repo_path("contents", blob["path"]), json={
                "message": f"deleting state files for cluster {cluster_name}",
                "sha": blob["sha"],
                "branch": self.branch,
            })
        logger.info(f"[github backend] deleted {len(blobs)} state files for {cluster_name} "
                    f"from {self.org}/{self.repo}@{self.branch}")

    def list_clusters(self) -> Dict[str, Dict[str, Any]]:
        entries = self._request("list clusters", "GET", self._repo_path("contents", CLUSTERS_DIR), allow_404=True,
                                params={"ref": self.branch}) or []
        clusters: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            if entry.get("type") != "dir":
                logger.warning(f"⚠️  expected {entry.get('path')} to be a directory, but was a {entry.get('type')}")
                continue
            try:
                clusters[entry["name"]] = self.read(entry["name"])
            except StateNotFoundError:
                logger.warning(f"⚠️  {entry.get('path')} has no state file, skipping")
        return clusters

    def upload_file(self, cluster_name: str, init_file: InitFile) -> str:
        if not init_file.content:
            raise BackendError("upload file", f"{init_file.path} has no content")
        path = posixpath.join(CLUSTERS_DIR, cluster_name, "files", init_file.path.lstrip("/"))
        content = init_file.content
        self._put_file("upload file", path, content if isinstance(content, bytes) else content.encode("utf-8"),
                       f"writing {init_file.path} for cluster {cluster_name}")
        url = f"{self.api_url.rstrip('/')}/{self._repo_path('contents', path)}?ref={self.branch}"
        curl_args = (
            "-sL -H 'Accept: application/vnd.github.raw+json' "
            f"-H 'Authorization: Bearer {self._token}' "
            f"-H 'X-GitHub-Api-Version: {API_VERSION}'"
        )
        return download_command(url, init_file, curl_args)
