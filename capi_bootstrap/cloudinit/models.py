"""Data models for the cloud-init payload."""

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union

import yaml

from capi_bootstrap.exceptions import ManifestError

CLOUD_CONFIG_HEADER = "## template: jinja\n#cloud-config\n\n"


@dataclass
class InitFile:
    """One file to be written on the bootstrap node."""
    path: str
    content: Union[str, bytes] = ""
    owner: str = ""
    permissions: str = ""
    encoding: str = ""

    def __post_init__(self):
        if not PurePosixPath(self.path).is_absolute():
            raise ManifestError(f"init file path must be absolute: {self.path!r}")

    @property
    def size(self) -> int:
        """Size of the embedded content in bytes; binary content ships base64 encoded."""
        if isinstance(self.content, bytes):
            return 4 * ((len(self.content) + 2) // 3)
        return len(self.content.encode("utf-8"))

    @property
    def is_binary(self) -> bool:
        return isinstance(self.content, bytes)

    def to_dict(self) -> Dict[str, Any]:
        """Render as a cloud-config write_files entry, omitting empty fields."""
        entry: Dict[str, Any] = {"path": self.path}
        if self.content:
            entry["content"] = self.content
        for key in ("owner", "permissions", "encoding"):
            value = getattr(self, key)
            if value:
                entry[key] = value
        return entry

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InitFile":
        """Build from a manifest ``files`` entry (CAPI bootstrap File shape)."""
        return cls(
            path=data.get("path", ""),
            content=data.get("content", ""),
            owner=data.get("owner", ""),
            permissions=data.get("permissions", ""),
            encoding=data.get("encoding", ""),
        )


@dataclass
class CloudConfig:
    """Ordered files and boot commands; commands run in list order."""
    write_files: List[InitFile] = field(default_factory=list)
    runcmd: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "write_files": [f.to_dict() for f in self.write_files],
            "runcmd": list(self.runcmd),
        }

    def render(self) -> bytes:
        """The user-data document exactly as it is shipped to the node."""
        body = yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)
        return (CLOUD_CONFIG_HEADER + body).encode("utf-8")


@dataclass
class ParsedManifest:
    """Files and commands extracted from the manifest set for one capability."""
    manifest_file: Optional[InitFile] = None
    additional_files: List[InitFile] = field(default_factory=list)
    pre_run_cmd: List[str] = field(default_factory=list)
    post_run_cmd: List[str] = field(default_factory=list)

    def merge(self, other: "ParsedManifest") -> None:
        """Append another capability's files and commands, keeping order."""
        self.additional_files.extend(other.additional_files)
        self.pre_run_cmd.extend(other.pre_run_cmd)
        self.post_run_cmd.extend(other.post_run_cmd)
