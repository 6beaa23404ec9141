"""Multi-document manifest handling.

A manifest set is kept as an ordered list of raw document strings. Lookups
decode documents on demand and rewrites re-serialize a single slot, so
documents nobody touches stay byte-identical.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ValidationError

from capi_bootstrap.exceptions import ManifestError
from capi_bootstrap.manifests.resources import Cluster, ObjectReference

logger = logging.getLogger(__name__)

# Cluster.spec.controlPlaneRef.name until the control plane provider restores it
CONTROL_PLANE_PLACEHOLDER = "fake-control-plane"

_SEPARATOR = re.compile(r"^---[ \t]*(?:\r?\n|$)", re.MULTILINE)

T = TypeVar("T", bound=BaseModel)


def split(text: Union[str, bytes]) -> List[str]:
    """Split a manifest on ``---`` lines, keeping empty documents in place."""
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return _SEPARATOR.split(text)


def join(documents: List[str]) -> str:
    """Inverse of split for documents separated by a bare ``---`` line."""
    out = []
    for i, document in enumerate(documents):
        if i:
            if documents[i - 1] and not documents[i - 1].endswith("\n"):
                out.append("\n")
            out.append("---\n")
        out.append(document)
    return "".join(out)


def dump_document(value: Union[BaseModel, Dict[str, Any]]) -> str:
    """Serialize one resource to YAML."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=False)


def load_document(document: str) -> Optional[Dict[str, Any]]:
    """Decode one document, returning None when it is not a mapping."""
    data = yaml.safe_load(document)
    if isinstance(data, dict):
        return data
    return None


def find_by_kind(
    documents: List[str],
    kind: str,
    model: Optional[Type[T]] = None,
    api_version: Optional[str] = None,
) -> Optional[Tuple[int, Any]]:
    """Find the first document of a kind.

    Documents that fail to decode are skipped; only a document whose kind
    matches has to decode into ``model``.

    Args:
        documents: Manifest documents
        kind: Resource kind to match
        model: Typed shape to decode the match into; the raw dict when None
        api_version: apiVersion the match must also carry

    Returns:
        (index, value) of the match, or None

    Raises:
        ManifestError: If the matching document does not fit ``model``
    """
    for index, document in enumerate(documents):
        try:
            data = load_document(document)
        except yaml.YAMLError as e:
            logger.debug(f"skipping undecodable document {index}: {e}")
            continue
        if data is None or data.get("kind") != kind:
            continue
        if api_version and data.get("apiVersion") != api_version:
            continue

        if model is None:
            return index, data
        try:
            return index, model.model_validate(data)
        except ValidationError as e:
            raise ManifestError(f"failed to decode {kind} in document {index}: {e}") from e
    return None


def find_all_by_kind(documents: List[str], kind: str, model: Type[T]) -> List[Tuple[int, T]]:
    """Every document of a kind, decoded into ``model``."""
    found = []
    for index, document in enumerate(documents):
        match = find_by_kind([document], kind, model)
        if match is not None:
            found.append((index, match[1]))
    return found


def require_kind(documents: List[str], kind: str, model: Type[T], api_version: Optional[str] = None) -> Tuple[int, T]:
    """Like find_by_kind, but a missing kind is a ManifestError."""
    found = find_by_kind(documents, kind, model, api_version)
    if found is None:
        raise ManifestError(f"manifests are missing a required {kind} resource")
    return found


def replace_at(documents: List[str], index: int, value: Union[BaseModel, Dict[str, Any]]) -> None:
    """Re-serialize ``value`` into slot ``index``; other slots are untouched."""
    if not 0 <= index < len(documents):
        raise ManifestError(f"document index {index} out of range")
    documents[index] = dump_document(value)


def get_cluster_def(documents: List[str]) -> Optional[Tuple[int, Cluster]]:
    """The Cluster resource of the manifest set."""
    return find_by_kind(documents, Cluster.KIND, Cluster, Cluster.API_VERSION)


def normalize(documents: List[str]) -> Tuple[int, Cluster]:
    """Point the Cluster's control plane reference at the placeholder name.

    Raises:
        ManifestError: If there is no Cluster document
    """
    found = get_cluster_def(documents)
    if found is None:
        raise ManifestError(f"manifests are missing a required {Cluster.KIND} resource")
    index, cluster = found

    spec = cluster.spec
    ref = spec.control_plane_ref or ObjectReference()
    ref.name = CONTROL_PLANE_PLACEHOLDER
    spec.control_plane_ref = ref
    cluster.spec = spec
    replace_at(documents, index, cluster)
    return index, cluster
