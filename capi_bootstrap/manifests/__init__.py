"""Manifest template and mutation engine."""

from capi_bootstrap.manifests.documents import (
    CONTROL_PLANE_PLACEHOLDER,
    dump_document,
    find_all_by_kind,
    find_by_kind,
    get_cluster_def,
    join,
    normalize,
    replace_at,
    require_kind,
    split,
)
from capi_bootstrap.manifests.template import (
    escape_placeholders,
    render,
    render_file,
    unescape_placeholders,
)

__all__ = [
    "CONTROL_PLANE_PLACEHOLDER",
    "dump_document",
    "escape_placeholders",
    "find_all_by_kind",
    "find_by_kind",
    "get_cluster_def",
    "join",
    "normalize",
    "render",
    "render_file",
    "replace_at",
    "require_kind",
    "split",
    "unescape_placeholders",
]
