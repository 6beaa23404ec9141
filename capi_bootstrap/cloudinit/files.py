"""Helpers building InitFiles from packaged templates."""

import os
from typing import Any, Dict

from capi_bootstrap.cloudinit.models import InitFile
from capi_bootstrap.manifests.template import render_file


def template_path(module_file: str, name: str) -> str:
    """Path of a template shipped in the ``templates`` directory beside a module."""
    return os.path.join(os.path.dirname(os.path.abspath(module_file)), "templates", name)


def construct_file(
    path: str,
    template: str,
    context: Dict[str, Any],
    escape: bool = False,
    owner: str = "",
    permissions: str = "",
) -> InitFile:
    """Render a template into an InitFile written at ``path`` on the node."""
    return InitFile(
        path=path,
        content=render_file(template, context, escape=escape),
        owner=owner,
        permissions=permissions,
    )
