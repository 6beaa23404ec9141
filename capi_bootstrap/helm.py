"""Install HelmChartProxy charts on the bootstrap node.

The addon provider only reconciles HelmChartProxies once the cluster is up,
so each proxy is also turned into a helmfile and a ``helm`` invocation that
can run on the bootstrap node itself.
"""

import logging
import posixpath
import re
from typing import Any, Dict, List

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError as JinjaTemplateError

from capi_bootstrap.cloudinit.models import InitFile
from capi_bootstrap.exceptions import ManifestError, TemplateError
from capi_bootstrap.manifests import find_all_by_kind, find_by_kind, unescape_placeholders
from capi_bootstrap.manifests.resources import Cluster, HelmChartProxy, HelmOptions
from capi_bootstrap.models import Values
from capi_bootstrap.utils import to_yaml

logger = logging.getLogger(__name__)

HELM_DIR = "/var/lib/capi-bootstrap/helm"
INSTALL_SCRIPT_PATH = "/tmp/helm-install.sh"
GET_HELM = "curl -fsSL https://raw.githubusercontent.com/helm/helm/main/scripts/get-helm-3 | bash"

_LEADING_DOT = re.compile(r"(\{\{-?\s*)\.(?=[A-Za-z_])")
_environment = Environment(undefined=StrictUndefined, keep_trailing_newline=True)


def template_values(values: Values) -> Dict[str, Any]:
    """The Cluster and infrastructure cluster documents, as seen by values templates."""
    cluster = find_by_kind(values.manifests, Cluster.KIND, api_version=Cluster.API_VERSION)
    infra_cluster = find_by_kind(values.manifests, values.cluster_kind) if values.cluster_kind else None
    return {
        "Cluster": cluster[1] if cluster else {},
        "InfraCluster": infra_cluster[1] if infra_cluster else {},
    }


def render_values(proxy: HelmChartProxy, context: Dict[str, Any]) -> Dict[str, Any]:
    """Render a proxy's valuesTemplate into chart values."""
    source = unescape_placeholders(proxy.spec.values_template)
    name = f"{proxy.metadata.name} valuesTemplate"
    try:
        rendered = _environment.from_string(_LEADING_DOT.sub(r"\1", source)).render(**context)
    except JinjaTemplateError as e:
        raise TemplateError(name, f"failed to execute: {e}") from e
    try:
        data = yaml.safe_load(rendered) or {}
    except yaml.YAMLError as e:
        raise ManifestError(f"{name} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"{name} must render to a mapping")
    return data


_FLAGS = (
    ("disableHooks", "--disable-hooks"),
    ("atomic", "--atomic"),
    ("dependencyUpdate", "--dependency-update"),
    ("skipCRDs", "--skip-crds"),
    ("disableOpenAPIValidation", "--disable-openapi-validation"),
    ("waitForJobs", "--wait-for-jobs"),
)


def helm_options(options: HelmOptions) -> str:
    """Command line flags for the options of a proxy."""
    extra = options.model_extra or {}
    flags = [flag for attr, flag in _FLAGS if extra.get(attr)]
    if options.wait:
        flags.append("--wait")
    if options.timeout:
        flags.append(f"--timeout {options.timeout}")
    if options.install.get("createNamespace"):
        flags.append("--create-namespace")
    return "".join(f" {flag}" for flag in flags)


def proxy_to_helmfile(proxy: HelmChartProxy, chart_values: Dict[str, Any]) -> Dict[str, Any]:
    """A helmfile with one repository and one release for a proxy."""
    spec = proxy.spec
    release: Dict[str, Any] = {
        "name": spec.release_name or spec.chart_name,
        "namespace": spec.namespace or "default",
        "chart": f"{proxy.metadata.name}/{spec.chart_name}",
    }
    if spec.version:
        release["version"] = spec.version
    if spec.options.wait:
        release["wait"] = True
    if spec.options.timeout:
        release["timeout"] = spec.options.timeout
    if spec.options.install.get("createNamespace"):
        release["createNamespace"] = True
    release["values"] = [chart_values]
    return {
        "repositories": [{"name": proxy.metadata.name, "url": spec.repo_url}],
        "releases": [release],
    }


def proxy_to_install(proxy: HelmChartProxy, values_path: str) -> str:
    """The ``helm upgrade --install`` command for a proxy."""
    spec = proxy.spec
    command = (
        f"helm upgrade --install {spec.release_name or spec.chart_name} {spec.chart_name} "
        f"--repo {spec.repo_url} -n {spec.namespace or 'default'}"
    )
    if spec.version:
        command += f" --version {spec.version}"
    return command + f" -f {values_path}" + helm_options(spec.options)


def add_helm_charts(values: Values) -> List[InitFile]:
    """Helmfiles, values files and an installer for every HelmChartProxy.

    Returns an empty list when the manifests hold no proxies.
    """
    proxies = find_all_by_kind(values.manifests, HelmChartProxy.KIND, HelmChartProxy)
    if not proxies:
        return []

    context = template_values(values)
    files: List[InitFile] = []
    installs = ["#!/bin/bash", "set -euo pipefail", GET_HELM]
    for _, proxy in proxies:
        chart_values = render_values(proxy, context)
        helmfile_path = posixpath.join(HELM_DIR, f"{proxy.metadata.name}-helmfile.yaml")
        values_path = posixpath.join(HELM_DIR, f"{proxy.metadata.name}-values.yaml")
        files.append(InitFile(path=helmfile_path, content=to_yaml(proxy_to_helmfile(proxy, chart_values))))
        files.append(InitFile(path=values_path, content=to_yaml(chart_values)))
        installs.append(proxy_to_install(proxy, values_path))
        logger.debug(f"converted HelmChartProxy {proxy.metadata.name}")

    files.append(InitFile(path=INSTALL_SCRIPT_PATH, content="\n".join(installs) + "\n", permissions="0755"))
    logger.info(f"⎈ Converted {len(proxies)} HelmChartProxy resource(s) for the bootstrap node")
    return files
