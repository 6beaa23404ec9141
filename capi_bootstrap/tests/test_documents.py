import pytest
import yaml

from capi_bootstrap.exceptions import ManifestError
from capi_bootstrap.manifests import (
    CONTROL_PLANE_PLACEHOLDER,
    find_all_by_kind,
    find_by_kind,
    get_cluster_def,
    join,
    normalize,
    replace_at,
    require_kind,
    split,
)
from capi_bootstrap.manifests.resources import Cluster, LinodeCluster, Resource

THREE_DOCUMENTS = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: first   # a comment that must survive
data:
  key: value
---
apiVersion: cluster.x-k8s.io/v1beta1
kind: Cluster
metadata:
  name: demo
spec:
  clusterNetwork:
    pods:
      cidrBlocks: [10.192.0.0/10]
  controlPlaneRef:
    apiVersion: controlplane.cluster.x-k8s.io/v1beta2
    kind: KThreesControlPlane
    name: demo-control-plane
  infrastructureRef:
    apiVersion: infrastructure.cluster.x-k8s.io/v1alpha2
    kind: LinodeCluster
    name: demo
---
apiVersion: v1
kind: Secret
metadata:
  name: third
stringData: {a: b}
"""


def test_split_and_join_round_trip():
    documents = split(THREE_DOCUMENTS)
    assert len(documents) == 3
    assert join(documents) == THREE_DOCUMENTS


def test_split_keeps_empty_documents_in_place():
    documents = split("---\nkind: A\n---\n---\nkind: B\n")
    assert documents == ["", "kind: A\n", "", "kind: B\n"]


def test_split_does_not_break_on_inline_dashes():
    documents = split("data:\n  banner: '--- not a separator'\n")
    assert len(documents) == 1


def test_find_by_kind_returns_index_and_typed_value():
    documents = split(THREE_DOCUMENTS)
    index, cluster = find_by_kind(documents, "Cluster", Cluster)
    assert index == 1
    assert isinstance(cluster, Cluster)
    assert cluster.metadata.name == "demo"
    assert cluster.spec.infrastructure_ref.kind == "LinodeCluster"


def test_replace_at_leaves_other_documents_untouched():
    documents = split(THREE_DOCUMENTS)
    before = list(documents)
    index, cluster = find_by_kind(documents, "Cluster", Cluster)
    cluster.metadata.name = "renamed"
    replace_at(documents, index, cluster)

    assert documents[0] == before[0]
    assert documents[2] == before[2]
    rewritten = yaml.safe_load(documents[1])
    assert rewritten["metadata"]["name"] == "renamed"
    # fields without a typed counterpart survive the rewrite
    assert rewritten["spec"]["clusterNetwork"]["pods"]["cidrBlocks"] == ["10.192.0.0/10"]


def test_replace_at_out_of_range():
    with pytest.raises(ManifestError):
        replace_at(["kind: A\n"], 3, {"kind": "B"})


def test_find_by_kind_skips_undecodable_documents():
    documents = ["key: [unclosed\n", "kind: Cluster\napiVersion: cluster.x-k8s.io/v1beta1\nmetadata: {name: x}\n"]
    index, cluster = find_by_kind(documents, "Cluster", Cluster)
    assert index == 1


def test_find_by_kind_raw_and_missing():
    documents = split(THREE_DOCUMENTS)
    index, raw = find_by_kind(documents, "Secret")
    assert index == 2
    assert raw["stringData"] == {"a": "b"}
    assert find_by_kind(documents, "LinodeCluster") is None


def test_find_by_kind_api_version_must_match():
    documents = ["apiVersion: example.com/v1\nkind: Cluster\nmetadata: {name: other}\n"]
    assert get_cluster_def(documents) is None


def test_find_by_kind_matching_document_that_does_not_fit():
    documents = ["kind: LinodeCluster\nspec: not-a-mapping\n"]
    with pytest.raises(ManifestError, match="failed to decode LinodeCluster"):
        find_by_kind(documents, "LinodeCluster", LinodeCluster)


def test_require_kind_missing():
    with pytest.raises(ManifestError, match="LinodeCluster"):
        require_kind(split(THREE_DOCUMENTS), "LinodeCluster", LinodeCluster)


def test_find_all_by_kind():
    documents = ["kind: A\nmetadata: {name: one}\n", "kind: B\n", "kind: A\nmetadata: {name: two}\n"]
    found = find_all_by_kind(documents, "A", Resource)
    assert [(index, r.metadata.name) for index, r in found] == [(0, "one"), (2, "two")]


def test_normalize_only_touches_the_cluster():
    documents = split(THREE_DOCUMENTS)
    before = list(documents)
    index, cluster = normalize(documents)

    assert index == 1
    assert documents[0] == before[0]
    assert documents[2] == before[2]
    ref = yaml.safe_load(documents[1])["spec"]["controlPlaneRef"]
    assert ref["name"] == CONTROL_PLANE_PLACEHOLDER
    assert ref["kind"] == "KThreesControlPlane"


def test_normalize_without_cluster():
    with pytest.raises(ManifestError, match="Cluster"):
        normalize(["kind: ConfigMap\n"])
