"""Infrastructure provider capability."""

from abc import abstractmethod
from typing import Any, Callable, Dict, List, Optional

from capi_bootstrap.cloudinit.models import InitFile, ParsedManifest
from capi_bootstrap.models import Values
from capi_bootstrap.providers.base import Provider

Confirm = Callable[[str], bool]


class InfrastructureProvider(Provider):
    """Creates the bootstrap node and whatever fronts its API server."""

    @abstractmethod
    def pre_cmd(self, values: Values) -> None:
        """Build an authenticated client from the environment."""

    @abstractmethod
    def pre_deploy(self, values: Values) -> None:
        """Read the manifests, create the API front end and set ``values.cluster_endpoint``."""

    @abstractmethod
    def deploy(self, values: Values, user_data: bytes) -> None:
        """Create the bootstrap node with the cloud-init payload."""

    def post_deploy(self, values: Values) -> None:
        """Hook run after the state has been written."""

    @abstractmethod
    def update_manifests(self, values: Values) -> ParsedManifest:
        """Rewrite the infrastructure cluster resource once the front end exists."""

    @abstractmethod
    def delete(self, values: Values, force: bool = False, confirm: Optional[Confirm] = None) -> bool:
        """Tear down everything tagged with the cluster name.

        Returns:
            False if the operator declined the deletion
        """

    @abstractmethod
    def generate_capi_file(self, values: Values) -> InitFile:
        """The manifest installing this infrastructure provider."""

    @abstractmethod
    def generate_capi_machine(self, values: Values) -> InitFile:
        """Manifests adopting the bootstrap node as a CAPI machine."""

    def generate_additional_files(self, values: Values) -> List[InitFile]:
        return []

    def template_context(self) -> Dict[str, Any]:
        """Provider fields visible to manifest templates."""
        return {}
