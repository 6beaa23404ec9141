"""Exception hierarchy for capi-bootstrap."""


class BootstrapError(Exception):
    """Base exception for bootstrap errors."""
    pass


class ConfigurationError(BootstrapError):
    """Exception raised for missing or invalid configuration."""
    pass


class ProviderNotFoundError(ConfigurationError):
    """Exception raised when a provider name is not registered."""

    def __init__(self, kind: str, name: str, options=None):
        self.kind = kind
        self.name = name
        self.options = list(options or [])
        message = f"{kind} provider {name!r} not found"
        if self.options:
            message += f", options are: {', '.join(self.options)}"
        super().__init__(message)


class MissingCredentialsError(ConfigurationError):
    """Exception raised when a required credential is absent from the environment."""

    def __init__(self, *variables: str):
        self.variables = variables
        super().__init__(f"missing required environment variable(s): {', '.join(variables)}")


class TemplateError(BootstrapError):
    """Exception raised when a template cannot be parsed or executed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"template {source}: {message}")


class ManifestError(BootstrapError):
    """Exception raised for undecodable documents or missing resource kinds."""
    pass


class AlreadyExistsError(BootstrapError):
    """Exception raised when a resource or state record already exists for a cluster."""
    pass


class RemoteCallError(BootstrapError):
    """Exception raised when a remote API call fails."""

    def __init__(self, operation: str, message: str, status_code=None):
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"{operation}: {message}")


class LinodeAPIError(RemoteCallError):
    """Exception raised for Linode API failures."""
    pass


class BackendError(RemoteCallError):
    """Exception raised for state backend failures."""
    pass


class NoCertificatesError(BootstrapError):
    """Exception raised when trust material is requested before it was generated."""

    def __init__(self, message: str = "missing control plane certs"):
        super().__init__(message)


class PayloadTooLargeError(BootstrapError):
    """Exception raised when a payload exceeds the ceiling and cannot be offloaded."""
    pass


class StateNotFoundError(BootstrapError):
    """Exception raised when no persisted state exists for a cluster."""

    def __init__(self, cluster_name: str):
        self.cluster_name = cluster_name
        super().__init__(f"no state found for cluster {cluster_name!r}")


class StateDecodeError(BootstrapError):
    """Exception raised when persisted state cannot be decoded."""
    pass


class AssemblyError(BootstrapError):
    """Exception raised when an artifact of the cloud-init payload fails to generate."""

    def __init__(self, artifact: str, cause: Exception):
        self.artifact = artifact
        self.cause = cause
        super().__init__(f"failed to generate {artifact}: {cause}")
