"""
AreaFlow error taxonomy.

ConfigurationError  - a binding references something that does not exist
                      (service, capability, connection, token). The unit of
                      work is skipped for the current sweep.
ExternalServiceError - a third-party API call failed. Transient failures are
                      retried naturally on the next sweep; permanent ones are
                      logged the same way at the engine level.
"""

from typing import Optional


class AreaFlowError(Exception):
    """Base class for all AreaFlow errors."""


class ConfigurationError(AreaFlowError):
    """A binding references a service, capability or connection that is unusable."""


class UnknownCapabilityError(ConfigurationError):
    def __init__(self, service_name: str, capability_name: Optional[str] = None):
        self.service_name = service_name
        self.capability_name = capability_name
        if capability_name:
            msg = f"Unknown capability '{capability_name}' on service '{service_name}'"
        else:
            msg = f"Unknown service '{service_name}'"
        super().__init__(msg)


class MissingConnectionError(ConfigurationError):
    def __init__(self, connection_id: Optional[str], service_name: str):
        self.connection_id = connection_id
        self.service_name = service_name
        super().__init__(f"Connection '{connection_id}' not found for service '{service_name}'")


class MissingCredentialError(ConfigurationError):
    """The resolved connection has no usable access token."""

    def __init__(self, service_name: str, detail: str = "access token not found"):
        self.service_name = service_name
        super().__init__(f"{service_name}: {detail}")


class ExternalServiceError(AreaFlowError):
    """A call to a third-party API failed."""

    def __init__(
        self,
        message: str,
        service_name: str = "",
        status_code: Optional[int] = None,
    ):
        self.service_name = service_name
        self.status_code = status_code
        super().__init__(message)


class TransientExternalError(ExternalServiceError):
    """Network failure, timeout, rate limit, 5xx or an undecodable body."""


class PermanentExternalError(ExternalServiceError):
    """4xx response: bad credentials or bad parameters."""
