"""Error taxonomy shared by the resolver, upstream client and gateway."""

from typing import Any


class GatewayError(Exception):
    """Base class for classified gateway failures."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | list[Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidParameter(GatewayError):
    """Malformed or unsupported request input."""

    code = "INVALID_PARAMETER"


class UnknownAsset(GatewayError):
    """Alias is not in the symbol table."""

    code = "UNKNOWN_ASSET"

    def __init__(self, alias: str):
        super().__init__(f"Unknown asset: {alias!r}", details={"alias": alias})
        self.alias = alias


class AssetNotFound(GatewayError):
    """Alias resolved, but the provider has no data for the asset."""

    code = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: str, alias: str | None = None):
        details = {"id": asset_id}
        if alias is not None:
            details["alias"] = alias
        super().__init__(f"No market data available for {alias or asset_id}", details=details)
        self.asset_id = asset_id
        self.alias = alias


class UpstreamTimeout(GatewayError):
    """The provider did not answer within the configured timeout."""

    code = "UPSTREAM_TIMEOUT"


class UpstreamUnavailable(GatewayError):
    """Any other upstream failure, including malformed payloads."""

    code = "UPSTREAM_UNAVAILABLE"


class InternalError(GatewayError):
    code = "INTERNAL_ERROR"
