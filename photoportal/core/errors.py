from __future__ import annotations


class PortalError(Exception):
    """Base for errors the API boundary maps onto an HTTP status."""

    status_code = 500
    needs_auth = False


class ValidationError(PortalError):
    status_code = 400


class NoTokenError(PortalError):
    """No stored credential for the provider; an admin must complete OAuth sign-in."""

    status_code = 403
    needs_auth = True


class AuthError(PortalError):
    """The provider rejected our credentials (expired, revoked or missing scope)."""

    status_code = 403
    needs_auth = True


class RefreshError(PortalError):
    """The token endpoint refused to refresh the stored credential."""

    status_code = 403
    needs_auth = True


class NotFoundError(PortalError):
    status_code = 404


class UpstreamError(PortalError):
    status_code = 500


class RequestTimeoutError(UpstreamError):
    pass


class StorageError(PortalError):
    """The database refused a write we cannot retry our way out of."""

    status_code = 500
