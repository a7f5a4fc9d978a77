"""
Error taxonomy shared by the data, storage, auth and summary layers.
"""

from __future__ import annotations


class RestaurantError(Exception):
    """Base class for errors raised by the backend layers."""

    http_status: int = 500


class InvalidArgument(RestaurantError, ValueError):
    """A required identifier or object was not provided."""

    http_status = 400


class RestaurantNotFound(RestaurantError, LookupError):
    http_status = 404


class AuthenticationFailed(RestaurantError):
    """The identity provider rejected the presented ID token."""

    http_status = 401


class BackendUnavailable(RestaurantError):
    """The database, object storage or model provider call failed."""

    http_status = 502


class ConfigurationMissing(RestaurantError):
    """A credential required by a collaborator is not configured."""

    http_status = 503
