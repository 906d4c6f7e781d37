"""
Core module for NearHelp

Contains configuration management, logging, persistence infrastructure,
background task handling and the error taxonomy shared by all services.
"""

from .errors import (
    NearHelpError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    UnauthenticatedError,
    UnavailableError
)

__all__ = [
    'NearHelpError',
    'ValidationError',
    'NotFoundError',
    'ForbiddenError',
    'ConflictError',
    'UnauthenticatedError',
    'UnavailableError'
]
