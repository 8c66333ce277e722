"""
Custom exceptions for the school administration system
"""


class SchoolAdminError(Exception):
    """Base exception for the school administration system"""
    pass


class ValidationError(SchoolAdminError):
    """Validation error"""
    pass


class AuthenticationError(SchoolAdminError):
    """Authentication error"""
    pass


class AuthorizationError(SchoolAdminError):
    """Authorization error"""
    pass


class NotFoundError(SchoolAdminError):
    """Requested record does not exist"""
    pass


class DatabaseError(SchoolAdminError):
    """Database error"""
    pass


class PublicIdError(SchoolAdminError):
    """Unique public identifier could not be generated"""
    pass
