"""
Excepciones personalizadas para la aplicación GharBeti.
"""


class GharbetiException(Exception):
    """Excepción base para todas las excepciones de GharBeti."""

    error_code = "error"

    def __init__(self, message: str = "Error en la aplicación"):
        self.message = message
        super().__init__(self.message)


class NotFoundException(GharbetiException):
    """Excepción cuando un recurso no se encuentra."""

    error_code = "not_found"

    def __init__(self, message: str = "Recurso no encontrado"):
        super().__init__(message)


class UnauthorizedException(GharbetiException):
    """Excepción cuando el usuario no está autenticado."""

    error_code = "unauthorized"

    def __init__(self, message: str = "No autorizado"):
        super().__init__(message)


class ForbiddenException(GharbetiException):
    """Excepción cuando el usuario no tiene permisos sobre el recurso."""

    error_code = "forbidden"

    def __init__(self, message: str = "Acceso prohibido"):
        super().__init__(message)


class InvalidOperationException(GharbetiException):
    """Excepción cuando el estado actual no permite la operación."""

    error_code = "invalid_operation"

    def __init__(self, message: str = "Operación no permitida en el estado actual"):
        super().__init__(message)


class ConflictException(GharbetiException):
    """Excepción cuando otra operación concurrente ganó la carrera."""

    error_code = "conflict"

    def __init__(self, message: str = "Conflicto con el recurso"):
        super().__init__(message)


class ValidationException(GharbetiException):
    """Excepción cuando falla la validación de datos."""

    error_code = "validation_error"

    def __init__(self, message: str = "Error de validación"):
        super().__init__(message)


class DealSyncException(GharbetiException):
    """
    Excepción cuando el anuncio no pudo actualizarse durante un trato.

    La conversación se revierte antes de lanzarla, por lo que el cliente
    puede reintentar la operación completa.
    """

    error_code = "deal_sync_failed"

    def __init__(self, message: str = "No se pudo actualizar el anuncio del trato"):
        super().__init__(message)


class TransportAuthException(GharbetiException):
    """Excepción cuando falla la autenticación de una conexión en tiempo real."""

    error_code = "transport_auth_failed"

    def __init__(self, message: str = "Autenticación de la conexión fallida"):
        super().__init__(message)
