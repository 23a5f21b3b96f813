from __future__ import annotations


class DomainError(Exception):
    """Regla de negocio violada; se traduce a una respuesta 4xx o a un mensaje al cliente."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class InvalidStatusTransitionError(DomainError):
    status_code = 400

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f'No se puede cambiar el estado de "{current}" a "{requested}".')
        self.current = current
        self.requested = requested


class InsufficientStockError(DomainError):
    status_code = 400

    def __init__(self, ingredient_name: str) -> None:
        super().__init__(f"Stock insuficiente de {ingredient_name}.")
        self.ingredient_name = ingredient_name
