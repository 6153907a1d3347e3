import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from perfreview.core.exceptions import ValidationError
from perfreview.identity import Identity, IdentityProvider, require_role
from perfreview.schemas.common import utcnow
from perfreview.schemas.user import UserRole
from perfreview.store import DocumentStore

M = TypeVar("M", bound=BaseModel)


class BaseService:
    """
    Shared plumbing for domain services: injected store, identity provider
    and clock, plus logging helpers bound to the concrete service module.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: Optional[IdentityProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.identity = identity
        self._clock = clock or utcnow
        self._logger = logging.getLogger(self.__class__.__module__)

    def now(self) -> datetime:
        return self._clock()

    def require_role(self, *roles: UserRole) -> Identity:
        return require_role(self.identity, roles)

    def log_info(self, message: str, **extra: Any):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra: Any):
        self._logger.warning(message, extra=extra or None)

    def log_error(self, message: str, **extra: Any):
        self._logger.error(message, extra=extra or None)

    @staticmethod
    def parse(model: Type[M], data: Any) -> M:
        """Validate input into `model`, translating pydantic errors into ValidationError."""
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {model.__name__}",
                details={"errors": _error_list(e.errors())}
            ) from e


def _error_list(errors: Iterable[Dict[str, Any]]):
    return [
        {"field": ".".join(str(part) for part in error["loc"]) or "unknown", "msg": error["msg"]}
        for error in errors
    ]
