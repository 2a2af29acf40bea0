"""Turn service calls into structured results: the response model on success, an ErrorResponse for any GameError."""

import logging
from typing import Callable, ParamSpec, TypeVar

from online_chess.api.models import ErrorResponse
from online_chess.core.exceptions import GameError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def as_result(operation: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R | ErrorResponse:
    try:
        return operation(*args, **kwargs)
    except GameError as error:
        logger.info("%s rejected: %s (%s)", getattr(operation, "__name__", operation), error.kind, error.message)
        return ErrorResponse.from_error(error)
