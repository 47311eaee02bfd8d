from functools import cache
from typing import Annotated, Any, Callable, TypeVar

from fastapi import Depends, FastAPI, Request

T = TypeVar("T")


def bind(app: FastAPI, tp: type[T], value: T) -> None:
    """Make ``value`` available to routes that ask for ``Injected[tp]``."""
    if not hasattr(app.state, "bindings"):
        app.state.bindings = {}
    app.state.bindings[tp] = value


@cache
def _provider(tp: type) -> Callable[[Request], Any]:
    def provide(request: Request) -> Any:
        try:
            return request.app.state.bindings[tp]
        except (AttributeError, KeyError):
            raise RuntimeError(f"nothing bound for {tp.__name__}") from None

    return provide


class Injected:
    def __class_getitem__(cls, tp: type[T]) -> Any:
        return Annotated[tp, Depends(_provider(tp))]
