from typing import Any

from typer import Typer


def new_typer(**kwargs: Any) -> Typer:
    """
    Create a Typer application that shows its help when invoked without arguments and prints plain tracebacks.
    """

    return Typer(no_args_is_help=True, pretty_exceptions_enable=False, **kwargs)
