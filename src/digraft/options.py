"""Binding options accepted by ``provide`` and ``decorate``."""

import inspect
from dataclasses import dataclass
from typing import Any

from digraft.errors import InvalidConstructorError

__all__ = ["BindingOptions"]

_DELIMITER = "`"


@dataclass(frozen=True)
class BindingOptions:
    """Options applied to every value a constructor produces.

    Attributes:
        name: Bind every produced value under this name.
        group: Contribute every produced value to this value group.
        as_: Further types each produced value is also bound under. The constructor's
            result must be a subclass of each of them.

    Example:
        >>> scope.provide(make_buffer, as_=(Reader, Writer))
        >>> scope.provide(make_file, name="temp", as_=(Reader,))
    """

    name: str = ""
    group: str = ""
    as_: tuple[Any, ...] = ()

    def validate(self) -> None:
        """Check the options are consistent with each other.

        Raises:
            InvalidConstructorError: If ``name`` or ``as_`` is combined with ``group``,
                a name or group contains a backquote, or an alias is not a class.
        """
        if self.group:
            if self.name:
                raise InvalidConstructorError(
                    "cannot use named values with value groups: "
                    f"name:{self.name!r} provided with group:{self.group!r}"
                )
            if self.as_:
                raise InvalidConstructorError(
                    f"cannot use as_ with value groups: as_ provided with group:{self.group!r}"
                )

        if _DELIMITER in self.name:
            raise InvalidConstructorError(
                f"invalid name {self.name!r}: names cannot contain backquotes"
            )
        if _DELIMITER in self.group:
            raise InvalidConstructorError(
                f"invalid group {self.group!r}: group names cannot contain backquotes"
            )

        for alias in self.as_:
            if not inspect.isclass(alias):
                raise InvalidConstructorError(f"invalid as_({alias!r}): argument must be a class")
