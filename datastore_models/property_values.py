import typing

from datastore_models.errors import ConfigurationError
from datastore_models.validations import is_blank

FALSE_VALUES = frozenset([False, 0, "0", "f", "F", "false", "FALSE", "off", "OFF"])


def _to_integer(value: typing.Any) -> int:
    try:
        return int(value)
    except ValueError:
        return int(float(value))


def _to_boolean(value: typing.Any) -> bool:
    return value not in FALSE_VALUES


CONVERTERS: typing.Dict[str, typing.Callable[[typing.Any], typing.Any]] = {
    "integer": _to_integer,
    "float": float,
    "boolean": _to_boolean,
}


class PropertyValues:
    def default_property_value(self, name: str, value: typing.Any) -> None:
        """Sets `name` to `value` unless it already holds something.

        Boolean defaults only replace None, so an explicit False survives.
        """
        current = getattr(self, name)
        if isinstance(value, bool):
            if current is None:
                setattr(self, name, value)
        elif is_blank(current):
            setattr(self, name, value)

    def format_property_value(self, name: str, type_name: str) -> None:
        try:
            convert = CONVERTERS[type_name]
        except KeyError:
            raise ConfigurationError(f"Supported types are {', '.join(CONVERTERS)}, got {type_name!r}")
        current = getattr(self, name)
        if is_blank(current):
            return
        setattr(self, name, convert(current))
