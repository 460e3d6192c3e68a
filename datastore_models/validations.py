import typing

import attr
import inflection

from datastore_models.attribute_table import NestedModelsNode, PropertyNode, TransientNode, Visitor
from datastore_models.callbacks import HaltedCallbackChain

BLANK = "can't be blank"
INVALID = "is invalid"


def is_blank(value: typing.Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return not value
    return False


@attr.s(auto_attribs=True)
class Errors:
    messages: typing.Dict[str, typing.List[str]] = attr.Factory(dict)

    def add(self, name: str, message: str) -> None:
        self.messages.setdefault(name, []).append(message)

    def clear(self) -> None:
        self.messages.clear()

    def __getitem__(self, name: str) -> typing.List[str]:
        return list(self.messages.get(name, ()))

    def __iter__(self) -> typing.Iterator[typing.Tuple[str, str]]:
        for name, messages in self.messages.items():
            for message in messages:
                yield name, message

    def __len__(self) -> int:
        return sum(len(messages) for messages in self.messages.values())

    def __bool__(self) -> bool:
        return len(self) > 0

    @property
    def count(self) -> int:
        return len(self)

    def full_messages(self) -> typing.List[str]:
        return [f"{inflection.humanize(name)} {message}" for name, message in self]


def required() -> typing.Callable:
    def validate_required(instance: typing.Any, attribute: attr.Attribute, value: typing.Any) -> None:
        if value is not False and is_blank(value):
            raise ValueError(BLANK)

    return validate_required


def length(minimum: typing.Optional[int] = None, maximum: typing.Optional[int] = None) -> typing.Callable:
    def validate_length(instance: typing.Any, attribute: attr.Attribute, value: typing.Any) -> None:
        if value is None:
            return
        if maximum is not None and len(value) > maximum:
            raise ValueError(f"is too long (maximum is {maximum} characters)")
        if minimum is not None and len(value) < minimum:
            raise ValueError(f"is too short (minimum is {minimum} characters)")

    return validate_length


def associated() -> typing.Callable:
    """Valid only when every nested child model is valid. Every child gets validated."""

    def validate_associated(instance: typing.Any, attribute: attr.Attribute, value: typing.Any) -> None:
        results = [child.is_valid() for child in value or ()]
        if not all(results):
            raise ValueError(INVALID)

    return validate_associated


def _message(error: Exception) -> str:
    return str(error.args[0]) if error.args else INVALID


class ValidatingVisitor(Visitor):
    def __init__(self, instance: typing.Any) -> None:
        self._instance = instance

    def _validate(self, node: typing.Union[PropertyNode, TransientNode, NestedModelsNode]) -> None:
        value = getattr(self._instance, node.name)
        for validator in node.validators:
            try:
                validator(self._instance, node.attribute, value)
            except (ValueError, TypeError) as e:
                self._instance.errors.add(node.name, _message(e))

    def visit_property(self, prop: PropertyNode) -> None:
        self._validate(prop)

    def visit_transient(self, transient: TransientNode) -> None:
        self._validate(transient)

    def visit_nested_models(self, nested_models: NestedModelsNode) -> None:
        self._validate(nested_models)


class Validations:
    errors: Errors

    def validate(self) -> None:
        """Override to add errors that span more than one attribute."""

    def is_valid(self) -> bool:
        self.errors.clear()
        try:
            with self.run_callbacks("validation"):
                ValidatingVisitor(self).traverse_from(self.attribute_table().root)
                self.validate()
        except HaltedCallbackChain:
            return False
        return not self.errors
