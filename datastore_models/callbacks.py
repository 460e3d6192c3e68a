import contextlib
import typing

from datastore_models.errors import Error

BEFORE = "before"
AFTER = "after"

EVENTS = frozenset(["validation", "save", "update", "destroy"])

HOOK_MARKER = "_datastore_hook"

HookKey = typing.Tuple[str, str]


class HaltedCallbackChain(Error):
    pass


def _hook(timing: str, event: str) -> typing.Callable[[typing.Callable], typing.Callable]:
    if event not in EVENTS:
        raise ValueError(f"Unknown callback event {event!r}, expected one of {sorted(EVENTS)}")

    def decorator(method: typing.Callable) -> typing.Callable:
        markers = getattr(method, HOOK_MARKER, ())
        setattr(method, HOOK_MARKER, markers + ((timing, event),))
        return method

    return decorator


def before(event: str) -> typing.Callable[[typing.Callable], typing.Callable]:
    """Registers a method to run before `event`. Returning False halts the operation."""
    return _hook(BEFORE, event)


def after(event: str) -> typing.Callable[[typing.Callable], typing.Callable]:
    return _hook(AFTER, event)


def collect_hooks(cls: typing.Type) -> typing.Dict[HookKey, typing.List[str]]:
    # Base class hooks first; a method overridden in a subclass keeps its original slot
    hooks: typing.Dict[HookKey, typing.List[str]] = {}
    for klass in reversed(cls.__mro__):
        for name, member in vars(klass).items():
            for key in getattr(member, HOOK_MARKER, ()):
                names = hooks.setdefault(key, [])
                if name not in names:
                    names.append(name)
    return hooks


class Callbacks:
    _hooks: typing.ClassVar[typing.Dict[HookKey, typing.List[str]]] = {}

    def run_hooks(self, timing: str, event: str) -> None:
        for name in self._hooks.get((timing, event), ()):
            if getattr(self, name)() is False and timing == BEFORE:
                raise HaltedCallbackChain(f"{type(self).__name__}.{name} halted {event}")

    @contextlib.contextmanager
    def run_callbacks(self, event: str) -> typing.Generator[None, None, None]:
        self.run_hooks(BEFORE, event)
        yield
        self.run_hooks(AFTER, event)
