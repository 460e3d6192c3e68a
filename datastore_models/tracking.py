import copy
import typing

import attr

from datastore_models.errors import TrackChangesError


@attr.s(auto_attribs=True, frozen=True)
class TrackedAttribute:
    """Change tracking descriptor of one opted-in attribute, built once per model class."""

    name: str

    def current(self, instance: "TrackChanges") -> typing.Any:
        return getattr(instance, self.name)

    def baseline(self, instance: "TrackChanges") -> typing.Any:
        return instance._baselines.get(self.name)

    def is_dirty(self, instance: "TrackChanges") -> bool:
        return self.name in instance._dirty

    def differs_from_baseline(self, instance: "TrackChanges") -> bool:
        return self.current(instance) != self.baseline(instance)

    def set_with_dirty_check(self, instance: "TrackChanges", value: typing.Any) -> typing.Any:
        """Marks the attribute dirty when `value` differs from the value it replaces, returns `value`."""
        if value != self.current(instance):
            instance._dirty.add(self.name)
        return value


def track_change(instance: "TrackChanges", attribute: attr.Attribute, value: typing.Any) -> typing.Any:
    """attrs on_setattr hook feeding assignments to the tracked attribute table."""
    descriptor = type(instance)._tracked.get(attribute.name)
    if descriptor is not None:
        return descriptor.set_with_dirty_check(instance, value)
    return value


class TrackChanges:
    _tracked: typing.ClassVar[typing.Dict[str, TrackedAttribute]] = {}

    exclude_from_save: bool
    marked_for_destruction: bool
    nested_attributes: typing.Optional[typing.List[str]]

    @classmethod
    def tracked_attributes(cls) -> typing.List[str]:
        return list(cls._tracked)

    def _descriptor(self, name: str) -> TrackedAttribute:
        try:
            return self._tracked[name]
        except KeyError:
            raise TrackChangesError(f"{type(self).__name__}.{name} is not configured for change tracking.")

    def reload(self) -> None:
        """Forgets pending changes; the current values become the new baselines."""
        self._dirty: typing.Set[str] = set()
        self._baselines: typing.Dict[str, typing.Any] = {
            name: copy.deepcopy(descriptor.current(self)) for name, descriptor in self._tracked.items()
        }
        self.exclude_from_save = False

    @property
    def changed(self) -> bool:
        return bool(self._dirty)

    def changed_attributes(self) -> typing.List[str]:
        return [name for name in self._tracked if name in self._dirty]

    def attribute_changed(self, name: str) -> bool:
        return self._descriptor(name).is_dirty(self)

    def attribute_was(self, name: str) -> typing.Any:
        return self._descriptor(name).baseline(self)

    def attribute_change(self, name: str) -> typing.Optional[typing.Tuple[typing.Any, typing.Any]]:
        descriptor = self._descriptor(name)
        if not descriptor.is_dirty(self):
            return None
        return descriptor.baseline(self), descriptor.current(self)

    def values_changed(self) -> bool:
        """Whether saving this model would write anything new.

        Call it after validation so values coerced by validation hooks (form strings back into
        floats, say) compare equal to what was loaded. Sets ``exclude_from_save`` to the opposite.
        """
        if not self._tracked:
            raise TrackChangesError(f"{type(self).__name__} has not been configured for change tracking.")
        changed = bool(self.marked_for_destruction) or any(
            descriptor.is_dirty(self) and descriptor.differs_from_baseline(self)
            for descriptor in self._tracked.values()
        )
        self.exclude_from_save = not changed
        return changed

    def remove_unmodified_children(self) -> None:
        if not self._tracked or not self.has_nested_attributes():
            return
        for name in self.nested_attributes:
            children = getattr(self, name) or []
            setattr(self, name, [child for child in children if child.values_changed()])
        self.nested_attributes = [name for name in self.nested_attributes if getattr(self, name)]
