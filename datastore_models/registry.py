import typing

import attr

from datastore_models.attribute_table import AttributeTable
from datastore_models.errors import ConfigurationError


@attr.s(auto_attribs=True)
class Registry:
    # TODO: one registry per connection provider, so two projects can declare the same kind
    models_to_tables: typing.Dict[typing.Type, AttributeTable] = attr.Factory(dict)
    kinds_to_models: typing.Dict[str, typing.Type] = attr.Factory(dict)

    def register(self, model_cls: typing.Type, table: AttributeTable) -> None:
        self.models_to_tables[model_cls] = table
        self.kinds_to_models[model_cls.__name__] = model_cls
        self.kinds_to_models[table.root.kind] = model_cls

    def table_for(self, model_cls: typing.Type) -> AttributeTable:
        return self.models_to_tables[model_cls]

    def model_for(self, name: str) -> typing.Type:
        try:
            return self.kinds_to_models[name]
        except KeyError:
            raise ConfigurationError(f"No model registered under {name!r}")


registry = Registry()
