# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from abc import ABC, abstractmethod
from collections.abc import Sequence
from inspect import Parameter, Signature
from io import BytesIO
from types import new_class
from typing import Any, ClassVar, Self, cast, dataclass_transform, overload

from .datamodel import AdapterRegistry, DataWireAdapter, DataWireProtocol, VariableLengthList, WireData, make_list_type

__all__ = (  # noqa: RUF022
    'Structure',
    'AnnotatedStructure',

    'Element',
    'ListElement',
)


class Structure:  # noqa: PLW1641
    """
    A wire structure made of a sequence of fields.

    Instances are built from keyword arguments only and their fields can be
    set only once, which makes them immutable after construction. The fields
    are encoded on the wire in the order in which they were defined.
    """

    __signature__: ClassVar[Signature] = Signature()

    _fields_: ClassVar[dict[str, 'FieldDescriptor']] = {}

    _all_arguments: ClassVar[frozenset[str]]
    _mandatory_arguments: ClassVar[frozenset[str]]
    _default_arguments: ClassVar[dict[str, object]]

    def __new__(cls, **kw: object) -> Self:
        if not cls._all_arguments.issuperset(kw):
            raise TypeError(f'Got an unexpected keyword argument {next(iter(set(kw) - cls._all_arguments))!r}')
        if not cls._mandatory_arguments.issubset(kw):
            raise TypeError(f'Missing a required keyword argument {next(iter(cls._mandatory_arguments - set(kw)))!r}')
        return super().__new__(cls)

    def __init__(self, **kw: object) -> None:
        kw = self._default_arguments | kw
        for name in self._fields_:
            setattr(self, name, kw[name])

    def __init_subclass__(cls, **kw: object) -> None:
        super().__init_subclass__(**kw)

        # all the fields on this structure (both inherited and locally defined)
        fields = cls._fields_ | {name: value for name, value in cls.__dict__.items() if isinstance(value, FieldDescriptor)}

        cls._fields_ = fields

        cls.__signature__ = Signature(parameters=[descriptor.signature_parameter for descriptor in fields.values()])
        cls._all_arguments = frozenset(cls.__signature__.parameters)
        cls._mandatory_arguments = frozenset(p.name for p in cls.__signature__.parameters.values() if p.default is Parameter.empty)
        cls._default_arguments = {p.name: p.default for p in cls.__signature__.parameters.values() if p.default is not Parameter.empty}

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({', '.join(f'{name}={getattr(self, name)!r}' for name in self._fields_)})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Structure):
            return self._fields_.keys() == other._fields_.keys() and all(getattr(self, name) == getattr(other, name) for name in self._fields_)
        return NotImplemented

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        """
        Decode a structure from the buffer.

        A BytesIO buffer is read up to the end of the structure and can hold
        more data after it. Any other buffer must hold exactly one structure.
        """
        if isinstance(buffer, BytesIO):
            return cls._read_fields(buffer)
        buffer = BytesIO(buffer)
        instance = cls._read_fields(buffer)
        if (remaining := len(buffer.getvalue()) - buffer.tell()) > 0:
            raise ValueError(f'Got {remaining} unexpected bytes after the {cls.__qualname__} structure')
        return instance

    @classmethod
    def _read_fields(cls, buffer: BytesIO) -> Self:
        instance = super().__new__(cls)
        for field in cls._fields_.values():
            field.from_wire(instance, buffer)
        return instance

    def to_wire(self) -> bytes:
        return b''.join(field.to_wire(self) for field in self._fields_.values())

    def wire_length(self) -> int:
        return sum(field.wire_length(self) for field in self._fields_.values())


# Helpers

def _protocol2adapter[T: DataWireProtocol](proto: type[T]) -> type[DataWireAdapter[T]]:
    # Build a stand-in adapter for a type that implements DataWireProtocol, so that
    # descriptors can use adapters exclusively. The stand-in validates that values
    # are instances of the type.

    def validate(value: T, /) -> T:
        if not isinstance(value, proto):
            raise TypeError(f'Expected a {proto.__qualname__!r} value, got {value.__class__.__qualname__!r}')
        return value

    def prepare(ns: dict) -> None:
        ns['_abstract_'] = False
        ns['from_wire'] = staticmethod(proto.from_wire)
        ns['to_wire'] = staticmethod(proto.to_wire)
        ns['wire_length'] = staticmethod(proto.wire_length)
        ns['validate'] = staticmethod(validate)

    adapter = new_class(f'{proto.__name__}AdapterStandIn', (DataWireAdapter[T],), exec_body=prepare)
    adapter.__module__ = __name__
    adapter.__qualname__ = f'_protocol2adapter.<generated>.{adapter.__name__}'

    return adapter


def _select_adapter[T](element_type: type[T], adapter: type[DataWireAdapter[T]] | None) -> type[DataWireAdapter[T]]:
    if adapter is None:
        if issubclass(element_type, DataWireProtocol):
            adapter = cast(type[DataWireAdapter[T]], _protocol2adapter(element_type))
        else:
            adapter = AdapterRegistry.get_adapter(element_type)
    if adapter is None:
        raise TypeError('Either the element type must implement the DataWireProtocol or an adapter must be provided')
    if adapter._abstract_:
        raise TypeError(f'Cannot use abstract adapter {adapter.__qualname__!r} (need to select a concrete implementation of it, usually one that defines its size)')
    return adapter


# Field descriptors

class FieldDescriptor(ABC):
    name: str | None
    default: Any

    @property
    @abstractmethod
    def signature_parameter(self) -> Parameter: ...

    @abstractmethod
    def from_wire(self, instance: Structure, buffer: WireData) -> None: ...

    @abstractmethod
    def to_wire(self, instance: Structure) -> bytes: ...

    @abstractmethod
    def wire_length(self, instance: Structure) -> int: ...

    def __set_name__(self, owner: type[Structure], name: str) -> None:
        if self.name is None:
            self.name = name
        elif name != self.name:
            raise TypeError(f'Cannot assign the same {self.__class__.__qualname__!r} to two different names: {self.name!r} and {name!r}')

    def __delete__(self, instance: Structure) -> None:
        raise AttributeError(f'Attribute {self.name!r} of {instance.__class__.__qualname__!r} object cannot be deleted')

    def _check_name(self) -> str:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        return self.name

    def _get_value(self, instance: Structure) -> Any:  # noqa: ANN401
        name = self._check_name()
        try:
            return instance.__dict__[name]
        except KeyError as exc:
            raise AttributeError(f'Attribute {name!r} of object {instance.__class__.__qualname__!r} is not set') from exc

    def _set_value(self, instance: Structure, value: object) -> None:
        name = self._check_name()
        if name in instance.__dict__:
            raise AttributeError(f'Attribute {name!r} of {instance.__class__.__qualname__!r} object is read-only')
        instance.__dict__[name] = value

    def _parameter(self, annotation: object) -> Parameter:
        name = self._check_name()
        kwds = {} if self.default is NotImplemented else {'default': self.default}
        return Parameter(name=name, kind=Parameter.KEYWORD_ONLY, annotation=annotation, **kwds)


class Element[T](FieldDescriptor):
    def __init__(self, element_type: type[T], /, *, default: T = NotImplemented, adapter: type[DataWireAdapter[T]] | None = None) -> None:
        self.name = None
        self.type = element_type
        self.default = default
        self.provided_adapter = adapter
        self.adapter = _select_adapter(element_type, adapter)

    def __repr__(self) -> str:
        adapter = self.provided_adapter.__qualname__ if self.provided_adapter is not None else None
        return f'{self.__class__.__name__}({self.type.__qualname__}, default={self.default!r}, adapter={adapter})'

    @property
    def signature_parameter(self) -> Parameter:
        return self._parameter(self.type)

    @overload
    def __get__(self, instance: None, owner: type[Structure]) -> Self: ...

    @overload
    def __get__(self, instance: Structure, owner: type[Structure] | None = None) -> T: ...

    def __get__(self, instance: Structure | None, owner: type[Structure] | None = None) -> Self | T:
        if instance is None:
            return self
        return self._get_value(instance)

    def __set__(self, instance: Structure, value: T) -> None:
        self._set_value(instance, self.adapter.validate(value))

    def from_wire(self, instance: Structure, buffer: WireData) -> None:
        name = self._check_name()
        try:
            instance.__dict__[name] = self.adapter.from_wire(buffer)
        except ValueError as exc:
            raise ValueError(f'Failed to read the {instance.__class__.__qualname__}.{name} element from wire: {exc}') from exc

    def to_wire(self, instance: Structure) -> bytes:
        return self.adapter.to_wire(self._get_value(instance))

    def wire_length(self, instance: Structure) -> int:
        return self.adapter.wire_length(self._get_value(instance))


class ListElement[T](FieldDescriptor):
    """
    An immutable list of items prefixed with the byte length of the encoded
    items. Any sequence is accepted and stored as a tuple based list type.

    When optional is true, the element also accepts None to signal that the
    list is absent. There is no distinct wire representation for an absent
    list, so it is encoded as an empty list and it decodes as an empty list.
    """

    def __init__(self, item_type: type[T], /, *, default: Sequence[T] | None = NotImplemented, adapter: type[DataWireAdapter[T]] | None = None, maxsize: int, optional: bool = False) -> None:
        if default is None and not optional:
            raise TypeError('Only optional list elements can use None as the default value')
        self.name = None
        self.default = default
        self.maxsize = maxsize
        self.optional = optional
        self.item_type = item_type
        self.list_type = make_list_type(_select_adapter(item_type, adapter), maxsize=maxsize, name=f'{item_type.__name__.capitalize()}List')

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.item_type.__qualname__}, default={self.default!r}, maxsize={self.maxsize!r}, optional={self.optional!r})'

    @property
    def signature_parameter(self) -> Parameter:
        annotation = Sequence[self.item_type] | None if self.optional else Sequence[self.item_type]  # type: ignore[name-defined]
        return self._parameter(annotation)

    @overload
    def __get__(self, instance: None, owner: type[Structure]) -> Self: ...

    @overload
    def __get__(self, instance: Structure, owner: type[Structure] | None = None) -> VariableLengthList[T] | None: ...

    def __get__(self, instance: Structure | None, owner: type[Structure] | None = None) -> Self | VariableLengthList[T] | None:
        if instance is None:
            return self
        return self._get_value(instance)

    def __set__(self, instance: Structure, value: Sequence[T] | None) -> None:
        if value is None:
            if not self.optional:
                raise TypeError(f'The {self.name!r} field cannot be None')
            self._set_value(instance, None)
        else:
            self._set_value(instance, self.list_type(value))

    def from_wire(self, instance: Structure, buffer: WireData) -> None:
        name = self._check_name()
        try:
            instance.__dict__[name] = self.list_type.from_wire(buffer)
        except ValueError as exc:
            raise ValueError(f'Failed to read the {instance.__class__.__qualname__}.{name} element from wire: {exc}') from exc

    def to_wire(self, instance: Structure) -> bytes:
        value = self._get_value(instance)
        return (value if value is not None else self.list_type()).to_wire()

    def wire_length(self, instance: Structure) -> int:
        value = self._get_value(instance)
        return (value if value is not None else self.list_type()).wire_length()


@dataclass_transform(kw_only_default=True, frozen_default=True, field_specifiers=(Element, ListElement))
class AnnotatedStructure(Structure):
    pass
