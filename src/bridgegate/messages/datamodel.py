# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import hashlib
from collections.abc import Buffer, Iterable, MutableMapping
from io import BytesIO
from types import NotImplementedType, new_class
from typing import ClassVar, Protocol, Self, SupportsBytes, SupportsIndex, overload, runtime_checkable

__all__ = (  # noqa: RUF022
    # Protocols and types

    'WireData',
    'DataWireProtocol',
    'DataWireAdapter',

    # Adapters and the adapter registry

    'AdapterRegistry',

    'IntegerAdapter',
    'Int64Adapter',

    'StringAdapter',
    'String16Adapter',
    'String32Adapter',

    # Abstract types

    'Opaque',
    'VariableLengthList',
    'make_list_type',

    # Concrete types

    'AccountAddress',
)


type WireData = bytes | bytearray | memoryview | BytesIO


# Protocols

@runtime_checkable
class DataWireProtocol(Protocol):
    """The wire protocol for bridge message data elements"""

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self: ...

    def to_wire(self) -> bytes: ...

    def wire_length(self) -> int: ...


@runtime_checkable
class DataWireAdapter[T](Protocol):
    """Wire protocol adapter for a bridge message data element of type T"""

    _abstract_: ClassVar[bool] = True

    @staticmethod
    def from_wire(buffer: WireData) -> T: ...

    @staticmethod
    def to_wire(value: T, /) -> bytes: ...

    @staticmethod
    def wire_length(value: T, /) -> int: ...

    @staticmethod
    def validate(value: T, /) -> T: ...


class AdapterRegistry[T]:
    _adapters: ClassVar[MutableMapping[type, type[DataWireAdapter]]] = {}

    @classmethod
    def associate(cls, data_type: type[T], adapter: type[DataWireAdapter[T]]) -> None:
        if issubclass(data_type, DataWireProtocol):
            raise TypeError('Adapters for types that already implement DataWireProtocol must be explicitly provided with the element descriptors.')
        cls._adapters[data_type] = adapter

    @classmethod
    def get_adapter(cls, data_type: type[T]) -> type[DataWireAdapter[T]] | None:
        return cls._adapters.get(data_type, None)


# Helpers

def byte_length(number: int) -> int:
    """Return the number of bytes needed to represent the number"""
    return (number.bit_length() + 7) // 8


def read_exactly(buffer: WireData, size: int, what: str) -> bytes:
    """Read size bytes from the buffer or fail with a message mentioning what was being read"""
    if isinstance(buffer, BytesIO):
        data = buffer.read(size)
    else:
        data = bytes(buffer[:size])
    if len(data) < size:
        raise ValueError(f'Insufficient data in buffer to extract {what}')
    return data


def read_length_prefixed(buffer: BytesIO, sizelen: int, maxsize: int, what: str) -> bytes:
    length = int.from_bytes(read_exactly(buffer, sizelen, f'the length of {what}'), byteorder='big')
    if length > maxsize:
        raise ValueError(f'Data length is too big for {what} ({length} > {maxsize})')
    return read_exactly(buffer, length, what)


# Adapters

class IntegerAdapter:
    """Signed integers of a fixed bit length in two's complement, network byte order"""

    _abstract_: ClassVar[bool] = True
    _bits_: ClassVar[int] = NotImplemented
    _size_: ClassVar[int] = NotImplemented
    _min_: ClassVar[int] = NotImplemented
    _max_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, bits: int = NotImplemented, **kw: object) -> None:
        if bits is not NotImplemented:
            cls._bits_ = bits
            cls._size_ = bits // 8
            cls._min_, cls._max_ = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def describe(cls) -> str:
        return f'signed {cls._bits_}-bit integer'

    @classmethod
    def from_wire(cls, buffer: WireData) -> int:
        data = read_exactly(buffer, cls._size_, f'a {cls.describe()}')
        return int.from_bytes(data, byteorder='big', signed=True)

    @classmethod
    def to_wire(cls, value: int, /) -> bytes:
        return value.to_bytes(cls._size_, byteorder='big', signed=True)

    @classmethod
    def wire_length(cls, _: int, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: int, /) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f'Expected an integer, got {value.__class__.__qualname__!r}')
        if not cls._min_ <= value <= cls._max_:
            raise ValueError(f'Value is out of range for {cls.describe()}: {value!r}')
        return value


class Int64Adapter(IntegerAdapter, bits=64):
    pass


class StringAdapter:
    """Represent strings as UTF-8 encoded length prefixed bytes limited to maxsize"""

    _abstract_: ClassVar[bool] = True
    _maxsize_: ClassVar[int] = NotImplemented
    _sizelen_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, maxsize: int = NotImplemented, **kw: object) -> None:
        if maxsize is not NotImplemented:
            cls._maxsize_ = maxsize
            cls._sizelen_ = byte_length(maxsize)
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> str:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        data = read_length_prefixed(buffer, cls._sizelen_, cls._maxsize_, 'the string')
        try:
            return data.decode()
        except UnicodeDecodeError as exc:
            raise ValueError(f'Cannot decode bytes to string: {exc}') from exc

    @classmethod
    def to_wire(cls, value: str, /) -> bytes:
        data = value.encode()
        return len(data).to_bytes(cls._sizelen_, byteorder='big') + data

    @classmethod
    def wire_length(cls, value: str, /) -> int:
        return cls._sizelen_ + len(value.encode())

    @classmethod
    def validate(cls, value: str, /) -> str:
        if not isinstance(value, str):
            raise TypeError(f'Expected a string, got {value.__class__.__qualname__!r}')
        try:
            data = value.encode()
        except UnicodeEncodeError as exc:
            raise ValueError(f'Cannot encode string to UTF-8: {exc}') from exc
        if len(data) > cls._maxsize_:
            raise ValueError(f'Value is too long for string (max length is {cls._maxsize_}, value has {len(data)} bytes)')
        return value


class String16Adapter(StringAdapter, maxsize=2**16 - 1):
    pass


class String32Adapter(StringAdapter, maxsize=2**32 - 1):
    pass


AdapterRegistry.associate(int, Int64Adapter)
AdapterRegistry.associate(str, String32Adapter)


# Data types

class Opaque(bytes):
    """A bytes buffer of up to maxsize bytes, prefixed with its length"""

    _maxsize_: ClassVar[int] = NotImplemented
    _sizelen_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, maxsize: int = NotImplemented, **kw: object) -> None:
        if maxsize is not NotImplemented:
            cls._maxsize_ = maxsize
            cls._sizelen_ = byte_length(maxsize)
        super().__init_subclass__(**kw)

    @overload
    def __new__(cls) -> Self: ...

    @overload
    def __new__(cls, o: Iterable[SupportsIndex] | SupportsIndex | SupportsBytes | Buffer, /) -> Self: ...

    def __new__(cls, *args):
        if cls._maxsize_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract variable length bytes type {cls.__qualname__!r} that does not define its max size')
        instance = super().__new__(cls, *args)
        if len(instance) > cls._maxsize_:
            raise ValueError(f'{cls.__qualname__!r} objects can have at most {cls._maxsize_} bytes')
        return instance

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._sizelen_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract variable length bytes type {cls.__qualname__!r} that does not define its max size')
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        return cls(read_length_prefixed(buffer, cls._sizelen_, cls._maxsize_, repr(cls.__qualname__)))

    def to_wire(self) -> bytes:
        return len(self).to_bytes(self._sizelen_, byteorder='big') + self

    def wire_length(self) -> int:
        return self._sizelen_ + len(self)


class AccountAddress(Opaque, maxsize=255):
    """The address of the account that signs a transaction"""

    def __repr__(self) -> str:
        return f'<{self.__class__.__qualname__}: {self.hex()}>'

    def __str__(self) -> str:
        return self.hex()

    @classmethod
    def for_key_data(cls, key_data: bytes, *, length: int = 20) -> Self:
        """Derive the address from the raw bytes of a public key"""
        if not 0 < length <= hashlib.sha256().digest_size:
            raise ValueError(f'Invalid address length: {length!r}')
        return cls(hashlib.sha256(key_data).digest()[:length])


# List types

class VariableLengthList[T](tuple[T, ...]):
    """
    An immutable sequence of items that are encoded with an adapter, prefixed
    with the total byte length of the items.
    """

    __slots__ = ()

    _adapter_: type[DataWireAdapter[T]] = NotImplementedType  # type: ignore[assignment]
    _maxsize_: ClassVar[int] = NotImplemented
    _sizelen_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, adapter: type[DataWireAdapter[T]] | None = None, maxsize: int = NotImplemented, **kw: object) -> None:
        if adapter is not None:
            cls._adapter_ = adapter
        if maxsize is not NotImplemented:
            cls._maxsize_ = maxsize
            cls._sizelen_ = byte_length(maxsize)
        super().__init_subclass__(**kw)

    def __new__(cls, iterable: Iterable[T] = (), /) -> Self:
        if cls._adapter_ is NotImplementedType or cls._sizelen_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract list {cls.__qualname__!r} that does not define its item adapter and max size')
        return super().__new__(cls, [cls._adapter_.validate(item) for item in iterable])

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({list(self)!r})'

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._adapter_ is NotImplementedType or cls._sizelen_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract list {cls.__qualname__!r} that does not define its item adapter and max size')
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        items_buffer = BytesIO(read_length_prefixed(buffer, cls._sizelen_, cls._maxsize_, f'the values of {cls.__qualname__!r}'))
        items_length = len(items_buffer.getvalue())
        items = []
        while items_buffer.tell() < items_length:
            items.append(cls._adapter_.from_wire(items_buffer))
        return cls(items)

    def items_length(self) -> int:
        return sum(self._adapter_.wire_length(item) for item in self)

    def to_wire(self) -> bytes:
        return self.items_length().to_bytes(self._sizelen_, byteorder='big') + b''.join(self._adapter_.to_wire(item) for item in self)

    def wire_length(self) -> int:
        return self._sizelen_ + self.items_length()


def make_list_type[T](adapter: type[DataWireAdapter[T]], /, *, maxsize: int, name: str) -> type[VariableLengthList[T]]:
    return new_class(name, (VariableLengthList,), kwds={'adapter': adapter, 'maxsize': maxsize}, exec_body=lambda ns: ns.update(__slots__=()))
