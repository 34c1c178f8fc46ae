# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import json
from io import BytesIO
from typing import ClassVar

import pytest

from bridgegate.configuration import Configuration
from bridgegate.messages import InboundBatch, RelayMessages, build
from bridgegate.messages.canonical import encode
from bridgegate.messages.datamodel import (
    AccountAddress,
    AdapterRegistry,
    DataWireAdapter,
    DataWireProtocol,
    Int64Adapter,
    IntegerAdapter,
    Opaque,
    String16Adapter,
    String32Adapter,
    StringAdapter,
    VariableLengthList,
    make_list_type,
)
from bridgegate.messages.elements import AnnotatedStructure, Element, ListElement, Structure


SUBMITTER = AccountAddress(bytes(range(1, 21)))
SURROGATE = chr(0xd800)


def make_batch(**kw: object) -> InboundBatch:
    arguments: dict[str, object] = {'peer': 'chain-a', 'messages': ['hello'], 'nums': [0], 'ack': 0, 'submitter': SUBMITTER}
    return InboundBatch(**(arguments | kw))


class TestDataModel:

    def test_protocols(self) -> None:
        # Adapters have non-method members so they cannot be checked with issubclass, only with isinstance
        assert isinstance(IntegerAdapter, DataWireAdapter)
        assert isinstance(StringAdapter, DataWireAdapter)

        assert issubclass(Opaque, DataWireProtocol)
        assert issubclass(AccountAddress, DataWireProtocol)
        assert issubclass(VariableLengthList, DataWireProtocol)

    def test_adapter_registry(self) -> None:
        assert AdapterRegistry.get_adapter(int) is Int64Adapter
        assert AdapterRegistry.get_adapter(str) is String32Adapter
        assert AdapterRegistry.get_adapter(bytes) is None

        with pytest.raises(TypeError):
            AdapterRegistry.associate(AccountAddress, String16Adapter)  # type: ignore[arg-type]

    def test_integer_adapter(self) -> None:
        assert Int64Adapter._size_ == 8
        assert Int64Adapter._min_ == -(2**63)
        assert Int64Adapter._max_ == 2**63 - 1
        assert Int64Adapter.describe() == 'signed 64-bit integer'

        assert Int64Adapter.to_wire(-1) == b'\xff' * 8
        assert Int64Adapter.from_wire(b'\xff' * 8) == -1
        assert Int64Adapter.from_wire(BytesIO(b'\x00' * 7 + b'\x2a')) == 42
        assert Int64Adapter.wire_length(12345) == 8

        assert Int64Adapter.validate(-5) == -5
        with pytest.raises(TypeError):
            Int64Adapter.validate(True)  # noqa: FBT003
        with pytest.raises(TypeError):
            Int64Adapter.validate('1')  # type: ignore[arg-type]
        with pytest.raises(ValueError, match=r'Value is out of range for signed 64-bit integer'):
            Int64Adapter.validate(2**63)
        with pytest.raises(ValueError, match=r'Value is out of range for signed 64-bit integer'):
            Int64Adapter.validate(-(2**63) - 1)
        with pytest.raises(ValueError, match=r'Insufficient data in buffer'):
            Int64Adapter.from_wire(b'\x00\x00')

    def test_string_adapters(self) -> None:
        assert String16Adapter._sizelen_ == 2
        assert String32Adapter._sizelen_ == 4

        assert String16Adapter.to_wire('abc') == b'\x00\x03abc'
        assert String16Adapter.from_wire(b'\x00\x03abc') == 'abc'
        assert String16Adapter.wire_length('ünï') == 2 + len('ünï'.encode())
        assert String32Adapter.to_wire('') == b'\x00\x00\x00\x00'

        with pytest.raises(TypeError):
            String16Adapter.validate(b'abc')  # type: ignore[arg-type]
        with pytest.raises(ValueError, match=r'Value is too long for string'):
            String16Adapter.validate('x' * 2**16)
        with pytest.raises(ValueError, match=r'Cannot encode string to UTF-8'):
            String32Adapter.validate('a' + SURROGATE)
        with pytest.raises(ValueError, match=r'Cannot decode bytes to string'):
            String16Adapter.from_wire(b'\x00\x01\xff')
        with pytest.raises(ValueError, match=r'Insufficient data in buffer'):
            String16Adapter.from_wire(b'\x00\x05abc')

    def test_account_address(self) -> None:
        address = AccountAddress(b'\xab\xcd')
        assert str(address) == 'abcd'
        assert repr(address) == '<AccountAddress: abcd>'
        assert address.to_wire() == b'\x02\xab\xcd'
        assert address.wire_length() == 3
        assert AccountAddress.from_wire(address.to_wire()) == address
        assert type(AccountAddress.from_wire(address.to_wire())) is AccountAddress

        assert not AccountAddress()
        assert AccountAddress().to_wire() == b'\x00'

        assert len(AccountAddress.for_key_data(b'key')) == 20
        assert len(AccountAddress.for_key_data(b'key', length=32)) == 32
        assert AccountAddress.for_key_data(b'key', length=8) == AccountAddress.for_key_data(b'key')[:8]

        with pytest.raises(ValueError, match=r'Invalid address length'):
            AccountAddress.for_key_data(b'key', length=33)
        with pytest.raises(ValueError, match=r'can have at most 255 bytes'):
            AccountAddress(b'x' * 256)
        with pytest.raises(ValueError, match=r'Data length is too big|Insufficient data'):
            AccountAddress.from_wire(b'\x05\x01')

    def test_abstract_opaque(self) -> None:
        with pytest.raises(TypeError, match=r'Cannot instantiate abstract variable length bytes type'):
            Opaque(b'abc')

    def test_variable_length_list(self) -> None:
        with pytest.raises(TypeError, match=r'Cannot instantiate abstract list'):
            VariableLengthList([1, 2])

        IntList = make_list_type(Int64Adapter, maxsize=2**32 - 1, name='IntList')
        StrList = make_list_type(String16Adapter, maxsize=2**16 - 1, name='StrList')

        numbers = IntList([1, -1])
        assert numbers == (1, -1)
        assert repr(numbers) == 'IntList([1, -1])'
        assert numbers.items_length() == 16
        assert numbers.wire_length() == 20
        assert numbers.to_wire() == b'\x00\x00\x00\x10' + Int64Adapter.to_wire(1) + Int64Adapter.to_wire(-1)
        assert IntList.from_wire(numbers.to_wire()) == numbers
        assert IntList().to_wire() == b'\x00\x00\x00\x00'
        assert IntList(iter([3])) == (3,)

        strings = StrList(['ab', 'c'])
        assert strings.to_wire() == b'\x00\x07' + b'\x00\x02ab' + b'\x00\x01c'
        assert StrList.from_wire(strings.to_wire()) == strings

        with pytest.raises(TypeError):
            IntList(['1'])
        with pytest.raises(ValueError, match=r'Value is out of range'):
            IntList([2**63])
        with pytest.raises(ValueError, match=r'Insufficient data in buffer'):
            IntList.from_wire(b'\x00\x00\x00\x10' + Int64Adapter.to_wire(1))
        with pytest.raises(ValueError, match=r'Insufficient data in buffer'):
            IntList.from_wire(b'\x00\x00\x00\x04\x00\x00\x00\x01')

    def test_lists_are_immutable(self) -> None:
        IntList = make_list_type(Int64Adapter, maxsize=2**32 - 1, name='IntList')
        numbers = IntList([1, 2])
        with pytest.raises(AttributeError):
            numbers.append(3)  # type: ignore[attr-defined]
        with pytest.raises(TypeError):
            numbers[0] = -1  # type: ignore[index]
        with pytest.raises(TypeError):
            del numbers[0]  # type: ignore[attr-defined]
        with pytest.raises(AttributeError):
            numbers.extra = 1  # type: ignore[attr-defined]
        assert numbers == (1, 2)


class TestElements:

    def test_structure(self) -> None:
        class Point(AnnotatedStructure):
            x: Element[int] = Element(int)
            y: Element[int] = Element(int, default=0)

        assert list(Point._fields_) == ['x', 'y']
        assert list(Point.__signature__.parameters) == ['x', 'y']

        point = Point(x=1)
        assert point.x == 1
        assert point.y == 0
        assert point == Point(x=1, y=0)
        assert point != Point(x=2)
        assert repr(point) == 'Point(x=1, y=0)'
        assert point.wire_length() == 16
        assert Point.from_wire(point.to_wire()) == point

        with pytest.raises(TypeError, match=r'Missing a required keyword argument'):
            Point(y=1)  # type: ignore[call-arg]
        with pytest.raises(TypeError, match=r'Got an unexpected keyword argument'):
            Point(x=1, z=1)  # type: ignore[call-arg]
        with pytest.raises(TypeError):
            Point(1)  # type: ignore[misc]

    def test_trailing_data(self) -> None:
        class Point(AnnotatedStructure):
            x: Element[int] = Element(int)

        data = Point(x=1).to_wire()
        with pytest.raises(ValueError, match=r'Got 3 unexpected bytes after the .*Point structure'):
            Point.from_wire(data + b'abc')

        # a stream can hold more data after the structure
        buffer = BytesIO(data + data)
        assert Point.from_wire(buffer) == Point(x=1)
        assert Point.from_wire(buffer) == Point(x=1)

    def test_fields_are_write_once(self) -> None:
        class Record(Structure):
            name: Element[str] = Element(str, adapter=String16Adapter)

        record = Record(name='first')
        with pytest.raises(AttributeError, match=r'is read-only'):
            record.name = 'second'  # type: ignore[misc]
        with pytest.raises(AttributeError, match=r'cannot be deleted'):
            del record.name  # type: ignore[misc]
        assert record.name == 'first'

    def test_element_descriptors(self) -> None:
        with pytest.raises(TypeError, match=r'an adapter must be provided'):
            Element(bytes)
        with pytest.raises(TypeError, match=r'Cannot use abstract adapter'):
            Element(str, adapter=StringAdapter)
        with pytest.raises(TypeError, match=r'Only optional list elements'):
            ListElement(int, default=None, maxsize=255)

        element = Element(int)
        with pytest.raises(TypeError, match=r'without calling __set_name__'):
            element.signature_parameter  # noqa: B018

        class Holder(Structure):
            value = element

        with pytest.raises(TypeError, match=r'two different names'):
            element.__set_name__(Holder, 'other')

        class Addressed(Structure):
            address: Element[AccountAddress] = Element(AccountAddress)

        with pytest.raises(TypeError, match=r"Expected a 'AccountAddress' value"):
            Addressed(address=b'\x01')  # type: ignore[arg-type]

    def test_list_elements(self) -> None:
        class Container(Structure):
            required: ListElement[int] = ListElement(int, maxsize=2**16 - 1)
            optional: ListElement[str] = ListElement(str, maxsize=2**16 - 1, optional=True, default=None)

        container = Container(required=[1, 2])
        assert container.required == (1, 2)
        assert container.optional is None
        assert container.to_wire() == b'\x00\x10' + Int64Adapter.to_wire(1) + Int64Adapter.to_wire(2) + b'\x00\x00'

        # an absent list has no wire representation of its own
        decoded = Container.from_wire(container.to_wire())
        assert decoded.required == (1, 2)
        assert decoded.optional == ()

        with pytest.raises(TypeError, match=r"The 'required' field cannot be None"):
            Container(required=None)  # type: ignore[arg-type]

    def test_wire_errors(self) -> None:
        with pytest.raises(ValueError, match=r'Failed to read the InboundBatch.peer element from wire'):
            InboundBatch.from_wire(b'\x00\x10abc')
        with pytest.raises(ValueError, match=r'Failed to read the InboundBatch.submitter element from wire'):
            InboundBatch.from_wire(make_batch().to_wire()[:-1])
        with pytest.raises(ValueError, match=r'Got 7 unexpected bytes after the InboundBatch structure'):
            InboundBatch.from_wire(make_batch().to_wire() + b'garbage')


class TestInboundBatch:

    def test_construction(self) -> None:
        batch = make_batch()
        assert batch.peer == 'chain-a'
        assert batch.messages == ('hello',)
        assert batch.nums == (0,)
        assert batch.ack == 0
        assert batch.submitter == SUBMITTER

        assert list(InboundBatch.__signature__.parameters) == ['peer', 'messages', 'nums', 'ack', 'submitter']
        assert repr(batch) == f"<InboundBatch: peer='chain-a' messages=StrList(['hello']) nums=IntList([0]) ack=0 submitter={SUBMITTER.hex()}>"

        # any sequence is accepted for the lists
        assert make_batch(messages=('hello',), nums=range(1)) == batch

        # Malformed values are representable, so validation can report them
        invalid = make_batch(peer='', messages=['a', 'b'], nums=[-1], ack=-5, submitter=AccountAddress())
        assert invalid.nums == (-1,)
        assert invalid.ack == -5

        with pytest.raises(TypeError, match=r'Missing a required keyword argument'):
            InboundBatch(peer='chain-a', messages=[], nums=[], ack=0)  # type: ignore[call-arg]
        with pytest.raises(ValueError, match=r'Value is out of range'):
            make_batch(ack=2**63)
        with pytest.raises(TypeError):
            make_batch(nums=['0'])
        with pytest.raises(ValueError, match=r'Cannot encode string to UTF-8'):
            make_batch(messages=[SURROGATE])

    def test_absent_lists(self) -> None:
        batch = make_batch(messages=None, nums=None)
        assert batch.messages is None
        assert batch.nums is None
        assert batch.wire_length() == len(batch.to_wire())

        decoded = InboundBatch.from_wire(batch.to_wire())
        assert decoded.messages == ()
        assert decoded.nums == ()
        assert decoded == make_batch(messages=[], nums=[])

    def test_immutable(self) -> None:
        batch = make_batch()
        with pytest.raises(AttributeError, match=r'is read-only'):
            batch.ack = 1  # type: ignore[misc]
        with pytest.raises(AttributeError, match=r'is read-only'):
            batch.messages = ['other']  # type: ignore[misc]

    def test_lists_cannot_change_after_signing(self) -> None:
        messages = ['hello']
        batch = make_batch(messages=messages)
        sign_bytes = encode(batch)

        # the batch does not share the list it was built from
        messages.append('injected')
        assert batch.messages == ('hello',)

        with pytest.raises(AttributeError):
            batch.messages.append('injected')  # type: ignore[union-attr]
        with pytest.raises(AttributeError):
            batch.nums.append(1)  # type: ignore[union-attr]
        with pytest.raises(TypeError):
            batch.nums[0] = -1  # type: ignore[index]
        assert encode(batch) == sign_bytes

    def test_wire_format(self) -> None:
        batch = make_batch()
        expected = (
            b'\x00\x07chain-a' +
            b'\x00\x00\x00\x09' + b'\x00\x00\x00\x05hello' +
            b'\x00\x00\x00\x08' + b'\x00' * 8 +
            b'\x00' * 8 +
            b'\x14' + bytes(range(1, 21))
        )
        assert batch.to_wire() == expected
        assert batch.wire_length() == len(expected) == 63
        assert InboundBatch.from_wire(expected) == batch
        assert InboundBatch.from_wire(BytesIO(expected)) == batch

        negative = make_batch(nums=[-1], ack=-5)
        assert InboundBatch.from_wire(negative.to_wire()) == negative

    def test_metadata(self) -> None:
        batch = make_batch()
        assert InboundBatch.route() == 'swingset'
        assert InboundBatch.type() == 'deliver'
        assert batch.route() == 'swingset'
        assert batch.signers() == [SUBMITTER]

        configuration = Configuration(route='relay', message_type='inbound')
        assert InboundBatch.route(configuration) == 'relay'
        assert InboundBatch.type(configuration) == 'inbound'

    def test_pairs(self) -> None:
        batch = make_batch(messages=['a', 'b'], nums=[1, 2])
        assert list(batch.pairs()) == [('a', 1), ('b', 2)]
        assert list(make_batch(messages=None, nums=None).pairs()) == []

        with pytest.raises(ValueError, match=r'different lengths \(2 != 1\)'):
            make_batch(messages=['a', 'b'], nums=[1]).pairs()


class TestBuild:

    def test_build(self) -> None:
        relay_messages = RelayMessages(messages=['hello'], nums=[0], ack=0)
        assert build('chain-a', relay_messages, SUBMITTER) == make_batch()

    def test_build_copies_verbatim(self) -> None:
        # build never validates
        relay_messages = RelayMessages(messages=['a', ''], nums=[-1], ack=-5)
        batch = build('', relay_messages, AccountAddress())
        assert batch.peer == ''
        assert batch.messages == ('a', '')
        assert batch.nums == (-1,)
        assert batch.ack == -5
        assert batch.submitter == b''

        absent = build('chain-a', RelayMessages(), SUBMITTER)
        assert absent.messages is None
        assert absent.nums is None
        assert absent.ack == 0

    def test_build_from_json(self) -> None:
        relay_messages = RelayMessages.from_json('{"messages": ["hello"], "nums": [0], "ack": null}')
        assert build('chain-a', relay_messages, SUBMITTER) == make_batch()


class TestRelayMessages:
    payload: ClassVar[str] = '{"messages": ["hello", "world"], "nums": [1, 2], "ack": 3}'

    def test_from_json(self) -> None:
        relay_messages = RelayMessages.from_json(self.payload)
        assert relay_messages == RelayMessages(messages=['hello', 'world'], nums=[1, 2], ack=3)
        assert RelayMessages.from_json(self.payload.encode()) == relay_messages

        assert RelayMessages.from_json('{}') == RelayMessages()
        assert RelayMessages.from_json('{"messages": null, "nums": null}') == RelayMessages(messages=None, nums=None, ack=0)
        assert RelayMessages.from_json('{"messages": [], "nums": []}') == RelayMessages(messages=[], nums=[], ack=0)

    def test_null_ack(self) -> None:
        assert RelayMessages.from_json('{"ack": null}') == RelayMessages(ack=0)
        assert RelayMessages.from_json('{"messages": ["a"], "nums": [4], "ack": null}').ack == 0

    def test_to_json(self) -> None:
        relay_messages = RelayMessages.from_json(self.payload)
        assert RelayMessages.from_json(relay_messages.to_json()) == relay_messages
        assert RelayMessages().to_json() == '{"messages": null, "nums": null, "ack": 0}'

    def test_invalid_json(self) -> None:
        with pytest.raises(ValueError, match=r'Cannot decode relay messages'):
            RelayMessages.from_json('{')
        with pytest.raises(ValueError, match=r'must be a JSON object'):
            RelayMessages.from_json('[]')
        with pytest.raises(ValueError, match=r'The messages must be a list of str values'):
            RelayMessages.from_json('{"messages": [1]}')
        with pytest.raises(ValueError, match=r'The nums must be a list of int values'):
            RelayMessages.from_json('{"nums": [true]}')
        with pytest.raises(ValueError, match=r'The nums must be a list of int values'):
            RelayMessages.from_json('{"nums": "1"}')
        with pytest.raises(ValueError, match=r'The ack must be an integer'):
            RelayMessages.from_json('{"ack": "3"}')

    def test_unencodable_messages(self) -> None:
        # JSON allows escaped lone surrogates, which cannot be encoded as UTF-8
        payload = json.dumps({'messages': ['ok', 'bad' + SURROGATE], 'nums': [0, 1], 'ack': 0})
        with pytest.raises(ValueError, match=r'The messages must be valid unicode text, the item at index 1 is not'):
            RelayMessages.from_json(payload)
