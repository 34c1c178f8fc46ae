# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Inbound batches

   The relay client delivers the messages it picked up from a peer in
   batches.  Each batch names the peer the messages come from, carries an
   ordered list of opaque messages together with a parallel list of their
   sequence numbers, and the highest sequence number that the peer has
   acknowledged.  The batch is signed by the submitter account as part of
   the enclosing transaction.

   On the wire a batch is encoded using binary fields, with all integers
   in network byte order:

     String16        peer
     uint32          messages_length   // byte length of the messages
     String32        messages[]
     uint32          nums_length       // byte length of the nums
     int64           nums[]
     int64           ack
     Opaque8         submitter

   Sequence numbers and the ack are signed, so that a malformed batch can
   be represented and rejected by validation instead of being silently
   coerced.  The bytes that are signed are not the wire bytes, but the
   canonical encoding of the batch (see bridgegate.messages.canonical).

"""

import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Self

from bridgegate.configuration import Configuration

from .canonical import encode
from .datamodel import AccountAddress, String16Adapter
from .elements import AnnotatedStructure, Element, ListElement
from .validation import validate

__all__ = 'InboundBatch', 'RelayMessages', 'build'


@dataclass(frozen=True, kw_only=True, slots=True)
class RelayMessages:
    """The messages, sequence numbers and ack delivered by the relay client for a peer"""

    messages: Sequence[str] | None = None
    nums: Sequence[int] | None = None
    ack: int = 0

    @classmethod
    def from_json(cls, data: str | bytes) -> Self:
        """Decode the relay payload, keeping missing or null lists as None and reading a missing or null ack as 0"""
        try:
            payload = json.loads(data)
        except ValueError as exc:
            raise ValueError(f'Cannot decode relay messages: {exc}') from exc
        if not isinstance(payload, dict):
            raise ValueError(f'Relay messages must be a JSON object, got {type(payload).__name__!r}')  # noqa: TRY004
        messages = cls._list_field(payload, 'messages', str)
        nums = cls._list_field(payload, 'nums', int)
        ack = payload.get('ack')
        if ack is None:
            ack = 0
        elif isinstance(ack, bool) or not isinstance(ack, int):
            raise ValueError(f'The ack must be an integer, got {ack!r}')
        return cls(messages=messages, nums=nums, ack=ack)

    @staticmethod
    def _list_field(payload: dict[str, Any], name: str, item_type: type) -> list | None:
        value = payload.get(name)
        if value is None:
            return None
        if not isinstance(value, list) or any(isinstance(item, bool) or not isinstance(item, item_type) for item in value):
            raise ValueError(f'The {name} must be a list of {item_type.__name__} values')
        if item_type is str:
            for index, item in enumerate(value):
                try:
                    item.encode()
                except UnicodeEncodeError as exc:
                    raise ValueError(f'The {name} must be valid unicode text, the item at index {index} is not: {exc}') from exc
        return value

    def to_json(self) -> str:
        payload = {
            'messages': list(self.messages) if self.messages is not None else None,
            'nums': list(self.nums) if self.nums is not None else None,
            'ack': self.ack,
        }
        return json.dumps(payload)


class InboundBatch(AnnotatedStructure):
    peer: Element[str] = Element(str, adapter=String16Adapter)
    messages: ListElement[str] = ListElement(str, maxsize=2**32 - 1, optional=True)
    nums: ListElement[int] = ListElement(int, maxsize=2**32 - 1, optional=True)
    ack: Element[int] = Element(int)
    submitter: Element[AccountAddress] = Element(AccountAddress)

    def __repr__(self) -> str:
        return f'<{self.__class__.__qualname__}: peer={self.peer!r} messages={self.messages!r} nums={self.nums!r} ack={self.ack!r} submitter={self.submitter!s}>'

    @staticmethod
    def route(configuration: Configuration | None = None) -> str:
        """The router key of the module that handles inbound batches"""
        return (configuration or Configuration.default()).route

    @staticmethod
    def type(configuration: Configuration | None = None) -> str:
        """The action name of inbound batch transactions"""
        return (configuration or Configuration.default()).message_type

    def signers(self) -> list[AccountAddress]:
        return [self.submitter]

    def pairs(self) -> Iterator[tuple[str, int]]:
        """Iterate over the (message, sequence number) pairs"""
        messages = self.messages or ()
        nums = self.nums or ()
        if len(messages) != len(nums):
            raise ValueError(f'The messages and nums lists have different lengths ({len(messages)} != {len(nums)})')
        return zip(messages, nums, strict=True)

    def validate_basic(self) -> None:
        validate(self)

    def sign_bytes(self, configuration: Configuration | None = None) -> bytes:
        return encode(self, configuration=configuration)


def build(peer: str, relay_messages: RelayMessages, submitter: AccountAddress) -> InboundBatch:
    """Assemble an inbound batch from the relay client data without validating it"""
    return InboundBatch(peer=peer, messages=relay_messages.messages, nums=relay_messages.nums, ack=relay_messages.ack, submitter=submitter)
