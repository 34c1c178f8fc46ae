# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Canonical encoding of inbound batches

   The canonical encoding is the byte sequence that the submitter signs
   and that the authentication layer verifies the signature against.  It
   is compact JSON with the object keys sorted recursively and the batch
   wrapped in a type envelope:

     {"type":"swingset/DeliverInbound","value":{"Ack":"0","Messages":["hello"],
      "Nums":["0"],"Peer":"chain-a","Submitter":"<address in hex>"}}

   The 64-bit integers are rendered as decimal strings and the text is
   UTF-8 encoded, with the characters that the reference JSON encoder
   escapes for HTML safety ('<', '>', '&', U+2028 and U+2029) written as
   backslash-u escapes.

   An absent messages or nums list encodes exactly like an empty list.

"""

import json
from typing import TYPE_CHECKING, Any

from bridgegate.configuration import Configuration

if TYPE_CHECKING:
    from . import InboundBatch

__all__ = 'encode', 'sort_json'


_escape_table = str.maketrans({char: f'\\u{ord(char):04x}' for char in ('<', '>', '&', chr(0x2028), chr(0x2029))})


def _dump(data: Any) -> bytes:  # noqa: ANN401
    text = json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False, allow_nan=False)
    return text.translate(_escape_table).encode()


def sort_json(data: str | bytes) -> bytes:
    """Return the canonical form of a JSON document"""
    return _dump(json.loads(data))


def encode(batch: 'InboundBatch', *, configuration: Configuration | None = None) -> bytes:
    """Return the canonical bytes of the batch, used for signing and for verifying signatures"""
    configuration = configuration or Configuration.default()

    # A decoder may return None instead of an empty list
    messages = list(batch.messages) if batch.messages is not None else []
    nums = list(batch.nums) if batch.nums is not None else []

    document = {
        'type': configuration.codec_name,
        'value': {
            'Peer': batch.peer,
            'Messages': messages,
            'Nums': [str(int(num)) for num in nums],
            'Ack': str(int(batch.ack)),
            'Submitter': batch.submitter.hex(),
        },
    }
    return _dump(document)
