# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from typing import TYPE_CHECKING

from .exceptions import EmptyMessage, EmptyPeer, InvalidSubmitter, LengthMismatch, NegativeAck, NegativeSequence

if TYPE_CHECKING:
    from . import InboundBatch

__all__ = 'validate',  # noqa: COM818


def validate(batch: 'InboundBatch') -> None:
    """
    Run the stateless checks on an inbound batch.

    The checks run in a fixed order and the first violation is raised as
    the matching ValidationError subclass. An absent messages or nums list
    is treated as an empty list. Ordering of the sequence numbers, within
    the batch or relative to earlier batches, is not checked here.
    """

    if not batch.submitter:
        raise InvalidSubmitter
    if not batch.peer:
        raise EmptyPeer

    messages = batch.messages or ()
    nums = batch.nums or ()

    if len(messages) != len(nums):
        raise LengthMismatch(len(messages), len(nums))
    for index, (message, num) in enumerate(zip(messages, nums, strict=True)):
        if not message:
            raise EmptyMessage(index)
        if num < 0:
            raise NegativeSequence(index, num)
    if batch.ack < 0:
        raise NegativeAck(batch.ack)
