# SPDX-FileCopyrightText: 2024-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from collections.abc import Sequence
from typing import Protocol

from bridgegate.messages import InboundBatch
from bridgegate.messages.datamodel import AccountAddress
from bridgegate.messages.exceptions import ValidationError

__all__ = 'KernelInbound', 'deliver'


log = logging.getLogger(__name__)


class KernelInbound(Protocol):
    """The inbound entry point of the execution kernel that consumes batches"""

    def accept(self, peer: str, messages: Sequence[str], nums: Sequence[int], ack: int, submitter: AccountAddress) -> bool: ...


def deliver(batch: InboundBatch, kernel: KernelInbound) -> bool:
    """
    Hand a batch over to the kernel.

    The batch is validated first and a batch that fails validation never
    reaches the kernel. The kernel is called exactly once for a valid batch
    and always receives lists, never None. Returns whether the kernel
    accepted the batch.
    """
    try:
        batch.validate_basic()
    except ValidationError as exc:
        log.info('Rejected inbound batch from peer %r submitted by %s: %s', batch.peer, batch.submitter, exc)
        raise

    messages = list(batch.messages) if batch.messages is not None else []
    nums = list(batch.nums) if batch.nums is not None else []

    log.debug('Delivering %d messages from peer %r (ack=%d) submitted by %s', len(messages), batch.peer, batch.ack, batch.submitter)
    accepted = kernel.accept(batch.peer, messages, nums, int(batch.ack), batch.submitter)
    if not accepted:
        log.info('The kernel did not accept the inbound batch from peer %r', batch.peer)
    return bool(accepted)
