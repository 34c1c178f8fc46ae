# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later


__all__ = 'ValidationError', 'InvalidSubmitter', 'EmptyPeer', 'LengthMismatch', 'EmptyMessage', 'NegativeSequence', 'NegativeAck'  # noqa: RUF022


class ValidationError(ValueError):
    """Raised when an inbound batch violates its structural contract."""


class InvalidSubmitter(ValidationError):
    def __init__(self) -> None:
        super().__init__('The submitter address cannot be empty')


class EmptyPeer(ValidationError):
    def __init__(self) -> None:
        super().__init__('The peer cannot be empty')


class LengthMismatch(ValidationError):
    """Raised when the messages and nums lists have different lengths."""

    def __init__(self, messages_length: int, nums_length: int) -> None:
        super().__init__(f'Messages and nums must have the same length ({messages_length} != {nums_length})')
        self.messages_length = messages_length
        self.nums_length = nums_length


class EmptyMessage(ValidationError):
    def __init__(self, index: int) -> None:
        super().__init__(f'The message at index {index} is empty')
        self.index = index


class NegativeSequence(ValidationError):
    def __init__(self, index: int, num: int) -> None:
        super().__init__(f'The sequence number at index {index} is negative: {num}')
        self.index = index
        self.num = num


class NegativeAck(ValidationError):
    def __init__(self, ack: int) -> None:
        super().__init__(f'The ack cannot be negative: {ack}')
        self.ack = ack
