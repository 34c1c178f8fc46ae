# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from functools import cache
from pathlib import Path

from lxml import etree

__all__ = 'ETreeElement', 'RelaxNGValidator'


type ETreeElement = etree._Element  # noqa: SLF001


class RelaxNGValidator:
    schema_directory = Path(__file__).parent

    def __init__(self, schema_file: str) -> None:
        self.schema_path = self.schema_directory / schema_file
        self.schema = etree.RelaxNG(file=str(self.schema_path))

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({self.schema_path.name!r})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RelaxNGValidator):
            return self.schema_path == other.schema_path
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.schema_path)

    @classmethod
    @cache
    def for_schema(cls, schema_file: str) -> 'RelaxNGValidator':
        return cls(schema_file)

    def validate(self, element: ETreeElement) -> bool:
        return self.schema.validate(element)

    def error_message(self) -> str:
        error = self.schema.error_log.last_error
        return error.message if error is not None else 'unknown error'
