# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from collections.abc import Callable
from dataclasses import dataclass, fields
from functools import cache
from os import PathLike
from pathlib import Path
from typing import ClassVar, Self

from lxml import etree

from .schema import ETreeElement, RelaxNGValidator

__all__ = 'Configuration', 'ConfigurationError', 'NAMESPACE'  # noqa: RUF022


NAMESPACE = 'urn:bridgegate:config'


class ConfigurationError(ValueError):
    """Raised when a configuration document cannot be parsed or is invalid."""


@dataclass(frozen=True, kw_only=True, slots=True)
class Configuration:
    """
    The bridge configuration.

    It is stored as an XML document, where each setting is an optional
    child element of the root element (missing settings use the default
    value):

        <bridge xmlns="urn:bridgegate:config">
          <route>swingset</route>
          <message-type>deliver</message-type>
          <codec-name>swingset/DeliverInbound</codec-name>
          <address-length>20</address-length>
        </bridge>
    """

    root_name: ClassVar[str] = 'bridge'
    validator: ClassVar[RelaxNGValidator] = RelaxNGValidator.for_schema('bridge.rng')

    route: str = 'swingset'
    message_type: str = 'deliver'
    codec_name: str = 'swingset/DeliverInbound'
    address_length: int = 20

    def __post_init__(self) -> None:
        for name in ('route', 'message_type', 'codec_name'):
            if not getattr(self, name):
                raise ConfigurationError(f'The {self.xml_name(name)} setting cannot be empty')
        if not 1 <= self.address_length <= 32:  # noqa: PLR2004
            raise ConfigurationError(f'The address-length setting must be between 1 and 32, got {self.address_length!r}')

    @staticmethod
    def xml_name(name: str) -> str:
        return name.replace('_', '-')

    @classmethod
    @cache
    def default(cls) -> Self:
        return cls()

    @classmethod
    def from_xml(cls, element: ETreeElement) -> Self:
        if element.tag != f'{{{NAMESPACE}}}{cls.root_name}':
            raise ConfigurationError(f'The configuration root element must be {cls.root_name!r} in the {NAMESPACE!r} namespace, got {element.tag!r}')
        if not cls.validator.validate(element):
            raise ConfigurationError(f'Invalid configuration: {cls.validator.error_message()}')
        converters: dict[str, Callable[[str], object]] = {'address_length': int}
        settings = {}
        for field in fields(cls):
            child = element.find(f'{{{NAMESPACE}}}{cls.xml_name(field.name)}')
            if child is not None:
                settings[field.name] = converters.get(field.name, str)((child.text or '').strip())
        return cls(**settings)

    @classmethod
    def from_string(cls, data: str | bytes) -> Self:
        if isinstance(data, str):
            data = data.encode()
        try:
            element = etree.fromstring(data, parser=etree.XMLParser(resolve_entities=False, no_network=True))
        except etree.XMLSyntaxError as exc:
            raise ConfigurationError(f'Cannot parse configuration: {exc}') from exc
        return cls.from_xml(element)

    @classmethod
    def from_file(cls, path: str | PathLike[str]) -> Self:
        return cls.from_string(Path(path).expanduser().read_bytes())

    def to_xml(self) -> ETreeElement:
        root = etree.Element(f'{{{NAMESPACE}}}{self.root_name}', nsmap={None: NAMESPACE})
        for field in fields(self):
            child = etree.SubElement(root, f'{{{NAMESPACE}}}{self.xml_name(field.name)}')
            child.text = str(getattr(self, field.name))
        return root

    def to_string(self) -> str:
        return etree.tostring(self.to_xml(), encoding='unicode', pretty_print=True)
