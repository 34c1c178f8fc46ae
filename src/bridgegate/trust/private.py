# SPDX-FileCopyrightText: 2024-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from enum import Enum
from os import PathLike
from pathlib import Path
from tempfile import NamedTemporaryFile

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey, EllipticCurvePublicKey
from cryptography.hazmat.primitives.asymmetric.ed448 import Ed448PrivateKey, Ed448PublicKey
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, Encoding, NoEncryption, PrivateFormat, PublicFormat, load_pem_private_key

__all__ = 'KeyType', 'PrivateKey', 'PublicKey', 'load_private_key', 'public_key_bytes', 'save_private_key'


type PrivateKey = Ed25519PrivateKey | Ed448PrivateKey | EllipticCurvePrivateKey
type PublicKey = Ed25519PublicKey | Ed448PublicKey | EllipticCurvePublicKey


class KeyType(Enum):
    ED25519 = 'ED25519'
    ED448 = 'ED448'
    ECDSA = 'ECDSA'

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}.{self.name}'

    def generate(self) -> PrivateKey:
        match self:
            case KeyType.ED25519:
                return Ed25519PrivateKey.generate()
            case KeyType.ED448:
                return Ed448PrivateKey.generate()
            case KeyType.ECDSA:
                return ec.generate_private_key(ec.SECP256R1())


def public_key_bytes(key: PublicKey) -> bytes:
    """Return the raw public key bytes (compressed point for elliptic curve keys)"""
    match key:
        case Ed25519PublicKey() | Ed448PublicKey():
            return key.public_bytes(Encoding.Raw, PublicFormat.Raw)
        case EllipticCurvePublicKey():
            return key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
        case _:
            raise TypeError(f'Unsupported public key type: {key.__class__.__qualname__!r}')


def load_private_key(path: str | PathLike[str], *, password: str | None = None) -> PrivateKey:
    key_data = Path(path).expanduser().read_bytes()
    key = load_pem_private_key(key_data, password=password.encode() if password is not None else None)
    match key:
        case Ed25519PrivateKey() | Ed448PrivateKey() | EllipticCurvePrivateKey():
            return key
        case _:
            raise TypeError(f'Unsupported key type: {key.__class__.__qualname__!r} (expected Ed25519PrivateKey | Ed448PrivateKey | EllipticCurvePrivateKey)')


def save_private_key(key: PrivateKey, path: str | PathLike[str], *, password: str | None = None) -> None:
    key_encryption = BestAvailableEncryption(password.encode()) if password is not None else NoEncryption()
    key_data = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, key_encryption)
    path = Path(path).expanduser()
    with NamedTemporaryFile(dir=path.parent, delete=False) as tempfile:
        tempfile.write(key_data)
    Path(tempfile.name).replace(path)
