# SPDX-FileCopyrightText: 2024-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.asymmetric.ed448 import Ed448PrivateKey
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from bridgegate.configuration import Configuration
from bridgegate.messages import InboundBatch
from bridgegate.messages.canonical import encode
from bridgegate.messages.datamodel import AccountAddress

from .private import PrivateKey, PublicKey, public_key_bytes

__all__ = 'account_address', 'sign_batch'


def account_address(key: PublicKey | PrivateKey, *, configuration: Configuration | None = None) -> AccountAddress:
    """Derive the account address that corresponds to a key"""
    configuration = configuration or Configuration.default()
    public_key = key.public_key() if isinstance(key, Ed25519PrivateKey | Ed448PrivateKey | EllipticCurvePrivateKey) else key
    return AccountAddress.for_key_data(public_key_bytes(public_key), length=configuration.address_length)


def sign_batch(key: PrivateKey, batch: InboundBatch, *, configuration: Configuration | None = None) -> bytes:
    """
    Sign the canonical encoding of the batch with the submitter key.

    This only produces the signature. Checking it against the submitter
    is done by the layer that authenticates the enclosing transaction.
    """
    data = encode(batch, configuration=configuration)
    match key:
        case Ed25519PrivateKey() | Ed448PrivateKey():
            return key.sign(data)
        case EllipticCurvePrivateKey():
            return key.sign(data, ec.ECDSA(hashes.SHA256()))
        case _:
            raise TypeError(f'Unsupported key type: {key.__class__.__qualname__!r}')
