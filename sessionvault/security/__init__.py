"""Security module for sessionvault.

Provides the cryptographic codec used to protect session cookies and
session payloads at rest:
- crypto: Fernet-backed codec, multi-key encode/decode, key helpers
"""

from sessionvault.security.crypto import (
    CodecError,
    ConfigurableLimits,
    DecodeError,
    EncodeError,
    FernetCodec,
    InvalidKeyError,
    SessionCodec,
    codecs_from_keys,
    decode_multi,
    encode_multi,
    generate_key,
    validate_key,
)

__all__ = [
    "SessionCodec",
    "ConfigurableLimits",
    "FernetCodec",
    "CodecError",
    "EncodeError",
    "DecodeError",
    "InvalidKeyError",
    "codecs_from_keys",
    "encode_multi",
    "decode_multi",
    "generate_key",
    "validate_key",
]
