"""Cookie and payload codecs for session storage.

This module provides the codec capability used by the session store to turn
a session identifier (cookie value) or a session payload (row blob) into a
tamper-evident, encrypted token and back, using Fernet symmetric encryption
(AES-128-CBC with HMAC authentication).

Key features:
- Fernet-based encryption (cryptography library)
- Tokens bound to the session name they were minted for
- Token age limit (max_age) enforced through the Fernet timestamp
- Encoded length limit (max_length) on both encode and decode
- Key rotation: the first codec encodes, every codec may decode

Security design:
- Keys come from configuration, never from the database
- Database compromise does not reveal session payloads
- Each token has a unique IV (implicit in Fernet)
- HMAC authentication prevents tampering
"""

import base64
import binascii
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any, Final, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE: Final[int] = 86400 * 30
DEFAULT_MAX_LENGTH: Final[int] = 4096


class CodecError(Exception):
    """Base exception for codec errors."""

    pass


class InvalidKeyError(CodecError):
    """Raised when key material is invalid or malformed."""

    pass


class EncodeError(CodecError):
    """Raised when a value cannot be serialised or its token is too long."""

    pass


class DecodeError(CodecError):
    """Raised when a token is tampered, expired, malformed or too long."""

    pass


class SessionCodec(ABC):
    """Abstract codec turning values into opaque tokens and back.

    The session store only depends on this interface, so any signing or
    encryption scheme can be plugged in.
    """

    @abstractmethod
    def encode(self, name: str, value: Any) -> str:
        """Encode value into a token bound to name.

        Raises:
            EncodeError: If the value cannot be encoded
        """

    @abstractmethod
    def decode(self, name: str, token: str) -> Any:
        """Decode a token previously produced by encode() for the same name.

        Raises:
            DecodeError: If the token is invalid for this codec
        """


@runtime_checkable
class ConfigurableLimits(Protocol):
    """Optional codec capability exposing adjustable age and length limits."""

    def set_max_age(self, age: int) -> None: ...

    def set_max_length(self, length: int) -> None: ...


class FernetCodec(SessionCodec):
    """Encrypt and authenticate session values with Fernet.

    Values are serialised as JSON together with the session name, so a token
    minted for one cookie name is rejected under another.

    Example:
        codec = FernetCodec(generate_key())

        token = codec.encode("sid", "42")
        codec.decode("sid", token)  # "42"
        codec.decode("other", token)  # raises DecodeError
    """

    def __init__(
        self,
        key: str | bytes,
        max_age: int = DEFAULT_MAX_AGE,
        max_length: int = DEFAULT_MAX_LENGTH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize codec.

        Args:
            key: Base64-encoded 32-byte Fernet key
            max_age: Maximum token age in seconds (<= 0 disables the check)
            max_length: Maximum token length in characters (0 disables the check)
            clock: Time source returning epoch seconds

        Raises:
            InvalidKeyError: If key is invalid
        """
        try:
            key_bytes = key.encode("utf-8") if isinstance(key, str) else key
            self._fernet = Fernet(key_bytes)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(
                "Invalid session key format. Must be a base64-encoded 32-byte Fernet key. "
                "Generate with: python -c 'from cryptography.fernet import Fernet; "
                f"print(Fernet.generate_key().decode())' Error: {e}"
            ) from e

        self.max_age = max_age
        self.max_length = max_length
        self._clock = clock

    def set_max_age(self, age: int) -> None:
        """Set the maximum token age in seconds."""
        self.max_age = age

    def set_max_length(self, length: int) -> None:
        """Set the maximum token length."""
        self.max_length = length

    def encode(self, name: str, value: Any) -> str:
        """Encode value into an encrypted token bound to name.

        Args:
            name: Session name the token is minted for
            value: JSON-serialisable value

        Returns:
            URL-safe token, usable directly as a cookie value

        Raises:
            EncodeError: If serialisation fails or the token exceeds max_length
        """
        try:
            payload = json.dumps({"n": name, "v": value}, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise EncodeError(f"Failed to serialise value for {name!r}: {e}") from e

        token = self._fernet.encrypt_at_time(payload.encode("utf-8"), int(self._clock()))
        encoded = token.decode("ascii")

        if self.max_length and len(encoded) > self.max_length:
            raise EncodeError(
                f"Encoded value for {name!r} is too long: {len(encoded)} > {self.max_length}"
            )
        return encoded

    def decode(self, name: str, token: str) -> Any:
        """Decode and verify a token.

        Args:
            name: Session name the token must be bound to
            token: Token produced by encode()

        Returns:
            The original value

        Raises:
            DecodeError: If the token is too long, not canonical, tampered,
                older than max_age, or bound to a different name
        """
        if self.max_length and len(token) > self.max_length:
            raise DecodeError(f"Token for {name!r} is too long: {len(token)} > {self.max_length}")

        try:
            token_bytes = token.encode("ascii")
            # Reject tokens that only differ in ignored base64 bits
            if base64.urlsafe_b64encode(base64.urlsafe_b64decode(token_bytes)) != token_bytes:
                raise DecodeError(f"Token for {name!r} is not canonical")

            if self.max_age > 0:
                raw = self._fernet.decrypt_at_time(token_bytes, self.max_age, int(self._clock()))
            else:
                raw = self._fernet.decrypt(token_bytes)

            payload = json.loads(raw.decode("utf-8"))
        except InvalidToken as e:
            logger.debug("Token rejected - tampered, expired or wrong key", extra={"session_name": name})
            raise DecodeError(f"Invalid or expired token for {name!r}") from e
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Malformed token for {name!r}: {type(e).__name__}") from e

        if not isinstance(payload, dict) or payload.get("n") != name:
            raise DecodeError(f"Token is not bound to session name {name!r}")
        return payload.get("v")


def codecs_from_keys(
    *keys: str | bytes,
    max_age: int = DEFAULT_MAX_AGE,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> list[SessionCodec]:
    """Create one codec per key, newest key first.

    Args:
        keys: Fernet keys; the first one is used for encoding
        max_age: Maximum token age applied to each codec
        max_length: Maximum token length applied to each codec

    Returns:
        List of codecs in key order
    """
    return [FernetCodec(key, max_age=max_age, max_length=max_length) for key in keys]


def encode_multi(name: str, value: Any, codecs: Sequence[SessionCodec]) -> str:
    """Encode value with the first codec that succeeds.

    Raises:
        CodecError: If no codecs are configured or every codec fails
    """
    if not codecs:
        raise CodecError("No codecs configured")

    for codec in codecs[:-1]:
        try:
            return codec.encode(name, value)
        except CodecError:
            continue
    return codecs[-1].encode(name, value)


def decode_multi(name: str, token: str, codecs: Sequence[SessionCodec]) -> Any:
    """Decode token with the first codec that accepts it.

    Trying every codec in order lets older keys keep validating existing
    cookies after a rotation.

    Raises:
        CodecError: If no codecs are configured or every codec rejects the token
    """
    if not codecs:
        raise CodecError("No codecs configured")

    for codec in codecs[:-1]:
        try:
            return codec.decode(name, token)
        except CodecError:
            continue
    return codecs[-1].decode(name, token)


def generate_key() -> str:
    """Generate a new Fernet key.

    Returns:
        Base64-encoded 32-byte key suitable for use with FernetCodec

    Example:
        key = generate_key()
        print(f"Export this key: export SESSIONVAULT_SESSION_KEYS='[\"{key}\"]'")
    """
    return Fernet.generate_key().decode("utf-8")


def validate_key(key: str) -> bool:
    """Validate that a string is a valid Fernet key.

    Args:
        key: String to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        Fernet(key.encode("utf-8"))
        return True
    except (ValueError, TypeError):
        return False
