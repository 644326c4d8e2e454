"""
Content Locator Encoding for DRAP

Revealed assets point at their content through a textual locator: a 256-bit
content identifier serialised as 32 little-endian bytes and base64 encoded.
The canonical form uses the standard alphabet with padding (44 characters);
storage services commonly hand out the URL-safe unpadded form (43 characters),
so decoding accepts either.
"""

import base64
import binascii

from .exceptions import LocatorError


LOCATOR_BYTES = 32
MAX_CONTENT_ID = (1 << (LOCATOR_BYTES * 8)) - 1


def encode_locator(content_id: int, url_safe: bool = False, padded: bool = True) -> str:
    """
    Encode a 256-bit content identifier as a textual locator.

    Args:
        content_id: Integer identifier in [0, 2**256)
        url_safe: Use the URL-safe base64 alphabet ('-' and '_')
        padded: Keep the trailing '=' padding

    Returns:
        Locator string
    """
    if isinstance(content_id, bool) or not isinstance(content_id, int):
        raise LocatorError(f"Content ID must be an integer, got {type(content_id).__name__}")

    if content_id < 0 or content_id > MAX_CONTENT_ID:
        raise LocatorError("Content ID must fit in 256 bits")

    raw = content_id.to_bytes(LOCATOR_BYTES, 'little')

    if url_safe:
        text = base64.urlsafe_b64encode(raw).decode('ascii')
    else:
        text = base64.b64encode(raw).decode('ascii')

    if not padded:
        text = text.rstrip('=')

    return text


def decode_locator(locator: str) -> int:
    """
    Decode a textual locator back into its 256-bit content identifier.

    Args:
        locator: Locator string, padded or unpadded, standard or URL-safe

    Returns:
        Integer content identifier
    """
    if not isinstance(locator, str):
        raise LocatorError(f"Locator must be a string, got {type(locator).__name__}")

    text = locator.strip()
    if not text:
        raise LocatorError("Locator is empty")

    # Normalise to the standard alphabet and restore padding
    text = text.replace('-', '+').replace('_', '/')
    text = text.rstrip('=')
    text += '=' * (-len(text) % 4)

    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise LocatorError(f"Invalid locator encoding: {e}")

    if len(raw) != LOCATOR_BYTES:
        raise LocatorError(
            f"Locator must decode to {LOCATOR_BYTES} bytes, got {len(raw)}"
        )

    return int.from_bytes(raw, 'little')


def is_valid_locator(locator: str) -> bool:
    """Check whether a string decodes to a 256-bit content identifier."""
    try:
        decode_locator(locator)
        return True
    except LocatorError:
        return False


def normalize_locator(locator: str) -> str:
    """Return the canonical (standard alphabet, padded) form of a locator."""
    return encode_locator(decode_locator(locator))
