"""
Codec for the legacy wide-string representation used by the Windows XP* EXIF tags.

The tags hold UTF-16LE text terminated by a zero code unit. In the metadata container
the raw bytes are represented as a space-separated list of decimal byte values.
"""

TERMINATOR = b"\x00\x00"
MAX_BYTE = 255


def to_utf16le_string(value: str) -> str:
    """
    Encode text as null-terminated UTF-16LE rendered as decimal bytes.

    Examples:
        >>> to_utf16le_string("A")
        '65 0 0 0'
        >>> to_utf16le_string("")
        '0 0'

    """
    data = value.encode("utf-16-le") + TERMINATOR
    return " ".join(str(byte) for byte in data)


def from_utf16le_string(value: str) -> str:
    """
    Decode a decimal byte list produced by `to_utf16le_string` back to text.

    Decoding stops at the first zero code unit; a missing terminator is tolerated.

    Examples:
        >>> from_utf16le_string("65 0 0 0")
        'A'

    Raises:
        ValueError: If the list holds a non-integer, a value outside 0-255, or an odd
            number of bytes.

    """
    numbers = [int(token) for token in value.split()]
    if any(not 0 <= number <= MAX_BYTE for number in numbers):
        msg = f"byte value out of range in {value!r}"
        raise ValueError(msg)
    if len(numbers) % 2:
        msg = f"odd number of bytes in UTF-16LE sequence ({len(numbers)})"
        raise ValueError(msg)

    data = bytes(numbers)
    for offset in range(0, len(data), 2):
        if data[offset : offset + 2] == TERMINATOR:
            data = data[:offset]
            break
    return data.decode("utf-16-le")
