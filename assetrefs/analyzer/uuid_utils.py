"""Asset uuid helpers.

Component types of user scripts are stored as *compressed* uuids: the first
5 (or 2) hex digits are kept and every following group of 3 hex digits is
packed into 2 base64 characters, giving a 23 (or 22) character string. The
hex head is what tells a compressed uuid apart from a class name of the
same length.
"""
import re

BASE64_KEYS = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/'
BASE64_VALUES = {char: index for index, char in enumerate(BASE64_KEYS)}

UUID_PATTERN = re.compile(r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$')
COMPRESSED_PATTERN = re.compile(r'^(?:[0-9a-fA-F]{5}[0-9a-zA-Z+/]{18}|[0-9a-fA-F]{2}[0-9a-zA-Z+/]{20})$')
HEX_PATTERN = re.compile(r'^[0-9a-fA-F]{32}$')


def is_uuid(value) -> bool:
    """True for a dashed uuid or its compressed form."""
    if not isinstance(value, str):
        return False
    return bool(UUID_PATTERN.match(value) or COMPRESSED_PATTERN.match(value))


def is_compressed_uuid(value) -> bool:
    return isinstance(value, str) and bool(COMPRESSED_PATTERN.match(value))


def compress_uuid(uuid: str, min_length: bool = False) -> str:
    """Compress a uuid.

    Args:
        uuid: Dashed (36 chars) or plain (32 chars) hex uuid
        min_length: Keep 2 leading hex digits (22 chars) instead of 5 (23 chars)

    Returns:
        Compressed uuid

    Raises:
        ValueError: If `uuid` is not a uuid
    """
    if UUID_PATTERN.match(uuid):
        uuid = uuid.replace('-', '')
    if not HEX_PATTERN.match(uuid):
        raise ValueError(f"Not a uuid: {uuid!r}")

    reserved = 2 if min_length else 5
    head = uuid[:reserved]
    chars = []
    for i in range(reserved, len(uuid), 3):
        hex1 = int(uuid[i], 16)
        hex2 = int(uuid[i + 1], 16)
        hex3 = int(uuid[i + 2], 16)
        chars.append(BASE64_KEYS[(hex1 << 2) | (hex2 >> 2)])
        chars.append(BASE64_KEYS[((hex2 & 3) << 4) | hex3])
    return head + ''.join(chars)


def decompress_uuid(value: str) -> str:
    """Expand a compressed uuid back to the dashed 8-4-4-4-12 form.

    Dashed uuids are returned unchanged.

    Raises:
        ValueError: If `value` is neither form
    """
    if UUID_PATTERN.match(value):
        return value.lower()
    if HEX_PATTERN.match(value):
        hex_string = value.lower()
    elif COMPRESSED_PATTERN.match(value):
        reserved = 5 if len(value) == 23 else 2
        hex_chars = []
        for i in range(reserved, len(value), 2):
            lhs = BASE64_VALUES[value[i]]
            rhs = BASE64_VALUES[value[i + 1]]
            hex_chars.append(format(lhs >> 2, 'x'))
            hex_chars.append(format(((lhs & 3) << 2) | (rhs >> 4), 'x'))
            hex_chars.append(format(rhs & 0xF, 'x'))
        hex_string = value[:reserved] + ''.join(hex_chars)
    else:
        raise ValueError(f"Not a uuid: {value!r}")

    return '-'.join((
        hex_string[:8], hex_string[8:12], hex_string[12:16], hex_string[16:20], hex_string[20:],
    ))
