r"""
Signal bit extraction & packing.

Payloads are indexed from byte 0. Bit ``n`` of the payload is bit ``n % 8``
of byte ``n // 8``, where bit 0 is the least significant bit of the byte.

**Intel** (little endian, ``@1``)

    ``bit_start`` is the field's least significant bit, the field grows
    towards higher bit numbers.

**Motorola** (big endian, ``@0``)

    ``bit_start`` is the field's most significant bit, using the same
    (*sawtooth*) numbering. The field continues toward less significant bits,
    wrapping from bit 0 of one byte to bit 7 of the next byte::

        byte:   |        0        |        1        |
        bit:    | 7 6 5 4 3 2 1 0 | 15 14 ... 9 8   |
        walk:     ---------------->  -------------->

Every function here is pure; payloads are never modified in place.
"""
import math
import struct

from .exceptions import BitRangeError


VALUE_TYPES = ('integer', 'float', 'double')

_IEEE_FORMATS = {
    # value_type: (bit length, integer format, float format)
    'float': (32, '>I', '>f'),
    'double': (64, '>Q', '>d'),
}


# --------- Bit layout
def _motorola_span(bit_start, bit_length):
    # position of the field's msb & lsb, counting from the msb of byte 0
    msb = (bit_start // 8) * 8 + (7 - (bit_start % 8))
    return (msb, msb + bit_length - 1)


def bit_positions(bit_start, bit_length, little_endian):
    """
    Payload bit numbers occupied by a field, from the first bit walked to the
    last.

    ::

        >>> bit_positions(0, 4, True)
        [0, 1, 2, 3]
        >>> bit_positions(1, 4, False)
        [1, 0, 15, 14]
    """
    if little_endian:
        return list(range(bit_start, bit_start + bit_length))

    positions = []
    pos = bit_start
    for i in range(bit_length):
        positions.append(pos)
        if pos % 8 == 0:
            pos += 15  # wrap to msb of next byte
        else:
            pos -= 1
    return positions


def motorola_msb_from_lsb(lsb, bit_length):
    """
    Big endian start bit (msb) of a field, given the position of its lsb.

    ::

        >>> motorola_msb_from_lsb(8, 16)
        7
    """
    pos = lsb
    for i in range(bit_length - 1):
        if pos % 8 == 7:
            pos -= 15  # wrap back to lsb of previous byte
        else:
            pos += 1
    return pos


def fits(bit_start, bit_length, little_endian, byte_length):
    """
    :return: ``True`` if every bit of the field lies within ``byte_length``
             bytes
    :rtype: :class:`bool`
    """
    if bit_length < 1 or bit_start < 0:
        return False
    limit = byte_length * 8
    if little_endian:
        return bit_start + bit_length <= limit
    (msb, lsb) = _motorola_span(bit_start, bit_length)
    return lsb < limit


def raw_range(bit_length, signed):
    """
    Integer range representable by a field.

    :return: ``(minimum, maximum)`` inclusive
    :rtype: :class:`tuple`
    """
    if signed:
        return (-(1 << (bit_length - 1)), (1 << (bit_length - 1)) - 1)
    return (0, (1 << bit_length) - 1)


# --------- Raw (integer) access
def extract_raw(data, bit_start, bit_length, little_endian, signed=False):
    """
    Read an integer field from a payload.

    Bytes missing from the end of a short payload are read as zero.

    :param data: payload
    :type data: :class:`bytes`, or a sequence of :class:`int`
    :return: raw value, sign extended if ``signed``
    :rtype: :class:`int`
    """
    data = bytes(data)
    mask = (1 << bit_length) - 1

    if little_endian:
        value = (int.from_bytes(data, 'little') >> bit_start) & mask
    else:
        (msb, lsb) = _motorola_span(bit_start, bit_length)
        size = max(len(data), (lsb // 8) + 1)
        padded = data.ljust(size, b'\x00')
        value = (int.from_bytes(padded, 'big') >> ((size * 8) - 1 - lsb)) & mask

    if signed and (value >> (bit_length - 1)) & 1:
        value -= 1 << bit_length
    return value


def insert_raw(data, raw, bit_start, bit_length, little_endian):
    """
    Write an integer field into a payload.

    Negative values are written in two's complement. The payload is extended
    with zero bytes if the field reaches beyond its end.

    :return: new payload
    :rtype: :class:`bytes`
    """
    data = bytes(data)
    mask = (1 << bit_length) - 1
    raw &= mask

    if little_endian:
        size = max(len(data), (bit_start + bit_length + 7) // 8)
        value = int.from_bytes(data.ljust(size, b'\x00'), 'little')
        value = (value & ~(mask << bit_start)) | (raw << bit_start)
        return value.to_bytes(size, 'little')

    (msb, lsb) = _motorola_span(bit_start, bit_length)
    size = max(len(data), (lsb // 8) + 1)
    shift = (size * 8) - 1 - lsb
    value = int.from_bytes(data.ljust(size, b'\x00'), 'big')
    value = (value & ~(mask << shift)) | (raw << shift)
    return value.to_bytes(size, 'big')


# --------- Physical values
def round_raw(value):
    """
    Nearest integer, halves rounded away from zero (``2.5`` -> ``3``,
    ``-2.5`` -> ``-3``)
    """
    (fraction, integral) = math.modf(value)
    raw = int(integral)
    if abs(fraction) >= 0.5:
        raw += 1 if value > 0 else -1
    return raw


def _is_ieee(signal):
    return getattr(signal, 'value_type', 'integer') in _IEEE_FORMATS


def decode_raw(signal, data):
    """
    Raw integer value of ``signal`` in ``data``

    IEEE float & double signals are returned as their unsigned bit pattern.
    """
    return extract_raw(
        data, signal.bit_start, signal.bit_length, signal.little_endian,
        signed=(signal.signed and not _is_ieee(signal)),
    )


def raw_to_physical(signal, raw):
    r"""
    :math:`phys = raw \times factor + offset`
    """
    if _is_ieee(signal):
        (length, int_fmt, float_fmt) = _IEEE_FORMATS[signal.value_type]
        raw = struct.unpack(float_fmt, struct.pack(int_fmt, raw & ((1 << length) - 1)))[0]
    return raw * signal.factor + signal.offset


def physical_to_raw(signal, value):
    r"""
    :math:`raw = round\left(\frac{phys - offset}{factor}\right)`

    :raises ValueError: if the signal's factor is zero
    :raises BitRangeError: if ``raw`` doesn't fit in the signal's bits
    """
    if signal.factor == 0:
        raise ValueError("signal '{}' has a factor of zero".format(signal.name))

    if _is_ieee(signal):
        (length, int_fmt, float_fmt) = _IEEE_FORMATS[signal.value_type]
        scaled = (value - signal.offset) / signal.factor
        try:
            return struct.unpack(int_fmt, struct.pack(float_fmt, scaled))[0]
        except OverflowError:
            raise BitRangeError("{!r} does not fit signal '{}' ({})".format(
                value, signal.name, signal.value_type,
            ))

    scaled = (value - signal.offset) / signal.factor
    if not math.isfinite(scaled):
        raise BitRangeError("{!r} does not fit signal '{}'".format(value, signal.name))
    raw = round_raw(scaled)
    (minimum, maximum) = raw_range(signal.bit_length, signal.signed)
    if not (minimum <= raw <= maximum):
        raise BitRangeError(
            "{!r} (raw {}) does not fit signal '{}': {} bit {}, range [{}, {}]".format(
                value, raw, signal.name, signal.bit_length,
                'signed' if signal.signed else 'unsigned', minimum, maximum,
            )
        )
    return raw


def decode(signal, data):
    """
    Physical value of ``signal`` in payload ``data``

    ::

        >>> sig = Signal('speed', 0, 16, little_endian=True, factor=0.25)
        >>> decode(sig, b'\\x10\\x27')
        2500.0
    """
    return raw_to_physical(signal, decode_raw(signal, data))


def encode(signal, value, data=b''):
    """
    Pack a physical value into a payload.

    :param data: payload to write into (other bits are kept)
    :return: new payload
    :rtype: :class:`bytes`
    """
    raw = physical_to_raw(signal, value)
    return insert_raw(data, raw, signal.bit_start, signal.bit_length, signal.little_endian)


def value_text_at(signal, raw):
    """
    Label for a raw value from the signal's value table, or ``None``
    """
    return signal.value_table.get(raw)
