from . import codec
from .exceptions import AttributeIndexError


# Bit 31 of a DBC message id marks a 29 bit (extended) frame identifier
EXTENDED_ID_FLAG = 0x80000000
NULL_NODE = 'Vector__XXX'


def format_id_hex(frame_id):
    return '0x%X' % frame_id


def frame_id_of(dbc_id):
    """
    Identifier transmitted on the bus for a DBC message id.
    """
    if dbc_id & EXTENDED_ID_FLAG:
        return dbc_id & ~EXTENDED_ID_FLAG
    return dbc_id


class Node(object):
    r"""
    An ECU connected to the CAN bus.

    ``messages_sent``, ``signals_sent`` & ``signals_read`` are maintained by
    the :class:`Database <candb.database.Database>` as senders & receivers
    are added or removed.
    """
    def __init__(self, name, comment=''):
        self.name = name
        self.comment = comment
        self.messages_sent = []
        self.signals_sent = []
        self.signals_read = []
        self.attributes = {}
        self.key = None

    def __repr__(self):
        return '<Node: {}>'.format(self.name)


class Message(object):
    r"""
    A frame, or message transmitted over the CAN bus.

    :param id: DBC message id (extended frames carry :data:`EXTENDED_ID_FLAG`)
    :type id: :class:`int`
    :param name: message name
    :type name: :class:`str`
    :param byte_length: payload length (0-64)
    :type byte_length: :class:`int`

    ``senders`` & ``signals`` hold :class:`Key <candb.database.Key>` instances,
    resolved by the owning :class:`Database <candb.database.Database>`.
    """
    def __init__(self, id, name, byte_length, comment=''):
        self.id = id
        self.name = name
        self.byte_length = byte_length
        self.comment = comment
        self.senders = []
        self.signals = []
        self.attributes = {}
        self.key = None

    @property
    def is_extended(self):
        return bool(self.id & EXTENDED_ID_FLAG)

    @property
    def frame_id(self):
        return frame_id_of(self.id)

    @property
    def id_hex(self):
        return format_id_hex(self.frame_id)

    @property
    def protocol(self):
        return 'CAN' if self.byte_length <= 8 else 'CAN FD'

    def __repr__(self):
        return '<Message: {} {}>'.format(self.name, self.id_hex)


class Signal(object):
    r"""
    A signal belonging to a :class:`Message`.

    :param name: signal name
    :type name: :class:`str`
    :param bit_start: start bit; lsb for little endian, msb for big endian
    :type bit_start: :class:`int`
    :param bit_length: number of bits in signal (1-64)
    :type bit_length: :class:`int`
    :param little_endian: if ``True``, signal's data is little endian (Intel)
    :type little_endian: :class:`bool`
    :param signed: if ``True``, signal is signed
    :type signed: :class:`bool`
    :param factor: signal factor (see conversion below)
    :type factor: :class:`float`
    :param offset: signal offset (see conversion below)
    :type offset: :class:`float`
    :param minimum: minimum value (in ``unit``)
    :type minimum: :class:`float`
    :param maximum: maximum value (in ``unit``)
    :type maximum: :class:`float`
    :param unit: signal unit
    :type unit: :class:`str`
    :param value_table: raw value labels
    :type value_table: :class:`dict`
    :param is_multiplexor: if ``True``, this signal selects which multiplexed
                           signals are present in a frame
    :type is_multiplexor: :class:`bool`
    :param mux_value: multiplexor value this signal is present for
                      (``None`` if not multiplexed)
    :type mux_value: :class:`int`
    :param value_type: ``'integer'``, ``'float'`` or ``'double'``
    :type value_type: :class:`str`

    **Value Conversion**

    Values are transmitted as fixed-point:

    .. math::

        \begin{align}
        phys & = \left(raw \times factor\right) + offset \\
        raw & = \frac{phys - offset}{factor}
        \end{align}

    *where:*

    - :math:`raw` : value transmitted (as :class:`int`, signed or unsigned).
    - :math:`phys` : scaled & offset value in the signal's ``unit`` (as :class:`float`)

    **Extended Multiplexing**

    ``mux_switch`` names the multiplexor selecting this signal, and
    ``mux_ranges`` lists inclusive ``(low, high)`` selector ranges. When set,
    they take precedence over ``mux_value``.
    """
    def __init__(self, name, bit_start, bit_length,
                 little_endian=True, signed=False,
                 factor=1.0, offset=0.0, minimum=0.0, maximum=0.0, unit='',
                 value_table=None, comment='',
                 is_multiplexor=False, mux_value=None, value_type='integer'):
        if value_type not in codec.VALUE_TYPES:
            raise ValueError("invalid value type: {!r}".format(value_type))
        self.name = name
        self.bit_start = bit_start
        self.bit_length = bit_length
        self.little_endian = little_endian
        self.signed = signed
        self.factor = factor
        self.offset = offset
        self.minimum = minimum
        self.maximum = maximum
        self.unit = unit
        self.value_table = dict(value_table or {})
        self.comment = comment
        self.is_multiplexor = is_multiplexor
        self.mux_value = mux_value
        self.mux_switch = None
        self.mux_ranges = []
        self.value_type = value_type
        self.receivers = []
        self.attributes = {}
        self.message = None  # key of owning message, set once
        self.key = None

    @property
    def display_unit(self):
        if self.unit.startswith('Unit_'):
            return self.unit[len('Unit_'):]
        return self.unit

    @property
    def is_multiplexed(self):
        return (self.mux_value is not None) or bool(self.mux_ranges)

    def selected_by(self, switch_value):
        """
        :return: ``True`` if this signal is present when its multiplexor reads
                 ``switch_value``
        """
        if self.mux_ranges:
            return any(low <= switch_value <= high for (low, high) in self.mux_ranges)
        if self.mux_value is not None:
            return self.mux_value == switch_value
        return True

    def fits(self, byte_length):
        return codec.fits(self.bit_start, self.bit_length, self.little_endian, byte_length)

    def __repr__(self):
        return '<Signal: {} {}|{}@{}>'.format(
            self.name, self.bit_start, self.bit_length,
            1 if self.little_endian else 0,
        )


class AttributeDefinition(object):
    """
    Definition (and default) of a user defined attribute.

    :param name: attribute name
    :type name: :class:`str`
    :param value_type: one of :data:`VALUE_TYPES`
    :type value_type: :class:`str`
    :param object_type: what the attribute is assigned to, one of
                        :data:`OBJECT_TYPES` (``''`` is the database itself)
    :type object_type: :class:`str`
    :param minimum: lower bound (``INT``, ``HEX``, ``FLOAT`` only)
    :param maximum: upper bound (``INT``, ``HEX``, ``FLOAT`` only)
    :param values: ordered labels (``ENUM`` only)
    :type values: :class:`list`
    :param default: default value; for ``ENUM``, the default *label*

    ``ENUM`` assignments are stored as an index into ``values``.
    """
    VALUE_TYPES = ('INT', 'HEX', 'FLOAT', 'STRING', 'ENUM')
    OBJECT_TYPES = ('', 'BU_', 'BO_', 'SG_', 'EV_')
    RELATION_TYPES = ('BU_SG_REL_', 'BU_BO_REL_', 'BU_EV_REL_')

    def __init__(self, name, value_type, object_type='',
                 minimum=None, maximum=None, values=None, default=None):
        if value_type not in self.VALUE_TYPES:
            raise ValueError("invalid attribute type: {!r}".format(value_type))
        if object_type not in self.OBJECT_TYPES + self.RELATION_TYPES:
            raise ValueError("invalid attribute object type: {!r}".format(object_type))
        self.name = name
        self.value_type = value_type
        self.object_type = object_type
        self.minimum = minimum
        self.maximum = maximum
        self.values = list(values or [])
        self.default = None
        if default is not None:
            self.default = self.coerce_default(default)

    @property
    def is_relation(self):
        return self.object_type in self.RELATION_TYPES

    def coerce(self, value):
        """
        Convert an assigned value to its stored form.

        :raises ValueError: if the value can't be converted
        :raises AttributeIndexError: if an ``ENUM`` label, or index, is not defined
        """
        if self.value_type in ('INT', 'HEX'):
            if isinstance(value, str):
                value = float(value)
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValueError("{!r} is not an integer".format(value))
                value = int(value)
            return int(value)
        elif self.value_type == 'FLOAT':
            return float(value)
        elif self.value_type == 'STRING':
            return str(value)

        # ENUM
        if isinstance(value, str):
            try:
                return self.values.index(value)
            except ValueError:
                raise AttributeIndexError("'{}' is not a label of attribute '{}'".format(value, self.name))
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError("{!r} is not an enum index".format(value))
        index = int(value)
        self.label(index)
        return index

    def coerce_default(self, value):
        if self.value_type == 'ENUM':
            return self.label(self.coerce(value))
        return self.coerce(value)

    def label(self, index):
        """
        :raises AttributeIndexError: if ``index`` has no label
        """
        if not (0 <= index < len(self.values)):
            raise AttributeIndexError(
                "index {} out of range for attribute '{}' ({} labels)".format(
                    index, self.name, len(self.values),
                )
            )
        return self.values[index]

    def resolve(self, stored):
        """
        Public value of a stored assignment; ``ENUM`` indexes resolve to labels.
        """
        if self.value_type == 'ENUM':
            return self.label(stored)
        return stored

    def __repr__(self):
        return '<AttributeDefinition: {} {} {}>'.format(
            self.object_type or 'DB', self.name, self.value_type,
        )
