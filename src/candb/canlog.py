import bisect
import datetime
import math

from . import codec
from .containers import format_id_hex, frame_id_of, EXTENDED_ID_FLAG


def format_value(value):
    """
    Display text of a physical value; integral values lose their ``.0``.
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CanFrame(object):
    """
    One frame of a trace, in file order.

    :param timestamp: seconds since the start of the trace
    :type timestamp: :class:`float`
    :param channel: bus channel the frame was recorded on
    :type channel: :class:`int`
    :param direction: ``'Rx'`` or ``'Tx'`` (informational only)
    :type direction: :class:`str`
    :param message: index of the frame's :class:`MessageLog` in
                    :attr:`CanLog.messages`
    :type message: :class:`int`
    :param absolute_time: wall clock time; ``None`` if the trace has no
                          ``date`` header
    :type absolute_time: :class:`datetime.datetime`
    """
    __slots__ = ('timestamp', 'channel', 'direction', 'message', 'absolute_time')

    def __init__(self, timestamp, channel, direction, message, absolute_time=None):
        self.timestamp = timestamp
        self.channel = channel
        self.direction = direction
        self.message = message
        self.absolute_time = absolute_time

    @property
    def time_text(self):
        if self.absolute_time is None:
            return '%.6f' % self.timestamp
        return self.absolute_time.isoformat(' ')

    def __repr__(self):
        return '<CanFrame: {} ch{} {}>'.format(self.time_text, self.channel, self.direction)


class MessageLog(object):
    """
    A received payload, and what it was resolved to.

    ``signals`` lists indexes (into :attr:`CanLog.signals`) of the signals
    decoded from this payload, in the message's declaration order.
    """
    def __init__(self, id, channel, data, protocol='CAN',
                 name='', sender='', comment=''):
        self.id = id
        self.channel = channel
        self.data = bytes(data)
        self.protocol = protocol
        self.name = name
        self.sender = sender
        self.comment = comment
        self.signals = []

    @property
    def byte_length(self):
        return len(self.data)

    @property
    def is_extended(self):
        return bool(self.id & EXTENDED_ID_FLAG)

    @property
    def frame_id(self):
        return frame_id_of(self.id)

    @property
    def id_hex(self):
        return format_id_hex(self.frame_id)

    def __repr__(self):
        return '<MessageLog: {} {} [{}]>'.format(self.name or '?', self.id_hex, self.data.hex())


class SignalLog(object):
    """
    Time series of one signal, on one channel.

    ``values`` is a list of ``(timestamp, physical value)`` pairs, in the order
    they were recorded. The latest sample is mirrored by :attr:`value`,
    :attr:`raw` & :attr:`text`.
    """
    def __init__(self, name, channel, unit='', factor=1.0, offset=0.0,
                 value_table=None, comment='', message=None):
        self.name = name
        self.channel = channel
        self.unit = unit
        self.factor = factor
        self.offset = offset
        self.value_table = dict(value_table or {})
        self.comment = comment
        self.message = message  # index of the latest MessageLog
        self.values = []

    def append(self, timestamp, value):
        self.values.append((timestamp, value))

    def value_at(self, timestamp):
        """
        Last value recorded at, or before ``timestamp``

        :return: physical value, or ``None``
        """
        index = bisect.bisect_right(self.values, (timestamp, float('inf'))) - 1
        if index < 0:
            return None
        return self.values[index][1]

    def _raw(self, value):
        if value is None or not math.isfinite(value):
            return None
        factor = self.factor or 1  # a zero factor would make every raw value equal
        return codec.round_raw((value - self.offset) / factor)

    def raw_at(self, timestamp):
        """
        Raw value at ``timestamp``, back-computed from the physical value

        :return: raw value, or ``None`` (no sample, or a NaN / infinite value)
        """
        return self._raw(self.value_at(timestamp))

    @property
    def value(self):
        return self.values[-1][1] if self.values else None

    @property
    def raw(self):
        return self._raw(self.value)

    @property
    def text(self):
        """
        Value table label of the latest sample (``''`` if it has none)
        """
        return self.value_table.get(self.raw, '')

    def value_text_at(self, timestamp):
        """
        Display text of the value at ``timestamp``; its value table label if it
        has one, otherwise the formatted physical value.

        ::

            >>> log = SignalLog('Gear', 1, value_table={5: 'Drive'})
            >>> log.append(1.0, 5)
            >>> log.append(2.0, 7)
            >>> log.value_text_at(1.5)
            'Drive'
            >>> log.value_text_at(2.0)
            '7'
            >>> log.value_text_at(0.5) is None
            True
        """
        value = self.value_at(timestamp)
        if value is None:
            return None
        label = self.value_table.get(self._raw(value))
        if label is not None:
            return label
        return format_value(value)

    def __len__(self):
        return len(self.values)

    def __repr__(self):
        return '<SignalLog: {} ch{} ({} values)>'.format(self.name, self.channel, len(self.values))


class CanLog(object):
    """
    Everything read from a trace.

    :param start_time: wall clock time of the trace start (``date`` header)
    :type start_time: :class:`datetime.datetime`

    ``last_id_chn_frame`` maps ``(message id, channel)`` to the index of the
    most recent frame (in :attr:`can_frames`) with that id & channel.
    """
    def __init__(self, start_time=None):
        self.start_time = start_time
        self.can_frames = []
        self.messages = []
        self.signals = []
        self.last_id_chn_frame = {}
        self.faults = []
        self._signal_index = {}  # (channel, message name, signal name): index

    def absolute_time(self, timestamp):
        if self.start_time is None:
            return None
        return self.start_time + datetime.timedelta(seconds=timestamp)

    def add_frame(self, timestamp, channel, direction, message_log):
        """
        Record a frame (and its payload).

        :return: index of the new :class:`CanFrame`
        """
        self.messages.append(message_log)
        frame = CanFrame(
            timestamp, channel, direction, len(self.messages) - 1,
            absolute_time=self.absolute_time(timestamp),
        )
        self.can_frames.append(frame)
        index = len(self.can_frames) - 1
        self.last_id_chn_frame[(message_log.id, channel)] = index
        return index

    def signal_log(self, channel, message, signal):
        """
        Index of the log of ``signal`` (of ``message``) on ``channel``; created
        on first use.
        """
        key = (channel, message.name, signal.name)
        index = self._signal_index.get(key)
        if index is None:
            self.signals.append(SignalLog(
                signal.name, channel,
                unit=signal.display_unit, factor=signal.factor, offset=signal.offset,
                value_table=signal.value_table, comment=signal.comment,
            ))
            index = self._signal_index[key] = len(self.signals) - 1
        return index

    def frame_message(self, frame_index):
        return self.messages[self.can_frames[frame_index].message]

    def last_frame(self, id, channel):
        """
        Most recent :class:`CanFrame` with the given message id & channel, or
        ``None``
        """
        index = self.last_id_chn_frame.get((id, channel))
        return None if index is None else self.can_frames[index]


class MessageSignals(object):
    """
    The :class:`SignalLog` entries decoded for one :class:`MessageLog`.

    Lazy, and iterable any number of times.
    """
    def __init__(self, log, message_index):
        self.log = log
        self.message_index = message_index

    def __iter__(self):
        for index in self.log.messages[self.message_index].signals:
            yield self.log.signals[index]

    def __len__(self):
        return len(self.log.messages[self.message_index].signals)


def resolve_message_signals(log, message_index):
    return MessageSignals(log, message_index)
