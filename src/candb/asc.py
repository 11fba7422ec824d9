r"""
Vector ASC trace reader.

Frames are resolved against the database registered for their channel
(:data:`ANY_CHANNEL` registers a database for every channel), and each
resolved signal's value is appended to its :class:`SignalLog
<candb.canlog.SignalLog>`.

Example::

    >>> import candb
    >>> db = candb.parse_dbc('network.dbc')
    >>> log = candb.parse_asc('drive.asc', {1: db})
    >>> [(s.name, s.values[:2]) for s in log.signals]
    [('Speed', [(0.0012, 12.5), (0.0112, 12.75)])]
"""
import codecs
import datetime
import io
import logging
import re

from . import codec
from .canlog import CanLog, MessageLog
from .containers import EXTENDED_ID_FLAG, format_id_hex
from .exceptions import ASCIOError
from .parser import LineObject, Fault, get_line_object

logger = logging.getLogger(__name__)


# Traces are written by Windows tools; characters that don't decode are replaced
ASC_ENCODING = 'cp1252'

# Channel key of a database used for frames on any channel
ANY_CHANNEL = -1

DATE_FORMATS = [
    '%a %b %d %I:%M:%S.%f %p %Y',
    '%a %b %d %H:%M:%S.%f %Y',
    '%a %b %d %I:%M:%S %p %Y',
    '%a %b %d %H:%M:%S %Y',
]


# @asc_line decorator
ASC_LINE_CLASSES = []
def asc_line(cls):
    ASC_LINE_CLASSES.append(cls)
    return cls


# --- Types
def _t_date(value):
    for fmt in DATE_FORMATS:
        try:
            return datetime.datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError("unrecognised date: '{}'".format(value))

def _t_base(value):
    return 16 if value.lower() == 'hex' else 10

def _t_extended(value):
    return bool(value)


@asc_line
class DateLine(LineObject):
    """
    Wall clock time the trace started.

    Example(s)::

        date Mon Mar 10 12:34:56.789 pm 2025
        date Tue Jun 04 17:02:11 2024
    """
    _REGEX = re.compile(r'^\s*date\s+(?P<start_time>.*?)\s*$', re.IGNORECASE)

    _TYPE_MAP = {'start_time': _t_date}


@asc_line
class BaseLine(LineObject):
    """
    Number base of identifiers & payload bytes.

    Example(s)::

        base hex  timestamps absolute
        base dec  timestamps relative
    """
    _REGEX = re.compile(r'^\s*base\s+(?P<base>hex|dec)\b', re.IGNORECASE)

    _TYPE_MAP = {'base': _t_base}


class _FrameLine(LineObject):
    PROTOCOL = None

    @property
    def protocol(self):
        return self.PROTOCOL

    def payload(self, base):
        """
        :return: the first ``length`` payload bytes
        :raises ValueError: if there are fewer, or one is invalid
        """
        tokens = self.data.split()
        if len(tokens) < self.length:
            raise ValueError("{} payload byte(s) expected, {} found".format(self.length, len(tokens)))
        return bytes(int(t, base) for t in tokens[:self.length])


@asc_line
class ClassicFrameLine(_FrameLine):
    """
    Example(s)::

        0.001234 1  100             Rx   d 8 01 02 03 04 05 06 07 08
        1.500000 2  1ABCDEF0x       Tx   d 2 FF 00  Length = 0 BitCount = 0
    """
    _REGEX = re.compile(r'''
        ^\s*(?P<timestamp>\d+(\.\d+)?)\s+   # seconds since start
        (?P<channel>\d+)\s+                 # channel
        (?P<id>[0-9A-Fa-f]+)                # identifier
        (?P<extended>[xX])?\s+              # x: extended (29 bit) identifier
        (?P<direction>Rx|Tx)\s+             # direction
        ((?!d\s)\S+\s+)*?                   # other flags
        d\s+                                # data frame
        (?P<length>\d+)                     # payload length (bytes)
        (?P<data>(\s.*)?)$                  # payload (and trailing info)
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'timestamp': float,
        'channel': int,
        'id': str,
        'extended': _t_extended,
        'direction': str,
        'length': int,
        'data': str,
    }

    @property
    def protocol(self):
        return 'CAN' if self.length <= 8 else 'CAN FD'


@asc_line
class FDFrameLine(_FrameLine):
    """
    Example(s)::

        2.015991 CANFD   1 Rx        1A1  Speed   1 0 d 12 01 02 03 04 05 06 07 08 09 0a 0b 0c
        2.015991 CANFD   1 Tx        100x         0 0 8  8 01 02 03 04 05 06 07 08
    """
    _REGEX = re.compile(r'''
        ^\s*(?P<timestamp>\d+(\.\d+)?)\s+   # seconds since start
        CANFD\s+
        (?P<channel>\d+)\s+                 # channel
        (?P<direction>Rx|Tx)\s+             # direction
        (?P<id>[0-9A-Fa-f]+)                # identifier
        (?P<extended>[xX])?\s+              # x: extended (29 bit) identifier
        ((?P<name>[^\s\d]\S*)\s+)?          # symbolic name (optional)
        (?P<brs>[01])\s+                    # bit rate switch
        (?P<esi>[01])\s+                    # error state indicator
        (?P<dlc>[0-9A-Fa-f])\s+             # data length code
        (?P<length>\d+)                     # payload length (bytes)
        (?P<data>(\s.*)?)$                  # payload (and trailing info)
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'timestamp': float,
        'channel': int,
        'direction': str,
        'id': str,
        'extended': _t_extended,
        'name': str,
        'brs': int,
        'esi': int,
        'dlc': str,
        'length': int,
        'data': str,
    }

    PROTOCOL = 'CAN FD'


class ASCParser(object):
    """
    Reads a trace, line by line, into a :class:`CanLog <candb.canlog.CanLog>`.

    :param stream: text stream
    :param stores: ``{channel: database}``; :data:`ANY_CHANNEL` matches every
                   channel without a database of its own
    :type stores: :class:`dict`
    """
    def __init__(self, stream, stores=None):
        self.stream = stream
        self.stores = stores or {}

    def store_for(self, channel):
        return self.stores.get(channel, self.stores.get(ANY_CHANNEL))

    def parse(self):
        log = CanLog()
        base = 16

        for (line_number, line) in enumerate(self.stream, 1):
            if not line.strip():
                continue
            try:
                obj = get_line_object(line, ASC_LINE_CLASSES)
                if isinstance(obj, _FrameLine):
                    self.add_frame(log, obj, base)
            except ValueError as e:
                fault = Fault('syntax', line_number, line, str(e))
                logger.warning("%s", fault)
                log.faults.append(fault)
                continue

            if isinstance(obj, DateLine):
                if log.start_time is None:
                    log.start_time = obj.start_time
            elif isinstance(obj, BaseLine):
                base = obj.base

        logger.debug("read %i frame(s), %i signal log(s)", len(log.can_frames), len(log.signals))
        return log

    def add_frame(self, log, obj, base):
        data = obj.payload(base)
        id = int(obj.id, base)
        if obj.extended:
            id |= EXTENDED_ID_FLAG

        message_log = MessageLog(id, obj.channel, data, protocol=obj.protocol)
        store = self.store_for(obj.channel)
        message = None
        if store is not None:
            message = store.get_message_by_id(id)
            if message is None:
                message = store.get_message_by_hex(format_id_hex(id & ~EXTENDED_ID_FLAG))

        if message is not None:
            message_log.name = message.name
            message_log.comment = message.comment
            message_log.sender = ','.join(store.node(k).name for k in message.senders)

        index = log.add_frame(obj.timestamp, obj.channel, obj.direction, message_log)
        if message is not None:
            self.decode_signals(log, store, message, log.can_frames[index])
        return index

    def decode_signals(self, log, store, message, frame):
        """
        Append the value of each signal present in the frame's payload to its
        :class:`SignalLog <candb.canlog.SignalLog>`.
        """
        message_log = log.messages[frame.message]
        data = message_log.data
        signals = [s for s in store.message_signals(message.key) if s.fits(len(data))]

        # multiplexor values (a multiplexor may itself be multiplexed)
        switches = {}
        default_switch = None
        for signal in signals:
            if not signal.is_multiplexor:
                continue
            if signal.is_multiplexed and not self.selected(signal, switches, default_switch):
                continue
            switches[signal.name.lower()] = codec.decode_raw(signal, data)
            if default_switch is None:
                default_switch = signal.name.lower()

        for signal in signals:
            if signal.is_multiplexed and not self.selected(signal, switches, default_switch):
                continue
            index = log.signal_log(frame.channel, message, signal)
            signal_log = log.signals[index]
            signal_log.append(frame.timestamp, codec.decode(signal, data))
            signal_log.message = frame.message
            message_log.signals.append(index)

    @staticmethod
    def selected(signal, switches, default_switch):
        switch = signal.mux_switch.lower() if signal.mux_switch else default_switch
        if switch is None or switch not in switches:
            return False
        return signal.selected_by(switches[switch])


def loads_asc(text, stores=None):
    """
    Read ASC trace content.

    :param stores: ``{channel: database}``
    :rtype: :class:`CanLog <candb.canlog.CanLog>`
    """
    return ASCParser(io.StringIO(text), stores).parse()


def parse_asc(filename, stores=None):
    """
    Read an ASC trace file.

    :param stores: ``{channel: database}``
    :raises ASCIOError: if the file can't be read
    :rtype: :class:`CanLog <candb.canlog.CanLog>`
    """
    try:
        with codecs.open(filename, 'r', encoding=ASC_ENCODING, errors='replace') as stream:
            return ASCParser(stream, stores).parse()
    except (IOError, OSError) as e:
        raise ASCIOError("{}: {}".format(filename, e))
