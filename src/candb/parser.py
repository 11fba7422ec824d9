import codecs
import io
import logging
import re
from collections import namedtuple

from .containers import AttributeDefinition, NULL_NODE
from .database import Database
from .exceptions import (
    CanDBError, DBCIOError, DBCEncodingError, DBCSyntaxError,
    DBCStructureError, DBCReferenceError,
)

logger = logging.getLogger(__name__)


# Optimum chunk size?
#   Too large: each stream character will be read multiple times
#              (because the file's cursor is decreased for each line found)
#   Too small: takes more runtime to process.
#
#   On a cursory look through DBC files, lines are typically ~50 characters
#   in length. So setting the chunk size to ~20% line size will require 5
#   loops to process 1 line... a respectable trade-off.
CHUNK_SIZE = 10

# DBC files are 8-bit text; Vector tools write Windows-1252
DBC_ENCODING = 'cp1252'

# Characters collapsed to ASCII once the file is decoded
TRANSLITERATION = {
    'ü': 'u', 'ö': 'o', 'ä': 'a', 'ß': 'ss',
    'Ü': 'U', 'Ö': 'O', 'Ä': 'A',
    '¿': '?',
}


class Fault(namedtuple('Fault', ['kind', 'line_number', 'text', 'reason'])):
    """
    A statement dropped while parsing.

    :param kind: ``'syntax'`` (statement not understood) or ``'reference'``
                 (statement refers to something that doesn't exist)
    """
    __slots__ = ()

    def __str__(self):
        return "line {}: {} ({})".format(self.line_number, self.reason, self.text.strip())


# --------- Base Parser
class StreamParser(object):
    def __init__(self, stream):
        self.stream = stream
        self.line_number = 0  # first line of the last line yielded

    def parse(self):
        raise NotImplementedError()

    def line_iter(self):
        r"""
        Generator that yields one *line* each iteration.

        Before yielding, the stream is seeked to just after the ``\n`` denoting
        the end of the line.

        **Define "line"**

        A line ends with a ``\n`` unless it's inside a string (``""``).
        So technically a *dbc line* may span over multiple lines.

        **Escape character**

        Inside a string, ``\`` escapes the following character, so ``\"``
        does not close the string.
        """

        chr_regex = re.compile(r'[\\"\n]')  # match: escape || quotes || new-line
        string_state = False  # not inside "" quotes
        next_line_number = 1

        while True:  # per line
            line = ''
            escaped_pos = None  # position (in line) of an escaped character

            while True:  # per chunk
                chunk = self.stream.read(CHUNK_SIZE)
                if not chunk:
                    break  # EOF
                base = len(line)
                line += chunk  # to be stripped if newline found inside chunk

                for m in chr_regex.finditer(chunk):
                    pos = base + m.start()
                    if pos == escaped_pos:
                        continue
                    c = m.group()
                    if c == '\\':
                        if string_state:
                            escaped_pos = pos + 1
                    elif c == '"':
                        string_state = not string_state
                    elif not string_state:  # == '\n'
                        # rewind stream to start of the next line
                        chunk_excess = len(chunk) - m.end()
                        self.stream.seek(self.stream.tell() - chunk_excess)
                        line = line[:len(line) - chunk_excess]
                        break  # will return line
                else:  # True if for loop did not `break`
                    continue
                break

            # return a line if there's something to return, otherwise EOF
            if line:
                if string_state:  # still inside a string, line is invalid
                    raise DBCSyntaxError(
                        "String opened on line {} was not closed before end of DBC line".format(next_line_number)
                    )
                self.line_number = next_line_number
                next_line_number += line.count('\n')
                yield line
            else:
                break


# @dbc_line decorator
DBC_LINE_CLASSES = []
def dbc_line(cls):
    DBC_LINE_CLASSES.append(cls)
    return cls


def get_line_object(line, classes=DBC_LINE_CLASSES):
    """
    Line -> first matching :class:`LineObject` instance (or ``None``)

    :raises ValueError: if a line matches, but a value can't be converted
    """
    for cls in classes:
        obj = cls.from_line(line)
        if obj:
            return obj
    return None


class DBCParser(StreamParser):
    """
    Builds a :class:`Database <candb.database.Database>` from DBC text.

    Parsing is tolerant; each statement that can't be understood, or refers to
    something that doesn't exist, is dropped and recorded as a :class:`Fault`.

    **Resolution order**

    Nodes, value tables, messages, signals & attribute definitions are
    created as they're read. Statements referring to them (comments,
    transmitters, attribute values, value descriptions, ...) are queued, then
    applied in file order once the whole file has been read. So, for example,
    an attribute value may appear before its definition.
    """
    def parse(self, strict=False):
        """
        :param strict: if ``True``, the first fault is raised instead of being
                       recorded
        :return: ``(database, faults)``
        :rtype: :class:`tuple`
        """
        self.strict = strict
        self.database = Database()
        self.faults = []
        self.message_latest = None
        deferred = []
        refers_to_messages = False
        ignore_tabbed = False

        # --------------- Pass 1: Lines to LineObject instances ---------------
        for line in self.line_iter():
            # Ignore empty lines
            if not line.strip():
                continue

            # state: Ignore tabbed in lines (NS_ keyword list)
            if ignore_tabbed:
                if re.search(r'^\s+', line):
                    continue
                ignore_tabbed = False

            line_number = self.line_number
            try:
                obj = get_line_object(line)
            except ValueError as e:
                self.fault('syntax', line_number, line, str(e))
                continue

            if obj is None:
                self.fault('syntax', line_number, line, "unrecognised statement")
                continue
            if isinstance(obj, IgnoredLine):
                logger.debug("line %i: skipping unsupported statement: %s", line_number, line.strip())
                continue
            if isinstance(obj, NewSymbolsLine):
                ignore_tabbed = True

            refers_to_messages |= obj.REFERS_TO_MESSAGES
            if obj.DEFERRED:
                deferred.append((line_number, line, obj))
            else:
                self.apply(line_number, line, obj)

        if refers_to_messages and not any(True for m in self.database.iter_messages()):
            raise DBCStructureError("statements refer to messages, but no message (BO_) could be read")

        # --------------- Pass 2: Linking ---------------
        for (line_number, line, obj) in deferred:
            self.apply(line_number, line, obj)

        logger.debug("parsed DBC with %i fault(s)", len(self.faults))
        return (self.database, self.faults)

    def apply(self, line_number, line, obj):
        self._current = (line_number, line)
        try:
            obj.apply(self)
        except (CanDBError, KeyError, IndexError) as e:
            self.fault('reference', line_number, line, _reason(e))
        except ValueError as e:
            self.fault('syntax', line_number, line, str(e))

    def fault(self, kind, line_number, line, reason):
        if self.strict:
            cls = DBCReferenceError if kind == 'reference' else DBCSyntaxError
            raise cls("line {}: {}: {!r}".format(line_number, reason, line.strip()))
        fault = Fault(kind, line_number, line, reason)
        logger.warning("%s", fault)
        self.faults.append(fault)

    def warn(self, reason):
        """
        Record a reference fault against the statement being applied, without
        dropping it.
        """
        (line_number, line) = self._current
        self.fault('reference', line_number, line, reason)

    # --------------- Lookups (for LineObject.apply)
    def node_key(self, name):
        node = self.database.get_node_by_name(name)
        if node is None:
            raise DBCReferenceError("unknown node '{}'".format(name))
        return node.key

    def message_key(self, address):
        message = self.database.get_message_by_id(address)
        if message is None:
            raise DBCReferenceError("unknown message id {}".format(address))
        return message.key

    def signal_key(self, address, name):
        message_key = self.message_key(address)
        signal = self.database.get_signal_by_name(message_key, name)
        if signal is None:
            raise DBCReferenceError("unknown signal '{}' in message {}".format(name, address))
        return signal.key

    def node_keys(self, names):
        keys = []
        for name in names:
            node = self.database.get_node_by_name(name)
            if node is None:
                self.warn("unknown node '{}'".format(name))
            else:
                keys.append(node.key)
        return keys


def _reason(error):
    # KeyError str() is the repr of its argument
    if isinstance(error, KeyError) and error.args:
        return str(error.args[0])
    return str(error)


def transliterate(text):
    return text.translate(str.maketrans(TRANSLITERATION))


def loads(text, strict=False):
    """
    Parse DBC content.

    :param text: decoded DBC content
    :type text: :class:`str`
    :return: database, with parse faults listed in its ``faults`` attribute
    :rtype: :class:`Database <candb.database.Database>`
    """
    text = transliterate(text.replace('\r\n', '\n'))
    parser = DBCParser(io.StringIO(text))
    (database, faults) = parser.parse(strict=strict)
    database.faults = faults
    return database


def parse_dbc(filename, strict=False):
    """
    Parse a DBC file.

    :raises DBCIOError: if the file can't be read
    :raises DBCEncodingError: if the file isn't valid :data:`DBC_ENCODING` text
    :raises DBCStructureError: if the file refers to messages, but declares none
    """
    try:
        with codecs.open(filename, 'r', encoding=DBC_ENCODING) as stream:
            text = stream.read()
    except UnicodeDecodeError as e:
        raise DBCEncodingError("{}: not {} text: {}".format(filename, DBC_ENCODING, e))
    except (IOError, OSError) as e:
        raise DBCIOError("{}: {}".format(filename, e))
    logger.debug("read %i characters from %s", len(text), filename)
    return loads(text, strict=strict)


class LineObject(object):
    _REGEX = None  # overridden to be a: re.Pattern (return from re.compile)
    _TYPE_MAP = {}

    DEFERRED = False  # if True, applied after all lines have been read
    REFERS_TO_MESSAGES = False

    @classmethod
    def from_line(cls, line):
        """
        Builds an instance from the given line.

        If the line does not match ``cls._REGEX``, ``None`` is returned.

        :return: instance of this class, or None
        :rtype: ``cls``
        """
        match = cls._REGEX.search(line)
        if match:
            return cls(**match.groupdict())
        return None

    def dict(self):
        """
        Return this object as a dict

        :return: object with each attribute as a dict key/value pair
        :rtype: :class:`dict`
        """
        return {
            v: getattr(self, v)
            for v in self._REGEX.groupindex.keys()
        }

    def __init__(self, **kwargs):
        for (key, val) in kwargs.items():
            if val is None:
                setattr(self, key, None)
            else:
                setattr(self, key, self._TYPE_MAP.get(key, str)(val))

    def apply(self, parser):
        """
        Apply this statement to ``parser.database``.
        """
        pass


# --- Types
def _t_string(value):
    return re.sub(r'\\(.)', r'\1', value, flags=re.DOTALL)

def _t_transmitter(value):
    if value == NULL_NODE:
        return None
    return value

def _t_endianness(value):
    return value == '1'

def _t_signedness(value):
    return value == '-'

def _t_nodelist_csv(value):
    return [
        rx for rx in re.split(r'[\s,]+', value.strip())
        if rx not in ['', NULL_NODE]
    ]

def _t_nodelist_space(value):
    return [
        node for node in re.split(r'\s+', value)
        if node  # remove ''
    ]

_t_enum_list_regex = re.compile(r'([+-]?\d+)\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
def _t_enum_list(value):
    enums = {}
    for m in _t_enum_list_regex.finditer(value):
        (k, v) = m.groups()
        enums[int(k)] = _t_string(v)
    return enums

_t_range_regex = re.compile(r'(\d+)\s*-\s*(\d+)')
def _t_range_list(value):
    return [
        (int(low), int(high))
        for (low, high) in _t_range_regex.findall(value)
    ]


_t_flex_map = (
    (re.compile(r'^(?P<val>[+-]?\d+)$'), int),
    (re.compile(r'^(?P<val>[+-]?(\d*\.\d+|\d+\.?)(e[+-]?\d+)?)$', re.I), float),
    (re.compile(r'^0x(?P<val>[0-9a-f]+)$', re.I), lambda v: int(v, 16)),
    (re.compile(r'^0b(?P<val>[01]+)$', re.I), lambda v: int(v, 2)),
    (re.compile(r'^"(?P<val>(?:[^"\\]|\\.)*)"$', re.DOTALL), _t_string),
)

def _t_flexible_val(value):
    for (regex, typ) in _t_flex_map:
        m = regex.search(value)
        if m:
            return typ(m.group('val'))
    return value


# ----- Header
@dbc_line
class VersionLine(LineObject):
    """
    DBC file 'version' text

    Example(s)::

        VERSION "created by canmatrix"
        VERSION ""
    """
    _REGEX = re.compile(r'''
        ^VERSION\s*                         # line start
        "(?P<text>(?:[^"\\]|\\.)*)"         # version text
        \s*$                                # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {'text': _t_string}

    def apply(self, parser):
        parser.database.version = self.text


@dbc_line
class NewSymbolsLine(LineObject):
    """
    Line often appears at the beginning of a file followed by lots of
    single-world flags (indented). Those are ignored.

    Example::

        NS_:
            NS_DESC_
            CM_
    """
    _REGEX = re.compile(r'^NS_\s*:\s*$')


@dbc_line
class BitTimingLine(LineObject):
    """
    Bus speed; almost always empty.

    Example(s)::

        BS_:
        BS_: 500
    """
    _REGEX = re.compile(r'^BS_\s*:\s*(?P<speed>.*?)\s*$')

    def apply(self, parser):
        parser.database.bus_speed = self.speed


@dbc_line
class NodeListLine(LineObject):
    """
    Examples::

        BU_: ABC DEF
        BU_: Node1 INV_1 AUX
    """
    _REGEX = re.compile(r'''
        ^BU_\s*:\s*         # line start
        (?P<nodes>.*?)\s*   # nodes list (space separated)
        $                   # line end
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'nodes': _t_nodelist_space,
    }

    def apply(self, parser):
        duplicates = []
        for name in self.nodes:
            if parser.database.get_node_by_name(name) is not None:
                duplicates.append(name)
                continue
            parser.database.add_node(name)
        if duplicates:
            parser.warn("duplicate node(s) ignored: {}".format(', '.join(duplicates)))


@dbc_line
class ValueTableLine(LineObject):
    """
    Examples::

        VAL_TABLE_ Baudrate 0 "125K" 1 "250K" 2 "500K" 3 "1M";
    """
    _REGEX = re.compile(r'''
        ^VAL_TABLE_\s+          # line start
        (?P<table>\w+)\s*       # table name
        (?P<enums>(
            [+-]?\d+\s*             # value (decimal)
            "(?:[^"\\]|\\.)*"\s*    # label
        )*)\s*                  # zero or many
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'table': str,
        'enums': _t_enum_list,
    }

    def apply(self, parser):
        parser.database.value_tables[self.table] = self.enums


# ----- Messages & Signals
@dbc_line
class MessageLine(LineObject):
    """
    Example(s)::

        BO_ 2566903475 ConverterInputOutput: 8 DCDC
        BO_ 1258 PDORx4_Inv1: 8 INV_1
        BO_ 263 Batt107: 4 Vector__XXX
    """
    _REGEX = re.compile(r'''
        ^BO_\s+                 # line start
        (?P<address>\d+)\s+     # address (decimal)
        (?P<name>\w+)\s*:\s*    # message name
        (?P<dlc>\d+)\s+         # length (bytes)
        (?P<transmitter>\w+)    # transmitter, mandatory, only 1
        \s*$                    # line end
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'address': int,
        'name': str,
        'dlc': int,
        'transmitter': _t_transmitter,
    }

    def apply(self, parser):
        parser.message_latest = None  # following signals are orphans if this fails
        senders = []
        if self.transmitter is not None:
            senders = parser.node_keys([self.transmitter])
        parser.message_latest = parser.database.add_message(
            self.address, self.name, self.dlc, senders=senders,
        )


@dbc_line
class SignalLine(LineObject):
    """
    Examples::

        SG_ Frequency : 23|16@0+ (0.001,10) [10|75] "Hz" ABC,DEF
        SG_ LotzaRange : 7|16@0- (1,0) [-32768|32767] "" Vector__XXX
        SG_ KeyValue M : 3|3@1+ (1,0) [0|7] "" RxNode
        SG_ Dummy m0 : 23|16@0+ (1,0) [0|65535] "" Vector__XXX
        SG_ SubMux m2M : 8|4@1+ (1,0) [0|15] "" Vector__XXX
    """
    _REGEX = re.compile(r'''
        ^\s*SG_\s+                      # line start, can be tabbed in (fault tolerant)
        (?P<name>\w+)\s*                # signal name
        (?P<mux>(M|m\d+M?))?\s*:\s*     # multiplexing: M multiplexor, m1 present when multiplexor is 1
        (?P<start>\d+)\s*\|\s*          # start bit
        (?P<length>\d+)\s*@\s*          # length (bits)
        (?P<little_endian>[01])\s*      # 0 big endian, 1 little endian
        (?P<signed>[+-])\s*             # - signed, + not signed
        \(
            \s*(?P<factor>[^,]+?)\s*,   # factor
            \s*(?P<offset>[^\)]+?)\s*   # offset
        \)\s*
        \[
            \s*(?P<minimum>[^\|]+?)\s*\|    # minimum value
            \s*(?P<maximum>[^\]]+?)\s*      # maximum value
        \]\s*
        "(?P<unit>(?:[^"\\]|\\.)*)"\s*  # unit string: eg: sec, Amps, DegC
        (?P<receivers>.*?)              # receivers, a csv list
        \s*$                            # end of line
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'name': str,
        'mux': str,
        'start': int,
        'length': int,
        'little_endian': _t_endianness,
        'signed': _t_signedness,
        'factor': float,
        'offset': float,
        'minimum': float,
        'maximum': float,
        'unit': _t_string,
        'receivers': _t_nodelist_csv,
    }

    REFERS_TO_MESSAGES = True

    @property
    def is_multiplexor(self):
        return bool(self.mux) and self.mux.endswith('M')

    @property
    def mux_value(self):
        m = re.search(r'^m(\d+)', self.mux or '')
        return int(m.group(1)) if m else None

    def apply(self, parser):
        if parser.message_latest is None:
            raise DBCReferenceError("signal '{}' is not inside a message".format(self.name))
        if not (1 <= self.length <= 64):
            raise ValueError("signal '{}' length {} is not within 1-64 bits".format(self.name, self.length))
        parser.database.add_signal(
            parser.message_latest, self.name, self.start, self.length,
            receivers=parser.node_keys(self.receivers),
            little_endian=self.little_endian, signed=self.signed,
            factor=self.factor, offset=self.offset,
            minimum=self.minimum, maximum=self.maximum, unit=self.unit,
            is_multiplexor=self.is_multiplexor, mux_value=self.mux_value,
        )


@dbc_line
class TransmittersLine(LineObject):
    """
    Additional message senders.

    Example(s)::

        BO_TX_BU_ 1234 : ECU1,ECU2;
    """
    _REGEX = re.compile(r'''
        ^BO_TX_BU_\s+           # line start
        (?P<address>\d+)\s*:\s* # frame address
        (?P<nodes>[^;]*?)\s*    # transmitters (comma separated)
        ;\s*$                   # line end
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'address': int,
        'nodes': _t_nodelist_csv,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        message_key = parser.message_key(self.address)
        for node_key in parser.node_keys(self.nodes):
            parser.database.add_sender(message_key, node_key)


# ----- Comments
@dbc_line
class DatabaseCommentLine(LineObject):
    """
    Examples::

        CM_ "network for the test bench";
    """
    _REGEX = re.compile(r'''
        ^CM_\s*                             # line start
        "(?P<comment>(?:[^"\\]|\\.)*)"\s*   # comment
        ;\s*$                               # end of line
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {'comment': _t_string}

    DEFERRED = True

    def apply(self, parser):
        parser.database.comment = self.comment


@dbc_line
class NodeCommentLine(LineObject):
    """
    Examples::

        CM_ BU_ testBU "sender ECU";
        CM_ BU_ NodeX "comment over
        multiple lines";
    """
    _REGEX = re.compile(r'''
        ^CM_\s+BU_\s+                       # line start
        (?P<node>\w+)\s*                    # node name
        "(?P<comment>(?:[^"\\]|\\.)*)"\s*   # comment
        ;\s*$                               # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'node': str,
        'comment': _t_string,
    }

    DEFERRED = True

    def apply(self, parser):
        parser.database.node(parser.node_key(self.node)).comment = self.comment


@dbc_line
class MessageCommentLine(LineObject):
    """
    Examples::

        CM_ BO_ 2365573367  "Fault bits.";
        CM_ BO_ 123  "multiline comment
        spans multiple lines... go figure!";
    """
    _REGEX = re.compile(r'''
        ^CM_\s+BO_\s+                       # line start
        (?P<address>\d+)\s*                 # frame address
        "(?P<comment>(?:[^"\\]|\\.)*)"\s*   # comment
        ;\s*$                               # end of line
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'address': int,
        'comment': _t_string,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        parser.database.message(parser.message_key(self.address)).comment = self.comment


@dbc_line
class SignalCommentLine(LineObject):
    """
    Examples::

        CM_ SG_ 2164239169 SignalName "this is the comment";
        CM_ SG_ 123 SignalName2 "this comment
        extends over multiple lines";
    """
    _REGEX = re.compile(r'''
        ^CM_\s+SG_\s+                       # line start
        (?P<address>\d+)\s+                 # frame address
        (?P<name>\w+)\s*                    # signal name
        "(?P<comment>(?:[^"\\]|\\.)*)"\s*   # comment
        ;\s*$                               # end of line
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'address': int,
        'name': str,
        'comment': _t_string,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        parser.database.signal(parser.signal_key(self.address, self.name)).comment = self.comment


# ----- Attribute Definitions
@dbc_line
class AttributeDefinitionLine(LineObject):
    """
    Examples::

        BA_DEF_ "BusType" STRING ;
        BA_DEF_ BU_ "NWM-Stationsadresse" HEX 0 63;
        BA_DEF_ BO_ "GenMsgCycleTime" INT 0 65535;
        BA_DEF_ SG_ "GenSigStartValue" FLOAT -3.4E+038 3.4E+038;
        BA_DEF_ BO_ "VFrameFormat" ENUM "StandardCAN","ExtendedCAN";
    """
    _REGEX = re.compile(r'''
        ^BA_DEF_\s*                     # line start
        (?P<object_type>BU_|BO_|SG_|EV_)?\s*  # assigned to (database if absent)
        "(?P<name>[^"]*)"\s*            # name
        (?P<value_type>[A-Z]+)          # type
        (\s+(?P<params>.*?))?\s*        # type parameters
        ;\s*$                           # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'object_type': str,
        'name': str,
        'value_type': str,
        'params': str,
    }

    def __init__(self, **kwargs):
        super(AttributeDefinitionLine, self).__init__(**kwargs)
        self.object_type = self.object_type or ''
        params = (self.params or '').strip()

        # Set type-specific attributes
        self.minimum = self.maximum = None
        self.values = None
        if self.value_type in ('INT', 'HEX', 'FLOAT'):
            # min, max
            typ = float if self.value_type == 'FLOAT' else int
            limits = [v for v in re.split(r'\s+', params) if v]
            if len(limits) == 2:
                (self.minimum, self.maximum) = (typ(v) for v in limits)
            elif limits:
                raise ValueError("expected 2 limits for {} attribute '{}'".format(self.value_type, self.name))
        elif self.value_type == 'ENUM':
            value_regex = re.compile(r'"(?P<val>(?:[^"\\]|\\.)*)"')
            self.values = [
                _t_string(m.group('val'))
                for m in value_regex.finditer(params)
            ]
        elif self.value_type != 'STRING':
            raise ValueError("unknown attribute type '{}'".format(self.value_type))

    def definition(self):
        return AttributeDefinition(
            self.name, self.value_type, object_type=self.object_type,
            minimum=self.minimum, maximum=self.maximum, values=self.values,
        )

    def apply(self, parser):
        parser.database.define_attribute(self.definition())


@dbc_line
class RelationDefinitionLine(AttributeDefinitionLine):
    """
    Examples::

        BA_DEF_REL_ BU_SG_REL_ "GenSigTimeoutTime" INT 0 65535;
        BA_DEF_REL_ BU_BO_REL_ "GenMsgTimeoutTime" INT 0 65535;
    """
    _REGEX = re.compile(r'''
        ^BA_DEF_REL_\s+                 # line start
        (?P<object_type>BU_SG_REL_|BU_BO_REL_|BU_EV_REL_)\s*  # relation
        "(?P<name>[^"]*)"\s*            # name
        (?P<value_type>[A-Z]+)          # type
        (\s+(?P<params>.*?))?\s*        # type parameters
        ;\s*$                           # line end
    ''', re.VERBOSE | re.DOTALL)


# ----- Default Values
@dbc_line
class AttributeDefaultLine(LineObject):
    """
    Example(s)::

        BA_DEF_DEF_ "GenMsgCycleTime" 65535;
        BA_DEF_DEF_ "VFrameFormat" "StandardCAN";
    """
    _REGEX = re.compile(r'''
        ^BA_DEF_DEF_\s*         # line start
        "(?P<name>[^"]*)"\s*    # name
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'value': _t_flexible_val,
    }

    DEFERRED = True

    def apply(self, parser):
        definition = parser.database.attribute_definition(self.name)
        definition.default = definition.coerce_default(self.value)


@dbc_line
class RelationDefaultLine(AttributeDefaultLine):
    """
    Example(s)::

        BA_DEF_DEF_REL_ "GenSigTimeoutTime" 0;
    """
    _REGEX = re.compile(r'''
        ^BA_DEF_DEF_REL_\s*     # line start
        "(?P<name>[^"]*)"\s*    # name
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)


# ----- Attribute Values
class _AttributeValueLine(LineObject):
    DEFERRED = True

    def target(self, parser):
        raise NotImplementedError()

    def apply(self, parser):
        target = self.target(parser)
        parser.database.set_attribute(target, self.name, self.value)


@dbc_line
class DatabaseAttributeLine(_AttributeValueLine):
    """
    Example(s)::

        BA_ "BusType" "CAN";
        BA_ "Baudrate" 500000;
    """
    _REGEX = re.compile(r'''
        ^BA_\s*                 # line start
        "(?P<name>[^"]*)"       # name
        (?!\s*(BU_|BO_|SG_|EV_)\s)  # not assigned to an object
        \s*
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'value': _t_flexible_val,
    }

    def target(self, parser):
        return None


@dbc_line
class NodeAttributeLine(_AttributeValueLine):
    """
    Example(s)::

        BA_ "NetworkNode" BU_ testBU 273;
    """
    _REGEX = re.compile(r'''
        ^BA_\s*                 # line start
        "(?P<name>[^"]*)"\s*    # name
        BU_\s+
        (?P<node>\w+)\s+        # node name
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'node': str,
        'value': _t_flexible_val,
    }

    def target(self, parser):
        return parser.node_key(self.node)


@dbc_line
class MessageAttributeLine(_AttributeValueLine):
    """
    Examples::

        BA_ "GenMsgSendType" BO_ 2164239169 1;
        BA_ "GenMsgStartValue" BO_ 2164239169 "0000000000000000";
    """
    _REGEX = re.compile(r'''
        ^BA_\s*                 # line start
        "(?P<name>[^"]*)"\s*    # name
        BO_\s+
        (?P<address>\d+)\s+     # frame address
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'address': int,
        'value': _t_flexible_val,
    }

    REFERS_TO_MESSAGES = True

    def target(self, parser):
        return parser.message_key(self.address)


@dbc_line
class SignalAttributeLine(_AttributeValueLine):
    """
    Examples::

        BA_ "GenSigStartValue" SG_ 2365565505 V50to88pct 2000.0;
        BA_ "GenSigStartValue" SG_ 123 Dummy 0.0;
        BA_ "DisplayDecimalPlaces" SG_ 2634007031 ControlSwRev 2;
    """
    _REGEX = re.compile(r'''
        ^BA_\s*                 # line start
        "(?P<name>[^"]*)"\s*    # name
        SG_\s+
        (?P<address>\d+)\s+     # frame address
        (?P<signal>\w+)\s+      # signal name
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'address': int,
        'signal': str,
        'value': _t_flexible_val,
    }

    REFERS_TO_MESSAGES = True

    def target(self, parser):
        return parser.signal_key(self.address, self.signal)


@dbc_line
class NodeSignalRelationLine(LineObject):
    """
    Example(s)::

        BA_REL_ "GenSigTimeoutTime" BU_SG_REL_ Gateway SG_ 256 Speed 100;
    """
    _REGEX = re.compile(r'''
        ^BA_REL_\s*             # line start
        "(?P<name>[^"]*)"\s*    # name
        BU_SG_REL_\s+
        (?P<node>\w+)\s+        # node name
        SG_\s+
        (?P<address>\d+)\s+     # frame address
        (?P<signal>\w+)\s+      # signal name
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'node': str,
        'address': int,
        'signal': str,
        'value': _t_flexible_val,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        parser.database.set_relation_attribute(
            parser.node_key(self.node), parser.signal_key(self.address, self.signal),
            self.name, self.value,
        )


@dbc_line
class NodeMessageRelationLine(LineObject):
    """
    Example(s)::

        BA_REL_ "GenMsgTimeoutTime" BU_BO_REL_ Gateway 256 500;
    """
    _REGEX = re.compile(r'''
        ^BA_REL_\s*             # line start
        "(?P<name>[^"]*)"\s*    # name
        BU_BO_REL_\s+
        (?P<node>\w+)\s+        # node name
        (?P<address>\d+)\s+     # frame address
        (?P<value>.*?)\s*       # value
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'name': str,
        'node': str,
        'address': int,
        'value': _t_flexible_val,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        parser.database.set_relation_attribute(
            parser.node_key(self.node), parser.message_key(self.address),
            self.name, self.value,
        )


# ----- Signal extras
@dbc_line
class ValueDescriptionLine(LineObject):
    """
    Examples::

        VAL_ 291 Signal 1 "one" 2 "two" 3 "three";
    """
    _REGEX = re.compile(r'''
        ^VAL_\s+                # line start
        (?P<address>\d+)\s+     # frame address
        (?P<signal>\w+)\s*      # signal name
        (?P<enums>(
            [+-]?\d+\s*             # value (decimal)
            "(?:[^"\\]|\\.)*"\s*    # label
        )*)\s*                  # zero or many
        ;\s*$                   # line end
    ''', re.VERBOSE | re.DOTALL)

    _TYPE_MAP = {
        'address': int,
        'signal': str,
        'enums': _t_enum_list,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        parser.database.signal(parser.signal_key(self.address, self.signal)).value_table = self.enums


@dbc_line
class SignalValueTypeLine(LineObject):
    """
    IEEE float (1) & double (2) signals.

    Example(s)::

        SIG_VALTYPE_ 256 Temperature : 1;
    """
    _REGEX = re.compile(r'''
        ^SIG_VALTYPE_\s+        # line start
        (?P<address>\d+)\s+     # frame address
        (?P<signal>\w+)\s*:?\s* # signal name
        (?P<value_type>\d+)\s*  # 0 integer, 1 float, 2 double
        ;\s*$                   # line end
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'address': int,
        'signal': str,
        'value_type': int,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    VALUE_TYPES = {0: 'integer', 1: 'float', 2: 'double'}

    def apply(self, parser):
        if self.value_type not in self.VALUE_TYPES:
            raise ValueError("unknown signal value type {}".format(self.value_type))
        signal = parser.database.signal(parser.signal_key(self.address, self.signal))
        signal.value_type = self.VALUE_TYPES[self.value_type]


@dbc_line
class MuxValueLine(LineObject):
    """
    Extended multiplexing; the multiplexor & value ranges selecting a signal.

    Example(s)::

        SG_MUL_VAL_ 2024 S1 Mux 0-0;
        SG_MUL_VAL_ 2024 S2 SubMux 2-5, 7-7;
    """
    _REGEX = re.compile(r'''
        ^SG_MUL_VAL_\s+         # line start
        (?P<address>\d+)\s+     # frame address
        (?P<signal>\w+)\s+      # signal name
        (?P<switch>\w+)\s+      # multiplexor signal name
        (?P<ranges>(
            \d+\s*-\s*\d+\s*,?\s*   # range
        )+)                     # one or many
        ;\s*$                   # line end
    ''', re.VERBOSE)

    _TYPE_MAP = {
        'address': int,
        'signal': str,
        'switch': str,
        'ranges': _t_range_list,
    }

    DEFERRED = True
    REFERS_TO_MESSAGES = True

    def apply(self, parser):
        signal = parser.database.signal(parser.signal_key(self.address, self.signal))
        switch = parser.database.signal(parser.signal_key(self.address, self.switch))
        if not switch.is_multiplexor:
            raise DBCReferenceError("signal '{}' is not a multiplexor".format(switch.name))
        signal.mux_switch = switch.name
        signal.mux_ranges.extend(self.ranges)


# ----- Known, but not supported
@dbc_line
class IgnoredLine(LineObject):
    """
    Statements recognised, but deliberately not modelled (environment
    variables, signal groups & types, categories, filters).

    Example(s)::

        EV_ EnvVar: 0 [0|1] "" 0 1 DUMMY_NODE_VECTOR0 Vector__XXX;
        SIG_GROUP_ 256 Group1 1 : Speed Rpm;
    """
    _REGEX = re.compile(r'''
        ^(
            EV_\s | ENVVAR_DATA_ | SGTYPE_ | SGTYPE_VAL_ | SIG_TYPE_REF_ |
            SIG_GROUP_ | CAT_DEF_ | CAT_ | FILTER | BU_EV_REL_ |
            BU_SG_REL_ | BU_BO_REL_ | BA_DEF_SGTYPE_ | BA_SGTYPE_ |
            VAL_\s+[A-Za-z_] |                  # environment variable values
            CM_\s+EV_\s |                       # environment variable comment
            BA_\s*"[^"]*"\s*EV_\s |             # environment variable attribute
            BA_REL_\s*"[^"]*"\s*BU_EV_REL_\s
        )
    ''', re.VERBOSE)
