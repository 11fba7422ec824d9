import codecs
import datetime
import logging
import os

from . import parser
from .containers import AttributeDefinition, NULL_NODE
from .database import Database, SIGNAL
from .exceptions import DBCIOError, DBCEncodingError, DBCSavePathError, DatabaseCreateError

logger = logging.getLogger(__name__)


# Keywords listed (tabbed in) under NS_
NS_KEYWORDS = [
    'NS_DESC_', 'CM_', 'BA_DEF_', 'BA_', 'VAL_', 'CAT_DEF_', 'CAT_',
    'FILTER', 'BA_DEF_DEF_', 'EV_DATA_', 'ENVVAR_DATA_', 'SGTYPE_',
    'SGTYPE_VAL_', 'BA_DEF_SGTYPE_', 'BA_SGTYPE_', 'SIG_TYPE_REF_',
    'VAL_TABLE_', 'SIG_GROUP_', 'SIG_VALTYPE_', 'SIGTYPE_VALTYPE_',
    'BO_TX_BU_', 'BA_DEF_REL_', 'BA_REL_', 'BA_DEF_DEF_REL_',
    'BU_SG_REL_', 'BU_EV_REL_', 'BU_BO_REL_', 'SG_MUL_VAL_',
]

_VALUE_TYPE_CODES = {'integer': 0, 'float': 1, 'double': 2}


# --------- Formatting
def format_float(f):
    """
    Shortest text that reads back as ``f``; exponents padded to 3 digits.

    ::

        >>> format_float(1.0)
        '1'
        >>> format_float(3.4e38)
        '3.4E+038'
    """
    s = str(float(f)).upper()
    if s.endswith('.0'):
        s = s[:-2]

    if 'E' in s:
        (mantissa, exponent) = s.split('E')
        if mantissa.endswith('.0'):
            mantissa = mantissa[:-2]
        s = '%sE%s%s' % (mantissa, exponent[0], exponent[1:].rjust(3, '0'))

    return s


def quote(text):
    return '"%s"' % text.replace('\\', '\\\\').replace('"', '\\"')


def format_value(definition, value):
    """
    Attribute value as DBC text.

    ``ENUM`` values are written as their index.
    """
    if definition.value_type in ('INT', 'HEX', 'ENUM'):
        return str(int(value))
    elif definition.value_type == 'FLOAT':
        return format_float(value)
    return quote(str(value))


def format_default(definition):
    if definition.value_type == 'ENUM':
        return quote(definition.default)
    return format_value(definition, definition.default)


def format_definition(definition):
    """
    Type (and parameters) of an attribute definition.
    """
    if definition.value_type == 'ENUM':
        return 'ENUM  ' + ','.join(quote(v) for v in definition.values)
    elif definition.value_type == 'STRING':
        return 'STRING '
    elif definition.minimum is None:
        return definition.value_type
    elif definition.value_type == 'FLOAT':
        return 'FLOAT %s %s' % (format_float(definition.minimum), format_float(definition.maximum))
    return '%s %d %d' % (definition.value_type, definition.minimum, definition.maximum)


def format_mux(signal):
    if signal.mux_value is not None:
        return ' m%d%s' % (signal.mux_value, 'M' if signal.is_multiplexor else '')
    if signal.is_multiplexor:
        return ' M'
    return ''


def format_enums(enums):
    return ' '.join('%d %s' % (k, quote(v)) for (k, v) in sorted(enums.items()))


# --------- Writer
class DBCWriter(object):
    """
    Writes a :class:`Database <candb.database.Database>` as DBC text.

    Sections are always written in the same order::

        VERSION, NS_, BS_, BU_, VAL_TABLE_, BO_ (& SG_), BO_TX_BU_, CM_,
        BA_DEF_, BA_DEF_REL_, BA_DEF_DEF_, BA_DEF_DEF_REL_, BA_, BA_REL_,
        VAL_, SIG_VALTYPE_, SG_MUL_VAL_
    """
    def __init__(self, database):
        self.database = database

    def node_names(self, keys):
        return [self.database.node(k).name for k in keys]

    def lines(self):
        db = self.database
        messages = list(db.iter_messages())
        signals = [
            (message, signal)
            for message in messages
            for signal in db.message_signals(message.key)
        ]
        definitions = list(db.attribute_definitions.values())

        # --------------- Header
        yield 'VERSION %s' % quote(db.version)
        yield ''
        yield ''
        yield 'NS_ :'
        for keyword in NS_KEYWORDS:
            yield '\t' + keyword
        yield ''
        yield ('BS_: %s' % db.bus_speed) if db.bus_speed else 'BS_:'
        yield ''
        yield 'BU_: ' + ' '.join(n.name for n in db.iter_nodes())
        for (name, enums) in db.value_tables.items():
            yield 'VAL_TABLE_ %s %s ;' % (name, format_enums(enums))
        yield ''
        yield ''

        # --------------- Messages & Signals
        for message in messages:
            sender = self.node_names(message.senders[:1]) or [NULL_NODE]
            yield 'BO_ %d %s: %d %s' % (message.id, message.name, message.byte_length, sender[0])
            for signal in db.message_signals(message.key):
                yield ' SG_ %s%s : %d|%d@%d%s (%s,%s) [%s|%s] %s  %s' % (
                    signal.name, format_mux(signal),
                    signal.bit_start, signal.bit_length,
                    1 if signal.little_endian else 0,
                    '-' if signal.signed else '+',
                    format_float(signal.factor), format_float(signal.offset),
                    format_float(signal.minimum), format_float(signal.maximum),
                    quote(signal.unit),
                    ','.join(self.node_names(signal.receivers)) or NULL_NODE,
                )
            yield ''
        yield ''

        for message in messages:
            if len(message.senders) > 1:
                yield 'BO_TX_BU_ %d : %s;' % (message.id, ','.join(self.node_names(message.senders)))
        yield ''

        # --------------- Comments
        if db.comment:
            yield 'CM_ %s;' % quote(db.comment)
        for node in db.iter_nodes():
            if node.comment:
                yield 'CM_ BU_ %s %s;' % (node.name, quote(node.comment))
        for message in messages:
            if message.comment:
                yield 'CM_ BO_ %d %s;' % (message.id, quote(message.comment))
        for (message, signal) in signals:
            if signal.comment:
                yield 'CM_ SG_ %d %s %s;' % (message.id, signal.name, quote(signal.comment))

        # --------------- Attribute Definitions & Defaults
        for object_type in AttributeDefinition.OBJECT_TYPES:
            for definition in definitions:
                if definition.object_type == object_type:
                    yield 'BA_DEF_ %s %s %s;' % (
                        object_type, quote(definition.name), format_definition(definition),
                    )
        for definition in definitions:
            if definition.is_relation:
                yield 'BA_DEF_REL_ %s %s %s;' % (
                    definition.object_type, quote(definition.name), format_definition(definition),
                )
        for definition in definitions:
            if definition.default is not None and not definition.is_relation:
                yield 'BA_DEF_DEF_ %s %s;' % (quote(definition.name), format_default(definition))
        for definition in definitions:
            if definition.default is not None and definition.is_relation:
                yield 'BA_DEF_DEF_REL_ %s %s;' % (quote(definition.name), format_default(definition))

        # --------------- Attribute Values
        def assignments(attributes):
            for (name, value) in attributes.items():
                yield (name, format_value(db.attribute_definition(name), value))

        for (name, value) in assignments(db.attributes):
            yield 'BA_ %s %s;' % (quote(name), value)
        for node in db.iter_nodes():
            for (name, value) in assignments(node.attributes):
                yield 'BA_ %s BU_ %s %s;' % (quote(name), node.name, value)
        for message in messages:
            for (name, value) in assignments(message.attributes):
                yield 'BA_ %s BO_ %d %s;' % (quote(name), message.id, value)
        for (message, signal) in signals:
            for (name, value) in assignments(signal.attributes):
                yield 'BA_ %s SG_ %d %s %s;' % (quote(name), message.id, signal.name, value)

        relations = []
        for ((node_key, target_key), attributes) in db.relation_attributes.items():
            node = db.node(node_key)
            if target_key.kind == SIGNAL:
                signal = db.signal(target_key)
                message = db.message(signal.message)
                target = 'BU_SG_REL_ %s SG_ %d %s' % (node.name, message.id, signal.name)
            else:
                message = db.message(target_key)
                target = 'BU_BO_REL_ %s %d' % (node.name, message.id)
            for (name, value) in assignments(attributes):
                relations.append('BA_REL_ %s %s %s;' % (quote(name), target, value))
        for line in sorted(relations):
            yield line

        # --------------- Signal extras
        for (message, signal) in signals:
            if signal.value_table:
                yield 'VAL_ %d %s %s ;' % (message.id, signal.name, format_enums(signal.value_table))
        for (message, signal) in signals:
            if signal.value_type != 'integer':
                yield 'SIG_VALTYPE_ %d %s : %d;' % (
                    message.id, signal.name, _VALUE_TYPE_CODES[signal.value_type],
                )
        for (message, signal) in signals:
            if signal.mux_switch and signal.mux_ranges:
                yield 'SG_MUL_VAL_ %d %s %s %s;' % (
                    message.id, signal.name, signal.mux_switch,
                    ', '.join('%d-%d' % r for r in signal.mux_ranges),
                )


def dumps(database):
    """
    :return: DBC text of ``database``
    :rtype: :class:`str`
    """
    return '\n'.join(DBCWriter(database).lines()) + '\n'


def save_dbc(filename, database):
    """
    Write a database to a DBC file, creating parent directories as needed.

    :raises DBCSavePathError: if ``filename`` doesn't end with ``.dbc``, or
                              its directory can't be created
    :raises DBCEncodingError: if text can't be written as :data:`DBC_ENCODING <candb.parser.DBC_ENCODING>`
    :raises DBCIOError: if the file can't be written
    """
    if os.path.splitext(filename)[1].lower() != '.dbc':
        raise DBCSavePathError("{}: DBC files must have a .dbc extension".format(filename))

    directory = os.path.dirname(os.path.abspath(filename))
    if not os.path.isdir(directory):
        try:
            os.makedirs(directory)
        except OSError as e:
            raise DBCSavePathError("{}: can't create directory: {}".format(directory, e))

    text = dumps(database)
    try:
        text.encode(parser.DBC_ENCODING)
    except UnicodeEncodeError as e:
        raise DBCEncodingError("content can't be encoded as {}: {}".format(parser.DBC_ENCODING, e))

    try:
        with codecs.open(filename, 'w', encoding=parser.DBC_ENCODING) as stream:
            stream.write(text)
    except (IOError, OSError) as e:
        raise DBCIOError("{}: {}".format(filename, e))
    logger.debug("saved %s", filename)


# --------- New Database
def _is_canfd(bus_type):
    return bus_type.replace(' ', '').replace('_', '').upper() == 'CANFD'


def new_database(name, bus_type='CAN', version='1.0', today=None):
    """
    Create an empty database, with the attributes every DBC tool expects.

    :param name: network name (``DBName`` attribute)
    :param bus_type: ``'CAN'`` or ``'CAN FD'``
    :param version: ``VERSION`` text
    :param today: date stamped in the ``Version*`` attributes (default: today)
    :raises DatabaseCreateError: if ``name`` or ``version`` is blank
    """
    if not name or not name.strip():
        raise DatabaseCreateError("database name can't be empty")
    if not version or not version.strip():
        raise DatabaseCreateError("database version can't be empty")
    today = today or datetime.date.today()

    db = Database()
    db.version = version

    def define(attribute, value_type, value, default=None, **kwargs):
        db.define_attribute(AttributeDefinition(attribute, value_type, default=default, **kwargs))
        db.set_attribute(None, attribute, value)

    define('DBName', 'STRING', name, default='')
    define('BusType', 'STRING', bus_type, default='')
    define('Baudrate', 'INT', 500000, default=500000, minimum=1, maximum=1000000)
    if _is_canfd(bus_type):
        define('BaudrateCANFD', 'INT', 2000000, default=500000, minimum=1, maximum=16000000)
    define('VersionDay', 'INT', today.day, default=1, minimum=1, maximum=31)
    define('VersionMonth', 'INT', today.month, default=1, minimum=1, maximum=12)
    define('VersionWeek', 'INT', min(today.isocalendar()[1], 52), default=1, minimum=1, maximum=52)
    define('VersionYear', 'INT', (today.year % 100) or 99, default=1, minimum=1, maximum=99)
    define('VersionNumber', 'INT', 1, default=1, minimum=1, maximum=65535)
    define('Manufacturer', 'STRING', '', default='')
    return db
