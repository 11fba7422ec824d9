import logging
from collections import namedtuple

from .containers import Node, Message, Signal, AttributeDefinition
from .containers import format_id_hex
from .exceptions import DuplicateError, StaleKeyError, UndefinedAttributeError

logger = logging.getLogger(__name__)


# Record storage design
#   Nodes, messages & signals live in slot arenas. Everything referencing a
#   record (message senders, signal receivers, trace logs, callers) holds a
#   Key, never the record itself.
#   Each slot carries a generation, incremented when the slot is reused, so a
#   key to a removed record can never resolve to its replacement.
#   Presentation order is kept separately (order vectors), so sorting never
#   moves a record, nor invalidates a key.

NODE = 'node'
MESSAGE = 'message'
SIGNAL = 'signal'

# CAN FD payloads are at most 64 bytes; raw values are at most 64 bits
MAX_BYTE_LENGTH = 64
MAX_BIT_LENGTH = 64

Key = namedtuple('Key', ['kind', 'index', 'generation'])


class _Arena(object):
    def __init__(self, kind):
        self.kind = kind
        self.slots = []  # [generation, record]; record is None once removed
        self.free = []

    def insert(self, record):
        if self.free:
            index = self.free.pop()
            generation = self.slots[index][0] + 1
            self.slots[index] = [generation, record]
        else:
            index = len(self.slots)
            generation = 0
            self.slots.append([generation, record])
        return Key(self.kind, index, generation)

    def get(self, key):
        if not isinstance(key, Key) or key.kind != self.kind or not (0 <= key.index < len(self.slots)):
            raise StaleKeyError("not a {} key: {!r}".format(self.kind, key))
        (generation, record) = self.slots[key.index]
        if record is None or generation != key.generation:
            raise StaleKeyError("{} has been removed: {!r}".format(self.kind, key))
        return record

    def remove(self, key):
        record = self.get(key)
        self.slots[key.index] = [key.generation, None]
        self.free.append(key.index)
        return record

    def __contains__(self, key):
        try:
            self.get(key)
        except StaleKeyError:
            return False
        return True


class Database(object):
    r"""
    Relational store of a CAN network description.

    Records are created through the database, and referenced by
    :class:`Key`::

        >>> db = Database()
        >>> ecu = db.add_node('ECU')
        >>> msg = db.add_message(0x100, 'Status', 8, senders=[ecu])
        >>> sig = db.add_signal(msg, 'Speed', 0, 16, factor=0.25)
        >>> db.get_message_by_name('status').id_hex
        '0x100'
        >>> [s.name for s in db.message_signals(msg)]
        ['Speed']

    Names are matched case insensitively, and stored as given.
    """
    def __init__(self):
        self.clear()

    def clear(self):
        """
        Remove every record, definition & setting.
        """
        self._nodes = _Arena(NODE)
        self._messages = _Arena(MESSAGE)
        self._signals = _Arena(SIGNAL)

        # order vectors
        self._node_order = []
        self._message_order = []
        self._signal_order = []

        # indexes
        self._node_names = {}
        self._message_ids = {}
        self._message_hex = {}
        self._message_names = {}
        self._signal_names = {}  # (message key, lower name): signal key

        self.version = ''
        self.bus_speed = ''
        self.comment = ''
        self.attributes = {}
        self.attribute_definitions = {}
        self.value_tables = {}
        self.relation_attributes = {}  # (node key, message|signal key): {name: value}
        self.faults = []

    # --------------- Metadata
    #   stored as attributes, so they're serialized along with the rest
    def _get_meta(self, name):
        if name not in self.attribute_definitions:
            return None
        return self.get_attribute(None, name)

    def _set_meta(self, name, value_type, value):
        if name not in self.attribute_definitions:
            if value_type == 'INT':
                definition = AttributeDefinition(name, value_type, minimum=0, maximum=0)
            else:
                definition = AttributeDefinition(name, value_type)
            self.define_attribute(definition)
        self.set_attribute(None, name, value)

    @property
    def name(self):
        return self._get_meta('DBName')

    @name.setter
    def name(self, value):
        self._set_meta('DBName', 'STRING', value)

    @property
    def bus_type(self):
        return self._get_meta('BusType')

    @bus_type.setter
    def bus_type(self, value):
        self._set_meta('BusType', 'STRING', value)

    @property
    def baudrate(self):
        return self._get_meta('Baudrate')

    @baudrate.setter
    def baudrate(self, value):
        self._set_meta('Baudrate', 'INT', value)

    @property
    def baudrate_canfd(self):
        return self._get_meta('BaudrateCANFD')

    @baudrate_canfd.setter
    def baudrate_canfd(self, value):
        self._set_meta('BaudrateCANFD', 'INT', value)

    # --------------- Nodes
    def add_node(self, name, comment=''):
        """
        :return: key of new node
        :raises DuplicateError: if a node by the same name exists
        """
        if name.lower() in self._node_names:
            raise DuplicateError("node '{}' already exists".format(name))
        node = Node(name, comment=comment)
        key = node.key = self._nodes.insert(node)
        self._node_order.append(key)
        self._node_names[name.lower()] = key
        return key

    def node(self, key):
        return self._nodes.get(key)

    def get_node_by_name(self, name):
        key = self._node_names.get(name.lower())
        return None if key is None else self._nodes.get(key)

    def iter_nodes(self):
        return (self._nodes.get(k) for k in self._node_order)

    def node_messages_sent(self, node_key):
        return (self._messages.get(k) for k in self._nodes.get(node_key).messages_sent)

    def node_signals_sent(self, node_key):
        """
        Signals of every message the node transmits.
        """
        return (self._signals.get(k) for k in self._nodes.get(node_key).signals_sent)

    def node_signals_read(self, node_key):
        return (self._signals.get(k) for k in self._nodes.get(node_key).signals_read)

    def rename_node(self, key, name):
        node = self._nodes.get(key)
        self._rename(self._node_names, name.lower(), node.name.lower(), key)
        node.name = name

    def remove_node(self, key):
        """
        Remove a node, and every reference to it.
        """
        node = self._nodes.remove(key)
        self._node_order.remove(key)
        del self._node_names[node.name.lower()]

        for message in self.iter_messages():
            if key in message.senders:
                message.senders.remove(key)
        for signal in self.iter_signals():
            if key in signal.receivers:
                signal.receivers.remove(key)
        self._drop_relations(lambda n, t: n == key)
        return node

    # --------------- Messages
    def add_message(self, id, name, byte_length, senders=(), comment=''):
        """
        :param id: DBC message id
        :param senders: node keys
        :return: key of new message
        :raises DuplicateError: if the id or name is already used
        :raises ValueError: if ``byte_length`` isn't in 0..64
        """
        if id in self._message_ids:
            raise DuplicateError("message id {} already exists".format(id))
        if name.lower() in self._message_names:
            raise DuplicateError("message '{}' already exists".format(name))
        if not (0 <= byte_length <= MAX_BYTE_LENGTH):
            raise ValueError("message '{}': length of {} bytes not in [0, {}]".format(name, byte_length, MAX_BYTE_LENGTH))
        for node_key in senders:
            self._nodes.get(node_key)

        message = Message(id, name, byte_length, comment=comment)
        for node_key in senders:
            if node_key not in message.senders:
                message.senders.append(node_key)
        key = message.key = self._messages.insert(message)
        self._message_order.append(key)
        self._message_ids[id] = key
        self._message_hex.setdefault(message.id_hex, key)
        self._message_names[name.lower()] = key
        for node_key in message.senders:
            self._nodes.get(node_key).messages_sent.append(key)
        return key

    def message(self, key):
        return self._messages.get(key)

    def get_message_by_id(self, id):
        key = self._message_ids.get(id)
        return None if key is None else self._messages.get(key)

    def get_message_by_hex(self, id_hex):
        """
        ::

            >>> db.get_message_by_hex('0x1ab') is db.get_message_by_hex('0x1AB')
            True
        """
        try:
            id_hex = format_id_hex(int(id_hex, 16))
        except ValueError:
            return None
        key = self._message_hex.get(id_hex)
        return None if key is None else self._messages.get(key)

    def get_message_by_name(self, name):
        key = self._message_names.get(name.lower())
        return None if key is None else self._messages.get(key)

    def iter_messages(self):
        return (self._messages.get(k) for k in self._message_order)

    def rename_message(self, key, name):
        message = self._messages.get(key)
        self._rename(self._message_names, name.lower(), message.name.lower(), key)
        message.name = name

    def set_message_id(self, key, id):
        message = self._messages.get(key)
        if id == message.id:
            return
        if id in self._message_ids:
            raise DuplicateError("message id {} already exists".format(id))
        self._unindex_hex(message)
        del self._message_ids[message.id]
        message.id = id
        self._message_ids[id] = key
        self._message_hex.setdefault(message.id_hex, key)

    def add_sender(self, message_key, node_key):
        message = self._messages.get(message_key)
        node = self._nodes.get(node_key)
        if node_key not in message.senders:
            message.senders.append(node_key)
            node.messages_sent.append(message_key)
            node.signals_sent.extend(message.signals)

    def remove_message(self, key):
        """
        Remove a message, along with all of its signals.
        """
        message = self._messages.get(key)
        for signal_key in list(message.signals):
            self.remove_signal(signal_key)

        self._messages.remove(key)
        self._message_order.remove(key)
        del self._message_ids[message.id]
        del self._message_names[message.name.lower()]
        self._unindex_hex(message)
        for node_key in message.senders:
            self._nodes.get(node_key).messages_sent.remove(key)
        self._drop_relations(lambda n, t: t == key)
        return message

    def _unindex_hex(self, message):
        # standard & extended ids may share a hex string; hand the index over
        if self._message_hex.get(message.id_hex) != message.key:
            return
        del self._message_hex[message.id_hex]
        for other in self.iter_messages():
            if other is not message and other.id_hex == message.id_hex:
                self._message_hex[other.id_hex] = other.key
                break

    # --------------- Signals
    def add_signal(self, message_key, name, bit_start, bit_length, receivers=(), **kwargs):
        """
        Create a signal owned by the given message.

        Keyword arguments are passed to :class:`Signal <candb.containers.Signal>`.

        :return: key of new signal
        :raises DuplicateError: if the message has a signal by the same name
        :raises ValueError: if ``bit_length`` isn't in 1..64
        """
        message = self._messages.get(message_key)
        index_key = (message_key, name.lower())
        if index_key in self._signal_names:
            raise DuplicateError("signal '{}' already exists in message '{}'".format(name, message.name))
        if not (1 <= bit_length <= MAX_BIT_LENGTH):
            raise ValueError("signal '{}': length of {} bits not in [1, {}]".format(name, bit_length, MAX_BIT_LENGTH))
        for node_key in receivers:
            self._nodes.get(node_key)

        signal = Signal(name, bit_start, bit_length, **kwargs)
        signal.message = message_key
        for node_key in receivers:
            if node_key not in signal.receivers:
                signal.receivers.append(node_key)
        key = signal.key = self._signals.insert(signal)
        message.signals.append(key)
        self._signal_order.append(key)
        self._signal_names[index_key] = key
        for node_key in signal.receivers:
            self._nodes.get(node_key).signals_read.append(key)
        for node_key in message.senders:
            self._nodes.get(node_key).signals_sent.append(key)
        return key

    def signal(self, key):
        return self._signals.get(key)

    def get_signal_by_name(self, message_key, name):
        key = self._signal_names.get((message_key, name.lower()))
        return None if key is None else self._signals.get(key)

    def iter_signals(self):
        return (self._signals.get(k) for k in self._signal_order)

    def message_signals(self, message_key):
        """
        Signals of a message, in declaration order.
        """
        return (self._signals.get(k) for k in self._messages.get(message_key).signals)

    def rename_signal(self, key, name):
        signal = self._signals.get(key)
        self._rename(
            self._signal_names,
            (signal.message, name.lower()), (signal.message, signal.name.lower()),
            key,
        )
        signal.name = name

    def add_receiver(self, signal_key, node_key):
        signal = self._signals.get(signal_key)
        node = self._nodes.get(node_key)
        if node_key not in signal.receivers:
            signal.receivers.append(node_key)
            node.signals_read.append(signal_key)

    def remove_signal(self, key):
        signal = self._signals.remove(key)
        message = self._messages.get(signal.message)
        message.signals.remove(key)
        for node_key in signal.receivers:
            self._nodes.get(node_key).signals_read.remove(key)
        for node_key in message.senders:
            self._nodes.get(node_key).signals_sent.remove(key)
        self._signal_order.remove(key)
        del self._signal_names[(signal.message, signal.name.lower())]
        self._drop_relations(lambda n, t: t == key)
        return signal

    # --------------- Ordering
    def sort_nodes_by_name(self):
        self._node_order.sort(key=self._node_name)

    def sort_messages_by_name(self):
        self._message_order.sort(key=self._message_name)

    def sort_signals_by_name(self):
        # messages' own signal lists keep their declaration (bit layout) order
        self._signal_order.sort(key=self._signal_name)

    def sort_node_fields(self, key):
        """
        Sort a node's sent messages, sent signals & read signals by name.
        """
        node = self._nodes.get(key)
        node.messages_sent.sort(key=self._message_name)
        node.signals_sent.sort(key=self._signal_name)
        node.signals_read.sort(key=self._signal_name)

    def sort_message_fields(self, key):
        """
        Sort a message's senders & signals by name.

        The first sender is the one written on the message's ``BO_`` line.
        """
        message = self._messages.get(key)
        message.senders.sort(key=self._node_name)
        message.signals.sort(key=self._signal_name)

    def sort_signal_fields(self, key):
        self._signals.get(key).receivers.sort(key=self._node_name)

    def _node_name(self, key):
        return self._nodes.get(key).name.lower()

    def _message_name(self, key):
        return self._messages.get(key).name.lower()

    def _signal_name(self, key):
        return self._signals.get(key).name.lower()

    # --------------- Attributes
    def define_attribute(self, definition):
        if definition.name in self.attribute_definitions:
            logger.debug("attribute '%s' redefined", definition.name)
        self.attribute_definitions[definition.name] = definition
        return definition

    def attribute_definition(self, name):
        try:
            return self.attribute_definitions[name]
        except KeyError:
            raise UndefinedAttributeError("attribute '{}' is not defined".format(name))

    def _attribute_owner(self, target):
        if target is None:
            return self
        arena = {NODE: self._nodes, MESSAGE: self._messages, SIGNAL: self._signals}.get(
            getattr(target, 'kind', None)
        )
        if arena is None:
            raise StaleKeyError("not a record key: {!r}".format(target))
        return arena.get(target)

    def set_attribute(self, target, name, value):
        """
        Assign an attribute value.

        :param target: node, message or signal key (``None`` for the database)
        :raises UndefinedAttributeError: if ``name`` isn't defined
        """
        definition = self.attribute_definition(name)
        self._attribute_owner(target).attributes[name] = definition.coerce(value)

    def get_attribute(self, target, name):
        """
        Assigned value, falling back to the definition's default.

        ``ENUM`` values are returned as their label.

        :raises UndefinedAttributeError: if ``name`` isn't defined
        :raises AttributeIndexError: if an ``ENUM`` index has no label
        """
        definition = self.attribute_definition(name)
        attributes = self._attribute_owner(target).attributes
        if name in attributes:
            return definition.resolve(attributes[name])
        return definition.default

    def set_relation_attribute(self, node_key, target_key, name, value):
        """
        Assign a node/message (``BU_BO_REL_``) or node/signal (``BU_SG_REL_``)
        relation attribute.
        """
        definition = self.attribute_definition(name)
        self._nodes.get(node_key)
        self._attribute_owner(target_key)
        value = definition.coerce(value)
        self.relation_attributes.setdefault((node_key, target_key), {})[name] = value

    def get_relation_attribute(self, node_key, target_key, name):
        definition = self.attribute_definition(name)
        values = self.relation_attributes.get((node_key, target_key), {})
        if name in values:
            return definition.resolve(values[name])
        return definition.default

    def _drop_relations(self, cond):
        for pair in [p for p in self.relation_attributes if cond(*p)]:
            del self.relation_attributes[pair]

    # --------------- Validation
    def layout_errors(self):
        """
        Signals that don't fit in their message's payload.

        :return: ``(message, signal)`` pairs
        """
        for message in self.iter_messages():
            for signal in self.message_signals(message.key):
                if not signal.fits(message.byte_length):
                    yield (message, signal)

    # --------------- Helpers
    @staticmethod
    def _rename(index, new, old, key):
        existing = index.get(new)
        if existing is not None and existing != key:
            raise DuplicateError("name already used: {!r}".format(new))
        del index[old]
        index[new] = key
