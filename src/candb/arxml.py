"""
AUTOSAR (ARXML) system description reader.

Only CAN clusters are read; one :class:`Database <candb.database.Database>`
is produced per ``CAN-CLUSTER``::

    CAN-CLUSTER
     `- CAN-PHYSICAL-CHANNEL
         `- CAN-FRAME-TRIGGERING    (identifier, addressing mode, frame ports)
             `- CAN-FRAME           (length)
                 `- I-SIGNAL-I-PDU
                     `- I-SIGNAL-TO-I-PDU-MAPPING  (start bit, byte order)
                         `- I-SIGNAL               (length, compu method)
"""
import logging

import lxml.etree

from . import codec
from .containers import EXTENDED_ID_FLAG
from .database import Database
from .exceptions import ARXMLError, CanDBError

logger = logging.getLogger(__name__)


class ArTree(object):
    """
    Index of every element with a ``SHORT-NAME``, by its AUTOSAR path
    (eg: ``/Network/Frames/Status``); used to resolve ``*-REF`` elements.
    """
    def __init__(self, root, ns):
        self.ns = ns
        self.paths = {}
        self._fill(root, '')

    def _fill(self, element, path):
        for child in element:
            if not isinstance(child.tag, str):
                continue  # comments & processing instructions
            name_elem = child.find('./' + self.ns + 'SHORT-NAME')
            if name_elem is not None and name_elem.text:
                child_path = path + '/' + name_elem.text.strip()
                self.paths[child_path] = child
                self._fill(child, child_path)
            else:
                self._fill(child, path)

    def get(self, path):
        if path is None:
            return None
        return self.paths.get('/' + path.strip().strip('/'))


class ARXMLReader(object):
    def __init__(self, tree):
        self.root = tree.getroot()
        self.ns = '{' + tree.xpath('namespace-uri(.)') + '}'
        if self.ns == '{}':
            self.ns = ''
        self.ar_tree = ArTree(self.root, self.ns)

    # --------------- Navigation
    def child(self, parent, tag_name):
        """
        First descendant ``tag_name`` element, or the element referenced by a
        ``tag_name-REF`` descendant.
        """
        if parent is None:
            return None
        ret = parent.find('.//' + self.ns + tag_name)
        if ret is None:  # no direct element - try reference
            reference = parent.find('.//' + self.ns + tag_name + '-REF')
            if reference is not None:
                ret = self.ar_tree.get(reference.text)
        return ret

    def children(self, parent, tag_name):
        if parent is None:
            return []
        ret = parent.findall('.//' + self.ns + tag_name)
        if not ret:  # no direct element - get references
            ret = [
                self.ar_tree.get(ref.text)
                for ref in parent.findall('.//' + self.ns + tag_name + '-REF')
            ]
        return [r for r in ret if r is not None]

    def text(self, parent, tag_name, default=None):
        element = self.child(parent, tag_name)
        if element is None or element.text is None:
            return default
        return element.text.strip()

    def name(self, element):
        return self.text(element, 'SHORT-NAME', default='')

    def desc(self, element):
        l2 = element.find('./' + self.ns + 'DESC/' + self.ns + 'L-2')
        if l2 is None or l2.text is None:
            return ''
        return l2.text.strip()

    def number(self, parent, tag_name, default=None):
        value = self.text(parent, tag_name)
        if value is None:
            return default
        return int(value, 0) if value.lower().startswith('0x') else int(float(value))

    # --------------- Content
    def read(self):
        databases = []
        for cluster in self.root.iter(self.ns + 'CAN-CLUSTER'):
            databases.append(self.read_cluster(cluster))
        logger.debug("read %i CAN cluster(s)", len(databases))
        return databases

    def read_cluster(self, cluster):
        db = Database()
        db.name = self.name(cluster)
        baudrate = self.number(cluster, 'BAUDRATE')
        fd_baudrate = self.number(cluster, 'CAN-FD-BAUDRATE')
        db.bus_type = 'CAN FD' if fd_baudrate else 'CAN'
        if baudrate:
            db.baudrate = baudrate
        if fd_baudrate:
            db.baudrate_canfd = fd_baudrate

        for triggering in cluster.iter(self.ns + 'CAN-FRAME-TRIGGERING'):
            try:
                self.read_frame(db, triggering)
            except (CanDBError, ValueError) as e:
                logger.warning("%s: frame skipped: %s", self.name(triggering), e)
        return db

    def node_key(self, db, ecu):
        name = self.name(ecu)
        node = db.get_node_by_name(name)
        if node is None:
            return db.add_node(name, comment=self.desc(ecu))
        return node.key

    def ports(self, db, triggering):
        """
        :return: ``(sender keys, receiver keys)`` of a frame triggering
        """
        (senders, receivers) = ([], [])
        for port in self.children(triggering, 'FRAME-PORT'):
            ecu = next(port.iterancestors(self.ns + 'ECU-INSTANCE'), None)
            if ecu is None:
                continue
            key = self.node_key(db, ecu)
            if self.text(port, 'COMMUNICATION-DIRECTION') == 'OUT':
                senders.append(key)
            else:
                receivers.append(key)
        return (senders, receivers)

    def read_frame(self, db, triggering):
        frame = self.child(triggering, 'FRAME')
        if frame is None:
            logger.debug("%s has no FRAME-REF", self.name(triggering))
            return
        id = self.number(triggering, 'IDENTIFIER')
        if id is None:
            logger.info("frame %s has no identifier", self.name(frame))
            return
        if self.text(triggering, 'CAN-ADDRESSING-MODE') == 'EXTENDED':
            id |= EXTENDED_ID_FLAG

        (senders, receivers) = self.ports(db, triggering)
        message_key = db.add_message(
            id, self.name(frame), self.number(frame, 'FRAME-LENGTH', default=8),
            senders=senders, comment=self.desc(frame),
        )

        for pdu_mapping in frame.iter(self.ns + 'PDU-TO-FRAME-MAPPING'):
            pdu = self.child(pdu_mapping, 'PDU')
            pdu_offset = self.number(pdu_mapping, 'START-POSITION', default=0)
            for mapping in self.children(pdu, 'I-SIGNAL-TO-I-PDU-MAPPING'):
                try:
                    self.read_signal(db, message_key, mapping, pdu_offset, receivers)
                except (CanDBError, ValueError) as e:
                    logger.warning("%s: signal skipped: %s", self.name(mapping), e)

    def read_signal(self, db, message_key, mapping, pdu_offset, receivers):
        isignal = self.child(mapping, 'I-SIGNAL')
        if isignal is None:
            logger.debug("no I-SIGNAL in mapping %s", self.name(mapping))
            return
        length = self.number(isignal, 'LENGTH')
        if length is None:
            raise ValueError("I-SIGNAL {} has no LENGTH".format(self.name(isignal)))
        start = self.number(mapping, 'START-POSITION')
        if start is None:
            raise ValueError("mapping {} has no START-POSITION".format(self.name(mapping)))
        start += pdu_offset
        little_endian = self.text(mapping, 'PACKING-BYTE-ORDER') != 'MOST-SIGNIFICANT-BYTE-FIRST'
        if not little_endian:
            # AUTOSAR gives the position of the lsb
            start = codec.motorola_msb_from_lsb(start, length)

        encoding = self.text(isignal, 'BASE-TYPE-ENCODING') or \
            self.text(self.child(isignal, 'BASE-TYPE'), 'BASE-TYPE-ENCODING', default='')
        value_type = 'integer'
        if encoding == 'IEEE754':
            value_type = 'double' if length == 64 else 'float'

        compu_method = self.child(isignal, 'COMPU-METHOD')
        if compu_method is None:
            compu_method = self.child(self.child(isignal, 'SYSTEM-SIGNAL'), 'COMPU-METHOD')
        (factor, offset, minimum, maximum, value_table, unit) = self.decode_compu_method(compu_method)

        db.add_signal(
            message_key, self.name(isignal), start, length,
            receivers=receivers,
            little_endian=little_endian, signed=(encoding == '2C'),
            factor=factor, offset=offset, minimum=minimum, maximum=maximum,
            unit=unit, value_table=value_table,
            comment=self.desc(isignal),
            value_type=value_type,
        )

    def decode_compu_method(self, compu_method):
        """
        :return: ``(factor, offset, minimum, maximum, value_table, unit)``
        """
        (factor, offset) = (1.0, 0.0)
        (minimum, maximum) = (0.0, 0.0)
        value_table = {}
        unit = ''
        if compu_method is None:
            return (factor, offset, minimum, maximum, value_table, unit)

        unit_elem = self.child(compu_method, 'UNIT')
        if unit_elem is not None:
            unit = self.text(unit_elem, 'DISPLAY-NAME', default=self.name(unit_elem))

        for scale in self.children(compu_method, 'COMPU-SCALE'):
            lower = self.text(scale, 'LOWER-LIMIT')
            upper = self.text(scale, 'UPPER-LIMIT')
            label = self.text(scale, 'VT')
            rational = self.child(scale, 'COMPU-RATIONAL-COEFFS')
            if rational is not None:
                numerator = [float(v.text) for v in self.children(self.child(rational, 'COMPU-NUMERATOR'), 'V')]
                denominator = [float(v.text) for v in self.children(self.child(rational, 'COMPU-DENOMINATOR'), 'V')]
                if len(numerator) >= 2 and denominator and denominator[0] != 0:
                    offset = numerator[0] / denominator[0]
                    factor = numerator[1] / denominator[0]
                else:
                    logger.warning("unsupported compu scale in %s, using factor 1, offset 0", self.name(compu_method))
                if lower is not None and upper is not None:
                    minimum = float(lower) * factor + offset
                    maximum = float(upper) * factor + offset
            elif label is not None and lower is not None:
                value_table[int(float(lower))] = label
        return (factor, offset, minimum, maximum, value_table, unit)


def parse_arxml(filename):
    """
    Read every CAN cluster of an ARXML file.

    :return: one database per ``CAN-CLUSTER``
    :rtype: :class:`list` of :class:`Database <candb.database.Database>`
    :raises ARXMLError: if the file can't be read, or isn't XML
    """
    try:
        tree = lxml.etree.parse(filename)
    except (IOError, OSError, lxml.etree.XMLSyntaxError) as e:
        raise ARXMLError("{}: {}".format(filename, e))
    return ARXMLReader(tree).read()
