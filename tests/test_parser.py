import unittest
import os
import shutil
import tempfile

# Objects under test
import candb.parser
from candb.database import Database
from candb.exceptions import (
    DBCIOError, DBCEncodingError, DBCSyntaxError, DBCStructureError,
    DBCReferenceError,
)

TEST_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'test-files')


class ParserTests(unittest.TestCase):

    def setUp(self):
        self.db = candb.parser.parse_dbc(os.path.join(TEST_DIR, 'small.dbc'), strict=True)

    def test_file_small(self):
        self.assertIsInstance(self.db, Database)
        self.assertEqual(self.db.faults, [])
        self.assertEqual(self.db.version, '1.2')
        self.assertEqual(self.db.comment, 'Test bench network')
        self.assertEqual(self.db.value_tables, {'OnOff': {0: 'Off', 1: 'On'}})

    def test_metadata(self):
        self.assertEqual(self.db.name, 'small')
        self.assertEqual(self.db.bus_type, 'CAN')
        self.assertEqual(self.db.baudrate, 250000)
        self.assertIsNone(self.db.baudrate_canfd)

    def test_nodes(self):
        self.assertEqual(
            [n.name for n in self.db.iter_nodes()],
            ['Engine', 'Gateway', 'Dashboard'],
        )
        self.assertEqual(self.db.get_node_by_name('engine').comment, 'Engine control unit')

    def test_messages(self):
        self.assertEqual(
            [m.name for m in self.db.iter_messages()],
            ['EngineStatus', 'Diagnostics', 'Dashboard_Ack'],
        )
        status = self.db.get_message_by_id(256)
        self.assertEqual(status.comment, 'Periodic engine state')
        self.assertEqual(
            [self.db.node(k).name for k in status.senders],
            ['Engine', 'Gateway'],
        )
        self.assertEqual(self.db.get_message_by_name('dashboard_ack').senders, [])

    def test_extended_message(self):
        diag = self.db.get_message_by_name('Diagnostics')
        self.assertTrue(diag.is_extended)
        self.assertEqual(diag.frame_id, 0x200)
        self.assertEqual(diag.id_hex, '0x200')
        self.assertIs(self.db.get_message_by_hex('0x200'), diag)

    def test_signals(self):
        status = self.db.get_message_by_id(256)
        self.assertEqual(
            [s.name for s in self.db.message_signals(status.key)],
            ['Speed', 'Torque', 'Ignition', 'OilTemp'],
        )

        speed = self.db.get_signal_by_name(status.key, 'SPEED')
        self.assertEqual((speed.bit_start, speed.bit_length), (0, 16))
        self.assertTrue(speed.little_endian)
        self.assertEqual(speed.factor, 0.25)
        self.assertEqual(speed.unit, 'km/h')
        self.assertEqual(speed.comment, 'Vehicle speed,\nas seen by the engine')
        self.assertEqual(
            [self.db.node(k).name for k in speed.receivers],
            ['Gateway', 'Dashboard'],
        )
        self.assertEqual(speed.message, status.key)

        torque = self.db.get_signal_by_name(status.key, 'Torque')
        self.assertFalse(torque.little_endian)
        self.assertTrue(torque.signed)
        self.assertEqual(torque.offset, -100)

        ignition = self.db.get_signal_by_name(status.key, 'Ignition')
        self.assertEqual(ignition.value_table, {0: 'Off', 1: 'On'})

        oil = self.db.get_signal_by_name(status.key, 'OilTemp')
        self.assertEqual(oil.value_type, 'float')
        self.assertEqual(oil.display_unit, 'DegreeCelsius')

    def test_multiplexing(self):
        diag = self.db.get_message_by_name('Diagnostics')
        signals = dict((s.name, s) for s in self.db.message_signals(diag.key))

        self.assertTrue(signals['Mode'].is_multiplexor)
        self.assertFalse(signals['Mode'].is_multiplexed)
        self.assertEqual(signals['Voltage'].mux_value, 1)
        self.assertEqual(signals['Current'].mux_value, 2)
        self.assertTrue(signals['Page'].is_multiplexor)
        self.assertEqual(signals['Page'].mux_value, 3)
        self.assertEqual(signals['Detail'].mux_switch, 'Page')
        self.assertEqual(signals['Detail'].mux_ranges, [(2, 5), (7, 7)])
        self.assertTrue(signals['Detail'].selected_by(7))
        self.assertFalse(signals['Detail'].selected_by(6))

    def test_attributes(self):
        db = self.db
        status = db.get_message_by_id(256)
        diag = db.get_message_by_name('Diagnostics')
        speed = db.get_signal_by_name(status.key, 'Speed')
        gateway = db.get_node_by_name('Gateway')
        dashboard = db.get_node_by_name('Dashboard')

        self.assertEqual(db.get_attribute(status.key, 'GenMsgCycleTime'), 100)
        self.assertEqual(db.get_attribute(diag.key, 'GenMsgCycleTime'), 0)  # default
        self.assertEqual(db.get_attribute(diag.key, 'VFrameFormat'), 'ExtendedCAN')
        self.assertEqual(db.get_attribute(status.key, 'VFrameFormat'), 'StandardCAN')
        self.assertEqual(db.get_attribute(gateway.key, 'NodeLayer'), 'Gateway')
        self.assertEqual(db.get_attribute(dashboard.key, 'NodeLayer'), 'Application')
        self.assertEqual(db.get_attribute(speed.key, 'GenSigStartValue'), 12.5)
        self.assertEqual(db.get_relation_attribute(dashboard.key, speed.key, 'GenSigTimeoutTime'), 500)
        self.assertEqual(db.get_relation_attribute(gateway.key, speed.key, 'GenSigTimeoutTime'), 0)

    def test_no_layout_errors(self):
        self.assertEqual(list(self.db.layout_errors()), [])


class LoadsTests(unittest.TestCase):

    def test_faults_recorded(self):
        text = '\n'.join([
            'VERSION ""',                          # 1
            'BU_: A',                              # 2
            'BO_ 1 M: 8 A',                        # 3
            ' SG_ S : 0|8@1+ (1,0) [0|255] "" A',  # 4
            'CM_ SG_ 1 Missing "x";',              # 5
            'this is not dbc',                     # 6
            'BA_ "Undefined" 1;',                  # 7
        ])
        db = candb.parser.loads(text)

        self.assertEqual(
            sorted((f.kind, f.line_number) for f in db.faults),
            [('reference', 5), ('reference', 7), ('syntax', 6)],
        )
        # valid statements are kept
        message = db.get_message_by_id(1)
        self.assertEqual([s.name for s in db.message_signals(message.key)], ['S'])

    def test_strict_syntax(self):
        with self.assertRaises(DBCSyntaxError):
            candb.parser.loads('VERSION ""\nnonsense here\n', strict=True)

    def test_strict_reference(self):
        text = 'BO_ 1 M: 8 Vector__XXX\nCM_ BO_ 2 "no such message";\n'
        with self.assertRaises(DBCReferenceError):
            candb.parser.loads(text, strict=True)

    def test_no_messages(self):
        with self.assertRaises(DBCStructureError):
            candb.parser.loads('VERSION ""\nCM_ BO_ 1 "orphan";\n')

    def test_definition_after_assignment(self):
        text = '\n'.join([
            'BO_ 1 M: 8 Vector__XXX',
            'BA_ "GenMsgCycleTime" BO_ 1 100;',
            'BA_DEF_ BO_ "GenMsgCycleTime" INT 0 1000;',
        ])
        db = candb.parser.loads(text, strict=True)
        self.assertEqual(db.get_attribute(db.get_message_by_id(1).key, 'GenMsgCycleTime'), 100)

    def test_enum_index_out_of_range(self):
        text = '\n'.join([
            'BO_ 1 M: 8 Vector__XXX',
            'BA_DEF_ BO_ "VFrameFormat" ENUM "StandardCAN","ExtendedCAN";',
            'BA_ "VFrameFormat" BO_ 1 5;',
        ])
        db = candb.parser.loads(text)
        self.assertEqual([(f.kind, f.line_number) for f in db.faults], [('reference', 3)])
        self.assertEqual(db.get_message_by_id(1).attributes, {})

    def test_relation_enum_index_out_of_range(self):
        text = '\n'.join([
            'BU_: Dashboard',                                          # 1
            'BO_ 256 M: 8 Vector__XXX',                                # 2
            ' SG_ Speed : 0|8@1+ (1,0) [0|255] "" Dashboard',          # 3
            'BA_DEF_REL_ BU_SG_REL_ "Mode" ENUM "off","on";',          # 4
            'BA_DEF_REL_ BU_BO_REL_ "Kind" ENUM "a","b";',             # 5
            'BA_REL_ "Mode" BU_SG_REL_ Dashboard SG_ 256 Speed 7;',    # 6
            'BA_REL_ "Kind" BU_BO_REL_ Dashboard 256 2;',              # 7
            'BA_REL_ "Mode" BU_SG_REL_ Dashboard SG_ 256 Speed 1;',    # 8
        ])
        db = candb.parser.loads(text)
        self.assertEqual(
            [(f.kind, f.line_number) for f in db.faults],
            [('reference', 6), ('reference', 7)],
        )
        dashboard = db.get_node_by_name('Dashboard').key
        message = db.get_message_by_id(256).key
        speed = db.get_signal_by_name(message, 'Speed').key
        self.assertEqual(db.relation_attributes, {(dashboard, speed): {'Mode': 1}})
        self.assertEqual(db.get_relation_attribute(dashboard, speed, 'Mode'), 'on')

        with self.assertRaises(DBCReferenceError):
            candb.parser.loads(text, strict=True)

    def test_signal_length(self):
        text = 'BO_ 1 M: 8 Vector__XXX\n SG_ S : 0|65@1+ (1,0) [0|1] "" Vector__XXX\n'
        db = candb.parser.loads(text)
        self.assertEqual([f.kind for f in db.faults], ['syntax'])

    def test_unknown_transmitter(self):
        text = 'BO_ 1 M: 8 UnknownNode\n SG_ S : 0|8@1+ (1,0) [0|1] "" Vector__XXX\n'
        db = candb.parser.loads(text)
        self.assertEqual([f.kind for f in db.faults], ['reference'])
        message = db.get_message_by_id(1)
        self.assertEqual(message.senders, [])
        self.assertEqual(len(message.signals), 1)

    def test_orphan_signal(self):
        text = 'BO_ 1 M: 8 Vector__XXX\nBO_ 1 Dup: 8 Vector__XXX\n SG_ S : 0|8@1+ (1,0) [0|1] "" Vector__XXX\n'
        db = candb.parser.loads(text)
        # duplicate message id is dropped, so is its signal
        self.assertEqual([(f.kind, f.line_number) for f in db.faults], [('reference', 2), ('reference', 3)])
        self.assertEqual(db.get_message_by_id(1).signals, [])

    def test_duplicate_nodes(self):
        db = candb.parser.loads('BU_: A B A\nBO_ 1 M: 8 A\n')
        self.assertEqual([n.name for n in db.iter_nodes()], ['A', 'B'])
        self.assertEqual([f.kind for f in db.faults], ['reference'])

    def test_ignored_statements(self):
        text = '\n'.join([
            'BO_ 1 M: 8 Vector__XXX',
            'EV_ EnvVar: 0 [0|1] "" 0 1 DUMMY_NODE_VECTOR0 Vector__XXX;',
            'SIG_GROUP_ 1 Group1 1 : S;',
        ])
        db = candb.parser.loads(text, strict=True)
        self.assertEqual(db.faults, [])

    def test_transliteration(self):
        db = candb.parser.loads('VERSION "Größe"\r\n')
        self.assertEqual(db.version, 'Grosse')

    def test_value_type(self):
        text = 'BO_ 1 M: 8 Vector__XXX\n SG_ S : 0|64@1- (1,0) [0|1] "" Vector__XXX\nSIG_VALTYPE_ 1 S : 2;\n'
        db = candb.parser.loads(text, strict=True)
        self.assertEqual(db.get_signal_by_name(db.get_message_by_id(1).key, 'S').value_type, 'double')


class ParseFileTests(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_missing_file(self):
        with self.assertRaises(DBCIOError):
            candb.parser.parse_dbc(os.path.join(self.tmpdir, 'missing.dbc'))

    def test_bad_encoding(self):
        filename = os.path.join(self.tmpdir, 'bad.dbc')
        with open(filename, 'wb') as f:
            f.write(b'VERSION "\x81"\n')
        with self.assertRaises(DBCEncodingError):
            candb.parser.parse_dbc(filename)

    def test_cp1252(self):
        filename = os.path.join(self.tmpdir, 'legacy.dbc')
        with open(filename, 'wb') as f:
            f.write(b'VERSION "\xb0C"\n')  # degree sign
        self.assertEqual(candb.parser.parse_dbc(filename).version, '°C')
