import unittest
import datetime

# Objects under test
from candb import codec
from candb.canlog import (
    CanLog, MessageLog, SignalLog, format_value, resolve_message_signals,
)
from candb.containers import EXTENDED_ID_FLAG, Signal


class SignalLogTests(unittest.TestCase):

    def setUp(self):
        self.log = SignalLog('Gear', 1, value_table={5: 'Drive'})
        self.log.append(1.0, 5)
        self.log.append(2.0, 7)

    def test_value_at(self):
        self.assertIsNone(self.log.value_at(0.5))
        self.assertEqual(self.log.value_at(1.0), 5)
        self.assertEqual(self.log.value_at(1.5), 5)
        self.assertEqual(self.log.value_at(2.0), 7)
        self.assertEqual(self.log.value_at(100), 7)

    def test_value_text_at(self):
        self.assertEqual(self.log.value_text_at(1.0), 'Drive')
        self.assertEqual(self.log.value_text_at(1.5), 'Drive')
        self.assertEqual(self.log.value_text_at(2.0), '7')
        self.assertIsNone(self.log.value_text_at(0.5))

    def test_scaled_label(self):
        log = SignalLog('Mode', 1, factor=0.5, offset=10, value_table={4: 'Eco'})
        log.append(0.0, 12.0)  # raw 4
        log.append(1.0, 12.5)
        self.assertEqual(log.raw_at(0.0), 4)
        self.assertEqual(log.value_text_at(0.0), 'Eco')
        self.assertEqual(log.value_text_at(1.0), '12.5')

    def test_zero_factor(self):
        log = SignalLog('Broken', 1, factor=0)
        log.append(0.0, 3.0)
        self.assertEqual(log.raw_at(0.0), 3)

    def test_half_rounds_away_from_zero(self):
        log = SignalLog('Mode', 1, factor=0.5, value_table={3: 'Eco', -3: 'Reverse'})
        log.append(0.0, 1.25)  # raw 2.5
        log.append(1.0, -1.25)
        self.assertEqual(log.value_text_at(0.0), 'Eco')
        self.assertEqual(log.value_text_at(1.0), 'Reverse')

    def test_not_finite(self):
        signal = Signal('Temp', 0, 32, value_type='float')
        log = SignalLog('Temp', 1, value_table={0: 'Off'})
        log.append(1.0, codec.decode(signal, bytes([0x00, 0x00, 0xC0, 0x7F])))  # NaN
        log.append(2.0, float('inf'))
        self.assertIsNone(log.raw_at(1.0))
        self.assertEqual(log.value_text_at(1.0), 'nan')
        self.assertEqual(log.value_text_at(2.0), 'inf')
        self.assertIsNone(log.raw)
        self.assertEqual(log.text, '')

    def test_latest_sample(self):
        self.assertEqual((self.log.value, self.log.raw, self.log.text), (7, 7, ''))
        self.log.append(3.0, 5)
        self.assertEqual((self.log.value, self.log.raw, self.log.text), (5, 5, 'Drive'))

        empty = SignalLog('Gear', 1)
        self.assertEqual((empty.value, empty.raw, empty.text), (None, None, ''))

    def test_len(self):
        self.assertEqual(len(self.log), 2)

    def test_format_value(self):
        self.assertEqual(format_value(7.0), '7')
        self.assertEqual(format_value(7.5), '7.5')
        self.assertEqual(format_value(3), '3')


class MessageLogTests(unittest.TestCase):

    def test_extended(self):
        message = MessageLog(0x1ABCDEF0 | EXTENDED_ID_FLAG, 1, [1, 2])
        self.assertTrue(message.is_extended)
        self.assertEqual(message.frame_id, 0x1ABCDEF0)
        self.assertEqual(message.id_hex, '0x1ABCDEF0')
        self.assertEqual(message.byte_length, 2)
        self.assertEqual(message.data, b'\x01\x02')


class CanLogTests(unittest.TestCase):

    def test_add_frame(self):
        log = CanLog()
        first = log.add_frame(0.0, 1, 'Rx', MessageLog(0x100, 1, b'\x00'))
        second = log.add_frame(0.5, 1, 'Tx', MessageLog(0x100, 1, b'\x01'))
        self.assertEqual((first, second), (0, 1))
        self.assertEqual(log.last_id_chn_frame, {(0x100, 1): 1})
        self.assertEqual(log.frame_message(0).data, b'\x00')
        self.assertEqual(log.can_frames[1].direction, 'Tx')

    def test_absolute_time(self):
        log = CanLog(start_time=datetime.datetime(2024, 1, 1, 8, 0, 0))
        log.add_frame(90.25, 1, 'Rx', MessageLog(0x100, 1, b''))
        frame = log.can_frames[0]
        self.assertEqual(frame.absolute_time, datetime.datetime(2024, 1, 1, 8, 1, 30, 250000))
        self.assertEqual(frame.time_text, '2024-01-01 08:01:30.250000')

    def test_message_signals_restartable(self):
        log = CanLog()
        log.signals.extend([SignalLog('A', 1), SignalLog('B', 1)])
        message = MessageLog(0x100, 1, b'')
        message.signals.extend([1, 0])
        log.add_frame(0.0, 1, 'Rx', message)

        signals = resolve_message_signals(log, 0)
        self.assertEqual(len(signals), 2)
        self.assertEqual([s.name for s in signals], ['B', 'A'])
        self.assertEqual([s.name for s in signals], ['B', 'A'])
