# =========================== Package Information ===========================
# Version Planning:
#   0.1.x               - Development Status :: 2 - Pre-Alpha
#   0.2.x               - Development Status :: 3 - Alpha
#   0.3.x               - Development Status :: 4 - Beta
#   1.x                 - Development Status :: 5 - Production/Stable
#   <any above>.y       - developments on that version (pre-release)
#   <any above>*.dev*   - development release (intended purely to test deployment)
__version__ = '0.1.0'

__title__ = 'candb'
__description__ = 'CAN network database (DBC, ARXML) store, codec & ASC trace decoder'
__url__ = 'https://github.com/fragmuffin/candb'

__author__ = 'Peter Boin'
__email__ = 'peter.boin+candb@gmail.com'

__license__ = 'MIT'

__keywords__ = ['can', 'canfd', 'network', 'dbc', 'arxml', 'asc']

# Copyright
import datetime
_now = datetime.date.today()
__copyright__ = "Copyright {year} {author}".format(year=_now.year, author=__author__)


# =========================== Public API ===========================
from .database import Database, Key
from .containers import Node, Message, Signal, AttributeDefinition
from .parser import parse_dbc, loads, Fault
from .serializer import save_dbc, dumps, new_database
from .codec import decode, encode
from .canlog import CanLog, CanFrame, MessageLog, SignalLog, resolve_message_signals
from .asc import parse_asc, loads_asc, ANY_CHANNEL
from .arxml import parse_arxml

from .exceptions import (
    CanDBError,
    DBCIOError, DBCEncodingError, DBCSyntaxError, DBCStructureError,
    DBCReferenceError, DBCSavePathError, DatabaseCreateError,
    DuplicateError, StaleKeyError, UndefinedAttributeError, AttributeIndexError,
    BitRangeError, ASCIOError, ARXMLError,
)
