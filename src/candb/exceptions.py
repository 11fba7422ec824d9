class CanDBError(Exception):
    """
    Base of every error raised by :mod:`candb`.

    Each error also derives from the closest builtin, so callers may catch
    either (eg: :class:`DBCIOError` is an :class:`IOError`).
    """


# --------- DBC reading / writing
class DBCIOError(CanDBError, IOError):
    pass


class DBCEncodingError(CanDBError, ValueError):
    pass


class DBCSyntaxError(CanDBError, ValueError):
    pass


class DBCStructureError(CanDBError, ValueError):
    pass


class DBCReferenceError(CanDBError, ValueError):
    pass


class DBCSavePathError(CanDBError, ValueError):
    pass


class DatabaseCreateError(CanDBError, ValueError):
    pass


# --------- Store
class DuplicateError(CanDBError, ValueError):
    pass


class StaleKeyError(CanDBError, KeyError):
    """
    Raised when a :class:`Key <candb.database.Key>` refers to a record that
    has since been removed (or never belonged to the database it's used on).
    """


class UndefinedAttributeError(CanDBError, KeyError):
    pass


class AttributeIndexError(CanDBError, IndexError):
    pass


# --------- Codec
class BitRangeError(CanDBError, ValueError):
    pass


# --------- Traces & other formats
class ASCIOError(CanDBError, IOError):
    pass


class ARXMLError(CanDBError, ValueError):
    pass
