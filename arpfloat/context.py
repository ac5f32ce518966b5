#
# Rounding modes, status flags and the per-thread execution context
#

import threading
from enum import Enum, IntFlag

__all__ = ('RoundingMode', 'Flags', 'Context', 'DefaultContext',
           'get_context', 'set_context', 'local_context',
           'ROUND_HALF_EVEN', 'ROUND_HALF_UP', 'ROUND_DOWN', 'ROUND_CEILING', 'ROUND_FLOOR')


class RoundingMode(Enum):
    NEAREST_TIES_TO_EVEN = 'ROUND_HALF_EVEN'    # To nearest with ties towards even
    NEAREST_TIES_TO_AWAY = 'ROUND_HALF_UP'      # To nearest with ties away from zero
    ZERO = 'ROUND_DOWN'                         # Towards zero
    POSITIVE = 'ROUND_CEILING'                  # Towards +infinity
    NEGATIVE = 'ROUND_FLOOR'                    # Towards -infinity


ROUND_HALF_EVEN = RoundingMode.NEAREST_TIES_TO_EVEN
ROUND_HALF_UP = RoundingMode.NEAREST_TIES_TO_AWAY
ROUND_DOWN = RoundingMode.ZERO
ROUND_CEILING = RoundingMode.POSITIVE
ROUND_FLOOR = RoundingMode.NEGATIVE


# Operation status flags.  Raising one never interrupts an operation.
class Flags(IntFlag):
    INVALID     = 0x01
    DIV_BY_ZERO = 0x02
    OVERFLOW    = 0x04
    UNDERFLOW   = 0x08
    INEXACT     = 0x10


class Context:
    '''The execution context for operations.  Carries the rounding mode used when an
    operation is not given one explicitly, and the status flags operations raise.'''

    __slots__ = ('rounding', 'flags')

    def __init__(self, *, rounding=ROUND_HALF_EVEN, flags=0):
        if not isinstance(rounding, RoundingMode):
            raise TypeError('rounding must be a RoundingMode')
        self.rounding = rounding
        self.flags = Flags(flags)

    def copy(self):
        return Context(rounding=self.rounding, flags=self.flags)

    def resolve_rounding(self, rounding):
        '''Return rounding, or our rounding mode if it is None.'''
        if rounding is None:
            return self.rounding
        if not isinstance(rounding, RoundingMode):
            raise TypeError('rounding must be a RoundingMode')
        return rounding

    def round_to_nearest(self):
        '''Return True if the rounding mode rounds to nearest (ignoring ties).'''
        return self.rounding in {ROUND_HALF_EVEN, ROUND_HALF_UP}

    def clear_flags(self):
        self.flags = Flags(0)

    def __repr__(self):
        return f'<Context rounding={self.rounding.value} flags={self.flags!r}>'


DefaultContext = Context()
tls = threading.local()


def get_context():
    '''Return the current thread's context, creating it from DefaultContext on first use.'''
    try:
        return tls.context
    except AttributeError:
        tls.context = DefaultContext.copy()
        return tls.context


def set_context(context):
    '''Sets the current thread's context to context (not a copy of it).'''
    tls.context = context


class LocalContext:
    '''A context manager that will set the current context for the active thread to a copy of
    context on entry to the with-statement and restore the previous context on exit.  If
    no context is specified a copy of the current context is taken instead.
    '''

    def __init__(self, context=None):
        self.saved_context = None
        self.context_to_set = context

    def __enter__(self):
        self.saved_context = get_context()
        context = (self.context_to_set or self.saved_context).copy()
        set_context(context)
        return context

    def __exit__(self, etype, value, traceback):
        set_context(self.saved_context)


local_context = LocalContext
