#
# Exceptions raised by the arbitrary precision floating point package
#

__all__ = ('ARPFloatError', 'ContractViolation')


class ARPFloatError(Exception):
    '''All exceptions raised by this package subclass from this.

    Note that overflow, underflow, inexact results and invalid operations are not errors:
    they deliver ordinary floating point values and raise status flags on the context.
    '''


class ContractViolation(ARPFloatError, AssertionError):
    '''Raised when a caller misuses the widths or invariants of the engine, for example
    truncating an integer to a larger width, combining integers of different widths,
    converting a value that does not fit, or asking normalize() to discard a pending loss
    while shifting left.  It indicates a bug in the caller, not bad input data.'''
