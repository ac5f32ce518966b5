#
# Generic binary floating point values of configurable exponent and mantissa widths
#

import logging
from collections import namedtuple
from enum import IntEnum
from struct import Struct
from typing import NamedTuple

from .bigint import (BigInt, LossFraction, shift_right_with_loss, WORD_BITS,
                     LF_EXACTLY_ZERO, LF_LESS_THAN_HALF, LF_EXACTLY_HALF, LF_MORE_THAN_HALF)
from .context import (get_context, Flags, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_DOWN,
                      ROUND_CEILING, ROUND_FLOOR)
from .errors import ContractViolation

__all__ = ('Category', 'FloatFormat', 'Float', 'round_away_from_zero',
           'MANTISSA_WORDS', 'MANTISSA_BITS', 'MAX_PRECISION',
           'FP16', 'BF16', 'FP32', 'FP64', 'FP128', 'FP256')

logger = logging.getLogger(__name__)

# Every mantissa is a BigInt of this many words, whatever the format.  The largest
# precision leaves room for the double-width product of two mantissas.
MANTISSA_WORDS = 8
MANTISSA_BITS = MANTISSA_WORDS * WORD_BITS
MAX_PRECISION = MANTISSA_BITS // 2 - 6

pack_single = Struct('<f').pack
unpack_single = Struct('<f').unpack
pack_double = Struct('<d').pack
unpack_double = Struct('<d').unpack


class Category(IntEnum):
    ZERO = 0
    NORMAL = 1
    INFINITY = 2
    NAN = 3


class FloatFormat(NamedTuple):
    '''A binary floating point format with an exponent field of exponent_bits bits and a
    mantissa (fraction) field of mantissa_bits bits.  Only instantiate through
    from_widths().

    precision is the number of bits in the significand including the leading bit.

    exp_max is the largest unbiased exponent of a finite number; the all-ones exponent
    field is reserved for infinities and NaNs.

    exp_min is the smallest exponent of a normal number.  Values smaller than 2^exp_min
    are held at exp_min with fewer than precision significant bits, as IEEE-754
    subnormals are.  With ieee_min_exponent False, exp_min is one lower (-bias); such
    formats compute but have no native encoding.
    '''

    exponent_bits: int
    mantissa_bits: int
    ieee_min_exponent: bool

    # All a function of the 3 values above
    bias: int
    precision: int
    exp_min: int
    exp_max: int
    fmt_width: int

    @classmethod
    def from_widths(cls, exponent_bits, mantissa_bits, ieee_min_exponent=True):
        '''Make a FloatFormat with pre-calculated values.'''
        if not all(isinstance(arg, int) for arg in (exponent_bits, mantissa_bits)):
            raise TypeError('exponent_bits and mantissa_bits must be integers')
        if exponent_bits < 2:
            raise ValueError('exponent_bits must be at least 2')
        if mantissa_bits < 1:
            raise ValueError('mantissa_bits must be at least 1')
        precision = mantissa_bits + 1
        if precision > MAX_PRECISION:
            raise ValueError(f'precision cannot exceed {MAX_PRECISION} bits')

        bias = (1 << (exponent_bits - 1)) - 1
        exp_min = 1 - bias if ieee_min_exponent else -bias
        # The top exponent code is reserved for infinities and NaNs
        exp_max = (1 << exponent_bits) - bias - 2
        fmt_width = 1 + exponent_bits + mantissa_bits
        return cls(exponent_bits, mantissa_bits, bool(ieee_min_exponent), bias, precision,
                   exp_min, exp_max, fmt_width)

    def __repr__(self):
        return (f'FloatFormat(exponent_bits={self.exponent_bits}, '
                f'mantissa_bits={self.mantissa_bits})')

    ##
    ## Special values
    ##

    def make_zero(self, sign):
        '''Return a zero of the given sign.'''
        return Float(self, sign, 0, BigInt.zero(MANTISSA_WORDS), Category.ZERO)

    def make_infinity(self, sign):
        '''Return an infinity of the given sign.'''
        return Float(self, sign, 0, BigInt.zero(MANTISSA_WORDS), Category.INFINITY)

    def make_nan(self, sign=False):
        '''Return a NaN.  NaNs carry no payload.'''
        return Float(self, sign, 0, BigInt.zero(MANTISSA_WORDS), Category.NAN)

    def make_normal(self, sign, exp, mantissa):
        '''Return a possibly unnormalized value ±mantissa * 2^(exp - (precision - 1)), or a
        zero if the mantissa is zero.  The mantissa is taken over, not copied.'''
        if mantissa.is_zero():
            return self.make_zero(sign)
        return Float(self, sign, exp, mantissa, Category.NORMAL)

    def make_largest_finite(self, sign):
        '''Return the finite number of maximal magnitude with the given sign.'''
        mantissa = BigInt.all_ones(self.precision, MANTISSA_WORDS)
        return Float(self, sign, self.exp_max, mantissa, Category.NORMAL)

    def make_smallest_normal(self, sign):
        '''Return the smallest normal number with the given sign.'''
        mantissa = BigInt.one(MANTISSA_WORDS)
        mantissa.shift_left(self.precision - 1)
        return Float(self, sign, self.exp_min, mantissa, Category.NORMAL)

    def make_overflow_value(self, rounding, sign):
        '''Return the value to deliver when the exponent would be too large for this format.
        rounding is the rounding mode to apply.'''
        if round_away_from_zero(rounding, LF_MORE_THAN_HALF, sign, False):
            return self.make_infinity(sign)
        return self.make_largest_finite(sign)

    ##
    ## Constructors
    ##

    def from_u64(self, value, rounding=None, context=None):
        '''Return the unsigned 64-bit integer converted to this format, rounding if
        necessary.'''
        if not isinstance(value, int):
            raise TypeError('from_u64 requires an integer')
        if value == 0:
            return self.make_zero(False)
        mantissa = BigInt.from_u64(value, MANTISSA_WORDS)

        # The integer's units bit is mantissa bit precision - 1, so the exponent is that
        # of the units bit.  normalize() moves the leading bit into place, giving an
        # exponent of value.bit_length() - 1 unless rounding carries; if that exceeds
        # exp_max the result overflows.
        result = self.make_normal(False, self.precision - 1, mantissa)
        return result.normalize(rounding, LF_EXACTLY_ZERO, context)

    def from_i64(self, value, rounding=None, context=None):
        '''Return the signed 64-bit integer converted to this format, rounding if
        necessary.'''
        if not isinstance(value, int):
            raise TypeError('from_i64 requires an integer')
        if not -(1 << 63) <= value < 1 << 63:
            raise ContractViolation(f'{value} is not a 64-bit signed value')
        if value < 0:
            context = context or get_context()
            # Round the magnitude in the mirrored direction
            rounding = _mirror_rounding(context.resolve_rounding(rounding))
            return self.from_u64(-value, rounding, context).set_sign(True)
        return self.from_u64(value, rounding, context)

    def from_bits(self, raw, layout, rounding=None, context=None):
        '''Decode raw, an integer holding a packed IEEE-754 encoding of format layout, and
        return it converted to this format, rounding if necessary.'''
        if not isinstance(raw, int):
            raise TypeError('raw must be an integer')
        if not 0 <= raw < 1 << layout.fmt_width:
            raise ContractViolation(f'{raw:#x} is wider than {layout.fmt_width} bits')

        mantissa_bits = layout.mantissa_bits
        exponent_mask = (1 << layout.exponent_bits) - 1
        fraction = raw & ((1 << mantissa_bits) - 1)
        biased_exp = (raw >> mantissa_bits) & exponent_mask
        sign = bool(raw >> (mantissa_bits + layout.exponent_bits))

        # Check for NaN/Inf
        if biased_exp == exponent_mask:
            if fraction == 0:
                return self.make_infinity(sign)
            return self.make_nan(sign)

        if biased_exp:
            significand = fraction | (1 << mantissa_bits)
            exp = biased_exp - layout.bias
        else:
            # Zeroes and subnormals
            significand = fraction
            exp = 1 - layout.bias
        if significand == 0:
            return self.make_zero(sign)

        # Re-express the exponent for our mantissa layout: the significand's units bit is
        # layout.mantissa_bits places below its leading bit.
        mantissa = BigInt.from_int(significand, MANTISSA_WORDS)
        result = self.make_normal(sign, exp - mantissa_bits + self.mantissa_bits, mantissa)
        return result.normalize(rounding, LF_EXACTLY_ZERO, context)

    def from_f32(self, value, rounding=None, context=None):
        '''Return the host single-precision value converted to this format.  value is a
        Python float; it is narrowed to single precision by the host first.'''
        if not isinstance(value, float):
            raise TypeError('from_f32 requires a float')
        raw = int.from_bytes(pack_single(value), 'little')
        return self.from_bits(raw, FP32, rounding, context)

    def from_f64(self, value, rounding=None, context=None):
        '''Return the Python float converted to this format, rounding if necessary.'''
        if not isinstance(value, float):
            raise TypeError('from_f64 requires a float')
        raw = int.from_bytes(pack_double(value), 'little')
        return self.from_bits(raw, FP64, rounding, context)

    def convert_for_arith(self, value):
        '''Convert value to something capable of doing arithmetic with this format.

        Float values are returned unmodified.  Python floats are returned as an FP64.
        Python ints are converted to this format.  Otherwise None is returned.
        '''
        if isinstance(value, Float):
            return value
        if isinstance(value, float):
            return FP64.from_f64(value)
        if isinstance(value, int):
            return self.from_i64(value)
        return None

    ##
    ## Arithmetic.  The operands can be of different formats; the destination format is
    ## self.  Each computes an exact intermediate mantissa and the fraction of any bits
    ## discarded on the way, and leaves the rounding to normalize().
    ##

    def add(self, lhs, rhs, rounding=None, context=None):
        '''Return the sum LHS + RHS in this format.'''
        return self._add_sub(lhs, rhs, False, rounding, context)

    def subtract(self, lhs, rhs, rounding=None, context=None):
        '''Return the difference LHS - RHS in this format.'''
        return self._add_sub(lhs, rhs, True, rounding, context)

    def _add_sub(self, lhs, rhs, is_subtract, rounding, context):
        context = context or get_context()
        rounding = context.resolve_rounding(rounding)
        rhs_sign = rhs.sign ^ is_subtract

        if lhs.is_nan() or rhs.is_nan():
            return self.make_nan(lhs.sign if lhs.is_nan() else rhs.sign)

        if lhs.is_inf():
            if rhs.is_inf() and lhs.sign != rhs_sign:
                # Subtraction of like-signed infinities is an invalid op
                context.flags |= Flags.INVALID
                return self.make_nan(False)
            return self.make_infinity(lhs.sign)
        if rhs.is_inf():
            return self.make_infinity(rhs_sign)

        if rhs.is_zero():
            if lhs.is_zero():
                # Like-signed zeroes keep their sign, otherwise the sum is +0 unless
                # rounding towards -infinity.
                sign = lhs.sign if lhs.sign == rhs_sign else rounding is ROUND_FLOOR
                return self.make_zero(sign)
            return lhs.cast(self, rounding, context)
        if lhs.is_zero():
            return rhs.set_sign(rhs_sign).cast(self, rounding, context)

        # Both are finite and non-zero.  Work on the one of greater magnitude.
        big, big_sign, small, small_sign = lhs, lhs.sign, rhs, rhs_sign
        if _compare_magnitude(lhs, rhs) < 0:
            big, big_sign, small, small_sign = rhs, rhs_sign, lhs, lhs.sign

        big_sig = big.mantissa.copy()
        exponent = big.exponent_int()
        shift = exponent - small.exponent_int()
        loss = LF_EXACTLY_ZERO

        if shift <= 0:
            # Align the smaller operand with the larger; this is exact.
            small_sig = small.mantissa << -shift
        else:
            # Move the larger operand as far left as the mantissa allows, and the smaller
            # one right for the remainder of the distance.
            lshift = min(shift, MANTISSA_BITS - 1 - big_sig.msb_index())
            big_sig.shift_left(lshift)
            exponent -= lshift
            small_sig, loss = shift_right_with_loss(small.mantissa, shift - lshift)

        if big_sign != small_sign:
            big_sig.in_place_sub(small_sig)
            if not loss.is_exactly_zero():
                # The truncated bits of the subtrahend borrow a unit from the result
                big_sig.in_place_sub(BigInt.one(MANTISSA_WORDS))
                loss = loss.invert()
            if big_sig.is_zero():
                # An exact zero difference is +0 unless rounding towards -infinity
                return self.make_zero(rounding is ROUND_FLOOR)
        else:
            big_sig.in_place_add(small_sig)

        result = self.make_normal(big_sign, exponent + self.precision - 1, big_sig)
        return result.normalize(rounding, loss, context)

    def multiply(self, lhs, rhs, rounding=None, context=None):
        '''Returns the product of LHS and RHS in this format.'''
        context = context or get_context()
        rounding = context.resolve_rounding(rounding)
        sign = lhs.sign ^ rhs.sign

        if lhs.is_nan() or rhs.is_nan():
            return self.make_nan(lhs.sign if lhs.is_nan() else rhs.sign)
        if lhs.is_inf() or rhs.is_inf():
            # infinity * zero -> invalid op
            if lhs.is_zero() or rhs.is_zero():
                context.flags |= Flags.INVALID
                return self.make_nan(False)
            return self.make_infinity(sign)
        if lhs.is_zero() or rhs.is_zero():
            return self.make_zero(sign)

        product = lhs.mantissa.copy()
        if product.in_place_multiply(rhs.mantissa):
            raise ContractViolation('product does not fit in the mantissa')
        exponent = lhs.exponent_int() + rhs.exponent_int()
        result = self.make_normal(sign, exponent + self.precision - 1, product)
        return result.normalize(rounding, LF_EXACTLY_ZERO, context)

    def divide(self, lhs, rhs, rounding=None, context=None):
        '''Return lhs / rhs in this format.'''
        context = context or get_context()
        rounding = context.resolve_rounding(rounding)
        sign = lhs.sign ^ rhs.sign

        if lhs.is_nan() or rhs.is_nan():
            return self.make_nan(lhs.sign if lhs.is_nan() else rhs.sign)
        if lhs.is_inf():
            # infinity / infinity is an invalid op
            if rhs.is_inf():
                context.flags |= Flags.INVALID
                return self.make_nan(False)
            return self.make_infinity(sign)
        if rhs.is_inf():
            return self.make_zero(sign)
        if rhs.is_zero():
            # 0 / 0 -> NaN
            if lhs.is_zero():
                context.flags |= Flags.INVALID
                return self.make_nan(False)
            context.flags |= Flags.DIV_BY_ZERO
            return self.make_infinity(sign)
        if lhs.is_zero():
            return self.make_zero(sign)

        return self._divide_finite(lhs, rhs, sign, rounding, context)

    def _divide_finite(self, lhs, rhs, sign, rounding, context):
        '''Calculate LHS / RHS, where both are finite and non-zero.'''
        lhs_sig = lhs.mantissa.copy()
        rhs_sig = rhs.mantissa.copy()
        lhs_exponent = lhs.exponent_int()
        rhs_exponent = rhs.exponent_int()

        # Shift the lhs significand left until it is greater than the significand of the RHS
        lshift = rhs_sig.msb_index() - lhs_sig.msb_index()
        if lshift >= 0:
            lhs_sig.shift_left(lshift)
            lhs_exponent -= lshift
        else:
            rhs_sig.shift_left(-lshift)
            rhs_exponent += lshift

        if lhs_sig < rhs_sig:
            lhs_sig.shift_left(1)
            lhs_exponent -= 1

        assert lhs_sig >= rhs_sig

        # Long division.  Note by construction the quotient will have a leading 1, i.e.,
        # it will contain precisely precision significant bits, representing a value in
        # [1, 2).
        bits = self.precision
        one = BigInt.one(MANTISSA_WORDS)
        quotient = BigInt.zero(MANTISSA_WORDS)
        for n in range(bits):
            if n:
                lhs_sig.shift_left(1)
            quotient.shift_left(1)
            if lhs_sig >= rhs_sig:
                lhs_sig.in_place_sub(rhs_sig)
                quotient.in_place_add(one)

        # The remainder as a fraction of the divisor is what the quotient loses
        if lhs_sig.is_zero():
            loss = LF_EXACTLY_ZERO
        else:
            lhs_sig.shift_left(1)
            if lhs_sig < rhs_sig:
                loss = LF_LESS_THAN_HALF
            elif lhs_sig == rhs_sig:
                loss = LF_EXACTLY_HALF
            else:
                loss = LF_MORE_THAN_HALF

        exponent = lhs_exponent - rhs_exponent - (bits - 1)
        result = self.make_normal(sign, exponent + self.precision - 1, quotient)
        return result.normalize(rounding, loss, context)


class Float(namedtuple('Float', 'fmt sign exp mantissa category')):
    '''Internal Representation
       -----------------------

    exp is the unbiased exponent and is only meaningful for normal values.  The mantissa
    holds the significand with an explicit leading bit, right-aligned so that for a
    normalized value the leading 1 is bit number precision (counting from 1).  Then

            value = (-1)^sign * mantissa * 2^(exp - (precision - 1)).

    Values smaller than 2^exp_min are kept at exp_min with a mantissa of fewer than
    precision bits.  Zeroes, infinities and NaNs are distinguished by category alone; their
    exponent and mantissa are always zero.

    Keeping the leading bit explicit lets normalization and casting share one shift and
    round routine whatever the format.

    Equality is structural: two values are equal when all their fields are, so a NaN
    equals itself and +0 differs from -0.
    '''

    __slots__ = ()

    def __new__(cls, fmt, sign, exp, mantissa, category):
        '''Validate and create a floating point value with the given format, sign, unbiased
        exponent, mantissa and category.
        '''
        if not isinstance(fmt, FloatFormat):
            raise TypeError('fmt must be a FloatFormat')
        if not isinstance(exp, int):
            raise TypeError('exp must be an integer')
        if not isinstance(mantissa, BigInt):
            raise TypeError('mantissa must be a BigInt')
        if mantissa.width != MANTISSA_WORDS:
            raise ContractViolation(f'mantissa must be {MANTISSA_WORDS} words wide')
        if not isinstance(category, Category):
            raise TypeError('category must be a Category')
        if category is not Category.NORMAL and (exp or not mantissa.is_zero()):
            raise ValueError(f'{category.name} values have a zero exponent and mantissa')
        return super().__new__(cls, fmt, bool(sign), exp, mantissa, category)

    ##
    ## Non-computational operations
    ##

    def is_negative(self):
        '''Return True if the sign bit is set.'''
        return self.sign

    def is_zero(self):
        '''Return True if the value is zero regardless of sign.'''
        return self.category is Category.ZERO

    def is_normal(self):
        '''Return True if the value is finite and non-zero.  This includes values below
        the normal range, which are held at exp_min.'''
        return self.category is Category.NORMAL

    def is_inf(self):
        '''Return True if the value is infinite.'''
        return self.category is Category.INFINITY

    def is_nan(self):
        return self.category is Category.NAN

    def is_finite(self):
        return self.category in (Category.ZERO, Category.NORMAL)

    def is_subnormal(self):
        '''Return True if the value lies below the normal range of its format.'''
        return (self.category is Category.NORMAL and self.exp == self.fmt.exp_min
                and self.mantissa.msb_index() < self.fmt.precision)

    def exponent_int(self):
        '''Return the arithmetic exponent of our mantissa interpreted as an integer.'''
        assert self.category is Category.NORMAL
        return self.exp - (self.fmt.precision - 1)

    def set_sign(self, sign):
        '''Returns a copy of this number with the given sign.'''
        if self.sign is bool(sign):
            return self
        return self._replace(sign=bool(sign))

    def neg(self):
        '''Return this value with the opposite sign, including for NaNs.'''
        return self.set_sign(not self.sign)

    def absolute_less_than(self, other):
        '''Return True if abs(self) < abs(other).  False if either is a NaN.'''
        if self.is_nan() or other.is_nan() or self.is_inf() or other.is_zero():
            return False
        if other.is_inf() or self.is_zero():
            return True
        return _compare_magnitude(self, other) < 0

    ##
    ## Normalization and rounding
    ##

    def normalize(self, rounding=None, loss=LF_EXACTLY_ZERO, context=None):
        '''Return this value rounded to its format.

        loss is the fraction of the unit below the mantissa's LSB that was discarded when
        computing it.  The mantissa is aligned so its leading bit is bit number precision,
        the exponent is brought into range and the result rounded per rounding (the
        context's rounding mode if None).  Exponent overflow delivers an infinity or the
        largest finite value per the rounding mode; a zero mantissa becomes a signed zero.

        Flags are raised on the context for inexact, overflowing and underflowing results.
        '''
        if self.category is not Category.NORMAL:
            return self

        context = context or get_context()
        rounding = context.resolve_rounding(rounding)
        fmt = self.fmt
        sign = self.sign
        exp = self.exp
        mantissa = self.mantissa.copy()

        # Step I - adjust the exponent
        msb = mantissa.msb_index()
        if msb:
            # Align the number so that its MSB is bit number precision
            exp_change = msb - fmt.precision

            # Handle overflowing exponents
            if exp + exp_change > fmt.exp_max:
                context.flags |= Flags.OVERFLOW | Flags.INEXACT
                return fmt.make_overflow_value(rounding, sign)

            # Don't allow the exponent to go below the legal range
            if exp + exp_change < fmt.exp_min:
                exp_change = fmt.exp_min - exp

            if exp_change < 0:
                # Reducing the exponent is a left shift, which must be exact
                if not loss.is_exactly_zero():
                    raise ContractViolation('normalize cannot shift left with a pending loss')
                mantissa.shift_left(-exp_change)
                return Float(fmt, sign, exp + exp_change, mantissa, Category.NORMAL)

            if exp_change > 0:
                shift_loss = mantissa.loss_for_truncation_at(exp_change)
                mantissa.shift_right(exp_change)
                exp += exp_change
                loss = LossFraction.combine(shift_loss, loss)

        # Step II - round the number
        if loss.is_exactly_zero():
            if mantissa.is_zero():
                return fmt.make_zero(sign)
            return Float(fmt, sign, exp, mantissa, Category.NORMAL)

        context.flags |= Flags.INEXACT
        if round_away_from_zero(rounding, loss, sign, mantissa.is_odd()):
            if mantissa.is_zero():
                exp = fmt.exp_min
            mantissa.in_place_add(BigInt.one(MANTISSA_WORDS))
            # Did the mantissa overflow?
            if mantissa.msb_index() > fmt.precision:
                if exp < fmt.exp_max:
                    mantissa.shift_right(1)
                    exp += 1
                else:
                    context.flags |= Flags.OVERFLOW
                    return fmt.make_infinity(sign)

        # Canonicalize
        if mantissa.is_zero():
            context.flags |= Flags.UNDERFLOW
            return fmt.make_zero(sign)
        if mantissa.msb_index() < fmt.precision:
            context.flags |= Flags.UNDERFLOW
        return Float(fmt, sign, exp, mantissa, Category.NORMAL)

    def cast(self, fmt, rounding=None, context=None):
        '''Return this value converted to format fmt, rounding if necessary.'''
        if not isinstance(fmt, FloatFormat):
            raise TypeError('fmt must be a FloatFormat')
        if self.category is not Category.NORMAL:
            return Float(fmt, self.sign, 0, BigInt.zero(MANTISSA_WORDS), self.category)
        # Keep the value: the leading bit moves by the difference in precision
        exp = self.exp + fmt.precision - self.fmt.precision
        result = Float(fmt, self.sign, exp, self.mantissa.copy(), Category.NORMAL)
        return result.normalize(rounding, LF_EXACTLY_ZERO, context)

    ##
    ## Native encodings
    ##

    def as_native_float(self, layout=None):
        '''Return the IEEE-754 interchange encoding of this value as an integer.  The value
        must already be in format layout (by default its own format).  NaNs are encoded as
        the quiet NaN with only the top fraction bit set.'''
        fmt = self.fmt
        layout = layout or fmt
        if (layout.exponent_bits, layout.mantissa_bits) != (fmt.exponent_bits,
                                                           fmt.mantissa_bits):
            raise ContractViolation(f'{self!r} must be cast to {layout!r} before encoding')
        if not fmt.ieee_min_exponent:
            raise ContractViolation(f'{fmt!r} has no native encoding')

        exponent_mask = (1 << fmt.exponent_bits) - 1
        category = self.category
        if category is Category.INFINITY:
            biased_exp, fraction = exponent_mask, 0
        elif category is Category.NAN:
            biased_exp, fraction = exponent_mask, 1 << (fmt.mantissa_bits - 1)
        elif category is Category.ZERO:
            biased_exp, fraction = 0, 0
        else:
            msb = self.mantissa.msb_index()
            if msb == fmt.precision and fmt.exp_min <= self.exp <= fmt.exp_max:
                biased_exp = self.exp + fmt.bias
            elif msb < fmt.precision and self.exp == fmt.exp_min:
                # Subnormals have a zero exponent field and no leading bit
                biased_exp = 0
            else:
                raise ContractViolation(f'{self!r} is not normalized')
            # Drop the explicit leading bit
            mantissa = self.mantissa.copy()
            mantissa.mask(fmt.mantissa_bits)
            fraction = int(mantissa)

        bits = int(self.sign)
        bits = (bits << fmt.exponent_bits) | biased_exp
        bits = (bits << fmt.mantissa_bits) | fraction
        return bits

    def as_f32(self):
        '''Return the value rounded to single precision, as a Python float.'''
        bits = self.cast(FP32, ROUND_HALF_EVEN).as_native_float()
        result, = unpack_single(bits.to_bytes(4, 'little'))
        return result

    def as_f64(self):
        '''Return the value rounded to double precision, as a Python float.'''
        bits = self.cast(FP64, ROUND_HALF_EVEN).as_native_float()
        result, = unpack_double(bits.to_bytes(8, 'little'))
        return result

    def __float__(self):
        return self.as_f64()

    ##
    ## Python protocol
    ##

    def _describe(self):
        sign = '-' if self.sign else '+'
        category = self.category
        if category is Category.NAN:
            return f'[{sign}NaN]'
        if category is Category.INFINITY:
            return f'[{sign}Inf]'
        if category is Category.ZERO:
            return f'[{sign}0.0]'
        return f'FP[{sign} E={self.exp:+d} M={int(self.mantissa):0{self.fmt.precision}b}]'

    def dump(self):
        '''Log and return a description of the internal representation.'''
        text = self._describe()
        logger.debug('%r: %s', self.fmt, text)
        return text

    def __repr__(self):
        return f'<Float {self.fmt!r} {self._describe()}>'

    def __hash__(self):
        return hash((self.fmt, self.sign, self.exp, tuple(self.mantissa.parts),
                     self.category))

    def __bool__(self):
        return not self.is_zero()

    def __abs__(self):
        return self.set_sign(False)

    def __neg__(self):
        return self.neg()

    def __pos__(self):
        return self

    def __add__(self, other):
        other = self.fmt.convert_for_arith(other)
        if other is None:
            return NotImplemented
        return self.fmt.add(self, other)

    def __sub__(self, other):
        other = self.fmt.convert_for_arith(other)
        if other is None:
            return NotImplemented
        return self.fmt.subtract(self, other)

    def __mul__(self, other):
        other = self.fmt.convert_for_arith(other)
        if other is None:
            return NotImplemented
        return self.fmt.multiply(self, other)

    def __truediv__(self, other):
        other = self.fmt.convert_for_arith(other)
        if other is None:
            return NotImplemented
        return self.fmt.divide(self, other)

    def __radd__(self, other):
        return self.__add__(other)

    def __rsub__(self, other):
        other = self.fmt.convert_for_arith(other)
        if other is None:
            return NotImplemented
        return self.fmt.subtract(other, self)

    def __rmul__(self, other):
        return self.__mul__(other)

    def __rtruediv__(self, other):
        other = self.fmt.convert_for_arith(other)
        if other is None:
            return NotImplemented
        return self.fmt.divide(other, self)


#
# Useful internal helper routines
#

def round_away_from_zero(rounding, loss, sign, is_odd):
    '''Return True if, when an operation is inexact, the result should be rounded away from
    zero (i.e., by incrementing the mantissa).

    sign is the sign of the number, and is_odd indicates if the LSB of the new mantissa is
    set, which is needed for ties-to-even rounding.
    '''
    if loss == LF_EXACTLY_ZERO:
        return False

    if rounding is ROUND_HALF_EVEN:
        if loss == LF_EXACTLY_HALF:
            return is_odd
        return loss == LF_MORE_THAN_HALF
    if rounding is ROUND_HALF_UP:
        return loss >= LF_EXACTLY_HALF
    if rounding is ROUND_CEILING:
        return not sign
    if rounding is ROUND_FLOOR:
        return sign
    assert rounding is ROUND_DOWN
    return False


def _mirror_rounding(rounding):
    '''Return the rounding mode that rounds a magnitude as rounding rounds its negation.'''
    if rounding is ROUND_CEILING:
        return ROUND_FLOOR
    if rounding is ROUND_FLOOR:
        return ROUND_CEILING
    return rounding


def _compare_magnitude(lhs, rhs):
    '''Return -1, 0 or 1 as abs(lhs) is less than, equal to or greater than abs(rhs).  Both
    must be finite and non-zero; their formats can differ.'''
    lhs_exponent = lhs.exponent_int()
    rhs_exponent = rhs.exponent_int()
    lhs_top = lhs_exponent + lhs.mantissa.msb_index()
    rhs_top = rhs_exponent + rhs.mantissa.msb_index()
    if lhs_top != rhs_top:
        return -1 if lhs_top < rhs_top else 1

    # The leading bits line up, so aligning the mantissas shifts by less than a precision
    lhs_sig = lhs.mantissa
    rhs_sig = rhs.mantissa
    if lhs_exponent > rhs_exponent:
        lhs_sig = lhs_sig << (lhs_exponent - rhs_exponent)
    elif rhs_exponent > lhs_exponent:
        rhs_sig = rhs_sig << (rhs_exponent - lhs_exponent)
    return (lhs_sig > rhs_sig) - (lhs_sig < rhs_sig)


#
# Predefined formats.
#

FP16 = FloatFormat.from_widths(5, 10)
BF16 = FloatFormat.from_widths(8, 7)
FP32 = FloatFormat.from_widths(8, 23)
FP64 = FloatFormat.from_widths(11, 52)
FP128 = FloatFormat.from_widths(15, 112)
FP256 = FloatFormat.from_widths(19, 236)
