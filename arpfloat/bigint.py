#
# Fixed-width multi-word unsigned integers, the substrate of floating point mantissas
#

import logging
from enum import IntEnum

import attr

from .errors import ContractViolation

__all__ = ('BigInt', 'LossFraction', 'shift_right_with_loss',
           'LF_EXACTLY_ZERO', 'LF_LESS_THAN_HALF', 'LF_EXACTLY_HALF', 'LF_MORE_THAN_HALF',
           'WORD_BITS', 'WORD_MASK')

logger = logging.getLogger(__name__)

WORD_BITS = 64
WORD_MASK = (1 << WORD_BITS) - 1


# When bits of a mantissa are truncated, this is used to indicate what fraction of the
# LSB those bits represented.  It essentially combines the roles of guard and sticky
# bits.  The ordering of the members is significant.
class LossFraction(IntEnum):
    EXACTLY_ZERO = 0        # 000000
    LESS_THAN_HALF = 1      # 0xxxxx  x's not all zero
    EXACTLY_HALF = 2        # 100000
    MORE_THAN_HALF = 3      # 1xxxxx  x's not all zero

    def is_exactly_zero(self):
        return self is LossFraction.EXACTLY_ZERO

    def is_lt_half(self):
        return self is LossFraction.LESS_THAN_HALF

    def is_exactly_half(self):
        return self is LossFraction.EXACTLY_HALF

    def is_mt_half(self):
        return self is LossFraction.MORE_THAN_HALF

    def is_lte_half(self):
        return self in (LossFraction.LESS_THAN_HALF, LossFraction.EXACTLY_HALF)

    def is_gte_half(self):
        return self >= LossFraction.EXACTLY_HALF

    def invert(self):
        '''Return the loss of the complementary fraction, i.e. of 1 - lost.  Used when a
        truncated quantity is subtracted rather than added.'''
        if self is LossFraction.LESS_THAN_HALF:
            return LossFraction.MORE_THAN_HALF
        if self is LossFraction.MORE_THAN_HALF:
            return LossFraction.LESS_THAN_HALF
        return self

    @classmethod
    def combine(cls, msb, lsb):
        '''Combine the loss of two successive truncations: msb is the loss of the more
        significant one and lsb the loss of the bits below it.  The result is the loss a
        single truncation of both would have reported.'''
        if lsb is not cls.EXACTLY_ZERO:
            if msb is cls.EXACTLY_ZERO:
                return cls.LESS_THAN_HALF
            if msb is cls.EXACTLY_HALF:
                return cls.MORE_THAN_HALF
        return msb


LF_EXACTLY_ZERO = LossFraction.EXACTLY_ZERO
LF_LESS_THAN_HALF = LossFraction.LESS_THAN_HALF
LF_EXACTLY_HALF = LossFraction.EXACTLY_HALF
LF_MORE_THAN_HALF = LossFraction.MORE_THAN_HALF


@attr.s(slots=True, cmp=False, repr=False)
class BigInt:
    '''An unsigned integer of a fixed number of 64-bit words.

    parts holds the words, least significant first.  The width (number of words) never
    changes after construction.  Arithmetic that would exceed 2^(64 * width) wraps and
    reports the fact through its return value; it is never silent.

    The in_place_ methods and the shift and mask methods modify the integer; everything
    else returns new integers.  Operands of binary operations must have the same width.
    '''

    parts = attr.ib(converter=list)

    @parts.validator
    def _check_parts(self, _attribute, parts):
        if not parts:
            raise ValueError('a BigInt needs at least one word')
        for part in parts:
            if not isinstance(part, int):
                raise TypeError('BigInt words must be integers')
            if not 0 <= part <= WORD_MASK:
                raise ValueError(f'word {part:#x} out of range')

    @classmethod
    def zero(cls, width):
        '''Return a zero integer of the given width in words.'''
        return cls([0] * width)

    @classmethod
    def one(cls, width):
        return cls.from_u64(1, width)

    @classmethod
    def from_u64(cls, value, width):
        '''Place a 64-bit value in the low word.'''
        if not 0 <= value <= WORD_MASK:
            raise ContractViolation(f'{value:#x} is not a 64-bit unsigned value')
        result = cls.zero(width)
        result.parts[0] = value
        return result

    @classmethod
    def from_u128(cls, value, width):
        '''Place a 128-bit value in the two low words.'''
        if not 0 <= value < 1 << (2 * WORD_BITS):
            raise ContractViolation(f'{value:#x} is not a 128-bit unsigned value')
        if width < 2:
            raise ContractViolation('a 128-bit value needs at least two words')
        result = cls.zero(width)
        result.parts[0] = value & WORD_MASK
        result.parts[1] = value >> WORD_BITS
        return result

    @classmethod
    def from_int(cls, value, width):
        '''Convert a non-negative Python integer that fits in width words.'''
        if not isinstance(value, int):
            raise TypeError('from_int requires an integer')
        if value < 0 or value.bit_length() > width * WORD_BITS:
            raise ContractViolation(f'{value:#x} does not fit in {width} words')
        return cls([(value >> (n * WORD_BITS)) & WORD_MASK for n in range(width)])

    @classmethod
    def from_parts(cls, parts):
        '''Construct from a sequence of words, least significant first.'''
        return cls(parts)

    @classmethod
    def all_ones(cls, bits, width):
        '''Return an integer whose low bits are set and the rest clear.'''
        result = cls([WORD_MASK] * width)
        result.mask(bits)
        return result

    @property
    def width(self):
        '''The number of words.'''
        return len(self.parts)

    @property
    def bit_width(self):
        return len(self.parts) * WORD_BITS

    def copy(self):
        return BigInt(self.parts)

    def get_part(self, index):
        return self.parts[index]

    def _check_width(self, other):
        if not isinstance(other, BigInt):
            raise TypeError('operand must be a BigInt')
        if other.width != self.width:
            raise ContractViolation(f'width mismatch: {self.width} and {other.width} words')

    ##
    ## Conversions
    ##

    def to_u64(self):
        '''Return the value as a Python int, which must fit in 64 bits.'''
        if any(self.parts[1:]):
            raise ContractViolation('value does not fit in 64 bits')
        return self.parts[0]

    def to_u128(self):
        '''Return the value as a Python int, which must fit in 128 bits.'''
        if any(self.parts[2:]):
            raise ContractViolation('value does not fit in 128 bits')
        result = self.parts[0]
        if self.width > 1:
            result |= self.parts[1] << WORD_BITS
        return result

    def truncate(self, width):
        '''Return a copy of the low width words.'''
        if width > self.width:
            raise ContractViolation("can't truncate to a larger size")
        return BigInt(self.parts[:width])

    def __int__(self):
        result = 0
        for part in reversed(self.parts):
            result = (result << WORD_BITS) | part
        return result

    ##
    ## Queries
    ##

    def is_zero(self):
        return not any(self.parts)

    def is_even(self):
        return not self.parts[0] & 1

    def is_odd(self):
        return bool(self.parts[0] & 1)

    def msb_index(self):
        '''Return the 1-based index of the most significant set bit, or 0 if the value is
        zero.'''
        for index in range(self.width - 1, -1, -1):
            part = self.parts[index]
            if part:
                return index * WORD_BITS + part.bit_length()
        return 0

    def loss_for_truncation_at(self, bit):
        '''Return the fraction of the unit at position bit that would be lost by discarding
        all bits below it.'''
        if self.is_zero() or bit <= 0:
            return LF_EXACTLY_ZERO
        if bit > self.bit_width:
            return LF_LESS_THAN_HALF

        lost = self.copy()
        lost.mask(bit)
        if lost.is_zero():
            return LF_EXACTLY_ZERO

        half = BigInt.one(self.width)
        half.shift_left(bit - 1)
        compare = lost._compare(half)
        if compare < 0:
            return LF_LESS_THAN_HALF
        if compare == 0:
            return LF_EXACTLY_HALF
        return LF_MORE_THAN_HALF

    ##
    ## In-place modification
    ##

    def mask(self, bits):
        '''Zero out all bits at position bits and above.'''
        for index, part in enumerate(self.parts):
            low = index * WORD_BITS
            if bits <= low:
                self.parts[index] = 0
            elif bits < low + WORD_BITS:
                self.parts[index] = part & ((1 << (bits - low)) - 1)

    def in_place_add(self, rhs):
        '''Add rhs to self.  Return True if the sum overflowed (and wrapped).'''
        self._check_width(rhs)
        carry = 0
        for index, part in enumerate(rhs.parts):
            total = self.parts[index] + part + carry
            self.parts[index] = total & WORD_MASK
            carry = total >> WORD_BITS
        return bool(carry)

    def in_place_sub(self, rhs):
        '''Subtract rhs from self.  Return True if a borrow was needed (and the result
        wrapped).'''
        self._check_width(rhs)
        borrow = 0
        for index, part in enumerate(rhs.parts):
            diff = self.parts[index] - part - borrow
            borrow = int(diff < 0)
            self.parts[index] = diff & WORD_MASK
        return bool(borrow)

    def in_place_multiply(self, rhs, scratch_words=None):
        '''Multiply self by rhs.  Return True if the product does not fit in our width, in
        which case the low words are kept.

        The full product is accumulated in a scratch buffer of scratch_words words, which
        must be at least twice our width.
        '''
        self._check_width(rhs)
        width = self.width
        if scratch_words is None:
            scratch_words = width * 2
        if scratch_words < width * 2:
            raise ContractViolation(f'multiply needs at least {width * 2} scratch words')

        scratch = [0] * scratch_words
        # carries[n] counts the carries out of scratch[n] into the word above
        carries = [0] * scratch_words

        for i, lhs_part in enumerate(self.parts):
            for j, rhs_part in enumerate(rhs.parts):
                product = lhs_part * rhs_part
                for index, piece in ((i + j, product & WORD_MASK),
                                     (i + j + 1, product >> WORD_BITS)):
                    total = scratch[index] + piece
                    scratch[index] = total & WORD_MASK
                    carries[index] += total >> WORD_BITS

        carry = 0
        for index in range(width):
            total = scratch[index] + carry
            self.parts[index] = total & WORD_MASK
            carry = (total >> WORD_BITS) + carries[index]

        for index in range(width, scratch_words):
            carry |= carries[index] | scratch[index]

        return carry > 0

    def shift_left(self, bits):
        '''Shift left bits places, shifting in zeroes.'''
        if bits < 0:
            raise ContractViolation('negative shift count')
        words, offset = divmod(bits, WORD_BITS)
        parts = self.parts
        # Work from the top so that source words are read before being overwritten
        for index in range(self.width - 1, -1, -1):
            high = parts[index - words] if index >= words else 0
            if offset:
                low = parts[index - words - 1] if index > words else 0
                parts[index] = ((high << offset) | (low >> (WORD_BITS - offset))) & WORD_MASK
            else:
                parts[index] = high

    def shift_right(self, bits):
        '''Shift right bits places, shifting in zeroes.'''
        if bits < 0:
            raise ContractViolation('negative shift count')
        words, offset = divmod(bits, WORD_BITS)
        parts = self.parts
        width = self.width
        for index in range(width):
            low = parts[index + words] if index + words < width else 0
            if offset:
                high = parts[index + words + 1] if index + words + 1 < width else 0
                parts[index] = ((low >> offset) | (high << (WORD_BITS - offset))) & WORD_MASK
            else:
                parts[index] = low

    ##
    ## Comparison and operators
    ##

    def _compare(self, other):
        '''Return -1, 0 or 1 as self is less than, equal to or greater than other.'''
        self._check_width(other)
        for index in range(self.width - 1, -1, -1):
            lhs, rhs = self.parts[index], other.parts[index]
            if lhs != rhs:
                return -1 if lhs < rhs else 1
        return 0

    def __eq__(self, other):
        if not isinstance(other, BigInt):
            return NotImplemented
        return self.width == other.width and self.parts == other.parts

    def __ne__(self, other):
        if not isinstance(other, BigInt):
            return NotImplemented
        return not self == other

    def __lt__(self, other):
        if not isinstance(other, BigInt):
            return NotImplemented
        return self._compare(other) < 0

    def __le__(self, other):
        if not isinstance(other, BigInt):
            return NotImplemented
        return self._compare(other) <= 0

    def __gt__(self, other):
        if not isinstance(other, BigInt):
            return NotImplemented
        return self._compare(other) > 0

    def __ge__(self, other):
        if not isinstance(other, BigInt):
            return NotImplemented
        return self._compare(other) >= 0

    __hash__ = None

    # The operators wrap silently; use the in_place_ methods to learn about overflow.
    def __add__(self, other):
        result = self.copy()
        result.in_place_add(other)
        return result

    def __sub__(self, other):
        result = self.copy()
        result.in_place_sub(other)
        return result

    def __mul__(self, other):
        result = self.copy()
        result.in_place_multiply(other)
        return result

    def __lshift__(self, bits):
        result = self.copy()
        result.shift_left(bits)
        return result

    def __rshift__(self, bits):
        result = self.copy()
        result.shift_right(bits)
        return result

    def __bool__(self):
        return not self.is_zero()

    def __repr__(self):
        return f'BigInt({self.width} words, {int(self):#x})'

    def dump(self):
        '''Return the words, most significant first, as fixed-width hex, and log it.'''
        text = '[' + ''.join(f'|{part:016x}' for part in reversed(self.parts)) + ']'
        logger.debug('%s', text)
        return text


def shift_right_with_loss(value, bits):
    '''Return value shifted right bits places, and the fraction lost doing so.'''
    loss = value.loss_for_truncation_at(bits)
    result = value.copy()
    result.shift_right(bits)
    return result, loss
