import math
import random
from struct import pack, unpack

import pytest

from arpfloat import *


def f32_bits(value):
    return unpack('<I', pack('<f', value))[0]


def f32_from_bits(bits):
    return unpack('<f', pack('<I', bits))[0]


def f64_bits(value):
    return unpack('<Q', pack('<d', value))[0]


def f64_from_bits(bits):
    return unpack('<d', pack('<Q', bits))[0]


def host_f32(value):
    '''The host's narrowing of a double to single precision.'''
    try:
        return unpack('<f', pack('<f', value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def same_float(lhs, rhs):
    if math.isnan(lhs) or math.isnan(rhs):
        return math.isnan(lhs) and math.isnan(rhs)
    return f64_bits(lhs) == f64_bits(rhs)


FLT_MAX = (2 - 2.0 ** -23) * 2.0 ** 127
FLT_MIN = 2.0 ** -126
FLT_TRUE_MIN = 2.0 ** -149

special_values = [
    0.0, -0.0, math.inf, -math.inf, math.nan, -math.nan,
    5e-324, -5e-324, 2.2250738585072014e-308, 1.7976931348623157e308,
    FLT_MAX, -FLT_MAX, FLT_MIN, FLT_TRUE_MIN,
    # Halfway between FLT_MAX and 2^128, and either side of it
    (2 - 2.0 ** -24) * 2.0 ** 127,
    f64_from_bits(f64_bits((2 - 2.0 ** -24) * 2.0 ** 127) - 1),
    f64_from_bits(f64_bits((2 - 2.0 ** -24) * 2.0 ** 127) + 1),
    # Halfway below the smallest subnormal, and either side of it
    2.0 ** -150,
    f64_from_bits(f64_bits(2.0 ** -150) - 1),
    f64_from_bits(f64_bits(2.0 ** -150) + 1),
    # Halfway between the two smallest subnormals
    1.5 * 2.0 ** -149,
    # The boundary between subnormal and normal
    FLT_MIN - FLT_TRUE_MIN / 2,
    f64_from_bits(f64_bits(FLT_MIN) - 1),
    1e39, -1e39, 1e-50, -1e-50,
    0.3, 0.1, 14151241515.0, 14151215.0, 0.0000000001, 1000000000.0,
    math.pi, math.e, 355 / 113, 355 / 133, 193 / 71,
]


def random_doubles(seed, count):
    rand = random.Random(seed)
    for _ in range(count):
        # Mostly within and just beyond single precision's range
        yield rand.uniform(-1, 1) * 2.0 ** rand.randint(-160, 135)
        yield f64_from_bits(rand.getrandbits(64))


class TestNativeRoundTrip:

    def test_fp32(self):
        for bits in range(0, 1 << 32, 0x80007):
            value = f32_from_bits(bits)
            if math.isnan(value):
                assert FP32.from_f32(value).is_nan()
                continue
            assert f32_bits(FP32.from_f32(value).as_f32()) == bits

    @pytest.mark.parametrize('seed', range(3))
    def test_fp64(self, seed):
        for value in random_doubles(seed, 300):
            result = FP64.from_f64(value).as_f64()
            assert same_float(result, value)

    def test_simple(self):
        value = f32_from_bits(0x41700000)
        assert FP32.from_f32(value).as_f32() == value
        pi = 355 / 113
        assert FP64.from_f64(pi).as_f64() == pi

    def test_zero(self):
        value = FP32.from_f32(0.0)
        assert not value.is_normal()
        assert value.is_zero()
        assert f32_bits(value.as_f32()) == 0
        assert f32_bits(FP32.from_f32(-0.0).as_f32()) == 0x80000000

    @pytest.mark.parametrize('bits', (1, 2, 0x3fffff, 0x400000, 0x7fffff, 0x800000,
                                      0x80000001, 0x807fffff))
    def test_subnormals(self, bits):
        value = f32_from_bits(bits)
        result = FP32.from_f32(value)
        assert result.is_subnormal() is (bits & 0x7fffffff < 0x800000)
        assert f32_bits(result.as_f32()) == bits
        assert result.as_native_float() == bits

    def test_nan_inf(self):
        assert FP64.from_f64(math.nan).is_nan()
        assert not FP64.from_f64(math.nan).is_inf()
        assert FP64.from_f64(math.inf).is_inf()
        assert not FP64.from_f64(math.inf).is_nan()
        assert FP64.from_f64(-math.inf).is_inf()
        assert FP64.from_f64(-math.inf).is_negative()
        assert math.isnan(FP64.make_nan(True).as_f64())
        assert FP64.from_f64(f64_from_bits(0xffffffff00000000)).is_nan()

    def test_signed_zeros(self):
        assert same_float(FP64.make_zero(False).as_f64(), 0.0)
        assert same_float(FP64.make_zero(True).as_f64(), -0.0)

    @pytest.mark.parametrize('bits, negative', (
        (0x3f8fffff, False),
        (0xf48fffff, True),
    ))
    def test_finite_decode(self, bits, negative):
        value = FP32.from_f32(f32_from_bits(bits))
        assert not value.is_inf()
        assert not value.is_nan()
        assert value.is_negative() is negative

    def test_negative_specials(self):
        value = FP32.from_f32(f32_from_bits(0xff800000))
        assert value.is_inf() and value.is_negative()
        value = FP32.from_f32(f32_from_bits(0xffc00000))
        assert value.is_nan() and value.is_negative()

    def test_float_protocol(self):
        assert float(FP16.from_i64(-3)) == -3.0
        assert float(FP128.from_f64(0.1)) == 0.1

    def test_requires_float(self):
        with pytest.raises(TypeError):
            FP64.from_f64(1)
        with pytest.raises(TypeError):
            FP32.from_f32(1)


class TestCast:

    @pytest.mark.parametrize('bits', (0x3f8fffff, 0x40800000, 0x3f000000, 0xc60b40ec,
                                      0xbc675793))
    def test_easy(self, bits):
        output = f32_from_bits(bits)
        a = FP64.from_f32(output)
        b = a.cast(FP32)
        assert a.as_f32() == output
        assert b.as_f32() == output
        assert b.fmt == FP32

    def test_wide_range(self):
        for n in range(0, 1 << 14, 3):
            bits = n << 16
            a = FP64.from_f32(f32_from_bits(bits))
            b = a.cast(FP32)
            assert f32_bits(b.as_f32()) == bits

    @pytest.mark.parametrize('value', special_values)
    def test_narrowing_matches_host(self, value):
        result = FP64.from_f64(value).as_f32()
        assert same_float(result, host_f32(value))
        cast = FP64.from_f64(value).cast(FP32)
        assert same_float(cast.as_f32(), host_f32(value))
        assert same_float(FP64.from_f64(value).as_f64(), value)

    @pytest.mark.parametrize('seed', range(3))
    def test_narrowing_random(self, seed):
        for value in random_doubles(seed, 300):
            assert same_float(FP64.from_f64(value).as_f32(), host_f32(value))

    def test_propagates_specials(self):
        value = FP32.from_f32(f32_from_bits(0xff800000)).cast(FP64)
        assert value.is_inf() and value.is_negative() and value.fmt == FP64
        value = FP32.make_nan(True).cast(FP16)
        assert value.is_nan() and value.is_negative() and value.fmt == FP16
        value = FP32.make_zero(True).cast(FP256)
        assert value == FP256.make_zero(True)

    @pytest.mark.parametrize('wide', (FP128, FP256))
    def test_widening_is_exact(self, wide):
        for value in special_values + list(random_doubles(7, 100)):
            x = FP64.from_f64(value)
            assert same_float(x.cast(wide).cast(FP64).as_f64(), value)
            if x.is_finite():
                assert x.cast(wide).cast(FP64) == x

    def test_fp128_precision(self):
        # 2^64 + 1 is exact in quad precision but not in double
        value = FP128.from_u64(WORD_MASK) + 2
        assert value.cast(FP64, ROUND_DOWN).as_f64() == 2.0 ** 64
        assert value.cast(FP64, ROUND_CEILING).as_f64() == 2.0 ** 64 + 4096
        assert not value.cast(FP32).is_inf()

    @pytest.mark.parametrize('rounding, expected', (
        (ROUND_HALF_EVEN, 0.1),
        (ROUND_DOWN, 0.09999999999999999),
        (ROUND_FLOOR, 0.09999999999999999),
        (ROUND_CEILING, 0.1),
        (ROUND_HALF_UP, 0.1),
    ))
    def test_cast_rounding(self, rounding, expected):
        # 0.1 in quad precision lies just below the nearest double
        value = FP128.divide(FP128.from_i64(1), FP128.from_i64(10))
        assert value.cast(FP64, rounding).as_f64() == expected

    def test_cast_to_bf16(self):
        value = FP32.from_f32(f32_from_bits(0x3f808000))
        # Halfway between two bfloat16 values; ties to even
        assert value.cast(BF16).as_native_float() == 0x3f80
        value = FP32.from_f32(f32_from_bits(0x3f818000))
        assert value.cast(BF16).as_native_float() == 0x3f82

    def test_cast_flags(self):
        with local_context(DefaultContext) as context:
            FP64.from_f64(0.5).cast(FP16)
            assert context.flags == 0
            FP64.from_f64(0.1).cast(FP16)
            assert context.flags == Flags.INEXACT
            context.clear_flags()
            FP64.from_f64(1e10).cast(FP16)
            assert context.flags == Flags.OVERFLOW | Flags.INEXACT
            context.clear_flags()
            FP64.from_f64(1e-10).cast(FP16)
            assert context.flags == Flags.UNDERFLOW | Flags.INEXACT

    def test_bad_format(self):
        with pytest.raises(TypeError):
            FP32.from_i64(1).cast((8, 23))
