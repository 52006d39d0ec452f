import math

import pytest
import torch

from band_storage import band_to_dense, dense_to_band, random_band
from triton_dlangb import (
    BadLeadingDimensionError,
    BadNormError,
    BadWorkError,
    BandNormError,
    MatrixNorm,
    NegativeDimensionError,
    ShortBandBufferError,
    ShortWorkError,
    dlange,
    dlangb,
)

NAN = float("nan")
ALL_NORMS = list(MatrixNorm)


def tridiag_band(pad=NAN):
    # [[2,-1,0],[-1,2,-1],[0,-1,2]] with kl=ku=1
    return torch.tensor([pad, 2.0, -1.0,
                         -1.0, 2.0, -1.0,
                         -1.0, 2.0, pad], dtype=torch.float64)


def test_tridiagonal_scenario():
    ab = tridiag_band()
    work = torch.empty(3, dtype=torch.float64)
    assert dlangb("M", 3, 1, 1, ab, 3) == 2.0
    assert dlangb("I", 3, 1, 1, ab, 3) == 4.0
    assert dlangb("O", 3, 1, 1, ab, 3, work) == 4.0
    assert dlangb("F", 3, 1, 1, ab, 3) == pytest.approx(4.0, rel=1e-15)


@pytest.mark.parametrize("norm", ALL_NORMS)
def test_single_entry(norm):
    work = torch.empty(1, dtype=torch.float64)
    assert dlangb(norm, 1, 0, 0, torch.tensor([5.0], dtype=torch.float64), 1, work) == pytest.approx(5.0)


@pytest.mark.parametrize("norm", ALL_NORMS)
def test_zero_matrix(norm):
    n, kl, ku = 6, 2, 3
    ab = torch.zeros(n * (kl + 1 + ku), dtype=torch.float64)
    work = torch.empty(n, dtype=torch.float64)
    assert dlangb(norm, n, kl, ku, ab, kl + 1 + ku, work) == 0.0


@pytest.mark.parametrize("norm", ALL_NORMS)
def test_empty_matrix_quick_return(norm):
    # nothing is read and no work is needed
    assert dlangb(norm, 0, 2, 1, torch.empty(0), 4) == 0.0
    assert dlangb(norm, 0, 0, 0, [], 1, None) == 0.0


@pytest.mark.parametrize("n,kl,ku,extra", [
    (1, 0, 0, 0), (2, 3, 0, 1), (4, 2, 1, 0), (5, 0, 4, 2), (9, 3, 3, 0), (17, 1, 6, 3), (30, 10, 0, 0),
])
@pytest.mark.parametrize("norm", ALL_NORMS)
def test_matches_dense_reference(n, kl, ku, extra, norm):
    ldab = kl + 1 + ku + extra
    ab = random_band(n, kl, ku, ldab, seed=n * 31 + kl, pad=NAN)
    work = torch.empty(n, dtype=torch.float64)
    got = dlangb(norm, n, kl, ku, ab, ldab, work)
    want = dlange(norm, band_to_dense(n, kl, ku, ab, ldab))
    assert got == pytest.approx(want, rel=1e-13)


def test_norm_inequalities():
    n, kl, ku = 12, 3, 2
    ab = random_band(n, kl, ku, seed=7)
    work = torch.empty(n, dtype=torch.float64)
    vals = {norm: dlangb(norm, n, kl, ku, ab, kl + 1 + ku, work) for norm in ALL_NORMS}
    assert all(v >= 0.0 for v in vals.values())
    assert vals[MatrixNorm.MAX_ABS] <= vals[MatrixNorm.MAX_ROW_SUM]
    assert vals[MatrixNorm.MAX_ABS] <= vals[MatrixNorm.MAX_COLUMN_SUM]
    assert vals[MatrixNorm.MAX_ABS] <= vals[MatrixNorm.FROBENIUS]


def test_symmetric_row_and_column_sums_agree():
    n, k = 10, 2
    g = torch.Generator().manual_seed(3)
    A = torch.randn((n, n), generator=g, dtype=torch.float64)
    A = A + A.T
    ab = dense_to_band(A, k, k)
    work = torch.empty(n, dtype=torch.float64)
    row = dlangb("I", n, k, k, ab, 2 * k + 1)
    col = dlangb("O", n, k, k, ab, 2 * k + 1, work)
    assert row == pytest.approx(col, rel=1e-13)


@pytest.mark.parametrize("norm", ALL_NORMS)
def test_nan_in_band_propagates(norm):
    n, kl, ku = 8, 2, 1
    ldab = kl + 1 + ku
    ab = random_band(n, kl, ku, seed=1)
    # A[5, 6] sits at slot kl + 6 - 5 of row 5
    ab[5 * ldab + kl + 1] = NAN
    work = torch.empty(n, dtype=torch.float64)
    assert math.isnan(dlangb(norm, n, kl, ku, ab, ldab, work))


def test_nan_stays_after_larger_entries():
    ab = torch.tensor([NAN, 1.0, 100.0, 1e9], dtype=torch.float64)
    work = torch.empty(4, dtype=torch.float64)
    for norm in ALL_NORMS:
        assert math.isnan(dlangb(norm, 4, 0, 0, ab, 1, work))


@pytest.mark.parametrize("norm", ALL_NORMS)
def test_padding_is_never_read(norm):
    n, kl, ku = 7, 3, 2
    ldab = kl + 1 + ku + 2
    ab = random_band(n, kl, ku, ldab, seed=11, pad=NAN)
    work = torch.empty(n, dtype=torch.float64)
    assert not math.isnan(dlangb(norm, n, kl, ku, ab, ldab, work))


def test_infinity():
    ab = torch.tensor([1.0, float("inf"), -2.0], dtype=torch.float64)
    work = torch.empty(3, dtype=torch.float64)
    for norm in ALL_NORMS:
        assert dlangb(norm, 3, 0, 0, ab, 1, work) == float("inf")
    ab[0] = float("-inf")
    assert dlangb("F", 3, 0, 0, ab, 1) == float("inf")


def test_frobenius_does_not_overflow_or_underflow():
    big = torch.full((4,), 1e300, dtype=torch.float64)
    assert dlangb("F", 4, 0, 0, big, 1) == pytest.approx(2e300)
    tiny = torch.full((4,), 1e-300, dtype=torch.float64)
    assert dlangb("F", 4, 0, 0, tiny, 1) == pytest.approx(2e-300)


def test_work_is_zeroed_and_holds_column_sums():
    n, kl, ku = 6, 1, 2
    ab = random_band(n, kl, ku, seed=5)
    work = torch.full((n + 3,), 123.0, dtype=torch.float64)
    value = dlangb("O", n, kl, ku, ab, kl + 1 + ku, work)
    A = band_to_dense(n, kl, ku, ab, kl + 1 + ku)
    torch.testing.assert_close(work[:n], A.abs().sum(dim=0))
    assert torch.all(work[n:] == 123.0)
    assert value == pytest.approx(work[:n].max().item())


def test_band_buffer_is_not_modified():
    ab = random_band(9, 2, 2, seed=2)
    before = ab.clone()
    work = torch.empty(9, dtype=torch.float64)
    for norm in ALL_NORMS:
        dlangb(norm, 9, 2, 2, ab, 5, work)
    assert torch.equal(ab, before)


def test_accepts_letters_sequences_and_2d_storage():
    ab2d = tridiag_band(pad=0.0).reshape(3, 3)
    work = torch.empty(3, dtype=torch.float64)
    assert dlangb("1", 3, 1, 1, ab2d, 3, work) == 4.0
    assert dlangb("e", 3, 1, 1, ab2d.tolist(), 3) == pytest.approx(4.0)
    assert dlangb("m", 3, 1, 1, [0.0, 2.0, -1.0, -1.0, 2.0, -1.0, -1.0, 2.0, 0.0], 3) == 2.0
    assert dlangb(MatrixNorm.MAX_ROW_SUM, 3, 1, 1, ab2d, 3) == 4.0


@pytest.mark.parametrize("bad", ["X", "", "MO", 3, None])
def test_bad_norm(bad):
    with pytest.raises(BadNormError, match="bad norm"):
        dlangb(bad, 3, 1, 1, tridiag_band(), 3)


@pytest.mark.parametrize("n,kl,ku,msg", [(-1, 0, 0, "n < 0"), (3, -1, 0, "kl < 0"), (3, 0, -2, "ku < 0")])
def test_negative_dimensions(n, kl, ku, msg):
    with pytest.raises(NegativeDimensionError, match=msg):
        dlangb("M", n, kl, ku, torch.zeros(16), 4)


def test_insufficient_stride():
    with pytest.raises(BadLeadingDimensionError):
        dlangb("M", 3, 1, 1, tridiag_band(), 2)


def test_insufficient_stride_is_checked_before_reading():
    class Unreadable:
        def __len__(self):
            raise AssertionError("buffer was touched")

    with pytest.raises(BadLeadingDimensionError):
        dlangb("F", 3, 1, 1, Unreadable(), 2)


def test_short_band_buffer():
    # needs (n-1)*ldab + ncol = 2*4 + 3 = 11 entries
    dlangb("M", 3, 1, 1, torch.zeros(11), 4)
    with pytest.raises(ShortBandBufferError):
        dlangb("M", 3, 1, 1, torch.zeros(10), 4)


def test_short_work_only_for_column_sums():
    ab = tridiag_band(pad=0.0)
    with pytest.raises(ShortWorkError):
        dlangb("O", 3, 1, 1, ab, 3, torch.empty(2, dtype=torch.float64))
    with pytest.raises(ShortWorkError):
        dlangb("O", 3, 1, 1, ab, 3)
    for norm in ("M", "I", "F"):
        dlangb(norm, 3, 1, 1, ab, 3, torch.empty(0, dtype=torch.float64))


@pytest.mark.parametrize("dtype", [torch.float32, torch.int64])
def test_column_sums_reject_non_float64_work(dtype):
    n, kl, ku = 50, 3, 3
    ab = random_band(n, kl, ku, seed=9)
    work = torch.full((n,), 7, dtype=dtype)
    with pytest.raises(BadWorkError, match="float64"):
        dlangb("O", n, kl, ku, ab, kl + 1 + ku, work)
    # rejected before anything is written
    assert torch.all(work == 7)


def test_column_sums_reject_2d_work():
    with pytest.raises(BadWorkError):
        dlangb("O", 3, 1, 1, tridiag_band(), 3, torch.zeros((3, 1), dtype=torch.float64))


def test_work_dtype_only_checked_for_column_sums():
    ab = tridiag_band()
    work = torch.empty(3, dtype=torch.int64)
    assert dlangb("M", 3, 1, 1, ab, 3, work) == 2.0
    assert dlangb("I", 3, 1, 1, ab, 3, work) == 4.0


@pytest.mark.skipif(not torch.cuda.is_available(), reason="CUDA not available")
def test_column_sums_reject_work_on_other_device():
    ab = tridiag_band()
    with pytest.raises(BadWorkError, match="work on"):
        dlangb("O", 3, 1, 1, ab, 3, torch.empty(3, device="cuda", dtype=torch.float64))
    with pytest.raises(BadWorkError, match="work on"):
        dlangb("O", 3, 1, 1, ab.cuda(), 3, torch.empty(3, dtype=torch.float64))


def test_errors_share_a_base_class():
    for exc in (BadNormError, NegativeDimensionError, BadLeadingDimensionError,
                ShortBandBufferError, ShortWorkError, BadWorkError):
        assert issubclass(exc, BandNormError)
        assert issubclass(exc, ValueError)


@pytest.mark.skipif(not torch.cuda.is_available(), reason="CUDA not available")
@pytest.mark.parametrize("n,kl,ku,extra", [(1, 0, 0, 0), (7, 2, 3, 1), (300, 5, 9, 0), (50, 0, 1500, 0)])
@pytest.mark.parametrize("norm", ALL_NORMS)
def test_triton_path_matches_host(n, kl, ku, extra, norm):
    ldab = kl + 1 + ku + extra
    ab = random_band(n, kl, ku, ldab, seed=n + kl, pad=NAN)
    host = dlangb(norm, n, kl, ku, ab, ldab, torch.empty(n, dtype=torch.float64))
    work = torch.empty(n, device="cuda", dtype=torch.float64)
    dev = dlangb(norm, n, kl, ku, ab.cuda(), ldab, work)
    assert dev == pytest.approx(host, rel=1e-12)


@pytest.mark.skipif(not torch.cuda.is_available(), reason="CUDA not available")
@pytest.mark.parametrize("norm", ALL_NORMS)
def test_triton_path_nan_propagates(norm):
    ab = random_band(16, 2, 2, seed=4)
    ab[3 * 5 + 2] = NAN
    work = torch.empty(16, device="cuda", dtype=torch.float64)
    assert math.isnan(dlangb(norm, 16, 2, 2, ab.cuda(), 5, work))
