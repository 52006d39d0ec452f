"""
DLANGB: max-abs, one, infinity or Frobenius norm of an n x n band matrix.

Band storage is row-major: row i of the matrix lives in ab[i*ldab : i*ldab + kl+1+ku]
with A[i, j] at ab[i*ldab + kl + j - i]. Slots outside the matrix (top-left and
bottom-right corners of the band) are padding and are never read.

Usage:
  python3 triton_dlangb.py --n 4096 --kl 8 --ku 5 --norm F --check --bench
"""
from __future__ import annotations

import argparse
import enum
import math
import time

import torch
import triton
import triton.language as tl

from band_storage import band_row_range, band_to_dense, random_band
from triton_blas1 import dasum, dcombssq, dlassq


class MatrixNorm(str, enum.Enum):
    MAX_ABS = "M"
    MAX_COLUMN_SUM = "O"
    MAX_ROW_SUM = "I"
    FROBENIUS = "F"


# LAPACK spellings that name the same norm.
_NORM_ALIASES = {"1": MatrixNorm.MAX_COLUMN_SUM, "E": MatrixNorm.FROBENIUS}


class BandNormError(ValueError):
    """Caller passed arguments that violate the dlangb contract."""


class BadNormError(BandNormError):
    pass


class NegativeDimensionError(BandNormError):
    pass


class BadLeadingDimensionError(BandNormError):
    pass


class ShortBandBufferError(BandNormError):
    pass


class ShortWorkError(BandNormError):
    pass


class BadWorkError(BandNormError):
    """work has the wrong dtype, shape or device for column sums."""


def _as_norm(norm) -> MatrixNorm:
    if isinstance(norm, MatrixNorm):
        return norm
    if isinstance(norm, str):
        key = norm.upper()
        if key in _NORM_ALIASES:
            return _NORM_ALIASES[key]
        try:
            return MatrixNorm(key)
        except ValueError:
            pass
    raise BadNormError("lapack: bad norm")


def _as_band_buffer(ab) -> torch.Tensor:
    if not isinstance(ab, torch.Tensor):
        ab = torch.as_tensor(ab, dtype=torch.float64)
    if ab.ndim == 2:
        # (n, ldab) storage; row-major flattening gives the flat layout.
        ab = ab.reshape(-1)
    if ab.ndim != 1:
        raise ValueError(f"band buffer must be 1-D or 2-D, got ndim={ab.ndim}")
    return ab


def _nan_max(values) -> float:
    # A plain max() would skip NaN; here NaN replaces the running value on sight.
    value = 0.0
    for v in values:
        if v > value or math.isnan(v):
            value = v
    return value


# -----------------------------------------------------------------------------
# Host path: one pass over the rows, scalar accumulation per norm kind.
# -----------------------------------------------------------------------------

def _max_abs(n, kl, ku, ab, ldab, work):
    value = 0.0
    for i in range(n):
        l, u = band_row_range(i, n, kl, ku)
        for aij in ab[i * ldab + l:i * ldab + u].tolist():
            aij = abs(aij)
            if aij > value or math.isnan(aij):
                value = aij
    return value


def _max_row_sum(n, kl, ku, ab, ldab, work):
    value = 0.0
    for i in range(n):
        l, u = band_row_range(i, n, kl, ku)
        s = dasum(ab[i * ldab + l:i * ldab + u])
        if s > value or math.isnan(s):
            value = s
    return value


def _max_column_sum(n, kl, ku, ab, ldab, work):
    colsum = work[:n]
    colsum.zero_()
    for i in range(n):
        l, u = band_row_range(i, n, kl, ku)
        # stored slots [l, u) of row i are columns [l-kl+i, u-kl+i)
        colsum[l - kl + i:u - kl + i] += torch.abs(ab[i * ldab + l:i * ldab + u])
    return _nan_max(colsum.tolist())


def _frobenius(n, kl, ku, ab, ldab, work):
    scale = 0.0
    ssq = 1.0
    for i in range(n):
        l, u = band_row_range(i, n, kl, ku)
        rowscale, rowssq = dlassq(u - l, ab[i * ldab + l:], 1, 0.0, 1.0)
        scale, ssq = dcombssq(scale, ssq, rowscale, rowssq)
    return scale * math.sqrt(ssq)


_HOST_ACCUMULATORS = {
    MatrixNorm.MAX_ABS: _max_abs,
    MatrixNorm.MAX_ROW_SUM: _max_row_sum,
    MatrixNorm.MAX_COLUMN_SUM: _max_column_sum,
    MatrixNorm.FROBENIUS: _frobenius,
}


# -----------------------------------------------------------------------------
# CUDA path: per-row partials in one Triton launch, final reduction on the host.
# -----------------------------------------------------------------------------

@triton.jit
def band_row_norms_kernel(ab_ptr, rmax_ptr, rsum_ptr, rssq_ptr, work_ptr,
                          n, kl, ncol, ldab,
                          COLSUM: tl.constexpr,
                          SSQ: tl.constexpr,
                          BLOCK: tl.constexpr):
    """
    One program per band row i:
      rmax[i] = max_j |a_ij|  (NaN if the row holds a NaN)
      rsum[i] = sum_j |a_ij|
      rssq[i] = sum_j (|a_ij| / rmax[i])^2     (SSQ only)
      work[j] += |a_ij|                        (COLSUM only)
    """
    i = tl.program_id(0)
    row_ptr = ab_ptr + i.to(tl.int64) * ldab

    amax = tl.zeros((BLOCK,), dtype=tl.float64)
    asum = tl.zeros((BLOCK,), dtype=tl.float64)
    nans = tl.zeros((BLOCK,), dtype=tl.int32)
    for c0 in range(0, ncol, BLOCK):
        jb = c0 + tl.arange(0, BLOCK)
        mask = (jb >= kl - i) & (jb < n + kl - i) & (jb < ncol)
        a = tl.abs(tl.load(row_ptr + jb, mask=mask, other=0.0).to(tl.float64))
        is_nan = a != a
        amax = tl.maximum(amax, tl.where(is_nan, 0.0, a))
        asum += a
        nans += is_nan.to(tl.int32)
        if COLSUM:
            tl.atomic_add(work_ptr + (jb - kl + i), a, mask=mask)

    rsum = tl.sum(asum, axis=0)
    rmax = tl.max(amax, axis=0)
    has_nan = tl.sum(nans, axis=0) > 0

    if SSQ:
        safe = tl.where(rmax > 0.0, rmax, 1.0)
        ssq = tl.zeros((BLOCK,), dtype=tl.float64)
        for c0 in range(0, ncol, BLOCK):
            jb = c0 + tl.arange(0, BLOCK)
            mask = (jb >= kl - i) & (jb < n + kl - i) & (jb < ncol)
            a = tl.abs(tl.load(row_ptr + jb, mask=mask, other=0.0).to(tl.float64))
            r = tl.where(a == safe, 1.0, a / safe)
            ssq += r * r
        tl.store(rssq_ptr + i, tl.sum(ssq, axis=0))

    # rsum is NaN exactly when the row holds a NaN.
    tl.store(rmax_ptr + i, tl.where(has_nan, rsum, rmax))
    tl.store(rsum_ptr + i, rsum)


def _dlangb_triton(norm: MatrixNorm, n: int, kl: int, ku: int, ab: torch.Tensor, ldab: int,
                   work: torch.Tensor | None, *, block: int = 1024, num_warps: int = 4) -> float:
    ncol = kl + 1 + ku
    ab = ab.contiguous()
    rmax = torch.empty((n,), device=ab.device, dtype=torch.float64)
    rsum = torch.empty_like(rmax)
    rssq = torch.zeros_like(rmax)

    colsum = norm is MatrixNorm.MAX_COLUMN_SUM
    if colsum:
        work[:n].zero_()

    BLOCK = min(triton.next_power_of_2(ncol), block)
    band_row_norms_kernel[(n,)](
        ab, rmax, rsum, rssq, work if colsum else rsum,
        n, kl, ncol, ldab,
        COLSUM=colsum,
        SSQ=norm is MatrixNorm.FROBENIUS,
        BLOCK=BLOCK,
        num_warps=num_warps,
    )

    if norm is MatrixNorm.MAX_ABS:
        return _nan_max(rmax.tolist())
    if norm is MatrixNorm.MAX_ROW_SUM:
        return _nan_max(rsum.tolist())
    if colsum:
        return _nan_max(work[:n].tolist())
    scale = 0.0
    ssq = 1.0
    for rowscale, rowssq in zip(rmax.tolist(), rssq.tolist()):
        scale, ssq = dcombssq(scale, ssq, rowscale, rowssq)
    return scale * math.sqrt(ssq)


def dlangb(norm, n: int, kl: int, ku: int, ab, ldab: int, work: torch.Tensor | None = None) -> float:
    """
    Norm of an n x n band matrix with kl sub-diagonals and ku super-diagonals.

    - norm: MatrixNorm or its LAPACK letter ('M', 'O'/'1', 'I', 'F'/'E')
    - ab: flat band buffer (1-D tensor or sequence) of at least (n-1)*ldab + kl+1+ku
      entries, or an (n, ldab) tensor
    - work: caller-owned 1-D float64 tensor of length >= n on the device of ab;
      only used (zeroed, then overwritten with the column sums) for
      MatrixNorm.MAX_COLUMN_SUM

    CUDA tensors run the Triton path, everything else runs on the host. ab is
    never written. A NaN inside the band makes the result NaN.
    """
    ncol = kl + 1 + ku
    norm = _as_norm(norm)
    if n < 0:
        raise NegativeDimensionError("lapack: n < 0")
    if kl < 0:
        raise NegativeDimensionError("lapack: kl < 0")
    if ku < 0:
        raise NegativeDimensionError("lapack: ku < 0")
    if ldab < ncol:
        raise BadLeadingDimensionError("lapack: bad leading dimension of A")

    # Quick return if possible.
    if n == 0:
        return 0.0

    ab = _as_band_buffer(ab)
    if ab.numel() < (n - 1) * ldab + ncol:
        raise ShortBandBufferError("lapack: insufficient length of ab")
    if work is not None and not isinstance(work, torch.Tensor):
        raise TypeError("work must be a torch.Tensor")
    if norm is MatrixNorm.MAX_COLUMN_SUM and (work is None or work.numel() < n):
        raise ShortWorkError("lapack: insufficient length of work")
    if norm is MatrixNorm.MAX_COLUMN_SUM:
        # Both paths accumulate column sums in float64 directly in work.
        if work.ndim != 1 or work.dtype != torch.float64:
            raise BadWorkError(f"lapack: work must be a 1-D float64 tensor, got ndim={work.ndim} "
                               f"dtype={work.dtype}")
        if work.device != ab.device:
            raise BadWorkError(f"lapack: work on {work.device} but ab on {ab.device}")
        if work.is_cuda and work.stride(0) != 1:
            raise BadWorkError("lapack: work must be contiguous")

    if ab.is_cuda:
        return _dlangb_triton(norm, n, kl, ku, ab, ldab, work)
    return _HOST_ACCUMULATORS[norm](n, kl, ku, ab, ldab, work)


def dlange(norm, A: torch.Tensor) -> float:
    """Same norms for a dense matrix via torch.linalg (reference for dlangb)."""
    norm = _as_norm(norm)
    assert A.ndim == 2
    if A.numel() == 0:
        return 0.0
    if norm is MatrixNorm.MAX_ABS:
        return A.abs().max().item()
    if norm is MatrixNorm.MAX_ROW_SUM:
        return torch.linalg.matrix_norm(A, ord=float("inf")).item()
    if norm is MatrixNorm.MAX_COLUMN_SUM:
        return torch.linalg.matrix_norm(A, ord=1).item()
    return torch.linalg.matrix_norm(A, ord="fro").item()


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--n", type=int, default=256)
    ap.add_argument("--kl", type=int, default=3)
    ap.add_argument("--ku", type=int, default=2)
    ap.add_argument("--ldab", type=int, default=0, help="0 => kl+1+ku")
    ap.add_argument("--norm", type=str, default="F", choices=[m.value for m in MatrixNorm])
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--device", type=str, default="cuda" if torch.cuda.is_available() else "cpu")
    ap.add_argument("--check", action="store_true")
    ap.add_argument("--bench", action="store_true")
    args = ap.parse_args()

    if args.device.startswith("cuda") and not torch.cuda.is_available():
        raise SystemExit("CUDA not available")

    ldab = args.ldab or (args.kl + 1 + args.ku)
    ab = random_band(args.n, args.kl, args.ku, ldab, seed=args.seed, device=args.device)
    work = torch.empty((args.n,), device=args.device, dtype=torch.float64)

    if args.bench:
        if args.device.startswith("cuda"):
            torch.cuda.synchronize()
        t0 = time.time()

    value = dlangb(args.norm, args.n, args.kl, args.ku, ab, ldab, work)

    if args.bench:
        if args.device.startswith("cuda"):
            torch.cuda.synchronize()
        t1 = time.time()
        print(f"n={args.n} kl={args.kl} ku={args.ku} time={(t1 - t0)*1e3:.3f} ms")

    print(f"norm={args.norm} value={value:.17g}")

    if args.check:
        ref = dlange(args.norm, band_to_dense(args.n, args.kl, args.ku, ab, ldab))
        abs_err = abs(value - ref)
        rel = abs_err / (ref if ref != 0.0 else 1.0)
        print(f"dense ref={ref:.17g} abs_err={abs_err:.3e} rel={rel:.3e}")


if __name__ == "__main__":
    main()
