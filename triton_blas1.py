"""
Level-1 helpers used by the band norm routines: dasum, dlassq, dcombssq.

All three return host floats. dasum runs a Triton reduction for CUDA
tensors; dlassq/dcombssq are scalar recurrences and always run on the host.
"""
from __future__ import annotations

import math

import torch
import triton
import triton.language as tl


@triton.jit
def asum_partial_kernel(x_ptr, out_ptr, n,
                        stride_x,
                        BLOCK: tl.constexpr):
    pid = tl.program_id(0)
    offs = pid * BLOCK + tl.arange(0, BLOCK)
    mask = offs < n
    x = tl.load(x_ptr + offs * stride_x, mask=mask, other=0.0).to(tl.float64)
    acc = tl.sum(tl.abs(x), axis=0)
    tl.atomic_add(out_ptr, acc)


def triton_asum(x: torch.Tensor) -> torch.Tensor:
    """FP64 sum of |x| implemented with Triton (returns a 0-dim CUDA tensor)."""
    assert x.is_cuda and x.ndim == 1
    n = x.numel()
    out = torch.zeros((), device=x.device, dtype=torch.float64)
    if n == 0:
        return out
    BLOCK = 1024
    grid = (triton.cdiv(n, BLOCK),)
    asum_partial_kernel[grid](
        x, out, n,
        x.stride(0),
        BLOCK=BLOCK,
        num_warps=4,
    )
    return out


def dasum(x) -> float:
    """Sum of absolute values of x. A NaN anywhere in x gives NaN."""
    if isinstance(x, torch.Tensor):
        assert x.ndim == 1
        if x.is_cuda:
            return triton_asum(x).item()
        return torch.sum(torch.abs(x), dtype=torch.float64).item()
    total = 0.0
    for v in x:
        total += abs(v)
    return total


def _strided_values(n: int, x, incx: int) -> list[float]:
    need = 1 + (n - 1) * incx
    if isinstance(x, torch.Tensor):
        assert x.ndim == 1
        if x.numel() < need:
            raise ValueError("lapack: insufficient length of x")
        return x[:need:incx].tolist()
    if len(x) < need:
        raise ValueError("lapack: insufficient length of x")
    return [float(v) for v in x[:need:incx]]


def dlassq(n: int, x, incx: int, scale: float, sumsq: float) -> tuple[float, float]:
    """
    Update a scaled sum of squares with n elements of x taken with stride incx.

    Returns (scl, smsq) such that

        scl**2 * smsq = x[0]**2 + ... + x[(n-1)*incx]**2 + scale**2 * sumsq

    where scl is the largest magnitude seen so far (including the incoming
    scale). A NaN element makes both outputs NaN. An infinite element gives
    scl = inf with a finite smsq.
    """
    if n < 0:
        raise ValueError("lapack: n < 0")
    if incx <= 0:
        raise ValueError("lapack: zero or negative increment of x")
    if math.isnan(scale) or math.isnan(sumsq):
        return math.nan, math.nan
    if n == 0:
        return scale, sumsq

    for v in _strided_values(n, x, incx):
        absxi = abs(v)
        if math.isnan(absxi):
            return math.nan, math.nan
        if absxi == 0:
            continue
        if scale < absxi:
            r = scale / absxi
            sumsq = 1 + sumsq * r * r
            scale = absxi
        elif absxi == scale:
            # also covers inf == inf, where the ratio would be NaN
            sumsq += 1
        else:
            r = absxi / scale
            sumsq += r * r
    return scale, sumsq


def dcombssq(scale1: float, ssq1: float, scale2: float, ssq2: float) -> tuple[float, float]:
    """Combine two (scale, ssq) pairs, rescaling the one with the smaller scale."""
    if math.isnan(scale1) or math.isnan(ssq1) or math.isnan(scale2) or math.isnan(ssq2):
        return math.nan, math.nan
    if scale1 >= scale2:
        if scale1 == 0 or scale2 == scale1:
            return scale1, ssq1 + ssq2
        r = scale2 / scale1
        return scale1, ssq1 + r * r * ssq2
    r = scale1 / scale2
    return scale2, ssq2 + r * r * ssq1
