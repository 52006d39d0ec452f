from __future__ import annotations

import torch


def band_row_range(i: int, n: int, kl: int, ku: int) -> tuple[int, int]:
    """
    Valid stored columns [l, u) of row i in row-major band storage.

    Row i keeps A[i, i-kl : i+ku+1] in ab[i*ldab : i*ldab + kl+1+ku], so
    ab[i*ldab + jb] holds A[i, jb - kl + i]. The first kl rows lose their
    leftmost slots and the last ku rows lose their rightmost ones.
    """
    ncol = kl + 1 + ku
    l = max(0, kl - i)
    u = min(n + kl - i, ncol)
    return l, u


def dense_to_band(A: torch.Tensor, kl: int, ku: int, ldab: int | None = None, *,
                  pad: float = 0.0) -> torch.Tensor:
    """Pack the kl/ku band of dense A (n,n) into a flat band buffer of n*ldab entries."""
    assert A.ndim == 2 and A.shape[0] == A.shape[1]
    assert kl >= 0 and ku >= 0
    n = A.shape[0]
    ncol = kl + 1 + ku
    if ldab is None:
        ldab = ncol
    assert ldab >= ncol

    ab = torch.full((n * ldab,), pad, dtype=A.dtype, device=A.device)
    # ab[i*ldab + jb] = A[i, jb-kl+i] for jb in [l, u)
    for i in range(n):
        l, u = band_row_range(i, n, kl, ku)
        if l < u:
            ab[i * ldab + l:i * ldab + u].copy_(A[i, l - kl + i:u - kl + i])
    return ab


def band_to_dense(n: int, kl: int, ku: int, ab: torch.Tensor, ldab: int) -> torch.Tensor:
    """Expand a flat band buffer to a dense (n,n) matrix; entries outside the band are zero."""
    assert ab.ndim == 1
    assert ldab >= kl + 1 + ku
    A = torch.zeros((n, n), dtype=ab.dtype, device=ab.device)
    for i in range(n):
        l, u = band_row_range(i, n, kl, ku)
        if l < u:
            A[i, l - kl + i:u - kl + i] = ab[i * ldab + l:i * ldab + u]
    return A


def band_valid_mask(n: int, kl: int, ku: int, ldab: int, device=None) -> torch.Tensor:
    """Boolean (n, ldab) mask of the slots that hold band entries."""
    ncol = kl + 1 + ku
    i = torch.arange(n, device=device)[:, None]
    jb = torch.arange(ldab, device=device)[None, :]
    return (jb >= kl - i) & (jb < n + kl - i) & (jb < ncol)


def random_band(n: int, kl: int, ku: int, ldab: int | None = None, *,
                seed: int = 0, device="cpu", pad: float = 0.0) -> torch.Tensor:
    """
    Reproducible random band buffer (float64, standard normal entries).

    Padding slots are filled with `pad`; passing NaN makes any read of
    padding visible in the result of a norm.
    """
    ncol = kl + 1 + ku
    if ldab is None:
        ldab = ncol
    assert ldab >= ncol
    # Generate on the host so the same seed gives the same matrix on every device.
    g = torch.Generator(device="cpu")
    g.manual_seed(int(seed))
    vals = torch.randn((n, ldab), generator=g, dtype=torch.float64)
    vals = vals.masked_fill(~band_valid_mask(n, kl, ku, ldab), pad)
    return vals.reshape(-1).to(device)
