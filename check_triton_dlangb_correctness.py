#!/usr/bin/env python3
"""
Correctness check for triton-dlangb: compare dlangb on band storage vs dlange on the dense matrix.
"""
from __future__ import annotations

import argparse

import torch

from band_storage import band_to_dense, random_band
from triton_dlangb import MatrixNorm, dlange, dlangb


SHAPES = [(1, 0, 0), (2, 1, 0), (5, 0, 3), (7, 2, 2), (10, 4, 1), (33, 3, 9), (64, 0, 0), (64, 12, 7)]


def check_one(n: int, kl: int, ku: int, extra_ld: int, seed: int, device: str) -> float:
    ldab = kl + 1 + ku + extra_ld
    # NaN padding: any read outside the band poisons the result.
    ab = random_band(n, kl, ku, ldab, seed=seed, device=device, pad=float("nan"))
    A = band_to_dense(n, kl, ku, ab, ldab)
    work = torch.empty((n,), device=device, dtype=torch.float64)
    worst = 0.0
    for norm in MatrixNorm:
        got = dlangb(norm, n, kl, ku, ab, ldab, work)
        want = dlange(norm, A)
        rel = abs(got - want) / (want if want != 0.0 else 1.0)
        print(f"n={n} kl={kl} ku={ku} ldab={ldab} norm={norm.value} got={got:.17g} want={want:.17g} rel={rel:.3e}")
        # NaN rel compares False against worst; make it count as a failure.
        worst = max(worst, rel) if rel == rel else float("inf")
    return worst


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--device", type=str, default="cuda" if torch.cuda.is_available() else "cpu")
    ap.add_argument("--extra-ld", type=int, default=2, help="ldab - (kl+1+ku)")
    ap.add_argument("--tol", type=float, default=1e-12)
    args = ap.parse_args()

    if args.device.startswith("cuda") and not torch.cuda.is_available():
        raise SystemExit("CUDA not available")

    worst = 0.0
    for k, (n, kl, ku) in enumerate(SHAPES):
        worst = max(worst, check_one(n, kl, ku, args.extra_ld, args.seed + k, args.device))
    print(f"max rel={worst:.3e} tol={args.tol:.1e}")
    if worst > args.tol:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
