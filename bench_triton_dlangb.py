#!/usr/bin/env python3
"""
Benchmark triton-dlangb over a fixed set of sizes and report effective bandwidth (model=8*n*(kl+1+ku) bytes).
"""
from __future__ import annotations

import argparse
import time

import torch

from band_storage import random_band
from triton_dlangb import MatrixNorm, dlangb


SIZES = [1024, 4096, 16384, 65536, 262144]


def eff_gbps(n: int, ncol: int, ms: float) -> float:
    nbytes = 8.0 * n * ncol
    return nbytes / (ms * 1e-3) / 1e9


def run_once(ab: torch.Tensor, work: torch.Tensor, norm: MatrixNorm, n: int, kl: int, ku: int, ldab: int) -> float:
    if ab.is_cuda:
        torch.cuda.synchronize()
    t0 = time.time()
    _ = dlangb(norm, n, kl, ku, ab, ldab, work)
    if ab.is_cuda:
        torch.cuda.synchronize()
    return (time.time() - t0) * 1e3


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--kl", type=int, default=16)
    ap.add_argument("--ku", type=int, default=16)
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--device", type=str, default="cuda" if torch.cuda.is_available() else "cpu")
    ap.add_argument("--max-n", type=int, default=0, help="0 => all sizes")
    args = ap.parse_args()

    if args.device.startswith("cuda") and not torch.cuda.is_available():
        raise SystemExit("CUDA not available")

    ncol = args.kl + 1 + args.ku
    sizes = [n for n in SIZES if args.max_n == 0 or n <= args.max_n]

    print("n,kl,ku,norm,ms,GB/s(model=8*n*ncol)")
    for n in sizes:
        ab = random_band(n, args.kl, args.ku, seed=args.seed, device=args.device)
        work = torch.empty((n,), device=args.device, dtype=torch.float64)
        for norm in MatrixNorm:
            # warm once
            _ = run_once(ab, work, norm, n, args.kl, args.ku, ncol)
            # timed once
            ms = run_once(ab, work, norm, n, args.kl, args.ku, ncol)
            print(f"{n},{args.kl},{args.ku},{norm.value},{ms:.3f},{eff_gbps(n, ncol, ms):.3f}")
        if args.device.startswith("cuda"):
            torch.cuda.empty_cache()


if __name__ == "__main__":
    main()
