"""
Validation script to compare direct and Barnes-Hut field evaluation.

Generates a detailed comparison including:
- Per-point potential and acceleration errors
- Effect of theta and of the quadrupole term
- Timing comparisons
"""

import sys
import os
import time
import numpy as np

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastgravity.direct import DirectSolver
from fastgravity.distributions import plummer, uniform_ball
from fastgravity.system import GravitySystem


def relative_errors(approx, exact):
    """Per-row relative error |approx - exact| / |exact| (rows with |exact| ~ 0 dropped)."""
    approx = np.asarray(approx).reshape(len(approx), -1)
    exact = np.asarray(exact).reshape(len(exact), -1)
    err = np.linalg.norm(approx - exact, axis=1)
    scale = np.linalg.norm(exact, axis=1)
    mask = scale > 1e-300
    return err[mask] / scale[mask]


def compare_fields(N, theta, dimension=2, use_quadrupole=True, distribution='uniform', seed=42):
    """
    Compare direct vs Barnes-Hut evaluation at every body position.

    Args:
        N: Number of bodies
        theta: Barnes-Hut opening angle
        dimension: 2 or 3
        use_quadrupole: Include quadrupole corrections
        distribution: 'uniform' or 'plummer'
        seed: Random seed

    Returns:
        Dictionary with error statistics and timing
    """
    print(f"\n{'='*70}")
    print(f"Field Comparison: N={N}, D={dimension}, theta={theta}, "
          f"quadrupole={'on' if use_quadrupole else 'off'}, {distribution}")
    print(f"{'='*70}")

    if distribution == 'plummer':
        positions, masses = plummer(N, dimension=dimension, seed=seed)
    else:
        positions, masses = uniform_ball(N, dimension=dimension, mass_randomize=0.5, seed=seed)

    t0 = time.time()
    system = GravitySystem(positions, masses, theta=theta, use_quadrupole=use_quadrupole)
    t_build = time.time() - t0
    direct = DirectSolver(positions, masses)

    # Warm up JIT compilation before timing
    system.evaluate(positions[:2])
    direct.evaluate(positions[:2])

    print("\nTiming direct method...")
    t0 = time.time()
    phi_direct, acc_direct = direct.evaluate(positions)
    t_direct = time.time() - t0
    print(f"  Direct method: {t_direct*1000:.2f} ms")

    print("Timing Barnes-Hut method...")
    t0 = time.time()
    phi_bh, acc_bh = system.evaluate(positions)
    t_bh = time.time() - t0
    print(f"  Tree build:        {t_build*1000:.2f} ms ({system.n_nodes} nodes, depth {system.tree_depth})")
    print(f"  Barnes-Hut method: {t_bh*1000:.2f} ms")

    speedup = t_direct / t_bh if t_bh > 0 else float('inf')
    print(f"  Speedup: {speedup:.1f}x")

    counts = system.interaction_counts(positions)
    mean_work = np.mean(counts.sum(axis=1))
    print(f"  Mean interactions per point: {mean_work:.1f} (direct: {N - 1})")

    acc_errors = relative_errors(acc_bh, acc_direct)
    phi_errors = relative_errors(phi_bh, phi_direct)

    rms_error = np.sqrt(np.mean(acc_errors**2))
    max_error = np.max(acc_errors)
    median_error = np.median(acc_errors)
    phi_rms = np.sqrt(np.mean(phi_errors**2))

    print(f"\nAccuracy Statistics:")
    print(f"  Median acceleration error: {median_error:.2e}")
    print(f"  RMS acceleration error:    {rms_error:.2e}")
    print(f"  Max acceleration error:    {max_error:.2e}")
    print(f"  RMS potential error:       {phi_rms:.2e}")

    # Acceptance: RMS below theta² with quadrupole, below theta monopole-only
    tolerance = 1e-10 if theta == 0 else (theta**2 if use_quadrupole else theta)
    all_pass = bool(rms_error < tolerance)
    status = "[OK] PASS" if all_pass else "[FAIL] FAIL"
    print(f"\n  RMS error < {tolerance:.3g}: {status}")

    return {
        'N': N,
        'dimension': dimension,
        'theta': theta,
        'use_quadrupole': use_quadrupole,
        'rms_error': rms_error,
        'max_error': max_error,
        'phi_rms_error': phi_rms,
        'mean_work': mean_work,
        't_direct': t_direct,
        't_barnes_hut': t_bh,
        'speedup': speedup,
        'all_pass': all_pass
    }


def main():
    """Run all validation tests."""
    print("\n" + "#"*70)
    print("# BARNES-HUT VALIDATION")
    print("#"*70)

    test_configs = [
        # (N, theta, dimension, use_quadrupole, distribution)
        (200, 0.0, 2, True, 'uniform'),
        (1000, 0.3, 2, False, 'uniform'),
        (1000, 0.3, 2, True, 'uniform'),
        (1000, 0.5, 2, True, 'uniform'),
        (2000, 0.5, 3, True, 'plummer'),
        (5000, 0.7, 3, True, 'plummer'),
    ]

    results = []
    for N, theta, dimension, use_quadrupole, distribution in test_configs:
        results.append(compare_fields(N, theta, dimension, use_quadrupole, distribution))

    # Summary
    print("\n" + "="*70)
    print("VALIDATION SUMMARY")
    print("="*70)
    for result in results:
        status = "[OK] PASS" if result['all_pass'] else "[FAIL] FAIL"
        quad = 'Q' if result['use_quadrupole'] else 'M'
        print(f"  N={result['N']:5d}, D={result['dimension']}, theta={result['theta']:.1f} {quad}: "
              f"RMS={result['rms_error']:.2e}, "
              f"work={result['mean_work']:7.1f}, "
              f"Speedup={result['speedup']:5.1f}x  {status}")

    all_pass = all(r['all_pass'] for r in results)
    print("\n" + "="*70)
    if all_pass:
        print("[OK] ALL VALIDATION TESTS PASSED")
    else:
        print("[FAIL] SOME VALIDATION TESTS FAILED")
    print("="*70 + "\n")

    return all_pass


if __name__ == '__main__':
    success = main()
    sys.exit(0 if success else 1)
