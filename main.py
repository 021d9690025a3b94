#!/usr/bin/env python3
"""
Vehicle Deal Tax Engine - Entry Point

Prices vehicle deals: jurisdiction-aware sales tax, finance and lease
payments, out-of-state reciprocity credit and payment comparisons.

Usage:
    python main.py quote --file examples/sample_lease.json
    python main.py tax --state MI --price 30000 --trade 15000
    python main.py matrix --amount 25000 --apr 6.9 --variations -1,0,1
    python main.py policy --state CA
    python main.py local-rate --postal 90001 --state CA
    python main.py money-factor --mf 0.00125
"""

from autotax.cli import main

if __name__ == "__main__":
    main()
