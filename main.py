#!/usr/bin/env python3
"""
Sales Tax Engine - Entry Point

Resolves the taxing jurisdictions for a sale, selects the rates in effect
on the transaction date and produces a breakdown that foots to the cent.

Usage:
    python main.py calculate --amount 100 --state CA --city "Los Angeles"
    python main.py calculate --amount 100 --state CA --category food --date 2024-03-15
    python main.py calculate --file request.json --json
    python main.py rates --state TX --city Houston
    python main.py --rates-csv rates.csv rates --state CA
"""

from salestax_engine.cli import main

if __name__ == "__main__":
    main()
