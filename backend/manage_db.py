#!/usr/bin/env python3
"""
Database management utility for the transfer pricing service.

Usage:
    python manage_db.py init          - Create tables and seed service types / exchange rate
    python manage_db.py show          - Show all rates
    python manage_db.py set_exchange  - Set a currency exchange rate
    python manage_db.py clear_cache   - Drop every cached rate resolution
"""

import sys
import os
from decimal import Decimal, InvalidOperation
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from transferfare.database import DatabaseManager
from transferfare.services.pricing import get_pricing_engine


def init_database():
    """Initialize database with default service types and exchange rate."""
    print("Initializing database...")
    db = DatabaseManager()
    db.init_default_data()
    print("Database initialized successfully!")
    show_rates()


def show_rates():
    """Display all rates."""
    engine = get_pricing_engine()
    rates, total = engine.list_rates({}, per_page=100, sort_order="asc")

    print("\n" + "=" * 78)
    print("CURRENT RATES")
    print("=" * 78)
    print(f"{'ID':<5} {'Svc':<4} {'Veh':<4} {'Zones':<10} {'Locations':<12} {'OW':>9} {'RT':>9}  {'Type':<8}")
    print("-" * 78)

    for rate in rates:
        zones = f"{rate.from_zone_id}->{rate.to_zone_id}"
        locations = f"{rate.from_location_id}->{rate.to_location_id}" if rate.is_location_specific else "-"
        print(
            f"{rate.id:<5} {rate.service_type_id:<4} {rate.vehicle_type_id:<4} {zones:<10} {locations:<12} "
            f"{rate.formatted_price('one_way'):>9} {rate.formatted_price('round_trip'):>9}  {rate.pricing_type:<8}"
        )

    print("-" * 78)
    print(f"Total rates: {total}")
    print("=" * 78)


def set_exchange():
    """Interactive exchange rate update."""
    print("\nSET EXCHANGE RATE")
    print("-" * 30)

    try:
        engine = get_pricing_engine()
        from_currency = input("From currency (e.g. USD): ").strip().upper()
        to_currency = input("To currency (e.g. MXN): ").strip().upper()

        if len(from_currency) != 3 or len(to_currency) != 3:
            print("Currency codes must have 3 letters!")
            return

        current = engine.converter.rate(from_currency, to_currency)
        if current.was_exact:
            print(f"Current rate: {current.factor:.6f}")
        else:
            print("No stored rate for this pair.")

        rate = Decimal(input("Enter new rate: "))
        if rate <= 0:
            print("Rate must be positive!")
            return

        engine.store.set_exchange_rate(from_currency, to_currency, rate)
        print(f"✓ Updated {from_currency} → {to_currency} to {rate}")

    except InvalidOperation:
        print("Invalid input! Please enter a number.")


def clear_cache():
    get_pricing_engine().invalidate()
    print("Rate cache cleared.")


def main():
    """Main entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        return

    command = sys.argv[1].lower()

    commands = {
        'init': init_database,
        'show': show_rates,
        'set_exchange': set_exchange,
        'clear_cache': clear_cache,
    }

    if command in commands:
        commands[command]()
    else:
        print(f"Unknown command: {command}")
        print(__doc__)


if __name__ == "__main__":
    main()
