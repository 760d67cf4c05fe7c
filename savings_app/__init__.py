"""
Savings App - Periodic Savings Settlement Engine

Schedules recurring deposits into custodial savings pools. Each active plan
is settled on its DAILY, WEEKLY or MONTHLY cadence through an external
settlement layer, and every confirmed deposit is recorded in the plan's
embedded transaction ledger.
"""

__version__ = "0.1.0"
__author__ = "Savings App Team"
