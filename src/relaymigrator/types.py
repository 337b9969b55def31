"""Common type definitions for the relaymigrator library."""

from typing import TypeVar

from pydantic import BaseModel

# Type variable for aggregate state
TState = TypeVar("TState", bound=BaseModel)

# Checksummed hex account address (e.g. "0x5aAe...")
Address = str

# Opaque authorization key handed to the entity factory
AuthorizationKey = str

# Name of a tracked balance type (one per ledger)
BalanceType = str

# Ledger amounts are integral base units
Amount = int
