#!/usr/bin/env python3
"""
Seed script: enables TRACE, LOG (DEBUG and up) and METRIC for every object
and every tenant at 100% sampling.
Run after migrations: python scripts/seed.py
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tacs.database import async_session_maker, audit_engine, engine
from tacs.storage.audit import get_audit_trail
from tacs.storage.store import ActivationStore, seed_default_activations


async def seed():
    async with async_session_maker() as session:
        store = ActivationStore(session, get_audit_trail())
        rules = await seed_default_activations(store)

    for rule in rules:
        print(
            f"Enabled {rule.telemetry_kind:<6} {rule.object_pattern} "
            f"tenant={rule.tenant_id} rate={rule.sampling_rate} level={rule.min_log_level}"
        )

    await engine.dispose()
    await audit_engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
