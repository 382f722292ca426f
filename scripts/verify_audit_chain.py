"""
Verify the audit log hash chain.

Usage:
    uv run python -m scripts.verify_audit_chain [start_seq] [end_seq]

Exits non-zero if any entry fails verification.
"""
import asyncio
import sys

from app.core.context import build_context_from_settings
from app.utils import get_logger


log = get_logger(__name__)


async def main(start_seq=None, end_seq=None) -> int:
    access = build_context_from_settings()
    try:
        outcome = await access.audit.verify_chain(start_seq, end_seq)
    finally:
        await access.close()

    if outcome.valid:
        log.info(f"Audit chain intact ({outcome.checked} entries checked)")
        return 0
    log.error(f"Audit chain broken at seq={outcome.broken_at} ({outcome.checked} entries checked)")
    return 1


if __name__ == "__main__":
    bounds = [int(arg) for arg in sys.argv[1:3]]
    sys.exit(asyncio.run(main(*bounds)))
