"""
Connection health checks with bounded retry.
"""

import asyncio
from typing import Optional

from clinicrm.errors import DataAccessError, ErrorKind
from clinicrm.logging import get_logger

logger = get_logger(__name__)

# Replaced in tests to avoid real waits
_sleep = asyncio.sleep


async def probe_connection(
  remote, table, retries: int = 0, retry_delay: float = 1.0
) -> Optional[DataAccessError]:
  """
  Probe a table with a zero-row count request.

  Transient failures (serialization failure, deadlock, lock not
  available) are retried after `retry_delay` seconds, at most `retries`
  times, so at most `retries + 1` probes are made. Any other failure
  ends the check immediately.

  Returns:
    None if a probe succeeded, otherwise the error of the last probe.
  """
  remaining = retries
  while True:
    try:
      await remote.probe(table)
      return None
    except DataAccessError as e:
      error = e
    except Exception as e:
      error = DataAccessError(str(e), kind=ErrorKind.UNKNOWN, table=str(table), operation="probe")

    if error.is_transient and remaining > 0:
      logger.warning(
        f"Transient failure probing '{table}' ({error.message}); "
        f"retrying in {retry_delay}s, {remaining} retries left"
      )
      remaining -= 1
      await _sleep(retry_delay)
      continue

    logger.error(f"Connection check for '{table}' failed ({error.kind.value}): {error.message}")
    return error


async def check_connection(remote, table, retries: int = 0, retry_delay: float = 1.0) -> bool:
  """True if the table answered a probe within the retry budget. Never raises."""
  return await probe_connection(remote, table, retries, retry_delay) is None
