"""Per-batch generation targets."""

from __future__ import annotations


def distribute_quota(total: int, batches: int) -> list[int]:
  """Spread a quota over batches with ceiling division.

  Each batch takes ``ceil(remaining / batches_left)`` of what is left, so the
  last batch absorbs the remainder (20 over 3 gives 7, 7, 6). A positive quota
  asks every batch for at least one unit, which means the targets may sum to
  more than the quota when batches outnumber it.
  """
  if batches <= 0:
    return []
  if total <= 0:
    return [0] * batches

  targets: list[int] = []
  remaining = total
  for index in range(batches):
    batches_left = batches - index
    # Negative remaining means earlier batches already covered the quota.
    target = max(1, -(-max(remaining, 0) // batches_left))
    targets.append(target)
    remaining -= target
  return targets


def batch_target(total: int, batches: int, index: int) -> int:
  """Return the target for one batch index."""
  targets = distribute_quota(total, batches)
  if index < 0 or index >= len(targets):
    raise IndexError(f"Batch index {index} out of range for {batches} batches")
  return targets[index]
