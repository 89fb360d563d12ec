"""Distributed evaluation utilities for row- and column-split datasets.

Survival metrics reduce to two scalars per worker — the weighted sum of
per-sample scores and the sum of weights — which are summed across workers
with a single all-reduce. This module provides the communicator abstraction
the aggregator calls, plus helpers to shard rows for row-split evaluation.

Architecture:
    1. ALL ranks: compute local (weighted_sum, weight_sum) over visible rows
    2. ALL ranks: all_reduce(SUM) of the pair (row split only)
    3. ALL ranks: divide to obtain the identical global metric

Key design decisions:
- One all_reduce per metric evaluation; every rank issues the same sequence
  of collectives, so call counts always match across ranks
- float64 reduction tensor regardless of the process-group device
- Transport errors (dead peers, mismatched collectives) propagate unchanged
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

import numpy as np
import torch
import torch.distributed as dist

logger = logging.getLogger(__name__)


def get_dist_info() -> tuple[int, int, bool]:
    """Return (rank, world_size, is_distributed)."""
    if dist.is_available() and dist.is_initialized():
        return dist.get_rank(), dist.get_world_size(), True
    return 0, 1, False


def shard_row_indices(total: int, rank: int, world_size: int) -> list[int]:
    """Round-robin assignment: rank k gets rows k, k+world_size, k+2*world_size, ..."""
    if world_size <= 0 or not 0 <= rank < world_size:
        raise ValueError(f"Invalid rank/world_size: rank={rank}, world_size={world_size}")
    return list(range(rank, total, world_size))


def contiguous_row_indices(total: int, rank: int, world_size: int) -> list[int]:
    """Block assignment: rank k gets one contiguous slice of near-equal size."""
    if world_size <= 0 or not 0 <= rank < world_size:
        raise ValueError(f"Invalid rank/world_size: rank={rank}, world_size={world_size}")
    bounds = np.linspace(0, total, world_size + 1).round().astype(int)
    return list(range(bounds[rank], bounds[rank + 1]))


@runtime_checkable
class Communicator(Protocol):
    """Collective sum across evaluation workers."""

    rank: int
    world_size: int

    def all_reduce_sum(self, values: Sequence[float]) -> list[float]:
        """Element-wise sum of ``values`` over all workers.

        Blocks until every worker has contributed. All workers must call it
        the same number of times.
        """
        ...


class LocalCommunicator:
    """Single-worker communicator: the reduction is the identity."""

    rank = 0
    world_size = 1

    def all_reduce_sum(self, values: Sequence[float]) -> list[float]:
        return [float(v) for v in values]

    def __repr__(self) -> str:
        return "LocalCommunicator()"


class TorchCommunicator:
    """``torch.distributed`` all-reduce over the default (or given) process group.

    Parameters
    ----------
    group : ProcessGroup, optional
        Process group to reduce over. Default: the global group.
    device : torch.device, optional
        Device for the reduction tensor. Default: CUDA for the NCCL backend,
        otherwise CPU.
    """

    def __init__(self, group=None, device: torch.device | None = None):
        if not (dist.is_available() and dist.is_initialized()):
            raise RuntimeError(
                "torch.distributed is not initialized; call "
                "dist.init_process_group() first or use LocalCommunicator"
            )
        self.group = group
        self.rank = dist.get_rank(group)
        self.world_size = dist.get_world_size(group)
        if device is None:
            if dist.get_backend(group) == "nccl":
                device = torch.device("cuda", torch.cuda.current_device())
            else:
                device = torch.device("cpu")
        self.device = device

    def all_reduce_sum(self, values: Sequence[float]) -> list[float]:
        buf = torch.tensor([float(v) for v in values], dtype=torch.float64, device=self.device)
        dist.all_reduce(buf, op=dist.ReduceOp.SUM, group=self.group)
        return buf.cpu().tolist()

    def __repr__(self) -> str:
        return f"TorchCommunicator(rank={self.rank}, world_size={self.world_size}, device={self.device})"


def default_communicator() -> Communicator:
    """Torch communicator when a process group is up, local otherwise."""
    _, _, is_distributed = get_dist_info()
    if is_distributed:
        return TorchCommunicator()
    return LocalCommunicator()


__all__ = [
    "get_dist_info",
    "shard_row_indices",
    "contiguous_row_indices",
    "Communicator",
    "LocalCommunicator",
    "TorchCommunicator",
    "default_communicator",
]
