import math
import threading

import numpy as np
import pytest

from survival_eval.info import MetaInfo


class ThreadedAllReduce:
    """In-process all-reduce shared by ``world_size`` worker threads.

    Partial values are summed in rank order, so every worker receives the
    same bits.
    """

    def __init__(self, world_size: int, timeout: float = 30.0):
        self.world_size = world_size
        self._barrier = threading.Barrier(world_size, timeout=timeout)
        self._slots = [None] * world_size
        self.num_calls = [0] * world_size

    def communicator(self, rank: int) -> "ThreadCommunicator":
        return ThreadCommunicator(self, rank)

    def _reduce(self, rank, values):
        self.num_calls[rank] += 1
        self._slots[rank] = [float(v) for v in values]
        self._barrier.wait()
        result = []
        for i in range(len(values)):
            total = 0.0
            for slot in self._slots:
                total += slot[i]
            result.append(total)
        # Nobody may overwrite a slot until every rank has read them all
        self._barrier.wait()
        return result


class ThreadCommunicator:
    def __init__(self, group: ThreadedAllReduce, rank: int):
        self.group = group
        self.rank = rank
        self.world_size = group.world_size

    def all_reduce_sum(self, values):
        return self.group._reduce(self.rank, values)


def run_workers(world_size, fn):
    """Run ``fn(rank, communicator)`` on ``world_size`` threads; return results by rank."""
    group = ThreadedAllReduce(world_size)
    results = [None] * world_size
    errors = []

    def target(rank):
        try:
            results[rank] = fn(rank, group.communicator(rank))
        except Exception as e:  # surfaced in the main thread below
            errors.append(e)
            group._barrier.abort()

    threads = [threading.Thread(target=target, args=(r,)) for r in range(world_size)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    if errors:
        raise errors[0]
    return results, group


@pytest.fixture
def aft_labels():
    """Four samples covering all censoring regimes: exact, left, right, interval."""
    return MetaInfo(
        labels_lower_bound=[100.0, 0.0, 60.0, 16.0],
        labels_upper_bound=[100.0, 20.0, np.inf, 200.0],
    )


@pytest.fixture
def aft_preds():
    return np.full(4, math.log(64.0))


@pytest.fixture
def accuracy_labels():
    return MetaInfo(
        labels_lower_bound=[20.0, 0.0, 60.0, 16.0],
        labels_upper_bound=[80.0, 20.0, 80.0, 200.0],
    )


@pytest.fixture
def random_labels():
    """Larger mixed-censoring dataset with non-uniform weights."""
    rng = np.random.default_rng(7)
    n = 203
    t = rng.lognormal(mean=3.0, sigma=0.8, size=n)
    kind = rng.integers(0, 4, size=n)
    lower = np.where(kind == 2, 0.0, t)
    upper = np.where(kind == 1, np.inf, np.where(kind == 3, t * rng.uniform(1.1, 3.0, size=n), t))
    upper = np.where(kind == 2, t, upper)
    weights = rng.uniform(0.1, 2.0, size=n)
    preds = np.log(t) + rng.normal(0.0, 0.7, size=n)
    info = MetaInfo(labels_lower_bound=lower, labels_upper_bound=upper, weights=weights)
    return info, preds
