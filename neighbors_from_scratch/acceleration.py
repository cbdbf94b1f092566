"""
Acceleration Cache - 거리 계산 가속 캐시
========================================

반복적인 거리 계산에서 벡터별 요약값(노름 등)을 한 번만 계산해 재사용.

수학적 배경:
-----------
유클리드 거리의 경우 제곱 노름을 미리 계산해 두면

    ‖a - b‖² = ‖a‖² + ‖b‖² - 2 a·b

이므로 매 비교마다 내적 한 번만 계산하면 된다.

병렬 구성:
---------
벡터 리스트를 워커 수만큼의 연속 블록으로 나누고, 각 워커는 자신의 블록만
계산해 지역 버퍼에 담아 반환한다. 블록이 겹치지 않으므로 마지막 join 외에는
동기화가 필요 없다.

Author: Neighbors From Scratch Project
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np


_POOL: Optional[ThreadPoolExecutor] = None
_POOL_LOCK = threading.Lock()


def effective_n_jobs(n_jobs: Optional[int] = None) -> int:
    """
    실제 사용할 워커 수

    None 또는 -1 이면 논리 코어 수를 사용한다.
    """
    cores = os.cpu_count() or 1
    if n_jobs is None or n_jobs == -1:
        return cores
    if n_jobs < 1:
        raise ValueError(f"n_jobs는 양수 또는 -1이어야 합니다: {n_jobs}")
    return n_jobs


def shared_pool() -> ThreadPoolExecutor:
    """프로세스 전역에서 공유하는 스레드 풀 (지연 생성)"""
    global _POOL
    with _POOL_LOCK:
        if _POOL is None:
            _POOL = ThreadPoolExecutor(
                max_workers=effective_n_jobs(),
                thread_name_prefix="neighbors-worker"
            )
        return _POOL


def block_ranges(n: int, n_blocks: int) -> List[Tuple[int, int]]:
    """
    [0, n) 구간을 겹치지 않는 연속 블록으로 분할

    앞쪽 블록이 최대 1개씩 더 많은 원소를 갖는다. 빈 블록은 만들지 않는다.

    Examples
    --------
    >>> block_ranges(10, 3)
    [(0, 4), (4, 7), (7, 10)]
    """
    if n <= 0:
        return []
    n_blocks = max(1, min(n_blocks, n))
    base, extra = divmod(n, n_blocks)

    ranges = []
    start = 0
    for block_id in range(n_blocks):
        end = start + base + (1 if block_id < extra else 0)
        ranges.append((start, end))
        start = end
    return ranges


def build_cache(
    info_fn: Callable,
    vectors: Sequence,
    parallel: bool = False,
    n_jobs: Optional[int] = None
) -> List[np.ndarray]:
    """
    벡터별 가속 정보 리스트 구성

    Parameters
    ----------
    info_fn : callable
        벡터 하나를 받아 요약값 배열을 반환하는 함수
    vectors : sequence
        전체 벡터 리스트
    parallel : bool, default=False
        블록 단위 병렬 계산 여부
    n_jobs : int, default=None
        워커 수 (None이면 코어 수)

    Returns
    -------
    cache : list of ndarray
        ``cache[i]`` 는 ``info_fn(vectors[i])`` 와 동일
    """
    n = len(vectors)
    n_workers = effective_n_jobs(n_jobs)

    if not parallel or n_workers == 1 or n < 2:
        return [info_fn(v) for v in vectors]

    def _compute_block(start: int, end: int) -> List[np.ndarray]:
        # 블록별 지역 버퍼
        local = []
        for i in range(start, end):
            local.append(info_fn(vectors[i]))
        return local

    pool = shared_pool()
    futures = [
        pool.submit(_compute_block, start, end)
        for start, end in block_ranges(n, n_workers)
    ]

    cache: List[np.ndarray] = []
    for future in futures:
        # 워커 예외는 여기서 호출자에게 전파됨
        cache.extend(future.result())
    return cache


def query_cache(
    metric,
    query,
    query_info: Optional[np.ndarray] = None
) -> Optional[List[np.ndarray]]:
    """
    질의 벡터 하나를 원소 1개짜리 컬렉션으로 볼 때의 캐시

    트리 탐색에서 피벗-질의 거리를 반지름 계산과 같은 가속 공식으로
    평가할 때 사용한다.
    """
    if not metric.supports_acceleration():
        return None
    if query_info is None:
        query_info = metric.get_query_info(query)
    return [query_info]
