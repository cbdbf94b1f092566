"""
Distance Metrics - 거리 함수
============================

두 벡터 사이의 비유사도 dist(a, b) ≥ 0 을 계산하는 교체 가능한 거리 함수들.

수학적 배경:
-----------
거리 함수 d 가 다음을 모두 만족하면 "유효한 거리(metric)" 이다.

1. 대칭성 (symmetric):      d(a, b) = d(b, a)
2. 삼각 부등식 (subadditive): d(a, c) ≤ d(a, b) + d(b, c)
3. 식별 가능성 (indiscernible): d(a, b) = 0  ⇔  a = b

Ball Tree 의 가지치기는 삼각 부등식에 의존한다:

    d(q, x) ≥ d(q, p) - d(p, x) ≥ d(q, p) - radius

능력(capability) 구성:
--------------------
- 기본: dist(a, b)
- 가속(accelerable): 벡터별 캐시값을 재사용하는 dist_indexed / dist_query
- 학습(trainable): 데이터로 파라미터를 먼저 추정해야 하는 거리
  (needs_training() 이 True 인 동안 거리 계산은 오류)

Author: Neighbors From Scratch Project
"""

import copy
import numpy as np
from typing import List, Optional, Sequence

from .acceleration import build_cache
from .vectors import (
    DimensionMismatchError,
    as_vector,
    check_lengths,
    difference,
    dot,
    length,
    stack_dense,
    weighted_dot,
)


# 전개식 a² + b² - 2ab 의 결과가 노름 대비 이 비율 이하이면 소거 오차가 커지므로
# 차이 벡터로 직접 다시 계산
CANCELLATION_RATIO = 1e-4


class UntrainedMetricError(RuntimeError):
    """학습이 필요한 거리 함수를 학습 전에 사용했을 때 발생"""


class DistanceMetric:
    """
    거리 함수 기본 클래스

    하위 클래스는 최소한 ``dist`` 를 구현한다. 가속을 지원하려면
    ``supports_acceleration`` 이 True 를 반환하고 ``_vector_info`` 와
    ``_dist_cached`` 를 구현한다.
    """

    def dist(self, a, b) -> float:
        """두 벡터 사이의 거리"""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # 수학적 성질
    # ------------------------------------------------------------------
    def is_symmetric(self) -> bool:
        return True

    def is_subadditive(self) -> bool:
        return True

    def is_indiscernible(self) -> bool:
        return True

    def is_valid_metric(self) -> bool:
        """세 성질을 모두 만족하는 유효한 거리인지"""
        return (
            self.is_symmetric() and
            self.is_subadditive() and
            self.is_indiscernible()
        )

    def metric_bound(self) -> float:
        """거리의 이론적 최댓값"""
        return float('inf')

    # ------------------------------------------------------------------
    # 학습
    # ------------------------------------------------------------------
    def needs_training(self) -> bool:
        return False

    def train(self, vectors: Sequence, parallel: bool = False) -> 'DistanceMetric':
        """학습이 필요 없는 거리 함수는 아무 것도 하지 않음"""
        return self

    def _check_trained(self) -> None:
        if self.needs_training():
            raise UntrainedMetricError(
                f"{self.__class__.__name__}는 학습이 필요합니다. train()을 먼저 호출하세요."
            )

    # ------------------------------------------------------------------
    # 가속
    # ------------------------------------------------------------------
    def supports_acceleration(self) -> bool:
        return False

    def _vector_info(self, v) -> np.ndarray:
        raise NotImplementedError

    def _dist_cached(self, a, a_info, b, b_info) -> float:
        raise NotImplementedError

    def get_acceleration_cache(
        self,
        vectors: Sequence,
        parallel: bool = False,
        n_jobs: Optional[int] = None
    ) -> Optional[List[np.ndarray]]:
        """
        벡터 리스트 전체의 가속 캐시

        Returns
        -------
        cache : list of ndarray or None
            가속을 지원하지 않으면 None
        """
        if not self.supports_acceleration():
            return None
        self._check_trained()
        return build_cache(self._vector_info, vectors, parallel, n_jobs)

    def get_query_info(self, query) -> Optional[np.ndarray]:
        """컬렉션 밖의 질의 벡터 하나에 대한 캐시값"""
        if not self.supports_acceleration():
            return None
        self._check_trained()
        return self._vector_info(query)

    def dist_indexed(self, a: int, b: int, vectors: Sequence, cache) -> float:
        """dist(vectors[a], vectors[b]) 를 캐시를 이용해 계산"""
        if cache is None:
            return self.dist(vectors[a], vectors[b])
        self._check_trained()
        return self._dist_cached(vectors[a], cache[a], vectors[b], cache[b])

    def dist_query(
        self,
        a: int,
        query,
        query_info: Optional[np.ndarray],
        vectors: Sequence,
        cache
    ) -> float:
        """dist(vectors[a], query) 를 캐시와 질의 정보를 이용해 계산"""
        if cache is None or query_info is None:
            return self.dist(vectors[a], query)
        self._check_trained()
        return self._dist_cached(vectors[a], cache[a], query, query_info)

    def clone(self) -> 'DistanceMetric':
        """학습 상태까지 포함한 독립적인 복사본"""
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class EuclideanDistance(DistanceMetric):
    """
    유클리드 거리

    d(a, b) = sqrt(Σ (a_i - b_i)²)

    가속 캐시: ‖v‖² (제곱 노름)

    가속 계산은 d² = ‖a‖² + ‖b‖² - 2 a·b 를 사용한다. 원점에서 먼 두 점처럼
    d² 가 ‖a‖² + ‖b‖² 에 비해 아주 작으면 (CANCELLATION_RATIO 이하) 전개식의
    소거 오차가 결과를 지배하므로 차이 벡터로 직접 계산한다. 따라서 가속
    결과는 직접 계산과 부동소수점 정밀도 수준에서 일치한다.
    """

    def dist(self, a, b) -> float:
        diff, _ = difference(a, b)
        return float(np.sqrt(np.dot(diff, diff)))

    def supports_acceleration(self) -> bool:
        return True

    def _vector_info(self, v) -> np.ndarray:
        return np.array([dot(v, v)])

    def _dist_cached(self, a, a_info, b, b_info) -> float:
        scale = a_info[0] + b_info[0]
        squared = scale - 2 * dot(a, b)
        if squared <= CANCELLATION_RATIO * scale:
            return self.dist(a, b)
        return float(np.sqrt(squared))


class CosineDistance(DistanceMetric):
    """
    코사인 거리

    d(a, b) = sqrt((1 - cos θ) / 2),  cos θ = a·b / (‖a‖ ‖b‖)

    정규화된 벡터 간 유클리드 거리에 비례하므로 삼각 부등식을 만족한다.
    노름이 0인 벡터와의 거리는 1 (cos θ = -1 로 취급).

    가속 캐시: ‖v‖² (제곱 노름). 분모를 sqrt(‖a‖² ‖b‖²) 로 계산하면
    a = b 일 때 cos θ 가 정확히 1이 된다.

    1 - cos θ 가 CANCELLATION_RATIO 이하인 거의 같은 방향의 벡터는
    d = ‖a/‖a‖ - b/‖b‖‖ / 2 로 직접 계산한다 (같은 값을 소거 오차 없이 구함).
    """

    def dist(self, a, b) -> float:
        return self._dist_cached(a, self._vector_info(a), b, self._vector_info(b))

    def metric_bound(self) -> float:
        return 1.0

    def supports_acceleration(self) -> bool:
        return True

    def _vector_info(self, v) -> np.ndarray:
        return np.array([dot(v, v)])

    def _dist_cached(self, a, a_info, b, b_info) -> float:
        denom = np.sqrt(a_info[0] * b_info[0])
        if denom == 0:
            return self.cosine_to_distance(-1.0)
        cos_angle = min(dot(a, b) / denom, 1.0)
        if 1 - cos_angle <= CANCELLATION_RATIO:
            diff, _ = difference(a / np.sqrt(a_info[0]), b / np.sqrt(b_info[0]))
            return float(np.sqrt(np.dot(diff, diff)) / 2)
        return self.cosine_to_distance(cos_angle)

    @staticmethod
    def cosine_to_distance(cos_angle: float) -> float:
        return float(np.sqrt(max(0.5 * (1 - cos_angle), 0.0)))

    @staticmethod
    def distance_to_cosine(distance: float) -> float:
        return 1 - 2 * distance * distance


class ManhattanDistance(DistanceMetric):
    """L1 거리: Σ |a_i - b_i|"""

    def dist(self, a, b) -> float:
        diff, _ = difference(a, b)
        return float(np.sum(np.abs(diff)))


class ChebyshevDistance(DistanceMetric):
    """L∞ 거리: max |a_i - b_i|"""

    def dist(self, a, b) -> float:
        diff, _ = difference(a, b)
        if diff.size == 0:
            return 0.0
        return float(np.max(np.abs(diff)))


class MinkowskiDistance(DistanceMetric):
    """
    Minkowski 거리

    d(a, b) = (Σ |a_i - b_i|^p)^(1/p)

    p < 1 이면 삼각 부등식이 깨지므로 허용하지 않는다.

    Parameters
    ----------
    p : float, default=2.0
        차수 (p ≥ 1)
    """

    def __init__(self, p: float = 2.0):
        if not np.isfinite(p) or p < 1:
            raise ValueError(f"p는 1 이상의 유한한 값이어야 합니다: {p}")
        self.p = float(p)

    def dist(self, a, b) -> float:
        diff, _ = difference(a, b)
        return float(np.sum(np.abs(diff) ** self.p) ** (1.0 / self.p))

    def __repr__(self) -> str:
        return f"MinkowskiDistance(p={self.p})"


class WeightedEuclideanDistance(DistanceMetric):
    """
    가중 유클리드 거리

    d(a, b) = sqrt(Σ w_i (a_i - b_i)²),  w_i ≥ 0

    가속 캐시: Σ w_i v_i² (가중 제곱 노름). 소거 오차가 큰 경우의 직접
    계산은 EuclideanDistance 와 같다.

    Parameters
    ----------
    weights : array-like of shape (n_features,)
        차원별 가중치
    """

    def __init__(self, weights: Optional[Sequence[float]] = None):
        self.weights: Optional[np.ndarray] = None
        if weights is not None:
            self.set_weights(weights)

    def set_weights(self, weights: Sequence[float]) -> None:
        w = np.asarray(weights, dtype=float).ravel()
        if np.any(w < 0) or not np.all(np.isfinite(w)):
            raise ValueError("가중치는 유한한 0 이상의 값이어야 합니다.")
        self.weights = w

    def _check_weights(self, a) -> None:
        if self.weights is None:
            raise ValueError("가중치가 설정되지 않았습니다.")
        if length(a) != len(self.weights):
            raise DimensionMismatchError(
                f"벡터 길이와 가중치 길이가 일치하지 않습니다: "
                f"{length(a)} vs {len(self.weights)}"
            )

    def is_indiscernible(self) -> bool:
        return self.weights is None or bool(np.all(self.weights > 0))

    def dist(self, a, b) -> float:
        self._check_trained()
        diff, idx = difference(a, b)
        self._check_weights(a)
        w = self.weights if idx is None else self.weights[idx]
        return float(np.sqrt(np.sum(w * diff * diff)))

    def supports_acceleration(self) -> bool:
        return True

    def _vector_info(self, v) -> np.ndarray:
        self._check_weights(v)
        return np.array([weighted_dot(self.weights, v, v)])

    def _dist_cached(self, a, a_info, b, b_info) -> float:
        check_lengths(a, b)
        self._check_weights(a)
        scale = a_info[0] + b_info[0]
        squared = scale - 2 * weighted_dot(self.weights, a, b)
        if squared <= CANCELLATION_RATIO * scale:
            return self.dist(a, b)
        return float(np.sqrt(squared))


class NormalizedEuclideanDistance(WeightedEuclideanDistance):
    """
    정규화 유클리드 거리 (학습 필요)

    d(a, b) = sqrt(Σ (a_i - b_i)² / σ_i²)

    σ_i² 는 학습 데이터의 차원별 분산. 분산이 0인 차원은 가중치 0.
    """

    def __init__(self):
        super().__init__(weights=None)

    def needs_training(self) -> bool:
        return self.weights is None

    def train(self, vectors: Sequence, parallel: bool = False) -> 'NormalizedEuclideanDistance':
        vectors = [as_vector(v) for v in vectors]
        if len(vectors) == 0:
            raise ValueError("학습 데이터가 비어 있습니다.")

        X = stack_dense(vectors, range(len(vectors)))
        variance = X.var(axis=0)

        weights = np.zeros_like(variance)
        nonzero = variance > 0
        weights[nonzero] = 1.0 / variance[nonzero]
        self.weights = weights
        return self


class MahalanobisDistance(DistanceMetric):
    """
    Mahalanobis 거리 (학습 필요)

    d(a, b) = sqrt((a - b)ᵀ S⁻¹ (a - b))

    S 는 학습 데이터의 공분산 행렬. 특이 행렬이어도 동작하도록 유사역행렬을
    사용한다.

    Parameters
    ----------
    shrinkage : float, default=0.0
        공분산 대각에 더할 값 (S + shrinkage·I)
    """

    def __init__(self, shrinkage: float = 0.0):
        if shrinkage < 0:
            raise ValueError(f"shrinkage는 0 이상이어야 합니다: {shrinkage}")
        self.shrinkage = shrinkage
        self.inv_covariance_: Optional[np.ndarray] = None

    def needs_training(self) -> bool:
        return self.inv_covariance_ is None

    def train(self, vectors: Sequence, parallel: bool = False) -> 'MahalanobisDistance':
        vectors = [as_vector(v) for v in vectors]
        if len(vectors) < 2:
            raise ValueError(
                f"공분산 추정에는 최소 2개의 벡터가 필요합니다: {len(vectors)}"
            )

        X = stack_dense(vectors, range(len(vectors)))
        cov = np.atleast_2d(np.cov(X, rowvar=False))
        cov = cov + self.shrinkage * np.eye(cov.shape[0])
        self.inv_covariance_ = np.linalg.pinv(cov)
        return self

    def dist(self, a, b) -> float:
        self._check_trained()
        check_lengths(a, b)
        if length(a) != self.inv_covariance_.shape[0]:
            raise DimensionMismatchError(
                f"벡터 길이가 학습 차원과 다릅니다: "
                f"{length(a)} vs {self.inv_covariance_.shape[0]}"
            )
        diff, idx = difference(a, b)
        if idx is not None:
            full = np.zeros(length(a))
            full[idx] = diff
            diff = full
        return float(np.sqrt(max(diff @ self.inv_covariance_ @ diff, 0.0)))

    def __repr__(self) -> str:
        return f"MahalanobisDistance(shrinkage={self.shrinkage})"
