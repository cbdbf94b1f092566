"""
Neighbors Visualizer - 시각화 동작 확인
=======================================

Author: Neighbors From Scratch Project
"""

import matplotlib.pyplot as plt
import numpy as np
import pytest

from neighbors_from_scratch import BallTree, NeighborsVisualizer


@pytest.fixture
def tree():
    X = np.random.default_rng(0).random((120, 3))
    return BallTree(leaf_size=10, random_state=0).build(X)


def test_plot_balls(tree):
    viz = NeighborsVisualizer(style='not-a-real-style')

    fig = viz.plot_balls(tree)
    assert len(fig.axes[0].patches) == tree.get_n_leaves()
    plt.close(fig)

    fig = viz.plot_balls(tree, depth=1, dims=(1, 2))
    assert len(fig.axes[0].patches) == 2
    plt.close(fig)

    with pytest.raises(ValueError):
        viz.plot_balls(BallTree().build([]))


def test_plot_query_and_stats(tree, tmp_path):
    viz = NeighborsVisualizer(dpi=60)
    query = np.array([0.5, 0.5, 0.5])

    fig = viz.plot_query(tree, query, tree.search(query, 5))
    filepath = tmp_path / "query.png"
    viz.save_figure(fig, str(filepath))
    assert filepath.exists()
    plt.close(fig)

    fig = viz.plot_query(tree, query, [])
    plt.close(fig)

    fig = viz.plot_tree_stats(tree)
    assert len(fig.axes) == 2
    plt.close(fig)
