import numpy as np

from graph_components import adjacency_matrix, largest_component, remap_neighbors


def test_adjacency_is_symmetric_union():
    # 0 -> 1, 1 -> 2, 2 -> 1
    nn_idx = np.array([[1], [2], [1]])
    A = adjacency_matrix(nn_idx).toarray()
    expected = np.array([
        [0, 1, 0],
        [1, 0, 1],
        [0, 1, 0],
    ], dtype=float)
    assert np.array_equal(A, expected)
    assert np.array_equal(A, A.T)


def test_adjacency_ignores_self_entries():
    nn_idx = np.array([[0, 1], [0, 1]])
    A = adjacency_matrix(nn_idx).toarray()
    assert np.all(np.diag(A) == 0)
    assert A[0, 1] == 1 and A[1, 0] == 1


def test_largest_component_selects_bigger_group():
    # {0, 2, 4} and {1, 3}
    nn_idx = np.array([[2], [3], [4], [1], [0]])
    sub, members = largest_component(adjacency_matrix(nn_idx))
    assert np.array_equal(members, [0, 2, 4])
    assert sub.shape == (3, 3)


def test_largest_component_tie_goes_to_lowest_index():
    nn_idx = np.array([[1], [0], [3], [2]])
    _, members = largest_component(adjacency_matrix(nn_idx))
    assert np.array_equal(members, [0, 1])

    nn_idx = np.array([[3], [2], [1], [0]])
    _, members = largest_component(adjacency_matrix(nn_idx))
    assert np.array_equal(members, [0, 3])


def test_connected_graph_keeps_everything():
    nn_idx = np.array([[1], [2], [3], [0]])
    sub, members = largest_component(adjacency_matrix(nn_idx))
    assert np.array_equal(members, np.arange(4))
    assert sub.shape == (4, 4)


def test_remap_to_local_indices():
    nn_idx = np.array([
        [2, 4],
        [0, 3],
        [4, 0],
        [1, 0],
        [2, 0],
    ])
    members = np.array([0, 2, 4])
    E = remap_neighbors(nn_idx, members)
    assert np.array_equal(E, [[1, 2], [2, 0], [1, 0]])


def test_remap_dropped_neighbor_falls_back_to_self():
    nn_idx = np.array([
        [1, 3],
        [2, 0],
        [4, 1],
        [4, 2],
        [3, 2],
    ])
    members = np.array([0, 1, 2])
    E = remap_neighbors(nn_idx, members)
    # 3 and 4 were dropped: each becomes the row's own local index
    assert np.array_equal(E, [[1, 0], [2, 0], [2, 1]])
