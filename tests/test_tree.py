import pytest

from maci_crypto.errors import RangeError, TreeIndexError
from maci_crypto.poseidon import poseidon
from maci_crypto.tree import Tree


class TestTree:
    def test_empty_root_is_zero_hash(self):
        tree = Tree(5, 2, 0)
        assert tree.leaves_count == 25
        assert tree.root == Tree.compute_zero_hashes(5, 2, 0)[2]

    def test_depth_one_root(self):
        tree = Tree(5, 1, 0)
        for i in range(5):
            tree.update_leaf(i, i + 1)
        assert tree.root == poseidon([1, 2, 3, 4, 5])

    def test_update_matches_init_leaves(self):
        updated = Tree(5, 2, 0)
        for i, leaf in enumerate([7, 8, 9, 10, 11, 12]):
            updated.update_leaf(i, leaf)

        initialised = Tree(5, 2, 0)
        initialised.init_leaves([7, 8, 9, 10, 11, 12])
        assert updated.root == initialised.root
        assert updated.leaves()[:6] == [7, 8, 9, 10, 11, 12]

    def test_path_elements(self):
        tree = Tree(5, 2, 0)
        tree.update_leaf(7, 3)
        elements = tree.path_element_of(7)
        assert len(elements) == 2
        assert all(len(level) == 4 for level in elements)
        assert tree.path_idx_of(7) == [2, 1]

        leaf_level = [tree.leaf(i) for i in range(5, 10)]
        assert poseidon(leaf_level) == tree.nodes[2]

    def test_index_errors(self):
        tree = Tree(5, 1, 0)
        with pytest.raises(TreeIndexError):
            tree.leaf(5)
        with pytest.raises(TreeIndexError):
            tree.update_leaf(-1, 0)
        with pytest.raises(TreeIndexError):
            tree.init_leaves(list(range(6)))

    @pytest.mark.parametrize("degree", [1, 13])
    def test_rejects_degree(self, degree):
        with pytest.raises(RangeError):
            Tree(degree, 1, 0)

    def test_copy_is_independent(self):
        tree = Tree(5, 2, 0)
        clone = tree.copy()
        clone.update_leaf(0, 1)
        assert tree.root == Tree(5, 2, 0).root
        assert clone.root != tree.root

    def test_sub_tree_keeps_prefix(self):
        tree = Tree(5, 2, 0)
        for i in range(10):
            tree.update_leaf(i, i + 1)

        expected = Tree(5, 2, 0)
        expected.init_leaves([1, 2, 3])
        assert tree.sub_tree(3).root == expected.root
        assert tree.sub_tree(10).root == tree.root
        assert tree.sub_tree(0).root == Tree(5, 2, 0).root

    def test_sub_tree_bounds(self):
        with pytest.raises(TreeIndexError):
            Tree(5, 1, 0).sub_tree(6)

    def test_extend_tree_root(self):
        small = Tree(5, 1, 0)
        small.init_leaves([4, 5, 6])
        large = Tree(5, 2, 0)
        large.init_leaves([4, 5, 6])

        zeros = Tree.compute_zero_hashes(5, 2, 0)
        assert Tree.extend_tree_root(small.root, 1, 2, zeros) == large.root

    def test_extend_tree_root_rejects_shrinking(self):
        zeros = Tree.compute_zero_hashes(5, 2, 0)
        with pytest.raises(RangeError):
            Tree.extend_tree_root(0, 2, 1, zeros)
