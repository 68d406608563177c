"""
Merkle Tree Test Suite

Tree construction, padding, inclusion proofs and tamper detection.
"""

import unittest

from evidence_integrity import (
    NULL_LEAF_HASH,
    MerkleProof,
    MerkleTree,
    MerkleTreeError,
    create_merkle_tree,
    create_merkle_tree_from_data,
    get_null_hash,
    sha256_hex,
    verify_merkle_proof,
)
from evidence_integrity.merkle import combine_hashes

H = [sha256_hex(f"leaf-{i}") for i in range(8)]


class TestNullLeaf(unittest.TestCase):

    def test_null_hash_constant(self):
        self.assertEqual(get_null_hash(), sha256_hex("LEXATO_MERKLE_NULL_LEAF"))
        self.assertEqual(NULL_LEAF_HASH, get_null_hash())


class TestBuild(unittest.TestCase):
    """Tree construction."""

    def test_single_leaf_is_root(self):
        result = create_merkle_tree([H[0]])
        self.assertEqual(result.root_hash, H[0])
        self.assertEqual(result.leaf_count, 1)
        self.assertEqual(result.total_leaves, 1)

    def test_two_leaves(self):
        result = create_merkle_tree([H[0], H[1]])
        self.assertEqual(result.root_hash, sha256_hex(H[0] + H[1]))

    def test_three_leaves_padded_to_four(self):
        result = create_merkle_tree(H[:3])
        self.assertEqual(result.leaf_count, 3)
        self.assertEqual(result.total_leaves, 4)
        self.assertEqual(result.height, 3)

        expected = combine_hashes(
            combine_hashes(H[0], H[1]),
            combine_hashes(H[2], NULL_LEAF_HASH),
        )
        self.assertEqual(result.root_hash, expected)

    def test_five_leaves_padded_to_eight(self):
        result = create_merkle_tree(H[:5])
        self.assertEqual(result.total_leaves, 8)
        self.assertEqual(result.height, 4)

    def test_leaf_order_matters(self):
        a = create_merkle_tree([H[0], H[1]])
        b = create_merkle_tree([H[1], H[0]])
        self.assertNotEqual(a.root_hash, b.root_hash)

    def test_deterministic(self):
        self.assertEqual(create_merkle_tree(H[:6]).root_hash, create_merkle_tree(list(H[:6])).root_hash)

    def test_case_normalized(self):
        upper = create_merkle_tree([h.upper() for h in H[:3]])
        lower = create_merkle_tree(H[:3])
        self.assertEqual(upper.root_hash, lower.root_hash)
        self.assertEqual(upper.leaf_hashes, H[:3])

    def test_empty_rejected(self):
        with self.assertRaises(MerkleTreeError):
            create_merkle_tree([])

    def test_invalid_hash_rejected(self):
        with self.assertRaises(MerkleTreeError):
            create_merkle_tree([H[0], "xyz"])
        with self.assertRaises(MerkleTreeError):
            create_merkle_tree([H[0][:-1]])

    def test_build_from_data(self):
        result = create_merkle_tree_from_data(["a", "b", "c"])
        self.assertEqual(result.leaf_hashes, [sha256_hex("a"), sha256_hex("b"), sha256_hex("c")])
        self.assertEqual(result.root_hash, create_merkle_tree(result.leaf_hashes).root_hash)

    def test_build_from_data_rejects_none(self):
        with self.assertRaises(MerkleTreeError):
            create_merkle_tree_from_data(["a", None])
        with self.assertRaises(MerkleTreeError):
            create_merkle_tree_from_data([])

    def test_to_dict(self):
        tree = MerkleTree()
        tree.build(H[:3])
        data = tree.to_dict()
        self.assertEqual(data["rootHash"], tree.get_root_hash())
        self.assertEqual(data["leafCount"], 3)
        self.assertEqual(data["totalLeaves"], 4)
        self.assertEqual(data["leafHashes"], H[:3])


class TestUnbuiltTree(unittest.TestCase):

    def test_accessors_fail(self):
        tree = MerkleTree()
        with self.assertRaises(MerkleTreeError):
            tree.get_root_hash()
        with self.assertRaises(MerkleTreeError):
            tree.get_leaf_count()
        with self.assertRaises(MerkleTreeError):
            tree.get_proof(0)
        with self.assertRaises(MerkleTreeError):
            tree.to_dict()

    def test_leaf_hashes_empty(self):
        self.assertEqual(MerkleTree().get_leaf_hashes(), [])


class TestProofs(unittest.TestCase):
    """Inclusion proofs."""

    def setUp(self):
        self.tree = MerkleTree()
        self.tree.build(H[:5])

    def test_every_leaf_verifies(self):
        for i in range(5):
            proof = self.tree.get_proof(i)
            self.assertEqual(proof.leaf_hash, H[i])
            self.assertEqual(proof.root, self.tree.get_root_hash())
            self.assertEqual(len(proof.siblings), 3)
            self.assertTrue(self.tree.verify_proof(proof), f"leaf {i}")

    def test_sibling_positions(self):
        proof = self.tree.get_proof(2)
        self.assertEqual([s.position for s in proof.siblings], ["right", "left", "right"])
        self.assertEqual(proof.siblings[0].hash, H[3])

    def test_last_real_leaf_paired_with_padding(self):
        proof = self.tree.get_proof(4)
        self.assertEqual(proof.siblings[0].hash, NULL_LEAF_HASH)

    def test_index_out_of_range(self):
        for index in (-1, 5, 8):
            with self.assertRaises(MerkleTreeError):
                self.tree.get_proof(index)

    def test_non_int_index(self):
        with self.assertRaises(MerkleTreeError):
            self.tree.get_proof("1")
        with self.assertRaises(MerkleTreeError):
            self.tree.get_proof(True)

    def test_dict_form_verifies(self):
        data = self.tree.get_proof(3).to_dict()
        self.assertEqual(set(data), {"leafHash", "leafIndex", "siblings", "root"})
        self.assertTrue(verify_merkle_proof(data))
        self.assertEqual(MerkleProof.from_dict(data), self.tree.get_proof(3))

    def test_bare_string_siblings(self):
        data = self.tree.get_proof(3).to_dict()
        data["siblings"] = [s["hash"] for s in data["siblings"]]
        self.assertTrue(verify_merkle_proof(data))

    def test_single_leaf_proof(self):
        tree = MerkleTree()
        tree.build([H[0]])
        proof = tree.get_proof(0)
        self.assertEqual(proof.siblings, [])
        self.assertTrue(tree.verify_proof(proof))


class TestTamperDetection(unittest.TestCase):
    """verify_proof returns False and never raises."""

    def setUp(self):
        self.tree = MerkleTree()
        self.tree.build(H[:4])
        self.proof = self.tree.get_proof(1).to_dict()

    def test_tampered_leaf(self):
        self.proof["leafHash"] = H[7]
        self.assertFalse(verify_merkle_proof(self.proof))

    def test_tampered_root(self):
        self.proof["root"] = H[7]
        self.assertFalse(verify_merkle_proof(self.proof))

    def test_tampered_sibling(self):
        self.proof["siblings"][0]["hash"] = H[7]
        self.assertFalse(verify_merkle_proof(self.proof))

    def test_swapped_position(self):
        self.proof["siblings"][0]["position"] = "right"
        self.assertFalse(verify_merkle_proof(self.proof))

    def test_unknown_position(self):
        self.proof["siblings"][0]["position"] = "middle"
        self.assertFalse(verify_merkle_proof(self.proof))

    def test_malformed_inputs(self):
        self.assertFalse(verify_merkle_proof(None))
        self.assertFalse(verify_merkle_proof({}))
        self.assertFalse(verify_merkle_proof("proof"))
        self.assertFalse(verify_merkle_proof({"leafHash": "zz", "leafIndex": 0, "siblings": [], "root": "zz"}))
        self.assertFalse(verify_merkle_proof({"leafHash": H[0], "leafIndex": "0", "siblings": [], "root": H[0]}))
        self.assertFalse(verify_merkle_proof({"leafHash": H[0], "leafIndex": 0, "siblings": [42], "root": H[0]}))

    def test_rejection_logged(self):
        self.proof["root"] = H[7]
        with self.assertLogs("evidence_integrity.audit", level="WARNING") as logs:
            self.assertFalse(self.tree.verify_proof(self.proof))
        self.assertTrue(any("PROOF_REJECTED" in line for line in logs.output))


class TestLookup(unittest.TestCase):

    def setUp(self):
        self.tree = MerkleTree()
        self.tree.build(H[:3])

    def test_contains_hash(self):
        self.assertTrue(self.tree.contains_hash(H[1]))
        self.assertTrue(self.tree.contains_hash(H[1].upper()))
        self.assertFalse(self.tree.contains_hash(H[5]))

    def test_padding_not_a_leaf(self):
        self.assertFalse(self.tree.contains_hash(NULL_LEAF_HASH))

    def test_get_hash_index(self):
        self.assertEqual(self.tree.get_hash_index(H[2]), 2)
        self.assertEqual(self.tree.get_hash_index(H[6]), -1)
        self.assertEqual(self.tree.get_hash_index(None), -1)


if __name__ == "__main__":
    unittest.main()
