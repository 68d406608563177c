"""
HashGenerator Test Suite

Determinism of file, metadata and combined hashes, and the hashes.json
manifest produced for a capture.
"""

import hashlib
import io
import logging
import unittest

from evidence_integrity import (
    HashGenerationError,
    HashGenerator,
    HashesJson,
    ManifestError,
    canonicalize_str,
    sha256_hex,
)

SCREENSHOT = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 8
PAGE_HTML = b"<html><body>captured</body></html>"


class TestHashFile(unittest.TestCase):
    """Hashing of individual files."""

    def setUp(self):
        self.generator = HashGenerator()

    def test_hash_is_sha256_of_bytes(self):
        result = self.generator.hash_file(SCREENSHOT, "screenshot.png")
        self.assertEqual(result.hash, hashlib.sha256(SCREENSHOT).hexdigest())
        self.assertEqual(result.size_bytes, len(SCREENSHOT))
        self.assertEqual(result.file_name, "screenshot.png")
        self.assertGreaterEqual(result.processing_time_ms, 0)

    def test_file_name_does_not_affect_hash(self):
        a = self.generator.hash_file(PAGE_HTML, "a.html")
        b = self.generator.hash_file(PAGE_HTML, "b.html")
        self.assertEqual(a.hash, b.hash)

    def test_buffer_types_agree(self):
        expected = self.generator.hash_file(SCREENSHOT, "s.png").hash
        self.assertEqual(self.generator.hash_file(bytearray(SCREENSHOT), "s.png").hash, expected)
        self.assertEqual(self.generator.hash_file(memoryview(SCREENSHOT), "s.png").hash, expected)

    def test_stream_matches_buffer(self):
        generator = HashGenerator(chunk_size=100)
        from_stream = generator.hash_file(io.BytesIO(SCREENSHOT), "s.png")
        self.assertEqual(from_stream.hash, hashlib.sha256(SCREENSHOT).hexdigest())
        self.assertEqual(from_stream.size_bytes, len(SCREENSHOT))

    def test_empty_file(self):
        result = self.generator.hash_file(b"", "empty.txt")
        self.assertEqual(result.hash, sha256_hex(b""))
        self.assertEqual(result.size_bytes, 0)

    def test_none_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.hash_file(None, "x.bin")

    def test_empty_name_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.hash_file(b"data", "")

    def test_unsupported_type_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.hash_file(12345, "x.bin")

    def test_text_stream_wrapped(self):
        with self.assertRaises(HashGenerationError) as ctx:
            self.generator.hash_file(io.StringIO("text"), "x.txt")
        self.assertIsInstance(ctx.exception.original_error, TypeError)

    def test_invalid_chunk_size(self):
        with self.assertRaises(ValueError):
            HashGenerator(chunk_size=0)


class TestHashFiles(unittest.TestCase):
    """Batch hashing with progress."""

    def test_progress_reported_per_file(self):
        events = []
        generator = HashGenerator(on_progress=events.append)
        results = generator.hash_files({"a.png": SCREENSHOT, "b.html": PAGE_HTML})

        self.assertEqual(list(results), ["a.png", "b.html"])
        self.assertEqual([(e.stage, e.current, e.total) for e in events], [("files", 1, 2), ("files", 2, 2)])
        self.assertEqual(events[-1].percent, 100)
        self.assertEqual(events[0].current_file, "a.png")

    def test_entries_independent(self):
        generator = HashGenerator()
        together = generator.hash_files({"a": SCREENSHOT, "b": PAGE_HTML})
        alone = generator.hash_files({"b": PAGE_HTML})
        self.assertEqual(together["b"].hash, alone["b"].hash)

    def test_missing_files_rejected(self):
        generator = HashGenerator()
        with self.assertRaises(HashGenerationError):
            generator.hash_files(None)
        with self.assertRaises(HashGenerationError):
            generator.hash_files([SCREENSHOT, PAGE_HTML])


class TestHashMetadata(unittest.TestCase):
    """Metadata hashing over canonical JSON."""

    def setUp(self):
        self.generator = HashGenerator()

    def test_key_order_irrelevant(self):
        a = self.generator.hash_metadata({"url": "https://x", "nested": {"b": 2, "a": 1}})
        b = self.generator.hash_metadata({"nested": {"a": 1, "b": 2}, "url": "https://x"})
        self.assertEqual(a.hash, b.hash)
        self.assertEqual(a.serialized_json, b.serialized_json)

    def test_hash_of_serialized_json(self):
        metadata = {"z": [3, 1], "a": None}
        result = self.generator.hash_metadata(metadata)
        self.assertEqual(result.serialized_json, '{"a":null,"z":[3,1]}')
        self.assertEqual(result.hash, sha256_hex(canonicalize_str(metadata)))

    def test_integral_float_equals_integer(self):
        as_int = self.generator.hash_metadata({"zoom": 1, "viewport": {"width": 1920}})
        as_float = self.generator.hash_metadata({"zoom": 1.0, "viewport": {"width": 1920.0}})
        self.assertEqual(as_int.hash, as_float.hash)
        self.assertEqual(as_float.serialized_json, '{"viewport":{"width":1920},"zoom":1}')

    def test_empty_object(self):
        self.assertEqual(self.generator.hash_metadata({}).hash, sha256_hex("{}"))

    def test_none_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.hash_metadata(None)

    def test_array_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.hash_metadata([1, 2])

    def test_unserializable_wrapped(self):
        with self.assertRaises(HashGenerationError) as ctx:
            self.generator.hash_metadata({"when": object()})
        self.assertIsNotNone(ctx.exception.original_error)

    def test_progress(self):
        events = []
        HashGenerator(on_progress=events.append).hash_metadata({"a": 1})
        self.assertEqual([(e.stage, e.percent) for e in events], [("metadata", 0), ("metadata", 100)])


class TestCombinedHash(unittest.TestCase):
    """Combined hash over component hashes."""

    def setUp(self):
        self.generator = HashGenerator()
        self.h1 = sha256_hex("one")
        self.h2 = sha256_hex("two")

    def test_sorted_concatenation(self):
        result = self.generator.generate_combined_hash({"b": self.h2, "a": self.h1})
        self.assertEqual(result.component_hashes, [self.h1, self.h2])
        self.assertEqual(result.combined_hash, sha256_hex(self.h1 + self.h2))

    def test_insertion_order_irrelevant(self):
        a = self.generator.generate_combined_hash({"a": self.h1, "b": self.h2})
        b = self.generator.generate_combined_hash({"b": self.h2, "a": self.h1})
        self.assertEqual(a.combined_hash, b.combined_hash)

    def test_empty_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.generate_combined_hash({})

    def test_empty_value_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.generate_combined_hash({"a": ""})


class TestHashesJson(unittest.TestCase):
    """hashes.json manifest generation."""

    def setUp(self):
        self.generator = HashGenerator()
        self.file_hashes = {
            "screenshot.png": sha256_hex(SCREENSHOT),
            "page.html": sha256_hex(PAGE_HTML),
        }
        self.metadata_hash = sha256_hex("{}")

    def test_manifest_fields(self):
        manifest = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash)
        data = manifest.to_dict()

        self.assertEqual(data["version"], "1.0.0")
        self.assertTrue(data["generatedAt"].endswith("Z"))
        self.assertEqual(data["files"], self.file_hashes)
        self.assertEqual(data["metadataHash"], self.metadata_hash)
        self.assertNotIn("pisaChainHash", data)

    def test_combined_hash_over_components(self):
        manifest = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash)
        expected = sha256_hex(
            self.file_hashes["page.html"]
            + self.file_hashes["screenshot.png"]
            + self.metadata_hash
        )
        self.assertEqual(manifest.combined_hash, expected)

    def test_pisa_chain_hash_bound(self):
        pisa = sha256_hex("pisa")
        with_pisa = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash, pisa)
        without = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash)

        self.assertEqual(with_pisa.to_dict()["pisaChainHash"], pisa)
        self.assertNotEqual(with_pisa.combined_hash, without.combined_hash)

    def test_invalid_pisa_chain_hash_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash, "abc")

    def test_pisa_chain_hash_lowercased(self):
        pisa = sha256_hex("pisa")
        manifest = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash, pisa.upper())
        expected = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash, pisa)
        self.assertEqual(manifest.pisa_chain_hash, pisa)
        self.assertEqual(manifest.combined_hash, expected.combined_hash)

    def test_hashes_lowercased(self):
        upper = {name: h.upper() for name, h in self.file_hashes.items()}
        manifest = self.generator.generate_hashes_json(upper, self.metadata_hash.upper())
        self.assertEqual(manifest.files, self.file_hashes)
        self.assertEqual(manifest.metadata_hash, self.metadata_hash)

    def test_empty_files_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.generate_hashes_json({}, self.metadata_hash)

    def test_missing_metadata_hash_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.generate_hashes_json(self.file_hashes, "")

    def test_invalid_file_hash_rejected(self):
        with self.assertRaises(HashGenerationError):
            self.generator.generate_hashes_json({"a.png": "not-a-hash"}, self.metadata_hash)

    def test_audit_event_logged(self):
        with self.assertLogs("evidence_integrity.audit", level=logging.INFO) as logs:
            self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash)
        self.assertTrue(any("MANIFEST_GENERATED" in line for line in logs.output))

    def test_dict_round_trip(self):
        manifest = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash)
        parsed = HashesJson.from_dict(manifest.to_dict())
        self.assertEqual(parsed.to_dict(), manifest.to_dict())

    def test_from_dict_ignores_signatures(self):
        data = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash).to_dict()
        data["signatures"] = [{"kid": "k", "alg": "ed25519", "sig_b64": "x"}]
        self.assertEqual(HashesJson.from_dict(data).combined_hash, data["combinedHash"])

    def test_from_dict_malformed(self):
        with self.assertRaises(ManifestError):
            HashesJson.from_dict({"version": "1.0.0", "files": {}})
        with self.assertRaises(ManifestError):
            HashesJson.from_dict(["not", "an", "object"])

    def test_from_dict_invalid_pisa_chain_hash(self):
        data = self.generator.generate_hashes_json(self.file_hashes, self.metadata_hash).to_dict()
        data["pisaChainHash"] = "abc"
        with self.assertRaises(ManifestError):
            HashesJson.from_dict(data)


class TestProcessEvidence(unittest.TestCase):
    """End-to-end capture hashing."""

    def test_matches_step_by_step(self):
        files = {"screenshot.png": SCREENSHOT, "page.html": PAGE_HTML}
        metadata = {"url": "https://example.com", "capturedAt": "2025-01-10T12:00:00.000Z"}
        generator = HashGenerator()

        manifest = generator.process_evidence(files, metadata)

        file_hashes = {name: generator.hash_file(data, name).hash for name, data in files.items()}
        metadata_hash = generator.hash_metadata(metadata).hash
        expected = generator.generate_hashes_json(file_hashes, metadata_hash)

        self.assertEqual(manifest.combined_hash, expected.combined_hash)
        self.assertEqual(manifest.files, file_hashes)
        self.assertEqual(manifest.metadata_hash, metadata_hash)

    def test_stages_in_order(self):
        stages = []
        generator = HashGenerator(on_progress=lambda p: stages.append(p.stage))
        generator.process_evidence({"a.png": SCREENSHOT}, {"k": "v"})

        seen = []
        for stage in stages:
            if not seen or seen[-1] != stage:
                seen.append(stage)
        self.assertEqual(seen, ["files", "metadata", "combined", "complete"])

    def test_deterministic_across_instances(self):
        files = {"a.png": SCREENSHOT, "b.html": PAGE_HTML}
        reordered = {"b.html": PAGE_HTML, "a.png": SCREENSHOT}
        first = HashGenerator().process_evidence(files, {"x": 1, "y": 2})
        second = HashGenerator(chunk_size=64).process_evidence(reordered, {"y": 2, "x": 1})
        self.assertEqual(first.combined_hash, second.combined_hash)

    def test_missing_files_rejected(self):
        with self.assertRaises(HashGenerationError):
            HashGenerator().process_evidence(None, {"url": "https://example.com"})


if __name__ == "__main__":
    unittest.main()
