import tempfile
import unittest
from pathlib import Path

from pathfinder.config import PathfinderConfig
from pathfinder.convenience import find_by_extensions, find_config_files, find_schema_files


class ConvenienceTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self._tmpdir.name).resolve()
        for name in ('app.yaml', 'conf/db.yml', 'conf/extra.json', 'schemas/user.schema.json',
                     'schemas/order.schema.yaml', 'src/main.py', 'src/util.ts', 'README.md'):
            path = self.root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(name)

    def tearDown(self):
        self._tmpdir.cleanup()

    def relative_paths(self, results):
        return [r.relative_path for r in results]

    def test_find_config_files(self):
        results = find_config_files(self.root)

        self.assertEqual(['app.yaml', 'conf/db.yml', 'conf/extra.json', 'schemas/order.schema.yaml',
                          'schemas/user.schema.json'], self.relative_paths(results))

    def test_find_config_files_custom_extensions(self):
        results = find_config_files(self.root, ['json'])

        self.assertEqual(['conf/extra.json', 'schemas/user.schema.json'], self.relative_paths(results))

    def test_find_schema_files(self):
        results = find_schema_files(self.root)

        self.assertEqual(['schemas/order.schema.yaml', 'schemas/user.schema.json'], self.relative_paths(results))

    def test_find_by_extensions(self):
        results = find_by_extensions(self.root, ['.py', 'ts'], PathfinderConfig(calculate_checksums=True))

        self.assertEqual(['src/main.py', 'src/util.ts'], self.relative_paths(results))
        self.assertTrue(all(r.metadata.checksum for r in results))

    def test_find_by_no_extensions_does_not_traverse(self):
        self.assertEqual([], find_by_extensions(self.root / 'missing', []))


if __name__ == '__main__':
    unittest.main()
