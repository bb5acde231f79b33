"""
Tests for error handling and data validation.

This test suite validates how the plotting step responds to bad input:
1. Missing input files (fatal, before any chart is written)
2. Tables without required columns
3. Malformed rows (skipped with a warning)
4. Feature tables and taxonomies that do not overlap (empty charts)
5. Lineages with no assigned ranks

Each test verifies that the appropriate mechanism is triggered: an error is
raised, a warning is logged, or the charts degrade gracefully.
"""

import sys
import unittest
import tempfile
import shutil
from pathlib import Path
import logging

sys.path.insert(0, str(Path(__file__).parent.parent))

from ednataxa import cli, tables, visualization
from ednataxa.config import VisualizationConfig, get_default_config
from ednataxa.taxonomy import UNASSIGNED


def _write(path: Path, lines) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class _TempDirTestCase(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.tmpdir = Path(tempfile.mkdtemp())
        self.viz_cfg = VisualizationConfig(include_plotlyjs='cdn')

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.tmpdir)

    def config_for(self, feature_table, taxonomy_table):
        return get_default_config().update(
            inputs__feature_table=feature_table,
            inputs__taxonomy_table=taxonomy_table,
            visualization__include_plotlyjs='cdn',
            output_dir=self.tmpdir / "charts",
        )


class TestMissingInputs(_TempDirTestCase):
    """Missing inputs abort the run before any chart is written."""

    def test_missing_feature_table(self):
        taxonomy = _write(self.tmpdir / "taxonomy.tsv", ["Feature ID\tTaxon", "a\td__Eukaryota"])

        with self.assertRaises(FileNotFoundError) as cm:
            cli.run_plots(self.config_for(self.tmpdir / "feature-table.tsv", taxonomy))

        self.assertIn("feature-table.tsv", str(cm.exception))
        self.assertFalse((self.tmpdir / "charts").exists())

    def test_missing_taxonomy_column(self):
        feature_table = _write(self.tmpdir / "feature-table.tsv", ["#OTU ID\tS1", "a\t1"])
        taxonomy = _write(self.tmpdir / "taxonomy.tsv", ["Feature ID\tConfidence", "a\t0.9"])

        with self.assertRaises(ValueError) as cm:
            cli.run_plots(self.config_for(feature_table, taxonomy))

        self.assertIn("taxon", str(cm.exception).lower())
        self.assertIn("missing", str(cm.exception).lower())

    def test_empty_file(self):
        feature_table = _write(self.tmpdir / "feature-table.tsv", ["#OTU ID\tS1", "a\t1"])
        taxonomy = self.tmpdir / "taxonomy.tsv"
        taxonomy.write_text("")

        with self.assertRaises(ValueError):
            tables.load_merged_table(feature_table, taxonomy)


class TestMalformedRows(_TempDirTestCase):
    """Malformed rows are dropped and reported."""

    def test_bad_abundances_logged_and_removed(self):
        feature_table = _write(self.tmpdir / "feature-table.tsv", [
            "# Constructed from biom file",
            "#OTU ID\tS1",
            "a\t4",
            "b\tNA",
            "c\tinf",
        ])

        with self.assertLogs("ednataxa", level=logging.WARNING) as logs:
            df = tables.parse_feature_table(feature_table)

        self.assertEqual(df['ASV_ID'].tolist(), ['a'])
        self.assertTrue(any("skipped 2 rows" in line.lower() for line in logs.output))


class TestEmptyJoin(_TempDirTestCase):
    """Tables without shared features still produce three (empty) charts."""

    def test_no_shared_features(self):
        feature_table = _write(self.tmpdir / "feature-table.tsv", ["#OTU ID\tS1", "a\t1"])
        taxonomy = _write(self.tmpdir / "taxonomy.tsv", ["Feature ID\tTaxon", "b\td__Eukaryota"])

        with self.assertLogs("ednataxa", level=logging.WARNING) as logs:
            paths = cli.run_plots(self.config_for(feature_table, taxonomy))

        self.assertEqual(set(paths), {'sunburst', 'treemap', 'pie'})
        for path in paths.values():
            self.assertTrue(path.exists())
        self.assertTrue(any("empty" in line.lower() for line in logs.output))

    def test_all_unassigned(self):
        feature_table = _write(self.tmpdir / "feature-table.tsv", ["#OTU ID\tS1", "a\t5", "b\t3"])
        taxonomy = _write(self.tmpdir / "taxonomy.tsv", [
            "Feature ID\tTaxon",
            "a\tUnassigned",
            "b\t",
        ])

        merged = tables.load_merged_table(feature_table, taxonomy)
        self.assertEqual(merged['Phylum'].tolist(), [UNASSIGNED, UNASSIGNED])

        pie = visualization.build_pie(merged, self.viz_cfg)
        self.assertEqual(len(pie.data[0].labels), 0)

        paths = visualization.render_charts(merged, self.tmpdir, self.viz_cfg)
        self.assertEqual(len(paths), 3)


if __name__ == '__main__':
    unittest.main()
