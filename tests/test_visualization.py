"""
Unit tests for ednataxa.visualization module

Tests cover:
1. Phylum aggregation for the pie chart
2. Sunburst/treemap construction
3. Empty-table rendering
4. Deterministic output files
5. Independent rendering of the three charts
"""

import pytest
import pandas as pd
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from ednataxa import visualization
from ednataxa.config import VisualizationConfig
from ednataxa.tables import load_merged_table
from ednataxa.taxonomy import UNASSIGNED, add_rank_columns
from ednataxa.visualization import (
    ChartRenderError,
    UNASSIGNED_COLOR,
    build_pie,
    build_sunburst,
    build_treemap,
    get_taxon_colors,
    render_charts,
    summarize_rank_abundance,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def test_data_dir():
    return Path(__file__).parent / "data"


@pytest.fixture
def merged(test_data_dir):
    return load_merged_table(
        test_data_dir / "feature-table.tsv",
        test_data_dir / "taxonomy.tsv",
    )


@pytest.fixture
def empty_merged():
    df = pd.DataFrame({
        'ASV_ID': pd.Series(dtype=object),
        'Abundance': pd.Series(dtype=float),
        'Taxonomy': pd.Series(dtype=object),
    })
    return add_rank_columns(df)


@pytest.fixture
def cdn_config():
    """Link plotly.js instead of embedding it to keep test files small."""
    return VisualizationConfig(include_plotlyjs='cdn')


# ============================================================================
# Aggregation
# ============================================================================

class TestSummarizeRankAbundance:

    def test_unassigned_excluded(self):
        df = pd.DataFrame({
            'Phylum': ['X', 'X', UNASSIGNED],
            'Abundance': [10.0, 5.0, 3.0],
        })

        summary = summarize_rank_abundance(df, 'Phylum')

        assert summary['Phylum'].tolist() == ['X']
        assert summary['Abundance'].tolist() == [15.0]

    def test_sorted_by_taxon(self, merged):
        summary = summarize_rank_abundance(merged, 'Phylum')

        assert summary['Phylum'].tolist() == ['Chordata', 'Cnidaria']
        assert summary['Abundance'].tolist() == [145.0, 120.0]


class TestTaxonColors:

    def test_unassigned_is_grey(self):
        colors = get_taxon_colors(['Chordata', UNASSIGNED])
        assert colors[UNASSIGNED] == UNASSIGNED_COLOR
        assert colors['Chordata'] != UNASSIGNED_COLOR

    def test_independent_of_order(self):
        assert get_taxon_colors(['B', 'A', 'B']) == get_taxon_colors(['A', 'B'])

    def test_empty_labels(self):
        assert get_taxon_colors([]) == {UNASSIGNED: UNASSIGNED_COLOR}


# ============================================================================
# Figures
# ============================================================================

class TestFigures:

    def test_pie_single_slice(self):
        df = pd.DataFrame({
            'Phylum': ['X', 'X', UNASSIGNED],
            'Abundance': [10.0, 5.0, 3.0],
        })

        fig = build_pie(df)

        assert len(fig.data) == 1
        assert list(fig.data[0].labels) == ['X']
        assert list(fig.data[0].values) == [15.0]

    def test_sunburst_hierarchy(self, merged):
        fig = build_sunburst(merged)

        trace = fig.data[0]
        assert trace.type == 'sunburst'
        values = dict(zip(trace.ids, trace.values))
        assert values['Eukaryota'] == pytest.approx(275.0)
        assert values['Eukaryota/Chordata'] == pytest.approx(145.0)
        assert values['Eukaryota/Cnidaria/Hydrozoa'] == pytest.approx(40.0)
        assert values[f'Eukaryota/{UNASSIGNED}/{UNASSIGNED}'] == pytest.approx(10.0)

    def test_treemap_matches_sunburst(self, merged):
        sunburst = build_sunburst(merged).data[0]
        treemap = build_treemap(merged).data[0]

        assert treemap.type == 'treemap'
        assert dict(zip(treemap.ids, treemap.values)) == dict(zip(sunburst.ids, sunburst.values))

    def test_titles(self, merged):
        cfg = VisualizationConfig()
        assert build_sunburst(merged, cfg).layout.title.text == cfg.sunburst_title
        assert build_pie(merged, cfg).layout.title.text == cfg.pie_title

    def test_empty_table_figures(self, empty_merged):
        for builder in (build_sunburst, build_treemap, build_pie):
            fig = builder(empty_merged)
            assert len(fig.data) == 1
            assert len(fig.data[0].labels) == 0


# ============================================================================
# Rendering
# ============================================================================

class TestRenderCharts:

    def test_writes_three_files(self, merged, tmp_path, cdn_config):
        paths = render_charts(merged, tmp_path, cdn_config)

        assert set(paths) == {'sunburst', 'treemap', 'pie'}
        assert paths['sunburst'] == tmp_path / 'taxonomic_sunburst.html'
        assert paths['treemap'] == tmp_path / 'taxonomic_treemap.html'
        assert paths['pie'] == tmp_path / 'taxonomic_pie_chart.html'
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            'taxonomic_pie_chart.html',
            'taxonomic_sunburst.html',
            'taxonomic_treemap.html',
        ]
        html = paths['sunburst'].read_text(encoding='utf-8')
        assert '<html>' in html
        assert 'taxonomic-sunburst' in html

    def test_identical_runs_identical_files(self, merged, tmp_path, cdn_config):
        first = render_charts(merged, tmp_path / 'run1', cdn_config)
        second = render_charts(merged, tmp_path / 'run2', cdn_config)

        for name in first:
            assert first[name].read_bytes() == second[name].read_bytes()

    def test_empty_table_renders(self, empty_merged, tmp_path, cdn_config):
        paths = render_charts(empty_merged, tmp_path, cdn_config)

        assert all(path.exists() for path in paths.values())

    def test_failed_chart_does_not_block_others(self, merged, tmp_path, cdn_config, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("treemap exploded")

        monkeypatch.setattr(visualization, 'build_treemap', _boom)

        with pytest.raises(ChartRenderError) as excinfo:
            render_charts(merged, tmp_path, cdn_config)

        assert set(excinfo.value.failures) == {'treemap'}
        assert (tmp_path / 'taxonomic_sunburst.html').exists()
        assert (tmp_path / 'taxonomic_pie_chart.html').exists()
        assert not (tmp_path / 'taxonomic_treemap.html').exists()

    def test_creates_output_directory(self, merged, tmp_path, cdn_config):
        out = tmp_path / 'nested' / 'charts'
        render_charts(merged, out, cdn_config)
        assert (out / 'taxonomic_pie_chart.html').exists()
