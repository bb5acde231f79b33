"""
Unit tests for ednataxa.config module

Tests cover:
1. Default values
2. Validation in __post_init__
3. Nested updates
4. YAML/JSON round trips
5. Environment variable overrides
6. Non-fatal configuration warnings
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from ednataxa.config import (
    InputConfig,
    PipelineConfig,
    QiimeConfig,
    TaxonomyConfig,
    VisualizationConfig,
    create_config_template,
    get_default_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from ednataxa.taxonomy import TAX_LEVELS, UNASSIGNED


class TestDefaults:

    def test_default_inputs(self):
        cfg = get_default_config()
        assert cfg.inputs.feature_table == Path("exported-data/feature-table.tsv")
        assert cfg.inputs.taxonomy_table == Path("exported-data/taxonomy.tsv")
        assert cfg.inputs.sample_column is None

    def test_default_charts(self):
        viz = get_default_config().visualization
        assert viz.hierarchy_ranks == ['Domain', 'Phylum', 'Class']
        assert viz.pie_rank == 'Phylum'
        assert viz.include_plotlyjs is True
        assert viz.sunburst_filename == 'taxonomic_sunburst.html'
        assert viz.treemap_filename == 'taxonomic_treemap.html'
        assert viz.pie_filename == 'taxonomic_pie_chart.html'

    def test_default_taxonomy_and_qiime(self):
        cfg = get_default_config()
        assert cfg.taxonomy.ranks == TAX_LEVELS
        assert cfg.taxonomy.unassigned_label == UNASSIGNED
        assert cfg.qiime.trunc_len_f == 240
        assert cfg.qiime.trunc_len_r == 240
        assert cfg.output_dir == Path(".")


class TestValidation:

    def test_string_paths_normalized(self):
        cfg = InputConfig(feature_table="a.tsv", taxonomy_table="b.tsv")
        assert cfg.feature_table == Path("a.tsv")
        assert QiimeConfig(classifier_path="c.qza").classifier_path == Path("c.qza")

    def test_numeric_sample_column_kept_as_string(self):
        assert InputConfig(sample_column=1002).sample_column == "1002"

    def test_blank_sample_column(self):
        with pytest.raises(ValueError, match="sample_column"):
            InputConfig(sample_column="  ")

    def test_invalid_include_plotlyjs(self):
        with pytest.raises(ValueError, match="include_plotlyjs"):
            VisualizationConfig(include_plotlyjs="inline")

    def test_duplicate_filenames(self):
        with pytest.raises(ValueError, match="distinct"):
            VisualizationConfig(pie_filename='taxonomic_sunburst.html')

    def test_duplicate_ranks(self):
        with pytest.raises(ValueError, match="unique"):
            TaxonomyConfig(ranks=['Domain', 'Domain'])

    def test_negative_truncation(self):
        with pytest.raises(ValueError, match="truncation"):
            QiimeConfig(trunc_len_f=-1)

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="log_level"):
            PipelineConfig(log_level="LOUD")

    def test_chart_rank_not_in_taxonomy(self):
        with pytest.raises(ValueError, match="not in taxonomy ranks"):
            PipelineConfig(visualization=VisualizationConfig(pie_rank='Kingdom'))


class TestUpdate:

    def test_nested_update(self):
        cfg = get_default_config().update(
            qiime__trunc_len_f=200,
            inputs__sample_column='tara-pacific-sample',
        )
        assert cfg.qiime.trunc_len_f == 200
        assert cfg.qiime.trunc_len_r == 240
        assert cfg.inputs.sample_column == 'tara-pacific-sample'

    def test_original_unchanged(self):
        cfg = get_default_config()
        cfg.update(log_level="DEBUG")
        assert cfg.log_level == "INFO"

    def test_update_validates(self):
        with pytest.raises(ValueError):
            get_default_config().update(visualization__color_rank='Kingdom')


class TestSerialization:

    def test_yaml_round_trip(self, tmp_path):
        cfg = get_default_config().update(
            inputs__sample_column='S1',
            visualization__include_plotlyjs='cdn',
        )
        path = tmp_path / "config.yaml"
        cfg.to_yaml(path)

        assert load_config_from_file(path) == cfg

    def test_json_round_trip(self, tmp_path):
        cfg = get_default_config().update(qiime__n_threads=4)
        path = tmp_path / "config.json"
        cfg.to_json(path)

        assert load_config_from_file(path) == cfg

    def test_partial_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("qiime:\n  trunc_len_r: 200\nlog_level: DEBUG\n")

        cfg = load_config_from_file(path)

        assert cfg.qiime.trunc_len_r == 200
        assert cfg.qiime.trunc_len_f == 240
        assert cfg.log_level == "DEBUG"

    def test_numeric_sample_column_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("inputs:\n  sample_column: 1002\n")

        assert load_config_from_file(path).inputs.sample_column == "1002"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported"):
            load_config_from_file(path)

    def test_template(self, tmp_path):
        path = tmp_path / "template.yaml"
        create_config_template(path)
        assert load_config_from_file(path) == get_default_config()


class TestEnvironment:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("EDNATAXA_QIIME__TRUNC_LEN_F", "200")
        monkeypatch.setenv("EDNATAXA_INPUTS__SAMPLE_COLUMN", "tara-pacific-sample")
        monkeypatch.setenv("EDNATAXA_VISUALIZATION__INCLUDE_PLOTLYJS", "cdn")

        overrides = load_config_from_env()
        cfg = get_default_config().update(**overrides)

        assert overrides["qiime__trunc_len_f"] == 200
        assert cfg.qiime.trunc_len_f == 200
        assert cfg.inputs.sample_column == "tara-pacific-sample"
        assert cfg.visualization.include_plotlyjs == "cdn"

    def test_numeric_sample_column(self, monkeypatch):
        monkeypatch.setenv("EDNATAXA_INPUTS__SAMPLE_COLUMN", "1002")

        cfg = get_default_config().update(**load_config_from_env())

        assert cfg.inputs.sample_column == "1002"

    def test_log_level(self, monkeypatch):
        monkeypatch.setenv("EDNATAXA_LOG_LEVEL", "DEBUG")
        assert get_default_config().update(**load_config_from_env()).log_level == "DEBUG"

    def test_boolean_values(self, monkeypatch):
        monkeypatch.setenv("EDNATAXA_VISUALIZATION__INCLUDE_PLOTLYJS", "false")
        assert load_config_from_env()["visualization__include_plotlyjs"] is False


class TestValidateConfig:

    def test_missing_inputs_reported(self, tmp_path):
        cfg = get_default_config().update(
            inputs__feature_table=tmp_path / "ft.tsv",
            inputs__taxonomy_table=tmp_path / "tax.tsv",
        )
        warnings = validate_config(cfg)
        assert any("Feature table not found" in w for w in warnings)
        assert any("Taxonomy table not found" in w for w in warnings)

    def test_clean_config(self, tmp_path):
        ft = tmp_path / "ft.tsv"
        tax = tmp_path / "tax.tsv"
        ft.write_text("")
        tax.write_text("")
        cfg = get_default_config().update(inputs__feature_table=ft, inputs__taxonomy_table=tax)
        assert validate_config(cfg) == []

    def test_unusual_values_reported(self, tmp_path):
        cfg = get_default_config().update(
            qiime__trunc_len_f=0,
            visualization__include_plotlyjs=False,
        )
        warnings = validate_config(cfg)
        assert any("truncation" in w for w in warnings)
        assert any("include_plotlyjs" in w for w in warnings)
