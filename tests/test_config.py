"""Tests for vspsplit.config — configuration loading, validation and building."""

from pathlib import Path

import pytest
import yaml

from vspsplit.composite import CombinedSplitter, ProductSplitter
from vspsplit.config import (
    PopulationSection,
    SplitterSection,
    VspConfig,
    build_population,
    build_splitter,
    deep_merge,
    default_config,
    load_config,
    validate_config,
)
from vspsplit.exceptions import SplitterConfigError
from vspsplit.splitters import GenotypeSplitter, InfoSplitter, SexSplitter


EXAMPLE_YAML = Path(__file__).parent.parent / "configs" / "example.yaml"


def write_yaml(path, data):
    with open(path, 'w') as f:
        yaml.dump(data, f)
    return path


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_simple_override(self):
        assert deep_merge({'a': 1, 'b': 2}, {'b': 3}) == {'a': 1, 'b': 3}

    def test_nested_merge(self):
        base = {'population': {'sizes': [10], 'seed': 1}, 'splitter': None}
        result = deep_merge(base, {'population': {'seed': 7}})
        assert result == {'population': {'sizes': [10], 'seed': 7}, 'splitter': None}

    def test_new_key(self):
        assert deep_merge({'a': 1}, {'b': 2}) == {'a': 1, 'b': 2}

    def test_override_dict_with_scalar(self):
        assert deep_merge({'a': {'nested': 1}}, {'a': 'replaced'}) == {'a': 'replaced'}

    def test_splitter_replaced_key_by_key(self):
        base = {'splitter': {'type': 'info', 'field': 'age', 'cutoff': [1, 2]}}
        deep_merge(base, {'splitter': {'cutoff': [5]}})
        assert base['splitter'] == {'type': 'info', 'field': 'age', 'cutoff': [5]}


# ── build_splitter tests ──────────────────────────────────────────────

class TestBuildSplitter:
    def test_leaf(self):
        s = build_splitter({'type': 'sex'})
        assert isinstance(s, SexSplitter)

    def test_leaf_with_arguments(self):
        s = build_splitter({'type': 'info', 'field': 'age', 'cutoff': [5, 20]})
        assert isinstance(s, InfoSplitter)
        assert s.num_virtual_subpop() == 3

    def test_genotype(self):
        s = build_splitter({'type': 'genotype', 'loci': [0], 'alleles': [[0, 0], [1, 1]],
                            'phase': True})
        assert isinstance(s, GenotypeSplitter)
        assert s.phase

    def test_nested(self):
        s = build_splitter({
            'type': 'combined',
            'vsp_map': [[0, 3]],
            'splitters': [
                {'type': 'sex'},
                {'type': 'product', 'splitters': [{'type': 'affection'},
                                                  {'type': 'proportion',
                                                   'proportions': [0.5, 0.5]}]},
            ],
        })
        assert isinstance(s, CombinedSplitter)
        assert isinstance(s.splitters[1], ProductSplitter)
        assert s.num_virtual_subpop() == 1
        assert s.name(0) == "MALE or UNAFFECTED, Prop 0.5"

    def test_unknown_type(self):
        with pytest.raises(SplitterConfigError, match="Unknown splitter type"):
            build_splitter({'type': 'by_color'})

    def test_missing_type(self):
        with pytest.raises(SplitterConfigError):
            build_splitter({'field': 'age'})

    def test_bad_keyword(self):
        with pytest.raises(SplitterConfigError, match="Invalid arguments"):
            build_splitter({'type': 'sex', 'colour': 'red'})

    def test_invalid_values(self):
        with pytest.raises(SplitterConfigError):
            build_splitter({'type': 'proportion', 'proportions': [0.5, 0.2]})

    def test_composite_without_children(self):
        with pytest.raises(SplitterConfigError):
            build_splitter({'type': 'product'})


# ── default_config tests ─────────────────────────────────────────────

class TestDefaultConfig:
    def test_creates_valid_config(self):
        assert isinstance(default_config(), VspConfig)

    def test_default_values(self):
        config = default_config()
        assert config.population.sizes == [100]
        assert config.population.ploidy == 2
        assert config.population.seed == 42
        assert config.splitter.definition is None

    def test_sections(self):
        assert PopulationSection().sex_ratio == 0.5
        assert SplitterSection().definition is None


# ── YAML loading tests ───────────────────────────────────────────────

class TestLoadConfig:
    def test_load_from_yaml(self, tmp_path):
        path = write_yaml(tmp_path / "test.yaml", {
            'population': {'sizes': [10, 20], 'seed': 99},
            'splitter': {'type': 'affection'},
        })
        config = load_config(path)
        assert config.population.sizes == [10, 20]
        assert config.population.seed == 99
        assert config.population.ploidy == 2
        assert config.splitter.definition == {'type': 'affection'}

    def test_load_with_override_file(self, tmp_path):
        base = write_yaml(tmp_path / "base.yaml", {
            'population': {'sizes': [10], 'sex_ratio': 0.5},
        })
        override = write_yaml(tmp_path / "override.yaml", {
            'population': {'sex_ratio': 0.7},
        })
        config = load_config(base, override_path=override)
        assert config.population.sex_ratio == 0.7
        assert config.population.sizes == [10]

    def test_missing_override_file_ignored(self, tmp_path):
        base = write_yaml(tmp_path / "base.yaml", {'population': {'sizes': [3]}})
        config = load_config(base, override_path=tmp_path / "missing.yaml")
        assert config.population.sizes == [3]

    def test_load_with_dict_overrides(self, tmp_path):
        base = write_yaml(tmp_path / "base.yaml", {'population': {'seed': 1}})
        config = load_config(base, overrides={'population': {'seed': 123}})
        assert config.population.seed == 123

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).population.sizes == [100]

    def test_unknown_key_warns(self, tmp_path):
        path = write_yaml(tmp_path / "x.yaml", {'population': {'sizes': [4], 'colour': 'red'}})
        with pytest.warns(UserWarning, match="colour"):
            load_config(path)

    def test_unknown_section_warns(self, tmp_path):
        path = write_yaml(tmp_path / "x.yaml", {'disease': {'beta': 1}})
        with pytest.warns(UserWarning, match="disease"):
            load_config(path)

    def test_invalid_splitter_rejected(self, tmp_path):
        path = write_yaml(tmp_path / "x.yaml", {'splitter': {'type': 'range', 'ranges': [[5, 1]]}})
        with pytest.raises(SplitterConfigError):
            load_config(path)

    def test_load_example_yaml(self):
        config = load_config(EXAMPLE_YAML)
        assert config.population.sizes == [200, 100]
        assert config.population.info_fields == ['age']
        assert config.splitter.definition['type'] == 'product'


# ── Validation tests ──────────────────────────────────────────────────

class TestValidation:
    def test_scalar_sizes(self):
        config = VspConfig(population=PopulationSection(sizes=50))
        validate_config(config)
        assert config.population.sizes == [50]

    def test_negative_size(self):
        with pytest.raises(ValueError, match="sizes"):
            validate_config(VspConfig(population=PopulationSection(sizes=[5, -1])))

    def test_empty_sizes(self):
        with pytest.raises(ValueError):
            validate_config(VspConfig(population=PopulationSection(sizes=[])))

    def test_ploidy(self):
        with pytest.raises(ValueError, match="ploidy"):
            validate_config(VspConfig(population=PopulationSection(ploidy=0)))

    def test_duplicate_info_fields(self):
        with pytest.raises(ValueError, match="duplicates"):
            validate_config(VspConfig(population=PopulationSection(info_fields=['a', 'a'])))

    def test_names_length(self):
        with pytest.raises(ValueError, match="names"):
            validate_config(VspConfig(population=PopulationSection(sizes=[1, 2], names=['a'])))

    def test_probabilities(self):
        with pytest.raises(ValueError, match="sex_ratio"):
            validate_config(VspConfig(population=PopulationSection(sex_ratio=1.5)))
        with pytest.raises(ValueError, match="affected_prob"):
            validate_config(VspConfig(population=PopulationSection(affected_prob=-0.1)))

    def test_allele_freqs_length(self):
        with pytest.raises(ValueError, match="allele_freqs"):
            validate_config(VspConfig(population=PopulationSection(loci=2, allele_freqs=[0.5])))

    def test_allele_freqs_range(self):
        with pytest.raises(ValueError, match="allele_freqs"):
            validate_config(VspConfig(population=PopulationSection(loci=1, allele_freqs=[2.0])))

    def test_negative_seed(self):
        with pytest.raises(ValueError, match="seed"):
            validate_config(VspConfig(population=PopulationSection(seed=-1)))

    def test_splitter_error_is_value_error(self):
        config = VspConfig(splitter=SplitterSection({'type': 'info', 'field': 'age'}))
        with pytest.raises(ValueError):
            validate_config(config)


# ── build_population tests ────────────────────────────────────────────

class TestBuildPopulation:
    def test_example(self):
        pop = build_population(load_config(EXAMPLE_YAML))
        assert pop.subpop_sizes() == [200, 100]
        assert pop.num_loci == 4
        assert pop.num_virtual_subpop() == 6
        assert pop.subpop_name((0, 0)) == "north - MALE, age < 5"

    def test_reproducible(self):
        a = build_population(load_config(EXAMPLE_YAML))
        b = build_population(load_config(EXAMPLE_YAML))
        assert (a.individuals['sex'] == b.individuals['sex']).all()
        assert (a.genotypes == b.genotypes).all()

    def test_without_splitter(self):
        pop = build_population(default_config())
        assert pop.virtual_splitter() is None
        assert pop.pop_size() == 100

    def test_all_male(self):
        config = load_config(EXAMPLE_YAML, overrides={'population': {'sex_ratio': 1.0}})
        pop = build_population(config)
        assert pop.subpop_size((0, 0)) + pop.subpop_size((0, 1)) + pop.subpop_size((0, 2)) == 200
