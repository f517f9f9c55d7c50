"""Tests for engine settings and config loading."""

import json

import pytest

from rigforge.constants import CONFIG_DIR, SURGERY_CONFIG_FILE
from rigforge.core.config_loader import load_config, load_json, load_surgery_config
from rigforge.core.errors import InputError, SurgeryError
from rigforge.core.settings import (
    CutSettings, MergeSettings, SolverSettings, SurgeryConfig,
)


def test_packaged_defaults_match_dataclasses():
    config = load_surgery_config()
    defaults = SurgeryConfig()
    assert config.solver == defaults.solver
    assert config.cut == defaults.cut
    assert config.merge == defaults.merge


def test_packaged_file_exists():
    assert (CONFIG_DIR / SURGERY_CONFIG_FILE).is_file()
    data = load_config(SURGERY_CONFIG_FILE)
    assert set(data) == {"solver", "cut", "merge"}


def test_load_json(tmp_path):
    path = tmp_path / "x.json"
    path.write_text('{"a": [1, 2]}')
    assert load_json(path) == {"a": [1, 2]}


def test_load_custom_file(tmp_path):
    path = tmp_path / "surgery.json"
    path.write_text(json.dumps({"cut": {"bevel_layers": 5, "cap": True}}))
    config = load_surgery_config(path)
    assert config.cut.bevel_layers == 5
    assert config.cut.cap is True
    # Unspecified sections keep their defaults
    assert config.merge == MergeSettings()


def test_unknown_section(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"render": {}}))
    with pytest.raises(InputError, match="render"):
        load_surgery_config(path)


def test_unknown_key():
    with pytest.raises(InputError, match="bevel_layerz"):
        SurgeryConfig.from_dict({"cut": {"bevel_layerz": 2}})


def test_section_must_be_object():
    with pytest.raises(InputError):
        SurgeryConfig.from_dict({"merge": [1, 2]})


class TestValidation:

    def test_solver(self):
        with pytest.raises(InputError):
            SolverSettings(max_influences=0).validate()
        with pytest.raises(InputError):
            SolverSettings(joint_aggregation="nearest").validate()
        with pytest.raises(InputError):
            SolverSettings(unreferenced_bones="ignore").validate()

    def test_cut(self):
        with pytest.raises(InputError):
            CutSettings(bevel_layers=-1).validate()
        with pytest.raises(InputError):
            CutSettings(cap_spacing_scale=0).validate()

    def test_merge(self):
        with pytest.raises(InputError):
            MergeSettings(smooth_factor=-0.1).validate()
        with pytest.raises(InputError):
            MergeSettings(split_snap_fraction=0.5).validate()
        with pytest.raises(InputError):
            MergeSettings(reskin="none").validate()

    def test_errors_share_base(self):
        with pytest.raises(SurgeryError):
            SurgeryConfig.from_dict({"solver": {"max_influences": -3}})

    def test_input_error_is_value_error(self):
        with pytest.raises(ValueError):
            CutSettings(bevel_strength=-1).validate()
