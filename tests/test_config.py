"""Tests for perfbench configuration models and loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from perfbench.config import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    ExecutionType,
    FlushDiskCache,
    RamSize,
    TableExists,
    TestSpec,
    collect_test_files,
    load_profiles,
    load_test_spec,
    scan_directory,
)
from perfbench.errors import BAD_ARGUMENTS, FILE_DOESNT_EXIST, exit_code_for
from tests.conftest import make_spec

pytestmark = pytest.mark.unit

DESCRIPTOR = """\
name: uniq_hits
tags: [aggregation, uniq]
type: loop
times_to_run: 3
query:
  - SELECT uniq(UserID) FROM {table}
substitutions:
  - name: table
    values: [hits_10m, hits_100m]
settings:
  max_threads: 8
  use_uncompressed_cache:
preconditions:
  - flush_disk_cache
  - ram_size: 17179869184
  - table_exists: hits_100m
stop_conditions:
  all_of:
    total_time_ms: 10000
  any_of:
    min_time_not_changing_for_ms: 3000
    iterations: 50
metrics: [min_time, quantiles]
main_metric: min_time
"""


# =============================================================================
# Descriptor model
# =============================================================================


class TestTestSpec:
    """Tests for the TestSpec model."""

    def test_minimal(self):
        spec = TestSpec.model_validate({"name": "t", "type": "once"})
        assert spec.times_to_run == 1
        assert spec.query is None
        assert spec.tags == []
        assert spec.stop_conditions.is_empty()

    def test_type_required(self):
        with pytest.raises(ValidationError):
            TestSpec.model_validate({"name": "t"})

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            TestSpec.model_validate({"name": "t", "type": "forever"})

    def test_unknown_field(self):
        with pytest.raises(ValidationError):
            make_spec(querry="SELECT 1")

    def test_times_to_run_positive(self):
        with pytest.raises(ValidationError):
            make_spec(times_to_run=0)

    def test_settings_stringified(self):
        spec = make_spec(settings={"max_threads": 8, "compile": True, "log_queries": None})
        assert spec.settings == {"max_threads": "8", "compile": "1", "log_queries": "true"}

    def test_profile(self):
        assert make_spec(settings={"profile": "fast"}).profile == "fast"
        assert make_spec().profile is None

    def test_substitution_values_stringified(self):
        spec = make_spec(substitutions=[{"name": "n", "values": [1, 2.5, "x"]}])
        assert spec.substitution_table == [("n", ["1", "2.5", "x"])]

    def test_substitution_mapping_form(self):
        spec = make_spec(substitutions={"a": ["1"], "b": ["x", "y"]})
        assert spec.substitution_table == [("a", ["1"]), ("b", ["x", "y"])]

    def test_preconditions(self):
        spec = make_spec(
            preconditions=["flush_disk_cache", {"ram_size": 1024}, {"table_exists": "hits"}]
        )
        assert spec.preconditions == [
            FlushDiskCache(),
            RamSize(bytes=1024),
            TableExists(table="hits"),
        ]

    def test_preconditions_mapping_form(self):
        spec = make_spec(preconditions={"table_exists": "hits", "ram_size": 10})
        assert spec.preconditions == [TableExists(table="hits"), RamSize(bytes=10)]

    def test_unknown_precondition(self):
        with pytest.raises(ValidationError, match="Unknown precondition"):
            make_spec(preconditions=[{"cpu_count": 8}])

    def test_stop_condition_aliases(self):
        spec = make_spec(
            stop_conditions={
                "any_of": {"rows_read": 10, "bytes_read_uncompressed": 20, "iterations": 30}
            }
        )
        assert spec.stop_conditions.any_of.configured() == {
            "max_rows_to_read": 10,
            "max_bytes_to_read": 20,
            "iteration_count": 30,
        }

    def test_unknown_stop_condition(self):
        with pytest.raises(ValidationError):
            make_spec(stop_conditions={"any_of": {"forever_ms": 1}})

    def test_source_path_not_dumped(self):
        spec = make_spec()
        spec.source_path = Path("/tmp/x.yaml")
        assert "source_path" not in spec.model_dump()


# =============================================================================
# Loading
# =============================================================================


class TestConfigLoader:
    """Tests for descriptor and profile loading."""

    def test_load_full_descriptor(self, tmp_path):
        path = tmp_path / "uniq.yaml"
        path.write_text(DESCRIPTOR)
        spec = load_test_spec(path)

        assert spec.name == "uniq_hits"
        assert spec.type == ExecutionType.LOOP
        assert spec.times_to_run == 3
        assert spec.settings == {"max_threads": "8", "use_uncompressed_cache": "true"}
        assert len(spec.preconditions) == 3
        assert spec.stop_conditions.all_of.configured() == {"total_time_ms": 10000}
        assert spec.stop_conditions.any_of.configured() == {
            "iteration_count": 50,
            "min_time_not_changing_for_ms": 3000,
        }
        assert spec.source_path == path

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError) as exc_info:
            load_test_spec(tmp_path / "nope.yaml")
        assert exit_code_for(exc_info.value) == FILE_DOESNT_EXIST

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigParseError):
            load_test_spec(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigParseError, match="Expected a mapping"):
            load_test_spec(path)

    def test_validation_error_lists_fields(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: t\ntype: once\ntimes_to_run: 0\n")
        with pytest.raises(ConfigValidationError) as exc_info:
            load_test_spec(path)
        assert "times_to_run" in str(exc_info.value)
        assert exc_info.value.errors
        assert exit_code_for(exc_info.value) == BAD_ARGUMENTS

    def test_load_profiles(self, tmp_path):
        path = tmp_path / "profiles.yaml"
        path.write_text("profiles:\n  fast:\n    max_threads: 8\n    compile:\n  empty:\n")
        assert load_profiles(path) == {
            "fast": {"max_threads": "8", "compile": "true"},
            "empty": {},
        }

    def test_profiles_not_a_mapping(self, tmp_path):
        path = tmp_path / "profiles.yaml"
        path.write_text("profiles: [a, b]\n")
        with pytest.raises(ConfigParseError):
            load_profiles(path)


class TestDescriptorDiscovery:
    """Tests for scan_directory() and collect_test_files()."""

    @pytest.fixture
    def tree(self, tmp_path):
        (tmp_path / "b.yaml").write_text("")
        (tmp_path / "a.yml").write_text("")
        (tmp_path / "notes.txt").write_text("")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "c.yaml").write_text("")
        return tmp_path

    def test_scan_flat(self, tree):
        assert [p.name for p in scan_directory(tree)] == ["a.yml", "b.yaml"]

    def test_scan_recursive(self, tree):
        found = [p.name for p in scan_directory(tree, recursive=True)]
        assert found == ["a.yml", "b.yaml", "c.yaml"]

    def test_collect_files_and_folders(self, tree):
        found = collect_test_files([tree / "nested" / "c.yaml", tree])
        assert [p.name for p in found] == ["c.yaml", "a.yml", "b.yaml"]

    def test_missing_input(self, tree):
        with pytest.raises(ConfigFileNotFoundError):
            collect_test_files([tree / "missing.yaml"])

    def test_wrong_extension(self, tree):
        with pytest.raises(ConfigError, match="extension"):
            collect_test_files([tree / "notes.txt"])

    def test_current_folder_by_default(self, tree, monkeypatch):
        monkeypatch.chdir(tree)
        assert [p.name for p in collect_test_files([])] == ["a.yml", "b.yaml"]

    def test_empty_current_folder(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigFileNotFoundError, match="Did not find"):
            collect_test_files([])
