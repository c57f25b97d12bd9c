import logging
import os

import pytest

from hybrid7z.filters import partitioner
from hybrid7z.filters.partitioner import (
    AvailableFileSet,
    FilterPartitioner,
    PartitionTable,
    split_pattern,
)
from hybrid7z.models import Target

from conftest import make_phase, make_tree


def _read(path):
    with open(path, "rb") as handle:
        return handle.read()


def test_end_to_end_partition(tmp_path, sample_target, standard_phases):
    folder = tmp_path / "filters"
    engine = FilterPartitioner(str(folder), {"PPMd": ["*.txt"], "Copy": ["*.bin"]})

    outcome = engine.partition([sample_target], standard_phases)

    ppmd = outcome.table.get(sample_target, "PPMd")
    copy = outcome.table.get(sample_target, "Copy")
    assert ppmd == str(folder / "data.PPMd.lst")
    assert copy == str(folder / "data.Copy.lst")
    assert _read(ppmd) == b"*.txt\n"
    assert _read(copy) == b"*.bin\n"
    assert outcome.table.get(sample_target, "LZMA2") is None
    assert outcome.is_terminal_eligible(sample_target)
    assert outcome.table.artifacts_for(sample_target) == [ppmd, copy]


def test_non_overlapping_claims_cover_every_file(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"a.txt": "a", "sub/b.txt": "b", "sub/deep/c.bin": b"c", "d.bin": b"d"})
    target = Target(str(root))
    engine = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"], "Copy": ["*.bin"]})

    outcome = engine.partition([target], standard_phases)

    text = set(engine.match_pattern(target, "*.txt"))
    binary = set(engine.match_pattern(target, "*.bin"))
    every_file = set(partitioner.iter_files(str(root)))
    assert text | binary == every_file
    assert not text & binary
    assert not outcome.is_terminal_eligible(target)


def test_repartition_is_byte_identical(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"a.md": "a", "b.txt": "b", "c.csv": "c", "d.bin": b"d", "e.dat": b"e"})
    target = Target(str(root))
    patterns = {"PPMd": ["*.md", "*.txt", "*.csv", "*.nothing"], "Copy": ["*.bin"]}
    folder = tmp_path / "filters"

    first = FilterPartitioner(str(folder), patterns).partition([target], standard_phases)
    snapshot = {path: _read(path) for path in first.table.all_artifacts()}
    second = FilterPartitioner(str(folder), patterns).partition([target], standard_phases)

    assert {path: _read(path) for path in second.table.all_artifacts()} == snapshot
    assert snapshot[str(folder / "data.PPMd.lst")] == b"*.md\n*.txt\n*.csv\n"
    assert first.terminal_eligible == second.terminal_eligible == frozenset({target.source_path})


def test_target_without_matches_is_terminal_only(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"x.dat": b"x", "y/z.dat": b"z"})
    target = Target(str(root))

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"], "Copy": []}).partition(
        [target], standard_phases
    )

    assert len(outcome.table) == 0
    assert outcome.table.artifacts_for(target) == []
    assert outcome.is_terminal_eligible(target)
    assert not (tmp_path / "filters").exists()


def test_empty_target_is_not_terminal_eligible(tmp_path, standard_phases):
    root = tmp_path / "empty"
    root.mkdir()
    target = Target(str(root))

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"]}).partition([target], standard_phases)

    assert not outcome.is_terminal_eligible(target)


def test_include_root_prefixes_claims_with_target_name(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"a.txt": "a", "c.exe": b"MZ"})
    target = Target(str(root), include_root=True)

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"]}).partition([target], standard_phases)

    assert _read(outcome.table.get(target, "PPMd")) == f"data{os.sep}*.txt\n".encode()


def test_subdirectory_pattern_requires_existing_directory(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"docs/a.md": "a", "b.md": "b"})
    target = Target(str(root))
    engine = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["docs/*.md", "missing/*.md"]})

    outcome = engine.partition([target], standard_phases)

    assert _read(outcome.table.get(target, "PPMd")) == b"docs/*.md\n"
    assert engine.match_pattern(target, "missing/*.md") == []
    # b.md is outside docs/, so it stays for the terminal phase
    assert outcome.is_terminal_eligible(target)


def test_matching_is_case_insensitive(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"README.TXT": "r"})
    target = Target(str(root))

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"]}).partition([target], standard_phases)

    assert outcome.table.get(target, "PPMd") is not None
    assert not outcome.is_terminal_eligible(target)


def test_overlapping_patterns_are_claimed_by_both_phases(tmp_path, standard_phases):
    root = make_tree(tmp_path / "data", {"a.txt": "a"})
    target = Target(str(root))

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"], "Copy": ["*.txt"]}).partition(
        [target], standard_phases
    )

    assert _read(outcome.table.get(target, "PPMd")) == b"*.txt\n"
    assert _read(outcome.table.get(target, "Copy")) == b"*.txt\n"
    assert not outcome.is_terminal_eligible(target)


def test_unlistable_target_root_drops_its_patterns(tmp_path, standard_phases, monkeypatch, caplog):
    root = make_tree(tmp_path / "data", {"a.txt": "a", "b.bin": b"b"})
    target = Target(str(root))
    original = partitioner.iter_files

    def flaky(path, *, strict=False):
        if strict and os.path.basename(path) == "data":
            raise PermissionError("denied")
        yield from original(path, strict=strict)

    monkeypatch.setattr(partitioner, "iter_files", flaky)
    caplog.set_level(logging.ERROR)

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"], "Copy": ["*.bin"]}).partition(
        [target], standard_phases
    )

    assert len(outcome.table) == 0
    assert outcome.is_terminal_eligible(target)
    assert "denied" in caplog.text


def test_unreadable_subdirectory_is_skipped(tmp_path, standard_phases, monkeypatch, caplog):
    root = make_tree(tmp_path / "data", {"a.txt": "a", "locked/x.dat": b"x"})
    target = Target(str(root))
    real_scandir = os.scandir

    def guarded(path="."):
        if os.path.basename(path) == "locked":
            raise PermissionError("denied")
        return real_scandir(path)

    monkeypatch.setattr(partitioner.os, "scandir", guarded)
    caplog.set_level(logging.WARNING)

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"]}).partition(
        [target], standard_phases
    )

    assert _read(outcome.table.get(target, "PPMd")) == b"*.txt\n"
    assert not outcome.is_terminal_eligible(target)
    assert "locked" in caplog.text


def test_symlinked_files_are_listed_but_linked_directories_are_not_walked(tmp_path):
    root = make_tree(tmp_path / "data", {"a.txt": "a"})
    outside = make_tree(tmp_path / "outside", {"inner.txt": "i"})
    try:
        os.symlink(outside / "inner.txt", root / "link.txt")
        os.symlink(outside, root / "linked", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not available")

    files = set(partitioner.iter_files(str(root)))

    assert files == {str(root / "a.txt"), str(root / "link.txt")}


def test_targets_sharing_a_name_get_distinct_artifacts(tmp_path, standard_phases):
    first = Target(str(make_tree(tmp_path / "one" / "data", {"a.txt": "a"})))
    second = Target(str(make_tree(tmp_path / "two" / "data", {"b.txt": "b"})))

    outcome = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"]}).partition(
        [first, second], standard_phases
    )

    assert outcome.table.get(first, "PPMd") != outcome.table.get(second, "PPMd")
    assert len(outcome.table.all_artifacts()) == 2


def test_available_file_set_only_shrinks(tmp_path):
    files = AvailableFileSet([str(tmp_path / "A.txt"), str(tmp_path / "b.bin")])

    assert str(tmp_path / "a.TXT") in files
    assert files.remove_all([str(tmp_path / "a.txt")]) == 1
    assert files.remove_all([str(tmp_path / "a.txt")]) == 0
    assert len(files) == 1
    assert files.remove_all([str(tmp_path / "b.bin")]) == 1
    assert not files


def test_partition_table_is_write_once(tmp_path, standard_phases):
    table = PartitionTable()
    target = Target(str(tmp_path))
    artifact = tmp_path / "data.PPMd.lst"
    artifact.write_text("*.txt\n")

    table.record(target, standard_phases[0], str(artifact))
    with pytest.raises(ValueError):
        table.record(target, standard_phases[0], str(artifact))

    assert table.delete_artifacts() == 1
    assert not artifact.exists()
    assert table.delete_artifacts() == 0


def test_split_pattern():
    assert split_pattern("*.txt") == ("", "*.txt")
    assert split_pattern("docs\\*.md") == ("docs", "*.md")
    assert split_pattern("a/b/*.md") == (os.path.join("a", "b"), "*.md")


def test_terminal_phase_is_never_partitioned(tmp_path, sample_target):
    phases = [make_phase("PPMd", 0, parallel=True), make_phase("LZMA2", 1, parallel=False, terminal=True)]
    engine = FilterPartitioner(str(tmp_path / "filters"), {"PPMd": ["*.txt"], "LZMA2": ["*"]})

    outcome = engine.partition([sample_target], phases)

    assert outcome.table.get(sample_target, "LZMA2") is None
    assert outcome.is_terminal_eligible(sample_target)
