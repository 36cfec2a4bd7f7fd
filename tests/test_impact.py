"""Tests for change-impact classification and structural diffs."""

from __future__ import annotations

import pytest

from branchcov.impact import (
    ABSENT,
    VERIFICATION,
    DiffConfig,
    DiffType,
    ImpactAnalyzer,
    ImpactCategory,
    ImpactRecord,
    JSONDiff,
)


@pytest.fixture
def analyzer() -> ImpactAnalyzer:
    return ImpactAnalyzer()


# ============================================================
# Classification Tests
# ============================================================


class TestClassify:
    @pytest.mark.parametrize(
        "before,after,expected",
        [
            ({"status": 200}, {"status": 200}, ImpactCategory.NONE),
            (ABSENT, {"status": 200}, ImpactCategory.NEW),
            (None, {"status": 200}, ImpactCategory.NEW),
            ({"status": 200}, ABSENT, ImpactCategory.BREAKING),
            ({"status": 200}, None, ImpactCategory.BREAKING),
            ({"status": 200}, {"status": 201}, ImpactCategory.CHANGED),
            ({"status": 200, "body": "ok"}, {"status": 200}, ImpactCategory.BREAKING),
            ({"status": 200}, {"status": 200, "etag": "x"}, ImpactCategory.CHANGED),
            ({"credits": 5}, {"credits": "5"}, ImpactCategory.BREAKING),
            ([1, 2, 3], [1, 2], ImpactCategory.BREAKING),
            ([1, 2], [1, 2, 3], ImpactCategory.CHANGED),
            ("ok", "OK", ImpactCategory.CHANGED),
            (ABSENT, None, ImpactCategory.NONE),
        ],
    )
    def test_table(self, analyzer, before, after, expected):
        assert analyzer.classify(before, after) is expected

    def test_refactored_flag_applies_only_to_equal_behavior(self, analyzer):
        assert analyzer.classify({"a": 1}, {"a": 1}, refactored=True) is ImpactCategory.REFACTORED
        assert analyzer.classify({"a": 1}, {"a": 2}, refactored=True) is ImpactCategory.CHANGED

    def test_nested_removal_is_breaking(self, analyzer):
        before = {"body": {"user": {"id": 1, "email": "a@b.c"}}}
        after = {"body": {"user": {"id": 1}}}
        assert analyzer.classify(before, after) is ImpactCategory.BREAKING


# ============================================================
# Record Tests
# ============================================================


class TestImpactRecord:
    def test_verification_filled_from_category(self, analyzer):
        record = analyzer.analyze("signup", ABSENT, {"status": 201})
        assert record.category is ImpactCategory.NEW
        assert record.verification == VERIFICATION[ImpactCategory.NEW]

    def test_every_category_has_verification(self):
        assert set(VERIFICATION) == set(ImpactCategory)

    def test_breaking_without_note_is_unresolved(self, analyzer):
        record = analyzer.analyze("checkout", {"status": 200}, ABSENT)
        assert record.is_breaking
        assert record.is_unresolved

    def test_whitespace_note_does_not_resolve(self, analyzer):
        record = analyzer.analyze("checkout", {"status": 200}, ABSENT, migration_note="   ")
        assert record.is_unresolved

    def test_note_resolves(self, analyzer):
        record = analyzer.analyze(
            "checkout", {"status": 200}, ABSENT, migration_note="Use /v2/checkout"
        )
        assert record.is_breaking
        assert not record.is_unresolved

    def test_non_breaking_never_unresolved(self, analyzer):
        record = analyzer.analyze("checkout", {"status": 200}, {"status": 201})
        assert not record.is_unresolved

    def test_differences_recorded(self, analyzer):
        record = analyzer.analyze("checkout", {"status": 200}, {"status": 201})
        assert [(d.path, d.diff_type) for d in record.differences] == [
            ("status", DiffType.CHANGED)
        ]

    def test_to_dict_maps_absent_to_none(self, analyzer):
        data = analyzer.analyze("legacy", {"status": 200}, ABSENT).to_dict()
        assert data["after"] is None
        assert data["category"] == "breaking"
        assert data["differences"] == []

    def test_explicit_verification_kept(self):
        record = ImpactRecord("x", 1, 2, ImpactCategory.CHANGED, verification="Ping QA")
        assert record.verification == "Ping QA"

    def test_absent_is_singleton_and_falsy(self):
        assert type(ABSENT)() is ABSENT
        assert not ABSENT
        assert repr(ABSENT) == "ABSENT"


# ============================================================
# Snapshot Tests
# ============================================================


class TestSnapshots:
    def test_analyze_snapshots(self, analyzer):
        before = {
            "login": {"status": 200},
            "checkout": {"status": 200, "body": {"total": 10}},
            "legacy_export": {"status": 200},
            "profile": {"status": 200},
        }
        after = {
            "login": {"status": 200},
            "checkout": {"status": 200, "body": {"total": 12}},
            "profile": {"status": 200},
            "wishlist": {"status": 201},
        }
        records = analyzer.analyze_snapshots(
            before,
            after,
            refactored=["profile"],
            migration_notes={"legacy_export": "Replaced by /v2/export"},
        )
        by_id = {r.feature_id: r for r in records}

        assert [r.feature_id for r in records] == sorted(by_id)
        assert by_id["login"].category is ImpactCategory.NONE
        assert by_id["checkout"].category is ImpactCategory.CHANGED
        assert by_id["legacy_export"].category is ImpactCategory.BREAKING
        assert not by_id["legacy_export"].is_unresolved
        assert by_id["profile"].category is ImpactCategory.REFACTORED
        assert by_id["wishlist"].category is ImpactCategory.NEW


# ============================================================
# Diff Tests
# ============================================================


class TestJSONDiff:
    def test_paths(self):
        items = JSONDiff().compare(
            {"user": {"tags": ["a", "b"]}, "n": 1},
            {"user": {"tags": ["a", "c"]}, "n": 1.0},
        )
        assert [(i.path, i.diff_type) for i in items] == [
            ("n", DiffType.TYPE_CHANGED),
            ("user.tags[1]", DiffType.CHANGED),
        ]

    def test_root_path(self):
        items = JSONDiff().compare(1, 2)
        assert items[0].path == "(root)"

    def test_ignore_paths(self):
        diff = JSONDiff(DiffConfig(ignore_paths=["*.timestamp", "request_id"]))
        items = diff.compare(
            {"meta": {"timestamp": 1}, "request_id": "a", "total": 1},
            {"meta": {"timestamp": 2}, "request_id": "b", "total": 1},
        )
        assert items == []

    def test_ignore_order(self):
        diff = JSONDiff(DiffConfig(ignore_order=True))
        assert diff.compare([1, 2, 3], [3, 2, 1]) == []
        items = diff.compare([1, 2], [2, 3])
        assert [(i.diff_type, i.old_value, i.new_value) for i in items] == [
            (DiffType.REMOVED, 1, None),
            (DiffType.ADDED, None, 3),
        ]

    def test_max_depth(self):
        diff = JSONDiff(DiffConfig(max_depth=1))
        assert diff.compare({"a": {"b": {"c": 1}}}, {"a": {"b": {"c": 2}}}) == []

    def test_to_dict(self):
        item = JSONDiff().compare({"a": 1}, {})[0]
        assert item.to_dict() == {"path": "a", "type": "removed", "old_value": 1, "new_value": None}

    def test_ignore_order_counts_duplicates(self):
        diff = JSONDiff(DiffConfig(ignore_order=True))
        items = diff.compare(["a", "a", "b"], ["b", "a"])
        assert [(i.path, i.diff_type, i.old_value) for i in items] == [
            ("[]", DiffType.REMOVED, "a"),
        ]

    def test_shrunk_list_reports_tail(self):
        items = JSONDiff().compare({"tags": ["a", "b", "c"]}, {"tags": ["a"]})
        assert [(i.path, i.diff_type) for i in items] == [
            ("tags[1]", DiffType.REMOVED),
            ("tags[2]", DiffType.REMOVED),
        ]

    def test_ignored_key_not_reported_as_removed(self):
        diff = JSONDiff(DiffConfig(ignore_paths=["*.etag"]))
        assert diff.compare({"meta": {"etag": "x"}}, {"meta": {}}) == []


class TestAnalyzerDiffConfig:
    def test_ignored_removal_is_not_breaking(self):
        analyzer = ImpactAnalyzer(DiffConfig(ignore_paths=["debug"]))
        assert analyzer.classify({"status": 200, "debug": 1}, {"status": 200}) is ImpactCategory.NONE
        assert ImpactAnalyzer().classify({"status": 200, "debug": 1}, {"status": 200}) is (
            ImpactCategory.BREAKING
        )

    def test_reordered_list(self):
        before, after = {"roles": ["admin", "user"]}, {"roles": ["user", "admin"]}
        assert ImpactAnalyzer().classify(before, after) is ImpactCategory.CHANGED
        assert ImpactAnalyzer(DiffConfig(ignore_order=True)).classify(before, after) is (
            ImpactCategory.NONE
        )
