"""Tests for pipeline.planner — grouping large change sets.

Covers:
- Directory bucketing with cascading folds and large-bucket splits
- Key file selection and linked-document deduplication
- Expansion of directory patterns back to files
- The planning call, including an empty answer
"""

from wiki_sync.llm.schemas import (
    GroupPlan,
    PlanAction,
    ProposedDocument,
    RawGroup,
    RawPlan,
)
from wiki_sync.llm.usage import UsageTracker
from wiki_sync.pipeline.planner import (
    EMPTY_PLAN_RATIONALE,
    KEY_FILES_PER_BUCKET,
    FileSummary,
    LinkedDocument,
    compress_for_planning,
    directory_prefix,
    expand_plan,
    format_buckets,
    plan_groups,
)


def _files(*paths, summary="summary"):
    return [FileSummary(path=p, summary=summary) for p in paths]


# ---------------------------------------------------------------------------
# Compression
# ---------------------------------------------------------------------------


class TestDirectoryPrefix:
    def test_nested(self):
        assert directory_prefix("src/billing/invoice.ts") == "src/billing/"

    def test_root(self):
        assert directory_prefix("README.md") == ""


class TestCompressForPlanning:
    """Tests for compress_for_planning()."""

    def test_small_bucket_folds_into_parent(self):
        files = _files("src/a/x.ts", "src/a/y.ts", "src/b1.ts", "src/b2.ts", "src/b3.ts")

        buckets = compress_for_planning(files)

        assert [(b.prefix, b.file_count) for b in buckets] == [("src/", 5)]

    def test_folds_cascade_through_missing_parents(self):
        """A fold can create a parent bucket that folds again."""
        files = _files("a/b/c/x.ts", "a/b/c/y.ts", "a/z.ts")

        buckets = compress_for_planning(files)

        assert [(b.prefix, b.file_count) for b in buckets] == [("a/", 3)]

    def test_small_root_bucket_is_kept(self):
        buckets = compress_for_planning(_files("README.md"))
        assert [(b.prefix, b.file_count) for b in buckets] == [("", 1)]
        assert buckets[0].display_prefix == "(root)"

    def test_large_bucket_split_by_next_segment(self):
        """31 single-file directories fold into src/, which then splits."""
        files = _files(*(f"src/m{i}/f.ts" for i in range(1, 32)))

        buckets = compress_for_planning(files)

        assert len(buckets) >= 2
        assert sum(b.file_count for b in buckets) == 31
        assert all(b.prefix.startswith("src/m") for b in buckets)

    def test_split_keeps_direct_files_in_place(self):
        files = _files(*(f"src/f{i}.ts" for i in range(31)))
        files += _files("src/sub/a.ts")

        buckets = compress_for_planning(files)

        by_prefix = {b.prefix: b.file_count for b in buckets}
        assert by_prefix["src/"] == 31
        assert by_prefix["src/sub/"] == 1

    def test_key_files_are_richest_summaries(self):
        files = [
            FileSummary(path=f"src/f{i}.ts", summary="x" * i) for i in range(7)
        ]

        (bucket,) = compress_for_planning(files)

        assert len(bucket.key_files) == KEY_FILES_PER_BUCKET
        assert bucket.key_files[0].path == "src/f6.ts"
        assert "src/f0.ts" not in [f.path for f in bucket.key_files]

    def test_linked_documents_deduplicated(self):
        doc = LinkedDocument(slug="billing", title="Billing")
        other = LinkedDocument(slug="users", title="Users")
        files = _files("src/a.ts", "src/b.ts", "src/c.ts")
        links = {"src/a.ts": [doc], "src/b.ts": [doc, other]}

        (bucket,) = compress_for_planning(files, links)

        assert bucket.linked_documents == (doc, other)


class TestFormatBuckets:
    def test_lists_links_and_remaining_count(self):
        files = [
            FileSummary(path=f"src/f{i}.ts", summary=f"File {i}") for i in range(7)
        ]
        links = {"src/f0.ts": [LinkedDocument(slug="billing", title="Billing")]}

        text = format_buckets(compress_for_planning(files, links))

        assert text.startswith("- **src/** (7 files)")
        assert 'Linked articles: "Billing" (billing)' in text
        assert "...and 2 more" in text


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


class TestExpandPlan:
    """Tests for expand_plan()."""

    PATHS = [
        "shared/types.ts",
        "src/billing/a.ts",
        "src/billing/b.ts",
        "src/users/u.ts",
        "src/user_admin.ts",
        "lib/x.ts",
    ]

    def _raw(self):
        return RawPlan(
            groups=[
                RawGroup(id="billing", directory_patterns=["src/billing/"]),
                RawGroup(
                    id="users",
                    directory_patterns=["src/users/", "src/billing/"],
                    proposed_documents=[
                        ProposedDocument(
                            slug="users", title="Users", action=PlanAction.CREATE
                        )
                    ],
                ),
            ],
            shared_context_patterns=["shared/"],
            rationale="By feature",
        )

    def test_shared_context_files(self):
        plan = expand_plan(self._raw(), self.PATHS)
        assert plan.shared_context_files == ["shared/types.ts"]
        assert plan.rationale == "By feature"

    def test_first_group_claims_overlapping_patterns(self):
        plan = expand_plan(self._raw(), self.PATHS)
        billing, users = plan.groups
        assert billing.files[:2] == ["src/billing/a.ts", "src/billing/b.ts"]
        assert "src/billing/a.ts" not in users.files
        assert users.proposed_documents[0].slug == "users"

    def test_leftovers_join_longest_common_prefix(self):
        plan = expand_plan(self._raw(), self.PATHS)
        billing, users = plan.groups
        assert "src/user_admin.ts" in users.files
        # No shared prefix at all falls back to the first group.
        assert "lib/x.ts" in billing.files

    def test_every_file_assigned_once(self):
        plan = expand_plan(self._raw(), self.PATHS)
        assigned = plan.shared_context_files + [
            f for g in plan.groups for f in g.files
        ]
        assert sorted(assigned) == sorted(self.PATHS)

    def test_no_groups(self):
        plan = expand_plan(RawPlan(), self.PATHS)
        assert plan.is_empty()


# ---------------------------------------------------------------------------
# Planning call
# ---------------------------------------------------------------------------


class TestPlanGroups:
    """Tests for plan_groups()."""

    async def test_plan_from_model(self, llm):
        llm.answer(
            RawPlan,
            RawPlan(groups=[RawGroup(id="all", directory_patterns=["src/"])]),
        )
        usage = UsageTracker()
        files = _files("src/a.ts", "src/b.ts", "src/c.ts")

        plan = await plan_groups(llm, files, [], [], usage=usage)

        assert [g.files for g in plan.groups] == [["src/a.ts", "src/b.ts", "src/c.ts"]]
        assert "- **src/** (3 files)" in llm.calls[0]["prompt"]
        assert usage.total.input_tokens == 10

    async def test_no_output_gives_empty_plan(self, llm):
        plan = await plan_groups(llm, _files("src/a.ts"), [], [])

        assert isinstance(plan, GroupPlan)
        assert plan.is_empty()
        assert plan.rationale == EMPTY_PLAN_RATIONALE
