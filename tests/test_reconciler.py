from __future__ import annotations

from directiv.models import (
    Checkout,
    PullRequestRecord,
    PullRequestReview,
    RepoCheckouts,
    ReviewState,
    Session,
    Task,
    WorkflowStatus,
)
from directiv.reconciler import (
    NO_PROJECT_GROUPING,
    ORPHAN_GROUPING,
    derive_workflow_status,
    find_orphans,
    list_groupings,
    reconcile,
)


def make_task(task_id: str, identifier: str, project_id: str | None = "p1", **kwargs) -> Task:
    return Task(
        id=task_id,
        identifier=identifier,
        title=f"Task {identifier}",
        project_id=project_id,
        project_name={"p1": "Platform", "p2": "Billing"}.get(project_id or ""),
        **kwargs,
    )


def inventory(*branches: str, root: str = "/src/app") -> RepoCheckouts:
    checkouts = [Checkout(branch="main", path=root)]
    checkouts.extend(Checkout(branch=branch, path=f"{root}-{branch}") for branch in branches)
    return RepoCheckouts(repo_root=root, checkouts=tuple(checkouts))


def review(author: str, state: ReviewState, at: str) -> PullRequestReview:
    return PullRequestReview(author=author, state=state, submitted_at=at)


def test_enrichment_matches_case_insensitively() -> None:
    tasks = [make_task("1", "ENG-1")]
    view = reconcile(
        tasks,
        sessions=[Session(name="eng-1")],
        checkouts=[inventory("eng-1")],
        pull_requests=[PullRequestRecord(number=9, url="pr9", branch="ENG-1")],
    )

    enriched = view.tasks[0]
    assert enriched.checkout.path == "/src/app-eng-1"
    assert enriched.checkout_repo == "/src/app"
    assert enriched.session.name == "eng-1"
    assert enriched.pull_request.number == 9
    assert enriched.workflow_status is WorkflowStatus.PERSONAL_REVIEW


def test_session_name_is_sanitized_before_matching() -> None:
    tasks = [make_task("1", "feature/FOO_1.2")]
    view = reconcile(tasks, [Session(name="feature-FOO_1-2")], [], [])
    assert view.tasks[0].session is not None
    assert view.tasks[0].workflow_status is WorkflowStatus.IN_DEV


def test_pull_request_branch_containing_identifier_links_checkout() -> None:
    tasks = [make_task("1", "ENG-5")]
    view = reconcile(
        tasks,
        [],
        [inventory("alice/eng-5-login")],
        [PullRequestRecord(number=3, url="pr3", branch="alice/eng-5-login")],
    )
    enriched = view.tasks[0]
    assert enriched.pull_request.number == 3
    assert enriched.checkout.branch == "alice/eng-5-login"


def test_primary_checkout_is_never_matched_or_orphaned() -> None:
    tasks = [make_task("1", "main")]
    view = reconcile(tasks, [], [inventory()], [])
    assert view.tasks[0].checkout is None
    assert view.orphans == []


def test_orphans_are_computed_against_all_tasks_not_the_grouping() -> None:
    tasks = [make_task("1", "ENG-1", project_id="p1"), make_task("2", "ENG-2", project_id="p2")]
    view = reconcile(
        tasks,
        [Session(name="stray")],
        [inventory("ENG-1", "ENG-2", "stray")],
        [],
        grouping="p1",
    )

    assert [task.identifier for task in view.tasks] == ["ENG-1"]
    assert [orphan.checkout.branch for orphan in view.orphans] == ["stray"]
    assert view.orphans[0].session.name == "stray"
    assert view.has_orphans


def test_orphan_grouping_has_no_tasks() -> None:
    tasks = [make_task("1", "ENG-1")]
    view = reconcile(tasks, [], [inventory("left-over")], [], grouping=ORPHAN_GROUPING)
    assert view.tasks == []
    assert len(view.orphans) == 1


def test_no_project_grouping_selects_unassigned_tasks() -> None:
    tasks = [make_task("1", "ENG-1", project_id=None), make_task("2", "ENG-2")]
    view = reconcile(tasks, [], [], [], grouping=NO_PROJECT_GROUPING)
    assert [task.identifier for task in view.tasks] == ["ENG-1"]


def test_find_orphans_with_multiple_repositories() -> None:
    orphans = find_orphans(
        [make_task("1", "ENG-1")],
        [inventory("ENG-1", root="/src/a"), inventory("spike", root="/src/b")],
    )
    assert [(orphan.repo_root, orphan.checkout.branch) for orphan in orphans] == [("/src/b", "spike")]


def test_workflow_status_without_pull_request() -> None:
    assert derive_workflow_status(None, None) is WorkflowStatus.TODO
    assert derive_workflow_status(Session(name="ENG-1"), None) is WorkflowStatus.IN_DEV


def test_workflow_status_from_reviews() -> None:
    bare = PullRequestRecord(number=1, url="u", branch="ENG-1")
    requested = PullRequestRecord(number=1, url="u", branch="ENG-1", requested_reviewer_count=2)
    approved = PullRequestRecord(
        number=1,
        url="u",
        branch="ENG-1",
        reviews=(review("bob", ReviewState.APPROVED, "2024-01-02"),),
    )
    blocked = PullRequestRecord(
        number=1,
        url="u",
        branch="ENG-1",
        reviews=(
            review("bob", ReviewState.APPROVED, "2024-01-02"),
            review("carol", ReviewState.CHANGES_REQUESTED, "2024-01-03"),
        ),
    )

    assert derive_workflow_status(None, bare) is WorkflowStatus.PERSONAL_REVIEW
    assert derive_workflow_status(None, requested) is WorkflowStatus.IN_REVIEW
    assert derive_workflow_status(None, approved) is WorkflowStatus.TO_DEPLOY
    assert derive_workflow_status(None, blocked) is WorkflowStatus.IN_DEV


def test_later_approval_supersedes_earlier_change_request() -> None:
    pull_request = PullRequestRecord(
        number=1,
        url="u",
        branch="ENG-1",
        reviews=(
            review("bob", ReviewState.CHANGES_REQUESTED, "2024-01-01"),
            review("Bob", ReviewState.APPROVED, "2024-01-05"),
        ),
    )
    assert derive_workflow_status(None, pull_request) is WorkflowStatus.TO_DEPLOY


def test_comment_only_review_counts_as_in_review() -> None:
    pull_request = PullRequestRecord(
        number=1,
        url="u",
        branch="ENG-1",
        reviews=(review("bob", ReviewState.COMMENTED, "2024-01-01"),),
    )
    assert derive_workflow_status(None, pull_request) is WorkflowStatus.IN_REVIEW


def test_list_groupings_sorts_by_name_and_puts_no_project_last() -> None:
    tasks = [
        make_task("1", "ENG-1", project_id="p1"),
        make_task("2", "ENG-2", project_id=None),
        make_task("3", "ENG-3", project_id="p2"),
        make_task("4", "ENG-4", project_id="p1"),
    ]
    groupings = list_groupings(tasks)

    assert [grouping.id for grouping in groupings] == ["p2", "p1", NO_PROJECT_GROUPING]
    assert groupings[1].task_count == 2
    assert groupings[1].identifiers == ["ENG-1", "ENG-4"]
