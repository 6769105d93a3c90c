"""Concurrent votes against the in-memory store: no lost updates, no double votes."""

import threading
from concurrent.futures import ThreadPoolExecutor

from gosafe.errors import ConflictError, DuplicateVoteError, GoSafeError


def _race(fn, args_list):
    """Run fn(*args) for each args tuple, all released at the same moment."""
    barrier = threading.Barrier(len(args_list))

    def run(args):
        barrier.wait()
        try:
            return ("ok", fn(*args))
        except ConflictError as e:
            return ("conflict", e)
        except GoSafeError as e:
            return ("refused", e)

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(run, args_list))


def test_identical_votes_exactly_one_wins(make_report, service):
    for _ in range(20):
        report = make_report()
        outcomes = _race(service.confirm, [(report.id, "voter-1"), (report.id, "voter-1")])

        kinds = sorted(kind for kind, _ in outcomes)
        assert kinds == ["conflict", "ok"]
        assert any(isinstance(val, DuplicateVoteError) for kind, val in outcomes if kind == "conflict")
        assert service.get_report(report.id).confirmations == 1


def test_distinct_voters_are_all_counted(make_report, service, settings):
    settings.vote_max_attempts = 50
    report = make_report()
    # 2 confirms + 4 denies keeps the report pending whatever order they land in
    args = [(report.id, f"c-{i}", "confirm") for i in range(2)] + [(report.id, f"d-{i}", "deny") for i in range(4)]

    outcomes = _race(service.apply_vote, args)

    assert all(kind == "ok" for kind, _ in outcomes)
    final = service.get_report(report.id)
    assert (final.confirmations, final.denials) == (2, 4)
    assert final.credibility_score == 33
    assert final.version == 6


def test_threshold_crossed_once_under_contention(make_report, service, settings):
    settings.vote_max_attempts = 50
    report = make_report()
    outcomes = _race(service.confirm, [(report.id, f"voter-{i}") for i in range(6)])

    final = service.get_report(report.id)
    ok = [val for kind, val in outcomes if kind == "ok"]
    # once verified, late votes are refused rather than counted
    assert final.status == "verified"
    assert final.confirmations == 3
    assert len(ok) == 3
    assert sum(1 for r in ok if r.status == "verified") == 1
