from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from gosafe.errors import (
    ConflictError,
    DuplicateVoteError,
    ForbiddenError,
    NotFoundError,
    SelfVoteError,
    StaleReportError,
    ValidationError,
)
from gosafe.services.h3_utils import MAX_RINGS, cells_within
from gosafe.services.reports import ReportService, Thresholds, next_status
from gosafe.settings import Settings


# ---------- create ----------

def test_create_report_starts_pending(make_report, clock, store):
    report = make_report()

    assert report.status == "pending"
    assert (report.confirmations, report.denials, report.credibility_score) == (0, 0, 0)
    assert report.location.coordinates == [36.8219, -1.2921]
    assert report.zone_id
    assert datetime.fromisoformat(report.expires_at) - datetime.fromisoformat(report.created_at) == timedelta(days=7)
    assert store.get_report(report.id)["author_id"] == "author-1"


@pytest.mark.parametrize(
    "kwargs,message",
    [
        ({"category": "meteor"}, "Type"),
        ({"severity": 4}, "Severity"),
        ({"severity": True}, "Severity"),
        ({"location": [36.8]}, "coordinates"),
        ({"location": [36.8, float("nan")]}, "finite"),
        ({"location": ["36.8", "-1.2"]}, "finite"),
        ({"location": [-1.29, 200.0]}, "degrees"),
        ({"description": "   "}, "Description"),
        ({"description": "x" * 501}, "at most 500"),
    ],
)
def test_create_report_validation(make_report, kwargs, message):
    with pytest.raises(ValidationError, match=message):
        make_report(**kwargs)


def test_create_report_keeps_three_photos(service):
    report = service.create_report(
        "author-1", "flood", [36.8, -1.3], "Road under water", 3,
        photos=["https://cdn/a.jpg", "https://cdn/b.jpg", "https://cdn/c.jpg", "https://cdn/d.jpg"],
    )
    assert report.photos == ["https://cdn/a.jpg", "https://cdn/b.jpg", "https://cdn/c.jpg"]


def test_create_report_rewards_author(make_report, store):
    make_report(author_id="author-9")
    assert store.get_user("author-9")["reputation"] == 1


# ---------- transition rule ----------

@pytest.mark.parametrize(
    "c,d,s,expected",
    [
        (3, 0, 100, "verified"),
        (3, 1, 75, "verified"),
        (2, 0, 100, "pending"),
        (3, 2, 60, "pending"),
        (0, 5, 0, "rejected"),
        (2, 5, 29, "rejected"),
        (3, 7, 30, "pending"),
        (0, 4, 0, "pending"),
    ],
)
def test_next_status(c, d, s, expected):
    assert next_status(c, d, s, Thresholds()) == expected


def test_thresholds_come_from_settings(store, clock):
    svc = ReportService(store, Settings(verify_min_confirmations=1, verify_min_score=50), clock=clock)
    report = svc.create_report("author-1", "accident", [36.8, -1.3], "Two cars", 3)
    assert svc.confirm(report.id, "voter-1").status == "verified"


# ---------- scenarios ----------

def test_two_confirms_stay_pending(make_report, service):
    report = make_report()
    service.confirm(report.id, "voter-1")
    report = service.confirm(report.id, "voter-2")

    assert report.confirmations == 2
    assert report.credibility_score == 100
    assert report.status == "pending"


def test_three_confirms_verify(make_report, service):
    report = make_report()
    for voter in ("voter-1", "voter-2", "voter-3"):
        report = service.confirm(report.id, voter)

    assert report.confirmations == 3
    assert report.credibility_score == 100
    assert report.status == "verified"
    assert service.get_report(report.id).status == "verified"


def test_five_denials_reject(make_report, service):
    report = make_report()
    for i in range(5):
        report = service.deny(report.id, f"voter-{i}")

    assert report.denials == 5
    assert report.credibility_score == 0
    assert report.status == "rejected"


def test_same_voter_twice_conflicts(make_report, service):
    report = make_report()
    assert service.confirm(report.id, "voter-1").confirmations == 1

    with pytest.raises(DuplicateVoteError):
        service.confirm(report.id, "voter-1")
    with pytest.raises(DuplicateVoteError):
        service.deny(report.id, "voter-1")

    assert service.get_report(report.id).confirmations == 1
    assert service.get_report(report.id).denials == 0


def test_mixed_votes_below_score_stay_pending(make_report, service):
    report = make_report()
    for i in range(3):
        report = service.confirm(report.id, f"c-{i}")
        if i < 2:
            report = service.deny(report.id, f"d-{i}")
    # 3 confirms, 2 denies -> 60
    assert (report.confirmations, report.denials, report.credibility_score) == (3, 2, 60)
    assert report.status == "pending"


# ---------- guards ----------

def test_self_vote_rejected(make_report, service):
    report = make_report()
    with pytest.raises(SelfVoteError):
        service.confirm(report.id, "author-1")
    assert service.get_report(report.id).confirmations == 0


def test_self_vote_rejected_even_when_terminal(make_report, service):
    report = make_report()
    for voter in ("v1", "v2", "v3"):
        service.confirm(report.id, voter)
    with pytest.raises(SelfVoteError):
        service.deny(report.id, "author-1")


def test_terminal_report_refuses_votes(make_report, service):
    report = make_report()
    for voter in ("v1", "v2", "v3"):
        service.confirm(report.id, voter)

    with pytest.raises(ValidationError, match="verified"):
        service.deny(report.id, "v4")

    after = service.get_report(report.id)
    assert after.is_terminal
    assert (after.status, after.confirmations, after.denials) == ("verified", 3, 0)


def test_vote_on_missing_report(service):
    with pytest.raises(NotFoundError):
        service.confirm("nope", "voter-1")


def test_unknown_action(make_report, service):
    report = make_report()
    with pytest.raises(ValidationError):
        service.apply_vote(report.id, "voter-1", "maybe")


def test_confirm_rewards_voter_but_deny_does_not(make_report, service, store):
    report = make_report()
    service.confirm(report.id, "voter-c")
    service.deny(report.id, "voter-d")

    assert store.get_user("voter-c")["reputation"] == Decimal("0.5")
    assert store.get_user("voter-d") is None


def test_stale_version_is_retried(make_report, service, monkeypatch):
    report = make_report()
    real_commit = service.store.commit_vote
    calls = {"n": 0}

    def flaky(vote, update=None, expected=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StaleReportError(vote["report_id"])
        return real_commit(vote, update, expected)

    monkeypatch.setattr(service.store, "commit_vote", flaky)
    assert service.confirm(report.id, "voter-1").confirmations == 1
    assert calls["n"] == 2


def test_gives_up_after_max_attempts(make_report, service, monkeypatch):
    report = make_report()

    def always_stale(vote, update=None, expected=None):
        raise StaleReportError(vote["report_id"])

    monkeypatch.setattr(service.store, "commit_vote", always_stale)
    with pytest.raises(ConflictError):
        service.confirm(report.id, "voter-1")


# ---------- delete ----------

def test_author_can_delete(make_report, service):
    report = make_report()
    service.delete_report(report.id, "author-1", "user")
    with pytest.raises(NotFoundError):
        service.get_report(report.id)


def test_admin_can_delete(make_report, service):
    report = make_report()
    service.delete_report(report.id, "moderator", "admin")
    with pytest.raises(NotFoundError):
        service.get_report(report.id)


def test_stranger_cannot_delete(make_report, service):
    report = make_report()
    with pytest.raises(ForbiddenError) as exc:
        service.delete_report(report.id, "someone", "user")
    assert isinstance(exc.value, ValidationError)
    assert service.get_report(report.id)


def test_delete_missing(service):
    with pytest.raises(NotFoundError):
        service.delete_report("nope", "author-1", "admin")


# ---------- listing ----------

def test_list_newest_first_with_filters(make_report, service, clock):
    first = make_report(category="pothole")
    clock.advance(minutes=5)
    second = make_report(category="flood")
    clock.advance(minutes=5)
    third = make_report(category="pothole")

    page = service.list_reports()
    assert [r.id for r in page.reports] == [third.id, second.id, first.id]

    potholes = service.list_reports(category="pothole")
    assert [r.id for r in potholes.reports] == [third.id, first.id]
    assert potholes.pagination.total == 2


def test_list_pagination(make_report, service, clock):
    for _ in range(5):
        make_report()
        clock.advance(seconds=1)
    page = service.list_reports(limit=2, page=3)
    assert len(page.reports) == 1
    assert page.pagination.model_dump() == {"total": 5, "page": 3, "pages": 3}


def test_list_near_orders_by_distance(make_report, service):
    far = make_report(location=[36.8400, -1.2921])    # ~2 km east
    near = make_report(location=[36.8225, -1.2921])   # ~70 m east
    make_report(location=[37.5, -1.0])                 # well outside

    page = service.list_reports(near=[36.8219, -1.2921], radius_m=5000)
    assert [r.id for r in page.reports] == [near.id, far.id]


def test_list_near_radius_is_capped(make_report, service):
    report = make_report()
    assert service.list_reports(near=[36.8219, -1.2921], radius_m=10000).reports[0].id == report.id
    with pytest.raises(ValidationError, match="radius"):
        service.list_reports(near=[36.8219, -1.2921], radius_m=2_000_000)


def test_list_near_refuses_too_many_cells(store, clock):
    service = ReportService(store, Settings(max_search_radius_m=5_000_000), clock=clock)
    with pytest.raises(ValidationError, match="rings"):
        service.list_reports(near=[36.8219, -1.2921], radius_m=2_000_000)


def test_cells_within_is_bounded():
    assert len(cells_within(-1.2921, 36.8219, 5000)) == 91
    assert len(cells_within(-1.2921, 36.8219, 10000)) <= 3 * MAX_RINGS * (MAX_RINGS + 1) + 1
    with pytest.raises(ValueError):
        cells_within(-1.2921, 36.8219, 2_000_000)


def test_list_rejects_bad_filters(service):
    with pytest.raises(ValidationError):
        service.list_reports(status="archived")
    with pytest.raises(ValidationError):
        service.list_reports(limit=0)
