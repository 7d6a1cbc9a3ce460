"""
Tests for `services/distribution_service.py` (end-to-end pipeline on the
in-memory backend).

Covers:
- Radius batch beats nationwide batch; at most two recipients.
- A full batch is excluded; a duplicate submission is excluded per customer.
- Simulation and commit make the same decision; simulation writes nothing.
- A lead without postcode never matches a radius batch.
- Cached coordinates, returning-lead counters and notification triggers.
- A lead is never distributed to more than two customers over all of its
  submissions, also when submissions run concurrently.
- Distributions committed before a storage failure are still notified.
- Concurrent leads competing for the last slot of a batch.
"""

from __future__ import annotations

import threading
from uuid import UUID

import pytest

from domain.candidate import RejectionCode
from domain.lead import InvalidLeadError, LeadSubmission
from services.distribution_committer import DistributionPersistenceError
from services.distribution_service import DistributionMode, get_lead_distribution_history
from services.geocoder import GeocodeResult, GeocodeStatus
from services.selector import DistributionOutcome
from conftest import NEAR_ZWOLLE, make_batch, zwolle_radius


def _lead(postcode: str | None = "8014AB", email: str = "jan@example.nl") -> LeadSubmission:
    return LeadSubmission(email=email, branch="solar", postcode=postcode, name="Jan")


@pytest.fixture
def scenario(backend):
    """Batch A: 25km around 8011AA, 9/10. Batch B: nationwide, 0/10."""

    a = backend.add_batch(make_batch("A", territory=zwolle_radius(25), total=10, current=9))
    b = backend.add_batch(make_batch("B", total=10, current=0))
    return a, b


class CountingGeocoder:
    def __init__(self, result: GeocodeResult) -> None:
        self.result = result
        self.calls = 0

    def geocode(self, postcode: str) -> GeocodeResult:
        self.calls += 1
        return self.result


def test_radius_batch_is_selected_before_nationwide(build_engine, scenario) -> None:
    report = build_engine().distribute(_lead(), mode=DistributionMode.SIMULATE)

    assert report.outcome is DistributionOutcome.DISTRIBUTED
    assert [c.customer_id for c in report.selected] == ["A", "B"]
    assert [c.priority_score for c in report.selected] == [25.0, 1000.0]
    assert report.geocode_status is GeocodeStatus.FOUND


def test_single_slot_goes_to_radius_customer(build_engine, scenario) -> None:
    report = build_engine().distribute(_lead(), mode=DistributionMode.COMMIT, limit=1)

    assert report.committed_customer_ids == ["A"]


def test_full_batch_is_excluded(build_engine, backend, scenario) -> None:
    a, _ = scenario
    backend.batches[a.batch_id] = make_batch("A", territory=zwolle_radius(25), total=10, current=10, batch_id=a.batch_id)

    report = build_engine().distribute(_lead(), mode=DistributionMode.SIMULATE)

    rejected = {c.customer_id: c for c in report.candidates if not c.eligible}
    assert rejected["A"].rejection is RejectionCode.NO_CAPACITY
    assert [c.customer_id for c in report.selected] == ["B"]


def test_commit_updates_counters_and_deactivates_full_batch(build_engine, backend, notifier, scenario) -> None:
    a, b = scenario

    report = build_engine().distribute(_lead(), mode=DistributionMode.COMMIT)

    assert report.success
    assert report.distributions_executed == 2
    assert backend.batches[a.batch_id].current_batch_count == 10
    assert not backend.batches[a.batch_id].is_active
    assert backend.batches[b.batch_id].current_batch_count == 1

    lead = backend.leads[report.lead_id]
    assert lead.total_distribution_count == 2
    assert lead.unique_customers_count == 2
    assert lead.coordinates == NEAR_ZWOLLE

    assert [t.customer_id for t in notifier.distributed] == ["A", "B"]
    assert [t.batch_id for t in notifier.completed] == [a.batch_id]
    assert notifier.distributed[0].email == "jan@example.nl"


def test_duplicate_submission_of_served_lead_reaches_cap(build_engine, backend, scenario) -> None:
    engine = build_engine()
    engine.distribute(_lead(), mode=DistributionMode.COMMIT)

    again = engine.distribute(_lead(), mode=DistributionMode.COMMIT)

    assert again.outcome is DistributionOutcome.LEAD_CAP_REACHED
    assert again.error == "Lead already reached the maximum of 2 recipients"
    assert [c.rejection for c in again.candidates] == [RejectionCode.ALREADY_RECEIVED]
    assert len(backend.distributions) == 2
    assert backend.leads[again.lead_id].form_submission_count == 2


def test_simulation_matches_commit_and_writes_nothing(build_engine, backend, notifier, scenario) -> None:
    engine = build_engine()

    simulated = engine.distribute(_lead(), mode=DistributionMode.SIMULATE)
    assert backend.writes == 0
    assert backend.leads == {}
    assert notifier.distributed == []
    assert simulated.distributions_executed == 0
    assert simulated.distributions_planned == 2

    committed = engine.distribute(_lead(), mode=DistributionMode.COMMIT)
    assert [c.customer_id for c in committed.selected] == [c.customer_id for c in simulated.selected]


def test_simulation_of_known_lead_reports_prior_distributions(build_engine, backend, scenario) -> None:
    engine = build_engine()
    engine.distribute(_lead(), mode=DistributionMode.COMMIT)
    writes = backend.writes

    report = engine.distribute(_lead(), mode=DistributionMode.SIMULATE)

    assert report.outcome is DistributionOutcome.LEAD_CAP_REACHED
    assert backend.writes == writes


def test_lead_without_postcode_never_matches_radius(build_engine, scenario) -> None:
    report = build_engine().distribute(_lead(postcode=None), mode=DistributionMode.SIMULATE)

    by_customer = {c.customer_id: c for c in report.candidates}
    assert by_customer["A"].rejection is RejectionCode.LEAD_NOT_GEOCODED
    assert [c.customer_id for c in report.selected] == ["B"]
    assert report.geocode_status is None


def test_geocoder_failure_degrades_to_non_radius(build_engine, scenario) -> None:
    geocoder = CountingGeocoder(GeocodeResult.failed("HTTP 503"))

    report = build_engine(geocoder=geocoder).distribute(_lead(), mode=DistributionMode.SIMULATE)

    assert report.geocode_status is GeocodeStatus.FAILED
    assert report.coordinates is None
    assert [c.customer_id for c in report.selected] == ["B"]


def test_cached_coordinates_skip_geocoding(build_engine, backend) -> None:
    backend.add_batch(make_batch("B"))
    geocoder = CountingGeocoder(GeocodeResult.found(NEAR_ZWOLLE))
    engine = build_engine(geocoder=geocoder)

    engine.distribute(_lead(email="a@example.nl"), mode=DistributionMode.COMMIT)
    engine.distribute(_lead(email="a@example.nl"), mode=DistributionMode.COMMIT)

    assert geocoder.calls == 1


def test_no_active_batches(build_engine) -> None:
    report = build_engine().distribute(_lead(), mode=DistributionMode.COMMIT)

    assert report.outcome is DistributionOutcome.NO_ACTIVE_BATCHES
    assert report.error == "No active batches found for branch solar"
    assert not report.success


def test_all_batches_full_is_no_capacity(build_engine, backend) -> None:
    backend.add_batch(make_batch("A", total=5, current=5))

    report = build_engine().distribute(_lead(), mode=DistributionMode.SIMULATE)

    assert report.outcome is DistributionOutcome.NO_CAPACITY


def test_batches_of_other_branches_are_ignored(build_engine, backend) -> None:
    backend.add_batch(make_batch("H", branch="heat-pumps"))

    report = build_engine().distribute(_lead(), mode=DistributionMode.SIMULATE)

    assert report.outcome is DistributionOutcome.NO_ACTIVE_BATCHES


def test_invalid_lead_is_rejected_before_any_lookup(build_engine, backend, scenario) -> None:
    with pytest.raises(InvalidLeadError):
        build_engine().distribute(LeadSubmission(email="jan@example.nl", branch=""), mode=DistributionMode.COMMIT)

    assert backend.writes == 0


def test_notifier_failure_does_not_undo_commit(build_engine, backend, scenario) -> None:
    class BrokenNotifier:
        def lead_distributed(self, trigger) -> None:
            raise RuntimeError("smtp down")

        def batch_completed(self, trigger) -> None:
            pass

    report = build_engine(notifier=BrokenNotifier()).distribute(_lead(), mode=DistributionMode.COMMIT)

    assert report.success
    assert len(report.notification_errors) == 2
    assert len(backend.distributions) == 2


def test_trace_lines_are_timestamped(build_engine, scenario) -> None:
    report = build_engine().distribute(_lead(), mode=DistributionMode.SIMULATE)

    assert report.trace[0] == "[12:00:00] === START DISTRIBUTION ==="
    assert any("[STEP 7] Simulating distribution" in line for line in report.trace)
    assert report.to_dict()["selected_customers"] == ["A", "B"]


def test_distribution_history_is_ordered(build_engine, backend, scenario) -> None:
    report = build_engine().distribute(_lead(), mode=DistributionMode.COMMIT)

    history = get_lead_distribution_history(backend, report.lead_id)

    assert {d.customer_id for d in history} == {"A", "B"}
    assert all(d.lead_id == report.lead_id for d in history)


def _four_nationwide_batches(backend):
    return [backend.add_batch(make_batch(name, batch_id=UUID(int=i + 1))) for i, name in enumerate("abcd")]


def _run_concurrently(count: int, fn) -> list:
    barrier = threading.Barrier(count)
    results = [None] * count

    def run(index: int) -> None:
        barrier.wait()
        results[index] = fn(index)

    threads = [threading.Thread(target=run, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_resubmission_never_exceeds_two_recipients(build_engine, backend, notifier) -> None:
    _four_nationwide_batches(backend)
    engine = build_engine()

    first = engine.distribute(_lead(), mode=DistributionMode.COMMIT)
    second = engine.distribute(_lead(), mode=DistributionMode.COMMIT)

    assert first.committed_customer_ids == ["a", "b"]
    assert second.outcome is DistributionOutcome.LEAD_CAP_REACHED
    assert second.committed == []
    assert len(backend.list_distributions_for_lead(first.lead_id)) == 2
    assert sum(b.current_batch_count for b in backend.batches.values()) == 2
    assert len(notifier.distributed) == 2


def test_returning_lead_only_fills_open_slot(build_engine, backend) -> None:
    _four_nationwide_batches(backend)
    engine = build_engine()

    first = engine.distribute(_lead(), mode=DistributionMode.COMMIT, limit=1)
    second = engine.distribute(_lead(), mode=DistributionMode.COMMIT)
    third = engine.distribute(_lead(), mode=DistributionMode.COMMIT)

    assert first.committed_customer_ids == ["a"]
    assert second.committed_customer_ids == ["b"]
    assert second.distributions_planned == 1
    assert third.outcome is DistributionOutcome.LEAD_CAP_REACHED
    assert {d.customer_id for d in backend.list_distributions_for_lead(first.lead_id)} == {"a", "b"}


def test_partial_commit_is_notified_before_failure(build_engine, backend, notifier) -> None:
    class FailsAfterFirstClaim:
        def __init__(self, inner) -> None:
            self.inner = inner
            self.claims = 0

        def __getattr__(self, name):
            return getattr(self.inner, name)

        def claim_distribution(self, lead_id, candidate, distributed_at):
            self.claims += 1
            if self.claims > 1:
                raise DistributionPersistenceError("connection reset")
            return self.inner.claim_distribution(lead_id, candidate, distributed_at)

    backend.add_batch(make_batch("a", batch_id=UUID(int=1)))
    backend.add_batch(make_batch("b", batch_id=UUID(int=2)))

    failed = build_engine(distributions=FailsAfterFirstClaim(backend)).distribute(_lead(), mode=DistributionMode.COMMIT)

    assert failed.outcome is DistributionOutcome.FAILED
    assert failed.error == "connection reset"
    assert failed.committed_customer_ids == ["a"]
    assert [t.customer_id for t in notifier.distributed] == ["a"]

    rerun = build_engine().distribute(_lead(), mode=DistributionMode.COMMIT)

    assert rerun.committed_customer_ids == ["b"]
    stored = {d.customer_id for d in backend.list_distributions_for_lead(failed.lead_id)}
    assert stored == {t.customer_id for t in notifier.distributed} == {"a", "b"}


def test_concurrent_submissions_of_one_lead_respect_cap(build_engine, backend, notifier) -> None:
    _four_nationwide_batches(backend)
    engine = build_engine()

    reports = _run_concurrently(6, lambda i: engine.distribute(_lead(), mode=DistributionMode.COMMIT))

    assert len({r.lead_id for r in reports}) == 1
    distributions = backend.list_distributions_for_lead(reports[0].lead_id)
    customers = [d.customer_id for d in distributions]
    assert len(customers) == 2
    assert len(set(customers)) == 2
    assert sum(len(r.committed) for r in reports) == 2
    assert sum(b.current_batch_count for b in backend.batches.values()) == 2
    assert len(notifier.distributed) == 2


def test_concurrent_leads_for_last_slot_commit_once(build_engine, backend, notifier) -> None:
    batch = backend.add_batch(make_batch("a", total=10, current=9))
    engine = build_engine()

    reports = _run_concurrently(
        6, lambda i: engine.distribute(_lead(email=f"lead{i}@example.nl"), mode=DistributionMode.COMMIT)
    )

    assert sum(1 for r in reports if r.success) == 1
    final = backend.batches[batch.batch_id]
    assert final.current_batch_count == final.total_batch_size
    assert not final.is_active
    assert len(backend.distributions) == 1
    assert len(notifier.distributed) == 1
    assert len(backend.leads) == 6
